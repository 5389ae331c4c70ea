"""
Sheet locator and cell parsing helpers.

Salary and HR workbooks arrive with different layouts, so nothing here
assumes a fixed header row. Headers are found by scanning the top of a sheet
and comparing labels after normalization (whitespace and -_. removed,
upper-cased).
"""

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd


Row = List[Any]
Grid = List[Row]
Workbook = Dict[str, Grid]


# =========================
# NORMALIZATION
# =========================

def norm(value: Any) -> str:
    """Header normalization: drop whitespace and -_. then upper-case."""
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    text = re.sub(r"\s+", "", str(value))
    return re.sub(r"[-_.]", "", text).upper()


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        value = value.get("result", value.get("text"))
        if value is None:
            return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value).strip()


def cell_at(row: Row, idx: Optional[int]) -> Any:
    """Return row[idx] or None when the row is short or idx is unset."""
    if row is None or idx is None or idx < 0 or idx >= len(row):
        return None
    return row[idx]


def is_total_row(name: Any) -> bool:
    return "TOTAL" in cell_text(name).upper()


def employee_key(code: Any, name: Any = None) -> Optional[str]:
    """
    Canonical employee key.

    Numeric codes collapse to their integer text (937, 937.0 and "937" all
    give "937"). Without a usable code, the trimmed upper-cased name is used.
    """
    if isinstance(code, dict):
        code = code.get("result", code.get("text"))

    if code is not None and not isinstance(code, bool):
        if isinstance(code, (int, float, np.integer, np.floating)):
            number = float(code)
            if math.isfinite(number):
                return str(int(number)) if number.is_integer() else str(number)
        else:
            text = str(code).strip()
            if text:
                number = pd.to_numeric(text.replace(",", ""), errors="coerce")
                if not pd.isna(number) and float(number).is_integer():
                    return str(int(number))
                return text.upper()

    label = cell_text(name).upper()
    return label or None


def sort_key(key: str) -> tuple:
    """Numeric codes first in numeric order, then name keys alphabetically."""
    if key.isdigit():
        return (0, int(key), "")
    return (1, 0, key)


# =========================
# AMOUNTS + DATES
# =========================

_AMOUNT_NOISE = re.compile(r"[,\s$₹]")


def parse_amount(cell: Any) -> Optional[float]:
    """
    Parse a numeric cell.

    Returns None for blanks, "-" placeholders, non-numeric text and formula
    cells with neither a cached result nor text. None means "absent" and is
    kept distinct from an explicit zero.
    """
    if cell is None:
        return None

    if isinstance(cell, dict):
        if cell.get("result") is not None:
            return parse_amount(cell["result"])
        if cell.get("text") is not None:
            return parse_amount(cell["text"])
        return None

    if isinstance(cell, bool):
        return None

    if isinstance(cell, (int, float, np.integer, np.floating)):
        value = float(cell)
        return None if math.isnan(value) or math.isinf(value) else value

    text = _AMOUNT_NOISE.sub("", str(cell))
    if text in ("", "-"):
        return None

    value = pd.to_numeric(text, errors="coerce")
    if pd.isna(value) or np.isinf(value):
        return None
    return float(value)


EXCEL_EPOCH = datetime(1899, 12, 30)


def parse_date_of_joining(value: Any) -> Optional[date]:
    """
    Parse a date-of-joining cell.

    Accepts Excel serial numbers, date/datetime objects, d-m-y text (with
    "/" or "." separators, two-digit years <= 29 read as 20xx) and ISO
    yyyy-mm-dd text. Returns None when nothing fits.
    """
    if isinstance(value, dict):
        value = value.get("result", value.get("text"))
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, str) and pd.isna(value):
        return None

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    if isinstance(value, (int, float, np.integer, np.floating)):
        try:
            return (EXCEL_EPOCH + timedelta(days=float(value))).date()
        except OverflowError:
            return None

    text = str(value).strip()
    if not text:
        return None

    # Drop any time part ("2024-11-15 00:00:00", "2024-11-15T00:00")
    text = re.split(r"\s|T(?=\d)", text)[0]
    text = re.sub(r"[./]", "-", text)

    m = re.fullmatch(r"(\d{1,2})-(\d{1,2})-(\d{4}|\d{2})", text)
    if m:
        day, month, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
        if len(m.group(3)) == 2:
            year += 2000 if year <= 29 else 1900
        try:
            return date(year, month, day)
        except ValueError:
            return None

    m = re.fullmatch(r"(\d{4})-(\d{1,2})-(\d{1,2})", text)
    if m:
        try:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            return None

    for fmt in ("%d-%b-%Y", "%d-%b-%y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    return None


# =========================
# MONTH KEYS
# =========================

MONTH_NAME_MAP = {
    "JAN": 1, "JANUARY": 1,
    "FEB": 2, "FEBRUARY": 2,
    "MAR": 3, "MARCH": 3,
    "APR": 4, "APRIL": 4,
    "MAY": 5,
    "JUN": 6, "JUNE": 6,
    "JUL": 7, "JULY": 7,
    "AUG": 8, "AUGUST": 8,
    "SEP": 9, "SEPT": 9, "SEPTEMBER": 9,
    "OCT": 10, "OCTOBER": 10,
    "NOV": 11, "NOVEMBER": 11,
    "DEC": 12, "DECEMBER": 12,
}

_NUMERIC_MONTH = re.compile(r"(?<!\d)(20\d{2})[-_/ ]?(0?[1-9]|1[0-2])(?!\d)")
_FULL_MONTH = re.compile(
    r"\b(JANUARY|FEBRUARY|MARCH|APRIL|MAY|JUNE|JULY|AUGUST|SEPTEMBER|OCTOBER|NOVEMBER|DECEMBER)\b"
)
_SHORT_MONTH = re.compile(r"\b(JAN|FEB|MAR|APR|MAY|JUN|JUL|AUG|SEP|SEPT|OCT|NOV|DEC)\b")
_YEAR = re.compile(r"\b(20\d{2}|\d{2})\b")


def month_key_from_sheet_name(name: str) -> Optional[str]:
    """
    Map a worksheet name to "YYYY-MM".

    "2025-09", "2025_9", "Nov-24", "November 2024" and "SEPT 25" are all
    understood. A month-name token takes precedence over digits, so copy
    suffixes such as "Nov-2024 (2)" keep their month. Anything else returns
    None so the caller can skip the sheet.
    """
    s = str(name or "").strip().upper()

    token = _FULL_MONTH.search(s) or _SHORT_MONTH.search(s)
    if token:
        year_match = _YEAR.search(s)
        if year_match is None:
            return None
        year = int(year_match.group(1))
        if year < 100:
            year += 2000
        return f"{year}-{MONTH_NAME_MAP[token.group(1)]:02d}"

    m = _NUMERIC_MONTH.search(s)
    if m:
        return f"{int(m.group(1))}-{int(m.group(2)):02d}"

    return None


# =========================
# HEADER + COLUMN LOOKUP
# =========================

@dataclass(frozen=True)
class ColumnSpec:
    """
    Where to find one logical column on a sheet.

    header:  case-insensitive regex searched against the raw header text
    aliases: labels compared with norm() equality
    index:   fixed fallback position when neither matches
    """
    header: Optional[str] = None
    aliases: tuple = ()
    index: Optional[int] = None

    @classmethod
    def from_dict(cls, d: dict) -> "ColumnSpec":
        return cls(
            header=d.get("header"),
            aliases=tuple(norm(a) for a in d.get("aliases", [])),
            index=d.get("index"),
        )


def find_header_row(
    rows: Grid,
    candidate_labels: Sequence[Sequence[str]],
    max_scan: int = 10,
) -> Optional[int]:
    """
    Index of the first row (within max_scan) containing every label of at
    least one candidate label set. Labels are compared with norm().
    """
    label_sets = [{norm(label) for label in labels} for labels in candidate_labels]
    for i, row in enumerate(rows[:max_scan]):
        if not row:
            continue
        cells = {norm(v) for v in row if v is not None}
        if any(labels <= cells for labels in label_sets):
            return i
    return None


def find_column(headers: Row, spec: ColumnSpec) -> Optional[int]:
    """Resolve a ColumnSpec against a header row; fall back to spec.index."""
    if spec.header:
        pattern = re.compile(spec.header, re.IGNORECASE)
        for i, h in enumerate(headers):
            if pattern.search(cell_text(h)):
                return i
    if spec.aliases:
        wanted = {norm(a) for a in spec.aliases}
        for i, h in enumerate(headers):
            if norm(h) in wanted:
                return i
    return spec.index


def is_repeated_header(value: Any, code_labels: Sequence[str]) -> bool:
    label = norm(value)
    return label in {norm(c) for c in code_labels} or label == "SRNO"


# =========================
# WORKBOOK LOADING
# =========================

def load_workbook(path: Path) -> Workbook:
    """
    Read every sheet of an .xlsx (or a single .csv) file into row grids.

    Sheet order is preserved. NaN cells become None.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Workbook not found: {path}")

    if path.suffix.lower() == ".csv":
        frames = {path.stem: pd.read_csv(path, header=None, dtype=object)}
    else:
        frames = pd.read_excel(path, sheet_name=None, header=None, engine="openpyxl")

    workbook: Workbook = {}
    for sheet_name, df in frames.items():
        df = df.astype(object).where(pd.notna(df), None)
        workbook[str(sheet_name)] = df.values.tolist()
    return workbook
