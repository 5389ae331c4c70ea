"""
Employee timeline builder.

Folds one salary workbook (one worksheet per month) into a single
MonthlyTimeline per employee. The per-sheet step is a pure reducer, `fold`,
so a run is just `fold` applied sheet by sheet in workbook order.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional

from bonus_config import SALARY_CODE_LABELS, STAFF_HEADER_SCAN, WORKER
from sheets import (
    ColumnSpec,
    Grid,
    Workbook,
    cell_at,
    cell_text,
    employee_key,
    find_column,
    find_header_row,
    is_total_row,
    month_key_from_sheet_name,
    parse_amount,
)


@dataclass(frozen=True)
class MonthlyTimeline:
    name: str
    department: str
    category: str
    date_of_joining: Any = None
    months: Dict[str, float] = field(default_factory=dict)

    def with_amount(self, month_key: str, amount: float) -> "MonthlyTimeline":
        months = dict(self.months)
        months[month_key] = months.get(month_key, 0.0) + amount
        return replace(self, months=months)


@dataclass(frozen=True)
class SheetLayout:
    header_row: int
    code: Optional[int]
    name: int
    amount: int
    doj: Optional[int] = None
    department: Optional[int] = None


def locate_sheet(
    rows: Grid,
    column_map: Dict[str, ColumnSpec],
    max_scan: int = STAFF_HEADER_SCAN,
) -> Optional[SheetLayout]:
    """
    Find the header row and the salary columns of one monthly sheet.

    Returns None if the header row, the name column or the amount column
    cannot be found.
    """
    header_idx = find_header_row(rows, SALARY_CODE_LABELS, max_scan=max_scan)
    if header_idx is None:
        return None

    headers = rows[header_idx]
    cols = {role: find_column(headers, spec) for role, spec in column_map.items()}

    if cols.get("name") is None or cols.get("amount") is None:
        return None

    doj = cols.get("doj")
    # Some exports put DOJ in an unlabeled trailing column
    if doj is None and len(headers) > 15:
        doj = len(headers) - 1

    return SheetLayout(
        header_row=header_idx,
        code=cols.get("code"),
        name=cols["name"],
        amount=cols["amount"],
        doj=doj,
        department=cols.get("department"),
    )


def fold(
    timelines: Dict[str, MonthlyTimeline],
    rows: Grid,
    layout: SheetLayout,
    month_key: str,
    category: str,
    excluded_departments: Iterable[str] = (),
) -> Dict[str, MonthlyTimeline]:
    """
    Fold one monthly sheet into the timelines and return the new mapping.

    The input mapping is not modified. Repeated rows for an employee in the
    same month are summed in row order.
    """
    excluded = {str(d).strip().upper() for d in excluded_departments}
    result = dict(timelines)

    for row in rows[layout.header_row + 1:]:
        if not row:
            continue

        name = cell_text(cell_at(row, layout.name)).upper()
        if not name or is_total_row(name):
            continue

        amount = parse_amount(cell_at(row, layout.amount))
        if amount is None:
            continue

        department = cell_text(cell_at(row, layout.department)).upper()
        if category == WORKER and department in excluded:
            continue

        key = employee_key(cell_at(row, layout.code), name)
        if key is None:
            continue

        existing = result.get(key)
        if existing is None:
            existing = MonthlyTimeline(
                name=name,
                department=department or category,
                category=category,
            )
        if existing.date_of_joining is None:
            doj = cell_at(row, layout.doj)
            if cell_text(doj):
                existing = replace(existing, date_of_joining=doj)

        result[key] = existing.with_amount(month_key, amount)

    return result


def build_timelines(
    workbook: Workbook,
    window: List[str],
    excluded_months: List[str],
    column_map: Dict[str, ColumnSpec],
    category: str,
    excluded_departments: Iterable[str] = (),
    max_scan: int = STAFF_HEADER_SCAN,
) -> Dict[str, MonthlyTimeline]:
    """
    Build per-employee monthly timelines from every in-window sheet.

    Raises ValueError when no sheet of the workbook could be used.
    """
    timelines: Dict[str, MonthlyTimeline] = {}
    used_sheets = 0
    window_set = set(window)
    excluded_set = set(excluded_months)

    for sheet_name, rows in workbook.items():
        month_key = month_key_from_sheet_name(sheet_name)
        if month_key is None:
            print(f"[WARN] {category} sheet '{sheet_name}': cannot read a month from the name, skipping.")
            continue
        if month_key in excluded_set:
            print(f"[INFO] {category} sheet '{sheet_name}' ({month_key}) is an excluded month, skipping.")
            continue
        if month_key not in window_set:
            print(f"[INFO] {category} sheet '{sheet_name}' ({month_key}) is outside the averaging window, skipping.")
            continue

        layout = locate_sheet(rows, column_map, max_scan=max_scan)
        if layout is None:
            print(f"[WARN] {category} sheet '{sheet_name}': header row or required columns not found, skipping.")
            continue

        timelines = fold(timelines, rows, layout, month_key, category, excluded_departments)
        used_sheets += 1

    if used_sheets == 0:
        raise ValueError(f"No usable {category} salary sheets found in workbook")

    print(f"[INFO] {category}: {len(timelines)} employee(s) across {used_sheets} month sheet(s).")
    return timelines
