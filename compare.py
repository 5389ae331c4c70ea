"""
Comparator: Software vs HR per employee and stage.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Tuple

import pandas as pd

from formulas import StageValues
from hr_ledger import HRFigure
from projection import GrossRecord
from sheets import sort_key


MATCH = "Match"
MISMATCH = "Mismatch"
ERROR = "Error"

STAGES = ["gross", "register", "unpaid", "already_paid", "reimbursement", "final"]

INELIGIBLE_UNPAID_NOTE = (
    "Employee is not eligible, so their Unpaid value must be equal to the Register."
)
HR_ONLY_NOTE = "not found in software"
SOFTWARE_ONLY_NOTE = "not found in HR"


@dataclass(frozen=True)
class ComparisonRow:
    stage: str
    employee_id: str
    name: str
    department: str
    category: str
    software: float
    hr: float
    difference: float
    status: str
    hr_occurrences: int = 0
    note: str = ""
    values: Mapping = field(default_factory=dict)

    @property
    def eligible(self) -> bool:
        return bool(self.values.get("eligible", True))


def compare(software: float, hr: float, tolerance: float) -> Tuple[float, str]:
    difference = software - hr
    status = MATCH if abs(difference) <= tolerance else MISMATCH
    return difference, status


def build_stage_rows(
    stage: str,
    records: Dict[str, GrossRecord],
    values: Dict[str, StageValues],
    hr_figures: Dict[str, HRFigure],
    tolerance: float,
) -> List[ComparisonRow]:
    """
    One row per employee present on either side, sorted by employee key.

    A side with no figure counts as 0 so omissions show up as differences.
    """
    rows: List[ComparisonRow] = []
    keys = sorted(set(records) | set(hr_figures), key=sort_key)

    for key in keys:
        record = records.get(key)
        stage_values = values.get(key)
        figure = hr_figures.get(key)

        software = stage_values.software_value(stage) if stage_values else 0.0
        hr = figure.amount if figure else 0.0
        difference, status = compare(software, hr, tolerance)

        notes = []
        if record is None:
            notes.append(HR_ONLY_NOTE)
        elif figure is None:
            notes.append(SOFTWARE_ONLY_NOTE)
        if figure is not None and figure.occurrences > 1:
            notes.append(f"{figure.occurrences} HR rows summed")

        # A missing HR row counts as 0 unpaid
        if (
            stage == "unpaid"
            and stage_values is not None
            and not stage_values.eligible
            and abs(hr - stage_values.register) > tolerance
        ):
            status = ERROR
            notes.append(INELIGIBLE_UNPAID_NOTE)

        rows.append(
            ComparisonRow(
                stage=stage,
                employee_id=key,
                name=record.name if record else (figure.name if figure else ""),
                department=record.department if record else "Unknown",
                category=record.category if record else "Unknown",
                software=software,
                hr=hr,
                difference=difference,
                status=status,
                hr_occurrences=figure.occurrences if figure else 0,
                note="; ".join(notes),
                values=stage_values.as_dict() if stage_values else {},
            )
        )

    return rows


def status_counts(rows: List[ComparisonRow]) -> Dict[str, int]:
    counts = {MATCH: 0, MISMATCH: 0, ERROR: 0}
    for row in rows:
        counts[row.status] += 1
    return counts


def category_totals(rows: List[ComparisonRow]) -> Dict[str, Dict[str, float]]:
    """Software and HR sums per category (HR-only rows land under "Unknown")."""
    totals: Dict[str, Dict[str, float]] = {}
    for row in rows:
        bucket = totals.setdefault(row.category, {"software": 0.0, "hr": 0.0})
        bucket["software"] += row.software
        bucket["hr"] += row.hr
    return {
        category: {k: round(v, 2) for k, v in sums.items()}
        for category, sums in sorted(totals.items())
    }


EXPORT_COLUMNS = [
    "employee_id",
    "name",
    "department",
    "category",
    "months_of_service",
    "eligible",
    "tier",
    "gross",
    "adjusted_gross",
    "register",
    "actual",
    "unpaid",
    "payment_status",
    "loan",
    "already_paid",
    "software",
    "hr",
    "hr_occurrences",
    "difference",
    "status",
    "note",
]


def rows_to_frame(rows: List[ComparisonRow]) -> pd.DataFrame:
    """Flatten comparison rows (intermediates included) for CSV/XLSX export."""
    records = []
    for row in rows:
        flat = {
            "employee_id": row.employee_id,
            "name": row.name,
            "department": row.department,
            "category": row.category,
            "software": round(row.software, 2),
            "hr": round(row.hr, 2),
            "hr_occurrences": row.hr_occurrences,
            "difference": round(row.difference, 2),
            "status": row.status,
            "note": row.note,
        }
        for k, v in row.values.items():
            if k in ("reimbursement", "final"):
                continue
            flat[k] = round(v, 2) if isinstance(v, float) else v
        records.append(flat)
    return pd.DataFrame(records, columns=EXPORT_COLUMNS)
