"""
HR-side figures and the external ledgers.

The HR bonus workbook has one sheet per department, each with its own
column layout. aggregate() reads one role (gross, register, ...) across the
sheets that carry it, summing duplicate employee rows and keeping a count
of how often each id appeared.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from bonus_config import HR_CODE_LABELS, HR_HEADER_SCAN, HRRole
from overrides import OverrideTable
from sheets import (
    ColumnSpec,
    Workbook,
    cell_at,
    cell_text,
    employee_key,
    find_column,
    find_header_row,
    is_repeated_header,
    is_total_row,
    parse_amount,
)


@dataclass
class HRFigure:
    employee_id: str
    amount: float = 0.0
    occurrences: int = 0
    name: str = ""
    sheets: List[str] = field(default_factory=list)

    def add(self, amount: float, sheet_name: str, name: str = "") -> None:
        self.amount += amount
        self.occurrences += 1
        if not self.name and name:
            self.name = name
        if sheet_name not in self.sheets:
            self.sheets.append(sheet_name)


_NAME_SPEC = ColumnSpec(header=r"(EMP(LOYEE)?\.?\s*NAME)|^\s*NAME\s*$")
_CODE_SPEC = ColumnSpec(aliases=tuple(label[0] for label in HR_CODE_LABELS))


def aggregate(
    workbook: Workbook,
    role: HRRole,
    role_name: str = "",
    max_scan: int = HR_HEADER_SCAN,
    required: bool = False,
) -> Dict[str, HRFigure]:
    """
    Sum one HR role across every sheet that carries it.

    Reading a sheet stops at a repeated header row (a second block below the
    first). Rows with an absent amount or a TOTAL name are skipped.
    Raises ValueError when `required` and no sheet carries the column.
    """
    figures: Dict[str, HRFigure] = {}
    sheets_read = 0

    for sheet_name, rows in workbook.items():
        spec = role.spec_for(sheet_name)
        if spec is None:
            continue

        header_idx = find_header_row(rows, HR_CODE_LABELS, max_scan=max_scan)
        if header_idx is None:
            continue

        headers = rows[header_idx]
        code_idx = find_column(headers, _CODE_SPEC)
        amount_idx = find_column(headers, spec)
        if code_idx is None or amount_idx is None:
            continue
        name_idx = find_column(headers, _NAME_SPEC)

        sheets_read += 1
        for row in rows[header_idx + 1:]:
            if not row:
                continue
            code = cell_at(row, code_idx)
            if is_repeated_header(code, _CODE_SPEC.aliases):
                break

            name = cell_text(cell_at(row, name_idx)).upper()
            if is_total_row(name) or is_total_row(code):
                continue

            key = employee_key(code)
            amount = parse_amount(cell_at(row, amount_idx))
            if key is None or amount is None:
                continue

            figures.setdefault(key, HRFigure(employee_id=key)).add(amount, sheet_name, name)

    if sheets_read == 0:
        if required:
            raise ValueError(f"HR workbook: no sheet carries the '{role_name}' column")
        print(f"[WARN] HR workbook: no sheet carries the '{role_name}' column; HR side is empty.")

    duplicates = sum(1 for f in figures.values() if f.occurrences > 1)
    if duplicates:
        print(f"[WARN] HR '{role_name}': {duplicates} employee(s) appear on more than one row; amounts summed.")

    return figures


# =========================
# EXTERNAL LEDGERS
# =========================

def _sum_by_header(
    workbook: Workbook,
    amount_spec: ColumnSpec,
    label: str,
) -> Dict[str, float]:
    totals: Dict[str, float] = {}
    found = False
    for rows in workbook.values():
        header_idx = find_header_row(rows, HR_CODE_LABELS, max_scan=HR_HEADER_SCAN)
        if header_idx is None:
            continue
        headers = rows[header_idx]
        code_idx = find_column(headers, _CODE_SPEC)
        amount_idx = find_column(headers, amount_spec)
        if code_idx is None or amount_idx is None:
            continue
        name_idx = find_column(headers, _NAME_SPEC)
        found = True
        for row in rows[header_idx + 1:]:
            if not row:
                continue
            code = cell_at(row, code_idx)
            if is_repeated_header(code, _CODE_SPEC.aliases):
                break
            if is_total_row(code) or is_total_row(cell_at(row, name_idx)):
                continue
            key = employee_key(code)
            amount = parse_amount(cell_at(row, amount_idx))
            if key is None or amount is None:
                continue
            totals[key] = totals.get(key, 0.0) + amount
    if not found:
        raise ValueError(f"{label}: no sheet has an employee code column and an amount column")
    return totals


def load_due_ledger(workbook: Workbook) -> Dict[str, float]:
    """Due VC ledger: amount of the bonus not yet paid out, per employee."""
    return _sum_by_header(workbook, ColumnSpec(header=r"DUE.*VC"), "Due ledger")


def load_already_paid_ledger(workbook: Workbook) -> Dict[str, float]:
    """
    Already-paid figures from the due voucher workbook.

    Read from an ALREADY PAID header, else column F of the same sheet.
    """
    return _sum_by_header(
        workbook, ColumnSpec(header=r"ALREADY\s*PAID", index=5), "Already paid ledger"
    )


LOAN_HEADER_ROW = 1
LOAN_CODE_INDEX = 1
LOAN_AMOUNT_INDEX = 5


def load_loan_ledger(workbook: Workbook) -> Dict[str, float]:
    """
    Loan deductions per employee, summed across sheets.

    The loan export has a fixed layout: header on row 2, code in column B,
    amount in column F. Only positive amounts count.
    """
    loans: Dict[str, float] = {}
    for rows in workbook.values():
        for row in rows[LOAN_HEADER_ROW + 1:]:
            if is_total_row(cell_at(row, LOAN_CODE_INDEX)):
                continue
            key = employee_key(cell_at(row, LOAN_CODE_INDEX))
            amount = parse_amount(cell_at(row, LOAN_AMOUNT_INDEX))
            if key is None or amount is None or amount <= 0:
                continue
            loans[key] = loans.get(key, 0.0) + amount
    return loans


def _find_sheet(workbook: Workbook, name: str) -> Optional[str]:
    for sheet_name in workbook:
        if sheet_name.strip().lower() == name.lower():
            return sheet_name
    return None


def load_percentage_overrides(workbook: Workbook) -> OverrideTable:
    """
    Read the custom-percentage workbook.

    "Per" sheet: employee code + percentage (header-detected, else columns
    B and E). "Average" sheet: column B lists employees whose projected
    month is forced to zero.
    """
    table = OverrideTable()

    per_sheet = _find_sheet(workbook, "Per")
    if per_sheet is not None:
        rows = workbook[per_sheet]
        header_idx = find_header_row(rows, HR_CODE_LABELS, max_scan=HR_HEADER_SCAN)
        code_idx, pct_idx, start = 1, 4, 0
        if header_idx is not None:
            headers = rows[header_idx]
            code_idx = find_column(headers, ColumnSpec(aliases=_CODE_SPEC.aliases, index=1))
            pct_idx = find_column(headers, ColumnSpec(header=r"PERCENTAGE|^\s*PER\b|%", index=4))
            start = header_idx + 1
        for row in rows[start:]:
            key = employee_key(cell_at(row, code_idx))
            pct = parse_amount(cell_at(row, pct_idx))
            if key is None or pct is None:
                continue
            # Fractions such as 0.12 are stored as percent
            table.percentages[key] = pct * 100 if 0 < pct < 1 else pct

    avg_sheet = _find_sheet(workbook, "Average")
    if avg_sheet is not None:
        for row in workbook[avg_sheet]:
            key = employee_key(cell_at(row, 1))
            if key is not None and key.isdigit():
                table.exclude_from_projection.add(key)

    print(
        f"[INFO] Percentage overrides: {len(table.percentages)} custom tier(s), "
        f"{len(table.exclude_from_projection)} zero-projection employee(s)."
    )
    return table
