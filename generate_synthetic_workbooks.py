from datetime import date, datetime, timedelta
from pathlib import Path

import numpy as np
import pandas as pd

from bonus_config import AVG_WINDOW, EXCLUDED_MONTHS, STAFF, WORKER
from formulas import Ledgers, evaluate
from overrides import OverrideTable
from projection import gross_record
from tiers import classify, is_eligible, months_of_service
from timeline import MonthlyTimeline


PROJECT_ROOT = Path(__file__).resolve().parent
DATA_RAW = PROJECT_ROOT / "data" / "raw"

FIRST_NAMES = ["ASHA", "RAVI", "MEENA", "VIJAY", "SUNIL", "KAVITA", "ANIL", "REKHA", "MOHAN", "PRIYA"]
LAST_NAMES = ["SHARMA", "PATEL", "SINGH", "KUMAR", "YADAV", "GUPTA", "VERMA", "JOSHI"]


def _sheet_name(month_key: str) -> str:
    return datetime.strptime(month_key, "%Y-%m").strftime("%b-%y")


def _write_workbook(path: Path, sheets: dict) -> None:
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for name, grid in sheets.items():
            pd.DataFrame(grid).to_excel(writer, sheet_name=name, header=False, index=False)


def generate_synthetic_workbooks(
    out_dir: Path = DATA_RAW,
    num_staff: int = 40,
    num_workers: int = 60,
    mismatch_count: int = 0,
    seed: int = 7,
) -> dict:
    """
    Generate a consistent set of input workbooks for one bonus run.

    - Staff and Worker salary workbooks, one sheet per month (plus an
      excluded Oct-25 sheet that must be ignored)
    - HR bonus workbook (Worker + Staff sheets) whose figures agree with the
      engine, except for `mismatch_count` deliberately shifted registers
    - Due VC ledger (already-paid figures in column F), loan ledger and a
      custom percentage workbook

    Returns a dict of role -> path.
    """
    print("Starting synthetic bonus workbook generation...")
    rng = np.random.default_rng(seed)
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    window = list(AVG_WINDOW)
    employees = []
    for i in range(num_staff + num_workers):
        category = STAFF if i < num_staff else WORKER
        emp_id = (2001 + i) if category == STAFF else (5001 + i - num_staff)
        joined = date(2012, 1, 1) + timedelta(days=int(rng.integers(0, 4900)))
        if joined > date(2025, 8, 1):
            joined = date(2025, 8, 1)
        dept = "S" if category == STAFF else ("CASH" if rng.random() < 0.05 else "W")
        base = float(rng.integers(12_000, 60_000))
        left_early = rng.random() < 0.05

        months = {}
        for mk in window:
            if mk < joined.strftime("%Y-%m"):
                continue
            if left_early and mk == window[-1]:
                continue
            months[mk] = round(base + float(rng.integers(-500, 500)), 2)

        employees.append(
            {
                "id": emp_id,
                "name": f"{rng.choice(FIRST_NAMES)} {rng.choice(LAST_NAMES)}",
                "category": category,
                "dept": dept,
                "doj": joined.strftime("%d-%m-%Y"),
                "months": months,
            }
        )

    # Custom percentages for a handful of staff
    per_ids = [e["id"] for e in employees if e["category"] == STAFF][:3]
    overrides = OverrideTable(percentages={str(i): 12.0 for i in per_ids})

    # =========================
    # Salary workbooks
    # =========================
    staff_sheets, worker_sheets = {}, {}
    for mk in window + EXCLUDED_MONTHS[:1]:
        staff_grid = [
            ["STAFF SALARY REGISTER"],
            ["SR NO", "EMP CODE", "EMPLOYEE NAME", "DEPT", "DATE OF JOINING", "SALARY1"],
        ]
        worker_grid = [
            ["SR NO", "EMP ID", "EMPLOYEE NAME", "DEPT", "DOJ", "BASIC", "DA", "HRA", "SALARY 1"],
        ]
        for e in employees:
            amount = e["months"].get(mk)
            if mk in EXCLUDED_MONTHS:
                amount = 99_999.0
            if amount is None:
                continue
            if e["category"] == STAFF:
                staff_grid.append([len(staff_grid) - 1, e["id"], e["name"], e["dept"], e["doj"], amount])
            else:
                worker_grid.append(
                    [len(worker_grid), e["id"], e["name"], e["dept"], e["doj"],
                     round(amount * 0.5, 2), round(amount * 0.3, 2), round(amount * 0.2, 2), amount]
                )
        staff_grid.append(["", "", "GRAND TOTAL", "", "", sum(r[5] for r in staff_grid[2:])])
        staff_sheets[_sheet_name(mk)] = staff_grid
        worker_sheets[_sheet_name(mk)] = worker_grid

    # =========================
    # Ledgers + HR figures
    # =========================
    due_grid = [["SR NO", "EMP CODE", "EMPLOYEE NAME", "DEPT", "DUE VC", "ALREADY PAID"]]
    loan_grid = [["LOAN DEDUCTIONS"], ["SR NO", "EMP CODE", "NAME", "DEPT", "LOAN TYPE", "LOAN DED."]]
    hr_worker = [["BONUS 2024-25 WORKER"], ["SR NO", "EMP Code", "EMP. NAME", "Deptt.", "GROSS", "REGISTER", "DUE VC", "REIM.", "FINAL RTGS"]]
    hr_staff = [
        ["BONUS 2024-25 STAFF"],
        ["SR NO", "EMP Code", "EMP. NAME", "Deptt.", "GROSS", "REGISTER", "UNPAID", "ALREADY PAID", "REIM.", "FINAL RTGS"],
    ]

    shifted = 0
    for e in employees:
        if e["category"] == WORKER and e["dept"] == "CASH":
            continue
        key = str(e["id"])
        timeline = MonthlyTimeline(name=e["name"], department=e["dept"], category=e["category"], months=e["months"])
        record = gross_record(key, timeline, window, overrides)
        if record.gross_salary == 0:
            continue

        due = float(rng.integers(500, 3000)) if rng.random() < 0.2 else 0.0
        loan = float(rng.integers(200, 2000)) if rng.random() < 0.15 else 0.0
        paid = float(rng.integers(100, 1500)) if (e["category"] == STAFF and due == 0 and rng.random() < 0.1) else 0.0
        if due or paid:
            due_grid.append([len(due_grid), e["id"], e["name"], e["dept"], due, paid])
        if loan:
            loan_grid.append([len(loan_grid) - 1, e["id"], e["name"], e["dept"], "ADVANCE", loan])

        mos = months_of_service(e["doj"])
        tier = classify(key, mos, overrides)
        eligible = is_eligible(e["category"], mos)
        values = evaluate(
            record, tier, mos, eligible,
            Ledgers(due={key: due}, loans={key: loan}, already_paid={key: paid}),
        )

        hr_register = values.register
        if shifted < mismatch_count:
            hr_register += 500.0
            shifted += 1

        if e["category"] == STAFF:
            hr_staff.append(
                [len(hr_staff) - 1, e["id"], e["name"], e["dept"], round(values.gross, 2),
                 round(hr_register, 2), round(values.unpaid, 2), paid,
                 round(values.reimbursement, 2), round(values.final, 2)]
            )
        else:
            hr_worker.append(
                [len(hr_worker) - 1, e["id"], e["name"], e["dept"], round(values.gross, 2),
                 round(hr_register, 2), round(values.unpaid, 2),
                 round(values.reimbursement, 2), round(values.final, 2)]
            )

    per_grid = [["SR NO", "EMP CODE", "NAME", "DEPT", "PERCENTAGE"]]
    for i, emp_id in enumerate(per_ids, start=1):
        per_grid.append([i, emp_id, "", "S", 12])
    average_grid = [["SR NO", "EMP CODE"]]

    paths = {
        "staff": out_dir / "staff_salary.xlsx",
        "worker": out_dir / "worker_salary.xlsx",
        "hr": out_dir / "hr_bonus_calculation.xlsx",
        "due": out_dir / "due_vc_ledger.xlsx",
        "loans": out_dir / "loan_ledger.xlsx",
        "overrides": out_dir / "percentage_overrides.xlsx",
    }
    _write_workbook(paths["staff"], staff_sheets)
    _write_workbook(paths["worker"], worker_sheets)
    _write_workbook(paths["hr"], {"Worker": hr_worker, "Staff": hr_staff})
    _write_workbook(paths["due"], {"Due VC": due_grid})
    _write_workbook(paths["loans"], {"Loan Ded.": loan_grid})
    _write_workbook(paths["overrides"], {"Per": per_grid, "Average": average_grid})

    for role, path in paths.items():
        print(f"Generated {role} workbook: {path}")
    return {role: str(p) for role, p in paths.items()}


if __name__ == "__main__":
    generate_synthetic_workbooks()
