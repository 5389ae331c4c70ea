from pathlib import Path
import json
import sys

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from audit import AuditSink, build_audit_messages, run_signature  # noqa: E402
from bonus_config import HR_ROLES, STAFF, WORKER, Settings, load_config  # noqa: E402
from compare import (  # noqa: E402
    ERROR,
    EXPORT_COLUMNS,
    HR_ONLY_NOTE,
    INELIGIBLE_UNPAID_NOTE,
    MATCH,
    MISMATCH,
    SOFTWARE_ONLY_NOTE,
    build_stage_rows,
    category_totals,
    compare,
    rows_to_frame,
)
from formulas import Ledgers, evaluate  # noqa: E402
from hr_ledger import (  # noqa: E402
    HRFigure,
    aggregate,
    load_already_paid_ledger,
    load_due_ledger,
    load_loan_ledger,
    load_percentage_overrides,
)
from overrides import OverrideTable  # noqa: E402
from projection import GrossRecord  # noqa: E402


HR_STAFF_HEADER = ["SR NO", "EMP Code", "EMP. NAME", "Deptt.", "GROSS", "REGISTER", "UNPAID", "ALREADY PAID"]


def hr_workbook():
    return {
        "Staff": [
            ["BONUS 2024-25 STAFF"],
            HR_STAFF_HEADER,
            [1, 101, "asha", "S", 1000, 83.3, 0, 0],
            [2, 101, "asha", "S", "500", 41.65, 0, 0],
            [3, 102, "ravi", "S", "-", 0, 0, 0],
            ["", "", "TOTAL", "", 1500, 124.95, 0, 0],
            [],
            HR_STAFF_HEADER,                         # second block, not read
            [1, 999, "ghost", "S", 777, 0, 0, 0],
        ],
        "Loan Ded.": [
            ["LOAN"],
            ["SR NO", "EMP CODE", "NAME", "DEPT", "TYPE", "GROSS"],
            [1, 101, "asha", "S", "ADV", 5000],
        ],
    }


# =========================
# HR aggregation + ledgers
# =========================

def test_aggregate_sums_duplicates_and_stops_at_repeated_header():
    figures = aggregate(hr_workbook(), HR_ROLES["gross"], "gross")

    assert set(figures) == {"101"}
    assert figures["101"].amount == pytest.approx(1500.0)
    assert figures["101"].occurrences == 2
    assert figures["101"].name == "ASHA"
    assert figures["101"].sheets == ["Staff"]


def test_aggregate_reads_per_sheet_columns():
    figures = aggregate(hr_workbook(), HR_ROLES["register"], "register")
    assert figures["101"].amount == pytest.approx(124.95)
    assert figures["102"].amount == 0.0


def test_aggregate_missing_required_column_is_structural_error():
    workbook = {"Staff": [["EMP CODE", "NAME", "SOMETHING"], [101, "asha", 1]]}
    with pytest.raises(ValueError):
        aggregate(workbook, HR_ROLES["gross"], "gross", required=True)

    assert aggregate(workbook, HR_ROLES["final"], "final") == {}


def test_due_ledger():
    workbook = {"Due": [["EMP CODE", "NAME", "DUE VC"], [101, "a", 1000], [102, "b", None], [101, "a", "250"]]}
    assert load_due_ledger(workbook) == {"101": 1250.0}

    with pytest.raises(ValueError):
        load_due_ledger({"Due": [["nothing useful"]]})


def test_due_ledger_skips_total_rows_and_second_block():
    header = ["SR NO", "EMP CODE", "EMPLOYEE NAME", "DEPT", "DUE VC", "ALREADY PAID"]
    workbook = {
        "Due": [
            header,
            [1, 101, "asha", "S", 1000, 0],
            [2, 102, "ravi", "S", 0, 400],
            ["", "TOTAL", "", "", 1000, 400],
            ["", "", "GRAND TOTAL", "", 1000, 400],
            header,
            [1, 103, "ghost", "S", 999, 999],
        ]
    }
    assert load_due_ledger(workbook) == {"101": 1000.0, "102": 0.0}
    assert load_already_paid_ledger(workbook) == {"101": 0.0, "102": 400.0}


def test_already_paid_ledger_falls_back_to_column_f():
    workbook = {"Due": [["SR", "EMP CODE", "NAME", "DEPT", "DUE VC", "PAID"], [1, 101, "a", "S", 0, 250]]}
    assert load_already_paid_ledger(workbook) == {"101": 250.0}


def test_loan_ledger_fixed_layout_positive_only():
    workbook = {
        "Loan Ded.": [
            ["LOAN DEDUCTIONS"],
            ["SR NO", "EMP CODE", "NAME", "DEPT", "TYPE", "LOAN DED."],
            [1, 101, "a", "S", "ADV", 500],
            [2, 101, "a", "S", "ADV", 250],
            [3, 102, "b", "S", "ADV", 0],
            [4, 103, "c", "S", "ADV", "-"],
        ]
    }
    assert load_loan_ledger(workbook) == {"101": 750.0}


def test_percentage_overrides_workbook():
    workbook = {
        "Per": [
            ["SR NO", "EMP CODE", "NAME", "DEPT", "PERCENTAGE"],
            [1, 937, "", "S", 0.12],
            [2, 1039, "", "S", 12],
            [3, None, "", "S", 10],
        ],
        "Average": [["SR NO", "EMP CODE"], [1, 1065], [2, "n/a"]],
    }
    table = load_percentage_overrides(workbook)
    assert table.percentages["937"] == pytest.approx(12.0)
    assert table.percentages["1039"] == pytest.approx(12.0)
    assert len(table.percentages) == 2
    assert table.exclude_from_projection == {"1065"}


# =========================
# Comparator
# =========================

def test_compare_tolerance_is_inclusive_and_symmetric():
    assert compare(1000, 990, 12) == (10, MATCH)
    assert compare(1000, 988, 12)[1] == MATCH
    assert compare(1000, 980, 12) == (20, MISMATCH)
    assert compare(980, 1000, 12) == (-20, MISMATCH)


def record(emp_id, category, gross, doj="2015-01-01"):
    return GrossRecord(
        employee_id=emp_id,
        name=f"EMP {emp_id}",
        department="W" if category == WORKER else "S",
        category=category,
        date_of_joining=doj,
        base_sum=gross,
        projected=0.0,
        gross_salary=gross,
    )


def test_ineligible_worker_unpaid_rule():
    rec = record("5", WORKER, 100_000, doj="2025-08-01")
    values = {"5": evaluate(rec, 10.0, 2, False, Ledgers())}
    assert values["5"].register == pytest.approx(6_000)
    assert values["5"].unpaid == pytest.approx(6_000)

    wrong = build_stage_rows("unpaid", {"5": rec}, values, {"5": HRFigure("5", 0.0, 1)}, 12)
    assert wrong[0].status == ERROR
    assert INELIGIBLE_UNPAID_NOTE in wrong[0].note

    right = build_stage_rows("unpaid", {"5": rec}, values, {"5": HRFigure("5", 6_000.0, 1)}, 12)
    assert right[0].status == MATCH
    assert right[0].note == ""

    # The rule only applies to the unpaid stage
    register_rows = build_stage_rows("register", {"5": rec}, values, {"5": HRFigure("5", 0.0, 1)}, 12)
    assert register_rows[0].status == MISMATCH


def test_ineligible_worker_without_hr_unpaid_row_is_error():
    rec = record("5", WORKER, 100_000, doj="2025-08-01")
    values = {"5": evaluate(rec, 10.0, 2, False, Ledgers())}

    rows = build_stage_rows("unpaid", {"5": rec}, values, {}, 12)
    assert rows[0].hr == 0.0
    assert rows[0].status == ERROR
    assert rows[0].note == f"{SOFTWARE_ONLY_NOTE}; {INELIGIBLE_UNPAID_NOTE}"


def test_category_totals_per_stage():
    staff = record("7", STAFF, 50_000)
    worker = record("8", WORKER, 20_000)
    values = {
        "7": evaluate(staff, 8.33, 120, True, Ledgers()),
        "8": evaluate(worker, 8.33, 120, True, Ledgers()),
    }
    hr = {"7": HRFigure("7", 49_000.0, 1), "8": HRFigure("8", 20_000.0, 1), "99": HRFigure("99", 10.0, 1)}

    totals = category_totals(build_stage_rows("gross", {"7": staff, "8": worker}, values, hr, 12))
    assert totals[STAFF] == {"software": 50_000.0, "hr": 49_000.0}
    assert totals[WORKER] == {"software": 20_000.0, "hr": 20_000.0}
    assert totals["Unknown"] == {"software": 0.0, "hr": 10.0}


def test_one_sided_employees_compare_against_zero():
    rec = record("7", STAFF, 50_000)
    values = {"7": evaluate(rec, 8.33, 120, True, Ledgers())}
    hr = {"42": HRFigure("42", 900.0, 2, name="GHOST")}

    rows = build_stage_rows("gross", {"7": rec}, values, hr, 12)
    assert [r.employee_id for r in rows] == ["7", "42"]

    sw_only, hr_only = rows
    assert sw_only.hr == 0.0
    assert sw_only.status == MISMATCH
    assert sw_only.note == SOFTWARE_ONLY_NOTE

    assert hr_only.software == 0.0
    assert hr_only.difference == pytest.approx(-900.0)
    assert hr_only.department == "Unknown"
    assert hr_only.name == "GHOST"
    assert hr_only.note == f"{HR_ONLY_NOTE}; 2 HR rows summed"


def test_rows_to_frame_exports_intermediates():
    rec = record("7", STAFF, 50_000)
    values = {"7": evaluate(rec, 8.33, 120, True, Ledgers())}
    rows = build_stage_rows("register", {"7": rec}, values, {"7": HRFigure("7", 4165.0, 1)}, 12)

    df = rows_to_frame(rows)
    assert list(df.columns) == EXPORT_COLUMNS
    assert df.loc[0, "register"] == pytest.approx(4165.0)
    assert df.loc[0, "tier"] == pytest.approx(8.33)
    assert df.loc[0, "status"] == MATCH


# =========================
# Config
# =========================

def test_settings_from_shipped_config():
    settings = Settings.from_config(load_config())
    assert len(settings.window) == 11
    assert settings.window[-1] == "2025-09"
    assert settings.tolerance == 12.0
    assert "937" in settings.overrides.exclude_from_projection
    assert settings.worker_columns["amount"].index == 8


def test_settings_rejects_empty_window():
    with pytest.raises(ValueError):
        Settings.from_config({"avg_window": []})


def test_override_table_keys_are_canonical_and_merge_prefers_other():
    table = OverrideTable.from_config({"percentages": {"937.0": 12}, "zero_in_average": [" 59 "]})
    assert table.percentages == {"937": 12.0}
    assert table.zero_in_average == {"59"}

    merged = table.merge(OverrideTable(percentages={"937": 10.0, "1": 12.0}))
    assert merged.percentages == {"937": 10.0, "1": 12.0}
    assert merged.zero_in_average == {"59"}


# =========================
# Audit
# =========================

def test_run_signature_and_sink_post_once(tmp_path: Path):
    rec = record("7", STAFF, 50_000)
    values = {"7": evaluate(rec, 8.33, 120, True, Ledgers())}
    rows_by_stage = {
        "gross": build_stage_rows("gross", {"7": rec}, values, {"7": HRFigure("7", 40_000.0, 1)}, 12)
    }

    signature = run_signature(rows_by_stage)
    assert signature == run_signature(rows_by_stage)
    assert len(signature) == 64

    messages = build_audit_messages(rows_by_stage, {"7": rec})
    assert messages[0]["tag"] == "summary"
    assert messages[0]["meta"]["staff_gross_total"] == pytest.approx(50_000)
    assert messages[0]["meta"]["eligible_count"] == 1
    assert messages[0]["meta"]["stage_totals"]["gross"][STAFF] == {"software": 50_000.0, "hr": 40_000.0}
    assert [m["level"] for m in messages[1:]] == ["warn"]

    sink = AuditSink(tmp_path / "audit")
    assert sink.post(messages, signature) is True
    assert sink.post(messages, signature) is False

    with sink.path_for(signature).open("r", encoding="utf-8") as f:
        payload = json.load(f)
    assert payload["run_signature"] == signature
    assert len(payload["messages"]) == 2
