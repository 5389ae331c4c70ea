from pathlib import Path
import sys

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from bonus_config import AVG_WINDOW, STAFF, STAFF_COLUMNS, WORKER, WORKER_COLUMNS  # noqa: E402
from overrides import OverrideTable  # noqa: E402
from projection import fold_gross, gross_record, project  # noqa: E402
from timeline import MonthlyTimeline, build_timelines, fold, locate_sheet  # noqa: E402


def staff_sheet(rows):
    return [["EMP CODE", "EMPLOYEE NAME", "DEPT", "SALARY1"]] + rows


def test_fold_sums_duplicates_and_skips_absent_rows():
    rows = staff_sheet(
        [
            [101, "asha", "S", 1000],
            [101, "asha", "S", "2,500"],
            [102, "ravi", "S", "-"],                 # placeholder -> absent
            [103, "", "S", 300],                     # blank name
            ["", "GRAND TOTAL", "", 3800],           # total row
            [104, "meena", "S", {"result": 700}],    # cached formula result
            [105, "vijay", "S", {"formula": "=A1"}], # formula, no result
        ]
    )
    layout = locate_sheet(rows, STAFF_COLUMNS)
    assert layout is not None

    before = {}
    after = fold(before, rows, layout, "2025-09", STAFF)

    assert before == {}
    assert set(after) == {"101", "104"}
    assert after["101"].months == {"2025-09": 3500.0}
    assert after["101"].name == "ASHA"
    assert after["104"].months == {"2025-09": 700.0}


def test_fold_is_pure_across_sheets():
    rows = staff_sheet([[101, "asha", "S", 1000]])
    layout = locate_sheet(rows, STAFF_COLUMNS)

    first = fold({}, rows, layout, "2025-08", STAFF)
    second = fold(first, rows, layout, "2025-09", STAFF)

    assert first["101"].months == {"2025-08": 1000.0}
    assert second["101"].months == {"2025-08": 1000.0, "2025-09": 1000.0}


def test_fold_drops_excluded_worker_departments():
    header = ["SR", "EMP ID", "EMPLOYEE NAME", "DEPT", "DOJ", "B", "D", "H", "SALARY 1"]
    rows = [
        header,
        [1, 501, "w one", "W", "01-01-2020", 0, 0, 0, 900],
        [2, 502, "w two", "CASH", "01-01-2020", 0, 0, 0, 800],
        [3, 503, "w three", "c", "01-01-2020", 0, 0, 0, 700],
    ]
    layout = locate_sheet(rows, WORKER_COLUMNS, max_scan=5)
    assert layout.amount == 8

    result = fold({}, rows, layout, "2025-09", WORKER, excluded_departments=["C", "CASH", "A"])
    assert set(result) == {"501"}
    assert result["501"].date_of_joining == "01-01-2020"
    assert result["501"].category == WORKER


def test_build_timelines_uses_only_window_sheets():
    sheet = staff_sheet([[101, "asha", "S", 1000]])
    workbook = {
        "Oct-24": sheet,      # excluded month
        "Nov-24": sheet,
        "Summary": sheet,     # no month in the name
        "2025-09": sheet,
        "Oct-25": sheet,      # excluded (projected) month
        "Nov-25": sheet,      # outside window
    }
    timelines = build_timelines(workbook, AVG_WINDOW, ["2025-10", "2024-10"], STAFF_COLUMNS, STAFF)
    assert timelines["101"].months == {"2024-11": 1000.0, "2025-09": 1000.0}


def test_build_timelines_without_usable_sheets_is_structural_error():
    workbook = {"Summary": [["nothing here"]], "Nov-24": [["no header"]]}
    with pytest.raises(ValueError):
        build_timelines(workbook, AVG_WINDOW, [], STAFF_COLUMNS, STAFF)


# =========================
# Projection
# =========================

def timeline(months):
    return MonthlyTimeline(name="ASHA", department="S", category=STAFF, months=months)


def test_projection_requires_anchor_month():
    """No September value means no projected October, whatever came before."""
    no_anchor = timeline({m: 1000.0 for m in AVG_WINDOW[:-1]})
    zero_anchor = timeline({**{m: 1000.0 for m in AVG_WINDOW[:-1]}, "2025-09": 0.0})

    assert project(no_anchor, AVG_WINDOW, OverrideTable(), "1") == 0.0
    assert project(zero_anchor, AVG_WINDOW, OverrideTable(), "1") == 0.0


def test_projection_default_mean_skips_zero_months():
    tl = timeline({"2024-11": 0.0, "2024-12": 100.0, "2025-09": 200.0})
    assert project(tl, AVG_WINDOW, OverrideTable(), "1") == pytest.approx(150.0)


def test_projection_override_sets():
    tl = timeline({"2024-11": 0.0, "2024-12": 100.0, "2025-09": 200.0})

    include_zero = OverrideTable(include_zero_months={"1"})
    assert project(tl, AVG_WINDOW, include_zero, "1") == pytest.approx(300.0 / 11)

    zero_in_avg = OverrideTable(zero_in_average={"1"})
    assert project(tl, AVG_WINDOW, zero_in_avg, "1") == pytest.approx(100.0)

    custom_start = OverrideTable(custom_start_month={"1": "2025-01"})
    assert project(tl, AVG_WINDOW, custom_start, "1") == pytest.approx(200.0)

    forced_zero = OverrideTable(exclude_from_projection={"1"})
    assert project(tl, AVG_WINDOW, forced_zero, "1") == 0.0


def test_gross_record_adds_projection_to_base():
    tl = timeline({"2024-11": 0.0, "2024-12": 100.0, "2025-09": 200.0})
    rec = gross_record("1", tl, AVG_WINDOW, OverrideTable())
    assert rec.base_sum == pytest.approx(300.0)
    assert rec.projected == pytest.approx(150.0)
    assert rec.gross_salary == pytest.approx(450.0)


def test_fold_gross_merges_colliding_ids_and_prefers_staff():
    staff = {"7": MonthlyTimeline("STAFF NAME", "S", STAFF, None, {"2025-09": 100.0})}
    worker = {"7": MonthlyTimeline("WORKER NAME", "W", WORKER, "01-01-2020", {"2025-09": 50.0})}

    # Worker folded first: Staff naming still wins
    records = fold_gross({WORKER: worker, STAFF: staff}, AVG_WINDOW, OverrideTable())
    rec = records["7"]
    assert rec.gross_salary == pytest.approx(300.0)
    assert rec.category == STAFF
    assert rec.name == "STAFF NAME"
    assert rec.date_of_joining == "01-01-2020"


def test_fold_gross_is_sorted_by_employee_key():
    tls = {
        "20": timeline({"2025-09": 1.0}),
        "3": timeline({"2025-09": 1.0}),
        "100": timeline({"2025-09": 1.0}),
    }
    records = fold_gross({STAFF: tls}, AVG_WINDOW, OverrideTable())
    assert list(records) == ["3", "20", "100"]
