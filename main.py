# main.py

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any, List

from datetime import datetime, timezone
import hashlib
import json
import traceback
import zipfile

import pandas as pd

from audit import AuditSink, build_audit_messages, run_signature
from bonus_config import (
    CONFIG_NAME,
    STAFF,
    STAFF_HEADER_SCAN,
    WORKER,
    WORKER_HEADER_SCAN,
    Settings,
    load_config,
)
from compare import (
    ERROR,
    MISMATCH,
    STAGES,
    ComparisonRow,
    build_stage_rows,
    category_totals,
    rows_to_frame,
    status_counts,
)
from formulas import Ledgers, StageValues, evaluate
from hr_ledger import (
    HRFigure,
    aggregate,
    load_already_paid_ledger,
    load_due_ledger,
    load_loan_ledger,
    load_percentage_overrides,
)
from projection import GrossRecord, fold_gross
from sheets import Workbook, load_workbook
from tiers import classify, is_eligible, months_of_service
from timeline import build_timelines


HR_ROLES_READ = ["gross", "register", "unpaid", "already_paid", "reimbursement", "final"]


@dataclass
class RunSummary:
    run_id: str  # first 16 hex chars of the run signature
    employee_count: int
    staff_gross_total: float
    worker_gross_total: float
    mismatch_count: int
    error_count: int
    stage_counts: Dict[str, Dict[str, int]] = field(default_factory=dict)
    evidence_pack_path: Optional[Path] = None
    audit_posted: bool = False


@dataclass
class ReconciliationResult:
    records: Dict[str, GrossRecord]
    values: Dict[str, StageValues]
    hr: Dict[str, Dict[str, HRFigure]]
    rows_by_stage: Dict[str, List[ComparisonRow]]

    @property
    def signature(self) -> str:
        return run_signature(self.rows_by_stage)


def run_reconciliation_with_summary(**kwargs) -> Dict[str, Any]:
    """
    Wrapper around run_reconciliation() that also returns a RunSummary.

    Always returns a dict:
      success: {"summary": RunSummary, "results_dict": <run_reconciliation() result>}
      failure: {"summary": None, "results_dict": {}, "error": <traceback text>}
    """
    try:
        results = run_reconciliation(**kwargs)
    except Exception:
        return {
            "summary": None,
            "results_dict": {},
            "error": traceback.format_exc(),
        }

    totals = results.get("totals", {})
    counts = results.get("counts", {})
    summary = RunSummary(
        run_id=results.get("run_signature", "")[:16],
        employee_count=int(totals.get("employees", 0)),
        staff_gross_total=float(totals.get("staff_gross", 0.0)),
        worker_gross_total=float(totals.get("worker_gross", 0.0)),
        mismatch_count=sum(c.get(MISMATCH, 0) for c in counts.values()),
        error_count=sum(c.get(ERROR, 0) for c in counts.values()),
        stage_counts=counts,
        evidence_pack_path=Path(results["evidence_pack"]) if results.get("evidence_pack") else None,
        audit_posted=bool(results.get("audit_posted")),
    )
    return {"summary": summary, "results_dict": results}


# =========================
# ENGINE
# =========================

def reconcile(
    staff_wb: Workbook,
    worker_wb: Workbook,
    hr_wb: Workbook,
    due_wb: Workbook,
    loan_wb: Optional[Workbook] = None,
    overrides_wb: Optional[Workbook] = None,
    settings: Optional[Settings] = None,
) -> ReconciliationResult:
    """
    Run every stage on already-decoded workbooks.

    Structural problems (no usable salary sheet, no HR gross column, no due
    ledger column) raise ValueError before any row is produced.
    """
    settings = settings or Settings()

    overrides = settings.overrides
    if overrides_wb is not None:
        overrides = overrides.merge(load_percentage_overrides(overrides_wb))

    staff_tl = build_timelines(
        staff_wb,
        settings.window,
        settings.excluded_months,
        settings.staff_columns,
        STAFF,
        max_scan=STAFF_HEADER_SCAN,
    )
    worker_tl = build_timelines(
        worker_wb,
        settings.window,
        settings.excluded_months,
        settings.worker_columns,
        WORKER,
        excluded_departments=settings.excluded_worker_departments,
        max_scan=WORKER_HEADER_SCAN,
    )
    records = fold_gross({STAFF: staff_tl, WORKER: worker_tl}, settings.window, overrides)

    hr = {
        role: aggregate(hr_wb, settings.hr_roles[role], role, required=(role == "gross"))
        for role in HR_ROLES_READ
    }

    ledgers = Ledgers(
        due=load_due_ledger(due_wb),
        loans=load_loan_ledger(loan_wb) if loan_wb is not None else {},
        already_paid=load_already_paid_ledger(due_wb),
    )

    values: Dict[str, StageValues] = {}
    for emp_id, record in records.items():
        mos = months_of_service(record.date_of_joining, settings.reference_date)
        tier = classify(emp_id, mos, overrides)
        eligible = is_eligible(record.category, mos, settings.worker_min_tenure)
        values[emp_id] = evaluate(record, tier, mos, eligible, ledgers)

    rows_by_stage = {
        stage: build_stage_rows(stage, records, values, hr[stage], settings.tolerance)
        for stage in STAGES
    }

    for stage, rows in rows_by_stage.items():
        counts = status_counts(rows)
        print(f"\n=== {stage.upper()} Reconciliation Summary ===")
        print(f"Rows compared: {len(rows)}")
        print(f"Match: {counts['Match']}  Mismatch: {counts['Mismatch']}  Error: {counts['Error']}")

    return ReconciliationResult(records=records, values=values, hr=hr, rows_by_stage=rows_by_stage)


# =========================
# RUN
# =========================

def run_reconciliation(
    staff_xlsx: str,
    worker_xlsx: str,
    hr_xlsx: str,
    due_xlsx: str,
    loan_xlsx: str | None = None,
    overrides_xlsx: str | None = None,
    config_name: str = CONFIG_NAME,
    output_dir: str = "data/processed",
    proofs_dir: str = "proofs",
    audit_dir: str | None = None,
) -> dict:
    """
    Execute a full bonus reconciliation run for the given workbooks.

    It will:
      - clear previous CSV/XLSX outputs in output_dir
      - compare gross, register, unpaid, reimbursement and final payable
      - write one <stage>_comparison.csv per stage plus exceptions.csv
      - generate bonus_reconciliation_report.xlsx
      - write a proof_manifest_*.json in proofs_dir
      - post audit messages once per run signature
      - build an evidence pack ZIP
      - return a dict of paths and totals
    """

    output_dir_path = Path(output_dir)
    proofs_dir_path = Path(proofs_dir)
    audit_dir_path = Path(audit_dir) if audit_dir else output_dir_path / "audit"
    output_dir_path.mkdir(parents=True, exist_ok=True)
    proofs_dir_path.mkdir(parents=True, exist_ok=True)

    # Clean previous outputs so results reflect ONLY this run
    for pattern in ("*.csv", "*.xlsx"):
        for p in output_dir_path.glob(pattern):
            try:
                p.unlink()
            except Exception as e:
                print(f"[WARN] Could not delete old output {p}: {e}")

    try:
        cfg = load_config(config_name)
    except FileNotFoundError:
        cfg = {}
        print("[INFO] No config file found; using built-in defaults.")
    settings = Settings.from_config(cfg)

    inputs = {
        "staff": staff_xlsx,
        "worker": worker_xlsx,
        "hr": hr_xlsx,
        "due": due_xlsx,
        "loans": loan_xlsx,
        "overrides": overrides_xlsx,
    }
    input_paths: dict[str, Path] = {}
    for role, value in inputs.items():
        if value is None:
            continue
        path = Path(value)
        if not path.exists():
            raise FileNotFoundError(f"{role.title()} workbook not found: {path}")
        input_paths[role] = path

    result = reconcile(
        staff_wb=load_workbook(input_paths["staff"]),
        worker_wb=load_workbook(input_paths["worker"]),
        hr_wb=load_workbook(input_paths["hr"]),
        due_wb=load_workbook(input_paths["due"]),
        loan_wb=load_workbook(input_paths["loans"]) if "loans" in input_paths else None,
        overrides_wb=load_workbook(input_paths["overrides"]) if "overrides" in input_paths else None,
        settings=settings,
    )

    # =========================
    # CSV outputs
    # =========================
    results: dict = {}
    exception_frames = []
    for stage, rows in result.rows_by_stage.items():
        df = rows_to_frame(rows)
        csv_path = output_dir_path / f"{stage}_comparison.csv"
        df.to_csv(csv_path, index=False)
        results[f"{stage}_comparison"] = str(csv_path)

        flagged = df[df["status"].isin([MISMATCH, ERROR])].copy()
        flagged.insert(0, "stage", stage)
        exception_frames.append(flagged)

    exceptions_path = output_dir_path / "exceptions.csv"
    pd.concat(exception_frames, ignore_index=True).to_csv(exceptions_path, index=False)
    results["exceptions"] = str(exceptions_path)

    report_path = generate_excel_report(result.rows_by_stage, output_dir_path)
    results["reconciliation_report"] = str(report_path)

    # =========================
    # Proof manifest + audit
    # =========================
    signature = result.signature
    outputs = {}
    for key in [f"{s}_comparison" for s in STAGES] + ["exceptions", "reconciliation_report"]:
        outputs[key] = describe_output(Path(results[key]))

    manifest_path = write_proof_manifest(
        inputs=input_paths,
        cfg=cfg,
        outputs=outputs,
        proofs_dir=proofs_dir_path,
        signature=signature,
        config_name=config_name,
    )
    results["manifest"] = str(manifest_path)

    sink = AuditSink(audit_dir_path)
    messages = build_audit_messages(result.rows_by_stage, result.records)
    results["audit_posted"] = sink.post(messages, signature)
    results["audit"] = str(sink.path_for(signature))

    results["run_signature"] = signature
    results["counts"] = {stage: status_counts(rows) for stage, rows in result.rows_by_stage.items()}
    results["stage_totals"] = {
        stage: category_totals(rows) for stage, rows in result.rows_by_stage.items()
    }
    results["totals"] = {
        "employees": len(result.records),
        "staff_gross": round(sum(r.gross_salary for r in result.records.values() if r.category == STAFF), 2),
        "worker_gross": round(sum(r.gross_salary for r in result.records.values() if r.category == WORKER), 2),
    }

    evidence_zip = build_evidence_pack(results, output_dir_path)
    results["evidence_pack"] = str(evidence_zip)

    print("\nRun complete. Key outputs:")
    for k, v in results.items():
        print(f"  {k}: {v}")

    return results


def build_evidence_pack(results: dict, output_dir: Path) -> Path:
    """
    Build a single ZIP that bundles the key outputs for this run:
      - Excel report
      - per-stage comparison CSVs and exceptions.csv
      - manifest JSON
      - audit JSON
    """
    zip_path = output_dir / "bonus_evidence_pack.zip"

    if zip_path.exists():
        try:
            zip_path.unlink()
        except Exception as e:
            print(f"[WARN] Could not delete old evidence pack: {e}")

    keys_to_include = (
        ["reconciliation_report", "exceptions"]
        + [f"{s}_comparison" for s in STAGES]
        + ["manifest", "audit"]
    )

    with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for key in keys_to_include:
            path_str = results.get(key)
            if not path_str:
                continue
            p = Path(path_str)
            if p.exists() and p.is_file():
                zf.write(p, arcname=p.name)

    print(f"Evidence pack written to: {zip_path}")
    return zip_path


# ============================================================
# Hashing + Merkle helper functions
# ============================================================

def sha256_file(path: Path) -> str:
    """Compute SHA-256 hash of an entire file (binary)."""
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def sha256_string(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def merkle_root(hashes: list[str]) -> str:
    """
    Merkle root over hex hashes. Empty list gives "".
    With an odd count the last hash is paired with itself.
    """
    if not hashes:
        return ""
    layer = hashes[:]
    while len(layer) > 1:
        next_layer = []
        for i in range(0, len(layer), 2):
            left = layer[i]
            right = layer[i + 1] if i + 1 < len(layer) else layer[i]
            next_layer.append(sha256_string(left + right))
        layer = next_layer
    return layer[0]


def hash_csv_rows(path: Path, max_samples: int = 5) -> dict:
    """
    Row-level hashes and a Merkle root for a comparison CSV.
    Returns summary metadata, not all row hashes.
    """
    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    except Exception as e:
        return {
            "row_count": 0,
            "error": f"Failed to read CSV: {e}",
            "merkle_root": "",
            "row_hash_sample": [],
        }

    col_names = sorted(df.columns.tolist())
    row_hashes: list[str] = []
    for _, row in df.iterrows():
        row_str = "|".join(f"{col}={row[col]}" for col in col_names)
        row_hashes.append(sha256_string(row_str))

    return {
        "row_count": int(len(df)),
        "columns": col_names,
        "merkle_root": merkle_root(row_hashes),
        "row_hash_sample": row_hashes[:max_samples],
    }


def describe_output(path: Path) -> dict:
    if not path.exists():
        return {"path": str(path), "missing": True}
    entry = {"path": str(path), "sha256": sha256_file(path)}
    if path.suffix == ".csv":
        entry.update(hash_csv_rows(path))
    return entry


def write_proof_manifest(
    inputs: dict[str, Path],
    cfg: dict,
    outputs: dict,
    proofs_dir: Path,
    signature: str,
    config_name: str = CONFIG_NAME,
) -> Path:
    """
    Write a JSON manifest that ties this run to:
      - the hashed input workbooks
      - the config used
      - the run signature
      - the hashed outputs (CSVs/XLSX)
    """
    timestamp = datetime.now(timezone.utc).isoformat(timespec="seconds")

    manifest = {
        "run_timestamp_utc": timestamp,
        "run_signature": signature,
        "config_name": config_name if cfg else None,
        "config": cfg,
        "inputs": {
            role: {"path": str(path), "sha256": sha256_file(path)}
            for role, path in inputs.items()
        },
        "outputs": outputs,
    }

    stamp = timestamp.replace(":", "").replace("-", "")
    out_path = proofs_dir / f"proof_manifest_{stamp}_{signature[:8]}.json"
    with out_path.open("w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2)

    print(f"Proof manifest written to: {out_path}")
    return out_path


# =========================
# EXCEL REPORT
# =========================

def generate_excel_report(
    rows_by_stage: Dict[str, List[ComparisonRow]],
    output_dir: Path,
) -> Path:
    """
    Consolidated Excel report.
    Sheets:
      - Summary (status counts and Staff/Worker software vs HR sums per stage)
      - one detail sheet per stage
    """
    report_path = output_dir / "bonus_reconciliation_report.xlsx"
    output_dir.mkdir(exist_ok=True, parents=True)

    summary_rows: list[dict] = []
    with pd.ExcelWriter(report_path, engine="openpyxl") as writer:
        for stage, rows in rows_by_stage.items():
            counts = status_counts(rows)
            entry = {"stage": stage, "rows": len(rows), **counts}
            totals = category_totals(rows)
            for category in (STAFF, WORKER):
                sums = totals.get(category, {"software": 0.0, "hr": 0.0})
                entry[f"{category.lower()}_software"] = sums["software"]
                entry[f"{category.lower()}_hr"] = sums["hr"]
            summary_rows.append(entry)

            df = rows_to_frame(rows)
            if df.empty:
                df = pd.DataFrame([{"info": f"No rows for stage {stage}"}])
            df.to_excel(writer, sheet_name=stage.title()[:31], index=False)

        pd.DataFrame(summary_rows).to_excel(writer, sheet_name="Summary", index=False)

    print(f"\nConsolidated Excel report written to: {report_path}")
    return report_path


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Reconcile software bonus figures against the HR bonus workbook.")
    parser.add_argument("--staff", required=True, help="Staff monthly salary workbook")
    parser.add_argument("--worker", required=True, help="Worker monthly salary workbook")
    parser.add_argument("--hr", required=True, help="HR bonus calculation workbook")
    parser.add_argument("--due", required=True, help="Due VC (unpaid) ledger workbook")
    parser.add_argument("--loans", default=None, help="Loan deduction ledger workbook")
    parser.add_argument("--overrides", default=None, help="Custom percentage / projection override workbook")
    parser.add_argument("--config", default=CONFIG_NAME)
    parser.add_argument("--output_dir", default="data/processed")
    parser.add_argument("--proofs_dir", default="proofs")
    parser.add_argument("--audit_dir", default=None)
    args = parser.parse_args()

    run_reconciliation(
        staff_xlsx=args.staff,
        worker_xlsx=args.worker,
        hr_xlsx=args.hr,
        due_xlsx=args.due,
        loan_xlsx=args.loans,
        overrides_xlsx=args.overrides,
        config_name=args.config,
        output_dir=args.output_dir,
        proofs_dir=args.proofs_dir,
        audit_dir=args.audit_dir,
    )
