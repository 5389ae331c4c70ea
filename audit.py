"""
Audit messages for a reconciliation run, and a local sink that records each
distinct run exactly once.

A run is identified by a SHA-256 signature over its comparison rows, so
re-running the same inputs produces the same signature and the sink skips
the duplicate post.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

import hashlib
import json

from bonus_config import STAFF, WORKER
from compare import ERROR, MISMATCH, ComparisonRow, category_totals, status_counts
from projection import GrossRecord


SOURCE = "bonus-reconciliation"


def _row_signature(row: ComparisonRow) -> str:
    return "|".join(
        [
            row.stage,
            row.employee_id,
            row.department,
            f"{row.software:.2f}",
            f"{row.hr:.2f}",
            f"{row.difference:.2f}",
            row.status,
            "1" if row.eligible else "0",
        ]
    )


def run_signature(rows_by_stage: Dict[str, List[ComparisonRow]]) -> str:
    parts = []
    for stage in sorted(rows_by_stage):
        parts.extend(_row_signature(r) for r in rows_by_stage[stage])
    return hashlib.sha256(";".join(parts).encode("utf-8")).hexdigest()


def build_audit_messages(
    rows_by_stage: Dict[str, List[ComparisonRow]],
    records: Dict[str, GrossRecord],
) -> List[dict]:
    """
    One summary message for the run, then one message per Mismatch/Error row.

    Each message carries level, tag, text, scope, source and meta.
    """
    staff_gross = sum(r.gross_salary for r in records.values() if r.category == STAFF)
    worker_gross = sum(r.gross_salary for r in records.values() if r.category == WORKER)

    stage_counts = {stage: status_counts(rows) for stage, rows in rows_by_stage.items()}

    duplicates = set()
    for rows in rows_by_stage.values():
        for row in rows:
            if row.hr_occurrences > 1:
                duplicates.add(row.employee_id)
    gross_rows = rows_by_stage.get("gross", [])
    eligible = sum(1 for r in gross_rows if r.values and r.eligible)

    mismatches = sum(c[MISMATCH] for c in stage_counts.values())
    errors = sum(c[ERROR] for c in stage_counts.values())

    messages = [
        {
            "level": "info",
            "tag": "summary",
            "text": (
                f"{len(records)} employee(s) reconciled across {len(rows_by_stage)} stage(s): "
                f"{mismatches} mismatch(es), {errors} error(s)."
            ),
            "scope": "run",
            "source": SOURCE,
            "meta": {
                "counts": stage_counts,
                "staff_gross_total": round(staff_gross, 2),
                "worker_gross_total": round(worker_gross, 2),
                "stage_totals": {
                    stage: category_totals(rows) for stage, rows in rows_by_stage.items()
                },
                "eligible_count": eligible,
                "duplicate_hr_employees": sorted(duplicates),
            },
        }
    ]

    for stage, rows in rows_by_stage.items():
        for row in rows:
            if row.status not in (MISMATCH, ERROR):
                continue
            text = (
                f"[{stage}] {row.employee_id} {row.name}: software {row.software:.2f} "
                f"vs HR {row.hr:.2f} (diff {row.difference:.2f})"
            )
            if row.note:
                text += f" - {row.note}"
            messages.append(
                {
                    "level": "error" if row.status == ERROR else "warn",
                    "tag": stage,
                    "text": text,
                    "scope": "employee",
                    "source": SOURCE,
                    "meta": {
                        "employee_id": row.employee_id,
                        "department": row.department,
                        "software": round(row.software, 2),
                        "hr": round(row.hr, 2),
                        "difference": round(row.difference, 2),
                        "status": row.status,
                    },
                }
            )

    return messages


class AuditSink:
    """Writes audit_<signature>.json once per distinct run signature."""

    def __init__(self, audit_dir: Path):
        self.audit_dir = Path(audit_dir)
        self.audit_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, signature: str) -> Path:
        return self.audit_dir / f"audit_{signature}.json"

    def post(self, messages: List[dict], signature: str) -> bool:
        path = self.path_for(signature)
        if path.exists():
            print(f"[INFO] Audit for run {signature[:12]} already recorded; not posting again.")
            return False

        payload = {
            "run_signature": signature,
            "posted_at_utc": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "messages": messages,
        }
        with path.open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)

        print(f"Audit messages written to: {path}")
        return True
