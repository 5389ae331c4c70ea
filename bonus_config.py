# bonus_config.py

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional

import json

from overrides import OverrideTable
from sheets import ColumnSpec


# =========================
# CONFIGURATION SECTION
# =========================

# Eleven actual months averaged to project the twelfth (partial) month
AVG_WINDOW = [
    "2024-11",
    "2024-12",
    "2025-01",
    "2025-02",
    "2025-03",
    "2025-04",
    "2025-05",
    "2025-06",
    "2025-07",
    "2025-08",
    "2025-09",
]

# Months that physically exist in the salary workbooks but must not be read
EXCLUDED_MONTHS = ["2025-10", "2024-10"]

# Worker department codes outside the bonus scheme
EXCLUDED_WORKER_DEPARTMENTS = ["C", "CASH", "A"]

TOLERANCE = 12.0
BASE_TIER = 8.33
SPECIAL_GROSS_FACTOR = 0.6

# End of the bonus period; months of service are measured up to this date
REFERENCE_DATE = date(2025, 10, 30)
WORKER_MIN_TENURE_MONTHS = 6

STAFF_HEADER_SCAN = 15
WORKER_HEADER_SCAN = 5
HR_HEADER_SCAN = 10

STAFF = "Staff"
WORKER = "Worker"

CONFIG_DIR = Path(__file__).resolve().parent / "config"
CONFIG_NAME = "bonus_2024_25.json"


# Header labels that identify an employee-code column
SALARY_CODE_LABELS = [["EMPID"], ["EMPCODE"]]
HR_CODE_LABELS = [["EMPCODE"], ["EMPID"], ["EMPLOYEECODE"]]

_DOJ_HEADER = r"DATE.*OF.*JOINING|DOJ|JOINING.*DATE|D\.O\.J"

STAFF_COLUMNS: Dict[str, ColumnSpec] = {
    "code": ColumnSpec(aliases=("EMPID", "EMPCODE")),
    "name": ColumnSpec(header=r"EMPLOYEE\s*NAME"),
    "amount": ColumnSpec(header=r"^\s*SALARY\s*-?\s*1\s*$", aliases=("SALARY1",)),
    "doj": ColumnSpec(header=_DOJ_HEADER),
    "department": ColumnSpec(aliases=("DEPT", "DEPARTMENT", "DEPTT")),
}

# Worker sheets carry Salary1 in column I without a reliable header
WORKER_COLUMNS: Dict[str, ColumnSpec] = {
    **STAFF_COLUMNS,
    "amount": ColumnSpec(index=8),
}


@dataclass(frozen=True)
class HRRole:
    """
    One HR figure (gross, register, ...) and where it lives per sheet.

    columns maps a lower-cased sheet name to its ColumnSpec; "*" applies to
    every sheet not named explicitly. exclude_sheets is matched the same way.
    """
    columns: Dict[str, ColumnSpec]
    exclude_sheets: tuple = ()

    def spec_for(self, sheet_name: str) -> Optional[ColumnSpec]:
        key = sheet_name.strip().lower()
        if key in {s.lower() for s in self.exclude_sheets}:
            return None
        if key in self.columns:
            return self.columns[key]
        return self.columns.get("*")

    @classmethod
    def from_dict(cls, d: dict) -> "HRRole":
        return cls(
            columns={
                k.strip().lower(): ColumnSpec.from_dict(v)
                for k, v in d.get("columns", {}).items()
            },
            exclude_sheets=tuple(d.get("exclude_sheets", [])),
        )


HR_ROLES: Dict[str, HRRole] = {
    "gross": HRRole(
        columns={"*": ColumnSpec(header=r"^\s*GROSS(\s*SAL\.?)?\s*$")},
        exclude_sheets=("Loan Ded.",),
    ),
    "register": HRRole(
        columns={
            "worker": ColumnSpec(header=r"^\s*REGISTER", index=18),
            "staff": ColumnSpec(header=r"^\s*REGISTER", index=19),
        }
    ),
    "unpaid": HRRole(
        columns={
            "worker": ColumnSpec(header=r"DUE.*VC", index=19),
            "staff": ColumnSpec(header=r"^\s*UNPAID", index=21),
        }
    ),
    "already_paid": HRRole(
        columns={"staff": ColumnSpec(header=r"ALREADY\s*PAID", index=22)}
    ),
    "reimbursement": HRRole(
        columns={"*": ColumnSpec(header=r"^\s*REIM\.?\s*$")},
        exclude_sheets=("Loan Ded.",),
    ),
    "final": HRRole(
        columns={"*": ColumnSpec(header=r"FINAL.*RTGS")},
        exclude_sheets=("Loan Ded.",),
    ),
}


def load_config(config_name: str = CONFIG_NAME) -> dict:
    path = CONFIG_DIR / config_name
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


@dataclass
class Settings:
    window: List[str] = field(default_factory=lambda: list(AVG_WINDOW))
    excluded_months: List[str] = field(default_factory=lambda: list(EXCLUDED_MONTHS))
    excluded_worker_departments: List[str] = field(
        default_factory=lambda: list(EXCLUDED_WORKER_DEPARTMENTS)
    )
    tolerance: float = TOLERANCE
    reference_date: date = REFERENCE_DATE
    worker_min_tenure: int = WORKER_MIN_TENURE_MONTHS
    overrides: OverrideTable = field(default_factory=OverrideTable)
    staff_columns: Dict[str, ColumnSpec] = field(default_factory=lambda: dict(STAFF_COLUMNS))
    worker_columns: Dict[str, ColumnSpec] = field(default_factory=lambda: dict(WORKER_COLUMNS))
    hr_roles: Dict[str, HRRole] = field(default_factory=lambda: dict(HR_ROLES))

    @classmethod
    def from_config(cls, cfg: Optional[dict] = None) -> "Settings":
        """Overlay a loaded JSON config on the module defaults."""
        cfg = cfg or {}
        settings = cls()

        settings.window = list(cfg.get("avg_window", settings.window))
        settings.excluded_months = list(cfg.get("excluded_months", settings.excluded_months))
        settings.excluded_worker_departments = [
            str(d).strip().upper()
            for d in cfg.get("excluded_worker_departments", settings.excluded_worker_departments)
        ]
        settings.tolerance = float(cfg.get("tolerance", settings.tolerance))
        if cfg.get("reference_date"):
            settings.reference_date = date.fromisoformat(cfg["reference_date"])
        settings.worker_min_tenure = int(
            cfg.get("worker_min_tenure_months", settings.worker_min_tenure)
        )
        settings.overrides = OverrideTable.from_config(cfg.get("overrides"))

        if "worker_salary_column_index" in cfg:
            settings.worker_columns["amount"] = ColumnSpec(
                index=int(cfg["worker_salary_column_index"])
            )
        for role, role_cfg in cfg.get("hr_columns", {}).items():
            settings.hr_roles[role] = HRRole.from_dict(role_cfg)

        if not settings.window:
            raise ValueError("Config 'avg_window' must list at least one month")
        return settings
