"""
Per-employee override sets consumed by the projector and tier classifier.

Overrides come from two places: the JSON run config and the optional
percentage workbook (see hr_ledger.load_percentage_overrides). Ids are
stored as canonical employee keys so 937 and "937" refer to one person.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Set

from sheets import employee_key


@dataclass
class OverrideTable:
    percentages: Dict[str, float] = field(default_factory=dict)
    exclude_from_projection: Set[str] = field(default_factory=set)
    include_zero_months: Set[str] = field(default_factory=set)
    zero_in_average: Set[str] = field(default_factory=set)
    custom_start_month: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(cls, cfg: Optional[dict]) -> "OverrideTable":
        cfg = cfg or {}

        def key_set(name: str) -> Set[str]:
            keys = (employee_key(v) for v in cfg.get(name, []))
            return {k for k in keys if k}

        percentages = {}
        for raw_id, pct in cfg.get("percentages", {}).items():
            key = employee_key(raw_id)
            if key:
                percentages[key] = float(pct)

        starts = {}
        for raw_id, month in cfg.get("custom_start_month", {}).items():
            key = employee_key(raw_id)
            if key:
                starts[key] = str(month)

        return cls(
            percentages=percentages,
            exclude_from_projection=key_set("exclude_from_projection"),
            include_zero_months=key_set("include_zero_months"),
            zero_in_average=key_set("zero_in_average"),
            custom_start_month=starts,
        )

    def merge(self, other: "OverrideTable") -> "OverrideTable":
        """Union of both tables; `other` wins where both set a value."""
        return OverrideTable(
            percentages={**self.percentages, **other.percentages},
            exclude_from_projection=self.exclude_from_projection | other.exclude_from_projection,
            include_zero_months=self.include_zero_months | other.include_zero_months,
            zero_in_average=self.zero_in_average | other.zero_in_average,
            custom_start_month={**self.custom_start_month, **other.custom_start_month},
        )

    def percentage_for(self, employee_id: str) -> Optional[float]:
        return self.percentages.get(employee_id)
