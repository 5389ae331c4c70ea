"""
Tier classification, months of service and payout eligibility.
"""

from datetime import date
from typing import Any, Optional

from bonus_config import BASE_TIER, REFERENCE_DATE, WORKER, WORKER_MIN_TENURE_MONTHS
from overrides import OverrideTable
from sheets import parse_date_of_joining


def months_of_service(date_of_joining: Any, reference_date: date = REFERENCE_DATE) -> Optional[int]:
    """
    Whole calendar months from date of joining to the reference date.

    One month is dropped when the reference day-of-month falls before the
    joining day; negative spans clamp to 0. None if the DOJ is unreadable.
    """
    start = parse_date_of_joining(date_of_joining)
    if start is None:
        return None

    months = (reference_date.year - start.year) * 12 + (reference_date.month - start.month)
    if reference_date.day < start.day:
        months -= 1
    return max(0, months)


def classify(
    employee_id: str,
    months: Optional[int],
    overrides: Optional[OverrideTable] = None,
) -> float:
    """
    Bonus percentage for one employee.

    An explicit override always wins. Otherwise: under 12 months -> 10,
    12 to 23 -> 12, 24 and over -> 8.33. Unknown tenure counts as 0 months.
    """
    if overrides is not None:
        custom = overrides.percentage_for(employee_id)
        if custom is not None:
            return custom

    if months is None:
        months = 0
    if months < 12:
        return 10.0
    if months < 24:
        return 12.0
    return BASE_TIER


def is_special(tier: float) -> bool:
    return tier > BASE_TIER


def is_eligible(
    category: str,
    months: Optional[int],
    min_tenure: int = WORKER_MIN_TENURE_MONTHS,
) -> bool:
    # Only Workers carry a minimum-tenure rule
    if category != WORKER:
        return True
    return months is not None and months >= min_tenure
