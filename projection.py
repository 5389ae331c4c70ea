"""
Period projector: estimates the trailing, partially-elapsed month from the
averaging window, then folds each timeline into a GrossRecord.
"""

from dataclasses import dataclass
from typing import Any, Dict, List

import numpy as np

from bonus_config import STAFF
from overrides import OverrideTable
from sheets import sort_key
from timeline import MonthlyTimeline


@dataclass
class GrossRecord:
    employee_id: str
    name: str
    department: str
    category: str
    date_of_joining: Any
    base_sum: float
    projected: float
    gross_salary: float


def project(
    timeline: MonthlyTimeline,
    window: List[str],
    overrides: OverrideTable,
    employee_id: str,
) -> float:
    """
    Projected amount for the month after the window.

    Zero unless the anchor month (last of the window) has a positive value.
    By default it is the mean of positive months; override sets can widen
    the divisor or force the projection to zero.
    """
    if employee_id in overrides.exclude_from_projection:
        return 0.0

    anchor = timeline.months.get(window[-1])
    if anchor is None or anchor <= 0:
        return 0.0

    months = window
    start = overrides.custom_start_month.get(employee_id)
    if start:
        months = [m for m in window if m >= start]

    if employee_id in overrides.include_zero_months:
        values = [timeline.months.get(m, 0.0) for m in months]
    elif employee_id in overrides.zero_in_average:
        values = [timeline.months[m] for m in months if m in timeline.months]
    else:
        values = [
            timeline.months[m]
            for m in months
            if m in timeline.months and timeline.months[m] > 0
        ]

    if not values:
        return 0.0
    return float(np.mean(values))


def gross_record(
    employee_id: str,
    timeline: MonthlyTimeline,
    window: List[str],
    overrides: OverrideTable,
) -> GrossRecord:
    base_sum = float(
        sum(timeline.months[m] for m in window if timeline.months.get(m, 0.0) > 0)
    )
    projected = project(timeline, window, overrides, employee_id)
    return GrossRecord(
        employee_id=employee_id,
        name=timeline.name,
        department=timeline.department,
        category=timeline.category,
        date_of_joining=timeline.date_of_joining,
        base_sum=base_sum,
        projected=projected,
        gross_salary=base_sum + projected,
    )


def fold_gross(
    timelines_by_category: Dict[str, Dict[str, MonthlyTimeline]],
    window: List[str],
    overrides: OverrideTable,
) -> Dict[str, GrossRecord]:
    """
    Fold every category's timelines into one keyspace.

    An id present in more than one category has its gross summed. Staff
    naming wins on collision. Each collision is logged.
    """
    records: Dict[str, GrossRecord] = {}

    for category, timelines in timelines_by_category.items():
        for employee_id in sorted(timelines, key=sort_key):
            rec = gross_record(employee_id, timelines[employee_id], window, overrides)
            prev = records.get(employee_id)
            if prev is None:
                records[employee_id] = rec
                continue

            print(
                f"[WARN] Employee {employee_id} appears as both {prev.category} and "
                f"{rec.category}; summing gross ({prev.gross_salary:.2f} + {rec.gross_salary:.2f})."
            )
            prev.base_sum += rec.base_sum
            prev.projected += rec.projected
            prev.gross_salary += rec.gross_salary
            if prev.category != STAFF and rec.category == STAFF:
                prev.name = rec.name
                prev.department = rec.department
                prev.category = rec.category
            if prev.date_of_joining is None:
                prev.date_of_joining = rec.date_of_joining

    return {k: records[k] for k in sorted(records, key=sort_key)}
