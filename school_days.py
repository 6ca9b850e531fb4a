"""
Utility functions for counting school days within a term.
"""
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List

from errors import InvalidRange, ValidationError


def _as_date(value):
    if isinstance(value, datetime):
        return value.date()
    return value


def _check_range(start, end):
    if start is None or end is None:
        raise InvalidRange("start and end dates are required")
    start, end = _as_date(start), _as_date(end)
    if end < start:
        raise InvalidRange("end date must be on or after start date")
    return start, end


def school_days(term_start, term_end, holidays: Iterable[Dict[str, Any]]) -> int:
    """Count weekdays from term_start to term_end (inclusive) not covered by a holiday.

    Holidays are dicts with ``start_date`` and ``end_date``; both ends are
    inclusive. Days are compared at date granularity.
    """
    start, end = _check_range(term_start, term_end)
    spans = [(_as_date(h["start_date"]), _as_date(h["end_date"])) for h in holidays]

    count = 0
    current = start
    while current <= end:
        if current.weekday() < 5 and not any(lo <= current <= hi for lo, hi in spans):
            count += 1
        current += timedelta(days=1)
    return count


def total_days(start_date, end_date) -> int:
    """Inclusive calendar-day count between two dates."""
    start, end = _check_range(start_date, end_date)
    return (end - start).days + 1


def holidays_within(term: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Return the term's holidays after checking each lies inside the term."""
    start, end = _check_range(term.get("start_date"), term.get("end_date"))
    holidays = term.get("holidays") or []
    for holiday in holidays:
        lo, hi = _as_date(holiday["start_date"]), _as_date(holiday["end_date"])
        if hi < lo or lo < start or hi > end:
            raise ValidationError(
                f"Holiday '{holiday.get('name', '')}' must lie within the term dates",
                reason="invalid_holiday",
            )
    return holidays


def overlapping_holidays(terms: Iterable[Dict[str, Any]], start: date, end: date) -> List[Dict[str, Any]]:
    """Holidays from ``terms`` that intersect [start, end]."""
    start, end = _check_range(start, end)
    found = []
    for term in terms:
        for holiday in term.get("holidays") or []:
            if _as_date(holiday["start_date"]) <= end and _as_date(holiday["end_date"]) >= start:
                found.append(holiday)
    return found
