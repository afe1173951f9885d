"""Period-over-period percentage changes."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Dict, Optional, Tuple, Union

from mhub.schema import BASE_COUNTERS, DERIVED_FIELDS, MetricSet

DateLike = Union[str, date]


def compare_change(current: float, previous: float) -> Optional[float]:
    """Percentage change from ``previous`` to ``current``.

    A zero previous value yields ``100`` when current grew and ``None`` when
    there is nothing to compare (no signal, not a 0% change).
    """
    if previous == 0:
        return 100.0 if current > 0 else None
    return (current - previous) / previous * 100


def compare_metrics(current: MetricSet, previous: MetricSet) -> Dict[str, Optional[float]]:
    """Apply :func:`compare_change` to every field of two MetricSets."""
    return {
        key: compare_change(current.get(key), previous.get(key))
        for key in BASE_COUNTERS + DERIVED_FIELDS
    }


def compare_values(current: Dict[str, Any], previous: Dict[str, Any]) -> Dict[str, Optional[float]]:
    """Same as :func:`compare_metrics` for plain KPI dicts (e.g. leads CRM counts)."""
    return {
        key: compare_change(current.get(key) or 0, previous.get(key) or 0)
        for key in current
    }


def _as_date(value: DateLike) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def previous_period(date_from: DateLike, date_to: DateLike) -> Tuple[str, str]:
    """The equal-length window that ends the day before ``date_from``."""
    start = _as_date(date_from)
    end = _as_date(date_to)
    days = (end - start).days + 1
    prev_to = start - timedelta(days=1)
    prev_from = prev_to - timedelta(days=days - 1)
    return prev_from.isoformat(), prev_to.isoformat()
