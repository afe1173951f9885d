"""Goal pacing: actual progress against the progress expected by now."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Literal, Optional, Tuple, Union

PeriodType = Literal["monthly", "weekly", "daily"]
ProgressStatus = Literal["danger", "warning", "success", "neutral"]

STATUS_LABELS: Dict[str, str] = {
    "danger": "Crítico",
    "warning": "Atenção",
    "success": "No caminho",
    "neutral": "Sem meta",
}


@dataclass
class GoalThresholds:
    danger: float = 50.0
    warning: float = 75.0
    success: float = 100.0


@dataclass
class CampaignPeriod:
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    use_current_month: bool = True

    @property
    def is_custom(self) -> bool:
        return not self.use_current_month and bool(self.start_date) and bool(self.end_date)


@dataclass(frozen=True)
class ProgressResult:
    status: ProgressStatus
    label: str
    progress_percent: float
    expected_percent: float
    progress_ratio: float
    days_elapsed: int
    total_days: int
    days_remaining: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "label": self.label,
            "progress_percent": self.progress_percent,
            "expected_percent": self.expected_percent,
            "progress_ratio": self.progress_ratio,
            "days_elapsed": self.days_elapsed,
            "total_days": self.total_days,
            "days_remaining": self.days_remaining,
        }


def _as_date(value: Union[str, date]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def expected_progress(
    period_type: PeriodType,
    campaign_period: Optional[CampaignPeriod],
    now: datetime,
) -> Tuple[float, int, int, int]:
    """Return ``(fraction, days_elapsed, total_days, days_remaining)``."""
    today = now.date()

    if campaign_period is not None and campaign_period.is_custom:
        start = _as_date(campaign_period.start_date)
        end = _as_date(campaign_period.end_date)
        total = (end - start).days + 1
        if today < start:
            return 0.0, 0, total, total
        if today > end:
            return 1.0, total, total, 0
        elapsed = (today - start).days + 1
        return elapsed / total, elapsed, total, total - elapsed

    if period_type == "monthly":
        days_in_month = calendar.monthrange(today.year, today.month)[1]
        return today.day / days_in_month, today.day, days_in_month, days_in_month - today.day
    if period_type == "weekly":
        weekday = today.isoweekday()  # Monday=1 .. Sunday=7
        return weekday / 7, weekday, 7, 7 - weekday
    if period_type == "daily":
        return now.hour / 24, 1, 1, 0

    return 1.0, 1, 1, 0


def evaluate_progress(
    current: float,
    target: float,
    thresholds: Optional[GoalThresholds] = None,
    period_type: PeriodType = "monthly",
    campaign_period: Optional[CampaignPeriod] = None,
    now: Optional[datetime] = None,
) -> ProgressResult:
    """Compare actual progress toward ``target`` with the progress expected by ``now``.

    Status is driven by ``progress_ratio`` (actual / expected * 100), not by
    the raw share of the target. A target of zero or less is ``neutral``.
    ``now`` defaults to the local wall clock; pass it explicitly for
    reproducible results.
    """
    thresholds = thresholds or GoalThresholds()
    now = now or datetime.now()

    fraction, elapsed, total, remaining = expected_progress(period_type, campaign_period, now)
    actual = current / target if target > 0 else 0.0
    ratio = actual / fraction * 100 if fraction > 0 else actual * 100

    status: ProgressStatus = "neutral"
    if target > 0:
        if ratio < thresholds.danger:
            status = "danger"
        elif ratio < thresholds.warning:
            status = "warning"
        else:
            status = "success"

    return ProgressResult(
        status=status,
        label=STATUS_LABELS[status],
        progress_percent=min(actual * 100, 100.0),
        expected_percent=min(fraction * 100, 100.0),
        progress_ratio=ratio,
        days_elapsed=elapsed,
        total_days=total,
        days_remaining=remaining,
    )
