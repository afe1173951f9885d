"""Threshold alerts over the current dashboard snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional

from mhub.schema import MetricSet

MetricType = Literal["cpl", "ctr", "spend", "leads_progress"]
Operator = Literal["greater_than", "less_than", "equals"]

ALERT_COOLDOWN = timedelta(hours=24)

_OPERATOR_TEXT = {
    "greater_than": "acima de",
    "less_than": "abaixo de",
    "equals": "igual a",
}


@dataclass
class AlertRule:
    id: str
    metric_type: str
    threshold: float
    operator: str = "greater_than"
    name: str = ""
    enabled: bool = True

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "AlertRule":
        return cls(
            id=str(raw.get("id", "")),
            metric_type=str(raw.get("metric_type", "")),
            threshold=float(raw.get("threshold", raw.get("threshold_value", 0)) or 0),
            operator=str(raw.get("operator", raw.get("comparison_operator", "greater_than"))),
            name=str(raw.get("name", "") or ""),
            enabled=bool(raw.get("enabled", raw.get("is_active", True))),
        )


@dataclass(frozen=True)
class AlertSnapshot:
    cpl: float = 0.0
    ctr: float = 0.0
    spend: float = 0.0
    leads: int = 0
    expected_leads: float = 0.0

    @classmethod
    def from_totals(cls, totals: MetricSet, expected_leads: float = 0.0) -> "AlertSnapshot":
        return cls(
            cpl=totals.cpl,
            ctr=totals.ctr,
            spend=totals.spend,
            leads=totals.leads,
            expected_leads=expected_leads,
        )


@dataclass(frozen=True)
class TriggeredAlert:
    rule_id: str
    metric_type: str
    metric_value: float
    threshold: float
    message: str
    triggered_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "metric_type": self.metric_type,
            "metric_value": self.metric_value,
            "threshold": self.threshold,
            "message": self.message,
            "triggered_at": self.triggered_at.isoformat(),
        }


def metric_value(metric_type: str, snapshot: AlertSnapshot) -> float:
    if metric_type == "leads_progress":
        if snapshot.expected_leads <= 0:
            return 0.0
        return snapshot.leads / snapshot.expected_leads * 100
    if metric_type in ("cpl", "ctr", "spend"):
        return getattr(snapshot, metric_type)
    return 0.0


def condition_met(operator: str, value: float, threshold: float) -> bool:
    if operator == "greater_than":
        return value > threshold
    if operator == "less_than":
        return value < threshold
    if operator == "equals":
        return value == threshold
    return False


def alert_message(rule: AlertRule, value: float) -> str:
    op = _OPERATOR_TEXT.get(rule.operator, "igual a")
    if rule.metric_type == "cpl":
        return f"CPL atual (R$ {value:.2f}) {op} R$ {rule.threshold:.2f}"
    if rule.metric_type == "ctr":
        return f"CTR atual ({value:.2f}%) {op} {rule.threshold:g}%"
    if rule.metric_type == "spend":
        return f"Investimento (R$ {value:.2f}) {op} R$ {rule.threshold:.2f}"
    if rule.metric_type == "leads_progress":
        return f"Progresso de leads ({value:.0f}%) {op} {rule.threshold:g}%"
    return f"Métrica {rule.metric_type} = {value}"


def in_cooldown(rule_id: str, last_triggered: Mapping[str, datetime], now: datetime) -> bool:
    last = last_triggered.get(rule_id)
    return last is not None and now - last < ALERT_COOLDOWN


def evaluate_alerts(
    rules: Iterable[AlertRule],
    snapshot: AlertSnapshot,
    last_triggered: Optional[Mapping[str, datetime]] = None,
    now: Optional[datetime] = None,
) -> List[TriggeredAlert]:
    """Return the alerts that fire for ``snapshot``.

    A rule that fired less than 24 hours before ``now`` (per
    ``last_triggered``) stays silent. Callers persist the returned
    ``triggered_at`` values to feed the next evaluation.
    """
    now = now or datetime.now()
    last_triggered = last_triggered or {}

    fired: List[TriggeredAlert] = []
    for rule in rules:
        if not rule.enabled or in_cooldown(rule.id, last_triggered, now):
            continue
        value = metric_value(rule.metric_type, snapshot)
        if not condition_met(rule.operator, value, rule.threshold):
            continue
        fired.append(
            TriggeredAlert(
                rule_id=rule.id,
                metric_type=rule.metric_type,
                metric_value=value,
                threshold=rule.threshold,
                message=alert_message(rule, value),
                triggered_at=now,
            )
        )
    return fired
