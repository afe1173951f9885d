"""Derived metrics: ratios from base counters, currency units and display rounding."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping, Optional

from mhub.schema import MetricSet

MICROS_PER_UNIT = 1_000_000

CURRENCY_METRICS = {"spend", "cpc", "cpm", "cpl", "cps"}
PERCENT_METRICS = {"ctr"}


def _to_int(v: Any) -> int:
    try:
        return int(float(v))
    except Exception:
        return 0


def _to_float(v: Any) -> float:
    try:
        out = float(v)
    except Exception:
        return 0.0
    # NaN never equals itself
    return out if out == out else 0.0


def safe_divide(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


def micros_to_currency(micros: Any) -> float:
    """Convert a micros-denominated amount (1,000,000 = 1 unit) to currency units."""
    return _to_float(micros) / MICROS_PER_UNIT


def round_half_up(value: Any, ndigits: int = 0) -> float:
    """Round like a spreadsheet does (2.5 -> 3), not banker's rounding."""
    quant = Decimal(1).scaleb(-ndigits)
    return float(Decimal(str(_to_float(value))).quantize(quant, rounding=ROUND_HALF_UP))


def derive_metrics(base: Optional[Mapping[str, Any]] = None, **counters: Any) -> MetricSet:
    """Build a :class:`MetricSet` from base counters.

    ``spend`` must already be in currency units. Every ratio is zero when its
    denominator is zero; values keep full precision.

    >>> derive_metrics({"impressions": 1500, "clicks": 25, "spend": 60, "leads": 2}).cpl
    30.0
    """
    values = dict(base or {})
    values.update(counters)

    impressions = _to_int(values.get("impressions", 0))
    reach = _to_int(values.get("reach", 0))
    clicks = _to_int(values.get("clicks", 0))
    spend = _to_float(values.get("spend", 0.0))
    leads = _to_int(values.get("leads", 0))
    sales = _to_int(values.get("sales", 0))

    return MetricSet(
        impressions=impressions,
        reach=reach,
        clicks=clicks,
        spend=spend,
        leads=leads,
        sales=sales,
        ctr=safe_divide(clicks, impressions) * 100,
        cpc=safe_divide(spend, clicks),
        cpm=safe_divide(spend, impressions) * 1000,
        cpl=safe_divide(spend, leads),
        cps=safe_divide(spend, sales),
    )


def sum_counters(metric_sets) -> MetricSet:
    """Sum base counters of several MetricSets and re-derive the ratios."""
    totals = {"impressions": 0, "reach": 0, "clicks": 0, "spend": 0.0, "leads": 0, "sales": 0}
    for m in metric_sets:
        for key in totals:
            totals[key] += getattr(m, key)
    return derive_metrics(totals)


# ─────────────────────────────────────────────────────────────────────────────
# Display formatting (pt-BR)
# ─────────────────────────────────────────────────────────────────────────────


def _ptbr(value: float, decimals: int) -> str:
    text = f"{round_half_up(value, decimals):,.{decimals}f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_currency(value: float) -> str:
    return f"R$ {_ptbr(value, 2)}"


def format_percent(value: float) -> str:
    return f"{_ptbr(value, 2)}%"


def format_number(value: float) -> str:
    return _ptbr(value, 0)


def format_metric(key: str, value: float) -> str:
    """Render one metric value the way dashboards and reports show it."""
    if key in CURRENCY_METRICS:
        return format_currency(value)
    if key in PERCENT_METRICS:
        return format_percent(value)
    return format_number(value)


def rounded(metrics: MetricSet) -> dict:
    """Return ``metrics`` as a dict with currency and percent fields at 2 decimals."""
    out = metrics.to_dict()
    for key in CURRENCY_METRICS | PERCENT_METRICS:
        out[key] = round_half_up(out[key], 2)
    return out
