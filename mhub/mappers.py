"""Mapping utilities between the campaign hierarchy, plain dicts and DataFrames."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping

import pandas as pd

from mhub.metrics import derive_metrics
from mhub.schema import (
    Ad,
    AdSet,
    Campaign,
    CampaignObjective,
    MetricSet,
    SourceResult,
    SparklinePoint,
    Status,
)

EXPORT_COLUMNS = [
    "platform", "level", "campaign_id", "campaign_name", "objective",
    "adset_id", "adset_name", "ad_id", "ad_name", "status",
    "impressions", "reach", "clicks", "spend", "leads", "sales",
    "ctr", "cpc", "cpm", "cpl", "cps",
]


def _to_int(v: Any) -> int:
    try:
        if pd.isna(v):
            return 0
    except Exception:
        pass
    try:
        return int(float(v))
    except Exception:
        return 0


def _to_float(v: Any) -> float:
    try:
        if pd.isna(v):
            return 0.0
    except Exception:
        pass
    try:
        return float(v)
    except Exception:
        return 0.0


def _status(v: Any) -> Status:
    try:
        return Status(str(v or "").upper())
    except ValueError:
        return Status.PAUSED


# ─────────────────────────────────────────────────────────────────────────────
# Dict -> dataclasses (cache round trip, JSON snapshots)
# ─────────────────────────────────────────────────────────────────────────────


def metrics_from_dict(record: Mapping[str, Any] | None) -> MetricSet:
    """Re-derive a MetricSet from a dict's base counters; stored ratios are ignored."""
    record = record or {}
    return derive_metrics(
        impressions=_to_int(record.get("impressions", 0)),
        reach=_to_int(record.get("reach", 0)),
        clicks=_to_int(record.get("clicks", 0)),
        spend=_to_float(record.get("spend", 0.0)),
        leads=_to_int(record.get("leads", 0)),
        sales=_to_int(record.get("sales", 0)),
    )


def ad_from_dict(record: Mapping[str, Any]) -> Ad:
    return Ad(
        id=str(record.get("id", "")),
        name=str(record.get("name", "") or ""),
        status=_status(record.get("status")),
        metrics=metrics_from_dict(record.get("metrics")),
    )


def adset_from_dict(record: Mapping[str, Any]) -> AdSet:
    return AdSet(
        id=str(record.get("id", "")),
        name=str(record.get("name", "") or ""),
        status=_status(record.get("status")),
        campaign_id=str(record.get("campaign_id", "") or ""),
        metrics=metrics_from_dict(record.get("metrics")),
        ads=tuple(ad_from_dict(a) for a in record.get("ads") or []),
    )


def campaign_from_dict(record: Mapping[str, Any]) -> Campaign:
    return Campaign(
        id=str(record.get("id", "")),
        name=str(record.get("name", "") or ""),
        status=_status(record.get("status")),
        objective=CampaignObjective.parse(record.get("objective")),
        metrics=metrics_from_dict(record.get("metrics")),
        adsets=tuple(adset_from_dict(s) for s in record.get("adsets") or []),
        platform=str(record.get("platform") or "meta_ads"),
    )


def source_result_from_dict(record: Mapping[str, Any]) -> SourceResult:
    """Inverse of :meth:`SourceResult.to_dict`."""
    points = record.get("sparkline_data", record.get("sparkline")) or []
    return SourceResult(
        campaigns=tuple(campaign_from_dict(c) for c in record.get("campaigns") or []),
        totals=metrics_from_dict(record.get("totals")),
        sparkline=tuple(
            SparklinePoint(
                date=str(p.get("date", "")),
                impressions=_to_int(p.get("impressions", 0)),
                reach=_to_int(p.get("reach", 0)),
                clicks=_to_int(p.get("clicks", 0)),
                spend=_to_float(p.get("spend", 0.0)),
                leads=_to_int(p.get("leads", 0)),
                sales=_to_int(p.get("sales", 0)),
            )
            for p in points
        ),
        source=str(record.get("source", "") or ""),
        date_from=record.get("date_from"),
        date_to=record.get("date_to"),
        reach_is_additive=bool(record.get("reach_is_additive", False)),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Hierarchy -> DataFrame
# ─────────────────────────────────────────────────────────────────────────────


def _row(level: str, campaign: Campaign, metrics: MetricSet, status: Status, **ids: str) -> Dict[str, Any]:
    row = {
        "platform": campaign.platform,
        "level": level,
        "campaign_id": campaign.id,
        "campaign_name": campaign.name,
        "objective": campaign.objective.value,
        "adset_id": ids.get("adset_id", ""),
        "adset_name": ids.get("adset_name", ""),
        "ad_id": ids.get("ad_id", ""),
        "ad_name": ids.get("ad_name", ""),
        "status": status.value,
    }
    row.update(metrics.to_dict())
    return row


def flatten_hierarchy(campaigns: Iterable[Campaign], level: str = "ad") -> List[Dict[str, Any]]:
    """One record per entity at ``level`` (``campaign``, ``adset`` or ``ad``)."""
    if level not in ("campaign", "adset", "ad"):
        raise ValueError(f"Unknown level: {level!r}")

    rows: List[Dict[str, Any]] = []
    for c in campaigns:
        if level == "campaign":
            rows.append(_row("campaign", c, c.metrics, c.status))
            continue
        for s in c.adsets:
            if level == "adset":
                rows.append(
                    _row("adset", c, s.metrics, s.status, adset_id=s.id, adset_name=s.name)
                )
                continue
            for a in s.ads:
                rows.append(
                    _row(
                        "ad", c, a.metrics, a.status,
                        adset_id=s.id, adset_name=s.name, ad_id=a.id, ad_name=a.name,
                    )
                )
    return rows


def campaigns_to_dataframe(campaigns: Iterable[Campaign], level: str = "ad") -> pd.DataFrame:
    return pd.DataFrame(flatten_hierarchy(campaigns, level), columns=EXPORT_COLUMNS)


def sparkline_to_dataframe(points: Iterable[SparklinePoint]) -> pd.DataFrame:
    data = [p.to_dict() for p in points]
    return pd.DataFrame(
        data, columns=["date", "impressions", "reach", "clicks", "spend", "leads", "sales"]
    )
