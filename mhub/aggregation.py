"""Roll ad metrics up through the hierarchy and combine sources.

Parents are recomputed from their children: base counters are summed and the
ratios derived again from the sums. A node that arrives without children
(e.g. a campaign-level-only export) keeps the metrics its source reported.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence

from mhub.metrics import sum_counters
from mhub.objectives import LEADS_TOTALS_OBJECTIVES
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

logger = logging.getLogger(__name__)


def _keep(entity, active_only: bool) -> bool:
    return not active_only or entity.status is Status.ACTIVE


# ─────────────────────────────────────────────────────────────────────────────
# Roll-up
# ─────────────────────────────────────────────────────────────────────────────


def roll_up_ads(ads: Iterable[Ad]) -> MetricSet:
    """Ad set metrics from its ads."""
    return sum_counters(a.metrics for a in ads)


def roll_up_adsets(adsets: Iterable[AdSet]) -> MetricSet:
    """Campaign metrics from its ad sets."""
    return sum_counters(s.metrics for s in adsets)


def roll_up_adset(adset: AdSet, active_only: bool = False) -> AdSet:
    ads = tuple(a for a in adset.ads if _keep(a, active_only))
    metrics = roll_up_ads(ads) if adset.ads else adset.metrics
    return replace(adset, ads=ads, metrics=metrics)


def roll_up_campaign(campaign: Campaign, active_only: bool = False) -> Campaign:
    """Return a new campaign whose metrics are the sum of its (filtered) children.

    With ``active_only`` each ad set and ad is kept or dropped on its own
    status before any summing happens.
    """
    adsets = tuple(
        roll_up_adset(s, active_only) for s in campaign.adsets if _keep(s, active_only)
    )
    metrics = roll_up_adsets(adsets) if campaign.adsets else campaign.metrics
    return replace(campaign, adsets=adsets, metrics=metrics)


def roll_up(campaigns: Iterable[Campaign], active_only: bool = False) -> List[Campaign]:
    return [roll_up_campaign(c, active_only) for c in campaigns if _keep(c, active_only)]


def aggregate(campaigns: Iterable[Campaign], active_only: bool = False) -> MetricSet:
    """Account-wide totals across ``campaigns``."""
    return sum_counters(c.metrics for c in roll_up(campaigns, active_only))


# ─────────────────────────────────────────────────────────────────────────────
# Source results
# ─────────────────────────────────────────────────────────────────────────────


def merge_sparklines(series: Iterable[Iterable[SparklinePoint]]) -> List[SparklinePoint]:
    """Sum points that share a date and return them in date order."""
    buckets: Dict[str, Dict[str, float]] = {}
    for points in series:
        for p in points:
            b = buckets.setdefault(
                p.date,
                {"impressions": 0, "reach": 0, "clicks": 0, "spend": 0.0, "leads": 0, "sales": 0},
            )
            for key in b:
                b[key] += getattr(p, key)
    return [SparklinePoint(date=d, **buckets[d]) for d in sorted(buckets)]


def make_result(
    campaigns: Iterable[Campaign],
    source: str,
    sparkline: Iterable[SparklinePoint] = (),
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    active_only: bool = False,
) -> SourceResult:
    rolled = roll_up(campaigns, active_only)
    return SourceResult(
        campaigns=tuple(rolled),
        totals=sum_counters(c.metrics for c in rolled),
        sparkline=tuple(merge_sparklines([sparkline])),
        source=source,
        date_from=date_from,
        date_to=date_to,
    )


def combine_sources(results: Sequence[SourceResult], active_only: bool = False) -> SourceResult:
    """Merge several sources into one result.

    Reach is summed across sources without de-duplicating users, so the
    result is flagged ``reach_is_additive`` whenever more than one source
    contributed data.
    """
    if len(results) == 1 and not active_only:
        return results[0]

    campaigns = roll_up([c for r in results for c in r.campaigns], active_only)
    contributing = [r for r in results if r.campaigns or r.sparkline]
    dates_from = sorted(r.date_from for r in results if r.date_from)
    dates_to = sorted(r.date_to for r in results if r.date_to)

    return SourceResult(
        campaigns=tuple(campaigns),
        totals=sum_counters(c.metrics for c in campaigns),
        sparkline=tuple(merge_sparklines(r.sparkline for r in results)),
        source="+".join(r.source for r in results if r.source),
        date_from=dates_from[0] if dates_from else None,
        date_to=dates_to[-1] if dates_to else None,
        reach_is_additive=len(contributing) > 1,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Filters
# ─────────────────────────────────────────────────────────────────────────────


def _matches(name: str, query: str) -> bool:
    return query in (name or "").lower()


def filter_campaigns(
    campaigns: Iterable[Campaign],
    statuses: Sequence[Status] = (),
    objectives: Sequence[CampaignObjective] = (),
    query: str = "",
) -> List[Campaign]:
    """Dashboard-style filtering by status, objective and name search.

    A name match on a campaign keeps its whole subtree; otherwise only the
    ad sets (or ads) that match are kept, and the campaign survives if any
    descendant matched. Campaign metrics are left as reported.
    """
    q = (query or "").strip().lower()
    out: List[Campaign] = []
    for c in campaigns:
        if statuses and c.status not in statuses:
            continue
        if objectives and c.objective not in objectives:
            continue
        if not q or _matches(c.name, q):
            out.append(c)
            continue

        adsets: List[AdSet] = []
        for s in c.adsets:
            if _matches(s.name, q):
                adsets.append(s)
                continue
            ads = tuple(a for a in s.ads if _matches(a.name, q))
            if ads:
                adsets.append(replace(s, ads=ads))
        if adsets:
            out.append(replace(c, adsets=tuple(adsets)))

    logger.debug("Campaign filter kept %d campaigns", len(out))
    return out


def leads_focused_totals(campaigns: Iterable[Campaign]) -> MetricSet:
    """Totals restricted to campaigns whose objective drives lead generation."""
    return sum_counters(
        c.metrics for c in campaigns if c.objective in LEADS_TOTALS_OBJECTIVES
    )
