"""Top-N rankings of ad sets and ads.

Entities below the minimum lead count are dropped before sorting, so a
single cheap lead never tops a cost-per-lead ranking.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from mhub.objectives import METRIC_DEFINITIONS, MetricPriorityConfig, SortOrder, sort_order_for
from mhub.schema import Ad, AdSet, Campaign, RankingItem

DEFAULT_MIN_LEADS = 5
DEFAULT_TOP_N = 5

# Volume column shown next to each ranking metric.
_SECONDARY: Dict[str, Tuple[str, str]] = {
    "cpl": ("Leads", "leads"),
    "cpc": ("Cliques", "clicks"),
    "cpm": ("Impressões", "impressions"),
    "cps": ("Vendas", "sales"),
    "ctr": ("Cliques", "clicks"),
}

Rankable = Union[AdSet, Ad]


@dataclass(frozen=True)
class Ranking:
    metric: str
    sort_order: SortOrder
    items: Tuple[RankingItem, ...]
    total_available: int

    @property
    def label(self) -> str:
        definition = METRIC_DEFINITIONS.get(self.metric)
        return definition.label if definition else self.metric

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric": self.metric,
            "label": self.label,
            "sort_order": self.sort_order,
            "items": [i.to_dict() for i in self.items],
            "total_available": self.total_available,
        }


def _leads(entity: Rankable) -> float:
    return entity.metrics.leads


def _value(entity: Rankable, metric: str) -> float:
    return getattr(entity.metrics, metric)


def to_ranking_item(entity: Rankable, metric: str) -> RankingItem:
    secondary_label, secondary_key = _SECONDARY.get(metric, ("Leads", "leads"))
    m = entity.metrics
    return RankingItem(
        id=entity.id,
        name=entity.name,
        main_value=m.get(metric),
        secondary_label=secondary_label,
        secondary_value=m.get(secondary_key),
        tertiary_label="Investimento",
        tertiary_value=m.spend,
    )


def eligible(pool: Iterable[Rankable], min_leads_threshold: int = DEFAULT_MIN_LEADS) -> List[Rankable]:
    return [e for e in pool if _leads(e) >= min_leads_threshold]


def rank(
    pool: Sequence[Rankable],
    metric: str,
    sort_order: Optional[SortOrder] = None,
    min_leads_threshold: int = DEFAULT_MIN_LEADS,
    top_n: int = DEFAULT_TOP_N,
) -> Ranking:
    """Rank ``pool`` by ``metric``.

    ``sort_order`` defaults to the metric's own direction (``asc`` for cost
    metrics). Equal values keep their input order. ``total_available`` is
    the size of the filtered pool before truncation to ``top_n``.
    """
    order = sort_order or sort_order_for(metric)
    candidates = eligible(pool, min_leads_threshold)
    ordered = sorted(candidates, key=lambda e: _value(e, metric), reverse=(order == "desc"))

    items = tuple(to_ranking_item(e, metric) for e in ordered[: max(top_n, 0)])
    return Ranking(
        metric=metric,
        sort_order=order,
        items=items,
        total_available=len(candidates),
    )


def flatten_adsets(campaigns: Iterable[Campaign]) -> List[AdSet]:
    return [s for c in campaigns for s in c.adsets]


def flatten_ads(campaigns: Iterable[Campaign]) -> List[Ad]:
    return [a for c in campaigns for s in c.adsets for a in s.ads]


def adaptive_rankings(
    campaigns: Sequence[Campaign],
    config: MetricPriorityConfig,
    min_leads_threshold: int = DEFAULT_MIN_LEADS,
    top_n: int = DEFAULT_TOP_N,
) -> Dict[str, List[Ranking]]:
    """Primary and secondary rankings for ad sets and ads, driven by ``config``."""
    adsets = flatten_adsets(campaigns)
    ads = flatten_ads(campaigns)
    return {
        level: [
            rank(pool, metric, min_leads_threshold=min_leads_threshold, top_n=top_n)
            for metric in config.ranking_metrics
        ]
        for level, pool in (("adsets", adsets), ("ads", ads))
    }
