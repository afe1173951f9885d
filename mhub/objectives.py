"""Objective classification and per-objective metric priorities.

Two independent static tables live here:

* ``OBJECTIVE_CONFIGS`` maps each :class:`CampaignObjective` to the metrics a
  dashboard should lead with, rank by, and track as a goal.
* ``OBJECTIVE_CATEGORIES`` buckets objectives into five coarse categories used
  for summary badges only.

``CHANNEL_TO_META_OBJECTIVE`` is a third, independent aid that maps Google
channel types onto the nearest Meta objective.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence, Tuple

from mhub.schema import Campaign, CampaignObjective

logger = logging.getLogger(__name__)

SortOrder = Literal["asc", "desc"]
MetricFormat = Literal["number", "currency", "percent"]

O = CampaignObjective


# ─────────────────────────────────────────────────────────────────────────────
# Metric definitions
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class MetricDefinition:
    key: str
    label: str
    short_label: str
    format: MetricFormat
    sort_order: SortOrder


METRIC_DEFINITIONS: Dict[str, MetricDefinition] = {
    "leads": MetricDefinition("leads", "Leads", "Leads", "number", "desc"),
    "cpl": MetricDefinition("cpl", "CPL", "CPL", "currency", "asc"),
    "clicks": MetricDefinition("clicks", "Cliques", "Cliques", "number", "desc"),
    "cpc": MetricDefinition("cpc", "CPC", "CPC", "currency", "asc"),
    "ctr": MetricDefinition("ctr", "CTR", "CTR", "percent", "desc"),
    "impressions": MetricDefinition("impressions", "Impressões", "Impr.", "number", "desc"),
    "reach": MetricDefinition("reach", "Alcance", "Alcance", "number", "desc"),
    "cpm": MetricDefinition("cpm", "CPM", "CPM", "currency", "asc"),
    "spend": MetricDefinition("spend", "Investimento", "Invest.", "currency", "desc"),
    "sales": MetricDefinition("sales", "Conversões", "Conv.", "number", "desc"),
    "cps": MetricDefinition("cps", "CPS", "CPS", "currency", "asc"),
}


def sort_order_for(metric: str) -> SortOrder:
    definition = METRIC_DEFINITIONS.get(metric)
    return definition.sort_order if definition else "desc"


# ─────────────────────────────────────────────────────────────────────────────
# Per-objective configuration
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class MetricPriorityConfig:
    primary_metric: str
    secondary_metric: str
    goal_metric: str
    goal_label: str
    ranking_metrics: Tuple[str, str]
    kpi_priority: Tuple[str, ...]
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary_metric": self.primary_metric,
            "secondary_metric": self.secondary_metric,
            "goal_metric": self.goal_metric,
            "goal_label": self.goal_label,
            "ranking_metrics": list(self.ranking_metrics),
            "kpi_priority": list(self.kpi_priority),
            "description": self.description,
        }


def _cfg(primary, secondary, goal, goal_label, ranking, kpis, description) -> MetricPriorityConfig:
    return MetricPriorityConfig(
        primary_metric=primary,
        secondary_metric=secondary,
        goal_metric=goal,
        goal_label=goal_label,
        ranking_metrics=tuple(ranking),
        kpi_priority=tuple(kpis.split()),
        description=description,
    )


OBJECTIVE_CONFIGS: Dict[CampaignObjective, MetricPriorityConfig] = {
    # Meta
    O.OUTCOME_LEADS: _cfg(
        "leads", "cpl", "leads", "Meta de Leads", ("cpl", "ctr"),
        "leads cpl spend ctr cpc clicks impressions reach cpm",
        "Campanhas focadas em geração de leads",
    ),
    O.OUTCOME_TRAFFIC: _cfg(
        "clicks", "cpc", "clicks", "Meta de Cliques", ("cpc", "ctr"),
        "clicks cpc ctr spend impressions reach cpm leads cpl",
        "Campanhas focadas em tráfego",
    ),
    O.OUTCOME_AWARENESS: _cfg(
        "reach", "cpm", "impressions", "Meta de Impressões", ("cpm", "ctr"),
        "reach impressions cpm spend ctr clicks cpc leads cpl",
        "Campanhas de reconhecimento de marca",
    ),
    O.OUTCOME_ENGAGEMENT: _cfg(
        "clicks", "ctr", "clicks", "Meta de Engajamento", ("ctr", "cpc"),
        "clicks ctr impressions reach cpc spend cpm leads cpl",
        "Campanhas de engajamento",
    ),
    O.OUTCOME_SALES: _cfg(
        "sales", "cpc", "sales", "Meta de Vendas", ("cpc", "ctr"),
        "leads cpl spend ctr clicks cpc impressions reach cpm",
        "Campanhas de vendas",
    ),
    O.OUTCOME_APP_PROMOTION: _cfg(
        "clicks", "cpc", "clicks", "Meta de Instalações", ("cpc", "ctr"),
        "clicks cpc ctr spend impressions reach cpm leads cpl",
        "Campanhas de promoção de app",
    ),
    # Google
    O.SEARCH: _cfg(
        "clicks", "cpc", "clicks", "Meta de Cliques", ("cpc", "ctr"),
        "clicks leads cpc cpl ctr spend impressions cpm reach",
        "Campanhas de Pesquisa Google",
    ),
    O.DISPLAY: _cfg(
        "impressions", "cpm", "impressions", "Meta de Impressões", ("cpm", "ctr"),
        "impressions reach cpm clicks ctr spend cpc leads cpl",
        "Campanhas de Display",
    ),
    O.VIDEO: _cfg(
        "impressions", "cpm", "impressions", "Meta de Views", ("cpm", "ctr"),
        "impressions reach cpm clicks ctr spend cpc leads cpl",
        "Campanhas de Vídeo",
    ),
    O.SHOPPING: _cfg(
        "leads", "cpl", "leads", "Meta de Vendas", ("cpl", "ctr"),
        "leads cpl spend clicks ctr cpc impressions cpm reach",
        "Campanhas de Shopping",
    ),
    O.PERFORMANCE_MAX: _cfg(
        "leads", "cpl", "leads", "Meta de Conversões", ("cpl", "ctr"),
        "leads cpl clicks cpc ctr spend impressions reach cpm",
        "Campanhas Performance Max",
    ),
    O.DISCOVERY: _cfg(
        "clicks", "cpc", "clicks", "Meta de Cliques", ("cpc", "ctr"),
        "clicks cpc ctr impressions reach spend cpm leads cpl",
        "Campanhas Discovery",
    ),
    O.LOCAL: _cfg(
        "clicks", "cpc", "clicks", "Meta de Visitas", ("cpc", "ctr"),
        "clicks cpc ctr impressions spend reach cpm leads cpl",
        "Campanhas Locais",
    ),
    O.SMART: _cfg(
        "clicks", "cpc", "clicks", "Meta de Conversões", ("cpc", "ctr"),
        "clicks leads cpc cpl ctr spend impressions cpm reach",
        "Campanhas Smart",
    ),
}

DEFAULT_CONFIG = _cfg(
    "clicks", "cpc", "clicks", "Meta", ("cpc", "ctr"),
    "spend clicks impressions reach ctr cpc cpm leads cpl",
    "Campanhas",
)


def resolve_config(objective: Any) -> MetricPriorityConfig:
    """Look up the metric priorities for ``objective``; unknown values get the default."""
    key = CampaignObjective.parse(objective)
    config = OBJECTIVE_CONFIGS.get(key)
    if config is None:
        logger.debug("No metric config for objective %r, using default", objective)
        return DEFAULT_CONFIG
    return config


# ─────────────────────────────────────────────────────────────────────────────
# Categories and cross-platform mapping
# ─────────────────────────────────────────────────────────────────────────────

Category = Literal["leads", "traffic", "awareness", "engagement", "sales"]

OBJECTIVE_CATEGORIES: Dict[str, Tuple[CampaignObjective, ...]] = {
    "leads": (O.OUTCOME_LEADS, O.SEARCH, O.PERFORMANCE_MAX, O.SHOPPING, O.SMART),
    "traffic": (O.OUTCOME_TRAFFIC, O.DISCOVERY, O.LOCAL),
    "awareness": (O.OUTCOME_AWARENESS, O.DISPLAY, O.VIDEO),
    "engagement": (O.OUTCOME_ENGAGEMENT, O.OUTCOME_APP_PROMOTION),
    "sales": (O.OUTCOME_SALES,),
}

CHANNEL_TO_META_OBJECTIVE: Dict[str, CampaignObjective] = {
    "SEARCH": O.OUTCOME_LEADS,
    "MULTI_CHANNEL": O.OUTCOME_LEADS,
    "SMART": O.OUTCOME_LEADS,
    "PERFORMANCE_MAX": O.OUTCOME_LEADS,
    "LOCAL_SERVICES": O.OUTCOME_LEADS,
    "DISPLAY": O.OUTCOME_AWARENESS,
    "VIDEO": O.OUTCOME_AWARENESS,
    "SHOPPING": O.OUTCOME_SALES,
    "TRAVEL": O.OUTCOME_SALES,
    "LOCAL": O.OUTCOME_TRAFFIC,
    "DISCOVERY": O.OUTCOME_ENGAGEMENT,
    "DEMAND_GEN": O.OUTCOME_ENGAGEMENT,
}

# Objectives whose spend counts toward lead-generation investment totals.
LEADS_TOTALS_OBJECTIVES = (O.OUTCOME_LEADS, O.SEARCH, O.PERFORMANCE_MAX)


def category_of(objective: Any) -> Optional[str]:
    key = CampaignObjective.parse(objective)
    for category, members in OBJECTIVE_CATEGORIES.items():
        if key in members:
            return category
    return None


def is_leads_focused(objective: Any) -> bool:
    return category_of(objective) == "leads"


def classification_objective(objective: Any) -> CampaignObjective:
    """Return the Meta-style objective used to classify ``objective``.

    Meta objectives map to themselves; Google channel types go through
    ``CHANNEL_TO_META_OBJECTIVE`` and default to ``OUTCOME_LEADS``.
    """
    if isinstance(objective, CampaignObjective) and objective.is_meta:
        return objective
    key = str(getattr(objective, "value", objective) or "").strip().upper()
    if key.startswith("OUTCOME_"):
        return CampaignObjective.parse(key)
    return CHANNEL_TO_META_OBJECTIVE.get(key, O.OUTCOME_LEADS)


# ─────────────────────────────────────────────────────────────────────────────
# Classification
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ObjectiveBreakdown:
    objective: Any
    spend: float
    campaigns: int
    percentage: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "objective": getattr(self.objective, "value", self.objective),
            "spend": self.spend,
            "campaigns": self.campaigns,
            "percentage": self.percentage,
        }


@dataclass(frozen=True)
class ObjectiveClassification:
    dominant_objective: Optional[CampaignObjective]
    dominant_config: MetricPriorityConfig
    breakdown: Tuple[ObjectiveBreakdown, ...]
    total_spend: float
    is_mixed: bool
    has_leads_campaigns: bool
    has_awareness_campaigns: bool
    has_traffic_campaigns: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dominant_objective": self.dominant_objective.value if self.dominant_objective else None,
            "dominant_config": self.dominant_config.to_dict(),
            "breakdown": [b.to_dict() for b in self.breakdown],
            "total_spend": self.total_spend,
            "is_mixed": self.is_mixed,
            "has_leads_campaigns": self.has_leads_campaigns,
            "has_awareness_campaigns": self.has_awareness_campaigns,
            "has_traffic_campaigns": self.has_traffic_campaigns,
        }


def objective_breakdown(campaigns: Iterable[Campaign]) -> List[ObjectiveBreakdown]:
    """Group campaigns by objective in first-seen order, with spend share."""
    spend: Dict[CampaignObjective, float] = {}
    counts: Dict[CampaignObjective, int] = {}
    for c in campaigns:
        spend[c.objective] = spend.get(c.objective, 0.0) + c.metrics.spend
        counts[c.objective] = counts.get(c.objective, 0) + 1

    total = sum(spend.values())
    return [
        ObjectiveBreakdown(
            objective=obj,
            spend=s,
            campaigns=counts[obj],
            percentage=(s / total * 100) if total > 0 else 0.0,
        )
        for obj, s in spend.items()
    ]


def _by_spend(breakdown: Sequence[Any]) -> List[Any]:
    # sorted() is stable, so equal spend keeps input order
    return sorted(breakdown, key=lambda b: _field(b, "spend"), reverse=True)


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name)


def dominant_objective(breakdown: Sequence[Any]) -> Optional[Any]:
    """Objective with the largest spend; the first one wins an exact tie.

    Accepts :class:`ObjectiveBreakdown` rows or plain dicts with
    ``objective`` and ``spend`` keys.
    """
    if not breakdown:
        return None
    return _field(_by_spend(breakdown)[0], "objective")


def classify(campaigns: Iterable[Campaign]) -> ObjectiveClassification:
    breakdown = objective_breakdown(campaigns)
    total_spend = sum(b.spend for b in breakdown)

    if not breakdown:
        return ObjectiveClassification(
            dominant_objective=None,
            dominant_config=resolve_config(O.OUTCOME_LEADS),
            breakdown=(),
            total_spend=0.0,
            is_mixed=False,
            has_leads_campaigns=False,
            has_awareness_campaigns=False,
            has_traffic_campaigns=False,
        )

    ranked = _by_spend(breakdown)
    dominant = ranked[0].objective
    is_mixed = len(ranked) > 1 and ranked[1].spend > ranked[0].spend * 0.3
    categories = {category_of(b.objective) for b in breakdown}

    return ObjectiveClassification(
        dominant_objective=dominant,
        dominant_config=resolve_config(dominant),
        breakdown=tuple(ranked),
        total_spend=total_spend,
        is_mixed=is_mixed,
        has_leads_campaigns="leads" in categories,
        has_awareness_campaigns="awareness" in categories,
        has_traffic_campaigns="traffic" in categories,
    )


def category_summary(breakdown: Iterable[ObjectiveBreakdown]) -> Dict[str, Dict[str, float]]:
    """Sum spend and campaign counts per coarse category (summary badges)."""
    out: Dict[str, Dict[str, float]] = {}
    for b in breakdown:
        category = category_of(b.objective)
        if category is None:
            continue
        bucket = out.setdefault(category, {"spend": 0.0, "campaigns": 0})
        bucket["spend"] += b.spend
        bucket["campaigns"] += b.campaigns
    return out
