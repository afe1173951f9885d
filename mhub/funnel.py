"""Acquisition and lead-qualification funnels."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from mhub.schema import FunnelStage, MetricSet


@dataclass(frozen=True)
class LeadsKpis:
    """Snapshot of the leads CRM feed used by the qualification funnel."""

    total: int = 0
    with_survey: int = 0
    hot_leads_count: int = 0
    survey_rate: float = 0.0
    hot_leads_rate: float = 0.0

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "LeadsKpis":
        return cls(
            total=int(raw.get("total", 0) or 0),
            with_survey=int(raw.get("with_survey", raw.get("leadsWithSurvey", 0)) or 0),
            hot_leads_count=int(raw.get("hot_leads_count", raw.get("hotLeadsCount", 0)) or 0),
            survey_rate=float(raw.get("survey_rate", raw.get("surveyRate", 0)) or 0),
            hot_leads_rate=float(raw.get("hot_leads_rate", raw.get("hotLeadsPercentage", 0)) or 0),
        )


def stage_rate(value: float, previous: float) -> float:
    return value / previous * 100 if previous > 0 else 0.0


def build_stages(values: Sequence[Tuple[str, float]]) -> List[FunnelStage]:
    """Chain stages so each rate is relative to the stage before it."""
    stages: List[FunnelStage] = []
    previous: Optional[float] = None
    for name, value in values:
        rate = 100.0 if previous is None else stage_rate(value, previous)
        stages.append(FunnelStage(name=name, value=value, conversion_rate=rate))
        previous = value
    return stages


def acquisition_funnel(totals: MetricSet) -> List[FunnelStage]:
    return build_stages(
        [
            ("Impressões", totals.impressions),
            ("Alcance", totals.reach),
            ("Cliques", totals.clicks),
            ("Leads", totals.leads),
            ("Vendas", totals.sales),
        ]
    )


def estimate_qualified_from_hot(hot_leads_count: int) -> int:
    """Approximate qualified leads as twice the hot leads.

    This is a heuristic, not a count of leads scored as qualified; pass a
    real count to :func:`qualification_funnel` whenever one exists.
    """
    return int(round(hot_leads_count * 2))


def qualification_funnel(kpis: LeadsKpis, qualified_count: Optional[int] = None) -> List[FunnelStage]:
    estimated = qualified_count is None
    qualified = estimate_qualified_from_hot(kpis.hot_leads_count) if estimated else qualified_count

    stages = build_stages(
        [
            ("Total", kpis.total),
            ("Com Pesquisa", kpis.with_survey),
            ("Qualificados", qualified),
            ("Hot Leads", kpis.hot_leads_count),
        ]
    )
    if estimated:
        q = stages[2]
        stages[2] = FunnelStage(q.name, q.value, q.conversion_rate, is_estimate=True)
    return stages


def conversion_rates(
    totals: MetricSet,
    kpis: Optional[LeadsKpis] = None,
    qualified_count: Optional[int] = None,
) -> Dict[str, float]:
    kpis = kpis or LeadsKpis()
    qualified = (
        estimate_qualified_from_hot(kpis.hot_leads_count)
        if qualified_count is None
        else qualified_count
    )
    return {
        "impression_to_reach": stage_rate(totals.reach, totals.impressions),
        "reach_to_click": stage_rate(totals.clicks, totals.reach),
        "click_to_lead": stage_rate(totals.leads, totals.clicks),
        "lead_to_sale": stage_rate(totals.sales, totals.leads),
        "overall_conversion": stage_rate(totals.sales, totals.impressions),
        "survey_rate": stage_rate(kpis.with_survey, kpis.total),
        "qualification_rate": stage_rate(qualified, kpis.with_survey),
        "hot_lead_rate": stage_rate(kpis.hot_leads_count, kpis.total),
    }
