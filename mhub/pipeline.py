"""Dashboard pipeline: fetch sources → combine → classify → rank → compare → funnels → goals → alerts."""

from __future__ import annotations

import json
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from mhub.aggregation import combine_sources, leads_focused_totals
from mhub.alerts import AlertSnapshot, TriggeredAlert, evaluate_alerts
from mhub.cache import CacheStore, make_cache_key
from mhub.comparison import compare_metrics, previous_period
from mhub.config import AppConfig
from mhub.errors import SourceUnavailable
from mhub.funnel import LeadsKpis, acquisition_funnel, conversion_rates, qualification_funnel
from mhub.goals import ProgressResult, evaluate_progress
from mhub.mappers import source_result_from_dict
from mhub.objectives import ObjectiveClassification, classify
from mhub.ranking import Ranking, adaptive_rankings
from mhub.schema import FunnelStage, MetricSet, SourceResult

logger = logging.getLogger(__name__)

Fetcher = Callable[[], SourceResult]


@dataclass(frozen=True)
class Dashboard:
    """Everything a dashboard or report needs for one date range."""

    result: SourceResult
    classification: ObjectiveClassification
    rankings: Dict[str, List[Ranking]]
    acquisition_funnel: List[FunnelStage]
    conversion_rates: Dict[str, float]
    goal: ProgressResult
    goal_metric: str
    goal_value: float
    goal_target: float
    leads_totals: MetricSet
    generated_at: datetime
    previous_totals: Optional[MetricSet] = None
    comparison: Dict[str, Optional[float]] = field(default_factory=dict)
    qualification_funnel: List[FunnelStage] = field(default_factory=list)
    alerts: List[TriggeredAlert] = field(default_factory=list)

    @property
    def totals(self) -> MetricSet:
        return self.result.totals

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "result": self.result.to_dict(),
            "classification": self.classification.to_dict(),
            "rankings": {
                level: [r.to_dict() for r in rankings]
                for level, rankings in self.rankings.items()
            },
            "comparison": dict(self.comparison),
            "previous_totals": self.previous_totals.to_dict() if self.previous_totals else None,
            "acquisition_funnel": [s.to_dict() for s in self.acquisition_funnel],
            "qualification_funnel": [s.to_dict() for s in self.qualification_funnel],
            "conversion_rates": dict(self.conversion_rates),
            "goal_metric": self.goal_metric,
            "goal_value": self.goal_value,
            "goal_target": self.goal_target,
            "goal": self.goal.to_dict(),
            "leads_totals": self.leads_totals.to_dict(),
            "alerts": [a.to_dict() for a in self.alerts],
        }


# ─────────────────────────────────────────────────────────────────────────────
# Fetching
# ─────────────────────────────────────────────────────────────────────────────


def make_cache_store(cfg: AppConfig) -> Optional[CacheStore]:
    """Return a CacheStore if caching is enabled, else None."""
    if not cfg.cache.enabled:
        return None
    return CacheStore(cfg.cache.path)


def _fetch_one(
    name: str,
    fetcher: Fetcher,
    cache: Optional[CacheStore],
    cache_key: str,
    ttl_seconds: Optional[float],
) -> SourceResult:
    if cache is not None:
        cached = cache.get(cache_key)
        if cached is not None:
            logger.debug("Cache hit for source %s", name)
            return source_result_from_dict(json.loads(cached))

    try:
        result = fetcher()
    except SourceUnavailable:
        raise
    except Exception as exc:
        raise SourceUnavailable(f"{name} fetch failed: {exc}", source=name) from exc

    if cache is not None:
        cache.set(cache_key, json.dumps(result.to_dict()), ttl_seconds=ttl_seconds)
    return result


def fetch_sources(
    fetchers: Mapping[str, Fetcher],
    cache: Optional[CacheStore] = None,
    ttl_seconds: Optional[float] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    max_workers: int = 4,
    cache_extra: Optional[Mapping[str, Tuple[Any, ...]]] = None,
) -> List[SourceResult]:
    """Run every fetcher concurrently and return their results in input order.

    Cache keys cover the source name, the date range and
    ``cache_extra[name]``, the settings that change what a source returns
    (see :func:`source_cache_extra`).

    Any failure raises :class:`SourceUnavailable` once all fetches have
    finished; partial hierarchies are never returned.
    """
    if not fetchers:
        return []
    extra = cache_extra or {}

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(fetchers)))) as pool:
        futures = {
            name: pool.submit(
                _fetch_one,
                name,
                fetcher,
                cache,
                make_cache_key(name, date_from, date_to, *extra.get(name, ())),
                ttl_seconds,
            )
            for name, fetcher in fetchers.items()
        }

    results: List[SourceResult] = []
    for name, future in futures.items():
        exc = future.exception()
        if exc is not None:
            logger.warning("Source %s unavailable: %s", name, exc)
            raise exc
        results.append(future.result())

    logger.info("Fetched %d sources for %s..%s", len(results), date_from, date_to)
    return results


def source_fetchers(cfg: AppConfig, date_from: str, date_to: str) -> Dict[str, Fetcher]:
    """Fetch callables for every source enabled in ``cfg.sources``."""
    from mhub.connectors.google_ads import pull_google_ads
    from mhub.connectors.google_sheets import fetch_csv_text, parse_google_ads_csv, read_worksheet_csv
    from mhub.connectors.meta_ads import pull_meta_ads

    src = cfg.sources
    active_only = cfg.filters.active_only
    fetchers: Dict[str, Fetcher] = {}

    if src.meta_enabled:
        fetchers["meta_ads"] = lambda: pull_meta_ads(date_from, date_to, active_only=active_only)
    if src.google_api_enabled:
        fetchers["google_ads"] = lambda: pull_google_ads(
            date_from, date_to, customer_id=src.google_customer_id or None, active_only=active_only
        )
    if src.google_csv_url:
        fetchers["google_csv"] = lambda: parse_google_ads_csv(
            fetch_csv_text(src.google_csv_url), date_from, date_to
        )
    elif src.google_sheet_id:
        fetchers["google_csv"] = lambda: parse_google_ads_csv(
            read_worksheet_csv(src.google_sheet_id, src.google_worksheet), date_from, date_to
        )
    return fetchers


def source_cache_extra(cfg: AppConfig) -> Dict[str, Tuple[Any, ...]]:
    """Per-source cache key parts: the filter, account and export location each fetcher uses."""
    from mhub.config_meta_ads import normalize_account_id

    src = cfg.sources
    active_only = cfg.filters.active_only
    return {
        "meta_ads": (active_only, normalize_account_id(os.environ.get("META_AD_ACCOUNT_ID")) or ""),
        "google_ads": (active_only, src.google_customer_id or ""),
        "google_csv": (src.google_csv_url or src.google_sheet_id, "" if src.google_csv_url else src.google_worksheet),
    }


def fetch_with_previous(
    make_fetchers: Callable[[str, str], Mapping[str, Fetcher]],
    date_from: str,
    date_to: str,
    cache: Optional[CacheStore] = None,
    ttl_seconds: Optional[float] = None,
    cache_extra: Optional[Mapping[str, Tuple[Any, ...]]] = None,
) -> Tuple[List[SourceResult], List[SourceResult]]:
    """Fetch the requested range and the equal-length range before it, in parallel."""
    prev_from, prev_to = previous_period(date_from, date_to)
    with ThreadPoolExecutor(max_workers=2) as pool:
        current = pool.submit(
            fetch_sources,
            make_fetchers(date_from, date_to),
            cache,
            ttl_seconds,
            date_from,
            date_to,
            cache_extra=cache_extra,
        )
        previous = pool.submit(
            fetch_sources,
            make_fetchers(prev_from, prev_to),
            cache,
            ttl_seconds,
            prev_from,
            prev_to,
            cache_extra=cache_extra,
        )
        return current.result(), previous.result()


# ─────────────────────────────────────────────────────────────────────────────
# Dashboard
# ─────────────────────────────────────────────────────────────────────────────


def build_dashboard(
    sources: Sequence[SourceResult],
    cfg: AppConfig,
    now: Optional[datetime] = None,
    previous_sources: Optional[Sequence[SourceResult]] = None,
    leads_kpis: Optional[LeadsKpis] = None,
    qualified_count: Optional[int] = None,
    last_triggered: Optional[Mapping[str, datetime]] = None,
) -> Dashboard:
    """Compute the dashboard snapshot from already-fetched sources.

    Order:
    1. combine sources (roll-up, optional active-only filter)
    2. classify objectives → metric priority config
    3. adaptive rankings for ad sets and ads
    4. period comparison when ``previous_sources`` are given
    5. acquisition / qualification funnels and conversion rates
    6. goal pacing on the config's goal metric
    7. threshold alerts (if enabled)

    An empty ``sources`` list is valid and yields an all-zero dashboard.
    """
    now = now or datetime.now()
    active_only = cfg.filters.active_only

    # 1. Combine
    result = combine_sources(list(sources), active_only=active_only) if sources else SourceResult()
    campaigns = list(result.campaigns)
    totals = result.totals

    # 2. Classify
    classification = classify(campaigns)
    priority = classification.dominant_config

    # 3. Rank
    rankings = adaptive_rankings(
        campaigns,
        priority,
        min_leads_threshold=cfg.ranking.min_leads_threshold,
        top_n=cfg.ranking.top_n,
    )

    # 4. Compare
    previous_totals: Optional[MetricSet] = None
    comparison: Dict[str, Optional[float]] = {}
    if previous_sources is not None:
        previous = (
            combine_sources(list(previous_sources), active_only=active_only)
            if previous_sources
            else SourceResult()
        )
        previous_totals = previous.totals
        comparison = compare_metrics(totals, previous_totals)

    # 5. Funnels
    acquisition = acquisition_funnel(totals)
    qualification = qualification_funnel(leads_kpis, qualified_count) if leads_kpis else []
    rates = conversion_rates(totals, leads_kpis, qualified_count)

    # 6. Goal
    goals = cfg.goals
    goal_metric = priority.goal_metric
    goal_value = float(totals.get(goal_metric))
    goal = evaluate_progress(
        goal_value,
        goals.monthly_goal,
        thresholds=goals.thresholds,
        period_type=goals.period_type,
        campaign_period=goals.campaign_period,
        now=now,
    )

    # 7. Alerts
    alerts: List[TriggeredAlert] = []
    if goals.alerts_enabled and cfg.alerts:
        expected_leads = goals.monthly_goal * goal.expected_percent / 100
        alerts = evaluate_alerts(
            cfg.alerts,
            AlertSnapshot.from_totals(totals, expected_leads=expected_leads),
            last_triggered=last_triggered,
            now=now,
        )
        for a in alerts:
            logger.info("Alert %s fired: %s", a.rule_id, a.message)

    logger.info(
        "Dashboard built: %d campaigns, dominant objective %s",
        len(campaigns),
        classification.dominant_objective.value if classification.dominant_objective else "none",
    )
    return Dashboard(
        result=result,
        classification=classification,
        rankings=rankings,
        acquisition_funnel=acquisition,
        conversion_rates=rates,
        goal=goal,
        goal_metric=goal_metric,
        goal_value=goal_value,
        goal_target=goals.monthly_goal,
        leads_totals=leads_focused_totals(campaigns),
        generated_at=now,
        previous_totals=previous_totals,
        comparison=comparison,
        qualification_funnel=qualification,
        alerts=alerts,
    )
