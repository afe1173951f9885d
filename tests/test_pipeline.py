"""Tests for mhub/pipeline.py: source fetching and dashboard assembly."""

from __future__ import annotations

import json
from datetime import datetime

import pytest

from mhub.aggregation import make_result
from mhub.alerts import AlertRule
from mhub.cache import CacheStore
from mhub.config import AppConfig
from mhub.errors import SourceUnavailable
from mhub.funnel import LeadsKpis
from mhub.metrics import derive_metrics
from mhub.pipeline import (
    build_dashboard,
    fetch_sources,
    fetch_with_previous,
    source_cache_extra,
    source_fetchers,
)
from mhub.schema import Ad, AdSet, Campaign, CampaignObjective, SparklinePoint, Status

NOW = datetime(2024, 5, 15, 12, 0)


def _meta_result(leads=2, date_from="2024-05-01", date_to="2024-05-15"):
    ads = (
        Ad("a1", "Ad 1", Status.ACTIVE, derive_metrics(impressions=1000, reach=800, clicks=20, spend=50, leads=leads)),
        Ad("a2", "Ad 2", Status.PAUSED, derive_metrics(impressions=500, reach=400, clicks=5, spend=10)),
    )
    adset = AdSet("s1", "Conjunto 1", Status.ACTIVE, "c1", ads=ads)
    campaign = Campaign("c1", "Leads Maio", Status.ACTIVE, CampaignObjective.OUTCOME_LEADS, adsets=(adset,))
    return make_result(
        [campaign], "meta_ads",
        sparkline=[SparklinePoint("2024-05-01", clicks=25)],
        date_from=date_from, date_to=date_to,
    )


def _cfg(**goals) -> AppConfig:
    cfg = AppConfig()
    cfg.goals.monthly_goal = goals.get("monthly_goal", 10)
    cfg.ranking.min_leads_threshold = 0
    return cfg


# ─────────────────────────────────────────────────────────────────────────────
# build_dashboard
# ─────────────────────────────────────────────────────────────────────────────


class TestBuildDashboard:
    def test_empty_sources_yield_zero_dashboard(self):
        dash = build_dashboard([], AppConfig(), now=NOW)
        assert dash.totals.spend == 0.0
        assert dash.classification.dominant_objective is None
        assert dash.goal_metric == "leads"
        assert dash.goal.status == "neutral"
        assert [s.conversion_rate for s in dash.acquisition_funnel][0] == 100.0
        assert all(r.items == () for r in dash.rankings["ads"])
        assert dash.alerts == []
        json.dumps(dash.to_dict())

    def test_leads_dashboard(self):
        dash = build_dashboard([_meta_result()], _cfg(), now=NOW)
        assert dash.classification.dominant_objective is CampaignObjective.OUTCOME_LEADS
        assert dash.totals.cpl == pytest.approx(30.0)
        assert dash.goal_metric == "leads"
        assert dash.goal_value == 2.0
        assert dash.goal_target == 10
        assert dash.goal.progress_percent == pytest.approx(20.0)
        assert dash.goal.status == "danger"
        assert [r.metric for r in dash.rankings["adsets"]] == ["cpl", "ctr"]
        assert dash.leads_totals.spend == pytest.approx(60.0)
        assert dash.comparison == {}
        assert dash.previous_totals is None

    def test_active_only_filter(self):
        cfg = _cfg()
        cfg.filters.active_only = True
        dash = build_dashboard([_meta_result()], cfg, now=NOW)
        assert dash.totals.impressions == 1000

    def test_comparison_with_previous_sources(self):
        dash = build_dashboard(
            [_meta_result(leads=2)], _cfg(), now=NOW, previous_sources=[_meta_result(leads=4)]
        )
        assert dash.previous_totals.leads == 4
        assert dash.comparison["leads"] == pytest.approx(-50.0)
        assert dash.comparison["spend"] == 0.0

    def test_empty_previous_period(self):
        dash = build_dashboard([_meta_result()], _cfg(), now=NOW, previous_sources=[])
        assert dash.comparison["leads"] == 100.0
        assert dash.comparison["sales"] is None

    def test_qualification_funnel_from_leads_kpis(self):
        kpis = LeadsKpis(total=50, with_survey=30, hot_leads_count=5)
        dash = build_dashboard([_meta_result()], _cfg(), now=NOW, leads_kpis=kpis)
        assert [s.name for s in dash.qualification_funnel] == ["Total", "Com Pesquisa", "Qualificados", "Hot Leads"]
        assert dash.qualification_funnel[2].is_estimate is True
        assert dash.conversion_rates["survey_rate"] == pytest.approx(60.0)

    def test_alerts_fire_and_respect_cooldown(self):
        cfg = _cfg()
        cfg.alerts = [
            AlertRule("cpl-high", "cpl", 20),
            AlertRule("leads-behind", "leads_progress", 70, "less_than"),
        ]
        dash = build_dashboard([_meta_result()], cfg, now=NOW)
        assert [a.rule_id for a in dash.alerts] == ["cpl-high", "leads-behind"]

        dash = build_dashboard([_meta_result()], cfg, now=NOW, last_triggered={"cpl-high": NOW})
        assert [a.rule_id for a in dash.alerts] == ["leads-behind"]

    def test_alerts_disabled(self):
        cfg = _cfg()
        cfg.goals.alerts_enabled = False
        cfg.alerts = [AlertRule("cpl-high", "cpl", 20)]
        assert build_dashboard([_meta_result()], cfg, now=NOW).alerts == []

    def test_awareness_dashboard_tracks_impressions(self):
        campaign = Campaign(
            "c9", "Branding", Status.ACTIVE, CampaignObjective.OUTCOME_AWARENESS,
            derive_metrics(impressions=50000, reach=30000, spend=200),
        )
        dash = build_dashboard([make_result([campaign], "meta_ads")], _cfg(monthly_goal=100000), now=NOW)
        assert dash.goal_metric == "impressions"
        assert dash.goal_value == 50000
        assert [r.metric for r in dash.rankings["ads"]] == ["cpm", "ctr"]


# ─────────────────────────────────────────────────────────────────────────────
# fetch_sources
# ─────────────────────────────────────────────────────────────────────────────


class TestFetchSources:
    def test_results_in_input_order(self):
        results = fetch_sources(
            {
                "meta_ads": lambda: make_result([], "meta_ads"),
                "google_csv": lambda: make_result([], "google_csv"),
            }
        )
        assert [r.source for r in results] == ["meta_ads", "google_csv"]

    def test_no_fetchers(self):
        assert fetch_sources({}) == []

    def test_failure_raises_source_unavailable(self):
        def broken():
            raise RuntimeError("timeout")

        with pytest.raises(SourceUnavailable) as excinfo:
            fetch_sources({"meta_ads": lambda: make_result([], "meta_ads"), "google_ads": broken})
        assert excinfo.value.source == "google_ads"

    def test_source_unavailable_passes_through(self):
        def broken():
            raise SourceUnavailable("CSV is empty", source="google_csv")

        with pytest.raises(SourceUnavailable, match="CSV is empty"):
            fetch_sources({"google_csv": broken})

    def test_cache_hit_skips_fetcher(self, tmp_path):
        cache = CacheStore(tmp_path / "cache.db")
        calls = []

        def fetcher():
            calls.append(1)
            return _meta_result()

        first = fetch_sources({"meta_ads": fetcher}, cache, 900, "2024-05-01", "2024-05-15")
        second = fetch_sources({"meta_ads": fetcher}, cache, 900, "2024-05-01", "2024-05-15")
        assert len(calls) == 1
        assert second == first
        assert cache.hits == 1

    def test_cache_key_includes_range(self, tmp_path):
        cache = CacheStore(tmp_path / "cache.db")
        calls = []

        def fetcher():
            calls.append(1)
            return _meta_result()

        fetch_sources({"meta_ads": fetcher}, cache, 900, "2024-05-01", "2024-05-15")
        fetch_sources({"meta_ads": fetcher}, cache, 900, "2024-04-16", "2024-04-30")
        assert len(calls) == 2

    def test_cache_key_follows_active_only(self, tmp_path, monkeypatch):
        monkeypatch.setenv("META_AD_ACCOUNT_ID", "123")
        cache = CacheStore(tmp_path / "cache.db")
        cfg = AppConfig()
        live = Campaign("c1", "Leads Maio", Status.ACTIVE, CampaignObjective.OUTCOME_LEADS)
        paused = Campaign("c2", "Leads Abril", Status.PAUSED, CampaignObjective.OUTCOME_LEADS)
        calls = []

        def fetcher():
            calls.append(cfg.filters.active_only)
            campaigns = [live] if cfg.filters.active_only else [live, paused]
            return make_result(campaigns, "meta_ads")

        cfg.filters.active_only = True
        fetch_sources(
            {"meta_ads": fetcher}, cache, 900, "2024-05-01", "2024-05-15", cache_extra=source_cache_extra(cfg)
        )
        cfg.filters.active_only = False
        [result] = fetch_sources(
            {"meta_ads": fetcher}, cache, 900, "2024-05-01", "2024-05-15", cache_extra=source_cache_extra(cfg)
        )
        assert calls == [True, False]
        assert len(result.campaigns) == 2


def test_fetch_with_previous_uses_equal_length_window():
    def make_fetchers(date_from, date_to):
        return {"meta_ads": lambda: make_result([], "meta_ads", date_from=date_from, date_to=date_to)}

    current, previous = fetch_with_previous(make_fetchers, "2024-05-01", "2024-05-15")
    assert (current[0].date_from, current[0].date_to) == ("2024-05-01", "2024-05-15")
    assert (previous[0].date_from, previous[0].date_to) == ("2024-04-16", "2024-04-30")


def test_source_fetchers_follow_config():
    cfg = AppConfig()
    assert source_fetchers(cfg, "2024-05-01", "2024-05-15") == {}

    cfg.sources.meta_enabled = True
    cfg.sources.google_csv_url = "https://example.test/export.csv"
    assert list(source_fetchers(cfg, "2024-05-01", "2024-05-15")) == ["meta_ads", "google_csv"]

    cfg.sources.google_csv_url = ""
    cfg.sources.google_sheet_id = "sheet123"
    cfg.sources.google_api_enabled = True
    assert list(source_fetchers(cfg, "2024-05-01", "2024-05-15")) == ["meta_ads", "google_ads", "google_csv"]


def test_source_cache_extra_tracks_fetch_settings(monkeypatch):
    monkeypatch.setenv("META_AD_ACCOUNT_ID", "123")
    cfg = AppConfig()
    cfg.sources.google_customer_id = "987-654-3210"
    cfg.sources.google_csv_url = "https://example.test/export.csv"
    extra = source_cache_extra(cfg)
    assert extra["meta_ads"] == (False, "act_123")
    assert extra["google_ads"] == (False, "987-654-3210")
    assert extra["google_csv"] == ("https://example.test/export.csv", "")

    cfg.filters.active_only = True
    cfg.sources.google_csv_url = ""
    cfg.sources.google_sheet_id = "sheet123"
    extra = source_cache_extra(cfg)
    assert extra["meta_ads"][0] is True
    assert extra["google_csv"] == ("sheet123", cfg.sources.google_worksheet)


def test_fetch_with_previous_passes_cache_extra(tmp_path):
    cache = CacheStore(tmp_path / "cache.db")
    calls = []

    def make_fetchers(date_from, date_to):
        def fetch():
            calls.append(date_from)
            return make_result([], "google_csv", date_from=date_from, date_to=date_to)

        return {"google_csv": fetch}

    fetch_with_previous(make_fetchers, "2024-05-01", "2024-05-15", cache, 900, {"google_csv": ("a.csv",)})
    fetch_with_previous(make_fetchers, "2024-05-01", "2024-05-15", cache, 900, {"google_csv": ("b.csv",)})
    assert len(calls) == 4
