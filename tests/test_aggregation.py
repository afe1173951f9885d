"""Tests for mhub/aggregation.py: roll-up, source merge and filters."""

from __future__ import annotations

import pytest

from mhub.aggregation import (
    aggregate,
    combine_sources,
    filter_campaigns,
    leads_focused_totals,
    make_result,
    merge_sparklines,
    roll_up,
)
from mhub.metrics import derive_metrics
from mhub.schema import Ad, AdSet, Campaign, CampaignObjective, SparklinePoint, Status


def _ad(ad_id, status=Status.ACTIVE, **counters):
    return Ad(ad_id, f"Ad {ad_id}", status, derive_metrics(counters))


def _campaign(cid="c1", objective=CampaignObjective.OUTCOME_LEADS, status=Status.ACTIVE, adsets=None, **counters):
    if adsets is None:
        adsets = (
            AdSet(
                f"{cid}-s1",
                "Conjunto 1",
                Status.ACTIVE,
                cid,
                ads=(
                    _ad(f"{cid}-a1", impressions=1000, clicks=20, spend=50, leads=2),
                    _ad(f"{cid}-a2", Status.PAUSED, impressions=500, clicks=5, spend=10, leads=0),
                ),
            ),
        )
    return Campaign(cid, f"Campanha {cid}", status, objective, derive_metrics(counters), adsets=adsets)


# ─────────────────────────────────────────────────────────────────────────────
# Roll-up
# ─────────────────────────────────────────────────────────────────────────────


class TestRollUp:
    def test_parent_metrics_recomputed_from_ads(self):
        [c] = roll_up([_campaign()])
        m = c.metrics
        assert m.impressions == 1500
        assert m.clicks == 25
        assert m.spend == pytest.approx(60.0)
        assert m.leads == 2
        assert m.ctr == pytest.approx(25 / 1500 * 100)
        assert m.cpc == pytest.approx(2.4)
        assert m.cpm == pytest.approx(40.0)
        assert m.cpl == pytest.approx(30.0)
        assert c.adsets[0].metrics == m

    def test_stale_parent_metrics_are_replaced(self):
        [c] = roll_up([_campaign(impressions=999999, spend=1)])
        assert c.metrics.impressions == 1500

    def test_active_only_drops_paused_ads_before_summing(self):
        [c] = roll_up([_campaign()], active_only=True)
        assert [a.id for a in c.adsets[0].ads] == ["c1-a1"]
        assert c.metrics.impressions == 1000
        assert c.metrics.ctr == pytest.approx(2.0)
        assert c.metrics.cpl == pytest.approx(25.0)

    def test_active_only_drops_paused_campaign(self):
        assert roll_up([_campaign(status=Status.PAUSED)], active_only=True) == []

    def test_childless_campaign_keeps_reported_metrics(self):
        [c] = roll_up([_campaign(adsets=(), impressions=100, clicks=10, spend=5)])
        assert c.metrics.impressions == 100
        assert c.metrics.cpc == pytest.approx(0.5)

    def test_aggregate_totals(self):
        totals = aggregate([_campaign("c1"), _campaign("c2")])
        assert totals.impressions == 3000
        assert totals.cpl == pytest.approx(30.0)

    def test_empty_input(self):
        assert roll_up([]) == []
        assert aggregate([]).spend == 0.0


# ─────────────────────────────────────────────────────────────────────────────
# Sources
# ─────────────────────────────────────────────────────────────────────────────


def test_merge_sparklines_sums_same_date_and_sorts():
    merged = merge_sparklines(
        [
            [SparklinePoint("2024-05-02", clicks=1), SparklinePoint("2024-05-01", clicks=2)],
            [SparklinePoint("2024-05-01", clicks=3, spend=1.5)],
        ]
    )
    assert [p.date for p in merged] == ["2024-05-01", "2024-05-02"]
    assert merged[0].clicks == 5
    assert merged[0].spend == pytest.approx(1.5)


class TestCombineSources:
    def test_two_sources_flag_additive_reach(self):
        meta = make_result(
            [_campaign("m1")], "meta_ads",
            sparkline=[SparklinePoint("2024-05-01", reach=100)],
            date_from="2024-05-01", date_to="2024-05-31",
        )
        google = make_result(
            [_campaign("g1", CampaignObjective.SEARCH)], "google_ads",
            sparkline=[SparklinePoint("2024-05-01", reach=50)],
            date_from="2024-05-01", date_to="2024-05-31",
        )
        combined = combine_sources([meta, google])
        assert combined.reach_is_additive is True
        assert combined.source == "meta_ads+google_ads"
        assert combined.totals.impressions == 3000
        assert combined.sparkline[0].reach == 150
        assert [c.id for c in combined.campaigns] == ["m1", "g1"]
        assert combined.date_from == "2024-05-01"

    def test_single_source_is_returned_unchanged(self):
        meta = make_result([_campaign()], "meta_ads")
        combined = combine_sources([meta])
        assert combined is meta
        assert combined.reach_is_additive is False

    def test_empty_source_does_not_count_as_contributing(self):
        meta = make_result([_campaign()], "meta_ads")
        empty = make_result([], "google_csv")
        assert combine_sources([meta, empty]).reach_is_additive is False

    def test_active_only_applies_to_single_source(self):
        meta = make_result([_campaign()], "meta_ads")
        combined = combine_sources([meta], active_only=True)
        assert combined.totals.impressions == 1000


# ─────────────────────────────────────────────────────────────────────────────
# Filters
# ─────────────────────────────────────────────────────────────────────────────


class TestFilterCampaigns:
    def test_status_and_objective(self):
        campaigns = [
            _campaign("c1"),
            _campaign("c2", CampaignObjective.OUTCOME_TRAFFIC),
            _campaign("c3", status=Status.PAUSED),
        ]
        kept = filter_campaigns(campaigns, statuses=[Status.ACTIVE])
        assert [c.id for c in kept] == ["c1", "c2"]
        kept = filter_campaigns(campaigns, objectives=[CampaignObjective.OUTCOME_TRAFFIC])
        assert [c.id for c in kept] == ["c2"]

    def test_query_on_campaign_keeps_subtree(self):
        kept = filter_campaigns([_campaign("c1")], query="campanha")
        assert len(kept[0].adsets[0].ads) == 2

    def test_query_on_ad_keeps_only_matches(self):
        kept = filter_campaigns([_campaign("c1"), _campaign("c2")], query="ad c1-a2")
        assert [c.id for c in kept] == ["c1"]
        assert [a.id for a in kept[0].adsets[0].ads] == ["c1-a2"]

    def test_no_match(self):
        assert filter_campaigns([_campaign()], query="xyz") == []


def test_leads_focused_totals_only_counts_lead_objectives():
    campaigns = roll_up(
        [
            _campaign("c1", CampaignObjective.OUTCOME_LEADS),
            _campaign("c2", CampaignObjective.SEARCH),
            _campaign("c3", CampaignObjective.OUTCOME_AWARENESS),
        ]
    )
    totals = leads_focused_totals(campaigns)
    assert totals.spend == pytest.approx(120.0)
    assert totals.leads == 4
