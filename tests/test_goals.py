"""Tests for mhub/goals.py: expected progress and pacing status."""

from __future__ import annotations

from datetime import datetime

import pytest

from mhub.goals import CampaignPeriod, GoalThresholds, evaluate_progress, expected_progress

NOW = datetime(2024, 5, 15, 12, 0)  # Wednesday


class TestExpectedProgress:
    def test_monthly(self):
        fraction, elapsed, total, remaining = expected_progress("monthly", None, NOW)
        assert fraction == pytest.approx(15 / 31)
        assert (elapsed, total, remaining) == (15, 31, 16)

    def test_weekly_counts_from_monday(self):
        fraction, elapsed, total, remaining = expected_progress("weekly", None, NOW)
        assert fraction == pytest.approx(3 / 7)
        assert (elapsed, total, remaining) == (3, 7, 4)

    def test_daily_uses_hour(self):
        assert expected_progress("daily", None, NOW) == (0.5, 1, 1, 0)

    def test_custom_period_before_start(self):
        period = CampaignPeriod("2024-06-01", "2024-06-10", use_current_month=False)
        assert expected_progress("monthly", period, NOW) == (0.0, 0, 10, 10)

    def test_custom_period_after_end(self):
        period = CampaignPeriod("2024-05-01", "2024-05-10", use_current_month=False)
        assert expected_progress("monthly", period, NOW) == (1.0, 10, 10, 0)

    def test_custom_period_inside(self):
        period = CampaignPeriod("2024-05-11", "2024-05-20", use_current_month=False)
        fraction, elapsed, total, remaining = expected_progress("monthly", period, NOW)
        assert fraction == pytest.approx(0.5)
        assert (elapsed, total, remaining) == (5, 10, 5)

    def test_custom_period_ignored_with_current_month(self):
        period = CampaignPeriod("2024-05-11", "2024-05-20", use_current_month=True)
        assert expected_progress("monthly", period, NOW)[2] == 31


class TestEvaluateProgress:
    def test_on_pace_is_success(self):
        result = evaluate_progress(50, 100, now=NOW)
        assert result.status == "success"
        assert result.label == "No caminho"
        assert result.progress_percent == pytest.approx(50.0)
        assert result.expected_percent == pytest.approx(15 / 31 * 100)
        assert result.progress_ratio == pytest.approx(0.5 / (15 / 31) * 100)

    def test_warning_band(self):
        assert evaluate_progress(30, 100, now=NOW).status == "warning"

    def test_danger_band(self):
        assert evaluate_progress(10, 100, now=NOW).status == "danger"

    def test_custom_thresholds(self):
        thresholds = GoalThresholds(danger=10, warning=20)
        assert evaluate_progress(10, 100, thresholds=thresholds, now=NOW).status == "success"

    def test_zero_target_is_neutral(self):
        result = evaluate_progress(40, 0, now=NOW)
        assert result.status == "neutral"
        assert result.progress_percent == 0.0

    def test_progress_percent_caps_at_100(self):
        result = evaluate_progress(250, 100, now=NOW)
        assert result.progress_percent == 100.0
        assert result.progress_ratio > 100

    def test_zero_expected_uses_raw_share(self):
        midnight = datetime(2024, 5, 15, 0, 0)
        result = evaluate_progress(60, 100, period_type="daily", now=midnight)
        assert result.expected_percent == 0.0
        assert result.progress_ratio == pytest.approx(60.0)
        assert result.status == "warning"

    def test_to_dict(self):
        d = evaluate_progress(50, 100, now=NOW).to_dict()
        assert d["days_remaining"] == 16
        assert d["status"] == "success"
