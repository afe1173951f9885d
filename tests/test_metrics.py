"""Tests for mhub/metrics.py: derived ratios, currency units and rounding."""

from __future__ import annotations

import math

import pytest

from mhub.metrics import (
    derive_metrics,
    format_currency,
    format_metric,
    format_number,
    format_percent,
    micros_to_currency,
    round_half_up,
    rounded,
    safe_divide,
    sum_counters,
)

# ─────────────────────────────────────────────────────────────────────────────
# derive_metrics
# ─────────────────────────────────────────────────────────────────────────────


class TestDeriveMetrics:
    def test_all_zero_counters_give_all_zero_ratios(self):
        m = derive_metrics(
            {"impressions": 0, "clicks": 0, "spend": 0, "leads": 0, "sales": 0, "reach": 0}
        )
        for value in m.to_dict().values():
            assert value == 0
            assert not math.isnan(value)

    def test_ratios_from_counters(self):
        m = derive_metrics({"impressions": 1500, "clicks": 25, "spend": 60, "leads": 2})
        assert m.ctr == pytest.approx(25 / 1500 * 100)
        assert m.cpc == pytest.approx(2.4)
        assert m.cpm == pytest.approx(40.0)
        assert m.cpl == pytest.approx(30.0)
        assert m.cps == 0.0

    def test_keyword_counters_override_base(self):
        m = derive_metrics({"clicks": 10, "spend": 10}, spend=20)
        assert m.cpc == pytest.approx(2.0)

    def test_string_and_nan_inputs_are_coerced(self):
        m = derive_metrics(impressions="1000", clicks="10", spend=float("nan"))
        assert m.impressions == 1000
        assert m.spend == 0.0
        assert m.cpc == 0.0

    def test_missing_counters_default_to_zero(self):
        m = derive_metrics()
        assert m.impressions == 0
        assert m.spend == 0.0


def test_safe_divide_zero_denominator():
    assert safe_divide(5, 0) == 0.0
    assert safe_divide(5, 2) == 2.5


def test_micros_to_currency():
    assert micros_to_currency(50_000_000) == 50.0
    assert micros_to_currency("1234567") == pytest.approx(1.234567)
    assert micros_to_currency(None) == 0.0


def test_sum_counters_rederives_ratios():
    a = derive_metrics(impressions=1000, clicks=20, spend=50, leads=2)
    b = derive_metrics(impressions=500, clicks=5, spend=10, leads=0)
    total = sum_counters([a, b])
    assert total.clicks == 25
    assert total.ctr == pytest.approx(25 / 1500 * 100)
    # not the mean of the children's ctr
    assert total.ctr != pytest.approx((a.ctr + b.ctr) / 2)


# ─────────────────────────────────────────────────────────────────────────────
# Rounding and display
# ─────────────────────────────────────────────────────────────────────────────


class TestRounding:
    def test_half_up_not_bankers(self):
        assert round_half_up(2.5) == 3.0
        assert round_half_up(3.5) == 4.0

    def test_two_decimals(self):
        assert round_half_up(1.005, 2) == 1.01
        assert round_half_up(1.6666666, 2) == 1.67

    def test_negative_rounds_away_from_zero(self):
        assert round_half_up(-2.5) == -3.0

    def test_rounded_dict(self):
        m = derive_metrics({"impressions": 1500, "clicks": 25, "spend": 60, "leads": 2})
        out = rounded(m)
        assert out["ctr"] == 1.67
        assert out["cpc"] == 2.4
        assert out["cpl"] == 30.0
        assert out["impressions"] == 1500


class TestFormatting:
    def test_currency_ptbr(self):
        assert format_currency(1234.56) == "R$ 1.234,56"
        assert format_currency(0) == "R$ 0,00"

    def test_percent_ptbr(self):
        assert format_percent(1.6667) == "1,67%"

    def test_number_ptbr(self):
        assert format_number(1234567) == "1.234.567"

    def test_format_metric_dispatch(self):
        assert format_metric("cpl", 30) == "R$ 30,00"
        assert format_metric("ctr", 2.5) == "2,50%"
        assert format_metric("clicks", 1500) == "1.500"
