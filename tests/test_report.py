"""Tests for report summaries, prompt rendering and WhatsApp text."""

from __future__ import annotations

from datetime import datetime

import pytest

from mhub.aggregation import make_result
from mhub.config import AppConfig
from mhub.metrics import derive_metrics
from mhub.pipeline import build_dashboard
from mhub.providers.base import BaseProvider
from mhub.providers.mock_provider import MockProvider
from mhub.report import (
    ReportError,
    build_report_summary,
    format_whatsapp_report,
    generate_report,
    render_prompt,
    whatsapp_link,
)
from mhub.schema import Ad, AdSet, Campaign, CampaignObjective, Status

NOW = datetime(2024, 5, 15, 12, 0)


def _result(leads=2):
    ads = (
        Ad("a1", "Ad 1", Status.ACTIVE, derive_metrics(impressions=1000, reach=800, clicks=20, spend=50, leads=leads)),
        Ad("a2", "Ad 2", Status.PAUSED, derive_metrics(impressions=500, reach=400, clicks=5, spend=10)),
    )
    adset = AdSet("s1", "Conjunto 1", Status.ACTIVE, "c1", ads=ads)
    campaign = Campaign("c1", "Leads Maio", Status.ACTIVE, CampaignObjective.OUTCOME_LEADS, adsets=(adset,))
    return make_result([campaign], "meta_ads", date_from="2024-05-01", date_to="2024-05-15")


def _summary(previous=None):
    cfg = AppConfig()
    cfg.goals.monthly_goal = 10
    cfg.ranking.min_leads_threshold = 1
    dash = build_dashboard([_result()], cfg, now=NOW, previous_sources=previous)
    return build_report_summary(dash)


class StubProvider(BaseProvider):
    def __init__(self, text):
        self.text = text
        self.calls = []

    def generate(self, prompt, system="", max_tokens=2048):
        self.calls.append(max_tokens)
        return self.text


# ─────────────────────────────────────────────────────────────────────────────
# Summary
# ─────────────────────────────────────────────────────────────────────────────


class TestReportSummary:
    def test_headline_fields(self):
        s = _summary()
        assert s["period"] == "2024-05-01 a 2024-05-15"
        assert s["data_sources"] == ["Meta Ads"]
        assert s["active_campaigns"] == 1
        assert s["dominant_objective"] == "OUTCOME_LEADS"
        assert s["leads"] == 2
        assert s["spend"] == pytest.approx(60.0)
        assert s["cpl"] == pytest.approx(30.0)

    def test_goal_fields(self):
        s = _summary()
        assert s["goal"] == 10
        assert s["goal_metric"] == "leads"
        assert s["goal_label"] == "Meta de Leads"
        assert s["goal_unit"] == "leads"
        assert s["status"] == "danger"
        assert s["days_elapsed"] == 15
        assert s["days_remaining"] == 16
        assert s["projected"] == pytest.approx(2 / (15 / 31))
        assert s["average_daily_rate"] == pytest.approx(2 / 15)
        assert s["conversion_rate"] == pytest.approx(8.0)

    def test_top_items_use_primary_ranking(self):
        s = _summary()
        assert s["top_adsets_metric"] == "CPL"
        assert [i["name"] for i in s["top_ads"]] == ["Ad 1"]
        assert s["top_ads"][0]["main_value_text"] == "R$ 25,00"

    def test_changes_absent_without_previous_period(self):
        s = _summary()
        assert s["leads_change"] is None
        assert s["goal_change"] is None

    def test_changes_with_previous_period(self):
        s = _summary(previous=[_result(leads=4)])
        assert s["leads_change"] == pytest.approx(-50.0)
        assert s["goal_change"] == pytest.approx(-50.0)
        assert s["spend_change"] == 0.0

    def test_explicit_period_label(self):
        cfg = AppConfig()
        dash = build_dashboard([_result()], cfg, now=NOW)
        assert build_report_summary(dash, period="Maio/2024")["period"] == "Maio/2024"


# ─────────────────────────────────────────────────────────────────────────────
# Prompt + provider
# ─────────────────────────────────────────────────────────────────────────────


class TestRenderPrompt:
    def test_daily_prompt_contains_formatted_values(self):
        prompt = render_prompt("daily", _summary())
        assert prompt.startswith("TAREFA")
        assert "- Leads: 2" in prompt
        assert "- Investimento: R$ 60,00" in prompt
        assert "- CPL médio: R$ 30,00" in prompt
        assert "Meta Ads" in prompt

    def test_leads_change_line_only_with_comparison(self):
        assert "Variação de leads" not in render_prompt("daily", _summary())
        assert "-50.0%" in render_prompt("daily", _summary(previous=[_result(leads=4)]))

    @pytest.mark.parametrize("report_type", ["daily", "weekly", "performance", "leads"])
    def test_every_type_renders(self, report_type):
        assert "- Leads: 2" in render_prompt(report_type, _summary())

    def test_unknown_type_raises(self):
        with pytest.raises(ReportError, match="Unknown report type"):
            render_prompt("monthly", _summary())


class TestGenerateReport:
    @pytest.mark.parametrize(
        "report_type, title",
        [
            ("daily", "## Relatório Diário"),
            ("weekly", "## Relatório Semanal"),
            ("performance", "## Análise de Performance"),
            ("leads", "## Relatório de Leads"),
        ],
    )
    def test_mock_provider_report(self, report_type, title):
        text = generate_report(MockProvider(), _summary(), report_type)
        assert text.startswith(title)
        assert "- Leads: 2" in text
        assert "- CPL médio: R$ 30,00" in text

    def test_mock_provider_logs_calls(self):
        provider = MockProvider()
        generate_report(provider, _summary(), "daily")
        generate_report(provider, _summary(), "weekly")
        stats = provider.stats()
        assert stats["call_log"] == ["daily", "weekly"]
        assert stats["call_count"] == 2
        assert stats["total_tokens"] == 0

    def test_markdown_fences_stripped(self):
        provider = StubProvider("```markdown\n## Relatório\n\nTudo certo.\n```")
        assert generate_report(provider, _summary()) == "## Relatório\n\nTudo certo."

    def test_max_tokens_forwarded(self):
        provider = StubProvider("ok")
        generate_report(provider, _summary(), max_tokens=800)
        assert provider.calls == [800]

    def test_empty_response_raises(self):
        with pytest.raises(ReportError, match="empty"):
            generate_report(StubProvider("```\n```"), _summary())


# ─────────────────────────────────────────────────────────────────────────────
# WhatsApp
# ─────────────────────────────────────────────────────────────────────────────


class TestWhatsapp:
    def test_daily_text(self):
        lines = format_whatsapp_report(_summary()).splitlines()
        assert lines[0] == "📊 *Relatório Diário - Launx Metrics*"
        assert "📅 Período: 2024-05-01 a 2024-05-15" in lines
        assert "📱 Fontes: Meta Ads" in lines
        assert "*📈 Leads*" in lines
        assert "├ Acumulado: 2/10 (20,00%)" in lines
        assert "└ Faltam: 8 leads" in lines
        assert "├ Total: R$ 60,00" in lines
        assert "├ CPL médio: R$ 30,00" in lines
        assert lines[-1] == "*Status: 🚨 Meta em risco*"
        assert not any(line.startswith("⏰") for line in lines)

    def test_weekly_text_has_days_remaining(self):
        text = format_whatsapp_report(_summary(), "weekly", app_name="Agência X")
        assert text.startswith("📊 *Resumo Semanal - Agência X*")
        assert "⏰ Dias restantes: 16 | Necessário/dia: 0.5" in text

    def test_change_line(self):
        text = format_whatsapp_report(_summary(previous=[_result(leads=4)]))
        assert "├ Variação: ⬇️ -50.0% vs período anterior" in text

    def test_neutral_status_without_goal(self):
        dash = build_dashboard([_result()], AppConfig(), now=NOW)
        text = format_whatsapp_report(build_report_summary(dash))
        assert text.endswith("*Status: ➖ Sem meta definida*")


@pytest.mark.parametrize(
    "phone, prefix",
    [
        ("(11) 98765-4321", "https://wa.me/5511987654321?text="),
        ("+55 11 98765-4321", "https://wa.me/5511987654321?text="),
        ("011 98765-4321", "https://wa.me/551198765432"),
    ],
)
def test_whatsapp_link_adds_country_code(phone, prefix):
    assert whatsapp_link(phone, "oi").startswith(prefix)


def test_whatsapp_link_encodes_message():
    assert whatsapp_link("11987654321", "Olá mundo").endswith("?text=Ol%C3%A1%20mundo")
