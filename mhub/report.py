"""AI report generation and WhatsApp-ready text summaries."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from jinja2 import Template

from mhub.metrics import format_currency, format_metric, format_number, format_percent
from mhub.objectives import METRIC_DEFINITIONS
from mhub.pipeline import Dashboard
from mhub.providers.base import ANALYST_SYSTEM_PROMPT, BaseProvider

logger = logging.getLogger(__name__)

REPORT_TYPES = ("daily", "weekly", "performance", "leads")

_REPORT_FOCUS = {
    "daily": "Foque no ritmo do dia em relação à meta e em ajustes imediatos.",
    "weekly": "Foque nas tendências da semana e no plano para a próxima.",
    "performance": "Compare conjuntos e anúncios e aponte onde realocar investimento.",
    "leads": "Foque em volume, custo por lead e qualidade dos leads.",
}

_PROMPTS_DIR = Path(__file__).parent / "prompts"

_SOURCE_LABELS = {
    "meta_ads": "Meta Ads",
    "google_ads": "Google Ads",
    "google_csv": "Google Ads (CSV)",
}


class ReportError(ValueError):
    pass


# ─────────────────────────────────────────────────────────────────────────────
# Summary
# ─────────────────────────────────────────────────────────────────────────────


def _ranking_items(rankings, level: str) -> tuple:
    ranked = rankings.get(level) or []
    if not ranked:
        return "", []
    first = ranked[0]
    items = []
    for item in first.items:
        d = item.to_dict()
        d["main_value_text"] = format_metric(first.metric, item.main_value)
        items.append(d)
    return first.label, items


def build_report_summary(dashboard: Dashboard, period: Optional[str] = None) -> Dict[str, Any]:
    """Flatten a dashboard into the numeric summary reports are written from."""
    result = dashboard.result
    totals = result.totals
    goal = dashboard.goal
    fraction = goal.expected_percent / 100
    current = dashboard.goal_value

    definition = METRIC_DEFINITIONS.get(dashboard.goal_metric)
    adsets_metric, top_adsets = _ranking_items(dashboard.rankings, "adsets")
    ads_metric, top_ads = _ranking_items(dashboard.rankings, "ads")
    dominant = dashboard.classification.dominant_objective

    if not period:
        if result.date_from and result.date_to:
            period = f"{result.date_from} a {result.date_to}"
        else:
            period = dashboard.generated_at.strftime("%d/%m/%Y")

    return {
        "period": period,
        "date_from": result.date_from,
        "date_to": result.date_to,
        "data_sources": [
            _SOURCE_LABELS.get(s, s) for s in result.source.split("+") if s
        ],
        "active_campaigns": sum(1 for c in result.campaigns if c.status.value == "ACTIVE"),
        "dominant_objective": dominant.value if dominant else None,
        **totals.to_dict(),
        "goal": dashboard.goal_target,
        "goal_metric": dashboard.goal_metric,
        "goal_label": dashboard.classification.dominant_config.goal_label,
        "goal_unit": (definition.label if definition else dashboard.goal_metric).lower(),
        "goal_value": current,
        "progress_percent": goal.progress_percent,
        "expected_percent": goal.expected_percent,
        "status": goal.status,
        "status_label": goal.label,
        "projected": current / fraction if fraction > 0 else current,
        "average_daily_rate": current / goal.days_elapsed if goal.days_elapsed else 0.0,
        "days_elapsed": goal.days_elapsed,
        "days_remaining": goal.days_remaining,
        "total_days": goal.total_days,
        "conversion_rate": dashboard.conversion_rates.get("click_to_lead", 0.0),
        "goal_change": dashboard.comparison.get(dashboard.goal_metric),
        "leads_change": dashboard.comparison.get("leads"),
        "spend_change": dashboard.comparison.get("spend"),
        "cpl_change": dashboard.comparison.get("cpl"),
        "top_adsets_metric": adsets_metric,
        "top_adsets": top_adsets,
        "top_ads_metric": ads_metric,
        "top_ads": top_ads,
        "alerts": [a.message for a in dashboard.alerts],
    }


def format_summary(summary: Dict[str, Any]) -> Dict[str, str]:
    """Display strings (pt-BR) for the summary's numeric fields."""
    out: Dict[str, str] = {}
    for key in ("impressions", "reach", "clicks", "spend", "leads", "sales", "ctr", "cpc", "cpm", "cpl", "cps"):
        out[key] = format_metric(key, summary.get(key, 0) or 0)
    out["goal"] = format_number(summary.get("goal", 0) or 0)
    out["projected"] = format_number(summary.get("projected", 0) or 0)
    out["progress_percent"] = format_percent(summary.get("progress_percent", 0) or 0)
    out["expected_percent"] = format_percent(summary.get("expected_percent", 0) or 0)
    return out


# ─────────────────────────────────────────────────────────────────────────────
# LLM report
# ─────────────────────────────────────────────────────────────────────────────


def _load_template(report_type: str) -> Template:
    if report_type not in REPORT_TYPES:
        raise ReportError(
            f"Unknown report type {report_type!r}. Expected one of: {', '.join(REPORT_TYPES)}"
        )
    path = _PROMPTS_DIR / f"report_{report_type}.txt"
    return Template(path.read_text(encoding="utf-8"))


def render_prompt(report_type: str, summary: Dict[str, Any]) -> str:
    return _load_template(report_type).render(s=summary, f=format_summary(summary))


def system_prompt(report_type: str) -> str:
    """Analyst voice plus the focus of ``report_type``."""
    return f"{ANALYST_SYSTEM_PROMPT} {_REPORT_FOCUS.get(report_type, '')}".strip()


def _clean_report(raw: str) -> str:
    text = raw.strip()
    # Strip markdown fences
    text = re.sub(r"^```(?:markdown|md)?\s*", "", text)
    text = re.sub(r"\s*```$", "", text)
    return text.strip()


def generate_report(
    provider: BaseProvider,
    summary: Dict[str, Any],
    report_type: str = "daily",
    max_tokens: int = 0,
) -> str:
    """Render the prompt for ``report_type`` and return the provider's report text.

    The provider gets the report type's system prompt; ``max_tokens=0``
    leaves the output cap to the provider's configured default.
    """
    prompt = render_prompt(report_type, summary)
    logger.info("Generating %s report (%d prompt chars)", report_type, len(prompt))
    raw = provider.generate(prompt, system=system_prompt(report_type), max_tokens=max_tokens)
    text = _clean_report(raw)
    if not text:
        raise ReportError("Provider returned an empty report.")
    return text


# ─────────────────────────────────────────────────────────────────────────────
# WhatsApp text
# ─────────────────────────────────────────────────────────────────────────────

_STATUS_LINE = {
    "success": "✅ Meta garantida",
    "warning": "⚠️ Atenção",
    "danger": "🚨 Meta em risco",
    "neutral": "➖ Sem meta definida",
}


def _change(value: Optional[float]) -> str:
    if value is None:
        return ""
    arrow = "⬆️" if value >= 0 else "⬇️"
    return f"{arrow} {value:+.1f}%"


def format_whatsapp_report(
    summary: Dict[str, Any],
    report_type: str = "daily",
    app_name: str = "Launx Metrics",
) -> str:
    """Plain-text report for sharing over WhatsApp (``*bold*`` markup)."""
    unit = summary.get("goal_unit", "leads")
    goal = summary.get("goal", 0) or 0
    current = summary.get("goal_value", 0) or 0
    remaining = max(0.0, goal - current)
    title = {"daily": "Relatório Diário", "weekly": "Resumo Semanal"}.get(report_type, "Resumo")

    lines: List[str] = [f"📊 *{title} - {app_name}*", f"📅 Período: {summary.get('period', '')}", ""]
    if summary.get("data_sources"):
        lines += [f"📱 Fontes: {', '.join(summary['data_sources'])}", ""]

    lines.append(f"*📈 {unit.capitalize()}*")
    lines.append(
        f"├ Acumulado: {format_number(current)}/{format_number(goal)} "
        f"({format_percent(summary.get('progress_percent', 0))})"
    )
    lines.append(f"├ Projeção: {format_number(summary.get('projected', 0))} {unit}")
    if summary.get("goal_change") is not None:
        lines.append(f"├ Variação: {_change(summary['goal_change'])} vs período anterior")
    lines.append(f"└ Faltam: {format_number(remaining)} {unit}")

    lines += ["", "*💰 Investimento*", f"├ Total: {format_currency(summary.get('spend', 0))}"]
    if summary.get("cpl"):
        lines.append(f"├ CPL médio: {format_currency(summary['cpl'])}")
    if summary.get("cpc"):
        lines.append(f"├ CPC: {format_currency(summary['cpc'])}")
    lines.append(f"└ CPM: {format_currency(summary.get('cpm', 0))}")

    lines += [
        "",
        "*👁️ Alcance & Engajamento*",
        f"├ Impressões: {format_number(summary.get('impressions', 0))}",
        f"├ Cliques: {format_number(summary.get('clicks', 0))}",
        f"└ CTR: {format_percent(summary.get('ctr', 0))}",
    ]

    if report_type == "weekly" and summary.get("days_remaining"):
        per_day = remaining / max(1, summary["days_remaining"])
        lines += ["", f"⏰ Dias restantes: {summary['days_remaining']} | Necessário/dia: {per_day:.1f}"]

    lines += ["", f"*Status: {_STATUS_LINE.get(summary.get('status', 'neutral'), '')}*"]
    return "\n".join(lines)


def whatsapp_link(phone_number: str, message: str) -> str:
    """wa.me share link; Brazilian numbers get the 55 country code."""
    digits = re.sub(r"\D", "", phone_number)
    if digits.startswith("0"):
        digits = "55" + digits[1:]
    elif not digits.startswith("55"):
        digits = "55" + digits
    return f"https://wa.me/{digits}?text={quote(message)}"
