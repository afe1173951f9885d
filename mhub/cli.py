"""CLI entry point for Launx Metrics Hub."""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional, Tuple

import click
from dotenv import load_dotenv

from mhub import __version__
from mhub.config import ConfigError, load_config
from mhub.config_google_ads import GoogleAdsConfigError
from mhub.config_meta_ads import MetaAdsConfigError
from mhub.errors import SourceUnavailable
from mhub.funnel import LeadsKpis
from mhub.io_csv import read_json_payload, read_text, write_campaigns_csv, write_json, write_report
from mhub.metrics import format_metric
from mhub.schema import SourceResult


def _get_provider(cfg, mode: str):
    """Return the appropriate provider based on mode."""
    if mode == "dry":
        from mhub.providers.mock_provider import MockProvider

        return MockProvider()
    else:
        from mhub.providers.anthropic_provider import AnthropicProvider

        pcfg = cfg.provider
        return AnthropicProvider(
            model=pcfg.model,
            temperature=pcfg.temperature,
            max_tokens=pcfg.max_tokens,
            retry_cfg=cfg.retry_api,
            budget_cfg=cfg.budget,
        )


def _date_range(date_from: Optional[str], date_to: Optional[str]) -> Tuple[str, str]:
    """Default to month-to-date."""
    today = date.today()
    return (
        date_from or today.replace(day=1).isoformat(),
        date_to or today.isoformat(),
    )


def _load_cfg(config_path: str):
    try:
        return load_config(config_path)
    except ConfigError as exc:
        raise click.ClickException(str(exc))


def _collect_sources(
    cfg,
    meta_json: Tuple[str, ...],
    google_csv: Tuple[str, ...],
    google_csv_url: Optional[str],
    date_from: str,
    date_to: str,
    live: bool,
    compare: bool = False,
) -> Tuple[List[SourceResult], Optional[List[SourceResult]]]:
    """Build source results from local files / URL, or from the configured live sources."""
    from mhub.connectors.google_sheets import fetch_csv_text, parse_google_ads_csv
    from mhub.connectors.meta_ads import normalize_meta_payload
    from mhub.pipeline import (
        fetch_sources,
        fetch_with_previous,
        make_cache_store,
        source_cache_extra,
        source_fetchers,
    )

    try:
        if live:
            cache = make_cache_store(cfg)
            ttl = cfg.cache.ttl_seconds
            extra = source_cache_extra(cfg)
            make_fetchers = lambda f, t: source_fetchers(cfg, f, t)  # noqa: E731
            if not make_fetchers(date_from, date_to):
                raise click.ClickException(
                    "No live source enabled. Set sources.* in config.yaml."
                )
            if compare:
                return fetch_with_previous(make_fetchers, date_from, date_to, cache, ttl, cache_extra=extra)
            current = fetch_sources(
                make_fetchers(date_from, date_to), cache, ttl, date_from, date_to, cache_extra=extra
            )
            return current, None

        sources: List[SourceResult] = []
        for path in meta_json:
            sources.append(normalize_meta_payload(read_json_payload(path), date_from, date_to))
        for path in google_csv:
            sources.append(parse_google_ads_csv(read_text(path), date_from, date_to))
        if google_csv_url:
            sources.append(parse_google_ads_csv(fetch_csv_text(google_csv_url), date_from, date_to))
    except SourceUnavailable as exc:
        raise click.ClickException(f"Source unavailable: {exc}")
    except (MetaAdsConfigError, GoogleAdsConfigError) as exc:
        raise click.ClickException(str(exc))

    if not sources:
        raise click.ClickException(
            "No input given. Use --meta-json, --google-csv, --google-csv-url or --live."
        )
    return sources, None


def _source_options(f):
    f = click.option("--live", is_flag=True, help="Fetch from the sources enabled in config.yaml")(f)
    f = click.option("--google-csv-url", default=None, help="Published Google Ads CSV URL")(f)
    f = click.option("--google-csv", multiple=True, type=click.Path(exists=True), help="Google Ads CSV export")(f)
    f = click.option("--meta-json", multiple=True, type=click.Path(exists=True), help="Meta payload JSON")(f)
    f = click.option("--to", "date_to", default=None, help="End date YYYY-MM-DD (default: today)")(f)
    f = click.option("--from", "date_from", default=None, help="Start date YYYY-MM-DD (default: 1st of month)")(f)
    f = click.option("--config", "config_path", default="config.yaml", help="Config file path")(f)
    return f


def _build(cfg, meta_json, google_csv, google_csv_url, date_from, date_to, live, compare, leads_json=None):
    from mhub.pipeline import build_dashboard

    date_from, date_to = _date_range(date_from, date_to)
    sources, previous = _collect_sources(
        cfg, meta_json, google_csv, google_csv_url, date_from, date_to, live, compare
    )
    kpis = LeadsKpis.from_dict(read_json_payload(leads_json)) if leads_json else None
    return build_dashboard(sources, cfg, previous_sources=previous, leads_kpis=kpis)


@click.group()
@click.version_option(version=__version__, prog_name="mhub")
@click.option("-v", "--verbose", count=True, help="-v for info logs, -vv for debug")
def cli(verbose: int):
    """Launx Metrics Hub: objective-adaptive ad metrics."""
    load_dotenv()
    level = logging.WARNING if not verbose else (logging.INFO if verbose == 1 else logging.DEBUG)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@cli.command()
@_source_options
@click.option("--compare", is_flag=True, help="Also fetch the previous period (with --live)")
@click.option("--leads-json", type=click.Path(exists=True), default=None, help="Leads CRM KPIs JSON")
@click.option("--out", "out_path", default="output/dashboard.json", show_default=True, help="Dashboard JSON path")
@click.option("--csv-out", "csv_path", default=None, help="Optional flattened per-ad CSV")
def dashboard(config_path, date_from, date_to, meta_json, google_csv, google_csv_url, live,
              compare, leads_json, out_path, csv_path):
    """Build the dashboard snapshot (totals, rankings, funnels, goal)."""
    cfg = _load_cfg(config_path)
    dash = _build(cfg, meta_json, google_csv, google_csv_url, date_from, date_to, live, compare, leads_json)

    totals = dash.totals
    cls = dash.classification
    click.echo(f"📊 Sources: {dash.result.source or '-'}  |  Campaigns: {len(dash.result.campaigns)}")
    click.echo(
        f"🎯 Dominant objective: "
        f"{cls.dominant_objective.value if cls.dominant_objective else '-'}"
        f"{'  (mixed)' if cls.is_mixed else ''}"
    )
    for key in cls.dominant_config.kpi_priority[:6]:
        line = f"   {key.upper():<12} {format_metric(key, totals.get(key))}"
        change = dash.comparison.get(key)
        if change is not None:
            line += f"  ({change:+.1f}%)"
        click.echo(line)
    if dash.result.reach_is_additive:
        click.echo("   ⚠️  Reach summed across platforms (not de-duplicated)")
    click.echo(
        f"📈 Goal: {dash.goal.label}  {dash.goal.progress_percent:.1f}% "
        f"(expected {dash.goal.expected_percent:.1f}%)"
    )
    for alert in dash.alerts:
        click.echo(f"🚨 {alert.message}")

    write_json(dash.to_dict(), out_path)
    click.echo(f"✅ Dashboard written to {out_path}")
    if csv_path:
        write_campaigns_csv(dash.result.campaigns, csv_path)
        click.echo(f"✅ Per-ad export written to {csv_path}")


@cli.command()
@_source_options
@click.option("--level", type=click.Choice(["adsets", "ads"]), default="adsets", show_default=True)
@click.option("--metric", default=None, help="Ranking metric (default: objective's primary ranking metric)")
@click.option("--min-leads", type=int, default=None, help="Minimum leads to be ranked")
@click.option("--top", "top_n", type=int, default=None, help="Items to show")
def rank(config_path, date_from, date_to, meta_json, google_csv, google_csv_url, live,
         level, metric, min_leads, top_n):
    """Rank ad sets or ads by an objective-appropriate metric."""
    from mhub.aggregation import combine_sources
    from mhub.objectives import classify
    from mhub.ranking import flatten_ads, flatten_adsets, rank as rank_pool

    cfg = _load_cfg(config_path)
    date_from, date_to = _date_range(date_from, date_to)
    sources, _ = _collect_sources(cfg, meta_json, google_csv, google_csv_url, date_from, date_to, live)

    result = combine_sources(sources, active_only=cfg.filters.active_only)
    campaigns = list(result.campaigns)
    metric = metric or classify(campaigns).dominant_config.ranking_metrics[0]
    pool = flatten_adsets(campaigns) if level == "adsets" else flatten_ads(campaigns)
    ranking = rank_pool(
        pool,
        metric,
        min_leads_threshold=cfg.ranking.min_leads_threshold if min_leads is None else min_leads,
        top_n=cfg.ranking.top_n if top_n is None else top_n,
    )

    click.echo(f"🏆 Top {level} by {ranking.label} ({ranking.sort_order}), {ranking.total_available} eligible")
    for i, item in enumerate(ranking.items, 1):
        click.echo(
            f"   {i}. {item.name:<40} {format_metric(metric, item.main_value):>14}  "
            f"{item.secondary_label}: {item.secondary_value:g}  "
            f"{item.tertiary_label}: {format_metric('spend', item.tertiary_value)}"
        )
    if not ranking.items:
        click.echo("   (no items above the minimum-leads threshold)")


@cli.command()
@_source_options
@click.option("--type", "report_type", type=click.Choice(["daily", "weekly", "performance", "leads"]),
              default="daily", show_default=True)
@click.option("--mode", type=click.Choice(["live", "dry"]), default="dry", help="live = call API; dry = mock")
@click.option("--whatsapp", is_flag=True, help="Print the WhatsApp text instead of an AI report")
@click.option("--out", "out_path", default="output/report.md", show_default=True, help="Report path")
def report(config_path, date_from, date_to, meta_json, google_csv, google_csv_url, live,
           report_type, mode, whatsapp, out_path):
    """Write an AI performance report (or a WhatsApp summary)."""
    from mhub.providers.anthropic_provider import BudgetExceededError
    from mhub.report import build_report_summary, format_whatsapp_report, generate_report

    cfg = _load_cfg(config_path)
    dash = _build(cfg, meta_json, google_csv, google_csv_url, date_from, date_to, live, compare=live)
    summary = build_report_summary(dash)

    if whatsapp:
        text = format_whatsapp_report(summary, report_type)
    else:
        if mode == "dry":
            click.echo("🏃 DRY-RUN mode: using MockProvider (no API calls)")
        else:
            click.echo("🚀 LIVE mode: using Anthropic API")
            click.echo(f"   Budget: max_calls_per_run={cfg.budget.max_calls_per_run}")
        provider = _get_provider(cfg, mode)
        try:
            text = generate_report(provider, summary, report_type)
        except BudgetExceededError as exc:
            raise click.ClickException(str(exc))

        pstats = provider.stats()
        if pstats.get("total_tokens"):
            click.echo(f"📊 Tokens: {pstats['total_tokens']:,}  |  Retries: {pstats.get('retry_count', 0)}")
        if pstats.get("truncated_count"):
            click.echo("⚠️  Report hit max_tokens and may be cut short; raise provider.max_tokens")

    write_report(text, out_path)
    click.echo(text)
    click.echo("")
    click.echo(f"✅ Report written to {out_path}")


@cli.group("cache")
def cache_group():
    """Source cache commands."""
    pass


@cache_group.command("clear")
@click.option("--config", "config_path", default="config.yaml", help="Config file path")
def cache_clear(config_path: str):
    """Delete every cached source payload."""
    from mhub.cache import CacheStore

    cfg = _load_cfg(config_path)
    n = CacheStore(cfg.cache.path).clear()
    click.echo(f"🧹 Removed {n} cached entries from {cfg.cache.path}")


@cli.group("sheets")
def sheets_group():
    """Google Sheets helper commands."""
    pass


@sheets_group.command("push")
@click.option("--spreadsheet_id", required=True, help="Target Google Sheet ID")
@click.option("--worksheet", required=True, help="Worksheet/tab name")
@click.option("--input", "input_path", required=True, help="Input CSV or TSV path")
def sheets_push(spreadsheet_id: str, worksheet: str, input_path: str):
    """Push a local CSV/TSV export to Google Sheets."""
    from mhub.connectors.google_sheets import push_tabular_file

    try:
        n = push_tabular_file(spreadsheet_id, worksheet, input_path)
    except SourceUnavailable as exc:
        raise click.ClickException(str(exc))
    except Exception as exc:
        raise click.ClickException(f"Failed to push to Google Sheets: {exc}")

    click.echo(
        f"✅ Pushed {n} rows to worksheet '{worksheet}' in spreadsheet {spreadsheet_id}."
    )


@cli.group("google-ads")
def google_ads_group():
    """Google Ads connector commands."""
    pass


@google_ads_group.command("pull")
@click.option("--customer_id", default=None, help="Google Ads customer ID (default: from config)")
@click.option("--from", "date_from", default=None, help="Start date YYYY-MM-DD")
@click.option("--to", "date_to", default=None, help="End date YYYY-MM-DD")
@click.option("--active-only", is_flag=True, help="Only ENABLED entities")
@click.option("--out", "out_path", default="output/google_ads.json", show_default=True, help="Output JSON path")
@click.option("--config", "config_path", default=None, help="Optional google-ads.yaml path")
def google_ads_pull(customer_id, date_from, date_to, active_only, out_path, config_path):
    """Pull Google Ads campaigns/ad groups/ads into a normalized JSON snapshot."""
    from mhub.connectors.google_ads import pull_google_ads

    date_from, date_to = _date_range(date_from, date_to)
    try:
        result = pull_google_ads(
            date_from, date_to, customer_id=customer_id, active_only=active_only, config_path=config_path
        )
    except (SourceUnavailable, GoogleAdsConfigError) as exc:
        raise click.ClickException(str(exc))

    write_json(result.to_dict(), out_path)
    click.echo(f"✅ Pulled {len(result.campaigns)} Google Ads campaigns into {out_path}")


@cli.group("meta-ads")
def meta_ads_group():
    """Meta Ads connector commands."""
    pass


@meta_ads_group.command("pull")
@click.option("--from", "date_from", default=None, help="Start date YYYY-MM-DD")
@click.option("--to", "date_to", default=None, help="End date YYYY-MM-DD")
@click.option("--active-only", is_flag=True, help="Only ACTIVE entities")
@click.option("--out", "out_path", default="input/meta_payload.json", show_default=True, help="Output JSON path")
def meta_ads_pull(date_from, date_to, active_only, out_path):
    """Pull the raw Meta Ads payload (reusable with --meta-json)."""
    from mhub.connectors.meta_ads import pull_meta_ads_payload

    date_from, date_to = _date_range(date_from, date_to)
    try:
        payload = pull_meta_ads_payload(date_from, date_to, active_only=active_only)
    except (SourceUnavailable, MetaAdsConfigError) as exc:
        raise click.ClickException(str(exc))

    write_json(payload, out_path)
    click.echo(f"✅ Pulled {len(payload['campaigns'])} Meta campaigns into {out_path}")


if __name__ == "__main__":
    cli()
