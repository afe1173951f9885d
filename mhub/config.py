"""Load and validate config.yaml."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

import yaml

from mhub.alerts import AlertRule
from mhub.goals import CampaignPeriod, GoalThresholds


class ConfigError(ValueError):
    """Raised when a config.yaml section has unknown or malformed keys."""


@dataclass
class RankingConfig:
    min_leads_threshold: int = 5
    top_n: int = 5


@dataclass
class GoalsConfig:
    monthly_goal: float = 0.0
    period_type: str = "monthly"  # monthly | weekly | daily
    alerts_enabled: bool = True
    thresholds: GoalThresholds = field(default_factory=GoalThresholds)
    campaign_period: CampaignPeriod = field(default_factory=CampaignPeriod)


@dataclass
class FiltersConfig:
    active_only: bool = False


@dataclass
class SourcesConfig:
    meta_enabled: bool = False
    google_api_enabled: bool = False
    google_customer_id: str = ""
    google_csv_url: str = ""
    google_sheet_id: str = ""
    google_worksheet: str = ""


@dataclass
class ProviderConfig:
    name: str = "anthropic"
    model: str = "claude-sonnet-4-5-20250929"
    temperature: float = 0.4
    max_tokens: int = 2048


@dataclass
class BudgetConfig:
    """Hard caps to control live API spending."""

    max_calls_per_run: int = 10  # successful report calls; 0 = unlimited
    max_tokens_per_run: int = 0  # input + output tokens; 0 = unlimited


@dataclass
class RetryConfig:
    """Exponential-backoff settings for live API calls."""

    max_api_retries: int = 3
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 60.0


@dataclass
class CacheConfig:
    """SQLite-backed cache for fetched source payloads."""

    enabled: bool = True
    path: str = "cache/mhub_cache.db"
    ttl_seconds: int = 900


@dataclass
class AppConfig:
    ranking: RankingConfig = field(default_factory=RankingConfig)
    goals: GoalsConfig = field(default_factory=GoalsConfig)
    filters: FiltersConfig = field(default_factory=FiltersConfig)
    sources: SourcesConfig = field(default_factory=SourcesConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    budget: BudgetConfig = field(default_factory=BudgetConfig)
    retry_api: RetryConfig = field(default_factory=RetryConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    alerts: List[AlertRule] = field(default_factory=list)


def _section(cls, raw: Dict[str, Any], name: str):
    values = raw.get(name) or {}
    if not isinstance(values, dict):
        raise ConfigError(f"config section '{name}' must be a mapping, got {type(values).__name__}")
    try:
        return cls(**values)
    except TypeError as exc:
        raise ConfigError(f"invalid key in config section '{name}': {exc}") from exc


def _goals(raw: Dict[str, Any]) -> GoalsConfig:
    values = dict(raw.get("goals") or {})
    thresholds = _section(GoalThresholds, values, "thresholds")
    period = _section(CampaignPeriod, values, "campaign_period")
    values.pop("thresholds", None)
    values.pop("campaign_period", None)
    cfg = _section(GoalsConfig, {"goals": values}, "goals")
    cfg.thresholds = thresholds
    cfg.campaign_period = period
    return cfg


def load_config(path: str | Path = "config.yaml") -> AppConfig:
    """Load config from YAML file, falling back to defaults."""
    p = Path(path)
    raw: dict = {}
    if p.exists():
        with open(p, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    return AppConfig(
        ranking=_section(RankingConfig, raw, "ranking"),
        goals=_goals(raw),
        filters=_section(FiltersConfig, raw, "filters"),
        sources=_section(SourcesConfig, raw, "sources"),
        provider=_section(ProviderConfig, raw, "provider"),
        budget=_section(BudgetConfig, raw, "budget"),
        retry_api=_section(RetryConfig, raw, "retry_api"),
        cache=_section(CacheConfig, raw, "cache"),
        alerts=[AlertRule.from_dict(r) for r in raw.get("alerts") or []],
    )
