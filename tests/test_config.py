"""Tests for mhub/config.py."""

from __future__ import annotations

from pathlib import Path

import pytest

from mhub.config import AppConfig, ConfigError, load_config

REPO_ROOT = Path(__file__).resolve().parent.parent


def test_missing_file_gives_defaults(tmp_path):
    cfg = load_config(tmp_path / "nope.yaml")
    assert isinstance(cfg, AppConfig)
    assert cfg.ranking.min_leads_threshold == 5
    assert cfg.ranking.top_n == 5
    assert cfg.goals.period_type == "monthly"
    assert cfg.goals.thresholds.warning == 75.0
    assert cfg.goals.campaign_period.is_custom is False
    assert cfg.cache.ttl_seconds == 900
    assert cfg.alerts == []


def test_repo_config_loads():
    cfg = load_config(REPO_ROOT / "config.yaml")
    assert cfg.goals.monthly_goal == 300
    assert [r.id for r in cfg.alerts] == ["cpl-high", "leads-behind"]
    assert cfg.alerts[1].operator == "less_than"


def test_nested_goal_sections(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text(
        "goals:\n"
        "  monthly_goal: 120\n"
        "  period_type: weekly\n"
        "  thresholds:\n"
        "    danger: 40\n"
        "  campaign_period:\n"
        "    start_date: '2024-05-01'\n"
        "    end_date: '2024-05-20'\n"
        "    use_current_month: false\n"
        "filters:\n"
        "  active_only: true\n",
        encoding="utf-8",
    )
    cfg = load_config(p)
    assert cfg.goals.monthly_goal == 120
    assert cfg.goals.thresholds.danger == 40
    assert cfg.goals.thresholds.warning == 75.0
    assert cfg.goals.campaign_period.is_custom is True
    assert cfg.filters.active_only is True


def test_unknown_key_raises(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text("ranking:\n  top_k: 3\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="ranking"):
        load_config(p)


def test_non_mapping_section_raises(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text("cache: yes\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="cache"):
        load_config(p)
