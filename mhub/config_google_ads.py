"""Configuration loader/validator for the Google Ads connector (BYO creds)."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml


class GoogleAdsConfigError(ValueError):
    pass


@dataclass
class GoogleAdsConfig:
    developer_token: str
    client_id: str
    client_secret: str
    refresh_token: str
    customer_id: str
    login_customer_id: Optional[str] = None


def _clean(v) -> str:
    return str(v or "").strip()


def _digits(v) -> str:
    # Google Ads UI shows customer ids as 123-456-7890
    return _clean(v).replace("-", "")


def load_google_ads_config(customer_id: Optional[str] = None, yaml_path: Optional[str] = None) -> GoogleAdsConfig:
    """Load config from env and an optional google-ads.yaml style file.

    Priority:
    1) explicit *yaml_path*
    2) env `MHUB_GOOGLE_ADS_YAML`
    3) default `google-ads.yaml` in cwd
    4) env vars only

    Env vars override file values key by key.
    """
    cfg_path = yaml_path or os.environ.get("MHUB_GOOGLE_ADS_YAML") or "google-ads.yaml"
    raw = {}
    p = Path(cfg_path)
    if p.exists():
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}

    def pick(key: str) -> str:
        return _clean(os.environ.get(f"MHUB_GOOGLE_ADS_{key.upper()}") or raw.get(key))

    cust = _digits(customer_id or pick("customer_id"))
    values = {
        "developer_token": pick("developer_token"),
        "client_id": pick("client_id"),
        "client_secret": pick("client_secret"),
        "refresh_token": pick("refresh_token"),
        "customer_id": cust,
    }

    missing = [name for name, value in values.items() if not value]
    if missing:
        raise GoogleAdsConfigError(
            "Missing Google Ads config: " + ", ".join(missing) + ". "
            "Set MHUB_GOOGLE_ADS_* env vars or provide google-ads.yaml."
        )

    return GoogleAdsConfig(
        login_customer_id=_digits(pick("login_customer_id")) or None,
        **values,
    )
