"""Configuration loader/validator for the Meta Ads connector (BYO creds)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


class MetaAdsConfigError(ValueError):
    pass


@dataclass
class MetaAdsConfig:
    access_token: str
    ad_account_id: str
    app_id: Optional[str] = None
    app_secret: Optional[str] = None
    api_version: Optional[str] = None


def _clean(v) -> str:
    return str(v or "").strip()


def normalize_account_id(account: str) -> str:
    """Accept ``123`` or ``act_123`` and always return ``act_123``."""
    account = _clean(account)
    if not account:
        return account
    return account if account.startswith("act_") else f"act_{account}"


def load_meta_ads_config(ad_account_id: Optional[str] = None) -> MetaAdsConfig:
    token = _clean(os.environ.get("META_ACCESS_TOKEN"))
    account = normalize_account_id(ad_account_id or os.environ.get("META_AD_ACCOUNT_ID"))

    if not token:
        raise MetaAdsConfigError(
            "META_ACCESS_TOKEN is missing. Set it in the environment or .env file."
        )
    if not account:
        raise MetaAdsConfigError(
            "META_AD_ACCOUNT_ID is missing. Expected format: act_<id> or the numeric id."
        )
    if not account[len("act_"):].isdigit():
        raise MetaAdsConfigError(f"META_AD_ACCOUNT_ID must be numeric after 'act_', got {account!r}.")

    return MetaAdsConfig(
        access_token=token,
        ad_account_id=account,
        app_id=_clean(os.environ.get("META_APP_ID")) or None,
        app_secret=_clean(os.environ.get("META_APP_SECRET")) or None,
        api_version=_clean(os.environ.get("META_API_VERSION")) or None,
    )
