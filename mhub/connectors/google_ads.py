"""Google Ads connector: pull GAQL rows into the unified campaign hierarchy."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from mhub.aggregation import make_result
from mhub.config_google_ads import GoogleAdsConfig, load_google_ads_config
from mhub.errors import SourceUnavailable
from mhub.metrics import derive_metrics, micros_to_currency, round_half_up
from mhub.schema import Ad, AdSet, Campaign, CampaignObjective, MetricSet, SourceResult, SparklinePoint, Status

logger = logging.getLogger(__name__)

SOURCE = "google_ads"

_STATUS_MAP = {
    "ENABLED": Status.ACTIVE,
    "PAUSED": Status.PAUSED,
    "REMOVED": Status.DELETED,
}


class GoogleAdsConnectorError(SourceUnavailable):
    def __init__(self, message: str) -> None:
        super().__init__(message, source=SOURCE)


@dataclass
class RetryPolicy:
    max_retries: int = 3
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 15.0
    jitter_seconds: float = 0.5


def _build_client(cfg: GoogleAdsConfig):
    try:
        from google.ads.googleads.client import GoogleAdsClient
    except Exception as exc:  # pragma: no cover
        raise GoogleAdsConnectorError(
            "google-ads SDK missing. Install dependency `google-ads` and retry."
        ) from exc

    payload = {
        "developer_token": cfg.developer_token,
        "client_id": cfg.client_id,
        "client_secret": cfg.client_secret,
        "refresh_token": cfg.refresh_token,
        "use_proto_plus": True,
    }
    if cfg.login_customer_id:
        payload["login_customer_id"] = cfg.login_customer_id

    return GoogleAdsClient.load_from_dict(payload)


def _safe_float(v, default: float = 0.0) -> float:
    try:
        return float(v)
    except Exception:
        return default


def _safe_int(v, default: int = 0) -> int:
    try:
        return int(float(v))
    except Exception:
        return default


# ─────────────────────────────────────────────────────────────────────────────
# Row access (SDK proto-plus rows or REST JSON dicts)
# ─────────────────────────────────────────────────────────────────────────────


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p.title() for p in rest)


def _field(obj: Any, *path: str) -> Any:
    """Walk ``path`` through attributes or dict keys, trying snake_case then camelCase."""
    for name in path:
        if obj is None:
            return None
        if isinstance(obj, dict):
            obj = obj.get(name, obj.get(_camel(name)))
        else:
            obj = getattr(obj, name, getattr(obj, _camel(name), None))
    return obj


def _enum_name(v: Any) -> str:
    if v is None:
        return ""
    if not isinstance(v, str) and hasattr(v, "name"):
        return str(v.name)
    return str(v)


def _text(v: Any, default: str) -> str:
    s = str(v if v is not None else "").strip()
    return s or default


def map_status(raw: Any) -> Status:
    return _STATUS_MAP.get(_enum_name(raw).upper(), Status.PAUSED)


def map_google_ads_metrics(row: Any) -> MetricSet:
    """MetricSet for one row; reach mirrors impressions since Google reports none."""
    metrics = _field(row, "metrics")
    impressions = _safe_int(_field(metrics, "impressions"))
    return derive_metrics(
        impressions=impressions,
        reach=impressions,
        clicks=_safe_int(_field(metrics, "clicks")),
        spend=micros_to_currency(_field(metrics, "cost_micros") or 0),
        leads=int(round_half_up(_safe_float(_field(metrics, "conversions")))),
        sales=0,
    )


def normalize_google_ads_rows(
    campaign_rows: Iterable[Any],
    ad_group_rows: Iterable[Any] = (),
    ad_rows: Iterable[Any] = (),
    daily_rows: Iterable[Any] = (),
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
) -> SourceResult:
    """Assemble campaigns, ad groups and ads from per-level query rows.

    The campaign's advertising channel type becomes its objective. Ad groups
    link to campaigns by ``campaign.id``, ads to ad groups by ``ad_group.id``.
    """
    ads_by_group: Dict[str, List[Ad]] = {}
    for row in ad_rows:
        group_id = _text(_field(row, "ad_group", "id"), "")
        if not group_id:
            continue
        ad_id = _text(_field(row, "ad_group_ad", "ad", "id"), "")
        ads_by_group.setdefault(group_id, []).append(
            Ad(
                id=ad_id,
                name=_text(_field(row, "ad_group_ad", "ad", "name"), f"Ad {ad_id}".strip()),
                status=map_status(_field(row, "ad_group_ad", "status")),
                metrics=map_google_ads_metrics(row),
            )
        )

    groups_by_campaign: Dict[str, List[AdSet]] = {}
    for row in ad_group_rows:
        group_id = _text(_field(row, "ad_group", "id"), "")
        campaign_id = _text(_field(row, "campaign", "id"), "")
        if not group_id or not campaign_id:
            continue
        groups_by_campaign.setdefault(campaign_id, []).append(
            AdSet(
                id=group_id,
                name=_text(_field(row, "ad_group", "name"), "Unknown Ad Group"),
                status=map_status(_field(row, "ad_group", "status")),
                campaign_id=campaign_id,
                metrics=map_google_ads_metrics(row),
                ads=tuple(ads_by_group.pop(group_id, [])),
            )
        )

    campaigns: List[Campaign] = []
    for row in campaign_rows:
        campaign_id = _text(_field(row, "campaign", "id"), "")
        if not campaign_id:
            continue
        channel = _enum_name(_field(row, "campaign", "advertising_channel_type")) or "SEARCH"
        campaigns.append(
            Campaign(
                id=campaign_id,
                name=_text(_field(row, "campaign", "name"), "Unknown Campaign"),
                status=map_status(_field(row, "campaign", "status")),
                objective=CampaignObjective.parse(channel),
                metrics=map_google_ads_metrics(row),
                adsets=tuple(groups_by_campaign.pop(campaign_id, [])),
                platform=SOURCE,
            )
        )

    sparkline = []
    for row in daily_rows:
        day = _text(_field(row, "segments", "date"), "")
        if not day:
            continue
        m = map_google_ads_metrics(row)
        sparkline.append(
            SparklinePoint(
                date=day,
                impressions=m.impressions,
                reach=m.reach,
                clicks=m.clicks,
                spend=m.spend,
                leads=m.leads,
            )
        )

    logger.info("Normalized %d Google Ads campaigns", len(campaigns))
    return make_result(
        campaigns, source=SOURCE, sparkline=sparkline, date_from=date_from, date_to=date_to
    )


# ─────────────────────────────────────────────────────────────────────────────
# GAQL pull
# ─────────────────────────────────────────────────────────────────────────────

_METRIC_FIELDS = """
  metrics.impressions,
  metrics.clicks,
  metrics.cost_micros,
  metrics.conversions,
  metrics.ctr,
  metrics.average_cpc,
  metrics.average_cpm"""


def _query(level: str, date_from: str, date_to: str, active_only: bool = False) -> str:
    where = f"segments.date BETWEEN '{date_from}' AND '{date_to}'"

    if level == "campaign":
        select = "campaign.id,\n  campaign.name,\n  campaign.status,\n  campaign.advertising_channel_type,"
        status_field = "campaign.status"
    elif level == "ad_group":
        select = "ad_group.id,\n  ad_group.name,\n  ad_group.status,\n  campaign.id,"
        status_field = "ad_group.status"
    elif level == "ad_group_ad":
        select = (
            "ad_group_ad.ad.id,\n  ad_group_ad.ad.name,\n  ad_group_ad.status,\n"
            "  ad_group.id,\n  campaign.id,"
        )
        status_field = "ad_group_ad.status"
    elif level == "customer":
        return f"""
SELECT
  segments.date,
  metrics.impressions,
  metrics.clicks,
  metrics.cost_micros,
  metrics.conversions
FROM customer
WHERE {where}
ORDER BY segments.date ASC
""".strip()
    else:
        raise GoogleAdsConnectorError(f"Unsupported query level: {level}")

    if active_only:
        where += f" AND {status_field} = 'ENABLED'"
    else:
        where += f" AND {status_field} != 'REMOVED'"

    return f"""
SELECT
  {select}{_METRIC_FIELDS}
FROM {level}
WHERE {where}
ORDER BY metrics.cost_micros DESC
""".strip()


def _is_retryable_error(exc: Exception) -> bool:
    s = str(exc).lower()
    return any(
        k in s
        for k in ["rate", "quota", "resource exhausted", "429", "too many requests"]
    )


def _search_with_retry(service, customer_id: str, query: str, retry: RetryPolicy) -> List[Any]:
    attempt = 0
    while True:
        try:
            stream = service.search_stream(customer_id=customer_id, query=query)
            return [r for batch in stream for r in getattr(batch, "results", [])]
        except Exception as exc:
            if attempt >= retry.max_retries or not _is_retryable_error(exc):
                raise
            sleep_s = min(
                retry.backoff_base_seconds * (2**attempt), retry.backoff_max_seconds
            )
            sleep_s += random.uniform(0, retry.jitter_seconds)
            logger.warning("Google Ads query failed (%s), retrying in %.1fs", exc, sleep_s)
            time.sleep(sleep_s)
            attempt += 1


def pull_google_ads_rows(
    date_from: str,
    date_to: str,
    customer_id: Optional[str] = None,
    active_only: bool = False,
    config_path: Optional[str] = None,
    retry_policy: Optional[RetryPolicy] = None,
    client=None,
) -> Dict[str, List[Any]]:
    """Run the campaign, ad group, ad and daily queries for a date range."""
    cfg = load_google_ads_config(customer_id=customer_id, yaml_path=config_path)
    client = client or _build_client(cfg)

    service = client.get_service("GoogleAdsService")
    retry = retry_policy or RetryPolicy()

    out: Dict[str, List[Any]] = {}
    for key, level in (
        ("campaign_rows", "campaign"),
        ("ad_group_rows", "ad_group"),
        ("ad_rows", "ad_group_ad"),
        ("daily_rows", "customer"),
    ):
        q = _query(level, date_from, date_to, active_only)
        try:
            out[key] = _search_with_retry(service, cfg.customer_id, q, retry)
        except Exception as exc:
            msg = str(exc)
            if any(
                k in msg.lower() for k in ["permission", "unauthorized", "authentication"]
            ):
                raise GoogleAdsConnectorError(
                    "Google Ads authentication/permission error. Verify developer token, OAuth creds, "
                    "refresh token, and account access."
                ) from exc
            raise GoogleAdsConnectorError(f"Google Ads pull failed: {exc}") from exc

    logger.info(
        "Fetched Google Ads: %d campaigns, %d ad groups, %d ads, %d days",
        len(out["campaign_rows"]), len(out["ad_group_rows"]),
        len(out["ad_rows"]), len(out["daily_rows"]),
    )
    return out


def pull_google_ads(
    date_from: str,
    date_to: str,
    customer_id: Optional[str] = None,
    active_only: bool = False,
    config_path: Optional[str] = None,
    retry_policy: Optional[RetryPolicy] = None,
    client=None,
) -> SourceResult:
    rows = pull_google_ads_rows(
        date_from, date_to, customer_id, active_only, config_path, retry_policy, client
    )
    return normalize_google_ads_rows(date_from=date_from, date_to=date_to, **rows)
