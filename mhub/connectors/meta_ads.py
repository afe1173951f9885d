"""Meta Ads connector: pull campaign/ad set/ad insights into the unified hierarchy."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from mhub.aggregation import make_result
from mhub.config_meta_ads import load_meta_ads_config
from mhub.errors import SourceUnavailable
from mhub.metrics import derive_metrics
from mhub.schema import Ad, AdSet, Campaign, CampaignObjective, MetricSet, SourceResult, SparklinePoint, Status

logger = logging.getLogger(__name__)

SOURCE = "meta_ads"

LEAD_ACTIONS = frozenset({"lead", "onsite_conversion.lead_grouped", "offsite_conversion.fb_pixel_lead"})
SALE_ACTIONS = frozenset({"purchase", "omni_purchase", "offsite_conversion.fb_pixel_purchase"})

INSIGHT_FIELDS = "impressions,reach,clicks,spend,ctr,cpc,cpm,actions,cost_per_action_type"


class MetaAdsConnectorError(SourceUnavailable):
    def __init__(self, message: str) -> None:
        super().__init__(message, source=SOURCE)


@dataclass
class RetryPolicy:
    max_retries: int = 3
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 20.0
    jitter_seconds: float = 0.5


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
# Mapping
# ─────────────────────────────────────────────────────────────────────────────


def _first_action(actions: Optional[Iterable[Mapping[str, Any]]], aliases: frozenset) -> int:
    """Value of the first action whose type is one of ``aliases``.

    Meta reports the same conversion under several overlapping action types,
    so the values are not summed.
    """
    for a in actions or []:
        if str(a.get("action_type", "") or "").strip() in aliases:
            return _safe_int(a.get("value", 0))
    return 0


def map_meta_insights(insights: Optional[Mapping[str, Any]]) -> MetricSet:
    """Map one ``insights.data[0]`` record to a MetricSet; missing insights are all zero."""
    if not insights:
        return derive_metrics({})
    actions = insights.get("actions")
    return derive_metrics(
        impressions=_safe_int(insights.get("impressions", 0)),
        reach=_safe_int(insights.get("reach", 0)),
        clicks=_safe_int(insights.get("clicks", 0)),
        spend=_safe_float(insights.get("spend", 0.0)),
        leads=_first_action(actions, LEAD_ACTIONS),
        sales=_first_action(actions, SALE_ACTIONS),
    )


def _insights_of(node: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    data = (node.get("insights") or {}).get("data") or []
    return data[0] if data else None


def normalize_status(node: Mapping[str, Any]) -> Status:
    raw = str(node.get("effective_status") or node.get("status") or "").strip().upper()
    if raw == "ACTIVE":
        return Status.ACTIVE
    if raw in ("DELETED", "ARCHIVED"):
        return Status.DELETED
    return Status.PAUSED


def _sparkline(daily: Iterable[Mapping[str, Any]]) -> List[SparklinePoint]:
    points = []
    for day in daily or []:
        if not day.get("date_start"):
            continue
        m = map_meta_insights(day)
        points.append(
            SparklinePoint(
                date=str(day["date_start"]),
                impressions=m.impressions,
                reach=m.reach,
                clicks=m.clicks,
                spend=m.spend,
                leads=m.leads,
                sales=m.sales,
            )
        )
    return points


def normalize_meta_payload(
    payload: Mapping[str, Any],
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
) -> SourceResult:
    """Build the campaign hierarchy from a Meta payload.

    ``payload`` holds ``campaigns``, ``adsets`` and ``ads`` lists (each node
    with embedded ``insights``) plus an optional ``daily`` list of
    account-level insights with ``date_start``. Ad sets and ads whose parent
    is not in the payload are dropped.
    """
    if not isinstance(payload, Mapping) or "campaigns" not in payload:
        raise MetaAdsConnectorError("Meta payload is malformed: expected a 'campaigns' list.")

    ads_by_adset: Dict[str, List[Ad]] = {}
    for node in payload.get("ads") or []:
        ad = Ad(
            id=str(node.get("id", "")),
            name=str(node.get("name", "") or ""),
            status=normalize_status(node),
            metrics=map_meta_insights(_insights_of(node)),
        )
        ads_by_adset.setdefault(str(node.get("adset_id", "")), []).append(ad)

    adsets_by_campaign: Dict[str, List[AdSet]] = {}
    for node in payload.get("adsets") or []:
        adset_id = str(node.get("id", ""))
        campaign_id = str(node.get("campaign_id", ""))
        adsets_by_campaign.setdefault(campaign_id, []).append(
            AdSet(
                id=adset_id,
                name=str(node.get("name", "") or ""),
                status=normalize_status(node),
                campaign_id=campaign_id,
                metrics=map_meta_insights(_insights_of(node)),
                ads=tuple(ads_by_adset.pop(adset_id, [])),
            )
        )

    campaigns: List[Campaign] = []
    for node in payload.get("campaigns") or []:
        campaign_id = str(node.get("id", ""))
        campaigns.append(
            Campaign(
                id=campaign_id,
                name=str(node.get("name", "") or ""),
                status=normalize_status(node),
                objective=CampaignObjective.parse(node.get("objective")),
                metrics=map_meta_insights(_insights_of(node)),
                adsets=tuple(adsets_by_campaign.pop(campaign_id, [])),
                platform=SOURCE,
            )
        )

    orphans = sum(len(v) for v in ads_by_adset.values()) + sum(len(v) for v in adsets_by_campaign.values())
    if orphans:
        logger.debug("Dropped %d Meta ad sets/ads without a parent in the payload", orphans)

    logger.info("Normalized %d Meta campaigns", len(campaigns))
    return make_result(
        campaigns,
        source=SOURCE,
        sparkline=_sparkline(payload.get("daily") or []),
        date_from=date_from,
        date_to=date_to,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Pull via facebook_business SDK
# ─────────────────────────────────────────────────────────────────────────────


# Graph API codes: 4 app rate limit, 17 user rate limit, 32 page rate limit,
# 613 custom rate limit.
_TRANSIENT_GRAPH_CODES = {4, 17, 32, 613}


def _graph_error_code(exc: Exception) -> Optional[int]:
    # FacebookRequestError exposes the Graph API code as a method
    code_of = getattr(exc, "api_error_code", None)
    return code_of() if callable(code_of) else None


def _is_retryable_error(exc: Exception) -> bool:
    code = _graph_error_code(exc)
    if code is not None:
        return code in _TRANSIENT_GRAPH_CODES
    s = str(exc).lower()
    return any(k in s for k in ("rate limit", "request limit", "too many", "temporar", "429"))


def _is_auth_error(exc: Exception) -> bool:
    code = _graph_error_code(exc)
    if code is not None:
        return code in (10, 190) or 200 <= code < 300
    s = str(exc).lower()
    return any(k in s for k in ("oauth", "permission", "access token"))


def _call_with_retry(call: Callable[[], Any], retry: RetryPolicy) -> List[Dict[str, Any]]:
    attempt = 0
    while True:
        try:
            return [_export(obj) for obj in call()]
        except Exception as exc:
            if attempt >= retry.max_retries or not _is_retryable_error(exc):
                raise
            sleep_s = min(
                retry.backoff_base_seconds * (2**attempt), retry.backoff_max_seconds
            )
            sleep_s += random.uniform(0, retry.jitter_seconds)
            logger.warning("Meta Ads call failed (%s), retrying in %.1fs", exc, sleep_s)
            time.sleep(sleep_s)
            attempt += 1


def _export(obj: Any) -> Dict[str, Any]:
    if hasattr(obj, "export_all_data"):
        return obj.export_all_data()
    return dict(obj)


def _entity_fields(parent_field: Optional[str], date_from: str, date_to: str) -> List[str]:
    fields = ["id", "name", "status", "effective_status"]
    if parent_field:
        fields.append(parent_field)
    fields.append(
        f"insights.time_range({{'since':'{date_from}','until':'{date_to}'}}){{{INSIGHT_FIELDS}}}"
    )
    return fields


def pull_meta_ads_payload(
    date_from: str,
    date_to: str,
    active_only: bool = False,
    retry_policy: Optional[RetryPolicy] = None,
    ad_account=None,
) -> Dict[str, List[Dict[str, Any]]]:
    """Fetch campaigns, ad sets, ads and daily account insights for a date range."""
    if ad_account is None:
        cfg = load_meta_ads_config()
        try:
            from facebook_business.api import FacebookAdsApi
            from facebook_business.adobjects.adaccount import AdAccount
        except Exception as exc:  # pragma: no cover
            raise MetaAdsConnectorError(
                "facebook_business SDK missing. Install `facebook-business` and retry."
            ) from exc

        try:
            FacebookAdsApi.init(
                access_token=cfg.access_token,
                app_id=cfg.app_id,
                app_secret=cfg.app_secret,
                api_version=cfg.api_version,
            )
            ad_account = AdAccount(cfg.ad_account_id)
        except Exception as exc:
            raise MetaAdsConnectorError(
                "Failed to initialize Meta Ads API. Verify token/account permissions."
            ) from exc

    params: Dict[str, Any] = {"limit": 500}
    if active_only:
        params["filtering"] = [{"field": "effective_status", "operator": "IN", "value": ["ACTIVE"]}]
    retry = retry_policy or RetryPolicy()

    try:
        campaigns = _call_with_retry(
            lambda: ad_account.get_campaigns(
                fields=_entity_fields("objective", date_from, date_to), params=params
            ),
            retry,
        )
        adsets = _call_with_retry(
            lambda: ad_account.get_ad_sets(
                fields=_entity_fields("campaign_id", date_from, date_to), params=params
            ),
            retry,
        )
        ads = _call_with_retry(
            lambda: ad_account.get_ads(
                fields=_entity_fields("adset_id", date_from, date_to), params=params
            ),
            retry,
        )
    except Exception as exc:
        if _is_auth_error(exc):
            raise MetaAdsConnectorError(
                "Meta Ads auth/permission error. Check META_ACCESS_TOKEN scopes and account access."
            ) from exc
        raise MetaAdsConnectorError(f"Meta Ads pull failed: {exc}") from exc

    try:
        daily = _call_with_retry(
            lambda: ad_account.get_insights(
                fields=["impressions", "reach", "clicks", "spend", "actions"],
                params={
                    "time_range": {"since": date_from, "until": date_to},
                    "time_increment": 1,
                },
            ),
            retry,
        )
    except Exception as exc:
        # The daily series only feeds sparklines
        logger.warning("Meta daily insights unavailable: %s", exc)
        daily = []

    logger.info(
        "Fetched Meta Ads: %d campaigns, %d ad sets, %d ads, %d days",
        len(campaigns), len(adsets), len(ads), len(daily),
    )
    return {"campaigns": campaigns, "adsets": adsets, "ads": ads, "daily": daily}


def pull_meta_ads(
    date_from: str,
    date_to: str,
    active_only: bool = False,
    retry_policy: Optional[RetryPolicy] = None,
    ad_account=None,
) -> SourceResult:
    payload = pull_meta_ads_payload(date_from, date_to, active_only, retry_policy, ad_account)
    return normalize_meta_payload(payload, date_from=date_from, date_to=date_to)
