"""Internal unified schema for the campaign → ad set → ad hierarchy."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Literal, Optional, Tuple

Platform = Literal["meta_ads", "google_ads", "google_csv"]

BASE_COUNTERS = ("impressions", "reach", "clicks", "spend", "leads", "sales")
DERIVED_FIELDS = ("ctr", "cpc", "cpm", "cpl", "cps")


class Status(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    DELETED = "DELETED"


class CampaignObjective(str, Enum):
    """Campaign objectives across both ad platforms.

    Meta objectives keep their ``OUTCOME_*`` names; Google campaigns use
    their advertising channel type. ``UNKNOWN`` is the parse fallback for
    anything outside these fourteen values.
    """

    # Meta
    OUTCOME_LEADS = "OUTCOME_LEADS"
    OUTCOME_TRAFFIC = "OUTCOME_TRAFFIC"
    OUTCOME_AWARENESS = "OUTCOME_AWARENESS"
    OUTCOME_ENGAGEMENT = "OUTCOME_ENGAGEMENT"
    OUTCOME_SALES = "OUTCOME_SALES"
    OUTCOME_APP_PROMOTION = "OUTCOME_APP_PROMOTION"
    # Google
    SEARCH = "SEARCH"
    DISPLAY = "DISPLAY"
    VIDEO = "VIDEO"
    SHOPPING = "SHOPPING"
    PERFORMANCE_MAX = "PERFORMANCE_MAX"
    DISCOVERY = "DISCOVERY"
    LOCAL = "LOCAL"
    SMART = "SMART"

    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Any) -> "CampaignObjective":
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().upper().replace(" ", "_")
        try:
            return cls(key)
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_meta(self) -> bool:
        return self.value.startswith("OUTCOME_")


@dataclass(frozen=True)
class MetricSet:
    """Base counters plus the ratios derived from them.

    Build instances with :func:`mhub.metrics.derive_metrics`; the ratio
    fields must always agree with the counters.
    """

    impressions: int = 0
    reach: int = 0
    clicks: int = 0
    spend: float = 0.0
    leads: int = 0
    sales: int = 0

    ctr: float = 0.0
    cpc: float = 0.0
    cpm: float = 0.0
    cpl: float = 0.0
    cps: float = 0.0

    def counters(self) -> Dict[str, Any]:
        return {k: getattr(self, k) for k in BASE_COUNTERS}

    def get(self, key: str) -> float:
        return getattr(self, key)

    def to_dict(self) -> Dict[str, Any]:
        out = self.counters()
        out.update({k: getattr(self, k) for k in DERIVED_FIELDS})
        return out


@dataclass(frozen=True)
class Ad:
    id: str
    name: str
    status: Status = Status.PAUSED
    metrics: MetricSet = field(default_factory=MetricSet)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "metrics": self.metrics.to_dict(),
        }


@dataclass(frozen=True)
class AdSet:
    id: str
    name: str
    status: Status = Status.PAUSED
    campaign_id: str = ""
    metrics: MetricSet = field(default_factory=MetricSet)
    ads: Tuple[Ad, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "campaign_id": self.campaign_id,
            "metrics": self.metrics.to_dict(),
            "ads": [a.to_dict() for a in self.ads],
        }


@dataclass(frozen=True)
class Campaign:
    id: str
    name: str
    status: Status = Status.PAUSED
    objective: CampaignObjective = CampaignObjective.UNKNOWN
    metrics: MetricSet = field(default_factory=MetricSet)
    adsets: Tuple[AdSet, ...] = ()
    platform: Platform = "meta_ads"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "objective": self.objective.value,
            "platform": self.platform,
            "metrics": self.metrics.to_dict(),
            "adsets": [s.to_dict() for s in self.adsets],
        }


@dataclass(frozen=True)
class SparklinePoint:
    date: str
    impressions: int = 0
    reach: int = 0
    clicks: int = 0
    spend: float = 0.0
    leads: int = 0
    sales: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "impressions": self.impressions,
            "reach": self.reach,
            "clicks": self.clicks,
            "spend": self.spend,
            "leads": self.leads,
            "sales": self.sales,
        }


@dataclass(frozen=True)
class SourceResult:
    """One fetch cycle's output: hierarchy, totals and daily series.

    ``reach_is_additive`` marks totals whose reach was summed across
    platforms without de-duplicating unique users.
    """

    campaigns: Tuple[Campaign, ...] = ()
    totals: MetricSet = field(default_factory=MetricSet)
    sparkline: Tuple[SparklinePoint, ...] = ()
    source: str = ""
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    reach_is_additive: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "date_from": self.date_from,
            "date_to": self.date_to,
            "campaigns": [c.to_dict() for c in self.campaigns],
            "totals": self.totals.to_dict(),
            "sparkline_data": [p.to_dict() for p in self.sparkline],
            "reach_is_additive": self.reach_is_additive,
        }


@dataclass(frozen=True)
class FunnelStage:
    name: str
    value: float
    conversion_rate: float
    is_estimate: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "conversion_rate": self.conversion_rate,
            "is_estimate": self.is_estimate,
        }


@dataclass(frozen=True)
class RankingItem:
    id: str
    name: str
    main_value: float
    secondary_label: str = ""
    secondary_value: float = 0.0
    tertiary_label: str = ""
    tertiary_value: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "main_value": self.main_value,
            "secondary_label": self.secondary_label,
            "secondary_value": self.secondary_value,
            "tertiary_label": self.tertiary_label,
            "tertiary_value": self.tertiary_value,
        }
