"""Google Ads CSV / Google Sheets connector.

Parses Google Ads report exports (downloaded CSV, a published sheet URL or a
worksheet read through a service account) into the unified hierarchy, and
pushes tabular exports back to Sheets.
"""

from __future__ import annotations

import hashlib
import io
import logging
import os
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import httpx
import pandas as pd

from mhub.aggregation import make_result
from mhub.errors import SourceUnavailable
from mhub.metrics import derive_metrics, round_half_up
from mhub.schema import Ad, AdSet, Campaign, CampaignObjective, SourceResult, SparklinePoint, Status

try:
    import gspread  # type: ignore
except Exception:  # pragma: no cover
    gspread = None

try:
    from google.oauth2.service_account import Credentials  # type: ignore
except Exception:  # pragma: no cover
    Credentials = None

logger = logging.getLogger(__name__)

SOURCE = "google_csv"

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]


class GoogleSheetsConfigError(SourceUnavailable):
    def __init__(self, message: str) -> None:
        super().__init__(message, source=SOURCE)


COLUMN_ALIASES: Dict[str, Tuple[str, ...]] = {
    "campaign_id": ("campaign_id", "campanha_id", "id_campanha"),
    "campaign_name": ("campaign_name", "campanha", "campaign", "nome_campanha"),
    "campaign_status": ("campaign_status", "status_campanha", "status"),
    "campaign_type": ("campaign_type", "tipo_campanha", "objective", "tipo"),
    "adgroup_id": ("adgroup_id", "ad_group_id", "conjunto_id"),
    "adgroup_name": ("adgroup_name", "ad_group", "ad_group_name", "conjunto"),
    "adgroup_status": ("adgroup_status", "ad_group_status", "status_conjunto"),
    "ad_id": ("ad_id", "anuncio_id"),
    "ad_name": ("ad_name", "anuncio", "ad"),
    "ad_status": ("ad_status", "status_anuncio"),
    "date": ("date", "data", "day", "dia"),
    "impressions": ("impressions", "impressoes", "impr"),
    "reach": ("reach", "alcance"),
    "clicks": ("clicks", "cliques"),
    "cost": ("cost", "custo", "spend", "gasto", "investimento"),
    "conversions": ("conversions", "conversoes", "leads"),
    "sales": ("sales", "vendas", "purchases", "compras"),
}

_STATUS_WORDS = {
    Status.ACTIVE: {"ENABLED", "ACTIVE", "ATIVO", "ATIVA", "HABILITADO", "HABILITADA"},
    Status.PAUSED: {"PAUSED", "PAUSADO", "PAUSADA"},
    Status.DELETED: {"REMOVED", "DELETED", "REMOVIDO", "REMOVIDA", "EXCLUIDO", "EXCLUIDA"},
}


# ─────────────────────────────────────────────────────────────────────────────
# Cell parsing
# ─────────────────────────────────────────────────────────────────────────────


def _strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_header(raw: Any) -> str:
    """``"Impressões "`` -> ``"impressoes"``, ``"Campaign Name"`` -> ``"campaign_name"``."""
    text = _strip_accents(str(raw or "").strip().strip('"').strip("'").strip())
    return re.sub(r"\s+", "_", text.lower())


_THOUSANDS_DOT = re.compile(r"^-?[1-9]\d{0,2}\.\d{3}$")


def parse_number(raw: Any, decimal_mark: Optional[str] = None) -> float:
    """Parse Brazilian (``1.234,56``) and standard (``1,234.56``) numbers.

    With both separators present the right-most one is the decimal mark. A
    single ``,`` is a decimal mark; repeated ones are thousands separators.
    A single ``.`` is a thousands separator when ``decimal_mark`` is ``","``
    (``;``-delimited exports) or when exactly three digits follow it
    (``1.500``); otherwise it is the decimal mark. Anything unparseable is 0.
    """
    if raw is None:
        return 0.0
    if isinstance(raw, (int, float)):
        return float(raw) if raw == raw else 0.0

    s = re.sub(r"(R\$|\$|%|\s)", "", str(raw))
    if not s:
        return 0.0

    has_comma, has_dot = "," in s, "." in s
    if has_comma and has_dot:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif has_comma:
        s = s.replace(",", "") if s.count(",") > 1 else s.replace(",", ".")
    elif has_dot:
        if s.count(".") > 1 or decimal_mark == "," or _THOUSANDS_DOT.match(s):
            s = s.replace(".", "")

    try:
        return float(s)
    except ValueError:
        return 0.0


def parse_row_date(raw: Any) -> Optional[date]:
    """Parse ``YYYY-MM-DD`` or ``DD/MM/YYYY``; None when absent or unparseable."""
    s = str(raw or "").strip()
    if not s:
        return None
    for fmt, width in (("%Y-%m-%d", 10), ("%d/%m/%Y", 10)):
        try:
            return datetime.strptime(s[:width], fmt).date()
        except ValueError:
            continue
    return None


def normalize_csv_status(raw: Any, default: Status = Status.ACTIVE) -> Status:
    s = _strip_accents(str(raw or "")).strip().upper()
    if not s:
        return default
    for status, words in _STATUS_WORDS.items():
        if s in words:
            return status
    return Status.PAUSED


def _hash_id(*parts: str) -> str:
    digest = hashlib.sha1("|".join(parts).encode("utf-8")).hexdigest()[:12]
    return f"{parts[0]}_{digest}"


# ─────────────────────────────────────────────────────────────────────────────
# Table parsing
# ─────────────────────────────────────────────────────────────────────────────


def sniff_delimiter(text: str) -> str:
    header = text.lstrip("\ufeff").split("\n", 1)[0]
    return ";" if ";" in header else ","


def read_csv_frame(text: str) -> pd.DataFrame:
    """Read export text into a string DataFrame with normalized headers."""
    text = (text or "").lstrip("\ufeff")
    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) < 2:
        raise SourceUnavailable("CSV is empty or has no data rows.", source=SOURCE)

    try:
        df = pd.read_csv(
            io.StringIO(text),
            sep=sniff_delimiter(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise SourceUnavailable(f"CSV could not be parsed: {exc}", source=SOURCE) from exc

    df.columns = [normalize_header(c) for c in df.columns]
    return df


def resolve_columns(columns: Sequence[str]) -> Dict[str, Optional[str]]:
    """Map each canonical field to the first alias present in ``columns``."""
    present = set(columns)
    return {
        key: next((a for a in aliases if a in present), None)
        for key, aliases in COLUMN_ALIASES.items()
    }


@dataclass
class _Bucket:
    id: str
    name: str
    status: Status
    parent_id: str = ""
    objective: str = ""
    counters: Dict[str, float] = field(
        default_factory=lambda: {"impressions": 0, "reach": 0, "clicks": 0, "spend": 0.0, "leads": 0.0, "sales": 0.0}
    )


def _in_window(day: Optional[date], start: Optional[date], end: Optional[date]) -> bool:
    if day is None:
        return True
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True


def _to_date(value: Union[str, date, None]) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return parse_row_date(value)


def parse_google_ads_csv(
    text: str,
    date_from: Union[str, date, None] = None,
    date_to: Union[str, date, None] = None,
) -> SourceResult:
    """Normalize a Google Ads CSV export into campaigns, ad groups and ads.

    Rows whose date is missing or unparseable are kept; rows with a valid
    date outside ``[date_from, date_to]`` are dropped. Ad rows accumulate
    across dates; ad groups and campaigns are rolled up from them.
    """
    df = read_csv_frame(text)
    cols = resolve_columns(df.columns)
    # ";" exports come from pt-BR locales where "," is the decimal mark
    decimal = "," if sniff_delimiter(text) == ";" else None
    start, end = _to_date(date_from), _to_date(date_to)

    def cell(row: Dict[str, str], key: str) -> str:
        col = cols[key]
        return str(row.get(col, "") or "").strip() if col else ""

    campaigns: Dict[str, _Bucket] = {}
    adsets: Dict[str, _Bucket] = {}
    ads: Dict[str, _Bucket] = {}
    daily: Dict[str, Dict[str, float]] = {}
    kept_undated = 0

    for row in df.to_dict(orient="records"):
        campaign_name = cell(row, "campaign_name")
        campaign_id = cell(row, "campaign_id")
        if not campaign_name and not campaign_id:
            continue

        raw_date = cell(row, "date")
        day = parse_row_date(raw_date)
        if not _in_window(day, start, end):
            continue
        if day is None:
            kept_undated += 1
            logger.debug("Keeping CSV row with missing/unparseable date %r", raw_date)

        campaign_id = campaign_id or f"campaign_{campaign_name}"
        campaign_status = normalize_csv_status(cell(row, "campaign_status"))
        adset_name = cell(row, "adgroup_name") or "Conjunto"
        adset_id = cell(row, "adgroup_id") or _hash_id("adset", campaign_id, adset_name)
        adset_status = normalize_csv_status(cell(row, "adgroup_status"), default=campaign_status)
        ad_name = cell(row, "ad_name") or "Anúncio"
        ad_id = cell(row, "ad_id") or _hash_id("ad", adset_id, ad_name)
        ad_status = normalize_csv_status(cell(row, "ad_status"), default=adset_status)

        campaigns.setdefault(
            campaign_id,
            _Bucket(
                id=campaign_id,
                name=campaign_name or campaign_id,
                status=campaign_status,
                objective=cell(row, "campaign_type") or "SEARCH",
            ),
        )
        adsets.setdefault(adset_id, _Bucket(adset_id, adset_name, adset_status, parent_id=campaign_id))
        ad = ads.setdefault(ad_id, _Bucket(ad_id, ad_name, ad_status, parent_id=adset_id))

        values = {
            "impressions": parse_number(cell(row, "impressions"), decimal),
            "reach": parse_number(cell(row, "reach"), decimal),
            "clicks": parse_number(cell(row, "clicks"), decimal),
            "spend": parse_number(cell(row, "cost"), decimal),
            "leads": parse_number(cell(row, "conversions"), decimal),
            "sales": parse_number(cell(row, "sales"), decimal),
        }
        for key, value in values.items():
            ad.counters[key] += value

        bucket_key = day.isoformat() if day else (start.isoformat() if start else None)
        if bucket_key:
            b = daily.setdefault(bucket_key, dict.fromkeys(values, 0.0))
            for key, value in values.items():
                b[key] += value

    if kept_undated:
        logger.info("Kept %d CSV rows without a usable date", kept_undated)

    result = make_result(
        _build_hierarchy(campaigns, adsets, ads),
        source=SOURCE,
        sparkline=[_point(d, b) for d, b in daily.items()],
        date_from=start.isoformat() if start else None,
        date_to=end.isoformat() if end else None,
    )
    logger.info("Normalized %d campaigns from Google Ads CSV", len(result.campaigns))
    return result


def _metrics(counters: Dict[str, float]):
    return derive_metrics(
        impressions=round_half_up(counters["impressions"]),
        reach=round_half_up(counters["reach"]),
        clicks=round_half_up(counters["clicks"]),
        spend=counters["spend"],
        leads=round_half_up(counters["leads"]),
        sales=round_half_up(counters["sales"]),
    )


def _point(day: str, counters: Dict[str, float]) -> SparklinePoint:
    m = _metrics(counters)
    return SparklinePoint(
        date=day,
        impressions=m.impressions,
        reach=m.reach,
        clicks=m.clicks,
        spend=m.spend,
        leads=m.leads,
        sales=m.sales,
    )


def _build_hierarchy(
    campaigns: Dict[str, _Bucket],
    adsets: Dict[str, _Bucket],
    ads: Dict[str, _Bucket],
) -> List[Campaign]:
    ads_by_adset: Dict[str, List[Ad]] = {}
    for a in ads.values():
        ads_by_adset.setdefault(a.parent_id, []).append(
            Ad(id=a.id, name=a.name, status=a.status, metrics=_metrics(a.counters))
        )

    adsets_by_campaign: Dict[str, List[AdSet]] = {}
    for s in adsets.values():
        adsets_by_campaign.setdefault(s.parent_id, []).append(
            AdSet(
                id=s.id,
                name=s.name,
                status=s.status,
                campaign_id=s.parent_id,
                ads=tuple(ads_by_adset.get(s.id, [])),
            )
        )

    return [
        Campaign(
            id=c.id,
            name=c.name,
            status=c.status,
            objective=CampaignObjective.parse(c.objective),
            adsets=tuple(adsets_by_campaign.get(c.id, [])),
            platform=SOURCE,
        )
        for c in campaigns.values()
    ]


# ─────────────────────────────────────────────────────────────────────────────
# Remote sources
# ─────────────────────────────────────────────────────────────────────────────


def fetch_csv_text(url: str, client: Optional[httpx.Client] = None, timeout: float = 30.0) -> str:
    """Download a published CSV (e.g. a Sheets ``export?format=csv`` link)."""
    try:
        if client is not None:
            resp = client.get(url)
            resp.raise_for_status()
            return resp.text
        with httpx.Client(timeout=timeout, follow_redirects=True) as c:
            resp = c.get(url)
            resp.raise_for_status()
            return resp.text
    except httpx.HTTPStatusError as exc:
        raise SourceUnavailable(
            f"CSV URL returned HTTP {exc.response.status_code}: {url}", source=SOURCE
        ) from exc
    except httpx.HTTPError as exc:
        raise SourceUnavailable(f"CSV URL unreachable: {exc}", source=SOURCE) from exc


def _resolve_creds_path() -> str:
    path = os.environ.get("MHUB_GOOGLE_CREDS_JSON") or os.environ.get(
        "GOOGLE_APPLICATION_CREDENTIALS"
    )
    if not path:
        raise GoogleSheetsConfigError(
            "Google credentials not configured. Set MHUB_GOOGLE_CREDS_JSON or "
            "GOOGLE_APPLICATION_CREDENTIALS to a Service Account JSON path."
        )
    if not Path(path).exists():
        raise GoogleSheetsConfigError(f"Credential file not found: {path}.")
    return path


def _open_worksheet(spreadsheet_id: str, worksheet: str):
    creds_path = _resolve_creds_path()
    if gspread is None or Credentials is None:
        raise GoogleSheetsConfigError(
            "Google Sheets dependencies missing. Install gspread and google-auth, "
            "then retry."
        )
    creds = Credentials.from_service_account_file(creds_path, scopes=SCOPES)
    client = gspread.authorize(creds)
    sh = client.open_by_key(spreadsheet_id)
    return sh.worksheet(worksheet) if worksheet else sh.sheet1


def read_worksheet_csv(spreadsheet_id: str, worksheet: str = "") -> str:
    """Read a worksheet through a service account and return it as CSV text."""
    ws = _open_worksheet(spreadsheet_id, worksheet)
    values: List[List[str]] = ws.get_all_values()
    if not values:
        raise SourceUnavailable(f"Worksheet '{worksheet}' is empty.", source=SOURCE)
    df = pd.DataFrame(values[1:], columns=values[0])
    return df.to_csv(index=False)


def push_dataframe(spreadsheet_id: str, worksheet: str, df: pd.DataFrame) -> int:
    """Replace a worksheet's contents with ``df``. Returns number of data rows uploaded."""
    ws = _open_worksheet(spreadsheet_id, worksheet)
    df = df.fillna("")
    values: List[List[str]] = [list(df.columns)] + df.astype(str).values.tolist()
    ws.clear()
    ws.update(values=values, range_name="A1")
    return len(df)


def push_tabular_file(spreadsheet_id: str, worksheet: str, input_path: str) -> int:
    """Push a CSV/TSV export to a worksheet."""
    p = Path(input_path)
    sep = "\t" if p.suffix.lower() == ".tsv" else ","
    df = pd.read_csv(p, sep=sep, dtype=str).fillna("")
    return push_dataframe(spreadsheet_id, worksheet, df)
