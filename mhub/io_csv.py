"""File read/write helpers for payloads, exports and reports."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, Union

from mhub.errors import SourceUnavailable
from mhub.mappers import campaigns_to_dataframe
from mhub.schema import Campaign


def read_text(path: Union[str, Path]) -> str:
    """Read an export file; Excel-saved CSVs are often latin-1 rather than UTF-8."""
    p = Path(path)
    if not p.exists():
        raise SourceUnavailable(f"File not found: {p}")
    raw = p.read_bytes()
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def read_json_payload(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a saved source payload (e.g. a Meta ``{campaigns, adsets, ads}`` dump)."""
    try:
        return json.loads(read_text(path))
    except json.JSONDecodeError as exc:
        raise SourceUnavailable(f"Malformed JSON in {path}: {exc}") from exc


def write_json(data: Any, path: Union[str, Path]) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
    return p


def write_campaigns_csv(campaigns: Iterable[Campaign], path: Union[str, Path], level: str = "ad") -> Path:
    """Write the hierarchy flattened to one row per entity at ``level``."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    df = campaigns_to_dataframe(campaigns, level)
    df.to_csv(p, index=False, encoding="utf-8")
    return p


def write_report(text: str, path: Union[str, Path]) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")
    return p
