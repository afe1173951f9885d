"""SQLite-backed cache for fetched source payloads.

Entries are keyed by a SHA-256 hash of the source name, the date range and
any extra discriminators (account id, active-only flag, ...). Values are
JSON text; each entry may carry its own expiry.

Usage::

    from mhub.cache import CacheStore, make_cache_key

    store = CacheStore("cache/mhub_cache.db")
    key = make_cache_key("meta_ads", "2024-05-01", "2024-05-31")

    cached = store.get(key)
    if cached is None:
        store.set(key, json.dumps(payload), ttl_seconds=900)
"""
from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
import time
from contextlib import closing
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Cache store
# ─────────────────────────────────────────────────────────────────────────────

class CacheStore:
    """Persistent payload cache with per-entry expiry."""

    def __init__(self, db_path: str | Path, clock=time.time) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._hits = 0
        self._misses = 0
        self._init_db()

    # ── DB setup ──────────────────────────────────────────────────────────────

    def _init_db(self) -> None:
        with closing(self._connect()) as conn, conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS source_cache (
                    key        TEXT PRIMARY KEY,
                    value      TEXT NOT NULL,
                    expires_at REAL
                )
            """)

    def _connect(self) -> sqlite3.Connection:
        # callers wrap in closing(); the connection context only commits or rolls back
        return sqlite3.connect(self.db_path, check_same_thread=False)

    # ── Public API ────────────────────────────────────────────────────────────

    def get(self, key: str) -> Optional[str]:
        """Return the cached value, or None when missing or expired."""
        with closing(self._connect()) as conn, conn:
            row = conn.execute(
                "SELECT value, expires_at FROM source_cache WHERE key = ?", (key,)
            ).fetchone()
        if row and (row[1] is None or row[1] > self._clock()):
            self._hits += 1
            return row[0]
        if row:
            logger.debug("Cache entry %s expired", key[:12])
            self.expire(key)
        self._misses += 1
        return None

    def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        """Store (or overwrite) an entry; without ``ttl_seconds`` it never expires."""
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        with closing(self._connect()) as conn, conn:
            conn.execute(
                "INSERT OR REPLACE INTO source_cache (key, value, expires_at) VALUES (?, ?, ?)",
                (key, value, expires_at),
            )

    def expire(self, key: str) -> bool:
        """Drop one entry. Returns True when something was removed."""
        with closing(self._connect()) as conn, conn:
            cur = conn.execute("DELETE FROM source_cache WHERE key = ?", (key,))
        return cur.rowcount > 0

    def clear(self) -> int:
        """Delete all entries; returns number of rows removed."""
        with closing(self._connect()) as conn, conn:
            cur = conn.execute("DELETE FROM source_cache")
        return cur.rowcount

    # ── Stats ─────────────────────────────────────────────────────────────────

    @property
    def hits(self) -> int:
        return self._hits

    @property
    def misses(self) -> int:
        return self._misses

    def hit_rate(self) -> float:
        total = self._hits + self._misses
        return round(self._hits / total, 4) if total else 0.0

    def stats(self) -> dict:
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self.hit_rate(),
        }


# ─────────────────────────────────────────────────────────────────────────────
# Key helpers
# ─────────────────────────────────────────────────────────────────────────────

def make_cache_key(source: str, date_from: Optional[str], date_to: Optional[str], *extra: Any) -> str:
    """Return a SHA-256 hex digest for a source fetch.

    >>> make_cache_key("meta_ads", "2024-05-01", "2024-05-31") == make_cache_key(
    ...     "meta_ads", "2024-05-01", "2024-05-31")
    True
    """
    raw = json.dumps(
        {"source": source, "from": date_from, "to": date_to, "extra": [str(e) for e in extra]},
        ensure_ascii=False,
        sort_keys=True,
    )
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()
