from __future__ import annotations

import json
import sqlite3
from dataclasses import asdict
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any

from trendseeker.cache import CacheStore
from trendseeker.limiter import SystemClock
from trendseeker.models import CacheEntry, PriceBar, QuoteSnapshot

DB_PATH = Path("data/trendseeker.db")


def _encode(payload: Any) -> tuple[str, str]:
    if isinstance(payload, QuoteSnapshot):
        body = asdict(payload)
        body["fetched_at"] = payload.fetched_at.isoformat()
        return "quote", json.dumps(body)
    if isinstance(payload, list) and all(isinstance(b, PriceBar) for b in payload):
        rows = [dict(asdict(b), date=b.date.isoformat()) for b in payload]
        return "history", json.dumps(rows)
    raise TypeError(f"unsupported cache payload: {type(payload).__name__}")


def _decode(kind: str, raw: str) -> Any:
    body = json.loads(raw)
    if kind == "quote":
        body["fetched_at"] = datetime.fromisoformat(body["fetched_at"])
        return QuoteSnapshot(**body)
    if kind == "history":
        return [PriceBar(**dict(row, date=date.fromisoformat(row["date"]))) for row in body]
    raise ValueError(f"unknown cache payload kind: {kind}")


class SqliteCacheStore(CacheStore):
    """Cache substrate persisted in a sqlite table, one row per key."""

    def __init__(self, path: str | Path = DB_PATH, clock: SystemClock | None = None) -> None:
        self.path = Path(path)
        self._clock = clock or SystemClock()
        self._init_storage()

    def _conn(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_storage(self) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS cache_entries (
                    key TEXT PRIMARY KEY,
                    kind TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    fetched_at TEXT NOT NULL
                )
                """
            )

    def get(self, key: str) -> CacheEntry | None:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT key, kind, payload, fetched_at FROM cache_entries WHERE key = ?",
                (key,),
            ).fetchone()
        if row is None:
            return None
        return CacheEntry(
            key=row["key"],
            payload=_decode(row["kind"], row["payload"]),
            fetched_at=datetime.fromisoformat(row["fetched_at"]),
        )

    def put(self, key: str, payload: Any) -> CacheEntry:
        kind, body = _encode(payload)
        now = self._clock.now()
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO cache_entries(key, kind, payload, fetched_at)
                VALUES(?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    kind=excluded.kind,
                    payload=excluded.payload,
                    fetched_at=excluded.fetched_at
                """,
                (key, kind, body, now.isoformat()),
            )
        return CacheEntry(key=key, payload=payload, fetched_at=now)

    def purge_expired(self, ttl: float) -> int:
        cutoff = self._clock.now() - timedelta(seconds=ttl)
        with self._conn() as conn:
            rows = conn.execute("SELECT key, fetched_at FROM cache_entries").fetchall()
            expired = [r["key"] for r in rows if datetime.fromisoformat(r["fetched_at"]) <= cutoff]
            conn.executemany("DELETE FROM cache_entries WHERE key = ?", [(k,) for k in expired])
        return len(expired)

    def list_keys(self) -> list[str]:
        with self._conn() as conn:
            rows = conn.execute("SELECT key FROM cache_entries ORDER BY key").fetchall()
        return [str(r["key"]) for r in rows]
