from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, Callable, TypeVar

from trendseeker.limiter import SystemClock
from trendseeker.models import CacheEntry

logger = logging.getLogger(__name__)

T = TypeVar("T")


def quote_key(symbol: str) -> str:
    return f"quote:{symbol}"


def history_key(symbol: str, lookback_bars: int | None = None) -> str:
    if lookback_bars is None:
        return f"history:{symbol}"
    return f"history:{symbol}:{lookback_bars}"


def is_fresh(entry: CacheEntry, ttl: float, now: datetime) -> bool:
    return now - entry.fetched_at < timedelta(seconds=ttl)


class CacheStore(ABC):
    """Last-known payload per key, stamped with the time it was written."""

    @abstractmethod
    def get(self, key: str) -> CacheEntry | None:
        raise NotImplementedError

    @abstractmethod
    def put(self, key: str, payload: Any) -> CacheEntry:
        raise NotImplementedError

    @abstractmethod
    def purge_expired(self, ttl: float) -> int:
        raise NotImplementedError


class InMemoryCacheStore(CacheStore):
    """Dict-backed store. Unbounded unless ``max_entries`` is set (then LRU)."""

    def __init__(self, clock: SystemClock | None = None, max_entries: int | None = None) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be positive")
        self._clock = clock or SystemClock()
        self._max_entries = max_entries
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._entries.move_to_end(key)
            return entry

    def put(self, key: str, payload: Any) -> CacheEntry:
        entry = CacheEntry(key=key, payload=payload, fetched_at=self._clock.now())
        with self._lock:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            if self._max_entries is not None:
                while len(self._entries) > self._max_entries:
                    evicted, _ = self._entries.popitem(last=False)
                    logger.debug("cache evicted %s", evicted)
        return entry

    def purge_expired(self, ttl: float) -> int:
        now = self._clock.now()
        with self._lock:
            expired = [k for k, e in self._entries.items() if not is_fresh(e, ttl, now)]
            for k in expired:
                del self._entries[k]
        return len(expired)


class _Call:
    __slots__ = ("done", "value", "error", "dups")

    def __init__(self) -> None:
        self.done = threading.Event()
        self.value: Any = None
        self.error: BaseException | None = None
        self.dups = 0


class SingleFlight:
    """Coalesces concurrent calls for the same key into one execution."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: dict[str, _Call] = {}

    def duplicates(self, key: str) -> int:
        with self._lock:
            call = self._calls.get(key)
            return call.dups if call else 0

    def do(self, key: str, fn: Callable[[], T]) -> tuple[T, bool]:
        """Run ``fn`` once per in-flight key.

        Returns ``(value, shared)``; ``shared`` is True for callers that waited
        on another caller's execution. Followers re-raise the leader's error.
        """
        with self._lock:
            call = self._calls.get(key)
            if call is not None:
                call.dups += 1
                leader = False
            else:
                call = _Call()
                self._calls[key] = call
                leader = True

        if not leader:
            call.done.wait()
            if call.error is not None:
                raise call.error
            return call.value, True

        try:
            call.value = fn()
        except BaseException as e:
            call.error = e
            raise
        finally:
            with self._lock:
                del self._calls[key]
            call.done.set()
        return call.value, call.dups > 0
