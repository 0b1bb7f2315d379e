from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Generic, TypeVar

from trendseeker.errors import TrendSeekerError, UpstreamError
from trendseeker.models import CacheEntry, DataStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class Fetched(Generic[T]):
    """A value tagged with how it was obtained.

    DEGRADED results carry no value, only the upstream error that caused them.
    """

    status: DataStatus
    value: T | None = None
    fetched_at: datetime | None = None
    error: TrendSeekerError | None = None
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.status != DataStatus.DEGRADED

    def unwrap(self) -> T:
        if self.status == DataStatus.DEGRADED:
            if self.error is not None:
                raise self.error
            raise UpstreamError("no data available")
        return self.value


def fresh(entry: CacheEntry, from_cache: bool = False) -> Fetched:
    return Fetched(
        status=DataStatus.FRESH,
        value=entry.payload,
        fetched_at=entry.fetched_at,
        from_cache=from_cache,
    )


def with_fallback(
    fetch: Callable[[], CacheEntry],
    cached: CacheEntry | None,
    key: str = "",
) -> Fetched:
    """Run ``fetch``; on a retryable upstream failure fall back to ``cached``.

    Any cached entry is used regardless of age and tagged STALE. Without one
    the result is DEGRADED. Non-retryable errors (unknown symbol, malformed
    payload) propagate.
    """
    try:
        return fresh(fetch())
    except UpstreamError as e:
        if cached is not None:
            logger.warning("upstream failed for %s, serving cached data: %s", key, e)
            return Fetched(
                status=DataStatus.STALE,
                value=cached.payload,
                fetched_at=cached.fetched_at,
                error=e,
                from_cache=True,
            )
        logger.warning("upstream failed for %s with nothing cached: %s", key, e)
        return Fetched(status=DataStatus.DEGRADED, error=e)
