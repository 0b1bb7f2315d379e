from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from trendseeker.cache import (
    CacheStore,
    InMemoryCacheStore,
    SingleFlight,
    history_key,
    is_fresh,
    quote_key,
)
from trendseeker.config import AppConfig, CachePolicy
from trendseeker.errors import TrendSeekerError, UpstreamError, UpstreamTimeout
from trendseeker.limiter import RateLimiter, SystemClock
from trendseeker.models import (
    Analysis,
    BatchItem,
    BatchReport,
    CacheEntry,
    DataStatus,
    PriceBar,
    QuoteSnapshot,
    RiskProfile,
    SearchResult,
)
from trendseeker.normalizer import (
    normalize_history,
    normalize_quote,
    normalize_search,
    normalize_symbol,
)
from trendseeker.providers.base import MarketDataProvider
from trendseeker.resilience import Fetched, fresh, with_fallback
from trendseeker.skills.alerts import AlertRule, TriggeredAlert, evaluate_alerts
from trendseeker.skills.allocation import score_allocation
from trendseeker.skills.indicators import compute_indicators
from trendseeker.skills.signals import generate_signals
from trendseeker.storage import SqliteCacheStore

logger = logging.getLogger(__name__)

_STATUS_RANK = {DataStatus.FRESH: 0, DataStatus.STALE: 1, DataStatus.DEGRADED: 2}


def _worst(*statuses: DataStatus) -> DataStatus:
    return max(statuses, key=_STATUS_RANK.__getitem__)


def build_cache_store(policy: CachePolicy, clock: SystemClock | None = None) -> CacheStore:
    if policy.sqlite_path:
        return SqliteCacheStore(policy.sqlite_path, clock=clock)
    return InMemoryCacheStore(clock=clock, max_entries=policy.max_entries)


def evaluate_history(
    symbol: str,
    bars: Sequence[PriceBar],
    price: float | None = None,
    risk_profile: RiskProfile = RiskProfile.MODERATE,
    config: AppConfig | None = None,
) -> Analysis:
    """Indicators, signals and allocation for a price history. Pure."""
    cfg = config or AppConfig()
    indicators = compute_indicators(bars)
    signals = generate_signals(indicators, price=price, thresholds=cfg.signals)
    allocation = score_allocation(signals, risk_profile, cfg.allocation)
    return Analysis(
        symbol=symbol,
        status=DataStatus.FRESH,
        indicators=indicators,
        signals=signals,
        allocation=allocation,
    )


class _UpstreamCall:
    __slots__ = ("fn", "args", "value", "error")

    def __init__(self, fn: Callable[..., Any], args: tuple) -> None:
        self.fn = fn
        self.args = args
        self.value: Any = None
        self.error: Exception | None = None

    def run(self) -> None:
        try:
            self.value = self.fn(*self.args)
        except Exception as e:
            self.error = e


class MarketDataService:
    """Cached, rate-limited access to one upstream provider plus analysis.

    Explicit single-symbol calls default to ``use_cache=False`` and always go
    upstream; batch calls default to cache-first to save the shared budget.
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        config: AppConfig | None = None,
        cache: CacheStore | None = None,
        limiter: RateLimiter | None = None,
        clock: SystemClock | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.provider = provider
        self._clock = clock or SystemClock()
        self.cache = cache or build_cache_store(self.config.cache, self._clock)
        self.limiter = limiter or RateLimiter(self.config.rate_limit.min_interval, self._clock)
        self.inflight = SingleFlight()

    # --- upstream ---

    def _call_upstream(self, fn: Callable[..., Any], label: str, *args: Any) -> Any:
        """Run one provider call on its own daemon thread with a hard timeout.

        A call that overruns is abandoned, never joined again, so it cannot
        hold back later calls.
        """
        self.limiter.acquire()
        timeout = self.config.upstream.timeout_seconds
        name = getattr(fn, "__name__", "call")
        logger.info("upstream %s %s", name, label)
        call = _UpstreamCall(fn, (label, *args))
        worker = threading.Thread(target=call.run, name=f"trendseeker-{name}-{label}", daemon=True)
        worker.start()
        worker.join(timeout)
        if worker.is_alive():
            logger.warning("abandoning upstream %s %s after %ss", name, label, timeout)
            raise UpstreamTimeout(f"upstream call for {label} timed out after {timeout}s", label)
        if call.error is None:
            return call.value
        if isinstance(call.error, TrendSeekerError):
            raise call.error
        e = call.error
        raise UpstreamError(f"upstream call for {label} failed: {type(e).__name__}: {e}", label) from e

    def _refresh_quote(self, symbol: str) -> CacheEntry:
        raw = self._call_upstream(self.provider.fetch_quote, symbol)
        quote = normalize_quote(
            raw, symbol, self.provider.payload_format, fetched_at=self._clock.now()
        )
        return self.cache.put(quote_key(symbol), quote)

    def _refresh_history(self, symbol: str, key: str, lookback: int) -> CacheEntry:
        raw = self._call_upstream(self.provider.fetch_history, symbol, lookback)
        bars = normalize_history(raw, symbol, lookback, self.provider.payload_format)
        return self.cache.put(key, bars)

    def _load(
        self, key: str, ttl: float, use_cache: bool, refresh: Callable[[], CacheEntry]
    ) -> Fetched:
        cached = self.cache.get(key)
        if use_cache and cached is not None and is_fresh(cached, ttl, self._clock.now()):
            logger.debug("cache hit %s", key)
            return fresh(cached, from_cache=True)

        def fetch() -> CacheEntry:
            entry, _ = self.inflight.do(key, refresh)
            return entry

        return with_fallback(fetch, cached, key)

    # --- single symbol ---

    def get_quote(self, symbol: str, use_cache: bool = False) -> Fetched[QuoteSnapshot]:
        symbol = normalize_symbol(symbol)
        return self._load(
            quote_key(symbol),
            self.config.cache.quote_ttl,
            use_cache,
            lambda: self._refresh_quote(symbol),
        )

    def get_history(
        self, symbol: str, use_cache: bool = False, period: str | None = None
    ) -> Fetched[list[PriceBar]]:
        """Daily bars for ``symbol``; ``period`` ("1mo", "1y", ...) overrides the lookback."""
        symbol = normalize_symbol(symbol)
        lookback = self.config.history.bars_for(period)
        if lookback == self.config.history.lookback_bars:
            key = history_key(symbol)
        else:
            key = history_key(symbol, lookback)
        return self._load(
            key,
            self.config.cache.history_ttl,
            use_cache,
            lambda: self._refresh_history(symbol, key, lookback),
        )

    def validate_symbol(self, symbol: str) -> QuoteSnapshot:
        """Confirm the provider knows ``symbol``. Never falls back to stale data.

        Raises:
            SymbolNotFound: the provider has no record for the symbol.
            UpstreamError: the provider could not be reached.
        """
        symbol = normalize_symbol(symbol)
        key = quote_key(symbol)
        cached = self.cache.get(key)
        if cached is not None and is_fresh(cached, self.config.cache.quote_ttl, self._clock.now()):
            return cached.payload
        entry, _ = self.inflight.do(key, lambda: self._refresh_quote(symbol))
        return entry.payload

    def search(self, query: str) -> list[SearchResult]:
        """Symbol lookup through the shared rate limit. Not cached."""
        policy = self.config.search
        query = (query or "").strip()
        if len(query) < policy.min_query_length:
            raise ValueError(f"search query must be at least {policy.min_query_length} characters")
        raw = self._call_upstream(self.provider.search, query)
        return normalize_search(raw, query, policy.max_results)

    def analyze(
        self,
        symbol: str,
        risk_profile: RiskProfile = RiskProfile.MODERATE,
        use_cache: bool = False,
        period: str | None = None,
    ) -> Analysis:
        """Quote + history → indicators → signals → allocation.

        The result is DEGRADED when either input could not be obtained; without
        history there are no indicators, signals or allocation.
        """
        symbol = normalize_symbol(symbol)
        quote = self.get_quote(symbol, use_cache)
        history = self.get_history(symbol, use_cache, period)
        errors = [f"{type(f.error).__name__}: {f.error}" for f in (quote, history) if f.error]

        if not history.ok:
            return Analysis(
                symbol=symbol, status=DataStatus.DEGRADED, quote=quote.value, errors=errors
            )

        price = quote.value.price if quote.ok else None
        result = evaluate_history(symbol, history.value, price, risk_profile, self.config)
        result.status = _worst(quote.status, history.status)
        result.quote = quote.value
        result.errors = errors
        return result

    def check_alerts(
        self, symbol: str, rules: Sequence[AlertRule], use_cache: bool = True
    ) -> list[TriggeredAlert]:
        quote = self.get_quote(symbol, use_cache).unwrap()
        bars = None
        if any(r.type == "volume_spike" for r in rules):
            bars = self.get_history(symbol, use_cache).value
        return evaluate_alerts(quote, rules, bars)

    # --- batch ---

    def _run_batch(self, symbols: Iterable[str], fn: Callable[[str], Any]) -> BatchReport:
        cleaned: list[str] = []
        rejected: list[BatchItem] = []
        for raw in symbols:
            try:
                symbol = normalize_symbol(raw)
            except ValueError as e:
                rejected.append(BatchItem(symbol=str(raw or ""), error_type="ValueError", error=str(e)))
                continue
            if symbol not in cleaned:
                cleaned.append(symbol)
        count = len(cleaned) + len(rejected)
        if not count:
            raise ValueError("symbols must be a non-empty list")
        limit = self.config.batch.max_symbols
        if count > limit:
            raise ValueError(f"at most {limit} symbols allowed per request, got {count}")

        report = BatchReport()
        if cleaned:
            workers = max(1, min(self.config.batch.max_workers, len(cleaned)))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="trendseeker-batch") as pool:
                futures = [(s, pool.submit(fn, s)) for s in cleaned]
                for symbol, future in futures:
                    try:
                        report.items.append(BatchItem(symbol=symbol, result=future.result()))
                    except TrendSeekerError as e:
                        logger.warning("batch item %s failed: %s", symbol, e)
                        report.items.append(
                            BatchItem(symbol=symbol, error_type=type(e).__name__, error=str(e))
                        )
        report.items.extend(rejected)
        return report

    def get_quotes(self, symbols: Iterable[str], use_cache: bool = True) -> BatchReport:
        """Quotes for many symbols; a symbol with no data becomes a failed item."""

        def one(symbol: str) -> Fetched[QuoteSnapshot]:
            fetched = self.get_quote(symbol, use_cache)
            fetched.unwrap()
            return fetched

        return self._run_batch(symbols, one)

    def analyze_many(
        self,
        symbols: Iterable[str],
        risk_profile: RiskProfile = RiskProfile.MODERATE,
        use_cache: bool = True,
    ) -> BatchReport:
        return self._run_batch(symbols, lambda s: self.analyze(s, risk_profile, use_cache))
