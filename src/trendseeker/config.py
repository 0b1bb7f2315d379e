from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass(slots=True)
class RateLimitPolicy:
    min_interval: float = 1.0


@dataclass(slots=True)
class CachePolicy:
    quote_ttl: float = 300.0
    history_ttl: float = 900.0
    max_entries: int | None = None
    sqlite_path: str | None = None


@dataclass(slots=True)
class UpstreamPolicy:
    timeout_seconds: float = 10.0


# Trading bars per history period name.
PERIOD_BARS = {
    "1d": 1,
    "5d": 5,
    "1mo": 21,
    "3mo": 63,
    "6mo": 126,
    "1y": 252,
    "2y": 504,
    "5y": 1260,
    "10y": 2520,
}


@dataclass(slots=True)
class HistoryPolicy:
    lookback_bars: int = 252

    def bars_for(self, period: str | None) -> int:
        if period is None:
            return self.lookback_bars
        try:
            return PERIOD_BARS[period]
        except KeyError:
            raise ValueError(f"unsupported history period: {period}") from None


@dataclass(slots=True)
class BatchPolicy:
    max_symbols: int = 20
    max_workers: int = 2


@dataclass(slots=True)
class SearchPolicy:
    min_query_length: int = 2
    max_results: int = 10


@dataclass(slots=True)
class SignalThresholds:
    rsi_overbought: float = 70.0
    rsi_oversold: float = 30.0
    proximity_ratio: float = 0.02


@dataclass(slots=True)
class AllocationPolicy:
    bullish_base: float = 25.0
    bullish_step: float = 10.0
    bullish_ceiling: float = 40.0
    bearish_base: float = 5.0
    bearish_step: float = 5.0
    neutral: float = 15.0
    conservative_multiplier: float = 0.7
    moderate_multiplier: float = 1.0
    aggressive_multiplier: float = 1.3
    clamp_to_ceiling: bool = False


@dataclass(slots=True)
class AppConfig:
    rate_limit: RateLimitPolicy = field(default_factory=RateLimitPolicy)
    cache: CachePolicy = field(default_factory=CachePolicy)
    upstream: UpstreamPolicy = field(default_factory=UpstreamPolicy)
    history: HistoryPolicy = field(default_factory=HistoryPolicy)
    batch: BatchPolicy = field(default_factory=BatchPolicy)
    search: SearchPolicy = field(default_factory=SearchPolicy)
    signals: SignalThresholds = field(default_factory=SignalThresholds)
    allocation: AllocationPolicy = field(default_factory=AllocationPolicy)

    @classmethod
    def from_env(cls) -> AppConfig:
        """Build a config, overriding defaults from ``TRENDSEEKER_*`` variables."""
        cfg = cls()
        cfg.rate_limit.min_interval = _env_float("TRENDSEEKER_MIN_INTERVAL", cfg.rate_limit.min_interval)
        cfg.cache.quote_ttl = _env_float("TRENDSEEKER_QUOTE_TTL", cfg.cache.quote_ttl)
        cfg.cache.history_ttl = _env_float("TRENDSEEKER_HISTORY_TTL", cfg.cache.history_ttl)
        cfg.cache.sqlite_path = os.getenv("TRENDSEEKER_CACHE_PATH") or cfg.cache.sqlite_path
        cfg.upstream.timeout_seconds = _env_float(
            "TRENDSEEKER_UPSTREAM_TIMEOUT", cfg.upstream.timeout_seconds
        )
        cfg.history.lookback_bars = int(
            _env_float("TRENDSEEKER_LOOKBACK_BARS", cfg.history.lookback_bars)
        )
        return cfg


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be numeric, got: {value!r}") from e
