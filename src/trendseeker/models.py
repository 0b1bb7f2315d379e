from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SignalType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class SignalStrength(str, Enum):
    WEAK = "WEAK"
    MEDIUM = "MEDIUM"
    STRONG = "STRONG"


class RiskProfile(str, Enum):
    CONSERVATIVE = "CONSERVATIVE"
    MODERATE = "MODERATE"
    AGGRESSIVE = "AGGRESSIVE"


class DataStatus(str, Enum):
    """How a value was obtained.

    FRESH: fetched from the provider, or served from a cache entry within TTL.
    STALE: served from cache because the provider call failed.
    DEGRADED: no value at all; the provider failed and nothing was cached.
    """

    FRESH = "FRESH"
    STALE = "STALE"
    DEGRADED = "DEGRADED"


@dataclass(slots=True, frozen=True)
class PriceBar:
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: int = 0


@dataclass(slots=True, frozen=True)
class QuoteSnapshot:
    symbol: str
    price: float
    change: float = 0.0
    change_percent: float = 0.0
    volume: int = 0
    high: float = 0.0
    low: float = 0.0
    open: float = 0.0
    previous_close: float = 0.0
    fetched_at: datetime = field(default_factory=utcnow)
    name: str = ""
    market_cap: float = 0.0
    currency: str = "USD"
    pe: float = 0.0
    eps: float = 0.0
    dividend: float = 0.0
    dividend_yield: float = 0.0
    beta: float = 0.0
    high_52_week: float = 0.0
    low_52_week: float = 0.0
    sector: str = ""
    industry: str = ""
    exchange: str = ""


@dataclass(slots=True, frozen=True)
class MacdValue:
    line: float
    signal: float
    histogram: float


@dataclass(slots=True, frozen=True)
class BollingerBands:
    upper: float
    middle: float
    lower: float


@dataclass(slots=True, frozen=True)
class StochasticValue:
    k: float
    d: float


@dataclass(slots=True)
class IndicatorSnapshot:
    # None means the indicator is unavailable (not enough history).
    sma20: float | None = None
    sma50: float | None = None
    ema12: float | None = None
    ema26: float | None = None
    rsi14: float | None = None
    macd: MacdValue | None = None
    bollinger: BollingerBands | None = None
    stochastic: StochasticValue | None = None
    volatility_annualized: float | None = None
    momentum10: float | None = None
    support20: float | None = None
    resistance20: float | None = None
    bars_used: int = 0
    last_close: float | None = None


@dataclass(slots=True, frozen=True)
class Signal:
    type: SignalType
    indicator: str
    strength: SignalStrength
    reason: str


@dataclass(slots=True, frozen=True)
class AllocationRecommendation:
    percentage: int
    risk_profile: RiskProfile
    strong_buy: int = 0
    strong_sell: int = 0
    base_percentage: float = 0.0


@dataclass(slots=True, frozen=True)
class CacheEntry:
    key: str
    payload: Any
    fetched_at: datetime


@dataclass(slots=True, frozen=True)
class SearchResult:
    symbol: str
    name: str = ""
    type: str = ""
    exchange: str = ""
    sector: str = ""
    industry: str = ""


@dataclass(slots=True)
class Analysis:
    symbol: str
    status: DataStatus
    quote: QuoteSnapshot | None = None
    indicators: IndicatorSnapshot | None = None
    signals: list[Signal] = field(default_factory=list)
    allocation: AllocationRecommendation | None = None
    errors: list[str] = field(default_factory=list)
    generated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return _jsonable(asdict(self))


@dataclass(slots=True)
class BatchItem:
    symbol: str
    result: Any = None
    error_type: str = ""
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error_type


@dataclass(slots=True)
class BatchReport:
    items: list[BatchItem] = field(default_factory=list)

    @property
    def succeeded(self) -> list[BatchItem]:
        return [i for i in self.items if i.ok]

    @property
    def failed(self) -> list[BatchItem]:
        return [i for i in self.items if not i.ok]

    def to_dict(self) -> dict:
        return {
            "data": [_jsonable(asdict(i.result)) for i in self.succeeded],
            "errors": [
                {"symbol": i.symbol, "error_type": i.error_type, "error": i.error}
                for i in self.failed
            ],
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    return value
