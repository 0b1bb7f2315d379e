from __future__ import annotations

import math
import statistics
from collections.abc import Sequence

from trendseeker.models import (
    BollingerBands,
    IndicatorSnapshot,
    MacdValue,
    PriceBar,
    StochasticValue,
)

TRADING_DAYS_PER_YEAR = 252

RSI_PERIOD = 14
MACD_FAST, MACD_SLOW, MACD_SIGNAL = 12, 26, 9
BOLLINGER_PERIOD, BOLLINGER_WIDTH = 20, 2.0
STOCH_PERIOD, STOCH_SMOOTH = 14, 3
MOMENTUM_PERIOD = 10
RANGE_PERIOD = 20


def sma(values: Sequence[float], n: int) -> float | None:
    if n < 1 or len(values) < n:
        return None
    return sum(values[-n:]) / n


def ema_series(values: Sequence[float], n: int) -> list[float]:
    """EMA values from index ``n - 1`` onward, seeded with the SMA of the first n."""
    if n < 1 or len(values) < n:
        return []
    k = 2 / (n + 1)
    current = sum(values[:n]) / n
    out = [current]
    for v in values[n:]:
        current = (v - current) * k + current
        out.append(current)
    return out


def ema(values: Sequence[float], n: int) -> float | None:
    series = ema_series(values, n)
    return series[-1] if series else None


def rsi(closes: Sequence[float], period: int = RSI_PERIOD) -> float | None:
    """Wilder RSI. Returns 100 when the average loss is zero."""
    if len(closes) < period + 1:
        return None
    changes = [b - a for a, b in zip(closes, closes[1:])]
    avg_gain = sum(max(c, 0.0) for c in changes[:period]) / period
    avg_loss = sum(max(-c, 0.0) for c in changes[:period]) / period
    for c in changes[period:]:
        avg_gain = (avg_gain * (period - 1) + max(c, 0.0)) / period
        avg_loss = (avg_loss * (period - 1) + max(-c, 0.0)) / period
    if avg_loss == 0:
        return 100.0
    return 100 - 100 / (1 + avg_gain / avg_loss)


def macd(
    closes: Sequence[float],
    fast: int = MACD_FAST,
    slow: int = MACD_SLOW,
    signal: int = MACD_SIGNAL,
) -> MacdValue | None:
    if len(closes) < slow + signal:
        return None
    fast_series = ema_series(closes, fast)
    slow_series = ema_series(closes, slow)
    # Align both series on the bars where the slow EMA exists.
    offset = slow - fast
    line = [f - s for f, s in zip(fast_series[offset:], slow_series)]
    signal_series = ema_series(line, signal)
    if not signal_series:
        return None
    return MacdValue(line=line[-1], signal=signal_series[-1], histogram=line[-1] - signal_series[-1])


def bollinger(
    closes: Sequence[float], period: int = BOLLINGER_PERIOD, width: float = BOLLINGER_WIDTH
) -> BollingerBands | None:
    if len(closes) < period:
        return None
    window = closes[-period:]
    middle = sum(window) / period
    spread = width * statistics.stdev(window)
    return BollingerBands(upper=middle + spread, middle=middle, lower=middle - spread)


def stochastic(
    bars: Sequence[PriceBar], period: int = STOCH_PERIOD, smooth: int = STOCH_SMOOTH
) -> StochasticValue | None:
    """%K over ``period`` bars and %D as its ``smooth``-bar SMA.

    Unavailable when any window has no range (high == low).
    """
    if len(bars) < period + smooth:
        return None
    ks: list[float] = []
    for end in range(len(bars) - smooth + 1, len(bars) + 1):
        window = bars[end - period : end]
        lowest = min(b.low for b in window)
        highest = max(b.high for b in window)
        if highest == lowest:
            return None
        ks.append((window[-1].close - lowest) / (highest - lowest) * 100)
    return StochasticValue(k=ks[-1], d=sum(ks) / smooth)


def volatility(closes: Sequence[float], periods_per_year: int = TRADING_DAYS_PER_YEAR) -> float | None:
    """Annualized stdev of daily simple returns.

    A single return has no dispersion, so two bars give 0.0.
    """
    if len(closes) < 2:
        return None
    returns = [b / a - 1 for a, b in zip(closes, closes[1:]) if a != 0]
    if not returns:
        return None
    if len(returns) == 1:
        return 0.0
    return statistics.stdev(returns) * math.sqrt(periods_per_year)


def momentum(closes: Sequence[float], period: int = MOMENTUM_PERIOD) -> float | None:
    if len(closes) < period + 1:
        return None
    base = closes[-period - 1]
    if base == 0:
        return None
    return (closes[-1] - base) / base * 100


def support_resistance(
    bars: Sequence[PriceBar], period: int = RANGE_PERIOD
) -> tuple[float, float] | None:
    if len(bars) < period:
        return None
    window = bars[-period:]
    return min(b.low for b in window), max(b.high for b in window)


def compute_indicators(bars: Sequence[PriceBar]) -> IndicatorSnapshot:
    closes = [b.close for b in bars]
    levels = support_resistance(bars)
    return IndicatorSnapshot(
        sma20=sma(closes, 20),
        sma50=sma(closes, 50),
        ema12=ema(closes, 12),
        ema26=ema(closes, 26),
        rsi14=rsi(closes),
        macd=macd(closes),
        bollinger=bollinger(closes),
        stochastic=stochastic(bars),
        volatility_annualized=volatility(closes),
        momentum10=momentum(closes),
        support20=levels[0] if levels else None,
        resistance20=levels[1] if levels else None,
        bars_used=len(bars),
        last_close=closes[-1] if closes else None,
    )
