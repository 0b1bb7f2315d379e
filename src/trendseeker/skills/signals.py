from __future__ import annotations

from trendseeker.config import SignalThresholds
from trendseeker.models import IndicatorSnapshot, Signal, SignalStrength, SignalType

RSI = "RSI"
MOVING_AVERAGES = "Moving Averages"
MACD = "MACD"
BOLLINGER = "Bollinger Bands"
SUPPORT = "Support"
RESISTANCE = "Resistance"


def _buy(indicator: str, strength: SignalStrength, reason: str) -> Signal:
    return Signal(type=SignalType.BUY, indicator=indicator, strength=strength, reason=reason)


def _sell(indicator: str, strength: SignalStrength, reason: str) -> Signal:
    return Signal(type=SignalType.SELL, indicator=indicator, strength=strength, reason=reason)


def rsi_signals(s: IndicatorSnapshot, t: SignalThresholds) -> list[Signal]:
    if s.rsi14 is None:
        return []
    if s.rsi14 > t.rsi_overbought:
        return [_sell(RSI, SignalStrength.STRONG, "Overbought condition")]
    if s.rsi14 < t.rsi_oversold:
        return [_buy(RSI, SignalStrength.STRONG, "Oversold condition")]
    return []


def moving_average_signals(s: IndicatorSnapshot, price: float) -> list[Signal]:
    if s.sma20 is None or s.sma50 is None:
        return []
    if price > s.sma20 > s.sma50:
        return [_buy(MOVING_AVERAGES, SignalStrength.MEDIUM, "Price above SMA20, SMA20 above SMA50")]
    if price < s.sma20 < s.sma50:
        return [_sell(MOVING_AVERAGES, SignalStrength.MEDIUM, "Price below SMA20, SMA20 below SMA50")]
    return []


def macd_signals(s: IndicatorSnapshot) -> list[Signal]:
    if s.macd is None:
        return []
    if s.macd.line > s.macd.signal:
        return [_buy(MACD, SignalStrength.MEDIUM, "MACD line above signal line")]
    if s.macd.line < s.macd.signal:
        return [_sell(MACD, SignalStrength.MEDIUM, "MACD line below signal line")]
    return []


def bollinger_signals(s: IndicatorSnapshot, price: float) -> list[Signal]:
    if s.bollinger is None:
        return []
    if price > s.bollinger.upper:
        return [_sell(BOLLINGER, SignalStrength.MEDIUM, "Price above upper Bollinger band")]
    if price < s.bollinger.lower:
        return [_buy(BOLLINGER, SignalStrength.MEDIUM, "Price below lower Bollinger band")]
    return []


def level_signals(s: IndicatorSnapshot, price: float, t: SignalThresholds) -> list[Signal]:
    out: list[Signal] = []
    if s.support20 is not None and s.support20 > 0:
        if (price - s.support20) / s.support20 < t.proximity_ratio:
            out.append(_buy(SUPPORT, SignalStrength.STRONG, "Price near 20-day support"))
    if s.resistance20 is not None and price > 0:
        if (s.resistance20 - price) / price < t.proximity_ratio:
            out.append(_sell(RESISTANCE, SignalStrength.STRONG, "Price near 20-day resistance"))
    return out


def generate_signals(
    snapshot: IndicatorSnapshot,
    price: float | None = None,
    thresholds: SignalThresholds | None = None,
) -> list[Signal]:
    """Evaluate every rule against the snapshot; rules may fire together.

    ``price`` defaults to the snapshot's last close. Price-based rules are
    skipped when no price is available.
    """
    t = thresholds or SignalThresholds()
    if price is None:
        price = snapshot.last_close

    signals = rsi_signals(snapshot, t) + macd_signals(snapshot)
    if price is not None:
        signals += moving_average_signals(snapshot, price)
        signals += bollinger_signals(snapshot, price)
        signals += level_signals(snapshot, price, t)
    return signals
