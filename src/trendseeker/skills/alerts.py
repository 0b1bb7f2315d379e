from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from trendseeker.models import PriceBar, QuoteSnapshot

VOLUME_AVERAGE_BARS = 20


class AlertType(str, Enum):
    PRICE_ABOVE = "price_above"
    PRICE_BELOW = "price_below"
    VOLUME_SPIKE = "volume_spike"
    PERCENT_CHANGE_ABOVE = "percent_change_above"
    PERCENT_CHANGE_BELOW = "percent_change_below"
    MARKET_CAP_ABOVE = "market_cap_above"
    MARKET_CAP_BELOW = "market_cap_below"


@dataclass(slots=True, frozen=True)
class AlertRule:
    type: AlertType
    value: float
    is_active: bool = True
    description: str = ""


@dataclass(slots=True, frozen=True)
class TriggeredAlert:
    symbol: str
    rule: AlertRule
    observed: float


def _average_volume(bars: Sequence[PriceBar] | None) -> float | None:
    if not bars:
        return None
    window = bars[-VOLUME_AVERAGE_BARS:]
    avg = sum(b.volume for b in window) / len(window)
    return avg or None


def _observe(rule: AlertRule, quote: QuoteSnapshot, bars: Sequence[PriceBar] | None) -> float | None:
    kind = AlertType(rule.type)
    if kind in (AlertType.PRICE_ABOVE, AlertType.PRICE_BELOW):
        return quote.price
    if kind in (AlertType.PERCENT_CHANGE_ABOVE, AlertType.PERCENT_CHANGE_BELOW):
        return quote.change_percent
    if kind in (AlertType.MARKET_CAP_ABOVE, AlertType.MARKET_CAP_BELOW):
        # Zero means the provider did not report a market cap.
        return quote.market_cap or None
    avg = _average_volume(bars)
    return None if avg is None else quote.volume / avg


def evaluate_alerts(
    quote: QuoteSnapshot,
    rules: Sequence[AlertRule],
    bars: Sequence[PriceBar] | None = None,
) -> list[TriggeredAlert]:
    """Return the active rules the quote satisfies.

    ``volume_spike`` compares the quote volume to the mean volume of the
    trailing bars and is skipped without history.
    """
    out: list[TriggeredAlert] = []
    for rule in rules:
        if not rule.is_active:
            continue
        observed = _observe(rule, quote, bars)
        if observed is None:
            continue
        kind = AlertType(rule.type)
        if kind.value.endswith("_below"):
            hit = observed < rule.value
        elif kind == AlertType.VOLUME_SPIKE:
            hit = observed >= rule.value
        else:
            hit = observed > rule.value
        if hit:
            out.append(TriggeredAlert(symbol=quote.symbol, rule=rule, observed=observed))
    return out
