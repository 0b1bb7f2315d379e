from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

from trendseeker.errors import MalformedPayload, SymbolNotFound, UpstreamRateLimited
from trendseeker.models import PriceBar, QuoteSnapshot, SearchResult, utcnow

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_BARS = 252


@dataclass(slots=True, frozen=True)
class QuoteFields:
    """Candidate payload keys per canonical quote field, first match wins."""

    price: tuple[str, ...]
    previous_close: tuple[str, ...]
    change: tuple[str, ...] = ()
    change_percent: tuple[str, ...] = ()
    volume: tuple[str, ...] = ()
    high: tuple[str, ...] = ()
    low: tuple[str, ...] = ()
    open: tuple[str, ...] = ()
    symbol: tuple[str, ...] = ()
    name: tuple[str, ...] = ()
    market_cap: tuple[str, ...] = ()
    currency: tuple[str, ...] = ()
    pe: tuple[str, ...] = ()
    eps: tuple[str, ...] = ()
    dividend: tuple[str, ...] = ()
    dividend_yield: tuple[str, ...] = ()
    beta: tuple[str, ...] = ()
    high_52_week: tuple[str, ...] = ()
    low_52_week: tuple[str, ...] = ()
    sector: tuple[str, ...] = ()
    industry: tuple[str, ...] = ()
    exchange: tuple[str, ...] = ()
    envelope: str | None = None
    # Keys whose presence means the vendor throttled the request.
    throttle_keys: tuple[str, ...] = ()
    # Fields that are all zero when the vendor does not know the symbol.
    unknown_when_zero: tuple[str, ...] = ()
    # Multiplier turning the vendor dividend yield into a percentage.
    yield_scale: float = 1.0


@dataclass(slots=True, frozen=True)
class BarFields:
    date: tuple[str, ...]
    open: tuple[str, ...]
    high: tuple[str, ...]
    low: tuple[str, ...]
    close: tuple[str, ...]
    volume: tuple[str, ...]
    throttle_keys: tuple[str, ...] = ()


QUOTE_FORMATS: dict[str, QuoteFields] = {
    "canonical": QuoteFields(
        price=("price",),
        previous_close=("previous_close", "previousClose"),
        change=("change",),
        change_percent=("change_percent", "changePercent"),
        volume=("volume",),
        high=("high",),
        low=("low",),
        open=("open",),
        symbol=("symbol",),
        name=("name",),
        market_cap=("market_cap", "marketCap"),
        currency=("currency",),
        pe=("pe",),
        eps=("eps",),
        dividend=("dividend",),
        dividend_yield=("dividend_yield", "dividendYield"),
        beta=("beta",),
        high_52_week=("high_52_week", "high52Week"),
        low_52_week=("low_52_week", "low52Week"),
        sector=("sector",),
        industry=("industry",),
        exchange=("exchange",),
    ),
    "yahoo": QuoteFields(
        price=("regularMarketPrice", "postMarketPrice"),
        previous_close=("regularMarketPreviousClose",),
        volume=("regularMarketVolume", "postMarketVolume"),
        high=("regularMarketDayHigh",),
        low=("regularMarketDayLow",),
        open=("regularMarketOpen",),
        symbol=("symbol",),
        name=("shortName", "longName"),
        market_cap=("marketCap",),
        currency=("currency",),
        pe=("trailingPE",),
        eps=("epsTrailingTwelveMonths", "trailingEps"),
        dividend=("dividendRate",),
        dividend_yield=("dividendYield",),
        beta=("beta",),
        high_52_week=("fiftyTwoWeekHigh",),
        low_52_week=("fiftyTwoWeekLow",),
        sector=("sector",),
        industry=("industry",),
        exchange=("fullExchangeName", "exchange"),
        yield_scale=100.0,
    ),
    "alpha_vantage": QuoteFields(
        price=("05. price",),
        previous_close=("08. previous close",),
        change=("09. change",),
        change_percent=("10. change percent",),
        volume=("06. volume",),
        high=("03. high",),
        low=("04. low",),
        open=("02. open",),
        symbol=("01. symbol",),
        envelope="Global Quote",
        throttle_keys=("Note", "Information"),
    ),
    "finnhub": QuoteFields(
        price=("c",),
        previous_close=("pc",),
        change=("d",),
        change_percent=("dp",),
        high=("h",),
        low=("l",),
        open=("o",),
        unknown_when_zero=("c", "pc"),
    ),
}

_OHLCV = BarFields(
    date=("date", "Date", "datetime", "timestamp"),
    open=("open", "Open"),
    high=("high", "High"),
    low=("low", "Low"),
    close=("close", "Close", "adj_close", "Adj Close"),
    volume=("volume", "Volume"),
)

BAR_FORMATS: dict[str, BarFields] = {
    "canonical": _OHLCV,
    "yahoo": _OHLCV,
    "alpha_vantage": BarFields(
        date=("date",),
        open=("1. open",),
        high=("2. high",),
        low=("3. low",),
        close=("4. close",),
        volume=("5. volume", "6. volume"),
        throttle_keys=("Note", "Information"),
    ),
    "finnhub": BarFields(
        date=("t",), open=("o",), high=("h",), low=("l",), close=("c",), volume=("v",)
    ),
}


def safe_float(v: object) -> float | None:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, str):
        v = v.strip().rstrip("%").replace(",", "")
        if v in {"", "-", "--", "None", "nan", "null"}:
            return None
    try:
        out = float(v)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(out) or math.isinf(out) else out


def _pick(raw: Mapping, candidates: tuple[str, ...]) -> Any:
    for key in candidates:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _pick_float(raw: Mapping, candidates: tuple[str, ...]) -> float | None:
    return safe_float(_pick(raw, candidates))


def _format(table: dict, payload_format: str):
    try:
        return table[payload_format]
    except KeyError:
        raise ValueError(f"unsupported payload format: {payload_format}") from None


def _raise_if_throttled(raw: Mapping, keys: tuple[str, ...], symbol: str) -> None:
    for key in keys:
        if key in raw:
            raise UpstreamRateLimited(f"provider throttled request for {symbol}: {raw[key]}", symbol)


def normalize_symbol(symbol: str) -> str:
    if not symbol or not symbol.strip():
        raise ValueError("symbol must be a non-empty string")
    return symbol.strip().upper()


def normalize_quote(
    raw: object,
    symbol: str,
    payload_format: str = "canonical",
    fetched_at: datetime | None = None,
) -> QuoteSnapshot:
    """Map a provider quote payload onto a QuoteSnapshot.

    Raises:
        SymbolNotFound: the payload is absent or an empty vendor envelope.
        MalformedPayload: the payload is not a mapping or has no usable price.
        UpstreamRateLimited: the payload is a vendor throttle notice.
    """
    fields = _format(QUOTE_FORMATS, payload_format)
    if raw is None:
        raise SymbolNotFound(f"no quote data for symbol: {symbol}", symbol)
    if not isinstance(raw, Mapping):
        raise MalformedPayload(f"quote payload for {symbol} is {type(raw).__name__}", symbol)
    _raise_if_throttled(raw, fields.throttle_keys, symbol)
    if fields.envelope is not None and fields.envelope in raw:
        raw = raw[fields.envelope]
        if not isinstance(raw, Mapping):
            raise MalformedPayload(f"quote envelope for {symbol} is not a mapping", symbol)
    if not raw:
        raise SymbolNotFound(f"no quote data for symbol: {symbol}", symbol)
    if fields.unknown_when_zero and all(
        not _pick_float(raw, (key,)) for key in fields.unknown_when_zero
    ):
        raise SymbolNotFound(f"provider returned an empty quote for symbol: {symbol}", symbol)

    price = _pick_float(raw, fields.price)
    if price is None:
        if _pick(raw, fields.price) is None:
            raise SymbolNotFound(f"no price in quote for symbol: {symbol}", symbol)
        raise MalformedPayload(f"unparseable price for {symbol}: {_pick(raw, fields.price)!r}", symbol)
    if price < 0:
        raise MalformedPayload(f"negative price for {symbol}: {price}", symbol)

    previous_close = _pick_float(raw, fields.previous_close) or 0.0
    change = _pick_float(raw, fields.change)
    if change is None:
        change = price - previous_close
    change_percent = _pick_float(raw, fields.change_percent)
    if change_percent is None:
        change_percent = (change / previous_close * 100) if previous_close != 0 else 0.0

    high = _pick_float(raw, fields.high) or 0.0
    low = _pick_float(raw, fields.low) or 0.0
    if high and low and high < low:
        high, low = low, high
    high_52 = _pick_float(raw, fields.high_52_week) or 0.0
    low_52 = _pick_float(raw, fields.low_52_week) or 0.0
    if high_52 and low_52 and high_52 < low_52:
        high_52, low_52 = low_52, high_52

    volume = _pick_float(raw, fields.volume) or 0.0
    return QuoteSnapshot(
        symbol=str(_pick(raw, fields.symbol) or symbol).upper(),
        price=price,
        change=change,
        change_percent=change_percent,
        volume=int(volume),
        high=high,
        low=low,
        open=_pick_float(raw, fields.open) or 0.0,
        previous_close=previous_close,
        fetched_at=fetched_at or utcnow(),
        name=str(_pick(raw, fields.name) or ""),
        market_cap=_pick_float(raw, fields.market_cap) or 0.0,
        currency=str(_pick(raw, fields.currency) or "USD"),
        pe=_pick_float(raw, fields.pe) or 0.0,
        eps=_pick_float(raw, fields.eps) or 0.0,
        dividend=_pick_float(raw, fields.dividend) or 0.0,
        dividend_yield=(_pick_float(raw, fields.dividend_yield) or 0.0) * fields.yield_scale,
        beta=_pick_float(raw, fields.beta) or 0.0,
        high_52_week=high_52,
        low_52_week=low_52,
        sector=str(_pick(raw, fields.sector) or ""),
        industry=str(_pick(raw, fields.industry) or ""),
        exchange=str(_pick(raw, fields.exchange) or ""),
    )


def normalize_search(raw: object, query: str, limit: int = 10) -> list[SearchResult]:
    """Map a Yahoo-style search payload (``{"quotes": [...]}`` or a bare list).

    Entries without a symbol are dropped; at most ``limit`` results are kept.
    """
    if raw is None:
        return []
    if isinstance(raw, Mapping):
        raw = raw.get("quotes") or []
    if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)):
        raise MalformedPayload(f"search payload for {query!r} is {type(raw).__name__}")

    out: list[SearchResult] = []
    for item in raw:
        if not isinstance(item, Mapping) or not item.get("symbol"):
            continue
        out.append(
            SearchResult(
                symbol=str(item["symbol"]).upper(),
                name=str(_pick(item, ("shortname", "longname", "name")) or ""),
                type=str(_pick(item, ("typeDisp", "quoteType", "type")) or ""),
                exchange=str(_pick(item, ("exchange", "exchDisp")) or ""),
                sector=str(item.get("sector") or ""),
                industry=str(item.get("industry") or ""),
            )
        )
        if len(out) >= limit:
            break
    return out


def _parse_date(v: object) -> date | None:
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return datetime.fromtimestamp(v, tz=timezone.utc).date()
    if isinstance(v, str) and v.strip():
        try:
            return datetime.fromisoformat(v.strip().replace("Z", "+00:00")).date()
        except ValueError:
            return None
    if hasattr(v, "to_pydatetime"):
        return v.to_pydatetime().date()
    return None


def _rows(raw: object, payload_format: str, symbol: str) -> list[Mapping]:
    if isinstance(raw, Mapping):
        if payload_format == "finnhub":
            if raw.get("s") == "no_data":
                return []
            columns = ("t", "o", "h", "l", "c", "v")
            series = [raw.get(c) or [] for c in columns]
            return [dict(zip(columns, values)) for values in zip(*series)]
        if payload_format == "alpha_vantage":
            series = next(
                (v for k, v in raw.items() if str(k).startswith("Time Series")), raw
            )
            return [dict(v, date=k) for k, v in series.items() if isinstance(v, Mapping)]
        raise MalformedPayload(f"history payload for {symbol} is a mapping", symbol)
    if isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)):
        return list(raw)
    raise MalformedPayload(f"history payload for {symbol} is {type(raw).__name__}", symbol)


def normalize_history(
    raw: object,
    symbol: str,
    lookback_bars: int = DEFAULT_LOOKBACK_BARS,
    payload_format: str = "canonical",
) -> list[PriceBar]:
    """Map a provider price series onto ascending PriceBars.

    Only the most recent ``lookback_bars`` bars are kept. Rows without a date
    or close are skipped; a later row for the same date replaces an earlier one.
    """
    if lookback_bars < 1:
        raise ValueError("lookback_bars must be positive")
    fields = _format(BAR_FORMATS, payload_format)
    if raw is None:
        raise SymbolNotFound(f"no history for symbol: {symbol}", symbol)
    if isinstance(raw, Mapping):
        _raise_if_throttled(raw, fields.throttle_keys, symbol)
    rows = _rows(raw, payload_format, symbol)
    if not rows:
        raise SymbolNotFound(f"empty history for symbol: {symbol}", symbol)

    by_date: dict[date, PriceBar] = {}
    skipped = 0
    for row in rows:
        if not isinstance(row, Mapping):
            skipped += 1
            continue
        day = _parse_date(_pick(row, fields.date))
        close = _pick_float(row, fields.close)
        if day is None or close is None or close < 0:
            skipped += 1
            continue
        high = _pick_float(row, fields.high)
        low = _pick_float(row, fields.low)
        high = close if high is None else high
        low = close if low is None else low
        if high < low:
            high, low = low, high
        open_ = _pick_float(row, fields.open)
        by_date[day] = PriceBar(
            date=day,
            open=close if open_ is None else open_,
            high=high,
            low=low,
            close=close,
            volume=int(_pick_float(row, fields.volume) or 0),
        )

    if skipped:
        logger.warning("skipped %d malformed history rows for %s", skipped, symbol)
    if not by_date:
        raise MalformedPayload(f"no usable history rows for symbol: {symbol}", symbol)

    bars = sorted(by_date.values(), key=lambda b: b.date)
    return bars[-lookback_bars:]
