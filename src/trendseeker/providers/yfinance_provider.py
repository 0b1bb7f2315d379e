from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

from trendseeker.errors import UpstreamRateLimited
from trendseeker.providers.base import MarketDataProvider

# Calendar days needed to cover N trading days, plus holidays slack.
_CALENDAR_PER_TRADING_DAY = 365 / 252
_HISTORY_SLACK_DAYS = 10

_FAST_INFO_FIELDS = {
    "regularMarketPrice": "last_price",
    "regularMarketPreviousClose": "previous_close",
    "regularMarketOpen": "open",
    "regularMarketDayHigh": "day_high",
    "regularMarketDayLow": "day_low",
    "regularMarketVolume": "last_volume",
    "marketCap": "market_cap",
    "currency": "currency",
    "fiftyTwoWeekHigh": "year_high",
    "fiftyTwoWeekLow": "year_low",
    "exchange": "exchange",
}

SEARCH_MAX_RESULTS = 10


def _import_yfinance():
    try:
        import yfinance as yf
    except ImportError as e:
        raise RuntimeError("yfinance is not installed; install the project dependencies.") from e
    return yf


def _reraise_rate_limit(e: Exception, symbol: str) -> None:
    from yfinance.exceptions import YFRateLimitError

    if isinstance(e, YFRateLimitError):
        raise UpstreamRateLimited(f"Yahoo Finance throttled request for {symbol}", symbol) from e


class YFinanceMarketDataProvider(MarketDataProvider):
    """Yahoo Finance via yfinance. Quotes come back in Yahoo's field names."""

    payload_format = "yahoo"

    def fetch_quote(self, symbol: str) -> dict:
        yf = _import_yfinance()
        ticker = yf.Ticker(symbol)
        try:
            info = ticker.fast_info
            out = {key: getattr(info, attr, None) for key, attr in _FAST_INFO_FIELDS.items()}
        except KeyError:
            # fast_info raises KeyError on fields missing for unknown tickers.
            return {}
        except Exception as e:
            _reraise_rate_limit(e, symbol)
            raise
        if out["regularMarketPrice"] is None:
            return {}
        out["symbol"] = symbol
        return out

    def fetch_history(self, symbol: str, lookback_bars: int) -> list[dict]:
        yf = _import_yfinance()
        end = datetime.now(timezone.utc)
        days = math.ceil(lookback_bars * _CALENDAR_PER_TRADING_DAY) + _HISTORY_SLACK_DAYS
        start = end - timedelta(days=days)
        try:
            hist = yf.Ticker(symbol).history(start=start, end=end, interval="1d", auto_adjust=True)
        except Exception as e:
            _reraise_rate_limit(e, symbol)
            raise
        if hist is None or hist.empty:
            return []

        return [
            {
                "date": idx.date(),
                "open": row.get("Open"),
                "high": row.get("High"),
                "low": row.get("Low"),
                "close": row.get("Close"),
                "volume": row.get("Volume"),
            }
            for idx, row in hist.iterrows()
        ]

    def search(self, query: str) -> dict:
        yf = _import_yfinance()
        try:
            result = yf.Search(query, max_results=SEARCH_MAX_RESULTS, news_count=0)
            quotes = result.quotes
        except Exception as e:
            _reraise_rate_limit(e, query)
            raise
        return {"quotes": list(quotes or [])}
