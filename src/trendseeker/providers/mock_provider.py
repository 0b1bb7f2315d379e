from __future__ import annotations

from datetime import date, timedelta

from trendseeker.providers.base import MarketDataProvider

_BASE_DATE = date(2024, 1, 2)

_LISTINGS = (
    ("AAPL", "Apple Inc.", "NMS", "Technology"),
    ("MSFT", "Microsoft Corporation", "NMS", "Technology"),
    ("AMZN", "Amazon.com, Inc.", "NMS", "Consumer Cyclical"),
    ("GOOGL", "Alphabet Inc.", "NMS", "Communication Services"),
    ("META", "Meta Platforms, Inc.", "NMS", "Communication Services"),
    ("NVDA", "NVIDIA Corporation", "NMS", "Technology"),
    ("TSLA", "Tesla, Inc.", "NMS", "Consumer Cyclical"),
    ("JPM", "JPMorgan Chase & Co.", "NYQ", "Financial Services"),
    ("V", "Visa Inc.", "NYQ", "Financial Services"),
    ("JNJ", "Johnson & Johnson", "NYQ", "Healthcare"),
    ("WMT", "Walmart Inc.", "NYQ", "Consumer Defensive"),
    ("XOM", "Exxon Mobil Corporation", "NYQ", "Energy"),
    ("IBM", "International Business Machines Corporation", "NYQ", "Technology"),
)


def _seed(symbol: str) -> int:
    return sum(ord(ch) for ch in symbol)


class MockMarketDataProvider(MarketDataProvider):
    """Deterministic synthetic data: a per-symbol sawtooth on a gentle trend."""

    payload_format = "canonical"

    def __init__(
        self, unknown: tuple[str, ...] = ("INVALID",), period: int = 5, length: int = 300
    ) -> None:
        self.unknown = {s.upper() for s in unknown}
        self.period = period
        self.length = length

    def _close(self, symbol: str, i: int) -> float:
        seed = _seed(symbol)
        base = 60.0 + seed % 140
        drift = ((seed % 7) - 3) * 0.01
        return round(base + drift * i + (i % self.period), 2)

    def fetch_history(self, symbol: str, lookback_bars: int) -> list[dict] | None:
        if symbol.upper() in self.unknown:
            return None
        out: list[dict] = []
        for i in range(max(0, self.length - lookback_bars), self.length):
            close = self._close(symbol, i)
            out.append(
                {
                    "date": (_BASE_DATE + timedelta(days=i)).isoformat(),
                    "open": close - 0.5,
                    "high": close + 1.0,
                    "low": close - 1.0,
                    "close": close,
                    "volume": 1_000_000 + (_seed(symbol) * 37 + i * 1_000) % 500_000,
                }
            )
        return out

    def fetch_quote(self, symbol: str) -> dict | None:
        if symbol.upper() in self.unknown:
            return None
        year = self.fetch_history(symbol, 252)
        previous, last = year[-2:]
        return {
            "symbol": symbol.upper(),
            "name": f"{symbol.upper()}_NAME",
            "price": last["close"],
            "previous_close": previous["close"],
            "volume": last["volume"],
            "high": last["high"],
            "low": last["low"],
            "open": last["open"],
            "high52Week": max(row["high"] for row in year),
            "low52Week": min(row["low"] for row in year),
        }

    def search(self, query: str) -> dict:
        needle = query.strip().lower()
        quotes = [
            {
                "symbol": symbol,
                "shortname": name,
                "quoteType": "EQUITY",
                "exchange": exchange,
                "sector": sector,
            }
            for symbol, name, exchange, sector in _LISTINGS
            if needle in symbol.lower() or needle in name.lower()
        ]
        return {"quotes": quotes}
