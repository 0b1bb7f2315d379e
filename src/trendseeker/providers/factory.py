from __future__ import annotations

from trendseeker.providers.base import MarketDataProvider
from trendseeker.providers.mock_provider import MockMarketDataProvider
from trendseeker.providers.yfinance_provider import YFinanceMarketDataProvider


def build_market_provider(kind: str) -> MarketDataProvider:
    mode = kind.strip().lower()
    if mode == "mock":
        return MockMarketDataProvider()
    if mode == "yfinance":
        return YFinanceMarketDataProvider()
    raise ValueError(f"unsupported market provider: {kind}")
