from __future__ import annotations

from abc import ABC, abstractmethod


class MarketDataProvider(ABC):
    """Upstream quote/history source. Payloads are returned raw.

    ``payload_format`` names the normalizer field map that parses them.
    """

    payload_format: str = "canonical"

    @abstractmethod
    def fetch_quote(self, symbol: str) -> object:
        raise NotImplementedError

    @abstractmethod
    def fetch_history(self, symbol: str, lookback_bars: int) -> object:
        raise NotImplementedError

    @abstractmethod
    def search(self, query: str) -> object:
        """Symbol lookup; a ``{"quotes": [...]}`` payload in Yahoo's search shape."""
        raise NotImplementedError
