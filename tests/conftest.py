"""Shared fakes: a controllable clock, a scripted provider and bar builders."""

from __future__ import annotations

import threading
from datetime import date, datetime, timedelta, timezone

import pytest

from trendseeker.config import AppConfig
from trendseeker.models import PriceBar
from trendseeker.providers.base import MarketDataProvider

BASE_TIME = datetime(2025, 1, 6, 14, 30, tzinfo=timezone.utc)


class FakeClock:
    """Time only moves when sleep() or advance() is called."""

    def __init__(self) -> None:
        self.t = 0.0
        self.slept: list[float] = []

    def monotonic(self) -> float:
        return self.t

    def sleep(self, seconds: float) -> None:
        self.slept.append(seconds)
        self.t += seconds

    def now(self) -> datetime:
        return BASE_TIME + timedelta(seconds=self.t)

    def advance(self, seconds: float) -> None:
        self.t += seconds


def make_bars(closes: list[float], spread: float = 1.0, start: date = date(2024, 1, 1)) -> list[PriceBar]:
    return [
        PriceBar(
            date=start + timedelta(days=i),
            open=c,
            high=c + spread,
            low=c - spread,
            close=c,
            volume=1_000,
        )
        for i, c in enumerate(closes)
    ]


def sawtooth(n: int = 60, base: float = 100.0, period: int = 5) -> list[float]:
    return [base + (i % period) for i in range(n)]


def history_rows(closes: list[float], spread: float = 1.0) -> list[dict]:
    return [
        {
            "date": (date(2024, 1, 1) + timedelta(days=i)).isoformat(),
            "open": c,
            "high": c + spread,
            "low": c - spread,
            "close": c,
            "volume": 1_000,
        }
        for i, c in enumerate(closes)
    ]


class ScriptedProvider(MarketDataProvider):
    """Serves canned canonical payloads and records every call.

    Set ``error`` to make every call raise it. ``gate`` (if set) blocks
    fetch_quote until released; ``entered`` is set once a call is blocked.
    Symbols in ``hang`` block fetch_quote until ``release`` is set.
    """

    payload_format = "canonical"

    def __init__(self, prices: dict[str, float] | None = None, closes: list[float] | None = None) -> None:
        self.prices = prices if prices is not None else {"XYZ": 50.0}
        self.closes = closes if closes is not None else sawtooth()
        self.error: Exception | None = None
        self.gate: threading.Event | None = None
        self.entered = threading.Event()
        self.hang: set[str] = set()
        self.release = threading.Event()
        self.calls: list[tuple[str, str]] = []

    def fetch_quote(self, symbol: str) -> object:
        self.calls.append(("quote", symbol))
        if symbol in self.hang:
            self.release.wait(5)
        if self.gate is not None:
            self.entered.set()
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        if symbol not in self.prices:
            return None
        price = self.prices[symbol]
        return {"symbol": symbol, "price": price, "previous_close": price - 1.0, "volume": 500}

    def fetch_history(self, symbol: str, lookback_bars: int) -> object:
        self.calls.append(("history", symbol))
        if self.error is not None:
            raise self.error
        if symbol not in self.prices:
            return []
        return history_rows(self.closes)

    def search(self, query: str) -> object:
        self.calls.append(("search", query))
        if self.error is not None:
            raise self.error
        return {"quotes": [{"symbol": s.lower(), "shortname": f"{s} Corp"} for s in self.prices]}

    def count(self, kind: str) -> int:
        return sum(1 for k, _ in self.calls if k == kind)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def config() -> AppConfig:
    return AppConfig()
