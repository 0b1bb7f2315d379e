from __future__ import annotations


class TrendSeekerError(Exception):
    """Base error for the market data pipeline."""

    retryable: bool = False

    def __init__(self, message: str, symbol: str | None = None) -> None:
        super().__init__(message)
        self.symbol = symbol


class SymbolNotFound(TrendSeekerError):
    """The provider has no record for the symbol."""


class MalformedPayload(TrendSeekerError):
    """A provider payload could not be normalized."""


class UpstreamError(TrendSeekerError):
    """The provider call failed; safe to retry later."""

    retryable = True


class UpstreamTimeout(UpstreamError):
    pass


class UpstreamRateLimited(UpstreamError):
    """Provider-side throttling, distinct from the local rate limiter."""
