"""Provider failure kinds and the errors built on them.

Every adapter failure carries a closed ``ErrorKind`` plus a ``recoverable``
flag.  Recoverable means "this provider could not answer, try the next one";
anything else aborts the whole fetch.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NETWORK = "network"
    PARSE = "parse"
    QUOTA = "quota"
    UNAUTHORIZED = "unauthorized"
    HTTP = "http"
    MISSING_KEY = "missing-key"
    MISSING_USER_AGENT = "missing-user-agent"
    INVALID_FORMAT = "invalid-format"
    INSUFFICIENT_DATA = "insufficient-data"
    MISSING_MARKET_CAP = "missing-market-cap"
    MISSING_REVENUE = "missing-revenue"
    UNKNOWN_TICKER = "unknown-ticker"
    TICKER_LIST_EMPTY = "ticker-list-empty"
    EMPTY_FACTS = "empty-facts"
    EXHAUSTED = "exhausted"


class ProviderError(Exception):
    """One provider's failure to produce fundamentals."""

    def __init__(
        self,
        provider: str,
        message: str,
        kind: ErrorKind,
        *,
        recoverable: bool = True,
        status: int | None = None,
    ):
        super().__init__(f"[{provider}] {message}")
        self.provider = provider
        self.message = message
        self.kind = kind
        self.recoverable = recoverable
        self.status = status

    @property
    def reason(self) -> str:
        """Wire tag for the failure, e.g. ``quota`` or ``http-502``."""
        if self.kind is ErrorKind.HTTP and self.status is not None:
            return f"http-{self.status}"
        return self.kind.value


class FundamentalsUnavailable(Exception):
    """Raised by fetch_fundamentals when no provider could answer."""

    def __init__(self, message: str, kind: ErrorKind, errors: list[ProviderError] | None = None):
        super().__init__(message)
        self.kind = kind
        self.errors = errors or []

    @property
    def reason(self) -> str:
        return self.kind.value
