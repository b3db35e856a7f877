"""Fundamentals fetch with provider fallback.

Providers are tried in order (SEC, FMP, Finnhub by default).  The first one
that returns fundamentals wins.  A recoverable failure moves on to the next
provider; a non-recoverable one aborts immediately.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

from tenbagger.config import Settings, get_config
from tenbagger.errors import ErrorKind, FundamentalsUnavailable, ProviderError
from tenbagger.models import Fundamentals
from tenbagger.providers.base import Provider
from tenbagger.providers.finnhub import FinnhubProvider
from tenbagger.providers.fmp import FMPProvider
from tenbagger.providers.sec import SECProvider

log = logging.getLogger(__name__)

EXHAUSTED_PREFIX = "All fundamentals providers failed: "


def default_providers(settings: Settings | None = None, http: Any = None) -> list[Provider]:
    """SEC → FMP → Finnhub, sharing one settings object and HTTP transport."""
    settings = settings or get_config()
    finnhub = FinnhubProvider(settings, http)
    return [
        SECProvider(settings, http, market_data=finnhub),
        FMPProvider(settings, http),
        finnhub,
    ]


def fetch_fundamentals(ticker: str, providers: Sequence[Provider] | None = None) -> Fundamentals:
    """Return fundamentals from the first provider that succeeds.

    Raises FundamentalsUnavailable when every provider fails (kind
    ``exhausted``, message joining each provider's error) or as soon as one
    fails non-recoverably.
    """
    symbol = ticker.strip().upper()
    if providers is None:
        providers = default_providers()

    errors: list[ProviderError] = []
    for provider in providers:
        result = provider.try_fetch(symbol)
        if result.ok:
            log.info("Fundamentals for %s served by %s", symbol, result.provider)
            return result.fundamentals

        err = result.error
        if not err.recoverable:
            raise FundamentalsUnavailable(str(err), err.kind, [err]) from err
        log.warning("%s failed for %s (%s): %s", result.provider, symbol, err.reason, err.message)
        errors.append(err)

    raise FundamentalsUnavailable(
        EXHAUSTED_PREFIX + " | ".join(str(e) for e in errors),
        ErrorKind.EXHAUSTED,
        errors,
    )
