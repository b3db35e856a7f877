"""Direct SEC EDGAR API client.

Uses only public SEC endpoints (no API key needed, just User-Agent header):
  - company_tickers.json: ticker→CIK resolution
  - api/xbrl/companyfacts/CIK{cik}.json: ALL XBRL facts for a company

The ticker→CIK table is downloaded once per process and kept in a
``TickerCache`` that callers can inject (tests pass a pre-populated one).
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable, Mapping

import requests

from tenbagger.errors import ErrorKind, ProviderError
from tenbagger.providers.base import fetch_json

log = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════════
#  Constants
# ═══════════════════════════════════════════════════════════════════════════

SEC_BASE = "https://www.sec.gov"
DATA_BASE = "https://data.sec.gov"
TICKERS_URL = f"{SEC_BASE}/files/company_tickers.json"
COMPANY_FACTS_URL = f"{DATA_BASE}/api/xbrl/companyfacts/CIK{{cik}}.json"

PROVIDER = "SEC"


# ═══════════════════════════════════════════════════════════════════════════
#  Ticker → CIK cache
# ═══════════════════════════════════════════════════════════════════════════

class CacheState(str, Enum):
    EMPTY = "empty"
    LOADING = "loading"
    POPULATED = "populated"


class TickerCache:
    """Process-lifetime ticker→CIK table, populated at most once.

    The lock makes population a do-once step: concurrent callers wait for
    the first loader instead of downloading the table again.  A failed load
    leaves the cache EMPTY so a later call can retry.  Never invalidated.
    """

    def __init__(self, mapping: Mapping[str, str] | None = None):
        self._lock = threading.Lock()
        self._map: dict[str, str] = {}
        self.state = CacheState.EMPTY
        if mapping:
            self.prime(mapping)

    def prime(self, mapping: Mapping[str, str]) -> None:
        with self._lock:
            self._map = {k.upper(): str(v).zfill(10) for k, v in mapping.items()}
            self.state = CacheState.POPULATED

    def get(self, loader: Callable[[], dict[str, str]]) -> dict[str, str]:
        if self.state is CacheState.POPULATED:
            return self._map
        with self._lock:
            if self.state is not CacheState.POPULATED:
                self.state = CacheState.LOADING
                try:
                    self._map = loader()
                except BaseException:
                    self.state = CacheState.EMPTY
                    raise
                self.state = CacheState.POPULATED
        return self._map


_ticker_cache = TickerCache()


def get_ticker_cache() -> TickerCache:
    """The shared process-wide TickerCache."""
    return _ticker_cache


def parse_tickers(raw: Any) -> dict[str, str]:
    """Build ticker → zero-padded CIK from company_tickers.json.

    The file is normally {"0": {"cik_str": 320193, "ticker": "AAPL", ...}, ...}
    but a plain list of the same records is accepted too.
    """
    if isinstance(raw, list):
        entries = raw
    elif isinstance(raw, Mapping):
        entries = list(raw.values())
    else:
        entries = []

    mapping: dict[str, str] = {}
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        ticker = entry.get("ticker")
        cik = entry.get("cik_str")
        if isinstance(ticker, str) and isinstance(cik, int) and not isinstance(cik, bool):
            mapping[ticker.upper()] = str(cik).zfill(10)
    return mapping


# ═══════════════════════════════════════════════════════════════════════════
#  SEC EDGAR Client
# ═══════════════════════════════════════════════════════════════════════════

class SECClient:
    """HTTP client for the SEC EDGAR endpoints the SEC provider needs."""

    def __init__(
        self,
        user_agent: str,
        *,
        http: Any = None,
        timeout: float = 20.0,
        ticker_cache: TickerCache | None = None,
    ):
        self.user_agent = user_agent
        self.headers = {
            "User-Agent": user_agent,
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
        }
        self.http = http if http is not None else requests
        self.timeout = timeout
        self.ticker_cache = ticker_cache if ticker_cache is not None else get_ticker_cache()

    def _request_json(self, url: str) -> Any:
        return fetch_json(self.http, url, PROVIDER, headers=self.headers, timeout=self.timeout)

    # ── Ticker → CIK resolution ──────────────────────────────────────

    def _load_tickers(self) -> dict[str, str]:
        log.info("Fetching SEC company_tickers.json (cached for process lifetime)")
        mapping = parse_tickers(self._request_json(TICKERS_URL))
        if not mapping:
            raise ProviderError(
                PROVIDER, "Could not load the SEC ticker list.", ErrorKind.TICKER_LIST_EMPTY,
            )
        log.info("Loaded %d tickers from company_tickers.json", len(mapping))
        return mapping

    def resolve_cik(self, ticker: str) -> str:
        """Resolve a ticker symbol to a 10-digit zero-padded CIK string."""
        mapping = self.ticker_cache.get(self._load_tickers)
        cik = mapping.get(ticker.strip().upper())
        if cik is None:
            raise ProviderError(PROVIDER, f"No CIK found for {ticker}.", ErrorKind.UNKNOWN_TICKER)
        return cik

    # ── XBRL Company Facts ───────────────────────────────────────────

    def get_company_facts(self, cik: str) -> dict:
        """Fetch ALL XBRL facts for a company.

        Structure: {"cik": 320193, "entityName": "Apple Inc",
                    "facts": {"us-gaap": {"Revenues": {"units": {"USD": [...]}}}}}
        """
        cik_padded = cik.zfill(10)
        log.info("Fetching XBRL companyfacts for CIK %s", cik_padded)
        data = self._request_json(COMPANY_FACTS_URL.format(cik=cik_padded))
        return data if isinstance(data, dict) else {}
