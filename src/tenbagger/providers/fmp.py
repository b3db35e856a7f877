"""Financial Modeling Prep provider.

Four endpoints per ticker, fetched concurrently:
  income-statement / balance-sheet-statement / cash-flow-statement
      (period=quarter, limit=8): lists of statement rows
  quote: list with one quote row carrying marketCap
"""

from __future__ import annotations

import logging
from typing import Any

from tenbagger.errors import ErrorKind
from tenbagger.merge import QuarterStore
from tenbagger.models import Fundamentals
from tenbagger.normalize import first_defined, safe_num
from tenbagger.providers.base import Provider
from tenbagger.xbrl_mappings import FMP_DATE_FIELDS, FMP_FIELDS, FMP_MARKET_CAP_FIELDS

log = logging.getLogger(__name__)

FMP_BASE = "https://financialmodelingprep.com/api/v3"

MAX_QUARTERS = 8
MIN_QUARTERS = 4

Row = dict[str, Any]


def row_patch(row: Row, fields: dict[str, list[str]]) -> dict[str, Any]:
    """Map one statement row onto Quarter fields (first candidate name wins)."""
    patch = {name: safe_num(first_defined(row, candidates)) for name, candidates in fields.items()}
    if patch.get("capex") is not None:
        patch["capex"] = abs(patch["capex"])
    return patch


class FMPProvider(Provider):
    name = "FMP"

    def _key(self) -> str:
        key = self.settings.fmp_api_key
        if not key:
            raise self.error("FMP_API_KEY is not set; skipping FMP.", ErrorKind.MISSING_KEY)
        return key

    def _rows(self, payload: Any, what: str) -> list[Row]:
        if isinstance(payload, dict) and payload.get("Error Message"):
            raise self.error(str(payload["Error Message"]), ErrorKind.QUOTA)
        if not isinstance(payload, list):
            raise self.error(f"Unexpected payload for {what}.", ErrorKind.INVALID_FORMAT)
        return [row for row in payload if isinstance(row, dict)]

    def get_statement(self, endpoint: str, ticker: str, key: str) -> list[Row]:
        payload = self.get_json(
            f"{FMP_BASE}/{endpoint}/{ticker}",
            params={"period": "quarter", "limit": MAX_QUARTERS, "apikey": key},
        )
        return self._rows(payload, endpoint)

    def get_quote(self, ticker: str, key: str) -> list[Row]:
        payload = self.get_json(f"{FMP_BASE}/quote/{ticker}", params={"apikey": key})
        return self._rows(payload, "quote")

    def fetch(self, ticker: str) -> Fundamentals:
        key = self._key()
        income, balance, cashflow, quote = self.gather([
            lambda: self.get_statement("income-statement", ticker, key),
            lambda: self.get_statement("balance-sheet-statement", ticker, key),
            lambda: self.get_statement("cash-flow-statement", ticker, key),
            lambda: self.get_quote(ticker, key),
        ])

        store = QuarterStore()
        for section, rows in (("income", income), ("cashflow", cashflow), ("balance", balance)):
            for row in rows:
                store.apply_patch(first_defined(row, FMP_DATE_FIELDS), row_patch(row, FMP_FIELDS[section]))

        quarters = store.finalize(MAX_QUARTERS)
        market_cap = safe_num(first_defined(quote[0] if quote else None, FMP_MARKET_CAP_FIELDS))
        if market_cap is None:
            raise self.error("Market capitalization unavailable.", ErrorKind.MISSING_MARKET_CAP)
        complete = [q for q in quarters if q.revenue is not None]
        if len(complete) < MIN_QUARTERS:
            raise self.error(
                f"Only {len(complete)} quarters with revenue (need {MIN_QUARTERS}).",
                ErrorKind.INSUFFICIENT_DATA,
            )

        log.info("FMP returned %d quarters for %s", len(quarters), ticker)
        return Fundamentals(ticker=ticker, market_cap=market_cap, quarters=quarters)
