"""SEC EDGAR provider built on the XBRL companyfacts document.

Data flow:
  1. SECClient.resolve_cik()        → ticker → CIK via the shared TickerCache
  2. SECClient.get_company_facts()  → every XBRL fact the company filed
  3. collect_fact_series()          → one quarterly series per metric
  4. build_quarter_records()        → Quarter records keyed by revenue quarters
  5. Finnhub                        → market cap, plus capex/OCF back-fill

SEC filings carry no market price, so market capitalization always comes
from the Finnhub profile.
"""

from __future__ import annotations

import logging

from tenbagger.errors import ErrorKind, ProviderError
from tenbagger.merge import QuarterStore
from tenbagger.models import Fundamentals, Quarter
from tenbagger.normalize import parse_quarter_key, quarter_label
from tenbagger.providers.base import Provider
from tenbagger.providers.finnhub import FinnhubProvider
from tenbagger.sec_client import SECClient, TickerCache
from tenbagger.xbrl_facts import FactDatum, collect_fact_series
from tenbagger.xbrl_mappings import REVENUE, SEC_METRICS

log = logging.getLogger(__name__)

MAX_RECORDS = 16
MAX_QUARTERS = 12
MIN_QUARTERS = 8


def _value(series: dict[str, FactDatum], key: str) -> float | None:
    datum = series.get(key)
    return datum.value if datum is not None else None


def build_quarter_records(
    revenue: dict[str, FactDatum],
    series: dict[str, dict[str, FactDatum]],
    limit: int = MAX_RECORDS,
) -> list[Quarter]:
    """One Quarter per fiscal revenue key, most recent first.

    When two fiscal keys end in the same calendar quarter the more recent
    fiscal key is kept.
    """
    store = QuarterStore()
    for key in sorted(revenue, key=parse_quarter_key, reverse=True)[:limit]:
        rev = revenue[key]
        if quarter_label(rev.end) in store:
            continue
        year, quarter = parse_quarter_key(key)

        total_debt = _value(series["debt_total"], key)
        if total_debt is None:
            current = _value(series["debt_current"], key)
            noncurrent = _value(series["debt_noncurrent"], key)
            if current is not None or noncurrent is not None:
                total_debt = (current or 0.0) + (noncurrent or 0.0)

        patch = {
            name: _value(values, key)
            for name, values in series.items()
            if not name.startswith("debt_")
        }
        patch.update(
            revenue=rev.value,
            total_debt=total_debt,
            fiscal_year=year,
            fiscal_quarter=quarter,
        )
        store.apply_patch(rev.end, patch)
    return store.finalize(limit)


class SECProvider(Provider):
    name = "SEC"

    def __init__(
        self,
        settings=None,
        http=None,
        *,
        ticker_cache: TickerCache | None = None,
        market_data: FinnhubProvider | None = None,
    ):
        super().__init__(settings, http)
        self.ticker_cache = ticker_cache
        self.market_data = market_data or FinnhubProvider(self.settings, self.http)

    def _client(self) -> SECClient:
        user_agent = self.settings.sec_user_agent
        if not user_agent:
            raise self.error(
                "SEC_USER_AGENT is not set; a contact identity is required for SEC APIs.",
                ErrorKind.MISSING_USER_AGENT,
            )
        return SECClient(
            user_agent,
            http=self.http,
            timeout=self.settings.request_timeout,
            ticker_cache=self.ticker_cache,
        )

    def _market_cap(self, ticker: str) -> float:
        try:
            market_cap = self.market_data.fetch_market_cap(ticker)
        except ProviderError as exc:
            raise self.error(
                f"Could not get market cap from Finnhub: {exc.message}",
                ErrorKind.MISSING_MARKET_CAP,
            ) from exc
        if market_cap is None:
            raise self.error("Could not get market cap from Finnhub.", ErrorKind.MISSING_MARKET_CAP)
        return market_cap

    def _backfill_cash_flow(self, ticker: str, quarters: list[Quarter]) -> None:
        """Fill missing capex/OCF from Finnhub; a Finnhub failure is tolerated."""
        try:
            fallback = self.market_data.fetch(ticker)
        except ProviderError as exc:
            log.warning("[SEC] Finnhub back-fill failed for %s: %s", ticker, exc)
            return

        by_label = {q.calendar_label: q for q in fallback.quarters}
        filled = 0
        for quarter in quarters:
            other = by_label.get(quarter.calendar_label)
            if other is None:
                continue
            if quarter.capex is None and other.capex is not None:
                quarter.capex = abs(other.capex)
                filled += 1
            if quarter.ocf is None and other.ocf is not None:
                quarter.ocf = other.ocf
                filled += 1
        log.info("[SEC] Back-filled %d capex/OCF values for %s from Finnhub", filled, ticker)

    def fetch(self, ticker: str) -> Fundamentals:
        client = self._client()
        cik = client.resolve_cik(ticker)
        facts = client.get_company_facts(cik).get("facts")
        if not facts:
            raise self.error("Company facts unavailable.", ErrorKind.EMPTY_FACTS)

        revenue = collect_fact_series(facts, REVENUE.configs, REVENUE.mode)
        if not revenue:
            raise self.error("No quarterly revenue facts found.", ErrorKind.MISSING_REVENUE)

        series = {
            name: collect_fact_series(facts, spec.configs, spec.mode)
            for name, spec in SEC_METRICS.items()
        }
        quarters = build_quarter_records(revenue, series)[:MAX_QUARTERS]
        if len(quarters) < MIN_QUARTERS:
            raise self.error(
                f"Only {len(quarters)} quarters of SEC data (need {MIN_QUARTERS}).",
                ErrorKind.INSUFFICIENT_DATA,
            )

        market_cap = self._market_cap(ticker)
        if any(q.capex is None or q.ocf is None for q in quarters):
            self._backfill_cash_flow(ticker, quarters)

        log.info("SEC returned %d quarters for %s (CIK %s)", len(quarters), ticker, cik)
        return Fundamentals(ticker=ticker, market_cap=market_cap, quarters=quarters)
