"""Finnhub provider: as-reported quarterly statements + company profile.

``stock/financials-reported`` returns every 10-Q/10-K with its income (ic),
balance sheet (bs) and cash flow (cf) sections as lists of
``{"concept": "us-gaap_Revenues", "value": ...}`` lines.  ``stock/profile2``
supplies market capitalization in millions of USD.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ValidationError, field_validator

from tenbagger.errors import ErrorKind
from tenbagger.merge import QuarterStore
from tenbagger.models import Fundamentals
from tenbagger.normalize import safe_num
from tenbagger.providers.base import Provider
from tenbagger.xbrl_mappings import FINNHUB_CONCEPTS

log = logging.getLogger(__name__)

FINNHUB_BASE = "https://finnhub.io/api/v1"

MAX_QUARTERS = 8
MIN_QUARTERS = 4


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class ReportSections(BaseModel):
    ic: list[dict[str, Any]] = []
    bs: list[dict[str, Any]] = []
    cf: list[dict[str, Any]] = []

    @field_validator("ic", "bs", "cf", mode="before")
    @classmethod
    def lines_only(cls, v: Any) -> list:
        if not isinstance(v, list):
            return []
        return [line for line in v if isinstance(line, dict)]


class Report(BaseModel):
    form: str | None = None
    year: int | None = None
    quarter: int | None = None
    endDate: Any = None
    reportDate: Any = None
    period: Any = None
    report: ReportSections = ReportSections()

    @field_validator("report", mode="before")
    @classmethod
    def sections_or_empty(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else {}

    @property
    def period_end(self) -> Any:
        for value in (self.endDate, self.reportDate, self.period):
            if value is not None:
                return value
        return None


class Profile(BaseModel):
    marketCapitalization: Any = None
    marketCapitalizationMln: Any = None

    def market_cap(self) -> float | None:
        """Market cap in USD (Finnhub reports millions)."""
        mln = safe_num(self.marketCapitalization)
        if mln is None:
            mln = safe_num(self.marketCapitalizationMln)
        return mln * 1_000_000 if mln is not None else None


def extract_concept(section: list[dict[str, Any]], concepts: list[str]) -> float | None:
    """Value of the first candidate concept present with a numeric value."""
    for concept in concepts:
        for line in section:
            if line.get("concept") != concept:
                continue
            value = safe_num(line.get("value"))
            if value is not None:
                return value
            break
    return None


def report_patch(report: Report) -> dict[str, Any]:
    """Map one as-reported filing onto Quarter fields."""
    patch: dict[str, Any] = {}
    for section_name, fields in FINNHUB_CONCEPTS.items():
        section = getattr(report.report, section_name)
        for field, concepts in fields.items():
            patch[field] = extract_concept(section, concepts)

    if patch.get("capex") is not None:
        patch["capex"] = abs(patch["capex"])

    current = patch.pop("debt_current", None)
    noncurrent = patch.pop("debt_noncurrent", None)
    if patch.get("total_debt") is None and (current is not None or noncurrent is not None):
        patch["total_debt"] = (current or 0.0) + (noncurrent or 0.0)

    patch["fiscal_year"] = report.year
    patch["fiscal_quarter"] = report.quarter
    return patch


class FinnhubProvider(Provider):
    name = "Finnhub"

    def _token(self) -> str:
        token = self.settings.finnhub_api_key
        if not token:
            raise self.error("FINNHUB_API_KEY is not set; skipping Finnhub.", ErrorKind.MISSING_KEY)
        return token

    def _check_embedded_error(self, payload: Any) -> None:
        if isinstance(payload, dict) and payload.get("error"):
            raise self.error(str(payload["error"]), ErrorKind.QUOTA)

    def get_reports(self, ticker: str, token: str) -> list[Report]:
        payload = self.get_json(
            f"{FINNHUB_BASE}/stock/financials-reported",
            params={"symbol": ticker, "freq": "quarterly", "token": token},
        )
        self._check_embedded_error(payload)
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise self.error("Unexpected financials payload.", ErrorKind.INVALID_FORMAT)
        reports = []
        for raw in data:
            if not isinstance(raw, dict):
                continue
            try:
                reports.append(Report.model_validate(raw))
            except ValidationError as exc:
                log.debug("Skipping malformed Finnhub report for %s: %s", ticker, exc)
        return reports

    def get_profile(self, ticker: str, token: str) -> Profile:
        payload = self.get_json(
            f"{FINNHUB_BASE}/stock/profile2",
            params={"symbol": ticker, "token": token},
        )
        self._check_embedded_error(payload)
        if not isinstance(payload, dict):
            raise self.error("Unexpected company profile payload.", ErrorKind.INVALID_FORMAT)
        return Profile.model_validate(payload)

    def fetch_market_cap(self, ticker: str) -> float | None:
        """Market cap in USD from the profile endpoint (None if unreported)."""
        return self.get_profile(ticker, self._token()).market_cap()

    def fetch(self, ticker: str) -> Fundamentals:
        token = self._token()
        reports, profile = self.gather([
            lambda: self.get_reports(ticker, token),
            lambda: self.get_profile(ticker, token),
        ])

        store = QuarterStore()
        for report in reports:
            if report.form and report.form != "10-Q":
                continue
            store.apply_patch(report.period_end, report_patch(report))

        quarters = store.finalize(MAX_QUARTERS)
        market_cap = profile.market_cap()
        if market_cap is None:
            raise self.error("Market capitalization unavailable.", ErrorKind.MISSING_MARKET_CAP)
        complete = [q for q in quarters if q.revenue is not None]
        if len(complete) < MIN_QUARTERS:
            raise self.error(
                f"Only {len(complete)} quarters with revenue (need {MIN_QUARTERS}).",
                ErrorKind.INSUFFICIENT_DATA,
            )

        log.info("Finnhub returned %d quarters for %s", len(quarters), ticker)
        return Fundamentals(ticker=ticker, market_cap=market_cap, quarters=quarters)
