"""Pydantic models for fundamentals, rule verdicts and score output."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tenbagger.errors import ProviderError
from tenbagger.normalize import quarter_label, safe_num


# ---------------------------------------------------------------------------
# Fundamentals
# ---------------------------------------------------------------------------

# Numeric Quarter fields, in the order providers usually report them
NUMERIC_FIELDS: tuple[str, ...] = (
    "revenue",
    "gross_profit",
    "sga",
    "rnd",
    "ocf",
    "capex",
    "inventory",
    "receivables",
    "cash",
    "total_debt",
    "diluted_shares",
    "ebitda",
    "net_income",
)


class Quarter(BaseModel):
    """One fiscal quarter.  None means the provider did not report it."""
    period: datetime
    revenue: float | None = None
    gross_profit: float | None = None
    sga: float | None = None
    rnd: float | None = None
    ocf: float | None = None
    capex: float | None = None          # magnitude, never negative
    inventory: float | None = None
    receivables: float | None = None
    cash: float | None = None
    total_debt: float | None = None
    diluted_shares: float | None = None
    ebitda: float | None = None
    net_income: float | None = None
    fiscal_year: int | None = None
    fiscal_quarter: int | None = None

    # NaN and inf are unknowns, same as a missing value
    @field_validator(*NUMERIC_FIELDS, mode="before")
    @classmethod
    def finite_or_none(cls, v: Any) -> float | None:
        return safe_num(v)

    @property
    def calendar_label(self) -> str:
        return quarter_label(self.period)


class Fundamentals(BaseModel):
    """Reconciled fundamentals for one ticker, most recent quarter first."""
    model_config = ConfigDict(frozen=True)

    ticker: str
    market_cap: float
    quarters: list[Quarter]


class ConceptConfig(BaseModel):
    """Alternative XBRL concept names (and accepted units) for one metric."""
    taxonomy: str = "us-gaap"
    concepts: list[str]
    units: list[str] | None = None


@dataclass
class FetchResult:
    """Outcome of one provider attempt: fundamentals or an error, never both."""
    provider: str
    fundamentals: Fundamentals | None = None
    error: ProviderError | None = None

    @property
    def ok(self) -> bool:
        return self.fundamentals is not None


# ---------------------------------------------------------------------------
# Scoring output
# ---------------------------------------------------------------------------

class MetricLine(BaseModel):
    label: str
    value: str


class RuleResult(BaseModel):
    """Tri-state verdict for one rule.  pass=None means not computable."""
    model_config = ConfigDict(populate_by_name=True)

    label: str
    summary: str
    passed: bool | None = Field(default=None, alias="pass")
    value: float | None = None
    metrics: list[MetricLine] = []
    note: str | None = None
    details: dict[str, Any] = {}


class RevenuePoint(BaseModel):
    label: str
    revenue: float | None = None


class CagrDetail(BaseModel):
    latest_periods: list[str]
    previous_periods: list[str]


class DataQuality(BaseModel):
    quarters: int
    has_diluted_shares: bool


class ScoreResult(BaseModel):
    ticker: str
    as_of: datetime
    total_score: int
    base_points: int
    rating: str
    rules: dict[str, RuleResult]
    red_flags: list[str]
    quarterly_revenue: list[RevenuePoint]
    cagr_detail: CagrDetail
    data_quality: DataQuality
    ps: float | None = None
    cagr1y: float | None = None
