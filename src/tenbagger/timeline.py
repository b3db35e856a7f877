"""Fixed-length calendar-quarter timeline for the scoring engine.

Providers report irregularly: gaps, duplicate filings for one quarter,
occasionally a period stamped in the future.  The scorer always works on
exactly sixteen calendar quarters ending at the latest reported (non-future)
quarter.  Quarters nobody reported become empty placeholders.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import pandas as pd

from tenbagger.models import Fundamentals, Quarter
from tenbagger.normalize import quarter_end

TIMELINE_LENGTH = 16


@dataclass
class TimelineEntry:
    label: str
    quarter: Quarter
    has_data: bool


def _utc(value: Any) -> pd.Timestamp:
    ts = pd.Timestamp(value)
    return ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")


def _period(value: Any) -> pd.Period:
    return _utc(value).tz_convert(None).to_period("Q")


def _label(period: pd.Period) -> str:
    return f"{period.year}Q{period.quarter}"


def resolve_as_of(as_of: datetime | None = None) -> datetime:
    """The evaluation instant; naive datetimes are taken as UTC."""
    if as_of is None:
        return datetime.now(timezone.utc)
    return _utc(as_of).to_pydatetime()


def usable_quarters(fundamentals: Fundamentals, as_of: datetime | None = None) -> list[Quarter]:
    """Quarters most recent first, future-dated ones dropped.

    If every quarter is future-dated they are all kept.
    """
    cutoff = _utc(resolve_as_of(as_of))
    ordered = sorted(fundamentals.quarters, key=lambda q: _utc(q.period), reverse=True)
    usable = [q for q in ordered if _utc(q.period) <= cutoff]
    return usable or ordered


def build_timeline(fundamentals: Fundamentals, as_of: datetime | None = None) -> list[TimelineEntry]:
    """Sixteen entries, newest calendar quarter first.

    Real entries are copies of the reported quarter; the input is never
    mutated.  When two quarters share a calendar label the more recent one
    wins.
    """
    as_of = resolve_as_of(as_of)
    base = usable_quarters(fundamentals, as_of)
    cursor = _period(base[0].period if base else as_of)

    by_label: dict[str, Quarter] = {}
    for quarter in base:
        by_label.setdefault(_label(_period(quarter.period)), quarter)

    timeline: list[TimelineEntry] = []
    for _ in range(TIMELINE_LENGTH):
        label = _label(cursor)
        existing = by_label.get(label)
        if existing is not None:
            quarter = existing.model_copy(update={
                "fiscal_year": existing.fiscal_year if existing.fiscal_year is not None else cursor.year,
                "fiscal_quarter": (
                    existing.fiscal_quarter if existing.fiscal_quarter is not None else cursor.quarter
                ),
            })
        else:
            quarter = Quarter(
                period=quarter_end(cursor.year, cursor.quarter).to_pydatetime(),
                fiscal_year=cursor.year,
                fiscal_quarter=cursor.quarter,
            )
        timeline.append(TimelineEntry(label, quarter, existing is not None))
        cursor -= 1
    return timeline
