"""Accumulate partial quarter records from several statement sections.

Providers return income statement, cash flow and balance sheet rows
separately, often with slightly different date stamps for the same quarter.
``QuarterStore`` keys records by calendar quarter so every section lands on
the same ``Quarter``.
"""

from __future__ import annotations

from typing import Any, Mapping

from tenbagger.models import NUMERIC_FIELDS, Quarter
from tenbagger.normalize import quarter_label, safe_num, to_datetime


class QuarterStore:
    """Calendar-quarter keyed Quarter records, mutated in place by patches."""

    def __init__(self) -> None:
        self._by_label: dict[str, Quarter] = {}

    def __len__(self) -> int:
        return len(self._by_label)

    def __contains__(self, label: str) -> bool:
        return label in self._by_label

    def get(self, label: str) -> Quarter | None:
        return self._by_label.get(label)

    def ensure(self, period: Any) -> Quarter | None:
        """Return the record for period's quarter, creating an empty one."""
        dt = to_datetime(period)
        if dt is None:
            return None
        label = quarter_label(dt)
        quarter = self._by_label.get(label)
        if quarter is None:
            quarter = Quarter(period=dt)
            self._by_label[label] = quarter
        return quarter

    def apply_patch(self, period: Any, patch: Mapping[str, Any]) -> Quarter | None:
        """Merge patch into the quarter for period.

        Numeric fields overwrite only when finite; fiscal year/quarter
        overwrite whenever present.  Re-applying a patch is a no-op.
        """
        quarter = self.ensure(period)
        if quarter is None:
            return None
        for name in NUMERIC_FIELDS:
            value = safe_num(patch.get(name))
            if value is not None:
                setattr(quarter, name, value)
        for name in ("fiscal_year", "fiscal_quarter"):
            if patch.get(name) is not None:
                setattr(quarter, name, patch[name])
        return quarter

    def finalize(self, limit: int = 8) -> list[Quarter]:
        """Quarters sorted most-recent-first, truncated to limit."""
        ordered = sorted(self._by_label.values(), key=lambda q: q.period, reverse=True)
        return ordered[:limit]
