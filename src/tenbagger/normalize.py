"""Value normalization helpers shared by the providers and the scorer.

Pure functions only: numeric coercion, unit scaling, date parsing,
quarter keys and display formatting.
"""

from __future__ import annotations

import math
import re
from datetime import datetime
from typing import Any, Iterable, Mapping

import pandas as pd

_QUARTER_KEY_RE = re.compile(r"^(\d{4})Q([1-4])$")

# Scale factors for non-canonical XBRL / provider units
_UNIT_SCALE: dict[str, float] = {
    "usdm": 1_000_000,
    "usdmm": 1_000_000,
    "usd (in millions)": 1_000_000,
    "usdbn": 1_000_000_000,
    "usdth": 1_000,
    "usd thousands": 1_000,
    "usd (in thousands)": 1_000,
    "sharesm": 1_000_000,
    "shares (in millions)": 1_000_000,
}


# ═══════════════════════════════════════════════════════════════════════════
#  Numbers
# ═══════════════════════════════════════════════════════════════════════════

def safe_num(v: Any) -> float | None:
    """Convert a value to float, returning None for invalid/missing values."""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, str) and not v.strip():
        return None
    if hasattr(v, "item"):
        v = v.item()
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    if math.isnan(f) or math.isinf(f):
        return None
    return f


def first_defined(record: Mapping[str, Any] | None, keys: Iterable[str]) -> Any:
    """Return the first non-null value among candidate field names."""
    if not isinstance(record, Mapping):
        return None
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return None


def normalize_value(value: float, unit: str) -> float:
    """Scale a reported value to canonical USD / shares."""
    return value * _UNIT_SCALE.get(unit.lower(), 1)


# ═══════════════════════════════════════════════════════════════════════════
#  Dates and quarter keys
# ═══════════════════════════════════════════════════════════════════════════

def to_timestamp(value: Any) -> pd.Timestamp | None:
    """Parse an ISO string, epoch (s or ms) or datetime into a UTC Timestamp."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        unit = "ms" if value > 1e12 else "s"
        ts = pd.to_datetime(value, unit=unit, utc=True, errors="coerce")
    elif isinstance(value, (str, datetime)):
        if isinstance(value, str) and not value.strip():
            return None
        try:
            ts = pd.to_datetime(value, utc=True, errors="coerce")
        except (ValueError, OverflowError):
            return None
    else:
        return None
    if ts is None or pd.isna(ts):
        return None
    return ts


def to_datetime(value: Any) -> datetime | None:
    ts = to_timestamp(value)
    return ts.to_pydatetime() if ts is not None else None


def quarter_label(value: Any) -> str:
    """Calendar quarter label ("2024Q3") of a date."""
    ts = pd.Timestamp(value)
    return f"{ts.year}Q{ts.quarter}"


def parse_quarter_key(key: str) -> tuple[int, int]:
    """Split "2024Q3" into (2024, 3); malformed keys give (0, 0)."""
    m = _QUARTER_KEY_RE.match(key)
    if not m:
        return 0, 0
    return int(m.group(1)), int(m.group(2))


def quarter_end(year: int, quarter: int) -> pd.Timestamp:
    """Last second of a calendar quarter, UTC."""
    end = pd.Period(year=year, quarter=quarter, freq="Q").end_time.floor("s")
    return end.tz_localize("UTC")


# ═══════════════════════════════════════════════════════════════════════════
#  Display formatting
# ═══════════════════════════════════════════════════════════════════════════

NO_DATA = "n/a"


def fmt_number(v: float | None) -> str:
    """Compact number (e.g., 1.2B, 456.0M)."""
    if v is None:
        return NO_DATA
    sign = "-" if v < 0 else ""
    a = abs(v)
    if a >= 1e12:
        return f"{sign}{a / 1e12:.1f}T"
    if a >= 1e9:
        return f"{sign}{a / 1e9:.1f}B"
    if a >= 1e6:
        return f"{sign}{a / 1e6:.1f}M"
    if a >= 1e3:
        return f"{sign}{a / 1e3:.1f}K"
    return f"{sign}{a:.1f}"


def fmt_currency(v: float | None) -> str:
    """Compact USD amount (e.g., $1.2B, -$456.0M)."""
    if v is None:
        return NO_DATA
    text = fmt_number(v)
    return f"-${text[1:]}" if text.startswith("-") else f"${text}"


def fmt_percent(v: float | None) -> str:
    return f"{v * 100:.1f}%" if v is not None else NO_DATA


def fmt_ratio(v: float | None) -> str:
    return f"{v:.2f}" if v is not None else NO_DATA
