"""Quarterly series extraction from an SEC companyfacts document.

The companyfacts payload is nested taxonomy → concept → unit → [fact, ...]
where each fact looks like::

    {"start": "2024-01-01", "end": "2024-03-31", "val": 1234,
     "fy": 2024, "fp": "Q1", "form": "10-Q", "filed": "2024-04-30",
     "frame": "CY2024Q1"}

``collect_fact_series`` reduces that to one value per fiscal quarter key
("2024Q1").  Duration facts spanning more than ~one quarter are year-to-date
cumulatives and are turned into single-quarter values by subtracting the
prior cumulative figure.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Literal, Mapping

import pandas as pd

from tenbagger.models import ConceptConfig
from tenbagger.normalize import normalize_value, parse_quarter_key, safe_num, to_timestamp

log = logging.getLogger(__name__)

# Only periodic reports carry reliable quarterly/annual figures
ALLOWED_FORMS = frozenset({"10-Q", "10-Q/A", "10-K", "10-K/A"})

# Longest span still treated as a single quarter
MAX_QUARTER_DAYS = 120

_FRAME_RE = re.compile(r"^[A-Z]{2}(\d{4})Q([1-4])I$", re.IGNORECASE)


@dataclass
class FactDatum:
    """One resolved fact for a quarter key."""
    value: float
    end: pd.Timestamp
    filed: pd.Timestamp
    start: pd.Timestamp | None = None


def _update(series: dict[str, FactDatum], key: str, datum: FactDatum) -> None:
    """Store datum unless an already-stored fact was filed later."""
    existing = series.get(key)
    if existing is None or datum.filed >= existing.filed:
        series[key] = datum


def _fiscal_key(fact: Mapping[str, Any], form: str, end: pd.Timestamp) -> str:
    fy = fact.get("fy")
    year = int(fy) if isinstance(fy, int) and not isinstance(fy, bool) else end.year
    fp = fact.get("fp")

    if isinstance(fp, str) and fp.startswith("Q"):
        try:
            quarter = int(fp[1:])
        except ValueError:
            quarter = 0
    elif fp == "FY" or form.startswith("10-K"):
        quarter = 4
    else:
        quarter = end.quarter

    if not 1 <= quarter <= 4:
        frame = fact.get("frame")
        m = _FRAME_RE.match(frame) if isinstance(frame, str) else None
        if m:
            year, quarter = int(m.group(1)), int(m.group(2))
        else:
            quarter = end.quarter

    return f"{year}Q{quarter}"


def _iter_unit_facts(concept_data: Mapping[str, Any], units: list[str] | None):
    unit_map = concept_data.get("units")
    if not isinstance(unit_map, Mapping):
        return
    names = [u for u in units if u in unit_map] if units is not None else list(unit_map)
    for unit in names:
        facts = unit_map[unit]
        if isinstance(facts, list):
            yield unit, facts


def collect_fact_series(
    facts: Mapping[str, Any] | None,
    configs: list[ConceptConfig],
    mode: Literal["instant", "duration"] = "duration",
) -> dict[str, FactDatum]:
    """Extract a quarter-key → FactDatum mapping for one logical metric.

    Args:
        facts: the ``facts`` object of a companyfacts response.
        configs: alternative concept names to scan, in order.
        mode: ``instant`` for balance-sheet points in time, ``duration`` for
            flows that may be reported year-to-date.
    """
    quarterly: dict[str, FactDatum] = {}
    ytd: dict[str, FactDatum] = {}
    if not isinstance(facts, Mapping):
        return quarterly

    for cfg in configs:
        taxonomy_facts = facts.get(cfg.taxonomy)
        if not isinstance(taxonomy_facts, Mapping):
            continue
        for concept in cfg.concepts:
            concept_data = taxonomy_facts.get(concept)
            if not isinstance(concept_data, Mapping):
                continue
            for unit, entries in _iter_unit_facts(concept_data, cfg.units):
                for fact in entries:
                    if not isinstance(fact, Mapping):
                        continue
                    form = fact.get("form")
                    if form not in ALLOWED_FORMS:
                        continue
                    raw = safe_num(fact.get("val"))
                    if raw is None:
                        continue
                    end = to_timestamp(fact.get("end"))
                    if end is None:
                        continue
                    start = to_timestamp(fact.get("start"))
                    filed = to_timestamp(fact.get("filed"))
                    if filed is None:
                        filed = end

                    key = _fiscal_key(fact, form, end)
                    datum = FactDatum(
                        value=normalize_value(raw, unit),
                        end=end,
                        filed=filed,
                        start=start,
                    )

                    if mode == "instant":
                        _update(quarterly, key, datum)
                        continue

                    days = abs((end - start).days) if start is not None else None
                    if days is not None and days <= MAX_QUARTER_DAYS:
                        _update(quarterly, key, datum)
                    else:
                        _update(ytd, key, datum)

    if mode == "instant":
        return quarterly

    result = dict(quarterly)
    for key in sorted(ytd, key=parse_quarter_key):
        if key in result:
            continue
        current = ytd[key]
        year, quarter = parse_quarter_key(key)
        value = current.value
        if quarter > 1:
            prev_key = f"{year}Q{quarter - 1}"
            prev = ytd.get(prev_key) or result.get(prev_key)
            if prev is not None:
                value = current.value - prev.value
        result[key] = FactDatum(value=value, end=current.end, filed=current.filed)

    log.debug(
        "Collected %d quarters for %s (%d year-to-date)",
        len(result), [c for cfg in configs for c in cfg.concepts][:1], len(ytd),
    )
    return result
