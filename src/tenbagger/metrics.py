"""Derived metrics over the 16-quarter timeline.

None is "unknown" everywhere: a helper that needs a missing input returns
None instead of guessing, and every comparison downstream checks for it.

Windows (index 0 is the newest quarter):
    latest4 = t[0:4]   earlier4 = t[4:8]   latest2 = t[0:2]   earlier2 = t[2:4]
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from tenbagger.models import Quarter

Values = Sequence[Optional[float]]

# Split detection bands for diluted share counts (newer / older)
SPLIT_BAND = (4.5, 11.5)
REVERSE_SPLIT_BAND = (0.08, 0.22)

MIN_FCF_QUARTERS = 3
MIN_SHARE_QUARTERS = 2
PEG_GROWTH_FLOOR = 0.05


# ═══════════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════════

def present(values: Iterable[float | None]) -> list[float]:
    return [v for v in values if v is not None]


def total(values: Values) -> float | None:
    """Sum, or None if the window is empty or has a gap."""
    if not values or any(v is None for v in values):
        return None
    return sum(values)


def total_present(values: Values) -> float | None:
    """Sum of the known values, None if none are known."""
    known = present(values)
    return sum(known) if known else None


def mean(values: Values) -> float | None:
    """Mean, or None if the window is empty or has a gap."""
    s = total(values)
    return s / len(values) if s is not None else None


def mean_present(values: Values, min_count: int = 1) -> float | None:
    """Mean of the known values, None below min_count of them."""
    known = present(values)
    if len(known) < max(1, min_count):
        return None
    return sum(known) / len(known)


def ratio(num: float | None, den: float | None) -> float | None:
    if num is None or den is None or den == 0:
        return None
    return num / den


def growth(latest: float | None, prior: float | None) -> float | None:
    r = ratio(latest, prior)
    return r - 1 if r is not None else None


def normalize_shares(series: Values) -> list[float | None]:
    """Undo undisclosed stock splits in a newest-first share series.

    Walking newest to oldest, when newer/older lands in a split band the
    running factor is multiplied by that ratio and applied to every older
    value.  Unknown or non-positive entries stay None and break the chain.
    """
    out: list[float | None] = []
    factor = 1.0
    prev: float | None = None
    for raw in series:
        if raw is None or raw <= 0:
            out.append(None)
            prev = None
            continue
        if prev is not None:
            r = prev / raw
            if SPLIT_BAND[0] < r < SPLIT_BAND[1] or REVERSE_SPLIT_BAND[0] < r < REVERSE_SPLIT_BAND[1]:
                factor *= r
        out.append(raw * factor)
        prev = raw
    return out


# ── per-quarter ratios ───────────────────────────────────────────────

def gross_margin(q: Quarter) -> float | None:
    return ratio(q.gross_profit, q.revenue)


def opex_ratio(q: Quarter) -> float | None:
    if q.sga is None or q.rnd is None:
        return None
    return ratio(q.sga + q.rnd, q.revenue)


def rd_ratio(q: Quarter) -> float | None:
    return ratio(q.rnd, q.revenue)


def free_cash_flow(q: Quarter) -> float | None:
    if q.ocf is None or q.capex is None:
        return None
    return q.ocf - q.capex


def ar_plus_inventory(q: Quarter) -> float | None:
    if q.receivables is None or q.inventory is None:
        return None
    return q.receivables + q.inventory


# ═══════════════════════════════════════════════════════════════════════════
#  Derived metrics
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class DerivedMetrics:
    # Revenue
    rev_l4: float | None = None
    rev_p4: float | None = None
    cagr1y: float | None = None
    ps: float | None = None
    # Gross margin (gm[i] per timeline quarter)
    gm: list[float | None] | None = None
    gm_l4: float | None = None
    gm_baseline: float | None = None
    gm_trend: bool | None = None
    gm_yoy_change: float | None = None
    # Operating cash flow
    ocf_l4: float | None = None
    ocf_n2: float | None = None
    ocf_p2: float | None = None
    # Operating expense ratio
    opex_n2: float | None = None
    opex_p2: float | None = None
    # YoY growth
    yoy_n2: float | None = None
    yoy_p2: float | None = None
    yoy_delta: float | None = None
    # Valuation
    ev: float | None = None
    ebitda_l4: float | None = None
    ev_to_ebitda: float | None = None
    ev_to_fcf: float | None = None
    ni_l4: float | None = None
    ni_p4: float | None = None
    ni_growth: float | None = None
    pe: float | None = None
    peg: float | None = None
    # Capex
    capex_latest: float | None = None
    capex_baseline: float | None = None
    capex_trend: bool | None = None
    # Free cash flow
    fcf_valid: int = 0
    fcf_l4: float | None = None
    fcf_coverage: float | None = None
    # R&D
    rd_rate: float | None = None
    # Dilution
    shares_l4: float | None = None
    shares_p4: float | None = None
    dilution_yoy: float | None = None
    # Working capital
    ar_inv_l4: float | None = None
    ar_inv_p4: float | None = None


def derive_metrics(quarters: Sequence[Quarter], market_cap: float | None) -> DerivedMetrics:
    """Compute every derived metric from a newest-first 16-quarter series."""
    latest4, earlier4 = list(quarters[0:4]), list(quarters[4:8])
    latest2, earlier2 = latest4[0:2], latest4[2:4]
    m = DerivedMetrics()

    # ── revenue ──
    m.rev_l4 = total([q.revenue for q in latest4]) if len(latest4) == 4 else None
    m.rev_p4 = total([q.revenue for q in earlier4]) if len(earlier4) == 4 else None
    if m.rev_l4 is not None and m.rev_p4 is not None and m.rev_p4 > 0:
        m.cagr1y = m.rev_l4 / m.rev_p4 - 1
    if market_cap is not None and m.rev_l4 is not None and m.rev_l4 > 0:
        m.ps = market_cap / m.rev_l4

    # ── gross margin ──
    m.gm = [gross_margin(q) for q in quarters]
    m.gm_l4 = mean_present(m.gm[0:4])
    m.gm_baseline = mean_present(m.gm[1:4])
    if m.gm and m.gm[0] is not None and m.gm_baseline is not None:
        m.gm_trend = m.gm[0] > m.gm_baseline
    if len(m.gm) > 4 and m.gm[0] is not None and m.gm[4] is not None:
        m.gm_yoy_change = m.gm[0] - m.gm[4]

    # ── operating cash flow ──
    m.ocf_l4 = total([q.ocf for q in latest4]) if len(latest4) == 4 else None
    if len(earlier2) == 2:
        m.ocf_n2 = total([q.ocf for q in latest2])
        m.ocf_p2 = total([q.ocf for q in earlier2])
        if m.ocf_n2 is None or m.ocf_p2 is None:
            m.ocf_n2 = m.ocf_p2 = None

    # ── opex ratio ──
    if len(earlier2) == 2:
        m.opex_n2 = mean([opex_ratio(q) for q in latest2])
        m.opex_p2 = mean([opex_ratio(q) for q in earlier2])
        if m.opex_n2 is None or m.opex_p2 is None:
            m.opex_n2 = m.opex_p2 = None

    # ── YoY acceleration ──
    if len(quarters) >= 8:
        yoy = [growth(quarters[i].revenue, quarters[i + 4].revenue) for i in range(4)]
        m.yoy_n2 = mean(yoy[0:2])
        m.yoy_p2 = mean(yoy[2:4])
        if m.yoy_n2 is None or m.yoy_p2 is None:
            m.yoy_n2 = m.yoy_p2 = None
        else:
            m.yoy_delta = m.yoy_n2 - m.yoy_p2

    # ── capex ──
    capex = [q.capex for q in latest4]
    m.capex_latest = capex[0] if capex else None
    m.capex_baseline = mean_present(capex[1:4])
    if m.capex_latest is not None and m.capex_baseline is not None:
        m.capex_trend = m.capex_latest > m.capex_baseline

    # ── free cash flow ──
    fcf = [free_cash_flow(q) for q in latest4]
    m.fcf_valid = len(present(fcf))
    if m.fcf_valid >= MIN_FCF_QUARTERS:
        m.fcf_l4 = total_present(fcf)
        denom = sum(q.revenue for q, f in zip(latest4, fcf) if f is not None and q.revenue is not None)
        if denom > 0:
            m.fcf_coverage = m.fcf_l4 / denom

    # ── valuation ──
    if market_cap is not None:
        latest = latest4[0] if latest4 else None
        m.ev = market_cap
        if latest is not None and latest.total_debt is not None:
            m.ev += latest.total_debt
        if latest is not None and latest.cash is not None:
            m.ev -= latest.cash
    m.ebitda_l4 = total_present([q.ebitda for q in latest4])
    if m.ev is not None and m.ebitda_l4 is not None and m.ebitda_l4 > 0:
        m.ev_to_ebitda = m.ev / m.ebitda_l4
    if m.ev is not None and m.fcf_l4 is not None and m.fcf_l4 > 0:
        m.ev_to_fcf = m.ev / m.fcf_l4

    m.ni_l4 = total_present([q.net_income for q in latest4])
    m.ni_p4 = total_present([q.net_income for q in earlier4])
    if m.ni_l4 is not None and m.ni_p4 is not None and m.ni_p4 > 0:
        m.ni_growth = m.ni_l4 / m.ni_p4 - 1
    if market_cap is not None and m.ni_l4 is not None and m.ni_l4 > 0:
        m.pe = market_cap / m.ni_l4
    if m.pe is not None and m.ni_growth is not None and m.ni_growth > 0:
        m.peg = m.pe / max(m.ni_growth, PEG_GROWTH_FLOOR)

    # ── R&D ──
    m.rd_rate = mean_present([rd_ratio(q) for q in latest4])

    # ── dilution ──
    shares = normalize_shares([q.diluted_shares for q in quarters])
    m.shares_l4 = mean_present(shares[0:4], MIN_SHARE_QUARTERS)
    m.shares_p4 = mean_present(shares[4:8], MIN_SHARE_QUARTERS)
    m.dilution_yoy = growth(m.shares_l4, m.shares_p4)

    # ── receivables + inventory ──
    if len(earlier4) == 4:
        m.ar_inv_l4 = total([ar_plus_inventory(q) for q in latest4])
        m.ar_inv_p4 = total([ar_plus_inventory(q) for q in earlier4])

    return m
