"""Ten-rule growth-stock screen.

    timeline  = build_timeline(fundamentals)        16 calendar quarters
    metrics   = derive_metrics(timeline, mcap)      ratios, sums, trends
    rules     = _rule_1 .. _rule_10(metrics)        pass / fail / unknown
    red_flags = _red_flags(metrics)                 advisory, never scored

Score is the number of rules that pass.  An unknown rule (pass=None) neither
adds nor subtracts.  ``score_company`` never raises on sparse data: missing
inputs degrade individual rules to unknown.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from tenbagger.metrics import DerivedMetrics, derive_metrics
from tenbagger.models import (
    CagrDetail,
    DataQuality,
    Fundamentals,
    MetricLine,
    RevenuePoint,
    RuleResult,
    ScoreResult,
)
from tenbagger.normalize import fmt_currency, fmt_number, fmt_percent, fmt_ratio
from tenbagger.timeline import build_timeline, resolve_as_of, usable_quarters

log = logging.getLogger(__name__)

# ── thresholds ───────────────────────────────────────────────────────

CAGR_MIN = 0.30
CAGR_STRONG = 0.50
GROSS_MARGIN_MIN = 0.45
YOY_HIGH = 0.50
YOY_ACCELERATION = 0.05
EV_EBITDA_MAX = 25
EV_FCF_MAX = 35
PEG_MAX = 2
RD_INTENSITY_MIN = 0.15
DILUTION_MAX = 0.10
DILUTION_HIGH = 0.15
FCF_GROWTH_CAGR = 0.10
FCF_COVERAGE_MIN = 0.05
GM_COLLAPSE = -0.05

RATINGS = (
    (9, "excellent"),
    (7, "good"),
    (5, "average"),
)
RATING_FLOOR = "does not meet profile"


def _lines(*pairs: tuple[str, str]) -> list[MetricLine]:
    return [MetricLine(label=label, value=value) for label, value in pairs]


def _rule(
    label: str,
    summary: str,
    passed: bool | None,
    *,
    value: float | None = None,
    metrics: list[MetricLine] | None = None,
    note: str | None = None,
    **details: Any,
) -> RuleResult:
    return RuleResult(
        label=label,
        summary=summary,
        passed=passed,
        value=value,
        metrics=metrics or [],
        note=note,
        details=details,
    )


def rating_for(score: int) -> str:
    for floor, rating in RATINGS:
        if score >= floor:
            return rating
    return RATING_FLOOR


# ═══════════════════════════════════════════════════════════════════════════
#  Rules
# ═══════════════════════════════════════════════════════════════════════════

def _rule_1(m: DerivedMetrics) -> RuleResult:
    known = m.cagr1y is not None
    summary = (
        f"Last four quarters revenue {fmt_currency(m.rev_l4)} vs prior four "
        f"{fmt_currency(m.rev_p4)}: growth {fmt_percent(m.cagr1y)} (threshold 30%)."
        if known else
        "Insufficient data: the last eight quarters of revenue are incomplete."
    )
    return _rule(
        "1. Revenue growth (CAGR)",
        summary,
        m.cagr1y >= CAGR_MIN if known else None,
        value=m.cagr1y,
        metrics=_lines(
            ("Revenue L4Q", fmt_currency(m.rev_l4)),
            ("Revenue P4Q", fmt_currency(m.rev_p4)),
            ("CAGR", fmt_percent(m.cagr1y)),
        ),
        note="Strong momentum (>=50%)." if known and m.cagr1y >= CAGR_STRONG else None,
    )


def _rule_2(m: DerivedMetrics) -> RuleResult:
    latest = m.gm[0] if m.gm else None
    known = m.gm_l4 is not None and m.gm_trend is not None
    summary = (
        f"Average gross margin {fmt_percent(m.gm_l4)}, latest quarter "
        f"{fmt_percent(latest)}, trend {'rising' if m.gm_trend else 'not rising'}; "
        "needs >=45% and a rising trend."
        if known else
        "Insufficient data: gross profit or revenue missing."
    )
    return _rule(
        "2. Gross margin level and trend",
        summary,
        (m.gm_l4 >= GROSS_MARGIN_MIN and m.gm_trend) if known else None,
        value=m.gm_l4,
        metrics=_lines(
            ("Average gross margin (L4Q)", fmt_percent(m.gm_l4)),
            ("Latest gross margin", fmt_percent(latest)),
        ),
        avg=m.gm_l4,
        last=latest,
        trend_up=m.gm_trend,
    )


def _rule_3(m: DerivedMetrics) -> RuleResult:
    known = m.ocf_l4 is not None and m.ocf_n2 is not None
    trend_up = m.ocf_n2 > m.ocf_p2 if m.ocf_n2 is not None else None
    summary = (
        f"Operating cash flow TTM {fmt_number(m.ocf_l4)}; last two quarters "
        f"{fmt_number(m.ocf_n2)} vs prior two {fmt_number(m.ocf_p2)} "
        f"({'improving' if trend_up else 'weakening'}). Needs positive TTM and improvement."
        if known else
        "Insufficient data: operating cash flow incomplete for the last four quarters."
    )
    return _rule(
        "3. Operating cash flow quality",
        summary,
        (m.ocf_l4 > 0 and trend_up) if known else None,
        value=m.ocf_l4,
        metrics=_lines(
            ("OCF TTM", fmt_number(m.ocf_l4)),
            ("OCF last 2Q", fmt_number(m.ocf_n2)),
            ("OCF prior 2Q", fmt_number(m.ocf_p2)),
        ),
        ocf_ttm=m.ocf_l4,
        trend_up=trend_up,
    )


def _rule_4(m: DerivedMetrics) -> RuleResult:
    known = m.opex_n2 is not None
    summary = (
        f"Opex ratio last two quarters {fmt_percent(m.opex_n2)} vs prior two "
        f"{fmt_percent(m.opex_p2)}; needs to decline."
        if known else
        "Insufficient data: SG&A, R&D or revenue missing."
    )
    return _rule(
        "4. Operating expense ratio",
        summary,
        m.opex_n2 < m.opex_p2 if known else None,
        value=m.opex_n2,
        metrics=_lines(
            ("Opex ratio last 2Q", fmt_percent(m.opex_n2)),
            ("Opex ratio prior 2Q", fmt_percent(m.opex_p2)),
        ),
        near2q=m.opex_n2,
        prev2q=m.opex_p2,
    )


def _rule_5(m: DerivedMetrics) -> RuleResult:
    known = m.yoy_delta is not None
    passed = None
    if known:
        passed = (m.yoy_n2 > YOY_HIGH and m.yoy_p2 > YOY_HIGH) or m.yoy_delta >= YOY_ACCELERATION
    summary = (
        f"Average YoY growth last two quarters {fmt_percent(m.yoy_n2)} vs prior two "
        f"{fmt_percent(m.yoy_p2)} (change {fmt_percent(m.yoy_delta)}); needs +5pts "
        "or both above 50%."
        if known else
        "Insufficient data: YoY growth needs eight quarters of revenue."
    )
    return _rule(
        "5. Revenue growth acceleration",
        summary,
        passed,
        value=m.yoy_delta,
        metrics=_lines(
            ("YoY last 2Q", fmt_percent(m.yoy_n2)),
            ("YoY prior 2Q", fmt_percent(m.yoy_p2)),
            ("Change", fmt_percent(m.yoy_delta)),
        ),
        near2q=m.yoy_n2,
        prev2q=m.yoy_p2,
        delta=m.yoy_delta,
    )


def _valuation_line(value: float | None, limit: float, passed: bool | None) -> str:
    mark = {True: " | pass", False: " | fail"}.get(passed, "")
    return f"{value:.2f} (limit <={limit}){mark}"


def _rule_6(m: DerivedMetrics) -> RuleResult:
    checks = [
        ("ev_ebitda", "EV/EBITDA", m.ev_to_ebitda, EV_EBITDA_MAX),
        ("ev_fcf", "EV/FCF", m.ev_to_fcf, EV_FCF_MAX),
        ("peg", "PEG", m.peg, PEG_MAX),
    ]
    results: list[dict[str, Any]] = []
    lines: list[MetricLine] = []
    for key, label, value, limit in checks:
        passed = value <= limit if value is not None else None
        results.append({"key": key, "label": label, "value": value, "limit": limit, "pass": passed})

        if value is not None:
            text = _valuation_line(value, limit, passed)
        elif key == "ev_fcf" and m.fcf_l4 is not None and m.fcf_l4 <= 0:
            text = f"{fmt_currency(m.fcf_l4)} (FCF negative)"
        elif key == "peg" and (m.ni_l4 is None or m.ni_l4 <= 0):
            text = "not computable (net income <= 0)"
        elif key == "peg" and (m.ni_growth is None or m.ni_growth <= 0):
            text = "not computable (net income growth <= 0)"
        else:
            text = "insufficient data"
        lines.append(MetricLine(label=label, value=text))

    lines += _lines(
        ("P/S", fmt_ratio(m.ps)),
        ("Net income TTM", fmt_currency(m.ni_l4)),
        ("Net income growth", fmt_percent(m.ni_growth)),
        ("P/E (TTM)", fmt_ratio(m.pe)),
    )

    available = [r for r in results if r["pass"] is not None]
    passes = sum(1 for r in available if r["pass"])
    known = len(available) >= 2
    headline = (
        f"{passes}/{len(available)} valuation checks pass (needs >=2)."
        if known else
        "Insufficient data: at least two valuation checks must be computable."
    )
    summary = (
        f"{headline} EV={fmt_currency(m.ev)}; FCF={fmt_currency(m.fcf_l4)}; "
        f"PEG {fmt_ratio(m.peg) if m.peg is not None else 'insufficient data'}"
    )
    return _rule(
        "6. Valuation vs growth",
        summary,
        passes >= 2 if known else None,
        metrics=lines,
        checks=results,
        ev=m.ev,
        fcf_ttm=m.fcf_l4,
        ebitda_ttm=m.ebitda_l4,
        peg=m.peg,
        pe=m.pe,
        net_income_growth=m.ni_growth,
        ps=m.ps,
    )


def _rule_7(m: DerivedMetrics) -> RuleResult:
    latest_gm = m.gm[0] if m.gm else None
    gm_known = m.gm_l4 is not None and m.gm_baseline is not None and latest_gm is not None
    gm_ok = gm_known and m.gm_l4 >= GROSS_MARGIN_MIN and latest_gm >= m.gm_baseline
    known = m.capex_trend is not None and gm_known
    summary = (
        f"Latest capex {fmt_number(m.capex_latest)} vs prior three-quarter average "
        f"{fmt_number(m.capex_baseline)} ({'rising' if m.capex_trend else 'flat or falling'}); "
        f"gross margin {fmt_percent(latest_gm)} latest / {fmt_percent(m.gm_l4)} average. "
        "Needs rising capex with margin held at >=45%."
        if known else
        "Insufficient data: capex or gross margin missing."
    )
    return _rule(
        "7. Capacity expansion without margin loss",
        summary,
        (m.capex_trend and gm_ok) if known else None,
        metrics=_lines(
            ("Latest capex", fmt_number(m.capex_latest)),
            ("Prior 3Q average capex", fmt_number(m.capex_baseline)),
            ("Latest gross margin", fmt_percent(latest_gm)),
            ("Average gross margin", fmt_percent(m.gm_l4)),
        ),
        capex_trend=m.capex_trend,
        gm_ok=gm_ok,
    )


def _rule_8(m: DerivedMetrics) -> RuleResult:
    known = m.rd_rate is not None
    return _rule(
        "8. R&D intensity",
        f"Average R&D to revenue over the last four quarters {fmt_percent(m.rd_rate)}; threshold 15%."
        if known else
        "Insufficient data: R&D or revenue missing.",
        m.rd_rate >= RD_INTENSITY_MIN if known else None,
        value=m.rd_rate,
        metrics=_lines(("R&D ratio (L4Q average)", fmt_percent(m.rd_rate))),
    )


def _rule_9(m: DerivedMetrics) -> RuleResult:
    dilution = m.dilution_yoy
    passed = dilution < DILUTION_MAX if dilution is not None else None
    if passed is None:
        note = "Insufficient data (no penalty)."
    elif dilution > DILUTION_HIGH:
        note = "High dilution; check convertibles and equity raises."
    else:
        note = None
    return _rule(
        "9. Dilution control",
        "Diluted share count unavailable; dilution not assessed."
        if dilution is None else
        f"Diluted shares changed {fmt_percent(dilution)} year over year; threshold <10%.",
        passed,
        value=dilution,
        metrics=_lines(
            ("Share count YoY", fmt_percent(dilution) if dilution is not None else "insufficient data"),
        ),
        note=note,
        dilution_yoy=dilution,
    )


def _rule_10(m: DerivedMetrics) -> RuleResult:
    growing = m.cagr1y is not None and m.cagr1y >= FCF_GROWTH_CAGR
    passed = None
    if m.fcf_l4 is not None:
        if growing or m.fcf_coverage is None:
            passed = m.fcf_l4 > 0
        else:
            passed = m.fcf_l4 > 0 or m.fcf_coverage >= FCF_COVERAGE_MIN

    if m.fcf_l4 is not None:
        summary = (
            f"Free cash flow TTM {fmt_number(m.fcf_l4)}, {fmt_percent(m.fcf_coverage)} of revenue. "
            + ("Revenue still growing fast; FCF must be positive." if growing
               else "Moderate growth; FCF around break-even is acceptable.")
        )
    else:
        summary = "Insufficient data: operating cash flow or capex missing."
    return _rule(
        "10. Free cash flow coverage",
        summary,
        passed,
        value=m.fcf_coverage,
        metrics=_lines(
            ("FCF TTM", fmt_number(m.fcf_l4)),
            ("FCF / revenue", fmt_percent(m.fcf_coverage)),
            ("Revenue CAGR", fmt_percent(m.cagr1y)),
        ),
        note="Revenue growing but free cash flow still negative." if growing and passed is False else None,
        fcf_ttm=m.fcf_l4,
        coverage=m.fcf_coverage,
    )


RULES = {
    "1_growth_cagr": _rule_1,
    "2_gross_margin_level_trend": _rule_2,
    "3_ocf_quality": _rule_3,
    "4_opex_rate": _rule_4,
    "5_yoy_acceleration": _rule_5,
    "6_val_vs_growth": _rule_6,
    "7_capacity_without_gm_hit": _rule_7,
    "8_rd_ratio": _rule_8,
    "9_dilution_governance": _rule_9,
    "10_fcf_coverage": _rule_10,
}


# ═══════════════════════════════════════════════════════════════════════════
#  Red flags
# ═══════════════════════════════════════════════════════════════════════════

def _red_flags(m: DerivedMetrics) -> list[str]:
    flags: list[str] = []
    if m.ocf_l4 is not None and m.ocf_n2 is not None and m.ocf_l4 < 0 and m.ocf_n2 < m.ocf_p2:
        flags.append("OCF TTM negative and weakening")
    if (
        m.ar_inv_l4 is not None and m.ar_inv_p4 is not None
        and m.rev_l4 is not None and m.rev_p4 is not None
        and (m.ar_inv_l4 - m.ar_inv_p4) > (m.rev_l4 - m.rev_p4)
    ):
        flags.append("Receivables + inventory growing faster than revenue")
    if m.gm_yoy_change is not None and round(m.gm_yoy_change, 9) <= GM_COLLAPSE:
        flags.append("Gross margin down >=5pts year over year")
    if m.dilution_yoy is not None and m.dilution_yoy > DILUTION_MAX:
        flags.append("Diluted shares up >10% in a year")
    return flags


# ═══════════════════════════════════════════════════════════════════════════
#  Entry point
# ═══════════════════════════════════════════════════════════════════════════

def score_company(fundamentals: Fundamentals, as_of: datetime | None = None) -> ScoreResult:
    """Score one company's fundamentals against the ten rules."""
    as_of = resolve_as_of(as_of)
    timeline = build_timeline(fundamentals, as_of)
    quarters = [entry.quarter for entry in timeline]
    m = derive_metrics(quarters, fundamentals.market_cap)

    rules = {key: build(m) for key, build in RULES.items()}
    base_points = sum(1 for r in rules.values() if r.passed is True)
    red_flags = _red_flags(m)

    log.info(
        "Scored %s: %d/%d rules pass, %d red flags",
        fundamentals.ticker, base_points, len(rules), len(red_flags),
    )
    return ScoreResult(
        ticker=fundamentals.ticker,
        as_of=as_of,
        total_score=base_points,
        base_points=base_points,
        rating=rating_for(base_points),
        rules=rules,
        red_flags=red_flags,
        quarterly_revenue=[
            RevenuePoint(label=e.label, revenue=e.quarter.revenue) for e in reversed(timeline[:8])
        ],
        cagr_detail=CagrDetail(
            latest_periods=[e.label for e in timeline[0:4]],
            previous_periods=[e.label for e in timeline[4:8]],
        ),
        data_quality=DataQuality(
            quarters=len(usable_quarters(fundamentals, as_of)),
            has_diluted_shares=m.dilution_yoy is not None,
        ),
        ps=m.ps,
        cagr1y=m.cagr1y,
    )
