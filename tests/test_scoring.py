"""Tests for derived metrics, the ten rules and red flags."""

from datetime import datetime, timezone

import pytest

from conftest import make_fundamentals
from tenbagger.metrics import derive_metrics, mean_present, normalize_shares, total
from tenbagger.models import Fundamentals
from tenbagger.scoring import RULES, rating_for, score_company

AS_OF = datetime(2025, 3, 1, tzinfo=timezone.utc)


def _score(**kwargs):
    n = kwargs.pop("n", 8)
    return score_company(make_fundamentals(n, **kwargs), AS_OF)


def _rule(result, key):
    return result.rules[key]


# ═══════════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════════

def test_total_needs_every_value():
    assert total([1.0, 2.0]) == 3.0
    assert total([1.0, None]) is None
    assert total([]) is None


def test_mean_present_uses_known_values():
    assert mean_present([1.0, None, 3.0]) == 2.0
    assert mean_present([None, None]) is None
    assert mean_present([1.0, None], min_count=2) is None


def test_normalize_shares_forward_split():
    out = normalize_shares([1000, 1000, 9500, 9600])
    factor = 1000 / 9500
    assert out[:2] == [1000, 1000]
    assert out[2] == pytest.approx(9500 * factor)
    assert out[3] == pytest.approx(9600 * factor)
    assert out[3] == pytest.approx(1010.53, rel=1e-4)


def test_normalize_shares_reverse_split():
    assert normalize_shares([100, 1000]) == pytest.approx([100, 100])


def test_normalize_shares_unknown_breaks_chain():
    assert normalize_shares([1000, None, 9500]) == [1000, None, 9500]
    assert normalize_shares([1000, -5, 9500]) == [1000, None, 9500]


def test_normalize_shares_ignores_ordinary_changes():
    assert normalize_shares([1200, 1000, 800]) == [1200, 1000, 800]


# ═══════════════════════════════════════════════════════════════════════════
#  Rules
# ═══════════════════════════════════════════════════════════════════════════

def test_rule_1_revenue_cagr_passes():
    result = _score(revenue=[300.0] * 4 + [200.0] * 4)
    rule = _rule(result, "1_growth_cagr")
    assert rule.value == pytest.approx(0.5)
    assert rule.passed is True
    assert rule.note is not None
    assert result.cagr1y == pytest.approx(0.5)


def test_rule_1_gap_is_unknown():
    revenue = [300.0] * 4 + [200.0, None, 200.0, 200.0]
    assert _rule(_score(revenue=revenue), "1_growth_cagr").passed is None


def test_rule_1_nan_revenue_is_unknown():
    f = make_fundamentals(8, revenue=[300.0, 300.0, float("nan"), 300.0] + [200.0] * 4)
    assert f.quarters[2].revenue is None
    assert _rule(score_company(f, AS_OF), "1_growth_cagr").passed is None


def test_infinite_values_become_unknown():
    f = make_fundamentals(1, revenue=float("inf"), ocf="-inf")
    assert f.quarters[0].revenue is None
    assert f.quarters[0].ocf is None


def test_rule_1_slow_growth_fails():
    assert _rule(_score(revenue=[110.0] * 4 + [100.0] * 4), "1_growth_cagr").passed is False


def test_rule_2_gross_margin_level_and_trend():
    rising = _score(revenue=100.0, gross_profit=[60.0, 50.0, 50.0, 50.0, 50.0, 50.0, 50.0, 50.0])
    assert _rule(rising, "2_gross_margin_level_trend").passed is True

    flat = _score(revenue=100.0, gross_profit=50.0)
    assert _rule(flat, "2_gross_margin_level_trend").passed is False

    unknown = _score(revenue=100.0)
    assert _rule(unknown, "2_gross_margin_level_trend").passed is None


def test_rule_3_ocf_quality():
    assert _rule(_score(ocf=[50.0, 50.0, 30.0, 30.0] + [0.0] * 4), "3_ocf_quality").passed is True
    assert _rule(_score(ocf=[30.0, 30.0, 50.0, 50.0] + [0.0] * 4), "3_ocf_quality").passed is False
    assert _rule(_score(ocf=[50.0, None, 30.0, 30.0] + [0.0] * 4), "3_ocf_quality").passed is None


def test_rule_4_opex_ratio_declining():
    result = _score(revenue=100.0, sga=[20.0, 20.0, 30.0, 30.0] * 2, rnd=10.0)
    assert _rule(result, "4_opex_rate").passed is True
    missing_rnd = _score(revenue=100.0, sga=20.0)
    assert _rule(missing_rnd, "4_opex_rate").passed is None


def test_rule_5_yoy_acceleration():
    accelerating = _score(revenue=[130.0, 125.0, 110.0, 105.0, 100.0, 100.0, 100.0, 100.0])
    rule = _rule(accelerating, "5_yoy_acceleration")
    assert rule.details["near2q"] == pytest.approx(0.275)
    assert rule.details["prev2q"] == pytest.approx(0.075)
    assert rule.passed is True

    steady = _score(revenue=[120.0] * 4 + [100.0] * 4)
    assert _rule(steady, "5_yoy_acceleration").passed is False


def test_rule_5_sustained_hypergrowth_passes():
    result = _score(revenue=[200.0] * 4 + [100.0] * 4)
    assert _rule(result, "5_yoy_acceleration").passed is True


def test_rule_6_one_of_two_valuation_checks_fails():
    result = _score(
        n=4,
        market_cap=1000.0,
        ebitda=12.5,
        ocf=10.0,
        capex=3.75,
        net_income=-1.0,
    )
    rule = _rule(result, "6_val_vs_growth")
    checks = {c["key"]: c for c in rule.details["checks"]}
    assert checks["ev_ebitda"]["value"] == pytest.approx(20)
    assert checks["ev_ebitda"]["pass"] is True
    assert checks["ev_fcf"]["value"] == pytest.approx(40)
    assert checks["ev_fcf"]["pass"] is False
    assert checks["peg"]["pass"] is None
    assert rule.passed is False
    peg_line = next(line for line in rule.metrics if line.label == "PEG")
    assert "net income" in peg_line.value


def test_rule_6_enterprise_value_uses_latest_debt_and_cash():
    result = _score(n=4, market_cap=1000.0, total_debt=[200.0, 0.0, 0.0, 0.0], cash=[50.0, 0.0, 0.0, 0.0])
    assert _rule(result, "6_val_vs_growth").details["ev"] == pytest.approx(1150)

    no_balance_sheet = _score(n=4, market_cap=1000.0)
    assert _rule(no_balance_sheet, "6_val_vs_growth").details["ev"] == pytest.approx(1000)


def test_rule_6_needs_two_computable_checks():
    result = _score(n=4, market_cap=1000.0, ebitda=12.5)
    assert _rule(result, "6_val_vs_growth").passed is None


def test_rule_6_peg_floor_on_growth():
    result = _score(
        market_cap=1000.0,
        ebitda=10.0,
        net_income=[25.0] * 4 + [24.0] * 4,
    )
    rule = _rule(result, "6_val_vs_growth")
    # P/E 10, growth ~4% floored to 5% => PEG 200
    assert rule.details["pe"] == pytest.approx(10)
    assert rule.details["peg"] == pytest.approx(200)


def test_rule_7_capex_up_with_margin_held():
    result = _score(revenue=100.0, gross_profit=50.0, capex=[20.0, 10.0, 10.0, 10.0] * 2)
    assert _rule(result, "7_capacity_without_gm_hit").passed is True

    thin_margin = _score(revenue=100.0, gross_profit=30.0, capex=[20.0, 10.0, 10.0, 10.0] * 2)
    assert _rule(thin_margin, "7_capacity_without_gm_hit").passed is False

    no_capex = _score(revenue=100.0, gross_profit=50.0)
    assert _rule(no_capex, "7_capacity_without_gm_hit").passed is None


def test_rule_8_rd_intensity():
    assert _rule(_score(revenue=100.0, rnd=20.0), "8_rd_ratio").passed is True
    assert _rule(_score(revenue=100.0, rnd=5.0), "8_rd_ratio").passed is False
    assert _rule(_score(revenue=100.0), "8_rd_ratio").passed is None


def test_rule_9_dilution():
    steady = _score(diluted_shares=[102.0] * 4 + [100.0] * 4)
    assert _rule(steady, "9_dilution_governance").passed is True

    diluting = _score(diluted_shares=[120.0] * 4 + [100.0] * 4)
    rule = _rule(diluting, "9_dilution_governance")
    assert rule.passed is False
    assert rule.note is not None
    assert diluting.data_quality.has_diluted_shares is True


def test_rule_9_split_is_not_dilution():
    result = _score(diluted_shares=[1000.0] * 4 + [100.0] * 4)
    assert _rule(result, "9_dilution_governance").passed is True


def test_rule_9_needs_two_values_per_window():
    result = _score(diluted_shares=[100.0, None, None, None, 100.0, 100.0, None, None])
    rule = _rule(result, "9_dilution_governance")
    assert rule.passed is None
    assert rule.note == "Insufficient data (no penalty)."
    assert result.data_quality.has_diluted_shares is False


def test_rule_10_fcf_coverage():
    positive = _score(revenue=100.0, ocf=20.0, capex=5.0)
    assert _rule(positive, "10_fcf_coverage").passed is True
    assert _rule(positive, "10_fcf_coverage").details["coverage"] == pytest.approx(0.15)

    growing_burn = _score(revenue=[150.0] * 4 + [100.0] * 4, ocf=5.0, capex=20.0)
    rule = _rule(growing_burn, "10_fcf_coverage")
    assert rule.passed is False
    assert rule.note is not None


def test_rule_10_needs_three_quarters():
    result = _score(revenue=100.0, ocf=[20.0, 20.0, None, None] * 2, capex=5.0)
    assert _rule(result, "10_fcf_coverage").passed is None


# ═══════════════════════════════════════════════════════════════════════════
#  Red flags
# ═══════════════════════════════════════════════════════════════════════════

def test_red_flag_negative_weakening_ocf():
    result = _score(ocf=[-10.0, -10.0, 5.0, 5.0] + [0.0] * 4)
    assert any("OCF" in flag for flag in result.red_flags)


def test_red_flag_receivables_outgrowing_revenue():
    result = _score(
        revenue=[110.0] * 4 + [100.0] * 4,
        receivables=[200.0] * 4 + [100.0] * 4,
        inventory=0.0,
    )
    assert any("Receivables" in flag for flag in result.red_flags)


def test_red_flag_gross_margin_collapse():
    result = _score(revenue=100.0, gross_profit=[40.0] + [50.0] * 7)
    assert any("Gross margin" in flag for flag in result.red_flags)


def test_red_flag_gross_margin_exact_five_point_drop():
    result = _score(revenue=100.0, gross_profit=[45.0] + [50.0] * 7)
    assert any("Gross margin" in flag for flag in result.red_flags)


def test_red_flag_dilution():
    result = _score(diluted_shares=[120.0] * 4 + [100.0] * 4)
    assert any("Diluted shares" in flag for flag in result.red_flags)


def test_clean_company_has_no_red_flags():
    result = _score(revenue=100.0, gross_profit=50.0, ocf=10.0, receivables=10.0, inventory=10.0,
                    diluted_shares=100.0)
    assert result.red_flags == []


# ═══════════════════════════════════════════════════════════════════════════
#  Score
# ═══════════════════════════════════════════════════════════════════════════

def test_zero_quarters_scores_zero_with_every_rule_unknown():
    result = score_company(Fundamentals(ticker="EXM", market_cap=1000.0, quarters=[]), AS_OF)
    assert result.total_score == 0
    assert set(result.rules) == set(RULES)
    assert all(rule.passed is None for rule in result.rules.values())
    assert result.rating == "does not meet profile"
    assert len(result.quarterly_revenue) == 8
    assert all(point.revenue is None for point in result.quarterly_revenue)
    assert result.data_quality.quarters == 0


@pytest.mark.parametrize("score,rating", [
    (10, "excellent"),
    (9, "excellent"),
    (8, "good"),
    (7, "good"),
    (6, "average"),
    (5, "average"),
    (4, "does not meet profile"),
    (0, "does not meet profile"),
])
def test_rating_buckets(score, rating):
    assert rating_for(score) == rating


def test_strong_company_scores_high():
    result = _score(
        market_cap=3_000.0,
        revenue=[200.0, 190.0, 170.0, 160.0, 120.0, 115.0, 110.0, 105.0],
        gross_profit=[140.0, 120.0, 105.0, 100.0, 70.0, 65.0, 60.0, 55.0],
        sga=[30.0, 30.0, 40.0, 40.0, 40.0, 40.0, 40.0, 40.0],
        rnd=[40.0, 38.0, 34.0, 32.0, 30.0, 30.0, 30.0, 30.0],
        ocf=[60.0, 55.0, 40.0, 35.0, 20.0, 20.0, 20.0, 20.0],
        capex=[15.0, 10.0, 10.0, 10.0, 5.0, 5.0, 5.0, 5.0],
        ebitda=[80.0, 70.0, 60.0, 55.0, 30.0, 30.0, 30.0, 30.0],
        net_income=[60.0, 55.0, 45.0, 40.0, 20.0, 20.0, 20.0, 20.0],
        diluted_shares=[101.0, 101.0, 100.0, 100.0, 100.0, 100.0, 100.0, 100.0],
    )
    assert result.total_score == result.base_points
    assert result.total_score >= 9
    assert result.rating == "excellent"
    assert result.red_flags == []


def test_score_counts_only_passing_rules():
    result = _score(revenue=[300.0] * 4 + [200.0] * 4, rnd=50.0)
    passes = [key for key, rule in result.rules.items() if rule.passed is True]
    assert result.total_score == len(passes)


def test_revenue_series_and_cagr_periods():
    result = _score(revenue=[8.0, 7.0, 6.0, 5.0, 4.0, 3.0, 2.0, 1.0])
    assert [p.revenue for p in result.quarterly_revenue] == [1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0]
    assert result.quarterly_revenue[-1].label == "2024Q4"
    assert result.cagr_detail.latest_periods == ["2024Q4", "2024Q3", "2024Q2", "2024Q1"]
    assert result.cagr_detail.previous_periods == ["2023Q4", "2023Q3", "2023Q2", "2023Q1"]


def test_result_serializes_pass_by_alias():
    dumped = _score(revenue=[300.0] * 4 + [200.0] * 4).model_dump(by_alias=True, mode="json")
    assert dumped["rules"]["1_growth_cagr"]["pass"] is True
    assert dumped["as_of"].startswith("2025-03-01")


def test_ps_ratio():
    result = _score(n=4, market_cap=1000.0, revenue=50.0)
    assert result.ps == pytest.approx(5.0)


def test_derive_metrics_is_none_safe():
    quarters = make_fundamentals(16).quarters
    m = derive_metrics(quarters, None)
    assert m.ev is None
    assert m.ps is None
    assert m.dilution_yoy is None
