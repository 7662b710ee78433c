"""Tests for the risk engine and its sub-analyses."""
from datetime import date

import pytest


def test_herfindahl_index_bounds():
    from dat_analytics.engines.risk.concentration import herfindahl_index

    assert herfindahl_index([1.0]) == pytest.approx(1.0)
    assert herfindahl_index([1 / 3] * 3) == pytest.approx(1 / 3)
    for weights in ([0.75, 0.25], [0.5, 0.3, 0.2], [0.9, 0.05, 0.03, 0.02]):
        hhi = herfindahl_index(weights)
        assert 1 / len(weights) - 1e-12 <= hhi <= 1.0


def test_concentration_of_default_treasury(make_company, prices):
    from dat_analytics.core.config import RiskPolicy
    from dat_analytics.engines.risk.concentration import assess_concentration
    from dat_analytics.engines.treasury_valuation import value_treasury

    company = make_company()
    risk = assess_concentration(value_treasury(company.treasury, prices), company.market_cap, RiskPolicy())

    assert risk.herfindahl_index == pytest.approx(0.625)
    assert risk.category == "Critical"
    assert risk.top_holding == "BTC"
    assert risk.top_holding_percent == pytest.approx(75.0)
    assert risk.diversification_ratio == pytest.approx(0.8)


def test_historical_var_ordering():
    from dat_analytics.engines.risk.var import historical_var

    returns = [float(r) for r in range(-50, 50)]

    var = historical_var(returns, market_cap=1_000_000)

    assert var.var95_daily == pytest.approx(-45.0)
    assert var.cvar95 == pytest.approx(-48.0)
    assert var.var99_daily == pytest.approx(-49.0)
    assert var.cvar99 == pytest.approx(-50.0)
    assert var.var99_daily <= var.var95_daily <= 0
    assert var.cvar95 <= var.var95_daily
    assert var.var95_market_value == pytest.approx(-450_000)


def test_var_is_never_positive():
    from dat_analytics.engines.risk.var import historical_var

    var = historical_var([1.0, 2.0, 3.0, 4.0])

    assert var.var95_daily == 0.0
    assert var.var99_daily == 0.0
    assert var.cvar95 <= 0


def test_max_drawdown_tracks_peak_trough_and_recovery():
    from dat_analytics.engines.risk.market import max_drawdown

    dates = [date(2026, 1, d) for d in range(1, 6)]

    drawdown = max_drawdown(dates, [100.0, 120.0, 90.0, 110.0, 125.0])

    assert drawdown.max_drawdown_percent == pytest.approx(-25.0)
    assert drawdown.peak_date == date(2026, 1, 2)
    assert drawdown.trough_date == date(2026, 1, 3)
    assert drawdown.duration_days == 1
    assert drawdown.recovery_date == date(2026, 1, 5)


def test_liquidity_ratios(make_company, prices):
    from dat_analytics.core.config import RiskPolicy
    from dat_analytics.engines.risk.liquidity import assess_liquidity
    from dat_analytics.engines.treasury_valuation import value_treasury

    company = make_company()

    liquidity = assess_liquidity(company, value_treasury(company.treasury, prices), RiskPolicy())

    assert liquidity.current_liabilities == pytest.approx(1_200_000_000)
    assert liquidity.current_assets == pytest.approx(205_000_000)
    assert liquidity.runway_months == pytest.approx(8.0)
    assert liquidity.stressed_runway_months == pytest.approx(40_000_000 / 15_000_000)
    assert liquidity.days_to_liquidate_25 == 13
    assert liquidity.days_to_liquidate_50 == 25
    assert liquidity.asset_liquidity_score == pytest.approx(92.5)


def test_stress_tests(make_company):
    from dat_analytics.core.config import RiskPolicy
    from dat_analytics.engines.risk.stress import run_stress_tests

    summary = run_stress_tests(make_company(), 80_000_000, RiskPolicy())

    assert [r.severity for r in summary.results] == ["Severe", "High", "Medium", "High", "Severe"]
    assert summary.worst_case == "Black Swan"
    assert summary.expected_loss == pytest.approx(80_000_000 * -0.295)
    # treasury covers 2% of debt
    assert summary.breaking_point_decline == 0.0


def test_stress_breaking_point_without_debt(make_company):
    from dat_analytics.core.config import RiskPolicy
    from dat_analytics.engines.risk.stress import run_stress_tests

    summary = run_stress_tests(make_company(total_debt=0), 80_000_000, RiskPolicy())

    assert summary.breaking_point_decline == 100.0


def test_stress_breaking_point_with_covered_debt(make_company):
    from dat_analytics.core.config import RiskPolicy
    from dat_analytics.engines.risk.stress import run_stress_tests

    summary = run_stress_tests(make_company(total_debt=40_000_000), 80_000_000, RiskPolicy())

    assert summary.breaking_point_decline == pytest.approx(50.0)


def test_assess_flags_insufficient_history(make_company, prices):
    from dat_analytics.engines.risk import RiskEngine

    assessment = RiskEngine().assess(make_company(), [], prices)

    assert "insufficient_history" in [i.code for i in assessment.issues]
    assert assessment.value_at_risk.observations == 0
    assert assessment.market.volatility.annualized == 0.0


def test_scorecard_composite_and_key_risks(make_company, make_history, prices):
    from dat_analytics.engines.risk import RiskEngine

    engine = RiskEngine()
    assessment = engine.assess(make_company(), make_history(), prices)
    card = assessment.scorecard

    expected = sum(card.scores[name] * w for name, w in engine.policy.score_weights.items())
    assert card.composite == pytest.approx(expected)
    assert card.scores["concentration"] == pytest.approx(62.5)
    assert "Concentrated treasury holdings" in card.key_risks
    assert "Liquidity constraints" in card.key_risks
    assert "Diversify treasury holdings across multiple assets" in card.mitigations
    assert all(0 <= s <= 100 for s in card.scores.values())
    assert assessment.issues == []


def test_regime_and_reference_correlations(make_company, make_history, prices):
    from dat_analytics.engines.risk import RiskEngine

    assessment = RiskEngine().assess(make_company(), make_history(), prices)
    corr = assessment.correlation

    assert corr.regime == "Neutral"
    assert corr.regime_probability == pytest.approx(0.5)
    assert corr.asset_correlations["BTC"]["ETH"] == pytest.approx(0.8)
    assert corr.asset_correlations["ETH"]["ETH"] == 1.0
    assert corr.average_asset_correlation == pytest.approx(0.8)


def test_credit_rating_from_z_score(make_company, prices):
    from dat_analytics.core.config import RiskPolicy
    from dat_analytics.engines.risk.credit import assess_credit, credit_rating

    policy = RiskPolicy()
    assert credit_rating(3.5, policy) == "BBB"
    assert credit_rating(2.7, policy) == "BB"
    assert credit_rating(2.0, policy) == "B"
    assert credit_rating(1.0, policy) == "CCC"

    credit = assess_credit(make_company(), 80_000_000, policy)
    assert credit.debt_to_equity == pytest.approx(2.0)
    assert credit.interest_expense == pytest.approx(200_000_000)
    assert 0 < credit.default_probability < 1
