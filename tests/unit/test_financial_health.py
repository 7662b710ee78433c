"""Tests for financial health scoring."""
import pytest


def evaluate(engine_outputs, company, prices, history):
    from dat_analytics.engines.financial_health import FinancialHealthEngine

    out = engine_outputs(company, prices, history)
    engine = FinancialHealthEngine()
    return engine, engine.evaluate(company, out["nav"], out["risk"], out["metrics"], history)


@pytest.mark.parametrize(
    "score, grade",
    [(95, "A+"), (87, "A"), (83.5, "A-"), (70, "B-"), (60, "C-"), (55, "D"), (49.9, "F")],
)
def test_grade_cutpoints(score, grade):
    from dat_analytics.engines.financial_health import FinancialHealthEngine

    assert FinancialHealthEngine().grade(score) == grade


def test_outlook_rules():
    from dat_analytics.engines.financial_health import FinancialHealthEngine, GrowthHealth, SolvencyHealth

    def growth(rating):
        return GrowthHealth(score=0, rating=rating, treasury_growth=0, share_count_growth=0,
                            nav_growth=0, sustainable_growth_rate=0)

    def solvency(rating):
        return SolvencyHealth(score=0, rating=rating, debt_to_equity=0, debt_to_assets=0,
                              interest_coverage=0, leverage_ratio=0)

    outlook = FinancialHealthEngine.outlook
    assert outlook(growth("High"), solvency("Weak"), 10) == "Positive"
    assert outlook(growth("High"), solvency("Critical"), 90) == "Negative"
    assert outlook(growth("Negative"), solvency("Strong"), 90) == "Negative"
    assert outlook(growth("Moderate"), solvency("Strong"), 75) == "Positive"
    assert outlook(growth("Moderate"), solvency("Strong"), 45) == "Negative"
    assert outlook(growth("Low"), solvency("Adequate"), 60) == "Stable"


def test_leveraged_company_scores(engine_outputs, make_company, make_history, prices):
    company = make_company()

    engine, health = evaluate(engine_outputs, company, prices, make_history())

    weights = engine.policy.weights
    expected = sum(getattr(health, name).score * w for name, w in weights.items())
    assert health.overall_score == pytest.approx(expected)
    assert health.grade == engine.grade(health.overall_score)

    # treasury covers a fraction of short-term liabilities
    assert health.liquidity.score == 0
    assert health.liquidity.rating == "Critical"
    assert health.solvency.debt_to_equity == pytest.approx(2.0)
    assert health.solvency.leverage_ratio == pytest.approx(1.04)
    assert health.solvency.score == pytest.approx(25.0)
    assert health.treasury.diversification == pytest.approx(37.5)
    assert health.treasury.quality == pytest.approx(92.5)
    assert health.outlook == "Negative"


def test_recommendations_follow_weaknesses(engine_outputs, make_company, make_history, prices):
    _, health = evaluate(engine_outputs, make_company(), prices, make_history())

    assert "Weak liquidity may pose short-term funding risks" in health.weaknesses
    assert "High debt levels create solvency concerns" in health.weaknesses
    assert health.recommendations == [
        "Improve liquidity by reducing short-term debt or liquidating non-core assets",
        "Consider debt reduction through equity raises or asset sales",
        "Diversify treasury holdings to reduce concentration risk",
        "Develop comprehensive turnaround plan addressing multiple weaknesses",
    ]


def test_debt_free_company_is_solvent(engine_outputs, make_company, make_history, prices):
    company = make_company(total_debt=0)

    _, health = evaluate(engine_outputs, company, prices, make_history())

    assert health.solvency.debt_to_equity == 0
    assert health.solvency.debt_to_assets == 0
    assert health.solvency.score >= 75
    assert "Consider debt reduction through equity raises or asset sales" not in health.recommendations


def test_negative_equity_caps_ratios(engine_outputs, make_company, make_history, prices):
    company = make_company(shareholders_equity=-100_000_000)

    _, health = evaluate(engine_outputs, company, prices, make_history())

    assert health.solvency.debt_to_equity == 999.0
    assert health.solvency.leverage_ratio == 999.0


def test_nav_growth_falls_back_to_treasury_growth(engine_outputs, make_company, prices):
    from dat_analytics.engines.financial_health import FinancialHealthEngine

    company = make_company()
    out = engine_outputs(company, prices, [])

    growth = FinancialHealthEngine().score_growth(company, out["metrics"], [])

    assert growth.treasury_growth == 0
    assert growth.nav_growth == 0
    assert growth.sustainable_growth_rate == pytest.approx(50_000_000 / 2_000_000_000 * 0.8 * 100)


# =============================================================================
# ESG
# =============================================================================

def test_esg_reported_with_health(engine_outputs, make_company, make_history, prices):
    company = make_company()

    engine, health = evaluate(engine_outputs, company, prices, make_history())

    assert health.esg == engine.score_esg(company)
    # ESG stays out of the weighted composite
    assert "esg" not in engine.policy.weights


def test_esg_environmental_adjusts_per_asset_held(make_company):
    from dat_analytics.engines.financial_health import FinancialHealthEngine
    from dat_analytics.models import TreasuryHolding

    engine = FinancialHealthEngine()
    btc = TreasuryHolding(crypto="BTC", amount=10, average_cost_basis=30_000, total_cost=300_000)
    eth = TreasuryHolding(crypto="ETH", amount=10, average_cost_basis=2_000, total_cost=20_000)
    sol = TreasuryHolding(crypto="SOL", amount=10, average_cost_basis=100, total_cost=1_000)

    btc_only = engine.score_esg(make_company(treasury=[btc]))
    mixed = engine.score_esg(make_company(treasury=[btc, eth]))
    staked = engine.score_esg(make_company(treasury=[eth, sol]))

    assert btc_only.environmental == pytest.approx(44.0)
    assert btc_only.carbon_footprint == "High"
    assert mixed.environmental == pytest.approx(65.0)
    assert mixed.carbon_footprint == "Medium"
    assert staked.environmental == pytest.approx(83.0)
    assert staked.carbon_footprint == "Low"


def test_esg_social_depends_on_treasury_focus(make_company):
    from dat_analytics.core.config import HealthPolicy
    from dat_analytics.engines.financial_health import FinancialHealthEngine
    from dat_analytics.models import BusinessModel

    operating = make_company(business_model=BusinessModel(is_treasury_focused=False))

    assert FinancialHealthEngine().score_esg(make_company()).social == 50.0
    assert FinancialHealthEngine().score_esg(operating).social == 60.0
    assert FinancialHealthEngine().score_esg(operating).social_impact == "Neutral"

    generous = FinancialHealthEngine(policy=HealthPolicy(esg_social_operating=65.0))
    assert generous.score_esg(operating).social_impact == "Positive"


def test_esg_governance_rewards_independence(make_company):
    from dat_analytics.engines.financial_health import FinancialHealthEngine
    from dat_analytics.models import Governance

    engine = FinancialHealthEngine()

    founder_led = engine.score_esg(make_company(
        governance=Governance(board_size=7, independent_directors=4, ceo_founder=True)
    ))
    independent = engine.score_esg(make_company(
        governance=Governance(board_size=5, independent_directors=5, ceo_founder=False)
    ))
    no_board = engine.score_esg(make_company())

    assert founder_led.governance == pytest.approx(40 + 4 / 7 * 40 - 10)
    assert founder_led.governance_quality == "Adequate"
    assert independent.governance == pytest.approx(90.0)
    assert independent.governance_quality == "Strong"
    assert no_board.governance == pytest.approx(50.0)
    assert no_board.governance_quality == "Weak"


def test_esg_overall_is_the_mean_of_components(make_company):
    from dat_analytics.engines.financial_health import FinancialHealthEngine

    esg = FinancialHealthEngine().score_esg(make_company())

    assert esg.overall == pytest.approx((esg.environmental + esg.social + esg.governance) / 3)
