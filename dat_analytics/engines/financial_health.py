"""Financial health scoring.

Five sub-scores built from bucketed ratio thresholds, combined into a
weighted composite, a letter grade and an outlook.
"""
import logging
from dataclasses import dataclass

from dat_analytics.core.config import HealthPolicy, RiskPolicy
from dat_analytics.models import CalculatedMetrics, Company, HistoricalDataPoint
from dat_analytics.engines.nav import NAVCalculation
from dat_analytics.engines.numeric import percent_change, points_at_least, points_below, safe_divide
from dat_analytics.engines.risk import RiskAssessment

logger = logging.getLogger(__name__)

STRENGTH_MESSAGES = {
    "liquidity": "Strong liquidity position with ample cash reserves",
    "solvency": "Low leverage and strong debt coverage",
    "efficiency": "Excellent operational efficiency and capital allocation",
    "growth": "Strong growth trajectory with controlled dilution",
    "treasury": "High-quality, diversified treasury portfolio",
}

WEAKNESS_MESSAGES = {
    "liquidity": "Weak liquidity may pose short-term funding risks",
    "solvency": "High debt levels create solvency concerns",
    "efficiency": "Poor operational efficiency impacts returns",
    "growth": "Limited growth potential or excessive dilution",
    "treasury": "Treasury concentration or quality concerns",
}

BALANCE_RATINGS = ("Strong", "Adequate", "Weak", "Critical")
QUALITY_RATINGS = ("Excellent", "Good", "Fair", "Poor")
GROWTH_RATINGS = ("High", "Moderate", "Low", "Negative")


@dataclass(frozen=True)
class LiquidityHealth:
    score: float
    rating: str
    current_ratio: float
    quick_ratio: float
    cash_ratio: float
    working_capital: float


@dataclass(frozen=True)
class SolvencyHealth:
    score: float
    rating: str
    debt_to_equity: float
    debt_to_assets: float
    interest_coverage: float
    leverage_ratio: float


@dataclass(frozen=True)
class EfficiencyHealth:
    score: float
    rating: str
    asset_turnover: float
    capital_allocation_score: float
    operating_margin: float
    return_on_assets: float
    return_on_equity: float


@dataclass(frozen=True)
class GrowthHealth:
    score: float
    rating: str
    treasury_growth: float
    share_count_growth: float
    nav_growth: float
    sustainable_growth_rate: float


@dataclass(frozen=True)
class TreasuryHealth:
    score: float
    rating: str
    treasury_to_market_cap: float
    treasury_to_debt: float
    diversification: float  # (1 - HHI) x 100
    quality: float  # value-weighted liquidity score
    treasury_roi: float


@dataclass(frozen=True)
class EsgScore:
    environmental: float
    social: float
    governance: float
    overall: float
    carbon_footprint: str  # Low, Medium, High
    social_impact: str  # Positive, Neutral, Negative
    governance_quality: str  # Strong, Adequate, Weak


@dataclass(frozen=True)
class FinancialHealth:
    ticker: str
    overall_score: float
    grade: str
    outlook: str  # Positive, Stable, Negative
    liquidity: LiquidityHealth
    solvency: SolvencyHealth
    efficiency: EfficiencyHealth
    growth: GrowthHealth
    treasury: TreasuryHealth
    esg: EsgScore
    strengths: list[str]
    weaknesses: list[str]
    recommendations: list[str]


class FinancialHealthEngine:
    """Grades a company's balance sheet, efficiency, growth and treasury."""

    name = "financial_health"

    def __init__(self, policy: HealthPolicy | None = None, risk_policy: RiskPolicy | None = None):
        self.policy = policy or HealthPolicy()
        self.risk_policy = risk_policy or RiskPolicy()

    def _rating(self, score: float, labels: tuple[str, str, str, str]) -> str:
        for cutpoint, label in zip(self.policy.rating_cutpoints, labels):
            if score >= cutpoint:
                return label
        return labels[-1]

    def grade(self, score: float) -> str:
        for cutpoint, grade in self.policy.grade_cutpoints:
            if score >= cutpoint:
                return grade
        return self.policy.floor_grade

    # =========================================================================
    # Sub-scores
    # =========================================================================

    def score_liquidity(self, risk: RiskAssessment, treasury_value: float) -> LiquidityHealth:
        p = self.policy
        liq = risk.liquidity
        score = (
            points_at_least(liq.current_ratio, p.current_ratio)
            + points_at_least(liq.quick_ratio, p.quick_ratio)
            + points_at_least(liq.cash_ratio, p.cash_ratio)
        )
        if liq.working_capital > 0:
            score += p.working_capital_points
        elif liq.working_capital > -p.near_working_capital_fraction * treasury_value:
            score += p.near_working_capital_points
        score = min(100.0, score)
        return LiquidityHealth(
            score=score,
            rating=self._rating(score, BALANCE_RATINGS),
            current_ratio=liq.current_ratio,
            quick_ratio=liq.quick_ratio,
            cash_ratio=liq.cash_ratio,
            working_capital=liq.working_capital,
        )

    def score_solvency(self, company: Company, risk: RiskAssessment, treasury_value: float) -> SolvencyHealth:
        p = self.policy
        cap = self.risk_policy.unbounded_ratio
        debt = company.total_debt
        equity = company.shareholders_equity
        total_assets = treasury_value + equity

        if equity > 0:
            debt_to_equity = debt / equity
            leverage = total_assets / equity
        else:
            debt_to_equity = cap if debt > 0 else 0.0
            leverage = cap
        debt_to_assets = safe_divide(debt, total_assets, 1.0 if debt > 0 else 0.0)

        score = min(100.0, (
            points_below(debt_to_equity, p.debt_to_equity)
            + points_below(debt_to_assets, p.debt_to_assets)
            + points_at_least(risk.credit.interest_coverage, p.interest_coverage)
            + points_below(leverage, p.leverage)
        ))
        return SolvencyHealth(
            score=score,
            rating=self._rating(score, BALANCE_RATINGS),
            debt_to_equity=debt_to_equity,
            debt_to_assets=debt_to_assets,
            interest_coverage=risk.credit.interest_coverage,
            leverage_ratio=leverage,
        )

    def score_efficiency(
        self, company: Company, metrics: CalculatedMetrics, treasury_value: float
    ) -> EfficiencyHealth:
        p = self.policy
        model = company.business_model
        operating_income = model.operating_income
        total_assets = treasury_value + company.shareholders_equity

        turnover = metrics.capital_efficiency.asset_turnover
        allocation = metrics.capital_efficiency.capital_allocation_score
        margin = safe_divide(operating_income, model.operating_revenue)
        roa = safe_divide(operating_income, total_assets)
        roe = safe_divide(operating_income, company.shareholders_equity)

        score = min(100.0, (
            points_at_least(turnover, p.asset_turnover)
            + allocation * p.capital_allocation_weight
            + points_at_least(margin, p.operating_margin)
            + points_at_least(roa, p.return_on_assets)
            + points_at_least(roe, p.return_on_equity)
        ))
        return EfficiencyHealth(
            score=score,
            rating=self._rating(score, QUALITY_RATINGS),
            asset_turnover=turnover,
            capital_allocation_score=allocation,
            operating_margin=margin,
            return_on_assets=roa,
            return_on_equity=roe,
        )

    def score_growth(
        self,
        company: Company,
        metrics: CalculatedMetrics,
        history: list[HistoricalDataPoint],
    ) -> GrowthHealth:
        p = self.policy
        treasury_growth = metrics.dilution.treasury_accretion_rate
        share_growth = metrics.dilution.share_count_growth

        ordered = sorted(history, key=lambda pt: pt.date)
        if len(ordered) >= 2 and ordered[0].nav_per_share > 0:
            nav_growth = percent_change(ordered[-1].nav_per_share, ordered[0].nav_per_share)
        else:
            nav_growth = treasury_growth * p.nav_growth_treasury_fraction

        roe = safe_divide(company.business_model.operating_income, company.shareholders_equity)
        sustainable = roe * p.retention_ratio * 100

        score = min(100.0, (
            points_at_least(treasury_growth, p.treasury_growth)
            + points_below(share_growth, p.share_count_growth)
            + points_at_least(nav_growth, p.nav_growth)
            + points_at_least(sustainable, p.sustainable_growth)
        ))
        return GrowthHealth(
            score=score,
            rating=self._rating(score, GROWTH_RATINGS),
            treasury_growth=treasury_growth,
            share_count_growth=share_growth,
            nav_growth=nav_growth,
            sustainable_growth_rate=sustainable,
        )

    def score_treasury(
        self, company: Company, metrics: CalculatedMetrics, risk: RiskAssessment, treasury_value: float
    ) -> TreasuryHealth:
        p = self.policy
        to_market_cap = safe_divide(treasury_value, company.market_cap)
        to_debt = safe_divide(treasury_value, company.total_debt, self.risk_policy.unbounded_ratio)
        diversification = (1 - risk.concentration.herfindahl_index) * 100 if risk.concentration.asset_count else 0.0
        quality = risk.liquidity.asset_liquidity_score
        roi = metrics.capital_efficiency.treasury_roi

        score = min(100.0, (
            points_at_least(to_market_cap, p.treasury_to_market_cap)
            + points_at_least(to_debt, p.treasury_to_debt)
            + diversification * p.diversification_weight
            + quality * p.quality_weight
            + points_at_least(roi, p.treasury_roi)
        ))
        return TreasuryHealth(
            score=score,
            rating=self._rating(score, QUALITY_RATINGS),
            treasury_to_market_cap=to_market_cap,
            treasury_to_debt=to_debt,
            diversification=diversification,
            quality=quality,
            treasury_roi=roi,
        )

    def score_esg(self, company: Company) -> EsgScore:
        """Environmental, social and governance scores on a 0-100 scale.

        Environmental adjusts a base score once per asset held. Social depends
        on whether the company is a pure treasury vehicle. Governance rewards
        board independence and penalises a founder CEO.
        """
        p = self.policy
        held = {h.crypto for h in company.treasury}
        environmental = p.esg_environmental_base + sum(
            adjustment for symbol, adjustment in p.esg_asset_adjustments.items() if symbol in held
        )

        social = p.esg_social_treasury_focused if company.business_model.is_treasury_focused else p.esg_social_operating

        board = company.governance
        independence = safe_divide(board.independent_directors, board.board_size)
        founder = -p.esg_founder_ceo_adjustment if board.ceo_founder else p.esg_founder_ceo_adjustment
        governance = p.esg_governance_base + independence * p.esg_independence_points + founder

        return EsgScore(
            environmental=environmental,
            social=social,
            governance=governance,
            overall=(environmental + social + governance) / 3,
            carbon_footprint="Low" if environmental > 70 else "Medium" if environmental > 50 else "High",
            social_impact="Positive" if social > 60 else "Neutral" if social > 40 else "Negative",
            governance_quality="Strong" if governance > 70 else "Adequate" if governance > 50 else "Weak",
        )

    # =========================================================================
    # Composite
    # =========================================================================

    @staticmethod
    def outlook(growth: GrowthHealth, solvency: SolvencyHealth, overall_score: float) -> str:
        if growth.rating == "High" and solvency.rating != "Critical":
            return "Positive"
        if growth.rating == "Negative" or solvency.rating == "Critical":
            return "Negative"
        if overall_score >= 70:
            return "Positive"
        if overall_score < 50:
            return "Negative"
        return "Stable"

    def evaluate(
        self,
        company: Company,
        nav: NAVCalculation,
        risk: RiskAssessment,
        metrics: CalculatedMetrics,
        history: list[HistoricalDataPoint],
    ) -> FinancialHealth:
        """Grade a company from its NAV, risk and institutional metrics.

        Args:
            company: Company snapshot
            nav: NAV calculation
            risk: Risk assessment
            metrics: Institutional metrics
            history: Historical snapshots for NAV growth

        Returns:
            FinancialHealth
        """
        p = self.policy
        treasury_value = nav.treasury_value

        components = {
            "liquidity": self.score_liquidity(risk, treasury_value),
            "solvency": self.score_solvency(company, risk, treasury_value),
            "efficiency": self.score_efficiency(company, metrics, treasury_value),
            "growth": self.score_growth(company, metrics, history),
            "treasury": self.score_treasury(company, metrics, risk, treasury_value),
        }
        overall = sum(components[name].score * weight for name, weight in p.weights.items())

        logger.debug(
            "DECISION: Health sub-scores",
            extra={
                "extra_data": {
                    "action": "health_scores",
                    "ticker": company.ticker,
                    "scores": {name: round(c.score, 4) for name, c in components.items()},
                    "overall": round(overall, 4),
                }
            },
        )

        strengths = [
            STRENGTH_MESSAGES[name] for name, c in components.items() if c.score >= p.strength_threshold
        ]
        weaknesses = [
            WEAKNESS_MESSAGES[name] for name, c in components.items() if c.score < p.weakness_threshold
        ]

        recommendations = []
        if components["liquidity"].score < 60:
            recommendations.append("Improve liquidity by reducing short-term debt or liquidating non-core assets")
        if components["solvency"].debt_to_equity > 1.5:
            recommendations.append("Consider debt reduction through equity raises or asset sales")
        if components["efficiency"].operating_margin < 0:
            recommendations.append("Focus on achieving operational profitability through cost reduction")
        if components["growth"].share_count_growth > 20:
            recommendations.append("Implement more disciplined capital allocation to reduce dilution")
        if components["treasury"].diversification < 50:
            recommendations.append("Diversify treasury holdings to reduce concentration risk")
        if len(weaknesses) > 2:
            recommendations.append("Develop comprehensive turnaround plan addressing multiple weaknesses")

        result = FinancialHealth(
            ticker=company.ticker,
            overall_score=overall,
            grade=self.grade(overall),
            outlook=self.outlook(components["growth"], components["solvency"], overall),
            liquidity=components["liquidity"],
            solvency=components["solvency"],
            efficiency=components["efficiency"],
            growth=components["growth"],
            treasury=components["treasury"],
            esg=self.score_esg(company),
            strengths=strengths,
            weaknesses=weaknesses,
            recommendations=recommendations,
        )

        logger.info(f"Financial health {company.ticker}: {result.grade} ({overall:.1f}), outlook {result.outlook}")
        return result
