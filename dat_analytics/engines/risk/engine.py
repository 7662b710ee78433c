"""Risk engine composing the market, balance-sheet and scenario sub-analyses."""
import logging
from dataclasses import dataclass, field
from typing import Mapping

from dat_analytics.core.config import RiskPolicy
from dat_analytics.models import Company, DataQualityIssue, HistoricalDataPoint
from dat_analytics.engines.numeric import percent_returns
from dat_analytics.engines.treasury_valuation import value_treasury
from dat_analytics.engines.risk.concentration import ConcentrationRisk, assess_concentration
from dat_analytics.engines.risk.correlation import CorrelationRegime, assess_correlation
from dat_analytics.engines.risk.credit import CreditRisk, assess_credit
from dat_analytics.engines.risk.liquidity import LiquidityRisk, assess_liquidity
from dat_analytics.engines.risk.market import MarketRisk, assess_market_risk
from dat_analytics.engines.risk.operational import OperationalRisk, assess_operational
from dat_analytics.engines.risk.stress import StressTestSummary, run_stress_tests
from dat_analytics.engines.risk.var import ValueAtRisk, historical_var

logger = logging.getLogger(__name__)

KEY_RISK_LABELS = {
    "market": "High market volatility",
    "concentration": "Concentrated treasury holdings",
    "liquidity": "Liquidity constraints",
    "credit": "Elevated credit risk",
    "operational": "Operational vulnerabilities",
}

MITIGATIONS = {
    "market": "Consider hedging strategies to reduce volatility exposure",
    "concentration": "Diversify treasury holdings across multiple assets",
    "liquidity": "Improve liquidity ratios through debt reduction or asset sales",
    "credit": "Refinance high-cost debt or improve interest coverage",
}


@dataclass(frozen=True)
class RiskScorecard:
    """Sub-scores and composite on a 0-100 scale; higher is riskier."""

    scores: dict[str, float]
    composite: float
    level: str  # Low, Medium, High, Critical
    key_risks: list[str]
    mitigations: list[str]


@dataclass(frozen=True)
class RiskAssessment:
    ticker: str
    market: MarketRisk
    concentration: ConcentrationRisk
    liquidity: LiquidityRisk
    credit: CreditRisk
    operational: OperationalRisk
    correlation: CorrelationRegime
    value_at_risk: ValueAtRisk
    stress_tests: StressTestSummary
    scorecard: RiskScorecard
    issues: list[DataQualityIssue] = field(default_factory=list)


def risk_level(score: float, bands: list[float]) -> str:
    low, medium, high = bands
    if score < low:
        return "Low"
    if score < medium:
        return "Medium"
    if score < high:
        return "High"
    return "Critical"


class RiskEngine:
    """Stateless multi-factor risk assessment."""

    name = "risk"

    def __init__(self, policy: RiskPolicy | None = None, missing_price_policy: str = "exclude"):
        self.policy = policy or RiskPolicy()
        self.missing_price_policy = missing_price_policy

    def build_scorecard(
        self,
        market: MarketRisk,
        concentration: ConcentrationRisk,
        liquidity: LiquidityRisk,
        credit: CreditRisk,
        operational: OperationalRisk,
    ) -> RiskScorecard:
        p = self.policy
        scores = {
            "market": min(100.0, market.volatility.annualized * p.market_score_factor),
            "concentration": concentration.herfindahl_index * 100,
            "liquidity": max(0.0, 100 - liquidity.current_ratio * p.liquidity_score_factor),
            "credit": credit.default_probability * 100,
            "operational": operational.score,
        }
        composite = sum(scores[name] * weight for name, weight in p.score_weights.items())
        elevated = [name for name, score in scores.items() if score > p.key_risk_threshold]

        return RiskScorecard(
            scores=scores,
            composite=composite,
            level=risk_level(composite, p.score_bands),
            key_risks=[KEY_RISK_LABELS[name] for name in elevated],
            mitigations=[MITIGATIONS[name] for name in elevated if name in MITIGATIONS],
        )

    def assess(
        self,
        company: Company,
        history: list[HistoricalDataPoint],
        prices: Mapping[str, float],
    ) -> RiskAssessment:
        """Assess every risk dimension for one company.

        Args:
            company: Company snapshot
            history: Historical snapshots (any order)
            prices: Current crypto prices by symbol

        Returns:
            RiskAssessment
        """
        p = self.policy
        issues: list[DataQualityIssue] = []

        logger.debug(
            "ENTER: RiskEngine.assess",
            extra={"extra_data": {"action": "risk_enter", "ticker": company.ticker, "history_points": len(history)}},
        )

        treasury = value_treasury(company.treasury, prices, self.missing_price_policy)
        issues.extend(treasury.issues)

        ordered = sorted(history, key=lambda pt: pt.date)
        returns = percent_returns([pt.stock_price for pt in ordered])
        if len(returns) < 2:
            issues.append(DataQualityIssue(
                code="insufficient_history",
                subject=company.ticker,
                message=f"{len(returns)} daily returns; market risk and VaR default to zero",
            ))

        # Sub-analyses are independent of each other
        market = assess_market_risk(ordered, p)
        concentration = assess_concentration(treasury, company.market_cap, p)
        liquidity = assess_liquidity(company, treasury, p)
        credit = assess_credit(company, treasury.total_value, p)
        operational = assess_operational(company, p)
        correlation = assess_correlation([m.symbol for m in treasury.marks], ordered, returns, p)
        var = historical_var(returns, company.market_cap)
        stress = run_stress_tests(company, treasury.total_value, p)

        scorecard = self.build_scorecard(market, concentration, liquidity, credit, operational)

        logger.debug(
            "DECISION: Risk scorecard",
            extra={
                "extra_data": {
                    "action": "risk_scorecard",
                    "scores": {k: round(v, 4) for k, v in scorecard.scores.items()},
                    "composite": round(scorecard.composite, 4),
                    "level": scorecard.level,
                }
            },
        )
        logger.info(
            f"Risk {company.ticker}: {scorecard.level} ({scorecard.composite:.1f}), "
            f"HHI {concentration.herfindahl_index:.3f}, rating {credit.credit_rating}, regime {correlation.regime}"
        )

        return RiskAssessment(
            ticker=company.ticker,
            market=market,
            concentration=concentration,
            liquidity=liquidity,
            credit=credit,
            operational=operational,
            correlation=correlation,
            value_at_risk=var,
            stress_tests=stress,
            scorecard=scorecard,
            issues=issues,
        )
