"""Institutional metrics assembled from the engine outputs."""
import logging

from dat_analytics.core.config import MetricsPolicy
from dat_analytics.models import (
    CalculatedMetrics,
    CapitalEfficiency,
    Company,
    DilutionMetrics,
    HistoricalDataPoint,
    OperationalMetrics,
    RiskMetrics,
)
from dat_analytics.engines.crypto_yield import CryptoYieldResult
from dat_analytics.engines.dilution import DilutionAnalysis
from dat_analytics.engines.nav import NAVCalculation
from dat_analytics.engines.numeric import clamp, mean, percent_change, safe_divide
from dat_analytics.engines.risk import RiskAssessment

logger = logging.getLogger(__name__)


def history_growth(history: list[HistoricalDataPoint]) -> tuple[float, float]:
    """Percent growth of (shares outstanding, treasury value) across the history."""
    ordered = sorted(history, key=lambda p: p.date)
    if len(ordered) < 2:
        return 0.0, 0.0
    first, last = ordered[0], ordered[-1]
    return (
        percent_change(last.shares_outstanding, first.shares_outstanding),
        percent_change(last.treasury_value, first.treasury_value),
    )


def build_calculated_metrics(
    company: Company,
    nav: NAVCalculation,
    crypto_yield: CryptoYieldResult,
    dilution: DilutionAnalysis,
    risk: RiskAssessment,
    history: list[HistoricalDataPoint],
    policy: MetricsPolicy | None = None,
    methodology_version: str = "",
) -> CalculatedMetrics:
    """Assemble CalculatedMetrics; a deterministic function of its arguments."""
    policy = policy or MetricsPolicy()
    treasury_value = nav.treasury_value
    shares = nav.share_counts.assumed_diluted
    model = company.business_model

    share_growth, treasury_growth = history_growth(history)
    dilution_metrics = DilutionMetrics(
        current_dilution_percent=dilution.current.dilution_percent,
        share_count_growth=share_growth,
        treasury_accretion_rate=treasury_growth,
        dilution_adjusted_return=treasury_growth - share_growth,
    )

    risk_metrics = RiskMetrics(
        implied_volatility=risk.market.volatility.annualized,
        beta=risk.market.betas.get(policy.beta_reference, 0.0),
        treasury_concentration=risk.concentration.herfindahl_index * 100,
        liquidity_risk=safe_divide(company.total_debt, treasury_value) * 100,
        debt_service_coverage=risk.credit.debt_service_coverage,
        risk_score=risk.scorecard.composite,
    )

    coupons = [
        n.interest_rate * 100 for n in company.capital_structure.convertible_debt if n.is_outstanding
    ]
    treasury_roi = percent_change(treasury_value, nav.treasury.total_cost)
    cost_of_capital = mean(coupons) + policy.cost_of_capital_premium
    capital_efficiency = CapitalEfficiency(
        treasury_roi=treasury_roi,
        cost_of_capital=cost_of_capital,
        capital_allocation_score=clamp(treasury_roi - cost_of_capital + policy.allocation_score_base, 0, 100),
        asset_turnover=safe_divide(model.operating_revenue, treasury_value + company.shareholders_equity),
    )

    operational = OperationalMetrics(
        revenue_diversification=min(100.0, len(model.revenue_streams) * policy.revenue_stream_points),
        operating_leverage=safe_divide(model.operating_expenses, model.operating_revenue),
        treasury_focus_ratio=safe_divide(treasury_value, company.market_cap),
        cash_burn_coverage=risk.liquidity.runway_months,
    )

    yields = {a.symbol: a.yield_percent for a in crypto_yield.assets}
    yields["total"] = crypto_yield.total_yield_percent

    metrics = CalculatedMetrics(
        ticker=company.ticker,
        methodology_version=methodology_version,
        treasury_value=treasury_value,
        treasury_value_per_share=safe_divide(treasury_value, shares),
        nav_per_share=nav.assumed_diluted.nav_per_share,
        stock_price=nav.stock_price,
        premium_to_nav=nav.assumed_diluted.premium,
        premium_to_nav_percent=nav.assumed_diluted.premium_percent,
        debt_to_treasury_ratio=safe_divide(company.total_debt, treasury_value),
        treasury_concentration={m.symbol: m.weight * 100 for m in nav.treasury.marks},
        crypto_yield=yields,
        dilution=dilution_metrics,
        risk=risk_metrics,
        capital_efficiency=capital_efficiency,
        operational=operational,
        market_cap=company.market_cap,
        total_debt=company.total_debt,
    )

    logger.debug(
        "EXIT: Built calculated metrics",
        extra={
            "extra_data": {
                "action": "calculated_metrics",
                "ticker": company.ticker,
                "nav_per_share": metrics.nav_per_share,
                "premium_to_nav_percent": metrics.premium_to_nav_percent,
                "risk_score": risk_metrics.risk_score,
            }
        },
    )
    return metrics
