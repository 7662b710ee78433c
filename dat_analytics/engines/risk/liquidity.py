"""Liquidity risk using treasury assets as the liquid proxy."""
import math
from dataclasses import dataclass

from dat_analytics.core.config import RiskPolicy
from dat_analytics.models import Company
from dat_analytics.engines.numeric import safe_divide
from dat_analytics.engines.treasury_valuation import TreasuryValuation


@dataclass(frozen=True)
class LiquidityRisk:
    current_assets: float
    current_liabilities: float
    working_capital: float
    current_ratio: float
    quick_ratio: float
    cash_ratio: float
    runway_months: float
    stressed_runway_months: float
    days_to_liquidate_25: int
    days_to_liquidate_50: int
    market_impact_bps: float
    asset_liquidity_score: float  # value-weighted, 0-100
    debt_maturity_profile: dict[str, float]


def days_to_liquidate(fraction: float, participation: float) -> int:
    """Trading days to sell ``fraction`` of the treasury at a fixed daily participation."""
    return math.ceil(round(safe_divide(fraction, participation), 9))


def assess_liquidity(company: Company, treasury: TreasuryValuation, policy: RiskPolicy) -> LiquidityRisk:
    cap = policy.unbounded_ratio
    treasury_value = treasury.total_value
    revenue = company.business_model.operating_revenue
    burn = company.business_model.cash_burn_rate

    current_liabilities = company.total_debt * policy.current_liability_fraction
    current_assets = treasury_value + revenue * policy.revenue_current_asset_fraction

    if burn > 0:
        runway = min(cap, treasury_value / burn)
        stressed = min(
            cap,
            treasury_value * policy.stressed_treasury_haircut / (burn * policy.stressed_burn_multiplier),
        )
    else:
        runway = stressed = cap

    return LiquidityRisk(
        current_assets=current_assets,
        current_liabilities=current_liabilities,
        working_capital=current_assets - current_liabilities,
        current_ratio=safe_divide(current_assets, current_liabilities, cap),
        quick_ratio=safe_divide(treasury_value, current_liabilities, cap),
        cash_ratio=safe_divide(treasury_value * policy.cash_ratio_haircut, current_liabilities, cap),
        runway_months=runway,
        stressed_runway_months=stressed,
        days_to_liquidate_25=days_to_liquidate(0.25, policy.max_daily_volume_participation),
        days_to_liquidate_50=days_to_liquidate(0.50, policy.max_daily_volume_participation),
        market_impact_bps=min(policy.max_market_impact_bps, treasury_value / policy.market_impact_divisor),
        asset_liquidity_score=sum(
            m.weight * policy.asset_liquidity_scores.get(m.symbol, policy.default_liquidity_score)
            for m in treasury.marks
        ),
        debt_maturity_profile={
            bucket: company.total_debt * share for bucket, share in policy.debt_maturity_profile.items()
        },
    )
