"""Credit risk: leverage, coverage and a modified Altman Z-score."""
from dataclasses import dataclass

from dat_analytics.core.config import RiskPolicy
from dat_analytics.models import Company
from dat_analytics.engines.numeric import logistic, safe_divide


@dataclass(frozen=True)
class CreditRisk:
    debt_to_equity: float
    debt_to_treasury: float
    interest_expense: float
    interest_coverage: float
    debt_service_coverage: float
    altman_z_score: float
    credit_rating: str
    default_probability: float
    recovery_rate: float
    credit_spread_bps: float


def altman_z_score(company: Company, treasury_value: float, policy: RiskPolicy) -> float:
    """Five-ratio Z-score with treasury standing in for liquid assets.

    Z = 1.2 WC/TA + 1.4 RE/TA + 3.3 EBIT/TA + 0.6 MC/Debt + 1.0 Sales/TA
    """
    total_assets = treasury_value + company.shareholders_equity
    working_capital = treasury_value - company.total_debt * policy.current_liability_fraction
    retained_earnings = company.shareholders_equity * policy.retained_earnings_fraction
    ebit = company.business_model.operating_income
    sales = company.business_model.operating_revenue

    return (
        1.2 * safe_divide(working_capital, total_assets)
        + 1.4 * safe_divide(retained_earnings, total_assets)
        + 3.3 * safe_divide(ebit, total_assets)
        + 0.6 * safe_divide(company.market_cap, company.total_debt, policy.unbounded_ratio)
        + 1.0 * safe_divide(sales, total_assets)
    )


def credit_rating(z_score: float, policy: RiskPolicy) -> str:
    for threshold, rating in policy.credit_rating_bands:
        if z_score > threshold:
            return rating
    return policy.floor_credit_rating


def assess_credit(company: Company, treasury_value: float, policy: RiskPolicy) -> CreditRisk:
    cap = policy.unbounded_ratio
    debt = company.total_debt
    interest = debt * policy.interest_rate
    operating_income = company.business_model.operating_income

    z = altman_z_score(company, treasury_value, policy)
    default_probability = logistic(z - policy.default_probability_midpoint)
    recovery = min(policy.max_recovery_rate, safe_divide(treasury_value, debt, policy.max_recovery_rate))

    return CreditRisk(
        debt_to_equity=safe_divide(debt, company.shareholders_equity),
        debt_to_treasury=safe_divide(debt, treasury_value),
        interest_expense=interest,
        interest_coverage=safe_divide(operating_income, interest, cap),
        debt_service_coverage=safe_divide(
            operating_income + treasury_value * policy.treasury_income_yield, interest, cap
        ),
        altman_z_score=z,
        credit_rating=credit_rating(z, policy),
        default_probability=default_probability,
        recovery_rate=recovery,
        credit_spread_bps=default_probability * 10000 * (1 - recovery),
    )
