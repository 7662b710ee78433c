"""Derived metric models."""
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class NavPoint:
    """One row of the persisted NAV time series."""

    ticker: str
    timestamp: datetime
    nav: float
    nav_per_share: float  # assumed diluted
    premium_percent: float
    treasury_value: float
    shares_basic: float
    shares_assumed_diluted: float
    methodology_version: str = ""


@dataclass(frozen=True)
class DilutionMetrics:
    current_dilution_percent: float
    share_count_growth: float  # percent over the history window
    treasury_accretion_rate: float  # percent over the history window
    dilution_adjusted_return: float


@dataclass(frozen=True)
class RiskMetrics:
    implied_volatility: float  # annualized, percent
    beta: float
    treasury_concentration: float  # HHI x 100
    liquidity_risk: float  # debt / treasury, percent
    debt_service_coverage: float
    risk_score: float


@dataclass(frozen=True)
class CapitalEfficiency:
    treasury_roi: float  # percent
    cost_of_capital: float  # percent
    capital_allocation_score: float  # 0-100
    asset_turnover: float


@dataclass(frozen=True)
class OperationalMetrics:
    revenue_diversification: float
    operating_leverage: float
    treasury_focus_ratio: float
    cash_burn_coverage: float  # months


@dataclass(frozen=True)
class CalculatedMetrics:
    """Institutional metrics for one company.

    A pure function of its inputs; safe to cache by ticker and price snapshot,
    never persisted.
    """

    ticker: str
    methodology_version: str
    treasury_value: float
    treasury_value_per_share: float
    nav_per_share: float
    stock_price: float
    premium_to_nav: float
    premium_to_nav_percent: float
    debt_to_treasury_ratio: float
    treasury_concentration: dict[str, float]  # percent of treasury by asset
    crypto_yield: dict[str, float]  # per asset plus "total"
    dilution: DilutionMetrics
    risk: RiskMetrics
    capital_efficiency: CapitalEfficiency
    operational: OperationalMetrics
    market_cap: float = 0.0
    total_debt: float = 0.0
