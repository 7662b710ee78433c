"""Net asset value engine.

NAV is treasury value plus adjusted shareholders' equity. It is one number
across share conventions; only the per-share divisor changes.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping

from dat_analytics.core.config import NavPolicy
from dat_analytics.models import Company, DataQualityIssue, NavPoint
from dat_analytics.engines.capital_structure import ShareConvention, ShareCounts, resolve_share_counts
from dat_analytics.engines.numeric import percent_change, safe_divide
from dat_analytics.engines.treasury_valuation import TreasuryValuation, value_treasury

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NavComponents:
    treasury_value: float
    shareholders_equity: float
    estimated_intangibles: float
    deferred_tax_assets: float
    adjusted_equity: float
    working_capital: float
    net_cash: float
    operating_assets: float


@dataclass(frozen=True)
class NavPerShare:
    convention: ShareConvention
    shares: float
    nav_per_share: float
    premium: float  # stock price minus NAV per share
    premium_percent: float


@dataclass(frozen=True)
class NAVCalculation:
    """NAV for one company at one timestamp."""

    ticker: str
    timestamp: datetime
    stock_price: float
    nav: float
    components: NavComponents
    basic: NavPerShare
    diluted: NavPerShare
    assumed_diluted: NavPerShare
    share_counts: ShareCounts
    treasury: TreasuryValuation
    methodology_version: str = ""
    issues: list[DataQualityIssue] = field(default_factory=list)

    @property
    def treasury_value(self) -> float:
        return self.components.treasury_value

    def per_share(self, convention: ShareConvention) -> NavPerShare:
        if convention is ShareConvention.BASIC:
            return self.basic
        if convention is ShareConvention.DILUTED:
            return self.diluted
        return self.assumed_diluted


@dataclass(frozen=True)
class PriceScenario:
    """Named set of asset prices; assets not listed keep their current price."""

    name: str
    prices: dict[str, float]
    probability: float | None = None


@dataclass(frozen=True)
class NavProjection:
    scenario: str
    probability: float
    projected_treasury_value: float
    projected_nav: float
    projected_nav_per_share: float
    treasury_change_percent: float
    estimated_stock_price: float
    projected_premium_percent: float
    time_horizon: str


@dataclass(frozen=True)
class NavAttribution:
    """NAV per share change between two stored points."""

    start: datetime
    end: datetime
    total_nav_change: float
    treasury_contribution: float
    dilution_impact: float
    other_factors: float


def adjusted_equity(company: Company, policy: NavPolicy) -> float:
    """Equity less estimated intangibles plus estimated deferred-tax assets."""
    intangibles = company.shareholders_equity * policy.intangibles_fraction
    deferred_tax = company.total_debt * policy.deferred_tax_fraction
    return company.shareholders_equity - intangibles + deferred_tax


def net_asset_value(company: Company, treasury_value: float, policy: NavPolicy) -> float:
    return treasury_value + adjusted_equity(company, policy)


def _per_share(convention: ShareConvention, nav: float, shares: float, stock_price: float) -> NavPerShare:
    nav_per_share = safe_divide(nav, shares)
    premium = stock_price - nav_per_share
    return NavPerShare(
        convention=convention,
        shares=shares,
        nav_per_share=nav_per_share,
        premium=premium,
        premium_percent=safe_divide(premium, nav_per_share) * 100,
    )


class NavEngine:
    """Calculates NAV, premium to NAV, projections and attribution."""

    name = "nav"

    def __init__(
        self,
        policy: NavPolicy | None = None,
        missing_price_policy: str = "exclude",
        methodology_version: str = "",
    ):
        self.policy = policy or NavPolicy()
        self.missing_price_policy = missing_price_policy
        self.methodology_version = methodology_version

    def calculate(
        self,
        company: Company,
        prices: Mapping[str, float],
        stock_price: float,
        as_of: datetime,
    ) -> NAVCalculation:
        """Calculate NAV and premium for every share convention.

        Args:
            company: Company snapshot
            prices: Current crypto prices by symbol
            stock_price: Current share price
            as_of: Timestamp stamped on the result and its NAV point

        Returns:
            NAVCalculation
        """
        logger.debug(
            "ENTER: NavEngine.calculate",
            extra={"extra_data": {"action": "nav_enter", "ticker": company.ticker, "stock_price": stock_price}},
        )

        # Step 1: treasury and share counts
        treasury = value_treasury(company.treasury, prices, self.missing_price_policy)
        shares = resolve_share_counts(company.capital_structure)

        # Step 2: adjusted equity
        policy = self.policy
        equity = company.shareholders_equity
        intangibles = equity * policy.intangibles_fraction
        deferred_tax = company.total_debt * policy.deferred_tax_fraction
        adj_equity = adjusted_equity(company, policy)
        components = NavComponents(
            treasury_value=treasury.total_value,
            shareholders_equity=equity,
            estimated_intangibles=intangibles,
            deferred_tax_assets=deferred_tax,
            adjusted_equity=adj_equity,
            working_capital=company.business_model.operating_revenue * policy.working_capital_revenue_fraction,
            net_cash=max(0.0, equity * policy.net_cash_equity_fraction - company.total_debt),
            operating_assets=company.business_model.legacy_business_value,
        )

        # Step 3: one NAV, three divisors
        nav = treasury.total_value + adj_equity
        result = NAVCalculation(
            ticker=company.ticker,
            timestamp=as_of,
            stock_price=stock_price,
            nav=nav,
            components=components,
            basic=_per_share(ShareConvention.BASIC, nav, shares.basic, stock_price),
            diluted=_per_share(ShareConvention.DILUTED, nav, shares.diluted, stock_price),
            assumed_diluted=_per_share(ShareConvention.ASSUMED_DILUTED, nav, shares.assumed_diluted, stock_price),
            share_counts=shares,
            treasury=treasury,
            methodology_version=self.methodology_version,
            issues=treasury.issues + shares.issues,
        )

        logger.info(
            f"NAV {company.ticker}: {nav:,.0f} total, "
            f"{result.assumed_diluted.nav_per_share:.2f}/share assumed diluted, "
            f"premium {result.assumed_diluted.premium_percent:.1f}%"
        )
        return result

    def _scenario_probability(self, scenario: PriceScenario) -> float:
        if scenario.probability is not None:
            return scenario.probability
        name = scenario.name.lower()
        for keyword, probability in self.policy.scenario_probabilities.items():
            if keyword in name:
                return probability
        return self.policy.default_scenario_probability

    def project(self, calculation: NAVCalculation, scenarios: list[PriceScenario]) -> list[NavProjection]:
        """Recompute NAV per share under price scenarios.

        The implied stock move is the treasury percentage change times the
        leverage multiplier, an explicit approximation.
        """
        current_treasury = calculation.treasury_value
        adj_equity = calculation.components.adjusted_equity
        shares = calculation.share_counts.assumed_diluted

        projections = []
        for scenario in scenarios:
            projected_treasury = sum(
                m.amount * scenario.prices.get(m.symbol, m.price) for m in calculation.treasury.marks
            )
            projected_nav = projected_treasury + adj_equity
            projected_nav_per_share = safe_divide(projected_nav, shares)
            change = percent_change(projected_treasury, current_treasury)
            estimated_price = max(
                0.0, calculation.stock_price * (1 + change / 100 * self.policy.leverage_multiplier)
            )
            projections.append(NavProjection(
                scenario=scenario.name,
                probability=self._scenario_probability(scenario),
                projected_treasury_value=projected_treasury,
                projected_nav=projected_nav,
                projected_nav_per_share=projected_nav_per_share,
                treasury_change_percent=change,
                estimated_stock_price=estimated_price,
                projected_premium_percent=percent_change(estimated_price, projected_nav_per_share),
                time_horizon=self.policy.projection_horizon,
            ))

            logger.debug(
                f"DECISION: Projected scenario {scenario.name}",
                extra={
                    "extra_data": {
                        "action": "nav_projection",
                        "scenario": scenario.name,
                        "treasury_change_percent": round(change, 4),
                        "projected_nav_per_share": projected_nav_per_share,
                    }
                },
            )

        return projections

    def to_nav_point(self, calculation: NAVCalculation) -> NavPoint:
        return NavPoint(
            ticker=calculation.ticker,
            timestamp=calculation.timestamp,
            nav=calculation.nav,
            nav_per_share=calculation.assumed_diluted.nav_per_share,
            premium_percent=calculation.assumed_diluted.premium_percent,
            treasury_value=calculation.treasury_value,
            shares_basic=calculation.share_counts.basic,
            shares_assumed_diluted=calculation.share_counts.assumed_diluted,
            methodology_version=calculation.methodology_version,
        )

    def attribute(self, points: list[NavPoint]) -> NavAttribution | None:
        """Split the NAV per share change across a stored series.

        Treasury contribution is the treasury change spread over ending
        shares; dilution impact is the starting NAV re-divided by ending
        shares; the remainder is other factors.

        Returns:
            NavAttribution, or None with fewer than two points
        """
        if len(points) < 2:
            return None

        ordered = sorted(points, key=lambda p: p.timestamp)
        first, last = ordered[0], ordered[-1]
        end_shares = last.shares_assumed_diluted

        total_change = last.nav_per_share - first.nav_per_share
        treasury_contribution = safe_divide(last.treasury_value - first.treasury_value, end_shares)
        dilution_impact = safe_divide(first.nav, end_shares) - first.nav_per_share if end_shares else 0.0

        return NavAttribution(
            start=first.timestamp,
            end=last.timestamp,
            total_nav_change=total_change,
            treasury_contribution=treasury_contribution,
            dilution_impact=dilution_impact,
            other_factors=total_change - treasury_contribution - dilution_impact,
        )
