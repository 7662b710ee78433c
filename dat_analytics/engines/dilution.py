"""Dilution engine: current, projected and hypothetical share-count growth."""
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Mapping

from dat_analytics.core.config import DilutionPolicy, NavPolicy
from dat_analytics.models import Company, ConvertibleDebt, DataQualityIssue, Warrant
from dat_analytics.engines.capital_structure import ShareCounts, resolve_share_counts
from dat_analytics.engines.nav import net_asset_value
from dat_analytics.engines.numeric import percent_change, safe_divide
from dat_analytics.engines.treasury_valuation import value_treasury

logger = logging.getLogger(__name__)


class WhatIfKind(Enum):
    PRICE_SHOCK = "price_shock"  # magnitude: stock price multiplier
    EQUITY_RAISE = "equity_raise"  # magnitude: amount raised
    ACQUISITION = "acquisition"  # magnitude: new shares as a fraction of basic
    NEW_CONVERTIBLE = "new_convertible"  # magnitude: principal; premium: conversion premium


@dataclass(frozen=True)
class WhatIfScenario:
    name: str
    kind: WhatIfKind
    magnitude: float
    premium: float = 1.3
    description: str = ""


@dataclass(frozen=True)
class WhatIfResult:
    name: str
    kind: WhatIfKind
    description: str
    new_shares: float
    resulting_shares: float  # basic plus new shares
    dilution_percent: float  # new shares over basic
    nav_per_share_impact_percent: float
    eps_impact_percent: float


@dataclass(frozen=True)
class CurrentDilution:
    basic_shares: float
    diluted_shares: float
    assumed_diluted_shares: float
    dilution_percent: float
    breakdown: dict[str, float]


@dataclass(frozen=True)
class DilutionProjection:
    period: str
    projected_shares: float
    dilution_percent: float
    probability: float
    assumptions: list[str]


@dataclass(frozen=True)
class ConversionAnalysis:
    id: str
    conversion_price: float
    moneyness: float
    in_the_money: bool
    conversion_probability: float
    shares_on_conversion: float
    dilution_impact_percent: float
    interest_savings: float
    eps_impact_percent: float


@dataclass(frozen=True)
class WarrantDetail:
    id: str
    strike_price: float
    warrant_count: float
    shares_if_exercised: float
    moneyness: float
    in_the_money: bool
    intrinsic_value: float
    time_value: float


@dataclass(frozen=True)
class WarrantAnalysis:
    total_warrants: float
    total_shares: float
    weighted_average_strike: float
    in_the_money_shares: float
    details: list[WarrantDetail]
    intrinsic_value: float
    time_value: float
    expected_dilution: float


@dataclass(frozen=True)
class VestingYear:
    year: int
    shares_vesting: float
    cumulative_vested: float


@dataclass(frozen=True)
class CompensationDilution:
    annual_equity_grants: float
    vesting_schedule: list[VestingYear]
    burn_rate: float  # percent of basic shares per year
    overhang: float  # percent of basic shares
    dilution_from_compensation: float
    peer_median_burn_rate: float
    above_peer_median: bool


@dataclass(frozen=True)
class WaterfallStep:
    description: str
    shares_added: float
    cumulative_shares: float
    dilution_percent: float


@dataclass(frozen=True)
class DilutionWaterfall:
    """Options, RSUs, PSUs, warrants, then convertibles; order is fixed."""

    starting_shares: float
    steps: list[WaterfallStep]
    ending_shares: float
    total_dilution_percent: float


@dataclass(frozen=True)
class DilutionAnalysis:
    ticker: str
    current: CurrentDilution
    projections: list[DilutionProjection]
    conversions: list[ConversionAnalysis]
    warrants: WarrantAnalysis
    compensation: CompensationDilution
    what_if: list[WhatIfResult]
    waterfall: DilutionWaterfall
    issues: list[DataQualityIssue] = field(default_factory=list)


def conversion_probability(moneyness: float, policy: DilutionPolicy) -> float:
    """Step function from moneyness to conversion probability.

    Non-decreasing in moneyness.
    """
    for threshold, probability in policy.conversion_probability_bands:
        if moneyness > threshold:
            return probability
    return policy.conversion_probability_floor


def build_waterfall(shares: ShareCounts) -> DilutionWaterfall:
    """Add instruments to basic shares in fixed order.

    The additions mirror the resolver's so the ending count equals its
    assumed-diluted figure exactly.
    """
    ordered = [
        ("Stock options", shares.option_shares),
        ("Restricted stock units", shares.rsu_shares),
        ("Performance stock units", shares.psu_shares),
        ("Warrants", shares.warrant_shares),
        ("Convertible debt", shares.convertible_shares),
    ]
    cumulative = shares.basic
    steps = []
    for description, added in ordered:
        if added == 0:
            continue
        cumulative += added
        steps.append(WaterfallStep(
            description=description,
            shares_added=added,
            cumulative_shares=cumulative,
            dilution_percent=percent_change(cumulative, shares.basic),
        ))
    return DilutionWaterfall(
        starting_shares=shares.basic,
        steps=steps,
        ending_shares=cumulative,
        total_dilution_percent=percent_change(cumulative, shares.basic),
    )


def _years_until(expiry: date | None, as_of: date) -> float:
    if expiry is None:
        return 0.0
    return max(0.0, (expiry - as_of).days / 365.0)


class DilutionEngine:
    """Builds the dilution analysis for one company."""

    name = "dilution"

    def __init__(
        self,
        policy: DilutionPolicy | None = None,
        nav_policy: NavPolicy | None = None,
        missing_price_policy: str = "exclude",
    ):
        self.policy = policy or DilutionPolicy()
        self.nav_policy = nav_policy or NavPolicy()
        self.missing_price_policy = missing_price_policy

    def default_scenarios(self) -> list[WhatIfScenario]:
        p = self.policy
        return [
            WhatIfScenario(
                name="Stock Price Doubles",
                kind=WhatIfKind.PRICE_SHOCK,
                magnitude=p.price_shock_multiplier,
                description="Out-of-the-money warrants and convertibles move into the money",
            ),
            WhatIfScenario(
                name=f"${p.equity_raise_amount / 1e9:g}B Equity Raise",
                kind=WhatIfKind.EQUITY_RAISE,
                magnitude=p.equity_raise_amount,
                description="Equity issued at the current share price",
            ),
            WhatIfScenario(
                name="Major Acquisition",
                kind=WhatIfKind.ACQUISITION,
                magnitude=p.acquisition_share_fraction,
                description="Stock-for-stock acquisition valued at the current share price",
            ),
            WhatIfScenario(
                name=f"${p.new_convertible_amount / 1e6:g}M Convertible Issuance",
                kind=WhatIfKind.NEW_CONVERTIBLE,
                magnitude=p.new_convertible_amount,
                premium=p.new_convertible_premium,
                description="New convertible notes at a premium to the current share price",
            ),
        ]

    # =========================================================================
    # Instrument analysis
    # =========================================================================

    def analyze_conversions(
        self, notes: list[ConvertibleDebt], stock_price: float, basic_shares: float
    ) -> list[ConversionAnalysis]:
        results = []
        for note in notes:
            if not note.is_outstanding or note.conversion_price <= 0:
                continue
            moneyness = (stock_price - note.conversion_price) / note.conversion_price
            shares = note.principal / note.conversion_price
            dilution = safe_divide(shares, basic_shares) * 100
            results.append(ConversionAnalysis(
                id=note.id,
                conversion_price=note.conversion_price,
                moneyness=moneyness,
                in_the_money=stock_price > note.conversion_price,
                conversion_probability=conversion_probability(moneyness, self.policy),
                shares_on_conversion=shares,
                dilution_impact_percent=dilution,
                interest_savings=note.principal * note.interest_rate,
                eps_impact_percent=-dilution * self.policy.eps_flow_through,
            ))
        return results

    def analyze_warrants(self, warrants: list[Warrant], stock_price: float, as_of: date) -> WarrantAnalysis:
        details = []
        for w in warrants:
            if not w.is_outstanding:
                continue
            shares = w.shares_if_exercised
            in_the_money = stock_price > w.strike_price
            intrinsic = max(0.0, stock_price - w.strike_price) * shares
            time_value = 0.0
            if in_the_money:
                time_value = (
                    stock_price
                    * self.policy.warrant_volatility
                    * math.sqrt(_years_until(w.expiration_date, as_of))
                    * self.policy.warrant_time_value_factor
                    * shares
                )
            details.append(WarrantDetail(
                id=w.id,
                strike_price=w.strike_price,
                warrant_count=w.total_warrants,
                shares_if_exercised=shares,
                moneyness=safe_divide(stock_price - w.strike_price, w.strike_price),
                in_the_money=in_the_money,
                intrinsic_value=intrinsic,
                time_value=time_value,
            ))

        total_shares = sum(d.shares_if_exercised for d in details)
        return WarrantAnalysis(
            total_warrants=sum(d.warrant_count for d in details),
            total_shares=total_shares,
            weighted_average_strike=safe_divide(
                sum(d.strike_price * d.shares_if_exercised for d in details), total_shares
            ),
            in_the_money_shares=sum(d.shares_if_exercised for d in details if d.in_the_money),
            details=details,
            intrinsic_value=sum(d.intrinsic_value for d in details),
            time_value=sum(d.time_value for d in details),
            expected_dilution=sum(
                d.shares_if_exercised * min(1.0, d.moneyness) for d in details if d.in_the_money
            ),
        )

    def analyze_compensation(self, company: Company) -> CompensationDilution:
        basic = company.capital_structure.shares_basic
        outstanding = company.capital_structure.equity_compensation
        grants = outstanding * self.policy.annual_grant_fraction
        years = self.policy.vesting_years
        per_year = safe_divide(grants, years)
        schedule = [
            VestingYear(year=y, shares_vesting=per_year, cumulative_vested=per_year * y)
            for y in range(1, years + 1)
        ]
        burn_rate = safe_divide(grants, basic) * 100
        overhang = safe_divide(outstanding, basic) * 100
        return CompensationDilution(
            annual_equity_grants=grants,
            vesting_schedule=schedule,
            burn_rate=burn_rate,
            overhang=overhang,
            dilution_from_compensation=overhang,
            peer_median_burn_rate=self.policy.peer_median_burn_rate,
            above_peer_median=burn_rate > self.policy.peer_median_burn_rate,
        )

    def project(self, shares: ShareCounts) -> list[DilutionProjection]:
        projections = []
        for p in self.policy.projections:
            projected = shares.basic * p.share_multiplier
            projections.append(DilutionProjection(
                period=p.period,
                projected_shares=projected,
                dilution_percent=percent_change(projected, shares.basic),
                probability=p.probability,
                assumptions=list(p.assumptions),
            ))
        return projections

    # =========================================================================
    # What-if scenarios
    # =========================================================================

    def run_what_if(
        self,
        company: Company,
        scenario: WhatIfScenario,
        stock_price: float,
        nav: float,
    ) -> WhatIfResult:
        """Apply one hypothetical to basic shares.

        NAV per share impact compares (NAV + proceeds) over the new share
        count with NAV over basic shares; EPS impact assumes constant
        earnings spread over more shares.
        """
        structure = company.capital_structure
        basic = structure.shares_basic
        flow_through = 1.0

        if scenario.kind is WhatIfKind.PRICE_SHOCK:
            shocked = stock_price * scenario.magnitude
            warrants = [w for w in structure.warrants if w.is_outstanding and w.strike_price < shocked]
            notes = [
                n for n in structure.convertible_debt
                if n.is_outstanding and 0 < n.conversion_price < shocked
            ]
            new_shares = sum(w.shares_if_exercised for w in warrants)
            new_shares += sum(n.principal / n.conversion_price for n in notes)
            proceeds = sum(w.strike_price * w.shares_if_exercised for w in warrants)
            proceeds += sum(n.principal for n in notes)
        elif scenario.kind is WhatIfKind.EQUITY_RAISE:
            new_shares = safe_divide(scenario.magnitude, stock_price)
            proceeds = scenario.magnitude if new_shares > 0 else 0.0
        elif scenario.kind is WhatIfKind.ACQUISITION:
            new_shares = basic * scenario.magnitude
            proceeds = new_shares * stock_price
        else:
            conversion_price = stock_price * scenario.premium
            new_shares = safe_divide(scenario.magnitude, conversion_price)
            proceeds = scenario.magnitude if new_shares > 0 else 0.0
            flow_through = self.policy.eps_flow_through

        resulting = basic + new_shares
        base_nav_ps = safe_divide(nav, basic)
        new_nav_ps = safe_divide(nav + proceeds, resulting)

        return WhatIfResult(
            name=scenario.name,
            kind=scenario.kind,
            description=scenario.description,
            new_shares=new_shares,
            resulting_shares=resulting,
            dilution_percent=safe_divide(new_shares, basic) * 100,
            nav_per_share_impact_percent=percent_change(new_nav_ps, base_nav_ps),
            eps_impact_percent=(safe_divide(basic, resulting, 1.0) - 1) * 100 * flow_through,
        )

    # =========================================================================
    # Entry point
    # =========================================================================

    def analyze(
        self,
        company: Company,
        prices: Mapping[str, float],
        stock_price: float,
        as_of: date,
        what_if: list[WhatIfScenario] | None = None,
    ) -> DilutionAnalysis:
        """Run the full dilution analysis.

        Args:
            company: Company snapshot
            prices: Current crypto prices, used for the NAV base of what-if impacts
            stock_price: Current share price
            as_of: Valuation date for warrant time value
            what_if: Hypotheticals to run (defaults to the policy scenarios)

        Returns:
            DilutionAnalysis
        """
        as_of = as_of.date() if isinstance(as_of, datetime) else as_of
        shares = resolve_share_counts(company.capital_structure)
        treasury = value_treasury(company.treasury, prices, self.missing_price_policy)
        nav = net_asset_value(company, treasury.total_value, self.nav_policy)

        logger.debug(
            "STEP 1/4: Current dilution resolved",
            extra={
                "extra_data": {
                    "action": "dilution_current",
                    "ticker": company.ticker,
                    "assumed_diluted": shares.assumed_diluted,
                    "dilution_percent": round(shares.dilution_percent, 4),
                }
            },
        )

        current = CurrentDilution(
            basic_shares=shares.basic,
            diluted_shares=shares.diluted,
            assumed_diluted_shares=shares.assumed_diluted,
            dilution_percent=shares.dilution_percent,
            breakdown={
                "stock_options": shares.option_shares,
                "restricted_stock_units": shares.rsu_shares,
                "performance_stock_units": shares.psu_shares,
                "warrants": shares.warrant_shares,
                "convertible_debt": shares.convertible_shares,
            },
        )

        conversions = self.analyze_conversions(company.capital_structure.convertible_debt, stock_price, shares.basic)
        warrants = self.analyze_warrants(company.capital_structure.warrants, stock_price, as_of)
        logger.debug(
            "STEP 2/4: Instruments analyzed",
            extra={
                "extra_data": {
                    "action": "dilution_instruments",
                    "convertibles": len(conversions),
                    "warrant_series": len(warrants.details),
                    "in_the_money_warrant_shares": warrants.in_the_money_shares,
                }
            },
        )

        compensation = self.analyze_compensation(company)
        scenarios = what_if if what_if is not None else self.default_scenarios()
        what_if_results = [self.run_what_if(company, s, stock_price, nav) for s in scenarios]
        logger.debug(
            "STEP 3/4: What-if scenarios evaluated",
            extra={"extra_data": {"action": "dilution_what_if", "scenarios": [s.name for s in scenarios]}},
        )

        waterfall = build_waterfall(shares)
        logger.debug(
            "STEP 4/4: Waterfall built",
            extra={"extra_data": {"action": "dilution_waterfall", "ending_shares": waterfall.ending_shares}},
        )

        logger.info(
            f"Dilution {company.ticker}: {shares.dilution_percent:.1f}% fully diluted, "
            f"{len(conversions)} convertibles, burn rate {compensation.burn_rate:.2f}%"
        )

        return DilutionAnalysis(
            ticker=company.ticker,
            current=current,
            projections=self.project(shares),
            conversions=conversions,
            warrants=warrants,
            compensation=compensation,
            what_if=what_if_results,
            waterfall=waterfall,
            issues=shares.issues + treasury.issues,
        )
