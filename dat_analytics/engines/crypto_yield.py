"""Crypto yield engine.

Crypto yield is the percentage change in crypto held per assumed-diluted
share over a window. Per-asset yields use native units; the blended yield
marks both ends of the window at the current price so price moves do not
leak into it.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from functools import reduce
from typing import Mapping

from dateutil.relativedelta import relativedelta

from dat_analytics.core.config import YieldPolicy
from dat_analytics.models import (
    Company,
    DataQualityIssue,
    HistoricalDataPoint,
    TransactionType,
    TreasuryTransaction,
)
from dat_analytics.engines.capital_structure import resolve_share_counts
from dat_analytics.engines.cost_basis import CostBasisMethod, CostBasisReport, build_cost_basis
from dat_analytics.engines.numeric import percent_change, safe_divide

logger = logging.getLogger(__name__)


class YieldPeriod(Enum):
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


@dataclass(frozen=True)
class AssetYield:
    symbol: str
    current_amount: float
    prior_amount: float
    current_per_share: float
    prior_per_share: float
    yield_percent: float
    annualized_yield: float
    quarterly_yield: float
    is_accretive: bool


@dataclass(frozen=True)
class FundingAttribution:
    """In-window purchases grouped by funding method."""

    method: str
    purchases: int
    value_acquired: float  # marked at current prices
    shares_issued: float
    resulting_value_per_share: float
    accretive_impact_percent: float
    is_accretive: bool


@dataclass(frozen=True)
class CryptoYieldResult:
    ticker: str
    period: YieldPeriod
    window_start: date
    window_end: date
    current_shares: float
    prior_shares: float
    assets: list[AssetYield]
    total_yield_percent: float
    total_annualized_yield: float
    total_quarterly_yield: float
    is_accretive: bool
    baseline_value_per_share: float
    funding: list[FundingAttribution]
    cost_basis: list[CostBasisReport]
    issues: list[DataQualityIssue] = field(default_factory=list)

    def asset(self, symbol: str) -> AssetYield | None:
        for a in self.assets:
            if a.symbol == symbol:
                return a
        return None


@dataclass(frozen=True)
class YieldRanking:
    ticker: str
    total_yield_percent: float
    rank: int
    percentile: float


@dataclass(frozen=True)
class _FundingTally:
    purchases: int = 0
    value: float = 0.0
    shares: float = 0.0

    def add(self, value: float, shares: float) -> "_FundingTally":
        return _FundingTally(self.purchases + 1, self.value + value, self.shares + shares)


def window_start(as_of: date, period: YieldPeriod) -> date:
    if period is YieldPeriod.YEARLY:
        return as_of - relativedelta(years=1)
    return as_of - relativedelta(months=3)


def _as_date(value: date) -> date:
    return value.date() if isinstance(value, datetime) else value


def _annualize(yield_percent: float, period: YieldPeriod) -> tuple[float, float]:
    """Return (annualized, quarterly) figures; linear, not compounded."""
    if period is YieldPeriod.QUARTERLY:
        return yield_percent * 4, yield_percent
    return yield_percent, yield_percent / 4


class CryptoYieldEngine:
    """Per-asset and blended crypto yield with funding attribution and tax lots."""

    name = "crypto_yield"

    def __init__(self, policy: YieldPolicy | None = None):
        self.policy = policy or YieldPolicy()

    def _shares_issued(self, tx: TreasuryTransaction, price_per_share: float) -> float:
        method = tx.funding_method.value if tx.funding_method else None
        if method in self.policy.equity_funding_methods:
            return safe_divide(tx.total_cost, price_per_share)
        if method in self.policy.convertible_funding_methods:
            return safe_divide(tx.total_cost, price_per_share * self.policy.convertible_premium)
        return 0.0

    def calculate(
        self,
        company: Company,
        prices: Mapping[str, float],
        stock_price: float,
        history: list[HistoricalDataPoint],
        as_of: date,
        period: YieldPeriod = YieldPeriod.QUARTERLY,
        cost_basis_method: CostBasisMethod = CostBasisMethod.FIFO,
    ) -> CryptoYieldResult:
        """Calculate crypto yield over the window ending at ``as_of``.

        Args:
            company: Company snapshot
            prices: Current crypto prices by symbol
            stock_price: Current share price, used to estimate shares issued
            history: Historical snapshots supplying the window-start share count
            as_of: Window end
            period: Quarterly or yearly window
            cost_basis_method: Lot relief method for the tax report

        Returns:
            CryptoYieldResult
        """
        as_of = _as_date(as_of)
        start = window_start(as_of, period)
        issues: list[DataQualityIssue] = []

        logger.debug(
            "ENTER: CryptoYieldEngine.calculate",
            extra={
                "extra_data": {
                    "action": "yield_enter",
                    "ticker": company.ticker,
                    "period": period.value,
                    "window_start": start.isoformat(),
                    "window_end": as_of.isoformat(),
                }
            },
        )

        # STEP 1/5: share counts and share price
        shares = resolve_share_counts(company.capital_structure)
        current_shares = shares.assumed_diluted
        price_per_share = stock_price if stock_price > 0 else safe_divide(
            company.market_cap, company.shares_outstanding
        )

        # STEP 2/5: fold in-window purchases by funding method
        def in_window(tx: TreasuryTransaction) -> bool:
            return start <= tx.date <= as_of

        purchases = [
            (h.crypto, tx)
            for h in company.treasury
            for tx in h.sorted_transactions()
            if in_window(tx) and tx.type is TransactionType.PURCHASE
        ]

        # unpriced assets are left out of the baseline, so their purchases are left out here too
        priced = [(symbol, tx) for symbol, tx in purchases if prices.get(symbol, 0.0) > 0]
        if len(priced) < len(purchases):
            logger.debug(
                "DECISION: Unpriced purchases excluded from funding attribution",
                extra={
                    "extra_data": {
                        "action": "funding_unpriced",
                        "excluded": sorted({tx.id for symbol, tx in purchases if prices.get(symbol, 0.0) <= 0}),
                    }
                },
            )

        def fold(acc: dict[str, _FundingTally], item: tuple[str, TreasuryTransaction]) -> dict[str, _FundingTally]:
            symbol, tx = item
            key = tx.funding_method.value if tx.funding_method else "unspecified"
            value = tx.amount * prices[symbol]
            tally = acc.get(key, _FundingTally()).add(value, self._shares_issued(tx, price_per_share))
            return {**acc, key: tally}

        tallies: dict[str, _FundingTally] = reduce(fold, priced, {})
        # every purchase issued shares, priced or not
        total_issued = sum(self._shares_issued(tx, price_per_share) for _, tx in purchases)

        # STEP 3/5: window-start share count
        prior_shares = None
        for point in sorted(history, key=lambda p: p.date):
            if point.date >= start and point.shares_diluted > 0:
                prior_shares = point.shares_diluted
                break
        if prior_shares is None:
            prior_shares = max(0.0, current_shares - total_issued)
            logger.debug(
                "DECISION: No historical share count in window; estimating from issuance",
                extra={"extra_data": {"action": "prior_shares_estimate", "prior_shares": prior_shares}},
            )

        # STEP 4/5: per-asset and blended yield
        assets = []
        current_value = 0.0
        prior_value = 0.0
        for h in company.treasury:
            net_in_window = sum(tx.signed_amount for tx in h.transactions if in_window(tx))
            prior_amount = max(0.0, h.amount - net_in_window)
            if h.amount <= 0 and prior_amount <= 0:
                continue

            current_ps = safe_divide(h.amount, current_shares)
            prior_ps = safe_divide(prior_amount, prior_shares)
            y = percent_change(current_ps, prior_ps)
            annual, quarterly = _annualize(y, period)
            assets.append(AssetYield(
                symbol=h.crypto,
                current_amount=h.amount,
                prior_amount=prior_amount,
                current_per_share=current_ps,
                prior_per_share=prior_ps,
                yield_percent=y,
                annualized_yield=annual,
                quarterly_yield=quarterly,
                is_accretive=y > 0,
            ))

            price = prices.get(h.crypto, 0.0)
            if price <= 0:
                issues.append(DataQualityIssue(
                    code="missing_price",
                    subject=h.crypto,
                    message=f"No current price for {h.crypto}; excluded from blended yield",
                ))
                continue
            current_value += h.amount * price
            prior_value += prior_amount * price

        current_vps = safe_divide(current_value, current_shares)
        baseline_vps = safe_divide(prior_value, prior_shares)
        total_yield = percent_change(current_vps, baseline_vps)
        total_annual, total_quarterly = _annualize(total_yield, period)

        # STEP 5/5: accretion by funding method against the pre-window baseline
        funding = []
        for method in sorted(tallies):
            tally = tallies[method]
            resulting = safe_divide(prior_value + tally.value, prior_shares + tally.shares)
            funding.append(FundingAttribution(
                method=method,
                purchases=tally.purchases,
                value_acquired=tally.value,
                shares_issued=tally.shares,
                resulting_value_per_share=resulting,
                accretive_impact_percent=percent_change(resulting, baseline_vps),
                is_accretive=resulting > baseline_vps,
            ))

        cost_basis = [
            build_cost_basis(h, prices[h.crypto], cost_basis_method, as_of, self.policy)
            for h in company.treasury
            if prices.get(h.crypto, 0.0) > 0
        ]

        result = CryptoYieldResult(
            ticker=company.ticker,
            period=period,
            window_start=start,
            window_end=as_of,
            current_shares=current_shares,
            prior_shares=prior_shares,
            assets=assets,
            total_yield_percent=total_yield,
            total_annualized_yield=total_annual,
            total_quarterly_yield=total_quarterly,
            is_accretive=total_yield > 0,
            baseline_value_per_share=baseline_vps,
            funding=funding,
            cost_basis=cost_basis,
            issues=issues + shares.issues,
        )

        logger.info(
            f"Crypto yield {company.ticker} ({period.value}): {total_yield:.2f}% "
            f"({'accretive' if result.is_accretive else 'not accretive'})"
        )
        return result

    def compare(self, results: Mapping[str, CryptoYieldResult]) -> list[YieldRanking]:
        """Rank peers by their own computed blended yield."""
        ordered = sorted(results.items(), key=lambda item: (-item[1].total_yield_percent, item[0]))
        n = len(ordered)
        return [
            YieldRanking(
                ticker=ticker,
                total_yield_percent=result.total_yield_percent,
                rank=i + 1,
                percentile=(n - i) / n * 100,
            )
            for i, (ticker, result) in enumerate(ordered)
        ]
