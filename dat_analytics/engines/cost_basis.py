"""Tax-lot tracking for treasury holdings."""
import logging
from dataclasses import dataclass, replace
from datetime import date
from enum import Enum

from dat_analytics.core.config import YieldPolicy
from dat_analytics.models import TransactionType, TreasuryHolding, TreasuryTransaction
from dat_analytics.engines.numeric import safe_divide

logger = logging.getLogger(__name__)


class CostBasisMethod(Enum):
    FIFO = "FIFO"
    LIFO = "LIFO"
    AVERAGE = "AVERAGE"


@dataclass(frozen=True)
class TaxLot:
    acquired: date
    amount: float
    cost_basis: float
    cost_per_unit: float
    current_value: float
    unrealized_gain: float
    holding_days: int
    is_long_term: bool


@dataclass(frozen=True)
class CostBasisReport:
    """Open lots and gains for one asset."""

    symbol: str
    method: CostBasisMethod
    lots: list[TaxLot]
    remaining_amount: float
    total_cost_basis: float
    current_value: float
    unrealized_gain: float
    realized_gain: float
    long_term_gain: float  # unrealized, on lots held past the long-term threshold
    short_term_gain: float
    estimated_tax: float
    unmatched_disposal_amount: float = 0.0


@dataclass(frozen=True)
class _OpenLot:
    acquired: date
    amount: float
    cost: float


def _consume(
    lots: list[_OpenLot], amount: float, method: CostBasisMethod
) -> tuple[list[_OpenLot], float, float]:
    """Remove ``amount`` units from open lots.

    Returns:
        (remaining lots, cost basis removed, amount left unmatched)
    """
    if method is CostBasisMethod.AVERAGE:
        pool = sum(lot.amount for lot in lots)
        taken = min(amount, pool)
        fraction = safe_divide(taken, pool)
        removed_cost = sum(lot.cost for lot in lots) * fraction
        remaining = [
            replace(lot, amount=lot.amount * (1 - fraction), cost=lot.cost * (1 - fraction))
            for lot in lots
        ]
        return [lot for lot in remaining if lot.amount > 0], removed_cost, amount - taken

    ordered = list(lots) if method is CostBasisMethod.FIFO else list(reversed(lots))
    left = amount
    removed_cost = 0.0
    kept: list[_OpenLot] = []
    for lot in ordered:
        if left <= 0:
            kept.append(lot)
            continue
        taken = min(lot.amount, left)
        unit_cost = safe_divide(lot.cost, lot.amount)
        removed_cost += taken * unit_cost
        left -= taken
        if taken < lot.amount:
            kept.append(replace(lot, amount=lot.amount - taken, cost=lot.cost - taken * unit_cost))

    if method is CostBasisMethod.LIFO:
        kept.reverse()
    return kept, removed_cost, left


def _apply(
    state: tuple[list[_OpenLot], float, float],
    tx: TreasuryTransaction,
    method: CostBasisMethod,
) -> tuple[list[_OpenLot], float, float]:
    lots, realized, unmatched = state
    if tx.is_acquisition:
        return lots + [_OpenLot(acquired=tx.date, amount=tx.amount, cost=tx.total_cost)], realized, unmatched

    lots, removed_cost, left = _consume(lots, tx.amount, method)
    matched = tx.amount - left
    proceeds = tx.total_cost * safe_divide(matched, tx.amount) if tx.type is TransactionType.SALE else removed_cost
    return lots, realized + proceeds - removed_cost, unmatched + left


def build_cost_basis(
    holding: TreasuryHolding,
    price: float,
    method: CostBasisMethod,
    as_of: date,
    policy: YieldPolicy,
) -> CostBasisReport:
    """Replay a holding's transactions into tax lots.

    Purchases and stakes open lots at their total cost; sales and unstakes
    consume lots in method order. Sales realize proceeds minus consumed cost,
    unstakes realize nothing.

    Args:
        holding: Treasury holding with transactions
        price: Current asset price
        method: Lot relief method
        as_of: Valuation date for holding periods
        policy: Yield policy (long-term threshold and tax rates)

    Returns:
        CostBasisReport
    """
    state: tuple[list[_OpenLot], float, float] = ([], 0.0, 0.0)
    for tx in holding.sorted_transactions():
        if tx.date > as_of:
            continue
        state = _apply(state, tx, method)
    open_lots, realized, unmatched = state

    total_amount = sum(lot.amount for lot in open_lots)
    total_cost = sum(lot.cost for lot in open_lots)
    average_cost = safe_divide(total_cost, total_amount)

    lots = []
    for lot in open_lots:
        cost = lot.amount * average_cost if method is CostBasisMethod.AVERAGE else lot.cost
        value = lot.amount * price
        days = (as_of - lot.acquired).days
        lots.append(TaxLot(
            acquired=lot.acquired,
            amount=lot.amount,
            cost_basis=cost,
            cost_per_unit=safe_divide(cost, lot.amount),
            current_value=value,
            unrealized_gain=value - cost,
            holding_days=days,
            is_long_term=days > policy.long_term_holding_days,
        ))

    long_term = sum(lot.unrealized_gain for lot in lots if lot.is_long_term)
    short_term = sum(lot.unrealized_gain for lot in lots if not lot.is_long_term)
    tax = max(0.0, long_term) * policy.long_term_tax_rate + max(0.0, short_term) * policy.short_term_tax_rate

    if unmatched > 0:
        logger.warning(f"{holding.crypto}: disposals exceed recorded lots by {unmatched}")

    logger.debug(
        "EXIT: Built cost basis",
        extra={
            "extra_data": {
                "action": "cost_basis",
                "symbol": holding.crypto,
                "method": method.value,
                "lots": len(lots),
                "realized_gain": realized,
                "estimated_tax": tax,
            }
        },
    )

    current_value = total_amount * price
    return CostBasisReport(
        symbol=holding.crypto,
        method=method,
        lots=lots,
        remaining_amount=total_amount,
        total_cost_basis=total_cost,
        current_value=current_value,
        unrealized_gain=current_value - total_cost,
        realized_gain=realized,
        long_term_gain=long_term,
        short_term_gain=short_term,
        estimated_tax=tax,
        unmatched_disposal_amount=unmatched,
    )
