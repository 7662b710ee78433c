"""Treasury holding and transaction models."""
from dataclasses import dataclass, field
from datetime import date
from enum import Enum

from dat_analytics.core.errors import MalformedInputError


class TransactionType(Enum):
    """Kind of treasury movement."""

    PURCHASE = "purchase"
    SALE = "sale"
    STAKE = "stake"
    UNSTAKE = "unstake"


class FundingMethod(Enum):
    """How a purchase was financed."""

    EQUITY = "equity"
    CONVERTIBLE_DEBT = "convertible_debt"
    CREDIT_FACILITY = "credit_facility"
    PIPE = "pipe"
    AT_THE_MARKET = "at_the_market"


@dataclass(frozen=True)
class TreasuryTransaction:
    """A single immutable treasury movement."""

    id: str
    date: date
    amount: float  # units of the asset, always positive
    price_per_unit: float
    total_cost: float  # proceeds for sales
    type: TransactionType
    funding_method: FundingMethod | None = None

    def __post_init__(self):
        if self.amount < 0:
            raise MalformedInputError(f"Transaction {self.id} has negative amount {self.amount}")

    @property
    def is_acquisition(self) -> bool:
        """True for movements that add units to the holding."""
        return self.type in (TransactionType.PURCHASE, TransactionType.STAKE)

    @property
    def signed_amount(self) -> float:
        """Amount with disposals negative."""
        return self.amount if self.is_acquisition else -self.amount


@dataclass(frozen=True)
class TreasuryHolding:
    """Position in one digital asset, with its transaction history."""

    crypto: str
    amount: float
    average_cost_basis: float
    total_cost: float
    current_value: float = 0.0  # as recorded upstream; engines re-mark
    unrealized_gain: float = 0.0  # percent, as recorded upstream
    transactions: list[TreasuryTransaction] = field(default_factory=list)
    staking_yield: float | None = None
    staked_amount: float | None = None

    def __post_init__(self):
        if self.amount < 0:
            raise MalformedInputError(f"Holding {self.crypto} has negative amount {self.amount}")

    def sorted_transactions(self) -> list[TreasuryTransaction]:
        """Transactions in date order, ties broken by id."""
        return sorted(self.transactions, key=lambda t: (t.date, t.id))
