"""Company and capital structure models."""
from dataclasses import dataclass, field
from datetime import date

from dat_analytics.core.errors import MalformedInputError
from dat_analytics.models.treasury import TreasuryHolding


@dataclass(frozen=True)
class ConvertibleDebt:
    """Convertible note outstanding against the company."""

    id: str
    principal: float
    interest_rate: float  # annual, fraction
    conversion_price: float
    conversion_ratio: float = 0.0  # shares per 1000 of principal
    issue_date: date | None = None
    maturity_date: date | None = None
    current_value: float = 0.0
    is_outstanding: bool = True

    def __post_init__(self):
        if self.principal < 0:
            raise MalformedInputError(f"Convertible {self.id} has negative principal")


@dataclass(frozen=True)
class Warrant:
    """Warrant series issued by the company."""

    id: str
    strike_price: float
    shares_per_warrant: float
    total_warrants: float
    expiration_date: date | None = None
    issue_date: date | None = None
    is_outstanding: bool = True

    def __post_init__(self):
        if self.total_warrants < 0 or self.shares_per_warrant < 0:
            raise MalformedInputError(f"Warrant {self.id} has negative share terms")

    @property
    def shares_if_exercised(self) -> float:
        return self.total_warrants * self.shares_per_warrant


@dataclass(frozen=True)
class CapitalStructure:
    """Share counts and potentially dilutive instruments."""

    shares_basic: float
    shares_diluted_current: float = 0.0  # 0 when not reported
    shares_diluted_assumed: float = 0.0  # as reported; the resolver recomputes it
    float_shares: float = 0.0
    insider_ownership: float = 0.0  # percent
    institutional_ownership: float = 0.0  # percent
    weighted_average_shares: float = 0.0
    convertible_debt: list[ConvertibleDebt] = field(default_factory=list)
    warrants: list[Warrant] = field(default_factory=list)
    stock_options: float = 0.0
    restricted_stock_units: float = 0.0
    performance_stock_units: float = 0.0

    def __post_init__(self):
        counts = {
            "shares_basic": self.shares_basic,
            "shares_diluted_current": self.shares_diluted_current,
            "stock_options": self.stock_options,
            "restricted_stock_units": self.restricted_stock_units,
            "performance_stock_units": self.performance_stock_units,
        }
        for name, value in counts.items():
            if value < 0:
                raise MalformedInputError(f"Capital structure {name} is negative: {value}")

    @property
    def equity_compensation(self) -> float:
        """Outstanding options, RSUs and PSUs."""
        return self.stock_options + self.restricted_stock_units + self.performance_stock_units


@dataclass(frozen=True)
class BusinessModel:
    """Operating business attributes."""

    revenue_streams: list[str] = field(default_factory=list)
    operating_revenue: float = 0.0
    operating_expenses: float = 0.0
    cash_burn_rate: float = 0.0  # monthly
    is_treasury_focused: bool = True
    legacy_business_value: float = 0.0

    @property
    def operating_income(self) -> float:
        return self.operating_revenue - self.operating_expenses


@dataclass(frozen=True)
class Governance:
    """Board and control attributes."""

    board_size: int = 0
    independent_directors: int = 0
    ceo_founder: bool = False
    voting_rights: str = "single_class"
    audit_firm: str = ""


@dataclass(frozen=True)
class ExecutiveCompensation:
    """One executive's compensation for a fiscal year."""

    name: str
    title: str
    cash_compensation: float
    equity_compensation: float
    total_compensation: float
    shares_owned: float = 0.0
    options_outstanding: float = 0.0
    year: int = 0


@dataclass(frozen=True)
class Company:
    """Snapshot of a digital-asset treasury company."""

    ticker: str
    name: str
    market_cap: float
    shares_outstanding: float
    shareholders_equity: float
    total_debt: float
    capital_structure: CapitalStructure
    treasury: list[TreasuryHolding] = field(default_factory=list)
    sector: str = ""
    business_model: BusinessModel = field(default_factory=BusinessModel)
    governance: Governance = field(default_factory=Governance)
    executive_compensation: list[ExecutiveCompensation] = field(default_factory=list)

    def __post_init__(self):
        if self.total_debt < 0 or self.shares_outstanding < 0 or self.market_cap < 0:
            raise MalformedInputError(f"Company {self.ticker} has negative market cap, shares or debt")

    def holding(self, symbol: str) -> TreasuryHolding | None:
        for h in self.treasury:
            if h.crypto == symbol:
                return h
        return None
