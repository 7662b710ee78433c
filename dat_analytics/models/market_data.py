"""Market data models supplied by external feeds."""
from dataclasses import dataclass
from datetime import date, datetime


@dataclass(frozen=True)
class CryptoPrice:
    """Spot price for one digital asset."""

    symbol: str
    price: float
    timestamp: datetime
    change_24h: float = 0.0  # percent


@dataclass(frozen=True)
class HistoricalDataPoint:
    """Per-date snapshot of a company's market and treasury state."""

    date: date
    stock_price: float
    treasury_value: float
    nav_per_share: float = 0.0
    premium_to_nav: float = 0.0  # percent
    volume: float = 0.0
    shares_outstanding: float = 0.0
    shares_diluted: float = 0.0
    crypto_yield: float = 0.0
    implied_volatility: float = 0.0
    beta: float = 0.0
    institutional_ownership: float = 0.0
    short_interest: float = 0.0
    borrow_cost: float = 0.0


def price_map(prices: list[CryptoPrice]) -> dict[str, float]:
    """Map symbol to price, keeping the most recent quote per symbol."""
    latest: dict[str, CryptoPrice] = {}
    for p in prices:
        current = latest.get(p.symbol)
        if current is None or p.timestamp >= current.timestamp:
            latest[p.symbol] = p
    return {symbol: p.price for symbol, p in latest.items()}
