"""Data source protocols and the file-backed implementation."""
import asyncio
import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import pyarrow as pa
import pyarrow.parquet as pq

from dat_analytics.models import (
    BusinessModel,
    CapitalStructure,
    Company,
    ConvertibleDebt,
    CryptoPrice,
    ExecutiveCompensation,
    FundingMethod,
    Governance,
    HistoricalDataPoint,
    NavPoint,
    TransactionType,
    TreasuryHolding,
    TreasuryTransaction,
    Warrant,
    to_dict,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class AnalyticsDataSource(Protocol):
    """Read access to company snapshots and market data."""

    async def get_company_by_ticker(self, ticker: str) -> Company | None:
        """Return the company snapshot, or None if unknown."""
        ...

    async def get_crypto_prices(self) -> list[CryptoPrice]:
        """Return current spot prices for all tracked assets."""
        ...

    async def get_stock_price(self, ticker: str) -> float:
        """Return the latest share price."""
        ...

    async def get_historical_data(self, ticker: str, start: date, end: date) -> list[HistoricalDataPoint]:
        """Return snapshots between start and end inclusive, oldest first."""
        ...

    async def list_tickers(self) -> list[str]:
        """Return every ticker the source knows."""
        ...


@runtime_checkable
class NavSeriesStore(Protocol):
    """Append-only NAV time series, idempotent by timestamp."""

    async def save_nav_point(self, point: NavPoint) -> None:
        """Persist a NAV point; an existing point at the same timestamp is replaced."""
        ...

    async def read_nav_points(self, ticker: str) -> list[NavPoint]:
        """Return the NAV series for a ticker, oldest first."""
        ...


# =============================================================================
# JSON parsing
# =============================================================================


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    return date.fromisoformat(value[:10])


def _transaction_from_dict(data: dict[str, Any]) -> TreasuryTransaction:
    funding = data.get("funding_method")
    return TreasuryTransaction(
        id=str(data["id"]),
        date=_parse_date(data["date"]),
        amount=float(data["amount"]),
        price_per_unit=float(data.get("price_per_unit", 0.0)),
        total_cost=float(data.get("total_cost", 0.0)),
        type=TransactionType(data["type"]),
        funding_method=FundingMethod(funding) if funding else None,
    )


def _holding_from_dict(data: dict[str, Any]) -> TreasuryHolding:
    return TreasuryHolding(
        crypto=data["crypto"],
        amount=float(data["amount"]),
        average_cost_basis=float(data.get("average_cost_basis", 0.0)),
        total_cost=float(data.get("total_cost", 0.0)),
        current_value=float(data.get("current_value", 0.0)),
        unrealized_gain=float(data.get("unrealized_gain", 0.0)),
        transactions=[_transaction_from_dict(t) for t in data.get("transactions", [])],
        staking_yield=data.get("staking_yield"),
        staked_amount=data.get("staked_amount"),
    )


def _capital_structure_from_dict(data: dict[str, Any]) -> CapitalStructure:
    return CapitalStructure(
        shares_basic=float(data["shares_basic"]),
        shares_diluted_current=float(data.get("shares_diluted_current", 0.0)),
        shares_diluted_assumed=float(data.get("shares_diluted_assumed", 0.0)),
        float_shares=float(data.get("float_shares", 0.0)),
        insider_ownership=float(data.get("insider_ownership", 0.0)),
        institutional_ownership=float(data.get("institutional_ownership", 0.0)),
        weighted_average_shares=float(data.get("weighted_average_shares", 0.0)),
        convertible_debt=[
            ConvertibleDebt(
                id=str(c["id"]),
                principal=float(c["principal"]),
                interest_rate=float(c.get("interest_rate", 0.0)),
                conversion_price=float(c["conversion_price"]),
                conversion_ratio=float(c.get("conversion_ratio", 0.0)),
                issue_date=_parse_date(c.get("issue_date")),
                maturity_date=_parse_date(c.get("maturity_date")),
                current_value=float(c.get("current_value", 0.0)),
                is_outstanding=bool(c.get("is_outstanding", True)),
            )
            for c in data.get("convertible_debt", [])
        ],
        warrants=[
            Warrant(
                id=str(w["id"]),
                strike_price=float(w["strike_price"]),
                shares_per_warrant=float(w.get("shares_per_warrant", 1.0)),
                total_warrants=float(w["total_warrants"]),
                expiration_date=_parse_date(w.get("expiration_date")),
                issue_date=_parse_date(w.get("issue_date")),
                is_outstanding=bool(w.get("is_outstanding", True)),
            )
            for w in data.get("warrants", [])
        ],
        stock_options=float(data.get("stock_options", 0.0)),
        restricted_stock_units=float(data.get("restricted_stock_units", 0.0)),
        performance_stock_units=float(data.get("performance_stock_units", 0.0)),
    )


def company_from_dict(data: dict[str, Any]) -> Company:
    """Build a Company from its JSON document."""
    return Company(
        ticker=data["ticker"],
        name=data.get("name", data["ticker"]),
        market_cap=float(data.get("market_cap", 0.0)),
        shares_outstanding=float(data.get("shares_outstanding", 0.0)),
        shareholders_equity=float(data.get("shareholders_equity", 0.0)),
        total_debt=float(data.get("total_debt", 0.0)),
        capital_structure=_capital_structure_from_dict(data["capital_structure"]),
        treasury=[_holding_from_dict(h) for h in data.get("treasury", [])],
        sector=data.get("sector", ""),
        business_model=BusinessModel(**data.get("business_model", {})),
        governance=Governance(**data.get("governance", {})),
        executive_compensation=[ExecutiveCompensation(**e) for e in data.get("executive_compensation", [])],
    )


HISTORY_FIELDS = [
    "stock_price",
    "treasury_value",
    "nav_per_share",
    "premium_to_nav",
    "volume",
    "shares_outstanding",
    "shares_diluted",
    "crypto_yield",
    "implied_volatility",
    "beta",
    "institutional_ownership",
    "short_interest",
    "borrow_cost",
]


class FileDataStore:
    """File-based implementation of both protocols using JSON and Parquet.

    Layout under ``base_path``::

        companies/<TICKER>.json
        market/crypto_prices.json
        market/stock_prices.json
        history/<TICKER>.parquet
        nav/<TICKER>.parquet
    """

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path)
        self._ensure_directories()

    def _ensure_directories(self) -> None:
        """Create directory structure if it doesn't exist."""
        for d in ["companies", "market", "history", "nav"]:
            (self.base_path / d).mkdir(parents=True, exist_ok=True)

    def _read_json(self, path: Path, default: Any) -> Any:
        if not path.exists():
            return default
        with open(path) as f:
            return json.load(f)

    def _write_json(self, path: Path, data: Any) -> None:
        with open(path, "w") as f:
            json.dump(data, f, indent=2)

    # =========================================================================
    # Companies (JSON)
    # =========================================================================

    def read_company(self, ticker: str) -> Company | None:
        data = self._read_json(self.base_path / "companies" / f"{ticker}.json", None)
        if data is None:
            logger.debug(f"No company file for {ticker}")
            return None
        return company_from_dict(data)

    def write_company(self, company: Company) -> None:
        file_path = self.base_path / "companies" / f"{company.ticker}.json"
        self._write_json(file_path, to_dict(company))
        logger.debug(f"Wrote company {company.ticker} to {file_path}")

    def tickers(self) -> list[str]:
        return sorted(p.stem for p in (self.base_path / "companies").glob("*.json"))

    # =========================================================================
    # Market Data (JSON)
    # =========================================================================

    def read_crypto_prices(self) -> list[CryptoPrice]:
        raw = self._read_json(self.base_path / "market" / "crypto_prices.json", [])
        return [
            CryptoPrice(
                symbol=p["symbol"],
                price=float(p["price"]),
                timestamp=datetime.fromisoformat(p["timestamp"]),
                change_24h=float(p.get("change_24h", 0.0)),
            )
            for p in raw
        ]

    def write_crypto_prices(self, prices: list[CryptoPrice]) -> None:
        self._write_json(self.base_path / "market" / "crypto_prices.json", to_dict(prices))
        logger.debug(f"Wrote {len(prices)} crypto prices")

    def read_stock_price(self, ticker: str) -> float:
        prices = self._read_json(self.base_path / "market" / "stock_prices.json", {})
        return float(prices.get(ticker, 0.0))

    def write_stock_price(self, ticker: str, price: float) -> None:
        file_path = self.base_path / "market" / "stock_prices.json"
        prices = self._read_json(file_path, {})
        prices[ticker] = price
        self._write_json(file_path, prices)

    # =========================================================================
    # Historical Snapshots (Parquet)
    # =========================================================================

    def read_history(self, ticker: str, start: date, end: date) -> list[HistoricalDataPoint]:
        file_path = self.base_path / "history" / f"{ticker}.parquet"
        if not file_path.exists():
            return []

        points = [HistoricalDataPoint(**row) for row in pq.read_table(file_path).to_pylist()]
        filtered = [p for p in points if start <= p.date <= end]
        return sorted(filtered, key=lambda p: p.date)

    def write_history(self, ticker: str, points: list[HistoricalDataPoint]) -> None:
        """Merge points into the ticker's history; newer data wins per date."""
        if not points:
            return

        file_path = self.base_path / "history" / f"{ticker}.parquet"
        existing: dict[date, HistoricalDataPoint] = {}
        if file_path.exists():
            for row in pq.read_table(file_path).to_pylist():
                existing[row["date"]] = HistoricalDataPoint(**row)
        for p in points:
            existing[p.date] = p

        ordered = sorted(existing.values(), key=lambda p: p.date)
        columns = {"date": pa.array([p.date for p in ordered], type=pa.date32())}
        for name in HISTORY_FIELDS:
            columns[name] = pa.array([float(getattr(p, name)) for p in ordered], type=pa.float64())
        pq.write_table(pa.table(columns), file_path)
        logger.debug(f"Wrote {len(ordered)} history points to {file_path}")

    # =========================================================================
    # NAV Series (Parquet)
    # =========================================================================

    def read_nav_series(self, ticker: str) -> list[NavPoint]:
        file_path = self.base_path / "nav" / f"{ticker}.parquet"
        if not file_path.exists():
            return []
        points = [NavPoint(**row) for row in pq.read_table(file_path).to_pylist()]
        return sorted(points, key=lambda p: p.timestamp)

    def write_nav_point(self, point: NavPoint) -> None:
        """Upsert one NAV point keyed by timestamp."""
        file_path = self.base_path / "nav" / f"{point.ticker}.parquet"
        series = {p.timestamp: p for p in self.read_nav_series(point.ticker)}
        replaced = point.timestamp in series
        series[point.timestamp] = point

        ordered = sorted(series.values(), key=lambda p: p.timestamp)
        table = pa.table({
            "ticker": pa.array([p.ticker for p in ordered], type=pa.string()),
            "timestamp": pa.array([p.timestamp for p in ordered], type=pa.timestamp("us")),
            "nav": pa.array([p.nav for p in ordered], type=pa.float64()),
            "nav_per_share": pa.array([p.nav_per_share for p in ordered], type=pa.float64()),
            "premium_percent": pa.array([p.premium_percent for p in ordered], type=pa.float64()),
            "treasury_value": pa.array([p.treasury_value for p in ordered], type=pa.float64()),
            "shares_basic": pa.array([p.shares_basic for p in ordered], type=pa.float64()),
            "shares_assumed_diluted": pa.array([p.shares_assumed_diluted for p in ordered], type=pa.float64()),
            "methodology_version": pa.array([p.methodology_version for p in ordered], type=pa.string()),
        })
        pq.write_table(table, file_path)
        logger.debug(
            f"{'Replaced' if replaced else 'Appended'} NAV point for {point.ticker} at {point.timestamp.isoformat()}"
        )

    # =========================================================================
    # Protocol methods
    # =========================================================================

    async def get_company_by_ticker(self, ticker: str) -> Company | None:
        return await asyncio.to_thread(self.read_company, ticker)

    async def get_crypto_prices(self) -> list[CryptoPrice]:
        return await asyncio.to_thread(self.read_crypto_prices)

    async def get_stock_price(self, ticker: str) -> float:
        return await asyncio.to_thread(self.read_stock_price, ticker)

    async def get_historical_data(self, ticker: str, start: date, end: date) -> list[HistoricalDataPoint]:
        return await asyncio.to_thread(self.read_history, ticker, start, end)

    async def list_tickers(self) -> list[str]:
        return await asyncio.to_thread(self.tickers)

    async def save_nav_point(self, point: NavPoint) -> None:
        await asyncio.to_thread(self.write_nav_point, point)

    async def read_nav_points(self, ticker: str) -> list[NavPoint]:
        return await asyncio.to_thread(self.read_nav_series, ticker)
