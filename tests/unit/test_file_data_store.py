"""Tests for FileDataStore implementation."""
from datetime import date, datetime
import tempfile
import pytest


@pytest.fixture
def temp_store():
    """Create a FileDataStore with a temporary directory."""
    from dat_analytics.core.data_store import FileDataStore

    with tempfile.TemporaryDirectory() as tmpdir:
        yield FileDataStore(base_path=tmpdir)


def make_nav_point(timestamp, nav=1000.0, ticker="MSTR"):
    from dat_analytics.models import NavPoint

    return NavPoint(
        ticker=ticker, timestamp=timestamp, nav=nav, nav_per_share=nav / 100, premium_percent=5.0,
        treasury_value=nav / 2, shares_basic=100.0, shares_assumed_diluted=100.0,
        methodology_version="dat-core-1.0.0",
    )


def test_file_data_store_satisfies_protocols(temp_store):
    from dat_analytics.core.data_store import AnalyticsDataSource, NavSeriesStore

    assert isinstance(temp_store, AnalyticsDataSource)
    assert isinstance(temp_store, NavSeriesStore)


def test_creates_directory_layout(temp_store):
    for d in ["companies", "market", "history", "nav"]:
        assert (temp_store.base_path / d).is_dir()


# =============================================================================
# Company Tests
# =============================================================================

def test_company_round_trip(temp_store, make_company, make_structure):
    from dat_analytics.models import FundingMethod, TransactionType, TreasuryHolding, TreasuryTransaction, Warrant

    holding = TreasuryHolding(
        crypto="BTC", amount=10, average_cost_basis=30_000, total_cost=300_000,
        transactions=[TreasuryTransaction(
            id="t1", date=date(2026, 1, 5), amount=10, price_per_unit=30_000, total_cost=300_000,
            type=TransactionType.PURCHASE, funding_method=FundingMethod.AT_THE_MARKET,
        )],
        staking_yield=0.04,
    )
    structure = make_structure(warrants=[
        Warrant(id="W1", strike_price=400.0, shares_per_warrant=0.5, total_warrants=1000,
                expiration_date=date(2030, 1, 1)),
    ])
    company = make_company(treasury=[holding], structure=structure)

    temp_store.write_company(company)

    assert temp_store.read_company("MSTR") == company
    assert temp_store.tickers() == ["MSTR"]


def test_read_missing_company_returns_none(temp_store):
    assert temp_store.read_company("NOPE") is None


def test_company_from_dict_defaults():
    from dat_analytics.core.data_store import company_from_dict

    company = company_from_dict({"ticker": "SMLR", "capital_structure": {"shares_basic": 7_000_000}})

    assert company.name == "SMLR"
    assert company.treasury == []
    assert company.capital_structure.shares_basic == 7_000_000
    assert company.business_model.is_treasury_focused


def test_company_from_dict_rejects_negative_amounts():
    from dat_analytics.core.data_store import company_from_dict
    from dat_analytics.core.errors import MalformedInputError

    with pytest.raises(MalformedInputError):
        company_from_dict({
            "ticker": "BAD",
            "capital_structure": {"shares_basic": 1},
            "treasury": [{"crypto": "BTC", "amount": -1}],
        })


# =============================================================================
# Market Data Tests
# =============================================================================

def test_crypto_prices_round_trip(temp_store):
    from dat_analytics.models import CryptoPrice

    prices = [
        CryptoPrice(symbol="BTC", price=60_000.0, timestamp=datetime(2026, 6, 30, 16, 0), change_24h=1.5),
        CryptoPrice(symbol="ETH", price=4_000.0, timestamp=datetime(2026, 6, 30, 16, 0)),
    ]

    temp_store.write_crypto_prices(prices)

    assert temp_store.read_crypto_prices() == prices


def test_stock_prices(temp_store):
    temp_store.write_stock_price("MSTR", 300.0)
    temp_store.write_stock_price("SMLR", 40.0)

    assert temp_store.read_stock_price("MSTR") == 300.0
    assert temp_store.read_stock_price("SMLR") == 40.0
    assert temp_store.read_stock_price("NOPE") == 0.0


# =============================================================================
# History Tests
# =============================================================================

def test_history_date_filter_is_inclusive(temp_store, make_history):
    temp_store.write_history("MSTR", make_history(days=10, start=date(2026, 1, 1)))

    result = temp_store.read_history("MSTR", date(2026, 1, 3), date(2026, 1, 5))

    assert [p.date for p in result] == [date(2026, 1, 3), date(2026, 1, 4), date(2026, 1, 5)]


def test_history_merge_newer_wins(temp_store):
    from dat_analytics.models import HistoricalDataPoint

    temp_store.write_history("MSTR", [
        HistoricalDataPoint(date=date(2026, 1, 2), stock_price=100.0, treasury_value=1.0),
        HistoricalDataPoint(date=date(2026, 1, 1), stock_price=90.0, treasury_value=1.0),
    ])
    temp_store.write_history("MSTR", [
        HistoricalDataPoint(date=date(2026, 1, 2), stock_price=105.0, treasury_value=2.0),
        HistoricalDataPoint(date=date(2026, 1, 3), stock_price=110.0, treasury_value=3.0),
    ])

    result = temp_store.read_history("MSTR", date(2026, 1, 1), date(2026, 1, 31))

    assert [p.stock_price for p in result] == [90.0, 105.0, 110.0]
    assert result[1].treasury_value == 2.0


def test_history_empty_for_missing_ticker(temp_store):
    assert temp_store.read_history("NOPE", date(2026, 1, 1), date(2026, 1, 31)) == []


# =============================================================================
# NAV Series Tests
# =============================================================================

def test_nav_point_upsert_is_idempotent(temp_store):
    first = make_nav_point(datetime(2026, 6, 30, 16, 0))

    temp_store.write_nav_point(first)
    temp_store.write_nav_point(first)

    assert temp_store.read_nav_series("MSTR") == [first]


def test_nav_point_replaced_at_same_timestamp(temp_store):
    ts = datetime(2026, 6, 30, 16, 0)
    temp_store.write_nav_point(make_nav_point(ts, nav=1000.0))
    temp_store.write_nav_point(make_nav_point(ts, nav=1200.0))

    [point] = temp_store.read_nav_series("MSTR")

    assert point.nav == 1200.0


def test_nav_series_sorted_by_timestamp(temp_store):
    later = make_nav_point(datetime(2026, 7, 1, 16, 0))
    earlier = make_nav_point(datetime(2026, 6, 30, 16, 0))

    temp_store.write_nav_point(later)
    temp_store.write_nav_point(earlier)

    assert [p.timestamp for p in temp_store.read_nav_series("MSTR")] == [earlier.timestamp, later.timestamp]
    assert temp_store.read_nav_series("SMLR") == []


# =============================================================================
# Protocol Method Tests
# =============================================================================

@pytest.mark.asyncio
async def test_async_protocol_methods(temp_store, make_company):
    company = make_company()
    temp_store.write_company(company)
    temp_store.write_stock_price("MSTR", 300.0)

    assert await temp_store.get_company_by_ticker("MSTR") == company
    assert await temp_store.get_company_by_ticker("NOPE") is None
    assert await temp_store.get_stock_price("MSTR") == 300.0
    assert await temp_store.get_crypto_prices() == []
    assert await temp_store.list_tickers() == ["MSTR"]

    point = make_nav_point(datetime(2026, 6, 30, 16, 0))
    await temp_store.save_nav_point(point)
    assert await temp_store.read_nav_points("MSTR") == [point]
