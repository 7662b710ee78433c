"""Tests for the crypto yield engine."""
from datetime import date, datetime

import pytest


def yield_company(make_company, make_structure, extra_transactions=()):
    from dat_analytics.models import FundingMethod, TransactionType, TreasuryHolding, TreasuryTransaction

    transactions = [
        TreasuryTransaction(
            id="old", date=date(2025, 1, 1), amount=800, price_per_unit=40_000, total_cost=32_000_000,
            type=TransactionType.PURCHASE, funding_method=FundingMethod.CONVERTIBLE_DEBT,
        ),
        TreasuryTransaction(
            id="new", date=date(2026, 5, 15), amount=200, price_per_unit=50_000, total_cost=10_000_000,
            type=TransactionType.PURCHASE, funding_method=FundingMethod.EQUITY,
        ),
        *extra_transactions,
    ]
    amount = sum(t.signed_amount for t in transactions)
    holding = TreasuryHolding(
        crypto="BTC", amount=amount, average_cost_basis=42_000, total_cost=42_000_000, transactions=transactions
    )
    structure = make_structure(
        shares_basic=100_000_000, shares_diluted_current=0, stock_options=0, restricted_stock_units=0,
        performance_stock_units=0, warrants=[], convertible_debt=[],
    )
    return make_company(treasury=[holding], structure=structure)


def window_history():
    from dat_analytics.models import HistoricalDataPoint

    return [
        HistoricalDataPoint(date=date(2026, 1, 15), stock_price=250.0, treasury_value=1.0, shares_diluted=80_000_000),
        HistoricalDataPoint(date=date(2026, 4, 1), stock_price=280.0, treasury_value=1.0, shares_diluted=90_000_000),
        HistoricalDataPoint(date=date(2026, 6, 1), stock_price=300.0, treasury_value=1.0, shares_diluted=95_000_000),
    ]


def test_yield_per_assumed_diluted_share(make_company, make_structure):
    from dat_analytics.engines.crypto_yield import CryptoYieldEngine

    company = yield_company(make_company, make_structure)

    result = CryptoYieldEngine().calculate(
        company, {"BTC": 60_000.0}, 300.0, window_history(), as_of=date(2026, 6, 30)
    )

    # (1000 / 100M) / (800 / 90M) - 1
    btc = result.asset("BTC")
    assert result.window_start == date(2026, 3, 30)
    assert result.prior_shares == 90_000_000
    assert btc.prior_amount == pytest.approx(800)
    assert btc.yield_percent == pytest.approx(12.5)
    assert btc.annualized_yield == pytest.approx(50.0)
    assert result.total_yield_percent == pytest.approx(12.5)
    assert result.is_accretive


def test_yield_sign_follows_holdings_per_share(make_company, make_structure):
    from dat_analytics.engines.crypto_yield import CryptoYieldEngine
    from dat_analytics.models import HistoricalDataPoint

    company = yield_company(make_company, make_structure)
    # share count doubled over the window while holdings grew 25%
    history = [HistoricalDataPoint(date=date(2026, 4, 1), stock_price=1.0, treasury_value=1.0, shares_diluted=50_000_000)]

    result = CryptoYieldEngine().calculate(company, {"BTC": 60_000.0}, 300.0, history, as_of=date(2026, 6, 30))

    assert result.total_yield_percent == pytest.approx((1000 / 100e6) / (800 / 50e6) * 100 - 100)
    assert result.total_yield_percent < 0
    assert not result.is_accretive


def test_prior_shares_estimated_from_issuance_without_history(make_company, make_structure):
    from dat_analytics.engines.crypto_yield import CryptoYieldEngine

    company = yield_company(make_company, make_structure)

    result = CryptoYieldEngine().calculate(company, {"BTC": 60_000.0}, 300.0, [], as_of=date(2026, 6, 30))

    assert result.prior_shares == pytest.approx(100_000_000 - 10_000_000 / 300.0)


def test_yearly_window_includes_older_purchases(make_company, make_structure):
    from dat_analytics.engines.crypto_yield import CryptoYieldEngine, YieldPeriod

    company = yield_company(make_company, make_structure)

    result = CryptoYieldEngine().calculate(
        company, {"BTC": 60_000.0}, 300.0, [], as_of=date(2026, 6, 30), period=YieldPeriod.YEARLY
    )

    assert result.window_start == date(2025, 6, 30)
    assert result.asset("BTC").prior_amount == pytest.approx(800)
    assert result.total_quarterly_yield == pytest.approx(result.total_yield_percent / 4)


def test_zero_prior_holding_gives_zero_yield(make_company, make_structure):
    from dat_analytics.engines.crypto_yield import CryptoYieldEngine
    from dat_analytics.models import TransactionType, TreasuryHolding, TreasuryTransaction

    holding = TreasuryHolding(
        crypto="SOL", amount=100, average_cost_basis=100, total_cost=10_000,
        transactions=[TreasuryTransaction(
            id="s1", date=date(2026, 6, 1), amount=100, price_per_unit=100, total_cost=10_000,
            type=TransactionType.PURCHASE,
        )],
    )
    company = make_company(treasury=[holding])

    result = CryptoYieldEngine().calculate(company, {"SOL": 150.0}, 300.0, window_history(), as_of=date(2026, 6, 30))

    assert result.asset("SOL").yield_percent == 0.0
    assert result.total_yield_percent == 0.0


def test_funding_attribution_by_method(make_company, make_structure):
    from dat_analytics.engines.crypto_yield import CryptoYieldEngine

    company = yield_company(make_company, make_structure)

    result = CryptoYieldEngine().calculate(
        company, {"BTC": 60_000.0}, 300.0, window_history(), as_of=datetime(2026, 6, 30, 16, 0)
    )

    [equity] = result.funding
    assert equity.method == "equity"
    assert equity.purchases == 1
    assert equity.value_acquired == pytest.approx(200 * 60_000)
    assert equity.shares_issued == pytest.approx(10_000_000 / 300.0)
    assert result.baseline_value_per_share == pytest.approx(800 * 60_000 / 90_000_000)
    assert equity.is_accretive


def test_cost_basis_report_per_priced_holding(make_company, make_structure):
    from dat_analytics.engines.cost_basis import CostBasisMethod
    from dat_analytics.engines.crypto_yield import CryptoYieldEngine

    company = yield_company(make_company, make_structure)

    result = CryptoYieldEngine().calculate(
        company, {"BTC": 60_000.0}, 300.0, [], as_of=date(2026, 6, 30), cost_basis_method=CostBasisMethod.LIFO
    )

    [report] = result.cost_basis
    assert report.method is CostBasisMethod.LIFO
    assert report.remaining_amount == pytest.approx(1000)


def test_missing_price_excluded_from_blended_yield(make_company, make_structure):
    from dat_analytics.engines.crypto_yield import CryptoYieldEngine

    company = yield_company(make_company, make_structure)

    result = CryptoYieldEngine().calculate(company, {}, 300.0, window_history(), as_of=date(2026, 6, 30))

    assert result.asset("BTC").yield_percent == pytest.approx(12.5)
    assert result.total_yield_percent == 0.0
    assert [i.code for i in result.issues] == ["missing_price"]
    assert result.cost_basis == []
    assert result.funding == []


def test_unpriced_purchases_left_out_of_funding_attribution(make_company, make_structure):
    from dataclasses import replace
    from dat_analytics.engines.crypto_yield import CryptoYieldEngine
    from dat_analytics.models import FundingMethod, TransactionType, TreasuryHolding, TreasuryTransaction

    base = yield_company(make_company, make_structure)
    eth_purchase = TreasuryTransaction(
        id="eth", date=date(2026, 6, 1), amount=1000, price_per_unit=3_000, total_cost=3_000_000,
        type=TransactionType.PURCHASE, funding_method=FundingMethod.EQUITY,
    )
    eth = TreasuryHolding(
        crypto="ETH", amount=1000, average_cost_basis=3_000, total_cost=3_000_000, transactions=[eth_purchase]
    )
    company = replace(base, treasury=[*base.treasury, eth])

    result = CryptoYieldEngine().calculate(
        company, {"BTC": 60_000.0}, 300.0, window_history(), as_of=datetime(2026, 6, 30, 16, 0)
    )

    [equity] = result.funding
    assert equity.purchases == 1
    assert equity.value_acquired == pytest.approx(200 * 60_000)
    assert equity.shares_issued == pytest.approx(10_000_000 / 300.0)
    assert [(i.code, i.subject) for i in result.issues] == [("missing_price", "ETH")]


def test_compare_ranks_by_each_peers_own_yield(make_company, make_structure):
    from dataclasses import replace
    from dat_analytics.engines.crypto_yield import CryptoYieldEngine

    engine = CryptoYieldEngine()
    base = engine.calculate(
        yield_company(make_company, make_structure), {"BTC": 60_000.0}, 300.0, window_history(), as_of=date(2026, 6, 30)
    )
    results = {
        "AAA": replace(base, ticker="AAA", total_yield_percent=5.0),
        "BBB": replace(base, ticker="BBB", total_yield_percent=20.0),
        "CCC": replace(base, ticker="CCC", total_yield_percent=-3.0),
    }

    rankings = engine.compare(results)

    assert [r.ticker for r in rankings] == ["BBB", "AAA", "CCC"]
    assert rankings[0].percentile == pytest.approx(100.0)
    assert rankings[-1].rank == 3
