"""Shared fixtures for unit tests."""
from datetime import date, datetime, timedelta

import pytest


AS_OF = datetime(2026, 6, 30, 16, 0, 0)


def build_structure(**overrides):
    from dat_analytics.models import CapitalStructure, ConvertibleDebt, Warrant

    fields = dict(
        shares_basic=100_000_000,
        shares_diluted_current=104_000_000,
        stock_options=5_000_000,
        restricted_stock_units=1_000_000,
        performance_stock_units=500_000,
        warrants=[Warrant(id="W1", strike_price=400.0, shares_per_warrant=1.0, total_warrants=2_000_000)],
        convertible_debt=[
            ConvertibleDebt(id="C1", principal=1_000_000_000, interest_rate=0.02, conversion_price=500.0),
        ],
    )
    fields.update(overrides)
    return CapitalStructure(**fields)


def build_company(ticker="MSTR", treasury=None, structure=None, **overrides):
    from dat_analytics.models import BusinessModel, Company, TreasuryHolding

    if treasury is None:
        treasury = [
            TreasuryHolding(crypto="BTC", amount=1000, average_cost_basis=30_000, total_cost=30_000_000),
            TreasuryHolding(crypto="ETH", amount=5000, average_cost_basis=2_000, total_cost=10_000_000),
        ]
    fields = dict(
        ticker=ticker,
        name=f"{ticker} Inc",
        market_cap=30_000_000_000,
        shares_outstanding=100_000_000,
        shareholders_equity=2_000_000_000,
        total_debt=4_000_000_000,
        capital_structure=structure or build_structure(),
        treasury=treasury,
        business_model=BusinessModel(
            revenue_streams=["software"],
            operating_revenue=500_000_000,
            operating_expenses=450_000_000,
            cash_burn_rate=10_000_000,
        ),
    )
    fields.update(overrides)
    return Company(**fields)


def build_history(days=30, start=date(2026, 5, 31), price=300.0, step=0.01, shares=100_000_000):
    """Daily history with the stock alternating up and down by ``step``."""
    from dat_analytics.models import HistoricalDataPoint

    points = []
    for i in range(days + 1):
        price = price * (1 + step) if i % 2 else price * (1 - step / 2)
        points.append(HistoricalDataPoint(
            date=start + timedelta(days=i),
            stock_price=price,
            treasury_value=80_000_000 + i * 100_000,
            nav_per_share=20.0 + i * 0.01,
            shares_outstanding=shares,
            shares_diluted=shares,
        ))
    return points


@pytest.fixture
def prices():
    return {"BTC": 60_000.0, "ETH": 4_000.0}


@pytest.fixture
def as_of():
    return AS_OF


@pytest.fixture
def make_company():
    return build_company


@pytest.fixture
def make_structure():
    return build_structure


@pytest.fixture
def make_history():
    return build_history


def run_engines(company, prices, history, stock_price=300.0, as_of=AS_OF):
    """Run every single-company engine and assemble the institutional metrics."""
    from dat_analytics.engines import (
        CryptoYieldEngine,
        DilutionEngine,
        NavEngine,
        RiskEngine,
        build_calculated_metrics,
    )

    nav = NavEngine().calculate(company, prices, stock_price, as_of)
    crypto_yield = CryptoYieldEngine().calculate(company, prices, stock_price, history, as_of=as_of)
    dilution = DilutionEngine().analyze(company, prices, stock_price, as_of)
    risk = RiskEngine().assess(company, history, prices)
    metrics = build_calculated_metrics(company, nav, crypto_yield, dilution, risk, history)
    return {
        "nav": nav,
        "crypto_yield": crypto_yield,
        "dilution": dilution,
        "risk": risk,
        "metrics": metrics,
    }


@pytest.fixture
def engine_outputs():
    return run_engines
