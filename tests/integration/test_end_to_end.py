"""End-to-end tests: JSON and Parquet files on disk through the CLI."""
import copy
import json
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
import pytest

from dat_analytics.__main__ import main
from dat_analytics.core.data_store import FileDataStore
from dat_analytics.models import CryptoPrice, HistoricalDataPoint


COMPANY_DOCUMENTS = {
    "MSTR": {
        "ticker": "MSTR",
        "name": "Strategy Inc",
        "market_cap": 30_000_000_000,
        "shares_outstanding": 100_000_000,
        "shareholders_equity": 2_000_000_000,
        "total_debt": 4_000_000_000,
        "capital_structure": {
            "shares_basic": 100_000_000,
            "shares_diluted_current": 104_000_000,
            "stock_options": 5_000_000,
            "restricted_stock_units": 1_000_000,
            "convertible_debt": [
                {"id": "2028s", "principal": 1_000_000_000, "interest_rate": 0.02, "conversion_price": 500.0,
                 "maturity_date": "2028-12-01"},
            ],
            "warrants": [],
        },
        "treasury": [
            {
                "crypto": "BTC",
                "amount": 1000,
                "average_cost_basis": 30_000,
                "total_cost": 30_000_000,
                "transactions": [
                    {"id": "p1", "date": "2025-01-10", "amount": 800, "price_per_unit": 30_000,
                     "total_cost": 24_000_000, "type": "purchase", "funding_method": "convertible_debt"},
                    {"id": "p2", "date": "2026-05-20", "amount": 200, "price_per_unit": 30_000,
                     "total_cost": 6_000_000, "type": "purchase", "funding_method": "at_the_market"},
                ],
            },
        ],
        "business_model": {
            "revenue_streams": ["software"],
            "operating_revenue": 500_000_000,
            "operating_expenses": 450_000_000,
            "cash_burn_rate": 10_000_000,
        },
        "governance": {"board_size": 7, "independent_directors": 4, "ceo_founder": True},
    },
    "SMLR": {
        "ticker": "SMLR",
        "name": "Semler Scientific",
        "market_cap": 300_000_000,
        "shares_outstanding": 7_000_000,
        "shareholders_equity": 150_000_000,
        "total_debt": 0,
        "capital_structure": {"shares_basic": 7_000_000},
        "treasury": [{"crypto": "BTC", "amount": 2000, "average_cost_basis": 80_000, "total_cost": 160_000_000}],
    },
}


@pytest.fixture
def workspace():
    """Data directory seeded with company documents, prices and history, plus a config file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        base = Path(tmpdir)
        store = FileDataStore(base / "data")
        as_of = datetime.now()
        documents = copy.deepcopy(COMPANY_DOCUMENTS)
        # a purchase inside the current quarterly window
        documents["MSTR"]["treasury"][0]["transactions"][1]["date"] = (as_of.date() - timedelta(days=10)).isoformat()
        for ticker, document in documents.items():
            (base / "data" / "companies" / f"{ticker}.json").write_text(json.dumps(document))

        store.write_crypto_prices([CryptoPrice(symbol="BTC", price=60_000.0, timestamp=as_of)])
        store.write_stock_price("MSTR", 300.0)
        store.write_stock_price("SMLR", 40.0)
        for ticker, price in (("MSTR", 300.0), ("SMLR", 40.0)):
            start = as_of.date() - timedelta(days=30)
            store.write_history(ticker, [
                HistoricalDataPoint(
                    date=start + timedelta(days=i),
                    stock_price=price * (1 + (0.02 if i % 2 else -0.01)),
                    treasury_value=60_000_000.0,
                    nav_per_share=20.0,
                    shares_outstanding=100_000_000,
                    shares_diluted=100_000_000,
                )
                for i in range(31)
            ])

        config_path = base / "config.yaml"
        config_path.write_text(f"""
data_store:
  backend: file
  path: "{base / 'data'}"

analytics:
  missing_price_policy: exclude
  yield_period: quarterly
  cost_basis_method: FIFO
  history_days: 365
""")
        yield base, config_path


def test_analyze_writes_json_and_nav_point(workspace, capsys):
    base, config_path = workspace

    result = main(["--config", str(config_path), "-l", "WARNING", "analyze", "mstr"])

    assert result == 0
    output = json.loads(capsys.readouterr().out)
    assert output["ticker"] == "MSTR"
    assert output["nav"]["treasury"]["total_value"] == pytest.approx(60_000_000)
    assert output["crypto_yield"]["funding"][0]["method"] == "at_the_market"
    assert output["financial_health"]["grade"]
    assert output["financial_health"]["esg"]["governance_quality"] == "Adequate"
    assert [p["scenario"] for p in output["nav_projections"]] == ["Bull Case", "Base Case", "Bear Case"]

    nav_series = FileDataStore(base / "data").read_nav_series("MSTR")
    assert len(nav_series) == 1


def test_compare_all_known_tickers(workspace, capsys):
    _, config_path = workspace

    result = main(["--config", str(config_path), "-l", "WARNING", "compare"])

    assert result == 0
    output = json.loads(capsys.readouterr().out)
    assert output["tickers"] == ["MSTR", "SMLR"]
    assert output["excluded"] == {}
    assert len(output["composite"]) == 2


def test_compare_reports_unknown_ticker_as_excluded(workspace, capsys):
    _, config_path = workspace

    result = main(["--config", str(config_path), "-l", "WARNING", "compare", "MSTR", "NOPE"])

    assert result == 0
    output = json.loads(capsys.readouterr().out)
    assert output["tickers"] == ["MSTR"]
    assert "NOPE" in output["excluded"]


def test_scenario_with_explicit_prices(workspace, capsys):
    _, config_path = workspace

    result = main([
        "--config", str(config_path), "-l", "WARNING",
        "scenario", "SMLR", "--prices", "Halving Rally:BTC=120000",
    ])

    assert result == 0
    output = json.loads(capsys.readouterr().out)
    [scenario] = output["scenarios"]
    assert scenario["name"] == "Halving Rally"
    assert scenario["treasury_impact_percent"] == pytest.approx(100.0)
    assert "Position maintains strong upside exposure to crypto rally" in output["recommendations"]


def test_unknown_ticker_exits_with_error(workspace):
    _, config_path = workspace

    assert main(["--config", str(config_path), "-l", "WARNING", "analyze", "NOPE"]) == 1


def test_nav_history_after_analyze(workspace, capsys):
    _, config_path = workspace

    assert main(["--config", str(config_path), "-l", "WARNING", "analyze", "MSTR"]) == 0
    capsys.readouterr()

    result = main(["--config", str(config_path), "-l", "WARNING", "nav-history", "MSTR"])

    assert result == 0
    output = json.loads(capsys.readouterr().out)
    assert len(output["points"]) == 1
    assert output["attribution"] is None


def test_risk_command_prints_scorecard(workspace, capsys):
    _, config_path = workspace

    result = main(["--config", str(config_path), "-l", "WARNING", "risk", "SMLR"])

    assert result == 0
    output = json.loads(capsys.readouterr().out)
    assert output["ticker"] == "SMLR"
    assert output["scorecard"]["level"]
