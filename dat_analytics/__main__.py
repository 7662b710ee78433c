"""Main entry point for the treasury analytics CLI."""
import argparse
import asyncio
import json
import logging
import sys

from dat_analytics.core.config import load_config, ConfigError
from dat_analytics.core.errors import AnalyticsError
from dat_analytics.core.orchestrator import AnalyticsOrchestrator
from dat_analytics.engines.nav import PriceScenario
from dat_analytics.models import to_dict

logger = logging.getLogger(__name__)


def parse_scenario(text: str) -> PriceScenario:
    """Parse ``NAME:SYM=PRICE,SYM=PRICE`` into a PriceScenario."""
    name, sep, body = text.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"Scenario must look like NAME:SYM=PRICE,... (got {text!r})")

    prices = {}
    for pair in body.split(","):
        symbol, eq, value = pair.partition("=")
        if not eq or not symbol.strip():
            raise argparse.ArgumentTypeError(f"Invalid price {pair!r} in scenario {name!r}")
        try:
            prices[symbol.strip().upper()] = float(value)
        except ValueError:
            raise argparse.ArgumentTypeError(f"Invalid price {value!r} for {symbol} in scenario {name!r}")
    return PriceScenario(name=name.strip(), prices=prices)


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="python -m dat_analytics",
        description="Digital-asset treasury analytics - NAV, yield, dilution, risk and peer comparison",
    )

    parser.add_argument(
        "-c", "--config",
        default="config/default.yaml",
        help="Path to configuration file (default: config/default.yaml)",
    )

    parser.add_argument(
        "-l", "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    analyze = commands.add_parser("analyze", help="Comprehensive analytics for one company")
    analyze.add_argument("ticker")

    for name, help_text in (
        ("crypto-yield", "Crypto yield and cost basis for one company"),
        ("risk", "Risk assessment for one company"),
        ("nav-history", "Stored NAV series and attribution of its change"),
    ):
        single = commands.add_parser(name, help=help_text)
        single.add_argument("ticker")

    compare = commands.add_parser("compare", help="Peer comparison (all known tickers if none given)")
    compare.add_argument("tickers", nargs="*")

    scenario = commands.add_parser("scenario", help="NAV under crypto price scenarios")
    scenario.add_argument("ticker")
    scenario.add_argument(
        "--prices",
        action="append",
        type=parse_scenario,
        default=[],
        metavar="NAME:SYM=PRICE,...",
        help="Scenario prices; repeat for several scenarios (default: configured Bull/Base/Bear)",
    )

    return parser.parse_args(args)


def setup_logging(level: str) -> None:
    """Configure logging for the application.

    Args:
        level: Logging level string (DEBUG, INFO, etc.)
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # stdout carries the JSON result
    logging.basicConfig(
        level=getattr(logging, level),
        format=log_format,
        handlers=[
            logging.StreamHandler(sys.stderr),
        ],
    )


async def run_command(orchestrator: AnalyticsOrchestrator, parsed_args: argparse.Namespace):
    if parsed_args.command == "analyze":
        return await orchestrator.get_comprehensive_analytics(parsed_args.ticker.upper())
    if parsed_args.command == "crypto-yield":
        return await orchestrator.get_crypto_yield_analysis(parsed_args.ticker.upper())
    if parsed_args.command == "risk":
        return await orchestrator.get_risk_assessment(parsed_args.ticker.upper())
    if parsed_args.command == "nav-history":
        return await orchestrator.get_nav_history(parsed_args.ticker.upper())
    if parsed_args.command == "compare":
        tickers = [t.upper() for t in parsed_args.tickers]
        return await orchestrator.get_comparative_analytics(tickers or None)

    scenarios = parsed_args.prices
    if not scenarios:
        scenarios = [
            PriceScenario(name=f"{name} Case", prices=dict(prices))
            for name, prices in orchestrator.engines.scenario_policy.default_price_scenarios.items()
        ]
    return await orchestrator.run_scenario_analysis(parsed_args.ticker.upper(), scenarios)


def main(args: list[str] | None = None) -> int:
    """Main entry point.

    Args:
        args: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parsed_args = parse_args(args)

    setup_logging(parsed_args.log_level)

    logger.info(f"Config: {parsed_args.config}")

    try:
        config = load_config(parsed_args.config)
        orchestrator = AnalyticsOrchestrator.from_config(config)
        result = asyncio.run(run_command(orchestrator, parsed_args))
        print(json.dumps(to_dict(result), indent=2))
        return 0

    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    except AnalyticsError as e:
        logger.error(f"Analytics error: {e}")
        return 1

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0

    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
