"""Configuration loading and validation."""
import logging
from dataclasses import dataclass, field, fields, is_dataclass, replace
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration is invalid."""

    pass


@dataclass
class DataStoreConfig:
    """Data store configuration."""

    backend: str
    path: str


@dataclass
class AnalyticsConfig:
    """Request-level analytics options."""

    missing_price_policy: str = "exclude"  # "exclude" or "fail"
    yield_period: str = "quarterly"  # "quarterly" or "yearly"
    cost_basis_method: str = "FIFO"  # "FIFO", "LIFO" or "AVERAGE"
    history_days: int = 365


# =============================================================================
# Methodology policies
# =============================================================================


@dataclass
class NavPolicy:
    """NAV adjustments and projection assumptions."""

    intangibles_fraction: float = 0.10  # of shareholders' equity
    deferred_tax_fraction: float = 0.05  # of total debt
    working_capital_revenue_fraction: float = 0.15
    net_cash_equity_fraction: float = 0.05
    leverage_multiplier: float = 1.5
    projection_horizon: str = "6 months"
    scenario_probabilities: dict[str, float] = field(
        default_factory=lambda: {"bull": 0.3, "bear": 0.2}
    )
    default_scenario_probability: float = 0.5


@dataclass
class YieldPolicy:
    """Crypto yield, funding attribution and tax assumptions."""

    convertible_premium: float = 1.2
    equity_funding_methods: list[str] = field(
        default_factory=lambda: ["equity", "at_the_market", "pipe"]
    )
    convertible_funding_methods: list[str] = field(default_factory=lambda: ["convertible_debt"])
    long_term_holding_days: int = 365
    long_term_tax_rate: float = 0.20
    short_term_tax_rate: float = 0.37


@dataclass
class DilutionProjectionPolicy:
    """One forward share-count projection."""

    period: str
    share_multiplier: float
    probability: float
    assumptions: list[str] = field(default_factory=list)


def _default_projections() -> list[DilutionProjectionPolicy]:
    return [
        DilutionProjectionPolicy(
            period="1 year",
            share_multiplier=1.05,
            probability=0.7,
            assumptions=["Continued ATM program", "5% annual equity compensation dilution"],
        ),
        DilutionProjectionPolicy(
            period="3 years",
            share_multiplier=1.05 ** 3,
            probability=0.5,
            assumptions=["Steady issuance pace", "5% annual equity compensation dilution"],
        ),
        DilutionProjectionPolicy(
            period="5 years",
            share_multiplier=1.5,
            probability=0.3,
            assumptions=["Convertible conversions", "Aggressive treasury growth", "High equity compensation"],
        ),
    ]


@dataclass
class DilutionPolicy:
    """Dilution projection, conversion and what-if assumptions."""

    projections: list[DilutionProjectionPolicy] = field(default_factory=_default_projections)
    # (moneyness strictly above, probability), checked in order
    conversion_probability_bands: list[list[float]] = field(
        default_factory=lambda: [[0.5, 0.95], [0.2, 0.7], [0.0, 0.4], [-0.1, 0.2]]
    )
    conversion_probability_floor: float = 0.05
    eps_flow_through: float = 0.8
    warrant_volatility: float = 0.6
    warrant_time_value_factor: float = 0.4
    annual_grant_fraction: float = 0.2
    vesting_years: int = 4
    peer_median_burn_rate: float = 2.5
    price_shock_multiplier: float = 2.0
    equity_raise_amount: float = 1_000_000_000.0
    acquisition_share_fraction: float = 0.2
    new_convertible_amount: float = 500_000_000.0
    new_convertible_premium: float = 1.3


@dataclass
class StressScenarioPolicy:
    """A named treasury decline."""

    name: str
    decline: float  # fraction, negative
    probability: float


def _default_stress_scenarios() -> list[StressScenarioPolicy]:
    return [
        StressScenarioPolicy(name="Crypto Winter", decline=-0.50, probability=0.15),
        StressScenarioPolicy(name="Market Correction", decline=-0.30, probability=0.25),
        StressScenarioPolicy(name="Flash Crash", decline=-0.20, probability=0.35),
        StressScenarioPolicy(name="Regulatory Shock", decline=-0.40, probability=0.10),
        StressScenarioPolicy(name="Black Swan", decline=-0.70, probability=0.05),
    ]


@dataclass
class RiskPolicy:
    """Risk engine constants."""

    trading_days: int = 252
    risk_free_rate: float = 0.04
    # annualized volatility in percent
    reference_volatilities: dict[str, float] = field(
        default_factory=lambda: {"SPY": 20.0, "BTC": 80.0, "ETH": 90.0, "SOL": 100.0}
    )
    concentration_bands: list[float] = field(default_factory=lambda: [0.2, 0.35, 0.5])
    current_liability_fraction: float = 0.3
    revenue_current_asset_fraction: float = 0.25
    cash_ratio_haircut: float = 0.9
    max_daily_volume_participation: float = 0.02
    market_impact_divisor: float = 10_000_000.0
    max_market_impact_bps: float = 500.0
    asset_liquidity_scores: dict[str, float] = field(
        default_factory=lambda: {"BTC": 95.0, "ETH": 85.0, "SOL": 70.0}
    )
    default_liquidity_score: float = 50.0
    debt_maturity_profile: dict[str, float] = field(
        default_factory=lambda: {
            "0-1 years": 0.2,
            "1-2 years": 0.2,
            "2-3 years": 0.3,
            "3-5 years": 0.2,
            "5+ years": 0.1,
        }
    )
    stressed_treasury_haircut: float = 0.5
    stressed_burn_multiplier: float = 1.5
    interest_rate: float = 0.05
    treasury_income_yield: float = 0.1
    retained_earnings_fraction: float = 0.5
    # (Z-score strictly above, rating), checked in order
    credit_rating_bands: list[list[Any]] = field(
        default_factory=lambda: [[3.0, "BBB"], [2.6, "BB"], [1.8, "B"]]
    )
    floor_credit_rating: str = "CCC"
    default_probability_midpoint: float = 1.8
    max_recovery_rate: float = 0.8
    operational_weights: dict[str, float] = field(
        default_factory=lambda: {
            "business_model": 0.30,
            "revenue_concentration": 0.20,
            "key_person": 0.20,
            "regulatory": 0.15,
            "cybersecurity": 0.15,
        }
    )
    regulatory_risk: float = 60.0
    cybersecurity_risk: float = 50.0
    reference_correlations: dict[str, float] = field(
        default_factory=lambda: {"BTC-ETH": 0.8, "BTC-SOL": 0.7, "ETH-SOL": 0.75}
    )
    default_correlation: float = 0.5
    regime_window: int = 20
    risk_on_return: float = 0.5  # average daily return, percent
    risk_on_volatility: float = 60.0  # annualized, percent
    risk_off_return: float = -0.5
    risk_off_volatility: float = 100.0
    regime_probabilities: dict[str, float] = field(
        default_factory=lambda: {"Risk-On": 0.7, "Risk-Off": 0.6, "Neutral": 0.5}
    )
    stress_scenarios: list[StressScenarioPolicy] = field(default_factory=_default_stress_scenarios)
    stress_recovery_months: int = 18
    # (stressed treasury / debt below, impact score)
    stress_liquidity_bands: list[list[float]] = field(default_factory=lambda: [[1.5, 80], [2.0, 40]])
    # (stressed treasury plus equity / debt below, impact score)
    stress_solvency_bands: list[list[float]] = field(default_factory=lambda: [[1.2, 90], [2.0, 50]])
    stress_floor_impact: float = 20.0
    # (decline at or below, severity)
    stress_severity_bands: list[list[Any]] = field(
        default_factory=lambda: [[-0.5, "Severe"], [-0.3, "High"], [-0.15, "Medium"]]
    )
    market_score_factor: float = 0.8  # per point of annualized volatility
    liquidity_score_factor: float = 20.0  # per unit of current ratio
    score_weights: dict[str, float] = field(
        default_factory=lambda: {
            "market": 0.25,
            "concentration": 0.25,
            "liquidity": 0.20,
            "credit": 0.20,
            "operational": 0.10,
        }
    )
    score_bands: list[float] = field(default_factory=lambda: [25.0, 50.0, 75.0])
    key_risk_threshold: float = 60.0
    unbounded_ratio: float = 999.0


@dataclass
class HealthPolicy:
    """Financial health buckets, weights and grade cutpoints.

    Bucket tables are lists of ``[threshold, points]`` checked in order.
    """

    weights: dict[str, float] = field(
        default_factory=lambda: {
            "liquidity": 0.20,
            "solvency": 0.25,
            "efficiency": 0.20,
            "growth": 0.15,
            "treasury": 0.20,
        }
    )
    grade_cutpoints: list[list[Any]] = field(
        default_factory=lambda: [
            [93, "A+"], [87, "A"], [83, "A-"], [77, "B+"], [73, "B"], [70, "B-"],
            [67, "C+"], [63, "C"], [60, "C-"], [50, "D"],
        ]
    )
    floor_grade: str = "F"
    rating_cutpoints: list[float] = field(default_factory=lambda: [80.0, 60.0, 40.0])
    strength_threshold: float = 80.0
    weakness_threshold: float = 50.0
    # higher is better
    current_ratio: list[list[float]] = field(default_factory=lambda: [[2.0, 25], [1.5, 20], [1.0, 10]])
    quick_ratio: list[list[float]] = field(default_factory=lambda: [[1.5, 25], [1.0, 20], [0.75, 10]])
    cash_ratio: list[list[float]] = field(default_factory=lambda: [[1.0, 25], [0.5, 15], [0.25, 5]])
    working_capital_points: float = 25.0
    near_working_capital_points: float = 10.0
    near_working_capital_fraction: float = 0.1
    # lower is better
    debt_to_equity: list[list[float]] = field(default_factory=lambda: [[0.5, 25], [1.0, 15], [2.0, 5]])
    debt_to_assets: list[list[float]] = field(default_factory=lambda: [[0.3, 25], [0.5, 15], [0.7, 5]])
    leverage: list[list[float]] = field(default_factory=lambda: [[2.0, 25], [3.0, 15], [4.0, 5]])
    # higher is better
    interest_coverage: list[list[float]] = field(default_factory=lambda: [[5.0, 25], [3.0, 15], [1.5, 5]])
    asset_turnover: list[list[float]] = field(default_factory=lambda: [[0.5, 20], [0.3, 10], [0.1, 5]])
    capital_allocation_weight: float = 0.3
    operating_margin: list[list[float]] = field(default_factory=lambda: [[0.2, 20], [0.0, 10], [-0.2, 5]])
    return_on_assets: list[list[float]] = field(default_factory=lambda: [[0.1, 15], [0.0, 10], [-0.1, 5]])
    return_on_equity: list[list[float]] = field(default_factory=lambda: [[0.15, 15], [0.0, 10], [-0.15, 5]])
    treasury_growth: list[list[float]] = field(
        default_factory=lambda: [[50.0, 30], [25.0, 20], [10.0, 10], [0.0, 5]]
    )
    share_count_growth: list[list[float]] = field(default_factory=lambda: [[5.0, 20], [10.0, 10], [20.0, 5]])
    nav_growth: list[list[float]] = field(default_factory=lambda: [[30.0, 25], [15.0, 15], [5.0, 5]])
    sustainable_growth: list[list[float]] = field(default_factory=lambda: [[10.0, 25], [5.0, 15], [0.0, 5]])
    retention_ratio: float = 0.8
    nav_growth_treasury_fraction: float = 0.8
    treasury_to_market_cap: list[list[float]] = field(default_factory=lambda: [[0.8, 25], [0.6, 20], [0.4, 10]])
    treasury_to_debt: list[list[float]] = field(default_factory=lambda: [[3.0, 25], [2.0, 20], [1.0, 10]])
    diversification_weight: float = 0.15
    quality_weight: float = 0.20
    treasury_roi: list[list[float]] = field(default_factory=lambda: [[50.0, 15], [25.0, 10], [0.0, 5]])
    # ESG, reported alongside the composite and not weighted into it
    esg_environmental_base: float = 50.0
    # added once per asset held; proof-of-stake assets score above proof-of-work
    esg_asset_adjustments: dict[str, float] = field(
        default_factory=lambda: {"BTC": -6.0, "ETH": 21.0, "SOL": 12.0}
    )
    esg_social_treasury_focused: float = 50.0
    esg_social_operating: float = 60.0
    esg_governance_base: float = 40.0
    esg_independence_points: float = 40.0
    esg_founder_ceo_adjustment: float = 10.0  # subtracted for a founder CEO, added otherwise


@dataclass
class ComparativePolicy:
    """Peer comparison constants."""

    outlier_z_threshold: float = 2.0
    frontier_sharpe_threshold: float = 0.5
    risk_free_percent: float = 4.0
    relative_value_count: int = 3
    large_cap_threshold: float = 1_000_000_000.0
    growth_cap_threshold: float = 500_000_000.0
    value_cap_floor: float = 200_000_000.0


@dataclass
class MetricsPolicy:
    """Institutional metric assumptions."""

    cost_of_capital_premium: float = 5.0  # percent over average convertible coupon
    allocation_score_base: float = 50.0
    revenue_stream_points: float = 25.0
    beta_reference: str = "SPY"


def _default_price_scenarios() -> dict[str, dict[str, float]]:
    return {
        "Bull": {"BTC": 100_000.0, "ETH": 10_000.0, "SOL": 500.0},
        "Base": {"BTC": 70_000.0, "ETH": 5_000.0, "SOL": 200.0},
        "Bear": {"BTC": 30_000.0, "ETH": 2_000.0, "SOL": 50.0},
    }


@dataclass
class ScenarioPolicy:
    """Scenario analysis assumptions."""

    keyword_probabilities: dict[str, float] = field(
        default_factory=lambda: {"bull": 0.25, "bear": 0.20, "crash": 0.10, "base": 0.45}
    )
    default_probability: float = 0.33
    stock_sensitivity: float = 1.5
    hedging_threshold: float = -20.0  # treasury impact, percent
    diversification_threshold: float = 30.0  # absolute NAV impact, percent
    upside_threshold: float = 50.0  # treasury impact, percent
    default_price_scenarios: dict[str, dict[str, float]] = field(default_factory=_default_price_scenarios)


@dataclass
class Methodology:
    """Versioned bundle of every policy constant used by the engines."""

    name: str = "dat-core"
    version: str = "1.0.0"
    nav: NavPolicy = field(default_factory=NavPolicy)
    crypto_yield: YieldPolicy = field(default_factory=YieldPolicy)
    dilution: DilutionPolicy = field(default_factory=DilutionPolicy)
    risk: RiskPolicy = field(default_factory=RiskPolicy)
    health: HealthPolicy = field(default_factory=HealthPolicy)
    comparative: ComparativePolicy = field(default_factory=ComparativePolicy)
    metrics: MetricsPolicy = field(default_factory=MetricsPolicy)
    scenarios: ScenarioPolicy = field(default_factory=ScenarioPolicy)


@dataclass
class Config:
    """Main configuration container."""

    data_store: DataStoreConfig
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)
    methodology: Methodology = field(default_factory=Methodology)


VALID_MISSING_PRICE_POLICIES = ("exclude", "fail")
VALID_YIELD_PERIODS = ("quarterly", "yearly")
VALID_COST_BASIS_METHODS = ("FIFO", "LIFO", "AVERAGE")


def _merge_mapping(current: dict, raw: Any, section: str) -> dict:
    """Return ``current`` with the keys in ``raw`` merged in, nested mappings included."""
    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration section {section} must be a mapping")

    merged = dict(current)
    for key, value in raw.items():
        existing = merged.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            merged[key] = _merge_mapping(existing, value, f"{section}.{key}")
        else:
            merged[key] = value
    return merged


def _apply_overrides(policy: Any, raw: Any, section: str) -> Any:
    """Return a copy of ``policy`` with the keys in ``raw`` overridden."""
    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration section {section} must be a mapping")

    known = {f.name for f in fields(policy)}
    updates: dict[str, Any] = {}
    for key, value in raw.items():
        if key not in known:
            raise ConfigError(f"Unknown configuration key: {section}.{key}")

        current = getattr(policy, key)
        if is_dataclass(current):
            updates[key] = _apply_overrides(current, value, f"{section}.{key}")
        elif isinstance(current, list) and current and is_dataclass(current[0]):
            element_type = type(current[0])
            try:
                updates[key] = [element_type(**item) for item in value]
            except TypeError as e:
                raise ConfigError(f"Invalid entries in {section}.{key}: {e}") from e
        elif isinstance(current, dict):
            updates[key] = _merge_mapping(current, value, f"{section}.{key}")
        else:
            updates[key] = value

    return replace(policy, **updates)


def load_methodology(raw: dict | None) -> Methodology:
    """Build a Methodology from a raw mapping, starting from the defaults."""
    if not raw:
        return Methodology()
    return _apply_overrides(Methodology(), raw, "methodology")


def load_config(path: str) -> Config:
    """Load configuration from YAML file.

    Args:
        path: Path to YAML configuration file

    Returns:
        Config object with validated configuration

    Raises:
        ConfigError: If file not found, invalid YAML, missing required sections
            or unknown methodology keys
    """
    config_path = Path(path)

    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML: {e}") from e

    if raw is None:
        raise ConfigError("Configuration file is empty")

    # Validate required sections
    required_sections = ["data_store", "analytics"]
    for section in required_sections:
        if section not in raw:
            raise ConfigError(f"Missing required configuration section: {section}")

    ds_raw = raw["data_store"]
    data_store = DataStoreConfig(
        backend=ds_raw.get("backend", "file"),
        path=ds_raw.get("path", "./data"),
    )

    an_raw = raw["analytics"] or {}
    analytics = AnalyticsConfig(
        missing_price_policy=an_raw.get("missing_price_policy", "exclude"),
        yield_period=an_raw.get("yield_period", "quarterly"),
        cost_basis_method=str(an_raw.get("cost_basis_method", "FIFO")).upper(),
        history_days=an_raw.get("history_days", 365),
    )
    if analytics.missing_price_policy not in VALID_MISSING_PRICE_POLICIES:
        raise ConfigError(f"Invalid missing_price_policy: {analytics.missing_price_policy}")
    if analytics.yield_period not in VALID_YIELD_PERIODS:
        raise ConfigError(f"Invalid yield_period: {analytics.yield_period}")
    if analytics.cost_basis_method not in VALID_COST_BASIS_METHODS:
        raise ConfigError(f"Invalid cost_basis_method: {analytics.cost_basis_method}")

    methodology = load_methodology(raw.get("methodology"))

    config = Config(
        data_store=data_store,
        analytics=analytics,
        methodology=methodology,
    )

    logger.info(f"Loaded configuration from {path}")
    logger.debug(f"Data store: {data_store.backend} at {data_store.path}")
    logger.debug(f"Methodology: {methodology.name} v{methodology.version}")

    return config
