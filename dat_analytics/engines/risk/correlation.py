"""Asset correlations and market regime detection."""
import math
from dataclasses import dataclass

from dat_analytics.core.config import RiskPolicy
from dat_analytics.models import HistoricalDataPoint
from dat_analytics.engines.numeric import correlation, mean, population_std


@dataclass(frozen=True)
class CorrelationRegime:
    asset_correlations: dict[str, dict[str, float]]
    average_asset_correlation: float
    series_correlations: dict[str, float]  # measured from history
    regime: str  # Risk-On, Risk-Off, Neutral
    regime_probability: float
    average_daily_return: float  # percent
    recent_volatility: float  # annualized percent over the regime window


def reference_correlation(a: str, b: str, policy: RiskPolicy) -> float:
    if a == b:
        return 1.0
    table = policy.reference_correlations
    return table.get(f"{a}-{b}", table.get(f"{b}-{a}", policy.default_correlation))


def asset_correlation_matrix(symbols: list[str], policy: RiskPolicy) -> dict[str, dict[str, float]]:
    return {a: {b: reference_correlation(a, b, policy) for b in symbols} for a in symbols}


def aligned_returns(history: list[HistoricalDataPoint]) -> dict[str, list[float]]:
    """Percent returns of stock, treasury and NAV series over common observations."""
    series: dict[str, list[float]] = {"stock": [], "treasury": [], "nav": []}
    for prev, curr in zip(history, history[1:]):
        if prev.stock_price == 0 or prev.treasury_value == 0 or prev.nav_per_share == 0:
            continue
        series["stock"].append((curr.stock_price - prev.stock_price) / prev.stock_price * 100)
        series["treasury"].append((curr.treasury_value - prev.treasury_value) / prev.treasury_value * 100)
        series["nav"].append((curr.nav_per_share - prev.nav_per_share) / prev.nav_per_share * 100)
    return series


def detect_regime(returns: list[float], policy: RiskPolicy) -> tuple[str, float, float]:
    """Classify the recent market regime.

    Returns:
        (regime, average daily return, recent annualized volatility)
    """
    average = mean(returns)
    recent = returns[-policy.regime_window:]
    recent_vol = population_std(recent) * math.sqrt(policy.trading_days)

    if average > policy.risk_on_return and recent_vol < policy.risk_on_volatility:
        regime = "Risk-On"
    elif average < policy.risk_off_return or recent_vol > policy.risk_off_volatility:
        regime = "Risk-Off"
    else:
        regime = "Neutral"
    return regime, average, recent_vol


def assess_correlation(
    symbols: list[str],
    history: list[HistoricalDataPoint],
    stock_returns: list[float],
    policy: RiskPolicy,
) -> CorrelationRegime:
    matrix = asset_correlation_matrix(symbols, policy)
    pairs = [matrix[a][b] for i, a in enumerate(symbols) for b in symbols[i + 1:]]

    ordered = sorted(history, key=lambda p: p.date)
    series = aligned_returns(ordered)
    regime, average, recent_vol = detect_regime(stock_returns, policy)

    return CorrelationRegime(
        asset_correlations=matrix,
        average_asset_correlation=mean(pairs),
        series_correlations={
            "stock_treasury": correlation(series["stock"], series["treasury"]),
            "stock_nav": correlation(series["stock"], series["nav"]),
            "treasury_nav": correlation(series["treasury"], series["nav"]),
        },
        regime=regime,
        regime_probability=policy.regime_probabilities.get(regime, 0.5),
        average_daily_return=average,
        recent_volatility=recent_vol,
    )
