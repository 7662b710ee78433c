"""Market risk: volatility, reference betas, risk-adjusted return and drawdown."""
import logging
import math
from dataclasses import dataclass
from datetime import date

import numpy as np

from dat_analytics.core.config import RiskPolicy
from dat_analytics.models import HistoricalDataPoint
from dat_analytics.engines.numeric import mean, percent_returns, population_std, safe_divide

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Volatility:
    """Return volatility in percent, scaled by the square root of time."""

    daily: float
    weekly: float
    monthly: float
    annualized: float


@dataclass(frozen=True)
class Drawdown:
    max_drawdown_percent: float  # 0 or negative
    peak_date: date | None
    trough_date: date | None
    duration_days: int
    recovery_date: date | None


@dataclass(frozen=True)
class MarketRisk:
    volatility: Volatility
    betas: dict[str, float]  # annualized volatility over each reference volatility
    sharpe_ratio: float
    sortino_ratio: float
    max_drawdown: Drawdown
    up_day_ratio: float
    observations: int


def calculate_volatility(returns: list[float], trading_days: int) -> Volatility:
    """Volatility from percent daily returns (population standard deviation)."""
    daily = population_std(returns)
    return Volatility(
        daily=daily,
        weekly=daily * math.sqrt(5),
        monthly=daily * math.sqrt(21),
        annualized=daily * math.sqrt(trading_days),
    )


def calculate_betas(annualized_volatility: float, reference_volatilities: dict[str, float]) -> dict[str, float]:
    return {
        symbol: safe_divide(annualized_volatility, ref_vol)
        for symbol, ref_vol in reference_volatilities.items()
    }


def _excess_returns(returns: list[float], risk_free_rate: float, trading_days: int) -> list[float]:
    daily_rf = risk_free_rate / trading_days
    return [r / 100 - daily_rf for r in returns]


def sharpe_ratio(returns: list[float], risk_free_rate: float, trading_days: int) -> float:
    """Annualized Sharpe ratio from percent daily returns."""
    excess = _excess_returns(returns, risk_free_rate, trading_days)
    return safe_divide(mean(excess), population_std(excess)) * math.sqrt(trading_days)


def sortino_ratio(returns: list[float], risk_free_rate: float, trading_days: int) -> float:
    """Annualized Sortino ratio using downside deviation below the risk-free rate."""
    excess = _excess_returns(returns, risk_free_rate, trading_days)
    if not excess:
        return 0.0
    downside = math.sqrt(mean([min(0.0, e) ** 2 for e in excess]))
    return safe_divide(mean(excess), downside) * math.sqrt(trading_days)


def max_drawdown(dates: list[date], prices: list[float]) -> Drawdown:
    """Worst peak-to-trough decline using a running peak.

    Args:
        dates: Observation dates, oldest first
        prices: Prices aligned with ``dates``

    Returns:
        Drawdown with peak, trough and recovery dates
    """
    empty = Drawdown(0.0, None, None, 0, None)
    if len(prices) < 2:
        return empty

    values = np.asarray(prices, dtype=float)
    running_max = np.maximum.accumulate(values)
    with np.errstate(divide="ignore", invalid="ignore"):
        drawdowns = np.where(running_max > 0, (values - running_max) / running_max, 0.0)

    trough = int(np.argmin(drawdowns))
    worst = float(drawdowns[trough])
    if worst >= 0:
        return empty

    peak_value = running_max[trough]
    peak = int(np.where(values[: trough + 1] == peak_value)[0][-1])

    recovery_date = None
    recovered = np.where(values[trough + 1:] >= peak_value)[0]
    if len(recovered) > 0:
        recovery_date = dates[trough + 1 + int(recovered[0])]

    return Drawdown(
        max_drawdown_percent=worst * 100,
        peak_date=dates[peak],
        trough_date=dates[trough],
        duration_days=(dates[trough] - dates[peak]).days,
        recovery_date=recovery_date,
    )


def assess_market_risk(history: list[HistoricalDataPoint], policy: RiskPolicy) -> MarketRisk:
    """Market risk from a company's stock price history."""
    ordered = sorted(history, key=lambda p: p.date)
    prices = [p.stock_price for p in ordered]
    returns = percent_returns(prices)

    volatility = calculate_volatility(returns, policy.trading_days)
    result = MarketRisk(
        volatility=volatility,
        betas=calculate_betas(volatility.annualized, policy.reference_volatilities),
        sharpe_ratio=sharpe_ratio(returns, policy.risk_free_rate, policy.trading_days),
        sortino_ratio=sortino_ratio(returns, policy.risk_free_rate, policy.trading_days),
        max_drawdown=max_drawdown([p.date for p in ordered], prices),
        up_day_ratio=safe_divide(sum(1 for r in returns if r > 0), len(returns)),
        observations=len(returns),
    )

    logger.debug(
        "EXIT: Market risk assessed",
        extra={
            "extra_data": {
                "action": "market_risk",
                "observations": len(returns),
                "annualized_volatility": round(volatility.annualized, 4),
                "sharpe_ratio": round(result.sharpe_ratio, 4),
                "max_drawdown_percent": round(result.max_drawdown.max_drawdown_percent, 4),
            }
        },
    )
    return result
