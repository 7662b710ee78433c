"""Historical-simulation value at risk."""
import math
from dataclasses import dataclass

from dat_analytics.engines.numeric import mean, population_std


@dataclass(frozen=True)
class ValueAtRisk:
    """VaR and CVaR in percent of value; losses are negative.

    ``var99 <= var95 <= 0`` and ``cvar95 <= var95``.
    """

    var95_daily: float
    var99_daily: float
    var95_weekly: float
    var99_weekly: float
    var95_monthly: float
    var99_monthly: float
    cvar95: float
    cvar99: float
    var95_market_value: float  # daily VaR95 applied to market cap
    tail_kurtosis: float  # excess kurtosis of returns
    observations: int


def _tail(ordered: list[float], tail_fraction: float) -> tuple[float, float]:
    """VaR and CVaR for the worst ``tail_fraction`` of returns sorted ascending."""
    index = math.floor(len(ordered) * tail_fraction)
    var = min(ordered[index], 0.0)
    beyond = ordered[:index]
    cvar = min(mean(beyond), var) if beyond else var
    return var, cvar


def excess_kurtosis(returns: list[float]) -> float:
    std = population_std(returns)
    if std == 0:
        return 0.0
    m = mean(returns)
    return mean([((r - m) / std) ** 4 for r in returns]) - 3


def historical_var(returns: list[float], market_cap: float = 0.0) -> ValueAtRisk:
    """Order-statistic VaR at 95% and 99%, scaled to weekly and monthly by sqrt(time).

    Args:
        returns: Percent daily returns
        market_cap: Value the daily VaR95 is applied to

    Returns:
        ValueAtRisk (all zero without returns)
    """
    if not returns:
        return ValueAtRisk(0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0)

    ordered = sorted(returns)
    var95, cvar95 = _tail(ordered, 0.05)
    var99, cvar99 = _tail(ordered, 0.01)

    return ValueAtRisk(
        var95_daily=var95,
        var99_daily=var99,
        var95_weekly=var95 * math.sqrt(5),
        var99_weekly=var99 * math.sqrt(5),
        var95_monthly=var95 * math.sqrt(21),
        var99_monthly=var99 * math.sqrt(21),
        cvar95=cvar95,
        cvar99=cvar99,
        var95_market_value=var95 / 100 * market_cap,
        tail_kurtosis=excess_kurtosis(returns),
        observations=len(returns),
    )
