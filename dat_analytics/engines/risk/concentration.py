"""Treasury concentration risk."""
from dataclasses import dataclass
from typing import Iterable

from dat_analytics.core.config import RiskPolicy
from dat_analytics.engines.numeric import safe_divide
from dat_analytics.engines.treasury_valuation import TreasuryValuation


@dataclass(frozen=True)
class AssetExposure:
    symbol: str
    value: float
    percent_of_treasury: float
    percent_of_market_cap: float
    liquidity_score: float


@dataclass(frozen=True)
class ConcentrationRisk:
    herfindahl_index: float
    category: str  # Low, Medium, High, Critical
    asset_count: int
    top_holding: str | None
    top_holding_percent: float
    diversification_ratio: float
    exposures: list[AssetExposure]


def herfindahl_index(weights: Iterable[float]) -> float:
    """Sum of squared value shares; 1/n <= HHI <= 1 for n priced assets."""
    return sum(w * w for w in weights)


def concentration_category(hhi: float, bands: list[float]) -> str:
    low, medium, high = bands
    if hhi < low:
        return "Low"
    if hhi < medium:
        return "Medium"
    if hhi < high:
        return "High"
    return "Critical"


def assess_concentration(treasury: TreasuryValuation, market_cap: float, policy: RiskPolicy) -> ConcentrationRisk:
    exposures = [
        AssetExposure(
            symbol=m.symbol,
            value=m.value,
            percent_of_treasury=m.weight * 100,
            percent_of_market_cap=safe_divide(m.value, market_cap) * 100,
            liquidity_score=policy.asset_liquidity_scores.get(m.symbol, policy.default_liquidity_score),
        )
        for m in treasury.marks
    ]
    hhi = herfindahl_index(m.weight for m in treasury.marks)
    top = max(exposures, key=lambda e: (e.value, e.symbol), default=None)
    n = len(exposures)

    return ConcentrationRisk(
        herfindahl_index=hhi,
        category=concentration_category(hhi, policy.concentration_bands),
        asset_count=n,
        top_holding=top.symbol if top else None,
        top_holding_percent=top.percent_of_treasury if top else 0.0,
        diversification_ratio=safe_divide(safe_divide(1.0, hhi), n),
        exposures=exposures,
    )
