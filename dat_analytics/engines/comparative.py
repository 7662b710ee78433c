"""Peer comparison across a set of treasury companies.

Rankings, percentiles, correlations, an efficiency frontier and relative
value multiples, all computed over whatever peers are supplied. Peers that
failed upstream are simply absent from the mapping.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Mapping

from dat_analytics.core.config import ComparativePolicy, RiskPolicy
from dat_analytics.models import CalculatedMetrics, Company, HistoricalDataPoint
from dat_analytics.engines.crypto_yield import CryptoYieldEngine, CryptoYieldResult, YieldRanking
from dat_analytics.engines.numeric import correlation, mean, percent_change, population_std, safe_divide

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PeerData:
    """Everything the comparison needs for one company."""

    company: Company
    metrics: CalculatedMetrics
    history: list[HistoricalDataPoint] = field(default_factory=list)
    crypto_yield: CryptoYieldResult | None = None


# =============================================================================
# Result types
# =============================================================================


@dataclass(frozen=True)
class Outlier:
    ticker: str
    metric: str
    value: float
    z_score: float


@dataclass(frozen=True)
class PeerGroupStats:
    tickers: list[str]
    avg_market_cap: float
    avg_treasury_value: float
    avg_premium_to_nav: float
    avg_crypto_yield: float
    avg_dilution_rate: float
    market_cap_std: float
    treasury_value_std: float
    premium_to_nav_std: float
    outliers: list[Outlier]


@dataclass(frozen=True)
class CompanyRanking:
    rank: int
    ticker: str
    value: float
    percentile: float
    quartile: int


@dataclass(frozen=True)
class MetricRankings:
    by_treasury_value: list[CompanyRanking]
    by_nav_per_share: list[CompanyRanking]
    by_premium_to_nav: list[CompanyRanking]
    by_crypto_yield: list[CompanyRanking]
    by_risk_score: list[CompanyRanking]
    by_efficiency: list[CompanyRanking]
    composite: list[CompanyRanking]


@dataclass(frozen=True)
class PeerPercentiles:
    treasury_value: float
    nav_per_share: float
    premium_to_nav: float
    crypto_yield: float
    dilution_rate: float
    risk_score: float
    overall: float


@dataclass(frozen=True)
class PeerCluster:
    name: str
    tickers: list[str]
    characteristics: list[str]


@dataclass(frozen=True)
class PeerCorrelations:
    price_correlations: dict[str, dict[str, float]]
    metric_correlations: dict[str, float]
    clusters: list[PeerCluster]


@dataclass(frozen=True)
class FrontierPoint:
    ticker: str
    risk: float  # annualized volatility, percent
    expected_return: float  # crypto yield, percent
    sharpe_ratio: float
    on_frontier: bool


@dataclass(frozen=True)
class OptimalPortfolio:
    weights: dict[str, float]
    expected_return: float
    expected_risk: float
    sharpe_ratio: float


@dataclass(frozen=True)
class EfficiencyFrontier:
    points: list[FrontierPoint]
    optimal_portfolio: OptimalPortfolio


@dataclass(frozen=True)
class ValuationMultiple:
    ticker: str
    price_to_nav: float
    price_to_treasury: float
    ev_to_treasury: float
    peg_ratio: float


@dataclass(frozen=True)
class RelativeValue:
    multiples: list[ValuationMultiple]
    cheapest: list[str]
    most_expensive: list[str]
    fair_value: dict[str, float]
    mispricing_percent: dict[str, float]


@dataclass(frozen=True)
class ComparativeAnalysis:
    peer_group: PeerGroupStats
    rankings: MetricRankings
    percentiles: dict[str, PeerPercentiles]
    correlations: PeerCorrelations
    efficiency_frontier: EfficiencyFrontier
    relative_value: RelativeValue
    yield_comparison: list[YieldRanking]


# =============================================================================
# Helpers
# =============================================================================


def _yield(m: CalculatedMetrics) -> float:
    return m.crypto_yield.get("total", 0.0)


def leave_one_out_z(values: Mapping[str, float]) -> dict[str, float]:
    """Z-score of each value against the mean and std of the other values.

    When the others have no dispersion, a value that differs from them scores
    +/-inf and a value equal to them scores zero. With fewer than two other
    values there is no reference group and every score is zero.
    """
    scores = {}
    for ticker, value in values.items():
        rest = [v for t, v in values.items() if t != ticker]
        if len(rest) < 2:
            scores[ticker] = 0.0
            continue
        center = mean(rest)
        std = population_std(rest)
        if std > 0:
            scores[ticker] = (value - center) / std
        elif value == center:
            scores[ticker] = 0.0
        else:
            scores[ticker] = math.copysign(math.inf, value - center)
    return scores


def _quartile(percentile: float) -> int:
    if percentile >= 75:
        return 1
    if percentile >= 50:
        return 2
    if percentile >= 25:
        return 3
    return 4


def rank_by(values: Mapping[str, float], higher_is_better: bool = True) -> list[CompanyRanking]:
    """Rank tickers by value; ties broken by ticker for a stable order."""
    sign = -1 if higher_is_better else 1
    ordered = sorted(values.items(), key=lambda item: (sign * item[1], item[0]))
    n = len(ordered)
    rankings = []
    for i, (ticker, value) in enumerate(ordered):
        percentile = (n - i) / n * 100
        rankings.append(CompanyRanking(
            rank=i + 1, ticker=ticker, value=value, percentile=percentile, quartile=_quartile(percentile)
        ))
    return rankings


def composite_ranking(rankings: list[list[CompanyRanking]]) -> list[CompanyRanking]:
    """Average each ticker's rank across rankings, then re-rank ascending."""
    totals: dict[str, int] = {}
    for ranking in rankings:
        for r in ranking:
            totals[r.ticker] = totals.get(r.ticker, 0) + r.rank
    averages = {ticker: total / len(rankings) for ticker, total in totals.items()}
    return rank_by(averages, higher_is_better=False)


def percentile_of(value: float, values: list[float], higher_is_better: bool = True) -> float:
    """Share of the group this value beats, in percent."""
    if not values:
        return 0.0
    if higher_is_better:
        beaten = sum(1 for v in values if v < value)
    else:
        beaten = sum(1 for v in values if v > value)
    return beaten / len(values) * 100


def paired_returns(a: list[HistoricalDataPoint], b: list[HistoricalDataPoint]) -> tuple[list[float], list[float]]:
    """Stock returns of two companies over their common observation dates."""
    prices_a = {p.date: p.stock_price for p in a}
    prices_b = {p.date: p.stock_price for p in b}
    common = sorted(set(prices_a) & set(prices_b))

    returns_a, returns_b = [], []
    for prev, curr in zip(common, common[1:]):
        if prices_a[prev] == 0 or prices_b[prev] == 0:
            continue
        returns_a.append(percent_change(prices_a[curr], prices_a[prev]))
        returns_b.append(percent_change(prices_b[curr], prices_b[prev]))
    return returns_a, returns_b


def _price_performance(history: list[HistoricalDataPoint]) -> float:
    ordered = sorted(history, key=lambda p: p.date)
    if len(ordered) < 2:
        return 0.0
    return percent_change(ordered[-1].stock_price, ordered[0].stock_price)


# =============================================================================
# Engine
# =============================================================================


class ComparativeEngine:
    """Cross-sectional analytics over a peer set."""

    name = "comparative"

    def __init__(
        self,
        policy: ComparativePolicy | None = None,
        risk_policy: RiskPolicy | None = None,
        yield_engine: CryptoYieldEngine | None = None,
    ):
        self.policy = policy or ComparativePolicy()
        self.risk_policy = risk_policy or RiskPolicy()
        self.yield_engine = yield_engine or CryptoYieldEngine()

    def peer_group(self, peers: Mapping[str, PeerData]) -> PeerGroupStats:
        market_caps = {t: p.company.market_cap for t, p in peers.items()}
        treasuries = {t: p.metrics.treasury_value for t, p in peers.items()}
        premiums = {t: p.metrics.premium_to_nav_percent for t, p in peers.items()}

        outliers = []
        for metric, values in (("Treasury Value", treasuries), ("Premium to NAV", premiums)):
            for ticker, z in leave_one_out_z(values).items():
                if abs(z) > self.policy.outlier_z_threshold:
                    outliers.append(Outlier(ticker=ticker, metric=metric, value=values[ticker], z_score=z))
                    logger.debug(
                        f"DECISION: {ticker} is a {metric} outlier",
                        extra={"extra_data": {"action": "outlier", "ticker": ticker, "metric": metric, "z": z}},
                    )

        return PeerGroupStats(
            tickers=list(peers),
            avg_market_cap=mean(list(market_caps.values())),
            avg_treasury_value=mean(list(treasuries.values())),
            avg_premium_to_nav=mean(list(premiums.values())),
            avg_crypto_yield=mean([_yield(p.metrics) for p in peers.values()]),
            avg_dilution_rate=mean([p.metrics.dilution.current_dilution_percent for p in peers.values()]),
            market_cap_std=population_std(list(market_caps.values())),
            treasury_value_std=population_std(list(treasuries.values())),
            premium_to_nav_std=population_std(list(premiums.values())),
            outliers=outliers,
        )

    def rankings(self, peers: Mapping[str, PeerData]) -> MetricRankings:
        def by(metric: Callable[[CalculatedMetrics], float], higher_is_better: bool = True) -> list[CompanyRanking]:
            return rank_by({t: metric(p.metrics) for t, p in peers.items()}, higher_is_better)

        by_treasury = by(lambda m: m.treasury_value)
        by_nav = by(lambda m: m.nav_per_share)
        by_premium = by(lambda m: m.premium_to_nav_percent, higher_is_better=False)
        by_yield = by(_yield)
        by_risk = by(lambda m: m.risk.risk_score, higher_is_better=False)
        by_efficiency = by(lambda m: m.capital_efficiency.capital_allocation_score)

        return MetricRankings(
            by_treasury_value=by_treasury,
            by_nav_per_share=by_nav,
            by_premium_to_nav=by_premium,
            by_crypto_yield=by_yield,
            by_risk_score=by_risk,
            by_efficiency=by_efficiency,
            composite=composite_ranking([by_treasury, by_nav, by_premium, by_yield, by_risk, by_efficiency]),
        )

    def percentiles(self, peers: Mapping[str, PeerData]) -> dict[str, PeerPercentiles]:
        extractors: dict[str, tuple[Callable[[CalculatedMetrics], float], bool]] = {
            "treasury_value": (lambda m: m.treasury_value, True),
            "nav_per_share": (lambda m: m.nav_per_share, True),
            "premium_to_nav": (lambda m: m.premium_to_nav_percent, False),
            "crypto_yield": (_yield, True),
            "dilution_rate": (lambda m: m.dilution.current_dilution_percent, False),
            "risk_score": (lambda m: m.risk.risk_score, False),
        }
        columns = {
            name: [extract(p.metrics) for p in peers.values()] for name, (extract, _) in extractors.items()
        }

        result = {}
        for ticker, peer in peers.items():
            scores = {
                name: percentile_of(extract(peer.metrics), columns[name], higher_is_better)
                for name, (extract, higher_is_better) in extractors.items()
            }
            result[ticker] = PeerPercentiles(overall=mean(list(scores.values())), **scores)
        return result

    def correlations(self, peers: Mapping[str, PeerData]) -> PeerCorrelations:
        tickers = list(peers)
        matrix: dict[str, dict[str, float]] = {t: {} for t in tickers}
        for i, a in enumerate(tickers):
            matrix[a][a] = 1.0
            for b in tickers[i + 1:]:
                returns_a, returns_b = paired_returns(peers[a].history, peers[b].history)
                matrix[a][b] = matrix[b][a] = correlation(returns_a, returns_b)

        metrics = [p.metrics for p in peers.values()]
        performance = [_price_performance(p.history) for p in peers.values()]
        metric_correlations = {
            "treasury_value_vs_market_cap": correlation(
                [m.treasury_value for m in metrics], [m.market_cap for m in metrics]
            ),
            "yield_vs_premium": correlation([_yield(m) for m in metrics], [m.premium_to_nav_percent for m in metrics]),
            "dilution_vs_performance": correlation(
                [m.dilution.current_dilution_percent for m in metrics], performance
            ),
            "risk_vs_return": correlation([m.risk.implied_volatility for m in metrics], performance),
        }

        p = self.policy
        caps = {t: peer.company.market_cap for t, peer in peers.items()}
        clusters = [
            PeerCluster(
                name="Large Cap Leaders",
                tickers=[t for t, cap in caps.items() if cap > p.large_cap_threshold],
                characteristics=["High treasury value", "Low dilution", "Premium valuation"],
            ),
            PeerCluster(
                name="High Growth",
                tickers=[t for t, cap in caps.items() if cap < p.growth_cap_threshold],
                characteristics=["High crypto yield", "High dilution", "Volatile"],
            ),
            PeerCluster(
                name="Value Plays",
                tickers=[t for t, cap in caps.items() if p.value_cap_floor < cap < p.large_cap_threshold],
                characteristics=["Discount to NAV", "Moderate yield", "Stable"],
            ),
        ]
        return PeerCorrelations(price_correlations=matrix, metric_correlations=metric_correlations, clusters=clusters)

    def efficiency_frontier(self, peers: Mapping[str, PeerData]) -> EfficiencyFrontier:
        rf = self.policy.risk_free_percent
        points = []
        for ticker, peer in peers.items():
            risk = peer.metrics.risk.implied_volatility
            ret = _yield(peer.metrics)
            sharpe = safe_divide(ret - rf, risk)
            points.append(FrontierPoint(
                ticker=ticker,
                risk=risk,
                expected_return=ret,
                sharpe_ratio=sharpe,
                on_frontier=sharpe > self.policy.frontier_sharpe_threshold,
            ))

        members = [pt for pt in points if pt.on_frontier]
        weights = {pt.ticker: 1 / len(members) for pt in members}
        expected_return = sum(pt.expected_return * weights[pt.ticker] for pt in members)
        expected_risk = sum((pt.risk * weights[pt.ticker]) ** 2 for pt in members) ** 0.5

        return EfficiencyFrontier(
            points=points,
            optimal_portfolio=OptimalPortfolio(
                weights=weights,
                expected_return=expected_return,
                expected_risk=expected_risk,
                sharpe_ratio=safe_divide(expected_return - rf, expected_risk),
            ),
        )

    def relative_value(self, peers: Mapping[str, PeerData]) -> RelativeValue:
        cap = self.risk_policy.unbounded_ratio
        multiples = []
        for ticker, peer in peers.items():
            m = peer.metrics
            enterprise_value = peer.company.market_cap + peer.company.total_debt
            multiples.append(ValuationMultiple(
                ticker=ticker,
                price_to_nav=1 + m.premium_to_nav_percent / 100,
                price_to_treasury=safe_divide(peer.company.market_cap, m.treasury_value, cap),
                ev_to_treasury=safe_divide(enterprise_value, m.treasury_value, cap),
                peg_ratio=safe_divide(m.premium_to_nav_percent, _yield(m), cap),
            ))

        ordered = sorted(multiples, key=lambda v: (v.price_to_nav, v.ticker))
        count = self.policy.relative_value_count
        avg_price_to_nav = mean([v.price_to_nav for v in multiples])

        fair_value = {}
        mispricing = {}
        for v in multiples:
            m = peers[v.ticker].metrics
            fair = m.nav_per_share * avg_price_to_nav
            fair_value[v.ticker] = fair
            mispricing[v.ticker] = safe_divide(m.stock_price - fair, fair) * 100

        return RelativeValue(
            multiples=multiples,
            cheapest=[v.ticker for v in ordered[:count]],
            most_expensive=[v.ticker for v in reversed(ordered[-count:])],
            fair_value=fair_value,
            mispricing_percent=mispricing,
        )

    def analyze(self, peers: Mapping[str, PeerData]) -> ComparativeAnalysis:
        """Run every comparison over the peer set.

        Args:
            peers: Ticker -> PeerData for every peer that computed successfully

        Returns:
            ComparativeAnalysis
        """
        logger.debug(
            "ENTER: Comparative analysis",
            extra={"extra_data": {"action": "comparative_start", "tickers": list(peers)}},
        )

        yields = {t: p.crypto_yield for t, p in peers.items() if p.crypto_yield is not None}
        analysis = ComparativeAnalysis(
            peer_group=self.peer_group(peers),
            rankings=self.rankings(peers),
            percentiles=self.percentiles(peers),
            correlations=self.correlations(peers),
            efficiency_frontier=self.efficiency_frontier(peers),
            relative_value=self.relative_value(peers),
            yield_comparison=self.yield_engine.compare(yields),
        )

        leader = analysis.rankings.composite[0].ticker if analysis.rankings.composite else None
        logger.info(
            f"Compared {len(peers)} peers: leader {leader}, "
            f"{len(analysis.peer_group.outliers)} outliers"
        )
        return analysis
