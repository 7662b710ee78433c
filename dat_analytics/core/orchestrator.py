"""Orchestrator for wiring the analytics engines to a data source."""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from dat_analytics.core.config import (
    AnalyticsConfig,
    Config,
    Methodology,
    MetricsPolicy,
    ScenarioPolicy,
)
from dat_analytics.core.data_store import AnalyticsDataSource, FileDataStore, NavSeriesStore
from dat_analytics.core.errors import CompanyNotFoundError
from dat_analytics.models import (
    CalculatedMetrics,
    Company,
    DataQualityIssue,
    HistoricalDataPoint,
    NavPoint,
    price_map,
)
from dat_analytics.engines.comparative import (
    CompanyRanking,
    ComparativeEngine,
    EfficiencyFrontier,
    MetricRankings,
    Outlier,
    PeerCorrelations,
    PeerData,
    PeerGroupStats,
    PeerPercentiles,
    RelativeValue,
)
from dat_analytics.engines.cost_basis import CostBasisMethod
from dat_analytics.engines.crypto_yield import CryptoYieldEngine, CryptoYieldResult, YieldPeriod, YieldRanking
from dat_analytics.engines.dilution import DilutionAnalysis, DilutionEngine
from dat_analytics.engines.financial_health import FinancialHealth, FinancialHealthEngine
from dat_analytics.engines.institutional_metrics import build_calculated_metrics
from dat_analytics.engines.nav import NAVCalculation, NavAttribution, NavEngine, NavProjection, PriceScenario
from dat_analytics.engines.numeric import percent_change
from dat_analytics.engines.risk import RiskAssessment, RiskEngine

logger = logging.getLogger(__name__)


@dataclass
class AnalyticsEngines:
    """The engine set an orchestrator runs; injectable for tests."""

    nav: NavEngine
    crypto_yield: CryptoYieldEngine
    dilution: DilutionEngine
    risk: RiskEngine
    health: FinancialHealthEngine
    comparative: ComparativeEngine
    metrics_policy: MetricsPolicy = field(default_factory=MetricsPolicy)
    scenario_policy: ScenarioPolicy = field(default_factory=ScenarioPolicy)
    methodology_version: str = ""

    @classmethod
    def from_methodology(
        cls, methodology: Methodology | None = None, missing_price_policy: str = "exclude"
    ) -> "AnalyticsEngines":
        m = methodology or Methodology()
        version = f"{m.name}-{m.version}"
        yield_engine = CryptoYieldEngine(m.crypto_yield)
        return cls(
            nav=NavEngine(m.nav, missing_price_policy, version),
            crypto_yield=yield_engine,
            dilution=DilutionEngine(m.dilution, m.nav, missing_price_policy),
            risk=RiskEngine(m.risk, missing_price_policy),
            health=FinancialHealthEngine(m.health, m.risk),
            comparative=ComparativeEngine(m.comparative, m.risk, yield_engine),
            metrics_policy=m.metrics,
            scenario_policy=m.scenarios,
            methodology_version=version,
        )


# =============================================================================
# Result types
# =============================================================================


@dataclass(frozen=True)
class ComprehensiveAnalytics:
    ticker: str
    timestamp: datetime
    nav: NAVCalculation
    nav_projections: list[NavProjection]
    crypto_yield: CryptoYieldResult
    dilution: DilutionAnalysis
    risk: RiskAssessment
    financial_health: FinancialHealth
    institutional_metrics: CalculatedMetrics
    issues: list[DataQualityIssue]


@dataclass(frozen=True)
class PeerInsights:
    averages: PeerGroupStats
    outliers: list[Outlier]
    correlations: PeerCorrelations


@dataclass(frozen=True)
class ComparativeAnalytics:
    timestamp: datetime
    tickers: list[str]
    rankings: MetricRankings
    composite: list[CompanyRanking]
    percentiles: dict[str, PeerPercentiles]
    efficiency_frontier: EfficiencyFrontier
    relative_value: RelativeValue
    yield_comparison: list[YieldRanking]
    peer_insights: PeerInsights
    excluded: dict[str, str]  # ticker -> failure reason


@dataclass(frozen=True)
class ScenarioResult:
    name: str
    prices: dict[str, float]
    nav_per_share: float
    nav_impact_percent: float
    treasury_impact_percent: float
    estimated_stock_impact_percent: float
    premium_change_percent: float
    probability: float


@dataclass(frozen=True)
class ScenarioBaseCase:
    nav: NAVCalculation
    risk: RiskAssessment


@dataclass(frozen=True)
class ScenarioAnalysis:
    ticker: str
    timestamp: datetime
    base_case: ScenarioBaseCase
    scenarios: list[ScenarioResult]
    recommendations: list[str]


@dataclass(frozen=True)
class RealtimeNav:
    ticker: str
    timestamp: datetime
    current: NAVCalculation
    projections: list[NavProjection]


@dataclass(frozen=True)
class NavHistory:
    ticker: str
    points: list[NavPoint]
    attribution: NavAttribution | None


@dataclass(frozen=True)
class _CompanyRun:
    analytics: ComprehensiveAnalytics
    company: Company
    history: list[HistoricalDataPoint]


class AnalyticsOrchestrator:
    """Coordinates the engines for one request.

    Responsibilities:
    1. Fetch the company snapshot and market data
    2. Run NAV, yield, dilution and risk concurrently
    3. Compose institutional metrics and financial health
    4. Persist one NAV point per comprehensive run
    """

    def __init__(
        self,
        data_source: AnalyticsDataSource,
        nav_store: NavSeriesStore | None = None,
        engines: AnalyticsEngines | None = None,
        analytics: AnalyticsConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the orchestrator.

        Args:
            data_source: Company and market data provider
            nav_store: NAV series store; NAV points are not persisted when None
            engines: Engine set (defaults built from the default methodology)
            analytics: Request-level options
            clock: Source of the valuation timestamp
        """
        self.analytics = analytics or AnalyticsConfig()
        self.data_source = data_source
        self.nav_store = nav_store
        self.engines = engines or AnalyticsEngines.from_methodology(
            missing_price_policy=self.analytics.missing_price_policy
        )
        self.clock = clock
        logger.info(f"Orchestrator initialized (methodology {self.engines.methodology_version})")

    @classmethod
    def from_config(cls, config: Config) -> "AnalyticsOrchestrator":
        """Wire a file-backed orchestrator from configuration."""
        store = FileDataStore(config.data_store.path)
        engines = AnalyticsEngines.from_methodology(config.methodology, config.analytics.missing_price_policy)
        return cls(data_source=store, nav_store=store, engines=engines, analytics=config.analytics)

    async def _fetch_company(self, ticker: str) -> Company:
        company = await self.data_source.get_company_by_ticker(ticker)
        if company is None:
            raise CompanyNotFoundError(ticker)
        return company

    async def _fetch_market(self, ticker: str, as_of: datetime) -> tuple[dict[str, float], float, list[HistoricalDataPoint]]:
        end = as_of.date()
        start = end - timedelta(days=self.analytics.history_days)
        crypto_prices, stock_price, history = await asyncio.gather(
            self.data_source.get_crypto_prices(),
            self.data_source.get_stock_price(ticker),
            self.data_source.get_historical_data(ticker, start, end),
        )
        return price_map(crypto_prices), stock_price, history

    def _default_scenarios(self) -> list[PriceScenario]:
        return [
            PriceScenario(name=f"{name} Case", prices=dict(prices))
            for name, prices in self.engines.scenario_policy.default_price_scenarios.items()
        ]

    # =========================================================================
    # Comprehensive analytics
    # =========================================================================

    async def _run(self, ticker: str) -> _CompanyRun:
        as_of = self.clock()
        company = await self._fetch_company(ticker)
        prices, stock_price, history = await self._fetch_market(ticker, as_of)
        e = self.engines

        logger.debug(
            "STEP 1/3: Inputs fetched",
            extra={
                "extra_data": {
                    "action": "inputs_fetched",
                    "ticker": ticker,
                    "assets_priced": len(prices),
                    "stock_price": stock_price,
                    "history_points": len(history),
                }
            },
        )

        nav, crypto_yield, dilution, risk = await asyncio.gather(
            asyncio.to_thread(e.nav.calculate, company, prices, stock_price, as_of),
            asyncio.to_thread(
                e.crypto_yield.calculate,
                company,
                prices,
                stock_price,
                history,
                as_of,
                YieldPeriod(self.analytics.yield_period),
                CostBasisMethod(self.analytics.cost_basis_method),
            ),
            asyncio.to_thread(e.dilution.analyze, company, prices, stock_price, as_of),
            asyncio.to_thread(e.risk.assess, company, history, prices),
        )
        logger.debug(
            "STEP 2/3: Engines complete",
            extra={"extra_data": {"action": "engines_complete", "ticker": ticker}},
        )

        metrics = build_calculated_metrics(
            company, nav, crypto_yield, dilution, risk, history, e.metrics_policy, e.methodology_version
        )
        health = e.health.evaluate(company, nav, risk, metrics, history)
        projections = e.nav.project(nav, self._default_scenarios())

        if self.nav_store is not None:
            await self.nav_store.save_nav_point(e.nav.to_nav_point(nav))
        logger.debug(
            "STEP 3/3: Metrics composed",
            extra={"extra_data": {"action": "metrics_composed", "ticker": ticker, "grade": health.grade}},
        )

        issues = list(dict.fromkeys(nav.issues + crypto_yield.issues + risk.issues))
        analytics = ComprehensiveAnalytics(
            ticker=company.ticker,
            timestamp=as_of,
            nav=nav,
            nav_projections=projections,
            crypto_yield=crypto_yield,
            dilution=dilution,
            risk=risk,
            financial_health=health,
            institutional_metrics=metrics,
            issues=issues,
        )
        return _CompanyRun(analytics=analytics, company=company, history=history)

    async def get_comprehensive_analytics(self, ticker: str) -> ComprehensiveAnalytics:
        """Run every single-company engine for ``ticker``.

        Raises:
            CompanyNotFoundError: If the data source has no such company
            MissingPriceError: Under the "fail" missing-price policy
        """
        run = await self._run(ticker)
        logger.info(
            f"Comprehensive analytics for {ticker}: grade {run.analytics.financial_health.grade}, "
            f"risk {run.analytics.risk.scorecard.level}, {len(run.analytics.issues)} data issues"
        )
        return run.analytics

    async def get_crypto_yield_analysis(self, ticker: str) -> CryptoYieldResult:
        """Crypto yield and cost basis for ``ticker`` without the other engines."""
        as_of = self.clock()
        company = await self._fetch_company(ticker)
        prices, stock_price, history = await self._fetch_market(ticker, as_of)
        result = await asyncio.to_thread(
            self.engines.crypto_yield.calculate,
            company,
            prices,
            stock_price,
            history,
            as_of,
            YieldPeriod(self.analytics.yield_period),
            CostBasisMethod(self.analytics.cost_basis_method),
        )
        logger.info(f"Crypto yield for {ticker}: {len(result.issues)} data issues")
        return result

    async def get_risk_assessment(self, ticker: str) -> RiskAssessment:
        """Risk assessment for ``ticker`` without the other engines."""
        as_of = self.clock()
        company = await self._fetch_company(ticker)
        prices, _, history = await self._fetch_market(ticker, as_of)
        risk = await asyncio.to_thread(self.engines.risk.assess, company, history, prices)
        logger.info(f"Risk assessment for {ticker}: {risk.scorecard.level}")
        return risk

    async def get_nav_history(self, ticker: str) -> NavHistory:
        """Stored NAV series for ``ticker`` with the attribution of its change.

        Empty when no NAV store is configured.
        """
        company = await self._fetch_company(ticker)
        points = []
        if self.nav_store is not None:
            points = await self.nav_store.read_nav_points(company.ticker)
        logger.debug(
            "DECISION: NAV history loaded",
            extra={"extra_data": {"action": "nav_history", "ticker": ticker, "points": len(points)}},
        )
        return NavHistory(
            ticker=company.ticker,
            points=points,
            attribution=self.engines.nav.attribute(points),
        )

    # =========================================================================
    # Comparative analytics
    # =========================================================================

    async def get_comparative_analytics(self, tickers: list[str] | None = None) -> ComparativeAnalytics:
        """Compare peers; a peer that fails is excluded rather than aborting the set."""
        if not tickers:
            tickers = await self.data_source.list_tickers()

        outcomes = await asyncio.gather(*(self._run(t) for t in tickers), return_exceptions=True)

        peers: dict[str, PeerData] = {}
        excluded: dict[str, str] = {}
        for ticker, outcome in zip(tickers, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(f"Excluding {ticker} from peer set: {outcome}")
                excluded[ticker] = str(outcome)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            peers[ticker] = PeerData(
                company=outcome.company,
                metrics=outcome.analytics.institutional_metrics,
                history=outcome.history,
                crypto_yield=outcome.analytics.crypto_yield,
            )

        analysis = await asyncio.to_thread(self.engines.comparative.analyze, peers)
        logger.info(f"Comparative analytics: {len(peers)} peers, {len(excluded)} excluded")

        return ComparativeAnalytics(
            timestamp=self.clock(),
            tickers=list(peers),
            rankings=analysis.rankings,
            composite=analysis.rankings.composite,
            percentiles=analysis.percentiles,
            efficiency_frontier=analysis.efficiency_frontier,
            relative_value=analysis.relative_value,
            yield_comparison=analysis.yield_comparison,
            peer_insights=PeerInsights(
                averages=analysis.peer_group,
                outliers=analysis.peer_group.outliers,
                correlations=analysis.correlations,
            ),
            excluded=excluded,
        )

    # =========================================================================
    # Scenarios
    # =========================================================================

    def scenario_probability(self, scenario: PriceScenario) -> float:
        if scenario.probability is not None:
            return scenario.probability
        name = scenario.name.lower()
        policy = self.engines.scenario_policy
        for keyword, probability in policy.keyword_probabilities.items():
            if keyword in name:
                return probability
        return policy.default_probability

    def scenario_recommendations(self, results: list[ScenarioResult]) -> list[str]:
        policy = self.engines.scenario_policy
        recommendations = []
        if any(r.treasury_impact_percent < policy.hedging_threshold for r in results):
            recommendations.append("Consider hedging strategies to protect against significant treasury declines")
        if any(abs(r.nav_impact_percent) > policy.diversification_threshold for r in results):
            recommendations.append("High sensitivity to crypto prices suggests need for diversification")
        if any(r.treasury_impact_percent > policy.upside_threshold for r in results):
            recommendations.append("Position maintains strong upside exposure to crypto rally")
        return recommendations

    async def run_scenario_analysis(self, ticker: str, scenarios: list[PriceScenario]) -> ScenarioAnalysis:
        """Revalue NAV under each price scenario against the current base case."""
        as_of = self.clock()
        company = await self._fetch_company(ticker)
        prices, stock_price, history = await self._fetch_market(ticker, as_of)
        e = self.engines

        base_nav, base_risk = await asyncio.gather(
            asyncio.to_thread(e.nav.calculate, company, prices, stock_price, as_of),
            asyncio.to_thread(e.risk.assess, company, history, prices),
        )

        results = []
        for scenario in scenarios:
            scenario_prices = {**prices, **scenario.prices}
            nav = e.nav.calculate(company, scenario_prices, stock_price, as_of)
            treasury_impact = percent_change(nav.treasury_value, base_nav.treasury_value)
            results.append(ScenarioResult(
                name=scenario.name,
                prices=dict(scenario.prices),
                nav_per_share=nav.assumed_diluted.nav_per_share,
                nav_impact_percent=percent_change(
                    nav.assumed_diluted.nav_per_share, base_nav.assumed_diluted.nav_per_share
                ),
                treasury_impact_percent=treasury_impact,
                estimated_stock_impact_percent=treasury_impact * e.scenario_policy.stock_sensitivity,
                premium_change_percent=nav.assumed_diluted.premium_percent - base_nav.assumed_diluted.premium_percent,
                probability=self.scenario_probability(scenario),
            ))

        recommendations = self.scenario_recommendations(results)
        logger.info(f"Scenario analysis for {ticker}: {len(results)} scenarios, {len(recommendations)} recommendations")

        return ScenarioAnalysis(
            ticker=company.ticker,
            timestamp=as_of,
            base_case=ScenarioBaseCase(nav=base_nav, risk=base_risk),
            scenarios=results,
            recommendations=recommendations,
        )

    async def get_realtime_nav(self, ticker: str) -> RealtimeNav:
        """Current NAV with the default Bull/Base/Bear projections."""
        as_of = self.clock()
        company = await self._fetch_company(ticker)
        crypto_prices, stock_price = await asyncio.gather(
            self.data_source.get_crypto_prices(),
            self.data_source.get_stock_price(ticker),
        )
        nav = self.engines.nav.calculate(company, price_map(crypto_prices), stock_price, as_of)
        return RealtimeNav(
            ticker=company.ticker,
            timestamp=as_of,
            current=nav,
            projections=self.engines.nav.project(nav, self._default_scenarios()),
        )
