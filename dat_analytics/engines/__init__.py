"""Analytics engines.

Each engine is a pure computation over immutable snapshots.
"""

from dat_analytics.engines.capital_structure import ShareConvention, ShareCounts, resolve_share_counts
from dat_analytics.engines.treasury_valuation import TreasuryValuation, value_treasury
from dat_analytics.engines.nav import NAVCalculation, NavEngine, PriceScenario
from dat_analytics.engines.crypto_yield import CryptoYieldEngine, CryptoYieldResult, YieldPeriod
from dat_analytics.engines.cost_basis import CostBasisMethod, build_cost_basis
from dat_analytics.engines.dilution import DilutionAnalysis, DilutionEngine, WhatIfKind, WhatIfScenario
from dat_analytics.engines.risk import RiskAssessment, RiskEngine
from dat_analytics.engines.financial_health import FinancialHealth, FinancialHealthEngine
from dat_analytics.engines.institutional_metrics import build_calculated_metrics
from dat_analytics.engines.comparative import ComparativeAnalysis, ComparativeEngine, PeerData

__all__ = [
    "ShareConvention",
    "ShareCounts",
    "resolve_share_counts",
    "TreasuryValuation",
    "value_treasury",
    "NAVCalculation",
    "NavEngine",
    "PriceScenario",
    "CryptoYieldEngine",
    "CryptoYieldResult",
    "YieldPeriod",
    "CostBasisMethod",
    "build_cost_basis",
    "DilutionAnalysis",
    "DilutionEngine",
    "WhatIfKind",
    "WhatIfScenario",
    "RiskAssessment",
    "RiskEngine",
    "FinancialHealth",
    "FinancialHealthEngine",
    "build_calculated_metrics",
    "ComparativeAnalysis",
    "ComparativeEngine",
    "PeerData",
]
