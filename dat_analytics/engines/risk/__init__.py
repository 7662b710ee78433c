"""Risk engine and its sub-analyses."""
from dat_analytics.engines.risk.engine import RiskAssessment, RiskEngine, RiskScorecard

__all__ = ["RiskAssessment", "RiskEngine", "RiskScorecard"]
