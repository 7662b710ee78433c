"""Operational risk heuristics."""
from dataclasses import dataclass

from dat_analytics.core.config import RiskPolicy
from dat_analytics.models import Company
from dat_analytics.engines.numeric import safe_divide


@dataclass(frozen=True)
class OperationalRisk:
    business_model_risk: float
    revenue_concentration_risk: float
    key_person_risk: float
    regulatory_risk: float
    cybersecurity_risk: float
    operating_leverage: float
    scalability_score: float
    score: float  # weighted blend, 0-100


def assess_operational(company: Company, policy: RiskPolicy) -> OperationalRisk:
    model = company.business_model
    components = {
        "business_model": 60.0 if model.is_treasury_focused else 40.0,
        "revenue_concentration": min(100.0, safe_divide(100.0, len(model.revenue_streams), 100.0)),
        "key_person": 70.0 if company.governance.ceo_founder else 40.0,
        "regulatory": policy.regulatory_risk,
        "cybersecurity": policy.cybersecurity_risk,
    }
    score = sum(components[name] * weight for name, weight in policy.operational_weights.items())

    return OperationalRisk(
        business_model_risk=components["business_model"],
        revenue_concentration_risk=components["revenue_concentration"],
        key_person_risk=components["key_person"],
        regulatory_risk=components["regulatory"],
        cybersecurity_risk=components["cybersecurity"],
        operating_leverage=safe_divide(model.operating_expenses, model.operating_revenue),
        scalability_score=80.0 if model.is_treasury_focused else 50.0,
        score=score,
    )
