"""Deterministic stress tests over named treasury declines."""
from dataclasses import dataclass

from dat_analytics.core.config import RiskPolicy
from dat_analytics.models import Company
from dat_analytics.engines.numeric import points_below, safe_divide


@dataclass(frozen=True)
class StressResult:
    scenario: str
    decline_percent: float
    probability: float
    treasury_value_after: float
    treasury_impact: float
    nav_impact_percent: float
    liquidity_impact: float  # 0-100
    solvency_impact: float  # 0-100
    severity: str


@dataclass(frozen=True)
class StressTestSummary:
    results: list[StressResult]
    expected_loss: float  # probability-weighted treasury impact
    worst_case: str | None
    breaking_point_decline: float  # percent decline at which treasury no longer covers debt
    recovery_time_months: int


def severity(decline: float, policy: RiskPolicy) -> str:
    for threshold, label in policy.stress_severity_bands:
        if decline <= threshold:
            return label
    return "Low"


def _impact(ratio: float, bands: list[list[float]], floor: float) -> float:
    return points_below(ratio, bands) or floor


def run_stress_tests(company: Company, treasury_value: float, policy: RiskPolicy) -> StressTestSummary:
    cap = policy.unbounded_ratio
    debt = company.total_debt
    equity = company.shareholders_equity

    results = []
    for s in policy.stress_scenarios:
        after = treasury_value * (1 + s.decline)
        impact = treasury_value * s.decline
        results.append(StressResult(
            scenario=s.name,
            decline_percent=s.decline * 100,
            probability=s.probability,
            treasury_value_after=after,
            treasury_impact=impact,
            nav_impact_percent=safe_divide(impact, treasury_value + equity) * 100,
            liquidity_impact=_impact(
                safe_divide(after, debt, cap), policy.stress_liquidity_bands, policy.stress_floor_impact
            ),
            solvency_impact=_impact(
                safe_divide(after + equity, debt, cap), policy.stress_solvency_bands, policy.stress_floor_impact
            ),
            severity=severity(s.decline, policy),
        ))

    if debt <= 0:
        breaking_point = 100.0
    else:
        coverage = treasury_value / debt
        breaking_point = max(0.0, 1 - 1 / coverage) * 100 if coverage > 0 else 0.0
    worst = min(results, key=lambda r: r.treasury_impact, default=None)

    return StressTestSummary(
        results=results,
        expected_loss=sum(r.probability * r.treasury_impact for r in results),
        worst_case=worst.scenario if worst else None,
        breaking_point_decline=breaking_point,
        recovery_time_months=policy.stress_recovery_months,
    )
