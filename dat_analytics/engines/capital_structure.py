"""Share-count resolution across basic, diluted and assumed-diluted conventions."""
import logging
from dataclasses import dataclass, field
from enum import Enum

from dat_analytics.models import CapitalStructure, ConvertibleDebt, DataQualityIssue
from dat_analytics.engines.numeric import safe_divide

logger = logging.getLogger(__name__)


class ShareConvention(Enum):
    """Share-count divisor used for per-share figures."""

    BASIC = "basic"
    DILUTED = "diluted"
    ASSUMED_DILUTED = "assumed_diluted"


@dataclass(frozen=True)
class ShareCounts:
    """Resolved share counts with the instrument breakdown.

    ``basic <= diluted <= assumed_diluted`` always holds.
    """

    basic: float
    diluted: float
    assumed_diluted: float
    dilution_percent: float
    option_shares: float
    rsu_shares: float
    psu_shares: float
    warrant_shares: float
    convertible_shares: float
    issues: list[DataQualityIssue] = field(default_factory=list)

    def for_convention(self, convention: ShareConvention) -> float:
        if convention is ShareConvention.BASIC:
            return self.basic
        if convention is ShareConvention.DILUTED:
            return self.diluted
        return self.assumed_diluted


def convertible_conversion_shares(note: ConvertibleDebt) -> float | None:
    """Shares issued if the note converts, or None when the price is unusable."""
    if note.conversion_price <= 0:
        return None
    return note.principal / note.conversion_price


def resolve_share_counts(structure: CapitalStructure) -> ShareCounts:
    """Derive basic, diluted and assumed-diluted share counts.

    Assumed diluted adds every outstanding instrument in the order
    options, RSUs, PSUs, warrants, convertibles. Convertibles without a
    positive conversion price are excluded and reported.

    Args:
        structure: Company capital structure

    Returns:
        ShareCounts with per-instrument breakdown and data-quality issues
    """
    issues: list[DataQualityIssue] = []

    warrant_shares = sum(
        w.shares_if_exercised for w in structure.warrants if w.is_outstanding
    )

    convertible_shares = 0.0
    for note in structure.convertible_debt:
        if not note.is_outstanding:
            continue
        shares = convertible_conversion_shares(note)
        if shares is None:
            issues.append(DataQualityIssue(
                code="zero_conversion_price",
                subject=note.id,
                message=f"Convertible {note.id} has conversion price {note.conversion_price}; excluded",
            ))
            logger.warning(f"Excluding convertible {note.id}: non-positive conversion price")
            continue
        convertible_shares += shares

    basic = structure.shares_basic
    assumed = basic
    assumed += structure.stock_options
    assumed += structure.restricted_stock_units
    assumed += structure.performance_stock_units
    assumed += warrant_shares
    assumed += convertible_shares

    reported = structure.shares_diluted_current
    diluted = basic if reported == 0 else min(max(reported, basic), assumed)
    if reported != 0 and diluted != reported:
        issues.append(DataQualityIssue(
            code="diluted_shares_adjusted",
            subject="shares_diluted_current",
            message=f"Reported diluted shares {reported} outside [{basic}, {assumed}]; using {diluted}",
        ))

    dilution_percent = safe_divide(assumed - basic, basic) * 100

    logger.debug(
        "EXIT: Resolved share counts",
        extra={
            "extra_data": {
                "action": "resolve_shares",
                "basic": basic,
                "diluted": diluted,
                "assumed_diluted": assumed,
                "dilution_percent": round(dilution_percent, 4),
                "issues": len(issues),
            }
        },
    )

    return ShareCounts(
        basic=basic,
        diluted=diluted,
        assumed_diluted=assumed,
        dilution_percent=dilution_percent,
        option_shares=structure.stock_options,
        rsu_shares=structure.restricted_stock_units,
        psu_shares=structure.performance_stock_units,
        warrant_shares=warrant_shares,
        convertible_shares=convertible_shares,
        issues=issues,
    )
