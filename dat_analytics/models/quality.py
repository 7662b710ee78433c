"""Data quality flags attached to results."""
from dataclasses import dataclass


@dataclass(frozen=True)
class DataQualityIssue:
    """An input that was excluded or adjusted during a computation."""

    code: str  # e.g. "missing_price", "zero_conversion_price"
    subject: str  # asset symbol, instrument id or ticker
    message: str
