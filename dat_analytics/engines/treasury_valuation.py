"""Mark-to-market valuation of treasury holdings."""
import logging
from dataclasses import dataclass, field
from typing import Mapping

from dat_analytics.core.errors import MissingPriceError
from dat_analytics.models import DataQualityIssue, TreasuryHolding
from dat_analytics.engines.numeric import safe_divide

logger = logging.getLogger(__name__)

EXCLUDE = "exclude"
FAIL = "fail"


@dataclass(frozen=True)
class AssetMark:
    """A holding marked at the current price."""

    symbol: str
    amount: float
    price: float
    value: float
    cost_basis: float
    unrealized_gain: float
    unrealized_gain_percent: float
    weight: float  # share of total treasury value


@dataclass(frozen=True)
class TreasuryValuation:
    """Treasury marks and totals; excluded assets are listed, never valued at zero."""

    total_value: float
    total_cost: float
    marks: list[AssetMark]
    excluded: list[str] = field(default_factory=list)
    issues: list[DataQualityIssue] = field(default_factory=list)

    @property
    def weights(self) -> dict[str, float]:
        return {m.symbol: m.weight for m in self.marks}

    def mark(self, symbol: str) -> AssetMark | None:
        for m in self.marks:
            if m.symbol == symbol:
                return m
        return None


def value_treasury(
    holdings: list[TreasuryHolding],
    prices: Mapping[str, float],
    missing_price_policy: str = EXCLUDE,
) -> TreasuryValuation:
    """Value holdings at current prices.

    Args:
        holdings: Company treasury holdings
        prices: Current price by asset symbol
        missing_price_policy: "exclude" drops unpriced assets and flags them;
            "fail" raises

    Returns:
        TreasuryValuation with per-asset marks

    Raises:
        MissingPriceError: If an asset has no positive price and the policy is "fail"
    """
    held = [h for h in holdings if h.amount > 0]
    missing = [h.crypto for h in held if prices.get(h.crypto, 0.0) <= 0]

    if missing and missing_price_policy == FAIL:
        raise MissingPriceError(missing)

    issues = [
        DataQualityIssue(
            code="missing_price",
            subject=symbol,
            message=f"No current price for {symbol}; excluded from treasury value",
        )
        for symbol in missing
    ]
    for symbol in missing:
        logger.warning(f"Excluding {symbol} from treasury value: no current price")

    priced = [h for h in held if h.crypto not in missing]
    values = {h.crypto: h.amount * prices[h.crypto] for h in priced}
    total_value = sum(values.values())

    marks = []
    for h in priced:
        value = values[h.crypto]
        gain = value - h.total_cost
        marks.append(AssetMark(
            symbol=h.crypto,
            amount=h.amount,
            price=prices[h.crypto],
            value=value,
            cost_basis=h.total_cost,
            unrealized_gain=gain,
            unrealized_gain_percent=safe_divide(gain, h.total_cost) * 100,
            weight=safe_divide(value, total_value),
        ))

    logger.debug(
        "EXIT: Valued treasury",
        extra={
            "extra_data": {
                "action": "value_treasury",
                "assets": [m.symbol for m in marks],
                "total_value": total_value,
                "excluded": missing,
            }
        },
    )

    return TreasuryValuation(
        total_value=total_value,
        total_cost=sum(h.total_cost for h in priced),
        marks=marks,
        excluded=missing,
        issues=issues,
    )
