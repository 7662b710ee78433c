"""Exceptions raised by the analytics core."""


class AnalyticsError(Exception):
    """Base class for analytics failures."""

    pass


class CompanyNotFoundError(AnalyticsError):
    """Raised when a ticker has no company record."""

    def __init__(self, ticker: str):
        super().__init__(f"Company not found: {ticker}")
        self.ticker = ticker


class MissingPriceError(AnalyticsError):
    """Raised when held assets have no current price and the policy is 'fail'."""

    def __init__(self, symbols: list[str]):
        super().__init__(f"No current price for held assets: {', '.join(symbols)}")
        self.symbols = symbols


class MalformedInputError(AnalyticsError, ValueError):
    """Raised when an input snapshot violates a basic invariant."""

    pass
