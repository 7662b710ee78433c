"""Data models for the treasury analytics core."""

from dat_analytics.models.treasury import (
    TransactionType,
    FundingMethod,
    TreasuryTransaction,
    TreasuryHolding,
)
from dat_analytics.models.company import (
    ConvertibleDebt,
    Warrant,
    CapitalStructure,
    BusinessModel,
    Governance,
    ExecutiveCompensation,
    Company,
)
from dat_analytics.models.market_data import CryptoPrice, HistoricalDataPoint, price_map
from dat_analytics.models.quality import DataQualityIssue
from dat_analytics.models.metrics import (
    NavPoint,
    DilutionMetrics,
    RiskMetrics,
    CapitalEfficiency,
    OperationalMetrics,
    CalculatedMetrics,
)
from dat_analytics.models.serialization import to_dict

__all__ = [
    "TransactionType",
    "FundingMethod",
    "TreasuryTransaction",
    "TreasuryHolding",
    "ConvertibleDebt",
    "Warrant",
    "CapitalStructure",
    "BusinessModel",
    "Governance",
    "ExecutiveCompensation",
    "Company",
    "CryptoPrice",
    "HistoricalDataPoint",
    "price_map",
    "DataQualityIssue",
    "NavPoint",
    "DilutionMetrics",
    "RiskMetrics",
    "CapitalEfficiency",
    "OperationalMetrics",
    "CalculatedMetrics",
    "to_dict",
]
