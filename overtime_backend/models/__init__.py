# overtime_backend/models/__init__.py
"""
Data Models for the Overtime Counter backend

Pydantic models for parsed sheets, storage read models and analytics results.
"""

from .driver import (
    DetectedPeriod,
    IngestResult,
    ParsedDriverRow,
    ParsedMonthRecord,
    SheetResult,
)
from .analytics import (
    AggregationOptions,
    AnalyticsResult,
    ComparisonPoint,
    DashboardStats,
    DistributionBucket,
    DriverHistorySummary,
    DriverOverview,
    DriverPeriodSummary,
    DriverPeriodTotals,
    MonthlyPoint,
    MonthlyRecordRow,
    PeriodComparisonRow,
    ReferencePeriod,
    StatusCount,
)

__all__ = [
    "DetectedPeriod",
    "IngestResult",
    "ParsedDriverRow",
    "ParsedMonthRecord",
    "SheetResult",
    "AggregationOptions",
    "AnalyticsResult",
    "ComparisonPoint",
    "DashboardStats",
    "DistributionBucket",
    "DriverHistorySummary",
    "DriverOverview",
    "DriverPeriodSummary",
    "DriverPeriodTotals",
    "MonthlyPoint",
    "MonthlyRecordRow",
    "PeriodComparisonRow",
    "ReferencePeriod",
    "StatusCount",
]
