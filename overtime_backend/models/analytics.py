from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .driver import VehicleType

AggregationMode = Literal["sum", "avg"]
DriverStatus = Literal["green", "orange", "red"]


# ==========================================================================
# READ MODELS (produced by the storage layer)
# ==========================================================================

class ReferencePeriod(BaseModel):
    """One of the three fixed four-month blocks of a year."""
    id: int
    year: int
    period_number: int = Field(..., ge=1, le=3)
    label: str
    start_month: int = Field(..., ge=1, le=12)
    end_month: int = Field(..., ge=1, le=12)


class DriverPeriodSummary(BaseModel):
    """One row per (driver, period)."""
    driver_id: int
    identifier: str
    vehicle_type: VehicleType
    period_id: int
    year: int
    period_number: int
    total_positive_hours: float = 0.0
    total_missing_hours: float = 0.0
    total_overtime_pay: float = 0.0
    latest_counter: float = Field(0.0, description="Counter of the latest month recorded in the period")
    buffer_hours: float = 0.0
    months_recorded: int = 0


class MonthlyRecordRow(BaseModel):
    """One row per (driver, period, month)."""
    driver_id: int
    identifier: str
    vehicle_type: VehicleType
    period_id: int
    year: int
    period_number: int
    month: int
    buffer_hours: float = 0.0
    positive_hours: float = 0.0
    missing_hours: float = 0.0
    overtime_pay: float = 0.0
    counter_end: float = 0.0


# ==========================================================================
# ANALYTICS RESULTS
# ==========================================================================

class AggregationOptions(BaseModel):
    vehicle_type: Optional[VehicleType] = None
    mode: AggregationMode = "sum"


class DistributionBucket(BaseModel):
    bucket: str
    count: int


class PeriodComparisonRow(BaseModel):
    period_id: int
    period_label: str
    year: int
    period_number: int
    total_drivers: int
    total_overtime_pay: float
    total_positive_end: float
    drivers_positive: int
    total_missing_end: float
    drivers_negative: int


class MonthlyPoint(BaseModel):
    """
    Aggregated figures for one calendar month.

    hours_paid / hours_missing equal the monthly overtime_pay / missing_hours,
    plus, on a period's final month, the settlement of the counters still
    positive (paid) or negative (missing) at period end.
    """
    year: int
    month: int
    label: str
    is_period_end: bool = False
    drivers_reporting: int = 0
    positive_hours: float = 0.0
    missing_hours: float = 0.0
    overtime_pay: float = 0.0
    average_counter: Optional[float] = None
    hours_paid: float = 0.0
    hours_missing: float = 0.0


class AnalyticsResult(BaseModel):
    mode: AggregationMode = "sum"
    distribution: List[DistributionBucket] = Field(default_factory=list)
    critical_driver_ids: List[int] = Field(default_factory=list)
    period_comparison: List[PeriodComparisonRow] = Field(default_factory=list)
    monthly_series: List[MonthlyPoint] = Field(default_factory=list)


class DriverOverview(BaseModel):
    """A driver aggregated over the selected periods, for list views."""
    driver_id: int
    identifier: str
    vehicle_type: VehicleType
    total_positive_hours: float
    total_missing_hours: float
    total_overtime_pay: float
    average_counter: float
    buffer_hours: float
    months_recorded: int
    status: DriverStatus
    is_critical: bool


class StatusCount(BaseModel):
    status: DriverStatus
    label: str
    count: int


class DashboardStats(BaseModel):
    total_drivers: int = 0
    bus_count: int = 0
    van_count: int = 0
    drivers_with_overtime: int = 0
    total_overtime_pay: float = 0.0
    critical_count: int = 0
    negative_count: int = 0


class ComparisonPoint(BaseModel):
    year: int
    month: int
    label: str
    counters: Dict[str, Optional[float]] = Field(default_factory=dict, description="identifier -> counter_end, None when missing")


class DriverHistorySummary(BaseModel):
    """Headline figures of one driver's records (one period or all)."""
    current_counter: float = Field(0.0, description="counter_end of the latest record")
    total_overtime_pay: float = 0.0
    buffer_hours: float
    records_count: int = 0
    status: DriverStatus = "green"


class DriverPeriodTotals(BaseModel):
    """Paid hours and end-of-period balance of one driver for one period."""
    period_id: int
    period_label: str
    year: int
    period_number: int
    overtime_pay: float
    positive_end: float
    missing_end: float
