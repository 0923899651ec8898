from typing import List, Literal, Optional

from pydantic import BaseModel, Field

VehicleType = Literal["BUS", "VAN"]


class ParsedMonthRecord(BaseModel):
    """
    One driver's figures for one calendar month, as read from the sheet.

    The four quantities are parsed independently. No arithmetic relation
    between them (e.g. counter[t] = counter[t-1] + positive - missing - pay)
    is enforced or repaired here.
    """
    month: int = Field(..., ge=1, le=12)
    year: int
    positive_hours: float = Field(0.0, description="Surplus hours worked during the month")
    missing_hours: float = Field(0.0, description="Deficit hours for the month")
    overtime_pay: float = Field(0.0, description="Hours already paid out for the month")
    counter_end: float = Field(0.0, description="Signed running counter at month end")


class ParsedDriverRow(BaseModel):
    """A normalized driver line of an ingested sheet."""
    identifier: str = Field(..., min_length=1, description="Employee code, or full name when no code column exists")
    identifier_is_name_fallback: bool = False
    vehicle_type: VehicleType = "BUS"
    buffer_hours: float = Field(17.0, description="Contractual early-warning threshold in hours")
    months: List[ParsedMonthRecord] = Field(default_factory=list)


class DetectedPeriod(BaseModel):
    period_number: int = Field(..., ge=1, le=3)
    year: int


class SheetResult(BaseModel):
    """Outcome of ingesting a single worksheet."""
    sheet_name: str
    rows: List[ParsedDriverRow] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    detected_period: Optional[DetectedPeriod] = None
    detected_months: List[int] = Field(default_factory=list)

    # A sheet is importable when it has rows and no fatal error; duplicate-period
    # resolution may switch it off again
    enabled: bool = False
    excluded_reason: Optional[str] = None

    @property
    def row_count(self) -> int:
        return len(self.rows)


class IngestResult(BaseModel):
    sheets: List[SheetResult] = Field(default_factory=list)
    global_errors: List[str] = Field(default_factory=list)

    @property
    def enabled_sheets(self) -> List[SheetResult]:
        return [s for s in self.sheets if s.enabled]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return self.model_dump()
