# overtime_backend/logic/sheet_loader.py
"""
Excel Parser for Overtime Counter Workbooks

Turns the irregular workbooks exported by payroll tools into normalized
per-driver, per-month records.

Each sheet goes through a small state machine:

    HEADER_SEARCH -> COLUMN_MAPPING -> ROW_PARSING -> DONE
                                   \\-> REJECTED

Sheets are independent of each other; the duplicate-period resolution in
sheet_analyzer is the only step that needs all of them.

Refactored Modules:
- column_detector.py: header row detection, column rule tables
- sheet_analyzer.py: period detection, duplicate-period resolution

Author: Overtime Counter Team
"""

from __future__ import annotations

import logging
from datetime import date
from enum import Enum
from io import BytesIO
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd

from ..config_manager import IngestConfig
from ..logging_utils import timed
from ..models.driver import (
    DetectedPeriod,
    IngestResult,
    ParsedDriverRow,
    ParsedMonthRecord,
    SheetResult,
)
from .column_detector import ColumnMapping, detect_columns, find_header_row
from .constants import MIN_SHEET_ROWS, VAN_MARKERS, VEHICLE_BUS, VEHICLE_VAN
from .parse_utils import cell_text, is_blank, normalize_text, parse_time_value
from .sheet_analyzer import (
    detect_period_from_months,
    detect_period_from_sheet_name,
    reconcile_period,
    resolve_duplicate_periods,
)

logger = logging.getLogger(__name__)

Rows = Sequence[Sequence[Any]]


class IngestState(Enum):
    """Lifecycle of a single sheet's ingestion"""
    HEADER_SEARCH = "header_search"
    COLUMN_MAPPING = "column_mapping"
    ROW_PARSING = "row_parsing"
    DONE = "done"
    REJECTED = "rejected"


# ====================================================================================
# WORKBOOK READING
# ====================================================================================

def _frame_to_rows(df: pd.DataFrame) -> List[List[Any]]:
    """Raw sheet frame (header=None) -> list of rows with None for empty cells"""
    if df is None or df.empty:
        return []
    return df.astype(object).where(df.notna(), None).values.tolist()


def load_workbook_rows(workbook_bytes: bytes) -> Dict[str, List[List[Any]]]:
    """
    Read every sheet of an .xlsx workbook as raw rows.

    Raises whatever pandas/openpyxl raise for an unreadable container;
    ingest() turns that into a global error.
    """
    sheets = pd.read_excel(
        BytesIO(workbook_bytes),
        sheet_name=None,
        header=None,
        engine="openpyxl",
    )
    return {str(name): _frame_to_rows(df) for name, df in sheets.items()}


# ====================================================================================
# SHEET INGESTION
# ====================================================================================

def _cell(row: Sequence[Any], index: Optional[int]) -> Any:
    if index is None or index >= len(row):
        return None
    return row[index]


def _vehicle_type(value: Any) -> str:
    text = normalize_text(cell_text(value))
    return VEHICLE_VAN if any(marker in text for marker in VAN_MARKERS) else VEHICLE_BUS


class SheetIngestor:
    """
    Ingest a single sheet into a SheetResult.

    Usage:
        result = SheetIngestor("P2 2024", rows, config).run()
    """

    def __init__(self, sheet_name: str, rows: Rows, config: Optional[IngestConfig] = None):
        self.sheet_name = sheet_name
        self.rows = rows
        self.config = config or IngestConfig()
        self.state = IngestState.HEADER_SEARCH

        self.errors: List[str] = []
        self.warnings: List[str] = []
        self.header_index: Optional[int] = None
        self.mapping: Optional[ColumnMapping] = None
        self.detected_period: Optional[DetectedPeriod] = None

    def run(self) -> SheetResult:
        if len(self.rows) < MIN_SHEET_ROWS:
            return self._reject(f"Sheet '{self.sheet_name}': not enough data ({len(self.rows)} rows)")

        # HEADER_SEARCH
        self.header_index, headers = find_header_row(self.rows, self.config.header_scan_rows)
        self.state = IngestState.COLUMN_MAPPING

        # COLUMN_MAPPING
        self.mapping = detect_columns(headers)
        name_period = detect_period_from_sheet_name(self.sheet_name)
        if self.mapping is None:
            self.detected_period = reconcile_period(name_period, None, self.config.default_year)
            return self._reject(f"Sheet '{self.sheet_name}': no identifier column found")

        if self.mapping.identifier_is_name_fallback:
            self.warnings.append(
                f"Sheet '{self.sheet_name}': no employee code column, drivers identified by name"
            )
        if not self.mapping.month_columns:
            self.warnings.append(f"Sheet '{self.sheet_name}': no month columns detected")

        month_period = detect_period_from_months(self.mapping.detected_months, self.config.default_year)
        self.detected_period = reconcile_period(name_period, month_period, self.config.default_year)
        self.state = IngestState.ROW_PARSING

        # ROW_PARSING
        rows = self._parse_rows()
        if not rows:
            return self._reject(f"Sheet '{self.sheet_name}': no data rows after header")

        self.state = IngestState.DONE
        logger.info(
            f"Sheet '{self.sheet_name}': {len(rows)} drivers, months {self.mapping.detected_months}, "
            f"period {self.detected_period.model_dump() if self.detected_period else None}"
        )
        return self._result(rows)

    def _record_year(self) -> int:
        if self.detected_period is not None:
            return self.detected_period.year
        return self.config.default_year or date.today().year

    def _parse_rows(self) -> List[ParsedDriverRow]:
        mapping = self.mapping
        year = self._record_year()
        by_identifier: Dict[str, ParsedDriverRow] = {}
        duplicates: List[str] = []

        for row in self.rows[self.header_index + 1:]:
            if not row:
                continue
            raw_identifier = _cell(row, mapping.identifier_col)
            if is_blank(raw_identifier):
                continue
            identifier = cell_text(raw_identifier)

            if mapping.buffer_col is not None:
                buffer_hours = parse_time_value(_cell(row, mapping.buffer_col))
            else:
                buffer_hours = self.config.default_buffer_hours

            months = [
                ParsedMonthRecord(
                    month=month,
                    year=year,
                    positive_hours=parse_time_value(_cell(row, cols.positive_hours)),
                    missing_hours=parse_time_value(_cell(row, cols.missing_hours)),
                    overtime_pay=parse_time_value(_cell(row, cols.overtime_pay)),
                    counter_end=parse_time_value(_cell(row, cols.counter_end)),
                )
                for month, cols in sorted(mapping.month_columns.items())
            ]

            if identifier in by_identifier:
                duplicates.append(identifier)
                # Re-insert so the surviving row sits where its last occurrence was
                del by_identifier[identifier]
            by_identifier[identifier] = ParsedDriverRow(
                identifier=identifier,
                identifier_is_name_fallback=mapping.identifier_is_name_fallback,
                vehicle_type=_vehicle_type(_cell(row, mapping.vehicle_type_col)),
                buffer_hours=buffer_hours,
                months=months,
            )

        if duplicates:
            unique = sorted(set(duplicates))
            self.warnings.append(
                f"Sheet '{self.sheet_name}': {len(duplicates)} duplicate identifier row(s) "
                f"collapsed, last occurrence kept ({', '.join(unique[:5])}"
                f"{'...' if len(unique) > 5 else ''})"
            )
        return list(by_identifier.values())

    def _reject(self, error: str) -> SheetResult:
        logger.warning(error)
        self.errors.append(error)
        self.state = IngestState.REJECTED
        return self._result([])

    def _result(self, rows: List[ParsedDriverRow]) -> SheetResult:
        return SheetResult(
            sheet_name=self.sheet_name,
            rows=rows,
            errors=list(self.errors),
            warnings=list(self.warnings),
            detected_period=self.detected_period,
            detected_months=self.mapping.detected_months if self.mapping else [],
            enabled=bool(rows) and not self.errors,
        )


# ====================================================================================
# WORKBOOK ENTRY POINTS
# ====================================================================================

def ingest_sheets(
    sheets: Mapping[str, Rows],
    config: Optional[IngestConfig] = None,
) -> IngestResult:
    """
    Ingest already-loaded sheets (sheet name -> 2-D rows).

    Args:
        sheets: Sheets in workbook order
        config: Ingestion settings (defaults when omitted)

    Returns:
        IngestResult after duplicate-period resolution
    """
    config = config or IngestConfig()
    if not sheets:
        return IngestResult(global_errors=["Workbook contains no sheets"])

    results = [SheetIngestor(name, rows, config).run() for name, rows in sheets.items()]
    resolution = resolve_duplicate_periods(results)

    global_errors: List[str] = []
    if not any(sheet.rows for sheet in resolution.sheets):
        global_errors.append("No sheet contains driver data")

    return IngestResult(sheets=list(resolution.sheets), global_errors=global_errors)


@timed
def ingest(workbook_bytes: bytes, config: Optional[IngestConfig] = None) -> IngestResult:
    """
    Ingest an .xlsx workbook.

    Never raises for workbook problems: an unreadable container, a workbook
    without sheets or without any driver data is reported in global_errors.
    """
    try:
        sheets = load_workbook_rows(workbook_bytes)
    except Exception as e:
        logger.error(f"Unreadable workbook: {e}")
        return IngestResult(global_errors=[f"Unreadable workbook: {e}"])

    return ingest_sheets(sheets, config)
