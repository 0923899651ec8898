import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from overtime_backend.config_manager import IngestConfig, build_ingest_config
from overtime_backend.database_manager import DatabaseManager, get_db
from overtime_backend.logic import sheet_loader
from overtime_backend.logic.constants import PERIODS, get_period_label
from overtime_backend.models.driver import IngestResult, SheetResult

logger = logging.getLogger(__name__)

PeriodKey = Tuple[int, int]  # (period_number, year)


@dataclass
class SheetImportResult:
    sheet_name: str
    period_id: int
    period_label: str
    drivers_count: int
    records_count: int
    import_id: int


@dataclass
class ImportReport:
    """Outcome of writing a workbook's enabled sheets to storage."""
    results: List[SheetImportResult] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    @property
    def total_drivers(self) -> int:
        return sum(r.drivers_count for r in self.results)

    @property
    def total_records(self) -> int:
        return sum(r.records_count for r in self.results)

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": True,
            "results": [vars(r) for r in self.results],
            "skipped": self.skipped,
            "warnings": self.warnings,
            "total_drivers": self.total_drivers,
            "total_records": self.total_records,
        }


class ImporterService:
    """
    Service to ingest overtime workbooks and write them through the storage layer.

    Each enabled sheet is written independently:
    1. Upsert the reference period
    2. Open an import record ('processing')
    3. Upsert the sheet's drivers
    4. Replace every monthly record of the period
    5. Close the import record ('completed', or 'failed' before re-raising)

    Re-importing the same sheet replaces the period's records, so the
    resulting summaries are identical to a single import.
    """

    def __init__(self, db: Optional[DatabaseManager] = None, config: Optional[IngestConfig] = None):
        self.db = db or get_db()
        self.config = config or build_ingest_config()

    def preview(self, workbook_bytes: bytes) -> IngestResult:
        """Ingest without writing anything."""
        return sheet_loader.ingest(workbook_bytes, self.config)

    def import_workbook(
        self,
        workbook_bytes: bytes,
        filename: Optional[str] = None,
        period_overrides: Optional[Dict[str, PeriodKey]] = None,
        sheet_names: Optional[Sequence[str]] = None,
    ) -> ImportReport:
        """
        Ingest a workbook and import its enabled sheets.

        Args:
            workbook_bytes: Raw .xlsx content
            filename: Original file name, kept on the import records
            period_overrides: sheet name -> (period_number, year), replacing
                              the detected period (or supplying a missing one)
            sheet_names: Restrict the import to these sheets

        Raises:
            ValueError: nothing importable, or an invalid period override
            StorageError: the database failed (import record marked failed)
        """
        ingest_result = sheet_loader.ingest(workbook_bytes, self.config)
        return self.import_sheets(ingest_result, filename, period_overrides, sheet_names)

    def import_sheets(
        self,
        ingest_result: IngestResult,
        filename: Optional[str] = None,
        period_overrides: Optional[Dict[str, PeriodKey]] = None,
        sheet_names: Optional[Sequence[str]] = None,
    ) -> ImportReport:
        report = ImportReport()
        plan = self._plan(ingest_result, period_overrides or {}, sheet_names, report)

        if not plan:
            details = "; ".join(ingest_result.global_errors) or "no enabled sheet with a known period"
            raise ValueError(f"Nothing to import: {details}")

        for sheet, (period_number, year) in plan:
            report.results.append(self.import_sheet(sheet, period_number, year, filename))
            report.warnings.extend(sheet.warnings)

        logger.info(
            f"Imported {len(report.results)} sheet(s): {report.total_drivers} drivers, "
            f"{report.total_records} monthly records"
        )
        return report

    def _plan(
        self,
        ingest_result: IngestResult,
        overrides: Dict[str, PeriodKey],
        sheet_names: Optional[Sequence[str]],
        report: ImportReport,
    ) -> List[Tuple[SheetResult, PeriodKey]]:
        """Pick the sheets to write and the period each one goes to."""
        for name, (period_number, _year) in overrides.items():
            if period_number not in PERIODS:
                raise ValueError(f"Invalid period for sheet '{name}': P{period_number}")

        plan: List[Tuple[SheetResult, PeriodKey]] = []
        targets: Dict[PeriodKey, str] = {}
        for sheet in ingest_result.sheets:
            if sheet_names is not None and sheet.sheet_name not in sheet_names:
                report.skipped[sheet.sheet_name] = "not selected"
                continue
            if not sheet.enabled:
                report.skipped[sheet.sheet_name] = (
                    sheet.excluded_reason or "; ".join(sheet.errors) or "no data"
                )
                continue

            if sheet.sheet_name in overrides:
                key = tuple(overrides[sheet.sheet_name])
            elif sheet.detected_period is not None:
                key = (sheet.detected_period.period_number, sheet.detected_period.year)
            else:
                report.skipped[sheet.sheet_name] = "period could not be determined"
                continue

            if key in targets:
                raise ValueError(
                    f"Sheets '{targets[key]}' and '{sheet.sheet_name}' both target "
                    f"{get_period_label(*key)}"
                )
            targets[key] = sheet.sheet_name
            plan.append((sheet, key))
        return plan

    def import_sheet(
        self,
        sheet: SheetResult,
        period_number: int,
        year: int,
        filename: Optional[str] = None,
    ) -> SheetImportResult:
        """Write one sheet's rows as the full content of (period_number, year)."""
        if period_number not in PERIODS:
            raise ValueError(f"Invalid period: P{period_number}")

        period_id = self.db.upsert_reference_period(year, period_number)
        import_id = self.db.create_import(filename, period_id)

        try:
            driver_ids = self.db.upsert_drivers(sheet.rows)

            records: Dict[Tuple[int, int, int], Dict] = {}
            for row in sheet.rows:
                driver_id = driver_ids.get(row.identifier)
                if driver_id is None:
                    continue
                for month in row.months:
                    # Month records carry the sheet's year; the target period's
                    # year wins when the caller overrode it
                    records[(driver_id, month.month, year)] = {
                        "driver_id": driver_id,
                        "month": month.month,
                        "year": year,
                        "buffer_hours": row.buffer_hours,
                        "positive_hours": month.positive_hours,
                        "missing_hours": month.missing_hours,
                        "overtime_pay": month.overtime_pay,
                        "counter_end": month.counter_end,
                    }

            written = self.db.replace_monthly_records(period_id, list(records.values()))
            self.db.complete_import(import_id, sheet.row_count)
        except Exception as e:
            logger.error(f"Import of sheet '{sheet.sheet_name}' failed: {e}")
            self.db.fail_import(import_id, str(e))
            raise

        return SheetImportResult(
            sheet_name=sheet.sheet_name,
            period_id=period_id,
            period_label=get_period_label(period_number, year),
            drivers_count=sheet.row_count,
            records_count=written,
            import_id=import_id,
        )
