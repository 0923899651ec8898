"""
Overtime Counter - Database Manager
SQLite storage for reference periods, drivers, monthly records and imports

This module provides:
- Database connection management
- Idempotent upserts (periods by (year, period_number), drivers by identifier)
- Per-period replacement of monthly records, batched
- Paginated reads of the summary and monthly read models
- Import bookkeeping
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .config_manager import get_config
from .logic.constants import PERIODS, get_period_label
from .models.analytics import DriverPeriodSummary, MonthlyRecordRow, ReferencePeriod
from .models.driver import ParsedDriverRow

logger = logging.getLogger(__name__)


# Database path
DB_PATH = Path.cwd() / "overtime_counter.db"
SCHEMA_PATH = Path(__file__).resolve().parent / "database_schema.sql"

DEFAULT_PAGE_SIZE = 1000
DEFAULT_DRIVER_BATCH_SIZE = 100
DEFAULT_RECORD_BATCH_SIZE = 500

RECORD_FIELDS = (
    "driver_id",
    "month",
    "year",
    "buffer_hours",
    "positive_hours",
    "missing_hours",
    "overtime_pay",
    "counter_end",
)


class StorageError(Exception):
    """Raised when the underlying database fails"""
    pass


def _batches(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _placeholders(count: int) -> str:
    return ", ".join(["?"] * count)


class DatabaseManager:
    """
    Storage collaborator for imports and analytics.

    Features:
    - Schema applied on startup (idempotent)
    - Automatic commit/rollback per operation
    - sqlite3 errors surfaced as StorageError
    """

    def __init__(
        self,
        db_path: Optional[str] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        driver_batch_size: int = DEFAULT_DRIVER_BATCH_SIZE,
        record_batch_size: int = DEFAULT_RECORD_BATCH_SIZE,
    ):
        """
        Initialize database manager.

        Args:
            db_path: Path to SQLite database file (defaults to ./overtime_counter.db)
            page_size: Rows fetched per page by the paginated readers
            driver_batch_size: Drivers written per statement batch
            record_batch_size: Monthly records written per statement batch
        """
        self.db_path = str(db_path or DB_PATH)
        self.page_size = page_size
        self.driver_batch_size = driver_batch_size
        self.record_batch_size = record_batch_size
        self._create_schema()

    def _create_schema(self):
        """Create tables and views from the SQL schema file."""
        if not SCHEMA_PATH.exists():
            raise FileNotFoundError(f"Schema file not found: {SCHEMA_PATH}")

        schema_sql = SCHEMA_PATH.read_text(encoding="utf-8")
        with self.get_connection() as conn:
            conn.executescript(schema_sql)

    @contextmanager
    def get_connection(self):
        """
        Get database connection with automatic commit/rollback.

        Usage:
            with db.get_connection() as conn:
                conn.execute("SELECT * FROM drivers")
        """
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open database {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row  # Enable column access by name
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def execute_query(self, query: str, params: tuple = ()) -> List[Dict]:
        """
        Execute SELECT query and return results as list of dicts.

        Args:
            query: SQL query string
            params: Query parameters

        Returns:
            List of dictionaries (one per row)
        """
        with self.get_connection() as conn:
            cursor = conn.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]

    def execute_update(self, query: str, params: tuple = ()) -> int:
        """Execute INSERT/UPDATE/DELETE and return affected rows."""
        with self.get_connection() as conn:
            return conn.execute(query, params).rowcount

    def execute_insert(self, query: str, params: tuple = ()) -> int:
        """Execute INSERT and return last inserted ID."""
        with self.get_connection() as conn:
            return conn.execute(query, params).lastrowid

    def _fetch_paginated(self, query: str, params: tuple = ()) -> List[Dict]:
        """
        Run an ORDER BY query page by page until a short page comes back.
        The query must not carry its own LIMIT/OFFSET.
        """
        rows: List[Dict] = []
        offset = 0
        while True:
            page = self.execute_query(f"{query} LIMIT ? OFFSET ?", params + (self.page_size, offset))
            rows.extend(page)
            if len(page) < self.page_size:
                return rows
            offset += self.page_size

    # ========================================================================
    # REFERENCE PERIODS
    # ========================================================================

    def upsert_reference_period(self, year: int, period_number: int) -> int:
        """
        Get or create the reference period (year, period_number).

        Returns:
            period id

        Raises:
            ValueError: period_number outside 1-3
        """
        period = PERIODS.get(period_number)
        if period is None:
            raise ValueError(f"Unknown period number: {period_number}")

        with self.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO reference_periods (year, period_number, label, start_month, end_month)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(year, period_number) DO UPDATE SET label = excluded.label
                """,
                (year, period_number, get_period_label(period_number, year),
                 period["start_month"], period["end_month"]),
            )
            row = conn.execute(
                "SELECT id FROM reference_periods WHERE year = ? AND period_number = ?",
                (year, period_number),
            ).fetchone()
        return row["id"]

    def list_periods(self) -> List[ReferencePeriod]:
        """All reference periods, most recent first."""
        rows = self.execute_query(
            """
            SELECT id, year, period_number, label, start_month, end_month
            FROM reference_periods
            ORDER BY year DESC, period_number DESC
            """
        )
        return [ReferencePeriod(**row) for row in rows]

    def get_period(self, period_id: int) -> Optional[ReferencePeriod]:
        rows = self.execute_query(
            "SELECT id, year, period_number, label, start_month, end_month "
            "FROM reference_periods WHERE id = ?",
            (period_id,),
        )
        return ReferencePeriod(**rows[0]) if rows else None

    # ========================================================================
    # DRIVERS
    # ========================================================================

    def upsert_drivers(self, drivers: Sequence[ParsedDriverRow]) -> Dict[str, int]:
        """
        Insert or update drivers keyed by identifier.

        Returns:
            Mapping identifier -> driver id
        """
        ids: Dict[str, int] = {}
        with self.get_connection() as conn:
            for batch in _batches(list(drivers), self.driver_batch_size):
                conn.executemany(
                    """
                    INSERT INTO drivers (identifier, identifier_is_name_fallback, vehicle_type, buffer_hours)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(identifier) DO UPDATE SET
                        identifier_is_name_fallback = excluded.identifier_is_name_fallback,
                        vehicle_type = excluded.vehicle_type,
                        buffer_hours = excluded.buffer_hours,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    [
                        (d.identifier, int(d.identifier_is_name_fallback), d.vehicle_type, d.buffer_hours)
                        for d in batch
                    ],
                )
                identifiers = [d.identifier for d in batch]
                cursor = conn.execute(
                    f"SELECT id, identifier FROM drivers WHERE identifier IN ({_placeholders(len(identifiers))})",
                    tuple(identifiers),
                )
                ids.update({row["identifier"]: row["id"] for row in cursor.fetchall()})

        logger.debug(f"Upserted {len(ids)} drivers")
        return ids

    def get_driver(self, driver_id: int) -> Optional[Dict]:
        """Get driver by ID."""
        results = self.execute_query("SELECT * FROM drivers WHERE id = ?", (driver_id,))
        return results[0] if results else None

    # ========================================================================
    # MONTHLY RECORDS
    # ========================================================================

    def replace_monthly_records(self, period_id: int, records: Sequence[Dict[str, Any]]) -> int:
        """
        Replace every monthly record of a period.

        Delete and inserts run in one transaction, so a failure leaves the
        previous records in place.

        Args:
            period_id: Reference period id
            records: Dicts with the RECORD_FIELDS keys

        Returns:
            Number of records written
        """
        with self.get_connection() as conn:
            deleted = conn.execute(
                "DELETE FROM monthly_records WHERE period_id = ?", (period_id,)
            ).rowcount
            for batch in _batches(list(records), self.record_batch_size):
                conn.executemany(
                    f"""
                    INSERT INTO monthly_records (period_id, {', '.join(RECORD_FIELDS)})
                    VALUES ({_placeholders(len(RECORD_FIELDS) + 1)})
                    """,
                    [(period_id, *(r[f] for f in RECORD_FIELDS)) for r in batch],
                )

        logger.info(f"Period {period_id}: replaced {deleted} records with {len(records)}")
        return len(records)

    @staticmethod
    def _period_filter(period_ids: Sequence[int], vehicle_type: Optional[str]) -> tuple:
        clause = f"period_id IN ({_placeholders(len(period_ids))})"
        params = tuple(period_ids)
        if vehicle_type:
            clause += " AND vehicle_type = ?"
            params += (vehicle_type,)
        return clause, params

    def fetch_period_summaries(
        self,
        period_ids: Sequence[int],
        vehicle_type: Optional[str] = None,
    ) -> List[DriverPeriodSummary]:
        """(driver, period) summaries for the given periods, paginated."""
        if not period_ids:
            return []
        clause, params = self._period_filter(period_ids, vehicle_type)
        rows = self._fetch_paginated(
            f"""
            SELECT * FROM v_driver_period_summary
            WHERE {clause}
            ORDER BY year, period_number, driver_id
            """,
            params,
        )
        return [DriverPeriodSummary(**row) for row in rows]

    def fetch_monthly_records(
        self,
        period_ids: Sequence[int],
        vehicle_type: Optional[str] = None,
    ) -> List[MonthlyRecordRow]:
        """Per-driver-month rows for the given periods, paginated."""
        if not period_ids:
            return []
        clause, params = self._period_filter(period_ids, vehicle_type)
        rows = self._fetch_paginated(
            f"""
            SELECT * FROM v_monthly_records
            WHERE {clause}
            ORDER BY year, month, driver_id
            """,
            params,
        )
        return [MonthlyRecordRow(**row) for row in rows]

    def fetch_driver_history(self, driver_id: int, period_id: Optional[int] = None) -> List[MonthlyRecordRow]:
        """Monthly records of one driver (optionally one period), oldest first."""
        clause, params = "driver_id = ?", (driver_id,)
        if period_id is not None:
            clause += " AND period_id = ?"
            params += (period_id,)
        rows = self._fetch_paginated(
            f"SELECT * FROM v_monthly_records WHERE {clause} ORDER BY year, month",
            params,
        )
        return [MonthlyRecordRow(**row) for row in rows]

    def fetch_driver_summaries(self, driver_id: int) -> List[DriverPeriodSummary]:
        """One driver's per-period summaries, oldest period first."""
        rows = self._fetch_paginated(
            "SELECT * FROM v_driver_period_summary WHERE driver_id = ? ORDER BY year, period_number",
            (driver_id,),
        )
        return [DriverPeriodSummary(**row) for row in rows]

    def fetch_driver_records(self, driver_ids: Sequence[int]) -> List[MonthlyRecordRow]:
        """Monthly records of several drivers, oldest first."""
        if not driver_ids:
            return []
        rows = self._fetch_paginated(
            f"""
            SELECT * FROM v_monthly_records
            WHERE driver_id IN ({_placeholders(len(driver_ids))})
            ORDER BY year, month, driver_id
            """,
            tuple(driver_ids),
        )
        return [MonthlyRecordRow(**row) for row in rows]

    # ========================================================================
    # IMPORT OPERATIONS
    # ========================================================================

    def create_import(self, filename: Optional[str], period_id: int) -> int:
        """Create an import record in 'processing' state."""
        return self.execute_insert(
            "INSERT INTO imports (filename, period_id) VALUES (?, ?)", (filename, period_id)
        )

    def complete_import(self, import_id: int, row_count: int) -> bool:
        return self.execute_update(
            """
            UPDATE imports
            SET status = 'completed', row_count = ?,
                completed_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            (row_count, import_id),
        ) > 0

    def fail_import(self, import_id: int, error_message: str) -> bool:
        return self.execute_update(
            """
            UPDATE imports
            SET status = 'failed', error_message = ?, completed_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            (error_message, import_id),
        ) > 0

    def get_import(self, import_id: int) -> Optional[Dict]:
        """Get import by ID."""
        results = self.execute_query("SELECT * FROM imports WHERE id = ?", (import_id,))
        return results[0] if results else None


# Global instance
_db_instance = None


def get_db() -> DatabaseManager:
    """Get or create global database manager instance from the app config."""
    global _db_instance
    if _db_instance is None:
        config = get_config()
        _db_instance = DatabaseManager(
            db_path=config["database_path"],
            page_size=int(config["page_size"]),
            driver_batch_size=int(config["driver_batch_size"]),
            record_batch_size=int(config["record_batch_size"]),
        )
    return _db_instance
