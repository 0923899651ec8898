"""
Shared fixtures: in-memory workbooks and throwaway SQLite databases.
"""

from io import BytesIO

import pytest
from openpyxl import Workbook

from overtime_backend.config_manager import IngestConfig
from overtime_backend.database_manager import DatabaseManager

HEADER_P2 = ["Code salarié", "Bus/Cam", "10%", "Mai Pos", "Mai Manq", "Mai Montant", "Mai Compteur"]


def make_workbook(sheets):
    """
    Build .xlsx bytes from {sheet name: rows}.
    Sheets keep the dict order.
    """
    wb = Workbook()
    wb.remove(wb.active)
    for name, rows in sheets.items():
        ws = wb.create_sheet(title=name)
        for row in rows:
            ws.append(list(row))
    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def driver_rows(count, start=1, counter=0.0, prefix="E"):
    """count data rows under HEADER_P2, identifiers E001, E002..."""
    return [
        [f"{prefix}{i:03d}", "BUS", "17:00", "1:00", "0:00", "0", counter]
        for i in range(start, start + count)
    ]


@pytest.fixture
def ingest_config():
    return IngestConfig(default_buffer_hours=17.0, default_year=2024, header_scan_rows=10)


@pytest.fixture
def db(tmp_path):
    return DatabaseManager(db_path=str(tmp_path / "overtime.db"))


@pytest.fixture
def small_page_db(tmp_path):
    """Tiny pages and batches so pagination and batching loops are exercised"""
    return DatabaseManager(
        db_path=str(tmp_path / "overtime_small.db"),
        page_size=2,
        driver_batch_size=2,
        record_batch_size=3,
    )
