"""
Tests for the ImporterService.

Covers the import flow from workbook bytes to stored records, idempotent
re-imports, period overrides and failure bookkeeping.
"""

import pytest

from conftest import HEADER_P2, driver_rows, make_workbook
from overtime_backend.database_manager import StorageError
from overtime_backend.services.importer import ImporterService


@pytest.fixture
def importer(db, ingest_config):
    return ImporterService(db=db, config=ingest_config)


def _workbook():
    return make_workbook({
        "P2 2024": [
            HEADER_P2,
            ["E001", "BUS", "17:00", "5:30", "0:00", "0:00", "12.5"],
            ["E002", "Cam", "17:00", "0:00", "2:00", "0:00", "-3"],
        ],
    })


class TestImportWorkbook:
    """Test the happy path."""

    def test_import_writes_period_drivers_and_records(self, importer, db):
        report = importer.import_workbook(_workbook(), filename="compteurs.xlsx")

        assert report.total_drivers == 2
        assert report.total_records == 2
        result = report.results[0]
        assert result.period_label == "P2 2024 (Mai-Août)"

        summaries = db.fetch_period_summaries([result.period_id])
        by_id = {s.identifier: s for s in summaries}
        assert by_id["E001"].latest_counter == 12.5
        assert by_id["E001"].total_positive_hours == 5.5
        assert by_id["E002"].vehicle_type == "VAN"
        assert by_id["E002"].total_missing_hours == 2.0

        assert db.get_import(result.import_id)["status"] == "completed"

    def test_reimport_is_idempotent(self, importer, db):
        """Importing the same sheet twice gives the same summaries as once."""
        first = importer.import_workbook(_workbook())
        once = db.fetch_period_summaries([first.results[0].period_id])

        second = importer.import_workbook(_workbook())
        twice = db.fetch_period_summaries([second.results[0].period_id])

        assert first.results[0].period_id == second.results[0].period_id
        assert once == twice

    def test_to_dict(self, importer):
        data = importer.import_workbook(_workbook()).to_dict()
        assert data["success"]
        assert data["total_drivers"] == 2
        assert data["results"][0]["sheet_name"] == "P2 2024"


class TestImportSelection:
    """Test sheet selection and period overrides."""

    def test_period_override(self, importer, db):
        report = importer.import_workbook(_workbook(), period_overrides={"P2 2024": (2, 2023)})
        assert report.results[0].period_label == "P2 2023 (Mai-Août)"
        records = db.fetch_monthly_records([report.results[0].period_id])
        assert {r.year for r in records} == {2023}

    def test_invalid_override(self, importer):
        with pytest.raises(ValueError):
            importer.import_workbook(_workbook(), period_overrides={"P2 2024": (4, 2024)})

    def test_override_collision(self, importer):
        content = make_workbook({
            "P2 2024": [HEADER_P2, *driver_rows(2)],
            "P2 2025": [HEADER_P2, *driver_rows(2)],
        })
        with pytest.raises(ValueError):
            importer.import_workbook(content, period_overrides={"P2 2025": (2, 2024)})

    def test_sheet_selection(self, importer):
        content = make_workbook({
            "P2 2024": [HEADER_P2, *driver_rows(2)],
            "P2 2025": [HEADER_P2, *driver_rows(3)],
        })
        report = importer.import_workbook(content, sheet_names=["P2 2025"])
        assert [r.sheet_name for r in report.results] == ["P2 2025"]
        assert report.skipped == {"P2 2024": "not selected"}

    def test_rejected_sheets_reported(self, importer):
        content = make_workbook({
            "P2 2024": [HEADER_P2, *driver_rows(2)],
            "Notes": [["Remarques"]],
        })
        report = importer.import_workbook(content)
        assert "Notes" in report.skipped

    def test_nothing_to_import(self, importer):
        with pytest.raises(ValueError):
            importer.import_workbook(b"garbage")

    def test_preview_writes_nothing(self, importer, db):
        result = importer.preview(_workbook())
        assert result.sheets[0].row_count == 2
        assert db.list_periods() == []


class TestImportFailure:
    """Test failure bookkeeping."""

    def test_storage_failure_marks_import_failed(self, importer, db, monkeypatch):
        def broken(period_id, records):
            raise StorageError("disk full")

        monkeypatch.setattr(db, "replace_monthly_records", broken)

        with pytest.raises(StorageError):
            importer.import_workbook(_workbook(), filename="compteurs.xlsx")

        record = db.get_import(1)
        assert record["status"] == "failed"
        assert record["error_message"] == "disk full"
