"""
Unit tests for the parse_utils module.

Tests parsing logic including:
- Hour values in every format found in exports
- Locale-tolerant number parsing
- Text normalization and month detection
"""

import logging
from datetime import datetime, time, timedelta

import numpy as np
import pytest

from overtime_backend.logging_utils import setup_logging
from overtime_backend.logic.parse_utils import (
    cell_text,
    detect_month,
    normalize_text,
    parse_number,
    parse_time_value,
)


class TestParseTimeValue:
    """Test hour parsing."""

    def test_day_fraction(self):
        """Excel time-of-day fractions are converted to hours."""
        assert parse_time_value(0.7083333) == pytest.approx(17.0, abs=1e-4)

    def test_whole_hours_kept(self):
        """Numbers of 1 or more are already hours."""
        assert parse_time_value(12.5) == 12.5
        assert parse_time_value(-3) == -3.0

    def test_negative_fraction(self):
        assert parse_time_value(-0.5) == -12.0

    def test_clock_strings(self):
        """HH:MM strings, sign taken from the hour part."""
        assert parse_time_value("17:30") == 17.5
        assert parse_time_value("-2:15") == -2.25
        assert parse_time_value("-0:30") == -0.5
        assert parse_time_value("0:00") == 0.0

    def test_decimal_comma(self):
        assert parse_time_value("12,5") == 12.5

    def test_blank_values(self):
        """Blank cells are zero."""
        assert parse_time_value("") == 0.0
        assert parse_time_value("   ") == 0.0
        assert parse_time_value(None) == 0.0
        assert parse_time_value(float("nan")) == 0.0

    def test_garbage_is_zero(self):
        """Unparseable strings never raise."""
        assert parse_time_value("n/a") == 0.0
        assert parse_time_value("-") == 0.0

    def test_time_objects(self):
        """openpyxl time-typed cells."""
        assert parse_time_value(time(17, 30)) == 17.5
        assert parse_time_value(timedelta(hours=30, minutes=15)) == 30.25
        assert parse_time_value(datetime(1900, 1, 1, 6, 0)) == pytest.approx(54.0)

    def test_numpy_scalars(self):
        assert parse_time_value(np.float64(0.5)) == 12.0
        assert parse_time_value(np.int64(20)) == 20.0

    def test_bool_is_not_a_number(self):
        assert parse_time_value(True) == 0.0


class TestParseNumber:
    """Test number parsing."""

    def test_plain_numbers(self):
        assert parse_number(3) == 3.0
        assert parse_number("42") == 42.0

    def test_units_stripped(self):
        assert parse_number("12.5 h") == 12.5
        assert parse_number("-4,25h") == -4.25

    def test_default_when_empty(self):
        assert parse_number("abc", default=-1.0) == -1.0
        assert parse_number(None) == 0.0


class TestNormalizeText:
    """Test header normalization."""

    def test_accents_and_case(self):
        assert normalize_text("  Code Salarié ") == "code salarie"
        assert normalize_text("AOÛT") == "aout"

    def test_none(self):
        assert normalize_text(None) == ""


class TestDetectMonth:
    """Test month token detection."""

    @pytest.mark.parametrize("header,month", [
        ("Mai Pos", 5),
        ("Compteur fin août", 8),
        ("Janv montant", 1),
        ("Sept cumul", 9),
        ("Décembre", 12),
        ("FEB pos", 2),
    ])
    def test_months(self, header, month):
        assert detect_month(header) == month

    def test_word_boundaries(self):
        """Tokens inside longer words never match."""
        assert detect_month("Heures après service") is None
        assert detect_month("mais encore") is None

    def test_no_month(self):
        assert detect_month("Code salarié") is None
        assert detect_month("") is None


class TestCellText:
    """Test display text of identifier cells."""

    def test_integral_float(self):
        """Numeric codes read as floats lose their .0"""
        assert cell_text(1234.0) == "1234"

    def test_strings_trimmed(self):
        assert cell_text("  E001 ") == "E001"
        assert cell_text(None) == ""


class TestParseLogging:
    """Unparseable cells are tolerated but logged at DEBUG."""

    def test_unparseable_cell_logged(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="overtime_backend.logic.parse_utils"):
            assert parse_time_value("n/a") == 0.0

        records = [r for r in caplog.records if r.name == "overtime_backend.logic.parse_utils"]
        assert records
        assert records[0].levelno == logging.DEBUG
        assert "n/a" in records[0].getMessage()

    def test_debug_level_reaches_parser(self):
        """setup_logging(level="DEBUG") enables the parser's debug output."""
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        try:
            setup_logging(level="DEBUG", log_to_file=False)
            parser_logger = logging.getLogger("overtime_backend.logic.parse_utils")
            assert parser_logger.isEnabledFor(logging.DEBUG)
            assert parser_logger.handlers == []
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
