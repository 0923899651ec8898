# overtime_backend/logic/parse_utils.py
"""
Parsing Utilities Module

Handles safe parsing of hour quantities and header text from the
heterogeneous cell values found in third-party Excel exports.

The same logical quantity (a buffer threshold, a monthly surplus) may be
typed as decimal hours, as an Excel time-of-day (fraction of a day), as an
"HH:MM" string or as a French-formatted decimal string ("12,5"). Every
parser here returns a float and never raises: a malformed cell resolves
to 0 and is logged at DEBUG level.
"""

from __future__ import annotations

import logging
import math
import numbers
import re
import unicodedata
from datetime import datetime, time, timedelta
from functools import lru_cache
from typing import Any, Optional

from .constants import MONTH_TOKENS

logger = logging.getLogger(__name__)

# Excel serial day 0 (the 1900 leap-year bug is already folded in)
EXCEL_EPOCH = datetime(1899, 12, 30)

_CLOCK_PATTERN = re.compile(r"^(-?\d+):(\d+)$")
_NON_NUMERIC_CHARS = re.compile(r"[^\d.\-]")


# ==============================================================================
# CELL HELPERS
# ==============================================================================

def is_blank(v: Any) -> bool:
    """True for None, NaN and whitespace-only strings."""
    if v is None:
        return True
    if isinstance(v, float) and math.isnan(v):
        return True
    if isinstance(v, str) and not v.strip():
        return True
    return False


def cell_text(v: Any) -> str:
    """
    Render a cell as display text.

    Integral floats lose their ".0" so that a numeric employee code read as
    1234.0 by pandas becomes "1234" again.
    """
    if is_blank(v):
        return ""
    if isinstance(v, bool):
        return str(v)
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v).strip()


# ==============================================================================
# NUMBER PARSING
# ==============================================================================

def parse_number(v: Any, default: float = 0.0) -> float:
    """
    Parse a numeric value from various formats.

    Handles:
    - Already numeric values
    - French decimal comma: "12,5" -> 12.5
    - Units and noise: "12.5 h" -> 12.5

    Only the first comma is treated as the decimal separator; any other
    character that is not a digit, a minus sign or a dot is stripped.

    Args:
        v: Value to parse
        default: Value returned when nothing parseable remains

    Returns:
        Parsed float or default value
    """
    if is_blank(v) or isinstance(v, bool):
        return default

    if isinstance(v, numbers.Real):
        return float(v)

    s = _NON_NUMERIC_CHARS.sub("", str(v).replace(",", ".", 1))
    match = re.match(r"^-?\d*\.?\d*", s)
    token = match.group(0) if match else ""
    if token in ("", "-", ".", "-."):
        logger.debug(f"Unparseable number '{v}', using {default}")
        return default
    return float(token)


# ==============================================================================
# TIME VALUE PARSING
# ==============================================================================

def _hours_from_time(t: time) -> float:
    return t.hour + t.minute / 60 + t.second / 3600


def parse_time_value(v: Any) -> float:
    """
    Convert a raw cell value into a signed number of hours.

    Rules:
    - blank -> 0
    - number with |v| < 1 -> Excel day fraction, multiplied by 24
    - number with |v| >= 1 -> already hours
    - "HH:MM" string -> sign of the hour part, |HH| + MM/60
    - other strings -> parse_number (decimal comma tolerated), 0 if unparseable

    openpyxl may also hand back time-typed cells as datetime.time,
    datetime.timedelta, or (for [h]:mm durations of a day or more)
    datetime.datetime offsets from the Excel epoch.

    Examples:
        parse_time_value(0.7083333) -> 17.0
        parse_time_value("17:30") -> 17.5
        parse_time_value("-2:15") -> -2.25
        parse_time_value("12,5") -> 12.5
    """
    if is_blank(v) or isinstance(v, bool):
        return 0.0

    if isinstance(v, numbers.Real):
        if not math.isfinite(v):
            return 0.0
        if abs(v) < 1:
            return float(v) * 24
        return float(v)

    if isinstance(v, datetime):
        return (v - EXCEL_EPOCH).total_seconds() / 3600
    if isinstance(v, timedelta):
        return v.total_seconds() / 3600
    if isinstance(v, time):
        return _hours_from_time(v)

    s = str(v).strip()
    clock = _CLOCK_PATTERN.match(s)
    if clock:
        hours = int(clock.group(1))
        minutes = int(clock.group(2))
        # Sign from the text, not int(): "-0:30" must stay negative
        sign = -1 if clock.group(1).startswith("-") else 1
        return sign * (abs(hours) + minutes / 60)

    return parse_number(s, default=0.0)


# ==============================================================================
# TEXT NORMALIZATION
# ==============================================================================

def normalize_text(text: Any) -> str:
    """
    Normalize header or label text for keyword matching.

    - Lowercase
    - Strip diacritics (NFD decomposition, combining marks removed)
    - Trim surrounding whitespace

    Example: "  Code Salarié " -> "code salarie"
    """
    if text is None:
        return ""
    decomposed = unicodedata.normalize("NFD", str(text).lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.strip()


_MONTH_PATTERNS = tuple(
    (re.compile(rf"\b{re.escape(normalize_text(token))}\b"), month)
    for token, month in MONTH_TOKENS
)


@lru_cache(maxsize=1024)
def detect_month(header: str) -> Optional[int]:
    """
    Detect the calendar month a header refers to.

    Tokens are matched on word boundaries so that "avr" never matches
    inside "apres" and "mai" never matches inside "mais".

    Returns:
        Month number 1-12, or None when no month token is present
    """
    normalized = normalize_text(header)
    if not normalized:
        return None
    for pattern, month in _MONTH_PATTERNS:
        if pattern.search(normalized):
            return month
    return None
