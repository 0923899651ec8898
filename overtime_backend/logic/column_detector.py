"""
Overtime Counter - Column Detection Module

Header row detection and column classification for overtime counter
exports. Headers are free text typed by whoever built the workbook
("Code salarié", "Bus/Cam", "10%", "Mai Pos", "Compteur fin mai"...), so
classification is driven by ordered keyword rule tables evaluated once per
header cell. New header variants are added to the tables, not to the
control flow.

Author: Overtime Counter Team
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .constants import HEADER_SCAN_MAX_ROWS, VEHICLE_FALLBACK_INDEX
from .parse_utils import cell_text, detect_month, normalize_text

logger = logging.getLogger(__name__)


# ====================================================================================
# RULE TABLES
# ====================================================================================

# Column kinds
IDENTIFIER = "identifier"
VEHICLE_TYPE = "vehicle_type"
BUFFER = "buffer"
MONTH = "month"

# Per-month field slots
POSITIVE_HOURS = "positive_hours"
MISSING_HOURS = "missing_hours"
OVERTIME_PAY = "overtime_pay"
COUNTER_END = "counter_end"

MONTH_FIELDS = (POSITIVE_HOURS, MISSING_HOURS, OVERTIME_PAY, COUNTER_END)


def _contains_all(*keywords: str) -> Callable[[str], bool]:
    return lambda h: all(k in h for k in keywords)


def _is_buffer_header(h: str) -> bool:
    return h in ("10%", "10 %", "0.1") or "buffer" in h or "10%" in h


@dataclass(frozen=True)
class HeaderRule:
    """A (predicate, classification) pair applied to normalized header text"""
    kind: str
    predicate: Callable[[str], bool]
    description: str


# Evaluated in order, first match wins. Headers matching none of these are
# tried for a month token.
HEADER_RULES: Tuple[HeaderRule, ...] = (
    HeaderRule(IDENTIFIER, _contains_all("code", "salarie"), "code + salarie"),
    HeaderRule(
        VEHICLE_TYPE,
        lambda h: _contains_all("bus", "cam")(h) or "fonction" in h,
        "bus + cam, or fonction",
    ),
    HeaderRule(BUFFER, _is_buffer_header, "10% / buffer"),
)

# Sub-keywords classifying a month column, evaluated in order
MONTH_FIELD_RULES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    (POSITIVE_HOURS, ("pos", "excedent", "supp")),
    (MISSING_HOURS, ("manq", "deficit", "neg")),
    (OVERTIME_PAY, ("montant", "payer")),
    (COUNTER_END, ("compteur", "cumul")),
)


def _is_name_header(h: str) -> bool:
    return "nom" in h and ("prenom" in h or "prénom" in h)


# ====================================================================================
# DATA CLASSES
# ====================================================================================

@dataclass(frozen=True)
class MonthColumns:
    """Column indices of the four per-month fields (None when absent)"""
    positive_hours: Optional[int] = None
    missing_hours: Optional[int] = None
    overtime_pay: Optional[int] = None
    counter_end: Optional[int] = None


@dataclass(frozen=True)
class ColumnMapping:
    """Immutable column layout of one sheet"""
    identifier_col: int
    identifier_is_name_fallback: bool
    vehicle_type_col: Optional[int]
    buffer_col: Optional[int]
    month_columns: Mapping[int, MonthColumns] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def detected_months(self) -> List[int]:
        return sorted(self.month_columns)

    def __repr__(self) -> str:
        fallback = " (name fallback)" if self.identifier_is_name_fallback else ""
        return (
            f"ColumnMapping(identifier={self.identifier_col}{fallback}, "
            f"vehicle={self.vehicle_type_col}, buffer={self.buffer_col}, "
            f"months={self.detected_months})"
        )


class ColumnMappingBuilder:
    """
    Accumulates column classifications during the single header pass and
    freezes them into a ColumnMapping at the end.
    """

    def __init__(self):
        self.identifier_col: Optional[int] = None
        self.identifier_is_name_fallback = False
        self.vehicle_type_col: Optional[int] = None
        self.buffer_col: Optional[int] = None
        self._months: Dict[int, Dict[str, Optional[int]]] = {}

    def set_identifier(self, index: int, name_fallback: bool = False) -> None:
        # Last "code salarié" column wins, as in a left-to-right overwrite
        self.identifier_col = index
        self.identifier_is_name_fallback = name_fallback

    def set_vehicle_type(self, index: int) -> None:
        self.vehicle_type_col = index

    def set_buffer(self, index: int) -> None:
        # The buffer column repeats in every month block; keep the first
        if self.buffer_col is None:
            self.buffer_col = index

    def add_month_field(self, month: int, slot: Optional[str], index: int) -> None:
        entry = self._months.setdefault(month, {name: None for name in MONTH_FIELDS})
        if slot is None:
            return
        if slot == POSITIVE_HOURS and entry[POSITIVE_HOURS] is not None:
            # Second "pos" column for the same month is a typo for "manq"
            if entry[MISSING_HOURS] is None:
                entry[MISSING_HOURS] = index
            return
        if entry[slot] is None:
            entry[slot] = index

    def build(self) -> Optional[ColumnMapping]:
        if self.identifier_col is None:
            return None
        return ColumnMapping(
            identifier_col=self.identifier_col,
            identifier_is_name_fallback=self.identifier_is_name_fallback,
            vehicle_type_col=self.vehicle_type_col,
            buffer_col=self.buffer_col,
            month_columns=MappingProxyType({
                month: MonthColumns(**slots) for month, slots in sorted(self._months.items())
            }),
        )


# ====================================================================================
# HEADER ROW DETECTION
# ====================================================================================

def _is_header_cell(text: str) -> bool:
    n = normalize_text(text)
    return "code" in n or ("nom" in n and "prenom" in n)


def find_header_row(
    rows: Sequence[Sequence[object]],
    max_rows: int = HEADER_SCAN_MAX_ROWS,
) -> Tuple[int, List[str]]:
    """
    Locate the header row of a sheet.

    The header is the first row (within the first max_rows) holding a cell
    that mentions "code", or both "nom" and "prenom". Falls back to row 0.

    Args:
        rows: Raw sheet rows
        max_rows: Number of leading rows to scan

    Returns:
        Tuple of (header_row_index, header texts)
    """
    for i, row in enumerate(rows[:max_rows]):
        if not row:
            continue
        texts = [cell_text(c) for c in row]
        if any(_is_header_cell(t) for t in texts):
            logger.debug(f"[Header] Found header row {i}: {texts}")
            return i, texts

    first = rows[0] if rows else []
    logger.debug("[Header] No header keyword in leading rows, using row 0")
    return 0, [cell_text(c) for c in (first or [])]


# ====================================================================================
# COLUMN CLASSIFICATION
# ====================================================================================

def classify_header(header: str) -> Tuple[Optional[str], Optional[int], Optional[str]]:
    """
    Classify a single header cell.

    Returns:
        Tuple of (kind, month, month_slot). kind is None for unrecognized
        headers; month and month_slot are only set for MONTH columns
        (month_slot may still be None when no sub-keyword matched).
    """
    h = normalize_text(header)
    for rule in HEADER_RULES:
        if rule.predicate(h):
            return rule.kind, None, None

    month = detect_month(header)
    if month is None:
        return None, None, None

    for slot, keywords in MONTH_FIELD_RULES:
        if any(k in h for k in keywords):
            return MONTH, month, slot
    return MONTH, month, None


def detect_columns(headers: Sequence[str]) -> Optional[ColumnMapping]:
    """
    Classify every column of a header row.

    Fallbacks:
    - No "code salarié" column: the first "nom"+"prénom" column becomes the
      identifier and the mapping is flagged as a name fallback.
    - No vehicle column by keyword: the column right after the identifier
      (name fallback) or column 2 (code layout), when it exists.

    Args:
        headers: Header texts of the detected header row

    Returns:
        ColumnMapping, or None when no identifier column can be found
    """
    builder = ColumnMappingBuilder()

    for i, header in enumerate(headers):
        kind, month, slot = classify_header(header or "")
        if kind == IDENTIFIER:
            builder.set_identifier(i)
        elif kind == VEHICLE_TYPE:
            builder.set_vehicle_type(i)
        elif kind == BUFFER:
            builder.set_buffer(i)
        elif kind == MONTH:
            builder.add_month_field(month, slot, i)

    if builder.identifier_col is None:
        for i, header in enumerate(headers):
            if _is_name_header(normalize_text(header or "")):
                builder.set_identifier(i, name_fallback=True)
                break
        else:
            logger.debug(f"[Columns] No identifier column in headers: {list(headers)}")
            return None

    if builder.vehicle_type_col is None and len(headers) > builder.identifier_col + 1:
        candidate = (
            builder.identifier_col + 1
            if builder.identifier_is_name_fallback
            else VEHICLE_FALLBACK_INDEX
        )
        if candidate < len(headers):
            builder.set_vehicle_type(candidate)

    mapping = builder.build()
    logger.debug(f"[Columns] {mapping!r}")
    return mapping
