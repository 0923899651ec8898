"""
Overtime Counter - Sheet Analysis Module

Reporting period detection for a sheet (from its name and from the months
found in its columns) and duplicate-period resolution across the sheets of
one workbook.

Author: Overtime Counter Team
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from ..models.driver import DetectedPeriod, SheetResult
from .constants import get_period_label, period_for_month
from .parse_utils import normalize_text

logger = logging.getLogger(__name__)


# ====================================================================================
# PERIOD DETECTION
# ====================================================================================

# "P1", "p 2", "Periode 3" (normalized), never "P12"
SHEET_PERIOD_PATTERN = re.compile(r"p(?:eriode)?\s*([123])(?!\d)")
YEAR_4_DIGIT_PATTERN = re.compile(r"(20\d{2})")
YEAR_2_DIGIT_PATTERN = re.compile(r"\b(\d{2})\b")


@dataclass(frozen=True)
class SheetNamePeriod:
    """Period read from a sheet name; the year is often missing"""
    period_number: int
    year: Optional[int]


def detect_period_from_sheet_name(sheet_name: str) -> Optional[SheetNamePeriod]:
    """
    Extract the period number (and year when present) from a sheet name.

    Examples:
    - "P1 24" -> (1, 2024)
    - "P2 2025" -> (2, 2025)
    - "Période 3" -> (3, None)
    - "Synthese" -> None

    The year is read from the raw name: a 4-digit 20xx first, else the first
    bare 2-digit token when it lies in 20-99.
    """
    if not sheet_name:
        return None

    match = SHEET_PERIOD_PATTERN.search(normalize_text(sheet_name))
    if not match:
        return None
    period_number = int(match.group(1))

    year4 = YEAR_4_DIGIT_PATTERN.search(sheet_name)
    if year4:
        return SheetNamePeriod(period_number, int(year4.group(1)))

    year2 = YEAR_2_DIGIT_PATTERN.search(sheet_name)
    if year2:
        short_year = int(year2.group(1))
        if 20 <= short_year <= 99:
            return SheetNamePeriod(period_number, 2000 + short_year)

    return SheetNamePeriod(period_number, None)


def detect_period_from_months(
    months: Sequence[int],
    default_year: Optional[int] = None,
) -> Optional[DetectedPeriod]:
    """
    Infer the period from the months present in a sheet's columns.

    The smallest month selects the block (1-4 -> P1, 5-8 -> P2, 9-12 -> P3).
    Month headers carry no year, so the year is default_year (current
    calendar year when not given).
    """
    if not months:
        return None
    return DetectedPeriod(
        period_number=period_for_month(min(months)),
        year=default_year or date.today().year,
    )


def reconcile_period(
    name_period: Optional[SheetNamePeriod],
    month_period: Optional[DetectedPeriod],
    default_year: Optional[int] = None,
) -> Optional[DetectedPeriod]:
    """
    Merge the two period signals of a sheet.

    The period number comes from the month columns when available (the
    structure is more reliable than a hand-typed name); the year comes from
    the sheet name when available (month headers carry no year).
    """
    fallback_year = default_year or date.today().year

    if month_period is not None:
        year = name_period.year if name_period and name_period.year else month_period.year
        return DetectedPeriod(period_number=month_period.period_number, year=year)

    if name_period is not None:
        return DetectedPeriod(
            period_number=name_period.period_number,
            year=name_period.year or fallback_year,
        )

    return None


# ====================================================================================
# DUPLICATE PERIOD RESOLUTION
# ====================================================================================

@dataclass(frozen=True)
class PeriodResolution:
    """Outcome of duplicate-period resolution over one workbook"""
    sheets: Tuple[SheetResult, ...]
    kept: Dict[Tuple[int, int], str]        # (period_number, year) -> sheet name
    excluded: Dict[str, str]                # sheet name -> reason

    @property
    def has_collisions(self) -> bool:
        return bool(self.excluded)


def resolve_duplicate_periods(sheets: Sequence[SheetResult]) -> PeriodResolution:
    """
    Keep at most one enabled sheet per (period, year).

    Only enabled sheets with a detected period take part. On a collision the
    sheet with fewer rows is excluded; on a tie the sheet met later is
    excluded. Input results are not mutated: excluded sheets are returned as
    updated copies with enabled=False, a reason and a warning.

    Args:
        sheets: Per-sheet ingestion results, in workbook order

    Returns:
        PeriodResolution with the resolved sheets in the original order
    """
    winners: Dict[Tuple[int, int], int] = {}
    excluded_by: Dict[int, int] = {}

    for index, sheet in enumerate(sheets):
        if not sheet.enabled or sheet.detected_period is None:
            continue
        key = (sheet.detected_period.period_number, sheet.detected_period.year)
        current = winners.get(key)
        if current is None:
            winners[key] = index
            continue

        if sheet.row_count > sheets[current].row_count:
            excluded_by[current] = index
            winners[key] = index
        else:
            excluded_by[index] = current

    resolved: List[SheetResult] = []
    excluded: Dict[str, str] = {}
    for index, sheet in enumerate(sheets):
        if index not in excluded_by:
            resolved.append(sheet)
            continue

        winner = sheets[excluded_by[index]]
        period = sheet.detected_period
        reason = (
            f"Duplicate period {get_period_label(period.period_number, period.year)}: "
            f"sheet '{winner.sheet_name}' has {winner.row_count} rows, "
            f"this sheet has {sheet.row_count}."
        )
        logger.warning(f"Sheet '{sheet.sheet_name}' excluded. {reason}")
        excluded[sheet.sheet_name] = reason
        resolved.append(sheet.model_copy(update={
            "enabled": False,
            "excluded_reason": reason,
            "warnings": [*sheet.warnings, reason],
        }))

    kept = {key: sheets[index].sheet_name for key, index in winners.items()}
    return PeriodResolution(sheets=tuple(resolved), kept=kept, excluded=excluded)
