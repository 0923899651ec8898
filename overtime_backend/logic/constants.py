# overtime_backend/logic/constants.py
"""
Centralized Constants Module

Fixed calendar definitions, header keyword tables and analytics thresholds.
Values that a deployment may want to change (default buffer, default year,
batch sizes) live in config_manager.DEFAULT_CONFIG instead.
"""

import numpy as np

# ==============================================================================
# REFERENCE PERIODS
# ==============================================================================

# Three fixed four-month blocks per year
PERIODS = {
    1: {"label": "P1", "months": (1, 2, 3, 4), "start_month": 1, "end_month": 4},
    2: {"label": "P2", "months": (5, 6, 7, 8), "start_month": 5, "end_month": 8},
    3: {"label": "P3", "months": (9, 10, 11, 12), "start_month": 9, "end_month": 12},
}

FRENCH_MONTHS = {
    1: "Janvier",
    2: "Février",
    3: "Mars",
    4: "Avril",
    5: "Mai",
    6: "Juin",
    7: "Juillet",
    8: "Août",
    9: "Septembre",
    10: "Octobre",
    11: "Novembre",
    12: "Décembre",
}

FRENCH_MONTHS_SHORT = {
    1: "Janv",
    2: "Fév",
    3: "Mars",
    4: "Avr",
    5: "Mai",
    6: "Juin",
    7: "Juil",
    8: "Août",
    9: "Sept",
    10: "Oct",
    11: "Nov",
    12: "Déc",
}

# Month tokens as they appear in third-party headers, matched on word
# boundaries against normalized text. Order matters: first match wins.
MONTH_TOKENS = (
    ("janvier", 1), ("janv", 1), ("jan", 1),
    ("fevrier", 2), ("fevr", 2), ("fev", 2), ("feb", 2), ("fevier", 2),
    ("mars", 3), ("mar", 3),
    ("avril", 4), ("avr", 4), ("apr", 4),
    ("mai", 5),
    ("juin", 6), ("jun", 6),
    ("juillet", 7), ("juil", 7), ("jul", 7), ("juilet", 7),
    ("aout", 8), ("aou", 8), ("aug", 8),
    ("septembre", 9), ("sept", 9), ("sep", 9), ("setembre", 9),
    ("octobre", 10), ("oct", 10),
    ("novembre", 11), ("nov", 11),
    ("decembre", 12), ("dec", 12), ("decmbre", 12),
)

# ==============================================================================
# VEHICLES
# ==============================================================================

VEHICLE_BUS = "BUS"
VEHICLE_VAN = "VAN"
VEHICLE_TYPES = (VEHICLE_BUS, VEHICLE_VAN)

# Substrings of a normalized vehicle cell meaning "van" ("camionnette")
VAN_MARKERS = ("cam", "van")

# ==============================================================================
# INGESTION DEFAULTS
# ==============================================================================

DEFAULT_BUFFER_HOURS = 17.0
HEADER_SCAN_MAX_ROWS = 10
MIN_SHEET_ROWS = 2

# Used when the vehicle column is not found by keyword and the identifier
# is a real employee code (code, name, vehicle layout)
VEHICLE_FALLBACK_INDEX = 2

# ==============================================================================
# ANALYTICS
# ==============================================================================

# Right-closed bins: (-inf,-10], (-10,0], (0,5], (5,10], (10,15], (15,+inf)
COUNTER_BUCKET_EDGES = (-np.inf, -10.0, 0.0, 5.0, 10.0, 15.0, np.inf)
COUNTER_BUCKET_LABELS = (
    "≤ -10h",
    "-10h à 0h",
    "0h à 5h",
    "5h à 10h",
    "10h à 15h",
    "> 15h",
)

CRITICAL_FRACTION = 0.10
STATUS_THRESHOLD_ORANGE = 0.8  # 80% of buffer
OVERTIME_RANKING_LIMIT = 20
COMPARISON_MIN_DRIVERS = 2
COMPARISON_MAX_DRIVERS = 5

AGGREGATION_MODES = ("sum", "avg")


def get_period_label(period_number: int, year: int) -> str:
    """
    Build the display label of a reference period.

    Example: get_period_label(2, 2024) -> "P2 2024 (Mai-Août)"
    """
    period = PERIODS.get(period_number)
    if period is None:
        return ""
    start = FRENCH_MONTHS_SHORT[period["start_month"]]
    end = FRENCH_MONTHS_SHORT[period["end_month"]]
    return f"P{period_number} {year} ({start}-{end})"


def period_for_month(month: int) -> int:
    """Return the period number (1-3) containing a calendar month."""
    if month <= 4:
        return 1
    if month <= 8:
        return 2
    return 3


def get_month_label(month: int, year: int) -> str:
    return f"{FRENCH_MONTHS_SHORT[month]} {year}"
