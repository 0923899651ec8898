"""
Driver status classification (green / orange / red) and status breakdowns.
"""

from collections import Counter
from typing import Iterable, List

from ..models.analytics import DriverStatus, StatusCount
from .constants import STATUS_THRESHOLD_ORANGE

STATUS_LABELS = {
    "green": "Normal",
    "orange": "Attention",
    "red": "Critique",
}

STATUS_ORDER = ("green", "orange", "red")


def get_driver_status(counter_end: float, buffer_hours: float, has_overtime_pay: bool) -> DriverStatus:
    """
    Classify a driver.

    - red: overtime has already been paid out
    - orange: the counter is above 80% of the buffer
    - green: otherwise (including drivers without a buffer)
    """
    if has_overtime_pay:
        return "red"
    if buffer_hours > 0 and counter_end > buffer_hours * STATUS_THRESHOLD_ORANGE:
        return "orange"
    return "green"


def get_status_label(status: DriverStatus) -> str:
    return STATUS_LABELS[status]


def status_breakdown(statuses: Iterable[DriverStatus]) -> List[StatusCount]:
    """Count drivers per status; statuses with no driver are omitted."""
    counts = Counter(statuses)
    return [
        StatusCount(status=status, label=STATUS_LABELS[status], count=counts[status])
        for status in STATUS_ORDER
        if counts[status]
    ]
