# overtime_backend/logic/aggregation.py
"""
Aggregation Engine

Pure computations over DriverPeriodSummary and MonthlyRecordRow read
models: counter distribution, critical drivers, period comparison, monthly
series, plus the list/dashboard views built on top of them.

Nothing here performs I/O, caches results or raises on empty input.
Driver order is always first-appearance order in the supplied summaries,
which is what makes the critical selection tie-break stable.
"""

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

import pandas as pd

from ..models.analytics import (
    AggregationOptions,
    AnalyticsResult,
    ComparisonPoint,
    DashboardStats,
    DistributionBucket,
    DriverHistorySummary,
    DriverOverview,
    DriverPeriodSummary,
    DriverPeriodTotals,
    MonthlyPoint,
    MonthlyRecordRow,
    PeriodComparisonRow,
)
from .constants import (
    AGGREGATION_MODES,
    COMPARISON_MAX_DRIVERS,
    COMPARISON_MIN_DRIVERS,
    COUNTER_BUCKET_EDGES,
    COUNTER_BUCKET_LABELS,
    CRITICAL_FRACTION,
    DEFAULT_BUFFER_HOURS,
    OVERTIME_RANKING_LIMIT,
    PERIODS,
    VEHICLE_BUS,
    VEHICLE_VAN,
    get_month_label,
    get_period_label,
)
from .driver_status import get_driver_status

logger = logging.getLogger(__name__)

T = TypeVar("T", DriverPeriodSummary, MonthlyRecordRow)

SUMMARY_COLUMNS = list(DriverPeriodSummary.model_fields)
RECORD_COLUMNS = list(MonthlyRecordRow.model_fields)


# ==============================================================================
# HELPERS
# ==============================================================================

def filter_by_vehicle(items: Iterable[T], vehicle_type: Optional[str]) -> List[T]:
    items = list(items)
    if vehicle_type is None:
        return items
    return [item for item in items if item.vehicle_type == vehicle_type]


def _summaries_frame(summaries: Sequence[DriverPeriodSummary]) -> pd.DataFrame:
    return pd.DataFrame([s.model_dump() for s in summaries], columns=SUMMARY_COLUMNS)


def _records_frame(records: Sequence[MonthlyRecordRow]) -> pd.DataFrame:
    return pd.DataFrame([r.model_dump() for r in records], columns=RECORD_COLUMNS)


def _per_driver(summaries: Sequence[DriverPeriodSummary]) -> pd.DataFrame:
    """
    One row per distinct driver, in first-appearance order.

    latest_counter is averaged over the supplied periods; hours and pay
    are summed.
    """
    df = _summaries_frame(summaries)
    df["missing_part"] = df["latest_counter"].clip(upper=0)
    df["excess_part"] = df["latest_counter"].clip(lower=0) + df["total_overtime_pay"]

    grouped = df.groupby("driver_id", sort=False)
    return grouped.agg(
        identifier=("identifier", "last"),
        vehicle_type=("vehicle_type", "last"),
        total_positive_hours=("total_positive_hours", "sum"),
        total_missing_hours=("total_missing_hours", "sum"),
        total_overtime_pay=("total_overtime_pay", "sum"),
        average_counter=("latest_counter", "mean"),
        buffer_hours=("buffer_hours", "last"),
        months_recorded=("months_recorded", "sum"),
        missing_total=("missing_part", "sum"),
        excess_total=("excess_part", "sum"),
    )


# ==============================================================================
# DISTRIBUTION
# ==============================================================================

def _counter_buckets(counters: pd.Series) -> pd.Series:
    """Right-closed bucket label for each counter value."""
    return pd.cut(
        counters,
        bins=list(COUNTER_BUCKET_EDGES),
        labels=list(COUNTER_BUCKET_LABELS),
        right=True,
    )


def compute_distribution(summaries: Sequence[DriverPeriodSummary]) -> List[DistributionBucket]:
    """
    Bucket drivers by their mean latest_counter over the supplied periods.

    Buckets are right-closed: (-inf,-10], (-10,0], (0,5], (5,10], (10,15],
    (15,+inf). Empty buckets are omitted; counts sum to the number of
    distinct drivers.
    """
    if not summaries:
        return []

    buckets = _counter_buckets(_per_driver(summaries)["average_counter"])
    counts = buckets.value_counts(sort=False).reindex(list(COUNTER_BUCKET_LABELS), fill_value=0)
    return [
        DistributionBucket(bucket=label, count=int(count))
        for label, count in counts.items()
        if count > 0
    ]


def drivers_in_bucket(
    summaries: Sequence[DriverPeriodSummary],
    bucket: str,
    descending: bool = False,
) -> List[DriverOverview]:
    """
    Drivers behind one distribution bar, sorted by average counter.

    Uses the same per-driver mean and bucket edges as compute_distribution,
    so the list length always equals that bucket's count.

    Raises:
        ValueError: unknown bucket label
    """
    if bucket not in COUNTER_BUCKET_LABELS:
        raise ValueError(f"Unknown bucket: {bucket}")
    if not summaries:
        return []

    buckets = _counter_buckets(_per_driver(summaries)["average_counter"])
    members = {int(driver_id) for driver_id, label in buckets.items() if label == bucket}
    selected = [o for o in build_driver_overviews(summaries) if o.driver_id in members]
    return sorted(selected, key=lambda o: o.average_counter, reverse=descending)


# ==============================================================================
# CRITICAL DRIVERS
# ==============================================================================

def critical_subset_size(population: int) -> int:
    """max(1, ceil(N * 10%)) for a non-empty population, else 0"""
    if population <= 0:
        return 0
    return max(1, math.ceil(population * CRITICAL_FRACTION))


def compute_critical_drivers(summaries: Sequence[DriverPeriodSummary]) -> List[int]:
    """
    Return the ids of critical drivers.

    Two subsets of k = max(1, ceil(N*0.1)) drivers each:
    - deficit: the k lowest sums of min(latest_counter, 0)
    - excess: the k highest sums of max(latest_counter, 0) + overtime pay

    Sorting is stable, so ties resolve in first-appearance order. The result
    is the union, in first-appearance order.
    """
    if not summaries:
        return []

    drivers = _per_driver(summaries)
    k = critical_subset_size(len(drivers))

    deficit = drivers.sort_values("missing_total", kind="stable").head(k)
    # Negate rather than sort descending so ties keep their original order
    excess = drivers.assign(_neg_excess=-drivers["excess_total"]).sort_values(
        "_neg_excess", kind="stable"
    ).head(k)

    selected = set(deficit.index) | set(excess.index)
    return [int(driver_id) for driver_id in drivers.index if driver_id in selected]


# ==============================================================================
# PERIOD COMPARISON
# ==============================================================================

def compare_periods(
    summaries: Sequence[DriverPeriodSummary],
    mode: str = "sum",
) -> List[PeriodComparisonRow]:
    """
    Per-period totals ordered by (year, period_number).

    total_missing_end is reported as a positive magnitude. In "avg" mode
    the hour totals are divided by the period's driver count; the counts
    themselves are unchanged.
    """
    if not summaries:
        return []

    df = _summaries_frame(summaries)
    rows: List[PeriodComparisonRow] = []
    for (year, period_number, period_id), group in df.groupby(
        ["year", "period_number", "period_id"], sort=True
    ):
        counters = group["latest_counter"]
        positive = counters[counters > 0]
        negative = counters[counters < 0]
        total_drivers = int(group["driver_id"].nunique())

        divisor = total_drivers if mode == "avg" and total_drivers else 1
        rows.append(PeriodComparisonRow(
            period_id=int(period_id),
            period_label=get_period_label(int(period_number), int(year)),
            year=int(year),
            period_number=int(period_number),
            total_drivers=total_drivers,
            total_overtime_pay=float(group["total_overtime_pay"].sum()) / divisor,
            total_positive_end=float(positive.sum()) / divisor,
            drivers_positive=int(len(positive)),
            total_missing_end=float(-negative.sum()) / divisor,
            drivers_negative=int(len(negative)),
        ))
    return rows


# ==============================================================================
# MONTHLY SERIES
# ==============================================================================

def _selected_periods(
    summaries: Sequence[DriverPeriodSummary],
    records: Sequence[MonthlyRecordRow],
) -> List[Tuple[int, int]]:
    keys = {(s.year, s.period_number) for s in summaries}
    keys |= {(r.year, r.period_number) for r in records}
    return sorted(keys)


def build_monthly_series(
    summaries: Sequence[DriverPeriodSummary],
    records: Sequence[MonthlyRecordRow],
) -> List[MonthlyPoint]:
    """
    One point per calendar month of the selected periods.

    On a period's final month the counters still positive are settled as
    paid hours and the counters still negative as missing hours, on top of
    that month's overtime_pay and missing_hours.
    """
    periods = _selected_periods(summaries, records)
    if not periods:
        return []

    df = _records_frame(records)
    points: List[MonthlyPoint] = []
    for year, period_number in periods:
        period = PERIODS[period_number]
        for month in period["months"]:
            month_df = df[(df["year"] == year) & (df["month"] == month)]
            counters = month_df["counter_end"]
            is_end = month == period["end_month"]

            positive_hours = float(month_df["positive_hours"].sum())
            missing_hours = float(month_df["missing_hours"].sum())
            overtime_pay = float(month_df["overtime_pay"].sum())
            hours_paid = overtime_pay
            hours_missing = missing_hours
            if is_end:
                hours_paid += float(counters[counters > 0].sum())
                hours_missing += float(-counters[counters < 0].sum())

            points.append(MonthlyPoint(
                year=year,
                month=month,
                label=get_month_label(month, year),
                is_period_end=is_end,
                drivers_reporting=int(month_df["driver_id"].nunique()),
                positive_hours=positive_hours,
                missing_hours=missing_hours,
                overtime_pay=overtime_pay,
                average_counter=float(counters.mean()) if len(counters) else None,
                hours_paid=hours_paid,
                hours_missing=hours_missing,
            ))
    return points


# ==============================================================================
# ENTRY POINT
# ==============================================================================

def aggregate(
    summaries: Sequence[DriverPeriodSummary],
    monthly_records: Optional[Sequence[MonthlyRecordRow]] = None,
    options: Optional[AggregationOptions] = None,
) -> AnalyticsResult:
    """
    Compute every analytics view over the supplied read models.

    Args:
        summaries: One row per (driver, period) for the selected periods
        monthly_records: Per-driver-month rows for the monthly series
        options: Vehicle filter and sum/avg mode

    Returns:
        AnalyticsResult (empty collections for empty input)

    Raises:
        ValueError: unknown aggregation mode
    """
    options = options or AggregationOptions()
    if options.mode not in AGGREGATION_MODES:
        raise ValueError(f"Unknown aggregation mode: {options.mode}")

    summaries = filter_by_vehicle(summaries, options.vehicle_type)
    records = filter_by_vehicle(monthly_records or [], options.vehicle_type)

    result = AnalyticsResult(
        mode=options.mode,
        distribution=compute_distribution(summaries),
        critical_driver_ids=compute_critical_drivers(summaries),
        period_comparison=compare_periods(summaries, options.mode),
        monthly_series=build_monthly_series(summaries, records),
    )
    logger.debug(
        f"Aggregated {len(summaries)} summaries / {len(records)} records, "
        f"{len(result.critical_driver_ids)} critical drivers"
    )
    return result


# ==============================================================================
# LIST AND DASHBOARD VIEWS
# ==============================================================================

def build_driver_overviews(summaries: Sequence[DriverPeriodSummary]) -> List[DriverOverview]:
    """One entry per driver with its status and critical flag."""
    if not summaries:
        return []

    critical = set(compute_critical_drivers(summaries))
    drivers = _per_driver(summaries)
    overviews = []
    for driver_id, row in drivers.iterrows():
        overviews.append(DriverOverview(
            driver_id=int(driver_id),
            identifier=row["identifier"],
            vehicle_type=row["vehicle_type"],
            total_positive_hours=float(row["total_positive_hours"]),
            total_missing_hours=float(row["total_missing_hours"]),
            total_overtime_pay=float(row["total_overtime_pay"]),
            average_counter=float(row["average_counter"]),
            buffer_hours=float(row["buffer_hours"]),
            months_recorded=int(row["months_recorded"]),
            status=get_driver_status(
                float(row["average_counter"]),
                float(row["buffer_hours"]),
                float(row["total_overtime_pay"]) > 0,
            ),
            is_critical=int(driver_id) in critical,
        ))
    return overviews


def compute_dashboard_stats(summaries: Sequence[DriverPeriodSummary]) -> DashboardStats:
    if not summaries:
        return DashboardStats()

    drivers = _per_driver(summaries)
    return DashboardStats(
        total_drivers=len(drivers),
        bus_count=int((drivers["vehicle_type"] == VEHICLE_BUS).sum()),
        van_count=int((drivers["vehicle_type"] == VEHICLE_VAN).sum()),
        drivers_with_overtime=int((drivers["total_overtime_pay"] > 0).sum()),
        total_overtime_pay=float(drivers["total_overtime_pay"].sum()),
        critical_count=len(compute_critical_drivers(summaries)),
        negative_count=int((drivers["average_counter"] < 0).sum()),
    )


def rank_overtime_pay(
    summaries: Sequence[DriverPeriodSummary],
    limit: int = OVERTIME_RANKING_LIMIT,
) -> List[DriverPeriodSummary]:
    """(driver, period) summaries with overtime pay, highest pay first."""
    paid = [s for s in summaries if s.total_overtime_pay > 0]
    return sorted(paid, key=lambda s: -s.total_overtime_pay)[:limit]


def compare_drivers(
    records: Sequence[MonthlyRecordRow],
    driver_ids: Sequence[int],
) -> List[ComparisonPoint]:
    """
    Counter-end evolution of 2 to 5 drivers side by side.

    Slots are the union of the drivers' (year, month) pairs; a driver with
    no record for a slot gets None.

    Raises:
        ValueError: fewer than 2 or more than 5 distinct drivers requested
    """
    unique_ids = list(dict.fromkeys(driver_ids))
    if not COMPARISON_MIN_DRIVERS <= len(unique_ids) <= COMPARISON_MAX_DRIVERS:
        raise ValueError(
            f"Comparison needs {COMPARISON_MIN_DRIVERS} to {COMPARISON_MAX_DRIVERS} drivers, "
            f"got {len(unique_ids)}"
        )

    selected = [r for r in records if r.driver_id in unique_ids]
    names: Dict[int, str] = {r.driver_id: r.identifier for r in selected}
    by_slot: Dict[Tuple[int, int], Dict[int, float]] = {}
    for record in selected:
        by_slot.setdefault((record.year, record.month), {})[record.driver_id] = record.counter_end

    return [
        ComparisonPoint(
            year=year,
            month=month,
            label=get_month_label(month, year),
            counters={
                names.get(driver_id, str(driver_id)): by_slot[(year, month)].get(driver_id)
                for driver_id in unique_ids
            },
        )
        for year, month in sorted(by_slot)
    ]


# ==============================================================================
# DRIVER DETAIL
# ==============================================================================

def summarize_driver_history(
    records: Sequence[MonthlyRecordRow],
    default_buffer: float = DEFAULT_BUFFER_HOURS,
) -> DriverHistorySummary:
    """
    Headline figures of one driver's records, expected oldest first.

    The current counter is the last record's counter_end; the buffer is read
    from the first record. No records gives a zero counter with the default
    buffer.
    """
    if not records:
        return DriverHistorySummary(buffer_hours=default_buffer)

    current = records[-1].counter_end
    buffer_hours = records[0].buffer_hours
    total_pay = sum(r.overtime_pay for r in records)
    return DriverHistorySummary(
        current_counter=current,
        total_overtime_pay=total_pay,
        buffer_hours=buffer_hours,
        records_count=len(records),
        status=get_driver_status(current, buffer_hours, total_pay > 0),
    )


def driver_period_totals(summaries: Sequence[DriverPeriodSummary]) -> List[DriverPeriodTotals]:
    """Per-period paid hours and end balance of one driver, by (year, period_number)."""
    ordered = sorted(summaries, key=lambda s: (s.year, s.period_number))
    return [
        DriverPeriodTotals(
            period_id=s.period_id,
            period_label=get_period_label(s.period_number, s.year),
            year=s.year,
            period_number=s.period_number,
            overtime_pay=s.total_overtime_pay,
            positive_end=max(s.latest_counter, 0.0),
            missing_end=max(-s.latest_counter, 0.0),
        )
        for s in ordered
    ]
