"""
Unit tests for the aggregation engine and driver status.

Tests analytics logic including:
- Counter distribution buckets
- Critical driver selection (size and tie-break)
- Period comparison in sum and avg modes
- Monthly series with period-end settlement
- Dashboard, ranking and driver comparison views
"""

import pytest

from overtime_backend.logic import aggregation
from overtime_backend.logic.driver_status import get_driver_status, get_status_label, status_breakdown
from overtime_backend.models.analytics import (
    AggregationOptions,
    DriverPeriodSummary,
    MonthlyRecordRow,
)


def summary(driver_id, counter=0.0, pay=0.0, period_id=1, year=2024, period_number=2,
            vehicle="BUS", buffer=17.0):
    return DriverPeriodSummary(
        driver_id=driver_id,
        identifier=f"E{driver_id:03d}",
        vehicle_type=vehicle,
        period_id=period_id,
        year=year,
        period_number=period_number,
        total_positive_hours=max(counter, 0),
        total_missing_hours=max(-counter, 0),
        total_overtime_pay=pay,
        latest_counter=counter,
        buffer_hours=buffer,
        months_recorded=4,
    )


def record(driver_id, month, counter=0.0, pos=0.0, missing=0.0, pay=0.0,
           year=2024, period_number=2, period_id=1, vehicle="BUS"):
    return MonthlyRecordRow(
        driver_id=driver_id,
        identifier=f"E{driver_id:03d}",
        vehicle_type=vehicle,
        period_id=period_id,
        year=year,
        period_number=period_number,
        month=month,
        buffer_hours=17.0,
        positive_hours=pos,
        missing_hours=missing,
        overtime_pay=pay,
        counter_end=counter,
    )


class TestDistribution:
    """Test counter buckets."""

    def test_total_partition(self):
        """Every driver lands in exactly one bucket."""
        counters = [-25, -10, -9.5, 0, 0.1, 5, 7, 10, 12, 15, 15.5, 40]
        summaries = [summary(i, c) for i, c in enumerate(counters, start=1)]

        buckets = aggregation.compute_distribution(summaries)

        assert sum(b.count for b in buckets) == len(counters)
        counts = {b.bucket: b.count for b in buckets}
        assert counts == {
            "≤ -10h": 2,
            "-10h à 0h": 2,
            "0h à 5h": 2,
            "5h à 10h": 2,
            "10h à 15h": 2,
            "> 15h": 2,
        }

    def test_zero_buckets_omitted_order_kept(self):
        buckets = aggregation.compute_distribution([summary(1, 20), summary(2, -20)])
        assert [b.bucket for b in buckets] == ["≤ -10h", "> 15h"]

    def test_mean_over_periods(self):
        """A driver present in two periods is bucketed by its mean counter."""
        summaries = [summary(1, 20, period_id=1), summary(1, -10, period_id=2, period_number=3)]
        buckets = aggregation.compute_distribution(summaries)
        assert [(b.bucket, b.count) for b in buckets] == [("0h à 5h", 1)]

    def test_empty(self):
        assert aggregation.compute_distribution([]) == []


class TestBucketDrivers:
    """Test the drivers listed behind one distribution bucket."""

    def test_members_sorted_by_counter(self):
        summaries = [summary(i, c) for i, c in enumerate([3, 12, 1, -5, 0], start=1)]
        drivers = aggregation.drivers_in_bucket(summaries, "0h à 5h")
        assert [d.driver_id for d in drivers] == [3, 1]

        descending = aggregation.drivers_in_bucket(summaries, "0h à 5h", descending=True)
        assert [d.driver_id for d in descending] == [1, 3]

    def test_same_edges_as_distribution(self):
        """Boundary values land in the same bucket as in the distribution."""
        counters = [-10, 0, 5, 10, 15, 15.5]
        summaries = [summary(i, c) for i, c in enumerate(counters, start=1)]
        for bucket in aggregation.compute_distribution(summaries):
            members = aggregation.drivers_in_bucket(summaries, bucket.bucket)
            assert len(members) == bucket.count
        assert [d.driver_id for d in aggregation.drivers_in_bucket(summaries, "≤ -10h")] == [1]
        assert [d.driver_id for d in aggregation.drivers_in_bucket(summaries, "-10h à 0h")] == [2]

    def test_unknown_bucket(self):
        with pytest.raises(ValueError):
            aggregation.drivers_in_bucket([summary(1, 3)], "20h et plus")

    def test_empty(self):
        assert aggregation.drivers_in_bucket([], "> 15h") == []


class TestCriticalDrivers:
    """Test percentile selection."""

    @pytest.mark.parametrize("population,k", [(1, 1), (9, 1), (10, 1), (11, 2), (25, 3), (100, 10)])
    def test_subset_size(self, population, k):
        assert aggregation.critical_subset_size(population) == k

    def test_each_subset_has_k_members(self):
        """25 drivers, k=3: 3 lowest deficits and 3 highest excesses."""
        summaries = [summary(i, counter=i - 13) for i in range(1, 26)]
        critical = aggregation.compute_critical_drivers(summaries)
        assert critical == [1, 2, 3, 23, 24, 25]

    def test_pay_counts_as_excess(self):
        summaries = [summary(1, 5), summary(2, 1, pay=10), summary(3, -1)]
        critical = aggregation.compute_critical_drivers(summaries)
        assert critical == [2, 3]

    def test_stable_tie_break(self):
        """Ties resolve in first-appearance order."""
        summaries = [summary(i, 0) for i in range(1, 6)]
        critical = aggregation.compute_critical_drivers(summaries)
        # Both criteria tie everywhere: the first driver wins both
        assert critical == [1]

    def test_same_driver_in_both_subsets(self):
        assert aggregation.compute_critical_drivers([summary(7, 3)]) == [7]

    def test_empty(self):
        assert aggregation.compute_critical_drivers([]) == []


class TestPeriodComparison:
    """Test per-period totals."""

    def test_sum_mode(self):
        summaries = [
            summary(1, 10, pay=2, period_id=2, period_number=3),
            summary(2, -4, period_id=2, period_number=3),
            summary(1, 6, period_id=1, period_number=2),
            summary(3, -2, period_id=1, period_number=2),
            summary(4, -6, period_id=1, period_number=2),
        ]
        rows = aggregation.compare_periods(summaries)

        assert [r.period_id for r in rows] == [1, 2]
        p2 = rows[0]
        assert p2.period_label == "P2 2024 (Mai-Août)"
        assert p2.total_drivers == 3
        assert p2.total_positive_end == 6
        assert p2.drivers_positive == 1
        assert p2.total_missing_end == 8
        assert p2.drivers_negative == 2
        assert rows[1].total_overtime_pay == 2

    def test_avg_mode_divides_hours_only(self):
        summaries = [summary(1, 10, pay=4), summary(2, -6, pay=2)]
        row = aggregation.compare_periods(summaries, mode="avg")[0]
        assert row.total_drivers == 2
        assert row.total_overtime_pay == 3
        assert row.total_positive_end == 5
        assert row.total_missing_end == 3
        assert row.drivers_positive == 1

    def test_ordered_by_year_then_period(self):
        summaries = [
            summary(1, period_id=5, year=2025, period_number=1),
            summary(1, period_id=9, year=2024, period_number=3),
        ]
        rows = aggregation.compare_periods(summaries)
        assert [(r.year, r.period_number) for r in rows] == [(2024, 3), (2025, 1)]


class TestMonthlySeries:
    """Test the monthly time series."""

    def test_period_months_and_settlement(self):
        summaries = [summary(1, 12), summary(2, -3)]
        records = [
            record(1, 5, counter=4, pos=4),
            record(2, 5, counter=-1, missing=1),
            record(1, 8, counter=12, pos=2, pay=1),
            record(2, 8, counter=-3, missing=2),
        ]
        series = aggregation.build_monthly_series(summaries, records)

        assert [p.month for p in series] == [5, 6, 7, 8]
        may, june, _, august = series

        assert may.drivers_reporting == 2
        assert may.positive_hours == 4
        assert may.average_counter == pytest.approx(1.5)
        assert not may.is_period_end
        assert may.hours_paid == 0
        assert may.hours_missing == 1

        assert june.drivers_reporting == 0
        assert june.average_counter is None

        assert august.is_period_end
        # 1h paid in the month + 12h positive counter settled
        assert august.hours_paid == 13
        # 2h missing in the month + 3h negative counter settled
        assert august.hours_missing == 5

    def test_settlement_per_period_end(self):
        """Each selected period settles its counters in its own end month."""
        summaries = [
            summary(1, 6, period_id=1, period_number=1),
            summary(2, -3, period_id=1, period_number=1),
            summary(1, -2, period_id=2, period_number=2),
            summary(2, 5, pay=2, period_id=2, period_number=2),
        ]
        records = [
            record(1, 4, counter=6, period_number=1, period_id=1),
            record(2, 4, counter=-3, period_number=1, period_id=1),
            record(1, 8, counter=-2, missing=1, period_id=2),
            record(2, 8, counter=5, pay=2, period_id=2),
        ]
        series = aggregation.build_monthly_series(summaries, records)

        assert [p.month for p in series] == [1, 2, 3, 4, 5, 6, 7, 8]
        ends = {p.month: p for p in series if p.is_period_end}
        assert sorted(ends) == [4, 8]

        assert ends[4].hours_paid == 6
        assert ends[4].hours_missing == 3
        # Monthly figures plus the P2 settlement only
        assert ends[8].hours_paid == 2 + 5
        assert ends[8].hours_missing == 1 + 2

        july = series[6]
        assert (july.hours_paid, july.hours_missing) == (0, 0)

    def test_empty(self):
        assert aggregation.build_monthly_series([], []) == []


class TestAggregate:
    """Test the entry point."""

    def test_empty_input(self):
        result = aggregation.aggregate([], [])
        assert result.distribution == []
        assert result.critical_driver_ids == []
        assert result.period_comparison == []
        assert result.monthly_series == []

    def test_vehicle_filter(self):
        summaries = [summary(1, 5), summary(2, 5, vehicle="VAN")]
        records = [record(1, 5, counter=5), record(2, 5, counter=5, vehicle="VAN")]
        result = aggregation.aggregate(summaries, records, AggregationOptions(vehicle_type="VAN"))
        assert result.critical_driver_ids == [2]
        assert result.monthly_series[0].drivers_reporting == 1

    def test_invalid_mode(self):
        options = AggregationOptions.model_construct(vehicle_type=None, mode="median")
        with pytest.raises(ValueError):
            aggregation.aggregate([], [], options)


class TestDriverViews:
    """Test overview, dashboard, ranking and comparison."""

    def test_overviews(self):
        summaries = [summary(1, 15), summary(2, 2, pay=3), summary(3, 1)]
        overviews = {o.driver_id: o for o in aggregation.build_driver_overviews(summaries)}
        assert overviews[1].status == "orange"
        assert overviews[2].status == "red"
        assert overviews[3].status == "green"
        assert overviews[1].is_critical

    def test_dashboard_stats(self):
        summaries = [summary(1, 15), summary(2, -2, pay=3, vehicle="VAN"), summary(3, -1)]
        stats = aggregation.compute_dashboard_stats(summaries)
        assert stats.total_drivers == 3
        assert stats.bus_count == 2
        assert stats.van_count == 1
        assert stats.drivers_with_overtime == 1
        assert stats.total_overtime_pay == 3
        assert stats.negative_count == 2
        assert stats.critical_count == len(aggregation.compute_critical_drivers(summaries))

    def test_rank_overtime_pay(self):
        summaries = [summary(i, pay=p) for i, p in enumerate([0, 5, 9, 1], start=1)]
        ranked = aggregation.rank_overtime_pay(summaries, limit=2)
        assert [s.driver_id for s in ranked] == [3, 2]

    def test_compare_drivers(self):
        records = [record(1, 5, counter=2), record(1, 6, counter=3), record(2, 6, counter=-1)]
        points = aggregation.compare_drivers(records, [1, 2])
        assert [(p.year, p.month) for p in points] == [(2024, 5), (2024, 6)]
        assert points[0].counters == {"E001": 2, "E002": None}
        assert points[1].counters == {"E001": 3, "E002": -1}

    @pytest.mark.parametrize("ids", [[1], [1, 1], [1, 2, 3, 4, 5, 6]])
    def test_compare_drivers_size(self, ids):
        with pytest.raises(ValueError):
            aggregation.compare_drivers([], ids)


class TestDriverStatus:
    """Test status classification."""

    def test_rules(self):
        assert get_driver_status(0, 17, True) == "red"
        assert get_driver_status(14, 17, False) == "orange"
        assert get_driver_status(13.6, 17, False) == "green"
        assert get_driver_status(50, 0, False) == "green"

    def test_labels(self):
        assert get_status_label("orange") == "Attention"

    def test_breakdown_omits_empty(self):
        breakdown = status_breakdown(["green", "red", "green"])
        assert [(s.status, s.label, s.count) for s in breakdown] == [
            ("green", "Normal", 2),
            ("red", "Critique", 1),
        ]


class TestDriverDetail:
    """Test the single-driver summary and per-period totals."""

    def test_summary_from_records(self):
        records = [record(1, 5, counter=4), record(1, 6, counter=15, pay=2)]
        result = aggregation.summarize_driver_history(records)
        assert result.current_counter == 15
        assert result.total_overtime_pay == 2
        assert result.buffer_hours == 17.0
        assert result.records_count == 2
        assert result.status == "red"

    def test_summary_status_without_pay(self):
        result = aggregation.summarize_driver_history([record(1, 5, counter=14)])
        assert result.status == "orange"

    def test_summary_without_records(self):
        result = aggregation.summarize_driver_history([])
        assert result.current_counter == 0
        assert result.buffer_hours == 17.0
        assert result.records_count == 0
        assert result.status == "green"

    def test_period_totals(self):
        summaries = [
            summary(1, -3, pay=1, period_id=2, period_number=2),
            summary(1, 6, period_id=1, period_number=1),
        ]
        totals = aggregation.driver_period_totals(summaries)
        assert [t.period_label for t in totals] == ["P1 2024 (Janv-Avr)", "P2 2024 (Mai-Août)"]
        assert (totals[0].positive_end, totals[0].missing_end, totals[0].overtime_pay) == (6, 0, 0)
        assert (totals[1].positive_end, totals[1].missing_end, totals[1].overtime_pay) == (0, 3, 1)
