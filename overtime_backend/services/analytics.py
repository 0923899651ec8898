import logging
from typing import Dict, List, Optional, Sequence

from overtime_backend.database_manager import DatabaseManager, get_db
from overtime_backend.logic import aggregation
from overtime_backend.logic.driver_status import status_breakdown
from overtime_backend.models.analytics import (
    AggregationOptions,
    AnalyticsResult,
    ComparisonPoint,
    DriverOverview,
    MonthlyRecordRow,
    ReferencePeriod,
)

logger = logging.getLogger(__name__)

DRIVER_SORT_KEYS = (
    "identifier",
    "vehicle_type",
    "status",
    "total_positive_hours",
    "total_missing_hours",
    "total_overtime_pay",
    "average_counter",
)
STATUS_RANK = {"green": 0, "orange": 1, "red": 2}


class AnalyticsService:
    """
    Read side: fetches summaries and monthly records for a period selection
    and hands them to the aggregation engine. Nothing is cached; every call
    reflects the current state of storage.
    """

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or get_db()

    def list_periods(self) -> List[ReferencePeriod]:
        return self.db.list_periods()

    def resolve_period_ids(self, period_ids: Optional[Sequence[int]] = None) -> List[int]:
        """
        Keep the requested ids that exist; an empty or fully unknown
        selection means every period.
        """
        known = [p.id for p in self.db.list_periods()]
        if period_ids:
            selected = [pid for pid in period_ids if pid in known]
            if selected:
                return selected
            logger.debug(f"None of the requested periods {list(period_ids)} exist, using all")
        return known

    def analytics(
        self,
        period_ids: Optional[Sequence[int]] = None,
        vehicle_type: Optional[str] = None,
        mode: str = "sum",
    ) -> AnalyticsResult:
        """
        Raises:
            ValueError: unknown mode or vehicle type
        """
        options = AggregationOptions(vehicle_type=vehicle_type, mode=mode)
        ids = self.resolve_period_ids(period_ids)
        summaries = self.db.fetch_period_summaries(ids, options.vehicle_type)
        records = self.db.fetch_monthly_records(ids, options.vehicle_type)
        return aggregation.aggregate(summaries, records, options)

    def dashboard(
        self,
        period_ids: Optional[Sequence[int]] = None,
        vehicle_type: Optional[str] = None,
    ) -> Dict:
        """KPIs, counter distribution, status breakdown and the overtime-pay ranking."""
        options = AggregationOptions(vehicle_type=vehicle_type)
        ids = self.resolve_period_ids(period_ids)
        summaries = self.db.fetch_period_summaries(ids, options.vehicle_type)
        overviews = aggregation.build_driver_overviews(summaries)

        return {
            "period_ids": ids,
            "stats": aggregation.compute_dashboard_stats(summaries),
            "distribution": aggregation.compute_distribution(summaries),
            "status_breakdown": status_breakdown(o.status for o in overviews),
            "overtime_ranking": aggregation.rank_overtime_pay(summaries),
        }

    def drivers(
        self,
        period_ids: Optional[Sequence[int]] = None,
        vehicle_type: Optional[str] = None,
        search: Optional[str] = None,
        sort: str = "identifier",
        descending: bool = False,
    ) -> List[DriverOverview]:
        """
        Driver list over the selected periods.

        The critical flag is computed on the full population before the
        search filter is applied.
        """
        if sort not in DRIVER_SORT_KEYS:
            raise ValueError(f"Unknown sort key: {sort}")

        options = AggregationOptions(vehicle_type=vehicle_type)
        ids = self.resolve_period_ids(period_ids)
        overviews = aggregation.build_driver_overviews(
            self.db.fetch_period_summaries(ids, options.vehicle_type)
        )

        if search:
            needle = search.strip().lower()
            overviews = [o for o in overviews if needle in o.identifier.lower()]

        if sort == "status":
            key = lambda o: STATUS_RANK[o.status]
        else:
            key = lambda o: getattr(o, sort)
        return sorted(overviews, key=key, reverse=descending)

    def driver_history(self, driver_id: int, period_id: Optional[int] = None) -> Optional[Dict]:
        """
        Driver record, its monthly history (one period when period_id is
        given), headline figures over that history and per-period totals.

        Returns None for an unknown driver.
        """
        driver = self.db.get_driver(driver_id)
        if driver is None:
            return None

        history = self.db.fetch_driver_history(driver_id, period_id)
        return {
            "driver": driver,
            "period_id": period_id,
            "history": history,
            "summary": aggregation.summarize_driver_history(history),
            "period_totals": aggregation.driver_period_totals(self.db.fetch_driver_summaries(driver_id)),
        }

    def bucket_drivers(
        self,
        bucket: str,
        period_ids: Optional[Sequence[int]] = None,
        vehicle_type: Optional[str] = None,
        descending: bool = False,
    ) -> List[DriverOverview]:
        """
        Drivers in one counter-distribution bucket.

        Raises:
            ValueError: unknown bucket label
        """
        options = AggregationOptions(vehicle_type=vehicle_type)
        ids = self.resolve_period_ids(period_ids)
        summaries = self.db.fetch_period_summaries(ids, options.vehicle_type)
        return aggregation.drivers_in_bucket(summaries, bucket, descending=descending)

    def compare_drivers(self, driver_ids: Sequence[int]) -> List[ComparisonPoint]:
        """
        Raises:
            ValueError: fewer than 2 or more than 5 drivers
        """
        records: List[MonthlyRecordRow] = self.db.fetch_driver_records(list(dict.fromkeys(driver_ids)))
        return aggregation.compare_drivers(records, driver_ids)
