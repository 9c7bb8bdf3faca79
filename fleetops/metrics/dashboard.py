"""
Dashboard Card Metrics

Total revenue, net profit, fleet utilization and active bookings, each
compared between the current and previous windows.

Revenue, maintenance cost, acquisition cost and booking counts come from the
ordered aggregates in O(log n). Fleet utilization needs per-booking interval
overlap, which the aggregates cannot express, so it scans the bookings that
overlap each window.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

import structlog
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetops.aggregation.keys import Bounds
from fleetops.aggregation.registry import AggregateRegistry
from fleetops.database.models import Booking, BookingStatus, Vehicle, VehicleStatus
from fleetops.metrics.amortization import AmortizationPolicy, FleetAsset, StraightLineAmortization
from fleetops.metrics.trends import point_trend, profit_trend, trend
from fleetops.metrics.windows import (
    DAY_MS,
    TimeWindow,
    current_and_previous_windows,
    daily_windows,
    from_epoch_ms,
    to_epoch_ms,
    utc_now,
)

logger = structlog.get_logger(__name__)

COMPLETED = BookingStatus.COMPLETED.value
OPEN_STATUSES = (BookingStatus.CONFIRMED.value, BookingStatus.ACTIVE.value)
ACTIVE_VEHICLE_STATUSES = (VehicleStatus.IN_USE, VehicleStatus.RESERVED)


@dataclass
class TrendMetric:
    current: float
    previous: float
    trend: float


@dataclass
class NetProfitMetric(TrendMetric):
    profit_margin: float = 0.0


@dataclass
class UtilizationMetric(TrendMetric):
    active_vehicles: int = 0


@dataclass
class DashboardCards:
    total_revenue: TrendMetric
    net_profit: NetProfitMetric
    fleet_utilization: UtilizationMetric
    active_bookings: TrendMetric


@dataclass
class DailyRevenuePoint:
    date: str
    revenue: float
    bookings: int


def window_bounds(window: TimeWindow, prefix: Tuple = ()) -> Bounds:
    """Bounds covering ``window`` on the trailing key component, under ``prefix``."""
    if prefix:
        return Bounds.between(
            prefix + (window.start,),
            prefix + (window.end,),
            upper_inclusive=window.end_inclusive,
        )
    return Bounds.between(window.start, window.end, upper_inclusive=window.end_inclusive)


def overlap_days(start_ms: int, end_ms: int, window: TimeWindow) -> int:
    """Whole days (rounded up) that ``[start_ms, end_ms]`` shares with ``window``."""
    span = min(end_ms, window.end) - max(start_ms, window.start)
    return max(0, math.ceil(span / DAY_MS))


class DashboardMetrics:
    """
    Windowed dashboard metrics.

    Args:
        registry: The fleet aggregates
        session: Session for the scan-backed parts
        policy: Acquisition cost amortization for net profit
        window_days: Length of each comparison window
        clock: Returns "now" as a naive UTC datetime

    Example:
        metrics = DashboardMetrics(registry, db)
        cards = await metrics.card_metrics()
    """

    def __init__(
        self,
        registry: AggregateRegistry,
        session: AsyncSession,
        policy: Optional[AmortizationPolicy] = None,
        window_days: int = 30,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.registry = registry
        self.session = session
        self.policy = policy or StraightLineAmortization()
        self.window_days = window_days
        self.clock = clock

    def windows(self, now: Optional[datetime] = None) -> Tuple[TimeWindow, TimeWindow]:
        now_ms = to_epoch_ms(now or self.clock())
        return current_and_previous_windows(now_ms, self.window_days)

    # -------------------------------------------------------------------------
    # Aggregate-backed
    # -------------------------------------------------------------------------

    def completed_revenue(self, window: TimeWindow) -> float:
        return self.registry.bookings.sum(window_bounds(window, (COMPLETED,)))

    def maintenance_cost(self, window: TimeWindow) -> float:
        return self.registry.maintenance.sum(window_bounds(window))

    async def total_revenue(self, now: Optional[datetime] = None) -> TrendMetric:
        current_window, previous_window = self.windows(now)
        current = self.completed_revenue(current_window)
        previous = self.completed_revenue(previous_window)
        return TrendMetric(current=current, previous=previous, trend=trend(current, previous))

    async def monthly_acquisition_cost(self, now: Optional[datetime] = None) -> float:
        total = self.registry.vehicles.sum()
        if not self.policy.needs_assets:
            return self.policy.monthly_cost(total)

        result = await self.session.execute(select(Vehicle.acquisition_cost, Vehicle.created_at))
        assets = [FleetAsset(float(cost), acquired_at) for cost, acquired_at in result.all()]
        return self.policy.monthly_cost(total, assets, now or self.clock())

    async def net_profit(self, now: Optional[datetime] = None) -> NetProfitMetric:
        now = now or self.clock()
        current_window, previous_window = self.windows(now)
        amortized = await self.monthly_acquisition_cost(now)

        current_revenue = self.completed_revenue(current_window)
        previous_revenue = self.completed_revenue(previous_window)
        current = current_revenue - self.maintenance_cost(current_window) - amortized
        previous = previous_revenue - self.maintenance_cost(previous_window) - amortized

        return NetProfitMetric(
            current=current,
            previous=previous,
            trend=profit_trend(current, previous),
            profit_margin=(current / current_revenue * 100) if current_revenue > 0 else 0.0,
        )

    async def active_bookings(self, now: Optional[datetime] = None) -> TrendMetric:
        """
        Open bookings now, compared against bookings completed in the
        previous window.
        """
        _, previous_window = self.windows(now)
        current = sum(self.registry.bookings.count(Bounds.prefix((status,))) for status in OPEN_STATUSES)
        previous = self.registry.bookings.count(window_bounds(previous_window, (COMPLETED,)))
        return TrendMetric(current=current, previous=previous, trend=trend(current, previous))

    async def daily_revenue(self, days: int = 30, now: Optional[datetime] = None) -> List[DailyRevenuePoint]:
        """Completed-booking revenue per calendar day, oldest first."""
        points = []
        for day, window in daily_windows(now or self.clock(), days):
            bounds = window_bounds(window, (COMPLETED,))
            count, revenue = self.registry.bookings.aggregate.count_and_sum(bounds)
            points.append(DailyRevenuePoint(date=day, revenue=revenue, bookings=count))
        return points

    # -------------------------------------------------------------------------
    # Scan-backed
    # -------------------------------------------------------------------------

    async def rental_days(self, window: TimeWindow) -> int:
        """Sum of booking overlap days with ``window``."""
        window_end = from_epoch_ms(window.end)
        starts_in_time = Booking.start_date <= window_end if window.end_inclusive else Booking.start_date < window_end
        result = await self.session.execute(
            select(Booking.start_date, Booking.end_date).where(
                and_(starts_in_time, Booking.end_date >= from_epoch_ms(window.start))
            )
        )
        return sum(
            overlap_days(to_epoch_ms(start), to_epoch_ms(end), window)
            for start, end in result.all()
        )

    async def active_vehicle_count(self) -> int:
        result = await self.session.execute(
            select(func.count(Vehicle.vehicle_id)).where(Vehicle.status.in_(ACTIVE_VEHICLE_STATUSES))
        )
        return result.scalar_one()

    async def fleet_utilization(self, now: Optional[datetime] = None) -> UtilizationMetric:
        current_window, previous_window = self.windows(now)
        fleet_size = self.registry.vehicles.count() or 1
        possible_days = self.window_days * fleet_size

        current = await self.rental_days(current_window) / possible_days * 100
        previous = await self.rental_days(previous_window) / possible_days * 100
        return UtilizationMetric(
            current=current,
            previous=previous,
            trend=point_trend(current, previous),
            active_vehicles=await self.active_vehicle_count(),
        )

    async def card_metrics(self, now: Optional[datetime] = None) -> DashboardCards:
        """All four dashboard cards against the same "now"."""
        now = now or self.clock()
        cards = DashboardCards(
            total_revenue=await self.total_revenue(now),
            net_profit=await self.net_profit(now),
            fleet_utilization=await self.fleet_utilization(now),
            active_bookings=await self.active_bookings(now),
        )
        logger.debug(
            "Dashboard metrics computed",
            revenue=cards.total_revenue.current,
            utilization=round(cards.fleet_utilization.current, 2),
            open_bookings=cards.active_bookings.current,
        )
        return cards

    def describe(self) -> Dict[str, object]:
        return {"window_days": self.window_days, "amortization": self.policy.describe()}
