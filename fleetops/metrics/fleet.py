"""
Fleet Analytics

Scan-backed analytics for the analytics page: overview, per-vehicle
profitability, category rankings and break-even status. These read whole
tables into Polars frames once per request and are cached by the API layer.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import polars as pl
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetops.aggregation.registry import AggregateRegistry
from fleetops.database.models import Booking, BookingStatus, MaintenanceRecord, Vehicle, VehicleStatus
from fleetops.metrics.windows import DAY_MS, to_epoch_ms, utc_now

logger = structlog.get_logger(__name__)

VEHICLE_SCHEMA = {
    "vehicle_id": pl.Utf8,
    "make": pl.Utf8,
    "model": pl.Utf8,
    "year": pl.Int64,
    "license_plate": pl.Utf8,
    "category": pl.Utf8,
    "status": pl.Utf8,
    "acquisition_cost": pl.Float64,
    "acquired_ms": pl.Int64,
}

BOOKING_SCHEMA = {
    "vehicle_id": pl.Utf8,
    "status": pl.Utf8,
    "start_ms": pl.Int64,
    "end_ms": pl.Int64,
    "total_amount": pl.Float64,
}

MAINTENANCE_SCHEMA = {
    "vehicle_id": pl.Utf8,
    "cost": pl.Float64,
}

VEHICLE_INFO_COLUMNS = ["vehicle_id", "make", "model", "year", "license_plate", "category"]


def _enum_value(value) -> str:
    return getattr(value, "value", value)


def _optional_id(value) -> Optional[str]:
    return str(value) if value is not None else None


@dataclass
class FleetFrames:
    """One consistent read of the fleet tables."""
    vehicles: pl.DataFrame
    bookings: pl.DataFrame
    maintenance: pl.DataFrame


async def load_frames(session: AsyncSession) -> FleetFrames:
    vehicles = (await session.execute(select(Vehicle))).scalars().all()
    bookings = (await session.execute(select(Booking))).scalars().all()
    records = (await session.execute(select(MaintenanceRecord))).scalars().all()

    return FleetFrames(
        vehicles=pl.DataFrame(
            [
                {
                    "vehicle_id": str(v.vehicle_id),
                    "make": v.make,
                    "model": v.model,
                    "year": v.year,
                    "license_plate": v.license_plate,
                    "category": _enum_value(v.category),
                    "status": _enum_value(v.status),
                    "acquisition_cost": float(v.acquisition_cost),
                    "acquired_ms": to_epoch_ms(v.created_at),
                }
                for v in vehicles
            ],
            schema=VEHICLE_SCHEMA,
        ),
        bookings=pl.DataFrame(
            [
                {
                    "vehicle_id": _optional_id(b.vehicle_id),
                    "status": _enum_value(b.status),
                    "start_ms": to_epoch_ms(b.start_date),
                    "end_ms": to_epoch_ms(b.end_date),
                    "total_amount": float(b.total_amount),
                }
                for b in bookings
            ],
            schema=BOOKING_SCHEMA,
        ),
        maintenance=pl.DataFrame(
            [{"vehicle_id": _optional_id(m.vehicle_id), "cost": float(m.cost)} for m in records],
            schema=MAINTENANCE_SCHEMA,
        ),
    )


def _overlap_days(window_start: int, window_end: int) -> pl.Expr:
    span = pl.min_horizontal(pl.col("end_ms"), pl.lit(window_end)) - pl.max_horizontal(
        pl.col("start_ms"), pl.lit(window_start)
    )
    return (span / DAY_MS).ceil().clip(lower_bound=0)


def vehicle_performance(frames: FleetFrames, now_ms: int) -> pl.DataFrame:
    """
    One row per vehicle with lifetime revenue, costs and utilization.

    Revenue counts completed bookings only. Bookings and maintenance whose
    vehicle no longer exists are not attributed to any vehicle.
    """
    completed = frames.bookings.filter(pl.col("status") == BookingStatus.COMPLETED.value).with_columns(
        ((pl.col("end_ms") - pl.col("start_ms")) / DAY_MS).ceil().clip(lower_bound=0).alias("rental_days")
    )
    revenue = completed.group_by("vehicle_id").agg(
        pl.col("total_amount").sum().alias("total_revenue"),
        pl.len().alias("booking_count"),
        pl.col("rental_days").sum().alias("total_rental_days"),
    )
    maintenance = frames.maintenance.group_by("vehicle_id").agg(
        pl.col("cost").sum().alias("total_maintenance_costs"),
    )

    return (
        frames.vehicles.join(revenue, on="vehicle_id", how="left")
        .join(maintenance, on="vehicle_id", how="left")
        .with_columns(
            pl.col("total_revenue").fill_null(0.0),
            pl.col("booking_count").fill_null(0).cast(pl.Int64),
            pl.col("total_rental_days").fill_null(0.0).cast(pl.Int64),
            pl.col("total_maintenance_costs").fill_null(0.0),
            ((pl.lit(now_ms) - pl.col("acquired_ms")) / DAY_MS).floor().clip(lower_bound=1).cast(pl.Int64)
            .alias("days_since_acquisition"),
        )
        .with_columns(
            (pl.col("total_revenue") - pl.col("acquisition_cost") - pl.col("total_maintenance_costs"))
            .alias("net_profit"),
            (pl.col("total_revenue") - pl.col("total_maintenance_costs")).alias("net_revenue"),
            (pl.col("total_rental_days") / pl.col("days_since_acquisition") * 100)
            .clip(upper_bound=100)
            .alias("utilization_rate"),
        )
        .with_columns(
            pl.when(pl.col("acquisition_cost") > 0)
            .then(pl.col("net_profit") / pl.col("acquisition_cost") * 100)
            .otherwise(0.0)
            .alias("roi"),
        )
    )


class FleetAnalytics:
    """
    Analytics page data.

    Example:
        analytics = FleetAnalytics(db, registry)
        rankings = await analytics.category_analytics()
    """

    def __init__(
        self,
        session: AsyncSession,
        registry: AggregateRegistry,
        window_days: int = 30,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session = session
        self.registry = registry
        self.window_days = window_days
        self.clock = clock

    async def _performance(self) -> pl.DataFrame:
        frames = await load_frames(self.session)
        return vehicle_performance(frames, to_epoch_ms(self.clock()))

    async def overview(self) -> Dict[str, Any]:
        frames = await load_frames(self.session)
        now_ms = to_epoch_ms(self.clock())
        window_start = now_ms - self.window_days * DAY_MS

        completed = frames.bookings.filter(pl.col("status") == BookingStatus.COMPLETED.value)
        total_revenue = float(completed["total_amount"].sum())
        total_bookings = completed.height
        total_costs = self.registry.vehicles.sum() + float(frames.maintenance["cost"].sum())

        rental_days = (
            frames.bookings.filter(pl.col("start_ms") >= window_start)
            .select(_overlap_days(window_start, now_ms).sum())
            .item()
        ) or 0
        possible_days = self.window_days * frames.vehicles.height
        status_counts = dict(frames.vehicles.group_by("status").len().iter_rows())

        return {
            "total_revenue": total_revenue,
            "total_costs": total_costs,
            "net_profit": total_revenue - total_costs,
            "utilization_rate": (rental_days / possible_days * 100) if possible_days > 0 else 0.0,
            "total_vehicles": frames.vehicles.height,
            "fleet_status": {
                "available": status_counts.get(VehicleStatus.AVAILABLE.value, 0),
                "reserved": status_counts.get(VehicleStatus.RESERVED.value, 0),
                "in_use": status_counts.get(VehicleStatus.IN_USE.value, 0),
                "maintenance": status_counts.get(VehicleStatus.MAINTENANCE.value, 0),
            },
            "total_bookings": total_bookings,
            "average_booking_value": total_revenue / total_bookings if total_bookings > 0 else 0.0,
        }

    async def vehicle_profitability(self) -> List[Dict[str, Any]]:
        """Per-vehicle profit and ROI, most profitable first."""
        df = await self._performance()
        return (
            df.select(
                *VEHICLE_INFO_COLUMNS,
                "total_revenue",
                "acquisition_cost",
                "total_maintenance_costs",
                "net_profit",
                "roi",
                "booking_count",
            )
            .sort("net_profit", descending=True)
            .to_dicts()
        )

    async def category_analytics(self) -> List[Dict[str, Any]]:
        """Category rankings by net profit."""
        df = await self._performance()
        ranked = (
            df.group_by("category")
            .agg(
                pl.len().alias("vehicle_count"),
                pl.col("total_revenue").sum(),
                pl.col("acquisition_cost").sum().alias("total_acquisition_cost"),
                pl.col("total_maintenance_costs").sum(),
                pl.col("net_profit").sum(),
                pl.col("booking_count").sum().alias("total_bookings"),
                pl.col("total_rental_days").sum(),
                pl.col("utilization_rate").mean().alias("avg_utilization_rate"),
            )
            .with_columns(
                pl.when(pl.col("total_acquisition_cost") > 0)
                .then(pl.col("net_profit") / pl.col("total_acquisition_cost") * 100)
                .otherwise(0.0)
                .alias("roi"),
                (pl.col("total_revenue") / pl.col("vehicle_count")).alias("avg_revenue_per_vehicle"),
                pl.when(pl.col("total_rental_days") > 0)
                .then(pl.col("total_revenue") / pl.col("total_rental_days"))
                .otherwise(0.0)
                .alias("revenue_per_day"),
            )
            .sort("net_profit", descending=True)
        )
        return ranked.to_dicts()

    async def break_even(self) -> List[Dict[str, Any]]:
        """
        Break-even status per vehicle.

        Progress is net revenue (revenue less maintenance) as a share of the
        acquisition cost. Vehicles not yet at break-even get a projection at
        their average daily net revenue, or None when that is not positive.
        """
        df = await self._performance()
        df = df.with_columns(
            (pl.col("net_revenue") / pl.col("days_since_acquisition")).alias("daily_net_revenue"),
            (pl.col("net_revenue") >= pl.col("acquisition_cost")).alias("has_reached_break_even"),
            pl.when(pl.col("acquisition_cost") > 0)
            .then(pl.col("net_revenue") / pl.col("acquisition_cost") * 100)
            .otherwise(100.0)
            .clip(lower_bound=0, upper_bound=100)
            .alias("break_even_progress"),
        ).with_columns(
            pl.when(~pl.col("has_reached_break_even") & (pl.col("daily_net_revenue") > 0))
            .then(
                ((pl.col("acquisition_cost") - pl.col("net_revenue")) / pl.col("daily_net_revenue"))
                .ceil()
                .cast(pl.Int64)
            )
            .otherwise(None)
            .alias("projected_days_to_break_even"),
        )
        return (
            df.select(
                *VEHICLE_INFO_COLUMNS,
                "acquisition_cost",
                "net_revenue",
                "days_since_acquisition",
                "daily_net_revenue",
                "break_even_progress",
                "has_reached_break_even",
                "projected_days_to_break_even",
            )
            .sort("break_even_progress", descending=True)
            .to_dicts()
        )
