"""
API Dependencies

The aggregate registry is created by the application lifespan and kept on
``app.state``; routes receive it and the services built on it through these
dependencies.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fleetops.aggregation.registry import AggregateRegistry
from fleetops.config import Settings, get_settings
from fleetops.database.connection import get_db_dependency
from fleetops.metrics.amortization import policy_from_settings
from fleetops.metrics.dashboard import DashboardMetrics
from fleetops.metrics.fleet import FleetAnalytics
from fleetops.serving.cache import invalidate_analytics
from fleetops.services import BookingService, MaintenanceService, VehicleService


def get_registry(request: Request) -> AggregateRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise RuntimeError("Aggregate registry not initialized")
    return registry


def get_app_settings() -> Settings:
    return get_settings()


def get_vehicle_service(
    db: AsyncSession = Depends(get_db_dependency),
    registry: AggregateRegistry = Depends(get_registry),
) -> VehicleService:
    return VehicleService(db, registry, after_commit=[invalidate_analytics])


def get_booking_service(
    db: AsyncSession = Depends(get_db_dependency),
    registry: AggregateRegistry = Depends(get_registry),
) -> BookingService:
    return BookingService(db, registry, after_commit=[invalidate_analytics])


def get_maintenance_service(
    db: AsyncSession = Depends(get_db_dependency),
    registry: AggregateRegistry = Depends(get_registry),
) -> MaintenanceService:
    return MaintenanceService(db, registry, after_commit=[invalidate_analytics])


def get_dashboard_metrics(
    db: AsyncSession = Depends(get_db_dependency),
    registry: AggregateRegistry = Depends(get_registry),
    settings: Settings = Depends(get_app_settings),
) -> DashboardMetrics:
    return DashboardMetrics(
        registry,
        db,
        policy=policy_from_settings(settings.metrics),
        window_days=settings.metrics.window_days,
    )


def get_fleet_analytics(
    db: AsyncSession = Depends(get_db_dependency),
    registry: AggregateRegistry = Depends(get_registry),
    settings: Settings = Depends(get_app_settings),
) -> FleetAnalytics:
    return FleetAnalytics(db, registry, window_days=settings.metrics.window_days)
