"""
Analytics API Endpoints

Scan-backed fleet analytics for the analytics page. Results are cached in
Redis (when available) until the next committed mutation.
"""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
import structlog

from fleetops.metrics.fleet import FleetAnalytics
from fleetops.serving.api.dependencies import get_fleet_analytics
from fleetops.serving.cache import analytics_cache

router = APIRouter()
logger = structlog.get_logger(__name__)


class FleetOverview(BaseModel):
    """Lifetime fleet financials and current status breakdown"""
    total_revenue: float
    total_costs: float
    net_profit: float
    utilization_rate: float
    total_vehicles: int
    fleet_status: Dict[str, int]
    total_bookings: int
    average_booking_value: float


class VehicleInfo(BaseModel):
    vehicle_id: str
    make: str
    model: str
    year: int
    license_plate: str
    category: str


class VehicleProfitabilityRow(VehicleInfo):
    total_revenue: float
    acquisition_cost: float
    total_maintenance_costs: float
    net_profit: float
    roi: float
    booking_count: int


class CategoryAnalytics(BaseModel):
    """Per-category rollup, ranked by net profit"""
    category: str
    vehicle_count: int
    total_revenue: float
    total_acquisition_cost: float
    total_maintenance_costs: float
    net_profit: float
    roi: float
    total_bookings: int
    total_rental_days: int
    avg_revenue_per_vehicle: float
    revenue_per_day: float
    avg_utilization_rate: float


class BreakEvenRow(VehicleInfo):
    acquisition_cost: float
    net_revenue: float
    days_since_acquisition: int
    daily_net_revenue: float
    break_even_progress: float
    has_reached_break_even: bool
    projected_days_to_break_even: Optional[int]


@router.get("/overview", response_model=FleetOverview)
async def get_overview(analytics: FleetAnalytics = Depends(get_fleet_analytics)):
    return await analytics_cache.get_or_set("overview", analytics.overview)


@router.get("/vehicle-profitability", response_model=List[VehicleProfitabilityRow])
async def get_vehicle_profitability(analytics: FleetAnalytics = Depends(get_fleet_analytics)):
    """Vehicles ranked by lifetime net profit."""
    return await analytics_cache.get_or_set("vehicle-profitability", analytics.vehicle_profitability)


@router.get("/categories", response_model=List[CategoryAnalytics])
async def get_category_analytics(analytics: FleetAnalytics = Depends(get_fleet_analytics)):
    return await analytics_cache.get_or_set("categories", analytics.category_analytics)


@router.get("/break-even", response_model=List[BreakEvenRow])
async def get_break_even(analytics: FleetAnalytics = Depends(get_fleet_analytics)):
    """Break-even progress and projection per vehicle."""
    rows = await analytics_cache.get_or_set("break-even", analytics.break_even)
    logger.debug("Break-even analysis served", vehicles=len(rows))
    return rows
