"""
Dashboard API Endpoints

Card metrics comparing the current window with the previous one, and the
daily revenue chart. Each card has its own endpoint so a failing card does
not take the others down with it.
"""

from typing import List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from fleetops.metrics.dashboard import DashboardMetrics
from fleetops.serving.api.dependencies import get_dashboard_metrics

router = APIRouter()


class TrendMetricResponse(BaseModel):
    """Current vs previous window. A trend of 0 may mean no prior data."""
    current: float
    previous: float
    trend: float

    class Config:
        from_attributes = True


class NetProfitResponse(TrendMetricResponse):
    profit_margin: float


class UtilizationResponse(TrendMetricResponse):
    active_vehicles: int


class DashboardCardsResponse(BaseModel):
    total_revenue: TrendMetricResponse
    net_profit: NetProfitResponse
    fleet_utilization: UtilizationResponse
    active_bookings: TrendMetricResponse

    class Config:
        from_attributes = True


class DailyRevenueResponse(BaseModel):
    date: str
    revenue: float
    bookings: int

    class Config:
        from_attributes = True


@router.get("/metrics", response_model=DashboardCardsResponse)
async def get_card_metrics(metrics: DashboardMetrics = Depends(get_dashboard_metrics)):
    """All four dashboard cards."""
    return await metrics.card_metrics()


@router.get("/revenue", response_model=TrendMetricResponse)
async def get_total_revenue(metrics: DashboardMetrics = Depends(get_dashboard_metrics)):
    """Revenue from bookings completed in each window."""
    return await metrics.total_revenue()


@router.get("/net-profit", response_model=NetProfitResponse)
async def get_net_profit(metrics: DashboardMetrics = Depends(get_dashboard_metrics)):
    """Revenue less maintenance and amortized acquisition cost."""
    return await metrics.net_profit()


@router.get("/utilization", response_model=UtilizationResponse)
async def get_fleet_utilization(metrics: DashboardMetrics = Depends(get_dashboard_metrics)):
    """Rented vehicle-days as a share of available vehicle-days."""
    return await metrics.fleet_utilization()


@router.get("/active-bookings", response_model=TrendMetricResponse)
async def get_active_bookings(metrics: DashboardMetrics = Depends(get_dashboard_metrics)):
    return await metrics.active_bookings()


@router.get("/daily-revenue", response_model=List[DailyRevenueResponse])
async def get_daily_revenue(
    days: int = Query(30, ge=1, le=365),
    metrics: DashboardMetrics = Depends(get_dashboard_metrics),
):
    """Completed-booking revenue per day for the chart."""
    return await metrics.daily_revenue(days)
