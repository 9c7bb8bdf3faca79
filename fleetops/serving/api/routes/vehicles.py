"""
Vehicles API Endpoints

Fleet inventory, telemetry updates and per-vehicle profitability.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field

from fleetops.database.models import VehicleCategory, VehicleStatus
from fleetops.serving.api.dependencies import get_vehicle_service
from fleetops.services import VehicleService

router = APIRouter()


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class VehicleResponse(BaseModel):
    """Vehicle response"""
    vehicle_id: UUID
    make: str
    model: str
    year: int
    license_plate: str
    vin: str
    category: VehicleCategory
    status: VehicleStatus
    acquisition_cost: float
    current_latitude: float
    current_longitude: float
    last_location_update: datetime
    current_odometer: int
    last_odometer_update: datetime
    created_at: datetime

    class Config:
        from_attributes = True


class VehicleCreate(BaseModel):
    """New vehicle"""
    make: str = Field(..., max_length=100)
    model: str = Field(..., max_length=100)
    year: int = Field(..., ge=1900, le=2100)
    license_plate: str = Field(..., max_length=20)
    vin: str = Field(..., max_length=32)
    category: VehicleCategory
    acquisition_cost: float = Field(..., ge=0)
    current_latitude: float = Field(..., ge=-90, le=90)
    current_longitude: float = Field(..., ge=-180, le=180)
    current_odometer: int = Field(0, ge=0)
    status: VehicleStatus = VehicleStatus.AVAILABLE
    acquired_at: Optional[datetime] = None


class LocationUpdate(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    timestamp: Optional[datetime] = None


class OdometerUpdate(BaseModel):
    reading: int = Field(..., ge=0)


class StatusUpdate(BaseModel):
    status: VehicleStatus


class VehicleProfitability(BaseModel):
    """Lifetime financials of one vehicle"""
    vehicle: VehicleResponse
    total_revenue: float
    acquisition_cost: float
    total_maintenance_costs: float
    net_profit: float
    roi: float
    booking_count: int
    maintenance_count: int


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("", response_model=List[VehicleResponse])
async def list_vehicles(
    status: Optional[VehicleStatus] = None,
    category: Optional[VehicleCategory] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    service: VehicleService = Depends(get_vehicle_service),
):
    """List vehicles, optionally filtered by status or category."""
    return await service.list(status=status, category=category, limit=limit, offset=offset)


@router.post("", response_model=VehicleResponse, status_code=201)
async def create_vehicle(
    payload: VehicleCreate,
    service: VehicleService = Depends(get_vehicle_service),
):
    return await service.create(**payload.model_dump())


@router.get("/{vehicle_id}", response_model=VehicleResponse)
async def get_vehicle(
    vehicle_id: UUID,
    service: VehicleService = Depends(get_vehicle_service),
):
    return await service.get(vehicle_id)


@router.get("/{vehicle_id}/profitability", response_model=VehicleProfitability)
async def get_vehicle_profitability(
    vehicle_id: UUID,
    service: VehicleService = Depends(get_vehicle_service),
):
    result = await service.profitability(vehicle_id)
    result["vehicle"] = VehicleResponse.model_validate(result["vehicle"])
    return VehicleProfitability(**result)


@router.patch("/{vehicle_id}/location", response_model=VehicleResponse)
async def update_location(
    vehicle_id: UUID,
    payload: LocationUpdate,
    service: VehicleService = Depends(get_vehicle_service),
):
    return await service.update_location(vehicle_id, payload.latitude, payload.longitude, payload.timestamp)


@router.patch("/{vehicle_id}/odometer", response_model=VehicleResponse)
async def update_odometer(
    vehicle_id: UUID,
    payload: OdometerUpdate,
    service: VehicleService = Depends(get_vehicle_service),
):
    return await service.update_odometer(vehicle_id, payload.reading)


@router.patch("/{vehicle_id}/status", response_model=VehicleResponse)
async def update_status(
    vehicle_id: UUID,
    payload: StatusUpdate,
    service: VehicleService = Depends(get_vehicle_service),
):
    return await service.update_status(vehicle_id, payload.status)


@router.delete("/{vehicle_id}", status_code=204)
async def delete_vehicle(
    vehicle_id: UUID,
    service: VehicleService = Depends(get_vehicle_service),
) -> Response:
    await service.delete(vehicle_id)
    return Response(status_code=204)
