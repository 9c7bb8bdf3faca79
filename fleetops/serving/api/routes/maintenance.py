"""
Maintenance API Endpoints
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field

from fleetops.serving.api.dependencies import get_maintenance_service
from fleetops.serving.api.routes.bookings import VehicleSummary
from fleetops.services import MaintenanceService

router = APIRouter()


class MaintenanceResponse(BaseModel):
    """Maintenance record with its vehicle, null once the vehicle is deleted"""
    maintenance_id: UUID
    vehicle_id: Optional[UUID]
    date: datetime
    type: str
    description: Optional[str]
    cost: float
    odometer_at_service: int
    next_service_due: Optional[datetime]
    next_service_mileage: Optional[int]
    vehicle: Optional[VehicleSummary] = None

    class Config:
        from_attributes = True


class MaintenanceCreate(BaseModel):
    vehicle_id: UUID
    date: datetime
    type: str = Field(..., max_length=100)
    description: Optional[str] = None
    cost: float = Field(..., ge=0)
    odometer_at_service: int = Field(..., ge=0)
    next_service_due: Optional[datetime] = None
    next_service_mileage: Optional[int] = Field(None, ge=0)


def _render(record, vehicle) -> MaintenanceResponse:
    response = MaintenanceResponse.model_validate(record)
    response.vehicle = VehicleSummary.model_validate(vehicle) if vehicle is not None else None
    return response


@router.get("", response_model=List[MaintenanceResponse])
async def list_maintenance(
    vehicle_id: Optional[UUID] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    service: MaintenanceService = Depends(get_maintenance_service),
) -> List[MaintenanceResponse]:
    """List maintenance records, most recent first."""
    rows = await service.list(vehicle_id=vehicle_id, limit=limit, offset=offset)
    return [_render(record, vehicle) for record, vehicle in rows]


@router.post("", response_model=MaintenanceResponse, status_code=201)
async def create_maintenance(
    payload: MaintenanceCreate,
    service: MaintenanceService = Depends(get_maintenance_service),
) -> MaintenanceResponse:
    record = await service.create(**payload.model_dump())
    return _render(*await service.get(record.maintenance_id))


@router.get("/{maintenance_id}", response_model=MaintenanceResponse)
async def get_maintenance(
    maintenance_id: UUID,
    service: MaintenanceService = Depends(get_maintenance_service),
) -> MaintenanceResponse:
    return _render(*await service.get(maintenance_id))


@router.delete("/{maintenance_id}", status_code=204)
async def delete_maintenance(
    maintenance_id: UUID,
    service: MaintenanceService = Depends(get_maintenance_service),
) -> Response:
    await service.delete(maintenance_id)
    return Response(status_code=204)
