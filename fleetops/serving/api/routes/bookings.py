"""
Bookings API Endpoints

Booking lifecycle. Every mutation here also updates the bookings aggregate
that backs revenue and booking-count metrics.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field

from fleetops.database.models import BookingStatus, VehicleCategory, VehicleStatus
from fleetops.serving.api.dependencies import get_booking_service
from fleetops.services import BookingService

router = APIRouter()


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class VehicleSummary(BaseModel):
    """Vehicle fields shown alongside bookings and maintenance"""
    vehicle_id: UUID
    make: str
    model: str
    year: int
    license_plate: str
    category: VehicleCategory
    status: VehicleStatus

    class Config:
        from_attributes = True


class BookingResponse(BaseModel):
    """Booking with its vehicle; ``vehicle`` is null once the vehicle is deleted"""
    booking_id: UUID
    vehicle_id: Optional[UUID]
    customer_name: str
    customer_email: str
    start_date: datetime
    end_date: datetime
    daily_rate: float
    total_amount: float
    status: BookingStatus
    created_at: datetime
    vehicle: Optional[VehicleSummary] = None

    class Config:
        from_attributes = True


class BookingCreate(BaseModel):
    vehicle_id: UUID
    customer_name: str = Field(..., max_length=200)
    customer_email: str = Field(..., max_length=200)
    start_date: datetime
    end_date: datetime
    daily_rate: float = Field(..., gt=0)


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


def _render(booking, vehicle) -> BookingResponse:
    response = BookingResponse.model_validate(booking)
    response.vehicle = VehicleSummary.model_validate(vehicle) if vehicle is not None else None
    return response


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("", response_model=List[BookingResponse])
async def list_bookings(
    status: Optional[BookingStatus] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    service: BookingService = Depends(get_booking_service),
) -> List[BookingResponse]:
    """List bookings, newest start date first, with their vehicles."""
    rows = await service.list(status=status, limit=limit, offset=offset)
    return [_render(booking, vehicle) for booking, vehicle in rows]


@router.post("", response_model=BookingResponse, status_code=201)
async def create_booking(
    payload: BookingCreate,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """
    Create a confirmed booking.

    The total is the number of started days times the daily rate, and the
    vehicle is marked reserved.
    """
    booking = await service.create(**payload.model_dump())
    return await get_booking(booking.booking_id, service)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    booking, vehicle = await service.get(booking_id)
    return _render(booking, vehicle)


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: UUID,
    payload: BookingStatusUpdate,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """
    Change a booking's status.

    active marks the vehicle in-use; completed and cancelled make it
    available again.
    """
    await service.update_status(booking_id, payload.status)
    return await get_booking(booking_id, service)


@router.delete("/{booking_id}", status_code=204)
async def delete_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
) -> Response:
    await service.delete(booking_id)
    return Response(status_code=204)
