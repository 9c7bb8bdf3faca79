"""
Booking Service

Bookings drive the bookings aggregate, keyed by ``(status, end_date)``. A
status change moves the booking's entry to a different key, so every status
update is an aggregate replace.
"""

import math
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

import structlog
from sqlalchemy import select

from fleetops.aggregation.registry import EntityClass
from fleetops.database.models import Booking, BookingStatus, Vehicle, VehicleStatus
from fleetops.metrics.windows import DAY_MS, as_naive_utc, to_epoch_ms
from fleetops.services.base import RecordService, to_money
from fleetops.services.errors import InvalidRecord

logger = structlog.get_logger(__name__)

# Vehicle status that follows a booking status change
VEHICLE_STATUS_FOR = {
    BookingStatus.ACTIVE: VehicleStatus.IN_USE,
    BookingStatus.COMPLETED: VehicleStatus.AVAILABLE,
    BookingStatus.CANCELLED: VehicleStatus.AVAILABLE,
}


def rental_days(start: datetime, end: datetime) -> int:
    """Billable days, partial days rounded up."""
    return math.ceil((to_epoch_ms(end) - to_epoch_ms(start)) / DAY_MS)


def booking_total(start: datetime, end: datetime, daily_rate) -> Decimal:
    return to_money(Decimal(rental_days(start, end)) * to_money(daily_rate))


class BookingService(RecordService):

    async def list(
        self,
        status: Optional[BookingStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Tuple[Booking, Optional[Vehicle]]]:
        """Bookings with their vehicle, or None where the vehicle is gone."""
        query = select(Booking).order_by(Booking.start_date.desc()).limit(limit).offset(offset)
        if status is not None:
            query = query.where(Booking.status == status)
        bookings = (await self.session.execute(query)).scalars().all()
        vehicles = await self._vehicles_by_id(b.vehicle_id for b in bookings)
        return [(b, vehicles.get(b.vehicle_id)) for b in bookings]

    async def get(self, booking_id: uuid.UUID) -> Tuple[Booking, Optional[Vehicle]]:
        booking = await self._require(Booking, booking_id, "booking")
        vehicle = await self.session.get(Vehicle, booking.vehicle_id) if booking.vehicle_id else None
        return booking, vehicle

    async def create(
        self,
        vehicle_id: uuid.UUID,
        customer_name: str,
        customer_email: str,
        start_date: datetime,
        end_date: datetime,
        daily_rate,
    ) -> Booking:
        """Create a confirmed booking and reserve its vehicle."""
        start_date, end_date = as_naive_utc(start_date), as_naive_utc(end_date)
        if end_date < start_date:
            raise InvalidRecord("Booking end date is before its start date")

        vehicle = await self._require(Vehicle, vehicle_id, "vehicle")
        booking = Booking(
            vehicle_id=vehicle.vehicle_id,
            customer_name=customer_name,
            customer_email=customer_email,
            start_date=start_date,
            end_date=end_date,
            daily_rate=to_money(daily_rate),
            total_amount=booking_total(start_date, end_date, daily_rate),
            status=BookingStatus.CONFIRMED,
        )

        async with self.unit_of_work() as uow:
            self.session.add(booking)
            vehicle.status = VehicleStatus.RESERVED
            uow.inserted(EntityClass.BOOKINGS, booking)

        logger.info(
            "Booking created",
            booking_id=str(booking.booking_id),
            vehicle_id=str(vehicle_id),
            total_amount=float(booking.total_amount),
        )
        return booking

    async def update_status(self, booking_id: uuid.UUID, status: BookingStatus) -> Booking:
        booking = await self._require(Booking, booking_id, "booking")
        vehicle = await self.session.get(Vehicle, booking.vehicle_id) if booking.vehicle_id else None

        async with self.unit_of_work() as uow:
            old = uow.snapshot(EntityClass.BOOKINGS, booking)
            previous_status = booking.status
            booking.status = status
            if vehicle is not None and status in VEHICLE_STATUS_FOR:
                vehicle.status = VEHICLE_STATUS_FOR[status]
            uow.replaced(EntityClass.BOOKINGS, old, booking)

        logger.info(
            "Booking status updated",
            booking_id=str(booking_id),
            from_status=getattr(previous_status, "value", previous_status),
            to_status=status.value,
        )
        return booking

    async def delete(self, booking_id: uuid.UUID) -> None:
        booking = await self._require(Booking, booking_id, "booking")
        async with self.unit_of_work() as uow:
            uow.deleted(EntityClass.BOOKINGS, booking)
            await self.session.delete(booking)
        logger.info("Booking deleted", booking_id=str(booking_id))
