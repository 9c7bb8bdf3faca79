"""
Vehicle Service

Vehicles drive the vehicles aggregate, keyed by ``last_location_update`` and
summing ``acquisition_cost``. A location update moves the vehicle's key and
is staged as a replace; odometer and status updates leave the entry as is.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from fleetops.aggregation.registry import EntityClass
from fleetops.database.models import (
    Booking,
    BookingStatus,
    MaintenanceRecord,
    Vehicle,
    VehicleCategory,
    VehicleLocationHistory,
    VehicleOdometerHistory,
    VehicleStatus,
)
from fleetops.metrics.windows import as_naive_utc, utc_now
from fleetops.services.base import RecordService, to_money
from fleetops.services.errors import InvalidRecord

logger = structlog.get_logger(__name__)


class VehicleService(RecordService):

    async def list(
        self,
        status: Optional[VehicleStatus] = None,
        category: Optional[VehicleCategory] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Vehicle]:
        query = select(Vehicle).order_by(Vehicle.make, Vehicle.model).limit(limit).offset(offset)
        if status is not None:
            query = query.where(Vehicle.status == status)
        if category is not None:
            query = query.where(Vehicle.category == category)
        return list((await self.session.execute(query)).scalars().all())

    async def get(self, vehicle_id: uuid.UUID) -> Vehicle:
        return await self._require(Vehicle, vehicle_id, "vehicle")

    async def create(
        self,
        make: str,
        model: str,
        year: int,
        license_plate: str,
        vin: str,
        category: VehicleCategory,
        acquisition_cost,
        current_latitude: float,
        current_longitude: float,
        current_odometer: int = 0,
        status: VehicleStatus = VehicleStatus.AVAILABLE,
        acquired_at: Optional[datetime] = None,
    ) -> Vehicle:
        now = utc_now()
        vehicle = Vehicle(
            make=make,
            model=model,
            year=year,
            license_plate=license_plate,
            vin=vin,
            category=category,
            status=status,
            acquisition_cost=to_money(acquisition_cost),
            current_latitude=current_latitude,
            current_longitude=current_longitude,
            last_location_update=now,
            current_odometer=current_odometer,
            last_odometer_update=now,
            created_at=as_naive_utc(acquired_at) if acquired_at else now,
        )
        try:
            async with self.unit_of_work() as uow:
                self.session.add(vehicle)
                uow.inserted(EntityClass.VEHICLES, vehicle)
        except IntegrityError as e:
            logger.warning("Vehicle rejected", license_plate=license_plate, error=str(e.orig))
            raise InvalidRecord(f"License plate {license_plate} is already registered") from e

        logger.info("Vehicle created", vehicle_id=str(vehicle.vehicle_id), license_plate=license_plate)
        return vehicle

    async def update_location(
        self,
        vehicle_id: uuid.UUID,
        latitude: float,
        longitude: float,
        timestamp: Optional[datetime] = None,
    ) -> Vehicle:
        vehicle = await self._require(Vehicle, vehicle_id, "vehicle")
        timestamp = as_naive_utc(timestamp) if timestamp else utc_now()

        async with self.unit_of_work() as uow:
            old = uow.snapshot(EntityClass.VEHICLES, vehicle)
            vehicle.current_latitude = latitude
            vehicle.current_longitude = longitude
            vehicle.last_location_update = timestamp
            self.session.add(VehicleLocationHistory(
                vehicle_id=vehicle.vehicle_id,
                latitude=latitude,
                longitude=longitude,
                timestamp=timestamp,
            ))
            uow.replaced(EntityClass.VEHICLES, old, vehicle)

        logger.debug("Vehicle location updated", vehicle_id=str(vehicle_id), latitude=latitude, longitude=longitude)
        return vehicle

    async def update_odometer(self, vehicle_id: uuid.UUID, reading: int) -> Vehicle:
        vehicle = await self._require(Vehicle, vehicle_id, "vehicle")
        timestamp = utc_now()

        async with self.unit_of_work():
            vehicle.current_odometer = reading
            vehicle.last_odometer_update = timestamp
            self.session.add(VehicleOdometerHistory(
                vehicle_id=vehicle.vehicle_id,
                reading=reading,
                timestamp=timestamp,
            ))

        logger.debug("Vehicle odometer updated", vehicle_id=str(vehicle_id), reading=reading)
        return vehicle

    async def update_status(self, vehicle_id: uuid.UUID, status: VehicleStatus) -> Vehicle:
        vehicle = await self._require(Vehicle, vehicle_id, "vehicle")
        async with self.unit_of_work():
            vehicle.status = status
        logger.info("Vehicle status updated", vehicle_id=str(vehicle_id), status=status.value)
        return vehicle

    async def delete(self, vehicle_id: uuid.UUID) -> None:
        """Delete a vehicle. Its bookings and maintenance records are kept."""
        vehicle = await self._require(Vehicle, vehicle_id, "vehicle")
        async with self.unit_of_work() as uow:
            uow.deleted(EntityClass.VEHICLES, vehicle)
            await self.session.delete(vehicle)
        logger.info("Vehicle deleted", vehicle_id=str(vehicle_id))

    async def profitability(self, vehicle_id: uuid.UUID) -> Dict[str, Any]:
        """Lifetime revenue, costs and net profit of one vehicle."""
        vehicle = await self._require(Vehicle, vehicle_id, "vehicle")

        revenue, booking_count = (await self.session.execute(
            select(func.coalesce(func.sum(Booking.total_amount), 0), func.count(Booking.booking_id)).where(
                Booking.vehicle_id == vehicle_id,
                Booking.status == BookingStatus.COMPLETED,
            )
        )).one()
        maintenance_cost, maintenance_count = (await self.session.execute(
            select(
                func.coalesce(func.sum(MaintenanceRecord.cost), 0),
                func.count(MaintenanceRecord.maintenance_id),
            ).where(MaintenanceRecord.vehicle_id == vehicle_id)
        )).one()

        acquisition_cost = float(vehicle.acquisition_cost)
        net_profit = float(revenue) - acquisition_cost - float(maintenance_cost)
        return {
            "vehicle": vehicle,
            "total_revenue": float(revenue),
            "acquisition_cost": acquisition_cost,
            "total_maintenance_costs": float(maintenance_cost),
            "net_profit": net_profit,
            "roi": (net_profit / acquisition_cost * 100) if acquisition_cost > 0 else 0.0,
            "booking_count": booking_count,
            "maintenance_count": maintenance_count,
        }
