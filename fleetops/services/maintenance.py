"""
Maintenance Service

Maintenance records drive the maintenance aggregate, keyed by service date
and summing cost.
"""

import uuid
from datetime import datetime
from typing import List, Optional, Tuple

import structlog
from sqlalchemy import select

from fleetops.aggregation.registry import EntityClass
from fleetops.database.models import MaintenanceRecord, Vehicle
from fleetops.metrics.windows import as_naive_utc
from fleetops.services.base import RecordService, to_money

logger = structlog.get_logger(__name__)


class MaintenanceService(RecordService):

    async def list(
        self,
        vehicle_id: Optional[uuid.UUID] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Tuple[MaintenanceRecord, Optional[Vehicle]]]:
        """Maintenance records with their vehicle, or None where the vehicle is gone."""
        query = select(MaintenanceRecord).order_by(MaintenanceRecord.date.desc()).limit(limit).offset(offset)
        if vehicle_id is not None:
            query = query.where(MaintenanceRecord.vehicle_id == vehicle_id)
        records = (await self.session.execute(query)).scalars().all()
        vehicles = await self._vehicles_by_id(r.vehicle_id for r in records)
        return [(r, vehicles.get(r.vehicle_id)) for r in records]

    async def get(self, maintenance_id: uuid.UUID) -> Tuple[MaintenanceRecord, Optional[Vehicle]]:
        record = await self._require(MaintenanceRecord, maintenance_id, "maintenance record")
        vehicle = await self.session.get(Vehicle, record.vehicle_id) if record.vehicle_id else None
        return record, vehicle

    async def create(
        self,
        vehicle_id: uuid.UUID,
        date: datetime,
        type: str,
        cost,
        odometer_at_service: int,
        description: Optional[str] = None,
        next_service_due: Optional[datetime] = None,
        next_service_mileage: Optional[int] = None,
    ) -> MaintenanceRecord:
        vehicle = await self._require(Vehicle, vehicle_id, "vehicle")
        record = MaintenanceRecord(
            vehicle_id=vehicle.vehicle_id,
            date=as_naive_utc(date),
            type=type,
            description=description,
            cost=to_money(cost),
            odometer_at_service=odometer_at_service,
            next_service_due=as_naive_utc(next_service_due) if next_service_due else None,
            next_service_mileage=next_service_mileage,
        )
        async with self.unit_of_work() as uow:
            self.session.add(record)
            uow.inserted(EntityClass.MAINTENANCE, record)

        logger.info(
            "Maintenance recorded",
            maintenance_id=str(record.maintenance_id),
            vehicle_id=str(vehicle_id),
            cost=float(record.cost),
        )
        return record

    async def delete(self, maintenance_id: uuid.UUID) -> None:
        record = await self._require(MaintenanceRecord, maintenance_id, "maintenance record")
        async with self.unit_of_work() as uow:
            uow.deleted(EntityClass.MAINTENANCE, record)
            await self.session.delete(record)
        logger.info("Maintenance record deleted", maintenance_id=str(maintenance_id))
