"""
Service Base

Shared plumbing for record-store services: the aggregate unit of work and
soft joins against vehicles.
"""

import uuid
from decimal import ROUND_HALF_UP, Decimal
from typing import Awaitable, Callable, Dict, Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetops.aggregation.registry import AggregateRegistry
from fleetops.aggregation.sync import AggregateUnitOfWork
from fleetops.database.models import Vehicle
from fleetops.services.errors import RecordNotFound


# Scale of the Numeric money columns
CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Round an amount to cents, the precision the record store keeps."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class RecordService:
    """
    Args:
        session: Request-scoped session
        registry: The fleet aggregates
        after_commit: Async callbacks run after each committed mutation,
            e.g. cache invalidation
    """

    def __init__(
        self,
        session: AsyncSession,
        registry: AggregateRegistry,
        after_commit: Optional[Sequence[Callable[[], Awaitable[object]]]] = None,
    ):
        self.session = session
        self.registry = registry
        self.after_commit = list(after_commit or [])

    def unit_of_work(self) -> AggregateUnitOfWork:
        return AggregateUnitOfWork(self.session, self.registry, after_commit=self.after_commit)

    async def _require(self, model, record_id: uuid.UUID, entity: str):
        record = await self.session.get(model, record_id)
        if record is None:
            raise RecordNotFound(entity, record_id)
        return record

    async def _vehicles_by_id(self, vehicle_ids: Iterable[Optional[uuid.UUID]]) -> Dict[uuid.UUID, Vehicle]:
        """Vehicles for the given ids; ids with no vehicle are simply absent."""
        ids = {vid for vid in vehicle_ids if vid is not None}
        if not ids:
            return {}
        result = await self.session.execute(select(Vehicle).where(Vehicle.vehicle_id.in_(ids)))
        return {v.vehicle_id: v for v in result.scalars().all()}
