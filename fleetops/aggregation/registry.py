"""
Aggregate Registry

Binds an OrderedAggregate to a record table: how to derive the sort key and
the summed value from a row. One registry instance owns the three fleet
aggregates and is created at application startup, then handed to whatever
needs it.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Sequence, Tuple, TypeVar

import structlog

from fleetops.aggregation.errors import AggregateError
from fleetops.aggregation.keys import NUMBER, STRING, AggregateKey, Bounds, KeyShape
from fleetops.aggregation.tree import INSERT, REMOVE, AggregateEntry, AggregateOp, OrderedAggregate, PreparedBatch
from fleetops.database.models import Booking, MaintenanceRecord, Vehicle
from fleetops.metrics.windows import to_epoch_ms

logger = structlog.get_logger(__name__)

R = TypeVar("R")


class EntityClass(str, Enum):
    """Tracked record tables"""
    BOOKINGS = "bookings"
    MAINTENANCE = "maintenance"
    VEHICLES = "vehicles"


class TableAggregate(Generic[R]):
    """
    An ordered aggregate over one record table.

    Args:
        entity: Which table this aggregate tracks
        model: ORM class of the table, used by backfill
        shape: Key shape of ``sort_key``
        sort_key: Derives the sort key from a record
        sum_value: Derives the summed value from a record
    """

    def __init__(
        self,
        entity: EntityClass,
        model: type,
        shape: KeyShape,
        sort_key: Callable[[R], AggregateKey],
        sum_value: Callable[[R], Any],
    ):
        self.entity = entity
        self.model = model
        self.aggregate = OrderedAggregate(entity.value, shape)
        self._sort_key = sort_key
        self._sum_value = sum_value

    def entry_of(self, record: R) -> AggregateEntry:
        return AggregateEntry(key=self._sort_key(record), value=float(self._sum_value(record)))

    def sum(self, bounds: Optional[Bounds] = None) -> float:
        return self.aggregate.sum(bounds)

    def count(self, bounds: Optional[Bounds] = None) -> int:
        return self.aggregate.count(bounds)

    def __len__(self) -> int:
        return len(self.aggregate)


@dataclass(frozen=True)
class StagedOp:
    """An aggregate operation addressed to one entity class."""
    entity: EntityClass
    op: AggregateOp


class AggregateRegistry:
    """
    The fleet's aggregates, one per tracked table.

    Exposes the query surface the metrics layer uses:
    ``sum(entity, bounds)`` and ``count(entity, bounds)``.

    ``writes`` serializes writers: a committing unit of work holds it from
    flush to publish, and a backfill holds it for its whole scan, so no
    committed write can land between a backfill's read and its rebuild.
    """

    def __init__(self, tables: Iterable[TableAggregate]):
        self._tables: Dict[EntityClass, TableAggregate] = {}
        for table in tables:
            self._tables[table.entity] = table
        self.writes = asyncio.Lock()

    def __getitem__(self, entity) -> TableAggregate:
        return self._tables[EntityClass(entity)]

    def __iter__(self):
        return iter(self._tables.values())

    @property
    def bookings(self) -> TableAggregate:
        return self._tables[EntityClass.BOOKINGS]

    @property
    def maintenance(self) -> TableAggregate:
        return self._tables[EntityClass.MAINTENANCE]

    @property
    def vehicles(self) -> TableAggregate:
        return self._tables[EntityClass.VEHICLES]

    def sum(self, entity, bounds: Optional[Bounds] = None) -> float:
        return self[entity].sum(bounds)

    def count(self, entity, bounds: Optional[Bounds] = None) -> int:
        return self[entity].count(bounds)

    def prepare(self, staged: Sequence[StagedOp]) -> List[PreparedBatch]:
        """
        Compute every aggregate's batch without publishing any of them.

        Raises:
            NotFound: If a removed entry is absent; nothing has changed
        """
        batches: Dict[EntityClass, List[AggregateOp]] = {}
        for item in staged:
            batches.setdefault(item.entity, []).append(item.op)
        return [self[entity].aggregate.prepare(ops) for entity, ops in batches.items()]

    def publish(self, prepared: Sequence[PreparedBatch]) -> None:
        """
        Publish prepared batches.

        If one is rejected on replay, batches already published are reverted
        before the error propagates.
        """
        published: List[PreparedBatch] = []
        try:
            for batch in prepared:
                batch.aggregate.publish(batch)
                published.append(batch)
        except AggregateError:
            for batch in reversed(published):
                batch.aggregate.apply([op.inverse() for op in reversed(batch.ops)])
            logger.error(
                "Aggregate batch rejected, earlier batches reverted",
                reverted=[batch.aggregate.name for batch in published],
            )
            raise

    def apply(self, staged: Sequence[StagedOp]) -> None:
        """Apply staged operations; all aggregates change or none do."""
        self.publish(self.prepare(staged))

    def revert(self, staged: Sequence[StagedOp]) -> None:
        """Undo operations previously passed to :meth:`apply`."""
        self.apply([StagedOp(item.entity, item.op.inverse()) for item in reversed(staged)])

    def stats(self) -> Dict[str, Dict[str, float]]:
        return {
            table.entity.value: {"entries": table.count(), "total": table.sum()}
            for table in self
        }


# =============================================================================
# KEY DERIVATION
# =============================================================================

def booking_sort_key(booking: Booking) -> Tuple[str, int]:
    status = booking.status.value if isinstance(booking.status, Enum) else str(booking.status)
    return status, to_epoch_ms(booking.end_date)


def maintenance_sort_key(record: MaintenanceRecord) -> int:
    return to_epoch_ms(record.date)


def vehicle_sort_key(vehicle: Vehicle) -> int:
    return to_epoch_ms(vehicle.last_location_update)


def build_registry() -> AggregateRegistry:
    """Create empty fleet aggregates with the canonical key derivation."""
    return AggregateRegistry([
        TableAggregate(
            EntityClass.BOOKINGS,
            Booking,
            KeyShape.composite(STRING, NUMBER),
            sort_key=booking_sort_key,
            sum_value=lambda b: b.total_amount,
        ),
        TableAggregate(
            EntityClass.MAINTENANCE,
            MaintenanceRecord,
            KeyShape.number(),
            sort_key=maintenance_sort_key,
            sum_value=lambda m: m.cost,
        ),
        TableAggregate(
            EntityClass.VEHICLES,
            Vehicle,
            KeyShape.number(),
            sort_key=vehicle_sort_key,
            sum_value=lambda v: v.acquisition_cost,
        ),
    ])


def insert_op(entity: EntityClass, entry: AggregateEntry) -> StagedOp:
    return StagedOp(entity, AggregateOp(INSERT, entry))


def remove_op(entity: EntityClass, entry: AggregateEntry) -> StagedOp:
    return StagedOp(entity, AggregateOp(REMOVE, entry))
