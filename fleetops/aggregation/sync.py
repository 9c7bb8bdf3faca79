"""
Aggregate Synchronization

Keeps the aggregates in step with the record store. Every mutation stages
the matching aggregate operation on an AggregateUnitOfWork, which commits
the session and the aggregates together:

    1. flush record writes (constraint errors surface here)
    2. compute the new aggregate contents without publishing them
       (a NotFound surfaces here)
    3. commit the session
    4. publish the new aggregate contents

A failure before the commit rolls the session back and leaves the
aggregates untouched. Readers never see an aggregate change whose record
change is not committed.
"""

from typing import Awaitable, Callable, List, Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from fleetops.aggregation.errors import AggregateError
from fleetops.aggregation.registry import (
    AggregateRegistry,
    EntityClass,
    StagedOp,
    insert_op,
    remove_op,
)
from fleetops.aggregation.tree import AggregateEntry

logger = structlog.get_logger(__name__)

AfterCommitHook = Callable[[], Awaitable[object]]


class AggregateUnitOfWork:
    """
    Transaction scope pairing a session with aggregate updates.

    Example:
        async with AggregateUnitOfWork(db, registry) as uow:
            db.add(booking)
            uow.inserted(EntityClass.BOOKINGS, booking)
    """

    def __init__(
        self,
        session: AsyncSession,
        registry: AggregateRegistry,
        after_commit: Optional[Sequence[AfterCommitHook]] = None,
    ):
        self.session = session
        self.registry = registry
        self._after_commit = list(after_commit or [])
        self._staged: List[StagedOp] = []

    @property
    def staged(self) -> List[StagedOp]:
        return list(self._staged)

    def snapshot(self, entity: EntityClass, record) -> AggregateEntry:
        """Capture a record's current entry before mutating it."""
        return self.registry[entity].entry_of(record)

    def inserted(self, entity: EntityClass, record) -> None:
        self._staged.append(insert_op(entity, self.registry[entity].entry_of(record)))

    def deleted(self, entity: EntityClass, record) -> None:
        self._staged.append(remove_op(entity, self.registry[entity].entry_of(record)))

    def replaced(self, entity: EntityClass, old: AggregateEntry, record) -> None:
        """Stage a replace when the tracked key or value changed."""
        new = self.registry[entity].entry_of(record)
        if new == old:
            return
        self._staged.append(remove_op(entity, old))
        self._staged.append(insert_op(entity, new))

    async def __aenter__(self) -> "AggregateUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self._staged.clear()
            await self.session.rollback()
            return False
        await self.commit()
        return False

    async def commit(self) -> None:
        staged, self._staged = self._staged, []

        # Writers and backfills take turns; see AggregateRegistry.writes
        async with self.registry.writes:
            try:
                await self.session.flush()
                prepared = self.registry.prepare(staged)
            except Exception:
                await self.session.rollback()
                raise

            try:
                await self.session.commit()
            except Exception as e:
                logger.error("Commit failed, aggregate operations discarded", error=str(e), operations=len(staged))
                await self.session.rollback()
                raise

            # Readers see the change only once the record store has it
            try:
                self.registry.publish(prepared)
            except AggregateError:
                logger.error("Committed write could not be published, backfill required", operations=len(staged))
                raise

        if staged:
            logger.debug("Aggregates synchronized", operations=len(staged))
        for hook in self._after_commit:
            await hook()
