"""
Aggregate Backfill

Rebuilds aggregates from the record store. Used at startup, after the
aggregates are first introduced over existing data, and whenever drift is
detected (a NotFound on remove).

Each run discards prior aggregate state and replays every live record, so
running it repeatedly yields the same state. Records are read in
primary-key order, one chunk per query; the new contents are published only
after the full scan, so an interrupted run leaves the previous state intact
and is recovered by running again.
"""

import time
from dataclasses import dataclass
from typing import List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetops.aggregation.registry import AggregateRegistry, EntityClass, TableAggregate
from fleetops.aggregation.tree import AggregateEntry

logger = structlog.get_logger(__name__)


@dataclass
class BackfillReport:
    """Outcome of rebuilding one aggregate"""
    entity: str
    entries: int
    total: float
    chunks: int
    duration_ms: float


async def _scan_entries(session: AsyncSession, table: TableAggregate, chunk_size: int):
    """Yield lists of entries, one per chunk, in primary-key order."""
    model = table.model
    pk = model.__mapper__.primary_key[0]
    last = None
    while True:
        query = select(model).order_by(pk).limit(chunk_size)
        if last is not None:
            query = query.where(pk > last)
        result = await session.execute(query)
        records = result.scalars().all()
        if not records:
            return
        yield [table.entry_of(record) for record in records]
        last = getattr(records[-1], pk.key)
        # Rows are only read; release them from the identity map.
        for record in records:
            session.expunge(record)
        if len(records) < chunk_size:
            return


async def backfill_table(
    session: AsyncSession,
    table: TableAggregate,
    chunk_size: int = 1000,
) -> BackfillReport:
    """
    Clear one aggregate and replay every record of its table.

    Callers hold ``registry.writes`` while this runs; see :func:`backfill_all`.
    """
    start = time.perf_counter()
    entries: List[AggregateEntry] = []
    chunks = 0
    async for chunk in _scan_entries(session, table, chunk_size):
        entries.extend(chunk)
        chunks += 1

    loaded = table.aggregate.rebuild(entries)
    report = BackfillReport(
        entity=table.entity.value,
        entries=loaded,
        total=table.sum(),
        chunks=chunks,
        duration_ms=round((time.perf_counter() - start) * 1000, 2),
    )
    logger.info(
        "Aggregate backfilled",
        entity=report.entity,
        entries=report.entries,
        total=report.total,
        chunks=report.chunks,
        duration_ms=report.duration_ms,
    )
    return report


async def backfill_all(
    session: AsyncSession,
    registry: AggregateRegistry,
    chunk_size: int = 1000,
    entities: Optional[List[EntityClass]] = None,
) -> List[BackfillReport]:
    """
    Rebuild all aggregates, or only the given entity classes.

    Mutations wait on ``registry.writes`` until the rebuild is published, so
    a write committed while the scan runs is never dropped by it.
    """
    selected = [registry[e] for e in entities] if entities else list(registry)
    logger.info("Starting backfill", entities=[t.entity.value for t in selected], chunk_size=chunk_size)
    reports = []
    async with registry.writes:
        for table in selected:
            reports.append(await backfill_table(session, table, chunk_size))
    return reports
