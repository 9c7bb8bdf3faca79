"""
Database Seeding

Loads a generated fleet into the record store, then rebuilds the aggregates
from it. Seeding bypasses the services, so a running API must run a backfill
(POST /api/v1/admin/backfill) or restart afterwards.

Usage:
    python -m fleetops.ingestion.seed_db [--no-clear] [--seed 42]
"""

import argparse
import asyncio
import uuid
from decimal import Decimal
from typing import Any, Dict, List

import structlog
from sqlalchemy import delete, insert

from fleetops.aggregation import backfill_all, build_registry
from fleetops.config import get_settings
from fleetops.config.logging import configure_logging
from fleetops.data.generators import FleetGenerator
from fleetops.database.connection import close_database, get_db, init_database
from fleetops.database.models import (
    Booking,
    MaintenanceRecord,
    Vehicle,
    VehicleLocationHistory,
    VehicleOdometerHistory,
)

logger = structlog.get_logger(__name__)

CHUNK_SIZE = 1000

UUID_COLUMNS = ("vehicle_id",)
MONEY_COLUMNS = ("acquisition_cost", "daily_rate", "total_amount", "cost")


def _to_record(row: Dict[str, Any]) -> Dict[str, Any]:
    """Generator row to insert parameters: uuid and money columns typed."""
    record = dict(row)
    for column in UUID_COLUMNS:
        if record.get(column) is not None:
            record[column] = uuid.UUID(record[column])
    for column in MONEY_COLUMNS:
        if record.get(column) is not None:
            record[column] = Decimal(str(record[column]))
    return record


async def execute_batch_insert(model: Any, records: List[Dict[str, Any]]) -> None:
    """Insert records in chunks using Core insert"""
    if not records:
        return

    async with get_db() as db:
        for i in range(0, len(records), CHUNK_SIZE):
            await db.execute(insert(model), records[i:i + CHUNK_SIZE])
    logger.info("Inserted records", table=model.__tablename__, count=len(records))


async def clear_tables() -> None:
    async with get_db() as db:
        for model in (VehicleLocationHistory, VehicleOdometerHistory, Booking, MaintenanceRecord, Vehicle):
            await db.execute(delete(model))
    logger.info("Cleared fleet tables")


async def seed_database(clear: bool = True, seed: int = 42) -> Dict[str, Dict[str, float]]:
    """
    Seed the record store and verify it by backfilling a fresh registry.

    Returns:
        Entry count and total per aggregate after the backfill
    """
    frames = FleetGenerator(seed=seed).generate()

    if clear:
        await clear_tables()

    await execute_batch_insert(Vehicle, [_to_record(r) for r in frames["vehicles"].to_dicts()])
    await execute_batch_insert(Booking, [_to_record(r) for r in frames["bookings"].to_dicts()])
    await execute_batch_insert(MaintenanceRecord, [_to_record(r) for r in frames["maintenance"].to_dicts()])

    registry = build_registry()
    async with get_db() as db:
        await backfill_all(db, registry, chunk_size=get_settings().metrics.backfill_chunk_size)

    stats = registry.stats()
    logger.info("Seeding complete", **{entity: values["entries"] for entity, values in stats.items()})
    return stats


async def main(clear: bool, seed: int) -> None:
    settings = get_settings()
    configure_logging(settings.monitoring.log_level, settings.monitoring.log_format)
    await init_database()
    try:
        await seed_database(clear=clear, seed=seed)
    finally:
        await close_database()


def cli() -> None:
    parser = argparse.ArgumentParser(description="Seed the fleet database with synthetic data")
    parser.add_argument("--no-clear", action="store_true", help="Keep existing records")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    args = parser.parse_args()

    asyncio.run(main(clear=not args.no_clear, seed=args.seed))


if __name__ == "__main__":
    cli()
