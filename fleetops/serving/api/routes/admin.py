"""
Admin API Endpoints

Aggregate maintenance: backfill, inspection and raw range queries.
"""

from typing import Dict, List, Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from fleetops.aggregation import AggregateRegistry, Bounds, EntityClass, backfill_all
from fleetops.config import Settings
from fleetops.database.connection import get_db_dependency
from fleetops.serving.api.dependencies import get_app_settings, get_registry
from fleetops.serving.cache import invalidate_analytics

router = APIRouter()
logger = structlog.get_logger(__name__)

KeyComponent = Union[str, float]
KeyValue = Union[float, str, List[KeyComponent]]


class BackfillRequest(BaseModel):
    entities: Optional[List[EntityClass]] = None
    chunk_size: Optional[int] = Field(None, ge=1, le=100000)


class BackfillReportResponse(BaseModel):
    entity: str
    entries: int
    total: float
    chunks: int
    duration_ms: float

    class Config:
        from_attributes = True


class AggregateStats(BaseModel):
    entries: int
    total: float


class BoundSide(BaseModel):
    key: KeyValue
    inclusive: Optional[bool] = None


class RangeQuery(BaseModel):
    """
    Range for a sum/count query. ``inclusive`` is the default for both sides.

    Example:
        {"lower": {"key": ["completed", 1700000000000]},
         "upper": {"key": ["completed", 1702592000000]},
         "inclusive": true}
    """
    lower: Optional[BoundSide] = None
    upper: Optional[BoundSide] = None
    inclusive: bool = True


class RangeResult(BaseModel):
    entity: EntityClass
    sum: float
    count: int


@router.post("/backfill", response_model=List[BackfillReportResponse])
async def run_backfill(
    request: Optional[BackfillRequest] = None,
    db: AsyncSession = Depends(get_db_dependency),
    registry: AggregateRegistry = Depends(get_registry),
    settings: Settings = Depends(get_app_settings),
):
    """
    Rebuild aggregates from the record store.

    Safe to repeat; use after a 409 (aggregate out of sync) response.
    """
    request = request or BackfillRequest()
    reports = await backfill_all(
        db,
        registry,
        chunk_size=request.chunk_size or settings.metrics.backfill_chunk_size,
        entities=request.entities,
    )
    await invalidate_analytics()
    return reports


@router.get("/aggregates", response_model=Dict[str, AggregateStats])
async def get_aggregate_stats(registry: AggregateRegistry = Depends(get_registry)):
    """Entry count and unbounded sum of each aggregate."""
    return registry.stats()


@router.post("/aggregates/{entity}/query", response_model=RangeResult)
async def query_aggregate(
    entity: EntityClass,
    query: RangeQuery,
    registry: AggregateRegistry = Depends(get_registry),
):
    """Sum and count over a key range of one aggregate."""
    bounds = Bounds.from_dict(query.model_dump(exclude_none=True))
    count, total = registry[entity].aggregate.count_and_sum(bounds)
    return RangeResult(entity=entity, sum=total, count=count)
