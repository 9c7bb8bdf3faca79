"""
Aggregation Module

Ordered sum/count aggregates over the fleet record store.
"""
from .errors import AggregateError, InvalidBounds, InvalidKey, NotFound
from .keys import Bound, Bounds, KeyShape, NUMBER, STRING
from .tree import AggregateEntry, AggregateOp, OrderedAggregate
from .registry import AggregateRegistry, EntityClass, TableAggregate, build_registry
from .sync import AggregateUnitOfWork
from .backfill import BackfillReport, backfill_all, backfill_table

__all__ = [
    "AggregateError",
    "InvalidBounds",
    "InvalidKey",
    "NotFound",
    "Bound",
    "Bounds",
    "KeyShape",
    "NUMBER",
    "STRING",
    "AggregateEntry",
    "AggregateOp",
    "OrderedAggregate",
    "AggregateRegistry",
    "EntityClass",
    "TableAggregate",
    "build_registry",
    "AggregateUnitOfWork",
    "BackfillReport",
    "backfill_all",
    "backfill_table",
]
