"""
Aggregate Errors

Structural errors raised by the ordered aggregate. They abort the enclosing
transaction and are never retried.
"""


class AggregateError(Exception):
    """Base class for ordered aggregate failures."""


class InvalidKey(AggregateError, ValueError):
    """Key or value does not match the aggregate's configured shape."""


class InvalidBounds(AggregateError, ValueError):
    """Lower bound sorts after upper bound, or a bound key is malformed."""


class NotFound(AggregateError, LookupError):
    """
    No entry matches the (key, value) pair being removed.

    Means the record store and the aggregate have drifted apart; the only
    repair is a backfill.
    """

    def __init__(self, aggregate: str, key, value):
        self.aggregate = aggregate
        self.key = key
        self.value = value
        super().__init__(
            f"No entry with key={key!r} value={value!r} in aggregate '{aggregate}'"
        )
