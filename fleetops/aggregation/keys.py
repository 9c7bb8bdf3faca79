"""
Aggregate Keys and Bounds

Keys are either a scalar (numeric timestamp) or a fixed-arity tuple compared
lexicographically. Internally every key is normalized to a tuple so scalar
and composite aggregates share one comparison path.

A bound key may be a leading prefix of the full key. Comparison against a
bound only looks at as many components as the bound has, so
``Bound(("completed",))`` matches every entry whose status is "completed"
regardless of the trailing timestamp.
"""

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple, Union

from fleetops.aggregation.errors import InvalidBounds, InvalidKey

Scalar = Union[str, int, float]
AggregateKey = Union[Scalar, Tuple[Scalar, ...]]
NormalizedKey = Tuple[Scalar, ...]

STRING = "string"
NUMBER = "number"


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, Decimal)):
        return True
    return isinstance(value, float) and not math.isnan(value)


def normalize_value(value: Any) -> float:
    """Coerce a summed value to float, rejecting bools and NaN."""
    if not _is_number(value):
        raise InvalidKey(f"Aggregate value must be a number, got {value!r}")
    return float(value)


@dataclass(frozen=True)
class KeyShape:
    """
    Configured shape of an aggregate's sort key.

    Attributes:
        components: Kind of each component, STRING or NUMBER
        scalar: True when callers pass bare scalars instead of tuples
    """
    components: Tuple[str, ...]
    scalar: bool = False

    @classmethod
    def number(cls) -> "KeyShape":
        return cls(components=(NUMBER,), scalar=True)

    @classmethod
    def composite(cls, *components: str) -> "KeyShape":
        if not components:
            raise ValueError("Composite key needs at least one component")
        for kind in components:
            if kind not in (STRING, NUMBER):
                raise ValueError(f"Unknown key component kind: {kind}")
        return cls(components=tuple(components), scalar=False)

    @property
    def arity(self) -> int:
        return len(self.components)

    def _check_component(self, position: int, component: Any, error: type) -> Scalar:
        kind = self.components[position]
        if kind == STRING:
            if not isinstance(component, str):
                raise error(f"Key component {position} must be a string, got {component!r}")
            return component
        if not _is_number(component):
            raise error(f"Key component {position} must be a number, got {component!r}")
        if isinstance(component, Decimal):
            return float(component)
        return component

    def _as_tuple(self, key: Any, error: type) -> tuple:
        if self.scalar:
            if isinstance(key, (tuple, list)):
                if len(key) != 1:
                    raise error(f"Scalar key expected, got {key!r}")
                return tuple(key)
            return (key,)
        if not isinstance(key, (tuple, list)):
            raise error(f"Tuple key of arity {self.arity} expected, got {key!r}")
        return tuple(key)

    def normalize(self, key: AggregateKey) -> NormalizedKey:
        """Validate an entry key; it must have the full configured arity."""
        parts = self._as_tuple(key, InvalidKey)
        if len(parts) != self.arity:
            raise InvalidKey(f"Key {key!r} must have {self.arity} component(s)")
        return tuple(self._check_component(i, c, InvalidKey) for i, c in enumerate(parts))

    def normalize_bound(self, key: AggregateKey) -> NormalizedKey:
        """Validate a bound key; any non-empty leading prefix is accepted."""
        parts = self._as_tuple(key, InvalidBounds)
        if not parts or len(parts) > self.arity:
            raise InvalidBounds(
                f"Bound key {key!r} must have between 1 and {self.arity} component(s)"
            )
        return tuple(self._check_component(i, c, InvalidBounds) for i, c in enumerate(parts))

    def denormalize(self, key: NormalizedKey) -> AggregateKey:
        """Return a key in the caller's shape (scalar or tuple)."""
        return key[0] if self.scalar else key


def compare_to_bound(key: NormalizedKey, bound_key: NormalizedKey) -> int:
    """
    Compare an entry key with a (possibly prefix) bound key.

    Returns -1, 0 or 1. Only the first ``len(bound_key)`` components of the
    entry key take part, so every key sharing the prefix compares equal.
    """
    head = key[:len(bound_key)]
    if head < bound_key:
        return -1
    if head > bound_key:
        return 1
    return 0


@dataclass(frozen=True)
class Bound:
    """One side of a range query."""
    key: AggregateKey
    inclusive: bool = True


@dataclass(frozen=True)
class Bounds:
    """
    Range for sum/count queries. A missing side is unbounded.

    Example:
        Bounds.between(("completed", start), ("completed", end))
        Bounds.between(sixty_days_ago, thirty_days_ago, upper_inclusive=False)
        Bounds.prefix(("confirmed",))
    """
    lower: Optional[Bound] = None
    upper: Optional[Bound] = None

    @classmethod
    def unbounded(cls) -> "Bounds":
        return cls()

    @classmethod
    def between(
        cls,
        lower: Optional[AggregateKey],
        upper: Optional[AggregateKey],
        lower_inclusive: bool = True,
        upper_inclusive: bool = True,
    ) -> "Bounds":
        return cls(
            lower=Bound(lower, lower_inclusive) if lower is not None else None,
            upper=Bound(upper, upper_inclusive) if upper is not None else None,
        )

    @classmethod
    def prefix(cls, prefix: AggregateKey) -> "Bounds":
        """Equality on the leading key components."""
        return cls(lower=Bound(prefix, True), upper=Bound(prefix, True))

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Bounds":
        """
        Build bounds from the wire shape
        ``{"lower": {"key": ..., "inclusive": ...}, "upper": {...}}``.

        A top-level ``inclusive`` flag sets the default for both sides.
        """
        if not data:
            return cls()
        default_inclusive = bool(data.get("inclusive", True))

        def side(name: str) -> Optional[Bound]:
            raw = data.get(name)
            if raw is None:
                return None
            if not isinstance(raw, dict) or "key" not in raw:
                raise InvalidBounds(f"Bound '{name}' must be an object with a 'key'")
            key = raw["key"]
            if isinstance(key, list):
                key = tuple(key)
            return Bound(key, bool(raw.get("inclusive", default_inclusive)))

        return cls(lower=side("lower"), upper=side("upper"))


@dataclass(frozen=True)
class ResolvedBounds:
    """Bounds normalized and validated against a key shape."""
    lower: Optional[NormalizedKey]
    lower_inclusive: bool
    upper: Optional[NormalizedKey]
    upper_inclusive: bool


def resolve_bounds(shape: KeyShape, bounds: Optional[Bounds]) -> ResolvedBounds:
    """
    Normalize bounds for a shape and reject inverted ranges.

    Raises:
        InvalidBounds: If a bound key is malformed or lower sorts after upper
    """
    bounds = bounds or Bounds()
    lower = shape.normalize_bound(bounds.lower.key) if bounds.lower else None
    upper = shape.normalize_bound(bounds.upper.key) if bounds.upper else None

    if lower is not None and upper is not None:
        common = min(len(lower), len(upper))
        if lower[:common] > upper[:common]:
            raise InvalidBounds(f"Lower bound {lower!r} sorts after upper bound {upper!r}")

    return ResolvedBounds(
        lower=lower,
        lower_inclusive=bounds.lower.inclusive if bounds.lower else True,
        upper=upper,
        upper_inclusive=bounds.upper.inclusive if bounds.upper else True,
    )
