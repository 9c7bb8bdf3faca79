"""
Ordered Aggregate

A multiset of (key, value) entries kept in key order and augmented with
subtree counts and sums, so range sum/count never scans the entries.

The structure is a treap whose nodes are immutable: every write copies the
O(log n) nodes on its path and publishes a new root with one assignment.
Readers take the root reference once and work on that snapshot, which makes
``replace`` and batch writes atomic for them without a read lock. Writers
serialize on a lock.

Entries are ordered by (key, value, insertion sequence), which keeps
duplicate keys side by side and lets ``remove`` locate an exact
(key, value) pair in logarithmic time.
"""

import itertools
import random
import threading
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Tuple

import structlog

from fleetops.aggregation.errors import InvalidKey, NotFound
from fleetops.aggregation.keys import (
    AggregateKey,
    Bounds,
    KeyShape,
    NormalizedKey,
    compare_to_bound,
    normalize_value,
    resolve_bounds,
)

logger = structlog.get_logger(__name__)

INSERT = "insert"
REMOVE = "remove"


@dataclass(frozen=True)
class AggregateEntry:
    """One record's contribution: its sort key and the value being summed."""
    key: AggregateKey
    value: float


@dataclass(frozen=True)
class AggregateOp:
    """A staged insert or remove."""
    kind: str
    entry: AggregateEntry

    def inverse(self) -> "AggregateOp":
        return AggregateOp(REMOVE if self.kind == INSERT else INSERT, self.entry)


class _Node:
    __slots__ = ("key", "value", "seq", "priority", "left", "right", "count", "total")

    def __init__(self, key, value, seq, priority, left=None, right=None):
        self.key = key
        self.value = value
        self.seq = seq
        self.priority = priority
        self.left = left
        self.right = right
        self.count = 1
        self.total = value
        if left is not None:
            self.count += left.count
            self.total += left.total
        if right is not None:
            self.count += right.count
            self.total += right.total

    def with_children(self, left, right) -> "_Node":
        return _Node(self.key, self.value, self.seq, self.priority, left, right)


def _split(node: Optional[_Node], goes_left: Callable[[_Node], bool]):
    """Split by a predicate that holds for a prefix of the in-order sequence."""
    if node is None:
        return None, None
    if goes_left(node):
        left, right = _split(node.right, goes_left)
        return node.with_children(node.left, left), right
    left, right = _split(node.left, goes_left)
    return left, node.with_children(right, node.right)


def _merge(a: Optional[_Node], b: Optional[_Node]) -> Optional[_Node]:
    """Join two treaps where every entry of ``a`` sorts before ``b``."""
    if a is None:
        return b
    if b is None:
        return a
    if a.priority > b.priority:
        return a.with_children(a.left, _merge(a.right, b))
    return b.with_children(_merge(a, b.left), b.right)


def _count_sum_before(root: Optional[_Node], bound: NormalizedKey, include_equal: bool) -> Tuple[int, float]:
    """
    Count and sum entries positioned before a bound.

    With ``include_equal`` the entries matching the bound prefix are counted
    too; otherwise only those strictly below it.
    """
    count = 0
    total = 0.0
    node = root
    while node is not None:
        cmp = compare_to_bound(node.key, bound)
        if cmp < 0 or (cmp == 0 and include_equal):
            if node.left is not None:
                count += node.left.count
                total += node.left.total
            count += 1
            total += node.value
            node = node.right
        else:
            node = node.left
    return count, total


def _build_balanced(items: Sequence[Tuple[NormalizedKey, float, int]], lo: int, hi: int, depth: int, height: int):
    # Priorities fall strictly with depth, so the heap order holds.
    if lo >= hi:
        return None
    mid = (lo + hi) // 2
    key, value, seq = items[mid]
    priority = float(height - depth) + random.random() * 0.999
    left = _build_balanced(items, lo, mid, depth + 1, height)
    right = _build_balanced(items, mid + 1, hi, depth + 1, height)
    return _Node(key, value, seq, priority, left, right)


@dataclass(frozen=True)
class PreparedBatch:
    """A computed but unpublished batch: the root it was built on and the result."""
    aggregate: "OrderedAggregate"
    ops: List[AggregateOp]
    base: Optional[_Node]
    root: Optional[_Node]


class OrderedAggregate:
    """
    Ordered multiset of (key, value) pairs with O(log n) range sum and count.

    Example:
        agg = OrderedAggregate("bookings", KeyShape.composite(STRING, NUMBER))
        agg.insert(AggregateEntry(("completed", t), 100.0))
        agg.sum(Bounds.between(("completed", t), ("completed", t)))  # 100.0
    """

    def __init__(self, name: str, shape: KeyShape):
        self.name = name
        self.shape = shape
        self._root: Optional[_Node] = None
        self._seq = itertools.count()
        self._lock = threading.RLock()

    def __len__(self) -> int:
        root = self._root
        return root.count if root is not None else 0

    def __repr__(self) -> str:
        return f"OrderedAggregate(name={self.name!r}, entries={len(self)})"

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _normalize_entry(self, entry: AggregateEntry) -> Tuple[NormalizedKey, float]:
        try:
            return self.shape.normalize(entry.key), normalize_value(entry.value)
        except InvalidKey:
            logger.error("Invalid aggregate entry", aggregate=self.name, key=entry.key, value=entry.value)
            raise

    def _insert_into(self, root: Optional[_Node], key: NormalizedKey, value: float) -> _Node:
        seq = next(self._seq)
        node = _Node(key, value, seq, random.random())
        target = (key, value)
        left, right = _split(root, lambda n: (n.key, n.value) <= target)
        return _merge(_merge(left, node), right)

    def _remove_from(self, root: Optional[_Node], key: NormalizedKey, value: float) -> Optional[_Node]:
        target = (key, value)
        left, rest = _split(root, lambda n: (n.key, n.value) < target)
        matches, right = _split(rest, lambda n: (n.key, n.value) <= target)
        if matches is None:
            raise NotFound(self.name, self.shape.denormalize(key), value)
        # Drop one matching entry, keep any duplicates.
        matches = _merge(matches.left, matches.right)
        return _merge(_merge(left, matches), right)

    def _apply_to(self, root: Optional[_Node], ops: Iterable[AggregateOp]) -> Optional[_Node]:
        for op in ops:
            key, value = self._normalize_entry(op.entry)
            if op.kind == INSERT:
                root = self._insert_into(root, key, value)
            elif op.kind == REMOVE:
                root = self._remove_from(root, key, value)
            else:
                raise ValueError(f"Unknown aggregate operation: {op.kind}")
        return root

    def prepare(self, ops: Sequence[AggregateOp]) -> "PreparedBatch":
        """
        Compute the result of a batch without publishing it.

        Readers keep seeing the current contents until :meth:`publish`.

        Raises:
            NotFound: If a removed entry is absent
            InvalidKey: If an entry does not match the key shape
        """
        ops = list(ops)
        base = self._root
        return PreparedBatch(self, ops, base, self._apply_to(base, ops))

    def publish(self, batch: "PreparedBatch") -> None:
        """
        Make a prepared batch visible to readers.

        If another write landed after the batch was prepared, its operations
        are replayed on the current contents instead.

        Raises:
            NotFound: If the replay finds a removed entry absent
        """
        if batch.aggregate is not self:
            raise ValueError(f"Batch was prepared for aggregate {batch.aggregate.name!r}")
        if not batch.ops:
            return
        with self._lock:
            if self._root is batch.base:
                self._root = batch.root
            else:
                logger.warning("Aggregate moved since batch was prepared, replaying", aggregate=self.name)
                self._root = self._apply_to(self._root, batch.ops)
        logger.debug("Aggregate batch applied", aggregate=self.name, operations=len(batch.ops))

    def apply(self, ops: Sequence[AggregateOp]) -> None:
        """
        Apply a batch of inserts and removes as one atomic step.

        Either every operation takes effect or none does; readers never see
        a partially applied batch.

        Raises:
            NotFound: If a removed entry is absent
            InvalidKey: If an entry does not match the key shape
        """
        if not ops:
            return
        with self._lock:
            self.publish(self.prepare(ops))

    def insert(self, entry: AggregateEntry) -> None:
        """Add an entry. Duplicate keys are kept."""
        self.apply([AggregateOp(INSERT, entry)])

    def remove(self, entry: AggregateEntry) -> None:
        """
        Remove one entry matching both key and value.

        Raises:
            NotFound: If no such entry exists
        """
        self.apply([AggregateOp(REMOVE, entry)])

    def replace(self, old: AggregateEntry, new: AggregateEntry) -> None:
        """Atomically swap ``old`` for ``new``."""
        self.apply([AggregateOp(REMOVE, old), AggregateOp(INSERT, new)])

    def clear(self) -> None:
        """Remove every entry."""
        with self._lock:
            self._root = None
        logger.info("Aggregate cleared", aggregate=self.name)

    def rebuild(self, entries: Iterable[AggregateEntry]) -> int:
        """
        Replace the whole contents with ``entries`` in one step.

        Builds a balanced tree off to the side from the sorted entries and
        publishes it, so prior state is fully discarded and readers see either
        the old or the new contents.

        Returns:
            Number of entries loaded
        """
        items: List[Tuple[NormalizedKey, float, int]] = []
        for entry in entries:
            key, value = self._normalize_entry(entry)
            items.append((key, value, next(self._seq)))
        items.sort()
        height = max(len(items), 1).bit_length() + 1
        root = _build_balanced(items, 0, len(items), 0, height)
        with self._lock:
            self._root = root
        logger.info("Aggregate rebuilt", aggregate=self.name, entries=len(items))
        return len(items)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def count_and_sum(self, bounds: Optional[Bounds] = None) -> Tuple[int, float]:
        """
        Count and sum the entries within ``bounds`` in one pass.

        Raises:
            InvalidBounds: If the bounds are malformed or inverted
        """
        resolved = resolve_bounds(self.shape, bounds)
        root = self._root
        if root is None:
            return 0, 0.0

        if resolved.upper is None:
            upper_count, upper_total = root.count, root.total
        else:
            upper_count, upper_total = _count_sum_before(root, resolved.upper, resolved.upper_inclusive)

        if resolved.lower is None:
            lower_count, lower_total = 0, 0.0
        else:
            lower_count, lower_total = _count_sum_before(root, resolved.lower, not resolved.lower_inclusive)

        if upper_count <= lower_count:
            return 0, 0.0
        return upper_count - lower_count, upper_total - lower_total

    def sum(self, bounds: Optional[Bounds] = None) -> float:
        """Sum of values within ``bounds``; 0 when the range is empty."""
        return self.count_and_sum(bounds)[1]

    def count(self, bounds: Optional[Bounds] = None) -> int:
        """Number of entries within ``bounds``."""
        return self.count_and_sum(bounds)[0]

    def at(self, index: int) -> AggregateEntry:
        """
        Entry at a position in key order. Negative indexes count from the end.

        Raises:
            IndexError: If the index is out of range
        """
        node = self._root
        size = node.count if node is not None else 0
        if index < 0:
            index += size
        if not 0 <= index < size:
            raise IndexError(f"Aggregate index {index} out of range")
        while node is not None:
            left_count = node.left.count if node.left is not None else 0
            if index < left_count:
                node = node.left
            elif index == left_count:
                return AggregateEntry(self.shape.denormalize(node.key), node.value)
            else:
                index -= left_count + 1
                node = node.right
        raise IndexError(f"Aggregate index {index} out of range")

    def min(self) -> Optional[AggregateEntry]:
        return self.at(0) if len(self) else None

    def max(self) -> Optional[AggregateEntry]:
        return self.at(-1) if len(self) else None

    def __iter__(self) -> Iterator[AggregateEntry]:
        stack: List[_Node] = []
        node = self._root
        while stack or node is not None:
            while node is not None:
                stack.append(node)
                node = node.left
            node = stack.pop()
            yield AggregateEntry(self.shape.denormalize(node.key), node.value)
            node = node.right
