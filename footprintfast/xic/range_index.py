"""Interval tree for batch classification of peaks against m/z windows.

MS1 extraction has to decide, for every peak of every scan, which of many
target m/z windows the peak falls into. Windows of nearby targets overlap
and windows of low-resolution targets can nest inside each other, so a
plain sorted list of windows is not enough.

Tree layout
-----------
Every node holds one interval and up to three children:

- ``left``: intervals lying below the node or overlapping its low edge
- ``middle``: intervals contained in the node
- ``right``: intervals lying above the node or overlapping its high edge

Inserting an interval that strictly contains an existing node turns the new
interval into a *pivot*: it takes the node's place, adopts the node as its
middle child, and steals the first intervals down the node's left and right
chains that are not contained in the pivot.

Nodes are stored in a flat arena of parallel lists addressed by integer
index; parent and child links are indices (-1 for none). Lookups run on a
compiled snapshot of the arena that is rebuilt after insertions, so a fully
built index can be shared read-only.

Examples
--------
>>> index = RangeIndex()
>>> index.add(1.0, 5.0, 3.0, 0)
>>> index.add(3.0, 8.0, 5.5, 1)
>>> index.add(10.0, 12.0, 11.0, 2)
>>> sorted(index.find(4.0))
[0, 1]
"""

import logging
from typing import List, NamedTuple, Optional, Tuple

import numba as nb
import numpy as np

logger = logging.getLogger(__name__)

NO_NODE = -1


class IntervalNode(NamedTuple):
    """Read-only view of one arena node."""
    low: float
    high: float
    key: float
    id: int
    parent: int
    left: int
    middle: int
    right: int


# =============================================================================
# Compiled Lookup
# =============================================================================

@nb.njit(cache=True)
def _find_ids(
    value: float,
    root: int,
    low: np.ndarray,
    high: np.ndarray,
    left: np.ndarray,
    middle: np.ndarray,
    right: np.ndarray,
    ids: np.ndarray,
) -> np.ndarray:
    """Ids of all intervals containing ``value`` (iterative depth-first walk)."""
    n = len(low)
    out = np.empty(n, dtype=np.int64)
    count = 0
    if root < 0:
        return out[:0]

    # Every node is pushed at most once
    stack = np.empty(n, dtype=np.int64)
    stack[0] = root
    top = 1
    while top > 0:
        top -= 1
        node = stack[top]
        if value >= low[node] and value <= high[node]:
            out[count] = ids[node]
            count += 1
            # Nested and overlapping intervals may also contain value
            if right[node] >= 0:
                stack[top] = right[node]
                top += 1
            if middle[node] >= 0:
                stack[top] = middle[node]
                top += 1
            if left[node] >= 0:
                stack[top] = left[node]
                top += 1
        elif value < low[node]:
            if left[node] >= 0:
                stack[top] = left[node]
                top += 1
        elif value > high[node]:
            if right[node] >= 0:
                stack[top] = right[node]
                top += 1

    return out[:count]


@nb.njit(cache=True)
def _find_many(
    values: np.ndarray,
    root: int,
    low: np.ndarray,
    high: np.ndarray,
    left: np.ndarray,
    middle: np.ndarray,
    right: np.ndarray,
    ids: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    m = len(values)
    offsets = np.zeros(m + 1, dtype=np.int64)
    out = np.empty(max(16, m), dtype=np.int64)
    total = 0
    for k in range(m):
        hits = _find_ids(values[k], root, low, high, left, middle, right, ids)
        if total + hits.size > out.size:
            grown = np.empty(max(out.size * 2, total + hits.size), dtype=np.int64)
            grown[:total] = out[:total]
            out = grown
        out[total:total + hits.size] = hits
        total += hits.size
        offsets[k + 1] = total
    return offsets, out[:total]


# =============================================================================
# Range Index
# =============================================================================

class RangeIndex:
    """Augmented interval tree with point-containment queries.

    ``add`` mutates the tree and must not run concurrently with anything
    else; ``find`` and ``find_many`` are read-only.
    """

    def __init__(self):
        self._low: List[float] = []
        self._high: List[float] = []
        self._key: List[float] = []
        self._id: List[int] = []
        self._parent: List[int] = []
        self._left: List[int] = []
        self._middle: List[int] = []
        self._right: List[int] = []
        self.root = NO_NODE
        self._snapshot = None

    def __len__(self):
        return len(self._low)

    def __repr__(self):
        return f"RangeIndex(n_intervals={len(self)})"

    def node(self, index: int) -> IntervalNode:
        """Arena node at ``index``."""
        return IntervalNode(
            self._low[index], self._high[index], self._key[index], self._id[index],
            self._parent[index], self._left[index], self._middle[index], self._right[index],
        )

    # -------------------------------------------------------------------------
    # Insertion
    # -------------------------------------------------------------------------

    def _new_node(self, parent: int, low: float, high: float, key: float, ident: int) -> int:
        self._low.append(low)
        self._high.append(high)
        self._key.append(key)
        self._id.append(ident)
        self._parent.append(parent)
        self._left.append(NO_NODE)
        self._middle.append(NO_NODE)
        self._right.append(NO_NODE)
        self._snapshot = None
        return len(self._low) - 1

    def _replace_child(self, parent: int, target: int, source: int) -> None:
        if self._left[parent] == target:
            self._left[parent] = source
        elif self._middle[parent] == target:
            self._middle[parent] = source
        elif self._right[parent] == target:
            self._right[parent] = source
        else:
            logger.error(f"Node {target} is not a child of node {parent}")

    def _pivot(self, node: int, low: float, high: float, key: float, ident: int) -> None:
        pivot = self._new_node(self._parent[node], low, high, key, ident)
        self._middle[pivot] = node

        # First interval down the left chain that is not contained
        temp = node
        while temp != NO_NODE and self._low[temp] >= low:
            temp = self._left[temp]
        if temp != NO_NODE:
            self._left[pivot] = temp
            self._left[self._parent[temp]] = NO_NODE
            self._parent[temp] = pivot

        # First interval down the right chain that is not contained
        temp = node
        while temp != NO_NODE and self._high[temp] <= high:
            temp = self._right[temp]
        if temp != NO_NODE:
            self._right[pivot] = temp
            self._right[self._parent[temp]] = NO_NODE
            self._parent[temp] = pivot

        parent = self._parent[node]
        if parent != NO_NODE:
            self._replace_child(parent, node, pivot)
        else:
            self.root = pivot
        self._parent[node] = pivot

    def add(self, low: float, high: float, key: float, ident: int) -> bool:
        """Insert the interval [low, high] with payload ``key`` and ``ident``.

        Parameters
        ----------
        low, high : float
            Interval bounds (inclusive)
        key : float
            Value the interval represents, e.g. the target m/z
        ident : int
            Id returned by :meth:`find`

        Returns
        -------
        inserted : bool
            False when the interval duplicates an existing one exactly, or
            cannot be classified (e.g. NaN bounds); the interval is then
            dropped and logged.
        """
        low = float(low)
        high = float(high)
        if self.root == NO_NODE:
            self.root = self._new_node(NO_NODE, low, high, key, ident)
            return True

        node = self.root
        while True:
            n_low = self._low[node]
            n_high = self._high[node]

            if (low < n_low and high >= n_high) or (low <= n_low and high > n_high):
                self._pivot(node, low, high, key, ident)
                return True

            if low == n_low and high == n_high:
                logger.warning(
                    f"Skipping duplicate interval [{low}, {high}] id={ident} key={key}, "
                    f"collides with id={self._id[node]} key={self._key[node]}"
                )
                return False

            if low >= n_low and high <= n_high:
                child = self._middle[node]
                if child == NO_NODE:
                    self._middle[node] = self._new_node(node, low, high, key, ident)
                    return True
                node = child
            elif high < n_low or (low < n_low and high < n_high):
                child = self._left[node]
                if child == NO_NODE:
                    self._left[node] = self._new_node(node, low, high, key, ident)
                    return True
                node = child
            elif low > n_high or (low > n_low and high > n_high):
                child = self._right[node]
                if child == NO_NODE:
                    self._right[node] = self._new_node(node, low, high, key, ident)
                    return True
                node = child
            else:
                logger.error(
                    f"Unmatchable insert for [{low}, {high}] against node [{n_low}, {n_high}]"
                )
                return False

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _arrays(self):
        if self._snapshot is None:
            self._snapshot = (
                np.asarray(self._low, dtype=np.float64),
                np.asarray(self._high, dtype=np.float64),
                np.asarray(self._left, dtype=np.int64),
                np.asarray(self._middle, dtype=np.int64),
                np.asarray(self._right, dtype=np.int64),
                np.asarray(self._id, dtype=np.int64),
            )
        return self._snapshot

    def find(self, value: float) -> np.ndarray:
        """Ids of all intervals with ``low <= value <= high`` (unordered)."""
        if self.root == NO_NODE:
            return np.empty(0, dtype=np.int64)
        return _find_ids(float(value), self.root, *self._arrays())

    def find_many(self, values) -> Tuple[np.ndarray, np.ndarray]:
        """Batch :meth:`find` in CSR form.

        Returns
        -------
        offsets : np.ndarray (int64), shape (len(values) + 1,)
            Hits of ``values[k]`` are ``ids[offsets[k]:offsets[k + 1]]``
        ids : np.ndarray (int64)
            Concatenated hits
        """
        values = np.ascontiguousarray(values, dtype=np.float64)
        if self.root == NO_NODE:
            return np.zeros(values.size + 1, dtype=np.int64), np.empty(0, dtype=np.int64)
        return _find_many(values, self.root, *self._arrays())

    def intervals(self) -> List[Tuple[float, float, int]]:
        """All stored intervals as (low, high, id), in insertion order."""
        return list(zip(self._low, self._high, self._id))

    def key_of(self, ident: int) -> Optional[float]:
        """Key stored with the first node carrying ``ident``."""
        for node_id, key in zip(self._id, self._key):
            if node_id == ident:
                return key
        return None
