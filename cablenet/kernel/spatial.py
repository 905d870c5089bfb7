# cablenet/kernel/spatial.py
"""
SPATIAL INDEX: Tolerance-Bucketed Point Hash
============================================

PURPOSE:
--------
Answer one question fast: "is there an already registered point within
`tolerance` of p? If so which one, otherwise register p as new."

This is how coincident curve endpoints become shared nodes.

ALGORITHM:
----------
Space is cut into cubic cells of side `tolerance`. A point's cell key is
floor(coord / tolerance) on each axis. Any point within `tolerance` of p
lies in p's cell or one of its 26 neighbors, so a lookup scans the 3x3x3
block and returns the FIRST registered point with squared distance <= t².

    cell = tolerance
    key  = (floor(x/cell), floor(y/cell), floor(z/cell))
    for dx, dy, dz in {-1, 0, 1}³:
        for idx in bucket[key + (dx, dy, dz)]:      # insertion order
            if |p - point[idx]|² <= t²: return idx
    register p in bucket[key]

A non-positive tolerance switches to an exact-coordinate linear scan.

MERGING IS PAIRWISE, NOT TRANSITIVE:
------------------------------------
A new point is only compared against points already registered. With
points a, b, c spaced 0.6t apart on a line, inserting a then c then b
gives two nodes (a and c are 1.2t apart, b merges into a). Inserting b
first gives one node. Downstream topology depends on this behavior, so
it is kept exactly as is.

TWO FLAVOURS:
-------------
- SpatialIndex: single-threaded, deterministic (first-encounter order)
- ShardedSpatialIndex: thread-safe. Cells are grouped into regions of
  4x4x4 cells, each with its own lock. A lookup-or-insert holds the locks
  of every region its 3x3x3 scan touches (1 to 8, taken in sorted order)
  for the duration of that one operation.
  Indices come from a lock-guarded counter so no two insertions share one.
  The index owns the node arena (index -> position) for the whole build.
"""

import itertools
import math
import threading
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from ..model import Point, as_point


CellKey = Tuple[int, int, int]


def cell_key(p: Point, cell: float) -> CellKey:
    """Integer cell coordinates of p for cubic cells of side `cell`."""
    return (math.floor(p[0] / cell), math.floor(p[1] / cell), math.floor(p[2] / cell))


def region_key(key: CellKey, shift: int = 2) -> CellKey:
    """Coarse region of a cell: shift=2 groups 4x4x4 cells (floor for negatives)."""
    return (key[0] >> shift, key[1] >> shift, key[2] >> shift)


def neighbor_keys(key: CellKey) -> Iterator[CellKey]:
    """The 27 cells of the 3x3x3 block centred on `key`, dx then dy then dz."""
    for dx in (-1, 0, 1):
        for dy in (-1, 0, 1):
            for dz in (-1, 0, 1):
                yield (key[0] + dx, key[1] + dy, key[2] + dz)


def _squared_distance(a: Point, b: Point) -> float:
    dx = a[0] - b[0]
    dy = a[1] - b[1]
    dz = a[2] - b[2]
    return dx * dx + dy * dy + dz * dz


class SpatialIndex:
    """
    Sequential tolerance hash.

    Examples:
    ---------
    >>> index = SpatialIndex(tolerance=0.01)
    >>> index.get_or_create((0.0, 0.0, 0.0))
    (0, True)
    >>> index.get_or_create((0.005, 0.0, 0.0))   # within tolerance
    (0, False)
    >>> index.get_or_create((1.0, 0.0, 0.0))
    (1, True)
    """

    def __init__(self, tolerance: float):
        self.tolerance = float(tolerance)
        self._tol2 = self.tolerance * self.tolerance
        self._points: List[Point] = []
        self._cells: Dict[CellKey, List[int]] = {}

    def __len__(self) -> int:
        return len(self._points)

    def positions(self) -> List[Point]:
        """Registered points in index order."""
        return list(self._points)

    def find(self, p: Sequence[float]) -> Optional[int]:
        """Index of the first registered point within tolerance, or None."""
        p = as_point(p)
        if self.tolerance <= 0:
            for i, q in enumerate(self._points):
                if _squared_distance(p, q) <= 0:
                    return i
            return None

        for nk in neighbor_keys(cell_key(p, self.tolerance)):
            bucket = self._cells.get(nk)
            if not bucket:
                continue
            for idx in bucket:
                if _squared_distance(self._points[idx], p) <= self._tol2:
                    return idx
        return None

    def get_or_create(self, p: Sequence[float]) -> Tuple[int, bool]:
        """
        Return (index, created). `created` is False when p merged into an
        existing point.
        """
        p = as_point(p)
        found = self.find(p)
        if found is not None:
            return found, False

        idx = len(self._points)
        self._points.append(p)
        if self.tolerance > 0:
            self._cells.setdefault(cell_key(p, self.tolerance), []).append(idx)
        return idx, True


class ShardedSpatialIndex:
    """
    Region-locked tolerance hash for concurrent get-or-create.

    Same lookup semantics as SpatialIndex. Insertion order across threads
    is not deterministic, so neither are node indices; which endpoints
    merge together is, up to the pairwise-merge caveat above.

    Parameters:
    -----------
    tolerance : float
        Merge distance (also the cell size)
    region_shift : int
        log2 of the region edge in cells (2 -> 4x4x4 cells per lock)
    """

    def __init__(self, tolerance: float, region_shift: int = 2):
        self.tolerance = float(tolerance)
        self.region_shift = int(region_shift)
        self._tol2 = self.tolerance * self.tolerance

        self._arena: Dict[int, Point] = {}
        self._cells: Dict[CellKey, List[int]] = {}

        self._region_locks: Dict[CellKey, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._exact_lock = threading.Lock()

        self._counter = itertools.count()
        self._counter_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._arena)

    def positions(self) -> List[Point]:
        """Arena contents in allocation order. Call once all inserts are done."""
        return [self._arena[i] for i in range(len(self._arena))]

    def _lock_for(self, region: CellKey) -> threading.Lock:
        with self._locks_guard:
            lock = self._region_locks.get(region)
            if lock is None:
                lock = threading.Lock()
                self._region_locks[region] = lock
            return lock

    def _locks_for(self, key: CellKey) -> List[threading.Lock]:
        """Locks of every region the 3x3x3 block around `key` touches, in sorted region order."""
        regions = sorted({region_key(nk, self.region_shift) for nk in neighbor_keys(key)})
        return [self._lock_for(r) for r in regions]

    def _allocate(self) -> int:
        with self._counter_lock:
            return next(self._counter)

    def _scan(self, p: Point, key: CellKey) -> Optional[int]:
        for nk in neighbor_keys(key):
            bucket = self._cells.get(nk)
            if not bucket:
                continue
            for idx in bucket:
                if _squared_distance(self._arena[idx], p) <= self._tol2:
                    return idx
        return None

    def get_or_create(self, p: Sequence[float]) -> Tuple[int, bool]:
        p = as_point(p)

        if self.tolerance <= 0:
            with self._exact_lock:
                for idx, q in self._arena.items():
                    if _squared_distance(p, q) <= 0:
                        return idx, False
                idx = self._allocate()
                self._arena[idx] = p
                return idx, True

        key = cell_key(p, self.tolerance)
        locks = self._locks_for(key)
        for lock in locks:
            lock.acquire()
        try:
            found = self._scan(p, key)
            if found is not None:
                return found, False

            idx = self._allocate()
            # Arena entry first: a bucket never references a missing point
            self._arena[idx] = p
            self._cells.setdefault(key, []).append(idx)
            return idx, True
        finally:
            for lock in reversed(locks):
                lock.release()
