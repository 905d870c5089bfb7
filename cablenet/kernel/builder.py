# cablenet/kernel/builder.py
"""
GRAPH BUILDER: Segments -> Nodes + Edges
========================================

PURPOSE:
--------
Turn an ordered list of line segments into a Graph:
- endpoints within `tolerance` of each other become one Node
- every segment becomes one Edge (input order is kept)
- every node gets its neighbor list (start <- end, end <- start)

TWO STRATEGIES:
---------------
    'sequential'  One thread, SpatialIndex. Node order is first-encounter
                  order, so two builds of the same input are identical.

    'parallel'    Endpoints resolved on a bounded thread pool against a
                  ShardedSpatialIndex (one lock per 4x4x4-cell region).
                  Node ORDER may change between runs; which endpoints merge
                  into which node does not. Edges and neighbor lists are
                  wired afterwards on the calling thread.

    'auto'        parallel when tolerance > 0, at least
                  CONFIG.parallel_threshold segments and more than one
                  worker are available; sequential otherwise.

USAGE:
------
    segments = [Segment((0, 0, 0), (1, 0, 0)), Segment((1, 0, 0), (1, 1, 0))]
    graph = build_graph(segments, tolerance=0.001)
    graph.n_nodes   # 3
    graph.n_edges   # 2
"""

import logging
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
from joblib import Parallel, delayed

from ..config import CONFIG
from ..model import Edge, Graph, Node, Point, Segment
from .spatial import ShardedSpatialIndex, SpatialIndex

logger = logging.getLogger(__name__)

SegmentLike = Union[Segment, Tuple[Sequence[float], Sequence[float]], Tuple[Sequence[float], Sequence[float], object]]

STRATEGIES = ('auto', 'sequential', 'parallel')


def as_segments(items: Iterable[SegmentLike]) -> List[Segment]:
    """Accept Segment objects or (start, end[, source]) tuples."""
    segments = []
    for item in items:
        if isinstance(item, Segment):
            segments.append(item)
        elif len(item) == 2:
            segments.append(Segment.from_points(item[0], item[1]))
        elif len(item) == 3:
            segments.append(Segment.from_points(item[0], item[1], item[2]))
        else:
            raise ValueError(f"Cannot interpret {item!r} as a segment")
    return segments


def choose_strategy(
    n_segments: int,
    tolerance: float,
    n_jobs: Optional[int] = None,
    threshold: Optional[int] = None,
) -> str:
    """Pick 'parallel' or 'sequential' for an input of the given size."""
    threshold = CONFIG.parallel_threshold if threshold is None else threshold
    workers = CONFIG.worker_count() if n_jobs is None else n_jobs
    if tolerance > 0 and n_segments >= threshold and workers > 1:
        return 'parallel'
    return 'sequential'


def _resolve_sequential(
    segments: Sequence[Segment], tolerance: float
) -> Tuple[List[Point], np.ndarray, np.ndarray]:
    index = SpatialIndex(tolerance)
    start_ids = np.empty(len(segments), dtype=int)
    end_ids = np.empty(len(segments), dtype=int)

    for i, seg in enumerate(segments):
        start_ids[i], _ = index.get_or_create(seg.start)
        end_ids[i], _ = index.get_or_create(seg.end)

    return index.positions(), start_ids, end_ids


def _resolve_chunk(
    index: ShardedSpatialIndex,
    segments: Sequence[Segment],
    lo: int,
    hi: int,
    start_ids: np.ndarray,
    end_ids: np.ndarray,
) -> None:
    for i in range(lo, hi):
        seg = segments[i]
        start_ids[i], _ = index.get_or_create(seg.start)
        end_ids[i], _ = index.get_or_create(seg.end)


def _chunks(n: int, n_chunks: int) -> List[Tuple[int, int]]:
    bounds = np.linspace(0, n, n_chunks + 1).astype(int)
    return [(int(lo), int(hi)) for lo, hi in zip(bounds[:-1], bounds[1:]) if hi > lo]


def _resolve_parallel(
    segments: Sequence[Segment], tolerance: float, n_jobs: int
) -> Tuple[List[Point], np.ndarray, np.ndarray]:
    index = ShardedSpatialIndex(tolerance, region_shift=CONFIG.region_shift)
    start_ids = np.empty(len(segments), dtype=int)
    end_ids = np.empty(len(segments), dtype=int)

    # Four chunks per worker
    chunks = _chunks(len(segments), max(1, n_jobs * 4))
    Parallel(n_jobs=n_jobs, require='sharedmem')(
        delayed(_resolve_chunk)(index, segments, lo, hi, start_ids, end_ids)
        for lo, hi in chunks
    )
    return index.positions(), start_ids, end_ids


def _wire(
    segments: Sequence[Segment],
    positions: Sequence[Point],
    start_ids: np.ndarray,
    end_ids: np.ndarray,
    tolerance: float,
) -> Graph:
    nodes = [Node(x=p[0], y=p[1], z=p[2]) for p in positions]
    edges = []

    for i, seg in enumerate(segments):
        edge = Edge(start=nodes[start_ids[i]], end=nodes[end_ids[i]], source=seg.source)
        # Both directions, duplicated for self-loops
        edge.start.neighbors.append(edge.end)
        edge.end.neighbors.append(edge.start)
        edges.append(edge)

    graph = Graph(nodes=nodes, edges=edges, tolerance=tolerance)
    graph.update_node_indices()
    return graph


def build_graph(
    segments: Iterable[SegmentLike],
    tolerance: float,
    strategy: str = 'auto',
    n_jobs: Optional[int] = None,
) -> Graph:
    """
    Build a Graph from line segments, merging endpoints within `tolerance`.

    Parameters:
    -----------
    segments : Iterable[Segment or (start, end[, source])]
        Input lines; one Edge is created per segment, in order
    tolerance : float
        Merge distance. <= 0 merges only exactly equal coordinates.
    strategy : str
        'auto', 'sequential' or 'parallel'
    n_jobs : Optional[int]
        Worker count for the parallel strategy (default CONFIG.worker_count())

    Returns:
    --------
    Graph
        Nodes indexed 0..n-1, edges in input order, neighbors populated.
        An empty input gives an empty graph.
    """
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown strategy: {strategy!r} (expected one of {STRATEGIES})")

    segments = as_segments(segments)
    tolerance = float(tolerance)
    if not segments:
        return Graph(tolerance=tolerance)

    workers = CONFIG.worker_count() if n_jobs is None else max(1, int(n_jobs))
    if strategy == 'auto':
        strategy = choose_strategy(len(segments), tolerance, n_jobs=workers)

    if strategy == 'parallel':
        positions, start_ids, end_ids = _resolve_parallel(segments, tolerance, workers)
    else:
        positions, start_ids, end_ids = _resolve_sequential(segments, tolerance)

    graph = _wire(segments, positions, start_ids, end_ids, tolerance)
    logger.debug(
        "Built graph (%s): %d segments -> %d nodes, %d edges (tol=%g)",
        strategy, len(segments), graph.n_nodes, graph.n_edges, tolerance,
    )
    return graph


def build_graph_from_tree(
    branches: Sequence[Sequence[SegmentLike]],
    tolerance: float,
    strategy: str = 'auto',
    n_jobs: Optional[int] = None,
) -> Graph:
    """
    Build a Graph from nested branches of segments.

    The branches are flattened in order and graph.edge_input_map records
    (branch_index, item_index) for every edge, so results can be grouped
    back with Graph.edges_by_branch().
    """
    flat: List[SegmentLike] = []
    input_map: List[Tuple[int, int]] = []
    for branch_idx, branch in enumerate(branches):
        for item_idx, item in enumerate(branch):
            flat.append(item)
            input_map.append((branch_idx, item_idx))

    graph = build_graph(flat, tolerance, strategy=strategy, n_jobs=n_jobs)
    graph.edge_input_map = input_map
    return graph
