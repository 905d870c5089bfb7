# cablenet/construct.py
"""
NETWORK CONSTRUCTION: Segments + Anchors -> Network
===================================================

PURPOSE:
--------
One-call construction (build_network) plus a host-facing constructor
that adds what an interactive session needs:
- advisory messages instead of exceptions for partition problems
- a content-hash cache so identical inputs return the previous network
- an `is_updating` short-circuit against re-entrant reconstruction

USAGE:
------
    network = build_network(segments, anchors, edge_tolerance=0.01, anchor_tolerance=0.01)

    constructor = NetworkConstructor()
    report = constructor.construct(segments, anchors)
    for msg in report.messages:
        print(msg)
    if report.ok:
        result = solve_forward(report.network, SolverInputs())
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence

from .cache import ResultCache, content_hash
from .config import CONFIG
from .kernel.assemble import ConstructionError
from .kernel.builder import SegmentLike, as_segments, build_graph, build_graph_from_tree
from .kernel.partition import partition_network
from .model import Network, as_point

logger = logging.getLogger(__name__)

ANCHOR_COUNT_MESSAGE = "For stability, define at least 2 anchor points."
ANCHOR_MATCH_MESSAGE = (
    "The number of fixed points does not match the number of input anchor points. "
    "Check anchor tolerance."
)


def _tolerances(edge_tolerance, anchor_tolerance):
    """Fill unset tolerances from CONFIG."""
    return (
        CONFIG.edge_tolerance if edge_tolerance is None else edge_tolerance,
        CONFIG.anchor_tolerance if anchor_tolerance is None else anchor_tolerance,
    )


def build_network(
    segments: Sequence[SegmentLike],
    anchors: Sequence[Sequence[float]],
    edge_tolerance: Optional[float] = None,
    anchor_tolerance: Optional[float] = None,
    strategy: str = 'auto',
    n_jobs: Optional[int] = None,
) -> Network:
    """
    Build and partition a network from line segments.

    Raises:
        ConstructionError: if `segments` is empty

    The returned network may be invalid (check network.valid); partition
    problems never raise.
    """
    edge_tolerance, anchor_tolerance = _tolerances(edge_tolerance, anchor_tolerance)
    segments = as_segments(segments)
    if not segments:
        raise ConstructionError("No segments supplied")
    graph = build_graph(segments, edge_tolerance, strategy=strategy, n_jobs=n_jobs)
    return partition_network(graph, anchors, anchor_tolerance, edge_tolerance)


def build_network_from_tree(
    branches: Sequence[Sequence[SegmentLike]],
    anchors: Sequence[Sequence[float]],
    edge_tolerance: Optional[float] = None,
    anchor_tolerance: Optional[float] = None,
    strategy: str = 'auto',
    n_jobs: Optional[int] = None,
) -> Network:
    """Like build_network() for nested branches; the graph keeps edge_input_map."""
    edge_tolerance, anchor_tolerance = _tolerances(edge_tolerance, anchor_tolerance)
    if not any(len(b) for b in branches):
        raise ConstructionError("No segments supplied")
    graph = build_graph_from_tree(branches, edge_tolerance, strategy=strategy, n_jobs=n_jobs)
    return partition_network(graph, anchors, anchor_tolerance, edge_tolerance)


def partition_messages(network: Network) -> List[str]:
    """Advisory messages for a partitioned network (empty when valid)."""
    if not network.anchor_check():
        return [ANCHOR_COUNT_MESSAGE]
    if not network.nf_check():
        return [ANCHOR_MATCH_MESSAGE]
    return []


@contextmanager
def updating(network: Network) -> Iterator[Network]:
    """Mark `network` as being updated for the duration of the block."""
    network.is_updating = True
    try:
        yield network
    finally:
        network.is_updating = False


@dataclass
class ConstructionReport:
    """
    Outcome of NetworkConstructor.construct().

    Attributes:
    -----------
    network : Optional[Network]
        The (possibly invalid) network; None only when construction was
        skipped before any network existed
    messages : List[str]
        Advisory messages for the user
    cached : bool
        Network came from the cache
    skipped : bool
        The previous network is being updated; nothing was rebuilt
    """
    network: Optional[Network]
    messages: List[str] = field(default_factory=list)
    cached: bool = False
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.network is not None and self.network.valid


class NetworkConstructor:
    """Stateful constructor for interactive hosts."""

    def __init__(self, cache: Optional[ResultCache] = None):
        self.cache = cache if cache is not None else ResultCache()
        self.last_network: Optional[Network] = None

    @staticmethod
    def cache_key(segments, anchors, edge_tolerance, anchor_tolerance, strategy, tree) -> str:
        if tree:
            geometry = [[(s.start, s.end, s.source) for s in as_segments(branch)] for branch in segments]
        else:
            geometry = [(s.start, s.end, s.source) for s in as_segments(segments)]
        return content_hash(
            geometry,
            [as_point(a) for a in anchors],
            float(edge_tolerance),
            float(anchor_tolerance),
            strategy,
            bool(tree),
        )

    def construct(
        self,
        segments,
        anchors: Sequence[Sequence[float]],
        edge_tolerance: Optional[float] = None,
        anchor_tolerance: Optional[float] = None,
        strategy: str = 'auto',
        tree: bool = False,
    ) -> ConstructionReport:
        """
        Build (or fetch from cache) the network for these inputs.

        `segments` is a flat list, or a list of branches when `tree` is True.

        Raises:
            ConstructionError: no segments
        """
        edge_tolerance, anchor_tolerance = _tolerances(edge_tolerance, anchor_tolerance)
        if self.last_network is not None and self.last_network.is_updating:
            logger.debug("Network is updating; reconstruction skipped")
            return ConstructionReport(network=self.last_network, skipped=True)

        key = self.cache_key(segments, anchors, edge_tolerance, anchor_tolerance, strategy, tree)
        cached = key in self.cache

        def compute():
            builder = build_network_from_tree if tree else build_network
            return builder(segments, anchors, edge_tolerance, anchor_tolerance, strategy=strategy)

        network = self.cache.get_or_compute(key, compute)
        messages = partition_messages(network)
        for msg in messages:
            logger.warning(msg)

        self.last_network = network
        return ConstructionReport(network=network, messages=messages, cached=cached)
