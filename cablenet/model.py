# cablenet/model.py
"""
MODEL DEFINITIONS: Node, Edge, Graph and Network
================================================

PURPOSE:
--------
This module defines the plain data records of a force density network:
- Segment: one input line (start point, end point, opaque source reference)
- Node: a merged endpoint in 3D space
- Edge: a member connecting two nodes, carrying a force density q
- Graph: ordered nodes + ordered edges + the merge tolerance
- Network: a Graph partitioned into free and fixed (anchor) nodes

ENGINEERING CONTEXT:
--------------------
In the force density method every member has a force density q = N / L
(axial force over length). Fixing q turns the non-linear equilibrium of a
cable net into a linear system in the free node coordinates. The topology
(which member connects which nodes) and the free/fixed partition are all
the solver needs besides q and the loads.

Nodes and edges are compared by IDENTITY, not by value: two distinct nodes
may sit at the same coordinates in a degenerate input, and the solver maps
each object to its own index.

These records carry no drawing state. Plotting lives in cablenet.viz and
only reads them.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import CONFIG


Point = Tuple[float, float, float]


def as_point(p: Sequence[float]) -> Point:
    """Coerce any 3-sequence (tuple, list, ndarray) into a float tuple."""
    if len(p) != 3:
        raise ValueError(f"Expected a 3D point, got {len(p)} coordinates")
    return (float(p[0]), float(p[1]), float(p[2]))


@dataclass(frozen=True)
class Segment:
    """
    An input line segment.

    Parameters:
    -----------
    start : Point
        Start point (x, y, z)
    end : Point
        End point (x, y, z)
    source : Any
        Opaque reference to the originating geometry (curve id, row, ...).
        Carried through to the Edge unchanged.
    """
    start: Point
    end: Point
    source: Any = None

    @classmethod
    def from_points(cls, start: Sequence[float], end: Sequence[float], source: Any = None) -> "Segment":
        return cls(as_point(start), as_point(end), source)


@dataclass(eq=False)
class Node:
    """
    A node (joint) of the network.

    Attributes:
    -----------
    x, y, z : float
        Position in global coordinates
    anchor : bool
        True for fixed (support) nodes, set by the partitioner
    index : int
        Stable position in Graph.nodes; -1 until assigned
    neighbors : List[Node]
        Nodes connected by an edge. One entry per incident edge, so a
        node joined twice to the same neighbor lists it twice.
    """
    x: float
    y: float
    z: float
    anchor: bool = False
    index: int = -1
    neighbors: List["Node"] = field(default_factory=list, repr=False)

    @property
    def position(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=float)

    def as_tuple(self) -> Point:
        return (self.x, self.y, self.z)

    def distance_to(self, other: "Node") -> float:
        return float(np.sqrt((other.x - self.x) ** 2 + (other.y - self.y) ** 2 + (other.z - self.z) ** 2))


@dataclass(eq=False)
class Edge:
    """
    A member of the network connecting two nodes.

    The direction (start -> end) fixes the sign convention of the
    incidence matrix: -1 at start, +1 at end.
    """
    start: Node
    end: Node
    q: float = 0.0
    source: Any = None

    @property
    def length(self) -> float:
        return self.start.distance_to(self.end)


@dataclass
class Graph:
    """
    Topology and geometry of a network.

    Attributes:
    -----------
    nodes : List[Node]
        All nodes; order is stable once the network is partitioned
    edges : List[Edge]
        One edge per input segment, in input order
    tolerance : float
        Distance used to merge endpoints while building
    edge_input_map : Optional[List[Tuple[int, int]]]
        For graphs built from a tree of branches: (branch, item) of the
        input segment behind each edge
    """
    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)
    tolerance: float = 0.0
    edge_input_map: Optional[List[Tuple[int, int]]] = None

    @property
    def n_nodes(self) -> int:
        return len(self.nodes)

    @property
    def n_edges(self) -> int:
        return len(self.edges)

    def update_node_indices(self) -> None:
        for i, node in enumerate(self.nodes):
            node.index = i

    def positions(self) -> np.ndarray:
        """Node coordinates as an (n_nodes, 3) array in node order."""
        if not self.nodes:
            return np.zeros((0, 3), dtype=float)
        return np.array([[n.x, n.y, n.z] for n in self.nodes], dtype=float)

    def edge_index_pairs(self) -> List[Tuple[int, int]]:
        """(start.index, end.index) for every edge."""
        return [(e.start.index, e.end.index) for e in self.edges]

    def adjacency(self) -> List[List[int]]:
        """Neighbor indices per node, in node order."""
        return [[nbr.index for nbr in node.neighbors] for node in self.nodes]

    def edges_by_branch(self) -> Dict[int, List[Edge]]:
        """
        Group edges back into the branches they were read from.

        Graphs built from a flat list put every edge in branch 0.
        """
        if self.edge_input_map is None or len(self.edge_input_map) != len(self.edges):
            return {0: list(self.edges)} if self.edges else {}

        grouped: Dict[int, List[Edge]] = {}
        for edge, (branch, _item) in zip(self.edges, self.edge_input_map):
            grouped.setdefault(branch, []).append(edge)
        return grouped


@dataclass
class Network:
    """
    A Graph partitioned into free and fixed nodes.

    Attributes:
    -----------
    graph : Graph
        Underlying topology. After partitioning graph.nodes is ordered
        free-first, fixed-last.
    anchors : List[Point]
        Raw anchor (support) positions supplied by the caller
    anchor_tolerance : float
        Distance for matching anchors to nodes
    edge_tolerance : float
        Distance used to merge segment endpoints into nodes
    free, fixed : List[Node]
        Partitioned node objects
    free_nodes, fixed_nodes : List[int]
        Their indices in graph.nodes
    valid : bool
        True when anchors >= 2, fixed == anchors, fixed + free == n_nodes
    is_updating : bool
        Transient guard against re-entrant reconstruction

    A valid network is treated as immutable: solving produces a new one.
    """
    graph: Graph = field(default_factory=Graph)
    anchors: List[Point] = field(default_factory=list)
    anchor_tolerance: float = field(default_factory=lambda: CONFIG.anchor_tolerance)
    edge_tolerance: float = field(default_factory=lambda: CONFIG.edge_tolerance)
    free: List[Node] = field(default_factory=list)
    fixed: List[Node] = field(default_factory=list)
    free_nodes: List[int] = field(default_factory=list)
    fixed_nodes: List[int] = field(default_factory=list)
    valid: bool = False
    is_updating: bool = False

    @property
    def n_free(self) -> int:
        return len(self.free_nodes)

    @property
    def n_fixed(self) -> int:
        return len(self.fixed_nodes)

    def anchor_check(self) -> bool:
        """At least two anchor positions are required for a stable setup."""
        return len(self.anchors) >= 2

    def nf_check(self) -> bool:
        """Fixed count matches the anchors and free + fixed covers every node."""
        return (
            len(self.fixed) == len(self.anchors)
            and len(self.fixed) + len(self.free) == self.graph.n_nodes
        )
