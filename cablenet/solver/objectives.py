# cablenet/solver/objectives.py
"""
OBJECTIVES: Design Goals -> Solver Index Arrays
===============================================

PURPOSE:
--------
An objective says WHAT the optimizer should aim for ("these edges should
be 2 m long", "reactions at these anchors should point down"). The
native solver only understands flat index arrays and parameter arrays.
This module resolves one into the other against a SolverContext.

    objective.resolve(context) -> ResolvedObjective(kind, weight, indices, params)

RESOLUTION RULES:
-----------------
- no target list (None or empty) -> ALL free nodes (node objectives)
                                    or ALL edges (edge objectives)
- every referenced Node/Edge must be in the context's maps; a stray
  reference raises ResolutionError (never skipped silently)
- threshold lists broadcast to the resolved index count by repeating
  the last value; an empty list raises ConstructionError

OBJECTIVE KINDS:
----------------
    Node objectives                        native kind
    ---------------                        -----------
    TargetXYZObjective                     target_xyz
    TargetXYObjective                      target_xy
    TargetPlaneObjective                   target_plane
    PlanarConstraintAlongDirectionObjective planar_constraint_along_direction
    RigidPointSetObjective                 rigid_set_compare
    ReactionObjective                      reaction_direction[_magnitude]

    Edge objectives
    ---------------
    TargetLengthObjective                  target_length
    LengthVariationObjective               length_variation
    ForceVariationObjective                force_variation
    PerformanceObjective                   sum_force_length
    MinLengthObjective / MaxLengthObjective min_length / max_length
    MinForceObjective / MaxForceObjective   min_force / max_force

Target-position objectives read the CURRENT node positions of the
network being solved: "stay where you are" in xyz, in xy, or projected
onto a plane.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..kernel.assemble import ConstructionError, expand_values
from ..model import Edge, Network, Node

logger = logging.getLogger(__name__)

Vector = Tuple[float, float, float]


class ResolutionError(KeyError):
    """Raised when an objective references a node or edge that is not in the network."""
    pass


@dataclass(frozen=True)
class Plane:
    """Origin plus two in-plane axes. The normal is x_axis × y_axis."""
    origin: Vector = (0.0, 0.0, 0.0)
    x_axis: Vector = (1.0, 0.0, 0.0)
    y_axis: Vector = (0.0, 1.0, 0.0)

    @property
    def normal(self) -> np.ndarray:
        n = np.cross(np.asarray(self.x_axis, dtype=float), np.asarray(self.y_axis, dtype=float))
        norm = np.linalg.norm(n)
        if norm == 0:
            raise ValueError("Plane axes are parallel")
        return n / norm

    def as_key(self) -> Tuple:
        return tuple(float(v) for v in (*self.origin, *self.x_axis, *self.y_axis))


WORLD_XY = Plane()


class SolverContext:
    """
    Node -> index and Edge -> index maps for one solve.

    Built fresh for every solve call; never shared between solves.
    """

    def __init__(self, network: Network):
        self.network = network
        self.node_index: Dict[Node, int] = {n: i for i, n in enumerate(network.graph.nodes)}
        self.edge_index: Dict[Edge, int] = {e: i for i, e in enumerate(network.graph.edges)}

    def index_of_node(self, node: Node) -> int:
        try:
            return self.node_index[node]
        except KeyError:
            raise ResolutionError(f"Node at {node.as_tuple()} is not part of this network") from None

    def index_of_edge(self, edge: Edge) -> int:
        try:
            return self.edge_index[edge]
        except KeyError:
            raise ResolutionError(
                f"Edge {edge.start.as_tuple()} -> {edge.end.as_tuple()} is not part of this network"
            ) from None

    def resolve_node_indices(self, nodes: Optional[Sequence[Node]]) -> np.ndarray:
        """Indices of `nodes`; all free nodes when `nodes` is empty or None."""
        if not nodes:
            return np.asarray(self.network.free_nodes, dtype=np.int64)
        return np.array([self.index_of_node(n) for n in nodes], dtype=np.int64)

    def resolve_edge_indices(self, edges: Optional[Sequence[Edge]]) -> np.ndarray:
        """Indices of `edges`; every edge when `edges` is empty or None."""
        if not edges:
            return np.arange(self.network.graph.n_edges, dtype=np.int64)
        return np.array([self.index_of_edge(e) for e in edges], dtype=np.int64)

    def node_positions(self, indices: np.ndarray) -> np.ndarray:
        """Flattened current positions of the given nodes, shape (3 * k,)."""
        nodes = self.network.graph.nodes
        if len(indices) == 0:
            return np.zeros(0, dtype=float)
        return np.array([nodes[i].as_tuple() for i in indices], dtype=float).reshape(-1)


@dataclass(frozen=True)
class ResolvedObjective:
    """One objective in solver terms: kind name, weight, indices and named parameter arrays."""
    kind: str
    weight: float
    indices: np.ndarray
    params: Dict[str, Any] = field(default_factory=dict)


def _node_key(nodes: Optional[Sequence[Node]]) -> Optional[Tuple]:
    if not nodes:
        return None
    return tuple(n.as_tuple() for n in nodes)


def _edge_key(edges: Optional[Sequence[Edge]]) -> Optional[Tuple]:
    if not edges:
        return None
    return tuple((e.start.as_tuple(), e.end.as_tuple()) for e in edges)


def _floats(values) -> Optional[Tuple]:
    if values is None:
        return None
    return tuple(float(v) for v in np.asarray(values, dtype=float).ravel())


@dataclass(eq=False)
class Objective:
    """Base class. Subclasses implement resolve()."""
    weight: float = 1.0
    is_valid: bool = field(default=True, init=False)

    def resolve(self, context: SolverContext) -> Optional[ResolvedObjective]:
        raise NotImplementedError

    def apply_to(self, solver, context: SolverContext) -> bool:
        """Register on `solver`. Returns False when the objective was skipped as invalid."""
        resolved = self.resolve(context)
        if resolved is None:
            logger.warning("Skipping invalid objective %s", type(self).__name__)
            return False
        solver.add_objective(resolved)
        return True

    def _extra_key(self) -> Tuple:
        return ()

    def content_key(self) -> Tuple:
        return (type(self).__name__, float(self.weight)) + self._targets_key() + self._extra_key()

    def _targets_key(self) -> Tuple:
        return ()


@dataclass(eq=False)
class NodeObjective(Objective):
    nodes: Optional[List[Node]] = None

    def _targets_key(self) -> Tuple:
        return (_node_key(self.nodes),)


@dataclass(eq=False)
class EdgeObjective(Objective):
    edges: Optional[List[Edge]] = None
    sharpness: float = 20.0

    def _targets_key(self) -> Tuple:
        return (_edge_key(self.edges), float(self.sharpness))


@dataclass(eq=False)
class ThresholdEdgeObjective(EdgeObjective):
    thresholds: Sequence[float] = field(default_factory=list)

    def expanded_thresholds(self, count: int) -> np.ndarray:
        if self.thresholds is None or len(self.thresholds) == 0:
            raise ConstructionError(f"{type(self).__name__}: thresholds cannot be empty")
        return expand_values(self.thresholds, count, 'thresholds')

    def _extra_key(self) -> Tuple:
        return (_floats(self.thresholds),)


# =============================================================================
# NODE OBJECTIVES
# =============================================================================

@dataclass(eq=False)
class TargetXYZObjective(NodeObjective):
    """Keep nodes close to their current 3D position."""

    def resolve(self, context):
        idx = context.resolve_node_indices(self.nodes)
        return ResolvedObjective('target_xyz', self.weight, idx,
                                 {'target_xyz': context.node_positions(idx)})


@dataclass(eq=False)
class TargetXYObjective(NodeObjective):
    """Keep nodes close to their current plan (XY) position; Z is free."""

    def resolve(self, context):
        idx = context.resolve_node_indices(self.nodes)
        # Laid out as xyz; the loss ignores z
        return ResolvedObjective('target_xy', self.weight, idx,
                                 {'target_xy': context.node_positions(idx)})


@dataclass(eq=False)
class TargetPlaneObjective(NodeObjective):
    """Keep the in-plane components of the current positions. Defaults to world XY."""
    plane: Optional[Plane] = None

    def resolve(self, context):
        idx = context.resolve_node_indices(self.nodes)
        plane = self.plane or WORLD_XY
        return ResolvedObjective('target_plane', self.weight, idx, {
            'target_xyz': context.node_positions(idx),
            'origin': np.asarray(plane.origin, dtype=float),
            'x_axis': np.asarray(plane.x_axis, dtype=float),
            'y_axis': np.asarray(plane.y_axis, dtype=float),
        })

    def _extra_key(self):
        return (self.plane.as_key() if self.plane else None,)


@dataclass(eq=False)
class PlanarConstraintAlongDirectionObjective(NodeObjective):
    """
    Pull nodes onto a plane, measuring distance along `direction`.

    `direction` defaults to the plane normal. A direction lying in the
    plane can never reach it: the objective is then invalid and skipped.
    """
    plane: Optional[Plane] = None
    direction: Optional[Vector] = None

    def resolve(self, context):
        plane = self.plane or WORLD_XY
        normal = plane.normal
        direction = normal if self.direction is None else np.asarray(self.direction, dtype=float)

        if abs(float(np.dot(normal, direction))) < 1e-6:
            self.is_valid = False
            return None
        self.is_valid = True

        idx = context.resolve_node_indices(self.nodes)
        return ResolvedObjective('planar_constraint_along_direction', self.weight, idx, {
            'origin': np.asarray(plane.origin, dtype=float),
            'x_axis': np.asarray(plane.x_axis, dtype=float),
            'y_axis': np.asarray(plane.y_axis, dtype=float),
            'direction': direction,
        })

    def _extra_key(self):
        return (
            self.plane.as_key() if self.plane else None,
            _floats(self.direction),
        )


@dataclass(eq=False)
class RigidPointSetObjective(NodeObjective):
    """Preserve the pairwise distances within a set of nodes."""

    def resolve(self, context):
        idx = context.resolve_node_indices(self.nodes)
        return ResolvedObjective('rigid_set_compare', self.weight, idx,
                                 {'target_xyz': context.node_positions(idx)})


@dataclass(eq=False)
class ReactionObjective(NodeObjective):
    """
    Align anchor reactions with target directions, optionally matching
    magnitudes too.

    Unlike the other node objectives an empty node list does NOT mean
    "all free nodes": reactions only exist at anchors, so the objective
    is skipped. Every target node must be a fixed node.
    """
    directions: Sequence[Vector] = field(default_factory=list)
    include_magnitude: bool = False
    magnitudes: Optional[Sequence[float]] = None

    def resolve(self, context):
        if not self.nodes:
            self.is_valid = False
            return None
        if len(self.directions) == 0:
            raise ConstructionError("ReactionObjective: directions cannot be empty")

        idx = np.array([context.index_of_node(n) for n in self.nodes], dtype=np.int64)
        fixed = set(context.network.fixed_nodes)
        loose = [int(i) for i in idx if int(i) not in fixed]
        if loose:
            raise ResolutionError(f"ReactionObjective targets free nodes {loose}; only anchors carry reactions")
        self.is_valid = True

        dirs = np.asarray(self.directions, dtype=float).reshape(-1, 3)
        if len(dirs) < len(idx):
            dirs = np.vstack([dirs, np.repeat(dirs[-1:], len(idx) - len(dirs), axis=0)])
        dirs = dirs[:len(idx)].reshape(-1)

        if self.include_magnitude and self.magnitudes is not None and len(self.magnitudes) > 0:
            mags = expand_values(self.magnitudes, len(idx), 'magnitudes')
            return ResolvedObjective('reaction_direction_magnitude', self.weight, idx,
                                     {'target_dirs': dirs, 'target_mags': mags})
        return ResolvedObjective('reaction_direction', self.weight, idx, {'target_dirs': dirs})

    def _extra_key(self):
        return (
            bool(self.include_magnitude),
            _floats(self.directions),
            _floats(self.magnitudes),
        )


# =============================================================================
# EDGE OBJECTIVES
# =============================================================================

@dataclass(eq=False)
class LengthVariationObjective(EdgeObjective):
    """Make member lengths uniform (smooth max-min spread, controlled by sharpness)."""

    def resolve(self, context):
        idx = context.resolve_edge_indices(self.edges)
        return ResolvedObjective('length_variation', self.weight, idx, {'sharpness': float(self.sharpness)})


@dataclass(eq=False)
class ForceVariationObjective(EdgeObjective):
    """Make member forces uniform."""

    def resolve(self, context):
        idx = context.resolve_edge_indices(self.edges)
        return ResolvedObjective('force_variation', self.weight, idx, {'sharpness': float(self.sharpness)})


@dataclass(eq=False)
class PerformanceObjective(EdgeObjective):
    """Minimize Σ |force| · length (load path)."""

    def resolve(self, context):
        idx = context.resolve_edge_indices(self.edges)
        return ResolvedObjective('sum_force_length', self.weight, idx)

    def _targets_key(self):
        return (_edge_key(self.edges),)


@dataclass(eq=False)
class TargetLengthObjective(ThresholdEdgeObjective):
    """Drive member lengths to `thresholds` (the target lengths)."""

    def resolve(self, context):
        idx = context.resolve_edge_indices(self.edges)
        return ResolvedObjective('target_length', self.weight, idx,
                                 {'targets': self.expanded_thresholds(len(idx))})

    def _targets_key(self):
        return (_edge_key(self.edges),)


@dataclass(eq=False)
class MinLengthObjective(ThresholdEdgeObjective):
    """Barrier penalty on lengths below `thresholds`."""
    sharpness: float = 10.0

    def resolve(self, context):
        idx = context.resolve_edge_indices(self.edges)
        return ResolvedObjective('min_length', self.weight, idx, {
            'thresholds': self.expanded_thresholds(len(idx)),
            'sharpness': float(self.sharpness),
        })


@dataclass(eq=False)
class MaxLengthObjective(ThresholdEdgeObjective):
    """Barrier penalty on lengths above `thresholds`."""
    sharpness: float = 10.0

    def resolve(self, context):
        idx = context.resolve_edge_indices(self.edges)
        return ResolvedObjective('max_length', self.weight, idx, {
            'thresholds': self.expanded_thresholds(len(idx)),
            'sharpness': float(self.sharpness),
        })


@dataclass(eq=False)
class MinForceObjective(ThresholdEdgeObjective):
    """Barrier penalty on forces below `thresholds`."""
    sharpness: float = 10.0

    def resolve(self, context):
        idx = context.resolve_edge_indices(self.edges)
        return ResolvedObjective('min_force', self.weight, idx, {
            'thresholds': self.expanded_thresholds(len(idx)),
            'sharpness': float(self.sharpness),
        })


@dataclass(eq=False)
class MaxForceObjective(ThresholdEdgeObjective):
    """Barrier penalty on forces above `thresholds`."""
    sharpness: float = 10.0

    def resolve(self, context):
        idx = context.resolve_edge_indices(self.edges)
        return ResolvedObjective('max_force', self.weight, idx, {
            'thresholds': self.expanded_thresholds(len(idx)),
            'sharpness': float(self.sharpness),
        })


def resolve_all(objectives: Sequence[Objective], context: SolverContext) -> List[ResolvedObjective]:
    """Resolve every objective, dropping the invalid ones (with a warning)."""
    resolved = []
    for obj in objectives:
        r = obj.resolve(context)
        if r is None:
            logger.warning("Skipping invalid objective %s", type(obj).__name__)
            continue
        resolved.append(r)
    return resolved
