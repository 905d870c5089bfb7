# tests/test_objectives.py
"""
OBJECTIVE RESOLUTION TESTS
==========================

Objectives name nodes and edges; the solver wants index arrays. These
tests cover the resolution rules:
- an empty target list means every free node / every edge
- a node or edge from another network raises ResolutionError
- thresholds broadcast by repeating the last value, empty raises
- invalid objectives (planar direction in the plane, reaction without
  anchors) are skipped, not registered
"""

import numpy as np
import pytest

from cablenet.construct import build_network
from cablenet.generative import square_loop
from cablenet.kernel import ConstructionError
from cablenet.solver import (
    ForceVariationObjective,
    LengthVariationObjective,
    MaxForceObjective,
    MinLengthObjective,
    PerformanceObjective,
    PlanarConstraintAlongDirectionObjective,
    Plane,
    ReactionObjective,
    ResolutionError,
    RigidPointSetObjective,
    SolverContext,
    TargetLengthObjective,
    TargetPlaneObjective,
    TargetXYObjective,
    TargetXYZObjective,
)
from cablenet.solver.objectives import resolve_all


class RecordingSolver:
    """Collects add_objective() calls."""

    def __init__(self):
        self.added = []

    def add_objective(self, resolved):
        self.added.append(resolved)


@pytest.fixture
def ctx(square_network):
    return SolverContext(square_network)


class TestNodeObjectives:
    def test_empty_nodes_means_free_nodes(self, ctx):
        r = TargetXYZObjective().resolve(ctx)
        assert r.kind == 'target_xyz'
        assert r.indices.tolist() == [0, 1]
        # current positions of b and d
        assert r.params['target_xyz'].tolist() == [1, 0, 0, 0, 1, 0]

    def test_explicit_nodes(self, ctx, square_network):
        anchor = square_network.graph.nodes[3]
        r = TargetXYObjective(weight=2.0, nodes=[anchor]).resolve(ctx)
        assert r.kind == 'target_xy'
        assert r.weight == 2.0
        assert r.indices.tolist() == [3]

    def test_foreign_node_raises(self, ctx):
        other = build_network(*square_loop(2.0), 0.01, 0.01)
        with pytest.raises(ResolutionError):
            TargetXYZObjective(nodes=[other.graph.nodes[0]]).resolve(ctx)

    def test_target_plane_defaults_to_world_xy(self, ctx):
        r = TargetPlaneObjective().resolve(ctx)
        assert r.kind == 'target_plane'
        assert r.params['x_axis'].tolist() == [1, 0, 0]
        assert r.params['y_axis'].tolist() == [0, 1, 0]

    def test_rigid_set(self, ctx):
        assert RigidPointSetObjective().resolve(ctx).kind == 'rigid_set_compare'

    def test_planar_direction_defaults_to_normal(self, ctx):
        obj = PlanarConstraintAlongDirectionObjective()
        r = obj.resolve(ctx)
        assert obj.is_valid
        assert np.allclose(r.params['direction'], [0, 0, 1])

    def test_planar_direction_in_plane_is_invalid(self, ctx):
        obj = PlanarConstraintAlongDirectionObjective(direction=(1.0, 1.0, 0.0))
        assert obj.resolve(ctx) is None
        assert not obj.is_valid

        solver = RecordingSolver()
        assert obj.apply_to(solver, ctx) is False
        assert solver.added == []

    def test_plane_with_parallel_axes(self):
        with pytest.raises(ValueError):
            Plane(x_axis=(1, 0, 0), y_axis=(2, 0, 0)).normal


class TestReactionObjective:
    def test_directions_broadcast(self, ctx, square_network):
        anchors = square_network.fixed
        r = ReactionObjective(nodes=anchors, directions=[(0, 0, -1)]).resolve(ctx)
        assert r.kind == 'reaction_direction'
        assert r.indices.tolist() == [2, 3]
        assert r.params['target_dirs'].tolist() == [0, 0, -1, 0, 0, -1]

    def test_with_magnitudes(self, ctx, square_network):
        r = ReactionObjective(
            nodes=square_network.fixed, directions=[(1, 0, 0), (0, 1, 0)],
            include_magnitude=True, magnitudes=[5.0],
        ).resolve(ctx)
        assert r.kind == 'reaction_direction_magnitude'
        assert r.params['target_mags'].tolist() == [5.0, 5.0]

    def test_no_nodes_is_skipped(self, ctx):
        obj = ReactionObjective(directions=[(0, 0, 1)])
        assert obj.resolve(ctx) is None
        assert not obj.is_valid

    def test_free_node_rejected(self, ctx, square_network):
        with pytest.raises(ResolutionError):
            ReactionObjective(nodes=[square_network.graph.nodes[0]], directions=[(0, 0, 1)]).resolve(ctx)

    def test_empty_directions(self, ctx, square_network):
        with pytest.raises(ConstructionError):
            ReactionObjective(nodes=square_network.fixed, directions=[]).resolve(ctx)


class TestEdgeObjectives:
    def test_empty_edges_means_all(self, ctx):
        r = LengthVariationObjective().resolve(ctx)
        assert r.kind == 'length_variation'
        assert r.indices.tolist() == [0, 1, 2, 3]
        assert r.params['sharpness'] == 20.0

    def test_force_variation_and_performance(self, ctx):
        assert ForceVariationObjective().resolve(ctx).kind == 'force_variation'
        r = PerformanceObjective().resolve(ctx)
        assert r.kind == 'sum_force_length'
        assert r.params == {}

    def test_target_length_broadcast(self, ctx, square_network):
        edges = square_network.graph.edges[1:]
        r = TargetLengthObjective(edges=edges, thresholds=[1.0, 2.0]).resolve(ctx)
        assert r.indices.tolist() == [1, 2, 3]
        assert r.params['targets'].tolist() == [1.0, 2.0, 2.0]

    def test_barrier_defaults(self, ctx):
        r = MinLengthObjective(thresholds=[0.5]).resolve(ctx)
        assert r.kind == 'min_length'
        assert r.params['sharpness'] == 10.0
        assert r.params['thresholds'].tolist() == [0.5] * 4

        r = MaxForceObjective(thresholds=[100.0], sharpness=3.0).resolve(ctx)
        assert r.kind == 'max_force'
        assert r.params['sharpness'] == 3.0

    def test_empty_thresholds(self, ctx):
        with pytest.raises(ConstructionError):
            TargetLengthObjective(thresholds=[]).resolve(ctx)

    def test_foreign_edge_raises(self, ctx):
        other = build_network(*square_loop(2.0), 0.01, 0.01)
        with pytest.raises(ResolutionError):
            LengthVariationObjective(edges=[other.graph.edges[0]]).resolve(ctx)


def test_resolve_all_drops_invalid(ctx):
    objectives = [
        TargetXYZObjective(),
        PlanarConstraintAlongDirectionObjective(direction=(0, 1, 0)),
        LengthVariationObjective(),
    ]
    kinds = [r.kind for r in resolve_all(objectives, ctx)]
    assert kinds == ['target_xyz', 'length_variation']


def test_content_key_stable():
    a = TargetLengthObjective(weight=2.0, thresholds=[1.0])
    b = TargetLengthObjective(weight=2.0, thresholds=[1.0])
    c = TargetLengthObjective(weight=2.0, thresholds=[1.5])
    assert a.content_key() == b.content_key()
    assert a.content_key() != c.content_key()
