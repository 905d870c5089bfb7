# tests/test_solve.py
"""
FORWARD SOLVE TESTS
===================

WHAT IS CHECKED?
================
A unit square anchored at two opposite corners, q = 10 on every edge.

    d (0,1) ---- c (1,1)  anchor
      |            |
    a (0,0) ---- b (1,0)
    anchor

With no load each free corner is pulled equally by the two anchors it is
tied to, so it settles halfway between them at (0.5, 0.5, 0). With a
downward load p on each free node the vertical balance is
    2 q (z - 0) = p  ->  z = p / (2q)

Reactions must balance the loads, and the input network must not move.
"""

import numpy as np
import pytest

from cablenet import InvalidNetworkError, MechanismError, SolverInputs, build_network, solve_forward
from cablenet.generative import CableGridParams, generate_cable_grid, square_loop
from cablenet.kernel import assemble_solver_data, solve_forward_fdm


class TestReferenceSolver:
    def test_square_no_load(self, square_network):
        data = assemble_solver_data(square_network, SolverInputs(q=[10.0], loads=[(0, 0, 0)]))
        raw = solve_forward_fdm(data)
        X = raw.xyz.reshape(-1, 3)

        assert np.allclose(X[0], [0.5, 0.5, 0.0])
        assert np.allclose(X[1], [0.5, 0.5, 0.0])
        assert np.allclose(X[2], [0.0, 0.0, 0.0]), "anchors must not move"
        assert np.allclose(X[3], [1.0, 1.0, 0.0]), "anchors must not move"

        assert np.allclose(raw.lengths, np.sqrt(0.5))
        assert np.allclose(raw.forces, 10.0 * np.sqrt(0.5))
        assert raw.iterations == 1 and raw.converged

    def test_square_reactions(self, square_network):
        data = assemble_solver_data(square_network, SolverInputs(q=[10.0], loads=[(0, 0, 0)]))
        R = solve_forward_fdm(data).reactions.reshape(-1, 3)

        assert np.allclose(R[:2], 0.0), "free nodes carry no reaction"
        assert np.allclose(R[2], [-10.0, -10.0, 0.0])
        assert np.allclose(R[3], [10.0, 10.0, 0.0])

    def test_sag_under_load(self, square_network):
        q, p = 10.0, -1.0
        data = assemble_solver_data(square_network, SolverInputs(q=[q], loads=[(0, 0, p)]))
        raw = solve_forward_fdm(data)
        X = raw.xyz.reshape(-1, 3)
        R = raw.reactions.reshape(-1, 3)

        assert np.isclose(X[0, 2], p / (2 * q))
        # Vertical reactions balance the two free loads
        assert np.isclose(R[2:, 2].sum(), -2 * p)

    def test_q_override(self, square_network):
        data = assemble_solver_data(square_network, SolverInputs(q=[10.0], loads=[(0, 0, -1)]))
        soft = solve_forward_fdm(data, q=np.full(4, 1.0))
        stiff = solve_forward_fdm(data)
        assert soft.xyz.reshape(-1, 3)[0, 2] < stiff.xyz.reshape(-1, 3)[0, 2]

    def test_zero_q_is_mechanism(self, square_network):
        data = assemble_solver_data(square_network, SolverInputs(q=[0.0], loads=[(0, 0, -1)]))
        with pytest.raises(MechanismError):
            solve_forward_fdm(data)

    def test_grid_equilibrium(self):
        """Residual D x - p vanishes at every free node of a larger net."""
        grid = generate_cable_grid(CableGridParams(nx=6, ny=6, anchor_layout='edges'))
        network = build_network(grid.segments, grid.anchors, 0.01, 0.01)
        assert network.valid

        data = assemble_solver_data(network, SolverInputs(q=[5.0], loads=[(0, 0, -0.2)]))
        raw = solve_forward_fdm(data)
        C = data.incidence()
        D = C.T @ C * 5.0
        X = raw.xyz.reshape(-1, 3)
        residual = D @ X
        free = data.free_nodes
        assert np.allclose(residual[free], data.loads.reshape(-1, 3), atol=1e-9)


class TestSolveService:
    def test_python_engine(self, square_network):
        result = solve_forward(square_network, SolverInputs(q=[10.0], loads=[(0, 0, 0)]), engine='python')

        assert result.converged
        assert np.allclose(result.node_positions[result.network.free_nodes], [[0.5, 0.5, 0.0]] * 2)
        assert np.allclose(result.anchor_reactions, [[-10, -10, 0], [10, 10, 0]])
        assert "4 nodes" in result.summary()

    def test_input_network_untouched(self, square_network):
        before = square_network.graph.positions().copy()
        result = solve_forward(square_network, SolverInputs(q=[10.0], loads=[(0, 0, 0)]), engine='python')

        assert np.allclose(square_network.graph.positions(), before)
        assert result.network is not square_network
        assert all(a is not b for a, b in zip(result.network.graph.nodes, square_network.graph.nodes))

    def test_solved_network_carries_topology(self, square_network):
        result = solve_forward(square_network, SolverInputs(q=[3.0, 4.0]), engine='python')
        net = result.network

        assert net.valid
        assert net.free_nodes == square_network.free_nodes
        assert net.fixed_nodes == square_network.fixed_nodes
        assert net.graph.edge_index_pairs() == square_network.graph.edge_index_pairs()
        assert net.graph.adjacency() == square_network.graph.adjacency()
        assert [e.q for e in net.graph.edges] == [3.0, 4.0, 4.0, 4.0]
        assert [e.source for e in net.graph.edges] == [0, 1, 2, 3]
        assert [n.anchor for n in net.graph.nodes] == [False, False, True, True]

    def test_invalid_network_rejected(self):
        segments, _ = square_loop()
        network = build_network(segments, [(0, 0, 0)], 0.01, 0.01)
        with pytest.raises(InvalidNetworkError):
            solve_forward(network, SolverInputs(), engine='python')

    def test_empty_loads_rejected(self, square_network):
        from cablenet import ConstructionError
        with pytest.raises(ConstructionError):
            solve_forward(square_network, SolverInputs(loads=[]), engine='python')

    def test_unknown_engine(self, square_network):
        with pytest.raises(ValueError):
            solve_forward(square_network, SolverInputs(), engine='cuda')

    def test_native_engine_matches_python(self, square_network, fake_lib):
        inputs = SolverInputs(q=[10.0], loads=[(0, 0, -1)])
        native = solve_forward(square_network, inputs, engine='native', lib=fake_lib)
        python = solve_forward(square_network, inputs, engine='python')

        assert np.allclose(native.xyz, python.xyz)
        assert np.allclose(native.member_forces, python.member_forces)
        assert fake_lib.freed == fake_lib.created
        assert np.all(np.isinf(fake_lib.data.upper_bounds)), "forward solve is unbounded"
