# tests/test_info.py
"""
NETWORK INFO TESTS
==================

Derived quantities read back from a solved network: member forces,
anchor reactions and the tables used for export.
"""

import numpy as np

from cablenet import SolverInputs, solve_forward
from cablenet.info import adjacency_lists, anchor_reactions, edge_table, member_forces, network_info, node_table


def solved_square(square_network, loads=((0, 0, 0),)):
    return solve_forward(square_network, SolverInputs(q=[10.0], loads=list(loads)), engine='python')


class TestForcesAndReactions:
    def test_member_forces(self, square_network):
        net = solved_square(square_network).network
        assert np.allclose(member_forces(net), 10.0 * np.sqrt(0.5))

    def test_reactions_match_solver(self, square_network):
        """Summing member pulls at each anchor reproduces R = D x - p."""
        result = solved_square(square_network, loads=[(0, 0, -1)])
        assert np.allclose(anchor_reactions(result.network), result.anchor_reactions)

    def test_unsolved_network_has_zero_forces(self, square_network):
        # q defaults to 0 on freshly built edges
        assert np.allclose(anchor_reactions(square_network), 0.0)


class TestTables:
    def test_edge_table(self, square_network):
        df = edge_table(solved_square(square_network).network)
        assert list(df.columns) == ['edge', 'start', 'end', 'x1', 'y1', 'z1', 'x2', 'y2', 'z2', 'length', 'q', 'force']
        assert len(df) == 4
        assert df['start'].tolist() == [2, 0, 3, 1]
        assert np.allclose(df['force'], df['q'] * df['length'])

    def test_node_table(self, square_network):
        df = node_table(square_network)
        assert df['anchor'].tolist() == [False, False, True, True]
        assert df['degree'].tolist() == [2, 2, 2, 2]

    def test_network_info(self, square_network):
        info = network_info(solved_square(square_network).network)
        assert (info.n_nodes, info.n_edges) == (4, 4)
        assert info.free_indices == [0, 1]
        assert info.fixed_indices == [2, 3]
        assert info.valid
        assert info.positions.shape == (4, 3)
        assert info.anchors.tolist() == [[0, 0, 0], [1, 1, 0]]
        assert np.allclose(info.reactions, [[-10, -10, 0], [10, 10, 0]])

    def test_adjacency(self, square_network):
        assert adjacency_lists(square_network) == square_network.graph.adjacency()
