# cablenet/info.py
"""
Network information for display, export and debugging.

Everything here is derived from the current geometry of a network:
lengths are measured between node positions, forces are q · L, and the
anchor reactions sum the member forces pulling on each anchor.
"""

from dataclasses import dataclass
from typing import List

import numpy as np
import pandas as pd

from .model import Network


@dataclass
class NetworkInfo:
    """Flat summary of a network (one entry per node / edge / anchor)."""
    positions: np.ndarray        # (n_nodes, 3)
    lengths: np.ndarray          # (n_edges,)
    start_indices: List[int]
    end_indices: List[int]
    anchors: np.ndarray          # (n_fixed, 3)
    q: np.ndarray                # (n_edges,)
    forces: np.ndarray           # (n_edges,)
    reactions: np.ndarray        # (n_fixed, 3)
    n_edges: int
    n_nodes: int
    free_indices: List[int]
    fixed_indices: List[int]
    valid: bool


def member_forces(network: Network) -> np.ndarray:
    """q · L per edge."""
    edges = network.graph.edges
    return np.array([e.q * e.length for e in edges], dtype=float)


def anchor_reactions(network: Network, forces: np.ndarray = None) -> np.ndarray:
    """
    Reaction vector at each fixed node, in fixed order.

    For every edge touching an anchor: unit(anchor - other end) · force.
    """
    forces = member_forces(network) if forces is None else np.asarray(forces, dtype=float)
    fixed = network.fixed
    reactions = np.zeros((len(fixed), 3), dtype=float)
    slot = {node: k for k, node in enumerate(fixed)}

    for i, edge in enumerate(network.graph.edges):
        for anchor, other in ((edge.start, edge.end), (edge.end, edge.start)):
            k = slot.get(anchor)
            if k is None or anchor is other:
                continue
            d = anchor.position - other.position
            norm = np.linalg.norm(d)
            if norm > 0:
                reactions[k] += d / norm * forces[i]

    return reactions


def network_info(network: Network) -> NetworkInfo:
    graph = network.graph
    forces = member_forces(network)
    return NetworkInfo(
        positions=graph.positions(),
        lengths=np.array([e.length for e in graph.edges], dtype=float),
        start_indices=[e.start.index for e in graph.edges],
        end_indices=[e.end.index for e in graph.edges],
        anchors=np.array([n.as_tuple() for n in network.fixed], dtype=float).reshape(-1, 3),
        q=np.array([e.q for e in graph.edges], dtype=float),
        forces=forces,
        reactions=anchor_reactions(network, forces),
        n_edges=graph.n_edges,
        n_nodes=graph.n_nodes,
        free_indices=list(network.free_nodes),
        fixed_indices=list(network.fixed_nodes),
        valid=network.valid,
    )


def edge_table(network: Network) -> pd.DataFrame:
    """One row per edge: endpoints, coordinates, length, q, force."""
    graph = network.graph
    rows = []
    for i, e in enumerate(graph.edges):
        rows.append({
            'edge': i,
            'start': e.start.index,
            'end': e.end.index,
            'x1': e.start.x, 'y1': e.start.y, 'z1': e.start.z,
            'x2': e.end.x, 'y2': e.end.y, 'z2': e.end.z,
            'length': e.length,
            'q': e.q,
            'force': e.q * e.length,
        })
    columns = ['edge', 'start', 'end', 'x1', 'y1', 'z1', 'x2', 'y2', 'z2', 'length', 'q', 'force']
    return pd.DataFrame(rows, columns=columns)


def node_table(network: Network) -> pd.DataFrame:
    """One row per node: index, coordinates, anchor flag, degree."""
    rows = [
        {'node': n.index, 'x': n.x, 'y': n.y, 'z': n.z, 'anchor': n.anchor, 'degree': len(n.neighbors)}
        for n in network.graph.nodes
    ]
    return pd.DataFrame(rows, columns=['node', 'x', 'y', 'z', 'anchor', 'degree'])


def adjacency_lists(network: Network) -> List[List[int]]:
    return network.graph.adjacency()
