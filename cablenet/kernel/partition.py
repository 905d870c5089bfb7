# cablenet/kernel/partition.py
"""
PARTITION: Free / Fixed Node Split
==================================

PURPOSE:
--------
Given a built Graph and a list of anchor (support) positions:
1. match every anchor to the nearest node within `anchor_tolerance`
2. flag matched nodes as anchors (fixed), everything else is free
3. reorder graph.nodes as free + fixed and re-assign indices
4. validate the result

After partitioning:

    graph.nodes = [ free_0, free_1, ..., free_{nf-1}, fixed_0, ..., fixed_{nx-1} ]
                    |<------- [0, n_free) ------->|  |<--- [n_free, n_nodes) --->|

This layout lets the solver slice the equilibrium matrix into the free
block D_ff and the coupling block D_fx with plain index ranges.

VALIDATION:
-----------
A network is valid when
    - at least 2 anchors were supplied           (anchor_check)
    - every anchor matched its own node          (nf_check, part 1)
    - free + fixed covers every node             (nf_check, part 2)

An anchor that matches nothing, or two anchors collapsing onto the same
node because the tolerance is too coarse, both show up as a count
mismatch. Neither raises: the network comes back with valid=False and is
only good for diagnostics.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np
from scipy.spatial import cKDTree

from ..model import Graph, Network, Node, Point, as_point

logger = logging.getLogger(__name__)


def match_anchors(nodes: Sequence[Node], anchors: Sequence[Point], tolerance: float) -> List[Node]:
    """
    Nodes matched by the anchors, in anchor order, each node at most once.

    An anchor matches the nearest node when that node lies within
    `tolerance` (Euclidean). A non-positive tolerance matches exact
    coordinates only.
    """
    if not nodes or not anchors:
        return []

    tree = cKDTree(np.array([[n.x, n.y, n.z] for n in nodes], dtype=float))
    matched: List[Node] = []
    seen = set()

    for anchor in anchors:
        dist, idx = tree.query(np.asarray(as_point(anchor), dtype=float))
        if not np.isfinite(dist) or dist > max(tolerance, 0.0):
            continue
        node = nodes[int(idx)]
        if id(node) in seen:
            continue
        seen.add(id(node))
        matched.append(node)

    return matched


def validate_network(network: Network) -> bool:
    """Set and return network.valid from the anchor and count checks."""
    network.valid = network.anchor_check() and network.nf_check()
    return network.valid


def partition_network(
    graph: Graph,
    anchors: Sequence[Sequence[float]],
    anchor_tolerance: float,
    edge_tolerance: Optional[float] = None,
) -> Network:
    """
    Partition `graph` into free and fixed nodes.

    The graph's node list is reordered in place (free first) and node
    indices are re-assigned; Node objects and edges are kept.

    Parameters:
    -----------
    graph : Graph
        Output of build_graph()
    anchors : Sequence of 3D points
        Support positions
    anchor_tolerance : float
        Maximum anchor-to-node distance for a match
    edge_tolerance : Optional[float]
        Recorded on the Network; defaults to graph.tolerance

    Returns:
    --------
    Network
        With free/fixed lists populated and `valid` set
    """
    anchor_points = [as_point(a) for a in anchors]
    nodes = list(graph.nodes)

    for node in nodes:
        node.anchor = False

    fixed = match_anchors(nodes, anchor_points, anchor_tolerance)
    fixed_ids = {id(n) for n in fixed}
    for node in fixed:
        node.anchor = True

    free = [n for n in nodes if id(n) not in fixed_ids]

    graph.nodes = free + fixed
    graph.update_node_indices()

    n_free = len(free)
    network = Network(
        graph=graph,
        anchors=anchor_points,
        anchor_tolerance=float(anchor_tolerance),
        edge_tolerance=graph.tolerance if edge_tolerance is None else float(edge_tolerance),
        free=free,
        fixed=fixed,
        free_nodes=list(range(n_free)),
        fixed_nodes=list(range(n_free, n_free + len(fixed))),
    )
    validate_network(network)

    if not network.valid:
        logger.warning(
            "Invalid network: %d anchors, %d fixed nodes, %d free nodes, %d nodes total",
            len(anchor_points), len(fixed), len(free), graph.n_nodes,
        )
    else:
        logger.debug("Partitioned network: %d free, %d fixed", len(free), len(fixed))

    return network
