#!/usr/bin/env python3
"""
RUN_SQUARE_NET: Smallest Possible Form-Finding Run
==================================================

This demo walks the whole pipeline on four lines forming a square:
1. Build the graph (endpoints merged within tolerance)
2. Partition with two opposite corners as anchors
3. Assemble the force density system
4. Forward solve with q = 10 and no load
5. Print the result

With no load both free corners are pulled straight to the centre of the
diagonal between the anchors: (0.5, 0.5, 0).

Run with:
    python demos/run_square_net.py
"""

import sys
from pathlib import Path

import numpy as np

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from cablenet import SolverInputs, build_network, setup_logging, solve_forward
from cablenet.generative import square_loop
from cablenet.info import edge_table
from cablenet.kernel import assemble_solver_data


def print_header(text: str):
    """Print a formatted section header."""
    print("\n" + "=" * 60)
    print(f"  {text}")
    print("=" * 60)


def main():
    setup_logging()

    print_header("STEP 1-2: Build and partition")
    segments, anchors = square_loop(1.0)
    network = build_network(segments, anchors, edge_tolerance=0.01, anchor_tolerance=0.01)
    print(f"  Nodes: {network.graph.n_nodes}  Edges: {network.graph.n_edges}")
    print(f"  Free:  {network.free_nodes}  Fixed: {network.fixed_nodes}  Valid: {network.valid}")

    print_header("STEP 3: Assemble")
    inputs = SolverInputs(q=[10.0], loads=[(0.0, 0.0, 0.0)])
    data = assemble_solver_data(network, inputs)
    print("  COO (row, col, val):")
    for r, c, v in zip(data.rows, data.cols, data.vals):
        print(f"    ({r}, {c}, {v:+.0f})")

    print_header("STEP 4: Forward solve")
    result = solve_forward(network, inputs, engine='python')
    for node in result.network.graph.nodes:
        kind = "anchor" if node.anchor else "free"
        print(f"  Node {node.index} ({kind:6s}): ({node.x:.4f}, {node.y:.4f}, {node.z:.4f})")

    print_header("STEP 5: Members")
    print(edge_table(result.network).to_string(index=False, float_format=lambda v: f"{v:.4f}"))

    free_xyz = result.node_positions[result.network.free_nodes]
    ok = np.allclose(free_xyz, [[0.5, 0.5, 0.0]] * len(free_xyz))
    print(f"\n  Free nodes at centre: {'✓' if ok else '✗'}")


if __name__ == "__main__":
    main()
