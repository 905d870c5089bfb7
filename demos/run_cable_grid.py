#!/usr/bin/env python3
"""
RUN_CABLE_GRID: Saddle Cable Net Form-Finding
=============================================

This demo shows a realistic workflow:
1. Generate a jittered cable grid (raw, unmerged segments)
2. Build the network with both graph strategies and compare topology
3. Forward solve with uniform q and a small gravity load
4. Optionally optimize (needs the native solver library)
5. Save an interactive 3D view

Run with:
    python demos/run_cable_grid.py
    CABLENET_SOLVER_LIB=/path/to/libtheseus.so python demos/run_cable_grid.py
"""

import sys
import time
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from cablenet import SolverInputs, SolverOptions, build_network, optimize, setup_logging, solve_forward
from cablenet.generative import CableGridParams, generate_cable_grid
from cablenet.solver import LengthVariationObjective, TargetXYObjective, native_available
from cablenet.viz import plot_network_3d


def print_header(text: str):
    """Print a formatted section header."""
    print("\n" + "=" * 60)
    print(f"  {text}")
    print("=" * 60)


def main():
    setup_logging()
    tol = 0.01

    print_header("STEP 1: Generate")
    params = CableGridParams(nx=16, ny=16, rise=2.0, heightfield='saddle',
                             anchor_layout='edges', jitter=tol / 4, seed=7)
    grid = generate_cable_grid(params)
    print(f"  Segments: {len(grid.segments)}  Anchors: {len(grid.anchors)}")

    print_header("STEP 2: Build (sequential vs parallel)")
    networks = {}
    for strategy in ('sequential', 'parallel'):
        t0 = time.perf_counter()
        networks[strategy] = build_network(grid.segments, grid.anchors, tol, tol, strategy=strategy)
        dt = (time.perf_counter() - t0) * 1000
        net = networks[strategy]
        print(f"  {strategy:10s}: {net.graph.n_nodes} nodes, {net.graph.n_edges} edges, "
              f"valid={net.valid} ({dt:.1f} ms)")
    network = networks['sequential']

    print_header("STEP 3: Forward solve")
    inputs = SolverInputs(q=[10.0], loads=[(0.0, 0.0, -0.5)])
    result = solve_forward(network, inputs)
    print(f"  {result.summary()}")

    if native_available():
        print_header("STEP 4: Optimize")
        opt_inputs = SolverInputs.with_default_bounds(
            q=[10.0], loads=[(0.0, 0.0, -0.5)],
            objectives=[TargetXYObjective(weight=1.0), LengthVariationObjective(weight=0.5)],
        )

        def report(iteration, loss, xyz, q):
            print(f"    iter {iteration:4d}  loss {loss:.6g}")
            return True

        result = optimize(network, opt_inputs, SolverOptions(max_iterations=200), progress=report)
        print(f"  {result.summary()}")
    else:
        print("\n  Native solver not found; skipping optimization (set CABLENET_SOLVER_LIB).")

    print_header("STEP 5: Visualize")
    plot_network_3d(result.network, title="Saddle cable net", reference=network,
                    outpath="artifacts/cable_grid.html", show=False)
    print("  Saved artifacts/cable_grid.html")


if __name__ == "__main__":
    main()
