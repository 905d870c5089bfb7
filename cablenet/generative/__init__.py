# cablenet/generative - Parametric input generators
"""
GENERATIVE: Parametric Cable Net Inputs
=======================================

Generators return raw segments and anchor points, the same input a
designer would draw by hand:

    from cablenet.generative import generate_cable_grid, CableGridParams

    grid = generate_cable_grid(CableGridParams(nx=8, ny=8, heightfield='saddle'))
    network = build_network(grid.segments, grid.anchors, edge_tolerance=0.01)
"""

from .grid import CableGrid, CableGridParams, anchor_indices, generate_cable_grid, square_loop

__all__ = ['CableGrid', 'CableGridParams', 'anchor_indices', 'generate_cable_grid', 'square_loop']
