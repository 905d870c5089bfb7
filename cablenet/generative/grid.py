# cablenet/generative/grid.py
"""
CABLE GRID GENERATOR: Parametric Cable Nets
===========================================

PURPOSE:
--------
Generate the raw input of a form-finding run (line segments and anchor
points) for a rectangular cable net. This is what a designer would draw
by hand in a CAD tool: a mesh of cables plus the points they are tied to.

The output is deliberately RAW geometry. Segments are separate lines
whose shared endpoints only coincide (optionally jittered within the
merge tolerance); building the topology is the job of build_graph().

GEOMETRY:
---------
    iy = ny   o---o---o---o
              |   |   |   |        'grid':     cables along X and Y
              o---o---o---o        'diagonal': grid + one diagonal per cell
              |   |   |   |
    iy = 0    o---o---o---o
            ix=0         ix=nx

HEIGHTFIELDS (initial z, and therefore anchor heights):
-------------------------------------------------------
- 'flat':   z = 0 everywhere
- 'saddle': hyperbolic paraboloid, +rise at the X edge midpoints,
            -rise at the Y edge midpoints, 0 at the corners
- 'ridge':  highest along the X centerline

ANCHOR LAYOUTS:
---------------
- 'corners':     the 4 corner points
- 'edges':       every boundary point
- 'perimeter_4': every 4th point walking the boundary
"""

from dataclasses import dataclass, field
from typing import List, Literal, Optional, Tuple

import numpy as np

from ..model import Point, Segment


@dataclass
class CableGridParams:
    """
    Parameters of a rectangular cable net.

    Geometry:
    ---------
    width, depth : float
        Footprint in X and Y (meters)
    nx, ny : int
        Number of cells in X and Y
    rise : float
        Height amplitude of the heightfield (meters)
    heightfield : str
        'flat', 'saddle' or 'ridge'

    Topology:
    ---------
    topology : str
        'grid' or 'diagonal'

    Supports:
    ---------
    anchor_layout : str
        'corners', 'edges' or 'perimeter_4'

    Noise:
    ------
    jitter : float
        Max per-axis random offset applied to every segment endpoint.
        Keep below tolerance / 3.5 so coincident endpoints still merge.
    seed : Optional[int]
        Random seed for the jitter
    """
    width: float = 10.0
    depth: float = 10.0
    nx: int = 10
    ny: int = 10
    rise: float = 2.0
    heightfield: Literal['flat', 'saddle', 'ridge'] = 'saddle'
    topology: Literal['grid', 'diagonal'] = 'grid'
    anchor_layout: Literal['corners', 'edges', 'perimeter_4'] = 'corners'
    jitter: float = 0.0
    seed: Optional[int] = None

    def __post_init__(self):
        if self.nx < 1 or self.ny < 1:
            raise ValueError(f"nx and ny must be >= 1, got nx={self.nx}, ny={self.ny}")
        if self.width <= 0 or self.depth <= 0:
            raise ValueError("width and depth must be positive")


@dataclass
class CableGrid:
    """
    Generated input geometry.

    branches : [x-cables, y-cables, diagonals]; flatten with `segments`
    anchors  : anchor points, boundary order
    """
    params: CableGridParams
    branches: List[List[Segment]] = field(default_factory=list)
    anchors: List[Point] = field(default_factory=list)

    @property
    def segments(self) -> List[Segment]:
        return [s for branch in self.branches for s in branch]

    @property
    def n_points(self) -> int:
        return (self.params.nx + 1) * (self.params.ny + 1)


def _height(x: float, y: float, params: CableGridParams) -> float:
    xn = 2 * (x / params.width) - 1
    yn = 2 * (y / params.depth) - 1

    if params.heightfield == 'flat':
        return 0.0
    elif params.heightfield == 'saddle':
        return params.rise * (xn ** 2 - yn ** 2)
    elif params.heightfield == 'ridge':
        return params.rise * (1 - abs(yn))
    else:
        raise ValueError(f"Unknown heightfield: {params.heightfield}")


def _grid_point(ix: int, iy: int, params: CableGridParams) -> Point:
    x = ix * params.width / params.nx
    y = iy * params.depth / params.ny
    return (x, y, _height(x, y, params))


def _perimeter(nx: int, ny: int) -> List[Tuple[int, int]]:
    """Boundary grid indices walked counter-clockwise from (0, 0), no repeats."""
    walk = [(ix, 0) for ix in range(nx + 1)]
    walk += [(nx, iy) for iy in range(1, ny + 1)]
    walk += [(ix, ny) for ix in range(nx - 1, -1, -1)]
    walk += [(0, iy) for iy in range(ny - 1, 0, -1)]
    return walk


def anchor_indices(params: CableGridParams) -> List[Tuple[int, int]]:
    """Grid indices (ix, iy) of the anchors for params.anchor_layout."""
    nx, ny = params.nx, params.ny

    if params.anchor_layout == 'corners':
        return [(0, 0), (nx, 0), (nx, ny), (0, ny)]
    elif params.anchor_layout == 'edges':
        return _perimeter(nx, ny)
    elif params.anchor_layout == 'perimeter_4':
        return _perimeter(nx, ny)[::4]
    else:
        raise ValueError(f"Unknown anchor layout: {params.anchor_layout}")


def generate_cable_grid(params: Optional[CableGridParams] = None) -> CableGrid:
    """
    Generate segments and anchors for a rectangular cable net.

    Returns:
    --------
    CableGrid
        branches[0]: cables along X, branches[1]: cables along Y,
        branches[2]: diagonals ('diagonal' topology only)

    Example:
    --------
        grid = generate_cable_grid(CableGridParams(nx=4, ny=4, anchor_layout='edges'))
        network = build_network(grid.segments, grid.anchors, edge_tolerance=0.01)
    """
    params = params or CableGridParams()
    rng = np.random.default_rng(params.seed)
    nx, ny = params.nx, params.ny

    def point(ix, iy):
        p = _grid_point(ix, iy, params)
        if params.jitter > 0:
            d = rng.uniform(-params.jitter, params.jitter, size=3)
            return (p[0] + d[0], p[1] + d[1], p[2] + d[2])
        return p

    x_cables, y_cables, diagonals = [], [], []
    for iy in range(ny + 1):
        for ix in range(nx + 1):
            if ix < nx:
                x_cables.append(Segment(point(ix, iy), point(ix + 1, iy), ('x', ix, iy)))
            if iy < ny:
                y_cables.append(Segment(point(ix, iy), point(ix, iy + 1), ('y', ix, iy)))
            if params.topology == 'diagonal' and ix < nx and iy < ny:
                diagonals.append(Segment(point(ix, iy), point(ix + 1, iy + 1), ('d', ix, iy)))

    branches = [x_cables, y_cables]
    if params.topology == 'diagonal':
        branches.append(diagonals)
    elif params.topology != 'grid':
        raise ValueError(f"Unknown topology: {params.topology}")

    anchors = [_grid_point(ix, iy, params) for ix, iy in anchor_indices(params)]
    return CableGrid(params=params, branches=branches, anchors=anchors)


def square_loop(size: float = 1.0) -> Tuple[List[Segment], List[Point]]:
    """
    Four segments forming a closed square in the XY plane, anchored at
    two opposite corners (0, 0, 0) and (size, size, 0).
    """
    a = (0.0, 0.0, 0.0)
    b = (size, 0.0, 0.0)
    c = (size, size, 0.0)
    d = (0.0, size, 0.0)
    segments = [Segment(a, b, 0), Segment(b, c, 1), Segment(c, d, 2), Segment(d, a, 3)]
    return segments, [a, c]
