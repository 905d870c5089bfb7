# api/main.py
"""
FastAPI backend for cablenet - exposes network construction and form-finding as a REST API.
"""

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from typing import Dict, List, Literal, Optional, Any, Tuple
import sys
from pathlib import Path
import io
import json
import logging

# Add project root to path to import cablenet
sys.path.insert(0, str(Path(__file__).parent.parent))

from cablenet import (
    ConstructionError,
    InvalidNetworkError,
    MechanismError,
    NativeSolverError,
    NetworkConstructor,
    SolverInputs,
    solve_forward,
)
from cablenet.cache import ResultCache
from cablenet.generative import CableGridParams, generate_cable_grid
from cablenet.info import edge_table, network_info
from cablenet.model import Network, Segment
import numpy as np

logger = logging.getLogger(__name__)

app = FastAPI(
    title="cablenet API",
    description="Force density form-finding for cable networks",
    version="0.1.0"
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Identical requests reuse the previously built network and solve
constructor = NetworkConstructor()
solve_cache = ResultCache()


# =============================================================================
# Request/Response Models
# =============================================================================

Vec3 = Tuple[float, float, float]


class SegmentIn(BaseModel):
    """One input line."""
    start: Vec3
    end: Vec3


class GridIn(BaseModel):
    """Parametric cable grid (used when no segments are given)."""
    width: float = Field(10.0, gt=0.0, le=200.0, description="Footprint width (m)")
    depth: float = Field(10.0, gt=0.0, le=200.0, description="Footprint depth (m)")
    nx: int = Field(8, ge=1, le=100, description="Cells in X")
    ny: int = Field(8, ge=1, le=100, description="Cells in Y")
    rise: float = Field(2.0, ge=0.0, le=50.0, description="Heightfield amplitude (m)")
    heightfield: Literal['flat', 'saddle', 'ridge'] = 'saddle'
    topology: Literal['grid', 'diagonal'] = 'grid'
    anchor_layout: Literal['corners', 'edges', 'perimeter_4'] = 'edges'


class NetworkRequest(BaseModel):
    """Raw geometry plus tolerances."""
    segments: Optional[List[SegmentIn]] = None
    grid: Optional[GridIn] = None
    anchors: Optional[List[Vec3]] = None
    edge_tolerance: float = Field(0.001, ge=0.0, description="Endpoint merge distance")
    anchor_tolerance: float = Field(0.001, ge=0.0, description="Anchor match distance")
    strategy: Literal['auto', 'sequential', 'parallel'] = 'auto'


class SolveRequest(BaseModel):
    """Network plus force densities and loads for a forward solve."""
    network: NetworkRequest
    q: List[float] = Field(default_factory=lambda: [10.0], description="Force densities (broadcast)")
    loads: List[Vec3] = Field(default_factory=lambda: [(0.0, 0.0, -1.0)], description="Loads (broadcast)")
    engine: Literal['auto', 'native', 'python'] = 'auto'


class NodeData(BaseModel):
    id: int
    x: float
    y: float
    z: float
    anchor: bool


class EdgeData(BaseModel):
    id: int
    start: int
    end: int
    length: float
    q: float
    force: float


class MetricsData(BaseModel):
    n_nodes: int
    n_edges: int
    n_free: int
    n_fixed: int
    total_length: float
    max_force: float
    min_force: float
    iterations: int = 0
    converged: bool = False


class NetworkResult(BaseModel):
    success: bool
    error: Optional[str] = None
    messages: List[str] = []
    valid: bool = False
    nodes: Optional[List[NodeData]] = None
    edges: Optional[List[EdgeData]] = None
    free_nodes: Optional[List[int]] = None
    fixed_nodes: Optional[List[int]] = None
    reactions: Optional[List[Vec3]] = None
    metrics: Optional[MetricsData] = None


# =============================================================================
# Helpers
# =============================================================================

def build_from_request(req: NetworkRequest):
    """ConstructionReport for the request's segments (or generated grid)."""
    if req.segments:
        segments = [Segment.from_points(s.start, s.end, i) for i, s in enumerate(req.segments)]
        anchors = req.anchors or []
    elif req.grid is not None:
        grid = generate_cable_grid(CableGridParams(**req.grid.model_dump()))
        segments = grid.segments
        anchors = req.anchors if req.anchors else grid.anchors
    else:
        raise ConstructionError("Supply either segments or grid parameters")

    return constructor.construct(
        segments, anchors,
        edge_tolerance=req.edge_tolerance,
        anchor_tolerance=req.anchor_tolerance,
        strategy=req.strategy,
    )


def describe(network: Network, messages: List[str], iterations: int = 0, converged: bool = False) -> NetworkResult:
    info = network_info(network)
    nodes = [
        NodeData(id=n.index, x=round(n.x, 6), y=round(n.y, 6), z=round(n.z, 6), anchor=n.anchor)
        for n in network.graph.nodes
    ]
    edges = [
        EdgeData(
            id=i, start=info.start_indices[i], end=info.end_indices[i],
            length=round(float(info.lengths[i]), 6),
            q=round(float(info.q[i]), 6),
            force=round(float(info.forces[i]), 6),
        )
        for i in range(info.n_edges)
    ]
    metrics = MetricsData(
        n_nodes=info.n_nodes,
        n_edges=info.n_edges,
        n_free=len(info.free_indices),
        n_fixed=len(info.fixed_indices),
        total_length=round(float(np.sum(info.lengths)), 6),
        max_force=round(float(np.max(info.forces)), 6) if info.n_edges else 0.0,
        min_force=round(float(np.min(info.forces)), 6) if info.n_edges else 0.0,
        iterations=iterations,
        converged=converged,
    )
    return NetworkResult(
        success=network.valid,
        error=None if network.valid else "; ".join(messages) or "Network is not valid",
        messages=messages,
        valid=network.valid,
        nodes=nodes,
        edges=edges,
        free_nodes=info.free_indices,
        fixed_nodes=info.fixed_indices,
        reactions=[tuple(float(v) for v in r) for r in info.reactions],
        metrics=metrics,
    )


def solve_request(req: SolveRequest) -> Tuple[NetworkResult, Optional[Network]]:
    """Build and solve. Returns geometry even if the solve fails."""
    try:
        report = build_from_request(req.network)
    except (ConstructionError, ValueError) as e:
        return NetworkResult(success=False, error=f"Failed to build network: {e}"), None

    if not report.ok:
        return describe(report.network, report.messages), None

    try:
        result = solve_forward(report.network, SolverInputs(q=req.q, loads=req.loads), engine=req.engine,
                               cache=solve_cache)
    except MechanismError as e:
        out = describe(report.network, report.messages)
        out.success, out.error = False, f"Network unstable: {e}"
        return out, None
    except (ConstructionError, InvalidNetworkError, NativeSolverError) as e:
        out = describe(report.network, report.messages)
        out.success, out.error = False, f"Solve failed: {e}"
        return out, None

    return describe(result.network, report.messages, result.iterations, result.converged), result.network


# =============================================================================
# API Endpoints
# =============================================================================

@app.get("/")
async def root():
    """Health check."""
    return {"status": "ok", "service": "cablenet API"}


@app.post("/api/network", response_model=NetworkResult)
async def construct_network(req: NetworkRequest):
    """Build and partition a network without solving it."""
    try:
        report = build_from_request(req)
    except (ConstructionError, ValueError) as e:
        return NetworkResult(success=False, error=f"Failed to build network: {e}")
    return describe(report.network, report.messages)


@app.post("/api/solve", response_model=NetworkResult)
async def solve(req: SolveRequest):
    """Forward force density solve."""
    result, _ = solve_request(req)
    return result


@app.post("/api/export/csv")
async def export_csv(req: SolveRequest):
    """Export the solved edge table as CSV."""
    result, network = solve_request(req)

    if network is None:
        raise HTTPException(status_code=400, detail=result.error)

    output = io.StringIO()
    edge_table(network).to_csv(output, index=False, float_format='%.6f')

    output.seek(0)
    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=cablenet_edges.csv"}
    )


@app.post("/api/export/json")
async def export_json(req: SolveRequest):
    """Export the solved model as JSON."""
    result, network = solve_request(req)

    if network is None:
        raise HTTPException(status_code=400, detail=result.error)

    model: Dict[str, Any] = {
        "version": "1.0",
        "type": "cable_net",
        "request": req.model_dump(),
        "metrics": result.metrics.model_dump(),
        "geometry": {
            "nodes": [n.model_dump() for n in result.nodes],
            "edges": [e.model_dump() for e in result.edges],
            "free": result.free_nodes,
            "fixed": result.fixed_nodes,
        }
    }

    return StreamingResponse(
        iter([json.dumps(model, indent=2)]),
        media_type="application/json",
        headers={"Content-Disposition": "attachment; filename=cablenet_model.json"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
