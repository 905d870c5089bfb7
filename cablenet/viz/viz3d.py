# cablenet/viz/viz3d.py
"""
3D VISUALIZATION: Interactive Cable Net Viewer
==============================================

PURPOSE:
--------
Interactive Plotly views of a Network:
- members coloured by force (q · L), force density or length
- anchors highlighted, free nodes as small markers
- optional overlay of the unsolved network for before/after comparison
- export to standalone HTML

The viewer only READS the model. Nothing here changes a node or edge.
"""

import logging
import os
from typing import List, Literal, Optional

import numpy as np
import plotly.graph_objects as go

from ..model import Network

logger = logging.getLogger(__name__)

ColorBy = Literal['none', 'force', 'q', 'length']


def _member_values(network: Network, color_by: ColorBy) -> Optional[np.ndarray]:
    edges = network.graph.edges
    if color_by == 'force':
        return np.array([e.q * e.length for e in edges], dtype=float)
    if color_by == 'q':
        return np.array([e.q for e in edges], dtype=float)
    if color_by == 'length':
        return np.array([e.length for e in edges], dtype=float)
    return None


def _lines(network: Network, opacity: float, color: str, name: str, width: int = 3) -> go.Scatter3d:
    xs: List[Optional[float]] = []
    ys: List[Optional[float]] = []
    zs: List[Optional[float]] = []
    for e in network.graph.edges:
        # None breaks the polyline between members
        xs.extend([e.start.x, e.end.x, None])
        ys.extend([e.start.y, e.end.y, None])
        zs.extend([e.start.z, e.end.z, None])
    return go.Scatter3d(
        x=xs, y=ys, z=zs,
        mode='lines',
        line=dict(color=color, width=width),
        opacity=opacity,
        name=name,
        hoverinfo='skip',
    )


def create_network_figure(
    network: Network,
    title: str = "Cable Net",
    color_by: ColorBy = 'force',
    reference: Optional[Network] = None,
    show_nodes: bool = True,
    show_anchors: bool = True,
    colorscale: str = 'Viridis',
) -> go.Figure:
    """
    Create a Plotly figure of a network.

    Parameters:
    -----------
    network : Network
        Network to draw (usually SolveResult.network)
    title : str
        Plot title
    color_by : str
        'none', 'force' (q · L), 'q' or 'length'
    reference : Optional[Network]
        Drawn faintly underneath, e.g. the unsolved input network
    show_nodes, show_anchors : bool
        Draw free-node and anchor markers
    colorscale : str
        Plotly colorscale name for the member colouring

    Returns:
    --------
    go.Figure
    """
    fig = go.Figure()

    if reference is not None:
        fig.add_trace(_lines(reference, opacity=0.25, color='lightgray', name='Initial'))

    values = _member_values(network, color_by)
    if values is None or len(values) == 0:
        fig.add_trace(_lines(network, opacity=1.0, color='steelblue', name='Members', width=4))
    else:
        vmin, vmax = float(values.min()), float(values.max())
        span = vmax - vmin if vmax > vmin else 1.0
        # Line colours cannot vary within one trace, so one trace per member
        for i, e in enumerate(network.graph.edges):
            t = (values[i] - vmin) / span
            fig.add_trace(go.Scatter3d(
                x=[e.start.x, e.end.x], y=[e.start.y, e.end.y], z=[e.start.z, e.end.z],
                mode='lines',
                line=dict(color=[t, t], colorscale=colorscale, cmin=0.0, cmax=1.0, width=5),
                showlegend=False,
                hovertext=f"Edge {i}: {color_by}={values[i]:.4g}, L={e.length:.3f}, q={e.q:.3g}",
                hoverinfo='text',
            ))
        # Invisible marker trace carries the colour bar
        fig.add_trace(go.Scatter3d(
            x=[None], y=[None], z=[None],
            mode='markers',
            marker=dict(
                colorscale=colorscale, cmin=vmin, cmax=vmax, color=[vmin],
                showscale=True, colorbar=dict(title=color_by),
            ),
            showlegend=False,
            hoverinfo='skip',
        ))

    nodes = network.graph.nodes
    if show_nodes:
        free = [n for n in nodes if not n.anchor]
        if free:
            fig.add_trace(go.Scatter3d(
                x=[n.x for n in free], y=[n.y for n in free], z=[n.z for n in free],
                mode='markers',
                marker=dict(size=3, color='darkgray'),
                name='Free nodes',
                text=[f"Node {n.index}: ({n.x:.3f}, {n.y:.3f}, {n.z:.3f})" for n in free],
                hoverinfo='text',
            ))

    if show_anchors and network.fixed:
        fixed = network.fixed
        fig.add_trace(go.Scatter3d(
            x=[n.x for n in fixed], y=[n.y for n in fixed], z=[n.z for n in fixed],
            mode='markers',
            marker=dict(size=7, color='red', symbol='diamond', line=dict(width=1, color='black')),
            name='Anchors',
            text=[f"Anchor {n.index}: ({n.x:.3f}, {n.y:.3f}, {n.z:.3f})" for n in fixed],
            hoverinfo='text',
        ))

    fig.update_layout(
        title=dict(text=title, font=dict(size=16)),
        scene=dict(
            xaxis=dict(title='X (m)'),
            yaxis=dict(title='Y (m)'),
            zaxis=dict(title='Z (m)'),
            aspectmode='data',
            camera=dict(eye=dict(x=1.5, y=1.5, z=1.0)),
        ),
        showlegend=True,
        legend=dict(x=0.02, y=0.98),
        margin=dict(l=0, r=0, t=40, b=0),
    )
    return fig


def plot_network_3d(
    network: Network,
    title: str = "Cable Net",
    outpath: Optional[str] = None,
    show: bool = True,
    **kwargs
) -> go.Figure:
    """
    Create and optionally display/save a network figure.

    Parameters:
    -----------
    network, title:
        See create_network_figure()
    outpath : Optional[str]
        If provided, save as standalone HTML
    show : bool
        Whether to display the figure (default: True)
    **kwargs:
        Passed to create_network_figure()

    Example:
    --------
    >>> fig = plot_network_3d(result.network, reference=network,
    ...                       outpath="artifacts/cable_net.html", show=False)
    """
    fig = create_network_figure(network, title=title, **kwargs)

    if outpath:
        os.makedirs(os.path.dirname(outpath) or '.', exist_ok=True)
        fig.write_html(outpath)
        logger.info("3D visualization saved to: %s", outpath)

    if show:
        fig.show()

    return fig
