# cablenet/viz - Visualization Tools
"""
VIZ: Presentation Layer
=======================

Reads Networks, never mutates them.
- viz3d: interactive 3D view (Plotly), coloured by force / q / length
"""

from .viz3d import create_network_figure, plot_network_3d

__all__ = ['create_network_figure', 'plot_network_3d']
