"""
Visualization package - Plotting tools for sweep results.
"""

from .heatmap import GoodputHeatmap

__all__ = [
    'GoodputHeatmap'
]
