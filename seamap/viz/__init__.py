"""
Map rendering.
"""

from .maps import (
    plot_study_area,
    plot_occurrences,
    plot_values,
    plot_bathymetry,
    plot_environmental,
    render_map_series,
)

__all__ = [
    'plot_study_area',
    'plot_occurrences',
    'plot_values',
    'plot_bathymetry',
    'plot_environmental',
    'render_map_series',
]
