"""
Data loaders for the study area: basemap, occurrences, bathymetry and
environmental layers.
"""

from .boundaries import load_basemap, load_country
from .occurrence import fetch_occurrences
from .bathymetry import fetch_bathymetry
from .environmental import EnvironmentalCatalog, LayerInfo, LayerRequest, fetch_environmental
from .services import ServiceClient

__all__ = [
    'load_basemap',
    'load_country',
    'fetch_occurrences',
    'fetch_bathymetry',
    'EnvironmentalCatalog',
    'LayerInfo',
    'LayerRequest',
    'fetch_environmental',
    'ServiceClient',
]
