"""
seamap: assemble and map geospatial data for a marine study area.
"""

__version__ = "0.1.0"
