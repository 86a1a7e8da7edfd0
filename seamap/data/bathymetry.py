"""
Bathymetry loading.

Depths come from the ETOPO 1 arc-minute global relief grid served by the
NOAA CoastWatch ERDDAP (dataset ``etopo180``, variable ``altitude``). Values
are signed: negative below sea level.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import geopandas as gpd

from seamap.data.griddap import GriddapClient
from seamap.geometry import buffer_geometry, ensure_crs, geographic_bounds
from seamap.raster import mask_raster, raster_to_points
from seamap.schema import BathymetrySample, conform_frame

logger = logging.getLogger(__name__)

ETOPO_URL = "https://coastwatch.pfeg.noaa.gov/erddap"
ETOPO_DATASET = "etopo180"
ETOPO_VARIABLE = "altitude"


def empty_bathymetry(crs) -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame({"depth": []}, geometry=gpd.points_from_xy([], [], crs=crs), crs=crs)


def fetch_bathymetry(
    aoi: gpd.GeoDataFrame,
    resolution: int = 1,
    buffer: float = 0,
    mask: bool = False,
    griddap: Optional[GriddapClient] = None,
    cache_dir: Union[str, Path] = "data/cache/bathymetry",
    dataset_id: str = ETOPO_DATASET,
    variable: str = ETOPO_VARIABLE,
) -> gpd.GeoDataFrame:
    """
    Downloads bathymetry covering the area of interest as depth points.

    Args:
        aoi: Area of interest in a projected CRS.
        resolution: Grid stride in ETOPO cells (1 = 1 arc-minute).
        buffer: Distance (AOI CRS units) the query box is grown by.
        mask: If True, keep only samples inside the buffered AOI.
        griddap: Client for the ETOPO server; one is created if not given.
        cache_dir: Cache directory used when a client is created here.

    Returns:
        GeoDataFrame with a signed `depth` column, in the AOI's CRS.
    """
    if resolution < 1:
        raise ValueError("resolution must be a positive number of grid cells")
    if griddap is None:
        griddap = GriddapClient(ETOPO_URL, cache_dir=cache_dir)

    bounds = geographic_bounds(aoi, buffer=buffer)
    logger.info(f"Fetching bathymetry for {bounds} at stride {resolution}")
    with griddap.client:
        raster = griddap.fetch(dataset_id, variable, bounds, stride=resolution)

    if raster is None:
        logger.warning("No bathymetry returned for the area of interest.")
        return empty_bathymetry(aoi.crs)

    if mask:
        raster = mask_raster(raster, buffer_geometry(aoi, buffer))

    points = raster_to_points(raster.rename("depth"))
    points = ensure_crs(points, aoi.crs)
    points = conform_frame(points, BathymetrySample)
    logger.info(f"Loaded {len(points)} bathymetry samples")
    return points
