import logging
from typing import Dict, Union

import geopandas as gpd
import numpy as np
import rioxarray as rxr  # noqa: F401 registers the .rio accessor
import xarray as xr
from rasterio.enums import Resampling
from rioxarray.exceptions import NoDataInBounds

from seamap.geometry import GEOGRAPHIC_CRS, ensure_crs

logger = logging.getLogger(__name__)

RasterLike = Union[xr.DataArray, xr.Dataset]


def prepare_raster(raster: xr.DataArray, default_crs: str = GEOGRAPHIC_CRS) -> xr.DataArray:
    """Drops a singleton band dimension, tags a missing CRS and turns nodata into NaN."""
    if "band" in raster.dims:
        raster = raster.squeeze("band", drop=True)
    if raster.rio.crs is None:
        raster = raster.rio.write_crs(default_crs)
    nodata = raster.rio.nodata
    if nodata is not None and not np.isnan(nodata):
        raster = raster.where(raster != nodata)
    raster = raster.astype("float64")
    return raster.rio.write_nodata(np.nan, encoded=False)


def same_grid(a: RasterLike, b: RasterLike) -> bool:
    return a.rio.crs == b.rio.crs and a.rio.shape == b.rio.shape and a.rio.transform().almost_equals(b.rio.transform())


def align_rasters(
    rasters: Dict[str, xr.DataArray],
    resampling: Resampling = Resampling.bilinear,
) -> xr.Dataset:
    """
    Aligns every raster onto the grid of the first one and stacks them into
    a Dataset with one variable per key.
    """
    if not rasters:
        raise ValueError("No rasters to align.")
    names = list(rasters)
    reference = rasters[names[0]]
    aligned = {}
    for name in names:
        raster = rasters[name]
        if not same_grid(raster, reference):
            logger.info(f"Reprojecting {name} onto the grid of {names[0]}")
            raster = raster.rio.reproject_match(reference, resampling=resampling)
            x_dim, y_dim = reference.rio.x_dim, reference.rio.y_dim
            raster = raster.assign_coords({x_dim: reference[x_dim], y_dim: reference[y_dim]})
            raster = raster.rio.write_nodata(np.nan, encoded=False)
        aligned[name] = raster.rename(name)
    dataset = xr.Dataset(aligned)
    return dataset.rio.write_crs(reference.rio.crs)


def mask_raster(raster: RasterLike, mask: gpd.GeoDataFrame, all_touched: bool = True) -> RasterLike:
    """
    Discards raster cells outside the mask polygons.

    The mask is reprojected to the raster's CRS first. A mask that covers no
    cell centre yields an empty raster rather than an error.
    """
    mask = ensure_crs(mask, raster.rio.crs)
    try:
        return raster.rio.clip(mask.geometry.values, crs=mask.crs, drop=True, all_touched=all_touched)
    except NoDataInBounds:
        logger.warning("Mask does not overlap the raster; returning an empty grid.")
        x_dim, y_dim = raster.rio.x_dim, raster.rio.y_dim
        return raster.isel({x_dim: slice(0, 0), y_dim: slice(0, 0)})


def raster_to_points(raster: RasterLike, name: str = "value") -> gpd.GeoDataFrame:
    """
    Converts raster cells to cell-centre points, one column per variable.

    Cells where every variable is NaN are dropped. The points carry the
    raster's CRS.
    """
    if isinstance(raster, xr.DataArray):
        raster = raster.to_dataset(name=raster.name or name)
    crs = raster.rio.crs
    x_dim, y_dim = raster.rio.x_dim, raster.rio.y_dim
    variables = list(raster.data_vars)

    frame = raster.reset_coords(drop=True).to_dataframe().reset_index()
    frame = frame.dropna(subset=variables, how="all")
    geometry = gpd.points_from_xy(frame[x_dim], frame[y_dim], crs=crs)
    points = gpd.GeoDataFrame(frame[variables].reset_index(drop=True), geometry=geometry, crs=crs)
    logger.debug(f"Converted raster to {len(points)} points")
    return points
