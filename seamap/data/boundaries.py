import logging
import warnings
from typing import Union

import geopandas as gpd
from cartopy.io import DownloadWarning, shapereader

from seamap.errors import BasemapUnavailableError, ConfigurationError, UnknownRegionError
from seamap.geometry import GEOGRAPHIC_CRS, buffer_geometry, ensure_crs

logger = logging.getLogger(__name__)

NATURAL_EARTH_SCALES = ("10m", "50m", "110m")
# Columns of admin_0_countries a country can be matched on
COUNTRY_NAME_COLUMNS = ("NAME", "NAME_LONG", "ADMIN", "ISO_A3")


def load_countries(scale: str = "50m") -> gpd.GeoDataFrame:
    """
    Loads the Natural Earth admin-0 countries at `scale`.

    The shapefile is downloaded and cached by cartopy on first use.
    """
    if scale not in NATURAL_EARTH_SCALES:
        raise ConfigurationError(f"Unknown Natural Earth scale '{scale}'. Use one of {NATURAL_EARTH_SCALES}")
    try:
        with warnings.catch_warnings():
            warnings.filterwarnings("ignore", category=DownloadWarning)
            shapefile = shapereader.natural_earth(
                resolution=scale,
                category="cultural",
                name="admin_0_countries",
            )
        countries = gpd.read_file(shapefile)
    except Exception as e:
        raise BasemapUnavailableError(f"Natural Earth countries ({scale}) could not be loaded: {e}") from e
    if countries.crs is None:
        countries = countries.set_crs(GEOGRAPHIC_CRS)
    return countries


def select_country(countries: gpd.GeoDataFrame, country: str) -> gpd.GeoDataFrame:
    """Selects a country by name, long name, admin name or ISO A3 code (case-insensitive)."""
    wanted = country.strip().lower()
    columns = [c for c in COUNTRY_NAME_COLUMNS if c in countries.columns]
    if not columns:
        raise BasemapUnavailableError(f"Basemap has none of the name columns {COUNTRY_NAME_COLUMNS}")
    matches = None
    for column in columns:
        hit = countries[column].astype(str).str.strip().str.lower() == wanted
        matches = hit if matches is None else matches | hit
    selected = countries[matches]
    if selected.empty:
        raise UnknownRegionError(f"No basemap feature matches country '{country}'")
    return selected[[*columns, selected.geometry.name]].reset_index(drop=True)


def load_country(country: str, scale: str = "50m") -> gpd.GeoDataFrame:
    """Loads one country polygon from Natural Earth in EPSG:4326."""
    return select_country(load_countries(scale), country)


def load_basemap(
    aoi: gpd.GeoDataFrame,
    country: str,
    scale: str = "50m",
    buffer: Union[float, int] = 20000,
) -> gpd.GeoDataFrame:
    """
    Loads a country and clips it to the area of interest plus a buffer.

    Args:
        aoi: Area of interest in a projected CRS.
        country: Country name as listed by Natural Earth.
        scale: Natural Earth scale (10m, 50m or 110m).
        buffer: Buffer distance in the AOI's linear units.

    Returns:
        The clipped country polygon(s) in the AOI's CRS.

    Raises:
        UnknownRegionError: If the country name is unknown.
        BasemapUnavailableError: If the basemap cannot be loaded or does not
            intersect the buffered area of interest.
    """
    clip_area = buffer_geometry(aoi, buffer)
    land = ensure_crs(load_country(country, scale=scale), aoi.crs)
    return clip_basemap(land, clip_area, country=country)


def clip_basemap(land: gpd.GeoDataFrame, clip_area: gpd.GeoDataFrame, country: str = "basemap") -> gpd.GeoDataFrame:
    """Clips basemap polygons to `clip_area`; an empty result is an error."""
    land = ensure_crs(land, clip_area.crs)
    land = land.assign(geometry=land.geometry.make_valid())
    clipped = gpd.clip(land, clip_area.geometry.union_all())
    clipped = clipped[~clipped.geometry.is_empty]
    if clipped.empty:
        raise BasemapUnavailableError(f"{country} does not intersect the buffered area of interest")
    logger.info(f"Clipped {country} basemap to {len(clipped)} feature(s)")
    return clipped.reset_index(drop=True)
