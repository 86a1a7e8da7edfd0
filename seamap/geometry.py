"""
Area-of-interest construction and coordinate reference system handling.

Every geometric entity in the pipeline is a GeoDataFrame carrying exactly one
CRS. Operations that combine frames (clipping, masking, buffering) go through
the helpers here so operands are reprojected to a shared CRS first and
buffering only ever happens in linear units.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import geopandas as gpd
import shapely
from pyproj import CRS
from pyproj.exceptions import CRSError
from shapely.geometry import Polygon
from shapely.geometry.base import BaseGeometry

from seamap.errors import ConfigurationError

logger = logging.getLogger(__name__)

CRSLike = Union[str, int, dict, CRS]

GEOGRAPHIC_CRS = "EPSG:4326"
# NAD83 / Quebec Lambert
DEFAULT_TARGET_CRS = "EPSG:32198"


@dataclass(frozen=True)
class Bounds:
    """Geographic bounds of a study area in decimal degrees.

    Attributes:
        north: Northern latitude.
        south: Southern latitude.
        east: Eastern longitude.
        west: Western longitude.
    """
    north: float
    south: float
    east: float
    west: float

    def __post_init__(self):
        for side in ("north", "south", "east", "west"):
            value = getattr(self, side)
            if not isinstance(value, (int, float)) or not math.isfinite(value):
                raise ConfigurationError(f"Bound '{side}' must be a finite number, got {value!r}")
        if not (-90 <= self.south <= 90 and -90 <= self.north <= 90):
            raise ConfigurationError(f"Latitudes must lie in [-90, 90], got south={self.south}, north={self.north}")
        if not (-180 <= self.west <= 180 and -180 <= self.east <= 180):
            raise ConfigurationError(f"Longitudes must lie in [-180, 180], got west={self.west}, east={self.east}")
        if self.north <= self.south:
            raise ConfigurationError(f"north ({self.north}) must be greater than south ({self.south})")
        # Boxes crossing the antimeridian are not supported
        if self.east <= self.west:
            raise ConfigurationError(f"east ({self.east}) must be greater than west ({self.west})")

    @property
    def bbox(self) -> Tuple[float, float, float, float]:
        """(minx, miny, maxx, maxy) ordering used by shapely and geopandas."""
        return self.west, self.south, self.east, self.north


def parse_crs(crs: CRSLike) -> CRS:
    """Parses any user CRS input, raising ConfigurationError when it is not understood."""
    try:
        return CRS.from_user_input(crs)
    except CRSError as e:
        raise ConfigurationError(f"Unrecognised CRS {crs!r}: {e}") from e


def area_of_interest_polygon(bounds: Bounds, max_segment_length: Optional[float] = None) -> Polygon:
    """
    Builds the closed rectangle for `bounds`, tracing the corners clockwise
    from the north-west corner.

    Args:
        bounds: Geographic bounds.
        max_segment_length: Optional maximum edge length (degrees). Edges are
            densified so that they follow the projection faithfully when the
            polygon is reprojected.

    Returns:
        shapely Polygon in the bounds' (geographic) coordinates.
    """
    ring = [
        (bounds.west, bounds.north),
        (bounds.east, bounds.north),
        (bounds.east, bounds.south),
        (bounds.west, bounds.south),
        (bounds.west, bounds.north),
    ]
    polygon = Polygon(ring)
    if max_segment_length is not None:
        if max_segment_length <= 0:
            raise ConfigurationError("max_segment_length must be positive.")
        polygon = shapely.segmentize(polygon, max_segment_length)
    return polygon


def build_area_of_interest(
    bounds: Bounds,
    source_crs: CRSLike = GEOGRAPHIC_CRS,
    target_crs: CRSLike = DEFAULT_TARGET_CRS,
    max_segment_length: Optional[float] = None,
    name: str = "area_of_interest",
) -> gpd.GeoDataFrame:
    """
    Builds the area of interest and reprojects it into a metric CRS.

    Args:
        bounds: Study area bounds in `source_crs`.
        source_crs: Geographic CRS the bounds are expressed in.
        target_crs: Projected CRS used for every downstream operation.
        max_segment_length: Optional edge densification before reprojection.
        name: Value of the `name` column.

    Returns:
        A one-row GeoDataFrame in `target_crs`.

    Raises:
        ConfigurationError: If a CRS is not understood, the source CRS is not
            geographic, the target CRS is not projected, or reprojection
            produced an invalid polygon.
    """
    source = parse_crs(source_crs)
    target = parse_crs(target_crs)
    if not source.is_geographic:
        raise ConfigurationError(f"Bounds must be given in a geographic CRS, got {source.name}")
    if target.is_geographic:
        raise ConfigurationError(f"Target CRS must be projected (metric), got {target.name}")

    polygon = area_of_interest_polygon(bounds, max_segment_length=max_segment_length)
    aoi = gpd.GeoDataFrame({"name": [name]}, geometry=[polygon], crs=source)
    aoi = ensure_crs(aoi, target)

    if aoi.geometry.is_empty.any() or not aoi.geometry.is_valid.all():
        raise ConfigurationError(f"Reprojecting {bounds} to {target.name} produced an invalid polygon.")

    logger.info(f"Built area of interest {bounds.bbox} in {target.name}")
    return aoi


def ensure_crs(frame: gpd.GeoDataFrame, crs: CRSLike) -> gpd.GeoDataFrame:
    """Returns `frame` in `crs`, reprojecting only when the CRS differs."""
    if frame.crs is None:
        raise ConfigurationError("GeoDataFrame has no CRS; cannot reproject.")
    target = parse_crs(crs)
    if frame.crs == target:
        return frame
    return frame.to_crs(target)


def require_projected(frame: gpd.GeoDataFrame, operation: str = "this operation") -> None:
    if frame.crs is None or frame.crs.is_geographic:
        raise ConfigurationError(
            f"{operation} needs a projected CRS with linear units, got {frame.crs}"
        )


def buffer_geometry(frame: gpd.GeoDataFrame, distance: float) -> gpd.GeoDataFrame:
    """Buffers every geometry by `distance` linear units of the frame's projected CRS."""
    require_projected(frame, operation="Buffering")
    if distance < 0:
        raise ConfigurationError(f"Buffer distance must not be negative, got {distance}")
    buffered = frame.copy()
    if distance > 0:
        buffered[buffered.geometry.name] = buffered.geometry.buffer(distance)
    return buffered


def union_geometry(frame: gpd.GeoDataFrame) -> BaseGeometry:
    return frame.geometry.union_all()


def to_wkt(frame: gpd.GeoDataFrame, crs: CRSLike = GEOGRAPHIC_CRS, precision: int = 6) -> str:
    """Renders the frame's unioned geometry as WKT in `crs` (geographic by default)."""
    geometry = union_geometry(ensure_crs(frame, crs))
    return shapely.to_wkt(geometry, rounding_precision=precision)


def geographic_bounds(frame: gpd.GeoDataFrame, buffer: float = 0) -> Tuple[float, float, float, float]:
    """
    Returns (west, south, east, north) of the frame in EPSG:4326, after an
    optional buffer applied in the frame's projected CRS.
    """
    if buffer:
        frame = buffer_geometry(frame, buffer)
    west, south, east, north = ensure_crs(frame, GEOGRAPHIC_CRS).total_bounds
    return float(west), float(south), float(east), float(north)
