"""
Record types for the point datasets.

Each dataset has a dataclass describing its fields and their optionality.
Occurrence records are built one at a time from service rows, which is where
invalid coordinates are dropped. Raster-derived samples are built as frames
and checked against their record type with `conform_frame`.
"""

import dataclasses
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Type

import geopandas as gpd
import pandas as pd

logger = logging.getLogger(__name__)


def _to_float(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _to_int(value: Any) -> Optional[int]:
    number = _to_float(value)
    if number is None:
        return None
    return int(number)


def valid_coordinates(longitude: Optional[float], latitude: Optional[float]) -> bool:
    """True when both values are finite and inside the geographic ranges."""
    if longitude is None or latitude is None:
        return False
    return -180 <= longitude <= 180 and -90 <= latitude <= 90


@dataclass
class OccurrenceRecord:
    """A species occurrence.

    `count` is None when the source did not record an individual count;
    the flattener counts such records as one individual.
    """
    species: str
    longitude: float
    latitude: float
    count: Optional[int] = None
    year: Optional[int] = None
    record_id: Optional[str] = None

    @classmethod
    def from_obis(cls, row: Mapping[str, Any]) -> Optional["OccurrenceRecord"]:
        """Builds a record from an OBIS result row, or None when its coordinates are unusable."""
        longitude = _to_float(row.get("decimalLongitude"))
        latitude = _to_float(row.get("decimalLatitude"))
        if not valid_coordinates(longitude, latitude):
            return None
        species = row.get("species") or row.get("scientificName") or "unknown"
        count = _to_int(row.get("individualCount"))
        if count is not None and count < 0:
            count = None
        record_id = row.get("id")
        return cls(
            species=str(species),
            longitude=longitude,
            latitude=latitude,
            count=count,
            year=_to_int(row.get("date_year")),
            record_id=str(record_id) if record_id is not None else None,
        )


@dataclass
class BathymetrySample:
    """A depth sample. Depth is signed: negative below sea level."""
    longitude: float
    latitude: float
    depth: float


@dataclass
class EnvironmentalSample:
    """A grid cell centre with one value per requested layer (keyed by layer code)."""
    longitude: float
    latitude: float
    values: Dict[str, Optional[float]] = field(default_factory=dict)


# Columns carried by the frames in place of longitude/latitude
COORDINATE_FIELDS = ("longitude", "latitude")

# Optional integer fields use the pandas nullable integer dtype
NULLABLE_INTEGER_FIELDS = {
    OccurrenceRecord: ("count", "year"),
}


def attribute_columns(record_type: Type) -> List[str]:
    """Frame columns for a record type, excluding coordinates (held by the geometry)."""
    names = []
    for f in dataclasses.fields(record_type):
        if f.name in COORDINATE_FIELDS or f.name == "values":
            continue
        names.append(f.name)
    return names


def records_to_geodataframe(
    records: List[Any],
    record_type: Type,
    crs: str = "EPSG:4326",
) -> gpd.GeoDataFrame:
    """Converts records into a point GeoDataFrame tagged with `crs`."""
    columns = attribute_columns(record_type)
    data = {name: [getattr(r, name) for r in records] for name in columns}
    geometry = gpd.points_from_xy(
        [r.longitude for r in records], [r.latitude for r in records], crs=crs
    )
    frame = gpd.GeoDataFrame(data, geometry=geometry, crs=crs)
    return conform_frame(frame, record_type)


def conform_frame(frame: gpd.GeoDataFrame, record_type: Type, extra_columns: Optional[List[str]] = None) -> gpd.GeoDataFrame:
    """
    Checks that `frame` carries the columns of `record_type` and casts its
    fields to their declared dtypes.

    Raises:
        ValueError: If a required column is missing.
    """
    columns = attribute_columns(record_type) + list(extra_columns or [])
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise ValueError(f"{record_type.__name__} frame is missing columns: {missing}")

    frame = frame.copy()
    nullable = NULLABLE_INTEGER_FIELDS.get(record_type, ())
    for f in dataclasses.fields(record_type):
        if f.name not in frame.columns:
            continue
        if f.name in nullable:
            frame[f.name] = pd.to_numeric(frame[f.name], errors="coerce").astype("Int64")
        elif f.type is float:
            frame[f.name] = pd.to_numeric(frame[f.name], errors="coerce").astype("float64")
        elif f.type is str:
            frame[f.name] = frame[f.name].astype("object")
    for name in extra_columns or []:
        frame[name] = pd.to_numeric(frame[name], errors="coerce").astype("float64")
    return frame[columns + [frame.geometry.name]]
