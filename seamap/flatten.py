"""
Flattening of point datasets into tables.

Point datasets already in the metric CRS are turned into plain tables with
explicit planar `x`/`y` columns. Rows that share an exact coordinate pair are
aggregated: occurrence counts are summed (an unrecorded count counts as one
individual), sampled values are averaged.
"""

import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

import geopandas as gpd
import pandas as pd

from seamap.geometry import require_projected
from seamap.utils.text_utils import tidy_variable_name

logger = logging.getLogger(__name__)

COORDINATE_COLUMNS = ["x", "y"]


def planar_coordinates(frame: gpd.GeoDataFrame) -> pd.DataFrame:
    """Returns the attribute table of a point frame with `x` and `y` columns."""
    require_projected(frame, operation="Planar coordinate extraction")
    if len(frame) and not (frame.geom_type == "Point").all():
        raise ValueError("Planar coordinates can only be extracted from point geometries.")
    table = pd.DataFrame(frame.drop(columns=frame.geometry.name))
    table.insert(0, "x", frame.geometry.x.to_numpy())
    table.insert(1, "y", frame.geometry.y.to_numpy())
    return table.reset_index(drop=True)


def aggregate_counts(frame: Union[gpd.GeoDataFrame, pd.DataFrame], count_column: str = "count") -> pd.DataFrame:
    """
    Sums counts per exact (x, y) pair.

    Missing counts are treated as one before summing, so counts
    [NA, 3, NA] at one coordinate total 5.

    Raises:
        ValueError: If a recorded count is not a whole number.
    """
    table = planar_coordinates(frame) if isinstance(frame, gpd.GeoDataFrame) else frame.copy()
    if count_column in table.columns:
        counts = pd.to_numeric(table[count_column], errors="coerce").fillna(1)
        fractional = counts[(counts % 1) != 0]
        if len(fractional):
            raise ValueError(f"Counts must be whole numbers, got {fractional.tolist()[:5]}")
    else:
        counts = pd.Series(1, index=table.index)
    table = table[COORDINATE_COLUMNS].assign(**{count_column: counts.astype("int64")})
    aggregated = table.groupby(COORDINATE_COLUMNS, as_index=False, sort=True)[count_column].sum()
    return aggregated


def aggregate_values(
    frame: Union[gpd.GeoDataFrame, pd.DataFrame],
    columns: List[str],
    how: str = "mean",
) -> pd.DataFrame:
    """Aggregates sampled values per exact (x, y) pair, dropping rows where all values are missing."""
    table = planar_coordinates(frame) if isinstance(frame, gpd.GeoDataFrame) else frame.copy()
    missing = [c for c in columns if c not in table.columns]
    if missing:
        raise KeyError(f"Columns not found: {missing}")
    table = table[COORDINATE_COLUMNS + columns].dropna(subset=columns, how="all")
    return table.groupby(COORDINATE_COLUMNS, as_index=False, sort=True)[columns].agg(how)


def write_table(table: pd.DataFrame, output_dir: Union[str, Path], name: str) -> Path:
    """Writes `table` to ``<output_dir>/<name>.csv`` and returns the path."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / f"{tidy_variable_name(name)}.csv"
    table.to_csv(path, index=False)
    logger.info(f"Wrote {len(table)} rows to {path}")
    return path


def flatten_outputs(
    output_dir: Union[str, Path],
    occurrences: Optional[gpd.GeoDataFrame] = None,
    environmental: Optional[gpd.GeoDataFrame] = None,
    table_names: Optional[Mapping[str, str]] = None,
    bathymetry: Optional[gpd.GeoDataFrame] = None,
) -> Dict[str, Path]:
    """
    Writes the flat tables for every dataset that is present.

    Args:
        output_dir: Directory the CSV files are written to.
        occurrences: Occurrence points; written as summed counts.
        environmental: Environmental samples; one table per entry of
            `table_names`.
        table_names: Maps a table name (e.g. "salinity") to the
            environmental column (layer code) it holds.
        bathymetry: Depth samples.

    Returns:
        Mapping of table name to written path.
    """
    written = {}
    if occurrences is not None:
        written["occurrence_counts"] = write_table(aggregate_counts(occurrences), output_dir, "occurrence_counts")
    if environmental is not None:
        for table_name, column in (table_names or {}).items():
            if column not in environmental.columns:
                logger.warning(f"Skipping table {table_name}: column {column} not in environmental samples")
                continue
            table = aggregate_values(environmental, [column])
            written[table_name] = write_table(table, output_dir, table_name)
    if bathymetry is not None:
        written["bathymetry"] = write_table(aggregate_values(bathymetry, ["depth"]), output_dir, "bathymetry")
    return written
