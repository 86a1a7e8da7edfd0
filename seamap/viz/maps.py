"""Map rendering for the study area datasets."""

import logging
from pathlib import Path
from typing import List, Mapping, Optional, Tuple, Union

import geopandas as gpd
import matplotlib.pyplot as plt

from seamap.geometry import ensure_crs
from seamap.utils.text_utils import sanitize_filename

logger = logging.getLogger(__name__)

LAND_STYLE = {"color": "lightgrey", "edgecolor": "dimgrey", "linewidth": 0.5}
MAX_LEGEND_SPECIES = 12


def _base_axes(
    aoi: gpd.GeoDataFrame,
    basemap: Optional[gpd.GeoDataFrame] = None,
    figsize: Tuple[int, int] = (10, 8),
):
    fig, ax = plt.subplots(figsize=figsize)
    if basemap is not None and not basemap.empty:
        ensure_crs(basemap, aoi.crs).plot(ax=ax, **LAND_STYLE)
    aoi.boundary.plot(ax=ax, color="black", linewidth=1)
    ax.set_xlabel("Easting (m)")
    ax.set_ylabel("Northing (m)")
    return fig, ax


def _save(fig, output_path: Path, dpi: int = 150) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    logger.info(f"Saved map to {output_path}")
    return output_path


def plot_study_area(
    aoi: gpd.GeoDataFrame,
    basemap: Optional[gpd.GeoDataFrame],
    output_path: Union[str, Path],
    title: str = "Study area",
) -> Path:
    """Plots the area of interest over the clipped basemap."""
    fig, ax = _base_axes(aoi, basemap)
    ax.set_title(title)
    return _save(fig, Path(output_path))


def plot_occurrences(
    aoi: gpd.GeoDataFrame,
    basemap: Optional[gpd.GeoDataFrame],
    occurrences: gpd.GeoDataFrame,
    output_path: Union[str, Path],
    title: str = "Species occurrences",
) -> Path:
    """
    Plots occurrence points. Points are coloured by species when there are
    few enough species for a readable legend.
    """
    fig, ax = _base_axes(aoi, basemap)
    occurrences = ensure_crs(occurrences, aoi.crs)
    if occurrences.empty:
        logger.warning("No occurrences to plot.")
    elif occurrences["species"].nunique() <= MAX_LEGEND_SPECIES:
        occurrences.plot(ax=ax, column="species", categorical=True, markersize=8, legend=True,
                         legend_kwds={"loc": "upper left", "bbox_to_anchor": (1.01, 1), "fontsize": "small"})
    else:
        occurrences.plot(ax=ax, color="crimson", markersize=8, alpha=0.6)
    ax.set_title(f"{title} (n={len(occurrences)})")
    return _save(fig, Path(output_path))


def plot_values(
    aoi: gpd.GeoDataFrame,
    basemap: Optional[gpd.GeoDataFrame],
    samples: gpd.GeoDataFrame,
    column: str,
    output_path: Union[str, Path],
    title: Optional[str] = None,
    cmap: str = "viridis",
    label: Optional[str] = None,
) -> Path:
    """Plots sampled values (depth, salinity, ...) as coloured points."""
    fig, ax = _base_axes(aoi, basemap)
    samples = ensure_crs(samples, aoi.crs)
    samples = samples[samples[column].notna()]
    if samples.empty:
        logger.warning(f"No values of {column} to plot.")
    else:
        samples.plot(ax=ax, column=column, cmap=cmap, markersize=6, legend=True,
                     legend_kwds={"label": label or column, "shrink": 0.7})
    ax.set_title(title or column)
    return _save(fig, Path(output_path))


def plot_bathymetry(
    aoi: gpd.GeoDataFrame,
    basemap: Optional[gpd.GeoDataFrame],
    bathymetry: gpd.GeoDataFrame,
    output_path: Union[str, Path],
) -> Path:
    return plot_values(aoi, basemap, bathymetry, "depth", output_path, title="Bathymetry", cmap="Blues_r", label="Depth (m)")


def plot_environmental(
    aoi: gpd.GeoDataFrame,
    basemap: Optional[gpd.GeoDataFrame],
    environmental: gpd.GeoDataFrame,
    layer_code: str,
    output_path: Union[str, Path],
    table_name: Optional[str] = None,
) -> Path:
    title = f"{table_name} ({layer_code})" if table_name else layer_code
    return plot_values(aoi, basemap, environmental, layer_code, output_path, title=title, cmap="viridis")


def render_map_series(
    output_dir: Union[str, Path],
    aoi: gpd.GeoDataFrame,
    basemap: Optional[gpd.GeoDataFrame] = None,
    occurrences: Optional[gpd.GeoDataFrame] = None,
    bathymetry: Optional[gpd.GeoDataFrame] = None,
    environmental: Optional[gpd.GeoDataFrame] = None,
    table_names: Optional[Mapping[str, str]] = None,
) -> List[Path]:
    """
    Renders the map sequence for whichever datasets are present: study area,
    occurrences, bathymetry, then one map per environmental table.
    """
    output_dir = Path(output_dir)
    paths = [plot_study_area(aoi, basemap, output_dir / "01_study_area.png")]
    if occurrences is not None:
        paths.append(plot_occurrences(aoi, basemap, occurrences, output_dir / "02_occurrences.png"))
    if bathymetry is not None:
        paths.append(plot_bathymetry(aoi, basemap, bathymetry, output_dir / "03_bathymetry.png"))
    if environmental is not None:
        for i, (table_name, column) in enumerate((table_names or {}).items(), start=4):
            if column not in environmental.columns:
                continue
            filename = f"{i:02d}_{sanitize_filename(table_name)}.png"
            paths.append(plot_environmental(aoi, basemap, environmental, column, output_dir / filename, table_name=table_name))
    return paths
