"""
Environmental layer catalog and loading.

Environmental predictors (salinity, sea-surface temperature, ...) are served
as ERDDAP griddap datasets, e.g. Bio-ORACLE. A *dataset code* names a
repository (``Bio-ORACLE``); a *layer code* is a dataset id on that server
(``so_baseline_2000_2019_depthsurf``). Sample columns are named by layer code
verbatim, with the variable appended when one layer is read for several
variables.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

import geopandas as gpd
import xarray as xr

from seamap.data.griddap import GriddapClient
from seamap.data.services import ServiceClient
from seamap.errors import LayerLookupError
from seamap.geometry import buffer_geometry, ensure_crs, geographic_bounds
from seamap.raster import align_rasters, mask_raster, raster_to_points
from seamap.schema import EnvironmentalSample, conform_frame

logger = logging.getLogger(__name__)

DEFAULT_DATASETS = {
    "Bio-ORACLE": "https://erddap.bio-oracle.org/erddap",
}


@dataclass
class LayerInfo:
    """A layer listed by the catalog."""
    dataset_code: str
    layer_code: str
    title: str = ""


@dataclass
class LayerRequest:
    """A layer to load: the layer code and the variable to read from it."""
    layer_code: str
    variable: str


class EnvironmentalCatalog:
    """
    A catalog of environmental layers across one or more ERDDAP repositories.
    """

    def __init__(
        self,
        datasets: Optional[Mapping[str, str]] = None,
        cache_dir: Union[str, Path] = "data/cache/environmental",
        client: Optional[ServiceClient] = None,
    ):
        self.datasets = dict(datasets) if datasets is not None else dict(DEFAULT_DATASETS)
        self.cache_dir = Path(cache_dir)
        self.client = client if client is not None else ServiceClient(service="environmental")
        self._servers: Dict[str, GriddapClient] = {}

    def __enter__(self) -> "EnvironmentalCatalog":
        self.client.__enter__()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.client.close()

    def server(self, dataset_code: str) -> GriddapClient:
        """Returns the griddap client for a dataset code."""
        if dataset_code not in self.datasets:
            raise LayerLookupError(
                f"Unknown dataset code '{dataset_code}'. Known dataset codes: {sorted(self.datasets)}"
            )
        if dataset_code not in self._servers:
            self._servers[dataset_code] = GriddapClient(
                self.datasets[dataset_code],
                cache_dir=self.cache_dir / dataset_code,
                client=self.client,
            )
        return self._servers[dataset_code]

    def list_layers(self, dataset_code: str, name_filter: Optional[str] = None) -> List[LayerInfo]:
        """
        Lists the layers of a repository, optionally filtered by a
        case-insensitive substring of the layer code or title.

        A filter that matches nothing gives an empty list.

        Raises:
            LayerLookupError: If the dataset code is not in the catalog.
        """
        server = self.server(dataset_code)
        layers = [
            LayerInfo(dataset_code=dataset_code, layer_code=layer_code, title=title)
            for layer_code, title in server.list_datasets()
            # ERDDAP lists a catalogue pseudo-dataset alongside the real ones
            if layer_code != "allDatasets"
        ]
        if name_filter:
            needle = name_filter.lower()
            layers = [layer for layer in layers if needle in layer.layer_code.lower() or needle in layer.title.lower()]
        logger.info(f"{dataset_code}: {len(layers)} layer(s) match {name_filter!r}")
        return layers

    def load_layer(
        self,
        dataset_code: str,
        request: LayerRequest,
        bounds,
    ) -> Optional[xr.DataArray]:
        """Downloads one layer over (west, south, east, north); None when the subset is empty."""
        return self.server(dataset_code).fetch(request.layer_code, request.variable, bounds)


def parse_layer_requests(tables: Mapping[str, Mapping[str, str]]) -> Dict[str, LayerRequest]:
    """Turns the config mapping ``{table: {layer, variable}}`` into layer requests."""
    return {name: LayerRequest(layer_code=t["layer"], variable=t["variable"]) for name, t in tables.items()}


def layer_columns(layers: List[LayerRequest]) -> List[str]:
    """
    Column name for each request.

    A layer requested for a single variable keeps its layer code verbatim; a
    layer requested for several variables gets one
    ``<layer_code>_<variable>`` column per variable.
    """
    variables: Dict[str, set] = {}
    for layer in layers:
        variables.setdefault(layer.layer_code, set()).add(layer.variable)
    return [
        layer.layer_code if len(variables[layer.layer_code]) == 1 else f"{layer.layer_code}_{layer.variable}"
        for layer in layers
    ]


def empty_environmental(columns: List[str], crs) -> gpd.GeoDataFrame:
    data = {name: [] for name in columns}
    return gpd.GeoDataFrame(data, geometry=gpd.points_from_xy([], [], crs=crs), crs=crs)


def fetch_environmental(
    aoi: gpd.GeoDataFrame,
    layers: List[LayerRequest],
    dataset_code: str = "Bio-ORACLE",
    buffer: float = 20000,
    mask: bool = True,
    catalog: Optional[EnvironmentalCatalog] = None,
) -> gpd.GeoDataFrame:
    """
    Loads environmental layers around the area of interest as points.

    Every layer is aligned to the grid of the first non-empty layer. With
    `mask`, cells outside the buffered AOI are discarded before the grid is
    converted to points.

    Args:
        aoi: Area of interest in a projected CRS.
        layers: Layers to load.
        dataset_code: Repository the layers belong to.
        buffer: Distance (AOI CRS units) added around the AOI.
        mask: Discard cells outside the buffered AOI.
        catalog: Catalog to load from; a default one is created if not given.

    Returns:
        GeoDataFrame with one column per requested layer (see
        `layer_columns`), in the AOI's CRS.
    """
    if not layers:
        raise ValueError("At least one layer must be requested.")
    if catalog is None:
        catalog = EnvironmentalCatalog()

    names = layer_columns(layers)
    columns = list(dict.fromkeys(names))
    area = buffer_geometry(aoi, buffer)
    bounds = geographic_bounds(area)

    rasters = {}
    with catalog:
        for name, layer in zip(names, layers):
            if name in rasters:
                continue
            raster = catalog.load_layer(dataset_code, layer, bounds)
            if raster is None:
                logger.warning(f"{layer.layer_code}: no data over {bounds}")
                continue
            rasters[name] = raster

    if not rasters:
        return empty_environmental(columns, aoi.crs)

    stack = align_rasters(rasters)
    if mask:
        stack = mask_raster(stack, area)

    points = raster_to_points(stack)
    for name in columns:
        if name not in points.columns:
            points[name] = float("nan")
    points = ensure_crs(points, aoi.crs)
    points = conform_frame(points, EnvironmentalSample, extra_columns=columns)
    logger.info(f"Loaded {len(points)} environmental samples for {columns}")
    return points
