import logging
import os
from dataclasses import dataclass, field
from hashlib import sha256
from pathlib import Path
from typing import List, Optional, Tuple, Union
from urllib.parse import quote

import rioxarray as rxr
import xarray as xr

from seamap.data.services import ServiceClient
from seamap.errors import LayerLookupError, MalformedResponseError, RemoteServiceError
from seamap.raster import prepare_raster

logger = logging.getLogger(__name__)

LATITUDE_NAMES = ("latitude", "lat")
LONGITUDE_NAMES = ("longitude", "lon")
TIFF_SIGNATURES = (b"II*\x00", b"MM\x00*")
NO_MATCHING_RESULTS = "no matching results"


@dataclass
class GridDescription:
    """Dimension and variable names of a gridded dataset, in ERDDAP order."""
    dataset_id: str
    dimensions: List[str] = field(default_factory=list)
    variables: List[str] = field(default_factory=list)
    title: str = ""


class GriddapClient:
    """A client for subsetting gridded datasets from an ERDDAP server.

    Subsets are requested as GeoTIFF (one variable, one time step) and cached
    on disk keyed by a hash of the query, so repeated runs do not download the
    same grid twice.

    Attributes:
        base_url: Root of the ERDDAP installation (ending in ``/erddap``).
        cache_dir: Directory holding downloaded GeoTIFFs.
        client: The `ServiceClient` used for requests.
    """

    def __init__(
        self,
        base_url: str,
        cache_dir: Union[str, Path] = "data/cache/griddap",
        client: Optional[ServiceClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.cache_dir = Path(cache_dir)
        self.client = client if client is not None else ServiceClient(service="erddap")

    def __repr__(self):
        return f"GriddapClient(base_url={self.base_url!r}, cache_dir={str(self.cache_dir)!r})"

    def list_datasets(self) -> List[Tuple[str, str]]:
        """Returns (dataset id, title) for every griddap dataset on the server."""
        url = f"{self.base_url}/griddap/index.json"
        payload = self.client.get_json(url, params={"page": 1, "itemsPerPage": 100000})
        try:
            table = payload["table"]
            columns = table["columnNames"]
            id_index = columns.index("Dataset ID")
            title_index = columns.index("Title")
            return [(row[id_index], row[title_index]) for row in table["rows"]]
        except (KeyError, ValueError, TypeError, IndexError) as e:
            raise MalformedResponseError(
                f"Unexpected griddap index layout from {url}: {e}", service="erddap", url=url
            ) from e

    def describe(self, dataset_id: str) -> GridDescription:
        """
        Retrieves the dimension and variable names of a dataset.

        Raises:
            LayerLookupError: If the server does not know the dataset.
        """
        url = f"{self.base_url}/info/{dataset_id}/index.json"
        try:
            payload = self.client.get_json(url)
        except RemoteServiceError as e:
            if e.status == 404:
                raise LayerLookupError(f"Dataset '{dataset_id}' not found on {self.base_url}") from e
            raise

        try:
            columns = payload["table"]["columnNames"]
            rows = payload["table"]["rows"]
            row_type = columns.index("Row Type")
            name = columns.index("Variable Name")
            attribute = columns.index("Attribute Name")
            value = columns.index("Value")
        except (KeyError, ValueError, TypeError) as e:
            raise MalformedResponseError(
                f"Unexpected info layout for {dataset_id}: {e}", service="erddap", url=url
            ) from e

        description = GridDescription(dataset_id=dataset_id)
        for row in rows:
            if row[row_type] == "dimension":
                description.dimensions.append(row[name])
            elif row[row_type] == "variable":
                description.variables.append(row[name])
            elif row[row_type] == "attribute" and row[name] == "NC_GLOBAL" and row[attribute] == "title":
                description.title = row[value]
        if not description.dimensions:
            raise MalformedResponseError(f"No dimensions listed for {dataset_id}", service="erddap", url=url)
        return description

    def build_query(
        self,
        description: GridDescription,
        variable: str,
        bounds: Tuple[float, float, float, float],
        stride: int = 1,
    ) -> str:
        """
        Builds a griddap query for one variable over (west, south, east, north).

        The most recent time step and the first index of any other non-spatial
        dimension (e.g. depth) are selected.
        """
        if variable not in description.variables:
            raise LayerLookupError(
                f"Variable '{variable}' not in {description.dataset_id}; available: {description.variables}"
            )
        if stride < 1:
            raise ValueError("stride must be a positive integer")
        west, south, east, north = bounds
        constraints = []
        for dimension in description.dimensions:
            if dimension == "time":
                constraints.append("[last]")
            elif dimension in LATITUDE_NAMES:
                constraints.append(f"[({south:.6f}):{stride}:({north:.6f})]")
            elif dimension in LONGITUDE_NAMES:
                constraints.append(f"[({west:.6f}):{stride}:({east:.6f})]")
            else:
                constraints.append("[0]")
        return variable + "".join(constraints)

    def _cache_path(self, dataset_id: str, query: str) -> Path:
        digest = sha256(f"{self.base_url}/{dataset_id}?{query}".encode()).hexdigest()[:16]
        return self.cache_dir / f"{dataset_id}_{digest}.tif"

    def _check_tiff(self, data: bytes, url: str) -> None:
        # Make sure we didn't get an XML/HTML error doc or invalid TIFF
        d = data.lstrip()
        if d.startswith(b"<?xml") or d.startswith(b"<"):
            snippet = d[:200].decode(errors="replace")
            raise MalformedResponseError(f"Received markup instead of TIFF: {snippet}", service="erddap", url=url)
        if not d.startswith(TIFF_SIGNATURES):
            raise MalformedResponseError("Data does not appear to be a valid TIFF.", service="erddap", url=url)

    def download(self, dataset_id: str, query: str) -> Optional[Path]:
        """
        Downloads a query result to the cache, returning the cached path.

        Returns None when the server reports that the query matched no data.
        """
        path = self._cache_path(dataset_id, query)
        if path.exists():
            logger.debug(f"Using cached {path}")
            return path

        url = f"{self.base_url}/griddap/{dataset_id}.geotif?{quote(query, safe='(),:')}"
        logger.info(f"Downloading {dataset_id}: {query}")
        try:
            data = self.client.get_bytes(url)
        except RemoteServiceError as e:
            if e.status == 404 and NO_MATCHING_RESULTS in str(e).lower():
                logger.warning(f"{dataset_id}: query matched no data ({query})")
                return None
            if e.status == 404:
                raise LayerLookupError(f"Dataset '{dataset_id}' not found on {self.base_url}") from e
            raise
        self._check_tiff(data, url)

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        partial = path.with_suffix(".tif.part")
        with open(partial, "wb") as f:
            f.write(data)
        os.replace(partial, path)
        return path

    def fetch(
        self,
        dataset_id: str,
        variable: str,
        bounds: Tuple[float, float, float, float],
        stride: int = 1,
        description: Optional[GridDescription] = None,
    ) -> Optional[xr.DataArray]:
        """
        Fetches one variable over (west, south, east, north) as a DataArray.

        Returns None when the subset is empty on the server side.
        """
        if description is None:
            description = self.describe(dataset_id)
        query = self.build_query(description, variable, bounds, stride=stride)
        path = self.download(dataset_id, query)
        if path is None:
            return None

        with rxr.open_rasterio(path, masked=True) as raster:
            raster = raster.load()
        raster = prepare_raster(raster)
        raster.name = variable
        raster.attrs.update({"source_url": self.base_url, "dataset_id": dataset_id, "query": query})
        return raster
