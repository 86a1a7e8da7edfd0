import numpy as np
import pytest
import rioxarray  # noqa: F401
import xarray as xr

from seamap.geometry import Bounds, build_area_of_interest


def _make_grid(value_fn=None, west=-68.0, east=-65.0, south=48.5, north=51.0, resolution=0.1, name="value"):
    """Builds a north-up EPSG:4326 grid with cell centres at half-resolution offsets."""
    x = np.arange(west + resolution / 2, east, resolution)
    y = np.arange(north - resolution / 2, south, -resolution)
    xx, yy = np.meshgrid(x, y)
    data = value_fn(xx, yy) if value_fn is not None else np.ones_like(xx)
    grid = xr.DataArray(
        np.asarray(data, dtype="float64"),
        coords={"y": y, "x": x},
        dims=("y", "x"),
        name=name,
    )
    grid = grid.rio.write_crs("EPSG:4326")
    return grid.rio.write_nodata(np.nan, encoded=False)


@pytest.fixture
def bounds() -> Bounds:
    """Western Gulf of St. Lawrence."""
    return Bounds(north=50.5, south=49.0, east=-65.5, west=-67.5)


@pytest.fixture
def aoi(bounds):
    return build_area_of_interest(bounds, target_crs="EPSG:32198")


@pytest.fixture
def make_grid():
    return _make_grid
