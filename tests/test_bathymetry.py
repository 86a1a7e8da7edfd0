from unittest.mock import MagicMock

import pytest

from seamap.data.bathymetry import ETOPO_DATASET, ETOPO_VARIABLE, fetch_bathymetry
from seamap.data.griddap import GriddapClient
from seamap.errors import ServiceTimeoutError


@pytest.fixture
def griddap(make_grid):
    griddap = MagicMock(spec=GriddapClient)
    griddap.client = MagicMock()
    griddap.fetch.return_value = make_grid(lambda x, y: -100.0 + 10 * (y - 48.5), name=ETOPO_VARIABLE)
    return griddap


def test_fetch_bathymetry(aoi, griddap):
    bathymetry = fetch_bathymetry(aoi, resolution=2, griddap=griddap)

    assert list(bathymetry.columns) == ["depth", "geometry"]
    assert bathymetry.crs == aoi.crs
    assert (bathymetry["depth"] < 0).all()
    args, kwargs = griddap.fetch.call_args
    assert args[:2] == (ETOPO_DATASET, ETOPO_VARIABLE)
    assert kwargs["stride"] == 2
    west, south, east, north = args[2]
    assert west == pytest.approx(-67.5) and north == pytest.approx(50.5)


def test_fetch_bathymetry_mask(aoi, griddap):
    masked = fetch_bathymetry(aoi, mask=True, griddap=griddap)
    unmasked = fetch_bathymetry(aoi, mask=False, griddap=griddap)

    assert 0 < len(masked) < len(unmasked)


def test_fetch_bathymetry_empty(aoi, griddap):
    griddap.fetch.return_value = None

    bathymetry = fetch_bathymetry(aoi, griddap=griddap)

    assert bathymetry.empty
    assert "depth" in bathymetry.columns
    assert bathymetry.crs == aoi.crs


def test_fetch_bathymetry_propagates_service_errors(aoi, griddap):
    griddap.fetch.side_effect = ServiceTimeoutError("no response", service="erddap")

    with pytest.raises(ServiceTimeoutError):
        fetch_bathymetry(aoi, griddap=griddap)


def test_fetch_bathymetry_rejects_resolution(aoi, griddap):
    with pytest.raises(ValueError):
        fetch_bathymetry(aoi, resolution=0, griddap=griddap)
