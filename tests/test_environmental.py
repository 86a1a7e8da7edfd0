from unittest.mock import MagicMock

import numpy as np
import pytest

from seamap.data.environmental import (
    EnvironmentalCatalog,
    LayerRequest,
    fetch_environmental,
    layer_columns,
    parse_layer_requests,
)
from seamap.errors import LayerLookupError
from seamap.geometry import buffer_geometry

INDEX_PAYLOAD = {
    "table": {
        "columnNames": ["griddap", "Title", "Dataset ID"],
        "rows": [
            ["", "* The List of All Active Datasets in this ERDDAP *", "allDatasets"],
            ["", "Sea water salinity (baseline)", "so_baseline_2000_2019_depthsurf"],
            ["", "Sea water temperature (baseline)", "thetao_baseline_2000_2019_depthsurf"],
        ],
    }
}

SALINITY = LayerRequest("so_baseline_2000_2019_depthsurf", "so_mean")
SST = LayerRequest("thetao_baseline_2000_2019_depthsurf", "thetao_mean")


@pytest.fixture
def catalog(make_grid):
    catalog = MagicMock(spec=EnvironmentalCatalog)
    catalog.__enter__.return_value = catalog
    rasters = {
        SALINITY.layer_code: make_grid(lambda x, y: 30 + 0 * x, name="so_mean"),
        SST.layer_code: make_grid(lambda x, y: 5 + 0 * y, resolution=0.25, name="thetao_mean"),
    }
    catalog.load_layer.side_effect = lambda code, request, bounds: rasters.get(request.layer_code)
    return catalog


def test_fetch_environmental_columns_and_crs(aoi, catalog):
    samples = fetch_environmental(aoi, [SALINITY, SST], catalog=catalog)

    assert list(samples.columns) == [SALINITY.layer_code, SST.layer_code, "geometry"]
    assert samples.crs == aoi.crs
    assert len(samples) > 0
    assert np.allclose(samples[SALINITY.layer_code].dropna(), 30)
    assert catalog.load_layer.call_count == 2


def test_fetch_environmental_mask_keeps_buffered_area(aoi, catalog):
    masked = fetch_environmental(aoi, [SALINITY], buffer=20000, mask=True, catalog=catalog)
    unmasked = fetch_environmental(aoi, [SALINITY], buffer=20000, mask=False, catalog=catalog)

    assert len(masked) < len(unmasked)
    # all_touched keeps cells that only clip the edge
    outer = buffer_geometry(aoi, 20000 + 15000).geometry.iloc[0]
    assert masked.within(outer).all()


def test_fetch_environmental_missing_layer_is_nan(aoi, catalog):
    missing = LayerRequest("absent_layer", "value")

    samples = fetch_environmental(aoi, [SALINITY, missing], catalog=catalog)

    assert "absent_layer" in samples.columns
    assert samples["absent_layer"].isna().all()


def test_fetch_environmental_nothing_loaded(aoi, catalog):
    samples = fetch_environmental(aoi, [LayerRequest("absent_layer", "value")], catalog=catalog)

    assert samples.empty
    assert "absent_layer" in samples.columns
    assert samples.crs == aoi.crs


def test_fetch_environmental_requires_layers(aoi, catalog):
    with pytest.raises(ValueError):
        fetch_environmental(aoi, [], catalog=catalog)


def test_unknown_dataset_code():
    catalog = EnvironmentalCatalog(datasets={"Bio-ORACLE": "https://example.org/erddap"}, client=MagicMock())

    with pytest.raises(LayerLookupError) as excinfo:
        catalog.server("MARSPEC")
    assert "Bio-ORACLE" in str(excinfo.value)


def test_list_layers_filter():
    client = MagicMock()
    client.get_json.return_value = INDEX_PAYLOAD
    catalog = EnvironmentalCatalog(datasets={"Bio-ORACLE": "https://example.org/erddap"}, client=client)

    everything = catalog.list_layers("Bio-ORACLE")
    salinity = catalog.list_layers("Bio-ORACLE", name_filter="SALINITY")
    nothing = catalog.list_layers("Bio-ORACLE", name_filter="chlorophyll")

    assert [layer.layer_code for layer in everything] == [
        "so_baseline_2000_2019_depthsurf",
        "thetao_baseline_2000_2019_depthsurf",
    ]
    assert [layer.layer_code for layer in salinity] == ["so_baseline_2000_2019_depthsurf"]
    assert nothing == []


def test_parse_layer_requests():
    requests = parse_layer_requests({"salinity": {"layer": "so_layer", "variable": "so_mean"}})
    assert requests == {"salinity": LayerRequest("so_layer", "so_mean")}


def test_layer_columns_suffix_variable_only_when_layer_repeats():
    so_max = LayerRequest(SALINITY.layer_code, "so_max")

    assert layer_columns([SALINITY, SST]) == [SALINITY.layer_code, SST.layer_code]
    assert layer_columns([SALINITY, so_max, SST]) == [
        f"{SALINITY.layer_code}_so_mean",
        f"{SALINITY.layer_code}_so_max",
        SST.layer_code,
    ]
    assert layer_columns([SALINITY, SALINITY]) == [SALINITY.layer_code, SALINITY.layer_code]


def test_fetch_environmental_same_layer_two_variables(aoi, make_grid):
    so_max = LayerRequest(SALINITY.layer_code, "so_max")
    grids = {
        "so_mean": make_grid(lambda x, y: 30 + 0 * x, name="so_mean"),
        "so_max": make_grid(lambda x, y: 35 + 0 * x, name="so_max"),
    }
    catalog = MagicMock(spec=EnvironmentalCatalog)
    catalog.__enter__.return_value = catalog
    catalog.load_layer.side_effect = lambda code, request, bounds: grids[request.variable]

    samples = fetch_environmental(aoi, [SALINITY, so_max], catalog=catalog)

    mean_column = f"{SALINITY.layer_code}_so_mean"
    max_column = f"{SALINITY.layer_code}_so_max"
    assert list(samples.columns) == [mean_column, max_column, "geometry"]
    assert np.allclose(samples[mean_column].dropna(), 30)
    assert np.allclose(samples[max_column].dropna(), 35)
    assert catalog.load_layer.call_count == 2


def test_fetch_environmental_repeated_request_loads_once(aoi, catalog):
    samples = fetch_environmental(aoi, [SALINITY, SALINITY], catalog=catalog)

    assert list(samples.columns) == [SALINITY.layer_code, "geometry"]
    assert catalog.load_layer.call_count == 1
