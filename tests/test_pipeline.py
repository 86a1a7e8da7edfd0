from pathlib import Path
from unittest.mock import patch

import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import Point, box

from seamap.errors import ConfigurationError, ServiceTimeoutError, UnknownRegionError
from seamap.pipeline import STEPS, build_study_area, run_pipeline
from seamap.utils.io import load_pipeline_config

DEFAULT_CONFIG = Path(__file__).resolve().parents[1] / "config" / "default.yaml"
CRS = "EPSG:32198"


@pytest.fixture
def config():
    return load_pipeline_config(DEFAULT_CONFIG)


@pytest.fixture
def loaders():
    occurrences = gpd.GeoDataFrame(
        {"species": ["a", "a"], "count": pd.array([pd.NA, 2], dtype="Int64")},
        geometry=[Point(0, 0), Point(0, 0)],
        crs=CRS,
    )
    bathymetry = gpd.GeoDataFrame({"depth": [-40.0]}, geometry=[Point(10, 10)], crs=CRS)
    environmental = gpd.GeoDataFrame(
        {"so_baseline_2000_2019_depthsurf": [31.0], "thetao_baseline_2000_2019_depthsurf": [4.5]},
        geometry=[Point(10, 10)],
        crs=CRS,
    )
    basemap = gpd.GeoDataFrame(geometry=[box(0, 0, 10, 10)], crs=CRS)
    with patch("seamap.pipeline.load_basemap", return_value=basemap) as load_basemap, \
            patch("seamap.pipeline.fetch_occurrences", return_value=occurrences) as fetch_occurrences, \
            patch("seamap.pipeline.fetch_bathymetry", return_value=bathymetry) as fetch_bathymetry, \
            patch("seamap.pipeline.fetch_environmental", return_value=environmental) as fetch_environmental, \
            patch("seamap.pipeline.render_map_series", return_value=[Path("map.png")]) as render:
        yield {
            "basemap": load_basemap,
            "occurrences": fetch_occurrences,
            "bathymetry": fetch_bathymetry,
            "environmental": fetch_environmental,
            "maps": render,
        }


def test_full_run(tmp_path, config, loaders):
    result = run_pipeline(config, output_dir=tmp_path)

    assert result.ok
    assert result.aoi.crs.to_epsg() == 32198
    assert set(result.tables) == {"occurrence_counts", "salinity", "sst", "bathymetry"}
    for path in result.tables.values():
        assert path.exists()
        assert path.parent == tmp_path / "tables"
    counts = pd.read_csv(result.tables["occurrence_counts"])
    assert counts["count"].tolist() == [3]
    assert result.maps == [Path("map.png")]


def test_loaders_receive_config(tmp_path, config, loaders):
    run_pipeline(config, output_dir=tmp_path)

    occ_kwargs = loaders["occurrences"].call_args.kwargs
    assert occ_kwargs["start_year"] == 2016
    assert occ_kwargs["end_year"] is None
    assert occ_kwargs["client"].timeout == 60
    assert loaders["basemap"].call_args.kwargs["country"] == "Canada"
    layers = loaders["environmental"].call_args.args[1]
    assert [layer.variable for layer in layers] == ["so_mean", "thetao_mean"]
    assert loaders["maps"].call_args.kwargs["table_names"] == {
        "salinity": "so_baseline_2000_2019_depthsurf",
        "sst": "thetao_baseline_2000_2019_depthsurf",
    }


def test_remote_failure_does_not_stop_run(tmp_path, config, loaders):
    loaders["occurrences"].side_effect = ServiceTimeoutError("no response", service="obis")

    result = run_pipeline(config, output_dir=tmp_path)

    assert not result.ok
    assert set(result.failures) == {"occurrences"}
    assert result.occurrences is None
    assert "occurrence_counts" not in result.tables
    assert "bathymetry" in result.tables


def test_configuration_error_aborts(tmp_path, config, loaders):
    loaders["basemap"].side_effect = UnknownRegionError("No basemap feature matches country 'Atlantis'")

    with pytest.raises(ConfigurationError):
        run_pipeline(config, output_dir=tmp_path)
    loaders["occurrences"].assert_not_called()


def test_step_selection(tmp_path, config, loaders):
    result = run_pipeline(config, output_dir=tmp_path, steps=["bathymetry", "tables"])

    loaders["basemap"].assert_not_called()
    loaders["occurrences"].assert_not_called()
    loaders["maps"].assert_not_called()
    assert set(result.tables) == {"bathymetry"}


def test_unknown_step(config):
    with pytest.raises(ConfigurationError):
        run_pipeline(config, steps=["teleport"])


def test_steps_are_ordered():
    assert STEPS[0] == "basemap" and STEPS[-1] == "maps"


def test_bathymetry_buffer_from_config(tmp_path, config, loaders):
    config["bathymetry"]["buffer"] = 5000

    run_pipeline(config, output_dir=tmp_path, steps=["bathymetry"])

    assert loaders["bathymetry"].call_args.kwargs["buffer"] == 5000


def test_same_layer_tables_get_distinct_columns(tmp_path, config, loaders):
    layer = "so_baseline_2000_2019_depthsurf"
    config["environmental"]["tables"] = {
        "salinity": {"layer": layer, "variable": "so_mean"},
        "salinity_max": {"layer": layer, "variable": "so_max"},
    }

    run_pipeline(config, output_dir=tmp_path, steps=["environmental", "maps"])

    assert loaders["maps"].call_args.kwargs["table_names"] == {
        "salinity": f"{layer}_so_mean",
        "salinity_max": f"{layer}_so_max",
    }


def test_build_study_area_densifies_edges(config):
    plain = build_study_area(config)
    config["study_area"]["max_segment_length"] = 0.1
    dense = build_study_area(config)

    assert len(dense.geometry.iloc[0].exterior.coords) > len(plain.geometry.iloc[0].exterior.coords)
