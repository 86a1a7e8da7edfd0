import matplotlib

matplotlib.use("Agg")

import geopandas as gpd
import pytest
from shapely.geometry import Point, box

from seamap.viz.maps import plot_occurrences, render_map_series

CRS = "EPSG:32198"


@pytest.fixture
def basemap(aoi):
    west, south, east, north = aoi.total_bounds
    return gpd.GeoDataFrame(geometry=[box(west, (south + north) / 2, east, north)], crs=CRS)


@pytest.fixture
def samples(aoi):
    centre = aoi.geometry.iloc[0].centroid
    return gpd.GeoDataFrame(
        {"depth": [-10.0, -200.0], "so_layer": [30.0, 31.0]},
        geometry=[centre, Point(centre.x + 1000, centre.y)],
        crs=CRS,
    )


def test_render_map_series(tmp_path, aoi, basemap, samples):
    occurrences = gpd.GeoDataFrame({"species": ["a", "b"]}, geometry=list(samples.geometry), crs=CRS)

    paths = render_map_series(
        tmp_path,
        aoi,
        basemap=basemap,
        occurrences=occurrences,
        bathymetry=samples[["depth", "geometry"]],
        environmental=samples,
        table_names={"salinity": "so_layer", "oxygen": "o2_layer"},
    )

    assert [p.name for p in paths] == [
        "01_study_area.png",
        "02_occurrences.png",
        "03_bathymetry.png",
        "04_salinity.png",
    ]
    assert all(p.exists() and p.stat().st_size > 0 for p in paths)


def test_render_map_series_without_data(tmp_path, aoi):
    paths = render_map_series(tmp_path, aoi)
    assert [p.name for p in paths] == ["01_study_area.png"]


def test_plot_empty_occurrences(tmp_path, aoi):
    empty = gpd.GeoDataFrame({"species": []}, geometry=gpd.points_from_xy([], [], crs=CRS), crs=CRS)
    path = plot_occurrences(aoi, None, empty, tmp_path / "empty.png")
    assert path.exists()
