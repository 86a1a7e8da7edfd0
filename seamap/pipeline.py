"""
The study area pipeline.

Steps run in order: area of interest, basemap, occurrences, bathymetry,
environmental layers, tables, maps. Configuration errors abort the run. A
failing remote step only loses its own output: the error is logged and
recorded in `PipelineResult.failures` and the run carries on.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import geopandas as gpd

from seamap.data.bathymetry import ETOPO_URL, fetch_bathymetry
from seamap.data.boundaries import load_basemap
from seamap.data.environmental import EnvironmentalCatalog, fetch_environmental, layer_columns, parse_layer_requests
from seamap.data.griddap import GriddapClient
from seamap.data.occurrence import fetch_occurrences
from seamap.data.services import ServiceClient
from seamap.errors import BasemapUnavailableError, ConfigurationError, LayerLookupError, RemoteServiceError
from seamap.flatten import flatten_outputs
from seamap.geometry import build_area_of_interest
from seamap.viz.maps import render_map_series

logger = logging.getLogger(__name__)

STEPS = ("basemap", "occurrences", "bathymetry", "environmental", "tables", "maps")
RECOVERABLE_ERRORS = (RemoteServiceError, BasemapUnavailableError, LayerLookupError)


@dataclass
class PipelineResult:
    """Everything a pipeline run produced."""
    aoi: gpd.GeoDataFrame
    basemap: Optional[gpd.GeoDataFrame] = None
    occurrences: Optional[gpd.GeoDataFrame] = None
    bathymetry: Optional[gpd.GeoDataFrame] = None
    environmental: Optional[gpd.GeoDataFrame] = None
    tables: Dict[str, Path] = field(default_factory=dict)
    maps: List[Path] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


def _run_step(result: PipelineResult, name: str, step: Callable[[], Any]) -> Any:
    logger.info(f"Running step: {name}")
    try:
        return step()
    except ConfigurationError:
        raise
    except RECOVERABLE_ERRORS as e:
        logger.error(f"Step {name} failed: {e}")
        result.failures[name] = str(e)
        return None


def _service_client(config: Dict, service: str) -> ServiceClient:
    services = config["services"]
    return ServiceClient(service=service, timeout=services["timeout"], retries=services["retries"])


def build_study_area(config: Dict) -> gpd.GeoDataFrame:
    """Builds the area of interest described by the ``study_area`` config section."""
    study_area = config["study_area"]
    return build_area_of_interest(
        study_area["bounds"],
        source_crs=study_area["source_crs"],
        target_crs=study_area["target_crs"],
        max_segment_length=study_area.get("max_segment_length"),
    )


def run_pipeline(
    config: Dict,
    output_dir: Optional[Union[str, Path]] = None,
    steps: Optional[List[str]] = None,
) -> PipelineResult:
    """
    Runs the pipeline for a validated configuration.

    Args:
        config: Configuration from `seamap.utils.io.load_pipeline_config`.
        output_dir: Overrides ``paths.output_dir``.
        steps: Subset of `STEPS` to run; all of them by default. The area of
            interest is always built.

    Returns:
        A `PipelineResult`.
    """
    steps = list(steps) if steps is not None else list(STEPS)
    unknown = set(steps) - set(STEPS)
    if unknown:
        raise ConfigurationError(f"Unknown pipeline steps: {sorted(unknown)}. Choose from {STEPS}")

    paths = config["paths"]
    output_dir = Path(output_dir) if output_dir is not None else Path(paths["output_dir"])
    cache_dir = Path(paths["cache_dir"])
    datasets = config["services"]["datasets"]

    aoi = build_study_area(config)
    result = PipelineResult(aoi=aoi)

    if "basemap" in steps:
        basemap_cfg = config["basemap"]
        result.basemap = _run_step(result, "basemap", lambda: load_basemap(
            aoi,
            country=basemap_cfg["country"],
            scale=basemap_cfg.get("scale", "50m"),
            buffer=basemap_cfg.get("buffer", 20000),
        ))

    if "occurrences" in steps:
        occ_cfg = config["occurrence"]
        result.occurrences = _run_step(result, "occurrences", lambda: fetch_occurrences(
            aoi,
            start_year=occ_cfg.get("start_year"),
            end_year=occ_cfg.get("end_year"),
            taxon=occ_cfg.get("taxon"),
            page_size=occ_cfg.get("page_size", 5000),
            max_records=occ_cfg.get("max_records"),
            mask=occ_cfg.get("mask", False),
            client=_service_client(config, "obis"),
            url=config["services"]["obis"],
        ))

    if "bathymetry" in steps:
        bathy_cfg = config["bathymetry"]
        griddap = GriddapClient(
            datasets.get("ETOPO", ETOPO_URL),
            cache_dir=cache_dir / "ETOPO",
            client=_service_client(config, "etopo"),
        )
        result.bathymetry = _run_step(result, "bathymetry", lambda: fetch_bathymetry(
            aoi,
            resolution=bathy_cfg.get("resolution", 1),
            buffer=bathy_cfg.get("buffer", 0),
            mask=bathy_cfg.get("mask", False),
            griddap=griddap,
        ))

    env_cfg = config["environmental"]
    layer_requests = parse_layer_requests(env_cfg.get("tables") or {})
    table_names = dict(zip(layer_requests, layer_columns(list(layer_requests.values()))))
    if "environmental" in steps and layer_requests:
        catalog = EnvironmentalCatalog(
            datasets=datasets,
            cache_dir=cache_dir,
            client=_service_client(config, "environmental"),
        )
        result.environmental = _run_step(result, "environmental", lambda: fetch_environmental(
            aoi,
            list(layer_requests.values()),
            dataset_code=env_cfg.get("dataset", "Bio-ORACLE"),
            buffer=env_cfg.get("buffer", 20000),
            mask=env_cfg.get("mask", True),
            catalog=catalog,
        ))

    if "tables" in steps:
        result.tables = flatten_outputs(
            output_dir / "tables",
            occurrences=result.occurrences,
            environmental=result.environmental,
            table_names=table_names,
            bathymetry=result.bathymetry,
        )

    if "maps" in steps:
        result.maps = render_map_series(
            output_dir / "maps",
            aoi,
            basemap=result.basemap,
            occurrences=result.occurrences,
            bathymetry=result.bathymetry,
            environmental=result.environmental,
            table_names=table_names,
        )

    if result.failures:
        logger.warning(f"Pipeline finished with failed steps: {sorted(result.failures)}")
    else:
        logger.info("Pipeline finished.")
    return result
