# Command Line Interface for seamap
import logging
from pathlib import Path
from typing import List, Optional

import typer
from typing_extensions import Annotated

from seamap.data.environmental import EnvironmentalCatalog
from seamap.data.occurrence import fetch_occurrences
from seamap.data.services import ServiceClient
from seamap.errors import ConfigurationError, SeamapError
from seamap.flatten import aggregate_counts, write_table
from seamap.pipeline import STEPS, build_study_area, run_pipeline
from seamap.utils.io import CONFIG_PATH, load_pipeline_config
from seamap.utils.logging_utils import setup_logging

app = typer.Typer(
    name="seamap",
    help="Assemble and map geospatial data for a marine study area",
    add_completion=False,
)

ConfigOption = Annotated[
    Path,
    typer.Option(
        "--config", "-c",
        help="Path to the YAML configuration file.",
        exists=True, readable=True, resolve_path=True,
    ),
]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose logging.")]


def _load(config_path: Path) -> dict:
    try:
        return load_pipeline_config(config_path)
    except ConfigurationError as e:
        logging.error(f"Invalid configuration: {e}")
        raise typer.Exit(code=2)


def _aoi(config: dict):
    try:
        return build_study_area(config)
    except ConfigurationError as e:
        logging.error(f"Invalid configuration: {e}")
        raise typer.Exit(code=2)


@app.command()
def run(
    config_path: ConfigOption = CONFIG_PATH,
    output_dir: Annotated[
        Optional[Path],
        typer.Option(help="Directory for tables and maps. Defaults to paths.output_dir in the config."),
    ] = None,
    step: Annotated[
        Optional[List[str]],
        typer.Option("--step", "-s", help=f"Step to run (repeatable). One of: {', '.join(STEPS)}."),
    ] = None,
    verbose: VerboseOption = False,
) -> None:
    """
    Runs the full pipeline: area of interest, basemap, occurrences,
    bathymetry, environmental layers, flat tables and maps.
    """
    setup_logging(verbose=verbose)
    config = _load(config_path)
    try:
        result = run_pipeline(config, output_dir=output_dir, steps=step or None)
    except ConfigurationError as e:
        logging.error(f"Invalid configuration: {e}")
        raise typer.Exit(code=2)

    for name, path in result.tables.items():
        typer.echo(f"table {name}: {path}")
    for path in result.maps:
        typer.echo(f"map: {path}")
    if not result.ok:
        for name, message in result.failures.items():
            typer.echo(f"failed {name}: {message}", err=True)
        raise typer.Exit(code=1)


@app.command()
def aoi(
    output: Annotated[
        Path,
        typer.Option(help="GeoJSON file to write the area of interest to.", writable=True, resolve_path=True),
    ] = Path("outputs/area_of_interest.geojson"),
    config_path: ConfigOption = CONFIG_PATH,
    verbose: VerboseOption = False,
) -> None:
    """Builds the area of interest in the projected CRS and writes it as GeoJSON."""
    setup_logging(verbose=verbose)
    config = _load(config_path)
    area = _aoi(config)
    output.parent.mkdir(parents=True, exist_ok=True)
    area.to_file(output, driver="GeoJSON")
    typer.echo(f"{output} ({area.crs})")


@app.command()
def layers(
    dataset: Annotated[str, typer.Option(help="Dataset code, e.g. Bio-ORACLE.")] = "Bio-ORACLE",
    name_filter: Annotated[Optional[str], typer.Option("--filter", "-f", help="Substring of the layer code or title.")] = None,
    config_path: ConfigOption = CONFIG_PATH,
    verbose: VerboseOption = False,
) -> None:
    """Lists the environmental layers of a dataset."""
    setup_logging(verbose=verbose)
    config = _load(config_path)
    services = config["services"]
    client = ServiceClient(service="environmental", timeout=services["timeout"], retries=services["retries"])
    catalog = EnvironmentalCatalog(datasets=services["datasets"], cache_dir=config["paths"]["cache_dir"], client=client)
    try:
        with catalog:
            found = catalog.list_layers(dataset, name_filter=name_filter)
    except SeamapError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)
    if not found:
        typer.echo("No layers found.")
    for layer in found:
        typer.echo(f"{layer.layer_code}\t{layer.title}")


@app.command()
def occurrences(
    output_dir: Annotated[Path, typer.Option(help="Directory for the occurrence counts table.")] = Path("outputs/tables"),
    start_year: Annotated[Optional[int], typer.Option(help="First year to include.")] = None,
    end_year: Annotated[Optional[int], typer.Option(help="Last year to include.")] = None,
    config_path: ConfigOption = CONFIG_PATH,
    verbose: VerboseOption = False,
) -> None:
    """Downloads occurrences for the area of interest and writes summed counts per coordinate."""
    setup_logging(verbose=verbose)
    config = _load(config_path)
    services = config["services"]
    area = _aoi(config)
    try:
        points = fetch_occurrences(
            area,
            start_year=start_year,
            end_year=end_year,
            taxon=config["occurrence"].get("taxon"),
            max_records=config["occurrence"].get("max_records"),
            client=ServiceClient(service="obis", timeout=services["timeout"], retries=services["retries"]),
            url=services["obis"],
        )
    except ConfigurationError as e:
        logging.error(f"Invalid configuration: {e}")
        raise typer.Exit(code=2)
    except SeamapError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)
    path = write_table(aggregate_counts(points), output_dir, "occurrence_counts")
    typer.echo(f"{len(points)} records -> {path}")


def main():
    app()


if __name__ == "__main__":
    main()
