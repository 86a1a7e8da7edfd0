import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pyhere import here

from seamap.errors import ConfigurationError
from seamap.geometry import Bounds

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(here(".")) / "config" / "default.yaml"

REQUIRED_SECTIONS = ("study_area", "basemap", "occurrence", "bathymetry", "environmental", "services", "paths")

DEFAULT_SERVICES = {
    "timeout": 60,
    "retries": 1,
    "obis": "https://api.obis.org/v3/occurrence",
    "datasets": {
        "Bio-ORACLE": "https://erddap.bio-oracle.org/erddap",
        "ETOPO": "https://coastwatch.pfeg.noaa.gov/erddap",
    },
}


def load_config(config_path: Union[str, Path] = CONFIG_PATH) -> Dict:
    """Loads the YAML configuration file."""
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found at: {config_path}")
    with open(config_path, "r") as f:
        try:
            config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Could not parse config file {config_path}: {e}") from e
    if not isinstance(config, dict):
        raise ConfigurationError(f"Config file {config_path} does not contain a mapping.")
    return config


def load_pipeline_config(
    config_path: Union[str, Path] = CONFIG_PATH,
    overrides: Optional[Dict[str, Any]] = None,
) -> Dict:
    """
    Loads and validates the pipeline configuration.

    The study area bounds are parsed into a `Bounds` object (stored under
    ``study_area["bounds"]``) so malformed coordinates fail here, before any
    network request is made. ``overrides`` is merged one level deep into the
    matching sections.
    """
    config = load_config(config_path)
    return validate_config(config, overrides=overrides)


def validate_config(config: Dict, overrides: Optional[Dict[str, Any]] = None) -> Dict:
    """Checks required sections and fills service defaults."""
    config = {key: dict(value) if isinstance(value, dict) else value for key, value in config.items()}
    config.setdefault("services", {})
    for section, values in (overrides or {}).items():
        current = config.get(section)
        config[section] = {**current, **values} if isinstance(current, dict) else dict(values)

    missing = [section for section in REQUIRED_SECTIONS if section not in config]
    if missing:
        raise ConfigurationError(f"Config is missing sections: {missing}")

    for section in REQUIRED_SECTIONS:
        if config[section] is None:
            config[section] = {}
        elif not isinstance(config[section], dict):
            raise ConfigurationError(f"Config section '{section}' must be a mapping, got {config[section]!r}")

    services = {**DEFAULT_SERVICES, **config["services"]}
    try:
        timeout = float(services["timeout"])
        retries = int(services["retries"])
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"services.timeout and services.retries must be numbers: {e}") from e
    if timeout <= 0:
        raise ConfigurationError("services.timeout must be a positive number of seconds.")
    if retries < 0:
        raise ConfigurationError("services.retries must not be negative.")
    services.update(timeout=timeout, retries=retries)
    config["services"] = services

    study_area = config["study_area"]
    try:
        values = {side: float(study_area[side]) for side in ("north", "south", "east", "west")}
    except KeyError as e:
        raise ConfigurationError(f"study_area is missing the bound {e}") from e
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"study_area bounds must be numbers: {e}") from e
    bounds = Bounds(**values)
    study_area["bounds"] = bounds
    study_area.setdefault("source_crs", "EPSG:4326")
    if "target_crs" not in study_area:
        raise ConfigurationError("study_area.target_crs is required.")

    tables = config["environmental"].get("tables") or {}
    for name, table in tables.items():
        if not isinstance(table, dict) or "layer" not in table or "variable" not in table:
            raise ConfigurationError(f"environmental.tables.{name} needs 'layer' and 'variable' keys.")

    if not config["basemap"].get("country"):
        raise ConfigurationError("basemap.country is required.")

    paths = config["paths"]
    paths["output_dir"] = Path(paths.get("output_dir") or "outputs")
    paths["cache_dir"] = Path(paths.get("cache_dir") or "data/cache")

    logger.debug(f"Loaded configuration for bounds {bounds}")
    return config
