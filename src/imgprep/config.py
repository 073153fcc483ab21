"""
Configuration Module

This module provides the three configuration layers of imgprep:

- defaults.yaml: the defaults table for stage parameters, shipped with
  the package and read once
- pipeline YAML: declarative description of one preprocessing pipeline
- Settings: runtime settings from environment variables / .env

Usage:
    from imgprep.config import get_default, load_pipeline_config, get_settings

    # Default rescale factor
    factor = get_default("rescale", "scaling_factor")

    # Declarative pipeline description
    config = load_pipeline_config("pipeline.yaml")

    # Runtime settings
    settings = get_settings()

Author: Matthew Hong
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from imgprep.errors import InvalidArgument


# =============================================================================
# Constants
# =============================================================================

# Structure: src/imgprep/config.py -> src/imgprep/defaults.yaml
_DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

# Top-level sections accepted in a pipeline YAML file
PIPELINE_SECTIONS = ("load", "transform_image", "transform_tensor")


# =============================================================================
# Defaults Table
# =============================================================================

@lru_cache(maxsize=1)
def get_defaults() -> Dict[str, Any]:
    """
    Load and cache the stage defaults table.

    Returns:
        Defaults dictionary keyed by stage name

    Raises:
        FileNotFoundError: If defaults.yaml is missing from the package
        yaml.YAMLError: If YAML parsing fails

    Example:
        >>> get_defaults()["rescale"]["scaling_factor"]
        255.0
    """
    if not _DEFAULTS_PATH.exists():
        raise FileNotFoundError(
            f"Defaults table not found: {_DEFAULTS_PATH}\n"
            f"Expected location: {_DEFAULTS_PATH.absolute()}"
        )

    with open(_DEFAULTS_PATH, "r") as f:
        return yaml.safe_load(f)


def reload_defaults() -> Dict[str, Any]:
    """
    Force reload of the defaults table (clears cache).

    Returns:
        Freshly loaded defaults dictionary
    """
    get_defaults.cache_clear()
    return get_defaults()


def get_default(section: str, key: str) -> Any:
    """
    Get a default stage parameter by section and key.

    Args:
        section: Stage name (e.g., "rescale", "resize")
        key: Parameter name within the stage (e.g., "scaling_factor")

    Returns:
        The default value

    Raises:
        KeyError: If section or key not found

    Example:
        >>> get_default("load", "color_mode")
        'RGB'
    """
    defaults = get_defaults()

    if section not in defaults:
        available = list(defaults.keys())
        raise KeyError(
            f"Section '{section}' not found in defaults. "
            f"Available sections: {available}"
        )

    section_data = defaults[section]

    if key not in section_data:
        available = list(section_data.keys())
        raise KeyError(
            f"Key '{key}' not found in defaults.{section}. "
            f"Available keys: {available}"
        )

    return section_data[key]


# =============================================================================
# Pipeline Configuration
# =============================================================================

def parse_pipeline_config(text: str) -> Dict[str, Any]:
    """
    Parse a declarative pipeline description from YAML text.

    Args:
        text: YAML document

    Returns:
        Pipeline configuration dictionary

    Raises:
        InvalidArgument: If the document is not a mapping or has
            unknown top-level sections
    """
    try:
        config = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise InvalidArgument(f"Invalid pipeline YAML: {e}") from e

    if config is None:
        config = {}

    if not isinstance(config, dict):
        raise InvalidArgument(
            f"Pipeline config must be a mapping, got {type(config).__name__}"
        )

    unknown = [key for key in config if key not in PIPELINE_SECTIONS]
    if unknown:
        raise InvalidArgument(
            f"Unknown pipeline sections: {unknown}. "
            f"Available sections: {list(PIPELINE_SECTIONS)}"
        )

    return config


def load_pipeline_config(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load a declarative pipeline description from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Pipeline configuration dictionary

    Raises:
        FileNotFoundError: If the file does not exist
        InvalidArgument: If the file content is malformed

    Example:
        >>> config = load_pipeline_config("pipeline.yaml")
        >>> config["load"]["color_mode"]
        'BGR'
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Pipeline configuration not found: {path}")

    with open(path, "r") as f:
        return parse_pipeline_config(f.read())


# =============================================================================
# Runtime Settings
# =============================================================================

class Settings(BaseSettings):
    """Runtime settings loaded from environment variables.

    Attributes:
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
        LOG_JSON: Emit JSON log lines instead of plain text
        PIPELINE_CONFIG: Path to the pipeline YAML used by the service
        PORT: HTTP server port
    """

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    PIPELINE_CONFIG: Optional[str] = None
    PORT: int = 8300

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached Settings instance (singleton pattern).

    Returns:
        Settings instance loaded from environment
    """
    return Settings()
