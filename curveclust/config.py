"""Configuration management for curveclust.

Supports loading configuration from:
1. CLI arguments (highest priority)
2. Config file (YAML)
3. Built-in defaults (lowest priority)
"""

import logging
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, model_validator

from curveclust.models.schemas import Grid

logger = logging.getLogger(__name__)


class GridConfig(BaseModel):
    """Shared evaluation grid configuration."""

    start: float = Field(default=0.0, description="First grid point")
    stop: float = Field(default=100.0, description="Upper bound of the grid")
    step: float = Field(default=1.0, gt=0.0, description="Spacing between grid points")

    def to_grid(self) -> Grid:
        return Grid(start=self.start, stop=self.stop, step=self.step)


class SmoothingConfig(BaseModel):
    """Local regression (loess) configuration."""

    degree: int = Field(default=2, ge=0, le=2, description="Local polynomial degree")
    span: float = Field(
        default=0.75,
        gt=0.0,
        description="Neighborhood size as a fraction of the group's observations",
    )


class DistanceConfig(BaseModel):
    """Pairwise distance configuration."""

    min_overlap_width: float = Field(
        default=1e-9,
        ge=0.0,
        description="Overlaps narrower than this that still hold grid points are rejected",
    )
    step_weighted: bool = Field(
        default=True,
        description="Multiply the absolute-difference sum by the grid step before normalizing",
    )


class SelectionConfig(BaseModel):
    """Cluster-count selection configuration."""

    k_min: int = Field(default=2, ge=2, description="Smallest candidate k")
    k_max: int = Field(default=8, ge=2, description="Largest candidate k")
    bootstrap_replicates: int = Field(
        default=100, ge=0, description="Reference datasets for the gap statistic (0 disables)"
    )
    random_state: int = Field(default=42, description="Random seed for reference datasets")
    max_iter: int = Field(default=100, ge=1, description="Maximum PAM swap iterations")

    @model_validator(mode="after")
    def _check_range(self) -> "SelectionConfig":
        if self.k_min > self.k_max:
            raise ValueError(f"k_min ({self.k_min}) must not exceed k_max ({self.k_max})")
        return self


class ProcessingConfig(BaseModel):
    """Execution configuration."""

    max_concurrency: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Maximum worker threads per stage",
    )
    on_insufficient_data: Literal["abort", "exclude"] = Field(
        default="abort",
        description="Abort the pipeline or exclude groups that cannot be smoothed",
    )


class Config(BaseModel):
    """Root configuration model."""

    grid: GridConfig = Field(default_factory=GridConfig)
    smoothing: SmoothingConfig = Field(default_factory=SmoothingConfig)
    distance: DistanceConfig = Field(default_factory=DistanceConfig)
    selection: SelectionConfig = Field(default_factory=SelectionConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)


# Default config paths to search (in order)
CONFIG_SEARCH_PATHS = [
    Path("./curveclust_config.yaml"),
    Path("./curveclust_config.yml"),
    Path.home() / ".curveclust" / "config.yaml",
]


def find_config_file(config_path: str | Path | None = None) -> Path | None:
    """Resolve the config file to read.

    Args:
        config_path: Explicit path; must exist when given.

    Returns:
        The explicit path, else the first existing search path, else None.
    """
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        return path
    return next((p for p in CONFIG_SEARCH_PATHS if p.exists()), None)


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from a YAML file, falling back to defaults.

    Sections missing from the file keep their defaults, and so do fields
    missing from a section.

    Args:
        config_path: Explicit path to config file. If None, searches default locations.

    Returns:
        Config object with loaded or default values.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        ValueError: If the file does not hold a mapping of sections.
        ValidationError: If a value is invalid.
    """
    path = find_config_file(config_path)
    if path is None:
        logger.debug("No config file found, using defaults")
        return Config()

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping of config sections, got {type(data).__name__}")

    logger.info(f"Loaded configuration from {path}")
    return Config.model_validate(data)


def merge_cli_overrides(
    config: Config, **overrides: str | int | float | bool | None
) -> Config:
    """Apply command-line values on top of a configuration.

    Keys name a section and a field joined by a double underscore, e.g.
    ``grid__step`` or ``selection__k_max``. None values are skipped so that
    unset options keep the configured value; unknown keys are logged and
    ignored.

    Returns:
        New, re-validated Config.
    """
    sections = config.model_dump()

    for key, value in overrides.items():
        if value is None:
            continue
        section, _, name = key.partition("__")
        if name not in sections.get(section, {}):
            logger.warning(f"Ignoring unknown config override: {key}")
            continue
        logger.debug(f"Override {section}.{name} = {value!r}")
        sections[section][name] = value

    return Config.model_validate(sections)
