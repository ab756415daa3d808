"""
Configuration loader — reads chartverify.yml into domain models.

Reads YAML, validates against the pydantic schema and returns a typed
SuiteConfig. Every failure is reported as a ConfigError.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from chartverify.core.errors import ConfigError
from chartverify.core.models.config import SuiteConfig

logger = logging.getLogger(__name__)

# Default config filenames, in lookup order
CONFIG_FILES = ("chartverify.yml", "chartverify.yaml")

__all__ = ["CONFIG_FILES", "ConfigError", "find_config_file", "load_config", "config_root"]


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for chartverify.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to the config file, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        for name in CONFIG_FILES:
            candidate = current / name
            if candidate.is_file():
                return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_config(path: Path | None = None) -> SuiteConfig:
    """Load and validate the suite configuration.

    Args:
        path: Explicit path to chartverify.yml. If None, searches upward.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if path is None:
        path = find_config_file()

    if path is None:
        raise ConfigError(
            f"No {CONFIG_FILES[0]} found. Create one or specify --config."
        )

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading suite config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = SuiteConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    names = [s.name for s in config.scenarios]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigError(f"Duplicate scenario names in {path}: {', '.join(duplicates)}")

    try:
        config.readiness_conditions()
        config.baseline_conditions()
        for dep in config.dependencies:
            [r.to_condition(dep.namespace or config.namespace) for r in dep.readiness]
    except ValueError as e:
        raise ConfigError(f"Invalid readiness condition in {path}: {e}") from e

    logger.info(
        "Loaded suite for release '%s' with %d scenario(s)", config.release, len(config.scenarios)
    )
    return config


def config_root(config_path: Path) -> Path:
    """Directory relative paths in the config are resolved against."""
    return config_path.parent.resolve()
