"""Local chart metadata — read Chart.yaml of the chart under test."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from chartverify.core.errors import ConfigError
from chartverify.core.models.results import ChartMetadata

logger = logging.getLogger(__name__)


def read_chart_metadata(chart_dir: Path) -> ChartMetadata:
    """Parse ``<chart_dir>/Chart.yaml``.

    Raises:
        ConfigError: the file is missing, unparseable or has no version.
    """
    chart_file = chart_dir / "Chart.yaml"
    if not chart_file.is_file():
        raise ConfigError(f"No Chart.yaml in {chart_dir}")

    try:
        data = yaml.safe_load(chart_file.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read {chart_file}: {e}") from e

    if not isinstance(data, dict) or not data.get("version"):
        raise ConfigError(f"{chart_file} does not declare a chart version")

    meta = ChartMetadata(
        name=str(data.get("name", chart_dir.name)),
        version=str(data["version"]),
        app_version=str(data.get("appVersion", "") or ""),
        description=str(data.get("description", "") or ""),
    )
    logger.debug("Local chart %s version %s", meta.name, meta.version)
    return meta
