"""
Config check use case — validate chartverify.yml and report issues.

Offline: nothing here talks to the cluster or the version index. Tool
availability is only looked up on PATH.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from chartverify.core.config.loader import ConfigError, config_root, find_config_file, load_config
from chartverify.core.models.config import SuiteConfig
from chartverify.core.models.readiness import ConditionKind
from chartverify.core.models.scenario import ScenarioMode
from chartverify.core.services.version_index import looks_like_version
from chartverify.core.use_cases.run import build_registry


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    config: SuiteConfig | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "release": self.config.release if self.config else None,
            "scenario_count": len(self.config.scenarios) if self.config else 0,
            "dependency_count": len(self.config.dependencies) if self.config else 0,
        }


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate the suite configuration and report issues.

    Args:
        config_path: Optional explicit path to chartverify.yml.

    Returns:
        ConfigCheckResult with validation status and any issues.
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_config_file()
    if config_path is None:
        result.errors.append("No chartverify.yml found.")
        return result
    result.config_path = config_path

    try:
        config = load_config(config_path)
    except ConfigError as e:
        result.errors.append(e.message)
        return result
    result.config = config
    root = config_root(config_path)

    # Chart
    if config.chart.path:
        chart_dir = root / config.chart.path
        if not (chart_dir / "Chart.yaml").is_file():
            result.errors.append(f"chart.path has no Chart.yaml: {config.chart.path}")
    elif not config.chart.version:
        result.errors.append("chart.version is required when chart.path is not set")

    # Scenarios
    for scenario in config.scenarios:
        if scenario.mode is ScenarioMode.UPGRADE:
            if not scenario.upgrade_from:
                result.errors.append(f"Scenario '{scenario.name}': upgrade_from is required for upgrades")
            elif not looks_like_version(scenario.upgrade_from):
                if not config.chart.version_index:
                    result.errors.append(
                        f"Scenario '{scenario.name}': alias '{scenario.upgrade_from}' "
                        "needs chart.version_index"
                    )
                if not config.chart.repository:
                    result.warnings.append(
                        f"Scenario '{scenario.name}': no chart.repository, the baseline "
                        "is installed from the local chart name"
                    )
        elif scenario.upgrade_from:
            result.errors.append(f"Scenario '{scenario.name}': upgrade_from is only valid for upgrades")

    # Values files
    value_files = list(config.values)
    for scenario in config.scenarios:
        value_files.extend(scenario.values or [])
    for dep in config.dependencies:
        value_files.extend(dep.values)
    for path in sorted(set(value_files)):
        if not (root / path).is_file():
            result.warnings.append(f"Values file does not exist: {path}")

    # Readiness
    if not config.readiness:
        result.warnings.append("No readiness conditions: scenarios verify right after deploy.")
    services = [r for r in config.readiness if r.kind is ConditionKind.EXTERNAL_SERVICE_UP]
    for spec in services:
        if spec.timeout > config.scenario_timeout:
            result.warnings.append(
                f"Readiness timeout of {spec.target} exceeds scenario_timeout "
                f"({spec.timeout}s > {config.scenario_timeout}s)"
            )

    # Verification
    if not (root / config.verification.workdir / config.verification.path).exists():
        result.warnings.append(f"Verification path does not exist: {config.verification.path}")

    # Tools
    registry = build_registry(config.connection, root)
    for name, status in registry.adapter_status().items():
        if not status["available"]:
            result.warnings.append(f"Tool not available: {name}")

    result.valid = len(result.errors) == 0
    return result
