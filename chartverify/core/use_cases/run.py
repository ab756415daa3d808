"""
Run use case — verify the chart across the scenario matrix.

This is the top-level orchestrator: it loads config, connects to the
cluster, installs supporting services, resolves baseline versions,
runs each scenario through the ScenarioRunner and appends the results
to the audit ledger. The full vertical slice from ``chartverify run``
to an audited verdict.

Scenarios run one after another. A failed scenario never stops the
matrix; the overall run fails if any scenario failed.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from chartverify.adapters.registry import AdapterRegistry
from chartverify.core.config.loader import ConfigError, config_root, find_config_file, load_config
from chartverify.core.engine.scenario_runner import (
    RunnerSettings,
    ScenarioResult,
    ScenarioRunner,
    StepRecord,
    generate_run_id,
    normalize_versions,
    write_audit_entry,
)
from chartverify.core.errors import RenderError, VerifyError
from chartverify.core.models.config import ConnectionConfig, ScenarioConfig, SuiteConfig
from chartverify.core.models.results import ScenarioOutcome, ScenarioStep
from chartverify.core.models.scenario import ScenarioDescriptor, ScenarioMode
from chartverify.core.persistence.audit import AuditWriter
from chartverify.core.services.chart_metadata import read_chart_metadata
from chartverify.core.services.cluster_session import ClusterSession
from chartverify.core.services.package_installer import PackageInstaller
from chartverify.core.services.readiness import ReadinessProbe
from chartverify.core.services.report_collector import ReportCollector
from chartverify.core.services.verification import VerificationSuite
from chartverify.core.services.version_index import VersionIndex

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Result of running the scenario matrix."""

    run_id: str = ""
    config: SuiteConfig | None = None
    config_root: Path | None = None
    results: list[ScenarioResult] = field(default_factory=list)
    error: str | None = None

    @property
    def failed(self) -> list[ScenarioResult]:
        return [r for r in self.results if not r.passed]

    @property
    def ok(self) -> bool:
        return self.error is None and not self.failed

    def to_dict(self) -> dict:
        data: dict = {"run_id": self.run_id, "ok": self.ok}
        if self.error:
            data["error"] = self.error
            return data
        data["release"] = self.config.release if self.config else ""
        data["namespace"] = self.config.namespace if self.config else ""
        data["config_root"] = str(self.config_root)
        data["scenarios"] = [r.to_dict() for r in self.results]
        return data


# ── Wiring ───────────────────────────────────────────────────────


def build_registry(
    connection: ConnectionConfig,
    root: Path,
    *,
    dry_run: bool = False,
) -> AdapterRegistry:
    """Registry with helm, kubectl and pytest bound to one kube context.

    With ``dry_run`` only read-only actions reach the tools.
    """
    from chartverify.adapters.kubernetes.helm import HelmAdapter
    from chartverify.adapters.kubernetes.kubectl import KubectlAdapter
    from chartverify.adapters.testing.pytest_suite import PytestAdapter

    registry = AdapterRegistry(dry_run=dry_run, working_dir=str(root))
    registry.register(HelmAdapter(kube_context=connection.context, kubeconfig=connection.kubeconfig))
    registry.register(
        KubectlAdapter(
            context=connection.context,
            kubeconfig=connection.kubeconfig,
            request_timeout=connection.request_timeout,
        )
    )
    registry.register(PytestAdapter())
    return registry


def scenario_connection(config: SuiteConfig, scenario: ScenarioConfig) -> ConnectionConfig:
    if not scenario.context:
        return config.connection
    return config.connection.model_copy(update={"context": scenario.context})


def resolve_to_version(config: SuiteConfig, root: Path) -> str:
    """The version under test: configured, or read from the local Chart.yaml.

    Raises:
        ConfigError: no version configured and Chart.yaml unusable.
    """
    if config.chart.version:
        return config.chart.version
    if not config.chart.path:
        raise ConfigError("chart.version is required when chart.path is not set")
    return read_chart_metadata(root / config.chart.path).version


def build_descriptor(
    config: SuiteConfig,
    scenario: ScenarioConfig,
    to_version: str,
    index: VersionIndex,
) -> ScenarioDescriptor:
    """Turn one matrix row into a descriptor, resolving the baseline alias.

    Raises:
        ConfigError: upgrade scenario without ``upgrade_from``.
        PackageNotFound: the alias is not in the version index.
    """
    values = config.values if scenario.values is None else scenario.values
    if scenario.mode is ScenarioMode.INSTALL:
        return ScenarioDescriptor.install(
            to_version, name=scenario.name, values_overlay=values, soft_fail=scenario.soft_fail
        )

    if not scenario.upgrade_from:
        raise ConfigError(f"Scenario '{scenario.name}': upgrade_from is required for upgrades")
    from_version = index.resolve(config.chart.name, scenario.upgrade_from)
    alias = None if from_version == scenario.upgrade_from else scenario.upgrade_from
    return ScenarioDescriptor.upgrade(
        from_version,
        to_version,
        name=scenario.name,
        baseline_alias=alias,
        values_overlay=values,
        soft_fail=scenario.soft_fail,
    )


def runner_settings(config: SuiteConfig) -> RunnerSettings:
    return RunnerSettings(
        chart_ref=config.chart.local_ref,
        baseline_ref=config.chart.released_ref,
        namespace=config.namespace,
        readiness=config.readiness_conditions(),
        baseline_readiness=config.baseline_conditions() if config.baseline_readiness is not None else None,
        report_workloads=list(config.report.workloads),
        scenario_timeout=config.scenario_timeout,
        diff_context=config.diff.context,
        rewrite_factory=normalize_versions if config.diff.normalize_versions else None,
    )


def install_dependencies(
    config: SuiteConfig,
    registry: AdapterRegistry,
    probe: ReadinessProbe,
    root: Path,
) -> None:
    """Install supporting services (e.g. an ACME test server) and wait for them.

    Raises:
        VerifyError: the first dependency that fails to install or get ready.
    """
    for dep in config.dependencies:
        namespace = dep.namespace or config.namespace
        installer = PackageInstaller(registry, dep.release, namespace, cwd=str(root))
        logger.info("Installing dependency %s (%s)", dep.release, dep.ref.describe())
        installer.install(dep.ref, dep.values, dep.version, upgrade=True).raise_for_error()
        probe.wait_for_all([r.to_condition(namespace) for r in dep.readiness])


def reset_release(installer: PackageInstaller) -> bool:
    """Uninstall the release if an earlier scenario left it deployed.

    Every scenario starts from an absent release, so an upgrade's plain
    ``helm install`` of its baseline never collides with the release the
    previous scenario deployed. Returns True when something was removed.

    Raises:
        ClusterUnavailable: the release could not be read.
        ApplyError: ``helm uninstall`` failed.
    """
    if not installer.current_state():
        return False
    logger.info("Release %s is deployed; uninstalling for a clean start", installer.release)
    installer.uninstall().raise_for_error()
    return True


def run_preflight(config: SuiteConfig, installer: PackageInstaller, to_version: str) -> None:
    """``helm lint`` and ``helm template --validate`` the chart under test.

    Raises:
        RenderError: lint failed, or the API server rejected the manifests.
        PackageNotFound: the chart could not be loaded.
    """
    preflight = config.preflight
    values = config.values if preflight.values is None else preflight.values
    if preflight.lint:
        lint = installer.lint(config.chart.local_ref, values, strict=preflight.strict)
        if not lint.success:
            message = lint.error.message if lint.error else "helm lint failed"
            raise RenderError(f"Lint failed: {message}", context={"chart": config.chart.local_ref.chart})
    if preflight.validate_manifests:
        installer.render(config.chart.local_ref, values, to_version, validate=True)
        logger.info("Manifests of %s validated against the cluster", config.chart.local_ref.chart)


# ── Entry point ──────────────────────────────────────────────────


def run_scenarios(
    config_path: Path | None = None,
    names: list[str] | None = None,
    *,
    registry: AdapterRegistry | None = None,
    audit: bool = True,
    on_step: Callable[[ScenarioDescriptor, StepRecord], None] | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
    version_index: VersionIndex | None = None,
) -> RunResult:
    """Run the configured scenario matrix.

    Args:
        config_path: Optional explicit path to chartverify.yml.
        names: Scenario names to run. None = all, in config order.
        registry: Optional pre-configured registry, shared by every
            scenario (its kube context wins over per-scenario ones).
        audit: Append each scenario result to the audit ledger.
        on_step: Progress callback, called after every step.
        clock, sleep: Time sources handed to the runner and probes.
        version_index: Optional pre-built index (default: from config).

    Returns:
        RunResult with one ScenarioResult per scenario run.
    """
    result = RunResult(run_id=generate_run_id())

    # ── Load config ──────────────────────────────────────────────
    try:
        if config_path is None:
            config_path = find_config_file()
        config = load_config(config_path)
    except ConfigError as e:
        result.error = e.message
        return result

    assert config_path is not None  # load_config raised otherwise
    root = config_root(config_path)
    result.config = config
    result.config_root = root

    # ── Select scenarios ─────────────────────────────────────────
    selected = config.scenarios
    if names:
        unknown = [n for n in names if config.get_scenario(n) is None]
        if unknown:
            result.error = f"Unknown scenario(s): {', '.join(unknown)}"
            return result
        selected = [s for s in config.scenarios if s.name in names]

    # ── Resolve versions ─────────────────────────────────────────
    index = version_index or VersionIndex(config.chart.version_index)
    try:
        to_version = resolve_to_version(config, root)
        descriptors = [build_descriptor(config, s, to_version, index) for s in selected]
    except VerifyError as e:
        result.error = e.message
        return result

    # ── Run ──────────────────────────────────────────────────────
    settings = runner_settings(config)
    collector = ReportCollector(log_tail=config.report.log_tail, event_limit=config.report.event_limit)
    audit_writer = AuditWriter(root=root) if audit else None
    prepared: dict[str, tuple[AdapterRegistry, ClusterSession | None, VerifyError | None]] = {}

    for scenario, descriptor in zip(selected, descriptors):
        connection = scenario_connection(config, scenario)
        key = connection.context
        if key not in prepared:
            prepared[key] = _prepare_cluster(config, connection, root, to_version, registry, clock, sleep)
        scenario_registry, session, setup_error = prepared[key]

        installer = PackageInstaller(scenario_registry, config.release, config.namespace, cwd=str(root))
        if setup_error is None:
            try:
                reset_release(installer)
            except VerifyError as e:
                setup_error = e

        if setup_error is not None:
            scenario_result = _failed_before_start(descriptor, setup_error, collector, session, config.namespace)
        else:
            assert session is not None
            runner = ScenarioRunner(
                installer=installer,
                probe=ReadinessProbe(session, namespace=config.namespace, clock=clock, sleep=sleep),
                suite=VerificationSuite(
                    scenario_registry,
                    test_path=config.verification.path,
                    workdir=str(root / config.verification.workdir),
                    max_failures=config.verification.max_failures,
                    extra_args=config.verification.extra_args,
                    timeout=config.verification.timeout,
                ),
                collector=collector,
                session=session,
                settings=settings,
                clock=clock,
                on_step=(lambda record, d=descriptor: on_step(d, record)) if on_step else None,
            )
            scenario_result = runner.run(descriptor)

        result.results.append(scenario_result)
        if audit_writer is not None:
            write_audit_entry(
                scenario_result,
                audit_writer,
                run_id=result.run_id,
                release=config.release,
                namespace=config.namespace,
            )

    logger.info(
        "Run %s: %d/%d scenario(s) passed",
        result.run_id, len(result.results) - len(result.failed), len(result.results),
    )
    return result


def _prepare_cluster(
    config: SuiteConfig,
    connection: ConnectionConfig,
    root: Path,
    to_version: str,
    registry: AdapterRegistry | None,
    clock: Callable[[], float],
    sleep: Callable[[float], None],
) -> tuple[AdapterRegistry, ClusterSession | None, VerifyError | None]:
    """Connect to one kube context, install the dependencies and run the pre-flight there once."""
    scenario_registry = registry or build_registry(connection, root)
    try:
        session = ClusterSession.connect(connection, scenario_registry)
    except VerifyError as e:
        return scenario_registry, None, e

    try:
        probe = ReadinessProbe(session, namespace=config.namespace, clock=clock, sleep=sleep)
        install_dependencies(config, scenario_registry, probe, root)
        installer = PackageInstaller(scenario_registry, config.release, config.namespace, cwd=str(root))
        run_preflight(config, installer, to_version)
    except VerifyError as e:
        logger.error("Cluster setup failed: %s", e.message)
        return scenario_registry, session, e
    return scenario_registry, session, None


def _failed_before_start(
    descriptor: ScenarioDescriptor,
    error: VerifyError,
    collector: ReportCollector,
    session: ClusterSession | None,
    namespace: str,
) -> ScenarioResult:
    """Result for a scenario whose cluster could not be prepared or whose release could not be reset."""
    logger.error("✗ Scenario %s not started: %s", descriptor.label, error.message)
    return ScenarioResult(
        descriptor=descriptor,
        outcome=ScenarioOutcome.FAILED,
        steps=[StepRecord(step=ScenarioStep.FAILED, status="failed", detail=error.message)],
        error=error.to_info(),
        report=collector.collect(session, namespace, []),
    )
