"""
Suite configuration — the parsed form of chartverify.yml.

This is the canonical truth about which chart is verified, how it is
installed, what "ready" means and which scenarios make up the matrix.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from chartverify.core.models.readiness import ConditionKind, ReadinessCondition
from chartverify.core.models.results import PackageRef
from chartverify.core.models.scenario import ScenarioMode


class ConnectionConfig(BaseModel):
    """How to reach the cluster. Empty values mean kubectl defaults."""

    context: str = ""
    kubeconfig: str = ""
    request_timeout: int = 15       # seconds per kubectl read


class ReadinessSpec(BaseModel):
    """A readiness condition as written in YAML."""

    kind: ConditionKind
    target: str
    targets: list[str] = Field(default_factory=list)
    namespace: str | None = None
    key: str | None = None
    url: str | None = None
    timeout: float = 300.0
    poll_interval: float = 2.0

    def to_condition(self, default_namespace: str) -> ReadinessCondition:
        return ReadinessCondition(
            kind=self.kind,
            target_name=self.target,
            target_set=tuple(self.targets),
            namespace=self.namespace or default_namespace,
            secret_key=self.key,
            url=self.url,
            timeout=self.timeout,
            poll_interval=self.poll_interval,
        )


class ChartConfig(BaseModel):
    name: str
    path: str = ""                  # chart under test (local)
    repository: str | None = None   # where released baselines come from
    version_index: str | None = None
    version: str = ""               # default: read from <path>/Chart.yaml

    @property
    def local_ref(self) -> PackageRef:
        return PackageRef(chart=self.path or self.name)

    @property
    def released_ref(self) -> PackageRef:
        return PackageRef(chart=self.name, repository=self.repository)


class DependencyConfig(BaseModel):
    """A supporting service installed before any scenario runs."""

    release: str
    chart: str
    repository: str | None = None
    version: str | None = None
    namespace: str | None = None
    values: list[str] = Field(default_factory=list)
    readiness: list[ReadinessSpec] = Field(default_factory=list)

    @property
    def ref(self) -> PackageRef:
        return PackageRef(chart=self.chart, repository=self.repository)


class VerificationConfig(BaseModel):
    path: str = "tests"
    workdir: str = "."
    max_failures: int = Field(default=2, ge=1)
    extra_args: list[str] = Field(default_factory=list)
    timeout: int = 1800


class ReportConfig(BaseModel):
    workloads: list[str] = Field(default_factory=list)
    log_tail: int = 50
    event_limit: int = 50


class DiffConfig(BaseModel):
    context: int = 3
    normalize_versions: bool = True


class PreflightConfig(BaseModel):
    """Checks run once per cluster before the first scenario."""

    model_config = ConfigDict(populate_by_name=True)

    lint: bool = False
    strict: bool = False
    validate_manifests: bool = Field(default=False, alias="validate")   # helm template --validate
    values: list[str] | None = None     # None = the suite-wide values


class ScenarioConfig(BaseModel):
    """One matrix row."""

    name: str
    mode: ScenarioMode = ScenarioMode.INSTALL
    upgrade_from: str | None = None     # alias (stable, dev) or version
    soft_fail: bool = False
    values: list[str] | None = None     # None = the suite-wide values
    context: str | None = None          # per-scenario kube context


class SuiteConfig(BaseModel):
    """Root configuration — loaded from chartverify.yml."""

    version: int = 1

    release: str
    namespace: str = "default"
    scenario_timeout: float = 1200.0

    chart: ChartConfig
    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    values: list[str] = Field(default_factory=list)

    dependencies: list[DependencyConfig] = Field(default_factory=list)
    readiness: list[ReadinessSpec] = Field(default_factory=list)
    baseline_readiness: list[ReadinessSpec] | None = None

    verification: VerificationConfig = Field(default_factory=VerificationConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)
    diff: DiffConfig = Field(default_factory=DiffConfig)
    preflight: PreflightConfig = Field(default_factory=PreflightConfig)
    scenarios: list[ScenarioConfig] = Field(
        default_factory=lambda: [ScenarioConfig(name="install")]
    )

    def readiness_conditions(self) -> list[ReadinessCondition]:
        return [r.to_condition(self.namespace) for r in self.readiness]

    def baseline_conditions(self) -> list[ReadinessCondition]:
        specs = self.readiness if self.baseline_readiness is None else self.baseline_readiness
        return [r.to_condition(self.namespace) for r in specs]

    def get_scenario(self, name: str) -> ScenarioConfig | None:
        for scenario in self.scenarios:
            if scenario.name == name:
                return scenario
        return None
