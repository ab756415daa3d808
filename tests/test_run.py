"""
Tests for the run use case — the whole matrix against a scripted cluster.
"""

import json
import textwrap

import pytest

from chartverify.adapters.mock import MockAdapter
from chartverify.adapters.registry import AdapterRegistry
from chartverify.core.errors import ApplyError, ConfigError, PackageNotFound
from chartverify.core.models.results import PackageRef, ScenarioOutcome, ScenarioStep
from chartverify.core.models.scenario import ScenarioMode
from chartverify.core.persistence.audit import AuditWriter
from chartverify.core.services.version_index import VersionIndex
from chartverify.core.use_cases.run import (
    build_descriptor,
    build_registry,
    reset_release,
    resolve_to_version,
    run_scenarios,
)
from chartverify.core.services.package_installer import PackageInstaller
from chartverify.core.config.loader import load_config

from conftest import failed, ok, workload_json

INFO = {"jupyterhub": {"stable": "1.2.3", "dev": "1.3.0-n042.h1234abc"}}

MANIFEST = "apiVersion: apps/v1\nkind: Deployment\nmetadata:\n  name: hub\n"


@pytest.fixture
def index():
    return VersionIndex("https://example.org/info.json", fetch=lambda url: INFO)


def script_cluster(mock: MockAdapter) -> MockAdapter:
    """A healthy cluster: hub and proxy rolled out, tests passing."""
    mock.set_output("kubectl:version", json.dumps({"serverVersion": {"gitVersion": "v1.29.0"}}))
    mock.set_output("kubectl:get:deployment/hub", json.dumps(workload_json("hub")))
    mock.set_output("kubectl:get:deployment/proxy", json.dumps(workload_json("proxy")))
    mock.set_output("kubectl:get:workloads:default", json.dumps({"items": [workload_json("hub")]}))
    mock.set_output("kubectl:get:pods:default", json.dumps({"items": []}))
    mock.set_output("kubectl:get:events:default", json.dumps({"items": []}))
    mock.set_output("pytest:tests", "==== 3 passed in 1.00s ====\n")
    return mock


class ReleaseTrackingHelm(MockAdapter):
    """Mock that remembers whether the release exists, the way helm does."""

    def __init__(self):
        super().__init__()
        self.installed: set[str] = set()

    def execute(self, context):
        receipt = super().execute(context)
        if context.action.adapter != "helm":
            return receipt
        verb, _, release = context.action.id.removeprefix("helm:").partition(":")
        if verb == "install":
            if release in self.installed:
                return failed("Error: INSTALLATION FAILED: cannot re-use a name that is still in use")
            self.installed.add(release)
        elif verb == "upgrade":
            self.installed.add(release)
        elif verb == "uninstall":
            if release not in self.installed:
                return failed(f"Error: uninstall: Release not loaded: {release}: release: not found")
            self.installed.discard(release)
        elif verb == "get-manifest":
            return ok(MANIFEST) if release in self.installed else failed("Error: release: not found")
        return receipt


@pytest.fixture
def cluster(mock_adapter):
    return script_cluster(mock_adapter)


@pytest.fixture
def tracking_helm():
    return script_cluster(ReleaseTrackingHelm())


@pytest.fixture
def tracking_registry(tracking_helm, suite_dir):
    reg = AdapterRegistry(working_dir=str(suite_dir))
    reg.set_mock_mode(True, tracking_helm)
    return reg


class TestDescriptors:
    def test_to_version_from_chart_yaml(self, suite_dir):
        config = load_config(suite_dir / "chartverify.yml")
        assert resolve_to_version(config, suite_dir) == "1.3.0-dev"

    def test_configured_version_wins(self, suite_dir):
        config = load_config(suite_dir / "chartverify.yml")
        config.chart.version = "9.9.9"
        assert resolve_to_version(config, suite_dir) == "9.9.9"

    def test_alias_resolved(self, suite_dir, index):
        config = load_config(suite_dir / "chartverify.yml")
        descriptor = build_descriptor(config, config.get_scenario("upgrade-dev"), "1.3.0-dev", index)
        assert descriptor.mode is ScenarioMode.UPGRADE
        assert descriptor.from_version == "1.3.0-n042.h1234abc"
        assert descriptor.baseline_alias == "dev"
        assert descriptor.soft_fail
        assert descriptor.values_overlay == ("dev-config.yaml",)

    def test_literal_baseline_has_no_alias(self, suite_dir, index):
        config = load_config(suite_dir / "chartverify.yml")
        scenario = config.get_scenario("upgrade-stable").model_copy(update={"upgrade_from": "1.1.0"})
        descriptor = build_descriptor(config, scenario, "1.3.0-dev", index)
        assert descriptor.from_version == "1.1.0"
        assert descriptor.baseline_alias is None

    def test_unknown_alias(self, suite_dir):
        config = load_config(suite_dir / "chartverify.yml")
        empty = VersionIndex("https://example.org/info.json", fetch=lambda url: {"jupyterhub": {}})
        with pytest.raises(PackageNotFound):
            build_descriptor(config, config.get_scenario("upgrade-stable"), "1.3.0-dev", empty)

    def test_upgrade_needs_baseline(self, suite_dir, index):
        config = load_config(suite_dir / "chartverify.yml")
        scenario = config.get_scenario("upgrade-stable").model_copy(update={"upgrade_from": None})
        with pytest.raises(ConfigError):
            build_descriptor(config, scenario, "1.3.0-dev", index)


class TestRegistry:
    def test_tools_registered(self, suite_dir):
        config = load_config(suite_dir / "chartverify.yml")
        registry = build_registry(config.connection, suite_dir)
        assert sorted(registry.list_adapters()) == ["helm", "kubectl", "pytest"]
        assert registry.working_dir == str(suite_dir)

    def test_read_only_registry(self, suite_dir):
        config = load_config(suite_dir / "chartverify.yml")
        registry = build_registry(config.connection, suite_dir, dry_run=True)
        assert registry.dry_run


class TestRunScenarios:
    def test_matrix(self, suite_dir, registry, cluster, clock, index):
        result = run_scenarios(
            suite_dir / "chartverify.yml",
            registry=registry,
            clock=clock,
            sleep=clock.sleep,
            version_index=index,
        )

        assert result.error is None
        assert result.ok
        assert [r.descriptor.label for r in result.results] == ["install", "upgrade-stable", "upgrade-dev"]
        assert all(r.outcome is ScenarioOutcome.SUCCESS for r in result.results)
        # one connection check for the shared context
        assert len(cluster.calls_for("kubectl:version")) == 1

    def test_audit_entries_written(self, suite_dir, registry, cluster, clock, index):
        result = run_scenarios(
            suite_dir / "chartverify.yml", registry=registry, clock=clock, sleep=clock.sleep, version_index=index
        )
        entries = AuditWriter(root=suite_dir).read_all()
        assert [e.scenario for e in entries] == ["install", "upgrade-stable", "upgrade-dev"]
        assert {e.run_id for e in entries} == {result.run_id}

    def test_no_audit(self, suite_dir, registry, cluster, clock, index):
        run_scenarios(
            suite_dir / "chartverify.yml",
            names=["install"],
            registry=registry,
            audit=False,
            clock=clock,
            sleep=clock.sleep,
            version_index=index,
        )
        assert AuditWriter(root=suite_dir).entry_count() == 0

    def test_failed_scenario_does_not_stop_matrix(self, suite_dir, registry, cluster, clock, index):
        cluster.set_failure("helm:install:jupyterhub", 'Error: chart "jupyterhub" version "1.2.3" not found')

        result = run_scenarios(
            suite_dir / "chartverify.yml", registry=registry, clock=clock, sleep=clock.sleep, version_index=index
        )

        outcomes = [r.outcome for r in result.results]
        assert outcomes == [ScenarioOutcome.SUCCESS, ScenarioOutcome.FAILED, ScenarioOutcome.FAILED]
        assert not result.ok
        assert len(result.failed) == 2

    def test_selected_names(self, suite_dir, registry, cluster, clock, index):
        result = run_scenarios(
            suite_dir / "chartverify.yml",
            names=["upgrade-dev"],
            registry=registry,
            audit=False,
            clock=clock,
            sleep=clock.sleep,
            version_index=index,
        )
        assert [r.descriptor.label for r in result.results] == ["upgrade-dev"]

    def test_unknown_name(self, suite_dir, registry, index):
        result = run_scenarios(suite_dir / "chartverify.yml", names=["nope"], registry=registry, version_index=index)
        assert result.error == "Unknown scenario(s): nope"
        assert not result.ok

    def test_config_error(self, tmp_path):
        result = run_scenarios(tmp_path / "missing.yml")
        assert "not found" in result.error

    def test_unreachable_cluster_fails_every_scenario(self, suite_dir, registry, cluster, clock, index):
        cluster.set_failure("kubectl:version", "Unable to connect to the server")

        result = run_scenarios(
            suite_dir / "chartverify.yml",
            registry=registry,
            audit=False,
            clock=clock,
            sleep=clock.sleep,
            version_index=index,
        )

        assert len(result.results) == 3
        for scenario in result.results:
            assert scenario.outcome is ScenarioOutcome.FAILED
            assert scenario.error.kind == "cluster_unavailable"
            assert scenario.path == [ScenarioStep.FAILED]
            assert scenario.report is not None
        assert cluster.calls_for("helm:") == []

    def test_dependencies_installed_once_before_scenarios(self, suite_dir, registry, cluster, clock, index):
        config_file = suite_dir / "chartverify.yml"
        config_file.write_text(
            config_file.read_text()
            + textwrap.dedent("""\
                dependencies:
                  - release: pebble
                    chart: pebble
                    repository: https://jupyterhub.github.io/helm-chart/
                    readiness: [{kind: workload_rollout, target: deploy/pebble}]
            """)
        )
        cluster.set_output("kubectl:get:deployment/pebble", json.dumps(workload_json("pebble")))

        run_scenarios(config_file, registry=registry, audit=False, clock=clock, sleep=clock.sleep, version_index=index)

        helm = [c.action.id for c in cluster.call_log if c.action.adapter == "helm"]
        assert helm[0] == "helm:upgrade:pebble"
        assert helm.count("helm:upgrade:pebble") == 1


class TestReleaseReset:
    def test_each_scenario_starts_from_an_absent_release(self, suite_dir, tracking_registry, tracking_helm, clock, index):
        result = run_scenarios(
            suite_dir / "chartverify.yml",
            registry=tracking_registry,
            audit=False,
            clock=clock,
            sleep=clock.sleep,
            version_index=index,
        )

        assert [r.outcome for r in result.results] == [ScenarioOutcome.SUCCESS] * 3
        # install leaves the release behind, each upgrade removes it before seeding its baseline
        assert len(tracking_helm.calls_for("helm:uninstall:jupyterhub")) == 2
        helm = [c.action.id for c in tracking_helm.call_log if c.action.adapter == "helm"]
        first_seed = helm.index("helm:install:jupyterhub")
        assert helm[first_seed - 1] == "helm:uninstall:jupyterhub"

    def test_tracking_helm_rejects_a_second_install(self, tracking_registry):
        installer = PackageInstaller(tracking_registry, "jupyterhub", "default")
        released = PackageRef(chart="jupyterhub", repository="https://jupyterhub.github.io/helm-chart/")
        assert installer.install(released, [], "1.2.3", upgrade=False).success
        second = installer.install(released, [], "1.2.3", upgrade=False)
        assert not second.success
        assert "cannot re-use a name" in second.error.message

    def test_release_left_by_an_earlier_run(self, suite_dir, tracking_registry, tracking_helm, clock, index):
        tracking_helm.installed.add("jupyterhub")

        result = run_scenarios(
            suite_dir / "chartverify.yml",
            names=["upgrade-stable"],
            registry=tracking_registry,
            audit=False,
            clock=clock,
            sleep=clock.sleep,
            version_index=index,
        )

        assert result.ok
        assert len(tracking_helm.calls_for("helm:uninstall:jupyterhub")) == 1

    def test_release_that_cannot_be_removed(self, suite_dir, registry, cluster, clock, index):
        cluster.set_output("helm:get-manifest:jupyterhub", MANIFEST)
        cluster.set_failure("helm:uninstall:jupyterhub", "Error: uninstallation completed with 1 error(s): timed out")

        result = run_scenarios(
            suite_dir / "chartverify.yml", registry=registry, audit=False, clock=clock, sleep=clock.sleep, version_index=index
        )

        for scenario in result.results:
            assert scenario.outcome is ScenarioOutcome.FAILED
            assert scenario.error.kind == "apply_error"
            assert scenario.path == [ScenarioStep.FAILED]
        assert cluster.calls_for("helm:install") == []
        assert cluster.calls_for("helm:upgrade") == []

    def test_reset_release(self, registry, cluster):
        installer = PackageInstaller(registry, "jupyterhub", "default")
        assert reset_release(installer) is False
        assert cluster.calls_for("helm:uninstall") == []

        cluster.set_output("helm:get-manifest:jupyterhub", MANIFEST)
        assert reset_release(installer) is True
        assert len(cluster.calls_for("helm:uninstall:jupyterhub")) == 1

        cluster.set_failure("helm:uninstall:jupyterhub", "Error: timed out waiting for the condition")
        with pytest.raises(ApplyError):
            reset_release(installer)


class TestPreflight:
    @pytest.fixture
    def preflight_config(self, suite_dir):
        def write(body: str):
            config_file = suite_dir / "chartverify.yml"
            config_file.write_text(config_file.read_text() + textwrap.dedent(body))
            return config_file

        return write

    def test_validate_runs_once_before_scenarios(self, preflight_config, registry, cluster, clock, index):
        config_file = preflight_config("""\
            preflight:
              validate: true
        """)

        result = run_scenarios(config_file, registry=registry, audit=False, clock=clock, sleep=clock.sleep, version_index=index)

        assert result.ok
        helm = [c.action for c in cluster.call_log if c.action.adapter == "helm"]
        validated = [a for a in helm if "--validate" in a.args]
        assert len(validated) == 1
        assert helm.index(validated[0]) < [a.id for a in helm].index("helm:upgrade:jupyterhub")
        assert validated[0].read_only

    def test_rejected_manifests_fail_every_scenario(self, preflight_config, registry, cluster, clock, index):
        config_file = preflight_config("""\
            preflight:
              validate: true
        """)
        cluster.set_failure(
            "helm:template:jupyterhub",
            'Error: unable to build kubernetes objects from release manifest: error validating "": unknown field',
        )

        result = run_scenarios(config_file, registry=registry, audit=False, clock=clock, sleep=clock.sleep, version_index=index)

        assert len(result.results) == 3
        for scenario in result.results:
            assert scenario.outcome is ScenarioOutcome.FAILED
            assert scenario.error.kind == "render_error"
        assert cluster.calls_for("helm:upgrade") == []
        assert len(cluster.calls_for("helm:template")) == 1

    def test_lint_failure(self, preflight_config, registry, cluster, clock, index):
        config_file = preflight_config("""\
            preflight:
              lint: true
              strict: true
        """)
        cluster.set_failure("helm:lint:jupyterhub", "Error: 1 chart(s) linted, 1 chart(s) failed")

        result = run_scenarios(config_file, registry=registry, audit=False, clock=clock, sleep=clock.sleep, version_index=index)

        assert not result.ok
        assert result.results[0].error.kind == "render_error"
        assert result.results[0].error.message.startswith("Lint failed:")
        assert "--strict" in cluster.calls_for("helm:lint")[0].action.args

    def test_off_by_default(self, suite_dir, registry, cluster, clock, index):
        run_scenarios(
            suite_dir / "chartverify.yml", registry=registry, audit=False, clock=clock, sleep=clock.sleep, version_index=index
        )
        assert cluster.calls_for("helm:lint") == []
        assert not any("--validate" in c.action.args for c in cluster.calls_for("helm:template"))
