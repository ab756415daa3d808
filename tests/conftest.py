"""
Shared test fixtures and configuration.
"""

import json
import textwrap
from pathlib import Path

import pytest

from chartverify.adapters.mock import MockAdapter
from chartverify.adapters.registry import AdapterRegistry
from chartverify.core.models.action import Receipt


class FakeClock:
    """Monotonic clock whose sleep() just advances time."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def workload_json(
    name: str,
    *,
    kind: str = "Deployment",
    desired: int = 1,
    ready: int = 1,
    updated: int | None = None,
    generation: int = 1,
    observed: int | None = None,
    namespace: str = "default",
) -> dict:
    """A ``kubectl get -o json`` item for a workload."""
    return {
        "kind": kind,
        "metadata": {"name": name, "namespace": namespace, "generation": generation},
        "spec": {"replicas": desired},
        "status": {
            "readyReplicas": ready,
            "updatedReplicas": desired if updated is None else updated,
            "availableReplicas": ready,
            "observedGeneration": generation if observed is None else observed,
        },
    }


def ok(output: str | dict = "") -> Receipt:
    if isinstance(output, dict):
        output = json.dumps(output)
    return Receipt.success(adapter="mock", action_id="", output=output)


def failed(error: str, return_code: int = 1) -> Receipt:
    return Receipt.failure(adapter="mock", action_id="", error=error, return_code=return_code)


@pytest.fixture
def mock_adapter() -> MockAdapter:
    mock = MockAdapter()
    mock.set_output("kubectl:version", json.dumps({"serverVersion": {"gitVersion": "v1.29.0"}}))
    return mock


@pytest.fixture
def registry(mock_adapter: MockAdapter, tmp_path: Path) -> AdapterRegistry:
    """Registry routing every action to ``mock_adapter``."""
    reg = AdapterRegistry(working_dir=str(tmp_path))
    reg.set_mock_mode(True, mock_adapter)
    return reg


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def suite_dir(tmp_path: Path) -> Path:
    """A checkout with chartverify.yml, a local chart and a values file."""
    chart = tmp_path / "jupyterhub"
    chart.mkdir()
    (chart / "Chart.yaml").write_text(
        textwrap.dedent("""\
            apiVersion: v2
            name: jupyterhub
            version: 1.3.0-dev
            appVersion: "4.0.0"
        """)
    )
    (tmp_path / "dev-config.yaml").write_text("proxy:\n  https:\n    enabled: true\n")
    (tmp_path / "tests").mkdir()
    (tmp_path / "chartverify.yml").write_text(
        textwrap.dedent("""\
            release: jupyterhub
            namespace: default
            scenario_timeout: 600
            chart:
              name: jupyterhub
              path: ./jupyterhub
              repository: https://jupyterhub.github.io/helm-chart/
              version_index: https://jupyterhub.github.io/helm-chart/info.json
            values: [dev-config.yaml]
            readiness:
              - {kind: workload_rollout, target: deploy/hub, targets: [deploy/proxy], timeout: 60}
            report:
              workloads: [deploy/hub, deploy/proxy]
            scenarios:
              - {name: install, mode: install}
              - {name: upgrade-stable, mode: upgrade, upgrade_from: stable}
              - {name: upgrade-dev, mode: upgrade, upgrade_from: dev, soft_fail: true}
        """)
    )
    return tmp_path
