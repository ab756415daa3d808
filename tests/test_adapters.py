"""
Tests for adapter protocol, registry, mock, and the helm / kubectl /
pytest command adapters.
"""

import subprocess
import sys
from unittest.mock import MagicMock, patch

from chartverify.adapters.base import ExecutionContext
from chartverify.adapters.kubernetes.helm import HelmAdapter
from chartverify.adapters.kubernetes.kubectl import KubectlAdapter
from chartverify.adapters.mock import MockAdapter
from chartverify.adapters.registry import AdapterRegistry
from chartverify.adapters.shell.command import CommandAdapter
from chartverify.adapters.testing.pytest_suite import PytestAdapter
from chartverify.core.models.action import Action, Receipt

# ── Protocol Tests ───────────────────────────────────────────────────


class TestExecutionContext:
    def test_action_cwd_wins(self):
        ctx = ExecutionContext(action=Action(id="a", adapter="helm", cwd="/charts"), working_dir="/repo")
        assert ctx.cwd == "/charts"

    def test_falls_back_to_working_dir(self):
        ctx = ExecutionContext(action=Action(id="a", adapter="helm"), working_dir="/repo")
        assert ctx.cwd == "/repo"


# ── Mock Adapter Tests ───────────────────────────────────────────────


class TestMockAdapter:
    def test_default_success(self):
        mock = MockAdapter(adapter_name="test-mock", default_output="hi")
        receipt = mock.execute(ExecutionContext(action=Action(id="op-1", adapter="test-mock")))
        assert receipt.ok
        assert receipt.output == "hi"
        assert mock.call_count == 1

    def test_set_failure(self):
        mock = MockAdapter()
        mock.set_failure("helm:install:jupyterhub", error="Intentional failure", return_code=2)
        receipt = mock.execute(ExecutionContext(action=Action(id="helm:install:jupyterhub", adapter="helm")))
        assert receipt.failed
        assert receipt.return_code == 2
        assert "Intentional failure" in receipt.error

    def test_prefix_match_prefers_longest(self):
        mock = MockAdapter()
        mock.set_output("kubectl:get", "short")
        mock.set_output("kubectl:get:secret/", "long")
        receipt = mock.execute(ExecutionContext(action=Action(id="kubectl:get:secret/tls", adapter="kubectl")))
        assert receipt.output == "long"
        assert receipt.action_id == "kubectl:get:secret/tls"

    def test_queue_repeats_last(self):
        mock = MockAdapter()
        mock.queue_responses(
            "poll",
            [
                Receipt.success(adapter="mock", action_id="", output="1"),
                Receipt.success(adapter="mock", action_id="", output="2"),
            ],
        )
        ctx = ExecutionContext(action=Action(id="poll", adapter="mock"))
        assert [mock.execute(ctx).output for _ in range(4)] == ["1", "2", "2", "2"]

    def test_calls_for(self):
        mock = MockAdapter()
        for action_id in ("helm:install:a", "helm:template:a", "kubectl:get:pods:default"):
            mock.execute(ExecutionContext(action=Action(id=action_id, adapter="x")))
        assert len(mock.calls_for("helm:")) == 2

    def test_reset(self):
        mock = MockAdapter()
        mock.set_failure("op-1")
        mock.execute(ExecutionContext(action=Action(id="op-1", adapter="mock")))
        mock.reset()
        assert mock.call_count == 0
        assert mock.execute(ExecutionContext(action=Action(id="op-1", adapter="mock"))).ok


# ── Registry Tests ───────────────────────────────────────────────────


class TestAdapterRegistry:
    def test_register_and_get(self):
        registry = AdapterRegistry()
        registry.register(HelmAdapter())
        assert registry.get("helm") is not None
        assert registry.list_adapters() == ["helm"]

    def test_unknown_adapter_fails(self):
        receipt = AdapterRegistry().execute(Action(id="x", adapter="nope", args=["a"]))
        assert receipt.failed
        assert "No adapter registered" in receipt.error

    def test_mock_mode_without_adapter_succeeds(self):
        registry = AdapterRegistry(mock_mode=True)
        receipt = registry.execute(Action(id="helm:install:x", adapter="helm"))
        assert receipt.ok
        assert receipt.metadata["mock"] is True

    def test_mock_mode_routes_to_mock(self):
        mock = MockAdapter()
        registry = AdapterRegistry()
        registry.register(HelmAdapter())
        registry.set_mock_mode(True, mock)
        registry.execute(Action(id="helm:install:x", adapter="helm", args=["install"]))
        assert mock.call_count == 1

    def test_dry_run_skips_mutations_only(self, tmp_path):
        mock = MockAdapter()
        registry = AdapterRegistry(dry_run=True, working_dir=str(tmp_path))
        registry.set_mock_mode(True, mock)

        install = registry.execute(Action(id="helm:install:x", adapter="helm", args=["install"]))
        template = registry.execute(Action(id="helm:template:x", adapter="helm", args=["template"], read_only=True))

        assert install.skipped
        assert "[dry-run]" in install.output
        assert template.ok
        assert [c.action.id for c in mock.call_log] == ["helm:template:x"]

    def test_validation_failure(self, tmp_path):
        registry = AdapterRegistry(working_dir=str(tmp_path))
        registry.register(HelmAdapter())
        receipt = registry.execute(Action(id="helm:x", adapter="helm", args=[]))
        assert receipt.failed
        assert "Missing command arguments" in receipt.error

    def test_raising_adapter_is_contained(self):
        broken = MockAdapter(adapter_name="helm")
        broken.execute = MagicMock(side_effect=RuntimeError("kaboom"))
        registry = AdapterRegistry()
        registry.register(broken)
        receipt = registry.execute(Action(id="helm:x", adapter="helm", args=["x"]))
        assert receipt.failed
        assert "kaboom" in receipt.error

    def test_adapter_status(self):
        registry = AdapterRegistry()
        registry.register(MockAdapter(adapter_name="helm", available=False))
        assert registry.adapter_status()["helm"]["available"] is False


# ── Command Adapter Tests ────────────────────────────────────────────


class TestCommandAdapter:
    def _ctx(self, tmp_path, **kwargs) -> ExecutionContext:
        action = Action(id="helm:install:jupyterhub", adapter="helm", args=["install", "jupyterhub"], **kwargs)
        return ExecutionContext(action=action, working_dir=str(tmp_path))

    @patch("chartverify.adapters.shell.command.subprocess.run")
    def test_success(self, mock_run, tmp_path):
        mock_run.return_value = subprocess.CompletedProcess(args=[], returncode=0, stdout="deployed\n", stderr="")
        receipt = HelmAdapter(kube_context="kind-ci").execute(self._ctx(tmp_path))

        assert receipt.ok
        assert receipt.output == "deployed\n"
        assert receipt.command == ["helm", "--kube-context", "kind-ci", "install", "jupyterhub"]
        assert mock_run.call_args.kwargs["cwd"] == str(tmp_path)

    @patch("chartverify.adapters.shell.command.subprocess.run")
    def test_failure_keeps_stderr_and_stdout(self, mock_run, tmp_path):
        mock_run.return_value = subprocess.CompletedProcess(
            args=[], returncode=1, stdout="partial", stderr="Error: chart not found\n"
        )
        receipt = HelmAdapter().execute(self._ctx(tmp_path))

        assert receipt.failed
        assert receipt.error == "Error: chart not found"
        assert receipt.output == "partial"
        assert receipt.return_code == 1

    @patch("chartverify.adapters.shell.command.subprocess.run")
    def test_timeout(self, mock_run, tmp_path):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="helm", timeout=5)
        receipt = HelmAdapter().execute(self._ctx(tmp_path, timeout=5))
        assert receipt.failed
        assert "timed out after 5s" in receipt.error
        assert receipt.return_code is None

    @patch("chartverify.adapters.shell.command.subprocess.run")
    def test_missing_binary(self, mock_run, tmp_path):
        mock_run.side_effect = FileNotFoundError()
        receipt = HelmAdapter().execute(self._ctx(tmp_path))
        assert receipt.failed
        assert "helm executable not found" in receipt.error

    def test_validate_missing_cwd(self, tmp_path):
        ctx = self._ctx(tmp_path, cwd=str(tmp_path / "nope"))
        ok, error = CommandAdapter("helm").validate(ctx)
        assert not ok
        assert "does not exist" in error

    @patch("chartverify.adapters.shell.command.shutil.which", return_value=None)
    def test_is_available(self, _which):
        assert not KubectlAdapter().is_available()


class TestToolAdapters:
    def test_kubectl_global_args(self):
        adapter = KubectlAdapter(context="kind-ci", kubeconfig="/tmp/kc", request_timeout=10)
        assert adapter.global_args() == [
            "--context", "kind-ci", "--kubeconfig", "/tmp/kc", "--request-timeout=10s",
        ]

    def test_helm_without_selection(self):
        assert HelmAdapter().global_args() == []

    def test_pytest_runs_as_module(self):
        adapter = PytestAdapter()
        assert adapter.name == "pytest"
        assert adapter.binary == sys.executable
        ctx = ExecutionContext(action=Action(id="pytest:tests", adapter="pytest", args=["tests"]))
        assert adapter.build_command(ctx) == [sys.executable, "-m", "pytest", "tests"]
