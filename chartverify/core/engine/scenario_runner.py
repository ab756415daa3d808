"""
Scenario runner — the verification state machine.

    init ─┬─────────────────────────────────────────────┐
          │ (upgrade only)                              │
          └→ seed_baseline → await_baseline → diff ─────┴→ deploy → await_ready → verify → done

Any step can end in ``failed``. The diff is informational: its failure
is logged and the run continues. A verification failure on a soft-fail
scenario is recorded as an accepted failure. Whatever happens, the
namespace report is collected exactly once at the end.

The scenario budget bounds the whole sequence: every helm and pytest
call is capped by the time left, and the deadline is checked before
and after each step.

One runner drives one scenario at a time against one cluster session.
"""

from __future__ import annotations

import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Callable

from chartverify.core.errors import (
    ScenarioDeadlineExceeded,
    VerificationFailure,
    VerifyError,
)
from chartverify.core.models.cluster import NamespaceReport
from chartverify.core.models.readiness import ReadinessCondition
from chartverify.core.models.results import (
    ErrorInfo,
    InstallResult,
    PackageRef,
    RenderedDiff,
    ScenarioOutcome,
    ScenarioStep,
    VerificationReport,
)
from chartverify.core.models.scenario import ScenarioDescriptor
from chartverify.core.persistence.audit import AuditEntry, AuditWriter
from chartverify.core.services.cluster_session import ClusterSession
from chartverify.core.services.package_installer import PackageInstaller
from chartverify.core.services.readiness import ReadinessProbe
from chartverify.core.services.report_collector import ReportCollector
from chartverify.core.services.rewrite import Rewrite, string_replacer
from chartverify.core.services.verification import VerificationSuite

logger = logging.getLogger(__name__)


def normalize_versions(descriptor: ScenarioDescriptor) -> Rewrite | None:
    """Rewrite the new chart version to the baseline's, so only real changes show."""
    if not descriptor.from_version:
        return None
    return string_replacer(descriptor.to_version, descriptor.from_version)


@dataclass
class RunnerSettings:
    """What to install and what "ready" means, shared by all scenarios."""

    chart_ref: PackageRef
    baseline_ref: PackageRef
    namespace: str = "default"
    readiness: list[ReadinessCondition] = field(default_factory=list)
    baseline_readiness: list[ReadinessCondition] | None = None
    report_workloads: list[str] = field(default_factory=list)
    scenario_timeout: float | None = 1200.0
    diff_context: int = 3
    rewrite_factory: Callable[[ScenarioDescriptor], Rewrite | None] | None = normalize_versions

    @property
    def baseline_conditions(self) -> list[ReadinessCondition]:
        if self.baseline_readiness is None:
            return self.readiness
        return self.baseline_readiness


@dataclass
class StepRecord:
    step: ScenarioStep
    status: str = "ok"              # ok, failed, skipped
    detail: str = ""
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "step": self.step.value,
            "status": self.status,
            "detail": self.detail,
            "duration_ms": self.duration_ms,
        }


@dataclass
class ScenarioResult:
    """Everything one scenario produced."""

    descriptor: ScenarioDescriptor
    outcome: ScenarioOutcome = ScenarioOutcome.FAILED
    steps: list[StepRecord] = field(default_factory=list)
    error: ErrorInfo | None = None
    accepted_failure: ErrorInfo | None = None
    diff: RenderedDiff | None = None
    deployed: InstallResult | None = None   # the deploy step, with the diff it applied
    verification: VerificationReport | None = None
    report: NamespaceReport | None = None
    duration_ms: int = 0

    @property
    def path(self) -> list[ScenarioStep]:
        """Steps taken, in order."""
        return [s.step for s in self.steps]

    @property
    def passed(self) -> bool:
        return self.outcome.passed

    def to_dict(self) -> dict:
        return {
            "scenario": self.descriptor.label,
            "description": self.descriptor.describe(),
            "mode": self.descriptor.mode.value,
            "from_version": self.descriptor.from_version,
            "to_version": self.descriptor.to_version,
            "soft_fail": self.descriptor.soft_fail,
            "outcome": self.outcome.value,
            "duration_ms": self.duration_ms,
            "steps": [s.to_dict() for s in self.steps],
            "error": self.error.model_dump(mode="json") if self.error else None,
            "accepted_failure": (
                self.accepted_failure.model_dump(mode="json") if self.accepted_failure else None
            ),
            "diff": self.diff.text if self.diff else None,
            "verification": (
                self.verification.model_dump(mode="json", exclude={"output"}) if self.verification else None
            ),
            "report": self.report.to_dict() if self.report else None,
        }


class ScenarioRunner:
    """Drives one ScenarioDescriptor through the state machine."""

    def __init__(
        self,
        installer: PackageInstaller,
        probe: ReadinessProbe,
        suite: VerificationSuite,
        collector: ReportCollector,
        session: ClusterSession | None,
        settings: RunnerSettings,
        *,
        clock: Callable[[], float] = time.monotonic,
        on_step: Callable[[StepRecord], None] | None = None,
    ):
        self.installer = installer
        self.probe = probe
        self.suite = suite
        self.collector = collector
        self.session = session
        self.settings = settings
        self._clock = clock
        self._on_step = on_step

    def run(self, descriptor: ScenarioDescriptor) -> ScenarioResult:
        """Run the scenario. Returns a result; never raises VerifyErrors."""
        result = ScenarioResult(descriptor=descriptor)
        start = self._clock()
        timeout = self.settings.scenario_timeout
        deadline = start + timeout if timeout else None
        current = ScenarioStep.INIT

        logger.info("▶ Scenario %s: %s", descriptor.label, descriptor.describe())

        try:
            if descriptor.is_upgrade:
                current = ScenarioStep.SEED_BASELINE
                self._step(result, current, deadline, lambda: self._seed_baseline(descriptor, deadline))

                current = ScenarioStep.AWAIT_BASELINE
                self._step(
                    result, current, deadline,
                    lambda: self._await(self.settings.baseline_conditions, deadline),
                )

                current = ScenarioStep.DIFF
                self._diff(result, descriptor, deadline)

            current = ScenarioStep.DEPLOY
            self._step(result, current, deadline, lambda: self._deploy(result, descriptor, deadline))

            current = ScenarioStep.AWAIT_READY
            self._step(result, current, deadline, lambda: self._await(self.settings.readiness, deadline))

            current = ScenarioStep.VERIFY
            self._step(result, current, deadline, lambda: self._verify(result, descriptor, deadline))

            result.outcome = (
                ScenarioOutcome.SUCCESS_WITH_ACCEPTED_FAILURE
                if result.accepted_failure
                else ScenarioOutcome.SUCCESS
            )
            self._record(result, StepRecord(step=ScenarioStep.DONE, detail=result.outcome.value))

        except VerifyError as e:
            result.outcome = ScenarioOutcome.FAILED
            result.error = e.to_info()
            logger.error("✗ Scenario %s failed at %s: %s", descriptor.label, current.value, e.message)
            self._record(result, StepRecord(step=ScenarioStep.FAILED, status="failed", detail=e.message))

        finally:
            result.report = self._collect_report()
            result.duration_ms = int((self._clock() - start) * 1000)

        logger.info("■ Scenario %s → %s", descriptor.label, result.outcome.value)
        return result

    # ── Steps ────────────────────────────────────────────────────

    def _seed_baseline(self, descriptor: ScenarioDescriptor, deadline: float | None) -> str:
        assert descriptor.from_version is not None  # guaranteed for upgrades
        install = self.installer.install(
            self.settings.baseline_ref,
            descriptor.values_overlay,
            descriptor.from_version,
            upgrade=False,
            timeout=self._action_timeout(deadline, 900),
        )
        install.raise_for_error()
        return f"installed {descriptor.from_version}"

    def _deploy(self, result: ScenarioResult, descriptor: ScenarioDescriptor, deadline: float | None) -> str:
        install = self.installer.install(
            self.settings.chart_ref,
            descriptor.values_overlay,
            descriptor.to_version,
            upgrade=True,
            timeout=self._action_timeout(deadline, 900),
        )
        if result.diff is not None:
            install = install.model_copy(update={"rendered_diff": result.diff.text})
        result.deployed = install
        install.raise_for_error()
        return f"installed {descriptor.to_version}"

    def _await(self, conditions: list[ReadinessCondition], deadline: float | None) -> str:
        conditions = [c.with_namespace(self.settings.namespace) for c in conditions]
        outcomes = self.probe.wait_for_all(conditions, deadline=deadline)
        return "; ".join(o.condition for o in outcomes) or "no conditions"

    def _diff(self, result: ScenarioResult, descriptor: ScenarioDescriptor, deadline: float | None) -> None:
        """Informational only: failures are logged, never raised."""
        factory = self.settings.rewrite_factory
        rewrite = factory(descriptor) if factory else None
        began = self._clock()
        try:
            diff = self.installer.diff(
                self.settings.chart_ref,
                descriptor.values_overlay,
                descriptor.to_version,
                rewrite=rewrite,
                context=self.settings.diff_context,
                timeout=self._action_timeout(deadline, 300),
            )
        except VerifyError as e:
            logger.warning("Diff against %s skipped: %s", descriptor.from_version, e.message)
            record = StepRecord(step=ScenarioStep.DIFF, status="skipped", detail=e.message)
        else:
            result.diff = diff
            record = StepRecord(
                step=ScenarioStep.DIFF,
                detail=f"{len(diff.changes)} resource(s) changed vs {descriptor.from_version}",
            )
        record.duration_ms = int((self._clock() - began) * 1000)
        self._record(result, record)

    def _verify(self, result: ScenarioResult, descriptor: ScenarioDescriptor, deadline: float | None) -> str:
        report = self.suite.run(timeout=self._action_timeout(deadline, self.suite.timeout))
        result.verification = report
        try:
            VerificationSuite.raise_for_report(report)
        except VerificationFailure as e:
            if not descriptor.soft_fail:
                raise
            result.accepted_failure = e.to_info()
            logger.warning("Accepted failure (soft-fail) in %s: %s", descriptor.label, e.message)
            return f"accepted failure: {report.summary()}"
        return report.summary()

    # ── Plumbing ─────────────────────────────────────────────────

    def _step(self, result: ScenarioResult, step: ScenarioStep, deadline: float | None, action) -> None:
        if deadline is not None and self._clock() >= deadline:
            raise ScenarioDeadlineExceeded(
                f"Scenario budget of {self.settings.scenario_timeout}s exhausted before {step.value}",
                context={"step": step.value},
            )
        logger.info("→ %s", step.value)
        began = self._clock()
        try:
            detail = action()
            if deadline is not None and self._clock() > deadline:
                raise ScenarioDeadlineExceeded(
                    f"Scenario budget of {self.settings.scenario_timeout}s exhausted during {step.value}",
                    context={"step": step.value},
                )
        except VerifyError as e:
            self._record(
                result,
                StepRecord(
                    step=step,
                    status="failed",
                    detail=e.message,
                    duration_ms=int((self._clock() - began) * 1000),
                ),
            )
            raise
        self._record(
            result,
            StepRecord(step=step, detail=detail or "", duration_ms=int((self._clock() - began) * 1000)),
        )

    def _action_timeout(self, deadline: float | None, default: int) -> int:
        """Tool timeout capped by the scenario budget left (at least 1s)."""
        if deadline is None:
            return default
        return max(1, min(default, math.ceil(deadline - self._clock())))

    def _record(self, result: ScenarioResult, record: StepRecord) -> None:
        result.steps.append(record)
        if self._on_step is not None:
            self._on_step(record)

    def _collect_report(self) -> NamespaceReport | None:
        try:
            return self.collector.collect(
                self.session, self.settings.namespace, self.settings.report_workloads
            )
        except Exception as e:  # the report must never change the outcome
            logger.warning("Namespace report failed: %s", e)
            return None


# ── Audit ────────────────────────────────────────────────────────


def generate_run_id() -> str:
    """Generate a unique run ID shared by all scenarios of one invocation."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"


def write_audit_entry(
    result: ScenarioResult,
    audit_writer: AuditWriter,
    *,
    run_id: str,
    release: str = "",
    namespace: str = "",
) -> None:
    """Append one scenario result to the audit ledger."""
    descriptor = result.descriptor
    failed = [s.step.value for s in result.steps if s.status == "failed" and s.step is not ScenarioStep.FAILED]
    errors = [e.message for e in (result.error, result.accepted_failure) if e is not None]
    if result.report is not None:
        errors.extend(result.report.errors)

    entry = AuditEntry(
        run_id=run_id,
        release=release,
        namespace=namespace,
        scenario=descriptor.label,
        mode=descriptor.mode.value,
        from_version=descriptor.from_version,
        to_version=descriptor.to_version,
        soft_fail=descriptor.soft_fail,
        outcome=result.outcome.value,
        steps=[s.step.value for s in result.steps],
        failed_step=failed[0] if failed else None,
        duration_ms=result.duration_ms,
        tests_passed=result.verification.passed if result.verification else 0,
        tests_failed=result.verification.failed if result.verification else 0,
        errors=errors,
        context={"unhealthy": result.report.unhealthy_workloads} if result.report else {},
    )
    audit_writer.write(entry)
