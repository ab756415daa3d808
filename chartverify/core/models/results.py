"""
Result models — what the installer, the verification suite and the
scenario runner hand back to their callers. None of these are mutated
after creation.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ErrorInfo(BaseModel):
    """Serializable form of a chartverify error."""

    kind: str
    message: str
    context: dict[str, Any] = Field(default_factory=dict)

    def to_exception(self):
        """Rebuild the typed exception this info was taken from."""
        from chartverify.core.errors import error_from_info

        return error_from_info(self.kind, self.message, self.context)


class PackageRef(BaseModel):
    """Where a chart comes from.

    ``chart`` is a local path (``./jupyterhub``) or, with ``repository``
    set, a chart name inside that Helm repository.
    """

    model_config = ConfigDict(frozen=True)

    chart: str
    repository: str | None = None

    def describe(self) -> str:
        if self.repository:
            return f"{self.chart} from {self.repository}"
        return self.chart


class ChartMetadata(BaseModel):
    name: str
    version: str
    app_version: str = ""
    description: str = ""


class InstallResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    release: str = ""
    version: str | None = None
    output: str = ""
    rendered_diff: str | None = None
    error: ErrorInfo | None = None

    def raise_for_error(self) -> None:
        """Raise the classified error if the operation failed."""
        if self.success:
            return
        if self.error is None:
            from chartverify.core.errors import ApplyError

            raise ApplyError(f"helm operation on '{self.release}' failed")
        raise self.error.to_exception()


class ResourceChange(BaseModel):
    """One resource that differs between deployed and proposed manifests."""

    resource: str                       # namespace, name, Kind
    change: Literal["added", "removed", "modified"]
    diff: str = ""


class RenderedDiff(BaseModel):
    model_config = ConfigDict(frozen=True)

    release: str = ""
    changes: list[ResourceChange] = Field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)

    @property
    def text(self) -> str:
        """helm-diff style rendering of all changes."""
        blocks: list[str] = []
        for change in self.changes:
            verb = {"added": "has been added", "removed": "has been removed"}.get(
                change.change, "has changed"
            )
            blocks.append(f"{change.resource} {verb}:\n{change.diff}".rstrip())
        return "\n".join(blocks) + ("\n" if blocks else "")


class VerificationReport(BaseModel):
    """Outcome of one run of the external verification suite."""

    ok: bool
    passed: int = 0
    failed: int = 0
    errors: int = 0
    skipped: int = 0
    duration_seconds: float = 0.0
    failures: list[str] = Field(default_factory=list)
    return_code: int | None = None
    output: str = ""

    @property
    def total(self) -> int:
        return self.passed + self.failed + self.errors + self.skipped

    def summary(self) -> str:
        return (
            f"{self.passed} passed, {self.failed} failed, "
            f"{self.errors} errors, {self.skipped} skipped"
        )


class ScenarioStep(str, Enum):
    INIT = "init"
    SEED_BASELINE = "seed_baseline"
    AWAIT_BASELINE = "await_baseline"
    DIFF = "diff"
    DEPLOY = "deploy"
    AWAIT_READY = "await_ready"
    VERIFY = "verify"
    DONE = "done"
    FAILED = "failed"


class ScenarioOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SUCCESS_WITH_ACCEPTED_FAILURE = "success_with_accepted_failure"

    @property
    def passed(self) -> bool:
        return self is not ScenarioOutcome.FAILED
