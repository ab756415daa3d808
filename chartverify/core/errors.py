"""
Error taxonomy — everything a scenario can fail with.

Adapters never raise (failures live in their Receipts). The service
layer turns failed receipts into one of these exceptions so the
scenario runner can decide between aborting, downgrading to a warning
(soft-fail verification) or ignoring (report collection).

    ConfigError              malformed config or scenario descriptor
    ClusterUnavailable       kubectl cannot reach the cluster
    PackageNotFound          bad chart reference, repository or version
    RenderError              templates or values are invalid
    ApplyError               the cluster rejected the manifests
    ReadinessTimeout         a readiness condition never held
    ScenarioDeadlineExceeded the whole-scenario budget ran out
    VerificationFailure      the verification suite reported failures
    ReportError              diagnostics collection failed (never fatal)
"""

from __future__ import annotations

from typing import Any


class VerifyError(Exception):
    """Base class for all chartverify errors.

    ``context`` carries whatever was known when the error happened
    (last observed state, helm stderr, command line...) so it can be
    surfaced in the scenario result and the audit ledger.
    """

    kind = "error"

    def __init__(self, message: str, *, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = dict(context or {})

    def to_info(self):
        """Serializable snapshot of this error."""
        from chartverify.core.models.results import ErrorInfo

        return ErrorInfo(kind=self.kind, message=self.message, context=self.context)


class ConfigError(VerifyError):
    """Raised when configuration or a scenario descriptor is invalid."""

    kind = "config_error"


class ClusterUnavailable(VerifyError):
    kind = "cluster_unavailable"


class PackageNotFound(VerifyError):
    kind = "package_not_found"


class RenderError(VerifyError):
    kind = "render_error"


class ApplyError(VerifyError):
    kind = "apply_error"


class ReadinessTimeout(VerifyError, TimeoutError):
    """A readiness condition did not hold before its timeout.

    ``last_observed`` is the final observation made by the probe.
    """

    kind = "timeout"

    def __init__(
        self,
        message: str,
        *,
        last_observed: Any = None,
        context: dict[str, Any] | None = None,
    ):
        ctx = dict(context or {})
        ctx.setdefault("last_observed", last_observed)
        super().__init__(message, context=ctx)
        self.last_observed = last_observed


class ScenarioDeadlineExceeded(ReadinessTimeout):
    kind = "scenario_timeout"


class VerificationFailure(VerifyError):
    kind = "verification_failure"


class ReportError(VerifyError):
    kind = "report_error"


ERROR_TYPES: dict[str, type[VerifyError]] = {
    cls.kind: cls
    for cls in (
        ConfigError,
        ClusterUnavailable,
        PackageNotFound,
        RenderError,
        ApplyError,
        ReadinessTimeout,
        ScenarioDeadlineExceeded,
        VerificationFailure,
        ReportError,
    )
}


def error_from_info(kind: str, message: str, context: dict[str, Any] | None = None) -> VerifyError:
    """Rebuild an exception from its serialized kind and message."""
    cls = ERROR_TYPES.get(kind, VerifyError)
    if issubclass(cls, ReadinessTimeout):
        ctx = dict(context or {})
        return cls(message, last_observed=ctx.get("last_observed"), context=ctx)
    return cls(message, context=context)
