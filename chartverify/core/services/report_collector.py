"""
Report collector — namespace snapshot for post-mortem debugging.

Runs at the end of every scenario, whatever the outcome. Each read is
attempted independently; a failed read is logged and noted in the
report, and never escalates.
"""

from __future__ import annotations

import logging

from chartverify.core.errors import ReportError, VerifyError
from chartverify.core.models.cluster import (
    ClusterEvent,
    NamespaceReport,
    PodStatus,
    WorkloadSummary,
    parse_workload_ref,
)
from chartverify.core.services.cluster_session import ClusterSession

logger = logging.getLogger(__name__)


class ReportCollector:
    """Builds NamespaceReports."""

    def __init__(self, *, log_tail: int = 50, event_limit: int = 50):
        self.log_tail = log_tail
        self.event_limit = event_limit

    def collect(
        self,
        session: ClusterSession | None,
        namespace: str,
        workload_names: list[str] | tuple[str, ...] = (),
    ) -> NamespaceReport:
        """Snapshot ``namespace``. Never raises."""
        errors: list[str] = []

        if session is None:
            error = ReportError("No cluster session; nothing collected")
            logger.warning("Namespace report: %s", error.message)
            return NamespaceReport(namespace=namespace, errors=[error.message])

        workloads = self._workloads(session, namespace, list(workload_names), errors)
        pods = self._read(lambda: session.list_pods(namespace), "pods", errors, default=[])
        events = self._read(
            lambda: session.list_events(namespace, limit=self.event_limit), "events", errors, default=[]
        )

        logs: dict[str, str] = {}
        if self.log_tail > 0:
            for ref in workload_names:
                text = self._read(
                    lambda ref=ref: session.workload_logs(ref, namespace, tail=self.log_tail),
                    f"logs of {ref}",
                    errors,
                    default=None,
                )
                if text is not None:
                    logs[ref] = text

        report = NamespaceReport(
            namespace=namespace,
            workloads=workloads,
            pods=[p for p in pods if isinstance(p, PodStatus)],
            events=[e for e in events if isinstance(e, ClusterEvent)],
            logs=logs,
            errors=errors,
        )
        if report.unhealthy_workloads:
            logger.warning("Unhealthy workloads in %s: %s", namespace, ", ".join(report.unhealthy_workloads))
        return report

    def _workloads(
        self,
        session: ClusterSession,
        namespace: str,
        important: list[str],
        errors: list[str],
    ) -> dict[str, WorkloadSummary]:
        listed = self._read(lambda: session.list_namespace_workloads(namespace), "workloads", errors, default=None)
        summaries: dict[str, WorkloadSummary] = {}

        if listed is not None:
            for workload in listed:
                summaries[workload.ref] = _summarize(workload)

        for ref in important:
            kind, name = parse_workload_ref(ref)
            key = f"{kind.lower()}/{name}"
            if key in summaries:
                continue
            if listed is not None and kind in ("Deployment", "StatefulSet", "DaemonSet"):
                summaries[key] = WorkloadSummary(status="missing", detail="not found in namespace")
                continue
            workload = self._read(lambda ref=ref: session.get_workload(ref, namespace), ref, errors, default=False)
            if workload is False:
                summaries[key] = WorkloadSummary(status="unknown", detail="could not be read")
            elif workload is None:
                summaries[key] = WorkloadSummary(status="missing", detail="not found in namespace")
            else:
                summaries[key] = _summarize(workload)

        return summaries

    @staticmethod
    def _read(fn, what: str, errors: list[str], *, default):
        try:
            return fn()
        except VerifyError as e:
            message = f"{what}: {e.message}"
        except Exception as e:  # report collection is best-effort
            message = f"{what}: unexpected error: {e}"
        logger.warning("Namespace report: cannot read %s", message)
        errors.append(message)
        return default


def _summarize(workload) -> WorkloadSummary:
    return WorkloadSummary(
        status="rolled-out" if workload.rolled_out else "progressing",
        detail=workload.summary(),
        workload=workload,
    )
