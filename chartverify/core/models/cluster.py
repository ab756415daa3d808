"""
Cluster observations — what kubectl told us, at one point in time.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# kubectl short names → canonical resource kind
WORKLOAD_KINDS = {
    "deploy": "Deployment",
    "deployment": "Deployment",
    "deployments": "Deployment",
    "sts": "StatefulSet",
    "statefulset": "StatefulSet",
    "statefulsets": "StatefulSet",
    "ds": "DaemonSet",
    "daemonset": "DaemonSet",
    "daemonsets": "DaemonSet",
}


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def parse_workload_ref(ref: str) -> tuple[str, str]:
    """Split ``deploy/hub`` into (``Deployment``, ``hub``).

    A bare name is treated as a Deployment. Unknown kinds are kept
    verbatim so kubectl can report the error.
    """
    if "/" not in ref:
        return "Deployment", ref
    kind, name = ref.split("/", 1)
    return WORKLOAD_KINDS.get(kind.lower(), kind), name


class WorkloadStatus(BaseModel):
    """Replica counts of a Deployment, StatefulSet or DaemonSet."""

    kind: str
    name: str
    namespace: str = ""
    desired: int = 0
    ready: int = 0
    updated: int = 0
    available: int = 0
    generation: int = 0
    observed_generation: int = 0

    @property
    def ref(self) -> str:
        return f"{self.kind.lower()}/{self.name}"

    @property
    def rolled_out(self) -> bool:
        """Same meaning as ``kubectl rollout status`` succeeding."""
        return (
            self.observed_generation >= self.generation
            and self.updated >= self.desired
            and self.ready == self.desired
        )

    def summary(self) -> str:
        return f"{self.ready}/{self.desired} ready, {self.updated} updated"

    @classmethod
    def from_manifest(cls, item: dict[str, Any]) -> WorkloadStatus:
        """Build from a ``kubectl get -o json`` item."""
        metadata = item.get("metadata", {}) or {}
        spec = item.get("spec", {}) or {}
        status = item.get("status", {}) or {}
        kind = item.get("kind", "Deployment")

        if kind == "DaemonSet":
            desired = status.get("desiredNumberScheduled", 0) or 0
            ready = status.get("numberReady", 0) or 0
            updated = status.get("updatedNumberScheduled", 0) or 0
            available = status.get("numberAvailable", 0) or 0
        else:
            # spec.replicas defaults to 1 when omitted
            desired = spec.get("replicas", 1)
            desired = 1 if desired is None else desired
            ready = status.get("readyReplicas", 0) or 0
            updated = status.get("updatedReplicas", 0) or 0
            available = status.get("availableReplicas", 0) or 0

        return cls(
            kind=kind,
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            desired=desired,
            ready=ready,
            updated=updated,
            available=available,
            generation=metadata.get("generation", 0) or 0,
            observed_generation=status.get("observedGeneration", 0) or 0,
        )


class SecretStatus(BaseModel):
    """Existence and non-empty keys of a Secret (values never stored)."""

    name: str
    namespace: str = ""
    exists: bool = False
    non_empty_keys: list[str] = Field(default_factory=list)

    def key_non_empty(self, key: str) -> bool:
        return self.exists and key in self.non_empty_keys


class PodStatus(BaseModel):
    name: str
    phase: str = ""
    ready: bool = False
    restarts: int = 0
    reason: str = ""


class ClusterEvent(BaseModel):
    type: str = ""
    reason: str = ""
    object: str = ""
    message: str = ""
    count: int = 1
    last_seen: str = ""


class WorkloadSummary(BaseModel):
    """Report entry for one workload."""

    status: str                         # rolled-out, progressing, missing, unknown
    detail: str = ""
    workload: WorkloadStatus | None = None


class NamespaceReport(BaseModel):
    """Post-run snapshot of a namespace. Built once, never modified."""

    model_config = ConfigDict(frozen=True)

    namespace: str
    workloads: dict[str, WorkloadSummary] = Field(default_factory=dict)
    pods: list[PodStatus] = Field(default_factory=list)
    events: list[ClusterEvent] = Field(default_factory=list)
    logs: dict[str, str] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
    collected_at: str = Field(default_factory=_now_iso)

    @property
    def unhealthy_workloads(self) -> list[str]:
        return [name for name, s in self.workloads.items() if s.status != "rolled-out"]

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")
