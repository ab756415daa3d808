"""
Cluster session — read-only kubectl access to one cluster.

A session is bound to a single kube context for the whole scenario
run. Every read goes to the API server; nothing is cached, since the
cluster changes underneath us while charts roll out.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any

from chartverify.adapters.registry import AdapterRegistry
from chartverify.core.errors import ClusterUnavailable
from chartverify.core.models.action import Action, Receipt
from chartverify.core.models.cluster import (
    ClusterEvent,
    PodStatus,
    SecretStatus,
    WorkloadStatus,
    parse_workload_ref,
)
from chartverify.core.models.config import ConnectionConfig

logger = logging.getLogger(__name__)

_WORKLOAD_RESOURCES = "deployments,statefulsets,daemonsets"


def _is_not_found(receipt: Receipt) -> bool:
    return "NotFound" in (receipt.error or "") or "not found" in (receipt.error or "")


class ClusterSession:
    """Read operations against a single cluster."""

    def __init__(self, registry: AdapterRegistry, connection: ConnectionConfig | None = None):
        self._registry = registry
        self.connection = connection or ConnectionConfig()
        self.server_version: str = ""

    @classmethod
    def connect(
        cls,
        connection: ConnectionConfig,
        registry: AdapterRegistry | None = None,
    ) -> ClusterSession:
        """Open a session and check the API server answers.

        Raises:
            ClusterUnavailable: kubectl is missing or the cluster is unreachable.
        """
        if registry is None:
            from chartverify.adapters.kubernetes.kubectl import KubectlAdapter

            registry = AdapterRegistry()
            registry.register(
                KubectlAdapter(
                    context=connection.context,
                    kubeconfig=connection.kubeconfig,
                    request_timeout=connection.request_timeout,
                )
            )

        session = cls(registry, connection)
        receipt = session._kubectl("kubectl:version", "version", "-o", "json")
        if not receipt.ok:
            raise ClusterUnavailable(
                f"Cannot reach cluster (context={connection.context or 'current'}): {receipt.error}",
                context={"context": connection.context, "error": receipt.error},
            )

        try:
            data = json.loads(receipt.output or "{}")
            session.server_version = data.get("serverVersion", {}).get("gitVersion", "")
        except ValueError:
            session.server_version = ""

        logger.info(
            "Connected to cluster (context=%s, server=%s)",
            connection.context or "current",
            session.server_version or "?",
        )
        return session

    # ── Workloads ────────────────────────────────────────────────

    def list_namespace_workloads(self, namespace: str) -> list[WorkloadStatus]:
        """All Deployments, StatefulSets and DaemonSets in the namespace."""
        data = self._get_json(
            f"kubectl:get:workloads:{namespace}",
            "get", _WORKLOAD_RESOURCES, "-n", namespace, "-o", "json",
        )
        return [WorkloadStatus.from_manifest(item) for item in data.get("items", [])]

    def get_workload(self, ref: str, namespace: str) -> WorkloadStatus | None:
        """Status of ``kind/name``, or None if it does not exist."""
        kind, name = parse_workload_ref(ref)
        receipt = self._kubectl(
            f"kubectl:get:{kind.lower()}/{name}",
            "get", kind.lower(), name, "-n", namespace, "-o", "json",
        )
        if not receipt.ok:
            if _is_not_found(receipt):
                return None
            raise ClusterUnavailable(
                f"Cannot read {ref} in {namespace}: {receipt.error}",
                context={"workload": ref, "namespace": namespace},
            )
        return WorkloadStatus.from_manifest(self._parse(receipt))

    # ── Secrets ──────────────────────────────────────────────────

    def get_secret(self, name: str, namespace: str) -> SecretStatus:
        """Which keys of a secret hold data. Values are never kept."""
        receipt = self._kubectl(
            f"kubectl:get:secret/{name}",
            "get", "secret", name, "-n", namespace, "-o", "json",
        )
        if not receipt.ok:
            if _is_not_found(receipt):
                return SecretStatus(name=name, namespace=namespace, exists=False)
            raise ClusterUnavailable(
                f"Cannot read secret {name} in {namespace}: {receipt.error}",
                context={"secret": name, "namespace": namespace},
            )

        data = self._parse(receipt).get("data") or {}
        non_empty = sorted(key for key, value in data.items() if _decoded_length(value) > 0)
        return SecretStatus(name=name, namespace=namespace, exists=True, non_empty_keys=non_empty)

    # ── Diagnostics ──────────────────────────────────────────────

    def list_pods(self, namespace: str) -> list[PodStatus]:
        data = self._get_json(
            f"kubectl:get:pods:{namespace}", "get", "pods", "-n", namespace, "-o", "json"
        )
        pods: list[PodStatus] = []
        for item in data.get("items", []):
            status = item.get("status", {}) or {}
            containers = status.get("containerStatuses", []) or []
            reason = status.get("reason", "")
            for c in containers:
                waiting = (c.get("state") or {}).get("waiting") or {}
                if waiting.get("reason"):
                    reason = waiting["reason"]
                    break
            pods.append(
                PodStatus(
                    name=item.get("metadata", {}).get("name", ""),
                    phase=status.get("phase", ""),
                    ready=bool(containers) and all(c.get("ready") for c in containers),
                    restarts=sum(c.get("restartCount", 0) or 0 for c in containers),
                    reason=reason,
                )
            )
        return pods

    def list_events(self, namespace: str, limit: int = 50) -> list[ClusterEvent]:
        """Most recent events, oldest first."""
        data = self._get_json(
            f"kubectl:get:events:{namespace}",
            "get", "events", "-n", namespace, "--sort-by=.lastTimestamp", "-o", "json",
        )
        events: list[ClusterEvent] = []
        for item in (data.get("items", []) or [])[-limit:]:
            involved = item.get("involvedObject", {}) or {}
            events.append(
                ClusterEvent(
                    type=item.get("type", ""),
                    reason=item.get("reason", ""),
                    object=f"{involved.get('kind', '')}/{involved.get('name', '')}",
                    message=item.get("message", ""),
                    count=item.get("count", 1) or 1,
                    last_seen=item.get("lastTimestamp", "") or "",
                )
            )
        return events

    def workload_logs(self, ref: str, namespace: str, tail: int = 50) -> str:
        kind, name = parse_workload_ref(ref)
        receipt = self._kubectl(
            f"kubectl:logs:{kind.lower()}/{name}",
            "logs", f"{kind.lower()}/{name}", "-n", namespace,
            "--all-containers", f"--tail={tail}",
        )
        if not receipt.ok:
            raise ClusterUnavailable(
                f"Cannot read logs of {ref}: {receipt.error}",
                context={"workload": ref, "namespace": namespace},
            )
        return receipt.output

    # ── Helpers ──────────────────────────────────────────────────

    def _kubectl(self, action_id: str, *args: str) -> Receipt:
        return self._registry.execute(
            Action(
                id=action_id,
                adapter="kubectl",
                args=list(args),
                timeout=max(self.connection.request_timeout * 2, 10),
                read_only=True,
            )
        )

    def _get_json(self, action_id: str, *args: str) -> dict[str, Any]:
        receipt = self._kubectl(action_id, *args)
        if not receipt.ok:
            raise ClusterUnavailable(
                f"kubectl {' '.join(args[:2])} failed: {receipt.error}",
                context={"args": list(args)},
            )
        return self._parse(receipt)

    @staticmethod
    def _parse(receipt: Receipt) -> dict[str, Any]:
        try:
            data = json.loads(receipt.output or "{}")
        except ValueError as e:
            raise ClusterUnavailable(
                f"kubectl returned invalid JSON for {receipt.action_id}: {e}"
            ) from e
        return data if isinstance(data, dict) else {}


def _decoded_length(value: Any) -> int:
    if not isinstance(value, str) or not value:
        return 0
    try:
        return len(base64.b64decode(value, validate=True))
    except (binascii.Error, ValueError):
        return len(value)
