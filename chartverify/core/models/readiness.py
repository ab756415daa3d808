"""
Readiness conditions — stateless descriptions of "ready".

A condition says what to look at and how long to wait. The probe
service evaluates it repeatedly; the condition itself never changes.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ConditionKind(str, Enum):
    WORKLOAD_ROLLOUT = "workload_rollout"
    SECRET_PRESENCE = "secret_presence"
    EXTERNAL_SERVICE_UP = "external_service_up"


class ReadinessCondition(BaseModel):
    """What to wait for.

    workload_rollout:     every workload in ``targets`` has ready == desired
    secret_presence:      secret ``target_name`` has a non-empty ``secret_key``
    external_service_up:  ``url`` answers HTTP with a status below 500

    Workload names use kubectl's ``kind/name`` form (``deploy/hub``);
    a bare name is treated as a Deployment.
    """

    model_config = ConfigDict(frozen=True)

    kind: ConditionKind
    target_name: str
    target_set: tuple[str, ...] = Field(default_factory=tuple)
    namespace: str | None = None        # None = the scenario namespace
    secret_key: str | None = None
    url: str | None = None
    timeout: float = 300.0              # seconds
    poll_interval: float = 2.0          # seconds

    @model_validator(mode="after")
    def _check_kind_fields(self) -> ReadinessCondition:
        if self.kind is ConditionKind.SECRET_PRESENCE and not self.secret_key:
            raise ValueError("secret_presence conditions need a secret_key")
        if self.kind is ConditionKind.EXTERNAL_SERVICE_UP and not self.url:
            raise ValueError("external_service_up conditions need a url")
        if self.timeout < 0:
            raise ValueError("timeout must be >= 0")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        return self

    @property
    def targets(self) -> list[str]:
        """All workloads named by this condition, primary first."""
        names = [self.target_name]
        names.extend(t for t in self.target_set if t not in names)
        return names

    def describe(self) -> str:
        if self.kind is ConditionKind.WORKLOAD_ROLLOUT:
            return f"rollout of {', '.join(self.targets)}"
        if self.kind is ConditionKind.SECRET_PRESENCE:
            return f"secret {self.target_name}[{self.secret_key}]"
        return f"service {self.target_name} at {self.url}"

    def with_namespace(self, namespace: str) -> ReadinessCondition:
        """Fill in the namespace if the condition does not pin one."""
        if self.namespace:
            return self
        return self.model_copy(update={"namespace": namespace})


class ProbeOutcome(BaseModel):
    """A condition that held."""

    condition: str
    attempts: int = 0
    elapsed_seconds: float = 0.0
    last_observed: dict[str, Any] = Field(default_factory=dict)
