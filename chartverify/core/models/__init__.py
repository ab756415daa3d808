"""
Domain models — pydantic types for chartverify.

All models are re-exported here for convenient access:

    from chartverify.core.models import ScenarioDescriptor, ReadinessCondition, Receipt
"""

from chartverify.core.models.action import Action, Receipt
from chartverify.core.models.cluster import (
    ClusterEvent,
    NamespaceReport,
    PodStatus,
    SecretStatus,
    WorkloadStatus,
    WorkloadSummary,
)
from chartverify.core.models.config import (
    ConnectionConfig,
    ReadinessSpec,
    ScenarioConfig,
    SuiteConfig,
)
from chartverify.core.models.readiness import ConditionKind, ProbeOutcome, ReadinessCondition
from chartverify.core.models.results import (
    ChartMetadata,
    ErrorInfo,
    InstallResult,
    PackageRef,
    RenderedDiff,
    ResourceChange,
    ScenarioOutcome,
    ScenarioStep,
    VerificationReport,
)
from chartverify.core.models.scenario import ScenarioDescriptor, ScenarioMode

__all__ = [
    # action.py
    "Action",
    "Receipt",
    # cluster.py
    "ClusterEvent",
    "NamespaceReport",
    "PodStatus",
    "SecretStatus",
    "WorkloadStatus",
    "WorkloadSummary",
    # config.py
    "ConnectionConfig",
    "ReadinessSpec",
    "ScenarioConfig",
    "SuiteConfig",
    # readiness.py
    "ConditionKind",
    "ProbeOutcome",
    "ReadinessCondition",
    # results.py
    "ChartMetadata",
    "ErrorInfo",
    "InstallResult",
    "PackageRef",
    "RenderedDiff",
    "ResourceChange",
    "ScenarioOutcome",
    "ScenarioStep",
    "VerificationReport",
    # scenario.py
    "ScenarioDescriptor",
    "ScenarioMode",
]
