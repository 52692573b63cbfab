"""Domain models and error taxonomy."""

from forge_orchestrator.domain.errors import (
    CheckExecutionFault,
    CycleError,
    FileLoopTerminated,
    ForgeError,
    HumanInterventionRequested,
    IterationsExhausted,
    QualityBlocked,
    RemediationExhausted,
    UnresolvedDependencyError,
)
from forge_orchestrator.domain.models import (
    ActionHistoryEntry,
    BuildTaskState,
    CheckName,
    ComplianceLevel,
    ComplianceScore,
    FileFailureEntry,
    Package,
    PackageBuildTask,
    PackageCategory,
    QualityCheckResult,
)

__all__ = [
    "ActionHistoryEntry",
    "BuildTaskState",
    "CheckExecutionFault",
    "CheckName",
    "ComplianceLevel",
    "ComplianceScore",
    "CycleError",
    "FileFailureEntry",
    "FileLoopTerminated",
    "ForgeError",
    "HumanInterventionRequested",
    "IterationsExhausted",
    "Package",
    "PackageBuildTask",
    "PackageCategory",
    "QualityBlocked",
    "QualityCheckResult",
    "RemediationExhausted",
    "UnresolvedDependencyError",
]
