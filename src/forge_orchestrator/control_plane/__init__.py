"""Control-plane public API: scheduling, per-package builds, remediation, suite runs."""

from forge_orchestrator.control_plane.feedback import (
    RemediationPriority,
    RemediationTask,
    build_remediation_tasks,
)
from forge_orchestrator.control_plane.orchestrator import (
    SuiteOrchestrator,
    SuitePhase,
    SuiteRunResult,
    new_suite_id,
)
from forge_orchestrator.control_plane.package_builder import HINT_SIGNAL, PackageBuilder
from forge_orchestrator.control_plane.remediation import (
    RemediationController,
    RemediationResult,
)
from forge_orchestrator.control_plane.scheduler import BuildScheduler, SchedulerEvent
from forge_orchestrator.control_plane.task_runner import AsyncioTaskRunner, TaskRunner

__all__ = [
    "HINT_SIGNAL",
    "AsyncioTaskRunner",
    "BuildScheduler",
    "PackageBuilder",
    "RemediationController",
    "RemediationPriority",
    "RemediationResult",
    "RemediationTask",
    "SchedulerEvent",
    "SuiteOrchestrator",
    "SuitePhase",
    "SuiteRunResult",
    "TaskRunner",
    "build_remediation_tasks",
    "new_suite_id",
]
