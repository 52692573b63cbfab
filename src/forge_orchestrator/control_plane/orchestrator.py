"""
forge-orchestrator — suite orchestrator

File: src/forge_orchestrator/control_plane/orchestrator.py
Last updated: 2026-10-19

Purpose
- Drive a whole suite through its phases:
  DISCOVERY -> PLANNING -> MECE_VALIDATION -> BUILD -> QUALITY -> PUBLISH -> COMPLETE.

Functional requirements
- Any phase may move the suite to FAILED; the failing phase and its cause are recorded.
- Resolver errors abort at DISCOVERY. Missing or invalid plans fail PLANNING, and
  overlapping or uncovered responsibilities fail MECE_VALIDATION, before anything is built.
- QUALITY passes when every non-skipped package is PUBLISHED or awaiting intervention.
  PUBLISH passes when every package is PUBLISHED.
- Reports are written at the end of every run, successful or not.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

from forge_orchestrator.constants import DEFAULT_MAX_CONCURRENT_BUILDS
from forge_orchestrator.control_plane.scheduler import BuildScheduler
from forge_orchestrator.domain.errors import (
    CycleError,
    MeceViolationError,
    PlanNotFoundError,
    PlanValidationError,
    UnresolvedDependencyError,
)
from forge_orchestrator.domain.models import BuildTaskState, JSONValue, package_slug
from forge_orchestrator.observability.logging import correlation_scope
from forge_orchestrator.planning.discovery import ManifestError
from forge_orchestrator.planning.mece import assert_mece

if TYPE_CHECKING:
    from pathlib import Path

    from forge_orchestrator.control_plane.scheduler import BuildFunction
    from forge_orchestrator.control_plane.task_runner import TaskRunner
    from forge_orchestrator.domain.models import PackageBuildTask
    from forge_orchestrator.planning.dependency_graph import DependencyGraph
    from forge_orchestrator.planning.plans import PlanResolver
    from forge_orchestrator.reporting.reports import ReportWriter

GraphResolver = Callable[[str], "DependencyGraph"]


class SuitePhase(StrEnum):
    DISCOVERY = "discovery"
    PLANNING = "planning"
    MECE_VALIDATION = "mece_validation"
    BUILD = "build"
    QUALITY = "quality"
    PUBLISH = "publish"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class PhaseTransition:
    phase: SuitePhase
    timestamp: datetime
    detail: str = ""

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "phase": self.phase.value,
            "timestamp": self.timestamp.isoformat(timespec="milliseconds").replace(
                "+00:00", "Z"
            ),
            "detail": self.detail,
        }


@dataclass(slots=True)
class SuiteRunResult:
    """Final state of one suite run."""

    suite_id: str
    root_package: str
    phase: SuitePhase
    phase_history: list[PhaseTransition] = field(default_factory=list)
    tasks: Mapping[str, PackageBuildTask] = field(default_factory=dict)
    failed_phase: SuitePhase | None = None
    failure: str | None = None
    error_type: str | None = None
    reports_path: Path | None = None

    @property
    def succeeded(self) -> bool:
        return self.phase is SuitePhase.COMPLETE

    @property
    def awaiting_intervention(self) -> tuple[str, ...]:
        return tuple(
            name
            for name, task in self.tasks.items()
            if task.state is BuildTaskState.AWAITING_INTERVENTION
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "suite_id": self.suite_id,
            "root_package": self.root_package,
            "phase": self.phase.value,
            "phase_history": [item.to_dict() for item in self.phase_history],
            "tasks": {name: task.to_dict() for name, task in sorted(self.tasks.items())},
            "failed_phase": self.failed_phase.value if self.failed_phase is not None else None,
            "failure": self.failure,
            "error_type": self.error_type,
            "reports_path": self.reports_path.as_posix() if self.reports_path else None,
        }


class _PhaseFailed(Exception):
    def __init__(self, message: str, *, error_type: str | None = None) -> None:
        super().__init__(message)
        self.error_type = error_type


class SuiteOrchestrator:
    """Runs one suite end to end and always leaves reports behind."""

    def __init__(
        self,
        *,
        resolve_graph: GraphResolver,
        plans: PlanResolver,
        builder: BuildFunction,
        max_concurrent_builds: int = DEFAULT_MAX_CONCURRENT_BUILDS,
        runner: TaskRunner | None = None,
        reports: ReportWriter | None = None,
        logger: Any | None = None,
    ) -> None:
        self._resolve_graph = resolve_graph
        self._plans = plans
        self._builder = builder
        self._max_concurrent = max_concurrent_builds
        self._runner = runner
        self._reports = reports
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._scheduler: BuildScheduler | None = None

    @property
    def scheduler(self) -> BuildScheduler | None:
        """Scheduler of the most recent run, for timeline inspection."""
        return self._scheduler

    async def run(self, root_package: str, *, suite_id: str | None = None) -> SuiteRunResult:
        resolved_id = suite_id or new_suite_id(root_package)
        result = SuiteRunResult(
            suite_id=resolved_id,
            root_package=root_package,
            phase=SuitePhase.DISCOVERY,
        )
        with correlation_scope(suite_id=resolved_id):
            try:
                await self._run_phases(result)
            except _PhaseFailed as exc:
                result.failed_phase = result.phase
                result.failure = str(exc)
                result.error_type = exc.error_type
                self._transition(result, SuitePhase.FAILED, str(exc))
            finally:
                self._write_reports(result)
        return result

    async def _run_phases(self, result: SuiteRunResult) -> None:
        self._transition(result, SuitePhase.DISCOVERY)
        try:
            graph = self._resolve_graph(result.root_package)
        except (CycleError, UnresolvedDependencyError, ManifestError) as exc:
            raise _PhaseFailed(str(exc), error_type=type(exc).__name__) from exc

        self._transition(result, SuitePhase.PLANNING, f"{len(graph)} package(s)")
        planned: list[str] = []
        problems: list[str] = []
        problem_types: set[str] = set()
        for name in graph.topological_order():
            try:
                self._plans.resolve(name)
            except (PlanNotFoundError, PlanValidationError) as exc:
                problems.append(str(exc))
                problem_types.add(type(exc).__name__)
            else:
                planned.append(name)
        if problems:
            error_type = problem_types.pop() if len(problem_types) == 1 else "PlanningFailed"
            raise _PhaseFailed("; ".join(problems), error_type=error_type)

        self._transition(result, SuitePhase.MECE_VALIDATION)
        try:
            assert_mece(graph, planned=planned)
        except MeceViolationError as exc:
            raise _PhaseFailed(str(exc), error_type=type(exc).__name__) from exc

        self._transition(result, SuitePhase.BUILD)
        self._scheduler = BuildScheduler(
            builder=self._builder,
            max_concurrent_builds=self._max_concurrent,
            runner=self._runner,
            logger=self._logger,
        )
        result.tasks = await self._scheduler.run(graph)

        self._transition(result, SuitePhase.QUALITY)
        failed = sorted(
            name
            for name, task in result.tasks.items()
            if task.state
            not in {
                BuildTaskState.PUBLISHED,
                BuildTaskState.AWAITING_INTERVENTION,
                BuildTaskState.SKIPPED,
            }
        )
        if failed:
            raise _PhaseFailed(
                f"package(s) failed: {', '.join(failed)}",
                error_type=result.tasks[failed[0]].error_type,
            )

        self._transition(result, SuitePhase.PUBLISH)
        unpublished = sorted(
            name for name, task in result.tasks.items() if not task.state.is_success
        )
        if unpublished:
            waiting = result.awaiting_intervention
            detail = f"not published: {', '.join(unpublished)}"
            if waiting:
                detail += f" (awaiting intervention: {', '.join(waiting)})"
            error_type = "HumanInterventionRequested" if waiting else None
            raise _PhaseFailed(detail, error_type=error_type)

        self._transition(result, SuitePhase.COMPLETE)

    def _transition(self, result: SuiteRunResult, phase: SuitePhase, detail: str = "") -> None:
        result.phase = phase
        result.phase_history.append(
            PhaseTransition(phase=phase, timestamp=datetime.now(UTC), detail=detail)
        )
        log = self._logger.error if phase is SuitePhase.FAILED else self._logger.info
        log(
            "suite_phase_transition",
            suite_id=result.suite_id,
            phase=phase.value,
            detail=detail,
        )

    def _write_reports(self, result: SuiteRunResult) -> None:
        if self._reports is None:
            return
        result.reports_path = self._reports.write_suite(
            suite_id=result.suite_id,
            root_package=result.root_package,
            phase=result.phase.value,
            tasks=result.tasks,
            failure=result.failure,
        )
        self._logger.info(
            "suite_reports_written",
            suite_id=result.suite_id,
            path=result.reports_path.as_posix(),
        )


def new_suite_id(root_package: str) -> str:
    stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
    return f"{package_slug(root_package)}-{stamp}-{uuid4().hex[:6]}"


__all__ = [
    "GraphResolver",
    "PhaseTransition",
    "SuiteOrchestrator",
    "SuitePhase",
    "SuiteRunResult",
    "new_suite_id",
]
