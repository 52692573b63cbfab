"""
forge-orchestrator — per-package build state machine

File: src/forge_orchestrator/control_plane/package_builder.py
Last updated: 2026-10-19

Purpose
- Take one ready package from plan to published version:
  plan -> BUILDING -> QUALITY_CHECK -> (REMEDIATING) -> publish -> PUBLISHED.

Functional requirements
- Every exit leaves the task in a terminal state that names its cause.
- ``HumanInterventionRequested`` maps to AWAITING_INTERVENTION; every other
  orchestration error maps to FAILED.
- Publishing is skipped when the generation loop already published.
- Unexpected exceptions propagate to the scheduler, which records them as FAILED.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from forge_orchestrator.domain.errors import (
    ForgeError,
    HumanInterventionRequested,
    QualityBlocked,
    RemediationExhausted,
)
from forge_orchestrator.domain.models import BuildTaskState
from forge_orchestrator.integration_plane.publisher import publish_with_retry
from forge_orchestrator.observability.logging import correlation_scope

if TYPE_CHECKING:
    from forge_orchestrator.control_plane.remediation import RemediationController
    from forge_orchestrator.control_plane.task_runner import TaskRunner
    from forge_orchestrator.domain.models import Package, PackageBuildTask
    from forge_orchestrator.integration_plane.publisher import Publisher
    from forge_orchestrator.planning.dependency_graph import DependencyGraph
    from forge_orchestrator.planning.plans import PlanResolver
    from forge_orchestrator.synthesis_plane.generation_loop import GenerationLoop, HintSource
    from forge_orchestrator.verification_plane.quality_gate import QualityGate

HINT_SIGNAL = "hint"


class PackageBuilder:
    """Runs the build state machine for one package at a time per call."""

    def __init__(
        self,
        *,
        plans: PlanResolver,
        loop: GenerationLoop,
        gate: QualityGate,
        remediation: RemediationController,
        publisher: Publisher,
        registry: str = "",
        publish_max_attempts: int = 3,
        runner: TaskRunner | None = None,
        logger: Any | None = None,
    ) -> None:
        self._plans = plans
        self._loop = loop
        self._gate = gate
        self._remediation = remediation
        self._publisher = publisher
        self._registry = registry
        self._publish_max_attempts = publish_max_attempts
        self._runner = runner
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    async def build(
        self,
        task: PackageBuildTask,
        package: Package,
        graph: DependencyGraph,
    ) -> PackageBuildTask:
        task.started_at = datetime.now(UTC)
        self._logger.info(
            "package_build_started",
            package=package.name,
            dependencies=list(graph.dependencies_of(package.name)),
        )
        try:
            with correlation_scope(package=package.name):
                await self._build(task, package)
        except HumanInterventionRequested as exc:
            task.fail(BuildTaskState.AWAITING_INTERVENTION, exc)
        except RemediationExhausted as exc:
            task.score = exc.score
            task.fail(BuildTaskState.FAILED, exc)
        except ForgeError as exc:
            task.fail(BuildTaskState.FAILED, exc)
        finally:
            task.finished_at = datetime.now(UTC)

        self._logger.info(
            "package_build_finished",
            package=package.name,
            state=task.state.value,
            error_type=task.error_type,
            turns=task.turns,
            remediation_attempts=task.remediation_attempts,
        )
        return task

    async def _build(self, task: PackageBuildTask, package: Package) -> None:
        plan = self._plans.resolve(package.name)
        hints = self._hint_source(package.name)

        task.transition(BuildTaskState.BUILDING)
        outcome = await self._loop.run(package, plan.text, hints=hints)
        task.turns += outcome.turns
        published_version = outcome.version if outcome.published else None

        task.transition(BuildTaskState.QUALITY_CHECK)
        try:
            report = await self._gate.enforce(package)
        except QualityBlocked as blocked:
            task.score = blocked.score
            self._logger.info(
                "package_quality_blocked",
                package=package.name,
                score=blocked.score.score,
                failed_checks=[item.value for item in blocked.score.failed_checks],
            )
            task.transition(BuildTaskState.REMEDIATING)

            async def regenerate(brief: str) -> None:
                nonlocal published_version
                result = await self._loop.run(package, plan.text, remediation=brief, hints=hints)
                task.turns += result.turns
                if result.published:
                    published_version = result.version

            def record_attempt(attempt: int) -> None:
                task.remediation_attempts = attempt

            remediated = await self._remediation.remediate(
                package,
                blocked.report,
                regenerate,
                on_attempt=record_attempt,
            )
            task.score = remediated.report.score
        else:
            task.score = report.score

        if published_version is None:
            result = await publish_with_retry(
                self._publisher,
                package=package.name,
                package_path=package.path,
                registry=self._registry,
                max_attempts=self._publish_max_attempts,
                logger=self._logger,
            )
            published_version = result.version

        task.published_version = published_version
        task.transition(BuildTaskState.PUBLISHED)

    def _hint_source(self, package: str) -> HintSource | None:
        runner = self._runner
        if runner is None:
            return None

        def drain() -> list[str]:
            return [str(item) for item in runner.drain_signals(package, HINT_SIGNAL)]

        return drain


__all__ = ["HINT_SIGNAL", "PackageBuilder"]
