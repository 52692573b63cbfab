"""Unit tests for suite phase sequencing and report emission."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from forge_orchestrator.control_plane import SuiteOrchestrator, SuitePhase, new_suite_id
from forge_orchestrator.domain import BuildTaskState, Package, PackageBuildTask
from forge_orchestrator.planning import DependencyGraph, PlanResolver, resolve_dependency_graph
from forge_orchestrator.reporting import ReportWriter, load_package_reports, load_suite_summary

PLAN = "# Overview\nx\n# Requirements\nx\n# Implementation\nx\n# Testing\nx\n"


@dataclass(slots=True)
class RecordingLogger:
    events: list[tuple[str, dict[str, object]]] = field(default_factory=list)

    def info(self, event: str, **kwargs: object) -> None:
        self.events.append((event, dict(kwargs)))

    def error(self, event: str, **kwargs: object) -> None:
        self.events.append((event, dict(kwargs)))

    def debug(self, event: str, **kwargs: object) -> None:
        self.events.append((event, dict(kwargs)))


@dataclass(slots=True)
class OutcomeBuilder:
    outcomes: Mapping[str, BuildTaskState] = field(default_factory=dict)
    built: list[str] = field(default_factory=list)

    async def __call__(
        self, task: PackageBuildTask, package: Package, graph: DependencyGraph
    ) -> PackageBuildTask:
        self.built.append(package.name)
        task.transition(BuildTaskState.BUILDING)
        state = self.outcomes.get(package.name, BuildTaskState.PUBLISHED)
        if state is BuildTaskState.PUBLISHED:
            task.published_version = "1.0.0"
            task.transition(state)
        elif state is BuildTaskState.FAILED:
            task.fail(state, RuntimeError(f"{package.name} broke"))
        else:
            task.fail(state, f"{package.name} needs a human")
        return task


def _suite(**deps: tuple[str, ...]) -> dict[str, Package]:
    return {
        name: Package(name=name, dependencies=requires, provides=(f"{name}-api",))
        for name, requires in deps.items()
    }


CHAIN = _suite(a=(), b=("a",), c=("b",))


def _orchestrator(
    tmp_path: Path,
    builder: OutcomeBuilder,
    *,
    packages: Mapping[str, Package] = CHAIN,
    plans: Mapping[str, str] | None = None,
    logger: RecordingLogger | None = None,
) -> SuiteOrchestrator:
    explicit = plans if plans is not None else {name: PLAN for name in packages}
    return SuiteOrchestrator(
        resolve_graph=lambda root: resolve_dependency_graph(root, packages),
        plans=PlanResolver(explicit=explicit),
        builder=builder,
        max_concurrent_builds=2,
        reports=ReportWriter(tmp_path / "reports"),
        logger=logger or RecordingLogger(),
    )


@pytest.mark.asyncio
async def test_successful_suite_walks_every_phase(tmp_path: Path) -> None:
    builder = OutcomeBuilder()
    logger = RecordingLogger()

    result = await _orchestrator(tmp_path, builder, logger=logger).run("c", suite_id="s1")

    assert result.succeeded
    assert [item.phase for item in result.phase_history] == [
        SuitePhase.DISCOVERY,
        SuitePhase.PLANNING,
        SuitePhase.MECE_VALIDATION,
        SuitePhase.BUILD,
        SuitePhase.QUALITY,
        SuitePhase.PUBLISH,
        SuitePhase.COMPLETE,
    ]
    assert builder.built == ["a", "b", "c"]
    assert result.failed_phase is None
    assert result.reports_path == tmp_path / "reports" / "s1"
    assert logger.events[-1] == (
        "suite_reports_written",
        {"suite_id": "s1", "path": (tmp_path / "reports" / "s1").as_posix()},
    )

    reports = load_package_reports(tmp_path / "reports" / "s1")
    assert [report.name for report in reports] == ["a", "b", "c"]
    summary = load_suite_summary(tmp_path / "reports" / "s1")
    assert summary is not None
    assert summary["phase"] == "complete"
    assert summary["totals"]["published"] == 3  # type: ignore[index]


@pytest.mark.asyncio
async def test_cycle_fails_discovery_and_still_writes_summary(tmp_path: Path) -> None:
    packages = _suite(a=("c",), b=("a",), c=("b",))
    builder = OutcomeBuilder()

    result = await _orchestrator(tmp_path, builder, packages=packages).run("c", suite_id="s2")

    assert result.phase is SuitePhase.FAILED
    assert result.failed_phase is SuitePhase.DISCOVERY
    assert result.error_type == "CycleError"
    assert builder.built == []
    summary = load_suite_summary(tmp_path / "reports" / "s2")
    assert summary is not None
    assert summary["phase"] == "failed"
    assert summary["failure"] == result.failure


@pytest.mark.asyncio
async def test_unresolved_dependency_fails_discovery(tmp_path: Path) -> None:
    packages = _suite(a=("ghost",))

    result = await _orchestrator(tmp_path, OutcomeBuilder(), packages=packages).run("a")

    assert result.failed_phase is SuitePhase.DISCOVERY
    assert result.error_type == "UnresolvedDependencyError"
    assert result.failure is not None and "ghost" in result.failure


@pytest.mark.asyncio
async def test_missing_plans_fail_planning_before_any_build(tmp_path: Path) -> None:
    builder = OutcomeBuilder()
    orchestrator = _orchestrator(tmp_path, builder, plans={"a": PLAN})

    result = await orchestrator.run("c", suite_id="s3")

    assert result.failed_phase is SuitePhase.PLANNING
    assert result.error_type == "PlanNotFoundError"
    assert result.failure is not None
    assert "'b'" in result.failure and "'c'" in result.failure
    assert builder.built == []


@pytest.mark.asyncio
async def test_mixed_planning_problems_are_reported_together(tmp_path: Path) -> None:
    orchestrator = _orchestrator(
        tmp_path, OutcomeBuilder(), plans={"a": PLAN, "b": "# Overview\nonly\n"}
    )

    result = await orchestrator.run("c")

    assert result.failed_phase is SuitePhase.PLANNING
    assert result.error_type == "PlanningFailed"


@pytest.mark.asyncio
async def test_overlapping_responsibilities_fail_mece(tmp_path: Path) -> None:
    packages = {
        "a": Package(name="a", provides=("http",)),
        "b": Package(name="b", dependencies=("a",), provides=("http",)),
    }
    builder = OutcomeBuilder()

    result = await _orchestrator(tmp_path, builder, packages=packages).run("b")

    assert result.failed_phase is SuitePhase.MECE_VALIDATION
    assert result.error_type == "MeceViolationError"
    assert builder.built == []


@pytest.mark.asyncio
async def test_failed_package_fails_quality_and_skips_dependents(tmp_path: Path) -> None:
    builder = OutcomeBuilder({"b": BuildTaskState.FAILED})

    result = await _orchestrator(tmp_path, builder).run("c", suite_id="s4")

    assert result.failed_phase is SuitePhase.QUALITY
    assert result.error_type == "RuntimeError"
    assert result.failure == "package(s) failed: b"
    assert result.tasks["a"].state is BuildTaskState.PUBLISHED
    assert result.tasks["c"].state is BuildTaskState.SKIPPED

    reports = {report.name: report for report in load_package_reports(tmp_path / "reports/s4")}
    assert reports["b"].cause == "b broke"
    assert reports["c"].skipped_because == "b"


@pytest.mark.asyncio
async def test_awaiting_intervention_fails_publish(tmp_path: Path) -> None:
    builder = OutcomeBuilder({"c": BuildTaskState.AWAITING_INTERVENTION})

    result = await _orchestrator(tmp_path, builder).run("c")

    assert result.failed_phase is SuitePhase.PUBLISH
    assert result.error_type == "HumanInterventionRequested"
    assert result.awaiting_intervention == ("c",)
    assert result.failure == "not published: c (awaiting intervention: c)"


@pytest.mark.asyncio
async def test_result_serializes_to_json(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path, OutcomeBuilder())
    result = await orchestrator.run("c", suite_id="s5")

    payload = json.loads(json.dumps(result.to_dict()))

    assert payload["phase"] == "complete"
    assert sorted(payload["tasks"]) == ["a", "b", "c"]
    assert payload["phase_history"][0]["timestamp"].endswith("Z")
    assert orchestrator.scheduler is not None
    assert orchestrator.scheduler.peak_active <= 2


def test_new_suite_id_is_slugged_and_unique() -> None:
    first = new_suite_id("@acme/core")
    second = new_suite_id("@acme/core")

    assert first != second
    assert "/" not in first and "@" not in first
