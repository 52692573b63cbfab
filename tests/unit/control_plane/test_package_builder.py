"""Unit tests for the per-package build state machine."""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from forge_orchestrator.control_plane import (
    HINT_SIGNAL,
    AsyncioTaskRunner,
    PackageBuilder,
    RemediationController,
)
from forge_orchestrator.domain import (
    BuildTaskState,
    CheckName,
    HumanInterventionRequested,
    Package,
    PackageBuildTask,
)
from forge_orchestrator.domain.models import JSONValue
from forge_orchestrator.integration_plane.publisher import PublishResult
from forge_orchestrator.planning import DependencyGraph, PlanResolver
from forge_orchestrator.synthesis_plane.generation_loop import HintSource, LoopOutcome
from forge_orchestrator.verification_plane import QualityGate
from forge_orchestrator.verification_plane.probes import ProbeContext, ProbeOutcome

PLAN = """# Overview
Core helpers.

## Requirements
- expose helpers

## Implementation
- write src/index.ts

## Testing
- unit tests
"""


@dataclass(slots=True)
class RecordingLogger:
    events: list[tuple[str, dict[str, object]]] = field(default_factory=list)

    def info(self, event: str, **kwargs: object) -> None:
        self.events.append((event, dict(kwargs)))

    def warning(self, event: str, **kwargs: object) -> None:
        self.events.append((event, dict(kwargs)))

    def error(self, event: str, **kwargs: object) -> None:
        self.events.append((event, dict(kwargs)))

    def debug(self, event: str, **kwargs: object) -> None:
        self.events.append((event, dict(kwargs)))


@dataclass(slots=True)
class SequencedProbe:
    check: CheckName
    verdicts: list[bool] = field(default_factory=lambda: [True])
    details: dict[str, JSONValue] = field(default_factory=dict)

    async def run(self, package: Package, context: ProbeContext) -> ProbeOutcome:
        passed = self.verdicts.pop(0) if len(self.verdicts) > 1 else self.verdicts[0]
        return ProbeOutcome(passed=passed, details={} if passed else self.details)


@dataclass(slots=True)
class LoopCall:
    plan_text: str
    remediation: str | None
    hints: list[str]


@dataclass(slots=True)
class FakeLoop:
    """Replays scripted outcomes; an exception entry is raised instead of returned."""

    script: list[LoopOutcome | Exception] = field(default_factory=list)
    calls: list[LoopCall] = field(default_factory=list)

    async def run(
        self,
        package: Package,
        plan_text: str,
        *,
        remediation: str | None = None,
        hints: HintSource | None = None,
    ) -> LoopOutcome:
        drained = list(hints()) if hints is not None else []
        self.calls.append(LoopCall(plan_text, remediation, drained))
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(step, Exception):
            raise step
        return step


@dataclass(slots=True)
class RecordingPublisher:
    results: list[PublishResult] = field(
        default_factory=lambda: [PublishResult(published=True, version="1.2.3")]
    )
    calls: list[tuple[str, str]] = field(default_factory=list)

    async def publish(self, package_path: str, registry: str) -> PublishResult:
        self.calls.append((package_path, registry))
        return self.results.pop(0) if len(self.results) > 1 else self.results[0]


class UnusedExecutor:
    async def run(self, spec: object) -> object:
        raise AssertionError("scripted probes never run commands")


PACKAGE = Package(name="core", path="/work/core")
GRAPH = DependencyGraph([PACKAGE])


def _ready(turns: int = 3) -> LoopOutcome:
    return LoopOutcome(package="core", turns=turns, history=())


def _builder(
    loop: FakeLoop,
    *,
    probes: dict[str, SequencedProbe] | None = None,
    publisher: RecordingPublisher | None = None,
    plans: PlanResolver | None = None,
    runner: AsyncioTaskRunner | None = None,
    logger: RecordingLogger | None = None,
) -> tuple[PackageBuilder, RecordingPublisher]:
    log = logger or RecordingLogger()
    overrides = probes or {}
    gate = QualityGate(
        executor=UnusedExecutor(),  # type: ignore[arg-type]
        probes=[overrides.get(check.value, SequencedProbe(check)) for check in CheckName],
        logger=log,
    )
    sink = publisher or RecordingPublisher()
    builder = PackageBuilder(
        plans=plans or PlanResolver(explicit={"core": PLAN}),
        loop=loop,  # type: ignore[arg-type]
        gate=gate,
        remediation=RemediationController(gate=gate, max_attempts=3, logger=log),
        publisher=sink,
        registry="https://registry.example",
        publish_max_attempts=2,
        runner=runner,
        logger=log,
    )
    return builder, sink


async def _build(builder: PackageBuilder) -> PackageBuildTask:
    return await builder.build(PackageBuildTask(package="core"), PACKAGE, GRAPH)


@pytest.mark.asyncio
async def test_clean_build_is_published() -> None:
    loop = FakeLoop([_ready(turns=4)])
    builder, publisher = _builder(loop)

    task = await _build(builder)

    assert task.state is BuildTaskState.PUBLISHED
    assert task.published_version == "1.2.3"
    assert task.turns == 4
    assert task.remediation_attempts == 0
    assert task.score is not None and task.score.score == 100
    assert publisher.calls == [("/work/core", "https://registry.example")]
    assert loop.calls[0].plan_text == PLAN
    assert loop.calls[0].remediation is None
    assert task.started_at is not None and task.finished_at is not None


@pytest.mark.asyncio
async def test_failed_gate_is_remediated_then_published() -> None:
    loop = FakeLoop([_ready(turns=2)])
    probes = {
        "typecheck": SequencedProbe(CheckName.TYPECHECK, [False, False, True], {"errors": 3}),
    }
    builder, _ = _builder(loop, probes=probes)

    task = await _build(builder)

    assert task.state is BuildTaskState.PUBLISHED
    assert task.remediation_attempts == 2
    assert task.turns == 6
    assert task.score is not None and task.score.score == 100
    assert [call.remediation is None for call in loop.calls] == [True, False, False]
    brief = loop.calls[1].remediation or ""
    assert "Quality score 80/100" in brief
    assert "Remediation attempt 1 of 3." in brief


@pytest.mark.asyncio
async def test_blocked_gate_is_logged_before_remediation() -> None:
    logger = RecordingLogger()
    probes = {"typecheck": SequencedProbe(CheckName.TYPECHECK, [False, True], {"errors": 1})}
    builder, _ = _builder(FakeLoop([_ready()]), probes=probes, logger=logger)

    task = await _build(builder)

    blocked = [kwargs for event, kwargs in logger.events if event == "package_quality_blocked"]
    assert blocked == [{"package": "core", "score": 80, "failed_checks": ["typecheck"]}]
    assert task.state is BuildTaskState.PUBLISHED
    assert task.remediation_attempts == 1


@pytest.mark.asyncio
async def test_exhausted_remediation_fails_with_last_score() -> None:
    loop = FakeLoop([_ready()])
    builder, publisher = _builder(
        loop, probes={"tests": SequencedProbe(CheckName.TESTS, [False], {"failed": ["x"]})}
    )

    task = await _build(builder)

    assert task.state is BuildTaskState.FAILED
    assert task.error_type == "RemediationExhausted"
    assert task.remediation_attempts == 3
    assert task.score is not None and task.score.score == 75
    assert len(loop.calls) == 4
    assert publisher.calls == []


@pytest.mark.asyncio
async def test_lint_intervention_leaves_task_awaiting() -> None:
    loop = FakeLoop([HumanInterventionRequested("lint failed 3 times", consecutive_failures=3)])
    builder, publisher = _builder(loop)

    task = await _build(builder)

    assert task.state is BuildTaskState.AWAITING_INTERVENTION
    assert task.error_type == "HumanInterventionRequested"
    assert task.last_error is not None and "lint failed 3 times" in task.last_error
    assert publisher.calls == []


@pytest.mark.asyncio
async def test_missing_plan_fails_before_generation() -> None:
    loop = FakeLoop([_ready()])
    builder, _ = _builder(loop, plans=PlanResolver(explicit={}))

    task = await _build(builder)

    assert task.state is BuildTaskState.FAILED
    assert task.error_type == "PlanNotFoundError"
    assert loop.calls == []


@pytest.mark.asyncio
async def test_loop_that_published_skips_the_publisher() -> None:
    outcome = LoopOutcome(package="core", turns=5, history=(), published=True, version="2.0.0")
    builder, publisher = _builder(FakeLoop([outcome]))

    task = await _build(builder)

    assert task.state is BuildTaskState.PUBLISHED
    assert task.published_version == "2.0.0"
    assert publisher.calls == []


@pytest.mark.asyncio
async def test_publisher_that_never_succeeds_fails_the_task() -> None:
    publisher = RecordingPublisher([PublishResult(published=False, detail="registry down")])
    builder, _ = _builder(FakeLoop([_ready()]), publisher=publisher)

    task = await _build(builder)

    assert task.state is BuildTaskState.FAILED
    assert task.error_type == "PublishFailed"
    assert len(publisher.calls) == 2
    assert task.last_error is not None and "registry down" in task.last_error


@pytest.mark.asyncio
async def test_hints_signalled_through_runner_reach_the_loop() -> None:
    logger = RecordingLogger()
    runner = AsyncioTaskRunner(logger=logger)
    runner.signal("core", HINT_SIGNAL, "prefer named exports")
    loop = FakeLoop([_ready()])
    builder, _ = _builder(loop, runner=runner, logger=logger)

    await _build(builder)

    assert loop.calls[0].hints == ["prefer named exports"]
    assert runner.drain_signals("core", HINT_SIGNAL) == []


@pytest.mark.asyncio
async def test_build_logs_start_and_finish() -> None:
    logger = RecordingLogger()
    builder, _ = _builder(FakeLoop([_ready()]), logger=logger)

    await _build(builder)

    names = [event for event, _ in logger.events]
    assert names[0] == "package_build_started"
    finished = [fields for event, fields in logger.events if event == "package_build_finished"]
    assert finished == [
        {
            "package": "core",
            "state": "published",
            "error_type": None,
            "turns": 3,
            "remediation_attempts": 0,
        }
    ]
