"""Unit tests for the concurrent quality gate."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import pytest

from forge_orchestrator.domain import CheckName, ComplianceLevel, Package, QualityBlocked
from forge_orchestrator.domain.models import JSONValue
from forge_orchestrator.verification_plane import QualityGate, failing_details
from forge_orchestrator.verification_plane.probes import ProbeContext, ProbeOutcome
from forge_orchestrator.verification_plane.quality_gate import render_detail


@dataclass(slots=True)
class RecordingLogger:
    events: list[tuple[str, dict[str, object]]] = field(default_factory=list)

    def info(self, event: str, **kwargs: object) -> None:
        self.events.append((event, dict(kwargs)))

    def warning(self, event: str, **kwargs: object) -> None:
        self.events.append((event, dict(kwargs)))


@dataclass(slots=True)
class StaticProbe:
    check: CheckName
    passed: bool = True
    details: dict[str, JSONValue] = field(default_factory=dict)
    error: Exception | None = None
    delay: float = 0.0

    async def run(self, package: Package, context: ProbeContext) -> ProbeOutcome:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return ProbeOutcome(passed=self.passed, details=self.details)


class UnusedExecutor:
    async def run(self, spec: object) -> object:
        raise AssertionError("static probes never run commands")


def _probes(**overrides: StaticProbe) -> list[StaticProbe]:
    return [overrides.get(check.value, StaticProbe(check)) for check in CheckName]


def _gate(probes: list[StaticProbe], logger: RecordingLogger | None = None) -> QualityGate:
    return QualityGate(
        executor=UnusedExecutor(),  # type: ignore[arg-type]
        probes=probes,
        logger=logger or RecordingLogger(),
    )


PACKAGE = Package(name="core", path="/tmp/core")


@pytest.mark.asyncio
async def test_gate_scores_all_checks_in_canonical_order() -> None:
    logger = RecordingLogger()
    report = await _gate(_probes(), logger).evaluate(PACKAGE)

    assert [result.check for result in report.results] == list(CheckName)
    assert report.score.score == 100
    assert report.passed
    assert logger.events[-1][0] == "quality_gate_scored"


@pytest.mark.asyncio
async def test_probe_exception_becomes_faulted_failure() -> None:
    logger = RecordingLogger()
    gate = _gate(
        _probes(security=StaticProbe(CheckName.SECURITY, error=RuntimeError("auditor crashed"))),
        logger,
    )

    report = await gate.evaluate(PACKAGE)
    security = report.result_for("security")

    assert not security.passed
    assert security.fault is not None
    assert "auditor crashed" in security.fault
    assert report.score.score == 90
    assert logger.events[0][0] == "quality_probe_fault"
    assert logger.events[0][1]["check"] == "security"
    assert failing_details(report) == [(CheckName.SECURITY, f"probe fault: {security.fault}")]


@pytest.mark.asyncio
async def test_probes_run_concurrently() -> None:
    probes = [StaticProbe(check, delay=0.2) for check in CheckName]
    gate = _gate(probes)

    loop = asyncio.get_running_loop()
    started = loop.time()
    await gate.evaluate(PACKAGE)

    assert loop.time() - started < 1.0


@pytest.mark.asyncio
async def test_enforce_raises_below_passing_score() -> None:
    gate = _gate(_probes(typecheck=StaticProbe(CheckName.TYPECHECK, passed=False)))

    with pytest.raises(QualityBlocked) as excinfo:
        await gate.enforce(PACKAGE)

    assert excinfo.value.score.score == 80
    assert excinfo.value.score.level is ComplianceLevel.BLOCKED


@pytest.mark.asyncio
async def test_custom_passing_score() -> None:
    gate = QualityGate(
        executor=UnusedExecutor(),  # type: ignore[arg-type]
        probes=_probes(lint=StaticProbe(CheckName.LINT, passed=False)),
        passing_score=95,
        logger=RecordingLogger(),
    )
    report = await gate.evaluate(PACKAGE)

    assert report.score.score == 85
    assert not gate.is_passing(report)
    with pytest.raises(QualityBlocked):
        await gate.enforce(PACKAGE)


def test_gate_requires_one_probe_per_check() -> None:
    with pytest.raises(ValueError, match="missing probe"):
        _gate(_probes()[:-1])
    with pytest.raises(ValueError, match="duplicate probe"):
        _gate([*_probes(), StaticProbe(CheckName.LINT)])
    with pytest.raises(ValueError):
        QualityGate(
            executor=UnusedExecutor(),  # type: ignore[arg-type]
            probes=_probes(),
            passing_score=0,
        )
    with pytest.raises(ValueError, match="passing_score must be within 85..100"):
        QualityGate(
            executor=UnusedExecutor(),  # type: ignore[arg-type]
            probes=_probes(),
            passing_score=50,
        )


@pytest.mark.asyncio
async def test_failing_details_flatten_findings() -> None:
    lint = StaticProbe(
        CheckName.LINT,
        passed=False,
        details={
            "findings": [{"path": "a.py", "line": 3, "rule": "F401", "message": "unused import"}],
            "exit_code": 1,
        },
    )
    report = await _gate(_probes(lint=lint)).evaluate(PACKAGE)

    assert failing_details(report) == [
        (CheckName.LINT, "exit_code: 1"),
        (CheckName.LINT, "findings: a.py:3: [F401] unused import"),
    ]


def test_render_detail_handles_plain_mappings() -> None:
    assert render_detail({"b": 2, "a": [1, "x"]}) == "a=1; x, b=2"
