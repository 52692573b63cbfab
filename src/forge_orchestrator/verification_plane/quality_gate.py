"""
Quality gate: run every probe for a package and score the results.

The gate runs the eight probes concurrently. A probe that raises is recorded as a
faulted, failing result (``quality_probe_fault``) instead of aborting the gate, so a
broken tool costs its weight and nothing more. Decisions are logged through
``structlog`` so they can be replayed next to scheduler events.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from forge_orchestrator.constants import PASSING_SCORE
from forge_orchestrator.domain.errors import CheckExecutionFault, QualityBlocked
from forge_orchestrator.domain.models import (
    CheckName,
    ComplianceScore,
    JSONValue,
    Package,
    QualityCheckResult,
    to_json_value,
)
from forge_orchestrator.verification_plane.probes import (
    DEFAULT_PROBE_REGISTRY,
    ProbeContext,
    QualityProbe,
    QualitySettings,
)
from forge_orchestrator.verification_plane.scoring import compute_compliance_score

if TYPE_CHECKING:
    from forge_orchestrator.integration_plane.executor import CommandExecutor
    from forge_orchestrator.verification_plane.probes import ProbeRegistry


@dataclass(frozen=True, slots=True)
class QualityReport:
    """All eight check results for one pass plus the derived score."""

    package: str
    results: tuple[QualityCheckResult, ...]
    score: ComplianceScore

    @property
    def passed(self) -> bool:
        return not self.score.is_blocked

    def result_for(self, check: CheckName | str) -> QualityCheckResult:
        name = CheckName(check)
        for result in self.results:
            if result.check is name:
                return result
        raise KeyError(name.value)

    def failed_checks(self) -> tuple[QualityCheckResult, ...]:
        return tuple(result for result in self.results if not result.passed)

    def pass_map(self) -> dict[str, bool]:
        return {result.check.value: result.passed for result in self.results}

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "package": self.package,
            "score": self.score.to_dict(),
            "results": [result.to_dict() for result in self.results],
        }


class QualityGate:
    """Runs one probe per check and produces a ``QualityReport``."""

    def __init__(
        self,
        *,
        executor: CommandExecutor,
        settings: QualitySettings | None = None,
        probes: Iterable[QualityProbe] | None = None,
        registry: ProbeRegistry | None = None,
        passing_score: int = PASSING_SCORE,
        logger: Any | None = None,
    ) -> None:
        if probes is None:
            probes = (registry if registry is not None else DEFAULT_PROBE_REGISTRY).create_all()
        self._probes = _index_probes(probes)
        self._context = ProbeContext(
            settings=settings if settings is not None else QualitySettings(),
            executor=executor,
        )
        if not PASSING_SCORE <= passing_score <= 100:
            raise ValueError(f"passing_score must be within {PASSING_SCORE}..100")
        self._passing_score = passing_score
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def passing_score(self) -> int:
        return self._passing_score

    async def evaluate(self, package: Package) -> QualityReport:
        """Run every probe concurrently and score the results."""

        results = await asyncio.gather(
            *(self._run_probe(self._probes[check], package) for check in CheckName)
        )
        score = compute_compliance_score(results)
        report = QualityReport(package=package.name, results=tuple(results), score=score)
        self._logger.info(
            "quality_gate_scored",
            package=package.name,
            score=score.score,
            level=score.level.value,
            failed_checks=[item.value for item in score.failed_checks],
        )
        return report

    async def enforce(self, package: Package) -> QualityReport:
        """Like ``evaluate`` but raises ``QualityBlocked`` below the passing score."""

        report = await self.evaluate(package)
        if report.score.score < self._passing_score:
            raise QualityBlocked(report.score, report=report)
        return report

    def is_passing(self, report: QualityReport) -> bool:
        return report.score.score >= self._passing_score

    async def _run_probe(self, probe: QualityProbe, package: Package) -> QualityCheckResult:
        started = time.perf_counter()
        try:
            outcome = await probe.run(package, self._context)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            if isinstance(exc, CheckExecutionFault):
                fault = exc
            else:
                fault = CheckExecutionFault(probe.check, exc)
            self._logger.warning(
                "quality_probe_fault",
                package=package.name,
                check=probe.check.value,
                error_type=type(exc).__name__,
                error=str(fault),
            )
            return QualityCheckResult(
                check=probe.check,
                passed=False,
                details={"error_type": type(exc).__name__},
                fault=str(fault),
                duration_ms=_duration_ms(started),
            )

        details = to_json_value(dict(outcome.details))
        return QualityCheckResult(
            check=probe.check,
            passed=bool(outcome.passed),
            details=details if isinstance(details, dict) else {},
            duration_ms=_duration_ms(started),
        )


def _index_probes(probes: Iterable[QualityProbe]) -> dict[CheckName, QualityProbe]:
    indexed: dict[CheckName, QualityProbe] = {}
    for probe in probes:
        check = CheckName(probe.check)
        if check in indexed:
            raise ValueError(f"duplicate probe for check {check.value!r}")
        indexed[check] = probe
    missing = [check.value for check in CheckName if check not in indexed]
    if missing:
        raise ValueError(f"missing probe(s) for check(s): {', '.join(missing)}")
    return indexed


def failing_details(report: QualityReport) -> Sequence[tuple[CheckName, str]]:
    """Flatten failing results into ``(check, line)`` pairs for feedback rendering."""

    lines: list[tuple[CheckName, str]] = []
    for result in report.failed_checks():
        if result.fault is not None:
            lines.append((result.check, f"probe fault: {result.fault}"))
            continue
        for key in sorted(result.details):
            value = result.details[key]
            if value in (None, [], {}, ""):
                continue
            lines.append((result.check, f"{key}: {render_detail(value)}"))
    return lines


def render_detail(value: JSONValue) -> str:
    if isinstance(value, list):
        return "; ".join(render_detail(item) for item in value)
    if isinstance(value, dict):
        if "message" in value:
            location = value.get("path")
            line = value.get("line")
            prefix = f"{location}:{line}: " if location and line else ""
            rule = f"[{value['rule']}] " if value.get("rule") else ""
            return f"{prefix}{rule}{value['message']}"
        return ", ".join(f"{key}={render_detail(item)}" for key, item in sorted(value.items()))
    return str(value)


def _duration_ms(started: float) -> int:
    return max(0, int((time.perf_counter() - started) * 1000))


__all__ = ["QualityGate", "QualityReport", "failing_details", "render_detail"]
