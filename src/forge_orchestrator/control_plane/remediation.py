"""Bounded remediation cycles: feedback, regenerate, re-score."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from forge_orchestrator.constants import MAX_REMEDIATION_ATTEMPTS
from forge_orchestrator.control_plane.feedback import (
    build_remediation_tasks,
    render_remediation_context,
)
from forge_orchestrator.domain.errors import RemediationExhausted

if TYPE_CHECKING:
    from forge_orchestrator.domain.models import Package
    from forge_orchestrator.synthesis_plane.prompt_templates import PromptRenderer
    from forge_orchestrator.verification_plane.quality_gate import QualityGate, QualityReport

Regenerate = Callable[[str], Awaitable[object]]


@dataclass(frozen=True, slots=True)
class RemediationResult:
    report: QualityReport
    attempts: int


class RemediationController:
    """
    Re-invokes generation with targeted feedback until the gate passes.

    Each cycle renders the failing checks into a remediation brief, hands it to
    ``regenerate``, then re-runs the gate. ``max_attempts`` cycles without a passing
    score raise ``RemediationExhausted`` carrying the last score. Loop errors raised by
    ``regenerate`` propagate unchanged.
    """

    def __init__(
        self,
        *,
        gate: QualityGate,
        max_attempts: int = MAX_REMEDIATION_ATTEMPTS,
        renderer: PromptRenderer | None = None,
        logger: Any | None = None,
    ) -> None:
        if max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        self._gate = gate
        self._max_attempts = max_attempts
        self._renderer = renderer
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    async def remediate(
        self,
        package: Package,
        report: QualityReport,
        regenerate: Regenerate,
        *,
        on_attempt: Callable[[int], None] | None = None,
    ) -> RemediationResult:
        current = report
        attempts = 0
        while not self._gate.is_passing(current):
            if attempts >= self._max_attempts:
                self._logger.error(
                    "remediation_exhausted",
                    package=package.name,
                    attempts=attempts,
                    score=current.score.score,
                )
                raise RemediationExhausted(attempts, current.score)

            attempts += 1
            if on_attempt is not None:
                on_attempt(attempts)
            tasks = build_remediation_tasks(current)
            brief = render_remediation_context(
                current,
                tasks,
                attempt=attempts,
                max_attempts=self._max_attempts,
                target=self._gate.passing_score,
                renderer=self._renderer,
            )
            self._logger.info(
                "remediation_attempt_started",
                package=package.name,
                attempt=attempts,
                score=current.score.score,
                tasks=[task.category.value for task in tasks],
                prompt_hash=brief.prompt_hash,
            )

            await regenerate(brief.text)
            current = await self._gate.evaluate(package)

        self._logger.info(
            "remediation_passed",
            package=package.name,
            attempts=attempts,
            score=current.score.score,
        )
        return RemediationResult(report=current, attempts=attempts)


__all__ = ["Regenerate", "RemediationController", "RemediationResult"]
