"""
Remediation feedback builder.

Turns a blocked ``QualityReport`` into an ordered list of remediation tasks, one per
failing check, and renders them into the brief the generation loop receives. Ordering
is deterministic: priority first, then check name.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Final

from forge_orchestrator.domain.models import CheckName, JSONValue
from forge_orchestrator.synthesis_plane.prompt_templates import default_renderer
from forge_orchestrator.verification_plane.quality_gate import failing_details

if TYPE_CHECKING:
    from collections.abc import Mapping

    from forge_orchestrator.synthesis_plane.prompt_templates import (
        PromptRenderer,
        RenderedPrompt,
    )
    from forge_orchestrator.verification_plane.quality_gate import QualityReport


class RemediationPriority(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK: Final[Mapping[RemediationPriority, int]] = {
    RemediationPriority.CRITICAL: 0,
    RemediationPriority.HIGH: 1,
    RemediationPriority.MEDIUM: 2,
    RemediationPriority.LOW: 3,
}

CHECK_PRIORITIES: Final[Mapping[CheckName, RemediationPriority]] = {
    CheckName.TYPECHECK: RemediationPriority.CRITICAL,
    CheckName.TESTS: RemediationPriority.CRITICAL,
    CheckName.SECURITY: RemediationPriority.CRITICAL,
    CheckName.STRUCTURE: RemediationPriority.HIGH,
    CheckName.LINT: RemediationPriority.HIGH,
    CheckName.DOCUMENTATION: RemediationPriority.MEDIUM,
    CheckName.INTEGRATION: RemediationPriority.MEDIUM,
    CheckName.LICENSE: RemediationPriority.LOW,
}

_DESCRIPTIONS: Final[Mapping[CheckName, str]] = {
    CheckName.STRUCTURE: "Add the missing files and manifest fields",
    CheckName.TYPECHECK: "Fix every error reported by the type checker",
    CheckName.LINT: "Fix the lint violations",
    CheckName.TESTS: "Make the test suite pass and meet the coverage floor",
    CheckName.SECURITY: "Resolve the reported vulnerabilities",
    CheckName.DOCUMENTATION: "Complete the README sections",
    CheckName.LICENSE: "Add the license header to every source file",
    CheckName.INTEGRATION: "Wire in the integrations required for this package type",
}


@dataclass(frozen=True, slots=True)
class RemediationTask:
    category: CheckName
    priority: RemediationPriority
    description: str
    details: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "category": self.category.value,
            "priority": self.priority.value,
            "description": self.description,
            "details": list(self.details),
        }


def build_remediation_tasks(report: QualityReport) -> tuple[RemediationTask, ...]:
    """One task per failing check, ordered by priority then category."""

    details_by_check: defaultdict[CheckName, list[str]] = defaultdict(list)
    for check, line in failing_details(report):
        details_by_check[check].append(line)

    tasks = [
        RemediationTask(
            category=result.check,
            priority=CHECK_PRIORITIES[result.check],
            description=_DESCRIPTIONS[result.check],
            details=tuple(details_by_check.get(result.check, ())),
        )
        for result in report.failed_checks()
    ]
    return tuple(sorted(tasks, key=lambda task: (task.priority.rank, task.category.value)))


def render_remediation_context(
    report: QualityReport,
    tasks: tuple[RemediationTask, ...],
    *,
    attempt: int,
    max_attempts: int,
    target: int,
    renderer: PromptRenderer | None = None,
) -> RenderedPrompt:
    resolved = renderer if renderer is not None else default_renderer()
    return resolved.render(
        "remediation",
        score=report.score.score,
        level=report.score.level.value,
        target=target,
        attempt=attempt,
        max_attempts=max_attempts,
        tasks=[task.to_dict() for task in tasks],
    )


__all__ = [
    "CHECK_PRIORITIES",
    "RemediationPriority",
    "RemediationTask",
    "build_remediation_tasks",
    "render_remediation_context",
]
