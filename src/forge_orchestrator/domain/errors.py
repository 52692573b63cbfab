"""
forge-orchestrator — error taxonomy

File: src/forge_orchestrator/domain/errors.py
Last updated: 2026-10-19

Purpose
- Define the typed failures raised across the resolver, quality gate, remediation,
  generation loop, and suite orchestrator.

Functional requirements
- Every terminal failure names its cause.
- Terminal loop failures carry the action history; remediation failures carry the
  last compliance score.
- Resolver errors are ``ValueError``/``LookupError`` subclasses so CLI routing maps them
  to input errors.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from forge_orchestrator.domain.models import (
        ActionHistoryEntry,
        CheckName,
        ComplianceScore,
        FileFailureEntry,
    )
    from forge_orchestrator.verification_plane.quality_gate import QualityReport


class ForgeError(RuntimeError):
    """Base error for orchestration failures."""

    retryable: bool = False


class CycleError(ForgeError, ValueError):
    """Raised when the dependency graph contains a cycle."""

    cycle: tuple[str, ...]

    def __init__(self, cycle: Iterable[str]) -> None:
        self.cycle = tuple(cycle)
        if not self.cycle:
            message = "Dependency graph contains at least one cycle."
        else:
            message = f"Dependency graph contains a cycle: {' -> '.join(self.cycle)}"
        super().__init__(message)

    @property
    def members(self) -> tuple[str, ...]:
        """Distinct packages on the cycle, in path order."""

        seen: dict[str, None] = {}
        for name in self.cycle:
            seen.setdefault(name, None)
        return tuple(seen)


class UnresolvedDependencyError(ForgeError, LookupError):
    """Raised when a declared dependency has no metadata."""

    def __init__(self, missing: str, *, required_by: str | None = None) -> None:
        self.missing = missing
        self.required_by = required_by
        if required_by is None:
            message = f"package {missing!r} could not be resolved"
        else:
            message = f"dependency {missing!r} of {required_by!r} could not be resolved"
        super().__init__(message)


class CheckExecutionFault(ForgeError):
    """A quality probe itself errored; scored as a failing check."""

    def __init__(self, check: CheckName | str, cause: BaseException | str) -> None:
        self.check = str(check)
        self.cause = cause
        if isinstance(cause, BaseException):
            detail = str(cause) or type(cause).__name__
        else:
            detail = cause
        super().__init__(f"{self.check} probe faulted: {detail}")


class QualityBlocked(ForgeError):
    """Compliance score below the passing threshold; recoverable via remediation."""

    retryable = True

    def __init__(self, score: ComplianceScore, *, report: QualityReport) -> None:
        self.score = score
        self.report = report
        failed = ", ".join(item.value for item in score.failed_checks) or "none"
        super().__init__(f"quality blocked at score {score.score} (failed: {failed})")


class RemediationExhausted(ForgeError):
    """Quality never reached the threshold within the remediation budget."""

    def __init__(self, attempts: int, score: ComplianceScore | None) -> None:
        self.attempts = attempts
        self.score = score
        rendered = "n/a" if score is None else f"{score.score} ({score.level.value})"
        super().__init__(
            f"remediation exhausted after {attempts} attempt(s); last score {rendered}"
        )


class GenerationLoopError(ForgeError):
    """Base for terminal outcomes of the turn-based generation loop."""

    def __init__(self, message: str, *, history: Sequence[ActionHistoryEntry] = ()) -> None:
        self.history: tuple[ActionHistoryEntry, ...] = tuple(history)
        super().__init__(message)


class FileLoopTerminated(GenerationLoopError):
    """The agent kept failing the same way on one file after a meta-correction."""

    def __init__(
        self,
        path: str,
        *,
        entry: FileFailureEntry | None = None,
        history: Sequence[ActionHistoryEntry] = (),
    ) -> None:
        self.path = path
        self.entry = entry
        attempts = entry.meta_correction_attempts if entry is not None else 0
        super().__init__(
            f"file {path!r} is stuck in a failure loop "
            f"({attempts} attempt(s) after meta-correction)",
            history=history,
        )


class IterationsExhausted(GenerationLoopError):
    """The loop reached its turn cap without publishing."""

    def __init__(self, iterations: int, *, history: Sequence[ActionHistoryEntry] = ()) -> None:
        self.iterations = iterations
        super().__init__(f"exhausted iterations ({iterations})", history=history)


class HumanInterventionRequested(GenerationLoopError):
    """Terminal-pending: repeated lint failures need an operator."""

    def __init__(
        self,
        reason: str,
        *,
        consecutive_failures: int = 0,
        history: Sequence[ActionHistoryEntry] = (),
    ) -> None:
        self.reason = reason
        self.consecutive_failures = consecutive_failures
        super().__init__(f"human intervention requested: {reason}", history=history)


class PlanNotFoundError(ForgeError, LookupError):
    """No plan text is available for a package."""

    def __init__(self, package: str, *, searched: Sequence[str] = ()) -> None:
        self.package = package
        self.searched = tuple(searched)
        locations = ", ".join(self.searched) or "no locations"
        super().__init__(f"no plan found for {package!r} (searched: {locations})")


class PlanValidationError(ForgeError, ValueError):
    """A plan exists but is missing required sections."""

    def __init__(self, package: str, missing_sections: Sequence[str]) -> None:
        self.package = package
        self.missing_sections = tuple(missing_sections)
        super().__init__(
            f"plan for {package!r} is missing section(s): {', '.join(self.missing_sections)}"
        )


class MeceViolationError(ForgeError):
    """Package responsibilities overlap or leave gaps."""

    def __init__(self, violations: Sequence[str]) -> None:
        self.violations = tuple(violations)
        rendered = "; ".join(self.violations) or "unknown violation"
        super().__init__(f"MECE validation failed: {rendered}")


class PublishFailed(ForgeError):
    """The publisher never reported ``published=True``."""

    def __init__(self, package: str, attempts: int, detail: str = "") -> None:
        self.package = package
        self.attempts = attempts
        suffix = f": {detail}" if detail else ""
        super().__init__(f"publish of {package!r} failed after {attempts} attempt(s){suffix}")


class CommandValidationError(ForgeError, ValueError):
    """An agent payload is not a valid command."""


__all__ = [
    "CheckExecutionFault",
    "CommandValidationError",
    "CycleError",
    "FileLoopTerminated",
    "ForgeError",
    "GenerationLoopError",
    "HumanInterventionRequested",
    "IterationsExhausted",
    "MeceViolationError",
    "PlanNotFoundError",
    "PlanValidationError",
    "PublishFailed",
    "QualityBlocked",
    "RemediationExhausted",
    "UnresolvedDependencyError",
]
