"""
forge-orchestrator — turn-based generation loop

File: src/forge_orchestrator/synthesis_plane/generation_loop.py
Last updated: 2026-10-19

Purpose
- Drive one package from plan to publishable code through a sequence of single agent
  commands, folding each outcome into the next turn's context.

Functional requirements
- One command per turn, bounded by ``generation.max_loop_iterations``.
- Malformed payloads become ``rejected`` history entries and still consume a turn.
- Failures are tracked per file: failed writes, and failed checks whose findings name a
  path. A stuck file receives exactly one meta-correction directive and terminates the
  loop after ``max_meta_correction_attempts`` more identical failures.
- ``max_consecutive_lint_failures`` failing ``run-lint`` turns with no successful command in
  between raise ``HumanInterventionRequested``.
- Human hints are drained at the start of every turn.

Termination (first match wins)
1. ``publish`` succeeds -> ``LoopOutcome``.
2. A file is stuck -> ``FileLoopTerminated``.
3. Turn cap reached -> ``IterationsExhausted``.
4. Lint stuck -> ``HumanInterventionRequested``.

Non-functional requirements
- The loop never calls the agent concurrently and owns its failure tracker exclusively.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any, Final

import structlog

from forge_orchestrator.constants import (
    MAX_CONSECUTIVE_LINT_FAILURES,
    MAX_FILE_MODIFICATIONS_BEFORE_META,
    MAX_LOOP_ITERATIONS,
    MAX_META_CORRECTION_ATTEMPTS,
)
from forge_orchestrator.domain.errors import (
    CheckExecutionFault,
    CommandValidationError,
    FileLoopTerminated,
    HumanInterventionRequested,
    IterationsExhausted,
)
from forge_orchestrator.domain.models import (
    ActionHistoryEntry,
    CheckName,
    CommandOutcome,
    JSONValue,
    Package,
)
from forge_orchestrator.integration_plane.file_changes import apply_file_changes
from forge_orchestrator.synthesis_plane.agent import AgentTurnRequest
from forge_orchestrator.synthesis_plane.commands import (
    ApplyFileChanges,
    CommandType,
    Publish,
    parse_agent_command,
)
from forge_orchestrator.synthesis_plane.failure_tracker import FailureAction, FileFailureTracker
from forge_orchestrator.synthesis_plane.prompt_templates import (
    DEFAULT_INSTRUCTIONS,
    default_renderer,
)
from forge_orchestrator.synthesis_plane.sanitizer import STRUCTURED_SUFFIXES, parses_as
from forge_orchestrator.verification_plane.probes import (
    DEFAULT_PROBE_REGISTRY,
    ProbeContext,
    QualitySettings,
)
from forge_orchestrator.verification_plane.quality_gate import render_detail

if TYPE_CHECKING:
    from forge_orchestrator.integration_plane.executor import CommandExecutor
    from forge_orchestrator.integration_plane.publisher import Publisher
    from forge_orchestrator.synthesis_plane.agent import CodeGenerationAgent
    from forge_orchestrator.synthesis_plane.commands import AgentCommand
    from forge_orchestrator.synthesis_plane.failure_tracker import FailureDecision
    from forge_orchestrator.synthesis_plane.prompt_templates import PromptRenderer
    from forge_orchestrator.verification_plane.probes import ProbeRegistry

HintSource = Callable[[], Sequence[str]]

_CHECK_FOR_COMMAND: Final[Mapping[CommandType, CheckName]] = {
    CommandType.VALIDATE_MANIFEST: CheckName.STRUCTURE,
    CommandType.CHECK_LICENSE_HEADERS: CheckName.LICENSE,
    CommandType.RUN_LINT: CheckName.LINT,
    CommandType.RUN_TESTS: CheckName.TESTS,
}
_CHECK_LABELS: Final[Mapping[CheckName, str]] = {
    CheckName.STRUCTURE: "Manifest validation",
    CheckName.LICENSE: "License header check",
    CheckName.LINT: "Lint check",
    CheckName.TESTS: "Unit tests",
}
_MAX_CONTEXT_FILES: Final[int] = 200
_MAX_FILE_EXCERPT_CHARS: Final[int] = 4_000
_MAX_DETAIL_LINES: Final[int] = 20


@dataclass(frozen=True, slots=True)
class LoopSettings:
    """Bounds resolved from the ``[generation]`` config section."""

    max_loop_iterations: int = MAX_LOOP_ITERATIONS
    max_consecutive_lint_failures: int = MAX_CONSECUTIVE_LINT_FAILURES
    max_file_modifications_before_meta: int = MAX_FILE_MODIFICATIONS_BEFORE_META
    max_meta_correction_attempts: int = MAX_META_CORRECTION_ATTEMPTS
    instructions: str | None = None

    def __post_init__(self) -> None:
        for name in (
            "max_loop_iterations",
            "max_consecutive_lint_failures",
            "max_file_modifications_before_meta",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")
        if self.max_meta_correction_attempts < 0:
            raise ValueError("max_meta_correction_attempts must be >= 0")

    @classmethod
    def from_mapping(cls, section: Mapping[str, object]) -> LoopSettings:
        known = {
            "max_loop_iterations",
            "max_consecutive_lint_failures",
            "max_file_modifications_before_meta",
            "max_meta_correction_attempts",
        }
        values: dict[str, Any] = {key: int(section[key]) for key in known if key in section}
        instructions = section.get("instructions")
        if isinstance(instructions, str) and instructions.strip():
            values["instructions"] = instructions
        return cls(**values)


@dataclass(frozen=True, slots=True)
class LoopOutcome:
    """
    Successful end of a loop.

    ``published`` is False when the loop ran without a publisher and the agent's
    ``publish`` command only marked the package as ready.
    """

    package: str
    turns: int
    history: tuple[ActionHistoryEntry, ...]
    files_modified: tuple[str, ...] = ()
    published: bool = False
    version: str | None = None

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "package": self.package,
            "turns": self.turns,
            "history": [entry.to_dict() for entry in self.history],
            "files_modified": list(self.files_modified),
            "published": self.published,
            "version": self.version,
        }


@dataclass(frozen=True, slots=True)
class _Step:
    outcome: CommandOutcome
    detail: str
    summary: str
    directive: str | None = None
    terminated: FailureDecision | None = None
    finished: bool = False
    published: bool = False
    version: str | None = None


@dataclass(slots=True)
class _RunState:
    tracker: FileFailureTracker
    summary: str
    directive: str | None = None
    lint_failures: int = 0
    last_lint_error: str = ""
    history: list[ActionHistoryEntry] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    write_failed: set[str] = field(default_factory=set)
    check_failed: dict[CheckName, set[str]] = field(default_factory=dict)

    def settle_writes(self, paths: Sequence[str]) -> None:
        """Forget write failures for ``paths`` unless a check still blames the file."""
        blamed = set().union(*self.check_failed.values())
        settled = [path for path in paths if path in self.write_failed and path not in blamed]
        self.write_failed.difference_update(settled)
        self.tracker.clear(settled)

    def settle_check(self, check: CheckName, keep: Iterable[str] = ()) -> None:
        """Forget failures blamed on files by ``check``, except for ``keep``."""
        paths = self.check_failed.pop(check, set()) - set(keep)
        blamed = set().union(*self.check_failed.values())
        self.tracker.clear(
            sorted(path for path in paths if path not in blamed and path not in self.write_failed)
        )


class GenerationLoop:
    """Sequential agent turn loop for one package at a time."""

    def __init__(
        self,
        *,
        agent: CodeGenerationAgent,
        executor: CommandExecutor,
        quality_settings: QualitySettings | None = None,
        settings: LoopSettings | None = None,
        publisher: Publisher | None = None,
        registry: str = "",
        probe_registry: ProbeRegistry | None = None,
        renderer: PromptRenderer | None = None,
        logger: Any | None = None,
    ) -> None:
        self._agent = agent
        self._settings = settings if settings is not None else LoopSettings()
        self._context = ProbeContext(
            settings=quality_settings if quality_settings is not None else QualitySettings(),
            executor=executor,
        )
        self._publisher = publisher
        self._registry = registry
        self._probe_registry = (
            probe_registry if probe_registry is not None else DEFAULT_PROBE_REGISTRY
        )
        self._renderer = renderer if renderer is not None else default_renderer()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def settings(self) -> LoopSettings:
        return self._settings

    async def run(
        self,
        package: Package,
        plan_text: str,
        *,
        remediation: str | None = None,
        hints: HintSource | None = None,
    ) -> LoopOutcome:
        if not package.path:
            raise ValueError(f"package {package.name!r} has no path")
        root = Path(package.path)
        root.mkdir(parents=True, exist_ok=True)

        state = _RunState(
            tracker=FileFailureTracker(
                max_modifications=self._settings.max_file_modifications_before_meta,
                max_meta_attempts=self._settings.max_meta_correction_attempts,
                renderer=self._renderer,
                logger=self._logger,
            ),
            summary=_codebase_summary(root),
        )
        instructions = self._settings.instructions or DEFAULT_INSTRUCTIONS
        max_turns = self._settings.max_loop_iterations

        for turn in range(1, max_turns + 1):
            drained = list(hints()) if hints is not None else []
            if drained:
                self._logger.info(
                    "generation_hint_received",
                    package=package.name,
                    turn=turn,
                    hints=len(drained),
                )

            context = self._renderer.render(
                "turn_context",
                directive=state.directive or "",
                hints=drained,
                summary=state.summary,
                remediation=remediation or "",
            ).text
            request = AgentTurnRequest(
                package=package.name,
                turn=turn,
                plan_text=plan_text,
                instructions=instructions,
                action_history=tuple(state.history),
                codebase_context=context,
            )
            raw = await self._agent.next_command(request)

            try:
                command = parse_agent_command(raw)
            except CommandValidationError as exc:
                state.history.append(
                    ActionHistoryEntry(
                        turn=turn,
                        command=_raw_command_name(raw),
                        outcome=CommandOutcome.REJECTED,
                        detail=str(exc),
                    )
                )
                state.summary = (
                    f"Your last reply was rejected: {exc}\n"
                    "Reply with exactly one valid command object."
                )
                state.directive = None
                self._logger.warning(
                    "generation_command_rejected",
                    package=package.name,
                    turn=turn,
                    error=str(exc),
                )
                continue

            step = await self._execute(command, package, root, state)
            state.history.append(
                ActionHistoryEntry(
                    turn=turn,
                    command=command.type.value,
                    outcome=step.outcome,
                    detail=step.detail,
                )
            )
            self._logger.info(
                "generation_turn_completed",
                package=package.name,
                turn=turn,
                command=command.type.value,
                outcome=step.outcome.value,
            )

            if step.finished:
                return LoopOutcome(
                    package=package.name,
                    turns=turn,
                    history=tuple(state.history),
                    files_modified=tuple(dict.fromkeys(state.files_modified)),
                    published=step.published,
                    version=step.version,
                )

            if step.terminated is not None:
                raise FileLoopTerminated(
                    step.terminated.path,
                    entry=step.terminated.entry,
                    history=state.history,
                )

            if step.outcome is CommandOutcome.SUCCESS:
                state.lint_failures = 0
                state.last_lint_error = ""
            elif command.type is CommandType.RUN_LINT:
                state.lint_failures += 1
                state.last_lint_error = step.detail

            state.summary = step.summary
            state.directive = step.directive

            # the turn cap outranks the lint threshold on the final turn
            if (
                state.lint_failures >= self._settings.max_consecutive_lint_failures
                and turn < max_turns
            ):
                self._logger.warning(
                    "generation_human_intervention_requested",
                    package=package.name,
                    turn=turn,
                    consecutive_failures=state.lint_failures,
                )
                raise HumanInterventionRequested(
                    state.last_lint_error or "lint keeps failing",
                    consecutive_failures=state.lint_failures,
                    history=state.history,
                )

        self._logger.error(
            "generation_iterations_exhausted",
            package=package.name,
            iterations=max_turns,
        )
        raise IterationsExhausted(max_turns, history=state.history)

    async def _execute(
        self,
        command: AgentCommand,
        package: Package,
        root: Path,
        state: _RunState,
    ) -> _Step:
        if isinstance(command, ApplyFileChanges):
            return self._apply(command, root, state)
        if isinstance(command, Publish):
            return await self._publish(package, root)
        return await self._check(_CHECK_FOR_COMMAND[command.type], package, root, state)

    def _apply(self, command: ApplyFileChanges, root: Path, state: _RunState) -> _Step:
        report = apply_file_changes(root, command.files)
        failures = {failure.path: failure.error for failure in report.failures}
        for path in report.modified:
            error = _structured_content_error(root, path)
            if error is not None:
                failures[path] = error

        state.settle_writes([path for path in report.touched if path not in failures])
        state.files_modified.extend(path for path in report.modified if path not in failures)

        if not failures:
            lines = [f"Result: {report.summary()}."]
            lines.extend(f"Warning: {warning}" for warning in report.warnings)
            lines.append(
                "Code has been changed successfully. You should now run validation checks."
            )
            return _Step(
                outcome=CommandOutcome.SUCCESS,
                detail=report.summary(),
                summary="\n".join(lines),
            )

        state.write_failed.update(failures)
        directive, terminated = _track_failures(state.tracker, failures)
        if terminated is not None:
            return _Step(
                outcome=CommandOutcome.FAILURE,
                detail=f"{terminated.path}: {failures[terminated.path]}",
                summary="",
                terminated=terminated,
            )

        error_lines = [f"- {path}: {failures[path]}" for path in sorted(failures)]
        summary = "\n".join(
            [
                "FILE OPERATION ERROR! Some file changes could not be applied.",
                *error_lines,
                "Check the paths and content, then apply the changes again.",
            ]
        )
        return _Step(
            outcome=CommandOutcome.FAILURE,
            detail=f"{len(failures)} file(s) failed: {', '.join(sorted(failures))}",
            summary=summary,
            directive=directive,
        )

    async def _check(
        self, check: CheckName, package: Package, root: Path, state: _RunState
    ) -> _Step:
        label = _CHECK_LABELS[check]
        probe = self._probe_registry.create(check)
        try:
            outcome = await probe.run(package, self._context)
        except CheckExecutionFault as exc:
            return _Step(
                outcome=CommandOutcome.FAILURE,
                detail=str(exc),
                summary=f"{label} could not run: {exc}",
            )

        if outcome.passed:
            state.settle_check(check)
            detail = f"{label} passed."
            coverage = outcome.details.get("coverage")
            if isinstance(coverage, int | float):
                detail = f"{label} passed. Coverage: {coverage}%."
            return _Step(outcome=CommandOutcome.SUCCESS, detail=detail, summary=detail)

        lines = _detail_lines(outcome.details)
        detail = f"{label} failed. " + "; ".join(lines[:3])

        blamed = _errors_by_path(check, outcome.details)
        state.settle_check(check, keep=blamed)
        if blamed:
            state.check_failed[check] = set(blamed)
        directive, terminated = _track_failures(state.tracker, blamed)
        if terminated is not None:
            return _Step(
                outcome=CommandOutcome.FAILURE,
                detail=f"{terminated.path}: {blamed[terminated.path]}",
                summary="",
                terminated=terminated,
            )

        coverage_issue = outcome.details.get("coverage_issue")
        if check is CheckName.TESTS and isinstance(coverage_issue, str):
            required = outcome.details.get("required_coverage")
            summary = (
                f"Test coverage is too low ({coverage_issue}). "
                f"Please add more tests to meet the {required}% requirement."
            )
            return _Step(
                outcome=CommandOutcome.FAILURE,
                detail=detail,
                summary=summary,
                directive=directive,
            )

        summary_lines = [f"{label} failed:", *(f"- {line}" for line in lines)]
        failing_path = _first_finding_path(outcome.details)
        if failing_path is not None:
            excerpt = _file_excerpt(root, failing_path)
            if excerpt is not None:
                summary_lines.append(
                    f"\nLast action failed in {failing_path}. Full file content:\n---\n{excerpt}"
                )
        return _Step(
            outcome=CommandOutcome.FAILURE,
            detail=detail,
            summary="\n".join(summary_lines),
            directive=directive,
        )

    async def _publish(self, package: Package, root: Path) -> _Step:
        if self._publisher is None:
            detail = "Package marked ready for quality review."
            return _Step(
                outcome=CommandOutcome.SUCCESS,
                detail=detail,
                summary=detail,
                finished=True,
            )

        result = await self._publisher.publish(root.as_posix(), self._registry)
        if result.published:
            self._logger.info(
                "generation_package_published",
                package=package.name,
                version=result.version,
            )
            return _Step(
                outcome=CommandOutcome.SUCCESS,
                detail=f"Package published successfully. {result.detail}".strip(),
                summary="",
                finished=True,
                published=True,
                version=result.version,
            )
        return _Step(
            outcome=CommandOutcome.FAILURE,
            detail=f"Publishing failed. {result.detail}".strip(),
            summary=f"Publishing failed: {result.detail}. Please fix the issues before retrying.",
        )


def _codebase_summary(root: Path) -> str:
    files = sorted(
        relative
        for relative in (path.relative_to(root).as_posix() for path in root.rglob("*"))
        if (root / relative).is_file()
        and not any(part.startswith(".") for part in relative.split("/"))
    )
    if not files:
        return "No files have been created yet."
    listed = files[:_MAX_CONTEXT_FILES]
    lines = [f"Existing files ({len(files)}):", *(f"- {name}" for name in listed)]
    if len(files) > len(listed):
        lines.append(f"- ... {len(files) - len(listed)} more")
    return "\n".join(lines)


def _structured_content_error(root: Path, path: str) -> str | None:
    suffix = PurePosixPath(path).suffix.lower()
    if suffix not in STRUCTURED_SUFFIXES:
        return None
    try:
        text = (root / path).read_text(encoding="utf-8")
    except OSError as exc:
        return f"written file could not be read back: {exc}"
    if parses_as(suffix, text):
        return None
    return f"content is not valid {suffix[1:].upper()}"


def _detail_lines(details: Mapping[str, JSONValue]) -> list[str]:
    lines: list[str] = []
    for key in sorted(details):
        value = details[key]
        if key in {"command", "exit_code"} or value in (None, [], {}, ""):
            continue
        lines.append(f"{key}: {render_detail(value)}")
    return lines[:_MAX_DETAIL_LINES] or ["no details reported"]


def _errors_by_path(check: CheckName, details: Mapping[str, JSONValue]) -> dict[str, str]:
    """Group a failed check's findings by file; line numbers are left out of the text."""
    messages: dict[str, set[str]] = {}
    findings = details.get("findings")
    for finding in findings if isinstance(findings, list) else []:
        if not isinstance(finding, dict):
            continue
        path, message = finding.get("path"), finding.get("message")
        if isinstance(path, str) and path and isinstance(message, str):
            messages.setdefault(path, set()).add(message.strip())
    return {
        path: f"{check.value}: " + "; ".join(sorted(found))
        for path, found in sorted(messages.items())
    }


def _track_failures(
    tracker: FileFailureTracker, failures: Mapping[str, str]
) -> tuple[str | None, FailureDecision | None]:
    directive: str | None = None
    for path in sorted(failures):
        decision = tracker.record_failure(path, failures[path])
        if decision.action is FailureAction.TERMINATE:
            return directive, decision
        if decision.action is FailureAction.META_CORRECT:
            directive = decision.directive
    return directive, None


def _first_finding_path(details: Mapping[str, JSONValue]) -> str | None:
    findings = details.get("findings")
    if not isinstance(findings, list):
        return None
    for finding in findings:
        if isinstance(finding, dict) and isinstance(finding.get("path"), str):
            return str(finding["path"])
    return None


def _file_excerpt(root: Path, relative: str) -> str | None:
    target = (root / relative).resolve()
    if not target.is_relative_to(root.resolve()) or not target.is_file():
        return None
    try:
        text = target.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    if len(text) > _MAX_FILE_EXCERPT_CHARS:
        return text[:_MAX_FILE_EXCERPT_CHARS] + "\n... (truncated)"
    return text


def _raw_command_name(raw: object) -> str:
    if isinstance(raw, Mapping):
        name = raw.get("command")
        if isinstance(name, str) and name.strip():
            return name.strip()[:64]
    return "invalid"


__all__ = ["GenerationLoop", "HintSource", "LoopOutcome", "LoopSettings"]
