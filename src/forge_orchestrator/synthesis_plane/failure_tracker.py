"""Per-file repeated-failure detection with a single escalating meta-correction."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any, Final

import structlog

from forge_orchestrator.constants import (
    MAX_ERROR_HISTORY_CHARS,
    MAX_FILE_MODIFICATIONS_BEFORE_META,
    MAX_META_CORRECTION_ATTEMPTS,
)
from forge_orchestrator.domain.models import FileFailureEntry
from forge_orchestrator.synthesis_plane.prompt_templates import default_renderer
from forge_orchestrator.utils.hashing import error_fingerprint

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from forge_orchestrator.synthesis_plane.prompt_templates import PromptRenderer

_EXPECTED_FORMATS: Final[dict[str, str]] = {
    ".json": "A valid JSON document with no markdown code fences or commentary.",
    ".yaml": "A valid YAML document with no markdown code fences.",
    ".yml": "A valid YAML document with no markdown code fences.",
    ".toml": "A valid TOML document with no markdown code fences.",
    ".py": "A complete Python module that imports cleanly and passes the type checker.",
    ".md": "Markdown text; do not wrap the whole file in a code fence.",
    ".ts": "Valid TypeScript that compiles in strict mode.",
    ".tsx": "Valid TypeScript (TSX) that compiles in strict mode.",
    ".js": "Valid JavaScript module syntax.",
}
_DEFAULT_EXPECTED_FORMAT: Final[str] = "The complete file content as plain text."


class FailureAction(StrEnum):
    CONTINUE = "continue"
    META_CORRECT = "meta_correct"
    TERMINATE = "terminate"


@dataclass(frozen=True, slots=True)
class FailureDecision:
    """What the loop should do after recording one file failure."""

    action: FailureAction
    path: str
    entry: FileFailureEntry
    directive: str | None = None


def expected_format_for(path: str) -> str:
    return _EXPECTED_FORMATS.get(PurePosixPath(path).suffix.lower(), _DEFAULT_EXPECTED_FORMAT)


class FileFailureTracker:
    """
    Tracks identical failures per file path.

    The same error fingerprint ``max_modifications`` times in a row yields exactly one
    meta-correction directive. After that, each further identical failure consumes one of
    ``max_meta_attempts``; exceeding them yields ``TERMINATE``. A different error resets the
    modification count but keeps the history and the directive flag. A success for the
    path deletes its entry.
    """

    def __init__(
        self,
        *,
        max_modifications: int = MAX_FILE_MODIFICATIONS_BEFORE_META,
        max_meta_attempts: int = MAX_META_CORRECTION_ATTEMPTS,
        renderer: PromptRenderer | None = None,
        logger: Any | None = None,
    ) -> None:
        if max_modifications < 1:
            raise ValueError("max_modifications must be >= 1")
        if max_meta_attempts < 0:
            raise ValueError("max_meta_attempts must be >= 0")
        self._max_modifications = max_modifications
        self._max_meta_attempts = max_meta_attempts
        self._renderer = renderer if renderer is not None else default_renderer()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._entries: dict[str, FileFailureEntry] = {}

    @property
    def entries(self) -> Mapping[str, FileFailureEntry]:
        return dict(self._entries)

    def get(self, path: str) -> FileFailureEntry | None:
        return self._entries.get(path)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def record_failure(self, path: str, error: str) -> FailureDecision:
        fingerprint = error_fingerprint(error)
        stored_error = error[:MAX_ERROR_HISTORY_CHARS]
        entry = self._entries.get(path)

        if entry is None:
            entry = FileFailureEntry(
                path=path,
                modification_count=1,
                error_history=[stored_error],
                last_error_hash=fingerprint,
            )
            self._entries[path] = entry
            return FailureDecision(action=FailureAction.CONTINUE, path=path, entry=entry)

        entry.error_history.append(stored_error)
        if entry.last_error_hash != fingerprint:
            entry.modification_count = 1
            entry.last_error_hash = fingerprint
            return FailureDecision(action=FailureAction.CONTINUE, path=path, entry=entry)

        entry.modification_count += 1
        if entry.modification_count >= self._max_modifications and not entry.meta_correction_sent:
            entry.meta_correction_sent = True
            entry.meta_correction_attempts = 0
            self._logger.warning(
                "generation_meta_correction",
                path=path,
                modification_count=entry.modification_count,
            )
            return FailureDecision(
                action=FailureAction.META_CORRECT,
                path=path,
                entry=entry,
                directive=self.render_directive(entry),
            )

        if entry.meta_correction_sent:
            entry.meta_correction_attempts += 1
            if entry.meta_correction_attempts > self._max_meta_attempts:
                self._logger.error(
                    "generation_file_loop_terminated",
                    path=path,
                    modification_count=entry.modification_count,
                    meta_correction_attempts=entry.meta_correction_attempts,
                )
                return FailureDecision(action=FailureAction.TERMINATE, path=path, entry=entry)

        return FailureDecision(action=FailureAction.CONTINUE, path=path, entry=entry)

    def record_success(self, path: str) -> bool:
        """Forget ``path``; returns whether an entry existed."""
        return self._entries.pop(path, None) is not None

    def clear(self, paths: Iterable[str]) -> None:
        for path in paths:
            self.record_success(path)

    def render_directive(self, entry: FileFailureEntry) -> str:
        remaining = max(0, self._max_meta_attempts - entry.meta_correction_attempts)
        return self._renderer.render(
            "meta_correction",
            path=entry.path,
            count=entry.modification_count,
            expected_format=expected_format_for(entry.path),
            error=entry.error_history[-1] if entry.error_history else "",
            remaining=remaining,
        ).text


__all__ = [
    "FailureAction",
    "FailureDecision",
    "FileFailureTracker",
    "expected_format_for",
]
