"""Apply agent file operations inside a package directory."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from forge_orchestrator.synthesis_plane.commands import FileAction
from forge_orchestrator.synthesis_plane.sanitizer import sanitize_structured_content
from forge_orchestrator.utils.fs import atomic_write, resolve_within, safe_delete

if TYPE_CHECKING:
    from collections.abc import Iterable

    from forge_orchestrator.synthesis_plane.commands import FileChange


@dataclass(frozen=True, slots=True)
class FileChangeFailure:
    path: str
    error: str


@dataclass(frozen=True, slots=True)
class FileChangeReport:
    """Per-path outcome of one ``apply-file-changes`` command."""

    modified: tuple[str, ...] = ()
    deleted: tuple[str, ...] = ()
    failures: tuple[FileChangeFailure, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return not self.failures

    @property
    def touched(self) -> tuple[str, ...]:
        return self.modified + self.deleted

    def summary(self) -> str:
        parts = [f"{len(self.modified)} written", f"{len(self.deleted)} deleted"]
        if self.failures:
            parts.append(f"{len(self.failures)} failed")
        return ", ".join(parts)


def apply_file_changes(
    root: str | Path,
    changes: Iterable[FileChange],
    *,
    sanitize: bool = True,
) -> FileChangeReport:
    """
    Apply each change independently; one failing path never blocks the others.

    Paths are resolved with ``resolve_within`` so nothing escapes ``root``. Structured
    files pass through the sanitizer before they are written atomically.
    """

    package_root = Path(root)
    modified: list[str] = []
    deleted: list[str] = []
    failures: list[FileChangeFailure] = []
    warnings: list[str] = []

    for change in changes:
        try:
            target = resolve_within(package_root, change.path)
        except ValueError as exc:
            failures.append(FileChangeFailure(path=change.path, error=str(exc)))
            continue

        try:
            if change.action is FileAction.DELETE:
                if not target.exists() and not target.is_symlink():
                    failures.append(
                        FileChangeFailure(
                            path=change.path,
                            error=f"cannot delete {change.path}: file does not exist",
                        )
                    )
                    continue
                safe_delete(target, package_root)
                deleted.append(change.path)
                continue

            if change.action is FileAction.CREATE and target.exists():
                warnings.append(f"{change.path}: create overwrote an existing file")

            content = change.content
            if sanitize:
                sanitized = sanitize_structured_content(change.path, content)
                content = sanitized.content
                if sanitized.warning is not None:
                    warnings.append(sanitized.warning)

            target.parent.mkdir(parents=True, exist_ok=True)
            atomic_write(target, content)
            modified.append(change.path)
        except OSError as exc:
            failures.append(
                FileChangeFailure(path=change.path, error=f"file operation failed: {exc}")
            )

    return FileChangeReport(
        modified=tuple(modified),
        deleted=tuple(deleted),
        failures=tuple(failures),
        warnings=tuple(warnings),
    )


__all__ = ["FileChangeFailure", "FileChangeReport", "apply_file_changes"]
