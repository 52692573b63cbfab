"""Unit tests for applying agent file operations inside a package root."""

from __future__ import annotations

from pathlib import Path

from forge_orchestrator.integration_plane.file_changes import apply_file_changes
from forge_orchestrator.synthesis_plane.commands import FileAction, FileChange


def test_apply_writes_creates_and_deletes(tmp_path: Path) -> None:
    (tmp_path / "old.py").write_text("x = 1\n", encoding="utf-8")

    report = apply_file_changes(
        tmp_path,
        [
            FileChange(FileAction.CREATE, "src/pkg/mod.py", "y = 2\n"),
            FileChange(FileAction.DELETE, "old.py"),
        ],
    )

    assert report.succeeded
    assert report.modified == ("src/pkg/mod.py",)
    assert report.deleted == ("old.py",)
    assert report.touched == ("src/pkg/mod.py", "old.py")
    assert (tmp_path / "src/pkg/mod.py").read_text(encoding="utf-8") == "y = 2\n"
    assert not (tmp_path / "old.py").exists()
    assert report.summary() == "1 written, 1 deleted"


def test_one_bad_path_does_not_block_the_rest(tmp_path: Path) -> None:
    report = apply_file_changes(
        tmp_path,
        [
            FileChange(FileAction.UPDATE, "../escape.py", "bad"),
            FileChange(FileAction.DELETE, "missing.py"),
            FileChange(FileAction.UPDATE, "ok.py", "fine\n"),
        ],
    )

    assert not report.succeeded
    assert [failure.path for failure in report.failures] == ["../escape.py", "missing.py"]
    assert "does not exist" in report.failures[1].error
    assert report.modified == ("ok.py",)
    assert not (tmp_path.parent / "escape.py").exists()
    assert report.summary() == "1 written, 0 deleted, 2 failed"


def test_structured_files_are_unfenced_before_write(tmp_path: Path) -> None:
    report = apply_file_changes(
        tmp_path,
        [FileChange(FileAction.CREATE, "config.json", '```json\n{"a": 1}\n```')],
    )

    assert (tmp_path / "config.json").read_text(encoding="utf-8") == '{"a": 1}\n'
    assert report.warnings == ("config.json: removed markdown code fence",)


def test_create_over_existing_file_warns(tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("old", encoding="utf-8")

    report = apply_file_changes(tmp_path, [FileChange(FileAction.CREATE, "a.txt", "new")])

    assert report.succeeded
    assert report.warnings == ("a.txt: create overwrote an existing file",)


def test_sanitize_can_be_disabled(tmp_path: Path) -> None:
    fenced = "```json\n{}\n```"
    apply_file_changes(tmp_path, [FileChange(FileAction.CREATE, "a.json", fenced)], sanitize=False)
    assert (tmp_path / "a.json").read_text(encoding="utf-8") == fenced
