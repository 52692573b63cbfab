"""Unit tests for agent command validation and structured-content sanitizing."""

from __future__ import annotations

import json

import pytest

from forge_orchestrator.domain.errors import CommandValidationError
from forge_orchestrator.synthesis_plane.commands import (
    ApplyFileChanges,
    CommandType,
    FileAction,
    Publish,
    RunLint,
    command_to_dict,
    parse_agent_command,
    parse_command_type,
)
from forge_orchestrator.synthesis_plane.sanitizer import (
    sanitize_structured_content,
    strip_code_fence,
)


def test_parse_apply_file_changes() -> None:
    command = parse_agent_command(
        {
            "command": "apply-file-changes",
            "reasoning": "scaffold",
            "files": [
                {"action": "create", "path": "src\\mod.py", "content": "x = 1\n"},
                {"action": "delete", "path": "old.py", "content": "ignored"},
            ],
        }
    )

    assert isinstance(command, ApplyFileChanges)
    assert command.paths == ("src/mod.py", "old.py")
    assert command.files[1].action is FileAction.DELETE
    assert command.files[1].content == ""


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("APPLY_CODE_CHANGES", CommandType.APPLY_FILE_CHANGES),
        ("RUN_LINT_CHECK", CommandType.RUN_LINT),
        ("run_unit_tests", CommandType.RUN_TESTS),
        ("validate-package-json", CommandType.VALIDATE_MANIFEST),
        ("publish", CommandType.PUBLISH),
    ],
)
def test_command_aliases(raw: str, expected: CommandType) -> None:
    assert parse_command_type(raw) is expected


def test_parse_accepts_fenced_json_text() -> None:
    command = parse_agent_command('```json\n{"command": "RUN_LINT_CHECK"}\n```')
    assert command == RunLint()
    assert command_to_dict(command) == {"command": "run-lint"}


@pytest.mark.parametrize(
    ("payload", "match"),
    [
        ("not json", "not valid JSON"),
        ("[1, 2]", "expected object"),
        ({"command": "deploy"}, "unknown command"),
        ({"command": ""}, "non-empty string"),
        ({"command": "publish", "force": True}, "unexpected field"),
        ({"command": "apply-file-changes"}, "non-empty array"),
        ({"command": "apply-file-changes", "files": [{"path": ""}]}, "non-empty string"),
        (
            {"command": "apply-file-changes", "files": [{"action": "rename", "path": "a"}]},
            "invalid action",
        ),
        (
            {"command": "apply-file-changes", "files": [{"path": "a"}, {"path": "a"}]},
            "duplicate path",
        ),
        (
            {"command": "apply-file-changes", "files": [{"path": "a", "content": 3}]},
            "must be a string",
        ),
    ],
)
def test_invalid_payloads_are_rejected(payload: object, match: str) -> None:
    with pytest.raises(CommandValidationError, match=match):
        parse_agent_command(payload)  # type: ignore[arg-type]


def test_command_round_trips_through_dict() -> None:
    raw = {"command": "apply-file-changes", "files": [{"action": "update", "path": "a.py"}]}
    command = parse_agent_command(raw)
    assert parse_agent_command(json.dumps(command_to_dict(command))) == command
    assert parse_agent_command({"command": "PUBLISH_PACKAGE"}) == Publish()


def test_strip_code_fence() -> None:
    assert strip_code_fence("```yaml\na: 1\n```") == "a: 1"
    assert strip_code_fence("  ```\nplain\n```  \n") == "plain"
    assert strip_code_fence("a: 1") is None
    assert strip_code_fence("```a```b```") is None


def test_sanitizer_unwraps_valid_fenced_json() -> None:
    result = sanitize_structured_content("pkg/config.json", '```json\n{"a": [1, 2]}\n```')
    assert result.unwrapped
    assert result.content == '{"a": [1, 2]}\n'
    assert result.warning == "pkg/config.json: removed markdown code fence"


def test_sanitizer_keeps_invalid_fenced_content() -> None:
    original = "```toml\nkey = \n```"
    result = sanitize_structured_content("pyproject.toml", original)
    assert not result.unwrapped
    assert result.content == original
    assert result.warning is not None
    assert "does not parse as toml" in result.warning


def test_sanitizer_ignores_unstructured_and_unfenced_files() -> None:
    fenced_python = "```python\nx = 1\n```"
    assert sanitize_structured_content("mod.py", fenced_python).content == fenced_python
    plain = sanitize_structured_content("a.yaml", "a: 1\n")
    assert not plain.unwrapped
    assert plain.warning is None
