"""
forge-orchestrator — agent command protocol

File: src/forge_orchestrator/synthesis_plane/commands.py
Last updated: 2026-10-19

Purpose
- Validate raw agent payloads into a closed, tagged union of frozen command dataclasses.

Functional requirements
- Wire format is one JSON object per turn: ``{"command": "<name>", ...}``.
- Upper-case underscore aliases (``APPLY_CODE_CHANGES``, ``RUN_LINT_CHECK``...) map onto the
  canonical kebab-case names.
- Anything else raises ``CommandValidationError``; the loop records it as a rejected turn.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Final, NoReturn

from forge_orchestrator.domain.errors import CommandValidationError
from forge_orchestrator.domain.models import JSONValue
from forge_orchestrator.synthesis_plane.sanitizer import strip_code_fence

_MAX_FILES_PER_COMMAND: Final[int] = 200
_MAX_CONTENT_CHARS: Final[int] = 2_000_000


class CommandType(StrEnum):
    APPLY_FILE_CHANGES = "apply-file-changes"
    VALIDATE_MANIFEST = "validate-manifest"
    CHECK_LICENSE_HEADERS = "check-license-headers"
    RUN_LINT = "run-lint"
    RUN_TESTS = "run-tests"
    PUBLISH = "publish"


_ALIASES: Final[Mapping[str, CommandType]] = {
    "apply-code-changes": CommandType.APPLY_FILE_CHANGES,
    "validate-package-json": CommandType.VALIDATE_MANIFEST,
    "run-lint-check": CommandType.RUN_LINT,
    "run-unit-tests": CommandType.RUN_TESTS,
    "publish-package": CommandType.PUBLISH,
}


class FileAction(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class FileChange:
    action: FileAction
    path: str
    content: str = ""

    def to_dict(self) -> dict[str, JSONValue]:
        return {"action": self.action.value, "path": self.path, "content": self.content}


@dataclass(frozen=True, slots=True)
class ApplyFileChanges:
    files: tuple[FileChange, ...]
    type: CommandType = CommandType.APPLY_FILE_CHANGES

    @property
    def paths(self) -> tuple[str, ...]:
        return tuple(item.path for item in self.files)


@dataclass(frozen=True, slots=True)
class ValidateManifest:
    type: CommandType = CommandType.VALIDATE_MANIFEST


@dataclass(frozen=True, slots=True)
class CheckLicenseHeaders:
    type: CommandType = CommandType.CHECK_LICENSE_HEADERS


@dataclass(frozen=True, slots=True)
class RunLint:
    type: CommandType = CommandType.RUN_LINT


@dataclass(frozen=True, slots=True)
class RunTests:
    type: CommandType = CommandType.RUN_TESTS


@dataclass(frozen=True, slots=True)
class Publish:
    type: CommandType = CommandType.PUBLISH


AgentCommand = (
    ApplyFileChanges | ValidateManifest | CheckLicenseHeaders | RunLint | RunTests | Publish
)

_SIMPLE_COMMANDS: Final[Mapping[CommandType, AgentCommand]] = {
    CommandType.VALIDATE_MANIFEST: ValidateManifest(),
    CommandType.CHECK_LICENSE_HEADERS: CheckLicenseHeaders(),
    CommandType.RUN_LINT: RunLint(),
    CommandType.RUN_TESTS: RunTests(),
    CommandType.PUBLISH: Publish(),
}


def parse_command_type(raw: object) -> CommandType:
    if not isinstance(raw, str) or not raw.strip():
        _reject("command", "must be a non-empty string")
    normalized = raw.strip().lower().replace("_", "-")
    try:
        return CommandType(normalized)
    except ValueError:
        alias = _ALIASES.get(normalized)
        if alias is not None:
            return alias
    allowed = ", ".join(item.value for item in CommandType)
    _reject("command", f"unknown command {raw!r}; expected one of: {allowed}")


def parse_agent_command(payload: Mapping[str, object] | str | bytes) -> AgentCommand:
    """Validate one raw agent payload into an ``AgentCommand``."""

    data = _as_payload_object(payload)
    command_type = parse_command_type(data.get("command"))
    if command_type is not CommandType.APPLY_FILE_CHANGES:
        unexpected = sorted(str(key) for key in data if key not in {"command", "reasoning"})
        if unexpected:
            _reject(command_type.value, f"unexpected field(s): {', '.join(unexpected)}")
        return _SIMPLE_COMMANDS[command_type]

    unexpected = sorted(
        str(key) for key in data if key not in {"command", "files", "reasoning"}
    )
    if unexpected:
        _reject(command_type.value, f"unexpected field(s): {', '.join(unexpected)}")
    return ApplyFileChanges(files=_parse_files(data.get("files")))


def command_to_dict(command: AgentCommand) -> dict[str, JSONValue]:
    payload: dict[str, JSONValue] = {"command": command.type.value}
    if isinstance(command, ApplyFileChanges):
        payload["files"] = [item.to_dict() for item in command.files]
    return payload


def _as_payload_object(payload: Mapping[str, object] | str | bytes) -> Mapping[str, object]:
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    if isinstance(payload, str):
        text = strip_code_fence(payload) or payload
        try:
            payload = json.loads(text)
        except ValueError as exc:
            _reject("payload", f"not valid JSON ({exc})")
    if not isinstance(payload, Mapping):
        _reject("payload", f"expected object, got {type(payload).__name__}")
    return payload


def _parse_files(raw: object) -> tuple[FileChange, ...]:
    if not isinstance(raw, list) or not raw:
        _reject("files", "must be a non-empty array")
    if len(raw) > _MAX_FILES_PER_COMMAND:
        _reject("files", f"too many entries (>{_MAX_FILES_PER_COMMAND})")

    changes: list[FileChange] = []
    seen: set[str] = set()
    for index, item in enumerate(raw):
        path = f"files[{index}]"
        if not isinstance(item, Mapping):
            _reject(path, "expected object")
        unknown = sorted(str(key) for key in item if key not in {"action", "path", "content"})
        if unknown:
            _reject(path, f"unexpected field(s): {', '.join(unknown)}")

        raw_action = item.get("action", "update")
        try:
            action = FileAction(str(raw_action).strip().lower())
        except ValueError:
            _reject(f"{path}.action", f"invalid action {raw_action!r}")

        file_path = item.get("path")
        if not isinstance(file_path, str) or not file_path.strip():
            _reject(f"{path}.path", "must be a non-empty string")
        file_path = file_path.strip().replace("\\", "/")
        if file_path in seen:
            _reject(f"{path}.path", f"duplicate path {file_path!r}")
        seen.add(file_path)

        content = item.get("content", "")
        if action is FileAction.DELETE:
            content = ""
        elif not isinstance(content, str):
            _reject(f"{path}.content", "must be a string")
        elif len(content) > _MAX_CONTENT_CHARS:
            _reject(f"{path}.content", f"must be <= {_MAX_CONTENT_CHARS} characters")
        changes.append(FileChange(action=action, path=file_path, content=content))
    return tuple(changes)


def _reject(path: str, message: str) -> NoReturn:
    raise CommandValidationError(f"{path}: {message}")


__all__ = [
    "AgentCommand",
    "ApplyFileChanges",
    "CheckLicenseHeaders",
    "CommandType",
    "FileAction",
    "FileChange",
    "Publish",
    "RunLint",
    "RunTests",
    "ValidateManifest",
    "command_to_dict",
    "parse_agent_command",
    "parse_command_type",
]
