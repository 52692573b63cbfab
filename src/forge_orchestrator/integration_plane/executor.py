"""
forge-orchestrator — command executor

File: src/forge_orchestrator/integration_plane/executor.py
Last updated: 2026-10-19

Purpose
- Portable async subprocess contract shared by quality probes, the publisher, and the
  subprocess-backed code-generation agent.

Functional requirements
- Capture stdout/stderr deterministically (normalized newlines, bounded size).
- Timeouts kill the process and report ``timed_out=True`` with ``exit_code=None``.
- Spawn failures (missing executable, permissions) are reported as ``error`` text, not raised.

Non-functional requirements
- Output passes through an optional redaction hook before it is stored or logged.
"""

from __future__ import annotations

import asyncio
import math
import os
import shlex
import time
from collections.abc import Callable, Mapping, Sequence
from contextlib import suppress
from dataclasses import dataclass, field
from typing import NoReturn, Protocol, runtime_checkable

from forge_orchestrator.domain.models import JSONValue

TextRedactor = Callable[[str], str]

_MAX_ENV_ENTRIES = 256


def _identity(text: str) -> str:
    return text


@dataclass(slots=True)
class CommandSpec:
    """One command invocation."""

    argv: tuple[str, ...]
    cwd: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    stdin_text: str | None = None
    timeout_seconds: float | None = None
    allowed_exit_codes: tuple[int, ...] = (0,)
    inherit_env: bool = True

    def __post_init__(self) -> None:
        self.argv = _as_argv(self.argv, "CommandSpec.argv")
        if self.cwd is not None and not isinstance(self.cwd, str):
            _fail("CommandSpec.cwd", "expected string")
        if not isinstance(self.env, Mapping) or len(self.env) > _MAX_ENV_ENTRIES:
            _fail("CommandSpec.env", f"expected mapping with <= {_MAX_ENV_ENTRIES} entries")
        self.env = {str(key): str(self.env[key]) for key in sorted(self.env)}
        self.timeout_seconds = _as_positive_float_or_none(
            self.timeout_seconds, "CommandSpec.timeout_seconds"
        )
        codes = tuple(sorted(set(self.allowed_exit_codes)))
        if not codes:
            _fail("CommandSpec.allowed_exit_codes", "must not be empty")
        self.allowed_exit_codes = codes

    @classmethod
    def from_command_line(cls, command: str | Sequence[str], **kwargs: object) -> CommandSpec:
        """Build a spec from a shell-style string (split, never run through a shell)."""

        if isinstance(command, str):
            argv = tuple(shlex.split(command))
        else:
            argv = tuple(command)
        return cls(argv=argv, **kwargs)  # type: ignore[arg-type]

    def resolved_timeout(self, default_timeout_seconds: float | None = None) -> float | None:
        if self.timeout_seconds is not None:
            return self.timeout_seconds
        return default_timeout_seconds

    def build_env(self) -> dict[str, str] | None:
        if self.inherit_env:
            if not self.env:
                return None
            env = dict(os.environ)
            env.update(self.env)
            return env
        return dict(self.env)

    def display(self) -> str:
        return shlex.join(self.argv)


@dataclass(slots=True)
class CommandResult:
    """Deterministic command execution outcome."""

    argv: tuple[str, ...]
    exit_code: int | None
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False
    error: str | None = None

    def __post_init__(self) -> None:
        self.argv = _as_argv(self.argv, "CommandResult.argv")
        if self.duration_ms < 0:
            _fail("CommandResult.duration_ms", "must be >= 0")
        if self.timed_out and self.exit_code is not None:
            _fail("CommandResult.exit_code", "must be None when timed_out is true")

    def is_success(self, spec: CommandSpec | None = None) -> bool:
        if self.timed_out or self.error is not None or self.exit_code is None:
            return False
        if spec is None:
            return self.exit_code == 0
        return self.exit_code in spec.allowed_exit_codes

    @property
    def output(self) -> str:
        """Combined stdout and stderr, stdout first."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "argv": list(self.argv),
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "duration_ms": self.duration_ms,
            "timed_out": self.timed_out,
            "error": self.error,
        }


@runtime_checkable
class CommandExecutor(Protocol):
    """Pluggable async command execution interface."""

    async def run(self, spec: CommandSpec) -> CommandResult: ...


class LocalSubprocessExecutor(CommandExecutor):
    """Async local subprocess executor with deterministic capture/timeout behavior."""

    def __init__(
        self,
        *,
        default_timeout_seconds: float | None = None,
        max_output_chars: int | None = 200_000,
        redact: TextRedactor | None = None,
    ) -> None:
        self._default_timeout_seconds = _as_positive_float_or_none(
            default_timeout_seconds,
            "LocalSubprocessExecutor.default_timeout_seconds",
        )
        if max_output_chars is not None and max_output_chars < 1:
            _fail("LocalSubprocessExecutor.max_output_chars", "must be >= 1")
        self._max_output_chars = max_output_chars
        self._redact = redact if redact is not None else _identity

    async def run(self, spec: CommandSpec) -> CommandResult:
        started_ns = time.monotonic_ns()
        timeout = spec.resolved_timeout(self._default_timeout_seconds)

        try:
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                cwd=spec.cwd,
                env=spec.build_env(),
                stdin=(
                    asyncio.subprocess.PIPE
                    if spec.stdin_text is not None
                    else asyncio.subprocess.DEVNULL
                ),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            return CommandResult(
                argv=spec.argv,
                exit_code=None,
                stdout="",
                stderr="",
                duration_ms=_elapsed_ms(started_ns),
                error=self._redact(str(exc)),
            )

        stdin_bytes = spec.stdin_text.encode("utf-8") if spec.stdin_text is not None else None

        try:
            stdout_bytes, stderr_bytes = await _communicate_with_timeout(
                process=process,
                stdin_bytes=stdin_bytes,
                timeout_seconds=timeout,
            )
            timed_out = False
            error_text: str | None = None
            exit_code = process.returncode
        except _CommandTimeoutError as exc:
            stdout_bytes = exc.stdout
            stderr_bytes = exc.stderr
            timed_out = True
            error_text = f"command timed out after {timeout or 0.0:.3f}s"
            exit_code = None

        return CommandResult(
            argv=spec.argv,
            exit_code=exit_code,
            stdout=self._redact(
                _truncate_text(_normalize_output_text(stdout_bytes), self._max_output_chars)
            ),
            stderr=self._redact(
                _truncate_text(_normalize_output_text(stderr_bytes), self._max_output_chars)
            ),
            duration_ms=_elapsed_ms(started_ns),
            timed_out=timed_out,
            error=error_text,
        )


@dataclass(slots=True)
class _CommandTimeoutError(Exception):
    stdout: bytes
    stderr: bytes


async def _communicate_with_timeout(
    *,
    process: asyncio.subprocess.Process,
    stdin_bytes: bytes | None,
    timeout_seconds: float | None,
) -> tuple[bytes, bytes]:
    try:
        if timeout_seconds is None:
            return await process.communicate(stdin_bytes)
        return await asyncio.wait_for(process.communicate(stdin_bytes), timeout=timeout_seconds)
    except TimeoutError as exc:
        with suppress(ProcessLookupError):
            process.kill()
        stdout_bytes, stderr_bytes = await process.communicate()
        raise _CommandTimeoutError(stdout=stdout_bytes, stderr=stderr_bytes) from exc
    except asyncio.CancelledError:
        with suppress(ProcessLookupError):
            process.kill()
        await process.communicate()
        raise


def _elapsed_ms(started_ns: int) -> int:
    return max(0, (time.monotonic_ns() - started_ns) // 1_000_000)


def _normalize_output_text(raw: bytes) -> str:
    text = raw.decode("utf-8", errors="replace")
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _truncate_text(text: str, max_chars: int | None) -> str:
    if max_chars is None or len(text) <= max_chars:
        return text
    omitted = len(text) - max_chars
    return f"{text[:max_chars]}\n...[truncated {omitted} chars]"


def _as_argv(value: object, path: str) -> tuple[str, ...]:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
        _fail(path, f"expected sequence, got {type(value).__name__}")
    parsed: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str) or not item.strip():
            _fail(f"{path}[{index}]", "expected non-empty string")
        parsed.append(item)
    if not parsed:
        _fail(path, "must not be empty")
    return tuple(parsed)


def _as_positive_float_or_none(value: object, path: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        _fail(path, f"expected number, got {type(value).__name__}")
    parsed = float(value)
    if not math.isfinite(parsed) or parsed <= 0.0:
        _fail(path, "must be a finite number > 0")
    return parsed


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


__all__ = [
    "CommandExecutor",
    "CommandResult",
    "CommandSpec",
    "LocalSubprocessExecutor",
    "TextRedactor",
]
