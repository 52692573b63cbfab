"""
forge-orchestrator — code-generation agent boundary

File: src/forge_orchestrator/synthesis_plane/agent.py
Last updated: 2026-10-19

Purpose
- Define the opaque agent contract: one turn request in, one raw command payload out.
- Ship ``SubprocessAgent``, which speaks the contract over stdin/stdout with any executable.

Functional requirements
- The agent is never called concurrently for the same package.
- Raw payloads are validated by the generation loop, not here.
- An agent process that cannot run or produces no JSON object raises ``AgentInvocationError``.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from forge_orchestrator.domain.errors import ForgeError
from forge_orchestrator.integration_plane.executor import CommandSpec
from forge_orchestrator.synthesis_plane.sanitizer import strip_code_fence

if TYPE_CHECKING:
    from forge_orchestrator.domain.models import ActionHistoryEntry, JSONValue
    from forge_orchestrator.integration_plane.executor import CommandExecutor


class AgentInvocationError(ForgeError):
    """The agent process failed or returned something that is not a JSON object."""


@dataclass(frozen=True, slots=True)
class AgentTurnRequest:
    """Everything the agent sees on one turn."""

    package: str
    turn: int
    plan_text: str
    instructions: str
    action_history: tuple[ActionHistoryEntry, ...]
    codebase_context: str

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "package": self.package,
            "turn": self.turn,
            "plan_text": self.plan_text,
            "instructions": self.instructions,
            "action_history": [entry.to_dict() for entry in self.action_history],
            "codebase_context": self.codebase_context,
        }


@runtime_checkable
class CodeGenerationAgent(Protocol):
    async def next_command(self, request: AgentTurnRequest) -> Mapping[str, object] | str: ...


class SubprocessAgent(CodeGenerationAgent):
    """Runs ``command`` once per turn with the request JSON on stdin."""

    def __init__(
        self,
        command: str,
        *,
        executor: CommandExecutor,
        cwd: str | None = None,
        timeout_seconds: float | None = 900.0,
    ) -> None:
        if not command.strip():
            raise ValueError("agent command must not be empty")
        self._command = command
        self._executor = executor
        self._cwd = cwd
        self._timeout_seconds = timeout_seconds

    async def next_command(self, request: AgentTurnRequest) -> Mapping[str, object]:
        spec = CommandSpec.from_command_line(
            self._command,
            cwd=self._cwd,
            stdin_text=json.dumps(request.to_dict(), sort_keys=True),
            timeout_seconds=self._timeout_seconds,
        )
        result = await self._executor.run(spec)
        if not result.is_success(spec):
            detail = result.error or result.stderr.strip() or f"exit code {result.exit_code}"
            raise AgentInvocationError(f"agent command failed on turn {request.turn}: {detail}")

        text = result.stdout.strip()
        try:
            payload = json.loads(strip_code_fence(text) or text)
        except ValueError as exc:
            raise AgentInvocationError(
                f"agent returned invalid JSON on turn {request.turn}: {exc}"
            ) from exc
        if not isinstance(payload, Mapping):
            raise AgentInvocationError(
                f"agent returned {type(payload).__name__} on turn {request.turn}; expected object"
            )
        return payload


__all__ = [
    "AgentInvocationError",
    "AgentTurnRequest",
    "CodeGenerationAgent",
    "SubprocessAgent",
]
