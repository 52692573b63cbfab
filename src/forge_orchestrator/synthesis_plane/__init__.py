"""
forge-orchestrator — synthesis plane

File: src/forge_orchestrator/synthesis_plane/__init__.py
Last updated: 2026-10-19

Purpose
- The agent boundary, the command protocol, and the turn-based generation loop with
  per-file failure tracking and structured-content sanitizing.
- ``generation_loop`` is imported directly by the control plane; it depends on the
  integration plane, which depends back on the command protocol exported here.
"""

from forge_orchestrator.synthesis_plane.agent import (
    AgentInvocationError,
    AgentTurnRequest,
    CodeGenerationAgent,
    SubprocessAgent,
)
from forge_orchestrator.synthesis_plane.commands import (
    AgentCommand,
    CommandType,
    FileAction,
    FileChange,
    parse_agent_command,
)
from forge_orchestrator.synthesis_plane.failure_tracker import (
    FailureAction,
    FailureDecision,
    FileFailureTracker,
)
from forge_orchestrator.synthesis_plane.sanitizer import sanitize_structured_content

__all__ = [
    "AgentCommand",
    "AgentInvocationError",
    "AgentTurnRequest",
    "CodeGenerationAgent",
    "CommandType",
    "FailureAction",
    "FailureDecision",
    "FileAction",
    "FileChange",
    "FileFailureTracker",
    "SubprocessAgent",
    "parse_agent_command",
    "sanitize_structured_content",
]
