"""Unit tests for the subprocess agent boundary and prompt rendering."""

from __future__ import annotations

import json
from dataclasses import dataclass, field

import pytest

from forge_orchestrator.domain.models import ActionHistoryEntry, CommandOutcome
from forge_orchestrator.integration_plane.executor import CommandResult, CommandSpec
from forge_orchestrator.synthesis_plane import (
    AgentInvocationError,
    AgentTurnRequest,
    SubprocessAgent,
)
from forge_orchestrator.synthesis_plane.prompt_templates import (
    PromptRenderer,
    PromptTemplateError,
    PromptTemplateVariableError,
    default_renderer,
)


@dataclass(slots=True)
class ScriptedExecutor:
    result: CommandResult
    specs: list[CommandSpec] = field(default_factory=list)

    async def run(self, spec: CommandSpec) -> CommandResult:
        self.specs.append(spec)
        return self.result


def _request() -> AgentTurnRequest:
    return AgentTurnRequest(
        package="core",
        turn=2,
        plan_text="# Overview",
        instructions="be good",
        action_history=(
            ActionHistoryEntry(turn=1, command="run-lint", outcome=CommandOutcome.FAILURE),
        ),
        codebase_context="No files have been created yet.",
    )


def _stdout(text: str, exit_code: int = 0) -> CommandResult:
    return CommandResult(
        argv=("agent",), exit_code=exit_code, stdout=text, stderr="", duration_ms=1
    )


@pytest.mark.asyncio
async def test_subprocess_agent_sends_request_on_stdin() -> None:
    executor = ScriptedExecutor(_stdout('{"command": "run-lint"}\n'))
    agent = SubprocessAgent("my-agent --json", executor=executor, cwd="/work")

    payload = await agent.next_command(_request())

    assert payload == {"command": "run-lint"}
    spec = executor.specs[0]
    assert spec.argv == ("my-agent", "--json")
    assert spec.cwd == "/work"
    sent = json.loads(spec.stdin_text or "{}")
    assert sent["turn"] == 2
    assert sent["action_history"][0]["outcome"] == "failure"


@pytest.mark.asyncio
async def test_subprocess_agent_accepts_fenced_output() -> None:
    fenced = _stdout('```\n{"command": "publish"}\n```')
    agent = SubprocessAgent("a", executor=ScriptedExecutor(fenced))
    assert await agent.next_command(_request()) == {"command": "publish"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("result", "match"),
    [
        (_stdout("", exit_code=3), "exit code 3"),
        (_stdout("hello"), "invalid JSON"),
        (_stdout("[1]"), "expected object"),
    ],
)
async def test_subprocess_agent_failures(result: CommandResult, match: str) -> None:
    agent = SubprocessAgent("a", executor=ScriptedExecutor(result))
    with pytest.raises(AgentInvocationError, match=match):
        await agent.next_command(_request())


def test_subprocess_agent_requires_command() -> None:
    with pytest.raises(ValueError):
        SubprocessAgent(" ", executor=ScriptedExecutor(_stdout("")))


def test_turn_context_renders_hints_and_remediation() -> None:
    rendered = default_renderer().render(
        "turn_context",
        directive="",
        hints=["use httpx"],
        summary="Lint check passed.",
        remediation="Quality score 80/100",
    )

    assert rendered.text.startswith("## Human hints\n- use httpx")
    assert "## Current state\nLint check passed." in rendered.text
    assert rendered.text.endswith("## Remediation required\nQuality score 80/100")
    assert len(rendered.prompt_hash) == 64


def test_turn_context_puts_directive_first() -> None:
    rendered = default_renderer().render(
        "turn_context", directive="## STUCK", hints=[], summary="s", remediation=""
    )
    assert rendered.text.startswith("## STUCK\n\n---\n\n## Current state")
    assert "Remediation" not in rendered.text


def test_render_is_deterministic() -> None:
    renderer = PromptRenderer()
    variables = {"directive": "", "hints": [], "summary": "x", "remediation": ""}
    first = renderer.render("turn_context", **variables)
    second = renderer.render("turn_context", **variables)
    assert first == second


def test_renderer_rejects_missing_unknown_and_unexpected() -> None:
    renderer = PromptRenderer()
    with pytest.raises(PromptTemplateVariableError, match="missing"):
        renderer.render("turn_context", summary="x")
    with pytest.raises(PromptTemplateVariableError, match="unexpected"):
        renderer.render(
            "turn_context", directive="", hints=[], summary="", remediation="", extra=1
        )
    with pytest.raises(PromptTemplateError, match="unknown template"):
        renderer.render("nope")


def test_remediation_template_declares_its_variables() -> None:
    assert default_renderer().declared_variables("remediation") == (
        "attempt",
        "level",
        "max_attempts",
        "score",
        "target",
        "tasks",
    )
