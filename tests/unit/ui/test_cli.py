"""Unit tests for the forge CLI router and the process entrypoint."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from forge_orchestrator.config import load_config
from forge_orchestrator.control_plane import SuiteOrchestrator
from forge_orchestrator.domain import BuildTaskState, HumanInterventionRequested
from forge_orchestrator.domain.models import PackageBuildTask
from forge_orchestrator.main import ExitCode, cli_entrypoint
from forge_orchestrator.reporting import ReportWriter
from forge_orchestrator.ui import cli
from forge_orchestrator.ui.cli import build_suite_orchestrator, run_cli

PLAN = "# Overview\nx\n# Requirements\nx\n# Implementation\nx\n# Testing\nx\n"


def _workspace(tmp_path: Path, manifests: dict[str, str]) -> Path:
    for directory, text in manifests.items():
        target = tmp_path / "packages" / directory / "forge.yaml"
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")
    config_path = tmp_path / "forge.toml"
    config_path.write_text(
        '[paths]\nworkspace_root = "packages"\nreports_dir = "reports"\n'
        'plans_dir = "plans"\n',
        encoding="utf-8",
    )
    return config_path


def _chain(tmp_path: Path) -> Path:
    return _workspace(
        tmp_path,
        {
            "core": "name: core\nversion: 1.0.0\nprovides: [core-api]\n",
            "ui": "name: ui\ndependencies: [core]\nprovides: [ui-kit]\n",
            "app": "name: app\ndependencies: [ui, core]\nprovides: [app]\n",
        },
    )


def test_score_json_output(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = run_cli(["score", "--fail", "typecheck", "--json"])

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert payload["command"] == "score"
    assert payload["score"]["score"] == 80
    assert payload["score"]["level"] == "blocked"
    assert payload["score"]["failed_checks"] == ["typecheck"]


def test_score_text_output_marks_each_check(capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["score", "--fail", "license", "--no-color"]) == 0

    out = capsys.readouterr().out
    assert "Score: 95" in out
    assert "Level: excellent" in out
    assert "FAIL  license" in out
    assert "OK    typecheck" in out


def test_score_rejects_contradictory_checks(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = run_cli(["score", "--pass", "lint", "--fail", "lint"])

    assert exit_code == 2
    assert "both passed and failed" in capsys.readouterr().err


def test_resolve_prints_layers_as_json(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = _chain(tmp_path)

    exit_code = run_cli(["resolve", "app", "--config", str(config_path), "--json"])

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert payload["graph"]["layers"] == [["core"], ["ui"], ["app"]]


def test_resolve_without_package_covers_the_workspace(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = _chain(tmp_path)

    exit_code = run_cli(["resolve", "--config", str(config_path), "--json"])

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert payload["graph"]["layers"] == [["core"], ["ui"], ["app"]]
    assert [item["name"] for item in payload["graph"]["packages"]] == ["app", "core", "ui"]


def test_resolve_text_output(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config_path = _chain(tmp_path)

    assert run_cli(["resolve", "ui", "--config", str(config_path), "--no-color"]) == 0

    out = capsys.readouterr().out
    assert "ui: 2 package(s)" in out
    assert "core" in out


def test_config_command_redacts_and_reports_profile(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = _chain(tmp_path)

    exit_code = run_cli(
        ["config", "--config", str(config_path), "--profile", "strict", "--json"]
    )

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert payload["active_profile"] == "strict"
    assert payload["config"]["scheduler"]["max_concurrent_builds"] == 1
    assert payload["config"]["publishing"]["token_env"] == "<redacted>"


def test_bad_config_is_a_usage_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config_path = tmp_path / "forge.toml"
    config_path.write_text("[scheduler]\nmax_concurrent_builds = 0\n", encoding="utf-8")

    exit_code = run_cli(["config", "--config", str(config_path)])

    assert exit_code == 2
    assert "scheduler.max_concurrent_builds" in capsys.readouterr().err


def test_build_without_agent_command_is_rejected(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = _chain(tmp_path)

    exit_code = run_cli(["build", "app", "--config", str(config_path)])

    assert exit_code == 2
    assert "generation.agent_command" in capsys.readouterr().err


def test_report_command_renders_persisted_reports(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    tasks = {
        "core": PackageBuildTask(package="core", state=BuildTaskState.PUBLISHED),
        "ui": PackageBuildTask(package="ui", state=BuildTaskState.SKIPPED),
    }
    suite_dir = ReportWriter(tmp_path).write_suite(
        suite_id="s1", root_package="ui", phase="failed", tasks=tasks, failure="boom"
    )

    assert run_cli(["report", str(suite_dir), "--json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["summary"]["failure"] == "boom"
    assert [item["name"] for item in payload["packages"]] == ["core", "ui"]

    assert run_cli(["report", str(suite_dir), "--no-color"]) == 0
    out = capsys.readouterr().out
    assert "Suite: s1" in out
    assert "Failure: boom" in out


def test_report_on_missing_directory_is_a_usage_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert run_cli(["report", str(tmp_path / "absent")]) == 2
    assert "report directory not found" in capsys.readouterr().err


def test_entrypoint_maps_cycles_to_config_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = _workspace(
        tmp_path,
        {
            "a": "name: a\ndependencies: [b]\n",
            "b": "name: b\ndependencies: [a]\n",
        },
    )

    exit_code = cli_entrypoint(["resolve", "a", "--config", str(config_path)])

    assert exit_code == ExitCode.CONFIG_ERROR
    assert capsys.readouterr().err.startswith("error: Dependency graph contains a cycle")


def test_entrypoint_maps_unknown_package_to_config_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = _chain(tmp_path)

    assert cli_entrypoint(["resolve", "ghost", "--config", str(config_path)]) == 2
    assert "ghost" in capsys.readouterr().err


def test_entrypoint_handles_argparse_exit(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["score", "--fail", "speed"]) == ExitCode.CONFIG_ERROR
    assert cli_entrypoint(["--help"]) == ExitCode.SUCCESS
    capsys.readouterr()


def test_entrypoint_routes_intervention_and_internal_errors(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    def waiting(argv: list[str] | None = None) -> int:
        try:
            raise HumanInterventionRequested("lint keeps failing")
        except HumanInterventionRequested as exc:
            raise RuntimeError("build aborted") from exc

    monkeypatch.setattr(cli, "run_cli", waiting)
    assert cli_entrypoint([]) == ExitCode.AWAITING_INTERVENTION
    assert "error: build aborted" in capsys.readouterr().err

    def broken(argv: list[str] | None = None) -> int:
        raise KeyError("boom")

    monkeypatch.setattr(cli, "run_cli", broken)
    assert cli_entrypoint([]) == ExitCode.INTERNAL_ERROR
    assert "Traceback" in capsys.readouterr().err


def test_build_suite_orchestrator_wires_from_config(tmp_path: Path) -> None:
    config_path = _chain(tmp_path)
    config = load_config(
        config_path,
        environ={},
        cli_overrides={"generation.agent_command": "my-agent --stdin"},
    )

    orchestrator = build_suite_orchestrator(config)

    assert isinstance(orchestrator, SuiteOrchestrator)
    assert orchestrator.scheduler is None
