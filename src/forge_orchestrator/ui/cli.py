"""Command-line interface router for forge-orchestrator."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from forge_orchestrator.config import (
    ConfigLoadError,
    ConfigValidationError,
    effective_config,
    load_config,
)
from forge_orchestrator.control_plane import (
    AsyncioTaskRunner,
    PackageBuilder,
    RemediationController,
    SuiteOrchestrator,
    SuiteRunResult,
    new_suite_id,
)
from forge_orchestrator.domain.models import BuildTaskState, CheckName
from forge_orchestrator.integration_plane.executor import LocalSubprocessExecutor
from forge_orchestrator.integration_plane.publisher import (
    CommandPublisher,
    DryRunPublisher,
    Publisher,
)
from forge_orchestrator.observability import setup_logging, shutdown_logging
from forge_orchestrator.planning import PlanResolver, WorkspaceIndex
from forge_orchestrator.reporting import (
    ReportError,
    ReportWriter,
    load_package_reports,
    load_suite_summary,
)
from forge_orchestrator.synthesis_plane import CodeGenerationAgent, SubprocessAgent
from forge_orchestrator.synthesis_plane.generation_loop import GenerationLoop, LoopSettings
from forge_orchestrator.ui.render import CLIRenderer, create_renderer
from forge_orchestrator.verification_plane import QualityGate
from forge_orchestrator.verification_plane.probes import QualitySettings
from forge_orchestrator.verification_plane.scoring import score_from_pass_map


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="forge",
        description=(
            "forge-orchestrator — autonomous package build orchestration.\n\n"
            "Common workflows:\n"
            "  forge resolve @acme/app       Show the build layers of a package\n"
            "  forge build @acme/app         Build, score and publish a package suite\n"
            "  forge score --fail typecheck  Compute a compliance score\n"
            "  forge report reports/<id>     Summarize persisted reports\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to forge TOML config (default: ./forge.toml if present).",
    )
    common.add_argument("--profile", default=None, help="Optional config profile overlay name.")
    common.add_argument("--json", action="store_true", default=False, help="Emit JSON output.")
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    resolve_parser = subparsers.add_parser(
        "resolve",
        parents=[common],
        help="Print the dependency layers of a package or the whole workspace.",
    )
    resolve_parser.add_argument(
        "package", nargs="?", default=None, help="Root package name (default: every package)."
    )
    resolve_parser.set_defaults(handler=_cmd_resolve)

    build_parser_ = subparsers.add_parser(
        "build",
        parents=[common],
        help="Run the suite orchestrator for a package and its dependencies.",
    )
    build_parser_.add_argument("package", help="Root package name.")
    build_parser_.add_argument(
        "--max-concurrent",
        type=int,
        default=None,
        help="Override scheduler.max_concurrent_builds.",
    )
    build_parser_.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Publish through the dry-run publisher.",
    )
    build_parser_.add_argument("--suite-id", default=None, help="Explicit suite identifier.")
    build_parser_.set_defaults(handler=_cmd_build)

    score_parser = subparsers.add_parser(
        "score",
        parents=[common],
        help="Compute the compliance score for a set of check outcomes.",
    )
    checks = [check.value for check in CheckName]
    score_parser.add_argument(
        "--pass",
        dest="passed",
        nargs="*",
        choices=checks,
        default=[],
        help="Checks that passed (every check not named in --fail passes by default).",
    )
    score_parser.add_argument(
        "--fail",
        dest="failed",
        nargs="*",
        choices=checks,
        default=[],
        help="Checks that failed.",
    )
    score_parser.set_defaults(handler=_cmd_score)

    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Print the effective (redacted) configuration.",
    )
    config_parser.set_defaults(handler=_cmd_config)

    report_parser = subparsers.add_parser(
        "report",
        parents=[common],
        help="Summarize persisted suite reports.",
    )
    report_parser.add_argument("directory", help="Suite report directory.")
    report_parser.set_defaults(handler=_cmd_report)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_resolve(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    index = WorkspaceIndex.scan(config["paths"]["workspace_root"])
    graph = index.resolve(args.package) if args.package else index.graph()

    if args.json:
        _emit_json({"command": "resolve", "graph": graph.to_dict()})
        return 0

    renderer = _get_renderer(args)
    renderer.heading(f"{args.package or index.root}: {len(graph)} package(s)")
    renderer.table(
        ["Layer", "Packages"],
        [(str(layer), ", ".join(names)) for layer, names in enumerate(graph.layers())],
    )
    return 0


def _cmd_build(args: argparse.Namespace) -> int:
    overrides: dict[str, object] = {
        "scheduler.max_concurrent_builds": args.max_concurrent,
        "publishing.dry_run": args.dry_run,
    }
    config = _load_effective_config(args, cli_overrides=overrides)
    if not config["generation"]["agent_command"]:
        raise CLIError("generation.agent_command is not configured", exit_code=2)

    suite_id = args.suite_id or new_suite_id(args.package)
    setup_logging(config["observability"], run_id=suite_id)
    try:
        orchestrator = build_suite_orchestrator(config)
        result = asyncio.run(orchestrator.run(args.package, suite_id=suite_id))
    finally:
        shutdown_logging()

    if args.json:
        _emit_json({"command": "build", "result": result.to_dict()})
    else:
        _render_suite_result(_get_renderer(args), result)
    return _suite_exit_code(result)


def _cmd_score(args: argparse.Namespace) -> int:
    failed = set(args.failed)
    overlap = failed & set(args.passed)
    if overlap:
        raise CLIError(f"checks named as both passed and failed: {sorted(overlap)}", exit_code=2)

    score = score_from_pass_map({check: check.value not in failed for check in CheckName})
    if args.json:
        _emit_json({"command": "score", "score": score.to_dict()})
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Score", score.score)
    renderer.kv("Level", score.level.value)
    for check in CheckName:
        if check in score.passed_checks:
            renderer.ok(check.value)
        else:
            renderer.fail(check.value)
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    redacted = effective_config(config)
    if args.json:
        _emit_json({"command": "config", "active_profile": args.profile, "config": redacted})
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Active profile", args.profile or "(default)")
    renderer.text(json.dumps(redacted, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


def _cmd_report(args: argparse.Namespace) -> int:
    directory = Path(args.directory).expanduser()
    try:
        reports = load_package_reports(directory)
        summary = load_suite_summary(directory)
    except ReportError as exc:
        raise CLIError(str(exc), exit_code=2) from exc

    if args.json:
        _emit_json(
            {
                "command": "report",
                "summary": summary,
                "packages": [report.to_dict() for report in reports],
            }
        )
        return 0

    renderer = _get_renderer(args)
    if summary is not None:
        renderer.kv("Suite", summary.get("suite_id"))
        renderer.kv("Phase", summary.get("phase"))
        if summary.get("failure"):
            renderer.kv("Failure", summary.get("failure"))
    renderer.table(
        ["Package", "State", "Score", "Level", "Remediations", "Seconds", "Cause"],
        [
            (
                report.name,
                report.state.value,
                report.score,
                report.level,
                report.remediation_attempts,
                f"{report.duration_seconds:.1f}",
                report.cause or "",
            )
            for report in reports
        ],
    )
    return 0


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


def build_suite_orchestrator(
    config: Mapping[str, Any],
    *,
    agent: CodeGenerationAgent | None = None,
    executor: LocalSubprocessExecutor | None = None,
    publisher: Publisher | None = None,
) -> SuiteOrchestrator:
    """Wire the production collaborators from an effective config."""

    paths = config["paths"]
    generation = config["generation"]
    quality = config["quality"]
    publishing = config["publishing"]
    remediation = config["remediation"]

    executor = executor or LocalSubprocessExecutor(
        default_timeout_seconds=float(quality["probe_timeout_seconds"])
    )
    if agent is None:
        agent = SubprocessAgent(
            generation["agent_command"],
            executor=executor,
            timeout_seconds=float(generation["agent_timeout_seconds"]),
        )
    if publisher is None:
        if publishing["dry_run"]:
            publisher = DryRunPublisher()
        else:
            publisher = CommandPublisher(
                publishing["command"],
                executor=executor,
                token_env=publishing["token_env"] or None,
            )

    index = WorkspaceIndex.scan(paths["workspace_root"])
    plans = PlanResolver(paths["plans_dir"])
    runner = AsyncioTaskRunner()
    quality_settings = QualitySettings.from_mapping(quality)
    gate = QualityGate(
        executor=executor,
        settings=quality_settings,
        passing_score=int(remediation["target_score"]),
    )
    loop = GenerationLoop(
        agent=agent,
        executor=executor,
        quality_settings=quality_settings,
        settings=LoopSettings.from_mapping(generation),
        publisher=publisher if publishing["publish_from_loop"] else None,
        registry=publishing["registry"],
    )
    builder = PackageBuilder(
        plans=plans,
        loop=loop,
        gate=gate,
        remediation=RemediationController(
            gate=gate, max_attempts=int(remediation["max_attempts"])
        ),
        publisher=publisher,
        registry=publishing["registry"],
        publish_max_attempts=int(publishing["max_attempts"]),
        runner=runner,
    )
    return SuiteOrchestrator(
        resolve_graph=index.resolve,
        plans=plans,
        builder=builder.build,
        max_concurrent_builds=int(config["scheduler"]["max_concurrent_builds"]),
        runner=runner,
        reports=ReportWriter(paths["reports_dir"]),
    )


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=bool(getattr(args, "no_color", False)))


def _render_suite_result(renderer: CLIRenderer, result: SuiteRunResult) -> None:
    renderer.kv("Suite", result.suite_id)
    renderer.kv("Phase", result.phase.value)
    if result.failed_phase is not None:
        renderer.kv("Failed phase", result.failed_phase.value)
        renderer.kv("Failure", result.failure or "")
    renderer.table(
        ["Package", "State", "Score", "Remediations", "Turns", "Version", "Cause"],
        [
            (
                name,
                task.state.value,
                task.score.score if task.score is not None else None,
                task.remediation_attempts,
                task.turns,
                task.published_version,
                task.last_error or "",
            )
            for name, task in sorted(result.tasks.items())
        ],
    )
    if result.awaiting_intervention:
        renderer.warning(f"awaiting intervention: {', '.join(result.awaiting_intervention)}")
    if result.reports_path is not None:
        renderer.kv("Reports", result.reports_path.as_posix())


def _suite_exit_code(result: SuiteRunResult) -> int:
    if result.succeeded:
        return 0
    states = {task.state for task in result.tasks.values()}
    if result.awaiting_intervention and BuildTaskState.FAILED not in states:
        return 3
    return 1


def _load_effective_config(
    args: argparse.Namespace,
    *,
    cli_overrides: Mapping[str, object] | None = None,
) -> dict[str, Any]:
    try:
        return load_config(
            args.config_path,
            profile=args.profile,
            cli_overrides=cli_overrides,
        )
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


__all__ = ["CLIError", "build_parser", "build_suite_orchestrator", "run_cli"]
