"""
forge-orchestrator — quality probe interface

File: src/forge_orchestrator/verification_plane/probes/base.py
Last updated: 2026-10-19

Purpose
- Define the probe contract used by the quality gate: one probe per check, each returning
  a pass boolean plus structured details.
- Provide the shared command-backed probe and the deterministic probe registry.

Functional requirements
- Probes raise only for environment faults (tool missing, unreadable package). A tool that
  runs and reports problems, or times out, produces a failing outcome.
- Details are JSON-safe and deterministic so remediation feedback is stable.
"""

from __future__ import annotations

import inspect
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from types import MappingProxyType
from typing import Final, Protocol, TypeVar, runtime_checkable

from forge_orchestrator.constants import MIN_TEST_COVERAGE
from forge_orchestrator.domain.errors import CheckExecutionFault
from forge_orchestrator.domain.models import CheckName, JSONValue, Package
from forge_orchestrator.integration_plane.executor import (
    CommandExecutor,
    CommandResult,
    CommandSpec,
)

ProbeFactory = Callable[[], "QualityProbe"]

_PATH_LINE_COL_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?P<path>[^:\s][^:]*?):(?P<line>\d+):(?P<column>\d+):\s*(?P<message>.+)$"
)
_PATH_LINE_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?P<path>[^:\s][^:]*?):(?P<line>\d+):\s*(?P<message>.+)$"
)
_MAX_FINDINGS: Final[int] = 50
_EXCERPT_CHARS: Final[int] = 500

_SKIPPED_SOURCE_DIRS: Final[frozenset[str]] = frozenset(
    {".git", ".venv", "venv", "node_modules", "__pycache__", "dist", "build", ".tox"}
)

DEFAULT_COVERAGE_TARGETS: Final[Mapping[str, int]] = MappingProxyType(
    {
        "core": 90,
        "validator": 90,
        "service": 85,
        "utility": 85,
        "suite": 80,
        "ui": 80,
    }
)


@dataclass(frozen=True, slots=True)
class QualitySettings:
    """Probe configuration resolved from the ``[quality]`` config section."""

    min_test_coverage: int = MIN_TEST_COVERAGE
    coverage_targets: Mapping[str, int] = field(
        default_factory=lambda: dict(DEFAULT_COVERAGE_TARGETS)
    )
    probe_timeout_seconds: float = 300.0
    typecheck_command: str = "mypy ."
    lint_command: str = "ruff check ."
    test_command: str = "pytest -q --cov=. --cov-report=term"
    security_command: str = "pip-audit"
    license_marker: str = "SPDX-License-Identifier"
    license_header_lines: int = 5
    source_extensions: tuple[str, ...] = (".py",)
    required_files: tuple[str, ...] = ("forge.yaml", "README.md")
    readme_sections: tuple[str, ...] = ("Installation", "Usage")
    integrations: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: {"core": ("logging",), "service": ("logging",)}
    )
    integration_markers: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: {"logging": ("import logging", "structlog")}
    )

    def __post_init__(self) -> None:
        if not 0 <= self.min_test_coverage <= 100:
            raise ValueError("QualitySettings.min_test_coverage: must be within 0..100")
        if self.probe_timeout_seconds <= 0:
            raise ValueError("QualitySettings.probe_timeout_seconds: must be > 0")
        object.__setattr__(self, "coverage_targets", MappingProxyType(dict(self.coverage_targets)))
        object.__setattr__(
            self,
            "integrations",
            MappingProxyType({key: tuple(value) for key, value in self.integrations.items()}),
        )
        object.__setattr__(
            self,
            "integration_markers",
            MappingProxyType(
                {key: tuple(value) for key, value in self.integration_markers.items()}
            ),
        )

    @classmethod
    def from_mapping(cls, section: Mapping[str, object]) -> QualitySettings:
        """Build settings from a validated ``quality`` config section; unknown keys are ignored."""

        kwargs: dict[str, object] = {}
        for name in cls.__dataclass_fields__:
            if name in section:
                value = section[name]
                if isinstance(value, list):
                    value = tuple(value)
                kwargs[name] = value
        return cls(**kwargs)  # type: ignore[arg-type]

    def coverage_target(self, category: str) -> int:
        return int(self.coverage_targets.get(str(category), self.min_test_coverage))


@dataclass(frozen=True, slots=True)
class ProbeContext:
    """Everything a probe may use besides the package itself."""

    settings: QualitySettings
    executor: CommandExecutor

    def package_root(self, package: Package) -> Path:
        if not package.path:
            raise CheckExecutionFault("context", f"package {package.name!r} has no path")
        root = Path(package.path)
        if not root.is_dir():
            raise CheckExecutionFault("context", f"package directory missing: {root}")
        return root


@dataclass(frozen=True, slots=True)
class ProbeOutcome:
    passed: bool
    details: Mapping[str, JSONValue] = field(default_factory=dict)


@runtime_checkable
class QualityProbe(Protocol):
    """One quality check over a package directory."""

    check: CheckName

    async def run(self, package: Package, context: ProbeContext) -> ProbeOutcome: ...


@dataclass(frozen=True, slots=True)
class ProbeRegistration:
    check: CheckName
    factory: ProbeFactory


class ProbeRegistry:
    """Deterministic ``check -> probe factory`` registry."""

    def __init__(self) -> None:
        self._registrations: dict[CheckName, ProbeRegistration] = {}

    def register(self, check: CheckName | str, factory: ProbeFactory) -> None:
        name = CheckName(check)
        if not callable(factory):
            raise ValueError("factory: must be callable")
        if name in self._registrations:
            raise ValueError(f"check: {name.value!r} already has a registered probe")
        self._registrations[name] = ProbeRegistration(check=name, factory=factory)

    def contains(self, check: CheckName | str) -> bool:
        return CheckName(check) in self._registrations

    def create(self, check: CheckName | str) -> QualityProbe:
        name = CheckName(check)
        registration = self._registrations.get(name)
        if registration is None:
            known = ", ".join(item.value for item in self.registered_checks())
            raise ValueError(f"check: no probe registered for {name.value!r}; known: [{known}]")
        probe = registration.factory()
        if not isinstance(probe, QualityProbe):
            raise ValueError(f"factory for {name.value!r} did not return a QualityProbe")
        return probe

    def registered_checks(self) -> tuple[CheckName, ...]:
        return tuple(check for check in CheckName if check in self._registrations)

    def create_all(self) -> tuple[QualityProbe, ...]:
        """One probe per check in canonical check order."""
        return tuple(self.create(check) for check in CheckName)


ProbeType = TypeVar("ProbeType", bound=QualityProbe)

DEFAULT_PROBE_REGISTRY = ProbeRegistry()


def register_builtin_probe(
    check: CheckName | str,
    *,
    registry: ProbeRegistry | None = None,
) -> Callable[[type[ProbeType]], type[ProbeType]]:
    """Decorator that registers a zero-arg probe class for ``check``."""

    target = registry if registry is not None else DEFAULT_PROBE_REGISTRY
    name = CheckName(check)

    def decorator(probe_cls: type[ProbeType]) -> type[ProbeType]:
        _validate_zero_arg_constructor(probe_cls, check=name)
        target.register(name, lambda: probe_cls())
        return probe_cls

    return decorator


class CommandProbe:
    """Shared probe that runs one configured tool command inside the package directory."""

    check: CheckName
    command_setting: str = ""

    def command_line(self, settings: QualitySettings) -> str:
        return str(getattr(settings, self.command_setting, "") or "")

    def evaluate(
        self,
        *,
        package: Package,
        result: CommandResult,
        spec: CommandSpec,
        context: ProbeContext,
    ) -> ProbeOutcome:
        passed = result.is_success(spec)
        details: dict[str, JSONValue] = {"command": spec.display(), "exit_code": result.exit_code}
        if not passed:
            details["findings"] = parse_findings(result.output)
        return ProbeOutcome(passed=passed, details=details)

    async def run(self, package: Package, context: ProbeContext) -> ProbeOutcome:
        root = context.package_root(package)
        command_line = self.command_line(context.settings).strip()
        if not command_line:
            raise CheckExecutionFault(
                self.check, f"no command configured ({self.command_setting})"
            )

        spec = CommandSpec.from_command_line(
            command_line,
            cwd=root.as_posix(),
            timeout_seconds=context.settings.probe_timeout_seconds,
        )
        result = await context.executor.run(spec)
        if result.error is not None and not result.timed_out:
            raise CheckExecutionFault(self.check, result.error)
        if result.timed_out:
            return ProbeOutcome(
                passed=False,
                details={
                    "command": spec.display(),
                    "timed_out": True,
                    "findings": [{"message": result.error or "command timed out"}],
                },
            )
        return self.evaluate(package=package, result=result, spec=spec, context=context)


def parse_findings(output: str) -> list[JSONValue]:
    """Extract ``path:line[:col]: message`` locations from tool output."""

    lines = [line.strip() for line in output.splitlines() if line.strip()]
    findings: dict[tuple[str, int, int, str], dict[str, JSONValue]] = {}
    for line in lines:
        match = _PATH_LINE_COL_RE.match(line) or _PATH_LINE_RE.match(line)
        if match is not None:
            groups = match.groupdict()
            column = int(groups["column"]) if groups.get("column") else 0
            path = _normalize_relative_path(groups["path"])
            key = (path or "", int(groups["line"]), column, groups["message"].strip())
            findings[key] = {
                "path": path,
                "line": key[1],
                "column": column or None,
                "message": key[3],
            }
            continue
        if line.startswith(("FAILED", "FAIL", "ERROR", "E   ")):
            findings[("", 0, 0, line)] = {
                "path": None,
                "line": None,
                "column": None,
                "message": line,
            }

    if not findings:
        first = lines[0] if lines else "command failed with non-zero exit code"
        return [{"path": None, "line": None, "column": None, "message": first[:_EXCERPT_CHARS]}]
    return [findings[key] for key in sorted(findings)[:_MAX_FINDINGS]]


def iter_source_files(root: Path, extensions: Sequence[str]) -> list[Path]:
    """Source files under ``root`` with one of ``extensions``, sorted, skipping tool dirs."""

    suffixes = {item.lower() for item in extensions}
    found: list[Path] = []
    for path in sorted(root.rglob("*")):
        relative_parts = path.relative_to(root).parts
        if any(part in _SKIPPED_SOURCE_DIRS or part.startswith(".") for part in relative_parts):
            continue
        if path.is_file() and path.suffix.lower() in suffixes:
            found.append(path)
    return found


def _normalize_relative_path(value: str) -> str | None:
    candidate = value.replace("\\", "/").strip()
    if not candidate:
        return None
    pure = PurePosixPath(candidate)
    cleaned = [part for part in pure.parts if part not in {"", "."}]
    return "/".join(cleaned) if cleaned else None


def _validate_zero_arg_constructor(probe_cls: type[object], *, check: CheckName) -> None:
    signature = inspect.signature(probe_cls)
    for parameter in signature.parameters.values():
        if (
            parameter.kind
            in {
                inspect.Parameter.POSITIONAL_ONLY,
                inspect.Parameter.POSITIONAL_OR_KEYWORD,
                inspect.Parameter.KEYWORD_ONLY,
            }
            and parameter.default is inspect.Signature.empty
        ):
            raise ValueError(
                f"{check.value!r} probe decorator requires a zero-arg constructor; "
                f"parameter '{parameter.name}' is required"
            )


__all__ = [
    "DEFAULT_COVERAGE_TARGETS",
    "DEFAULT_PROBE_REGISTRY",
    "CommandProbe",
    "ProbeContext",
    "ProbeFactory",
    "ProbeOutcome",
    "ProbeRegistration",
    "ProbeRegistry",
    "QualityProbe",
    "QualitySettings",
    "iter_source_files",
    "parse_findings",
    "register_builtin_probe",
]
