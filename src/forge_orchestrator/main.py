"""Executable CLI entrypoint for ``forge_orchestrator``."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

from forge_orchestrator.config import ConfigLoadError, ConfigValidationError
from forge_orchestrator.domain.errors import (
    CycleError,
    HumanInterventionRequested,
    PlanNotFoundError,
    PlanValidationError,
    UnresolvedDependencyError,
)
from forge_orchestrator.planning.discovery import ManifestError
from forge_orchestrator.reporting import ReportError

if TYPE_CHECKING:
    from collections.abc import Sequence


class ExitCode(IntEnum):
    """Deterministic process exit-code contract."""

    SUCCESS = 0
    BUILD_FAILED = 1
    CONFIG_ERROR = 2
    AWAITING_INTERVENTION = 3
    INTERNAL_ERROR = 4


_INPUT_ERRORS: tuple[type[BaseException], ...] = (
    ConfigLoadError,
    ConfigValidationError,
    ManifestError,
    CycleError,
    UnresolvedDependencyError,
    PlanNotFoundError,
    PlanValidationError,
    ReportError,
    FileNotFoundError,
    NotADirectoryError,
    PermissionError,
)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Entrypoint used by ``python -m forge_orchestrator`` and the ``forge`` script."""

    try:
        from forge_orchestrator.ui.cli import run_cli

        return _normalize_exit_code(run_cli(argv))
    except SystemExit as exc:
        return _normalize_exit_code(exc.code)
    except KeyboardInterrupt:
        _write_stderr("interrupted")
        return int(ExitCode.BUILD_FAILED)
    except Exception as exc:  # noqa: BLE001 - CLI boundary normalization.
        exit_code = _route_exception(exc)
        _emit_failure(exc, exit_code)
        return int(exit_code)


def _normalize_exit_code(raw_code: object) -> int:
    if isinstance(raw_code, int) and raw_code in set(ExitCode):
        return raw_code
    if raw_code is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw_code, str) and raw_code.strip():
        _write_stderr(raw_code.strip())
    return int(ExitCode.INTERNAL_ERROR)


def _route_exception(exc: BaseException) -> ExitCode:
    for item in _iter_exception_chain(exc):
        if isinstance(item, HumanInterventionRequested):
            return ExitCode.AWAITING_INTERVENTION
        if isinstance(item, _INPUT_ERRORS):
            return ExitCode.CONFIG_ERROR
    return ExitCode.INTERNAL_ERROR


def _iter_exception_chain(exc: BaseException) -> list[BaseException]:
    seen: set[int] = set()
    items: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None:
        marker = id(current)
        if marker in seen:
            break
        seen.add(marker)
        items.append(current)
        if current.__cause__ is not None:
            current = current.__cause__
            continue
        if current.__context__ is not None and not current.__suppress_context__:
            current = current.__context__
            continue
        break
    return items


def _emit_failure(exc: BaseException, exit_code: ExitCode) -> None:
    if exit_code is ExitCode.INTERNAL_ERROR:
        traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
        return
    _write_stderr(f"error: {str(exc).strip() or exc.__class__.__name__}")


def _write_stderr(message: str) -> None:
    sys.stderr.write(message.rstrip("\n") + "\n")


__all__ = ["ExitCode", "cli_entrypoint"]
