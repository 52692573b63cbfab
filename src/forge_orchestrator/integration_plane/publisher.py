"""
forge-orchestrator — package publishing

File: src/forge_orchestrator/integration_plane/publisher.py
Last updated: 2026-10-19

Purpose
- Publish a built package to a registry behind a narrow ``Publisher`` protocol.

Functional requirements
- ``publish`` reports ``published=True`` plus the released version, or ``published=False``
  with a detail string. Tool failures are results, not exceptions.
- ``publish_with_retry`` re-invokes the publisher only while it reports ``published=False``,
  up to ``publishing.max_attempts``, then raises ``PublishFailed``.

Non-functional requirements
- Registry tokens are passed through the environment only and never logged.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import structlog

from forge_orchestrator.constants import PACKAGE_MANIFEST_NAME
from forge_orchestrator.domain.errors import PublishFailed
from forge_orchestrator.integration_plane.executor import CommandSpec
from forge_orchestrator.planning.discovery import ManifestError, load_manifest

if TYPE_CHECKING:
    from forge_orchestrator.domain.models import JSONValue
    from forge_orchestrator.integration_plane.executor import CommandExecutor


@dataclass(frozen=True, slots=True)
class PublishResult:
    published: bool
    version: str | None = None
    detail: str = ""

    def to_dict(self) -> dict[str, JSONValue]:
        return {"published": self.published, "version": self.version, "detail": self.detail}


@runtime_checkable
class Publisher(Protocol):
    """Publishes the package rooted at ``package_path`` to ``registry``."""

    async def publish(self, package_path: str, registry: str) -> PublishResult: ...


def manifest_version(package_path: str | Path) -> str:
    """Version declared in the package manifest; raises ``ManifestError`` if unreadable."""

    return load_manifest(Path(package_path) / PACKAGE_MANIFEST_NAME).version


class DryRunPublisher(Publisher):
    """Reports success with the manifest version and touches nothing."""

    def __init__(self) -> None:
        self.published: list[tuple[str, str]] = []

    async def publish(self, package_path: str, registry: str) -> PublishResult:
        try:
            version = manifest_version(package_path)
        except ManifestError as exc:
            return PublishResult(published=False, detail=str(exc))
        self.published.append((package_path, version))
        return PublishResult(
            published=True,
            version=version,
            detail=f"dry run: would publish {version} to {registry}",
        )


class CommandPublisher(Publisher):
    """
    Runs ``publishing.command`` in the package directory.

    The registry URL is exported as ``FORGE_REGISTRY``; when ``token_env`` names a set
    environment variable its value is forwarded as ``FORGE_REGISTRY_TOKEN``.
    """

    def __init__(
        self,
        command: str,
        *,
        executor: CommandExecutor,
        timeout_seconds: float | None = 600.0,
        token_env: str | None = None,
    ) -> None:
        if not command.strip():
            raise ValueError("publish command must not be empty")
        self._command = command
        self._executor = executor
        self._timeout_seconds = timeout_seconds
        self._token_env = token_env

    async def publish(self, package_path: str, registry: str) -> PublishResult:
        try:
            version = manifest_version(package_path)
        except ManifestError as exc:
            return PublishResult(published=False, detail=str(exc))

        env = {"FORGE_REGISTRY": registry}
        if self._token_env:
            token = os.environ.get(self._token_env)
            if token:
                env["FORGE_REGISTRY_TOKEN"] = token

        spec = CommandSpec.from_command_line(
            self._command,
            cwd=str(package_path),
            env=env,
            timeout_seconds=self._timeout_seconds,
        )
        result = await self._executor.run(spec)
        if result.is_success(spec):
            return PublishResult(published=True, version=version, detail=f"published {version}")

        detail = result.error or _last_line(result.output) or f"exit code {result.exit_code}"
        return PublishResult(published=False, version=None, detail=detail)


async def publish_with_retry(
    publisher: Publisher,
    *,
    package: str,
    package_path: str,
    registry: str,
    max_attempts: int,
    logger: Any | None = None,
) -> PublishResult:
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    log = logger if logger is not None else structlog.get_logger(__name__)

    last = PublishResult(published=False, detail="not attempted")
    for attempt in range(1, max_attempts + 1):
        last = await publisher.publish(package_path, registry)
        log.info(
            "publish_attempt",
            package=package,
            attempt=attempt,
            published=last.published,
            version=last.version,
        )
        if last.published:
            return last
    raise PublishFailed(package, max_attempts, last.detail)


def _last_line(text: str) -> str:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return lines[-1] if lines else ""


__all__ = [
    "CommandPublisher",
    "DryRunPublisher",
    "PublishResult",
    "Publisher",
    "manifest_version",
    "publish_with_retry",
]
