"""
forge-orchestrator — dependency-ordered build scheduler

File: src/forge_orchestrator/control_plane/scheduler.py
Last updated: 2026-10-19

Purpose
- Execute one ``PackageBuildTask`` per graph node, honouring both the dependency order
  and ``scheduler.max_concurrent_builds``.

Functional requirements
- A package starts only after every dependency reached PUBLISHED.
- Ready packages start in FIFO order, seeded in discovery order.
- A non-published completion marks every still-pending transitive dependent SKIPPED;
  only the first skipped dependent carries the root-cause text.
- A builder that raises marks its own task FAILED and never aborts siblings.

Non-functional requirements
- Single owner: only the coordinator in ``join`` touches in-degrees and the ready queue.
  Workers only post completion events.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from forge_orchestrator.constants import DEFAULT_MAX_CONCURRENT_BUILDS
from forge_orchestrator.control_plane.task_runner import AsyncioTaskRunner
from forge_orchestrator.domain.models import BuildTaskState, JSONValue, PackageBuildTask

if TYPE_CHECKING:
    from forge_orchestrator.control_plane.task_runner import TaskRunner
    from forge_orchestrator.domain.models import Package
    from forge_orchestrator.planning.dependency_graph import DependencyGraph

BuildFunction = Callable[[PackageBuildTask, "Package", "DependencyGraph"], Awaitable[object]]


@dataclass(frozen=True, slots=True)
class SchedulerEvent:
    """One entry of the scheduler timeline."""

    timestamp: float
    package: str
    event: str

    def to_dict(self) -> dict[str, JSONValue]:
        return {"timestamp": self.timestamp, "package": self.package, "event": self.event}


class BuildScheduler:
    """Single-owner coordinator fed by worker completion events."""

    def __init__(
        self,
        *,
        builder: BuildFunction,
        max_concurrent_builds: int = DEFAULT_MAX_CONCURRENT_BUILDS,
        runner: TaskRunner | None = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Any | None = None,
    ) -> None:
        if max_concurrent_builds < 1:
            raise ValueError("max_concurrent_builds must be >= 1")
        self._builder = builder
        self._max_concurrent = max_concurrent_builds
        self._runner = runner if runner is not None else AsyncioTaskRunner()
        self._clock = clock
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

        self._graph: DependencyGraph | None = None
        self._tasks: dict[str, PackageBuildTask] = {}
        self._timeline: list[SchedulerEvent] = []
        self._peak_active = 0
        self._joined = False

    @property
    def max_concurrent_builds(self) -> int:
        return self._max_concurrent

    @property
    def peak_active(self) -> int:
        return self._peak_active

    @property
    def timeline(self) -> tuple[SchedulerEvent, ...]:
        return tuple(self._timeline)

    @property
    def tasks(self) -> Mapping[str, PackageBuildTask]:
        return dict(self._tasks)

    def submit(self, graph: DependencyGraph) -> Mapping[str, PackageBuildTask]:
        if self._graph is not None:
            raise RuntimeError("scheduler already has a submitted graph")
        self._graph = graph
        self._tasks = {name: PackageBuildTask(package=name) for name in graph.discovery_order}
        return self.tasks

    async def join(self) -> Mapping[str, PackageBuildTask]:
        graph = self._graph
        if graph is None:
            raise RuntimeError("submit a graph before joining")
        if self._joined:
            raise RuntimeError("scheduler has already run")
        self._joined = True

        completions: asyncio.Queue[tuple[str, BaseException | None]] = asyncio.Queue()
        in_degree = {name: len(graph.dependencies_of(name)) for name in graph.discovery_order}
        ready: deque[str] = deque()
        for name in graph.discovery_order:
            if in_degree[name] == 0:
                self._tasks[name].transition(BuildTaskState.READY)
                ready.append(name)
        active: set[str] = set()

        try:
            await self._drain(graph, ready, active, in_degree, completions)
        except asyncio.CancelledError:
            self._logger.info("scheduler_cancelled", active=sorted(active))
            await self._runner.cancel_all()
            raise
        return self.tasks

    async def _drain(
        self,
        graph: DependencyGraph,
        ready: deque[str],
        active: set[str],
        in_degree: dict[str, int],
        completions: asyncio.Queue[tuple[str, BaseException | None]],
    ) -> None:
        while ready or active:
            while ready and len(active) < self._max_concurrent:
                name = ready.popleft()
                active.add(name)
                self._peak_active = max(self._peak_active, len(active))
                self._record(name, "started")
                self._runner.spawn(name, self._worker(name, graph, completions))

            name, error = await completions.get()
            active.discard(name)
            await self._runner.await_result(name)

            task = self._tasks[name]
            if error is not None and not task.state.is_terminal:
                task.fail(BuildTaskState.FAILED, error)
                self._logger.error(
                    "scheduler_builder_crashed",
                    package=name,
                    error_type=type(error).__name__,
                    error=str(error),
                )
            elif not task.state.is_terminal:
                task.fail(BuildTaskState.FAILED, "builder returned without a terminal state")
            self._record(name, "finished")

            if task.state is BuildTaskState.PUBLISHED:
                for dependent in graph.dependents_of(name):
                    in_degree[dependent] -= 1
                    pending = self._tasks[dependent].state is BuildTaskState.PENDING
                    if in_degree[dependent] == 0 and pending:
                        self._tasks[dependent].transition(BuildTaskState.READY)
                        ready.append(dependent)
            else:
                self._skip_dependents(graph, name)

    async def run(self, graph: DependencyGraph) -> Mapping[str, PackageBuildTask]:
        self.submit(graph)
        return await self.join()

    def _worker(
        self,
        name: str,
        graph: DependencyGraph,
        completions: asyncio.Queue[tuple[str, BaseException | None]],
    ) -> Callable[[], Awaitable[None]]:
        async def work() -> None:
            error: BaseException | None = None
            try:
                await self._builder(self._tasks[name], graph.package(name), graph)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                error = exc
            completions.put_nowait((name, error))

        return work

    def _skip_dependents(self, graph: DependencyGraph, root: str) -> None:
        root_task = self._tasks[root]
        cause = (
            f"dependency {root!r} ended {root_task.state.value}: "
            f"{root_task.last_error or 'no cause recorded'}"
        )
        first = True
        for dependent in graph.transitive_dependents(root):
            task = self._tasks[dependent]
            if task.state is not BuildTaskState.PENDING:
                continue
            task.transition(BuildTaskState.SKIPPED)
            task.skipped_because = root
            if first:
                task.last_error = cause
                first = False
            self._record(dependent, "skipped")

    def _record(self, package: str, event: str) -> None:
        self._timeline.append(
            SchedulerEvent(timestamp=self._clock(), package=package, event=event)
        )
        self._logger.info(f"scheduler_task_{event}", package=package)


__all__ = ["BuildFunction", "BuildScheduler", "SchedulerEvent"]
