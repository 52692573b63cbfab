"""
forge-orchestrator — durable task runner

File: src/forge_orchestrator/control_plane/task_runner.py
Last updated: 2026-10-19

Purpose
- Spawn named units of work, await their results, and deliver named signals to them.

Functional requirements
- ``spawn`` refuses a task id that is still running.
- Signals may be sent before the task is spawned; they wait in the task's inbox until
  drained.
- ``await_result`` re-raises the task's exception unchanged.

Non-functional requirements
- Single event loop; no locking beyond asyncio's cooperative scheduling.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

import structlog

CoroutineFactory = Callable[[], Awaitable[Any]]


@runtime_checkable
class TaskRunner(Protocol):
    def spawn(self, task_id: str, factory: CoroutineFactory) -> None: ...

    async def await_result(self, task_id: str) -> Any: ...

    def signal(self, task_id: str, name: str, payload: Any) -> None: ...

    def drain_signals(self, task_id: str, name: str) -> list[Any]: ...

    async def cancel_all(self) -> None: ...

class AsyncioTaskRunner(TaskRunner):
    """``TaskRunner`` over ``asyncio.Task`` with in-memory signal inboxes."""

    def __init__(self, *, logger: Any | None = None) -> None:
        self._tasks: dict[str, asyncio.Task[Any]] = {}
        self._inboxes: defaultdict[str, defaultdict[str, deque[Any]]] = defaultdict(
            lambda: defaultdict(deque)
        )
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def task_ids(self) -> tuple[str, ...]:
        return tuple(self._tasks)

    def is_running(self, task_id: str) -> bool:
        task = self._tasks.get(task_id)
        return task is not None and not task.done()

    def spawn(self, task_id: str, factory: CoroutineFactory) -> None:
        if self.is_running(task_id):
            raise ValueError(f"task {task_id!r} is already running")
        self._tasks[task_id] = asyncio.ensure_future(factory())
        self._logger.debug("task_runner_spawned", task_id=task_id)

    async def await_result(self, task_id: str) -> Any:
        task = self._tasks.get(task_id)
        if task is None:
            raise KeyError(f"unknown task {task_id!r}")
        return await task

    def signal(self, task_id: str, name: str, payload: Any) -> None:
        self._inboxes[task_id][name].append(payload)
        self._logger.info("task_runner_signal", task_id=task_id, signal=name)

    def drain_signals(self, task_id: str, name: str) -> list[Any]:
        inbox = self._inboxes.get(task_id)
        if inbox is None or not inbox.get(name):
            return []
        pending = inbox[name]
        drained = list(pending)
        pending.clear()
        return drained

    async def cancel_all(self) -> None:
        """Cancel every running task and wait for them to settle."""

        running = [task for task in self._tasks.values() if not task.done()]
        for task in running:
            task.cancel()
        if running:
            await asyncio.gather(*running, return_exceptions=True)


__all__ = ["AsyncioTaskRunner", "CoroutineFactory", "TaskRunner"]
