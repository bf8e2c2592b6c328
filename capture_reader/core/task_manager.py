"""Tracking of fire-and-forget asyncio tasks."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Coroutine
from typing import Any, Optional

from .logging_utils import LoggerLike, ensure_structured_logger


class AsyncTaskManager:
    """Owns background tasks so they are neither garbage collected nor leaked.

    A finished task is forgotten immediately; if it raised, the error is
    logged with its traceback. ``shutdown`` cancels whatever is left and
    refuses new work afterwards.
    """

    def __init__(self, name: Optional[str] = None, logger: LoggerLike = None) -> None:
        self._name = name or type(self).__name__
        self._logger = ensure_structured_logger(logger, fallback_name=self._name)
        self._active: dict[asyncio.Task, tuple[str, float]] = {}
        self._closed = False
        self._failures = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def failures(self) -> int:
        return self._failures

    def active_count(self) -> int:
        return len(self._active)

    def active_names(self) -> list[str]:
        return [name for name, _ in self._active.values()]

    def create(self, coro: Coroutine[Any, Any, Any], *, name: Optional[str] = None) -> asyncio.Task:
        """Schedule ``coro`` on the running loop and track it until it finishes."""
        if self._closed:
            coro.close()
            raise RuntimeError(f"{self._name} is shut down; not starting {name or coro!r}")

        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._active[task] = (task.get_name(), time.perf_counter())
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        name, started = self._active.pop(task, (task.get_name(), time.perf_counter()))
        elapsed_ms = (time.perf_counter() - started) * 1000
        if task.cancelled():
            self._logger.debug("%s task %s cancelled after %.1fms", self._name, name, elapsed_ms)
            return
        error = task.exception()
        if error is not None:
            self._failures += 1
            self._logger.error("%s task %s failed: %s", self._name, name, error, exc_info=error)
            return
        self._logger.debug("%s task %s finished in %.1fms", self._name, name, elapsed_ms)

    async def wait_idle(self, *, timeout: float = 5.0) -> bool:
        """Wait for the tracked tasks to finish on their own; ``False`` on timeout."""
        if not self._active:
            return True
        _, pending = await asyncio.wait(list(self._active), timeout=timeout)
        return not pending

    async def shutdown(self, *, timeout: float = 5.0) -> bool:
        """Cancel outstanding tasks and wait for them; ``False`` if some would not stop."""
        self._closed = True
        tasks = list(self._active)
        if not tasks:
            return True
        for task in tasks:
            task.cancel()
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            self._logger.warning(
                "%s shutdown timed out after %.1fs; still running: %s",
                self._name,
                timeout,
                ", ".join(task.get_name() for task in pending),
            )
        return not pending


__all__ = ["AsyncTaskManager"]
