"""Bounded single-writer/single-reader channel bridging threads to asyncio."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import AsyncIterator, Generic, Optional, TypeVar

from ..core.logging_utils import LoggerLike, ensure_structured_logger

T = TypeVar("T")

_DROP_WARN_EVERY = 25


class BoundedChannel(Generic[T]):
    """Drop-oldest buffer owned by one event loop.

    ``put`` and ``close`` may be called from any thread; they are marshalled
    onto the owning loop so the buffer has exactly one writer context. The
    reader drains buffered items after ``close`` and then either finishes or
    raises the close error.
    """

    def __init__(
        self,
        capacity: int = 8,
        *,
        name: str = "channel",
        loop: Optional[asyncio.AbstractEventLoop] = None,
        logger: LoggerLike = None,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._name = name
        self._loop = loop or asyncio.get_running_loop()
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)
        self._items: deque[T] = deque()
        self._ready = asyncio.Event()
        self._closed = False
        self._error: Optional[BaseException] = None
        self._drops = 0

    # ------------------------------------------------------------------
    # Writer side

    def put(self, item: T) -> None:
        self._call_on_loop(self._put, item)

    def close(self, error: Optional[BaseException] = None) -> None:
        self._call_on_loop(self._close, error)

    def _call_on_loop(self, func, *args) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            func(*args)
            return
        try:
            self._loop.call_soon_threadsafe(func, *args)
        except RuntimeError:
            # Owning loop already closed; nobody is left to read.
            self._logger.debug("%s: loop closed, dropping %s", self._name, func.__name__)

    def _put(self, item: T) -> None:
        if self._closed:
            return
        if len(self._items) >= self._capacity:
            self._items.popleft()
            self._drops += 1
            if self._drops % _DROP_WARN_EVERY == 1:
                self._logger.warning(
                    "%s full (capacity %d); dropped %d item(s) so far",
                    self._name,
                    self._capacity,
                    self._drops,
                )
        self._items.append(item)
        self._ready.set()

    def _close(self, error: Optional[BaseException]) -> None:
        if self._closed:
            return
        self._closed = True
        self._error = error
        self._ready.set()

    # ------------------------------------------------------------------
    # Reader side

    async def get(self) -> T:
        """Return the next item; raise StopAsyncIteration or the close error at the end."""
        while True:
            if self._items:
                return self._items.popleft()
            if self._closed:
                if self._error is not None:
                    raise self._error
                raise StopAsyncIteration
            self._ready.clear()
            await self._ready.wait()

    def __aiter__(self) -> AsyncIterator[T]:
        return self

    async def __anext__(self) -> T:
        return await self.get()

    # ------------------------------------------------------------------
    # Inspection

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def size(self) -> int:
        return len(self._items)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def drops(self) -> int:
        return self._drops


__all__ = ["BoundedChannel"]
