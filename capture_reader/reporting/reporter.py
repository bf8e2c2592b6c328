"""Delivery of completed readings to the remote endpoint."""

from __future__ import annotations

import asyncio
from typing import Any, Optional, Protocol, runtime_checkable

import aiohttp

from ..core.logging_utils import LoggerLike, ensure_structured_logger
from ..core.task_manager import AsyncTaskManager

DEFAULT_ENDPOINT = "https://mysite-906r.onrender.com/wind_speed_hayamas/1.json"
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_MAX_IN_FLIGHT = 4


def reading_payload(display_string: str) -> dict[str, Any]:
    return {"wind_speed_hayama": {"speed_string": display_string}}


@runtime_checkable
class ReadingReporter(Protocol):
    """Fire-and-forget sink for display strings."""

    def report(self, display_string: str) -> None:
        ...

    async def aclose(self) -> None:
        ...


class _ChangeFilter:
    """Remembers the last reported value when only changes should go out."""

    def __init__(self, enabled: bool) -> None:
        self._enabled = enabled
        self._last: Optional[str] = None

    def should_send(self, display_string: str) -> bool:
        if self._enabled and display_string == self._last:
            return False
        self._last = display_string
        return True


class LoggingReadingReporter:
    """Writes readings to the log instead of the network."""

    def __init__(self, *, report_changes_only: bool = False, logger: LoggerLike = None) -> None:
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)
        self._changes = _ChangeFilter(report_changes_only)
        self.logged = 0
        self.last_logged: Optional[str] = None

    def report(self, display_string: str) -> None:
        if not self._changes.should_send(display_string):
            return
        self.logged += 1
        self.last_logged = display_string
        self._logger.info("Reading %s", display_string)

    async def aclose(self) -> None:
        return None


class HttpReadingReporter:
    """PATCHes each reading to ``endpoint`` as JSON.

    Requests run as background tasks on the calling loop. At most
    ``max_in_flight`` are outstanding; readings beyond that are dropped.
    A failed request is logged and forgotten; the next reading supersedes it.
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        max_in_flight: int = DEFAULT_MAX_IN_FLIGHT,
        report_changes_only: bool = False,
        session: Optional[aiohttp.ClientSession] = None,
        logger: LoggerLike = None,
    ) -> None:
        if max_in_flight < 1:
            raise ValueError("max_in_flight must be at least 1")
        self._endpoint = endpoint
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._max_in_flight = max_in_flight
        self._changes = _ChangeFilter(report_changes_only)
        self._session = session
        self._owns_session = session is None
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)
        self._tasks = AsyncTaskManager("ReadingReports", logger=self._logger)
        self._sent = 0
        self._failed = 0
        self._dropped = 0

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def sent(self) -> int:
        return self._sent

    @property
    def failed(self) -> int:
        return self._failed

    @property
    def dropped(self) -> int:
        return self._dropped

    def report(self, display_string: str) -> None:
        if self._tasks.closed:
            self._logger.debug("Reporter closed; reading %s not sent", display_string)
            return
        if not self._changes.should_send(display_string):
            return
        if self._tasks.active_count() >= self._max_in_flight:
            self._dropped += 1
            self._logger.debug(
                "%d report(s) in flight; dropping reading %s",
                self._max_in_flight,
                display_string,
            )
            return
        self._tasks.create(self._send(display_string), name=f"report:{display_string}")

    async def wait_idle(self, timeout: float = 5.0) -> bool:
        return await self._tasks.wait_idle(timeout=timeout)

    async def _send(self, display_string: str) -> None:
        session = self._ensure_session()
        try:
            async with session.patch(
                self._endpoint,
                json=reading_payload(display_string),
                timeout=self._timeout,
            ) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    self._failed += 1
                    self._logger.warning(
                        "Report of %s rejected: HTTP %d %s",
                        display_string,
                        resp.status,
                        body[:200],
                    )
                    return
        except asyncio.TimeoutError:
            self._failed += 1
            self._logger.warning("Report of %s timed out", display_string)
            return
        except aiohttp.ClientError as exc:
            self._failed += 1
            self._logger.warning("Report of %s failed: %s", display_string, exc)
            return

        self._sent += 1
        self._logger.debug("Reported %s", display_string)

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def aclose(self, timeout: float = 5.0) -> None:
        """Let outstanding requests finish, then release the session."""
        await self._tasks.wait_idle(timeout=timeout)
        await self._tasks.shutdown(timeout=timeout)
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


__all__ = [
    "DEFAULT_ENDPOINT",
    "HttpReadingReporter",
    "LoggingReadingReporter",
    "ReadingReporter",
    "reading_payload",
]
