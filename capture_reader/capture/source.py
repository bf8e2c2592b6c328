"""Adapter exposing a push-based capture backend as an async event stream."""

from __future__ import annotations

import threading
from typing import Any, AsyncIterator, Mapping, Optional, Protocol, runtime_checkable

import numpy as np

from ..core.logging_utils import LoggerLike, ensure_structured_logger
from ..errors import CaptureAlreadyRunningError, CaptureBackendError
from .channel import BoundedChannel
from .frame import (
    ATTACHMENT_STATUS,
    AudioBuffer,
    AudioChunk,
    FrameEvent,
    FrameStatus,
    StreamError,
    StreamStopped,
    VideoFrame,
)

DEFAULT_QUEUE_DEPTH = 16


@runtime_checkable
class CaptureSink(Protocol):
    """Callbacks a backend invokes; safe to call from any thread."""

    def on_video(self, buffer: np.ndarray, attachments: Mapping[str, Any]) -> None:
        ...

    def on_audio(self, chunk: AudioChunk) -> None:
        ...

    def on_error(self, error: BaseException) -> None:
        ...


@runtime_checkable
class CaptureBackend(Protocol):
    """Platform capture session (screen, camera, ...)."""

    def start(self, config: Any, content_filter: Any, sink: CaptureSink) -> None:
        ...

    async def stop(self) -> None:
        ...

    async def update(self, config: Any, content_filter: Any) -> None:
        ...


def _frame_status(value: Any) -> Optional[FrameStatus]:
    if isinstance(value, FrameStatus):
        return value
    try:
        return FrameStatus(value)
    except ValueError:
        return None


class FrameEventStream:
    """Async sequence of frame events ending with exactly one terminal event."""

    def __init__(self, channel: BoundedChannel[FrameEvent]) -> None:
        self._channel = channel
        self._finish_requested = threading.Event()

    def push(self, event: FrameEvent) -> None:
        if not self._finish_requested.is_set():
            self._channel.put(event)

    def finish(self, error: Optional[BaseException] = None) -> None:
        """Terminate the stream; only the first call has any effect."""
        if self._finish_requested.is_set():
            return
        self._finish_requested.set()
        self._channel.close(error)

    @property
    def finished(self) -> bool:
        return self._finish_requested.is_set()

    @property
    def drops(self) -> int:
        return self._channel.drops

    async def __aiter__(self) -> AsyncIterator[FrameEvent]:
        try:
            async for event in self._channel:
                yield event
        except Exception as exc:
            yield StreamError(exc)
            return
        yield StreamStopped()


class _StreamSink:
    """Validates backend deliveries and forwards them into one stream."""

    def __init__(self, stream: FrameEventStream, logger) -> None:
        self._stream = stream
        self._logger = logger
        self._frame_number = 0
        self._incomplete = 0

    def on_video(self, buffer: np.ndarray, attachments: Mapping[str, Any]) -> None:
        status = _frame_status(attachments.get(ATTACHMENT_STATUS))
        if status is not FrameStatus.COMPLETE or buffer is None:
            self._incomplete += 1
            return
        self._frame_number += 1
        self._stream.push(VideoFrame(buffer=buffer, attachments=attachments, frame_number=self._frame_number))

    def on_audio(self, chunk: AudioChunk) -> None:
        self._stream.push(AudioBuffer(chunk))

    def on_error(self, error: BaseException) -> None:
        self._logger.error("Capture stream stopped with error: %s", error)
        self._stream.finish(error)


class FrameSource:
    """Owns one capture session and the event stream it feeds.

    Only one stream may be outstanding; ``stop()`` must be awaited before a
    new ``start()``, including after the stream ended with an error.
    """

    def __init__(
        self,
        backend: CaptureBackend,
        *,
        queue_depth: int = DEFAULT_QUEUE_DEPTH,
        logger: LoggerLike = None,
    ) -> None:
        self._backend = backend
        self._queue_depth = queue_depth
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)
        self._stream: Optional[FrameEventStream] = None
        self._session_active = False

    @property
    def is_running(self) -> bool:
        return self._stream is not None

    def start(self, config: Any, content_filter: Any) -> FrameEventStream:
        if self._stream is not None:
            raise CaptureAlreadyRunningError("a capture stream is already active on this source")

        channel: BoundedChannel[FrameEvent] = BoundedChannel(
            self._queue_depth,
            name="frame events",
            logger=self._logger,
        )
        stream = FrameEventStream(channel)
        self._stream = stream
        try:
            self._backend.start(config, content_filter, _StreamSink(stream, self._logger))
        except Exception as exc:
            self._logger.error("Failed to start capture: %s", exc)
            error = CaptureBackendError(f"failed to start capture: {exc}")
            error.__cause__ = exc
            stream.finish(error)
        else:
            self._session_active = True
            self._logger.info("Capture started")
        return stream

    async def stop(self) -> None:
        stream = self._stream
        if stream is None:
            return
        self._stream = None

        error: Optional[BaseException] = None
        if self._session_active:
            self._session_active = False
            try:
                await self._backend.stop()
            except Exception as exc:
                self._logger.error("Capture session reported an error while stopping: %s", exc)
                error = exc
        stream.finish(error)
        self._logger.info("Capture stopped")

    async def reconfigure(self, config: Any, content_filter: Any) -> None:
        if not self._session_active:
            self._logger.debug("Ignoring reconfigure; no active capture session")
            return
        try:
            await self._backend.update(config, content_filter)
        except Exception as exc:
            self._logger.error("Failed to update the capture session: %s", exc)
        else:
            self._logger.info("Capture session updated")


__all__ = [
    "CaptureBackend",
    "CaptureSink",
    "DEFAULT_QUEUE_DEPTH",
    "FrameEventStream",
    "FrameSource",
]
