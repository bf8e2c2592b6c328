"""Shared thread-driven video backend."""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Any, Optional

import cv2
import numpy as np

from ...core.logging_utils import LoggerLike, ensure_structured_logger
from ...errors import CaptureBackendError
from ..frame import (
    ATTACHMENT_CONTENT_RECT,
    ATTACHMENT_CONTENT_SCALE,
    ATTACHMENT_SCALE_FACTOR,
    ATTACHMENT_STATUS,
    FrameStatus,
    Rect,
)
from ..source import CaptureSink
from .audio import SoundDeviceAudioInput
from .config import CaptureConfiguration, ContentFilter

_JOIN_TIMEOUT = 2.0


class ThreadedVideoBackend:
    """Grabs images on a worker thread at the configured rate.

    Subclasses implement ``_open``, ``_grab`` and ``_close``. ``_grab`` runs
    on the capture thread and returns a BGR image, or ``None`` when nothing
    new is available yet.
    """

    name = "video"

    def __init__(
        self,
        *,
        audio_input: Optional[SoundDeviceAudioInput] = None,
        logger: LoggerLike = None,
    ) -> None:
        self._logger = ensure_structured_logger(logger, fallback_name=__name__).getChild(self.name)
        self._audio = audio_input
        self._config = CaptureConfiguration()
        self._filter = ContentFilter()
        self._settings_lock = threading.Lock()
        self._sink: Optional[CaptureSink] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._frames_delivered = 0

    # ------------------------------------------------------------------
    # Backend protocol

    def start(self, config: CaptureConfiguration, content_filter: ContentFilter, sink: CaptureSink) -> None:
        if self._thread is not None:
            raise CaptureBackendError(f"{self.name} capture is already running")

        self._config = config
        self._filter = content_filter
        self._open(config, content_filter)
        if self._audio is not None and config.audio_device is not None:
            try:
                self._audio.start(config, sink)
            except Exception:
                self._close()
                raise

        self._sink = sink
        self._stop_event.clear()
        self._frames_delivered = 0
        self._thread = threading.Thread(
            target=self._capture_loop,
            name=f"{self.name}-capture",
            daemon=True,
        )
        self._thread.start()
        self._logger.debug("Capture thread started")

    async def stop(self) -> None:
        thread = self._thread
        if thread is None:
            return
        self._stop_event.set()
        await asyncio.to_thread(thread.join, _JOIN_TIMEOUT)
        self._thread = None
        self._sink = None

        errors: list[str] = []
        if self._audio is not None:
            try:
                self._audio.stop()
            except Exception as exc:
                errors.append(f"audio: {exc}")
        try:
            self._close()
        except Exception as exc:
            errors.append(f"video: {exc}")
        if thread.is_alive():
            errors.append("capture thread did not exit")

        self._logger.debug("Capture thread stopped after %d frames", self._frames_delivered)
        if errors:
            raise CaptureBackendError("; ".join(errors))

    async def update(self, config: CaptureConfiguration, content_filter: ContentFilter) -> None:
        with self._settings_lock:
            self._apply_update(config, content_filter)
            self._config = config
            self._filter = content_filter
        self._logger.info("Configuration updated (fps=%.1f, region=%s)", config.fps, content_filter.region)

    # ------------------------------------------------------------------
    # Subclass hooks

    def _open(self, config: CaptureConfiguration, content_filter: ContentFilter) -> None:
        raise NotImplementedError

    def _grab(self, content_filter: ContentFilter) -> Optional[np.ndarray]:
        raise NotImplementedError

    def _close(self) -> None:
        raise NotImplementedError

    def _apply_update(self, config: CaptureConfiguration, content_filter: ContentFilter) -> None:
        """Validate and apply new settings; raise to keep the old ones."""

    def _on_thread_exit(self) -> None:
        """Release resources owned by the capture thread."""

    # ------------------------------------------------------------------
    # Capture thread

    def _capture_loop(self) -> None:
        sink = self._sink
        if sink is None:
            return
        try:
            self._run_loop(sink)
        finally:
            self._on_thread_exit()

    def _run_loop(self, sink: CaptureSink) -> None:
        previous: Optional[np.ndarray] = None
        while not self._stop_event.is_set():
            started = time.monotonic()
            with self._settings_lock:
                interval = self._config.frame_interval
                output_size = self._config.output_size
                content_filter = self._filter
            try:
                image = self._grab(content_filter)
            except Exception as exc:
                sink.on_error(CaptureBackendError(f"{self.name} capture failed: {exc}"))
                return

            if image is not None:
                image, attachments = self._describe(image, output_size, previous)
                previous = image
                sink.on_video(image, attachments)
                self._frames_delivered += 1

            remaining = interval - (time.monotonic() - started)
            self._stop_event.wait(remaining if remaining > 0 else 0.001)

    def _describe(
        self,
        image: np.ndarray,
        output_size: Optional[tuple[int, int]],
        previous: Optional[np.ndarray],
    ) -> tuple[np.ndarray, dict[str, Any]]:
        source_width = image.shape[1]
        content_scale = 1.0
        if output_size is not None and (image.shape[1], image.shape[0]) != output_size:
            image = cv2.resize(image, output_size, interpolation=cv2.INTER_AREA)
            content_scale = output_size[0] / source_width

        unchanged = previous is not None and previous.shape == image.shape and np.array_equal(previous, image)
        attachments = {
            ATTACHMENT_STATUS: FrameStatus.IDLE if unchanged else FrameStatus.COMPLETE,
            ATTACHMENT_CONTENT_RECT: Rect(0, 0, image.shape[1], image.shape[0]),
            ATTACHMENT_CONTENT_SCALE: content_scale,
            ATTACHMENT_SCALE_FACTOR: 1.0,
        }
        return image, attachments


__all__ = ["ThreadedVideoBackend"]
