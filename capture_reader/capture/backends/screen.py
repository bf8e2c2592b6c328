"""Screen capture using mss."""

from __future__ import annotations

from typing import Optional

import mss
import numpy as np

from ...errors import CaptureBackendError
from ..frame import Rect
from .base import ThreadedVideoBackend
from .config import CaptureConfiguration, ContentFilter


def _monitor_box(monitors: list[dict], content_filter: ContentFilter) -> dict[str, int]:
    """Translate a display index and optional region into an mss grab box."""
    if not 0 <= content_filter.display < len(monitors):
        raise CaptureBackendError(
            f"display {content_filter.display} not found ({len(monitors) - 1} available)"
        )
    monitor = monitors[content_filter.display]
    region = content_filter.region
    if region is None:
        return {
            "left": monitor["left"],
            "top": monitor["top"],
            "width": monitor["width"],
            "height": monitor["height"],
        }

    bounds = Rect(0, 0, monitor["width"], monitor["height"])
    if region.is_empty or not bounds.contains(region):
        raise CaptureBackendError(f"region {region} lies outside display {content_filter.display} {bounds.size}")
    return {
        "left": monitor["left"] + region.x,
        "top": monitor["top"] + region.y,
        "width": region.width,
        "height": region.height,
    }


class ScreenCaptureBackend(ThreadedVideoBackend):
    """Captures a display (or a region of it) at the configured rate.

    Display 0 is the union of all monitors, 1 the primary one.
    """

    name = "screen"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._monitors: list[dict] = []
        self._sct: Optional[mss.base.MSSBase] = None

    def _open(self, config: CaptureConfiguration, content_filter: ContentFilter) -> None:
        # mss handles are thread-bound; this one only enumerates monitors.
        with mss.mss() as sct:
            self._monitors = [dict(monitor) for monitor in sct.monitors]
        box = _monitor_box(self._monitors, content_filter)
        self._logger.info(
            "Screen capture on display %d: %dx%d at (%d, %d), %.1f fps",
            content_filter.display,
            box["width"],
            box["height"],
            box["left"],
            box["top"],
            config.fps,
        )

    def _apply_update(self, config: CaptureConfiguration, content_filter: ContentFilter) -> None:
        _monitor_box(self._monitors, content_filter)

    def _grab(self, content_filter: ContentFilter) -> Optional[np.ndarray]:
        if self._sct is None:
            self._sct = mss.mss()
        shot = self._sct.grab(_monitor_box(self._monitors, content_filter))
        # BGRA -> BGR
        return np.ascontiguousarray(np.asarray(shot)[:, :, :3])

    def _on_thread_exit(self) -> None:
        if self._sct is not None:
            self._sct.close()
            self._sct = None

    def _close(self) -> None:
        self._monitors = []


__all__ = ["ScreenCaptureBackend"]
