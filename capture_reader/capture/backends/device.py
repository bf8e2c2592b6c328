"""Camera, video file or stream URL capture using OpenCV."""

from __future__ import annotations

import os
import sys
import time
from typing import Optional

# Disable MSMF hardware transforms on Windows to fix slow camera initialization.
# See: https://github.com/opencv/opencv/issues/17687
if sys.platform == "win32":
    os.environ.setdefault("OPENCV_VIDEOIO_MSMF_ENABLE_HW_TRANSFORMS", "0")

import cv2
import numpy as np

from ...errors import CaptureBackendError
from ..frame import Rect
from .base import ThreadedVideoBackend
from .config import CaptureConfiguration, ContentFilter

# Consecutive failed reads before the source is considered gone.
MAX_READ_FAILURES = 50


class VideoDeviceBackend(ThreadedVideoBackend):
    """Reads frames from ``cv2.VideoCapture``.

    ``ContentFilter.device`` is a camera index, a file path or a stream URL.
    """

    name = "device"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._cap: Optional[cv2.VideoCapture] = None
        self._read_failures = 0

    def _open(self, config: CaptureConfiguration, content_filter: ContentFilter) -> None:
        device = content_filter.device
        if isinstance(device, str) and device.isdigit():
            device = int(device)

        started = time.time()
        if sys.platform == "win32" and isinstance(device, int):
            cap = cv2.VideoCapture(device, cv2.CAP_MSMF)
        else:
            cap = cv2.VideoCapture(device)
        self._logger.debug("cv2.VideoCapture(%s) took %.2f seconds", device, time.time() - started)

        if not cap or not cap.isOpened():
            raise CaptureBackendError(f"failed to open video device {content_filter.device!r}")

        if isinstance(device, int):
            if config.output_size is not None:
                cap.set(cv2.CAP_PROP_FRAME_WIDTH, config.output_size[0])
                cap.set(cv2.CAP_PROP_FRAME_HEIGHT, config.output_size[1])
            cap.set(cv2.CAP_PROP_FPS, config.fps)
            # Reduce internal buffer to minimize latency
            cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        self._cap = cap
        self._read_failures = 0
        self._logger.info(
            "Video device opened: device=%s, resolution=%dx%d, fps=%.1f",
            content_filter.device,
            int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            config.fps,
        )

    def _apply_update(self, config: CaptureConfiguration, content_filter: ContentFilter) -> None:
        if content_filter.device != self._filter.device:
            raise CaptureBackendError("changing the device requires restarting capture")

    def _grab(self, content_filter: ContentFilter) -> Optional[np.ndarray]:
        cap = self._cap
        if cap is None:
            raise CaptureBackendError("video device closed")
        ok, image = cap.read()
        if not ok or image is None:
            self._read_failures += 1
            if self._read_failures >= MAX_READ_FAILURES:
                raise CaptureBackendError(f"no frames after {self._read_failures} reads")
            return None
        self._read_failures = 0
        return _crop(image, content_filter.region)

    def _close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            self._logger.info("Video device closed")


def _crop(image: np.ndarray, region: Optional[Rect]) -> np.ndarray:
    if region is None:
        return image
    bounds = Rect(0, 0, image.shape[1], image.shape[0])
    if region.is_empty or not bounds.contains(region):
        raise CaptureBackendError(f"region {region} lies outside the {bounds.size} device image")
    return np.ascontiguousarray(image[region.y:region.bottom, region.x:region.right])


__all__ = ["VideoDeviceBackend", "MAX_READ_FAILURES"]
