"""Shared pytest configuration and fixtures for the capture reader test suite."""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Mapping, Optional

import numpy as np
import pytest

from capture_reader.capture.frame import (
    ATTACHMENT_CONTENT_RECT,
    ATTACHMENT_CONTENT_SCALE,
    ATTACHMENT_SCALE_FACTOR,
    ATTACHMENT_STATUS,
    AudioChunk,
    FrameStatus,
    Rect,
)
from capture_reader.recognition.regions import DEFAULT_LAYOUT, ReadingField
from capture_reader.reporting.reporter import LoggingReadingReporter

# Smallest frame that still holds every default region.
FRAME_WIDTH = 960
FRAME_HEIGHT = 540

# Pixel value used for digit d is DIGIT_PIXEL_BASE + d; 0 stays blank.
DIGIT_PIXEL_BASE = 10


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--run-hardware",
        action="store_true",
        default=False,
        help="Run tests that need a real display, camera, audio device or tesseract",
    )


def pytest_collection_modifyitems(config, items):
    """Skip hardware tests unless --run-hardware is specified."""
    if config.getoption("--run-hardware"):
        return

    skip_hardware = pytest.mark.skip(reason="Need --run-hardware option to run")
    for item in items:
        if "hardware" in item.keywords:
            item.add_marker(skip_hardware)


# =============================================================================
# Frame helpers
# =============================================================================

def complete_attachments(width: int = FRAME_WIDTH, height: int = FRAME_HEIGHT, **extra: Any) -> dict[str, Any]:
    attachments = {
        ATTACHMENT_STATUS: FrameStatus.COMPLETE,
        ATTACHMENT_CONTENT_RECT: Rect(0, 0, width, height),
        ATTACHMENT_CONTENT_SCALE: 1.0,
        ATTACHMENT_SCALE_FACTOR: 1.0,
    }
    attachments.update(extra)
    return attachments


def digit_frame(
    values: Mapping[ReadingField, int],
    width: int = FRAME_WIDTH,
    height: int = FRAME_HEIGHT,
) -> np.ndarray:
    """A frame whose default regions are filled with per-field pixel values.

    Paired with ``PixelRecognizer`` this lets a test decide exactly what each
    region recognizes as.
    """
    image = np.zeros((height, width, 3), dtype=np.uint8)
    for spec in DEFAULT_LAYOUT:
        value = values.get(spec.field, 0)
        rect = spec.rect
        image[rect.y:rect.bottom, rect.x:rect.right] = value
    return image


def digit_pixels(tens: Optional[int], primary: Optional[int], fraction: Optional[int]) -> dict[ReadingField, int]:
    """Pixel values for a frame showing the given digits; ``None`` leaves a region blank."""
    values = {}
    for field, digit in (
        (ReadingField.TENS_DIGIT, tens),
        (ReadingField.PRIMARY_DIGIT, primary),
        (ReadingField.FRACTIONAL_DIGIT, fraction),
    ):
        if digit is not None:
            values[field] = DIGIT_PIXEL_BASE + digit
    return values


def audio_chunk(amplitude: float, frames: int = 480, channels: int = 2) -> AudioChunk:
    data = np.full((frames, channels), amplitude, dtype=np.float32)
    return AudioChunk(data=data, sample_rate=48000, channels=channels)


# =============================================================================
# Fakes
# =============================================================================

class FakeBackend:
    """In-memory capture backend driven directly by the test."""

    def __init__(
        self,
        *,
        start_error: Optional[BaseException] = None,
        stop_error: Optional[BaseException] = None,
        update_error: Optional[BaseException] = None,
    ) -> None:
        self.sink = None
        self.start_error = start_error
        self.stop_error = stop_error
        self.update_error = update_error
        self.start_calls = 0
        self.stop_calls = 0
        self.updates: list[tuple[Any, Any]] = []
        self.config = None
        self.content_filter = None

    def start(self, config, content_filter, sink) -> None:
        self.start_calls += 1
        if self.start_error is not None:
            raise self.start_error
        self.config = config
        self.content_filter = content_filter
        self.sink = sink

    async def stop(self) -> None:
        self.stop_calls += 1
        self.sink = None
        if self.stop_error is not None:
            raise self.stop_error

    async def update(self, config, content_filter) -> None:
        if self.update_error is not None:
            raise self.update_error
        self.updates.append((config, content_filter))
        self.config = config
        self.content_filter = content_filter

    # Helpers -----------------------------------------------------------
    def emit_frame(self, image: np.ndarray, **attachments: Any) -> None:
        height, width = image.shape[:2]
        self.sink.on_video(image, complete_attachments(width, height, **attachments))

    def emit_audio(self, chunk: AudioChunk) -> None:
        self.sink.on_audio(chunk)

    def fail(self, error: BaseException) -> None:
        self.sink.on_error(error)


class PixelRecognizer:
    """Recognizes the top-left pixel value of a crop through a lookup table.

    Values missing from ``texts`` recognize as nothing. ``gates`` hold a
    value's recognition until its event is set; ``errors`` raise instead.
    """

    def __init__(
        self,
        texts: Optional[Mapping[int, Optional[str]]] = None,
        *,
        gates: Optional[Mapping[int, threading.Event]] = None,
        errors: Optional[Mapping[int, BaseException]] = None,
    ) -> None:
        self.texts = dict(texts or {})
        self.gates = dict(gates or {})
        self.errors = dict(errors or {})
        self.calls: list[tuple[int, Optional[str]]] = []
        self._lock = threading.Lock()

    def recognize(self, image: np.ndarray, language: Optional[str] = None) -> Optional[str]:
        key = int(image[0, 0, 0]) if image.ndim == 3 else int(image[0, 0])
        with self._lock:
            self.calls.append((key, language))
        gate = self.gates.get(key)
        if gate is not None:
            gate.wait(5.0)
        if key in self.errors:
            raise self.errors[key]
        return self.texts.get(key)


class RecordingReporter(LoggingReadingReporter):
    """Dry-run reporter that also keeps every reading it logged."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.reported: list[str] = []

    def report(self, display_string: str) -> None:
        logged = self.logged
        super().report(display_string)
        if self.logged != logged:
            self.reported.append(display_string)


async def wait_for_condition(predicate, timeout: float = 2.0, interval: float = 0.01) -> None:
    """Poll ``predicate`` on the loop until it holds or ``timeout`` passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def digits_recognizer() -> PixelRecognizer:
    """Pixel value 10 + d recognizes as the digit d; anything else as nothing."""
    return PixelRecognizer({DIGIT_PIXEL_BASE + digit: str(digit) for digit in range(10)})
