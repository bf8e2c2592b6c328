"""Stream configuration and content filter passed to capture backends."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Union

from ..frame import Rect

DEFAULT_CAPTURE_FPS = 10.0
DEFAULT_SAMPLE_RATE = 48000
DEFAULT_AUDIO_CHANNELS = 2
DEFAULT_AUDIO_BLOCK_SIZE = 1024


@dataclass(frozen=True, slots=True)
class CaptureConfiguration:
    """How to capture: output size, rate and audio input.

    ``width``/``height`` of ``None`` keep the native size of the selected
    content. ``audio_device`` of ``None`` disables audio capture.
    """

    width: Optional[int] = None
    height: Optional[int] = None
    fps: float = DEFAULT_CAPTURE_FPS
    audio_device: Optional[Union[int, str]] = None
    sample_rate: int = DEFAULT_SAMPLE_RATE
    channels: int = DEFAULT_AUDIO_CHANNELS
    audio_block_size: int = DEFAULT_AUDIO_BLOCK_SIZE

    @property
    def output_size(self) -> Optional[tuple[int, int]]:
        if self.width and self.height:
            return self.width, self.height
        return None

    @property
    def frame_interval(self) -> float:
        return 1.0 / self.fps if self.fps > 0 else 0.0

    def with_changes(self, **changes) -> "CaptureConfiguration":
        return replace(self, **changes)


@dataclass(frozen=True, slots=True)
class ContentFilter:
    """What to capture: a display (screen backend) or a device (video backend).

    ``region`` restricts capture to a sub-rectangle of the selected content.
    """

    display: int = 1
    device: Union[int, str] = 0
    region: Optional[Rect] = None

    def with_changes(self, **changes) -> "ContentFilter":
        return replace(self, **changes)


__all__ = [
    "CaptureConfiguration",
    "ContentFilter",
    "DEFAULT_AUDIO_BLOCK_SIZE",
    "DEFAULT_AUDIO_CHANNELS",
    "DEFAULT_CAPTURE_FPS",
    "DEFAULT_SAMPLE_RATE",
]
