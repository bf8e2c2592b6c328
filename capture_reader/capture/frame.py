"""Frame, audio and stream event data structures."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Mapping, Optional, Union

import numpy as np


@dataclass(frozen=True, slots=True)
class Rect:
    """Pixel rectangle with a top-left origin."""

    x: int
    y: int
    width: int
    height: int

    @classmethod
    def zero(cls) -> "Rect":
        return cls(0, 0, 0, 0)

    @classmethod
    def from_value(cls, value: Any) -> "Rect":
        """Build a rect from a Rect, a 4-sequence or an x/y/width/height mapping."""
        if isinstance(value, Rect):
            return value
        if isinstance(value, Mapping):
            return cls(int(value["x"]), int(value["y"]), int(value["width"]), int(value["height"]))
        x, y, width, height = value
        return cls(int(x), int(y), int(width), int(height))

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def contains(self, other: "Rect") -> bool:
        return (
            other.x >= self.x
            and other.y >= self.y
            and other.right <= self.right
            and other.bottom <= self.bottom
        )


class FrameStatus(Enum):
    """Delivery status attached to each raw video buffer."""

    COMPLETE = "complete"
    IDLE = "idle"
    BLANK = "blank"
    SUSPENDED = "suspended"
    STARTED = "started"
    STOPPED = "stopped"


# Attachment keys carried alongside raw video buffers.
ATTACHMENT_STATUS = "status"
ATTACHMENT_CONTENT_RECT = "content_rect"
ATTACHMENT_CONTENT_SCALE = "content_scale"
ATTACHMENT_SCALE_FACTOR = "scale_factor"


@dataclass(frozen=True, slots=True, eq=False)
class CapturedFrame:
    """Immutable video frame: image plus its geometry metadata.

    A frame is either fully populated or the ``INVALID`` sentinel.
    """

    INVALID: ClassVar["CapturedFrame"]

    data: Optional[np.ndarray]  # BGR image, HxWx3
    content_rect: Rect
    content_scale: float
    scale_factor: float
    frame_number: int = 0
    wall_time: float = 0.0

    def __post_init__(self) -> None:
        if self.data is None:
            if not self.content_rect.is_empty or self.content_scale or self.scale_factor:
                raise ValueError("frame without image data must be the invalid sentinel")
            return
        if self.content_rect.is_empty or self.content_scale <= 0 or self.scale_factor <= 0:
            raise ValueError(
                f"partially populated frame: rect={self.content_rect} "
                f"content_scale={self.content_scale} scale_factor={self.scale_factor}"
            )

    @property
    def is_valid(self) -> bool:
        return self.data is not None

    @property
    def size(self) -> tuple[int, int]:
        return self.content_rect.size

    @property
    def image_size(self) -> tuple[int, int]:
        """(width, height) of the backing image, zero for the sentinel."""
        if self.data is None:
            return 0, 0
        return int(self.data.shape[1]), int(self.data.shape[0])

    @classmethod
    def from_attachments(
        cls,
        buffer: Optional[np.ndarray],
        attachments: Mapping[str, Any],
        *,
        frame_number: int = 0,
        wall_time: Optional[float] = None,
    ) -> "CapturedFrame":
        """Build a frame from a raw buffer, or ``INVALID`` if anything is missing."""
        if buffer is None:
            return cls.INVALID
        try:
            content_rect = Rect.from_value(attachments[ATTACHMENT_CONTENT_RECT])
            content_scale = float(attachments[ATTACHMENT_CONTENT_SCALE])
            scale_factor = float(attachments[ATTACHMENT_SCALE_FACTOR])
            return cls(
                data=buffer,
                content_rect=content_rect,
                content_scale=content_scale,
                scale_factor=scale_factor,
                frame_number=frame_number,
                wall_time=time.time() if wall_time is None else wall_time,
            )
        except (KeyError, TypeError, ValueError):
            return cls.INVALID


CapturedFrame.INVALID = CapturedFrame(
    data=None,
    content_rect=Rect.zero(),
    content_scale=0.0,
    scale_factor=0.0,
)


@dataclass(frozen=True, slots=True, eq=False)
class AudioChunk:
    """Immutable block of PCM samples (float32, frames x channels)."""

    data: np.ndarray
    sample_rate: int
    channels: int
    chunk_number: int = 0
    wall_time: float = field(default_factory=time.time)

    @property
    def samples(self) -> int:
        return int(self.data.shape[0]) if self.data.ndim else 0

    @property
    def duration_s(self) -> float:
        return self.samples / self.sample_rate if self.sample_rate else 0.0


# ---------------------------------------------------------------------------
# Stream events


@dataclass(frozen=True, slots=True, eq=False)
class VideoFrame:
    buffer: np.ndarray
    attachments: Mapping[str, Any]
    frame_number: int = 0


@dataclass(frozen=True, slots=True, eq=False)
class AudioBuffer:
    chunk: AudioChunk


@dataclass(frozen=True, slots=True)
class StreamError:
    error: BaseException


@dataclass(frozen=True, slots=True)
class StreamStopped:
    pass


FrameEvent = Union[VideoFrame, AudioBuffer, StreamError, StreamStopped]


def is_terminal(event: FrameEvent) -> bool:
    return isinstance(event, (StreamError, StreamStopped))


__all__ = [
    "ATTACHMENT_CONTENT_RECT",
    "ATTACHMENT_CONTENT_SCALE",
    "ATTACHMENT_SCALE_FACTOR",
    "ATTACHMENT_STATUS",
    "AudioBuffer",
    "AudioChunk",
    "CapturedFrame",
    "FrameEvent",
    "FrameStatus",
    "Rect",
    "StreamError",
    "StreamStopped",
    "VideoFrame",
    "is_terminal",
]
