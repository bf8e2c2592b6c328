"""Capture module - frame/audio data model and the push-to-pull stream adapter."""

from .channel import BoundedChannel
from .frame import (
    AudioBuffer,
    AudioChunk,
    CapturedFrame,
    FrameEvent,
    FrameStatus,
    Rect,
    StreamError,
    StreamStopped,
    VideoFrame,
)
from .source import CaptureBackend, CaptureSink, FrameEventStream, FrameSource

__all__ = [
    "AudioBuffer",
    "AudioChunk",
    "BoundedChannel",
    "CaptureBackend",
    "CaptureSink",
    "CapturedFrame",
    "FrameEvent",
    "FrameEventStream",
    "FrameSource",
    "FrameStatus",
    "Rect",
    "StreamError",
    "StreamStopped",
    "VideoFrame",
]
