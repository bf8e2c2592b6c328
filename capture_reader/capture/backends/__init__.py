"""Concrete capture backends: screen (mss), video device (OpenCV), audio (sounddevice)."""

from .audio import SoundDeviceAudioInput
from .config import CaptureConfiguration, ContentFilter
from .device import VideoDeviceBackend
from .screen import ScreenCaptureBackend

__all__ = [
    "CaptureConfiguration",
    "ContentFilter",
    "ScreenCaptureBackend",
    "SoundDeviceAudioInput",
    "VideoDeviceBackend",
]
