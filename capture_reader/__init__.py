"""Capture reader: OCR a numeric display from a live capture and report it."""

from .engine import CaptureEngine
from .errors import CaptureAlreadyRunningError, CaptureBackendError, CaptureReaderError, LayoutError

__version__ = "0.1.0"

__all__ = [
    "CaptureAlreadyRunningError",
    "CaptureBackendError",
    "CaptureEngine",
    "CaptureReaderError",
    "LayoutError",
    "__version__",
]
