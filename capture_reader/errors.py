"""Exception types raised by the capture reader."""


class CaptureReaderError(Exception):
    """Base class for capture reader failures."""


class CaptureAlreadyRunningError(CaptureReaderError):
    """A capture stream is already active on this source or engine."""


class CaptureBackendError(CaptureReaderError):
    """The platform capture backend failed to start, stop or deliver."""


class LayoutError(CaptureReaderError, ValueError):
    """A region layout definition is malformed."""


__all__ = [
    "CaptureReaderError",
    "CaptureAlreadyRunningError",
    "CaptureBackendError",
    "LayoutError",
]
