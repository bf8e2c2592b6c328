"""Typed configuration for the capture reader."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from .capture.backends.config import (
    DEFAULT_AUDIO_BLOCK_SIZE,
    DEFAULT_AUDIO_CHANNELS,
    DEFAULT_CAPTURE_FPS,
    DEFAULT_SAMPLE_RATE,
    CaptureConfiguration,
    ContentFilter,
)
from .capture.frame import Rect
from .core.config_loader import load_config_file
from .recognition.regions import DEFAULT_LAYOUT, RegionLayout, load_layout
from .reporting.reporter import DEFAULT_ENDPOINT

DEFAULT_CONFIG_PATH = Path(__file__).with_name("config.txt")

BACKEND_CHOICES = ("screen", "device")


def parse_region(text: str) -> Optional[Rect]:
    """``"x,y,width,height"`` to a Rect; blank means the whole content."""
    text = text.strip()
    if not text:
        return None
    parts = [part.strip() for part in text.split(",")]
    if len(parts) != 4:
        raise ValueError(f"region must be 'x,y,width,height', got {text!r}")
    return Rect(*(int(part) for part in parts))


def parse_device(text: Union[int, str]) -> Union[int, str]:
    """Camera index when numeric, otherwise a path or URL."""
    if isinstance(text, int):
        return text
    text = text.strip()
    return int(text) if text.isdigit() else text


@dataclass(slots=True)
class CaptureSettings:
    backend: str = "screen"
    display: int = 1
    device: str = "0"
    region: str = ""
    width: int = 0
    height: int = 0
    fps: float = DEFAULT_CAPTURE_FPS
    audio_device: str = ""
    sample_rate: int = DEFAULT_SAMPLE_RATE
    channels: int = DEFAULT_AUDIO_CHANNELS
    audio_block_size: int = DEFAULT_AUDIO_BLOCK_SIZE
    queue_depth: int = 16
    output_depth: int = 4

    def __post_init__(self) -> None:
        if self.backend not in BACKEND_CHOICES:
            raise ValueError(f"unknown capture backend {self.backend!r}; expected one of {BACKEND_CHOICES}")
        if self.fps <= 0:
            raise ValueError("fps must be positive")

    def to_configuration(self) -> CaptureConfiguration:
        audio_device: Optional[Union[int, str]] = None
        if self.audio_device.strip():
            audio_device = parse_device(self.audio_device)
        return CaptureConfiguration(
            width=self.width or None,
            height=self.height or None,
            fps=self.fps,
            audio_device=audio_device,
            sample_rate=self.sample_rate,
            channels=self.channels,
            audio_block_size=self.audio_block_size,
        )

    def to_content_filter(self) -> ContentFilter:
        return ContentFilter(
            display=self.display,
            device=parse_device(self.device),
            region=parse_region(self.region),
        )


@dataclass(slots=True)
class RecognitionSettings:
    layout_file: str = ""
    tesseract_cmd: str = ""
    max_workers: int = 3
    job_timeout: float = 2.0
    reading_timeout: float = 5.0
    max_frames_in_flight: int = 2
    upscale: float = 2.0
    invert: bool = False

    def load_layout(self) -> RegionLayout:
        if not self.layout_file:
            return DEFAULT_LAYOUT
        return load_layout(Path(self.layout_file).expanduser())


@dataclass(slots=True)
class ReportingSettings:
    endpoint: str = DEFAULT_ENDPOINT
    dry_run: bool = False
    request_timeout: float = 10.0
    max_in_flight: int = 4
    report_changes_only: bool = False


@dataclass(slots=True)
class LoggingSettings:
    level: str = "info"
    log_file: str = ""
    console: bool = True
    stats_interval: float = 10.0


@dataclass(slots=True)
class ReaderConfig:
    """All settings, grouped by section.

    Flat form uses ``section.key`` names, which is also how they appear in
    ``config.txt``.
    """

    capture: CaptureSettings = field(default_factory=CaptureSettings)
    recognition: RecognitionSettings = field(default_factory=RecognitionSettings)
    reporting: ReportingSettings = field(default_factory=ReportingSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def to_dict(self) -> dict[str, Any]:
        flat: dict[str, Any] = {}
        for section in fields(self):
            for key, value in asdict(getattr(self, section.name)).items():
                flat[f"{section.name}.{key}"] = value
        return flat

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "ReaderConfig":
        defaults = cls()
        sections = {}
        for section in fields(defaults):
            current = getattr(defaults, section.name)
            changes = {}
            for item in fields(current):
                key = f"{section.name}.{item.name}"
                if key in values and values[key] is not None:
                    changes[item.name] = values[key]
            sections[section.name] = replace(current, **changes)
        return cls(**sections)


def load_config(
    path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> ReaderConfig:
    """Read ``path`` (default ``config.txt`` beside this module) and apply overrides.

    ``overrides`` uses the flat ``section.key`` names; ``None`` values are
    ignored so argparse namespaces can be passed through unfiltered.
    """
    values = load_config_file(Path(path) if path else DEFAULT_CONFIG_PATH, ReaderConfig().to_dict(), strict=True)
    if overrides:
        values.update({key: value for key, value in overrides.items() if value is not None})
    return ReaderConfig.from_dict(values)


__all__ = [
    "CaptureSettings",
    "DEFAULT_CONFIG_PATH",
    "LoggingSettings",
    "ReaderConfig",
    "RecognitionSettings",
    "ReportingSettings",
    "load_config",
    "parse_device",
    "parse_region",
]
