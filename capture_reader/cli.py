"""Command line entry point: capture, recognize and report until interrupted."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Any, AsyncIterator, Optional, Sequence

from .capture.backends import ScreenCaptureBackend, SoundDeviceAudioInput, VideoDeviceBackend
from .capture.frame import CapturedFrame
from .config import BACKEND_CHOICES, ReaderConfig, load_config
from .core.logging_config import configure_logging
from .core.logging_utils import get_module_logger
from .engine import CaptureEngine
from .errors import CaptureReaderError
from .recognition.recognizer import TesseractRecognizer
from .reporting.reporter import HttpReadingReporter, LoggingReadingReporter, ReadingReporter

LOG_LEVELS: dict[str, int] = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

logger = get_module_logger(__name__)


def _positive_float(value: str) -> float:
    try:
        parsed = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("Value must be a number") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError("Value must be positive")
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="capture-reader",
        description="Read a numeric display from a live capture and report it.",
    )
    parser.add_argument("--config", type=Path, default=None, help="key = value settings file")
    parser.add_argument("--log-level", choices=sorted(LOG_LEVELS), default=None, help="Logging verbosity")
    parser.add_argument("--log-file", type=Path, default=None, help="Optional rotating log file")
    parser.add_argument("--backend", choices=BACKEND_CHOICES, default=None, help="Capture a display or a video device")
    parser.add_argument("--device", default=None, help="Camera index, video file or stream URL (device backend)")
    parser.add_argument("--display", type=int, default=None, help="Display number, 1-based (screen backend)")
    parser.add_argument("--region", default=None, help="Capture only x,y,width,height of the content")
    parser.add_argument("--fps", type=_positive_float, default=None, help="Capture rate in frames per second")
    parser.add_argument("--audio-device", default=None, help="Audio input device name or index")
    parser.add_argument("--endpoint", default=None, help="URL readings are PATCHed to")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Log readings instead of sending them",
    )
    parser.add_argument("--layout", type=Path, default=None, help="JSON region layout file")
    return parser


def overrides_from_args(args: argparse.Namespace) -> dict[str, Any]:
    """Map parsed options onto flat ``section.key`` config names."""
    mapping = {
        "log_level": "logging.level",
        "log_file": "logging.log_file",
        "backend": "capture.backend",
        "device": "capture.device",
        "display": "capture.display",
        "region": "capture.region",
        "fps": "capture.fps",
        "audio_device": "capture.audio_device",
        "endpoint": "reporting.endpoint",
        "dry_run": "reporting.dry_run",
        "layout": "recognition.layout_file",
    }
    overrides: dict[str, Any] = {}
    for arg_name, key in mapping.items():
        value = getattr(args, arg_name, None)
        if value is None:
            continue
        overrides[key] = str(value) if isinstance(value, Path) else value
    return overrides


def build_engine(config: ReaderConfig) -> CaptureEngine:
    capture = config.capture
    recognition = config.recognition
    audio = SoundDeviceAudioInput() if capture.audio_device.strip() else None
    if capture.backend == "device":
        backend = VideoDeviceBackend(audio_input=audio)
    else:
        backend = ScreenCaptureBackend(audio_input=audio)

    recognizer = TesseractRecognizer(
        tesseract_cmd=recognition.tesseract_cmd or None,
        upscale=recognition.upscale,
        invert=recognition.invert,
    )
    return CaptureEngine(
        backend,
        recognizer,
        reporter=build_reporter(config),
        layout=recognition.load_layout(),
        queue_depth=capture.queue_depth,
        output_depth=capture.output_depth,
        max_frames_in_flight=recognition.max_frames_in_flight,
        max_workers=recognition.max_workers,
        job_timeout=recognition.job_timeout,
        reading_timeout=recognition.reading_timeout,
    )


def build_reporter(config: ReaderConfig) -> ReadingReporter:
    reporting = config.reporting
    if reporting.dry_run:
        return LoggingReadingReporter(report_changes_only=reporting.report_changes_only)
    return HttpReadingReporter(
        reporting.endpoint,
        timeout=reporting.request_timeout,
        max_in_flight=reporting.max_in_flight,
        report_changes_only=reporting.report_changes_only,
    )


class _FrameCounter:
    """Frames seen since the previous ``rate()`` call."""

    def __init__(self) -> None:
        self.total = 0
        self._mark_count = 0
        self._mark_time = time.monotonic()

    def tick(self) -> None:
        self.total += 1

    def rate(self) -> float:
        now = time.monotonic()
        elapsed = now - self._mark_time
        frames = self.total - self._mark_count
        self._mark_time = now
        self._mark_count = self.total
        return frames / elapsed if elapsed > 0 else 0.0


async def _consume(frames: AsyncIterator[CapturedFrame], counter: _FrameCounter) -> None:
    async for _frame in frames:
        counter.tick()


async def _log_stats(engine: CaptureEngine, counter: _FrameCounter, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        levels = engine.audio_levels
        reading = engine.last_reading
        logger.info(
            "%.1f fps | %d frame(s) recognized, %d skipped | audio avg %s dB | last reading %s",
            counter.rate(),
            engine.frames_dispatched,
            engine.frames_skipped,
            ", ".join(f"{value:.1f}" for value in levels.average),
            reading.display_string if reading else "-",
        )


async def run(config: ReaderConfig) -> int:
    engine = build_engine(config)
    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, shutdown.set)

    counter = _FrameCounter()
    frames = engine.start_capture(config.capture.to_configuration(), config.capture.to_content_filter())
    consumer = asyncio.create_task(_consume(frames, counter), name="frame-consumer")
    stats = asyncio.create_task(_log_stats(engine, counter, config.logging.stats_interval), name="stats")
    waiter = asyncio.create_task(shutdown.wait(), name="shutdown-wait")

    exit_code = 0
    try:
        await asyncio.wait({consumer, waiter}, return_when=asyncio.FIRST_COMPLETED)
        if shutdown.is_set():
            logger.info("Shutdown requested")
    finally:
        waiter.cancel()
        stats.cancel()
        await engine.aclose()
        try:
            await consumer
        except Exception as exc:
            logger.error("Capture ended with error: %s", exc)
            exit_code = 1
        with contextlib.suppress(asyncio.CancelledError):
            await stats
        logger.info("Processed %d frame(s)", counter.total)
    return exit_code


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_config(args.config, overrides_from_args(args))
        configure_logging(
            config.logging.level,
            force=True,
            console=config.logging.console,
            log_file=config.logging.log_file or None,
        )
    except ValueError as exc:
        print(f"capture-reader: {exc}", file=sys.stderr)
        return 2

    logger.info(
        "Starting capture (%s backend, %.1f fps) -> %s",
        config.capture.backend,
        config.capture.fps,
        "log only" if config.reporting.dry_run else config.reporting.endpoint,
    )
    try:
        return asyncio.run(run(config))
    except CaptureReaderError as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        return 130


__all__ = ["build_engine", "build_parser", "build_reporter", "main", "overrides_from_args", "run"]
