"""Capture engine: drives the frame source and the recognition pipeline."""

from __future__ import annotations

import asyncio
import concurrent.futures
import time
from typing import Any, AsyncIterator, Optional

from .audio.power_meter import AudioLevels, PowerMeter
from .capture.channel import BoundedChannel
from .capture.frame import AudioBuffer, CapturedFrame, StreamError, StreamStopped, VideoFrame
from .capture.source import DEFAULT_QUEUE_DEPTH, CaptureBackend, FrameEventStream, FrameSource
from .core.logging_utils import LoggerLike, ensure_structured_logger
from .core.task_manager import AsyncTaskManager
from .errors import CaptureAlreadyRunningError
from .recognition.aggregator import DEFAULT_READING_TIMEOUT, ReadingAggregator
from .recognition.recognizer import TextRecognizer
from .recognition.regions import DEFAULT_LAYOUT, RegionExtractor, RegionLayout
from .recognition.results import CompletedReading
from .recognition.runner import DEFAULT_JOB_TIMEOUT, DEFAULT_MAX_WORKERS, RecognitionJobRunner
from .reporting.reporter import LoggingReadingReporter, ReadingReporter

DEFAULT_OUTPUT_DEPTH = 4
DEFAULT_MAX_FRAMES_IN_FLIGHT = 2


class CaptureEngine:
    """Turns a capture backend into a stream of frames and reported readings.

    ``start_capture`` returns the frame sequence immediately; a pump task
    drains the source, feeds audio to the power meter and hands every valid
    frame to the recognition pipeline before yielding it. Completed readings
    go to the reporter.

    Lifecycle calls (``start_capture``, ``stop_capture``, ``aclose``) belong
    to the loop the engine was started on. ``cancel`` may be called from any
    thread.
    """

    def __init__(
        self,
        backend: CaptureBackend,
        recognizer: TextRecognizer,
        *,
        reporter: Optional[ReadingReporter] = None,
        layout: RegionLayout = DEFAULT_LAYOUT,
        power_meter: Optional[PowerMeter] = None,
        queue_depth: int = DEFAULT_QUEUE_DEPTH,
        output_depth: int = DEFAULT_OUTPUT_DEPTH,
        max_frames_in_flight: int = DEFAULT_MAX_FRAMES_IN_FLIGHT,
        max_workers: int = DEFAULT_MAX_WORKERS,
        job_timeout: Optional[float] = DEFAULT_JOB_TIMEOUT,
        reading_timeout: Optional[float] = DEFAULT_READING_TIMEOUT,
        logger: LoggerLike = None,
    ) -> None:
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)
        self._source = FrameSource(backend, queue_depth=queue_depth, logger=self._logger.getChild("source"))
        self._extractor = RegionExtractor(layout, logger=self._logger.getChild("regions"))
        self._runner = RecognitionJobRunner(
            recognizer,
            max_workers=max_workers,
            job_timeout=job_timeout,
            logger=self._logger.getChild("runner"),
        )
        self._aggregator = ReadingAggregator(
            self._on_reading,
            timeout=reading_timeout,
            logger=self._logger.getChild("aggregator"),
        )
        self._reporter: ReadingReporter = reporter or LoggingReadingReporter(logger=self._logger.getChild("reporter"))
        self._power_meter = power_meter or PowerMeter()
        self._output_depth = output_depth
        self._max_frames_in_flight = max_frames_in_flight

        self._tasks = AsyncTaskManager("CaptureEngine", logger=self._logger)
        self._stop_lock = asyncio.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pump: Optional[asyncio.Task] = None
        self._output: Optional[BoundedChannel[CapturedFrame]] = None

        self._next_frame_id = 0
        self._frames_dispatched = 0
        self._frames_skipped = 0
        self._invalid_frames = 0
        self._last_reading: Optional[CompletedReading] = None

    # ------------------------------------------------------------------
    # Inspection

    @property
    def is_capturing(self) -> bool:
        return self._pump is not None

    @property
    def audio_levels(self) -> AudioLevels:
        return self._power_meter.levels

    @property
    def last_reading(self) -> Optional[CompletedReading]:
        return self._last_reading

    @property
    def frames_dispatched(self) -> int:
        """Frames handed to recognition since the engine was created."""
        return self._frames_dispatched

    @property
    def frames_skipped(self) -> int:
        return self._frames_skipped

    @property
    def readings_in_flight(self) -> int:
        return self._aggregator.in_flight

    # ------------------------------------------------------------------
    # Lifecycle

    def start_capture(self, config: Any, content_filter: Any) -> AsyncIterator[CapturedFrame]:
        """Begin capturing and return the sequence of captured frames.

        The sequence ends when capture stops, or raises the stream error if
        capture fails. ``stop_capture`` must be awaited before starting again.
        """
        if self._pump is not None:
            raise CaptureAlreadyRunningError("capture is already running; stop it first")

        self._loop = asyncio.get_running_loop()
        self._power_meter.reset()
        stream = self._source.start(config, content_filter)
        output: BoundedChannel[CapturedFrame] = BoundedChannel(
            self._output_depth,
            name="captured frames",
            logger=self._logger,
        )
        self._output = output
        self._pump = self._loop.create_task(self._pump_events(stream, output), name="capture-pump")
        return output

    async def stop_capture(self) -> None:
        """Stop capturing; calling it again, or before starting, does nothing."""
        async with self._stop_lock:
            pump = self._pump
            if pump is None and not self._source.is_running:
                return
            self._pump = None
            try:
                await self._source.stop()
                if pump is not None:
                    await pump
            finally:
                discarded = self._release_session()
                self._logger.info(
                    "Capture engine stopped (%d frame(s) dispatched, %d in-flight reading(s) discarded)",
                    self._frames_dispatched,
                    discarded,
                )

    def cancel(self) -> Optional[concurrent.futures.Future]:
        """Request ``stop_capture`` from any thread; a no-op when nothing is capturing."""
        loop = self._loop
        if loop is None or loop.is_closed() or self._tasks.closed:
            return None
        if self._pump is None and not self._source.is_running:
            return None
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._tasks.create(self.stop_capture(), name="stop-capture")
            return None
        return asyncio.run_coroutine_threadsafe(self.stop_capture(), loop)

    async def update_configuration(self, config: Any, content_filter: Any) -> None:
        await self._source.reconfigure(config, content_filter)

    async def aclose(self) -> None:
        await self.stop_capture()
        await self._tasks.shutdown()
        await self._runner.shutdown()
        await self._reporter.aclose()

    # ------------------------------------------------------------------
    # Pump

    async def _pump_events(self, stream: FrameEventStream, output: BoundedChannel[CapturedFrame]) -> None:
        faulted = False
        try:
            async for event in stream:
                if isinstance(event, VideoFrame):
                    self._handle_video(event, output)
                elif isinstance(event, AudioBuffer):
                    self._power_meter.process(event.chunk)
                elif isinstance(event, StreamError):
                    self._logger.error("Capture stream failed: %s", event.error)
                    output.close(event.error)
                    faulted = True
                elif isinstance(event, StreamStopped):
                    output.close()
        except Exception as exc:
            self._logger.exception("Capture pump failed")
            output.close(exc)
            faulted = True
        finally:
            output.close()

        if faulted:
            await self._end_faulted_session()

    async def _end_faulted_session(self) -> None:
        """Release a session that died on its own so ``start_capture`` works again."""
        await self._source.stop()
        # stop_capture clears the pump before awaiting it and then does the cleanup itself.
        if self._pump is not asyncio.current_task():
            return
        self._pump = None
        discarded = self._release_session()
        self._logger.info("Capture session ended by a stream fault (%d in-flight reading(s) discarded)", discarded)

    def _release_session(self) -> int:
        if self._output is not None:
            self._output.close()
            self._output = None
        discarded = self._aggregator.reset()
        self._power_meter.process_silence()
        return discarded

    def _handle_video(self, event: VideoFrame, output: BoundedChannel[CapturedFrame]) -> None:
        frame = CapturedFrame.from_attachments(
            event.buffer,
            event.attachments,
            frame_number=event.frame_number,
            wall_time=time.time(),
        )
        if not frame.is_valid:
            self._invalid_frames += 1
            self._logger.debug("Dropping frame %d with incomplete attachments", event.frame_number)
            return
        self._recognize(frame)
        output.put(frame)

    def _recognize(self, frame: CapturedFrame) -> None:
        if self._aggregator.in_flight >= self._max_frames_in_flight:
            self._frames_skipped += 1
            self._logger.debug(
                "%d reading(s) in flight; frame %d not recognized",
                self._max_frames_in_flight,
                frame.frame_number,
            )
            return

        crops = self._extractor.extract(frame)
        self._next_frame_id += 1
        frame_id = self._next_frame_id
        self._frames_dispatched += 1
        self._aggregator.begin(frame_id, crops.keys())
        if crops:
            self._runner.dispatch(frame_id, crops, self._aggregator.submit, layout=self._extractor.layout)

    def _on_reading(self, completed: CompletedReading) -> None:
        self._last_reading = completed
        self._reporter.report(completed.display_string)


__all__ = ["CaptureEngine", "DEFAULT_MAX_FRAMES_IN_FLIGHT", "DEFAULT_OUTPUT_DEPTH"]
