"""Per-frame merging of recognition results into readings."""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from ..core.logging_utils import LoggerLike, ensure_structured_logger
from .regions import ReadingField
from .results import (
    DEFAULT_FIELD_VALUE,
    REQUIRED_FIELDS,
    CompletedReading,
    Reading,
    RecognitionResult,
)

DEFAULT_READING_TIMEOUT = 5.0

CompletionHandler = Callable[[CompletedReading], object]


@dataclass(slots=True)
class _Collecting:
    frame_id: int
    values: dict[ReadingField, str]
    pending: set[ReadingField]
    timer: Optional[asyncio.TimerHandle] = field(default=None)


class ReadingAggregator:
    """Collects the results of each frame in its own entry, keyed by frame id.

    All entries live in one map behind one lock, so concurrent deliveries for
    a frame are applied one at a time and a result can only ever land in the
    entry of the frame that produced it. An entry completes when its last
    pending field arrives or when ``timeout`` elapses; either way it is
    removed and ``on_complete`` runs exactly once, outside the lock, in the
    context that completed it.
    """

    def __init__(
        self,
        on_complete: Optional[CompletionHandler] = None,
        *,
        timeout: Optional[float] = DEFAULT_READING_TIMEOUT,
        logger: LoggerLike = None,
    ) -> None:
        self._on_complete = on_complete
        self._timeout = timeout
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)
        self._lock = threading.Lock()
        self._entries: dict[int, _Collecting] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._last_frame_id = 0
        self._discarded = 0
        self._timeouts = 0

    # ------------------------------------------------------------------
    # Inspection

    @property
    def in_flight(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def discarded(self) -> int:
        """Results that arrived for frames no longer being collected."""
        return self._discarded

    @property
    def timeouts(self) -> int:
        return self._timeouts

    def pending_fields(self, frame_id: int) -> frozenset[ReadingField]:
        with self._lock:
            entry = self._entries.get(frame_id)
            return frozenset(entry.pending) if entry else frozenset()

    # ------------------------------------------------------------------
    # Frame lifecycle

    def begin(self, frame_id: int, pending_fields: Iterable[ReadingField]) -> None:
        """Open a collecting entry; fields not pending start at the default."""
        pending = set(pending_fields)
        with self._lock:
            if frame_id <= self._last_frame_id:
                raise ValueError(f"frame id {frame_id} is not greater than {self._last_frame_id}")
            self._last_frame_id = frame_id
            entry = _Collecting(
                frame_id=frame_id,
                values={name: DEFAULT_FIELD_VALUE for name in REQUIRED_FIELDS},
                pending=pending,
            )
            if pending:
                self._entries[frame_id] = entry
                if self._timeout is not None:
                    self._loop = asyncio.get_running_loop()
                    entry.timer = self._loop.call_later(self._timeout, self._expire, frame_id)

        if not pending:
            self._finish(entry, timed_out=False)

    def submit(self, result: RecognitionResult) -> bool:
        """Apply one result; ``False`` when its frame is no longer collecting."""
        completed: Optional[_Collecting] = None
        with self._lock:
            entry = self._entries.get(result.frame_id)
            accepted = entry is not None and result.field in entry.pending
            if accepted:
                entry.values[result.field] = result.value
                entry.pending.discard(result.field)
                if not entry.pending:
                    completed = self._entries.pop(result.frame_id)
            else:
                self._discarded += 1

        if not accepted:
            self._logger.debug(
                "Discarding %s result for frame %d; frame no longer collecting",
                result.field.value,
                result.frame_id,
            )
            return False
        if completed is not None:
            self._cancel_timer(completed)
            self._finish(completed, timed_out=False)
        return True

    def reset(self) -> int:
        """Drop every collecting entry without completing it."""
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
        for entry in entries:
            self._cancel_timer(entry)
        if entries:
            self._logger.debug("Discarded %d in-flight reading(s)", len(entries))
        return len(entries)

    # ------------------------------------------------------------------
    # Internals

    def _expire(self, frame_id: int) -> None:
        with self._lock:
            entry = self._entries.pop(frame_id, None)
        if entry is None:
            return
        self._timeouts += 1
        self._logger.warning(
            "Reading for frame %d timed out; defaulting %s",
            frame_id,
            ", ".join(sorted(name.value for name in entry.pending)),
        )
        entry.pending.clear()
        self._finish(entry, timed_out=True)

    def _cancel_timer(self, entry: _Collecting) -> None:
        timer = entry.timer
        if timer is None:
            return
        entry.timer = None
        loop = self._loop
        if loop is None:
            timer.cancel()
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            timer.cancel()
        elif not loop.is_closed():
            # TimerHandle.cancel touches loop state; hop onto the loop thread.
            loop.call_soon_threadsafe(timer.cancel)

    def _finish(self, entry: _Collecting, *, timed_out: bool) -> None:
        completed = CompletedReading(
            frame_id=entry.frame_id,
            reading=Reading(dict(entry.values)),
            timed_out=timed_out,
        )
        self._logger.debug("Frame %d reading complete: %s", entry.frame_id, completed.display_string)
        if self._on_complete is None:
            return
        try:
            self._on_complete(completed)
        except Exception:
            self._logger.exception("Reading completion handler failed for frame %d", entry.frame_id)


__all__ = ["ReadingAggregator", "CompletionHandler", "DEFAULT_READING_TIMEOUT"]
