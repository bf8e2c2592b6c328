"""Concurrent recognition jobs, one per cropped region."""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Mapping, Optional

import numpy as np

from ..core.logging_utils import LoggerLike, ensure_structured_logger
from ..core.task_manager import AsyncTaskManager
from .recognizer import TextRecognizer
from .regions import DEFAULT_LAYOUT, ReadingField, RegionLayout
from .results import RecognitionResult, normalize_value

DEFAULT_MAX_WORKERS = 3
DEFAULT_JOB_TIMEOUT = 2.0

ResultHandler = Callable[[RecognitionResult], object]


class RecognitionJobRunner:
    """Runs the blocking recognizer on a thread pool.

    Every job resolves to a result: failures, blank output and timeouts all
    produce the field default, so no field is ever left holding a value from
    an earlier frame.
    """

    def __init__(
        self,
        recognizer: TextRecognizer,
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
        job_timeout: Optional[float] = DEFAULT_JOB_TIMEOUT,
        logger: LoggerLike = None,
    ) -> None:
        self._recognizer = recognizer
        self._job_timeout = job_timeout
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="recognition")
        self._tasks = AsyncTaskManager("RecognitionJobs", logger=self._logger)
        self._failures = 0

    @property
    def active_jobs(self) -> int:
        return self._tasks.active_count()

    @property
    def failures(self) -> int:
        return self._failures

    async def recognize(
        self,
        frame_id: int,
        field: ReadingField,
        image: np.ndarray,
        language: Optional[str] = None,
    ) -> RecognitionResult:
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._executor, self._recognizer.recognize, image, language)
        try:
            if self._job_timeout is not None:
                text = await asyncio.wait_for(future, timeout=self._job_timeout)
            else:
                text = await future
        except asyncio.TimeoutError:
            self._failures += 1
            self._logger.warning(
                "Recognition of %s for frame %d timed out after %.1fs",
                field.value,
                frame_id,
                self._job_timeout,
            )
            return RecognitionResult.failed(frame_id, field)
        except Exception as exc:
            self._failures += 1
            self._logger.warning("Recognition of %s for frame %d failed: %s", field.value, frame_id, exc)
            return RecognitionResult.failed(frame_id, field)

        if text is None or not text.strip():
            self._logger.debug("No text recognized for %s in frame %d", field.value, frame_id)
            return RecognitionResult.failed(frame_id, field)
        return RecognitionResult(frame_id=frame_id, field=field, value=normalize_value(text), success=True)

    def dispatch(
        self,
        frame_id: int,
        crops: Mapping[ReadingField, np.ndarray],
        deliver: ResultHandler,
        layout: RegionLayout = DEFAULT_LAYOUT,
    ) -> list[asyncio.Task]:
        """Start one job per crop; each result goes to ``deliver`` as soon as it is ready."""
        tasks = []
        for field, image in crops.items():
            spec = layout.spec_for(field)
            language = spec.language if spec is not None else None
            tasks.append(
                self._tasks.create(
                    self._run_job(frame_id, field, image, language, deliver),
                    name=f"frame{frame_id}:{field.value}",
                )
            )
        return tasks

    async def _run_job(
        self,
        frame_id: int,
        field: ReadingField,
        image: np.ndarray,
        language: Optional[str],
        deliver: ResultHandler,
    ) -> None:
        result = await self.recognize(frame_id, field, image, language)
        deliver(result)

    async def shutdown(self, *, timeout: float = 5.0) -> None:
        await self._tasks.shutdown(timeout=timeout)
        self._executor.shutdown(wait=False, cancel_futures=True)


__all__ = ["RecognitionJobRunner", "ResultHandler", "DEFAULT_JOB_TIMEOUT", "DEFAULT_MAX_WORKERS"]
