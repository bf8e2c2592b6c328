"""Average and peak power calculations on captured audio."""

from __future__ import annotations

import math
import threading
from collections import deque
from dataclasses import dataclass

import numpy as np

from ..capture.frame import AudioChunk
from .constants import DB_MAX, DB_MIN, DEFAULT_METER_CHANNELS, DEFAULT_METER_WINDOW


@dataclass(frozen=True, slots=True)
class AudioLevels:
    """Per-channel average and peak power in dBFS."""

    average: tuple[float, ...]
    peak: tuple[float, ...]

    @classmethod
    def silence(cls, channels: int = DEFAULT_METER_CHANNELS) -> "AudioLevels":
        floor = (DB_MIN,) * max(1, channels)
        return cls(average=floor, peak=floor)

    @property
    def channels(self) -> int:
        return len(self.average)

    @property
    def is_silent(self) -> bool:
        return all(value <= DB_MIN for value in self.average + self.peak)

    def level(self, channel: int = 0) -> float:
        """Average level of ``channel`` scaled to [0, 1] for meters."""
        return (self.average[channel] - DB_MIN) / (DB_MAX - DB_MIN)


def to_db(value: float) -> float:
    if value <= 0:
        return DB_MIN
    return max(DB_MIN, min(DB_MAX, 20.0 * math.log10(value)))


class PowerMeter:
    """Running levels over the last ``window_size`` chunks.

    ``process`` is called sequentially from the audio path. ``levels`` may be
    read from any thread and always returns a complete snapshot.
    """

    def __init__(
        self,
        window_size: int = DEFAULT_METER_WINDOW,
        channels: int = DEFAULT_METER_CHANNELS,
    ) -> None:
        if window_size < 1:
            raise ValueError("window_size must be at least 1")
        self._window_size = window_size
        self._channels = channels
        self._rms_window: deque[np.ndarray] = deque(maxlen=window_size)
        self._peak_window: deque[np.ndarray] = deque(maxlen=window_size)
        self._lock = threading.Lock()
        self._levels = AudioLevels.silence(channels)

    @property
    def levels(self) -> AudioLevels:
        with self._lock:
            return self._levels

    def process(self, chunk: AudioChunk) -> None:
        samples = np.asarray(chunk.data, dtype=np.float32)
        if samples.ndim == 1:
            samples = samples.reshape(-1, 1)
        if samples.size == 0:
            return

        rms = np.sqrt(np.mean(np.square(samples), axis=0, dtype=np.float64))
        peak = np.max(np.abs(samples), axis=0).astype(np.float64)

        with self._lock:
            if samples.shape[1] != self._channels:
                # Channel layout changed; old history no longer lines up.
                self._channels = samples.shape[1]
                self._rms_window.clear()
                self._peak_window.clear()
            self._rms_window.append(rms)
            self._peak_window.append(peak)
            average = np.mean(np.stack(self._rms_window), axis=0)
            held_peak = np.max(np.stack(self._peak_window), axis=0)
            self._levels = AudioLevels(
                average=tuple(to_db(float(value)) for value in average),
                peak=tuple(to_db(float(value)) for value in held_peak),
            )

    def process_silence(self) -> None:
        """Drop history and report the floor level on every channel."""
        with self._lock:
            self._rms_window.clear()
            self._peak_window.clear()
            self._levels = AudioLevels.silence(self._channels)

    reset = process_silence


__all__ = ["AudioLevels", "PowerMeter", "to_db"]
