"""Audio input using sounddevice."""

from __future__ import annotations

import contextlib
from typing import Optional

import sounddevice as sd

from ...core.logging_utils import LoggerLike, ensure_structured_logger
from ...errors import CaptureBackendError
from ..frame import AudioChunk
from ..source import CaptureSink
from .config import CaptureConfiguration


class SoundDeviceAudioInput:
    """Owns one sounddevice input stream and feeds its blocks to a sink."""

    def __init__(self, logger: LoggerLike = None) -> None:
        self._logger = ensure_structured_logger(logger, fallback_name=__name__).getChild("Audio")
        self._stream: Optional[sd.InputStream] = None
        self._sink: Optional[CaptureSink] = None
        self._chunk_number = 0
        self._sample_rate = 0
        self._channels = 0
        self._last_status: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._stream is not None

    def start(self, config: CaptureConfiguration, sink: CaptureSink) -> None:
        if self._stream is not None:
            return
        self._sink = sink
        self._chunk_number = 0
        self._sample_rate = config.sample_rate
        self._channels = config.channels
        try:
            stream = sd.InputStream(
                device=config.audio_device,
                channels=config.channels,
                samplerate=config.sample_rate,
                blocksize=config.audio_block_size,
                dtype="float32",
                callback=self._callback,
            )
            stream.start()
        except Exception as exc:
            self._sink = None
            raise CaptureBackendError(f"failed to open audio device {config.audio_device!r}: {exc}") from exc

        self._sample_rate = int(stream.samplerate)
        self._channels = int(stream.channels)
        if self._sample_rate != config.sample_rate:
            self._logger.info(
                "Audio sample rate adjusted from %d to %d",
                config.sample_rate,
                self._sample_rate,
            )
        self._stream = stream
        self._logger.info(
            "Audio input started (device=%s, %d Hz, %d ch)",
            config.audio_device,
            self._sample_rate,
            self._channels,
        )

    def stop(self) -> None:
        stream = self._stream
        if stream is None:
            return
        self._stream = None
        self._sink = None
        try:
            stream.stop()
        finally:
            with contextlib.suppress(Exception):
                stream.close()
        self._logger.info("Audio input stopped")

    def _callback(self, indata, frames: int, time_info, status: sd.CallbackFlags) -> None:
        if status:
            status_str = str(status)
            if status_str != self._last_status:
                self._logger.warning("Audio callback status: %s", status_str)
                self._last_status = status_str

        sink = self._sink
        if sink is None:
            return
        self._chunk_number += 1
        sink.on_audio(
            AudioChunk(
                data=indata.copy(),
                sample_rate=self._sample_rate,
                channels=self._channels,
                chunk_number=self._chunk_number,
            )
        )


__all__ = ["SoundDeviceAudioInput"]
