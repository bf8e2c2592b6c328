"""Tests for the frame data model."""

import numpy as np
import pytest

from capture_reader.capture.frame import (
    ATTACHMENT_CONTENT_RECT,
    AudioChunk,
    CapturedFrame,
    Rect,
    StreamError,
    StreamStopped,
    VideoFrame,
    is_terminal,
)

from conftest import complete_attachments


class TestRect:
    """Rect geometry helpers."""

    def test_zero_is_empty(self):
        assert Rect.zero().is_empty
        assert Rect(0, 0, 10, 0).is_empty
        assert not Rect(0, 0, 1, 1).is_empty

    def test_edges(self):
        rect = Rect(330, 280, 130, 140)
        assert rect.right == 460
        assert rect.bottom == 420
        assert rect.size == (130, 140)

    def test_contains(self):
        bounds = Rect(0, 0, 960, 540)
        assert bounds.contains(Rect(720, 280, 90, 140))
        assert bounds.contains(bounds)
        assert not bounds.contains(Rect(900, 280, 90, 140))
        assert not bounds.contains(Rect(-1, 0, 10, 10))

    def test_from_value_accepts_sequences_and_mappings(self):
        expected = Rect(1, 2, 3, 4)
        assert Rect.from_value(expected) is expected
        assert Rect.from_value([1, 2, 3, 4]) == expected
        assert Rect.from_value({"x": 1, "y": 2, "width": 3, "height": 4}) == expected

    def test_from_value_rejects_malformed(self):
        with pytest.raises(ValueError):
            Rect.from_value([1, 2, 3])
        with pytest.raises(KeyError):
            Rect.from_value({"x": 1})


class TestCapturedFrame:
    """Valid frames versus the invalid sentinel."""

    def test_invalid_sentinel(self):
        frame = CapturedFrame.INVALID
        assert not frame.is_valid
        assert frame.data is None
        assert frame.content_rect.is_empty
        assert frame.content_scale == 0
        assert frame.scale_factor == 0
        assert frame.image_size == (0, 0)

    def test_partially_populated_frame_rejected(self):
        image = np.zeros((10, 20, 3), dtype=np.uint8)
        with pytest.raises(ValueError):
            CapturedFrame(data=image, content_rect=Rect.zero(), content_scale=1.0, scale_factor=1.0)
        with pytest.raises(ValueError):
            CapturedFrame(data=image, content_rect=Rect(0, 0, 20, 10), content_scale=0.0, scale_factor=1.0)
        with pytest.raises(ValueError):
            CapturedFrame(data=None, content_rect=Rect(0, 0, 20, 10), content_scale=0.0, scale_factor=0.0)

    def test_from_attachments_builds_valid_frame(self):
        image = np.zeros((540, 960, 3), dtype=np.uint8)
        frame = CapturedFrame.from_attachments(image, complete_attachments(), frame_number=7, wall_time=12.5)
        assert frame.is_valid
        assert frame.frame_number == 7
        assert frame.wall_time == 12.5
        assert frame.size == (960, 540)
        assert frame.image_size == (960, 540)

    def test_from_attachments_missing_key_is_invalid(self):
        image = np.zeros((540, 960, 3), dtype=np.uint8)
        attachments = complete_attachments()
        del attachments[ATTACHMENT_CONTENT_RECT]
        assert CapturedFrame.from_attachments(image, attachments) is CapturedFrame.INVALID

    def test_from_attachments_bad_values_are_invalid(self):
        image = np.zeros((540, 960, 3), dtype=np.uint8)
        assert CapturedFrame.from_attachments(image, complete_attachments(content_scale=None)) is CapturedFrame.INVALID
        assert CapturedFrame.from_attachments(image, complete_attachments(scale_factor=0.0)) is CapturedFrame.INVALID
        assert CapturedFrame.from_attachments(None, complete_attachments()) is CapturedFrame.INVALID


class TestEvents:
    """Audio chunks and stream events."""

    def test_audio_chunk_duration(self):
        chunk = AudioChunk(data=np.zeros((480, 2), dtype=np.float32), sample_rate=48000, channels=2)
        assert chunk.samples == 480
        assert chunk.duration_s == pytest.approx(0.01)

    def test_terminal_events(self):
        assert is_terminal(StreamStopped())
        assert is_terminal(StreamError(RuntimeError("x")))
        assert not is_terminal(VideoFrame(buffer=np.zeros((1, 1, 3)), attachments={}))
