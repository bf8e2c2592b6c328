"""Tests for ReadingAggregator and the reading types."""

import asyncio
import itertools

import pytest

from capture_reader.recognition.aggregator import ReadingAggregator
from capture_reader.recognition.regions import ReadingField
from capture_reader.recognition.results import (
    CompletedReading,
    Reading,
    RecognitionResult,
    normalize_value,
)

from conftest import wait_for_condition

TENS = ReadingField.TENS_DIGIT
PRIMARY = ReadingField.PRIMARY_DIGIT
FRACTION = ReadingField.FRACTIONAL_DIGIT
ALL_FIELDS = (TENS, PRIMARY, FRACTION)


def _ok(frame_id, field, value):
    return RecognitionResult(frame_id=frame_id, field=field, value=value, success=True)


class TestReading:
    def test_display_string(self):
        reading = Reading({TENS: "3", PRIMARY: "2", FRACTION: "5"})
        assert reading.display_string == "32.5"

    def test_missing_fields_default_to_zero(self):
        assert Reading().display_string == "00.0"
        assert Reading({FRACTION: "7"}).display_string == "00.7"

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError):
            Reading({"hundreds": "1"})

    def test_values_are_read_only(self):
        reading = Reading({TENS: "3"})
        with pytest.raises(TypeError):
            reading.values[TENS] = "9"

    @pytest.mark.parametrize(("raw", "expected"), [(" 3\n", "3"), ("", "0"), ("  ", "0"), (None, "0"), ("1 2", "12")])
    def test_normalize_value(self, raw, expected):
        assert normalize_value(raw) == expected


class TestReadingAggregator:
    """Per-frame merging of out-of-order results."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("order", list(itertools.permutations(ALL_FIELDS)))
    async def test_any_delivery_order_gives_same_reading(self, order):
        completed = []
        aggregator = ReadingAggregator(completed.append)
        aggregator.begin(1, ALL_FIELDS)
        values = {TENS: "3", PRIMARY: "2", FRACTION: "5"}
        for field in order:
            assert aggregator.submit(_ok(1, field, values[field]))

        assert [reading.display_string for reading in completed] == ["32.5"]
        assert not completed[0].timed_out
        assert aggregator.in_flight == 0

    @pytest.mark.asyncio
    async def test_failed_field_is_zero(self):
        completed = []
        aggregator = ReadingAggregator(completed.append)
        aggregator.begin(1, ALL_FIELDS)
        aggregator.submit(_ok(1, TENS, "0"))
        aggregator.submit(RecognitionResult.failed(1, PRIMARY))
        aggregator.submit(_ok(1, FRACTION, "7"))

        assert completed[0].display_string == "00.7"

    @pytest.mark.asyncio
    async def test_fields_not_pending_are_predefaulted(self):
        completed = []
        aggregator = ReadingAggregator(completed.append)
        aggregator.begin(1, {TENS, FRACTION})
        assert aggregator.pending_fields(1) == {TENS, FRACTION}
        aggregator.submit(_ok(1, TENS, "4"))
        aggregator.submit(_ok(1, FRACTION, "1"))

        assert completed[0].display_string == "40.1"

    @pytest.mark.asyncio
    async def test_empty_pending_set_completes_immediately(self):
        completed = []
        aggregator = ReadingAggregator(completed.append)
        aggregator.begin(1, ())
        assert completed == [CompletedReading(frame_id=1, reading=Reading())]
        assert aggregator.in_flight == 0

    @pytest.mark.asyncio
    async def test_overlapping_frames_do_not_cross(self):
        completed = []
        aggregator = ReadingAggregator(completed.append)
        aggregator.begin(1, ALL_FIELDS)
        aggregator.begin(2, ALL_FIELDS)
        assert aggregator.in_flight == 2

        aggregator.submit(_ok(2, FRACTION, "9"))
        aggregator.submit(_ok(1, TENS, "3"))
        aggregator.submit(_ok(2, TENS, "1"))
        aggregator.submit(_ok(1, PRIMARY, "2"))
        aggregator.submit(_ok(2, PRIMARY, "8"))
        aggregator.submit(_ok(1, FRACTION, "5"))

        by_frame = {reading.frame_id: reading.display_string for reading in completed}
        assert by_frame == {1: "32.5", 2: "18.9"}
        assert [reading.frame_id for reading in completed] == [2, 1]

    @pytest.mark.asyncio
    async def test_results_for_unknown_or_finished_frames_discarded(self):
        completed = []
        aggregator = ReadingAggregator(completed.append)
        assert not aggregator.submit(_ok(5, TENS, "1"))

        aggregator.begin(1, {TENS})
        assert aggregator.submit(_ok(1, TENS, "1"))
        assert not aggregator.submit(_ok(1, TENS, "2"))
        assert len(completed) == 1
        assert aggregator.discarded == 2

    @pytest.mark.asyncio
    async def test_duplicate_field_in_open_frame_discarded(self):
        completed = []
        aggregator = ReadingAggregator(completed.append)
        aggregator.begin(1, {TENS, PRIMARY})
        assert aggregator.submit(_ok(1, TENS, "1"))
        assert not aggregator.submit(_ok(1, TENS, "9"))
        aggregator.submit(_ok(1, PRIMARY, "2"))
        assert completed[0].display_string == "12.0"

    @pytest.mark.asyncio
    async def test_frame_ids_must_increase(self):
        aggregator = ReadingAggregator()
        aggregator.begin(3, ALL_FIELDS)
        with pytest.raises(ValueError):
            aggregator.begin(3, ALL_FIELDS)
        with pytest.raises(ValueError):
            aggregator.begin(2, ALL_FIELDS)
        aggregator.reset()

    @pytest.mark.asyncio
    async def test_timeout_defaults_pending_fields(self):
        completed = []
        aggregator = ReadingAggregator(completed.append, timeout=0.05)
        aggregator.begin(1, ALL_FIELDS)
        aggregator.submit(_ok(1, TENS, "3"))

        await wait_for_condition(lambda: completed)
        assert completed[0].display_string == "30.0"
        assert completed[0].timed_out
        assert aggregator.timeouts == 1
        assert not aggregator.submit(_ok(1, PRIMARY, "2"))

    @pytest.mark.asyncio
    async def test_completion_cancels_timeout(self):
        completed = []
        aggregator = ReadingAggregator(completed.append, timeout=0.05)
        aggregator.begin(1, {TENS})
        aggregator.submit(_ok(1, TENS, "3"))
        await asyncio.sleep(0.1)

        assert len(completed) == 1
        assert aggregator.timeouts == 0

    @pytest.mark.asyncio
    async def test_reset_discards_without_completing(self):
        completed = []
        aggregator = ReadingAggregator(completed.append, timeout=0.05)
        aggregator.begin(1, ALL_FIELDS)
        aggregator.begin(2, ALL_FIELDS)
        assert aggregator.reset() == 2
        assert aggregator.in_flight == 0

        assert not aggregator.submit(_ok(1, TENS, "3"))
        await asyncio.sleep(0.1)
        assert completed == []

    @pytest.mark.asyncio
    async def test_submit_from_worker_thread(self):
        completed = []
        aggregator = ReadingAggregator(completed.append, timeout=0.2)
        aggregator.begin(1, ALL_FIELDS)
        loop = asyncio.get_running_loop()
        for field, value in ((TENS, "6"), (PRIMARY, "1"), (FRACTION, "2")):
            await loop.run_in_executor(None, aggregator.submit, _ok(1, field, value))

        assert completed[0].display_string == "61.2"
        await asyncio.sleep(0.3)
        assert len(completed) == 1
        assert aggregator.timeouts == 0

    @pytest.mark.asyncio
    async def test_completion_handler_error_is_contained(self):
        def explode(reading):
            raise RuntimeError("handler bug")

        aggregator = ReadingAggregator(explode)
        aggregator.begin(1, {TENS})
        assert aggregator.submit(_ok(1, TENS, "1"))
        assert aggregator.in_flight == 0
