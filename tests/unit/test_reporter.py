"""Tests for the reading reporters, against a local aiohttp server."""

from __future__ import annotations

import asyncio
import contextlib
import socket
from typing import AsyncIterator

import pytest
from aiohttp import web
from aiohttp import test_utils

from capture_reader.reporting.reporter import (
    DEFAULT_ENDPOINT,
    HttpReadingReporter,
    LoggingReadingReporter,
    ReadingReporter,
    reading_payload,
)

ENDPOINT_PATH = "/wind_speed_hayamas/1.json"


class RecordingEndpoint:
    """PATCH handler that records request bodies."""

    def __init__(self, status: int = 200, delay: float = 0.0) -> None:
        self.status = status
        self.delay = delay
        self.bodies: list = []
        self.content_types: list[str] = []

    async def handle(self, request: web.Request) -> web.Response:
        self.content_types.append(request.content_type)
        self.bodies.append(await request.json())
        if self.delay:
            await asyncio.sleep(self.delay)
        return web.json_response({"ok": self.status < 400}, status=self.status)


@contextlib.asynccontextmanager
async def serve(endpoint: RecordingEndpoint) -> AsyncIterator[str]:
    app = web.Application()
    app.router.add_patch(ENDPOINT_PATH, endpoint.handle)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        yield str(server.make_url(ENDPOINT_PATH))
    finally:
        await server.close()


def _unused_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class TestPayload:
    def test_payload_shape(self):
        assert reading_payload("32.5") == {"wind_speed_hayama": {"speed_string": "32.5"}}

    def test_default_endpoint(self):
        assert DEFAULT_ENDPOINT == "https://mysite-906r.onrender.com/wind_speed_hayamas/1.json"


class TestHttpReadingReporter:
    """PATCH delivery, bounding and failure handling."""

    @pytest.mark.asyncio
    async def test_reading_patched_as_json(self):
        endpoint = RecordingEndpoint()
        async with serve(endpoint) as url:
            reporter = HttpReadingReporter(url)
            assert isinstance(reporter, ReadingReporter)
            reporter.report("32.5")
            assert await reporter.wait_idle(timeout=5.0)
            await reporter.aclose()

        assert endpoint.bodies == [{"wind_speed_hayama": {"speed_string": "32.5"}}]
        assert endpoint.content_types == ["application/json"]
        assert reporter.sent == 1
        assert reporter.failed == 0

    @pytest.mark.asyncio
    async def test_server_error_logged_and_dropped(self, caplog):
        endpoint = RecordingEndpoint(status=500)
        async with serve(endpoint) as url:
            reporter = HttpReadingReporter(url)
            reporter.report("00.7")
            await reporter.wait_idle(timeout=5.0)
            await reporter.aclose()

        assert reporter.failed == 1
        assert reporter.sent == 0
        assert "HTTP 500" in caplog.text

    @pytest.mark.asyncio
    async def test_unreachable_endpoint_does_not_raise(self):
        reporter = HttpReadingReporter(f"http://127.0.0.1:{_unused_port()}{ENDPOINT_PATH}", timeout=2.0)
        reporter.report("11.1")
        await reporter.wait_idle(timeout=5.0)
        await reporter.aclose()
        assert reporter.failed == 1

    @pytest.mark.asyncio
    async def test_excess_readings_dropped_when_requests_in_flight(self):
        endpoint = RecordingEndpoint(delay=0.2)
        async with serve(endpoint) as url:
            reporter = HttpReadingReporter(url, max_in_flight=1)
            reporter.report("10.0")
            reporter.report("20.0")
            await reporter.wait_idle(timeout=5.0)
            reporter.report("30.0")
            await reporter.wait_idle(timeout=5.0)
            await reporter.aclose()

        assert [body["wind_speed_hayama"]["speed_string"] for body in endpoint.bodies] == ["10.0", "30.0"]
        assert reporter.dropped == 1

    @pytest.mark.asyncio
    async def test_changes_only_skips_repeats(self):
        endpoint = RecordingEndpoint()
        async with serve(endpoint) as url:
            reporter = HttpReadingReporter(url, report_changes_only=True)
            for value in ("12.3", "12.3", "12.4", "12.3"):
                reporter.report(value)
                await reporter.wait_idle(timeout=5.0)
            await reporter.aclose()

        assert [body["wind_speed_hayama"]["speed_string"] for body in endpoint.bodies] == ["12.3", "12.4", "12.3"]

    @pytest.mark.asyncio
    async def test_report_after_close_ignored(self):
        endpoint = RecordingEndpoint()
        async with serve(endpoint) as url:
            reporter = HttpReadingReporter(url)
            await reporter.aclose()
            reporter.report("99.9")
            await asyncio.sleep(0.05)

        assert endpoint.bodies == []

    def test_max_in_flight_validated(self):
        with pytest.raises(ValueError):
            HttpReadingReporter(max_in_flight=0)


class TestLoggingReadingReporter:
    @pytest.mark.asyncio
    async def test_logs_readings(self, caplog):
        reporter = LoggingReadingReporter(report_changes_only=True)
        with caplog.at_level("INFO", logger="capture_reader"):
            reporter.report("32.5")
            reporter.report("32.5")
            reporter.report("32.6")
        await reporter.aclose()

        assert reporter.logged == 2
        assert reporter.last_logged == "32.6"
        assert caplog.text.count("Reading 32.5") == 1
        assert "Reading 32.6" in caplog.text

    def test_keeps_no_history(self):
        reporter = LoggingReadingReporter()
        for tenth in range(1000):
            reporter.report(f"00.{tenth % 10}")
        assert reporter.logged == 1000
        assert not hasattr(reporter, "reported")
