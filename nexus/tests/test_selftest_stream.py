"""Tests for the SSE self-test endpoint and its parameter clamping."""

import asyncio
import json
import time

import pytest

from nexus.config import get_settings
from nexus.streaming.selftest import TickParams, clamp_tick_params, tick_fragments


def sse_frames(text):
    return [
        json.loads(block[len("data: "):])
        for block in text.split("\n\n")
        if block.startswith("data: ")
    ]


class TestClampTickParams:
    def test_values_within_bounds_are_kept(self):
        assert clamp_tick_params(5, 10) == TickParams(count=5, interval_ms=10)

    def test_count_is_capped(self):
        assert clamp_tick_params(9999, 100).count == 200

    def test_interval_is_floored(self):
        assert clamp_tick_params(5, 0).interval_ms == 10
        assert clamp_tick_params(5, -50).interval_ms == 10

    def test_negative_count_becomes_zero(self):
        assert clamp_tick_params(-3, 100).count == 0

    def test_custom_limits(self):
        assert clamp_tick_params(50, 1, max_count=20, min_interval_ms=25) == TickParams(20, 25)


@pytest.mark.asyncio
async def test_tick_fragments_yields_numbered_ticks():
    ticks = [t async for t in tick_fragments(TickParams(3, 1), asyncio.Event())]

    assert ticks == ["tick-1", "tick-2", "tick-3"]


@pytest.mark.asyncio
async def test_tick_fragments_stops_once_cancelled():
    cancelled = asyncio.Event()
    ticks = []
    async for tick in tick_fragments(TickParams(10, 1), cancelled):
        ticks.append(tick)
        cancelled.set()

    assert ticks == ["tick-1"]


class TestSelfTestEndpoint:
    def test_streams_count_ticks_then_done(self, client, auth_headers):
        started = time.monotonic()
        response = client.get("/api/debug/sse?count=5&intervalMs=10", headers=auth_headers)
        elapsed = time.monotonic() - started

        assert response.status_code == 200
        frames = sse_frames(response.text)
        assert [f["type"] for f in frames] == ["start"] + ["chunk"] * 5 + ["done"]
        chunks = [f for f in frames if f["type"] == "chunk"]
        assert [c["index"] for c in chunks] == [1, 2, 3, 4, 5]
        assert [c["content"] for c in chunks] == [f"tick-{i}" for i in range(1, 6)]
        assert elapsed >= 0.05
        assert elapsed < 2.0

    def test_response_headers(self, client, auth_headers):
        response = client.get("/api/debug/sse?count=1&intervalMs=10", headers=auth_headers)

        assert response.headers["content-type"].startswith("text/event-stream")
        assert "no-cache" in response.headers["cache-control"]
        assert response.headers["x-accel-buffering"] == "no"
        assert "x-request-id" in response.headers
        assert response.text.startswith(":\n\n")

    def test_zero_count_sends_start_and_done(self, client, auth_headers):
        response = client.get("/api/debug/sse?count=0&intervalMs=10", headers=auth_headers)

        assert [f["type"] for f in sse_frames(response.text)] == ["start", "done"]

    @pytest.mark.slow
    def test_count_is_capped_at_maximum(self, client, auth_headers):
        response = client.get("/api/debug/sse?count=9999&intervalMs=10", headers=auth_headers)

        chunks = [f for f in sse_frames(response.text) if f["type"] == "chunk"]
        assert len(chunks) == 200
        assert chunks[-1]["index"] == 200

    def test_configured_cap_applies(self, client, auth_headers, monkeypatch):
        monkeypatch.setenv("SSE_SELFTEST_MAX_COUNT", "3")
        get_settings.cache_clear()

        response = client.get("/api/debug/sse?count=50&intervalMs=1", headers=auth_headers)

        chunks = [f for f in sse_frames(response.text) if f["type"] == "chunk"]
        assert len(chunks) == 3

    def test_requires_authentication(self, client):
        response = client.get("/api/debug/sse?count=1&intervalMs=10")

        assert response.status_code == 401
        assert not response.headers["content-type"].startswith("text/event-stream")
        assert response.json()["error"]["code"] == "E2000"

    def test_disabled_selftest_is_not_found(self, client, auth_headers, monkeypatch):
        monkeypatch.setenv("SSE_SELFTEST_ENABLED", "false")
        get_settings.cache_clear()

        response = client.get("/api/debug/sse", headers=auth_headers)

        assert response.status_code == 404
