"""
Tests for the probers.

TCP and HTTP probes run against throwaway servers on 127.0.0.1; every
failure mode must come back as an offline Observation, never an exception.
"""

import asyncio
import random
import socket
import time

import pytest
from aiohttp import web

from uptime_tracker.models import Observation, TargetConfig
from uptime_tracker.prober import (
    FallbackProber,
    HttpProber,
    Prober,
    SimulatedProber,
    TcpProber,
    build_prober,
    probe,
)


def _free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class _Fixed(Prober):
    def __init__(self, observation: Observation) -> None:
        self.observation = observation
        self.calls = 0

    async def probe(self) -> Observation:
        self.calls += 1
        return self.observation


# ─── TCP ──────────────────────────────────────────────────────


class TestTcpProber:
    def test_open_port_is_online(self):
        async def scenario():
            server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
            port = server.sockets[0].getsockname()[1]
            async with server:
                return await TcpProber("127.0.0.1", port, timeout=2).probe()

        result = asyncio.run(scenario())
        assert result.online is True
        assert result.latency_ms is not None and result.latency_ms >= 0
        assert result.error is None

    def test_closed_port_is_offline(self):
        result = asyncio.run(TcpProber("127.0.0.1", _free_port(), timeout=2).probe())
        assert result.online is False
        assert result.latency_ms is None
        assert result.error

    def test_unencodable_host_name_is_offline(self):
        host = "a" * 64 + ".example"
        result = asyncio.run(TcpProber(host, 22, timeout=2).probe())
        assert result.online is False
        assert result.error

    def test_slow_close_stays_within_timeout(self, monkeypatch):
        class SlowCloseWriter:
            def close(self):
                pass

            async def wait_closed(self):
                await asyncio.sleep(10)

        async def connect(*args, **kwargs):
            return None, SlowCloseWriter()

        monkeypatch.setattr(asyncio, "open_connection", connect)
        started = time.perf_counter()
        result = asyncio.run(TcpProber("127.0.0.1", 22, timeout=0.2).probe())
        assert result.online is True
        assert time.perf_counter() - started < 1

    def test_timeout(self, monkeypatch):
        async def hang(*args, **kwargs):
            await asyncio.sleep(10)

        monkeypatch.setattr(asyncio, "open_connection", hang)
        result = asyncio.run(TcpProber("127.0.0.1", 22, timeout=0.05).probe())
        assert result == Observation(online=False, error="timeout")


# ─── HTTP ─────────────────────────────────────────────────────


async def _serve(status: int, delay: float = 0):
    async def handler(request):
        if delay:
            await asyncio.sleep(delay)
        return web.Response(status=status)

    app = web.Application()
    app.router.add_route("*", "/", handler)
    runner = web.AppRunner(app)
    await runner.setup()
    port = _free_port()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    return runner, f"http://127.0.0.1:{port}/"


class TestHttpProber:
    @pytest.mark.parametrize("status", [200, 301, 404])
    def test_answers_below_500_are_online(self, status):
        async def scenario():
            runner, url = await _serve(status)
            try:
                return await HttpProber(url, timeout=2).probe()
            finally:
                await runner.cleanup()

        result = asyncio.run(scenario())
        assert result.online is True
        assert result.latency_ms is not None

    def test_server_error_is_offline(self):
        async def scenario():
            runner, url = await _serve(503)
            try:
                return await HttpProber(url, timeout=2).probe()
            finally:
                await runner.cleanup()

        assert asyncio.run(scenario()) == Observation(online=False, error="HTTP 503")

    def test_slow_server_times_out(self):
        async def scenario():
            runner, url = await _serve(200, delay=2)
            try:
                return await HttpProber(url, timeout=0.1).probe()
            finally:
                await runner.cleanup()

        assert asyncio.run(scenario()) == Observation(online=False, error="timeout")

    def test_unencodable_host_name_is_offline(self):
        url = "https://" + "a" * 64 + ".example/"
        result = asyncio.run(HttpProber(url, timeout=2).probe())
        assert result.online is False
        assert result.error

    def test_connection_refused_is_offline(self):
        url = f"http://127.0.0.1:{_free_port()}/"
        result = asyncio.run(HttpProber(url, timeout=2).probe())
        assert result.online is False
        assert result.error


# ─── Composite / simulated ────────────────────────────────────


class TestSimulatedProber:
    def test_latency_in_range(self):
        prober = SimulatedProber(rng=random.Random(3))
        for _ in range(50):
            result = asyncio.run(prober.probe())
            assert result.online is True
            assert 127 <= result.latency_ms <= 3214


class TestFallbackProber:
    def test_primary_success_skips_fallback(self):
        primary = _Fixed(Observation(online=True, latency_ms=5))
        fallback = _Fixed(Observation(online=True, latency_ms=9))
        result = asyncio.run(FallbackProber(primary, fallback).probe())
        assert result.latency_ms == 5
        assert fallback.calls == 0

    def test_fallback_used_when_primary_fails(self):
        primary = _Fixed(Observation(online=False, error="timeout"))
        fallback = _Fixed(Observation(online=True, latency_ms=9))
        result = asyncio.run(FallbackProber(primary, fallback).probe())
        assert result == Observation(online=True, latency_ms=9)

    def test_primary_error_reported_when_both_fail(self):
        primary = _Fixed(Observation(online=False, error="Connection refused"))
        fallback = _Fixed(Observation(online=False, error="HTTP 502"))
        result = asyncio.run(FallbackProber(primary, fallback).probe())
        assert result.error == "Connection refused"


class TestBuildProber:
    def test_tcp(self):
        prober = build_prober(TargetConfig(host="h", port=2222, timeout=3))
        assert isinstance(prober, TcpProber)
        assert (prober.host, prober.port, prober.timeout) == ("h", 2222, 3)

    def test_http(self):
        prober = build_prober(TargetConfig(method="http", url="http://h/"))
        assert isinstance(prober, HttpProber)
        assert prober.url == "http://h/"

    def test_fallback_splits_timeout(self):
        prober = build_prober(TargetConfig(method="tcp", fallback="http", timeout=4))
        assert isinstance(prober, FallbackProber)
        assert prober.primary.timeout == 2
        assert prober.fallback.timeout == 2

    def test_explicit_timeout_overrides_target(self):
        assert build_prober(TargetConfig(timeout=5), timeout=1).timeout == 1

    def test_unknown_method(self):
        with pytest.raises(ValueError):
            build_prober(TargetConfig(method="carrier-pigeon"))

    def test_probe_function_runs_configured_strategy(self):
        result = asyncio.run(probe(TargetConfig(method="simulated")))
        assert result.online is True
