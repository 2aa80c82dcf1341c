"""
Reachability probers.

Every strategy exposes ``async probe() -> Observation`` and folds its own
transport failures (timeout, refused connection, DNS failure, HTTP errors)
into an offline Observation, so nothing here ever raises into the ledger
engine. Each check is bounded by the configured timeout.
"""

from __future__ import annotations

import asyncio
import random
import time
from typing import Optional

import aiohttp

from uptime_tracker.models import Observation, TargetConfig

TIMEOUT_ERROR = "timeout"

# Latency range reported by the simulated prober (ms, inclusive)
_SIMULATED_LATENCY = (127, 3214)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 1)


def _describe(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class Prober:
    """Interface shared by all probing strategies."""

    async def probe(self) -> Observation:
        raise NotImplementedError


class TcpProber(Prober):
    """Checks that a TCP connection to host:port can be opened."""

    def __init__(self, host: str, port: int, timeout: float) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout

    async def probe(self) -> Observation:
        started = time.perf_counter()
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            return Observation(online=False, error=TIMEOUT_ERROR)
        except (OSError, ValueError) as exc:
            # ValueError: host name rejected by the resolver (e.g. bad IDNA label)
            return Observation(online=False, error=_describe(exc))

        latency = _elapsed_ms(started)
        writer.close()
        remaining = max(0.0, self.timeout - (time.perf_counter() - started))
        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=remaining)
        except (asyncio.TimeoutError, OSError):
            pass  # the connect already succeeded
        return Observation(online=True, latency_ms=latency)


class HttpProber(Prober):
    """
    Sends an HTTP HEAD request.

    Any answer below 500 (including redirects and 4xx) means the host is up;
    5xx responses and transport failures mean it is down.
    """

    def __init__(
        self,
        url: str,
        timeout: float,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.session = session

    async def probe(self) -> Observation:
        if self.session is not None:
            return await self._head(self.session)
        async with aiohttp.ClientSession() as session:
            return await self._head(session)

    async def _head(self, session: aiohttp.ClientSession) -> Observation:
        started = time.perf_counter()
        try:
            async with session.head(
                self.url,
                allow_redirects=False,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                status = resp.status
        except asyncio.TimeoutError:
            return Observation(online=False, error=TIMEOUT_ERROR)
        except aiohttp.ClientError as exc:
            return Observation(online=False, error=_describe(exc))
        except (OSError, ValueError) as exc:
            return Observation(online=False, error=_describe(exc))

        if 200 <= status < 500:
            return Observation(online=True, latency_ms=_elapsed_ms(started))
        return Observation(online=False, error=f"HTTP {status}")


class SimulatedProber(Prober):
    """Always online with a random plausible latency; for offline demos."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    async def probe(self) -> Observation:
        low, high = _SIMULATED_LATENCY
        return Observation(online=True, latency_ms=float(self._rng.randint(low, high)))


class FallbackProber(Prober):
    """Runs ``primary``; if it reports offline, asks ``fallback`` instead."""

    def __init__(self, primary: Prober, fallback: Prober) -> None:
        self.primary = primary
        self.fallback = fallback

    async def probe(self) -> Observation:
        first = await self.primary.probe()
        if first.online:
            return first
        second = await self.fallback.probe()
        if second.online:
            return second
        return first


def _single_prober(
    method: str,
    target: TargetConfig,
    timeout: float,
    session: Optional[aiohttp.ClientSession],
) -> Prober:
    method = method.lower()
    if method == "tcp":
        return TcpProber(target.host, target.port, timeout)
    if method == "http":
        return HttpProber(target.http_url, timeout, session=session)
    if method == "simulated":
        return SimulatedProber()
    raise ValueError(f"Unknown probe method: {method!r}")


def build_prober(
    target: TargetConfig,
    timeout: Optional[float] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> Prober:
    """
    Create the prober configured for ``target`` (with its fallback, if any).

    With a fallback the timeout is split evenly between the two stages so a
    whole check still finishes within ``timeout``.
    """
    timeout = target.timeout if timeout is None else timeout
    if not target.fallback:
        return _single_prober(target.method, target, timeout, session)
    stage_timeout = timeout / 2
    return FallbackProber(
        _single_prober(target.method, target, stage_timeout, session),
        _single_prober(target.fallback, target, stage_timeout, session),
    )


async def probe(
    target: TargetConfig,
    timeout: Optional[float] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> Observation:
    """Run one reachability check against ``target``."""
    return await build_prober(target, timeout, session).probe()
