"""
Ledger Monitor — runs probe cycles against the ledger store.

A cycle is load -> probe -> apply -> save. Cycles are serialized with an
asyncio.Lock so a timer tick and an on-demand HTTP trigger never interleave
their read-modify-write of the ledger. When a save fails, the unsaved ledger
is kept in memory and used as the starting point of the next cycle.

The lock only covers this process; two processes sharing one state file
(e.g. cron plus a running server) need outside coordination.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from uptime_tracker import ledger as ledger_engine
from uptime_tracker import notifier
from uptime_tracker.models import Ledger, Observation, TargetConfig, TrackerSettings
from uptime_tracker.prober import Prober
from uptime_tracker.store import LedgerStore


@dataclass(frozen=True)
class CycleResult:
    """What one probe cycle observed and the ledger it produced."""

    observation: Observation
    ledger: Ledger
    saved: bool

    def to_dict(self) -> dict:
        return {
            "observation": self.observation.to_dict(),
            "ledger": self.ledger.to_dict(),
            "saved": self.saved,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LedgerMonitor:
    """
    Probes one target and keeps its ledger current.

    Attributes:
        target: What is monitored (name, endpoint, interval).
        settings: Global tracker settings.
        prober: Strategy used for each check.
        store: Where the ledger lives between cycles.
    """

    def __init__(
        self,
        target: TargetConfig,
        settings: TrackerSettings,
        prober: Prober,
        store: LedgerStore,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.target = target
        self.settings = settings
        self.prober = prober
        self.store = store
        self._clock = clock

        self._lock = asyncio.Lock()
        self._unsaved: Optional[Ledger] = None

        # Backoff state
        self._consecutive_errors = 0

    def current(self) -> Ledger:
        """The latest ledger, including one that has not been persisted yet."""
        if self._unsaved is not None:
            return self._unsaved
        return self.store.load()

    async def run_cycle(self) -> CycleResult:
        """Execute exactly one load -> probe -> apply -> save cycle."""
        async with self._lock:
            prev = self.current()
            # Stamped when the check starts
            now = self._clock()
            observation = await self.prober.probe()
            nxt = ledger_engine.apply(prev, now, observation)

            saved = self.store.save(nxt)
            self._unsaved = None if saved else nxt

        notifier.print_cycle(
            self.target.name,
            observation,
            nxt,
            verbose=self.settings.log_level == "DEBUG",
        )
        return CycleResult(observation=observation, ledger=nxt, saved=saved)

    async def start(self) -> None:
        """
        Begin the monitoring loop. Runs indefinitely until cancelled.

        Probe failures are already folded into the ledger; only unexpected
        errors reach the backoff path.
        """
        endpoint = (
            self.target.http_url
            if self.target.method == "http"
            else f"{self.target.host}:{self.target.port}"
        )
        notifier.print_monitoring_start(
            self.target.name,
            endpoint,
            self.target.method,
            self.target.poll_interval,
        )

        while True:
            try:
                await self.run_cycle()
                self._consecutive_errors = 0
                await asyncio.sleep(self.target.poll_interval)
            except asyncio.CancelledError:
                break
            except Exception as exc:
                self._consecutive_errors += 1
                wait = self._backoff_delay()
                notifier.print_error(self.target.name, str(exc))
                notifier.print_retry(
                    self.target.name,
                    self._consecutive_errors,
                    wait,
                )
                await asyncio.sleep(wait)

    def _backoff_delay(self) -> float:
        """
        Calculate exponential backoff with jitter.

        delay = base * 2^(attempts-1) + random jitter
        Capped at 5 minutes.
        """
        exp = min(self._consecutive_errors, self.settings.max_retries)
        base_delay = self.settings.base_backoff * (2 ** (exp - 1))
        jitter = random.uniform(0, base_delay * 0.5)
        return min(base_delay + jitter, 300.0)
