"""
Tests for the LedgerMonitor cycle.

Uses scripted probers and clocks so each cycle's load -> probe -> apply ->
save can be checked against the store.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List

from uptime_tracker.models import CONNECTION_FAILED, Ledger, Observation, Status, TargetConfig, TrackerSettings
from uptime_tracker.monitor import LedgerMonitor
from uptime_tracker.prober import Prober
from uptime_tracker.store import JsonFileStore, MemoryStore

T0 = datetime(2025, 11, 20, 14, 0, 0, tzinfo=timezone.utc)


class ScriptedProber(Prober):
    def __init__(self, *observations: Observation, delay: float = 0) -> None:
        self._observations = list(observations)
        self.delay = delay

    async def probe(self) -> Observation:
        if self.delay:
            await asyncio.sleep(self.delay)
        return self._observations.pop(0)


class StepClock:
    """Returns T0, T0+step, T0+2*step, ..."""

    def __init__(self, step: float = 60) -> None:
        self.step = step
        self.ticks = 0

    def __call__(self) -> datetime:
        now = T0 + timedelta(seconds=self.step * self.ticks)
        self.ticks += 1
        return now


class FlakyStore(MemoryStore):
    """Fails the first ``failures`` saves."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.loads = 0

    def load(self) -> Ledger:
        self.loads += 1
        return super().load()

    def save(self, ledger: Ledger) -> bool:
        if self.failures:
            self.failures -= 1
            return False
        return super().save(ledger)


def _monitor(prober, store, clock=None, **settings) -> LedgerMonitor:
    return LedgerMonitor(
        TargetConfig(name="Test host", poll_interval=1),
        TrackerSettings(**settings),
        prober,
        store,
        clock=clock or StepClock(),
    )


ONLINE = Observation(online=True, latency_ms=10)
OFFLINE = Observation(online=False, error="timeout")


class TestRunCycle:
    def test_single_cycle_persists_ledger(self, tmp_path):
        store = JsonFileStore(tmp_path / "status.json")
        monitor = _monitor(ScriptedProber(ONLINE), store)

        result = asyncio.run(monitor.run_cycle())

        assert result.saved is True
        assert result.observation == ONLINE
        assert result.ledger.last_status is Status.ONLINE
        assert store.load() == result.ledger

    def test_outage_and_recovery_across_cycles(self):
        store = MemoryStore()
        monitor = _monitor(ScriptedProber(ONLINE, OFFLINE, OFFLINE, ONLINE), store)

        async def scenario():
            for _ in range(4):
                await monitor.run_cycle()

        asyncio.run(scenario())
        ledger = store.load()
        assert ledger.total_up_seconds == 60
        assert ledger.total_down_seconds == 120
        assert ledger.total_outages == 1
        assert ledger.downtime_incidents[0].duration == 120

    def test_new_monitor_resumes_from_store(self, tmp_path):
        path = tmp_path / "status.json"
        clock = StepClock()
        asyncio.run(_monitor(ScriptedProber(ONLINE), JsonFileStore(path), clock).run_cycle())
        result = asyncio.run(_monitor(ScriptedProber(ONLINE), JsonFileStore(path), clock).run_cycle())
        assert result.ledger.total_up_seconds == 60
        assert result.ledger.current_streak_seconds == 60

    def test_failed_save_keeps_ledger_in_memory(self, capsys):
        store = FlakyStore(failures=1)
        monitor = _monitor(ScriptedProber(ONLINE, ONLINE), store)

        async def scenario():
            first = await monitor.run_cycle()
            assert first.saved is False
            assert monitor.current() == first.ledger
            return await monitor.run_cycle()

        second = asyncio.run(scenario())
        assert second.saved is True
        # The unsaved first ledger was the starting point, not the store's default
        assert second.ledger.total_up_seconds == 60
        assert store.loads == 1
        assert store.load() == second.ledger

    def test_cycles_do_not_interleave(self):
        store = MemoryStore()
        monitor = _monitor(ScriptedProber(ONLINE, ONLINE, delay=0.01), store)

        async def scenario():
            return await asyncio.gather(monitor.run_cycle(), monitor.run_cycle())

        first, second = asyncio.run(scenario())
        # The second cycle saw the first one's ledger
        assert second.ledger.total_up_seconds == 60
        assert store.load() == second.ledger

    def test_check_is_stamped_before_probing(self):
        clock = StepClock()
        seen_ticks: List[int] = []

        class Recording(Prober):
            async def probe(self):
                seen_ticks.append(clock.ticks)
                return ONLINE

        result = asyncio.run(_monitor(Recording(), MemoryStore(), clock).run_cycle())
        assert seen_ticks == [1]
        assert result.ledger.last_checked == T0

    def test_missing_error_prints_default_text(self, capsys):
        monitor = _monitor(ScriptedProber(Observation(online=False)), MemoryStore())
        result = asyncio.run(monitor.run_cycle())
        assert result.ledger.error == CONNECTION_FAILED
        assert f"({CONNECTION_FAILED})" in capsys.readouterr().out

    def test_debug_prints_digest(self, capsys):
        monitor = _monitor(ScriptedProber(OFFLINE), MemoryStore(), log_level="DEBUG")
        asyncio.run(monitor.run_cycle())
        out = capsys.readouterr().out
        assert "OFFLINE" in out
        assert "Outages: 0" in out


class TestStartLoop:
    def test_loop_runs_until_cancelled(self):
        store = MemoryStore()
        observations: List[Observation] = [ONLINE] * 100
        monitor = _monitor(ScriptedProber(*observations), store)
        monitor.target.poll_interval = 0.01

        async def scenario():
            task = asyncio.create_task(monitor.start())
            await asyncio.sleep(0.05)
            task.cancel()
            await task

        asyncio.run(scenario())
        assert store.load().last_status is Status.ONLINE

    def test_unexpected_error_backs_off(self, capsys, monkeypatch):
        class Broken(Prober):
            calls = 0

            async def probe(self):
                self.calls += 1
                if self.calls > 2:
                    raise asyncio.CancelledError
                raise RuntimeError("boom")

        monitor = _monitor(Broken(), MemoryStore())
        sleeps: List[float] = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        monkeypatch.setattr("uptime_tracker.monitor.asyncio.sleep", fake_sleep)
        asyncio.run(monitor.start())

        out = capsys.readouterr().out
        assert "boom" in out
        assert "attempt 1" in out
        assert 2 <= sleeps[0] <= 3
        assert 4 <= sleeps[1] <= 6


class TestBackoff:
    def test_capped(self):
        monitor = _monitor(ScriptedProber(), MemoryStore(), base_backoff=100, max_retries=10)
        monitor._consecutive_errors = 10
        assert monitor._backoff_delay() == 300.0
