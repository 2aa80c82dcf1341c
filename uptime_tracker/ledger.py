"""
Ledger Engine — the status-ledger update algorithm.

``apply`` folds one Observation into the previous Ledger and returns the
next one. It is a pure function of its inputs: the previous ledger is never
mutated and no ambient state is read, so it gives consistent results however
irregularly it is invoked (server loop, manual run, cron).

Accounting rules:
  - Time elapsed since the last check is charged to the PREVIOUS status.
  - A status change resets the streak; the changing check adds no streak time.
  - A downtime incident is recorded only on recovery (offline -> online).
  - All durations are clamped at zero against clock skew.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

from uptime_tracker.models import (
    CONNECTION_FAILED,
    MAX_INCIDENTS,
    Incident,
    Ledger,
    Observation,
    Status,
    to_utc,
)


def new_incident_id() -> str:
    """Fresh unique token for an Incident."""
    return uuid.uuid4().hex


def _seconds_between(start: Optional[datetime], end: datetime) -> float:
    """Non-negative seconds from ``start`` to ``end``; 0 when start is absent."""
    if start is None:
        return 0.0
    return max(0.0, (end - to_utc(start)).total_seconds())


def apply(
    prev: Ledger,
    now: datetime,
    observation: Observation,
    *,
    new_id: Callable[[], str] = new_incident_id,
) -> Ledger:
    """
    Compute the ledger that follows ``prev`` after ``observation`` at ``now``.

    Args:
        prev: Ledger as of the previous check (``Ledger()`` on first run).
        now: When the observation was taken. Naive values are taken as UTC.
        observation: Result of the probe.
        new_id: Factory for incident ids.

    Returns:
        The next Ledger. Fields not touched by the update are carried over.
    """
    now = to_utc(now)
    delta = _seconds_between(prev.last_checked, now)

    total_up = prev.total_up_seconds
    total_down = prev.total_down_seconds
    if prev.last_status is Status.ONLINE:
        total_up += delta
    elif prev.last_status is Status.OFFLINE:
        total_down += delta

    new_status = Status.ONLINE if observation.online else Status.OFFLINE

    last_status_change = prev.last_status_change
    incidents = prev.downtime_incidents
    total_outages = prev.total_outages

    if new_status is not prev.last_status:
        last_status_change = now

        # Recovery: close out the outage that began at the previous change
        if (
            new_status is Status.ONLINE
            and prev.last_status is Status.OFFLINE
            and prev.last_status_change is not None
        ):
            downtime = _seconds_between(prev.last_status_change, now)
            if downtime > 0:
                incident = Incident(
                    start_time=to_utc(prev.last_status_change),
                    end_time=now,
                    duration=int(round(downtime)),
                    id=new_id(),
                )
                incidents = ((incident,) + incidents)[:MAX_INCIDENTS]
                total_outages += 1

        streak = 0.0
    else:
        streak = prev.current_streak_seconds + delta

    return replace(
        prev,
        last_online=now if observation.online else prev.last_online,
        last_status=new_status,
        last_status_change=last_status_change,
        current_streak_seconds=streak,
        total_up_seconds=total_up,
        total_down_seconds=total_down,
        last_checked=now,
        downtime_incidents=incidents,
        total_outages=total_outages,
        latency=observation.latency_ms if observation.online else None,
        error=None if observation.online else (observation.error or CONNECTION_FAILED),
    )


def uptime_percent(ledger: Ledger) -> Optional[float]:
    """Share of accumulated time spent online, or None before any is accumulated."""
    total = ledger.total_up_seconds + ledger.total_down_seconds
    if total <= 0:
        return None
    return ledger.total_up_seconds / total * 100
