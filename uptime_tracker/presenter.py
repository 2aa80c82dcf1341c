"""
Presenter — human-readable text for ledger fields.

Read-only: nothing here changes a Ledger. Times are rendered in UTC.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import List, Optional

from uptime_tracker.ledger import uptime_percent
from uptime_tracker.models import Incident, Ledger, Status, format_timestamp, to_utc


def format_duration(seconds: float) -> str:
    """Compact duration: "2h 5m", "3m 7s" or "42s"."""
    seconds = max(0.0, seconds)
    hours = math.floor(seconds / 3600)
    minutes = math.floor((seconds % 3600) / 60)
    secs = math.floor(seconds % 60)

    if hours > 0:
        return f"{hours}h {minutes}m"
    elif minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_relative_time(ts: Optional[datetime], now: Optional[datetime] = None) -> str:
    """How long ago ``ts`` was, e.g. "12s ago" or "3h ago"; "never" if absent."""
    if ts is None:
        return "never"
    now = to_utc(now) if now is not None else datetime.now(timezone.utc)
    diff_seconds = max(0, math.floor((now - to_utc(ts)).total_seconds()))
    diff_minutes = diff_seconds // 60
    diff_hours = diff_minutes // 60
    diff_days = diff_hours // 24

    if diff_seconds < 60:
        return f"{diff_seconds}s ago"
    elif diff_minutes < 60:
        return f"{diff_minutes}m ago"
    elif diff_hours < 24:
        return f"{diff_hours}h ago"
    return f"{diff_days}d ago"


def format_datetime(ts: datetime) -> str:
    """Short UTC date-time, e.g. "Nov 20, 02:00 PM"."""
    ts = to_utc(ts)
    return f"{ts:%b} {ts.day}, {ts:%I:%M %p}"


def format_uptime(ledger: Ledger) -> str:
    """Uptime percentage to one decimal place."""
    percent = uptime_percent(ledger)
    return f"{percent if percent is not None else 0.0:.1f}%"


def status_headline(ledger: Ledger, name: str) -> str:
    if ledger.last_status is Status.ONLINE:
        return f"{name} is online"
    elif ledger.last_status is Status.OFFLINE:
        return f"{name} is offline"
    return "Checking status..."


def response_text(ledger: Ledger) -> str:
    """Latency of the last check, or why it failed."""
    if ledger.latency:
        return f"{ledger.latency:g}ms"
    elif ledger.last_status is Status.ONLINE:
        return "< 1s"
    elif ledger.last_status is Status.OFFLINE:
        return ledger.error or "failed"
    return "—"


def _has_data(ledger: Ledger) -> bool:
    return ledger.total_up_seconds > 0 or ledger.total_down_seconds > 0


def uptime_summary(ledger: Ledger) -> str:
    """'Uptime: 99.5% | Current streak: 1h 2m online', or '' before any data."""
    if not _has_data(ledger):
        return ""
    streak = format_duration(ledger.current_streak_seconds)
    current = "online" if ledger.last_status is Status.ONLINE else "offline"
    return f"Uptime: {format_uptime(ledger)} | Current streak: {streak} {current}"


def outage_summary(ledger: Ledger) -> str:
    outages = ledger.total_outages
    plural = "" if outages == 1 else "s"
    return f"{outages} outage{plural} • {format_duration(ledger.total_down_seconds)} total downtime"


def format_incident(incident: Incident) -> str:
    return (
        f"{format_datetime(incident.start_time)} - {format_datetime(incident.end_time)}"
        f" (downtime {format_duration(incident.duration)})"
    )


def summary_line(ledger: Ledger) -> str:
    """One-line digest for console logs."""
    last_up = format_timestamp(ledger.last_online) or "never"
    return (
        f"Last up: {last_up} | "
        f"Current streak: {ledger.current_streak_seconds:.0f}s | "
        f"Total up: {round(ledger.total_up_seconds)}s | "
        f"Total down: {round(ledger.total_down_seconds)}s | "
        f"Outages: {ledger.total_outages}"
    )


def render_text(ledger: Ledger, name: str, now: Optional[datetime] = None) -> str:
    """
    Full plain-text status report: headline, last check and response,
    uptime summary and the retained downtime incidents.
    """
    lines: List[str] = [
        status_headline(ledger, name),
        f"Last check: {format_relative_time(ledger.last_checked, now)}"
        f" | Response: {response_text(ledger)}",
    ]

    summary = uptime_summary(ledger)
    if summary:
        lines.append(summary)
        lines.append(outage_summary(ledger))

    if ledger.downtime_incidents:
        lines.append("Recent downtime:")
        lines.extend(f"  {format_incident(inc)}" for inc in ledger.downtime_incidents)

    return "\n".join(lines)
