"""
Data models for the uptime tracker.

Defines the persisted Ledger, the downtime Incidents it retains, the
Observation a prober hands to the ledger engine, and the target/settings
configuration objects.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from dateutil import parser as dateutil_parser

# Most recent downtime incidents kept in the ledger
MAX_INCIDENTS = 10

# Error text for a failed check that carried no detail
CONNECTION_FAILED = "connection failed"


class Status(str, Enum):
    """Reachability classification of the target."""

    UNKNOWN = "unknown"
    ONLINE = "online"
    OFFLINE = "offline"

    @classmethod
    def parse(cls, value: Any) -> "Status":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


# ─── Timestamp helpers ────────────────────────────────────────


def to_utc(ts: datetime) -> datetime:
    """Return ``ts`` as an aware UTC datetime (naive values are taken as UTC)."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def format_timestamp(ts: Optional[datetime]) -> Optional[str]:
    """Serialize to a sortable ISO-8601 string, e.g. 2025-11-20T14:00:00.000Z."""
    if ts is None:
        return None
    return to_utc(ts).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp flexibly, returning None when unusable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    try:
        return to_utc(dateutil_parser.isoparse(str(value)))
    except (ValueError, OverflowError, TypeError):
        pass
    try:
        return to_utc(dateutil_parser.parse(str(value)))
    except (ValueError, OverflowError, TypeError):
        return None


def _number(value: Any, default: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number) or number < 0:
        return default
    return number


# ─── Probe results ────────────────────────────────────────────


@dataclass(frozen=True)
class Observation:
    """
    The normalized outcome of one reachability check.

    Attributes:
        online: Whether the target answered.
        latency_ms: Round-trip time of the check, only when online.
        error: Failure detail ("timeout", "Connection refused", ...), only
            when offline.
    """

    online: bool
    latency_ms: Optional[float] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "online": self.online,
            "latencyMs": self.latency_ms,
            "error": self.error,
        }


# ─── Ledger ───────────────────────────────────────────────────


@dataclass(frozen=True)
class Incident:
    """A completed outage, recorded when the target came back online."""

    start_time: datetime
    end_time: datetime
    duration: int  # seconds, rounded
    id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startTime": format_timestamp(self.start_time),
            "endTime": format_timestamp(self.end_time),
            "duration": self.duration,
            "id": self.id,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> Optional["Incident"]:
        """Build an Incident from its stored form, or None if it is unusable."""
        start = parse_timestamp(raw.get("startTime"))
        end = parse_timestamp(raw.get("endTime"))
        if start is None or end is None:
            return None
        return cls(
            start_time=start,
            end_time=end,
            duration=int(round(_number(raw.get("duration")))),
            id=str(raw.get("id", "")),
        )


@dataclass(frozen=True)
class Ledger:
    """
    The single persisted uptime record.

    A default-constructed Ledger is the first-run state: status unknown, no
    timestamps, zero counters and no incidents.
    """

    last_online: Optional[datetime] = None
    last_status: Status = Status.UNKNOWN
    last_status_change: Optional[datetime] = None
    current_streak_seconds: float = 0.0
    total_up_seconds: float = 0.0
    total_down_seconds: float = 0.0
    last_checked: Optional[datetime] = None
    downtime_incidents: Tuple[Incident, ...] = field(default_factory=tuple)
    total_outages: int = 0
    latency: Optional[float] = None  # ms
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """The JSON-ready form written to status.json."""
        return {
            "lastOnline": format_timestamp(self.last_online),
            "lastStatus": self.last_status.value,
            "lastStatusChange": format_timestamp(self.last_status_change),
            "currentStreakSeconds": self.current_streak_seconds,
            "totalUpSeconds": self.total_up_seconds,
            "totalDownSeconds": self.total_down_seconds,
            "lastChecked": format_timestamp(self.last_checked),
            "downtimeIncidents": [inc.to_dict() for inc in self.downtime_incidents],
            "totalOutages": self.total_outages,
            "latency": self.latency,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Ledger":
        """
        Rebuild a Ledger from its stored form.

        Tolerates partial records: missing counters default to zero, bad
        timestamps to None and an unrecognised status to unknown.

        Raises:
            TypeError: If ``raw`` is not a mapping.
        """
        if not isinstance(raw, dict):
            raise TypeError(f"ledger record must be an object, got {type(raw).__name__}")

        incidents = []
        raw_incidents = raw.get("downtimeIncidents") or []
        if isinstance(raw_incidents, list):
            for entry in raw_incidents:
                incident = Incident.from_dict(entry) if isinstance(entry, dict) else None
                if incident is not None:
                    incidents.append(incident)
        incidents = incidents[:MAX_INCIDENTS]

        latency = raw.get("latency")
        error = raw.get("error")

        return cls(
            last_online=parse_timestamp(raw.get("lastOnline")),
            last_status=Status.parse(raw.get("lastStatus")),
            last_status_change=parse_timestamp(raw.get("lastStatusChange")),
            current_streak_seconds=_number(raw.get("currentStreakSeconds")),
            total_up_seconds=_number(raw.get("totalUpSeconds")),
            total_down_seconds=_number(raw.get("totalDownSeconds")),
            last_checked=parse_timestamp(raw.get("lastChecked")),
            downtime_incidents=tuple(incidents),
            total_outages=max(int(_number(raw.get("totalOutages"))), len(incidents)),
            latency=_number(latency) if latency is not None else None,
            error=str(error) if error else None,
        )


# ─── Configuration ────────────────────────────────────────────


@dataclass
class TargetConfig:
    """The single host being monitored and how to probe it."""

    name: str = "CSCT Cloud"
    host: str = "csctcloud.uwe.ac.uk"
    port: int = 22
    method: str = "tcp"  # "tcp", "http" or "simulated"
    path: str = "/"  # http only
    url: Optional[str] = None  # http only, overrides host + path
    fallback: Optional[str] = None  # secondary method tried when the first fails
    poll_interval: int = 900  # seconds
    timeout: float = 5.0  # seconds

    @property
    def http_url(self) -> str:
        return self.url or f"https://{self.host}{self.path}"


@dataclass
class TrackerSettings:
    """Global tracker settings."""

    log_level: str = "INFO"
    state_file: Optional[str] = "status.json"
    max_retries: int = 5
    base_backoff: int = 2
    server_port: int = 10000
