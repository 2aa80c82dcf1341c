"""
Ledger stores.

A store holds the single Ledger record between probe cycles. ``load`` never
raises: a missing, unreadable or corrupt record yields a fresh default
Ledger. ``save`` is best-effort: failures are reported as warnings and
signalled through the return value, never raised into the cycle.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Optional

from uptime_tracker import notifier
from uptime_tracker.models import Ledger


class LedgerStore:
    """Interface for durable holders of the ledger record."""

    def load(self) -> Ledger:
        raise NotImplementedError

    def save(self, ledger: Ledger) -> bool:
        raise NotImplementedError


class MemoryStore(LedgerStore):
    """Keeps the ledger in process memory only."""

    def __init__(self, ledger: Optional[Ledger] = None) -> None:
        self._ledger = ledger or Ledger()

    def load(self) -> Ledger:
        return self._ledger

    def save(self, ledger: Ledger) -> bool:
        self._ledger = ledger
        return True


class JsonFileStore(LedgerStore):
    """
    Stores the ledger as pretty-printed JSON (status.json).

    Writes go to a temporary file in the same directory which is then
    renamed over the target, so readers never see a half-written file.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> Ledger:
        if not self.path.exists():
            return Ledger()
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                raw = json.load(fh)
            return Ledger.from_dict(raw)
        except (OSError, ValueError, TypeError, OverflowError, RecursionError) as exc:
            notifier.print_warning(f"Could not read ledger from {self.path} ({exc}); starting fresh.")
            return Ledger()

    def save(self, ledger: Ledger) -> bool:
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(ledger.to_dict(), fh, indent=2)
                fh.write("\n")
            os.replace(tmp_name, self.path)
            return True
        except OSError as exc:
            notifier.print_warning(f"Failed to save ledger to {self.path}: {exc}")
            if tmp_name and os.path.exists(tmp_name):
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
            return False
