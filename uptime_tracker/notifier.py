"""
Console Notifier — Clean, structured console output.

Prints timestamped, ANSI-coloured status lines for each probe cycle and for
the tracker's lifecycle (startup, warnings, retries, shutdown).
"""

from __future__ import annotations

import sys
from datetime import datetime, timezone

from uptime_tracker import presenter
from uptime_tracker.models import CONNECTION_FAILED, Ledger, Observation, Status

# ANSI color codes for terminal styling
_RESET = "\033[0m"
_BOLD = "\033[1m"
_DIM = "\033[2m"
_RED = "\033[91m"
_GREEN = "\033[92m"
_YELLOW = "\033[93m"
_BLUE = "\033[94m"
_CYAN = "\033[96m"
_WHITE = "\033[97m"
_GRAY = "\033[90m"


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _status_color(status: Status) -> str:
    """Pick a color based on ledger status."""
    if status is Status.ONLINE:
        return _GREEN
    elif status is Status.OFFLINE:
        return _RED
    return _YELLOW


def print_banner() -> None:
    """Print the startup banner."""
    banner = f"""
{_BOLD}{_CYAN}+------------------------------------------------------------------+
|          Uptime Tracker -- Live Monitor                          |
|          Single host * Persistent ledger * Async                 |
+------------------------------------------------------------------+{_RESET}
"""
    print(banner)


def print_monitoring_start(name: str, endpoint: str, method: str, poll_interval: int) -> None:
    """Print a message when monitoring begins."""
    print(
        f"  {_BOLD}{_BLUE}> Monitoring:{_RESET} {_WHITE}{name}{_RESET}"
        f"  {_DIM}({method} {endpoint}){_RESET}"
        f"  {_DIM}[every {poll_interval}s]{_RESET}"
    )


def print_server_start(port: int) -> None:
    print(f"  {_BOLD}{_BLUE}> Trigger server:{_RESET} {_DIM}http://0.0.0.0:{port}/test{_RESET}")


def print_cycle(name: str, observation: Observation, ledger: Ledger, verbose: bool = False) -> None:
    """
    Print the outcome of one probe cycle.

    [2025-11-20 14:00:00] CSCT Cloud is ONLINE (latency 231.0ms)
    followed, when verbose, by the ledger digest line.
    """
    color = _status_color(ledger.last_status)
    state = ledger.last_status.value.upper()
    if observation.online:
        detail = f"latency {observation.latency_ms}ms" if observation.latency_ms is not None else ""
    else:
        detail = observation.error or CONNECTION_FAILED

    line = f"  {_GRAY}[{_timestamp()}]{_RESET} {_BOLD}{name}{_RESET} is {color}{state}{_RESET}"
    if detail:
        line += f" {_DIM}({detail}){_RESET}"
    print(line)

    if verbose:
        print(f"    {_DIM}{presenter.summary_line(ledger)}{_RESET}")


def print_report(text: str) -> None:
    """Print a multi-line status report."""
    print()
    for line in text.splitlines():
        print(f"    {line}")
    print()


def print_warning(message: str) -> None:
    """Print a non-fatal warning."""
    print(f"  {_GRAY}[{_timestamp()}]{_RESET} {_YELLOW}WARNING{_RESET} {message}")
    sys.stdout.flush()


def print_error(name: str, message: str) -> None:
    """Print an error message."""
    print(
        f"  {_GRAY}[{_timestamp()}]{_RESET} {_RED}ERROR{_RESET} "
        f"{_BOLD}{name}:{_RESET} {message}"
    )


def print_retry(name: str, attempt: int, wait: float) -> None:
    """Print a retry message with backoff info."""
    print(
        f"  {_DIM}{name}: Retrying in {wait:.1f}s "
        f"(attempt {attempt})...{_RESET}"
    )


def print_shutdown() -> None:
    """Print shutdown message."""
    print(f"\n{_BOLD}{_CYAN}Tracker stopped. Goodbye!{_RESET}\n")
