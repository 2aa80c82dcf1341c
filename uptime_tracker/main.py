"""
Main entry point — the UptimeTracker orchestrator.

Runs the LedgerMonitor loop alongside a minimal HTTP server that exposes
the ledger and an on-demand probe trigger, and handles graceful shutdown
on Ctrl+C. With ``--once`` it performs a single cycle and exits, for
running from cron.

Usage:
    python -m uptime_tracker
    python -m uptime_tracker --once
    python -m uptime_tracker --config path/to/config.yaml
"""

from __future__ import annotations

import argparse
import asyncio
import os
import signal
import sys
from typing import List, Optional

import aiohttp
from aiohttp import web

from uptime_tracker import __version__, notifier, presenter
from uptime_tracker.config import ConfigError, load_config
from uptime_tracker.models import TargetConfig, TrackerSettings
from uptime_tracker.monitor import LedgerMonitor
from uptime_tracker.prober import build_prober
from uptime_tracker.store import JsonFileStore, LedgerStore, MemoryStore

_MONITOR_KEY = web.AppKey("monitor", LedgerMonitor)


def make_store(settings: TrackerSettings) -> LedgerStore:
    if settings.state_file:
        return JsonFileStore(settings.state_file)
    return MemoryStore()


# ─── HTTP trigger surface ─────────────────────────────────────


@web.middleware
async def _cors_middleware(request: web.Request, handler) -> web.StreamResponse:
    if request.method == "OPTIONS":
        response: web.StreamResponse = web.Response()
    else:
        response = await handler(request)
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Methods"] = "GET, OPTIONS"
    return response


async def _index(request: web.Request) -> web.Response:
    monitor = request.app[_MONITOR_KEY]
    ledger = monitor.current()
    return web.json_response({
        "status": "running",
        "version": __version__,
        "target": monitor.target.name,
        "message": presenter.status_headline(ledger, monitor.target.name),
        "uptime": presenter.format_uptime(ledger),
    })


async def _health(request: web.Request) -> web.Response:
    return web.json_response({"status": "healthy"})


async def _status(request: web.Request) -> web.Response:
    monitor = request.app[_MONITOR_KEY]
    return web.json_response(monitor.current().to_dict())


async def _test(request: web.Request) -> web.Response:
    """Run exactly one probe cycle and report what it found."""
    monitor = request.app[_MONITOR_KEY]
    result = await monitor.run_cycle()
    return web.json_response(result.to_dict())


def build_app(monitor: LedgerMonitor) -> web.Application:
    """Create the aiohttp application serving ``monitor``."""
    app = web.Application(middlewares=[_cors_middleware])
    app[_MONITOR_KEY] = monitor
    app.router.add_get("/", _index)
    app.router.add_get("/health", _health)
    app.router.add_get("/status.json", _status)
    app.router.add_get("/test", _test)
    return app


# ─── Orchestrator ─────────────────────────────────────────────


class UptimeTracker:
    """
    Top-level orchestrator.

    Owns the shared aiohttp session, the LedgerMonitor task and the
    trigger server.
    """

    def __init__(self, target: TargetConfig, settings: TrackerSettings) -> None:
        self.target = target
        self.settings = settings
        self._tasks: List[asyncio.Task] = []

    async def run(self, port: int) -> None:
        """Start the server and the monitor loop, and wait until interrupted."""
        notifier.print_banner()

        async with aiohttp.ClientSession() as session:
            monitor = LedgerMonitor(
                self.target,
                self.settings,
                build_prober(self.target, session=session),
                make_store(self.settings),
            )

            runner = web.AppRunner(build_app(monitor))
            await runner.setup()
            site = web.TCPSite(runner, "0.0.0.0", port)
            await site.start()
            notifier.print_server_start(port)

            task = asyncio.create_task(monitor.start(), name=f"monitor-{self.target.name}")
            self._tasks.append(task)
            try:
                await asyncio.gather(*self._tasks)
            except asyncio.CancelledError:
                pass
            finally:
                await runner.cleanup()

    async def run_once(self) -> int:
        """Perform one cycle, print the report and return an exit code."""
        async with aiohttp.ClientSession() as session:
            monitor = LedgerMonitor(
                self.target,
                self.settings,
                build_prober(self.target, session=session),
                make_store(self.settings),
            )
            result = await monitor.run_cycle()

        notifier.print_report(presenter.render_text(result.ledger, self.target.name))
        notifier.print_report(presenter.summary_line(result.ledger))
        return 0 if result.observation.online else 1

    def shutdown(self) -> None:
        """Cancel all running monitor tasks."""
        for task in self._tasks:
            task.cancel()


def _handle_signals(tracker: UptimeTracker, loop: asyncio.AbstractEventLoop) -> None:
    """Register signal handlers for graceful shutdown."""
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(
                sig,
                lambda: _do_shutdown(tracker),
            )
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass


def _do_shutdown(tracker: UptimeTracker) -> None:
    """Trigger graceful shutdown."""
    notifier.print_shutdown()
    tracker.shutdown()


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="uptime-tracker",
        description="Probe one host and keep a persisted uptime ledger.",
    )
    parser.add_argument("--config", help="path to config.yaml")
    parser.add_argument(
        "--once",
        action="store_true",
        help="run a single probe cycle, print the ledger and exit",
    )
    return parser.parse_args(argv)


async def async_main(argv: Optional[List[str]] = None) -> int:
    """Async entry point."""
    args = _parse_args(argv)
    target, settings = load_config(args.config)
    tracker = UptimeTracker(target, settings)

    if args.once:
        return await tracker.run_once()

    loop = asyncio.get_running_loop()
    _handle_signals(tracker, loop)

    port = int(os.environ.get("PORT", settings.server_port))
    await tracker.run(port)
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """Sync entry point."""
    try:
        sys.exit(asyncio.run(async_main(argv)))
    except ConfigError as exc:
        notifier.print_error("config", str(exc))
        sys.exit(2)
    except KeyboardInterrupt:
        # Signal handler already printed shutdown message
        sys.exit(0)


if __name__ == "__main__":
    main()
