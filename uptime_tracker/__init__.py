"""
Uptime Tracker — single-host reachability monitor.

Probes one host on a schedule (TCP connect / HTTP HEAD) and keeps a small
persisted uptime ledger: current status, streak, cumulative up/down time and
the most recent downtime incidents.
"""

__version__ = "1.0.0"
