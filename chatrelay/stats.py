"""Statistics tracking and reporting for the chat relay."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .service import RelayService


class StatsManager:
    """
    Lifetime counters for the relay.

    Tracks:
    - Connections accepted, joins, rejections and departures
    - Lines received and delivered
    - Broadcasts and private relays
    - Private requests dropped (malformed or unknown target)
    - Failed writes
    """

    def __init__(self, hub: RelayService) -> None:
        self.hub = hub
        self._lock = threading.Lock()

        self.started_wall_time: float | None = None
        self.started_monotonic: float | None = None

        self._counters: dict[str, int] = {
            "connections": 0,
            "joins": 0,
            "rejections": 0,
            "departures": 0,
            "lines_in": 0,
            "lines_out": 0,
            "broadcasts": 0,
            "privates": 0,
            "pm_malformed": 0,
            "pm_undeliverable": 0,
            "send_failures": 0,
        }

    def set_start_time(self) -> None:
        """Set the start time for uptime calculations."""
        self.started_wall_time = time.time()
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + int(delta)

    def get(self, key: str) -> int:
        with self._lock:
            return self._counters.get(key, 0)

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def format_stats(self) -> str:
        """Format current statistics as a human-readable string."""
        from . import __version__

        started_mono = self.started_monotonic
        uptime_s = (time.monotonic() - started_mono) if started_mono is not None else 0.0

        session_stats = self.hub.registry.get_stats()
        c = self.snapshot()

        lines: list[str] = []
        lines.append(f"chatrelay {__version__} stats")
        lines.append(f"uptime_s={uptime_s:.1f}")
        lines.append(
            f"sessions={session_stats['total']} broken={session_stats['broken']}"
        )
        lines.append(
            "connections: accepted={} joins={} rejections={} departures={}".format(
                c.get("connections", 0),
                c.get("joins", 0),
                c.get("rejections", 0),
                c.get("departures", 0),
            )
        )
        lines.append(
            "io: lines_in={} lines_out={} send_failures={}".format(
                c.get("lines_in", 0),
                c.get("lines_out", 0),
                c.get("send_failures", 0),
            )
        )
        lines.append(
            "routing: broadcasts={} privates={} pm_malformed={} pm_undeliverable={}".format(
                c.get("broadcasts", 0),
                c.get("privates", 0),
                c.get("pm_malformed", 0),
                c.get("pm_undeliverable", 0),
            )
        )

        return "\n".join(lines)
