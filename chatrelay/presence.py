from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .messages import format_departure, format_user_list

if TYPE_CHECKING:
    from .service import RelayService


class PresenceBroadcaster:
    """Pushes roster snapshots and departure notices to connected sessions."""

    def __init__(self, hub: RelayService) -> None:
        self.hub = hub
        self.log = logging.getLogger("chatrelay.presence")

    def announce_roster(self) -> None:
        """Send the full roster to every registered session, newcomers included."""
        entries = self.hub.registry.items()
        line = format_user_list(nick for nick, _ in entries)
        self.log.debug("Roster size=%s", len(entries))
        for _, session in entries:
            self.hub.deliver(session, line)

    def announce_departure(self, nickname: str) -> None:
        """Tell every remaining session that ``nickname`` left.

        Callers follow this with announce_roster().
        """
        self.hub.router.broadcast(format_departure(nickname))
