from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .messages import format_private, is_private_request, parse_private_request
from .session import Session

if TYPE_CHECKING:
    from .service import RelayService


class MessageRouter:
    """
    Routes inbound lines from registered sessions.

    This class is responsible for:
    - Telling private-message requests apart from broadcast text
    - Relaying broadcast text verbatim to everyone but the sender
    - Relaying private messages to exactly one target

    Malformed private requests and unknown targets are dropped without any
    reply; the line protocol has no slot for delivery errors.
    """

    def __init__(self, hub: RelayService) -> None:
        self.hub = hub
        self.log = logging.getLogger("chatrelay.router")

    def route(self, session: Session, raw_line: str) -> None:
        """Main entry point for a line read from a registered session."""
        self.hub.stats_manager.inc("lines_in")

        if is_private_request(raw_line):
            self._handle_private(session, raw_line)
        else:
            self._handle_broadcast(session, raw_line)

    def _handle_private(self, session: Session, raw_line: str) -> None:
        req = parse_private_request(raw_line)
        if req is None:
            self.hub.stats_manager.inc("pm_malformed")
            self.log.debug("Dropped malformed PM from nick=%r", session.nickname)
            return

        target = self.hub.registry.lookup(req.target)
        if target is None:
            self.hub.stats_manager.inc("pm_undeliverable")
            self.log.debug(
                "Dropped PM from nick=%r to unknown target=%r",
                session.nickname,
                req.target,
            )
            return

        self.log.debug(
            "PM from sender=%r to target=%r via nick=%r",
            req.sender,
            req.target,
            session.nickname,
        )
        self.hub.stats_manager.inc("privates")
        self.hub.deliver(target, format_private(req.sender, req.body))

    def _handle_broadcast(self, session: Session, raw_line: str) -> None:
        self.hub.stats_manager.inc("broadcasts")
        self.broadcast(raw_line, exclude=session.nickname)

    def broadcast(self, line: str, *, exclude: str | None = None) -> int:
        """
        Deliver a line to every registered session except ``exclude``.

        Uses a membership snapshot; a session tearing down concurrently may
        or may not receive it. Returns the number of successful deliveries.
        """
        delivered = 0
        for nick, target in self.hub.registry.items():
            if exclude is not None and nick == exclude:
                continue
            if self.hub.deliver(target, line):
                delivered += 1
        return delivered
