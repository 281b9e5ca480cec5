from __future__ import annotations

import logging
import socket
import threading
from typing import Any

from .constants import LINE_END


class Session:
    """
    Server-side state for one connected client.

    The outbound handle is shared: any connection thread may call send() to
    deliver a line to this client. Writes are serialized by a per-session
    lock so lines from different senders never interleave on the wire.
    """

    def __init__(
        self,
        nickname: str,
        conn: socket.socket,
        *,
        peer: Any = None,
        encoding: str = "utf-8",
    ) -> None:
        self._nickname = nickname
        self._conn = conn
        self.peer = peer
        self._encoding = encoding
        self._write_lock = threading.Lock()
        self._closed = False
        self._broken = False
        self.log = logging.getLogger("chatrelay.session")

    @property
    def nickname(self) -> str:
        return self._nickname

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def broken(self) -> bool:
        return self._broken

    def send(self, line: str) -> bool:
        """
        Deliver a single line to the client.

        Returns False if the handle is closed or the write failed. A failed
        write marks the handle broken and shuts the socket down, which ends
        the owning connection's read loop so its own cleanup runs there.
        """
        payload = (line + LINE_END).encode(self._encoding, "replace")
        with self._write_lock:
            if self._closed or self._broken:
                return False
            try:
                self._conn.sendall(payload)
            except OSError as e:
                self._broken = True
                self.log.warning(
                    "Send failed nick=%r peer=%s bytes=%s err=%s",
                    self._nickname,
                    self.peer,
                    len(payload),
                    e,
                )
                self._shutdown_socket()
                return False
        return True

    def close(self) -> bool:
        """
        Close the outbound handle.

        Idempotent: returns True only for the call that actually closed it.
        """
        with self._write_lock:
            if self._closed:
                return False
            self._closed = True

        self._shutdown_socket()
        try:
            self._conn.close()
        except OSError:
            pass
        return True

    def _shutdown_socket(self) -> None:
        try:
            self._conn.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Already disconnected or never connected.
            pass

    def __repr__(self) -> str:
        return f"Session(nickname={self._nickname!r}, peer={self.peer!r})"


class SessionRegistry:
    """
    Concurrent mapping from nickname to Session.

    The registry owns its synchronization; callers never lock. Nicknames are
    exact, case-sensitive keys. Every method completes immediately and
    returns copies rather than live views.
    """

    def __init__(self) -> None:
        self.log = logging.getLogger("chatrelay.session")
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}

    def try_register(self, nickname: str, session: Session) -> bool:
        """Claim-or-reject: insert only if no entry exists for nickname."""
        with self._lock:
            if nickname in self._sessions:
                return False
            self._sessions[nickname] = session
        self.log.debug("Registered nick=%r", nickname)
        return True

    def unregister(self, nickname: str, session: Session | None = None) -> Session | None:
        """
        Remove the entry for nickname, if present.

        With ``session`` given, only that exact session is removed. Removing
        a missing entry is a no-op. Returns the removed session, if any.
        """
        with self._lock:
            current = self._sessions.get(nickname)
            if current is None:
                return None
            if session is not None and current is not session:
                return None
            del self._sessions[nickname]
        self.log.debug("Unregistered nick=%r", nickname)
        return current

    def lookup(self, nickname: str) -> Session | None:
        with self._lock:
            return self._sessions.get(nickname)

    def snapshot(self) -> list[str]:
        """Nicknames registered at the instant of the call."""
        with self._lock:
            return list(self._sessions.keys())

    def items(self) -> list[tuple[str, Session]]:
        """(nickname, session) pairs taken under a single lock acquisition."""
        with self._lock:
            return list(self._sessions.items())

    def clear_all(self) -> list[Session]:
        """Drop every entry and return the sessions for teardown."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        return sessions

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            total = len(self._sessions)
            broken = sum(1 for s in self._sessions.values() if s.broken)
        return {"total": total, "broken": broken}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, nickname: object) -> bool:
        with self._lock:
            return nickname in self._sessions
