from __future__ import annotations

import enum
import logging
import signal
import socket
import threading
import time
from typing import Any

from .config import RelayRuntimeConfig
from .constants import REJECT_NICK_IN_USE
from .messages import format_welcome
from .presence import PresenceBroadcaster
from .router import MessageRouter
from .session import Session, SessionRegistry
from .stats import StatsManager
from .util import strip_line_end


class ConnectionState(enum.Enum):
    CONNECTING = "connecting"
    AWAITING_NICKNAME = "awaiting_nickname"
    REGISTERED = "registered"
    REJECTED = "rejected"
    CLOSED = "closed"


class RelayService:
    def __init__(self, config: RelayRuntimeConfig) -> None:
        self.config = config
        self.log = logging.getLogger("chatrelay.hub")

        self._shutdown = threading.Event()

        # The only shared mutable state between connection threads; it does
        # its own locking.
        self.registry = SessionRegistry()

        self.router = MessageRouter(self)
        self.presence = PresenceBroadcaster(self)
        self.stats_manager = StatsManager(self)

        self._listener: socket.socket | None = None
        self._accept_thread: threading.Thread | None = None

        # Accepted sockets (registered or not) -> their worker thread.
        self._live: dict[socket.socket, threading.Thread] = {}
        self._live_lock = threading.Lock()

        self.address: tuple[str, int] | None = None

    def _fmt_peer(self, addr: Any) -> str:
        if isinstance(addr, tuple) and len(addr) >= 2:
            return f"{addr[0]}:{addr[1]}"
        return "-"

    def start(self) -> None:
        """
        Bind the listening port and start accepting connections.

        A bind failure raises OSError; nothing can run without the port.
        """
        self.log.info("Binding host=%s port=%s", self.config.host, self.config.port)
        self.stats_manager.set_start_time()

        listener = socket.create_server(
            (self.config.host, int(self.config.port)),
            backlog=int(self.config.backlog),
        )
        # Lets the accept loop notice shutdown.
        listener.settimeout(0.25)
        self._listener = listener
        self.address = listener.getsockname()[:2]

        self._accept_thread = threading.Thread(
            target=self._accept_loop, name="chatrelay-accept", daemon=True
        )
        self._accept_thread.start()

        self.log.info(
            "Relay running address=%s idle_timeout_s=%s",
            self._fmt_peer(self.address),
            self.config.idle_timeout_s,
        )

    def run_forever(self) -> None:
        if self._listener is None:
            self.start()

        signal.signal(signal.SIGINT, lambda *_: self.stop())
        signal.signal(signal.SIGTERM, lambda *_: self.stop())

        while not self._shutdown.is_set():
            time.sleep(0.25)

    def stop(self, *, join_timeout: float = 2.0) -> None:
        if self._shutdown.is_set():
            return
        self._shutdown.set()

        if self._listener is not None:
            try:
                self._listener.close()
            except OSError:
                pass

        # Empty the registry first so teardown does not fan out notices to
        # sessions that are about to go away too.
        self.registry.clear_all()

        with self._live_lock:
            live = list(self._live.items())

        for conn, _ in live:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass

        if self._accept_thread is not None:
            self._accept_thread.join(join_timeout)
        for _, worker in live:
            if worker is not threading.current_thread():
                worker.join(join_timeout)

        self.log.info("Relay stopped\n%s", self.stats_manager.format_stats())

    def _accept_loop(self) -> None:
        listener = self._listener
        if listener is None:
            return

        while not self._shutdown.is_set():
            try:
                conn, addr = listener.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._shutdown.is_set():
                    break
                # e.g. EMFILE; keep the listener alive.
                self.log.warning("Accept failed err=%s", e)
                time.sleep(0.1)
                continue

            if not self._admit(conn, addr):
                break

    def _admit(self, conn: socket.socket, addr: Any) -> bool:
        """
        Hand an accepted socket to its own worker thread.

        Checked under the same lock stop() snapshots with, so a socket
        accepted while stopping is closed here instead of slipping past it.
        """
        with self._live_lock:
            if self._shutdown.is_set():
                try:
                    conn.close()
                except OSError:
                    pass
                return False

            self.stats_manager.inc("connections")
            worker = threading.Thread(
                target=self._handle_connection,
                args=(conn, addr),
                name=f"chatrelay-conn-{self._fmt_peer(addr)}",
                daemon=True,
            )
            self._live[conn] = worker
            worker.start()
        return True

    def _handle_connection(self, conn: socket.socket, addr: Any) -> None:
        """
        Per-connection state machine.

        Connecting -> AwaitingNickname -> Registered -> Closed, with
        AwaitingNickname -> Rejected -> Closed on a nickname conflict. The
        finally block is the single place that tears the connection down.
        """
        peer = self._fmt_peer(addr)
        state = ConnectionState.CONNECTING
        session: Session | None = None
        registered = False

        self.log.info("Connection accepted peer=%s", peer)

        try:
            idle = float(self.config.idle_timeout_s)
            conn.settimeout(idle if idle > 0 else None)

            with conn.makefile(
                "r", encoding=self.config.encoding, errors="replace", newline=None
            ) as rfile:
                state = ConnectionState.AWAITING_NICKNAME
                first = rfile.readline()
                if not first:
                    self.log.info("Peer closed before sending a nickname peer=%s", peer)
                    return

                nickname = strip_line_end(first)
                session = Session(
                    nickname, conn, peer=peer, encoding=self.config.encoding
                )

                if not self.registry.try_register(nickname, session):
                    state = ConnectionState.REJECTED
                    self.stats_manager.inc("rejections")
                    self.log.info("Rejected nick=%r peer=%s: in use", nickname, peer)
                    self.deliver(session, REJECT_NICK_IN_USE)
                    return

                registered = True
                state = ConnectionState.REGISTERED
                self.stats_manager.inc("joins")
                self.log.info("Joined nick=%r peer=%s", nickname, peer)

                self.deliver(session, format_welcome(nickname))
                self.presence.announce_roster()

                for raw in rfile:
                    self.router.route(session, strip_line_end(raw))

        except (OSError, ValueError) as e:
            # ValueError covers reads on a file closed underneath us.
            self.log.warning(
                "Connection fault nick=%r peer=%s state=%s err=%s",
                session.nickname if session else None,
                peer,
                state.value,
                e,
            )
        except Exception:
            self.log.exception(
                "Unexpected error nick=%r peer=%s state=%s",
                session.nickname if session else None,
                peer,
                state.value,
            )
        finally:
            self._close_connection(conn, session, registered=registered, peer=peer)
            state = ConnectionState.CLOSED
            self.log.debug("Connection state=%s peer=%s", state.value, peer)

    def _close_connection(
        self,
        conn: socket.socket,
        session: Session | None,
        *,
        registered: bool,
        peer: str,
    ) -> None:
        """Release the socket and, for registered sessions, announce the departure."""
        if session is not None:
            session.close()
        else:
            try:
                conn.close()
            except OSError:
                pass

        with self._live_lock:
            self._live.pop(conn, None)

        if not registered or session is None:
            self.log.info("Connection closed peer=%s", peer)
            return

        nickname = session.nickname
        self.registry.unregister(nickname, session)
        self.stats_manager.inc("departures")
        self.presence.announce_departure(nickname)
        self.presence.announce_roster()

        self.log.info("Left nick=%r peer=%s", nickname, peer)

    def deliver(self, session: Session, line: str) -> bool:
        """Write one line to a session; failures stay local to that session."""
        if session.send(line):
            self.stats_manager.inc("lines_out")
            return True
        self.stats_manager.inc("send_failures")
        return False
