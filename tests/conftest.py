from __future__ import annotations

import socket

import pytest

from chatrelay.config import RelayRuntimeConfig
from chatrelay.service import RelayService
from chatrelay.session import Session


class FakeConn:
    """Socket stand-in that records everything written to it."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.chunks: list[bytes] = []
        self.shutdowns = 0
        self.closes = 0

    def sendall(self, data: bytes) -> None:
        if self.fail:
            raise BrokenPipeError("peer went away")
        self.chunks.append(data)

    def shutdown(self, how: int) -> None:
        self.shutdowns += 1

    def close(self) -> None:
        self.closes += 1

    @property
    def lines(self) -> list[str]:
        text = b"".join(self.chunks).decode("utf-8")
        return text.splitlines()


@pytest.fixture
def hub() -> RelayService:
    return RelayService(RelayRuntimeConfig(host="127.0.0.1", port=0))


@pytest.fixture
def join(hub):
    """Register a nickname backed by a FakeConn; returns (session, conn)."""

    def _join(nick: str, *, fail: bool = False) -> tuple[Session, FakeConn]:
        conn = FakeConn(fail=fail)
        sess = Session(nick, conn)  # type: ignore[arg-type]
        assert hub.registry.try_register(nick, sess)
        return sess, conn

    return _join


@pytest.fixture
def running_hub():
    svc = RelayService(RelayRuntimeConfig(host="127.0.0.1", port=0))
    svc.start()
    try:
        yield svc
    finally:
        svc.stop()


class LineClient:
    def __init__(self, address: tuple[str, int], *, timeout: float = 5.0) -> None:
        self.sock = socket.create_connection(address, timeout=timeout)
        self.rfile = self.sock.makefile("r", encoding="utf-8", newline="\n")

    def send(self, line: str) -> None:
        self.sock.sendall((line + "\n").encode("utf-8"))

    def recv(self) -> str:
        line = self.rfile.readline()
        if not line:
            raise EOFError("connection closed")
        return line.rstrip("\n")

    def at_eof(self) -> bool:
        return self.rfile.readline() == ""

    def close(self) -> None:
        try:
            self.rfile.close()
        finally:
            self.sock.close()


@pytest.fixture
def connect(running_hub):
    clients: list[LineClient] = []

    def _connect(nick: str | None = None) -> LineClient:
        assert running_hub.address is not None
        c = LineClient(running_hub.address)
        clients.append(c)
        if nick is not None:
            c.send(nick)
        return c

    yield _connect

    for c in clients:
        c.close()
