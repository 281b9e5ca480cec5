from __future__ import annotations

from dataclasses import dataclass

from .constants import DEFAULT_HOST, DEFAULT_PORT


@dataclass(frozen=True)
class RelayRuntimeConfig:
    config_path: str | None = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    backlog: int = 50
    encoding: str = "utf-8"
    # 0 disables; a stalled client otherwise keeps its nickname indefinitely.
    idle_timeout_s: float = 0.0
    log_level: str = "INFO"
    # Per-component overrides; None follows log_level.
    log_session_level: str | None = None
    log_router_level: str | None = None
    log_presence_level: str | None = None
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
    log_datefmt: str | None = None
