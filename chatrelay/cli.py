from __future__ import annotations

import argparse
import logging
import os
import sys
import tomllib
from dataclasses import asdict, replace
from pathlib import Path

from .config import RelayRuntimeConfig
from .constants import DEFAULT_HOST, DEFAULT_PORT
from .logging_config import configure_logging
from .service import RelayService
from .util import expand_path


def _default_config_path() -> Path:
    home = os.environ.get("CHATRELAY_HOME")
    base = Path(home) if home else Path.home() / ".chatrelay"
    return base / "chatrelay.toml"


def _load_toml(path: str) -> dict:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _apply_config_file(cfg: RelayRuntimeConfig, path: str) -> RelayRuntimeConfig:
    data = _load_toml(path)

    relay = data.get("relay") if isinstance(data, dict) else None
    if isinstance(relay, dict):
        data = {**data, **relay}

    log_table = data.get("logging") if isinstance(data, dict) else None
    if isinstance(log_table, dict):
        mapped: dict[str, object] = {}
        for key in (
            "level",
            "session_level",
            "router_level",
            "presence_level",
            "console",
            "file",
            "format",
            "datefmt",
        ):
            if key in log_table:
                mapped[f"log_{key}"] = log_table.get(key)
        data = {**data, **mapped}

    allowed = set(asdict(cfg).keys())
    # This identifies where the file came from; do not let the file override it.
    allowed.discard("config_path")
    updates = {k: v for k, v in data.items() if k in allowed}

    if "port" in updates:
        updates["port"] = int(updates["port"])
    if "backlog" in updates:
        updates["backlog"] = int(updates["backlog"])
    if "idle_timeout_s" in updates:
        updates["idle_timeout_s"] = float(updates["idle_timeout_s"])
    for optional_key in (
        "log_file",
        "log_datefmt",
        "log_session_level",
        "log_router_level",
        "log_presence_level",
    ):
        if updates.get(optional_key) == "":
            updates[optional_key] = None
    return replace(cfg, **updates) if updates else cfg


def _write_default_config(config_path: str) -> None:
    Path(config_path).parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    content = f"""# chatrelay configuration (TOML)
#
# This file was created on first run. Command-line flags override it.

[relay]

# Address and TCP port to listen on.
host = {DEFAULT_HOST!r}
port = {DEFAULT_PORT}

# Listen backlog for pending connections.
backlog = 50

# Text encoding of the line protocol.
encoding = "utf-8"

# Close a connection that sends nothing for this many seconds (0 disables).
# With 0, a stalled client keeps its nickname until it disconnects.
idle_timeout_s = 0.0

[logging]

# Log level for chatrelay itself.
level = "INFO"

# Optional per-component levels (leave empty to follow "level").
# session: joins, leaves, failed writes. router: private-message drops.
# presence: roster fan-out.
session_level = ""
router_level = ""
presence_level = ""

# Log to stderr (systemd/journald friendly).
console = true

# Optional file path for logs (leave empty to disable).
file = ""

# Log format and optional date format.
format = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
datefmt = ""
"""

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(content)


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="chatrelay", description="Run a line-based chat relay")

    p.add_argument(
        "--config",
        default=str(_default_config_path()),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument("--host", default=None, help=f"Bind address (default: {DEFAULT_HOST})")
    p.add_argument(
        "--port", type=int, default=None, help=f"TCP port to listen on (default: {DEFAULT_PORT})"
    )
    p.add_argument("--backlog", type=int, default=None, help="Listen backlog")
    p.add_argument(
        "--idle-timeout",
        type=float,
        default=None,
        help="Close connections idle for this many seconds (0 disables)",
    )

    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )

    return p


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    config_path = expand_path(str(args.config))
    created = False
    if config_path and not os.path.exists(config_path):
        _write_default_config(config_path)
        created = True

    cfg = RelayRuntimeConfig(config_path=config_path)
    if config_path:
        cfg = _apply_config_file(cfg, config_path)

    if args.host is not None:
        cfg = replace(cfg, host=str(args.host))
    if args.port is not None:
        cfg = replace(cfg, port=int(args.port))
    if args.backlog is not None:
        cfg = replace(cfg, backlog=int(args.backlog))
    if args.idle_timeout is not None:
        cfg = replace(cfg, idle_timeout_s=float(args.idle_timeout))

    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) if str(args.log_file) else None)

    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)
    log = logging.getLogger("chatrelay.hub")
    if created:
        log.info("Created default config at %s", config_path)

    svc = RelayService(cfg)
    try:
        svc.start()
    except OSError as e:
        log.error("Cannot listen on %s:%s: %s", cfg.host, cfg.port, e)
        raise SystemExit(1)
    svc.run_forever()


if __name__ == "__main__":
    main()
