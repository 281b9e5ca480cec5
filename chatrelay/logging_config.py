from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from .config import RelayRuntimeConfig

# Config field -> logger it tunes independently of the root level.
COMPONENT_LOGGERS: dict[str, str] = {
    "log_session_level": "chatrelay.session",
    "log_router_level": "chatrelay.router",
    "log_presence_level": "chatrelay.presence",
}


def parse_level(value: Any, default: int) -> int:
    """Accept a level name (any case) or a number; fall back to ``default``."""
    if isinstance(value, int):
        return value
    text = str(value or "").strip().upper()
    if not text:
        return default
    named = logging.getLevelNamesMapping()
    if text in named:
        return named[text]
    if text.isdigit():
        return int(text)
    return default


def component_levels(cfg: RelayRuntimeConfig) -> dict[str, int]:
    """
    Levels for the relay's component loggers.

    A component left unset maps to NOTSET so it follows the root level, and a
    reload clears any level set earlier.
    """
    levels: dict[str, int] = {}
    for field, logger_name in COMPONENT_LOGGERS.items():
        levels[logger_name] = parse_level(getattr(cfg, field), logging.NOTSET)
    return levels


def _build_handlers(cfg: RelayRuntimeConfig, log_file: str | None) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if cfg.log_console:
        handlers.append(logging.StreamHandler())

    if log_file:
        path = Path(os.path.expanduser(log_file))
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))
        try:
            # Chat lines end up in debug logs.
            os.chmod(path, 0o600)
        except OSError:
            pass

    formatter = logging.Formatter(
        fmt=cfg.log_format.strip() or "%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt=cfg.log_datefmt or None,
    )
    for h in handlers:
        h.setFormatter(formatter)
    return handlers


def configure_logging(
    cfg: RelayRuntimeConfig,
    *,
    override_level: str | None = None,
    override_file: str | None = None,
) -> None:
    """Install chatrelay's handlers on the root logger.

    Replaces whatever root handlers exist, so it can be called again after
    the configuration changes.
    """
    log_file = override_file if override_file is not None else cfg.log_file
    handlers = _build_handlers(cfg, (log_file or "").strip() or None)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in handlers:
        root.addHandler(h)
    root.setLevel(parse_level(override_level or cfg.log_level, logging.INFO))

    for logger_name, level in component_levels(cfg).items():
        logging.getLogger(logger_name).setLevel(level)

    logging.captureWarnings(True)
