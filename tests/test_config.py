import logging
from dataclasses import replace

import pytest

from chatrelay.cli import _apply_config_file, _default_config_path, _write_default_config
from chatrelay.config import RelayRuntimeConfig
from chatrelay.logging_config import component_levels, configure_logging, parse_level


def test_default_config_round_trips(tmp_path) -> None:
    path = tmp_path / "sub" / "chatrelay.toml"
    _write_default_config(str(path))

    cfg = _apply_config_file(RelayRuntimeConfig(), str(path))
    assert cfg == RelayRuntimeConfig()


def test_config_file_overrides_defaults(tmp_path) -> None:
    path = tmp_path / "chatrelay.toml"
    path.write_text(
        """
[relay]
host = "127.0.0.1"
port = 4000
idle_timeout_s = 30
config_path = "/elsewhere"

[logging]
level = "DEBUG"
router_level = "warning"
session_level = ""
file = ""
console = false
""",
        encoding="utf-8",
    )

    cfg = _apply_config_file(RelayRuntimeConfig(config_path=str(path)), str(path))
    assert cfg.host == "127.0.0.1"
    assert cfg.port == 4000
    assert cfg.idle_timeout_s == 30.0
    assert cfg.log_level == "DEBUG"
    assert cfg.log_router_level == "warning"
    assert cfg.log_session_level is None
    assert cfg.log_file is None
    assert cfg.log_console is False
    assert cfg.config_path == str(path)


def test_unknown_keys_are_ignored(tmp_path) -> None:
    path = tmp_path / "chatrelay.toml"
    path.write_text('[relay]\nmotd = "hello"\n', encoding="utf-8")
    assert _apply_config_file(RelayRuntimeConfig(), str(path)) == RelayRuntimeConfig()


def test_invalid_toml_is_an_error(tmp_path) -> None:
    path = tmp_path / "chatrelay.toml"
    path.write_text("[relay\n", encoding="utf-8")
    with pytest.raises(ValueError):
        _apply_config_file(RelayRuntimeConfig(), str(path))


def testparse_level() -> None:
    assert parse_level("debug", logging.INFO) == logging.DEBUG
    assert parse_level("WARN", logging.INFO) == logging.WARNING
    assert parse_level("15", logging.INFO) == 15
    assert parse_level("", logging.INFO) == logging.INFO
    assert parse_level("loud", logging.ERROR) == logging.ERROR
    assert parse_level(None, logging.INFO) == logging.INFO


def test_configure_logging_writes_file(tmp_path) -> None:
    log_file = tmp_path / "logs" / "relay.log"
    cfg = RelayRuntimeConfig(log_console=False, log_file=str(log_file))
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_logging(cfg, override_level="DEBUG")
        logging.getLogger("chatrelay.hub").debug("hello %s", "file")
        for h in root.handlers:
            h.flush()
        assert "hello file" in log_file.read_text(encoding="utf-8")
        assert root.level == logging.DEBUG
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()
        for h in saved_handlers:
            root.addHandler(h)
        root.setLevel(saved_level)


def test_default_config_path_follows_env(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("CHATRELAY_HOME", str(tmp_path / "home"))
    assert _default_config_path() == tmp_path / "home" / "chatrelay.toml"


def test_component_levels_default_to_root() -> None:
    levels = component_levels(RelayRuntimeConfig(log_router_level="debug"))
    assert levels == {
        "chatrelay.session": logging.NOTSET,
        "chatrelay.router": logging.DEBUG,
        "chatrelay.presence": logging.NOTSET,
    }


def test_configure_logging_sets_component_levels() -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    cfg = RelayRuntimeConfig(
        log_console=False, log_level="WARNING", log_session_level="DEBUG"
    )
    try:
        configure_logging(cfg)
        assert root.level == logging.WARNING
        assert logging.getLogger("chatrelay.session").getEffectiveLevel() == logging.DEBUG
        assert logging.getLogger("chatrelay.router").getEffectiveLevel() == logging.WARNING

        # Reconfiguring without the override puts the component back on the root level.
        configure_logging(replace(cfg, log_session_level=None))
        assert logging.getLogger("chatrelay.session").level == logging.NOTSET
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
        for h in saved_handlers:
            root.addHandler(h)
        root.setLevel(saved_level)
        for name in ("chatrelay.session", "chatrelay.router", "chatrelay.presence"):
            logging.getLogger(name).setLevel(logging.NOTSET)
