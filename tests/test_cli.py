import logging
import os

import pytest

from microsub import cli, db
from microsub.config import AdapterConfig, AppConfig, LoggingConfig, ServerConfig, TokenConfig


def _app_config(**overrides):
    values = dict(
        adapters=[AdapterConfig(type="subscriptions")],
        tokens=[TokenConfig(value="secret-token", user_id="me", scopes=frozenset({"read"}))],
    )
    values.update(overrides)
    return AppConfig(**values)


def test_configure_logging_defaults_to_console_only(restore_root_logger):
    cli.configure_logging("INFO")

    handlers = restore_root_logger.handlers
    assert any(isinstance(handler, logging.StreamHandler) for handler in handlers)
    assert not any(isinstance(handler, logging.FileHandler) for handler in handlers)


def test_configure_logging_with_log_file_creates_file_handler(restore_root_logger, tmp_path):
    log_path = tmp_path / "nested" / "custom.log"
    cli.configure_logging("INFO", str(log_path))

    assert log_path.exists()
    handlers = restore_root_logger.handlers
    assert any(isinstance(handler, logging.FileHandler) for handler in handlers)


def test_configure_logging_rejects_unknown_level(restore_root_logger):
    with pytest.raises(ValueError):
        cli.configure_logging("CHATTY")


def test_main_loads_config_and_runs(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda level, log_file=None: None)
    app_config = _app_config(
        server=ServerConfig(host="0.0.0.0", port=9000, endpoint_url="https://r.example/microsub")
    )
    app_config.database.connection_string = "sqlite://"
    monkeypatch.setattr(cli, "parse_app_config", lambda path: app_config)
    monkeypatch.setattr(cli, "parse_env_config", lambda path: {})

    captured = {}
    monkeypatch.setattr(cli, "execute", lambda config: captured.setdefault("config", config))

    exit_code = cli.main(["--config", "configs/test.xml"])

    assert exit_code == 0
    run_config = captured["config"]
    assert run_config.host == "0.0.0.0"
    assert run_config.port == 9000
    assert run_config.endpoint_url == "https://r.example/microsub"
    assert run_config.database_connection_string == "sqlite://"
    assert run_config.adapters == app_config.adapters
    assert run_config.tokens == app_config.tokens


def test_main_cli_overrides_logging_and_server(monkeypatch):
    captured = {}

    def fake_configure(level, log_file=None):
        captured["level"] = level
        captured["file"] = log_file

    monkeypatch.setattr(cli, "configure_logging", fake_configure)
    app_config = _app_config(logging=LoggingConfig(level="INFO", file="config.log"))
    monkeypatch.setattr(cli, "parse_app_config", lambda path: app_config)
    monkeypatch.setattr(cli, "execute", lambda config: captured.setdefault("config", config))

    cli.main(["--log-level", "DEBUG", "--log-file", "cli.log", "--host", "::", "--port", "8081"])

    assert captured["level"] == "DEBUG"
    assert captured["file"] == "cli.log"
    assert captured["config"].host == "::"
    assert captured["config"].port == 8081


def test_main_masks_secrets_in_logged_configuration(monkeypatch, caplog):
    monkeypatch.setattr(cli, "configure_logging", lambda level, log_file=None: None)
    app_config = _app_config()
    app_config.database.connection_string = "postgresql://user:pw@db/microsub"
    monkeypatch.setattr(cli, "parse_app_config", lambda path: app_config)
    monkeypatch.setattr(cli, "execute", lambda config: None)

    with caplog.at_level(logging.INFO, logger="microsub.cli"):
        cli.main([])

    assert "secret-token" not in caplog.text
    assert "user:pw" not in caplog.text
    assert "***MASKED***" in caplog.text


def test_main_applies_env_file(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda level, log_file=None: None)
    monkeypatch.setattr(cli, "parse_app_config", lambda path: _app_config(env_file="env.xml"))
    monkeypatch.setattr(cli, "parse_env_config", lambda path: {"MICROSUB_TEST_VAR": "on"})
    monkeypatch.setattr(cli, "execute", lambda config: None)
    monkeypatch.setenv("MICROSUB_TEST_VAR", "off")

    cli.main([])

    assert os.environ["MICROSUB_TEST_VAR"] == "on"


def test_main_list_adapters(monkeypatch, capsys, tmp_path):
    monkeypatch.setattr(cli, "configure_logging", lambda level, log_file=None: None)
    app_config = _app_config(
        adapters=[
            AdapterConfig(type="opml", options={"feeds": str(tmp_path / "missing.xml")}),
            AdapterConfig(type="subscriptions"),
        ]
    )
    app_config.database.connection_string = "sqlite://"
    monkeypatch.setattr(
        db, "init_engine", lambda url: pytest.fail("listing should not open the database")
    )
    monkeypatch.setattr(cli, "parse_app_config", lambda path: app_config)
    monkeypatch.setattr(
        cli, "execute", lambda config: pytest.fail("server should not start")
    )

    exit_code = cli.main(["--list-adapters"])

    assert exit_code == 0
    assert capsys.readouterr().out.splitlines() == [
        "  10  subscriptions  Subscriptions",
        "  20  opml  OPML Feeds",
    ]


def test_main_returns_error_for_missing_config(monkeypatch, tmp_path):
    monkeypatch.setattr(cli, "configure_logging", lambda level, log_file=None: None)

    assert cli.main(["--config", str(tmp_path / "missing.xml")]) == 1


def test_main_reports_invalid_configuration(monkeypatch):
    def bad_config(path):
        raise ValueError("Config must declare at least one <adapter>.")

    monkeypatch.setattr(cli, "parse_app_config", bad_config)

    with pytest.raises(SystemExit) as excinfo:
        cli.main([])

    assert excinfo.value.code == 2
