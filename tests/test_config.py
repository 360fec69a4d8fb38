"""
tests/test_config.py - Configuration loading and precedence
"""
import logging
from pathlib import Path

import pytest
from pydantic import ValidationError

from posinventory.config import (
    LogLevel,
    POSInventoryConfig,
    cli_to_config_dict,
    deep_merge,
    env_to_config_dict,
    load_config,
)
from posinventory.logging import resolve_log_level


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(
        'database_path = "/tmp/from-file.db"\n'
        'log_level = "warning"\n'
        "\n"
        "[queue]\n"
        "max_retries = 5\n"
        "retry_delay = 0.25\n",
        encoding="utf-8",
    )
    return path


def test_defaults(tmp_path):
    config = load_config(tmp_path / "missing.toml", environ={})

    assert config.queue.max_retries == 3
    assert config.queue.retry_delay == 0.1
    assert config.queue.max_pending is None
    assert config.reservations.expiration_minutes == 15
    assert config.log_level == LogLevel.INFO
    assert config.database_path.name == "inventory.db"


def test_file_values_override_defaults(config_file):
    config = load_config(config_file, environ={})

    assert config.database_path == Path("/tmp/from-file.db")
    assert config.log_level == LogLevel.WARNING
    assert config.queue.max_retries == 5
    assert config.queue.retry_delay == 0.25


def test_environment_overrides_file(config_file):
    environ = {
        "POSINV_QUEUE__MAX_RETRIES": "7",
        "POSINV_DATABASE_PATH": "/tmp/from-env.db",
        "POSINV_DEBUG": "1",
        "UNRELATED": "x",
    }
    config = load_config(config_file, environ=environ)

    assert config.queue.max_retries == 7
    # Untouched nested keys keep the file value
    assert config.queue.retry_delay == 0.25
    assert config.database_path == Path("/tmp/from-env.db")


def test_cli_overrides_environment(config_file):
    config = load_config(
        config_file,
        cli_overrides=["queue.max_retries=9", "--queue.max_pending=100", "echo_sql=true"],
        environ={"POSINV_QUEUE__MAX_RETRIES": "7"},
    )

    assert config.queue.max_retries == 9
    assert config.queue.max_pending == 100
    assert config.echo_sql is True


def test_unknown_keys_rejected(tmp_path):
    with pytest.raises(ValidationError):
        load_config(tmp_path / "missing.toml", cli_overrides=["no_such_setting=1"], environ={})


def test_unknown_keys_dropped_when_lenient(tmp_path):
    config = load_config(
        tmp_path / "missing.toml", cli_overrides=["no_such_setting=1"], raise_unknown=False, environ={}
    )
    assert isinstance(config, POSInventoryConfig)


@pytest.mark.parametrize("override", ["queue.max_retries=0", "queue.retry_delay=-1", "queue.max_pending=0"])
def test_invalid_queue_settings(tmp_path, override):
    with pytest.raises(ValidationError):
        load_config(tmp_path / "missing.toml", cli_overrides=[override], environ={})


def test_malformed_toml_falls_back_to_defaults(tmp_path):
    path = tmp_path / "broken.toml"
    path.write_text("[queue\nmax_retries = ", encoding="utf-8")

    config = load_config(path, environ={})
    assert config.queue.max_retries == 3


def test_env_to_config_dict_nests_keys():
    assert env_to_config_dict({"POSINV_PAYMENTS__VNPAY_SECRET": "s3cret"}) == {
        "payments": {"vnpay_secret": "s3cret"}
    }


def test_cli_to_config_dict_skips_malformed():
    assert cli_to_config_dict(["queue.retry_delay=0.5", "nonsense"]) == {"queue": {"retry_delay": "0.5"}}


def test_deep_merge():
    base = {"queue": {"max_retries": 3, "retry_delay": 0.1}, "echo_sql": False}
    override = {"queue": {"max_retries": 5}, "echo_sql": True}

    assert deep_merge(base, override) == {"queue": {"max_retries": 5, "retry_delay": 0.1}, "echo_sql": True}
    assert base["queue"]["max_retries"] == 3


def test_log_level_resolution(tmp_path, monkeypatch):
    monkeypatch.delenv("DEBUG", raising=False)
    monkeypatch.delenv("POSINV_DEBUG", raising=False)
    monkeypatch.delenv("POSINV_LOGLEVEL", raising=False)
    config = load_config(tmp_path / "missing.toml", cli_overrides=["log_level=error"], environ={})

    assert resolve_log_level(config) == logging.ERROR
    assert resolve_log_level(config, log_level="warning") == logging.WARNING
    assert resolve_log_level(config, debug=True) == logging.DEBUG

    monkeypatch.setenv("POSINV_DEBUG", "1")
    assert resolve_log_level(config) == logging.DEBUG
