"""Tests for YAML/.env configuration loading."""

import os

import pytest

from policydesk.config import Config
from policydesk.exceptions import ConfigurationError
from policydesk.models import Channel


_ENV_NAMES = [
    f"POLICYDESK_{name}"
    for name in (
        "STRICT_MODE", "MAX_CACHE_SIZE", "ENABLE_HISTORY",
        "DEFAULT_CHANNEL", "TTL_MS", "MAX_HISTORY_SIZE",
    )
]


@pytest.fixture(autouse=True)
def _clean_env():
    # .env loading writes straight to os.environ
    for name in _ENV_NAMES:
        os.environ.pop(name, None)
    yield
    for name in _ENV_NAMES:
        os.environ.pop(name, None)


def _write_settings(tmp_path, text):
    (tmp_path / "settings.yaml").write_text(text, encoding="utf-8")
    return Config(tmp_path)


def test_missing_files_give_defaults(tmp_path):
    config = Config(tmp_path)
    options = config.dispatcher_options()
    assert options.max_cache_size == 100
    assert options.ttl_ms == 300000
    assert options.default_channel == Channel.SLACK
    assert config.rules_file is None
    assert config.builtin_plugins == ["sanitizer", "audit"]


def test_dispatcher_section_is_loaded(tmp_path):
    config = _write_settings(
        tmp_path,
        "dispatcher:\n"
        "  strict_mode: true\n"
        "  max_cache_size: 5\n"
        "  default_channel: discord\n",
    )
    options = config.dispatcher_options()
    assert options.strict_mode is True
    assert options.max_cache_size == 5
    assert options.default_channel == Channel.DISCORD


def test_env_overrides_yaml(tmp_path, monkeypatch):
    config = _write_settings(tmp_path, "dispatcher:\n  max_cache_size: 5\n")
    monkeypatch.setenv("POLICYDESK_MAX_CACHE_SIZE", "42")
    monkeypatch.setenv("POLICYDESK_ENABLE_HISTORY", "false")
    options = config.dispatcher_options()
    assert options.max_cache_size == 42
    assert options.enable_history is False


def test_dotenv_file_is_loaded(tmp_path):
    (tmp_path / ".env").write_text("POLICYDESK_TTL_MS=1234\n")
    options = Config(tmp_path).dispatcher_options()
    assert options.ttl_ms == 1234


@pytest.mark.parametrize("body,setting", [
    ("dispatcher:\n  max_cache_size: 0\n", "max_cache_size"),
    ("dispatcher:\n  default_channel: fax\n", "default_channel"),
    ("dispatcher:\n  cache_everything: true\n", "cache_everything"),
])
def test_invalid_options_raise(tmp_path, body, setting):
    config = _write_settings(tmp_path, body)
    with pytest.raises(ConfigurationError) as exc_info:
        config.dispatcher_options()
    assert exc_info.value.setting_name == setting


def test_malformed_yaml_raises(tmp_path):
    with pytest.raises(ConfigurationError):
        _write_settings(tmp_path, "dispatcher: [unclosed\n")


def test_validate_logs_but_does_not_raise(tmp_path):
    config = _write_settings(
        tmp_path,
        "dispatcher:\n  ttl_ms: -1\nrules_file: missing.yaml\n",
    )
    assert config.validate() is False


def test_validate_clean_config(tmp_path):
    assert Config(tmp_path).validate() is True


def test_rules_file_relative_to_config_dir(tmp_path):
    config = _write_settings(tmp_path, "rules_file: rules.yaml\n")
    assert config.rules_file == tmp_path / "rules.yaml"


def test_logging_accessors(tmp_path):
    config = _write_settings(
        tmp_path,
        "log_dir: /tmp/pd-logs\n"
        "logging:\n  level: DEBUG\n  subsystem_levels:\n    cache: WARNING\n",
    )
    assert str(config.log_dir) == "/tmp/pd-logs"
    assert config.logging_level == "DEBUG"
    assert config.logging_subsystem_levels == {"cache": "WARNING"}
    assert config.logging_backup_count == 5
