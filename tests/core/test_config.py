"""Tests for the Config system."""

import os
from pathlib import Path

import pytest

from tabwatch.core.config import (
    TabwatchConfig,
    _convert_value,
    _deep_merge,
    _substitute_env_vars,
)
from tabwatch.core.errors import ConfigError


def test_default_config():
    """Default config has sensible values."""
    config = TabwatchConfig()

    assert config.capture.poll_interval == 5.0
    assert config.capture.max_frames == 16
    assert config.capture.dedup_capacity == 20000
    assert config.history.max_messages == 400
    assert config.history.max_evaluations == 1200
    assert config.codegen.provider == "openai"
    assert config.codegen.configured is False
    assert config.tab_ids() == ["slack", "teams", "office", "gmail", "calendar"]


def test_load_with_overrides():
    """Explicit overrides take highest precedence."""
    config = TabwatchConfig.load(
        overrides={
            "codegen": {"provider": "anthropic", "api_key": "sk-test"},
            "capture": {"poll_interval": 2.5},
        },
        project_path=Path("/nonexistent/tabwatch.toml"),
        user_path=Path("/nonexistent/config.toml"),
    )

    assert config.codegen.provider == "anthropic"
    assert config.codegen.configured is True
    assert config.capture.poll_interval == 2.5
    # Defaults still work for non-overridden values
    assert config.capture.max_frames == 16


def test_env_var_loading(monkeypatch, tmp_path):
    """TABWATCH_* environment variables are loaded."""
    monkeypatch.setenv("TABWATCH_CODEGEN_PROVIDER", "gemini")
    monkeypatch.setenv("TABWATCH_CODEGEN_API_KEY", "12345")
    monkeypatch.setenv("TABWATCH_CAPTURE_POLL_INTERVAL", "10")
    monkeypatch.setenv("TABWATCH_BROWSER_HEADLESS", "true")
    monkeypatch.setenv("TABWATCH_STORAGE_DB_PATH", str(tmp_path / "x.db"))

    config = TabwatchConfig.load(user_path=tmp_path / "missing.toml", project_path=tmp_path / "p.toml")

    assert config.codegen.provider == "gemini"
    assert config.codegen.api_key == "12345"
    assert config.capture.poll_interval == 10
    assert config.browser.headless is True
    assert config.get_db_path() == tmp_path / "x.db"
    assert config.get_home() == tmp_path


def test_toml_precedence(tmp_path, monkeypatch):
    """Project toml overrides user toml; env overrides both."""
    user = tmp_path / "user.toml"
    user.write_text('[codegen]\nprovider = "openrouter"\nmodel = "m-user"\n')
    project = tmp_path / "tabwatch.toml"
    project.write_text('[codegen]\nmodel = "m-project"\n\n[capture]\nenabled = false\n')
    monkeypatch.setenv("TABWATCH_CODEGEN_MODEL", "m-env")

    config = TabwatchConfig.load(user_path=user, project_path=project)

    assert config.codegen.provider == "openrouter"
    assert config.codegen.model == "m-env"
    assert config.capture.enabled is False


def test_bad_toml_raises_config_error(tmp_path):
    broken = tmp_path / "tabwatch.toml"
    broken.write_text("[codegen\nprovider = ")
    with pytest.raises(ConfigError):
        TabwatchConfig.load(project_path=broken, user_path=tmp_path / "none.toml")


def test_invalid_values_raise_config_error(tmp_path):
    with pytest.raises(ConfigError):
        TabwatchConfig.load(
            overrides={"capture": {"max_frames": "many"}},
            project_path=tmp_path / "a.toml",
            user_path=tmp_path / "b.toml",
        )


def test_env_var_substitution(monkeypatch):
    """${VAR} in config values gets replaced with env var values."""
    monkeypatch.setenv("MY_KEY", "secret123")
    data = {"key": "${HOME}/something", "nested": {"api": "${MY_KEY}"}, "tabs": [{"url": "${MY_KEY}"}]}

    _substitute_env_vars(data)

    assert "something" in data["key"]
    assert data["nested"]["api"] == "secret123"
    assert data["tabs"][0]["url"] == "secret123"


def test_deep_merge():
    base = {"a": 1, "b": {"c": 2, "d": 3}, "e": 5}
    override = {"b": {"c": 20, "f": 6}, "g": 7}

    _deep_merge(base, override)

    assert base == {"a": 1, "b": {"c": 20, "d": 3, "f": 6}, "e": 5, "g": 7}


def test_convert_value():
    assert _convert_value("true") is True
    assert _convert_value("no") is False
    assert _convert_value("42") == 42
    assert _convert_value("3.14") == 3.14
    assert _convert_value("hello") == "hello"


def test_db_path_expands_home():
    config = TabwatchConfig()
    assert config.get_db_path().is_absolute()
    assert config.get_db_path() == Path(os.path.expanduser("~/.tabwatch/tabwatch.db"))
