"""
Tabwatch configuration — loads and merges config from multiple sources.

Precedence (highest to lowest):
1. Explicit overrides (passed in code)
2. Environment variables (TABWATCH_*)
3. Project config (./tabwatch.toml)
4. User config (~/.tabwatch/config.toml)
5. Defaults (hardcoded)

Environment variable mapping:
    TABWATCH_CODEGEN_PROVIDER      → codegen.provider
    TABWATCH_CODEGEN_API_KEY       → codegen.api_key
    TABWATCH_CODEGEN_MODEL         → codegen.model
    TABWATCH_CODEGEN_ENDPOINT      → codegen.endpoint_override
    TABWATCH_CAPTURE_POLL_INTERVAL → capture.poll_interval
    TABWATCH_STORAGE_DB_PATH       → storage.db_path
    TABWATCH_BROWSER_HEADLESS      → browser.headless
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from tabwatch.core.errors import ConfigError

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Config Sub-Models
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TabConfig(BaseModel):
    """One embedded web application."""

    id: str
    label: str
    url: str


def _default_tabs() -> list[TabConfig]:
    return [
        TabConfig(id="slack", label="Slack", url="https://app.slack.com/client"),
        TabConfig(id="teams", label="Teams", url="https://teams.microsoft.com"),
        TabConfig(id="office", label="Office", url="https://www.office.com"),
        TabConfig(id="gmail", label="Gmail", url="https://mail.google.com"),
        TabConfig(id="calendar", label="Google Calendar", url="https://calendar.google.com"),
    ]


class CaptureConfig(BaseModel):
    """DOM capture polling."""

    enabled: bool = True
    poll_interval: float = 5.0  # seconds
    max_frames: int = 16
    max_items: int = 120
    dedup_capacity: int = 20000


class HistoryConfig(BaseModel):
    """In-memory caps for the bounded logs."""

    max_messages: int = 400
    max_events: int = 400
    max_evaluations: int = 1200


class StorageConfig(BaseModel):
    """Durable storage."""

    db_path: str = "~/.tabwatch/tabwatch.db"
    shutdown_grace: float = 5.0  # seconds to wait for in-flight writes


class CodegenConfig(BaseModel):
    """Code-generation provider configuration."""

    provider: str = "openai"
    api_key: str = ""
    model: str = "gpt-4.1-mini"
    endpoint_override: str = ""
    timeout: float = 30.0

    @property
    def configured(self) -> bool:
        return bool(self.api_key.strip())


class BrowserConfig(BaseModel):
    """Playwright browser host."""

    headless: bool = False
    user_data_dir: str = "~/.tabwatch/browser"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Main Config
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TabwatchConfig(BaseModel):
    """Root configuration for Tabwatch."""

    tabs: list[TabConfig] = Field(default_factory=_default_tabs)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    codegen: CodegenConfig = Field(default_factory=CodegenConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)

    @staticmethod
    def load(
        overrides: dict[str, Any] | None = None,
        project_path: Path | None = None,
        user_path: Path | None = None,
    ) -> TabwatchConfig:
        """
        Load configuration from all sources and merge.

        Precedence: overrides > env vars > project toml > user toml > defaults
        """
        merged: dict[str, Any] = {}

        user_config_path = user_path or Path.home() / ".tabwatch" / "config.toml"
        if user_config_path.exists():
            _deep_merge(merged, _load_toml(user_config_path))

        project_config_path = project_path or Path.cwd() / "tabwatch.toml"
        if project_config_path.exists():
            _deep_merge(merged, _load_toml(project_config_path))

        _deep_merge(merged, _load_from_env())

        if overrides:
            _deep_merge(merged, overrides)

        _substitute_env_vars(merged)

        try:
            return TabwatchConfig(**merged)
        except Exception as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def get_home(self) -> Path:
        """Directory holding the database (usually ~/.tabwatch)."""
        return self.get_db_path().parent

    def get_db_path(self) -> Path:
        return Path(self.storage.db_path).expanduser()

    def tab_ids(self) -> list[str]:
        return [tab.id for tab in self.tabs]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Internal Helpers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _load_toml(path: Path) -> dict[str, Any]:
    """Load a TOML file."""
    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # type: ignore[no-redef]

    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except Exception as e:
        raise ConfigError(f"Failed to load config from {path}: {e}") from e


def _load_from_env() -> dict[str, Any]:
    """Load configuration from TABWATCH_* environment variables."""
    result: dict[str, Any] = {}

    env_mapping = {
        "TABWATCH_CODEGEN_PROVIDER": ("codegen", "provider"),
        "TABWATCH_CODEGEN_API_KEY": ("codegen", "api_key"),
        "TABWATCH_CODEGEN_MODEL": ("codegen", "model"),
        "TABWATCH_CODEGEN_ENDPOINT": ("codegen", "endpoint_override"),
        "TABWATCH_CAPTURE_POLL_INTERVAL": ("capture", "poll_interval"),
        "TABWATCH_STORAGE_DB_PATH": ("storage", "db_path"),
        "TABWATCH_BROWSER_HEADLESS": ("browser", "headless"),
    }

    # API keys and paths stay strings even when they look numeric
    raw_strings = {"TABWATCH_CODEGEN_API_KEY", "TABWATCH_STORAGE_DB_PATH"}

    for env_var, (section, key) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is None:
            continue
        result.setdefault(section, {})
        result[section][key] = value if env_var in raw_strings else _convert_value(value)

    return result


def _convert_value(value: str) -> Any:
    """Convert string value to appropriate type."""
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value


def _deep_merge(base: dict, override: dict) -> None:
    """Deep merge override into base (mutates base)."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _substitute(value: str) -> str:
    for var_name in _ENV_PATTERN.findall(value):
        value = value.replace(f"${{{var_name}}}", os.environ.get(var_name, ""))
    return value


def _substitute_env_vars(data: dict) -> None:
    """Recursively substitute ${ENV_VAR} patterns in string values."""
    for key, value in data.items():
        if isinstance(value, dict):
            _substitute_env_vars(value)
        elif isinstance(value, str):
            data[key] = _substitute(value)
        elif isinstance(value, list):
            for i, item in enumerate(value):
                if isinstance(item, str):
                    value[i] = _substitute(item)
                elif isinstance(item, dict):
                    _substitute_env_vars(item)
