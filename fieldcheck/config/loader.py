from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Config loader.

Responsibilities:
- Load YAML config/fieldcheck.yml (every section optional)
- Validate against the bundled config_schema.json
- Apply defaults, then environment overrides for tokens and ids
"""

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "ConfigError",
    "EngineConfig",
    "RetryConfig",
    "RemoteConfig",
    "NotificationConfig",
    "AppConfig",
    "load_config",
    "apply_env",
    "from_dict",
]

DEFAULT_CONFIG_PATH = Path("config/fieldcheck.yml")
SCHEMA_PATH = Path(__file__).with_name("config_schema.json")

ENV_ACCESS_TOKEN = "FIELDCHECK_ACCESS_TOKEN"
ENV_WEBHOOK_URL = "FIELDCHECK_WEBHOOK_URL"
ENV_APP_TOKEN = "FIELDCHECK_APP_TOKEN"
ENV_TABLE_ID = "FIELDCHECK_TABLE_ID"
ENV_VIEW_ID = "FIELDCHECK_VIEW_ID"


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class EngineConfig:
    chunk_size: int = 1000
    debounce_seconds: float = 0.5
    page_size: int = 100


@dataclass(frozen=True)
class RetryConfig:
    attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 5.0


@dataclass(frozen=True)
class RemoteConfig:
    base_url: str = "https://open.larksuite.com/open-apis"
    app_token: str | None = None
    table_id: str | None = None
    view_id: str | None = None
    timeout_seconds: float = 30.0
    access_token: str | None = None  # environment only


@dataclass(frozen=True)
class NotificationConfig:
    webhook_url: str | None = None
    title: str = "Data validation issues"
    locale: str = "en_us"
    table_url: str | None = None
    link_text: str = "Open table"
    closing_text: str = "\nPlease fix these, thank you! "


@dataclass(frozen=True)
class AppConfig:
    engine: EngineConfig = field(default_factory=EngineConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    notification: NotificationConfig = field(default_factory=NotificationConfig)
    messages: dict[str, str] = field(default_factory=dict)


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the bundled JSON schema.

    Raises:
        ConfigError: schema file missing or broken, or the data fails validation
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigError(f"config validation failed at {where}: {e.message}") from e


def from_dict(data: Mapping[str, Any]) -> AppConfig:
    """Build AppConfig from already validated data."""
    eng = data.get("engine") or {}
    ret = data.get("retry") or {}
    rem = data.get("remote") or {}
    note = data.get("notification") or {}
    return AppConfig(
        engine=EngineConfig(**eng),
        retry=RetryConfig(**ret),
        remote=RemoteConfig(**rem),
        notification=NotificationConfig(**note),
        messages=dict(data.get("messages") or {}),
    )


def apply_env(cfg: AppConfig, environ: Mapping[str, str] | None = None) -> AppConfig:
    """Overlay environment values (env wins over the file)."""
    env = os.environ if environ is None else environ
    remote = cfg.remote
    overrides = {
        "access_token": env.get(ENV_ACCESS_TOKEN),
        "app_token": env.get(ENV_APP_TOKEN),
        "table_id": env.get(ENV_TABLE_ID),
        "view_id": env.get(ENV_VIEW_ID),
    }
    remote = replace(remote, **{k: v for k, v in overrides.items() if v})
    notification = cfg.notification
    if env.get(ENV_WEBHOOK_URL):
        notification = replace(notification, webhook_url=env[ENV_WEBHOOK_URL])
    return replace(cfg, remote=remote, notification=notification)


def load_config(path: Path = DEFAULT_CONFIG_PATH, *, required: bool = False) -> AppConfig:
    """Load, validate and default the config file.

    A missing file yields the defaults unless ``required`` is set.
    """
    if not path.exists():
        if required:
            raise ConfigError(f"config file not found: {path}")
        return apply_env(AppConfig())
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")

    _validate_config_schema(data)
    return apply_env(from_dict(data))
