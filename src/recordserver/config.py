"""
Configuration for recordserver.

Two layers:
- ServerSettings: what a Server is built from (source, pub/sub, toggles)
- AppConfig: deployment configuration read from YAML files and environment
  variables (RECORDSERVER_*), turned into ServerSettings by
  build_server_settings()

Config files, relative to the project root:

    config/environment.yaml                   # shared
    config/environments/<environment>.yaml    # per environment, wins
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Literal, Optional, Type, Union

import yaml
from pydantic import field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from .core.errors import ConfigError
from .core.schema import Schema
from .core.utils import deep_merge
from .jsonapi.serializer import JSONAPISerializer
from .pubsub import MemoryPubSub, PubSub, RedisPubSub
from .source import MemorySource, RemoteSource, SQLSource, Source


@dataclass
class ServerSettings:
    """Everything a Server needs."""
    source: Source
    pubsub: Optional[PubSub] = None
    inflections: bool = True
    schema: Union[bool, str] = True  # False disables the schema endpoint, a string sets its path
    jsonapi: bool = True
    graphql: bool = True
    readonly: bool = False
    serializer_class: Type[JSONAPISerializer] = JSONAPISerializer
    websocket: Union[bool, str] = True  # change feed websocket, a string sets its path
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @property
    def schema_path(self) -> Optional[str]:
        if self.schema is False:
            return None
        return self.schema if isinstance(self.schema, str) else "/schema"

    @property
    def websocket_path(self) -> Optional[str]:
        if self.websocket is False or self.pubsub is None:
            return None
        return self.websocket if isinstance(self.websocket, str) else "/subscriptions"


class AppConfig(BaseSettings):
    """
    Deployment configuration.

    Environment variables (RECORDSERVER_SOURCE, RECORDSERVER_REDIS_URL, ...)
    take precedence over values loaded from config files.
    """
    model_config = SettingsConfigDict(env_prefix="RECORDSERVER_", env_file=".env", extra="ignore")

    schema_file: str = "schema.yaml"
    source: Literal["memory", "sql", "remote"] = "memory"
    database_url: str = "sqlite+aiosqlite:///:memory:"
    remote_url: Optional[str] = None
    redis_url: Optional[str] = None

    jsonapi: bool = True
    graphql: bool = True
    readonly: bool = False
    inflections: bool = True
    schema_endpoint: Union[bool, str] = True
    websocket: Union[bool, str] = True

    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]

    @field_validator("schema_endpoint", "websocket", mode="before")
    @classmethod
    def _parse_toggle(cls, value: Any) -> Any:
        if isinstance(value, str) and value.lower() in ("true", "false", "1", "0", "yes", "no"):
            return value.lower() in ("true", "1", "yes")
        return value

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ):
        # init kwargs carry the YAML files; the environment overrides them.
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def load_config(root: Union[str, Path] = ".", environment: Optional[str] = None) -> AppConfig:
    """
    Load configuration files and environment variables.

    Args:
        root: Project root containing the config/ directory
        environment: Environment name (defaults to $RECORDSERVER_ENV or "development")
    """
    root = Path(root)
    environment = environment or os.getenv("RECORDSERVER_ENV", "development")

    data = _read_yaml(root / "config" / "environment.yaml")
    data = deep_merge(data, _read_yaml(root / "config" / "environments" / f"{environment}.yaml"))

    schema_file = data.get("schema_file")
    if schema_file and not Path(schema_file).is_absolute():
        data["schema_file"] = str(root / schema_file)

    return AppConfig(**data)


def build_server_settings(config: AppConfig, schema: Optional[Schema] = None) -> ServerSettings:
    """Instantiate source and pub/sub engine described by the config."""
    schema = schema or Schema.from_file(config.schema_file)

    if config.source == "sql":
        source: Source = SQLSource(schema, config.database_url)
    elif config.source == "remote":
        if not config.remote_url:
            raise ConfigError("source 'remote' requires remote_url")
        source = RemoteSource(schema, config.remote_url)
    else:
        source = MemorySource(schema)

    if config.redis_url:
        pubsub: PubSub = RedisPubSub(config.redis_url)
    else:
        pubsub = MemoryPubSub()

    return ServerSettings(
        source=source,
        pubsub=pubsub,
        inflections=config.inflections,
        schema=config.schema_endpoint,
        jsonapi=config.jsonapi,
        graphql=config.graphql,
        readonly=config.readonly,
        websocket=config.websocket,
        cors_origins=list(config.cors_origins),
    )
