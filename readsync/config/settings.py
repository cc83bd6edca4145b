from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from .database import DatabaseConfig
from .remote import RemoteConfig
from .sync import ProgressConfig, SyncConfig

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "~/.readsync/readsync.db"


class RuntimeConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    db_path: str = Field(default=DEFAULT_DB_PATH, validation_alias="DB_PATH")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_json: bool = Field(default=False, validation_alias="LOG_JSON")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")

    @field_validator("db_path", mode="before")
    @classmethod
    def _validate_db_path(cls, value: Any) -> str:
        raw = str(value or DEFAULT_DB_PATH).strip()
        if "\x00" in raw:
            msg = "DB path contains invalid characters"
            raise ValueError(msg)
        if raw == ":memory:":
            return raw
        return str(Path(raw).expanduser())

    @field_validator("log_level", mode="before")
    @classmethod
    def _validate_log_level(cls, value: Any) -> str:
        log_level = str(value or "INFO").upper()
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if log_level not in valid_levels:
            msg = f"Invalid log level: {value}. Must be one of {valid_levels}"
            raise ValueError(msg)
        return log_level

    @field_validator("log_file", mode="before")
    @classmethod
    def _validate_log_file(cls, value: Any) -> str | None:
        if value is None:
            return None
        trimmed = str(value).strip()
        return trimmed or None


@dataclass(frozen=True)
class AppConfig:
    runtime: RuntimeConfig
    remote: RemoteConfig
    sync: SyncConfig
    progress: ProgressConfig
    database: DatabaseConfig


class Settings(BaseSettings):
    """Application settings loaded automatically from environment variables.

    Nested models are populated by matching ``validation_alias`` on each field,
    so every section is configured through flat variables such as
    ``SUPABASE_URL`` or ``PROGRESS_DEBOUNCE_SEC``.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
        populate_by_name=True,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    progress: ProgressConfig = Field(default_factory=ProgressConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    @model_validator(mode="before")
    @classmethod
    def _build_nested_from_env(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Build nested config objects from flat environment variables.

        Constructor arguments take precedence over ``os.environ``.
        """
        if not isinstance(data, dict):
            return data

        result = dict(data)
        sections = cls.nest_flat_values({**dict(os.environ), **data})

        for field_name, nested_data in sections.items():
            if nested_data:
                if field_name in result and isinstance(result[field_name], dict):
                    result[field_name] = {**nested_data, **result[field_name]}
                else:
                    result[field_name] = nested_data

        return result

    @classmethod
    def nest_flat_values(cls, source: dict[str, Any]) -> dict[str, dict[str, Any]]:
        """Group flat ``ENV_NAME: value`` pairs into per-section dicts."""
        sections: dict[str, dict[str, Any]] = {}
        for field_name, field_info in cls.model_fields.items():
            annotation = field_info.annotation
            if not isinstance(annotation, type) or not issubclass(annotation, BaseModel):
                continue

            nested_data: dict[str, Any] = {}
            for nested_field_name, nested_field in annotation.model_fields.items():
                env_value = cls._resolve_env_value(source, nested_field)
                if env_value is not None:
                    nested_data[nested_field_name] = env_value
            sections[field_name] = nested_data
        return sections

    @staticmethod
    def _resolve_env_value(data: dict[str, Any], field: Any) -> Any | None:
        aliases: list[str] = []
        alias = field.validation_alias
        if isinstance(alias, AliasChoices):
            aliases.extend(choice for choice in alias.choices if isinstance(choice, str))
        elif isinstance(alias, str):
            aliases.append(alias)
        if field.alias:
            aliases.append(field.alias)

        for name in aliases:
            if name in data:
                return data[name]
        return None

    def as_app_config(self) -> AppConfig:
        return AppConfig(
            runtime=self.runtime,
            remote=self.remote,
            sync=self.sync,
            progress=self.progress,
            database=self.database,
        )


def load_config(overrides: dict[str, Any] | None = None) -> AppConfig:
    """Load application configuration from environment variables and ``.env``.

    Args:
        overrides: Flat variable names (``SYNC_INTERVAL_MINUTES`` ...) that take
            precedence over the environment. Mostly useful in tests and the CLI.

    Returns:
        Immutable AppConfig instance with all configuration sections.

    Raises:
        RuntimeError: If configuration validation fails.
    """
    try:
        sections = Settings.nest_flat_values(overrides or {})
        settings = Settings(**{name: data for name, data in sections.items() if data})
    except ValidationError as exc:
        msg = f"Configuration validation failed: {exc}"
        raise RuntimeError(msg) from exc

    if not settings.remote.enabled:
        logger.info("remote_store_not_configured", extra={"db_path": settings.runtime.db_path})

    return settings.as_app_config()
