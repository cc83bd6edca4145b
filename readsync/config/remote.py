from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ._validators import _ensure_secret, _parse_float_in_range, _parse_int_in_range


class RemoteConfig(BaseModel):
    """Remote multi-device store (Supabase/PostgREST) connection settings."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str = Field(default="", validation_alias="SUPABASE_URL")
    anon_key: str = Field(default="", validation_alias="SUPABASE_ANON_KEY")
    access_token: str = Field(default="", validation_alias="SUPABASE_ACCESS_TOKEN")
    timeout_sec: float = Field(default=10.0, validation_alias="REMOTE_TIMEOUT_SEC")
    max_retries: int = Field(default=3, validation_alias="REMOTE_MAX_RETRIES")
    provider: str = Field(default="mgeko", validation_alias="REMOTE_PROVIDER")
    fetch_cache_ttl_sec: float = Field(default=30.0, validation_alias="REMOTE_FETCH_CACHE_TTL_SEC")

    @property
    def enabled(self) -> bool:
        return bool(self.url and self.anon_key)

    @field_validator("url", mode="before")
    @classmethod
    def _validate_url(cls, value: Any) -> str:
        url = str(value or "").strip()
        if not url:
            return ""
        if not url.startswith(("http://", "https://")):
            msg = "SUPABASE_URL must start with http:// or https://"
            raise ValueError(msg)
        return url.rstrip("/")

    @field_validator("anon_key", mode="before")
    @classmethod
    def _validate_anon_key(cls, value: Any) -> str:
        return _ensure_secret(value, name="Supabase anon key")

    @field_validator("access_token", mode="before")
    @classmethod
    def _validate_access_token(cls, value: Any) -> str:
        return _ensure_secret(value, name="Supabase access token")

    @field_validator("timeout_sec", mode="before")
    @classmethod
    def _validate_timeout(cls, value: Any) -> float:
        return _parse_float_in_range(value, default=10.0, low=0.1, high=300, name="Remote timeout")

    @field_validator("max_retries", mode="before")
    @classmethod
    def _validate_max_retries(cls, value: Any) -> int:
        return _parse_int_in_range(value, default=3, low=0, high=10, name="Remote max retries")

    @field_validator("provider", mode="before")
    @classmethod
    def _validate_provider(cls, value: Any) -> str:
        provider = str(value or "mgeko").strip().lower()
        if not provider:
            return "mgeko"
        if len(provider) > 50:
            msg = "Remote provider name is too long"
            raise ValueError(msg)
        return provider

    @field_validator("fetch_cache_ttl_sec", mode="before")
    @classmethod
    def _validate_cache_ttl(cls, value: Any) -> float:
        return _parse_float_in_range(
            value, default=30.0, low=0, high=86400, name="Remote fetch cache TTL"
        )
