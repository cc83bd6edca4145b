from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ._validators import _parse_float_in_range, _parse_int_in_range


class SyncConfig(BaseModel):
    """Full-sync scheduling and optimistic mutation behaviour."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    interval_minutes: int = Field(
        default=5,
        validation_alias="SYNC_INTERVAL_MINUTES",
        description="Minimum minutes between automatic full syncs",
    )
    rollback_on_remote_failure: bool = Field(
        default=False,
        validation_alias="SYNC_ROLLBACK_ON_REMOTE_FAILURE",
        description="Undo an optimistic local mutation when its remote write fails",
    )

    @field_validator("interval_minutes", mode="before")
    @classmethod
    def _validate_interval(cls, value: Any) -> int:
        return _parse_int_in_range(
            value, default=5, low=1, high=10080, name="Sync interval (minutes)"
        )

    @property
    def interval_ms(self) -> int:
        return self.interval_minutes * 60 * 1000


class ProgressConfig(BaseModel):
    """Reading progress debounce and completion settings."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    debounce_sec: float = Field(default=1.0, validation_alias="PROGRESS_DEBOUNCE_SEC")
    completion_threshold: int = Field(default=90, validation_alias="PROGRESS_COMPLETION_THRESHOLD")
    push_step: int = Field(default=10, validation_alias="PROGRESS_PUSH_STEP")

    @field_validator("debounce_sec", mode="before")
    @classmethod
    def _validate_debounce(cls, value: Any) -> float:
        return _parse_float_in_range(value, default=1.0, low=0, high=60, name="Progress debounce")

    @field_validator("completion_threshold", mode="before")
    @classmethod
    def _validate_threshold(cls, value: Any) -> int:
        return _parse_int_in_range(
            value, default=90, low=1, high=100, name="Progress completion threshold"
        )

    @field_validator("push_step", mode="before")
    @classmethod
    def _validate_push_step(cls, value: Any) -> int:
        return _parse_int_in_range(value, default=10, low=1, high=100, name="Progress push step")

    @model_validator(mode="after")
    def _validate_step_fits_threshold(self) -> ProgressConfig:
        if self.push_step > self.completion_threshold:
            msg = "PROGRESS_PUSH_STEP must not exceed PROGRESS_COMPLETION_THRESHOLD"
            raise ValueError(msg)
        return self
