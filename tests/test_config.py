"""Tests for configuration loading and validation."""

from __future__ import annotations

import os

import pytest

from readsync.application.sync import SyncContext
from readsync.config import ProgressConfig, RemoteConfig, Settings, load_config

ENV_NAMES = (
    "DB_PATH",
    "LOG_LEVEL",
    "LOG_JSON",
    "LOG_FILE",
    "SUPABASE_URL",
    "SUPABASE_ANON_KEY",
    "SUPABASE_ACCESS_TOKEN",
    "REMOTE_TIMEOUT_SEC",
    "REMOTE_MAX_RETRIES",
    "REMOTE_PROVIDER",
    "REMOTE_FETCH_CACHE_TTL_SEC",
    "SYNC_INTERVAL_MINUTES",
    "SYNC_ROLLBACK_ON_REMOTE_FAILURE",
    "PROGRESS_DEBOUNCE_SEC",
    "PROGRESS_COMPLETION_THRESHOLD",
    "PROGRESS_PUSH_STEP",
    "DB_OPERATION_TIMEOUT",
    "DB_MAX_RETRIES",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def test_defaults(tmp_path):
    cfg = load_config({"DB_PATH": str(tmp_path / "r.db")})

    assert cfg.runtime.db_path == str(tmp_path / "r.db")
    assert cfg.runtime.log_level == "INFO"
    assert cfg.remote.enabled is False
    assert cfg.sync.interval_minutes == 5
    assert cfg.sync.interval_ms == 300_000
    assert cfg.sync.rollback_on_remote_failure is False
    assert cfg.progress.debounce_sec == 1.0
    assert cfg.progress.completion_threshold == 90
    assert cfg.progress.push_step == 10
    assert cfg.remote.fetch_cache_ttl_sec == 30.0


def test_environment_variables_are_nested(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.co/")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")
    monkeypatch.setenv("SYNC_INTERVAL_MINUTES", "15")
    monkeypatch.setenv("SYNC_ROLLBACK_ON_REMOTE_FAILURE", "true")
    monkeypatch.setenv("PROGRESS_DEBOUNCE_SEC", "2.5")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    cfg = load_config()

    assert cfg.remote.enabled is True
    assert cfg.remote.url == "https://project.supabase.co"
    assert cfg.sync.interval_minutes == 15
    assert cfg.sync.rollback_on_remote_failure is True
    assert cfg.progress.debounce_sec == 2.5
    assert cfg.runtime.log_level == "DEBUG"


def test_overrides_beat_environment(monkeypatch):
    monkeypatch.setenv("SYNC_INTERVAL_MINUTES", "15")

    cfg = load_config({"SYNC_INTERVAL_MINUTES": "30", "PROGRESS_PUSH_STEP": 5})

    assert cfg.sync.interval_minutes == 30
    assert cfg.progress.push_step == 5


def test_db_path_expands_user():
    cfg = load_config({"DB_PATH": "~/reader/readsync.db"})

    assert cfg.runtime.db_path == os.path.expanduser("~/reader/readsync.db")
    assert load_config({"DB_PATH": ":memory:"}).runtime.db_path == ":memory:"


@pytest.mark.parametrize(
    "overrides",
    [
        {"SYNC_INTERVAL_MINUTES": "0"},
        {"SYNC_INTERVAL_MINUTES": "soon"},
        {"PROGRESS_COMPLETION_THRESHOLD": "101"},
        {"PROGRESS_COMPLETION_THRESHOLD": "40", "PROGRESS_PUSH_STEP": "50"},
        {"PROGRESS_DEBOUNCE_SEC": "-1"},
        {"SUPABASE_URL": "ftp://project.supabase.co"},
        {"SUPABASE_ANON_KEY": "has spaces"},
        {"REMOTE_MAX_RETRIES": "99"},
        {"LOG_LEVEL": "LOUD"},
        {"DB_MAX_RETRIES": "-1"},
    ],
)
def test_invalid_values_raise_runtime_error(overrides):
    with pytest.raises(RuntimeError, match="Configuration validation failed"):
        load_config(overrides)


def test_nest_flat_values_groups_by_section():
    sections = Settings.nest_flat_values(
        {"SUPABASE_URL": "https://x.supabase.co", "PROGRESS_PUSH_STEP": 5, "UNRELATED": 1}
    )

    assert sections["remote"] == {"url": "https://x.supabase.co"}
    assert sections["progress"] == {"push_step": 5}
    assert sections["sync"] == {}


def test_remote_enabled_requires_url_and_key():
    assert not RemoteConfig(url="https://x.supabase.co").enabled
    assert not RemoteConfig(anon_key="anon").enabled
    assert RemoteConfig(url="https://x.supabase.co", anon_key="anon").enabled


def test_progress_config_rejects_step_above_threshold():
    with pytest.raises(ValueError):
        ProgressConfig(completion_threshold=20, push_step=30)


def test_sync_context_timeout_covers_client_retries(local_store):
    cfg = load_config({"REMOTE_TIMEOUT_SEC": "10", "REMOTE_MAX_RETRIES": "3"})

    context = SyncContext.from_config(cfg, local_store, None)

    assert context.remote_timeout == 10 * 4 + 15
    assert context.sync is cfg.sync
    assert context.progress is cfg.progress
