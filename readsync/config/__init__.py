from __future__ import annotations

from .database import DatabaseConfig
from .remote import RemoteConfig
from .settings import AppConfig, RuntimeConfig, Settings, load_config
from .sync import ProgressConfig, SyncConfig

__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "ProgressConfig",
    "RemoteConfig",
    "RuntimeConfig",
    "Settings",
    "SyncConfig",
    "load_config",
]
