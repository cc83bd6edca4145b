"""Remote multi-device store adapter."""

from readsync.adapters.remote.cached import CachedRemoteStore
from readsync.adapters.remote.client import SupabaseRemoteStore

__all__ = ["CachedRemoteStore", "SupabaseRemoteStore"]
