"""Peewee ORM models for the device-local replica."""

from __future__ import annotations

import datetime as _dt
from typing import Any

import peewee

from readsync.core.time_utils import UTC

# A proxy that will be initialised with the concrete database instance at runtime.
database_proxy: peewee.Database = peewee.DatabaseProxy()


class BaseModel(peewee.Model):
    """Base Peewee model bound to the lazily initialised database proxy."""

    def save(self, *args: Any, **kwargs: Any) -> int:
        if hasattr(self, "updated_at"):
            self.updated_at = _utcnow()
        return super().save(*args, **kwargs)

    class Meta:
        database = database_proxy
        legacy_table_names = False


def _utcnow() -> _dt.datetime:
    return _dt.datetime.now(UTC)


class KeyValueEntry(BaseModel):
    """One JSON document per logical collection (bookmarks, progress, cursor).

    Each write replaces the whole document, mirroring the whole-record
    semantics of the sync protocol.
    """

    key = peewee.TextField(primary_key=True)
    value = peewee.TextField()
    updated_at = peewee.DateTimeField(default=_utcnow)


ALL_MODELS: tuple[type[peewee.Model], ...] = (KeyValueEntry,)
