"""Tests for structured logging helpers and time conversions."""

from __future__ import annotations

import json
import logging
import sys

from readsync.core.logging_utils import EnhancedJsonFormatter, generate_correlation_id
from readsync.core.time_utils import iso_to_ms, ms_to_iso


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="readsync.application.sync.orchestrator",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="progress_synced",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_groups_counters_and_context():
    formatter = EnhancedJsonFormatter(include_location=False)

    payload = json.loads(
        formatter.format(
            _record(
                user_id="u1",
                correlation_id="abc123",
                merged_count=4,
                pushed_count=1,
                entity="progress",
            )
        )
    )

    assert payload["message"] == "progress_synced"
    assert payload["level"] == "INFO"
    assert payload["user_id"] == "u1"
    assert payload["correlation_id"] == "abc123"
    assert payload["counters"] == {"merged_count": 4, "pushed_count": 1}
    assert payload["extra"] == {"entity": "progress"}
    assert "module" not in payload


def test_formatter_includes_exception():
    formatter = EnhancedJsonFormatter()
    try:
        raise ValueError("bad row")
    except ValueError:
        record = _record()
        record.exc_info = sys.exc_info()

    payload = json.loads(formatter.format(record))

    assert payload["exception"]["type"] == "ValueError"
    assert payload["exception"]["message"] == "bad row"


def test_correlation_ids_are_short_and_unique():
    ids = {generate_correlation_id() for _ in range(100)}

    assert len(ids) == 100
    assert all(len(value) == 12 for value in ids)


def test_iso_millisecond_conversions():
    assert ms_to_iso(1704164645678) == "2024-01-02T03:04:05.678Z"
    assert iso_to_ms("2024-01-02T03:04:05.678Z") == 1704164645678
    assert iso_to_ms("2024-01-02T03:04:05.678+00:00") == 1704164645678
    assert iso_to_ms("2024-01-02T03:04:05") == 1704164645000
    assert iso_to_ms("") is None
    assert iso_to_ms("yesterday") is None
