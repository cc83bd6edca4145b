from __future__ import annotations

from typing import Any


def _parse_int_in_range(value: Any, *, default: int, low: int, high: int, name: str) -> int:
    try:
        parsed = int(str(value if value not in (None, "") else default))
    except ValueError as exc:
        msg = f"{name} must be a valid integer"
        raise ValueError(msg) from exc
    if parsed < low or parsed > high:
        msg = f"{name} must be between {low} and {high}"
        raise ValueError(msg)
    return parsed


def _parse_float_in_range(
    value: Any, *, default: float, low: float, high: float, name: str
) -> float:
    try:
        parsed = float(str(value if value not in (None, "") else default))
    except ValueError as exc:
        msg = f"{name} must be a valid number"
        raise ValueError(msg) from exc
    if parsed < low or parsed > high:
        msg = f"{name} must be between {low} and {high}"
        raise ValueError(msg)
    return parsed


def _ensure_secret(value: Any, *, name: str) -> str:
    if value in (None, ""):
        return ""
    secret = str(value).strip()
    if len(secret) > 4096:
        msg = f"{name} appears to be too long"
        raise ValueError(msg)
    if any(char in secret for char in [" ", "\n", "\t"]):
        msg = f"{name} contains invalid characters"
        raise ValueError(msg)
    return secret
