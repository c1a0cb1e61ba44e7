"""Adapter that collapses external timestamp shapes into one canonical type.

Stored documents and HTTP payloads have carried timestamps as structured
objects, epoch seconds, ``{"seconds": ..., "nanoseconds": ...}`` mappings and
ISO date strings. The core only ever sees timezone-aware UTC ``datetime``
values; everything else is converted here.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone

from quizmatrix.core.errors import ValidationError


def coerce_timestamp(value: object) -> datetime | None:
    """Convert ``value`` into an aware UTC ``datetime`` (``None`` passes through)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, bool):
        raise ValidationError("Booleans are not timestamps.")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, Mapping):
        if "seconds" not in value:
            raise ValidationError("Timestamp mapping must contain 'seconds'.")
        seconds = float(value["seconds"])
        nanos = float(value.get("nanoseconds", 0) or 0)
        return datetime.fromtimestamp(seconds + nanos / 1_000_000_000, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return _as_utc(datetime.fromisoformat(text))
        except ValueError as exc:
            raise ValidationError(f"Unrecognised timestamp string: {value!r}") from exc
    to_datetime = getattr(value, "to_datetime", None)
    if callable(to_datetime):
        return coerce_timestamp(to_datetime())
    raise ValidationError(f"Unsupported timestamp representation: {type(value).__name__}")


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return _as_utc(value).isoformat().replace("+00:00", "Z")


def _as_utc(value: datetime) -> datetime:
    # Naive values are assumed to already be UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
