"""Temporal normalizer shared by every movement computation.

Records reach the engine from several write paths, each with its own date
encoding: document-store timestamp objects, serialized ``{"seconds": ...}``
mappings, native ``datetime``/``date`` values, epoch milliseconds, and ISO
strings. :func:`normalize` decodes all of them once into a canonical,
timezone-aware UTC :class:`~datetime.datetime`. ``None`` is the explicit
"invalid" marker; callers skip such records rather than aborting.

Calendar bucketing (:func:`month_start`, :func:`in_month`) is performed in
UTC so the same snapshot always partitions the same way.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from . import log
from .errors import InvalidPeriodError


_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

# Conversion hooks exposed by timestamp wrappers (document-store SDKs, pandas).
_CONVERTER_NAMES = ("to_datetime", "to_pydatetime", "toDate")


def normalize(raw: Any) -> Optional[datetime]:
    """Decode a raw date value into a canonical UTC instant.

    Args:
        raw (Any): Date value as stored on a record. The accepted shapes, in
            priority order, are: an object exposing a conversion callable
            (``to_datetime``, ``to_pydatetime`` or ``toDate``), an object or
            mapping with an integer ``seconds`` field, a native
            ``datetime``/``date``, a numeric epoch-milliseconds value, and an
            ISO-8601 string.

    Returns:
        datetime | None: Timezone-aware UTC instant, or ``None`` when the value
            cannot be decoded into a finite point in time. The function never
            raises.
    """

    if raw is None or isinstance(raw, bool):
        return None

    converter = _find_converter(raw)
    if converter is not None:
        return _from_converter(raw, converter)

    seconds = _epoch_seconds_field(raw)
    if seconds is not None:
        return _from_epoch_seconds(raw, seconds)

    if isinstance(raw, (datetime, date)):
        return _from_native(raw)

    if isinstance(raw, (int, float, Decimal)):
        return _from_epoch_millis(raw)

    if isinstance(raw, str):
        return _from_iso_string(raw)

    return None


def is_valid(raw: Any) -> bool:
    """Return ``True`` when :func:`normalize` can decode ``raw``."""
    return normalize(raw) is not None


def validate_period(year: int, month: int) -> None:
    """Reject years and 0-indexed months outside the supported calendar.

    Raises:
        InvalidPeriodError: If ``year`` is not an integer in ``1..9999`` or
            ``month`` is not an integer in ``0..11``.
    """
    if not isinstance(year, int) or isinstance(year, bool) or not 1 <= year <= 9999:
        raise InvalidPeriodError(f"Year must be an integer between 1 and 9999, got {year!r}")
    if not isinstance(month, int) or isinstance(month, bool) or not 0 <= month <= 11:
        raise InvalidPeriodError(f"Month must be an integer between 0 and 11, got {month!r}")


def month_start(year: int, month: int) -> datetime:
    """Return the first instant of a 0-indexed calendar month in UTC."""
    validate_period(year, month)
    return datetime(year, month + 1, 1, tzinfo=UTC)


def in_month(instant: datetime, year: int, month: int) -> bool:
    """Return ``True`` when ``instant`` falls inside the 0-indexed month."""
    return instant.year == year and instant.month == month + 1


def _find_converter(raw: Any) -> Optional[Any]:
    if isinstance(raw, (str, bytes, Mapping)):
        return None
    for name in _CONVERTER_NAMES:
        candidate = getattr(raw, name, None)
        if callable(candidate):
            return candidate
    return None


def _from_converter(raw: Any, converter: Any) -> Optional[datetime]:
    try:
        converted = converter()
    except Exception as exc:  # third-party timestamp wrappers raise arbitrary errors
        log.debug("Date converter on %r failed: %s", raw, exc)
        return None
    if isinstance(converted, (datetime, date)):
        return _from_native(converted)
    return None


def _epoch_seconds_field(raw: Any) -> Optional[int]:
    if isinstance(raw, (str, bytes, datetime, date, timedelta)):
        return None
    if isinstance(raw, Mapping):
        seconds = raw.get("seconds")
    else:
        seconds = getattr(raw, "seconds", None)
    if isinstance(seconds, int) and not isinstance(seconds, bool):
        return seconds
    return None


def _from_epoch_seconds(raw: Any, seconds: int) -> Optional[datetime]:
    if isinstance(raw, Mapping):
        nanos = raw.get("nanoseconds", 0)
    else:
        nanos = getattr(raw, "nanoseconds", 0)
    if not isinstance(nanos, int) or isinstance(nanos, bool):
        nanos = 0
    try:
        return _EPOCH + timedelta(seconds=seconds, microseconds=nanos // 1000)
    except OverflowError:
        return None


def _from_native(value: date) -> Optional[datetime]:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        try:
            return value.astimezone(UTC)
        except (OverflowError, ValueError):
            return None
    return datetime(value.year, value.month, value.day, tzinfo=UTC)


def _from_epoch_millis(value: int | float | Decimal) -> Optional[datetime]:
    try:
        millis = float(value)
    except (ValueError, OverflowError):
        return None
    if not math.isfinite(millis):
        return None
    try:
        return _EPOCH + timedelta(milliseconds=millis)
    except OverflowError:
        return None


def _from_iso_string(text: str) -> Optional[datetime]:
    text = text.strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return _from_native(parsed)


__all__ = [
    "normalize",
    "is_valid",
    "validate_period",
    "month_start",
    "in_month",
]
