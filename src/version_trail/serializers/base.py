"""Shared value normalization for the built-in serializers.

Datetimes are stored as UTC instants. Naive datetimes are taken to be UTC,
the same convention the rest of the engine applies to timestamps.
"""

from __future__ import annotations

from datetime import datetime, time, timezone
from typing import Literal

Precision = Literal["seconds", "microseconds"]


class BaseSerializer:
    """Base class holding the datetime precision policy.

    Args:
        precision: "microseconds" keeps sub-second precision, "seconds"
            truncates datetime and time values to whole seconds.
    """

    name = "base"

    def __init__(self, precision: Precision = "microseconds") -> None:
        self._precision = precision

    def normalize_datetime(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if self._precision == "seconds":
            value = value.replace(microsecond=0)
        return value

    def normalize_time(self, value: time) -> time:
        if self._precision == "seconds":
            value = value.replace(microsecond=0)
        return value
