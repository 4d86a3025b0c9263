"""JSON serializer with tagged temporal and exact-numeric values.

JSON has no native datetime, date, time, Decimal or UUID, so those values are
written as single-key tagged objects, e.g. ``{"$datetime": "2024-05-01T10:00:00+00:00"}``,
and restored on load.
"""

from __future__ import annotations

import json
import uuid
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

from version_trail.errors import SerializationError
from version_trail.serializers.base import BaseSerializer

_DATETIME = "$datetime"
_DATE = "$date"
_TIME = "$time"
_DECIMAL = "$decimal"
_UUID = "$uuid"

_DECODERS: dict[str, Callable[[str], Any]] = {
    _DATETIME: datetime.fromisoformat,
    _DATE: date.fromisoformat,
    _TIME: time.fromisoformat,
    _DECIMAL: Decimal,
    _UUID: uuid.UUID,
}


class JSONSerializer(BaseSerializer):
    """Serializer producing compact JSON text."""

    name = "json"

    def _tag(self, value: Any) -> Any:
        # datetime subclasses date, so it must be tested first
        if isinstance(value, datetime):
            return {_DATETIME: self.normalize_datetime(value).isoformat()}
        if isinstance(value, date):
            return {_DATE: value.isoformat()}
        if isinstance(value, time):
            return {_TIME: self.normalize_time(value).isoformat()}
        if isinstance(value, Decimal):
            return {_DECIMAL: str(value)}
        if isinstance(value, uuid.UUID):
            return {_UUID: str(value)}
        if isinstance(value, (set, frozenset, tuple)):
            return list(value)
        raise TypeError(f"Object of type {type(value).__name__} is not serializable")

    @staticmethod
    def _untag(obj: dict[str, Any]) -> Any:
        if len(obj) == 1:
            key, raw = next(iter(obj.items()))
            decoder = _DECODERS.get(key)
            if decoder is not None and isinstance(raw, str):
                return decoder(raw)
        return obj

    def dump(self, value: Any) -> str:
        try:
            return json.dumps(value, default=self._tag, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            raise SerializationError(f"Failed to encode value as JSON: {exc}") from exc

    def load(self, stored: str) -> Any:
        try:
            return json.loads(stored, object_hook=self._untag)
        except (json.JSONDecodeError, TypeError, ValueError, InvalidOperation) as exc:
            raise SerializationError(f"Failed to decode JSON snapshot: {exc}") from exc
