"""YAML serializer built on PyYAML's safe dumper and loader.

Datetimes and dates use YAML's native timestamp type. Decimal, UUID and time
values, which safe YAML does not know, are written with local tags.
"""

from __future__ import annotations

import uuid
from datetime import datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any

import yaml

from version_trail.errors import SerializationError
from version_trail.serializers.base import BaseSerializer, Precision

_DECIMAL_TAG = "!decimal"
_UUID_TAG = "!uuid"
_TIME_TAG = "!time"


class _Loader(yaml.SafeLoader):
    """Safe loader that understands the local tags."""


_Loader.add_constructor(
    _DECIMAL_TAG, lambda loader, node: Decimal(loader.construct_scalar(node))
)
_Loader.add_constructor(
    _UUID_TAG, lambda loader, node: uuid.UUID(loader.construct_scalar(node))
)
_Loader.add_constructor(
    _TIME_TAG, lambda loader, node: time.fromisoformat(loader.construct_scalar(node))
)


class YAMLSerializer(BaseSerializer):
    """Serializer producing block-style YAML text."""

    name = "yaml"

    def __init__(self, precision: Precision = "microseconds") -> None:
        super().__init__(precision)
        serializer = self

        class _Dumper(yaml.SafeDumper):
            """Safe dumper bound to this serializer's precision."""

        def represent_datetime(dumper: yaml.SafeDumper, value: datetime) -> Any:
            return dumper.represent_datetime(serializer.normalize_datetime(value))

        def represent_time(dumper: yaml.SafeDumper, value: time) -> Any:
            return dumper.represent_scalar(
                _TIME_TAG, serializer.normalize_time(value).isoformat()
            )

        _Dumper.add_representer(datetime, represent_datetime)
        _Dumper.add_representer(time, represent_time)
        _Dumper.add_representer(
            Decimal, lambda dumper, value: dumper.represent_scalar(_DECIMAL_TAG, str(value))
        )
        _Dumper.add_representer(
            uuid.UUID, lambda dumper, value: dumper.represent_scalar(_UUID_TAG, str(value))
        )
        _Dumper.add_representer(
            tuple, lambda dumper, value: dumper.represent_list(list(value))
        )
        self._dumper = _Dumper

    def dump(self, value: Any) -> str:
        try:
            return yaml.dump(
                value, Dumper=self._dumper, default_flow_style=False, sort_keys=False
            )
        except yaml.YAMLError as exc:
            raise SerializationError(f"Failed to encode value as YAML: {exc}") from exc

    def load(self, stored: str) -> Any:
        try:
            return yaml.load(stored, Loader=_Loader)  # noqa: S506, loader subclasses SafeLoader
        except (yaml.YAMLError, ValueError, InvalidOperation) as exc:
            raise SerializationError(f"Failed to decode YAML snapshot: {exc}") from exc
