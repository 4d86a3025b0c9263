"""Built-in serializers for snapshots and changesets."""

from __future__ import annotations

from version_trail.errors import ValidationError
from version_trail.serializers.base import BaseSerializer, Precision
from version_trail.serializers.json_serializer import JSONSerializer
from version_trail.serializers.yaml_serializer import YAMLSerializer

_SERIALIZERS: dict[str, type[BaseSerializer]] = {
    JSONSerializer.name: JSONSerializer,
    YAMLSerializer.name: YAMLSerializer,
}


def get_serializer(name: str, precision: Precision = "microseconds") -> BaseSerializer:
    """Return a built-in serializer by name.

    Args:
        name: "json" or "yaml".
        precision: Datetime precision kept in stored values.

    Raises:
        ValidationError: If the name is unknown.
    """
    try:
        serializer_cls = _SERIALIZERS[name]
    except KeyError:
        raise ValidationError(f"Unknown serializer {name!r}") from None
    return serializer_cls(precision=precision)


__all__ = ["BaseSerializer", "JSONSerializer", "YAMLSerializer", "get_serializer"]
