"""Metadata Provider: extension fields stored alongside each version.

A tracked type's metadata table maps a version field name to one of:

- a plain value                   stored as is (static)
- ``FromEvent(fn)``               ``fn(event)``, independent of the item
- ``FromItem(fn)``                ``fn(item)``, computed from the live item
- ``FromMethod(name)``            an attribute or method of the item

For ``FromMethod`` naming a persisted attribute, the value is taken from the
item's state before the event (for update and destroy), so the version
describes the state it snapshots.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from version_trail.errors import MetadataError, ValidationError
from version_trail.core.models import EVENT_CREATE, RESERVED_VERSION_FIELDS
from version_trail.observability import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class FromEvent:
    """Metadata computed from the event name alone."""

    fn: Callable[[str], Any]


@dataclass(frozen=True)
class FromItem:
    """Metadata computed from the item."""

    fn: Callable[[Any], Any]


@dataclass(frozen=True)
class FromMethod:
    """Metadata read from a named attribute or zero-argument method of the item."""

    name: str


class MetadataProvider:
    """Evaluates a metadata table for one tracked type.

    Args:
        table: {field_name: value | FromEvent | FromItem | FromMethod}.

    Raises:
        ValidationError: If a field name collides with a core Version field.
    """

    def __init__(self, table: Mapping[str, Any] | None = None) -> None:
        table = dict(table or {})
        clashes = sorted(set(table) & RESERVED_VERSION_FIELDS)
        if clashes:
            raise ValidationError(f"Metadata fields collide with version fields: {clashes}")
        self._table = table

    def static(self) -> dict[str, Any]:
        return {
            field: spec
            for field, spec in self._table.items()
            if not isinstance(spec, (FromEvent, FromItem, FromMethod))
        }

    def independent(self, event: str) -> dict[str, Any]:
        return {
            field: self._call(field, spec.fn, event)
            for field, spec in self._table.items()
            if isinstance(spec, FromEvent)
        }

    def dependent(self, item: Any) -> dict[str, Any]:
        return {
            field: self._call(field, spec.fn, item)
            for field, spec in self._table.items()
            if isinstance(spec, FromItem)
        }

    def derived_from_method(
        self,
        item: Any,
        method_name: str,
        before: Mapping[str, Any] | None = None,
    ) -> Any:
        """Return the value of a named attribute or method of the item.

        Args:
            item: The live item.
            method_name: Attribute or method name.
            before: Attributes before the event. When given and the name is a
                persisted attribute, the prior value is used.
        """
        if before is not None and method_name in before:
            return before[method_name]
        try:
            value = getattr(item, method_name)
        except AttributeError as exc:
            raise MetadataError(method_name, f"item has no attribute {method_name!r}") from exc
        if callable(value):
            return self._call(method_name, value)
        return value

    def collect(
        self,
        event: str,
        item: Any,
        before: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Evaluate the whole table for one lifecycle event.

        Args:
            event: Lifecycle event name.
            item: The live item.
            before: Attributes before the event (None for create).

        Returns:
            The metadata fields for the version.

        Raises:
            MetadataError: If any entry fails. The error is never swallowed.
        """
        prior = None if event == EVENT_CREATE else before
        values = self.static()
        values.update(self.independent(event))
        values.update(self.dependent(item))
        for field, spec in self._table.items():
            if isinstance(spec, FromMethod):
                values[field] = self.derived_from_method(item, spec.name, prior)
        return values

    @staticmethod
    def _call(field: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except MetadataError:
            raise
        except Exception as exc:
            logger.error("Metadata provider failed", field=field, error=str(exc))
            raise MetadataError(field, str(exc)) from exc
