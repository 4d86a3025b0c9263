"""Registry of tracked model classes and their tracking options.

Subclasses of a registered class share the base class's item type and log.
The stored type discriminator selects the concrete class on reify through an
explicit variant table rather than dynamic class lookup.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from version_trail.core.models import STANDARD_EVENTS, Relation, VersionedModel
from version_trail.errors import ValidationError


class TrackingOptions(BaseModel):
    """Per-type tracking configuration.

    Attributes:
        item_type: Name under which versions are logged.
        relations: Relations copied or suppressed on reify.
        meta: Metadata table {field: value | FromEvent | FromItem | FromMethod}.
        on: Events that produce versions.
        ignore: Attributes whose changes alone do not produce an update version.
        skip: Attributes excluded from snapshots and changesets.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    item_type: str
    relations: tuple[Relation, ...] = ()
    meta: dict[str, Any] = Field(default_factory=dict)
    on: frozenset[str] = STANDARD_EVENTS
    ignore: frozenset[str] = frozenset()
    skip: frozenset[str] = frozenset()

    def relation(self, name: str) -> Relation | None:
        for relation in self.relations:
            if relation.name == name:
                return relation
        return None


class ModelRegistry:
    """Maps model classes to item types, options and discriminator variants."""

    def __init__(self) -> None:
        self._options: dict[str, TrackingOptions] = {}
        self._types_by_class: dict[type[VersionedModel], str] = {}
        # { item_type: { discriminator: model class } }
        self._variants: dict[str, dict[str, type[VersionedModel]]] = {}
        self._base_classes: dict[str, type[VersionedModel]] = {}

    def register(
        self,
        model_cls: type[VersionedModel],
        *,
        item_type: str | None = None,
        relations: Iterable[Relation] = (),
        meta: Mapping[str, Any] | None = None,
        on: Iterable[str] | None = None,
        ignore: Iterable[str] = (),
        skip: Iterable[str] = (),
    ) -> TrackingOptions:
        """Register a model class for tracking.

        A class whose ancestor is already registered becomes a variant of
        that ancestor's item type and inherits its options.

        Args:
            model_cls: The VersionedModel subclass to track.
            item_type: Explicit item type name. Defaults to the class name.
            relations: Declared relations.
            meta: Metadata table.
            on: Events to record. Defaults to all standard events.
            ignore: Attributes whose changes alone do not trigger a version.
            skip: Attributes never stored.

        Returns:
            The effective TrackingOptions for the class's item type.

        Raises:
            ValidationError: If the class is not a VersionedModel.
        """
        if not (isinstance(model_cls, type) and issubclass(model_cls, VersionedModel)):
            raise ValidationError(f"{model_cls!r} must subclass VersionedModel to be tracked")

        parent_type = self._registered_ancestor_type(model_cls)
        if parent_type is not None and item_type is None:
            self._types_by_class[model_cls] = parent_type
            self._variants[parent_type][model_cls.__name__] = model_cls
            return self._options[parent_type]

        resolved_type = item_type or model_cls.__name__
        options = TrackingOptions(
            item_type=resolved_type,
            relations=tuple(relations),
            meta=dict(meta or {}),
            on=frozenset(on) if on is not None else STANDARD_EVENTS,
            ignore=frozenset(ignore),
            skip=frozenset(skip),
        )
        self._options[resolved_type] = options
        self._types_by_class[model_cls] = resolved_type
        self._base_classes[resolved_type] = model_cls
        self._variants[resolved_type] = {model_cls.__name__: model_cls}
        return options

    def _registered_ancestor_type(self, model_cls: type) -> str | None:
        for ancestor in model_cls.__mro__[1:]:
            if ancestor in self._types_by_class:
                return self._types_by_class[ancestor]
        return None

    def _resolve(self, model_cls: type) -> str | None:
        if model_cls in self._types_by_class:
            return self._types_by_class[model_cls]
        parent_type = self._registered_ancestor_type(model_cls)
        if parent_type is not None:
            # the stored discriminator names this class, so reify must find it
            self._types_by_class[model_cls] = parent_type
            self._variants[parent_type].setdefault(model_cls.__name__, model_cls)
        return parent_type

    def is_tracked(self, model_cls: type) -> bool:
        return self._resolve(model_cls) is not None

    def item_type_of(self, item_or_cls: Any) -> str:
        """Return the item type name of a tracked instance or class.

        A descendant of a registered class that was never registered itself
        is added as a variant of its ancestor's item type on first lookup.

        Raises:
            ValidationError: If the class (or an ancestor) is not registered.
        """
        model_cls = item_or_cls if isinstance(item_or_cls, type) else type(item_or_cls)
        item_type = self._resolve(model_cls)
        if item_type is None:
            raise ValidationError(f"{model_cls.__name__} is not registered for tracking")
        return item_type

    def options_for(self, item_type: str) -> TrackingOptions:
        try:
            return self._options[item_type]
        except KeyError:
            raise ValidationError(f"Item type {item_type!r} is not registered") from None

    def model_for(
        self, item_type: str, discriminator: str | None = None
    ) -> type[VersionedModel]:
        """Return the concrete model class for an item type and stored tag.

        An unknown or missing discriminator resolves to the base class.

        Raises:
            ValidationError: If the item type is not registered.
        """
        if item_type not in self._base_classes:
            raise ValidationError(f"Item type {item_type!r} is not registered")
        if discriminator:
            variant = self._variants[item_type].get(discriminator)
            if variant is not None:
                return variant
        return self._base_classes[item_type]

    def item_types(self) -> list[str]:
        return sorted(self._options)
