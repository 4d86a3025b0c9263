"""Reifier: rebuilds an item's historical attribute state from a Version.

The snapshot is an open mapping decoded by the serializer. It is reconciled
against the model's current fields before construction: keys the schema no
longer has are dropped, fields the snapshot predates fall back to their
default (None when the field has none). Each kept value is validated against
its field type; a value that no longer validates is kept as stored rather
than failing the whole reification.
"""

from __future__ import annotations

from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from version_trail.core.interfaces import IItemRepository, ISerializer
from version_trail.core.models import (
    COLLECTION_KINDS,
    ReifyOptions,
    RelationKind,
    Version,
    VersionedModel,
)
from version_trail.core.registry import ModelRegistry
from version_trail.errors import SerializationError
from version_trail.observability import get_logger

logger = get_logger(__name__)


class Reifier:
    """Reconstructs items from version snapshots.

    Args:
        serializer: Decodes stored snapshots.
        registry: Resolves item types and discriminators to model classes.
        repository: Host persistence layer used to attach live collections.
            When None, no relation is attached.
        discriminator_field: Snapshot key holding the stored subclass tag.
    """

    def __init__(
        self,
        serializer: ISerializer,
        registry: ModelRegistry,
        repository: IItemRepository | None = None,
        discriminator_field: str = "type",
    ) -> None:
        self.serializer = serializer
        self.repository = repository
        self._registry = registry
        self._discriminator_field = discriminator_field
        self._adapters: dict[tuple[type, str], TypeAdapter[Any]] = {}

    def reify(self, version: Version, options: ReifyOptions | None = None) -> VersionedModel | None:
        """Return the item as it was before the version's event.

        Args:
            version: The version to reify.
            options: Association-copy policy. Defaults to ReifyOptions().

        Returns:
            A non-live item carrying a reference to the version, or None for a
            version without a snapshot (the create version).

        Raises:
            SerializationError: If the snapshot cannot be decoded.
        """
        if version.object is None:
            return None
        options = options or ReifyOptions()

        try:
            attributes = self.serializer.load(version.object)
        except SerializationError:
            logger.error(
                "Failed to decode version snapshot",
                version_id=version.id,
                item_type=version.item_type,
            )
            raise
        if not isinstance(attributes, dict):
            logger.error("Version snapshot is not a mapping", version_id=version.id)
            raise SerializationError(
                f"Snapshot of version {version.id} decoded to {type(attributes).__name__}, "
                "expected a mapping"
            )

        model_cls = self._registry.model_for(
            version.item_type, attributes.get(self._discriminator_field)
        )
        item = self._build(model_cls, attributes, version)
        item._source_version = version
        self._copy_associations(item, version.item_type, options)
        return item

    def _build(
        self,
        model_cls: type[VersionedModel],
        attributes: dict[str, Any],
        version: Version,
    ) -> VersionedModel:
        fields = model_cls.model_fields
        dropped = sorted(set(attributes) - set(fields))
        if dropped:
            logger.debug(
                "Dropping attributes no longer in schema",
                version_id=version.id,
                model=model_cls.__name__,
                attributes=dropped,
            )

        values: dict[str, Any] = {}
        for name, field in fields.items():
            if name in attributes:
                values[name] = self._coerce(model_cls, name, attributes[name])
            elif field.is_required():
                values[name] = None
        return model_cls.model_construct(_fields_set=set(attributes) & set(fields), **values)

    def _coerce(self, model_cls: type[VersionedModel], name: str, value: Any) -> Any:
        key = (model_cls, name)
        adapter = self._adapters.get(key)
        if adapter is None:
            adapter = TypeAdapter(model_cls.model_fields[name].annotation)
            self._adapters[key] = adapter
        try:
            return adapter.validate_python(value)
        except PydanticValidationError:
            logger.debug(
                "Stored value no longer matches field type, keeping raw value",
                model=model_cls.__name__,
                field=name,
            )
            return value

    def _copy_associations(
        self, item: VersionedModel, item_type: str, options: ReifyOptions
    ) -> None:
        relations = self._registry.options_for(item_type).relations
        for relation in relations:
            if relation.kind is RelationKind.HAS_ONE:
                if options.has_one:
                    item._associations[relation.name] = None
            elif relation.kind in COLLECTION_KINDS and options.has_many:
                if self.repository is not None:
                    item._associations[relation.name] = list(
                        self.repository.reload_relation(item, relation.name)
                    )
