"""In-memory host persistence layer with version-tracking hooks.

Stands in for an ORM: it assigns ids and timestamps, stores items per type
and calls the tracker's lifecycle hooks inside the same unit of work as
the mutation. When a hook raises, the mutation is rolled back on the item
and nothing is stored.

Relations are resolved by convention from the declared Relation:
- has_one / has_many      target rows whose ``<owner>_id`` equals the item id
- polymorphic             target rows whose ``<as>_type``/``<as>_id`` match
- has_many_through        targets referenced by the join relation's rows
"""

from __future__ import annotations

import itertools
import re
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from version_trail.core.models import RelationKind, Version, VersionedModel
from version_trail.errors import NotFoundError, ValidationError
from version_trail.observability import get_logger

if TYPE_CHECKING:
    from version_trail.tracker import Tracker

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


class InMemoryRepository:
    """Stores items in memory and reports their lifecycle to a Tracker.

    Args:
        tracker: The tracker to notify. The repository attaches itself so
            reify and the trail navigation can find live items.
        clock: Returns the current time for created_at/updated_at.
    """

    def __init__(
        self, tracker: Tracker, clock: Callable[[], datetime] = _utcnow
    ) -> None:
        self._tracker = tracker
        self._clock = clock
        self._lock = threading.RLock()
        # { type key: { item_id: item } }
        self._rows: dict[str, dict[Any, VersionedModel]] = {}
        self._sequences: dict[str, itertools.count[int]] = {}
        tracker.attach_repository(self)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def create(self, item: VersionedModel) -> VersionedModel:
        """Persist a new item and record its create version.

        Args:
            item: A new item. Its id is assigned when unset.

        Returns:
            The same item, now persisted.
        """
        key = self._key(item)
        with self._lock, self._unit_of_work(item):
            if getattr(item, "id", None) is None:
                item.id = next(self._sequences.setdefault(key, itertools.count(1)))
            now = self._clock()
            for name in ("created_at", self._timestamp_field):
                if self._has_field(item, name) and getattr(item, name) is None:
                    setattr(item, name, now)
            self._set_discriminator(item)
            if self._is_tracked(item):
                self._tracker.record_create(item)
            self._rows.setdefault(key, {})[item.id] = item
        logger.debug("Item created", item_type=key, item_id=item.id)
        return item

    def update(self, item: VersionedModel, **changes: Any) -> Version | None:
        """Apply attribute changes, bump the timestamp and record an update.

        The timestamp is only bumped when a value actually changes, unless
        the caller sets it explicitly.

        Returns:
            The recorded version, or None when nothing was recorded.
        """
        self._require_persisted(item)
        with self._lock, self._unit_of_work(item) as before:
            for name, value in changes.items():
                setattr(item, name, value)
            changed = item.attributes() != before
            field = self._timestamp_field
            if changed and field not in changes and self._has_field(item, field):
                setattr(item, field, self._clock())
            if not self._is_tracked(item):
                return None
            return self._tracker.record_update(item, before)

    def touch(self, item: VersionedModel) -> Version | None:
        """Bump the item's timestamp and record it even though nothing else changed."""
        self._require_persisted(item)
        with self._lock, self._unit_of_work(item) as before:
            if self._has_field(item, self._timestamp_field):
                setattr(item, self._timestamp_field, self._clock())
            if not self._is_tracked(item):
                return None
            return self._tracker.record_touch(item, before)

    def destroy(self, item: VersionedModel) -> Version | None:
        """Delete an item and record its destroy version.

        Destroying an item that was never persisted is a no-op.
        """
        if getattr(item, "id", None) is None:
            return None
        key = self._key(item)
        with self._lock:
            version = self._tracker.record_destroy(item) if self._is_tracked(item) else None
            self._rows.get(key, {}).pop(item.id, None)
        logger.debug("Item destroyed", item_type=key, item_id=item.id)
        return version

    def update_columns(self, item: VersionedModel, **changes: Any) -> VersionedModel:
        """Write attributes directly, bypassing timestamps and version recording."""
        self._require_persisted(item)
        with self._lock:
            for name, value in changes.items():
                setattr(item, name, value)
        return item

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def find(self, item_type: str | type[VersionedModel], item_id: Any) -> VersionedModel | None:
        """Return the live item, or None when it does not exist."""
        return self._rows.get(self._type_key(item_type), {}).get(item_id)

    def get(self, item_type: str | type[VersionedModel], item_id: Any) -> VersionedModel:
        """Return the live item.

        Raises:
            NotFoundError: If the item does not exist.
        """
        item = self.find(item_type, item_id)
        if item is None:
            raise NotFoundError(resource=self._type_key(item_type), resource_id=str(item_id))
        return item

    def where(self, item_type: str | type[VersionedModel], **filters: Any) -> list[VersionedModel]:
        """Return live items whose attributes equal every filter, ordered by id."""
        rows = self._rows.get(self._type_key(item_type), {})
        return [
            row
            for _, row in sorted(rows.items(), key=lambda pair: pair[0])
            if all(getattr(row, name, None) == value for name, value in filters.items())
        ]

    def reload_relation(self, item: VersionedModel, name: str) -> Any:
        """Return the current value of a declared relation.

        Raises:
            ValidationError: If the relation is not declared for the item's type.
        """
        item_type = self._tracker.registry.item_type_of(item)
        relation = self._tracker.registry.options_for(item_type).relation(name)
        if relation is None:
            raise ValidationError(f"{item_type} has no relation named {name!r}")

        if relation.kind is RelationKind.POLYMORPHIC:
            prefix = relation.polymorphic_as or _snake(item_type)
            return self.where(
                relation.target_type,
                **{f"{prefix}_type": item_type, f"{prefix}_id": item.id},
            )
        if relation.kind is RelationKind.HAS_MANY_THROUGH:
            if relation.through is None:
                raise ValidationError(f"Relation {name!r} declares no join relation")
            source = relation.source or f"{_snake(relation.target_type)}_id"
            targets = (
                self.find(relation.target_type, getattr(row, source, None))
                for row in self.reload_relation(item, relation.through)
            )
            return [target for target in targets if target is not None]

        foreign_key = relation.foreign_key or f"{_snake(item_type)}_id"
        rows = self.where(relation.target_type, **{foreign_key: item.id})
        if relation.kind is RelationKind.HAS_ONE:
            return rows[0] if rows else None
        return rows

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @contextmanager
    def _unit_of_work(self, item: VersionedModel) -> Iterator[dict[str, Any]]:
        """Yield the item's attributes before the mutation; restore them on failure."""
        before = item.attributes()
        try:
            yield before
        except Exception:
            for name, value in before.items():
                object.__setattr__(item, name, value)
            logger.warning(
                "Mutation rolled back",
                model=type(item).__name__,
                item_id=before.get("id"),
            )
            raise

    @property
    def _timestamp_field(self) -> str:
        return self._tracker.settings.timestamp_field

    def _set_discriminator(self, item: VersionedModel) -> None:
        field = self._tracker.settings.type_discriminator_field
        if not self._is_tracked(item) or not self._has_field(item, field):
            return
        base = self._tracker.registry.model_for(self._tracker.registry.item_type_of(item))
        if type(item) is not base and getattr(item, field) is None:
            setattr(item, field, type(item).__name__)

    def _is_tracked(self, item: VersionedModel) -> bool:
        return self._tracker.registry.is_tracked(type(item))

    def _key(self, item: VersionedModel) -> str:
        return self._type_key(type(item))

    def _type_key(self, item_type: str | type[VersionedModel]) -> str:
        if isinstance(item_type, str):
            return item_type
        if self._tracker.registry.is_tracked(item_type):
            return self._tracker.registry.item_type_of(item_type)
        return item_type.__name__

    @staticmethod
    def _has_field(item: VersionedModel, name: str) -> bool:
        return name in type(item).model_fields

    @staticmethod
    def _require_persisted(item: VersionedModel) -> None:
        if getattr(item, "id", None) is None:
            raise ValidationError(f"{type(item).__name__} has not been persisted")
