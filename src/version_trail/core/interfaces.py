"""Abstract interfaces (Protocol classes) for the versioning engine.

The engine depends on these protocols, never on concrete adapters, so the
serializer, the changeset adapter, the version storage and the host
persistence layer can each be replaced or mocked independently.

Protocols defined:
- ISerializer
- IObjectChangesAdapter
- IVersionLog
- IItemRepository
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Protocol

from version_trail.core.models import Version


class ISerializer(Protocol):
    """Encodes attribute maps and changesets to their stored form."""

    def dump(self, value: Any) -> str:
        """Encode a value to its stored representation.

        Args:
            value: An attribute map or changeset.

        Returns:
            The stored form.

        Raises:
            SerializationError: If the value cannot be encoded.
        """
        ...

    def load(self, stored: str) -> Any:
        """Decode a stored representation.

        Args:
            stored: Output of a previous dump().

        Returns:
            A value equal to the one originally dumped.

        Raises:
            SerializationError: If the stored form is corrupt.
        """
        ...


class IObjectChangesAdapter(Protocol):
    """Replaces the default changeset decoding path when configured."""

    def load_changeset(self, version: Version) -> Mapping[str, Any]:
        """Return the changeset of a version.

        Args:
            version: The version whose changeset is requested.

        Returns:
            Mapping of attribute name to [old, new].
        """
        ...


class IVersionLog(Protocol):
    """Append-only ordered log of versions keyed by (item_type, item_id).

    Versions of one item are ordered by created_at, then by id.
    """

    def append(self, version: Version) -> Version:
        """Append a version and return it with its sequence id assigned."""
        ...

    def get(self, version_id: int) -> Version | None:
        """Return a version by id, or None."""
        ...

    def for_item(self, item_type: str, item_id: Any) -> list[Version]:
        """Return all versions of one item in log order."""
        ...

    def between(
        self, item_type: str, item_id: Any, start: datetime, finish: datetime
    ) -> list[Version]:
        """Return versions of one item with start <= created_at <= finish."""
        ...

    def subsequent(self, item_type: str, item_id: Any, timestamp: datetime) -> list[Version]:
        """Return versions of one item with created_at strictly after timestamp."""
        ...

    def all(self) -> list[Version]:
        """Return every version across items in append order."""
        ...

    def last(self) -> Version | None:
        """Return the most recently appended version across items."""
        ...

    def count(self) -> int:
        """Return the number of stored versions."""
        ...

    def correct_timestamp(self, version: Version, created_at: datetime) -> Version:
        """Administratively rewrite a version's created_at and return it."""
        ...


class IItemRepository(Protocol):
    """Host persistence layer contract consumed by the engine."""

    def find(self, item_type: str, item_id: Any) -> Any | None:
        """Return the live item, or None when it does not exist (any more).

        Args:
            item_type: Tracked type name.
            item_id: Item identifier.
        """
        ...

    def reload_relation(self, item: Any, name: str) -> Any:
        """Return the current value of a declared relation of an item.

        Args:
            item: A live or reified item (matched by its identifier).
            name: Relation name.

        Returns:
            The related item (has-one) or a list of related items.
        """
        ...
