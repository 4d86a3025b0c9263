"""Data model for the versioning engine.

- Version          immutable log entry: prior snapshot, changeset, event, actor
- Relation         declarative description of one relation of a tracked type
- ReifyOptions     association-copy policy applied when reifying
- VersionedModel   pydantic base class for tracked domain items

A Version's ``object`` holds the item's attributes *before* its event, so the
create version never has one. The live item's current state is never stored.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

EVENT_CREATE = "create"
EVENT_UPDATE = "update"
EVENT_DESTROY = "destroy"
EVENT_TOUCH = "touch"

STANDARD_EVENTS: frozenset[str] = frozenset(
    {EVENT_CREATE, EVENT_UPDATE, EVENT_DESTROY, EVENT_TOUCH}
)


class Version(BaseModel):
    """Immutable record of one lifecycle event of a tracked item.

    Metadata extension fields are stored as pydantic extras, so a version
    recorded with ``{"answer": 42}`` exposes ``version.answer``.

    Attributes:
        id: Monotonic sequence assigned by the version log on append.
        item_type: Tracked type name (the base type for subclassed items).
        item_id: Identifier of the tracked item. None for never-persisted items.
        event: create | update | destroy, or a custom event name.
        object: Serialized attributes before the event. None for create.
        object_changes: Serialized changeset {attribute: [old, new]}.
        whodunnit: Actor responsible for the event.
        created_at: For create/update the item's own post-event timestamp,
            for destroy the time of destruction.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    id: int | None = Field(default=None, description="Log sequence, assigned on append")
    item_type: str = Field(..., description="Tracked type name")
    item_id: int | str | None = Field(default=None, description="Tracked item identifier")
    event: str = Field(..., description="Lifecycle event kind")
    object: str | None = Field(default=None, description="Serialized pre-event snapshot")
    object_changes: str | None = Field(default=None, description="Serialized changeset")
    whodunnit: str | None = Field(default=None, description="Responsible actor")
    created_at: datetime = Field(..., description="Semantic timestamp of the event")

    @property
    def metadata(self) -> dict[str, Any]:
        """Return the metadata extension fields recorded with this version."""
        return dict(self.model_extra or {})


RESERVED_VERSION_FIELDS: frozenset[str] = frozenset(Version.model_fields) | {"metadata"}


class RelationKind(str, enum.Enum):
    """Kinds of relation the reifier knows how to treat."""

    HAS_ONE = "has_one"
    HAS_MANY = "has_many"
    HAS_MANY_THROUGH = "has_many_through"
    POLYMORPHIC = "polymorphic"


COLLECTION_KINDS: frozenset[RelationKind] = frozenset(
    {RelationKind.HAS_MANY, RelationKind.HAS_MANY_THROUGH, RelationKind.POLYMORPHIC}
)


class Relation(BaseModel):
    """Declared relation of a tracked type.

    Only ``name``, ``kind`` and ``target_type`` matter to the engine. The
    remaining fields tell the host persistence layer how to resolve the
    relation when it is reloaded.

    Attributes:
        name: Relation accessor name (e.g. "fluxors").
        kind: has_one | has_many | has_many_through | polymorphic.
        target_type: Type name of the related items.
        foreign_key: Column on the target holding the owner id.
        through: Name of the join relation for has_many_through.
        source: Column on the join rows holding the target id.
        polymorphic_as: Prefix of the ``<as>_type``/``<as>_id`` column pair.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    kind: RelationKind
    target_type: str
    foreign_key: str | None = None
    through: str | None = None
    source: str | None = None
    polymorphic_as: str | None = None


class ReifyOptions(BaseModel):
    """Association-copy policy for reification.

    Attributes:
        has_one: When True, has-one relations are forced to None on the
            reified item. When False they resolve through the live association.
        has_many: When True, collection relations are attached with the
            current live rows so they are usable without a reload.
    """

    model_config = ConfigDict(frozen=True)

    has_one: bool = False
    has_many: bool = True


class VersionedModel(BaseModel):
    """Base class for tracked domain items.

    A live item represents current truth. A reified item is a historical
    reconstruction: it keeps a reference to the Version it was built from and
    may carry relations attached at reify time.
    """

    model_config = ConfigDict(validate_assignment=True, arbitrary_types_allowed=True)

    _source_version: Version | None = PrivateAttr(default=None)
    _associations: dict[str, Any] = PrivateAttr(default_factory=dict)

    @property
    def source_version(self) -> Version | None:
        """Return the Version this item was reified from, or None when live."""
        return self._source_version

    @property
    def is_live(self) -> bool:
        return self._source_version is None

    def attributes(self) -> dict[str, Any]:
        """Return the persisted attribute map of this item."""
        return self.model_dump(mode="python")
