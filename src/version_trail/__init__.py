"""version-trail: audit trail and point-in-time reconstruction for domain items."""

from version_trail.core.models import (
    ReifyOptions,
    Relation,
    RelationKind,
    Version,
    VersionedModel,
)
from version_trail.errors import (
    MetadataError,
    NotFoundError,
    SerializationError,
    ValidationError,
    VersionTrailError,
)
from version_trail.recording.metadata import FromEvent, FromItem, FromMethod
from version_trail.settings import Settings
from version_trail.tracker import ItemTrail, Tracker

__all__ = [
    "FromEvent",
    "FromItem",
    "FromMethod",
    "ItemTrail",
    "MetadataError",
    "NotFoundError",
    "ReifyOptions",
    "Relation",
    "RelationKind",
    "SerializationError",
    "Settings",
    "Tracker",
    "ValidationError",
    "Version",
    "VersionTrailError",
    "VersionedModel",
]
