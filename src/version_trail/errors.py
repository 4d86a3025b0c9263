"""Error hierarchy for version-trail.

Temporal queries never raise for missing data: an empty log, a timestamp
before creation or the create version's reification all yield None. The
errors below are reserved for invalid input and for data that cannot be
trusted (corrupt snapshots, failing metadata providers).
"""

from __future__ import annotations


class VersionTrailError(Exception):
    """Base class for all version-trail errors.

    Args:
        message: Human-readable description of the failure.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(VersionTrailError):
    """A lookup that must succeed found nothing.

    Args:
        resource: Kind of resource that was looked up (e.g. "Version").
        resource_id: Identifier that was not found.
    """

    def __init__(self, resource: str, resource_id: str) -> None:
        super().__init__(f"{resource} {resource_id} not found")
        self.resource = resource
        self.resource_id = resource_id


class ValidationError(VersionTrailError):
    """Invalid argument or configuration supplied by the caller."""


class SerializationError(VersionTrailError):
    """A stored snapshot or changeset could not be encoded or decoded."""


class MetadataError(VersionTrailError):
    """A metadata provider failed while computing a version field.

    Args:
        field: The metadata field being computed.
        message: Description of the failure.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"Metadata field {field!r} failed: {message}")
        self.field = field
