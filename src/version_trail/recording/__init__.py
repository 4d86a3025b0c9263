"""Change capture: recording control, metadata and the change recorder."""

from __future__ import annotations

from version_trail.recording.control import RecordingControl
from version_trail.recording.metadata import FromEvent, FromItem, FromMethod, MetadataProvider
from version_trail.recording.recorder import ChangeRecorder, RecordingContext, compute_changeset

__all__ = [
    "ChangeRecorder",
    "FromEvent",
    "FromItem",
    "FromMethod",
    "MetadataProvider",
    "RecordingContext",
    "RecordingControl",
    "compute_changeset",
]
