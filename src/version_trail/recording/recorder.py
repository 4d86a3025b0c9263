"""Change Recorder: turns a lifecycle event into a Version.

The recorder is pure with respect to storage: it computes the changeset and
snapshot, gathers metadata and returns the Version. Appending it to the log
together with the host mutation is the caller's concern.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from version_trail.core.interfaces import ISerializer
from version_trail.core.models import (
    EVENT_CREATE,
    EVENT_DESTROY,
    EVENT_TOUCH,
    EVENT_UPDATE,
    Version,
)
from version_trail.errors import ValidationError
from version_trail.observability import get_logger
from version_trail.recording.control import RecordingControl
from version_trail.recording.metadata import MetadataProvider

logger = get_logger(__name__)

Changeset = dict[str, list[Any]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _differs(old: Any, new: Any) -> bool:
    # True == 1 in Python, but a boolean column changing to an integer is a change
    if isinstance(old, bool) or isinstance(new, bool):
        return old is not new
    return old != new


def compute_changeset(
    before: Mapping[str, Any] | None,
    after: Mapping[str, Any] | None,
) -> Changeset:
    """Return {attribute: [old, new]} for every attribute whose value differs.

    An attribute missing on one side counts as None, so a create yields
    [None, value] for each non-null attribute and a destroy yields [value, None].
    Values are compared exactly; no numeric tolerance is applied.

    Args:
        before: Attributes before the event, or None.
        after: Attributes after the event, or None.
    """
    before = before or {}
    after = after or {}
    changes: Changeset = {}
    for name in [*before, *(key for key in after if key not in before)]:
        old = before.get(name)
        new = after.get(name)
        if _differs(old, new):
            changes[name] = [old, new]
    return changes


@dataclass(frozen=True)
class RecordingContext:
    """Everything about the item the recorder needs besides its attribute maps.

    Attributes:
        item_type: Tracked type name.
        item_id: Item identifier.
        item: The live item, passed to metadata callables.
        timestamp: The item's own post-event last-modified time.
        metadata: Provider for the type's metadata table.
        ignore: Attributes whose changes alone do not produce an update version.
        skip: Attributes excluded from snapshot and changeset.
        touch: The caller reports an update that happened without changes.
        timestamp_field: Attribute the host bumps on every update. Its change
            alone is not notable when an ignored attribute also changed.
    """

    item_type: str
    item_id: Any = None
    item: Any = None
    timestamp: datetime | None = None
    metadata: MetadataProvider | None = None
    ignore: frozenset[str] = frozenset()
    skip: frozenset[str] = frozenset()
    touch: bool = False
    timestamp_field: str | None = None


class ChangeRecorder:
    """Builds Version records from before/after attribute maps.

    Args:
        serializer: Encodes snapshots and changesets.
        control: Recording switches, consulted before any work is done.
        clock: Returns the current time; used for destroy versions.
        save_changes: Whether object_changes is stored.
    """

    def __init__(
        self,
        serializer: ISerializer,
        control: RecordingControl,
        clock: Callable[[], datetime] = _utcnow,
        save_changes: bool = True,
    ) -> None:
        self.serializer = serializer
        self._control = control
        self._clock = clock
        self._save_changes = save_changes

    def record(
        self,
        event: str,
        item_before: Mapping[str, Any] | None,
        item_after: Mapping[str, Any] | None,
        context: RecordingContext,
    ) -> Version | None:
        """Compute the Version for one lifecycle event.

        Args:
            event: create, update, destroy, touch or a custom event name.
                Touch is recorded as an update.
            item_before: Attributes before the event (empty for create).
            item_after: Attributes after the event (empty for destroy).
            context: Item identity, timestamp and metadata provider.

        Returns:
            The new Version, or None when recording is disabled for the type or
            an update changed nothing but ignored attributes.

        Raises:
            ValidationError: If the event name is empty.
            MetadataError: If the metadata provider fails.
        """
        if not self._control.is_enabled(context.item_type):
            logger.debug(
                "Recording disabled, skipping version",
                item_type=context.item_type,
                item_id=context.item_id,
                lifecycle_event=event,
            )
            return None
        if not event:
            raise ValidationError("Event name must not be empty")

        touch = context.touch or event == EVENT_TOUCH
        if event == EVENT_TOUCH:
            event = EVENT_UPDATE

        before = self._without(item_before, context.skip)
        after = self._without(item_after, context.skip)
        all_changes = compute_changeset(before, after)
        changes = {name: pair for name, pair in all_changes.items() if name not in context.ignore}
        notable = set(changes)
        if context.ignore & set(all_changes):
            notable.discard(context.timestamp_field)
        if event == EVENT_UPDATE and not notable and not touch:
            logger.debug(
                "No notable changes, skipping version",
                item_type=context.item_type,
                item_id=context.item_id,
            )
            return None

        metadata: dict[str, Any] = dict(self._control.request_metadata)
        if context.metadata is not None:
            metadata.update(context.metadata.collect(event, context.item, item_before))

        snapshot = None if event == EVENT_CREATE or not before else self.serializer.dump(before)
        object_changes = self.serializer.dump(changes) if self._save_changes else None

        version = Version(
            item_type=context.item_type,
            item_id=context.item_id,
            event=event,
            object=snapshot,
            object_changes=object_changes,
            whodunnit=self._control.whodunnit,
            created_at=self._created_at(event, context.timestamp),
            **metadata,
        )
        logger.debug(
            "Recorded version",
            item_type=version.item_type,
            item_id=version.item_id,
            lifecycle_event=version.event,
            changed=sorted(changes),
        )
        return version

    def _created_at(self, event: str, timestamp: datetime | None) -> datetime:
        if event == EVENT_DESTROY or timestamp is None:
            value = self._clock()
        else:
            value = timestamp
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    @staticmethod
    def _without(attributes: Mapping[str, Any] | None, skip: frozenset[str]) -> dict[str, Any]:
        return {name: value for name, value in (attributes or {}).items() if name not in skip}
