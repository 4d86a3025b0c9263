"""Temporal Query Engine: point-in-time lookup, ranges and navigation.

Because a version stores the state *before* its event, the state of an item
immediately after time ``t`` is the reification of the first version created
strictly after ``t``. When there is none, the live item is the answer.
"""

from __future__ import annotations

import re
from bisect import bisect_left
from datetime import datetime, timezone
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from version_trail.core.interfaces import IVersionLog
from version_trail.core.models import ReifyOptions, Version, VersionedModel
from version_trail.errors import ValidationError
from version_trail.history.reifier import Reifier

_TIMESTAMP = TypeAdapter(datetime)
# "2024-05-01 12:00:00 UTC" and "2024-05-01 12:00:00 +0000"
_ZONE_SUFFIX = re.compile(
    r"\s*(?:(?P<utc>UTC|GMT)|(?P<sign>[+-])(?P<hours>\d{2}):?(?P<minutes>\d{2}))$"
)


def _normalize_zone(value: str) -> str:
    match = _ZONE_SUFFIX.search(value)
    if match is None:
        return value
    if match.group("utc"):
        offset = "+00:00"
    else:
        offset = f"{match.group('sign')}{match.group('hours')}:{match.group('minutes')}"
    return value[: match.start()] + offset


def _sort_key(version: Version) -> tuple[datetime, int]:
    return version.created_at, version.id or 0


def parse_timestamp(value: datetime | str) -> datetime:
    """Return a timezone-aware datetime from a datetime or a parseable string.

    Besides ISO 8601, strings ending in a " UTC" zone name or a " +0000"
    style offset are accepted. Naive values are taken to be UTC.

    Raises:
        ValidationError: If a string cannot be parsed.
    """
    if isinstance(value, str):
        try:
            value = _TIMESTAMP.validate_python(_normalize_zone(value.strip()))
        except PydanticValidationError as exc:
            raise ValidationError(f"Unparseable timestamp {value!r}") from exc
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class TemporalQueryEngine:
    """Answers temporal questions about one item's version log.

    Args:
        log: The version log to query.
        reifier: Builds historical states from versions.
    """

    def __init__(self, log: IVersionLog, reifier: Reifier) -> None:
        self._log = log
        self._reifier = reifier

    def version_after(
        self, item_type: str, item_id: Any, timestamp: datetime | str
    ) -> Version | None:
        """Return the earliest version created strictly after timestamp."""
        subsequent = self._log.subsequent(item_type, item_id, parse_timestamp(timestamp))
        return subsequent[0] if subsequent else None

    def version_at(
        self,
        item_type: str,
        item_id: Any,
        timestamp: datetime | str,
        live_item: VersionedModel | None = None,
        options: ReifyOptions | None = None,
    ) -> VersionedModel | None:
        """Return the item as it looked immediately after timestamp.

        Args:
            item_type: Tracked type name.
            item_id: Item identifier.
            timestamp: A datetime or a parseable timestamp string.
            live_item: The current item, or None when it no longer exists.
            options: Reify options for historical states.

        Returns:
            A reified item, the live item when no later version exists, or None
            when the timestamp predates creation or the item is gone.
        """
        version = self.version_after(item_type, item_id, timestamp)
        if version is not None:
            return self._reifier.reify(version, options)
        return live_item

    def versions_between(
        self,
        item_type: str,
        item_id: Any,
        start: datetime | str,
        finish: datetime | str,
        live_item: VersionedModel | None = None,
        live_timestamp: datetime | None = None,
        options: ReifyOptions | None = None,
    ) -> list[VersionedModel]:
        """Return the states of an item recorded within [start, finish].

        Each version created in the range contributes the state the item had
        right after it. When the live item's own last-modified time also
        falls in the range, the live state is appended as a trailing entry,
        even if a stored version at the same instant already resolved to it.

        Args:
            item_type: Tracked type name.
            item_id: Item identifier.
            start: Inclusive lower bound.
            finish: Inclusive upper bound.
            live_item: The current item, or None when it no longer exists.
            live_timestamp: The live item's last-modified time.
            options: Reify options for historical states.
        """
        start = parse_timestamp(start)
        finish = parse_timestamp(finish)
        states: list[VersionedModel] = []
        for version in self._log.between(item_type, item_id, start, finish):
            state = self.version_at(
                item_type, item_id, version.created_at, live_item=live_item, options=options
            )
            if state is not None:
                states.append(state)
        if live_item is not None and live_timestamp is not None:
            if start <= parse_timestamp(live_timestamp) <= finish:
                states.append(live_item)
        return states

    def previous(self, version: Version) -> Version | None:
        versions = self._siblings(version)
        index = self._position(versions, version)
        return versions[index - 1] if index > 0 else None

    def next(self, version: Version) -> Version | None:
        versions = self._siblings(version)
        index = self._position(versions, version)
        return versions[index + 1] if index + 1 < len(versions) else None

    def index(self, version: Version) -> int:
        """Return the zero-based position of a version in its item's log."""
        return self._position(self._siblings(version), version)

    def _siblings(self, version: Version) -> list[Version]:
        return self._log.for_item(version.item_type, version.item_id)

    @staticmethod
    def _position(versions: list[Version], version: Version) -> int:
        # siblings are ordered by (created_at, id)
        if version.id is not None:
            index = bisect_left(
                versions, (version.created_at, version.id), key=_sort_key
            )
            if index < len(versions) and versions[index].id == version.id:
                return index
            # a copy taken before correct_timestamp carries the old created_at
            for index, sibling in enumerate(versions):
                if sibling.id == version.id:
                    return index
        raise ValidationError(f"Version {version.id} is not in its item's log")
