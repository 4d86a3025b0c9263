"""Append-only in-memory version log.

Versions are kept per (item_type, item_id), sorted by (created_at, id), with
a parallel list of sort keys for bisect lookups. Ids come from a single
monotonic sequence, so ties on created_at are broken by append order.
"""

from __future__ import annotations

import bisect
import itertools
import sys
import threading
from collections.abc import Hashable
from datetime import datetime, timezone
from typing import Any

from version_trail.core.models import Version
from version_trail.errors import NotFoundError, ValidationError
from version_trail.observability import get_logger

logger = get_logger(__name__)

_SortKey = tuple[datetime, int]


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _sort_key(version: Version) -> _SortKey:
    return (_utc(version.created_at), version.id or 0)


class VersionLog:
    """Ordered, append-only collection of versions.

    All methods are synchronous and guarded by a lock so concurrent requests
    may append to the same log.
    """

    def __init__(self) -> None:
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()
        # { version_id: Version } in append order
        self._by_id: dict[int, Version] = {}
        # { (item_type, item_id): [Version] } sorted by (created_at, id)
        self._items: dict[tuple[str, Hashable], list[Version]] = {}
        # Parallel sort keys for bisect operations
        self._keys: dict[tuple[str, Hashable], list[_SortKey]] = {}

    def append(self, version: Version) -> Version:
        """Assign the next sequence id to a version and store it.

        Args:
            version: A version produced by the recorder, without an id.

        Returns:
            The stored version with its id set.

        Raises:
            ValidationError: If the version already carries an id.
        """
        if version.id is not None:
            raise ValidationError(f"Version {version.id} has already been appended")
        with self._lock:
            stored = version.model_copy(
                update={"id": next(self._sequence), "created_at": _utc(version.created_at)}
            )
            self._insert(stored)
            self._by_id[stored.id] = stored
        return stored

    def _insert(self, version: Version) -> None:
        key = (version.item_type, version.item_id)
        versions = self._items.setdefault(key, [])
        keys = self._keys.setdefault(key, [])
        sort_key = _sort_key(version)
        index = bisect.bisect_right(keys, sort_key)
        versions.insert(index, version)
        keys.insert(index, sort_key)

    def get(self, version_id: int) -> Version | None:
        return self._by_id.get(version_id)

    def for_item(self, item_type: str, item_id: Any) -> list[Version]:
        return list(self._items.get((item_type, item_id), []))

    def between(
        self, item_type: str, item_id: Any, start: datetime, finish: datetime
    ) -> list[Version]:
        """Return an item's versions with start <= created_at <= finish."""
        key = (item_type, item_id)
        keys = self._keys.get(key)
        if not keys:
            return []
        low = bisect.bisect_left(keys, (_utc(start), 0))
        high = bisect.bisect_right(keys, (_utc(finish), sys.maxsize))
        return self._items[key][low:high]

    def subsequent(self, item_type: str, item_id: Any, timestamp: datetime) -> list[Version]:
        """Return an item's versions created strictly after timestamp."""
        key = (item_type, item_id)
        keys = self._keys.get(key)
        if not keys:
            return []
        low = bisect.bisect_right(keys, (_utc(timestamp), sys.maxsize))
        return self._items[key][low:]

    def all(self) -> list[Version]:
        return list(self._by_id.values())

    def last(self) -> Version | None:
        if not self._by_id:
            return None
        return self._by_id[max(self._by_id)]

    def count(self) -> int:
        return len(self._by_id)

    def correct_timestamp(self, version: Version, created_at: datetime) -> Version:
        """Rewrite a stored version's created_at and re-sort its item's log.

        This is an administrative correction, not part of normal recording.
        Callers must serialize it with any other writes to the same item.

        Raises:
            NotFoundError: If the version is not in this log.
        """
        with self._lock:
            current = self._by_id.get(version.id) if version.id is not None else None
            if current is None:
                raise NotFoundError(resource="Version", resource_id=str(version.id))
            key = (current.item_type, current.item_id)
            index = self._items[key].index(current)
            del self._items[key][index]
            del self._keys[key][index]
            corrected = current.model_copy(update={"created_at": _utc(created_at)})
            self._insert(corrected)
            self._by_id[corrected.id] = corrected
        logger.warning(
            "Version timestamp corrected",
            version_id=corrected.id,
            previous=current.created_at.isoformat(),
            corrected=corrected.created_at.isoformat(),
        )
        return corrected
