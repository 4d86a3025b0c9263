"""Recording Control: switches that gate whether versions are recorded.

The top-level enabled flag is process-wide. Per-type disable markers, the
acting identity (whodunnit) and request metadata live in context variables,
so each thread and each asyncio task sees only the values set in its own
logical request.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from types import MappingProxyType
from typing import Any

from version_trail.core.models import RESERVED_VERSION_FIELDS
from version_trail.errors import ValidationError
from version_trail.observability import get_logger

logger = get_logger(__name__)

_EMPTY: Mapping[str, Any] = MappingProxyType({})


def _frozen_metadata(value: Mapping[str, Any]) -> Mapping[str, Any]:
    clashes = sorted(set(value) & RESERVED_VERSION_FIELDS)
    if clashes:
        raise ValidationError(f"Request metadata collides with version fields: {clashes}")
    return MappingProxyType(dict(value))


class RecordingControl:
    """Process-wide and request-scoped recording switches.

    Args:
        enabled: Initial value of the process-wide flag.
    """

    def __init__(self, enabled: bool = True) -> None:
        self._enabled = enabled
        self._disabled_types: ContextVar[frozenset[str]] = ContextVar(
            "version_trail_disabled_types", default=frozenset()
        )
        self._whodunnit: ContextVar[str | None] = ContextVar(
            "version_trail_whodunnit", default=None
        )
        self._metadata: ContextVar[Mapping[str, Any]] = ContextVar(
            "version_trail_request_metadata", default=_EMPTY
        )

    # -------------------------------------------------------------------------
    # Process-wide flag
    # -------------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        if value != self._enabled:
            logger.info("Recording toggled", enabled=value)
        self._enabled = value

    def is_enabled(self, item_type: str | None = None) -> bool:
        """Return whether versions should be recorded for an item type.

        Args:
            item_type: Tracked type name. When None only the global flag counts.
        """
        if not self._enabled:
            return False
        if item_type is None:
            return True
        return item_type not in self._disabled_types.get()

    # -------------------------------------------------------------------------
    # Request-scoped state
    # -------------------------------------------------------------------------

    def disable(self, item_type: str) -> None:
        """Stop recording an item type in the current request context."""
        self._disabled_types.set(self._disabled_types.get() | {item_type})

    def enable(self, item_type: str) -> None:
        """Resume recording an item type in the current request context."""
        self._disabled_types.set(self._disabled_types.get() - {item_type})

    @property
    def whodunnit(self) -> str | None:
        return self._whodunnit.get()

    @whodunnit.setter
    def whodunnit(self, value: str | None) -> None:
        self._whodunnit.set(value)

    @property
    def request_metadata(self) -> Mapping[str, Any]:
        """Metadata merged into every version recorded in this context."""
        return self._metadata.get()

    @request_metadata.setter
    def request_metadata(self, value: Mapping[str, Any] | None) -> None:
        """Replace the request metadata.

        Raises:
            ValidationError: If a key names a version field.
        """
        self._metadata.set(_frozen_metadata(value or {}))

    @contextmanager
    def request(
        self,
        *,
        whodunnit: str | None = None,
        enabled_for: Mapping[str, bool] | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> Iterator[RecordingControl]:
        """Scope request state to a block and restore it afterwards.

        Args:
            whodunnit: Acting identity for the block. None keeps the current one.
            enabled_for: {item_type: enabled} overrides for the block.
            metadata: Request metadata for the block. None keeps the current one.

        Yields:
            This control object.

        Raises:
            ValidationError: If a metadata key names a version field.
        """
        frozen = _frozen_metadata(metadata) if metadata is not None else self._metadata.get()
        disabled = set(self._disabled_types.get())
        for item_type, is_enabled in (enabled_for or {}).items():
            if is_enabled:
                disabled.discard(item_type)
            else:
                disabled.add(item_type)

        types_token = self._disabled_types.set(frozenset(disabled))
        who_token = self._whodunnit.set(
            whodunnit if whodunnit is not None else self._whodunnit.get()
        )
        meta_token = self._metadata.set(frozen)
        try:
            yield self
        finally:
            self._metadata.reset(meta_token)
            self._whodunnit.reset(who_token)
            self._disabled_types.reset(types_token)

    @contextmanager
    def disabled(self, item_type: str) -> Iterator[None]:
        """Suspend recording of one item type for the duration of a block."""
        with self.request(enabled_for={item_type: False}):
            yield
