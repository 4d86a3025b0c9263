"""Tracker: the engine facade the host persistence layer talks to.

The host calls ``record_create`` / ``record_update`` / ``record_touch`` /
``record_destroy`` inside the same unit of work as the mutation itself. If a
hook raises, the host must not commit the mutation.

Consumers read history through ``tracker.trail(item)`` (per item) and the
per-version helpers (``changeset``, ``reify``, ``previous``, ``next``,
``index``, ``originator``, ``terminator``).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from version_trail.core.interfaces import (
    IItemRepository,
    IObjectChangesAdapter,
    ISerializer,
    IVersionLog,
)
from version_trail.core.models import (
    EVENT_CREATE,
    EVENT_DESTROY,
    EVENT_TOUCH,
    EVENT_UPDATE,
    Relation,
    ReifyOptions,
    Version,
    VersionedModel,
)
from version_trail.core.registry import ModelRegistry, TrackingOptions
from version_trail.errors import SerializationError
from version_trail.history.queries import TemporalQueryEngine
from version_trail.history.reifier import Reifier
from version_trail.history.version_log import VersionLog
from version_trail.observability import get_logger
from version_trail.recording.control import RecordingControl
from version_trail.recording.metadata import MetadataProvider
from version_trail.recording.recorder import ChangeRecorder, RecordingContext
from version_trail.serializers import get_serializer
from version_trail.settings import Settings

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Tracker:
    """Wires serializer, control, recorder, log, reifier and queries together.

    Args:
        settings: Engine settings. Defaults to Settings() from the environment.
        serializer: Serializer instance. Defaults to the one named in settings.
        object_changes_adapter: Optional replacement for changeset decoding.
        log: Version storage. Defaults to an in-memory VersionLog.
        repository: Host persistence layer, used to find live items and to
            reload relations. May be attached later via ``attach_repository``.
        clock: Returns the current time.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        serializer: ISerializer | None = None,
        object_changes_adapter: IObjectChangesAdapter | Any | None = None,
        log: IVersionLog | None = None,
        repository: IItemRepository | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = settings or Settings()
        self.registry = ModelRegistry()
        self.control = RecordingControl(enabled=self.settings.enabled)
        self.log: IVersionLog = log if log is not None else VersionLog()
        self.object_changes_adapter = object_changes_adapter
        self.repository = repository
        self._providers: dict[str, MetadataProvider] = {}

        serializer = serializer or get_serializer(
            self.settings.serializer, precision=self.settings.datetime_precision
        )
        self._recorder = ChangeRecorder(
            serializer,
            self.control,
            clock=clock,
            save_changes=self.settings.save_changes,
        )
        self._reifier = Reifier(
            serializer,
            self.registry,
            repository=repository,
            discriminator_field=self.settings.type_discriminator_field,
        )
        self.queries = TemporalQueryEngine(self.log, self._reifier)

    # -------------------------------------------------------------------------
    # Configuration surface
    # -------------------------------------------------------------------------

    @property
    def serializer(self) -> ISerializer:
        return self._recorder.serializer

    @serializer.setter
    def serializer(self, value: ISerializer) -> None:
        self._recorder.serializer = value
        self._reifier.serializer = value

    @property
    def enabled(self) -> bool:
        return self.control.enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self.control.enabled = value

    def attach_repository(self, repository: IItemRepository) -> None:
        """Set the host persistence layer after construction."""
        self.repository = repository
        self._reifier.repository = repository

    def register(
        self,
        model_cls: type[VersionedModel],
        *,
        item_type: str | None = None,
        relations: Iterable[Relation] = (),
        meta: Mapping[str, Any] | None = None,
        on: Iterable[str] | None = None,
        ignore: Iterable[str] = (),
        skip: Iterable[str] = (),
    ) -> TrackingOptions:
        """Start tracking a model class. See ModelRegistry.register."""
        options = self.registry.register(
            model_cls,
            item_type=item_type,
            relations=relations,
            meta=meta,
            on=on,
            ignore=ignore,
            skip=skip,
        )
        if options.item_type not in self._providers:
            self._providers[options.item_type] = MetadataProvider(options.meta)
        return options

    def disable(self, model: type[VersionedModel] | str) -> None:
        """Stop recording a type in the current request context."""
        self.control.disable(self._type_name(model))

    def enable(self, model: type[VersionedModel] | str) -> None:
        """Resume recording a type in the current request context."""
        self.control.enable(self._type_name(model))

    def _type_name(self, model: type[VersionedModel] | str) -> str:
        return model if isinstance(model, str) else self.registry.item_type_of(model)

    # -------------------------------------------------------------------------
    # Lifecycle hooks called by the host persistence layer
    # -------------------------------------------------------------------------

    def record_create(self, item: VersionedModel) -> Version | None:
        """Record the creation of a persisted item."""
        return self._record(EVENT_CREATE, item, None, item.attributes())

    def record_update(
        self,
        item: VersionedModel,
        before: Mapping[str, Any],
        *,
        touch: bool = False,
    ) -> Version | None:
        """Record an update.

        Args:
            item: The item after the update.
            before: The item's persisted attributes before the update.
            touch: Record a version even when nothing but timestamps changed.
        """
        event = EVENT_TOUCH if touch else EVENT_UPDATE
        return self._record(event, item, before, item.attributes())

    def record_touch(self, item: VersionedModel, before: Mapping[str, Any]) -> Version | None:
        return self.record_update(item, before, touch=True)

    def record_destroy(self, item: VersionedModel) -> Version | None:
        """Record the destruction of an item. Never-persisted items record nothing."""
        if getattr(item, "id", None) is None:
            return None
        return self._record(EVENT_DESTROY, item, item.attributes(), None)

    def _record(
        self,
        event: str,
        item: VersionedModel,
        before: Mapping[str, Any] | None,
        after: Mapping[str, Any] | None,
    ) -> Version | None:
        item_type = self.registry.item_type_of(item)
        if not self.control.is_enabled(item_type):
            return None
        options = self.registry.options_for(item_type)
        if event not in options.on:
            return None

        context = RecordingContext(
            item_type=item_type,
            item_id=getattr(item, "id", None),
            item=item,
            timestamp=getattr(item, self.settings.timestamp_field, None),
            metadata=self._providers.get(item_type),
            ignore=options.ignore,
            skip=options.skip,
            touch=event == EVENT_TOUCH,
            timestamp_field=self.settings.timestamp_field,
        )
        version = self._recorder.record(event, before, after, context)
        if version is None:
            return None
        stored = self.log.append(version)
        logger.info(
            "Version appended",
            version_id=stored.id,
            item_type=stored.item_type,
            item_id=stored.item_id,
            lifecycle_event=stored.event,
            whodunnit=stored.whodunnit,
        )
        return stored

    # -------------------------------------------------------------------------
    # Per-version operations
    # -------------------------------------------------------------------------

    def changeset(self, version: Version) -> dict[str, Any]:
        """Return the decoded changeset of a version.

        A configured object_changes_adapter that implements load_changeset
        replaces the default decoding path entirely.
        """
        adapter = self.object_changes_adapter
        load_changeset = getattr(adapter, "load_changeset", None) if adapter else None
        if callable(load_changeset):
            return dict(load_changeset(version))
        if version.object_changes is None:
            return {}
        changes = self.serializer.load(version.object_changes)
        if not isinstance(changes, dict):
            raise SerializationError(f"Changeset of version {version.id} is not a mapping")
        return changes

    def reify(
        self,
        version: Version,
        options: ReifyOptions | None = None,
        **overrides: bool,
    ) -> VersionedModel | None:
        """Return the item as it was before the version's event, or None for create.

        Args:
            version: The version to reify.
            options: Association-copy policy.
            **overrides: ``has_one`` / ``has_many`` shortcuts for ReifyOptions.
        """
        if options is None:
            options = ReifyOptions(**overrides)
        return self._reifier.reify(version, options)

    def previous(self, version: Version) -> Version | None:
        return self.queries.previous(version)

    def next(self, version: Version) -> Version | None:
        return self.queries.next(version)

    def index(self, version: Version) -> int:
        return self.queries.index(version)

    def originator(self, version: Version) -> str | None:
        """Return who put the item into the state stored in this version."""
        previous = self.previous(version)
        return previous.whodunnit if previous is not None else None

    def terminator(self, version: Version) -> str | None:
        """Return who ended the state stored in this version: its own event's actor."""
        return version.whodunnit

    def item(self, version: Version) -> VersionedModel | None:
        """Return the live item a version belongs to, or None when it is gone."""
        if self.repository is None or version.item_id is None:
            return None
        return self.repository.find(version.item_type, version.item_id)

    # -------------------------------------------------------------------------
    # Per-item access
    # -------------------------------------------------------------------------

    def trail(self, item: VersionedModel) -> ItemTrail:
        return ItemTrail(self, item)


class ItemTrail:
    """History view of one live or reified item.

    Args:
        tracker: The owning tracker.
        item: A live item or an item returned by reify.
    """

    def __init__(self, tracker: Tracker, item: VersionedModel) -> None:
        self._tracker = tracker
        self._item = item
        self._item_type = tracker.registry.item_type_of(item)
        self._item_id = getattr(item, "id", None)

    def versions(self) -> list[Version]:
        """Return the item's versions in creation order."""
        if self._item_id is None:
            return []
        return self._tracker.log.for_item(self._item_type, self._item_id)

    def is_live(self) -> bool:
        return self._item.is_live

    def source_version(self) -> Version | None:
        return self._item.source_version

    def originator(self) -> str | None:
        """Return the whodunnit of the item's first version."""
        versions = self.versions()
        return versions[0].whodunnit if versions else None

    def version_at(
        self, timestamp: datetime | str, options: ReifyOptions | None = None
    ) -> VersionedModel | None:
        """Return the item as it looked immediately after timestamp."""
        return self._tracker.queries.version_at(
            self._item_type,
            self._item_id,
            timestamp,
            live_item=self._live_item(),
            options=options,
        )

    def versions_between(
        self,
        start: datetime | str,
        finish: datetime | str,
        options: ReifyOptions | None = None,
    ) -> list[VersionedModel]:
        live_item = self._live_item()
        live_timestamp = (
            getattr(live_item, self._tracker.settings.timestamp_field, None)
            if live_item is not None
            else None
        )
        return self._tracker.queries.versions_between(
            self._item_type,
            self._item_id,
            start,
            finish,
            live_item=live_item,
            live_timestamp=live_timestamp,
            options=options,
        )

    def previous_version(self, options: ReifyOptions | None = None) -> VersionedModel | None:
        """Return the item as it was one event earlier.

        For a live item this is the reification of its latest version. For a
        reified item it is the reification of the version before its source.
        """
        source = self._item.source_version
        if source is None:
            versions = self.versions()
            previous = versions[-1] if versions else None
        else:
            previous = self._tracker.previous(source)
        if previous is None:
            return None
        return self._tracker.reify(previous, options)

    def next_version(self, options: ReifyOptions | None = None) -> VersionedModel | None:
        """Return the item as it became one event later.

        A live item has no next version. For the reification of the latest
        version the next state is the live item, or None when it is gone.
        """
        source = self._item.source_version
        if source is None:
            return None
        subsequent = self._tracker.next(source)
        if subsequent is not None:
            return self._tracker.reify(subsequent, options)
        return self._tracker.item(source)

    def association(self, name: str) -> Any:
        """Return a relation of the item.

        Relations attached at reify time win. Anything else resolves through
        the live association in the host persistence layer.
        """
        attached = self._item._associations
        if name in attached:
            return attached[name]
        if self._tracker.repository is None:
            return None
        return self._tracker.repository.reload_relation(self._item, name)

    def _live_item(self) -> VersionedModel | None:
        # destroyed items still report is_live; only the repository knows they are gone
        repository = self._tracker.repository
        if repository is not None and self._item_id is not None:
            return repository.find(self._item_type, self._item_id)
        return self._item if self._item.is_live else None
