"""SQLAlchemy-backed version log.

Versions live in a single ``versions`` table. Rows are never updated except
by the administrative ``correct_timestamp``. The item id is stored as text
alongside a flag recording whether it was an integer, so integer and string
keys round-trip unchanged.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Engine,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    create_engine,
    func,
    select,
)
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from version_trail.core.models import Version
from version_trail.errors import NotFoundError, ValidationError
from version_trail.observability import get_logger
from version_trail.serializers.json_serializer import JSONSerializer

logger = get_logger(__name__)

_METADATA_CODEC = JSONSerializer()


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    pass


class TaggedJSON(TypeDecorator[Any]):
    """JSON column whose values may hold datetimes, Decimals and UUIDs.

    Values are written in the tagged form of JSONSerializer and restored on
    load, so metadata reads back with the types it was recorded with.
    """

    impl = JSON
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Dialect) -> Any:
        if value is None:
            return None
        return json.loads(_METADATA_CODEC.dump(value))

    def process_result_value(self, value: Any, dialect: Dialect) -> Any:
        if value is None:
            return None
        return _METADATA_CODEC.load(json.dumps(value))


class VersionRecord(Base):
    """One stored version.

    Attributes:
        id: Autoincrement sequence; breaks created_at ties.
        item_type: Tracked type name.
        item_id: Item identifier as text.
        item_id_is_int: Whether item_id was an integer when recorded.
        event: Lifecycle event kind.
        object: Serialized pre-event snapshot.
        object_changes: Serialized changeset.
        whodunnit: Responsible actor.
        extra: Metadata extension fields (column ``metadata``).
        created_at: Semantic timestamp of the event, stored in UTC.
    """

    __tablename__ = "versions"
    __table_args__ = (Index("ix_versions_item", "item_type", "item_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    item_type: Mapped[str] = mapped_column(String(255), nullable=False)
    item_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    item_id_is_int: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    event: Mapped[str] = mapped_column(String(255), nullable=False)
    object: Mapped[str | None] = mapped_column(Text, nullable=True)
    object_changes: Mapped[str | None] = mapped_column(Text, nullable=True)
    whodunnit: Mapped[str | None] = mapped_column(String(255), nullable=True)
    extra: Mapped[dict[str, Any]] = mapped_column(
        "metadata", TaggedJSON, nullable=False, default=dict
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @classmethod
    def from_version(cls, version: Version) -> VersionRecord:
        item_id = version.item_id
        return cls(
            item_type=version.item_type,
            item_id=None if item_id is None else str(item_id),
            item_id_is_int=isinstance(item_id, int),
            event=version.event,
            object=version.object,
            object_changes=version.object_changes,
            whodunnit=version.whodunnit,
            extra=version.metadata,
            created_at=_utc(version.created_at),
        )

    def to_version(self) -> Version:
        item_id: int | str | None = self.item_id
        if item_id is not None and self.item_id_is_int:
            item_id = int(item_id)
        return Version(
            id=self.id,
            item_type=self.item_type,
            item_id=item_id,
            event=self.event,
            object=self.object,
            object_changes=self.object_changes,
            whodunnit=self.whodunnit,
            # SQLite drops the offset; values are always written in UTC
            created_at=_utc(self.created_at),
            **(self.extra or {}),
        )


class SqlVersionLog:
    """Version log persisted through SQLAlchemy.

    Implements the same contract as the in-memory VersionLog.

    Args:
        engine: A SQLAlchemy engine, or a database URL to create one from.
        echo: Echo SQL when creating the engine from a URL.
    """

    def __init__(self, engine: Engine | str, echo: bool = False) -> None:
        if isinstance(engine, str):
            engine = create_engine(engine, echo=echo)
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    def create_schema(self) -> None:
        """Create the versions table if it does not exist."""
        Base.metadata.create_all(self._engine)
        logger.info("Version schema ensured", url=str(self._engine.url))

    def _session(self) -> Session:
        return self._session_factory()

    @staticmethod
    def _item_filter(item_type: str, item_id: Any) -> list[Any]:
        clauses = [VersionRecord.item_type == item_type]
        if item_id is None:
            clauses.append(VersionRecord.item_id.is_(None))
        else:
            clauses.append(VersionRecord.item_id == str(item_id))
        return clauses

    def append(self, version: Version) -> Version:
        """Insert a version and return it with its database id.

        Raises:
            ValidationError: If the version already carries an id.
        """
        if version.id is not None:
            raise ValidationError(f"Version {version.id} has already been appended")
        with self._session() as session, session.begin():
            record = VersionRecord.from_version(version)
            session.add(record)
            session.flush()
            return record.to_version()

    def get(self, version_id: int) -> Version | None:
        with self._session() as session:
            record = session.get(VersionRecord, version_id)
            return record.to_version() if record is not None else None

    def for_item(self, item_type: str, item_id: Any) -> list[Version]:
        stmt = (
            select(VersionRecord)
            .where(*self._item_filter(item_type, item_id))
            .order_by(VersionRecord.created_at, VersionRecord.id)
        )
        return self._fetch(stmt)

    def between(
        self, item_type: str, item_id: Any, start: datetime, finish: datetime
    ) -> list[Version]:
        stmt = (
            select(VersionRecord)
            .where(
                *self._item_filter(item_type, item_id),
                VersionRecord.created_at >= _utc(start),
                VersionRecord.created_at <= _utc(finish),
            )
            .order_by(VersionRecord.created_at, VersionRecord.id)
        )
        return self._fetch(stmt)

    def subsequent(self, item_type: str, item_id: Any, timestamp: datetime) -> list[Version]:
        stmt = (
            select(VersionRecord)
            .where(
                *self._item_filter(item_type, item_id),
                VersionRecord.created_at > _utc(timestamp),
            )
            .order_by(VersionRecord.created_at, VersionRecord.id)
        )
        return self._fetch(stmt)

    def all(self) -> list[Version]:
        return self._fetch(select(VersionRecord).order_by(VersionRecord.id))

    def last(self) -> Version | None:
        stmt = select(VersionRecord).order_by(VersionRecord.id.desc()).limit(1)
        versions = self._fetch(stmt)
        return versions[0] if versions else None

    def count(self) -> int:
        with self._session() as session:
            return session.scalar(select(func.count()).select_from(VersionRecord)) or 0

    def correct_timestamp(self, version: Version, created_at: datetime) -> Version:
        """Rewrite a stored version's created_at.

        Raises:
            NotFoundError: If the version is not stored.
        """
        with self._session() as session, session.begin():
            record = session.get(VersionRecord, version.id) if version.id is not None else None
            if record is None:
                raise NotFoundError(resource="Version", resource_id=str(version.id))
            record.created_at = _utc(created_at)
            session.flush()
            corrected = record.to_version()
        logger.warning(
            "Version timestamp corrected",
            version_id=corrected.id,
            created_at=corrected.created_at.isoformat(),
        )
        return corrected

    def _fetch(self, stmt: Any) -> list[Version]:
        with self._session() as session:
            return [record.to_version() for record in session.scalars(stmt)]
