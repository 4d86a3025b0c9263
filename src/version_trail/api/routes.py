"""Read-only FastAPI routes over the version history.

The Tracker is taken from ``request.app.state.tracker``, set by the
application lifespan (or directly by tests).
Handlers are plain functions, so FastAPI runs them and the synchronous
log queries they make in its threadpool.

Routes:
    GET /items/{item_type}/{item_id}/versions  list an item's versions
    GET /items/{item_type}/{item_id}/at        item state right after a timestamp
    GET /items/{item_type}/{item_id}/between   item states within a time range
    GET /versions/{version_id}                 one version with its changeset
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field

from version_trail.core.models import Version, VersionedModel
from version_trail.errors import NotFoundError, SerializationError, ValidationError
from version_trail.history.queries import parse_timestamp
from version_trail.observability import get_logger
from version_trail.tracker import Tracker

logger = get_logger(__name__)

router = APIRouter(tags=["Version History"])


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class VersionResponse(BaseModel):
    """A single stored version.

    Attributes:
        id: Log sequence id.
        item_type: Tracked type name.
        item_id: Item identifier.
        event: create | update | destroy or a custom event.
        whodunnit: Responsible actor.
        created_at: Semantic timestamp of the event.
        metadata: Metadata extension fields.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    item_type: str
    item_id: int | str | None
    event: str
    whodunnit: str | None = None
    created_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_version(cls, version: Version) -> VersionResponse:
        return cls(
            id=version.id or 0,
            item_type=version.item_type,
            item_id=version.item_id,
            event=version.event,
            whodunnit=version.whodunnit,
            created_at=version.created_at,
            metadata=version.metadata,
        )


class VersionListResponse(BaseModel):
    """All versions of one item in log order."""

    model_config = ConfigDict(frozen=True)

    item_type: str
    item_id: int | str
    versions: list[VersionResponse]
    total: int


class VersionDetailResponse(VersionResponse):
    """A version with its decoded changeset and navigation details.

    Attributes:
        changeset: {attribute: [old, new]}.
        index: Zero-based position in the item's log.
        originator: Who put the item into the state stored in this version.
        terminator: Who ended that state.
    """

    changeset: dict[str, Any] = Field(default_factory=dict)
    index: int
    originator: str | None = None
    terminator: str | None = None


class ItemStateResponse(BaseModel):
    """State of an item immediately after a point in time.

    Attributes:
        state: Attribute map, or None when the item did not exist.
        live: Whether the state is the current live item.
        source_version_id: Version the state was reified from.
    """

    model_config = ConfigDict(frozen=True)

    item_type: str
    item_id: int | str
    timestamp: datetime
    state: dict[str, Any] | None = None
    live: bool = False
    source_version_id: int | None = None


class ItemStatesResponse(BaseModel):
    """States of an item recorded within a time range."""

    model_config = ConfigDict(frozen=True)

    item_type: str
    item_id: int | str
    start: datetime
    finish: datetime
    states: list[ItemStateResponse]


# ---------------------------------------------------------------------------
# Dependencies and helpers
# ---------------------------------------------------------------------------


def get_tracker(request: Request) -> Tracker:
    """Return the Tracker stored on the application state."""
    return request.app.state.tracker


def _coerce_item_id(item_id: str) -> int | str:
    return int(item_id) if item_id.isdigit() else item_id


def _require_type(tracker: Tracker, item_type: str) -> None:
    try:
        tracker.registry.options_for(item_type)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message) from exc


def _parse(value: str, name: str) -> datetime:
    try:
        return parse_timestamp(value)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"{name}: {exc.message}"
        ) from exc


def _live_item(tracker: Tracker, item_type: str, item_id: int | str) -> VersionedModel | None:
    if tracker.repository is None:
        return None
    return tracker.repository.find(item_type, item_id)


def _state_response(
    item_type: str,
    item_id: int | str,
    timestamp: datetime,
    item: VersionedModel | None,
) -> ItemStateResponse:
    source = item.source_version if item is not None else None
    return ItemStateResponse(
        item_type=item_type,
        item_id=item_id,
        timestamp=timestamp,
        state=item.attributes() if item is not None else None,
        live=item is not None and item.is_live,
        source_version_id=source.id if source is not None else None,
    )


def _serialization_failure(exc: SerializationError) -> HTTPException:
    logger.error("Stored version could not be decoded", error=exc.message)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Stored version could not be decoded",
    )


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------


@router.get(
    "/items/{item_type}/{item_id}/versions",
    response_model=VersionListResponse,
    status_code=status.HTTP_200_OK,
    summary="List the versions of an item",
)
def list_item_versions(
    item_type: str,
    item_id: str,
    tracker: Annotated[Tracker, Depends(get_tracker)],
) -> VersionListResponse:
    """Return every version of an item, oldest first.

    Raises:
        HTTPException 404: If the item type is not tracked.
    """
    _require_type(tracker, item_type)
    key = _coerce_item_id(item_id)
    versions = tracker.log.for_item(item_type, key)
    return VersionListResponse(
        item_type=item_type,
        item_id=key,
        versions=[VersionResponse.from_version(version) for version in versions],
        total=len(versions),
    )


@router.get(
    "/items/{item_type}/{item_id}/at",
    response_model=ItemStateResponse,
    status_code=status.HTTP_200_OK,
    summary="Get an item as it was right after a point in time",
)
def get_item_at(
    item_type: str,
    item_id: str,
    tracker: Annotated[Tracker, Depends(get_tracker)],
    timestamp: Annotated[str, Query(description="ISO 8601 timestamp")],
) -> ItemStateResponse:
    """Return the item's state immediately after ``timestamp``.

    The state is None when the timestamp predates creation or the item
    has since been destroyed.

    Raises:
        HTTPException 400: If the timestamp cannot be parsed.
        HTTPException 404: If the item type is not tracked.
    """
    _require_type(tracker, item_type)
    key = _coerce_item_id(item_id)
    at = _parse(timestamp, "timestamp")
    try:
        item = tracker.queries.version_at(
            item_type, key, at, live_item=_live_item(tracker, item_type, key)
        )
    except SerializationError as exc:
        raise _serialization_failure(exc) from exc
    return _state_response(item_type, key, at, item)


@router.get(
    "/items/{item_type}/{item_id}/between",
    response_model=ItemStatesResponse,
    status_code=status.HTTP_200_OK,
    summary="List an item's states within a time range",
)
def get_item_between(
    item_type: str,
    item_id: str,
    tracker: Annotated[Tracker, Depends(get_tracker)],
    start: Annotated[str, Query(description="Inclusive lower bound, ISO 8601")],
    finish: Annotated[str, Query(description="Inclusive upper bound, ISO 8601")],
) -> ItemStatesResponse:
    """Return the states the item passed through within [start, finish].

    Raises:
        HTTPException 400: If a bound cannot be parsed or start > finish.
        HTTPException 404: If the item type is not tracked.
    """
    _require_type(tracker, item_type)
    key = _coerce_item_id(item_id)
    lower = _parse(start, "start")
    upper = _parse(finish, "finish")
    if lower > upper:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start must not be later than finish",
        )

    live_item = _live_item(tracker, item_type, key)
    live_timestamp = (
        getattr(live_item, tracker.settings.timestamp_field, None) if live_item else None
    )
    try:
        items = tracker.queries.versions_between(
            item_type,
            key,
            lower,
            upper,
            live_item=live_item,
            live_timestamp=live_timestamp,
        )
    except SerializationError as exc:
        raise _serialization_failure(exc) from exc

    states = []
    for item in items:
        source = item.source_version
        moment = source.created_at if source is not None else live_timestamp or upper
        states.append(_state_response(item_type, key, moment, item))
    return ItemStatesResponse(
        item_type=item_type, item_id=key, start=lower, finish=upper, states=states
    )


@router.get(
    "/versions/{version_id}",
    response_model=VersionDetailResponse,
    status_code=status.HTTP_200_OK,
    summary="Get a version with its changeset",
)
def get_version(
    version_id: int,
    tracker: Annotated[Tracker, Depends(get_tracker)],
) -> VersionDetailResponse:
    """Return one version, its decoded changeset and who bracketed its state.

    Raises:
        HTTPException 404: If no version has this id.
    """
    version = tracker.log.get(version_id)
    if version is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=NotFoundError(resource="Version", resource_id=str(version_id)).message,
        )

    try:
        changeset = tracker.changeset(version)
    except SerializationError as exc:
        raise _serialization_failure(exc) from exc

    summary = VersionResponse.from_version(version)
    return VersionDetailResponse(
        **summary.model_dump(),
        changeset=changeset,
        index=tracker.index(version),
        originator=tracker.originator(version),
        terminator=tracker.terminator(version),
    )
