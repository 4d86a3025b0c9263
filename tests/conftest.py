"""Test fixtures for version-trail.

Provides:
- clock: A controllable clock shared by the tracker and the repository
- tracker: A Tracker with the test models registered
- repository: An InMemoryRepository attached to the tracker
- make_widget: Factory persisting a Widget through the repository
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import pytest

from domain import (
    ARTICLE_META,
    PERSON_RELATIONS,
    WIDGET_RELATIONS,
    Article,
    Book,
    FooWidget,
    Fluxor,
    Person,
    Whatchamajigger,
    Widget,
    Wotsit,
)
from version_trail.adapters.memory_repository import InMemoryRepository
from version_trail.settings import Settings
from version_trail.tracker import Tracker

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> FrozenClock:
    """Return a clock frozen at T0."""
    return FrozenClock()


@pytest.fixture()
def settings() -> Settings:
    """Return default settings, independent of the environment."""
    return Settings(enabled=True, serializer="json")


@pytest.fixture()
def tracker(settings: Settings, clock: FrozenClock) -> Tracker:
    """Return a Tracker with every test model registered."""
    tracker = Tracker(settings, clock=clock)
    tracker.register(Widget, relations=WIDGET_RELATIONS)
    tracker.register(FooWidget)
    tracker.register(Wotsit)
    tracker.register(Fluxor)
    tracker.register(Whatchamajigger)
    tracker.register(Article, meta=ARTICLE_META, ignore=["file_upload"], skip=["abstract"])
    tracker.register(Person, relations=PERSON_RELATIONS)
    tracker.register(Book)
    return tracker


@pytest.fixture()
def repository(tracker: Tracker, clock: FrozenClock) -> InMemoryRepository:
    """Return an in-memory repository attached to the tracker."""
    return InMemoryRepository(tracker, clock=clock)


@pytest.fixture()
def make_widget(repository: InMemoryRepository) -> Callable[..., Widget]:
    """Return a factory that persists a Widget with the given attributes."""

    def _make(**attributes: object) -> Widget:
        return repository.create(Widget(**attributes))

    return _make
