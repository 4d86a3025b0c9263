"""Tests for the Reifier: snapshot decoding, schema drift and associations."""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from decimal import Decimal

import pytest

from domain import FooWidget, Fluxor, Whatchamajigger, Widget, Wotsit
from version_trail.core.models import ReifyOptions, Version
from version_trail.errors import SerializationError

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class BazWidget(Widget):
    pass


def make_version(tracker, snapshot: dict | str | None, item_type: str = "Widget") -> Version:
    stored = snapshot if isinstance(snapshot, str) or snapshot is None else tracker.serializer.dump(snapshot)
    return Version(item_type=item_type, item_id=1, event="update", object=stored, created_at=T0)


def test_create_version_reifies_to_none(tracker, make_widget):
    widget = make_widget(name="Widget")
    create = tracker.trail(widget).versions()[0]
    assert create.event == "create"
    assert tracker.reify(create) is None


def test_reified_item_carries_every_typed_attribute(tracker, repository, make_widget):
    widget = make_widget(
        name="Widget",
        a_text="text",
        an_integer=42,
        a_float=3.25,
        a_decimal=Decimal("2.7183"),
        a_datetime=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        a_time=time(9, 30),
        a_date=date(2024, 1, 2),
        a_boolean=True,
    )
    before = widget.attributes()
    version = repository.update(widget, name="Fidget", a_boolean=False)

    reified = tracker.reify(version)
    assert isinstance(reified, Widget)
    assert reified.attributes() == before
    assert reified.a_boolean is True


def test_reified_item_is_not_live_and_knows_its_source(tracker, repository, make_widget):
    widget = make_widget(name="Widget")
    version = repository.update(widget, name="Fidget")
    reified = tracker.reify(version)
    assert widget.is_live is True
    assert reified.is_live is False
    assert reified.source_version == version


def test_attributes_missing_from_schema_are_dropped(tracker):
    version = make_version(tracker, {"id": 1, "name": "Old", "sprocket_count": 3})
    reified = tracker.reify(version)
    assert reified.name == "Old"
    assert not hasattr(reified, "sprocket_count")
    assert "sprocket_count" not in reified.attributes()


def test_attributes_missing_from_snapshot_take_defaults(tracker):
    version = make_version(tracker, {"id": 1, "name": "Old"})
    reified = tracker.reify(version)
    assert reified.a_text is None
    assert reified.an_integer is None


def test_stored_values_are_coerced_to_current_field_types(tracker):
    version = make_version(tracker, {"id": "1", "an_integer": "5", "a_decimal": "1.5"})
    reified = tracker.reify(version)
    assert reified.id == 1
    assert reified.an_integer == 5
    assert reified.a_decimal == Decimal("1.5")


def test_value_that_no_longer_validates_is_kept_as_stored(tracker):
    version = make_version(tracker, {"id": 1, "an_integer": "many"})
    assert tracker.reify(version).an_integer == "many"


def test_subclass_reifies_as_subclass(tracker, repository):
    foo = repository.create(FooWidget(name="Foo"))
    assert foo.type == "FooWidget"
    version = repository.update(foo, name="Bar")
    assert version.item_type == "Widget"
    reified = tracker.reify(version)
    assert type(reified) is FooWidget
    assert reified.name == "Foo"


def test_unregistered_subclass_reifies_as_subclass(tracker, repository):
    baz = repository.create(BazWidget(name="Baz"))
    assert baz.type == "BazWidget"
    version = repository.update(baz, name="Qux")
    reified = tracker.reify(version)
    assert type(reified) is BazWidget
    assert reified.name == "Baz"


def test_unknown_discriminator_falls_back_to_base_type(tracker):
    version = make_version(tracker, {"id": 1, "type": "RetiredWidget"})
    assert type(tracker.reify(version)) is Widget


def test_corrupt_snapshot_raises(tracker):
    version = make_version(tracker, '{"id": 1, "name": ')
    with pytest.raises(SerializationError):
        tracker.reify(version)


def test_snapshot_that_is_not_a_mapping_raises(tracker):
    version = make_version(tracker, "[1, 2, 3]")
    with pytest.raises(SerializationError):
        tracker.reify(version)


# ---------------------------------------------------------------------------
# Associations
# ---------------------------------------------------------------------------


def test_has_many_attaches_current_rows_by_default(tracker, repository, make_widget):
    widget = make_widget(name="Widget")
    version = repository.update(widget, name="Fidget")
    fluxors = [repository.create(Fluxor(widget_id=widget.id, name=f"f{n}")) for n in range(2)]

    reified = tracker.reify(version)
    attached = tracker.trail(reified).association("fluxors")
    assert attached == fluxors
    assert [id(row) for row in attached] == [id(row) for row in fluxors]


def test_polymorphic_has_many_is_attached(tracker, repository, make_widget):
    widget = make_widget(name="Widget")
    version = repository.update(widget, name="Fidget")
    mine = repository.create(Whatchamajigger(owner_type="Widget", owner_id=widget.id, name="m"))
    repository.create(Whatchamajigger(owner_type="Article", owner_id=widget.id, name="other"))

    reified = tracker.reify(version)
    assert tracker.trail(reified).association("whatchamajiggers") == [mine]


def test_has_many_copy_can_be_turned_off(tracker, repository, make_widget):
    widget = make_widget(name="Widget")
    version = repository.update(widget, name="Fidget")
    repository.create(Fluxor(widget_id=widget.id, name="f"))

    reified = tracker.reify(version, has_many=False)
    assert "fluxors" not in reified._associations


def test_has_one_resolves_through_live_association_by_default(tracker, repository, make_widget):
    widget = make_widget(name="Widget")
    wotsit = repository.create(Wotsit(widget_id=widget.id, name="first"))
    version = repository.update(widget, name="Fidget")
    repository.update(wotsit, name="renamed")

    reified = tracker.reify(version)
    assert tracker.trail(reified).association("wotsit").name == "renamed"


def test_has_one_is_forced_to_none_when_requested(tracker, repository, make_widget):
    widget = make_widget(name="Widget")
    repository.create(Wotsit(widget_id=widget.id, name="first"))
    version = repository.update(widget, name="Fidget")

    reified = tracker.reify(version, options=ReifyOptions(has_one=True))
    assert tracker.trail(reified).association("wotsit") is None
