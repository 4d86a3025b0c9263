"""Tests for the built-in JSON and YAML serializers.

Covers: attribute-map and changeset fidelity, datetime normalization and
precision, corrupt input handling and the serializer registry.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

import pytest

from version_trail.errors import SerializationError, ValidationError
from version_trail.serializers import JSONSerializer, YAMLSerializer, get_serializer

ATTRIBUTES = {
    "id": 1,
    "name": "Widget",
    "a_text": "multi\nline",
    "an_integer": 42,
    "a_float": 3.25,
    "a_decimal": Decimal("2.7183"),
    "a_datetime": datetime(2024, 5, 1, 12, 30, 15, 123456, tzinfo=timezone.utc),
    "a_time": time(9, 15, 30, 250000),
    "a_date": date(2024, 5, 1),
    "a_boolean": False,
    "a_uuid": uuid.UUID("12345678-1234-5678-1234-567812345678"),
    "nothing": None,
}


@pytest.fixture(params=["json", "yaml"])
def serializer(request: pytest.FixtureRequest) -> JSONSerializer | YAMLSerializer:
    return get_serializer(request.param)


# ---------------------------------------------------------------------------
# Fidelity
# ---------------------------------------------------------------------------


def test_attribute_map_survives_dump_and_load(serializer):
    assert serializer.load(serializer.dump(ATTRIBUTES)) == ATTRIBUTES


def test_changeset_pairs_survive_dump_and_load(serializer):
    changes = {
        "name": [None, "Widget"],
        "a_boolean": [True, False],
        "a_decimal": [Decimal("1.10"), None],
    }
    assert serializer.load(serializer.dump(changes)) == changes


def test_empty_changeset_loads_as_empty_mapping(serializer):
    assert serializer.load(serializer.dump({})) == {}


def test_boolean_stays_boolean(serializer):
    loaded = serializer.load(serializer.dump({"flag": True, "count": 1}))
    assert loaded["flag"] is True
    assert loaded["count"] == 1
    assert not isinstance(loaded["count"], bool)


def test_string_that_looks_like_a_date_stays_a_string(serializer):
    loaded = serializer.load(serializer.dump({"code": "2024-05-01"}))
    assert loaded["code"] == "2024-05-01"


def test_decimal_keeps_exact_digits(serializer):
    loaded = serializer.load(serializer.dump({"price": Decimal("0.10")}))
    assert loaded["price"] == Decimal("0.10")
    assert str(loaded["price"]) == "0.10"


# ---------------------------------------------------------------------------
# Datetime normalization
# ---------------------------------------------------------------------------


def test_offset_datetime_is_stored_as_same_utc_instant(serializer):
    plus_two = timezone(timedelta(hours=2))
    local = datetime(2024, 5, 1, 14, 0, tzinfo=plus_two)
    loaded = serializer.load(serializer.dump({"at": local}))["at"]
    assert loaded == local
    assert loaded.utcoffset() == timedelta(0)


def test_naive_datetime_is_taken_as_utc(serializer):
    naive = datetime(2024, 5, 1, 12, 0)
    loaded = serializer.load(serializer.dump({"at": naive}))["at"]
    assert loaded == naive.replace(tzinfo=timezone.utc)


@pytest.mark.parametrize("name", ["json", "yaml"])
def test_seconds_precision_truncates_sub_second_values(name):
    serializer = get_serializer(name, precision="seconds")
    value = {
        "at": datetime(2024, 5, 1, 12, 0, 0, 999999, tzinfo=timezone.utc),
        "clock": time(8, 0, 0, 500000),
    }
    loaded = serializer.load(serializer.dump(value))
    assert loaded["at"] == datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
    assert loaded["clock"] == time(8, 0, 0)


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


def test_json_corrupt_input_raises_serialization_error():
    with pytest.raises(SerializationError):
        JSONSerializer().load('{"name": "Widget"')


def test_json_bad_tagged_value_raises_serialization_error():
    with pytest.raises(SerializationError):
        JSONSerializer().load('{"at": {"$datetime": "not a date"}}')


def test_yaml_corrupt_input_raises_serialization_error():
    with pytest.raises(SerializationError):
        YAMLSerializer().load("name: [unterminated")


def test_yaml_refuses_arbitrary_python_objects():
    with pytest.raises(SerializationError):
        YAMLSerializer().load("!!python/object/apply:os.system ['true']")


@pytest.mark.parametrize("name", ["json", "yaml"])
def test_unencodable_value_raises_serialization_error(name):
    with pytest.raises(SerializationError):
        get_serializer(name).dump({"handle": object()})


def test_get_serializer_rejects_unknown_name():
    with pytest.raises(ValidationError):
        get_serializer("xml")
