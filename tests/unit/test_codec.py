from __future__ import annotations

from decimal import Decimal

import pytest

from alternator_py.codec import (
    is_marshalled_item,
    marshal_item,
    marshal_value,
    unmarshal_item,
    unmarshal_value,
)
from alternator_py.errors import ValidationError


def test_marshal_value_scalars() -> None:
    assert marshal_value(None) == {"NULL": True}
    assert marshal_value(True) == {"BOOL": True}
    assert marshal_value(False) == {"BOOL": False}
    assert marshal_value(0) == {"N": "0"}
    assert marshal_value(1.5) == {"N": "1.5"}
    assert marshal_value(Decimal("2.25")) == {"N": "2.25"}
    assert marshal_value("hi") == {"S": "hi"}


def test_marshal_value_falls_back_to_string() -> None:
    class Thing:
        def __str__(self) -> str:
            return "thing"

    assert marshal_value(Thing()) == {"S": "thing"}


def test_marshal_item_nested() -> None:
    item = {"id": "u1", "age": 30, "tags": ["a", 1], "profile": {"ok": True, "nick": None}}
    assert marshal_item(item) == {
        "id": {"S": "u1"},
        "age": {"N": "30"},
        "tags": {"L": [{"S": "a"}, {"N": "1"}]},
        "profile": {"M": {"ok": {"BOOL": True}, "nick": {"NULL": True}}},
    }


def test_marshal_item_requires_mapping() -> None:
    with pytest.raises(ValidationError):
        marshal_item(["not", "a", "map"])


def test_unmarshal_item_restores_native_values() -> None:
    raw = {
        "id": {"S": "u1"},
        "age": {"N": "30"},
        "score": {"N": "1.25"},
        "big": {"N": "1e3"},
        "flag": {"BOOL": False},
        "gone": {"NULL": True},
        "tags": {"L": [{"S": "a"}, {"N": "2"}]},
        "profile": {"M": {"nick": {"S": "x"}}},
        "names": {"SS": ["a", "b"]},
        "nums": {"NS": ["1", "2.5"]},
    }
    out = unmarshal_item(raw)
    assert out == {
        "id": "u1",
        "age": 30,
        "score": 1.25,
        "big": 1000.0,
        "flag": False,
        "gone": None,
        "tags": ["a", 2],
        "profile": {"nick": "x"},
        "names": {"a", "b"},
        "nums": {1, 2.5},
    }
    assert isinstance(out["age"], int)
    assert isinstance(out["big"], float)


def test_unmarshal_value_passes_through_unknown_shapes() -> None:
    assert unmarshal_value({"B": "AAEC"}) == "AAEC"
    assert unmarshal_value("plain") == "plain"
    assert unmarshal_value({}) == {}
    assert unmarshal_item(None) == {}


def test_round_trip_preserves_json_like_values() -> None:
    item = {"id": "k", "n": -7, "f": 0.5, "l": [1, "two", None], "m": {"deep": {"x": True}}}
    assert unmarshal_item(marshal_item(item)) == item


def test_tuples_and_sets_marshal_as_lists() -> None:
    assert marshal_value((1, 2)) == {"L": [{"N": "1"}, {"N": "2"}]}
    assert marshal_value({"only"}) == {"L": [{"S": "only"}]}


def test_is_marshalled_item() -> None:
    assert is_marshalled_item({":a": {"S": "x"}, ":b": {"N": "1"}})
    assert not is_marshalled_item({":a": "x"})
    assert not is_marshalled_item({":a": {"S": "x", "N": "1"}})
    assert is_marshalled_item({":a": {"SS": ["x"]}, ":b": {"NS": ["1"]}, ":c": {"B": "AAEC"}})
    assert not is_marshalled_item({":a": {"XX": "x"}})
    assert not is_marshalled_item("nope")
