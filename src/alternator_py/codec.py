from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from .errors import ValidationError

TYPE_TAGS = frozenset({"S", "N", "B", "SS", "NS", "BS", "BOOL", "NULL", "L", "M"})


def marshal_value(value: Any) -> dict[str, Any]:
    if value is None:
        return {"NULL": True}
    # bool is an int subclass, so it must be checked first.
    if isinstance(value, bool):
        return {"BOOL": value}
    if isinstance(value, (int, float, Decimal)):
        return {"N": str(value)}
    if isinstance(value, (list, tuple, set, frozenset)):
        return {"L": [marshal_value(v) for v in value]}
    if isinstance(value, Mapping):
        return {"M": {str(k): marshal_value(v) for k, v in value.items()}}
    return {"S": str(value)}


def marshal_item(item: Any) -> dict[str, dict[str, Any]]:
    if not isinstance(item, Mapping):
        raise ValidationError("marshal_item expects a mapping")
    return {str(k): marshal_value(v) for k, v in item.items()}


def _parse_number(raw: Any) -> int | float:
    text = str(raw)
    if "." in text or "e" in text or "E" in text:
        return float(text)
    try:
        return int(text)
    except ValueError:
        # inf / nan
        return float(text)


def unmarshal_value(typed: Any) -> Any:
    if not isinstance(typed, Mapping) or not typed:
        return typed

    (kind, value), *_ = typed.items()

    if kind == "S":
        return value
    if kind == "N":
        return _parse_number(value)
    if kind == "BOOL":
        return bool(value)
    if kind == "NULL":
        return None
    if kind == "L":
        return [unmarshal_value(v) for v in value or []]
    if kind == "M":
        return {k: unmarshal_value(v) for k, v in (value or {}).items()}
    if kind == "SS":
        return set(value or [])
    if kind == "NS":
        return {_parse_number(v) for v in value or []}
    return value


def unmarshal_item(item: Any) -> dict[str, Any]:
    if not isinstance(item, Mapping):
        return {}
    return {k: unmarshal_value(v) for k, v in item.items()}


def is_marshalled_item(item: Any) -> bool:
    if not isinstance(item, Mapping):
        return False
    return all(
        isinstance(v, Mapping) and len(v) == 1 and next(iter(v)) in TYPE_TAGS for v in item.values()
    )
