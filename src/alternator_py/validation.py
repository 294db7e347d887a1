from __future__ import annotations

import re
from typing import Any

from .errors import ValidationError

MaxTableNameLength = 255
MinTableNameLength = 3
MaxAttributeNameLength = 255
MaxBatchSize = 25

_TABLE_NAME = re.compile(r"^[a-zA-Z0-9_.-]+$")


def _contains_control_characters(value: str) -> bool:
    for ch in value:
        code = ord(ch)
        if code < 32 or code == 127:
            return True
    return False


def validate_table_name(name: Any, *, operation: str = "") -> None:
    prefix = f"{operation}: " if operation else ""
    if not name or not isinstance(name, str):
        raise ValidationError(f"{prefix}table name is required")
    if len(name) < MinTableNameLength or len(name) > MaxTableNameLength:
        raise ValidationError(f"{prefix}table name length invalid: {name!r}")
    if _TABLE_NAME.match(name) is None:
        raise ValidationError(f"{prefix}table name contains invalid characters: {name!r}")


def validate_attribute_name(name: Any) -> None:
    if not isinstance(name, str) or not name:
        raise ValidationError("attribute name cannot be empty")
    if len(name) > MaxAttributeNameLength:
        raise ValidationError("attribute name exceeds maximum length")
    if _contains_control_characters(name):
        raise ValidationError("attribute name contains control characters")


def validate_batch_size(entries: Any, *, operation: str, noun: str = "items") -> None:
    if not isinstance(entries, (list, tuple)) or not entries:
        raise ValidationError(f"{operation}: non-empty {noun} list required")
    if len(entries) > MaxBatchSize:
        raise ValidationError(f"{operation} limit is {MaxBatchSize}")
