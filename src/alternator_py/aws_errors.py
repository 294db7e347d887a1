from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .errors import (
    AwsError,
    ConditionFailedError,
    ResourceNotFoundError,
    ThrottlingError,
)

_THROTTLING_MARKERS = (
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
)


def error_type(parsed: Mapping[str, Any] | None) -> str:
    if not parsed:
        return ""
    return str(parsed.get("__type") or "")


def error_message(parsed: Mapping[str, Any] | None) -> str:
    if not parsed:
        return ""
    return str(parsed.get("message") or parsed.get("Message") or "")


def short_code(aws_type: str) -> str:
    # "com.amazonaws.dynamodb.v20120810#ConditionalCheckFailedException"
    return aws_type.rsplit("#", 1)[-1]


def is_throttling(status: int, aws_type: str) -> bool:
    return status == 400 and any(marker in aws_type for marker in _THROTTLING_MARKERS)


def is_retryable(status: int, aws_type: str) -> bool:
    return is_throttling(status, aws_type) or status >= 500


def map_error_response(target: str, status: int, parsed: Mapping[str, Any] | None) -> AwsError:
    aws_type = error_type(parsed)
    message = error_message(parsed)
    code = short_code(aws_type)

    if code == "ConditionalCheckFailedException":
        return ConditionFailedError(code=code, message=message, http_status=status, target=target)
    if code == "ResourceNotFoundException":
        return ResourceNotFoundError(code=code, message=message, http_status=status, target=target)
    if is_throttling(status, aws_type):
        return ThrottlingError(code=code, message=message, http_status=status, target=target)

    return AwsError(code=code, message=message, http_status=status, target=target)
