from __future__ import annotations

import json
import re
from importlib.resources import files
from typing import TYPE_CHECKING, Any

from .client import AlternatorClient, BatchWriteResult
from .config import AlternatorConfig, RequestOptions, with_default_credentials
from .errors import (
    AlternatorPyError,
    AwsError,
    ConditionFailedError,
    ConfigError,
    ResourceNotFoundError,
    RollbackFailedError,
    TableNotConfiguredError,
    ThrottlingError,
    TransactionFailedError,
    TransportError,
    ValidationError,
)
from .schema import SchemaRegistry, TableSchema
from .transaction import (
    OperationResult,
    TransactDelete,
    TransactGet,
    TransactionResult,
    TransactPut,
    TransactUpdate,
)
from .transport import AwsCallMetric, ErrorRecord

if TYPE_CHECKING:
    from .codec import marshal_item, marshal_value, unmarshal_item, unmarshal_value
    from .signing import sign_aws_request
    from .validation import MaxBatchSize, validate_table_name


_FALLBACK_VERSION = "0.0.0"
_RC_SUFFIX = re.compile(r"^(?P<release>\d+\.\d+\.\d+)-rc\.?(?P<n>\d+)$")


def _read_repo_version() -> str:
    resource = files(__package__) / "version.json"
    try:
        version = json.loads(resource.read_text(encoding="utf-8")).get("version")
    except (OSError, ValueError, AttributeError):
        return _FALLBACK_VERSION
    return version if isinstance(version, str) and version else _FALLBACK_VERSION


def _normalize_repo_version(repo_version: str) -> str:
    # "1.2.3-rc.4" -> PEP 440 "1.2.3rc4"
    return _RC_SUFFIX.sub(r"\g<release>rc\g<n>", repo_version)


__repo_version__ = _read_repo_version()
__version__ = _normalize_repo_version(__repo_version__)


def __getattr__(name: str) -> Any:
    if name in {"marshal_item", "marshal_value", "unmarshal_item", "unmarshal_value"}:
        from . import codec

        return getattr(codec, name)
    if name == "sign_aws_request":
        from .signing import sign_aws_request

        return sign_aws_request
    if name in {"MaxBatchSize", "validate_table_name"}:
        from . import validation

        return getattr(validation, name)
    raise AttributeError(name)


__all__ = [
    "AlternatorClient",
    "AlternatorConfig",
    "AlternatorPyError",
    "AwsCallMetric",
    "AwsError",
    "BatchWriteResult",
    "ConditionFailedError",
    "ConfigError",
    "ErrorRecord",
    "MaxBatchSize",
    "OperationResult",
    "RequestOptions",
    "ResourceNotFoundError",
    "RollbackFailedError",
    "SchemaRegistry",
    "TableNotConfiguredError",
    "TableSchema",
    "ThrottlingError",
    "TransactDelete",
    "TransactGet",
    "TransactPut",
    "TransactUpdate",
    "TransactionFailedError",
    "TransactionResult",
    "TransportError",
    "ValidationError",
    "__repo_version__",
    "__version__",
    "marshal_item",
    "marshal_value",
    "sign_aws_request",
    "unmarshal_item",
    "unmarshal_value",
    "validate_table_name",
    "with_default_credentials",
]
