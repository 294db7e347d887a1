"""Client-side emulation of multi-item transactions.

Alternator has no cross-item atomicity, so ``transact_write`` validates every
operation, snapshots the items it is about to touch, applies the operations
one by one and replays the snapshots when one of them fails. This narrows the
window for partial writes; it does not make them impossible. Concurrent
writers may interleave with a transaction and with its rollback.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from .cache import item_cache_key
from .errors import (
    AlternatorPyError,
    RollbackFailedError,
    TransactionFailedError,
    ValidationError,
)
from .validation import validate_batch_size

if TYPE_CHECKING:
    from .client import AlternatorClient

logger = logging.getLogger(__name__)


class RollbackAction(StrEnum):
    RESTORE_SNAPSHOT = "restore-snapshot"
    DELETE_CREATED = "delete-created"


@dataclass(frozen=True)
class TransactPut:
    table: str
    item: Mapping[str, Any]


@dataclass(frozen=True)
class TransactUpdate:
    table: str
    key: Mapping[str, Any]
    data: Mapping[str, Any]


@dataclass(frozen=True)
class TransactDelete:
    table: str
    key: Mapping[str, Any]


@dataclass(frozen=True)
class TransactGet:
    table: str
    key: Mapping[str, Any]


type TransactWriteOperation = TransactPut | TransactUpdate | TransactDelete


@dataclass(frozen=True)
class RollbackStep:
    table: str
    key: Mapping[str, Any]
    action: RollbackAction
    item: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class OperationResult:
    operation: Any
    success: bool
    result: Any = None
    error: BaseException | None = None


@dataclass(frozen=True)
class TransactionResult:
    success: bool
    results: list[OperationResult] = field(default_factory=list)
    message: str = ""


def coerce_write_operation(raw: Any) -> TransactWriteOperation:
    if isinstance(raw, (TransactPut, TransactUpdate, TransactDelete)):
        return raw
    if not isinstance(raw, Mapping):
        raise ValidationError(f"unsupported transaction operation: {type(raw).__name__}")

    table = raw.get("table")
    action = raw.get("action")
    if not table or not action:
        raise ValidationError("each operation must have table and action properties")

    if action == "put":
        if not raw.get("item"):
            raise ValidationError("put operation requires item")
        return TransactPut(table=table, item=raw["item"])
    if action == "update":
        if not raw.get("key") or not raw.get("data"):
            raise ValidationError("update operation requires key and data")
        return TransactUpdate(table=table, key=raw["key"], data=raw["data"])
    if action == "delete":
        if not raw.get("key"):
            raise ValidationError("delete operation requires key")
        return TransactDelete(table=table, key=raw["key"])
    raise ValidationError(f"unsupported action: {action}")


def coerce_get_operation(raw: Any) -> TransactGet:
    if isinstance(raw, TransactGet):
        return raw
    if isinstance(raw, Mapping) and raw.get("table") and raw.get("key"):
        return TransactGet(table=raw["table"], key=raw["key"])
    raise ValidationError("each operation must have table and key properties")


def _operation_key(client: AlternatorClient, op: TransactWriteOperation) -> dict[str, Any]:
    if isinstance(op, TransactPut):
        if not isinstance(op.item, Mapping) or not op.item:
            raise ValidationError("put operation requires item")
        return client.key_from_item(op.table, op.item)
    if isinstance(op, TransactUpdate):
        if not isinstance(op.data, Mapping) or not op.data:
            raise ValidationError("update operation requires key and data")
    return dict(op.key)


def _apply(client: AlternatorClient, op: TransactWriteOperation, max_attempts: int | None) -> Any:
    if isinstance(op, TransactPut):
        return client.put_item(op.table, op.item, max_attempts=max_attempts)
    if isinstance(op, TransactUpdate):
        return client.update_item(op.table, op.key, op.data, max_attempts=max_attempts)
    return client.delete_item(op.table, op.key, max_attempts=max_attempts)


def _replay(client: AlternatorClient, steps: Sequence[RollbackStep], max_attempts: int | None) -> None:
    for step in steps:
        if step.action is RollbackAction.RESTORE_SNAPSHOT and step.item is not None:
            client.put_item(step.table, step.item, max_attempts=max_attempts)
        elif step.action is RollbackAction.DELETE_CREATED:
            client.delete_item(step.table, step.key, max_attempts=max_attempts)


def transact_write(
    client: AlternatorClient,
    operations: Sequence[Any],
    *,
    rollback_on_failure: bool = True,
    retry_attempts: int | None = None,
    rollback_puts: bool = False,
) -> TransactionResult:
    validate_batch_size(operations, operation="transact_write", noun="operations")
    if retry_attempts is not None and retry_attempts < 1:
        raise ValidationError("retry_attempts must be >= 1")

    ops = [coerce_write_operation(raw) for raw in operations]
    keys: list[dict[str, Any]] = []
    for op in ops:
        key = _operation_key(client, op)
        client.validate_keys(op.table, key)
        keys.append(key)

    snapshots: dict[str, RollbackStep] = {}
    if rollback_on_failure:
        try:
            for op, key in zip(ops, keys, strict=True):
                if isinstance(op, TransactPut) and not rollback_puts:
                    continue
                snapshot_key = item_cache_key(op.table, key)
                if snapshot_key in snapshots:
                    continue
                original = client.get_item(op.table, key, max_attempts=retry_attempts)
                if original:
                    snapshots[snapshot_key] = RollbackStep(
                        table=op.table, key=key, action=RollbackAction.RESTORE_SNAPSHOT, item=original
                    )
                elif isinstance(op, TransactPut):
                    snapshots[snapshot_key] = RollbackStep(
                        table=op.table, key=key, action=RollbackAction.DELETE_CREATED
                    )
        except AlternatorPyError as err:
            raise TransactionFailedError(f"transaction failed: {err}") from err

    results: list[OperationResult] = []
    for op in ops:
        try:
            outcome = _apply(client, op, retry_attempts)
        except AlternatorPyError as err:
            results.append(OperationResult(operation=op, success=False, error=err))
            failure = err
            break
        results.append(OperationResult(operation=op, success=True, result=outcome))
    else:
        return TransactionResult(success=True, results=results, message="transaction completed successfully")

    if not rollback_on_failure or not snapshots:
        raise TransactionFailedError(f"transaction failed: {failure}", results=results) from failure

    logger.warning(
        "transaction failed, attempting rollback",
        extra={"error": str(failure), "snapshots": len(snapshots)},
    )
    try:
        _replay(client, list(snapshots.values()), retry_attempts)
    except AlternatorPyError as rollback_error:
        logger.error("transaction rollback failed", extra={"error": str(rollback_error)})
        raise RollbackFailedError(
            original=failure, rollback_error=rollback_error, results=results
        ) from rollback_error

    logger.info("transaction rollback completed", extra={"restored": len(snapshots)})
    raise TransactionFailedError(
        f"transaction failed: {failure}", results=results, rolled_back=True
    ) from failure


def transact_get(
    client: AlternatorClient,
    operations: Sequence[Any],
    *,
    consistent_read: bool = False,
) -> TransactionResult:
    validate_batch_size(operations, operation="transact_get", noun="operations")

    ops = [coerce_get_operation(raw) for raw in operations]
    by_table: dict[str, list[int]] = {}
    for index, op in enumerate(ops):
        client.validate_keys(op.table, op.key)
        by_table.setdefault(op.table, []).append(index)

    items: list[Any] = [None] * len(ops)
    try:
        for table, indexes in by_table.items():
            fetched = client.batch_get_item(
                table, [ops[i].key for i in indexes], consistent_read=consistent_read
            )
            for index, item in zip(indexes, fetched, strict=True):
                items[index] = item
    except AlternatorPyError as err:
        raise TransactionFailedError(f"transaction get failed: {err}") from err

    return TransactionResult(
        success=True,
        results=[OperationResult(operation=op, success=True, result=item) for op, item in zip(ops, items, strict=True)],
        message="transaction get completed successfully",
    )
