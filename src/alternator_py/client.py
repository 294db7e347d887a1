from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from types import TracebackType
from typing import Any, Literal

import httpx

from . import transaction as _transaction
from .cache import DESCRIBE, ITEM, ClientCache, canonical_json, item_cache_key
from .codec import is_marshalled_item, marshal_item, unmarshal_item
from .config import AlternatorConfig, RequestOptions
from .errors import ValidationError
from .schema import SchemaRegistry, TableSchema
from .transaction import TransactionResult
from .transport import AlternatorTransport, AwsCallMetric, ErrorRecord, _utcnow
from .validation import validate_attribute_name, validate_batch_size, validate_table_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchWriteResult:
    inserted: list[dict[str, Any]] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)
    unprocessed: list[dict[str, Any]] = field(default_factory=list)


def _fingerprint(marshalled: Mapping[str, Any]) -> str:
    return hashlib.sha256(canonical_json(marshalled).encode("utf-8")).hexdigest()


def _prepare_options(options: Mapping[str, Any] | None) -> dict[str, Any]:
    if options is None:
        return {}
    if not isinstance(options, Mapping):
        raise ValidationError("options must be a mapping")
    out = dict(options)
    values = out.get("ExpressionAttributeValues")
    if values and not is_marshalled_item(values):
        out["ExpressionAttributeValues"] = marshal_item(values)
    return out


class AlternatorClient:
    def __init__(
        self,
        config: AlternatorConfig | None = None,
        *,
        registry: SchemaRegistry | None = None,
        http_transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
        metrics: Callable[[AwsCallMetric], None] | None = None,
    ) -> None:
        self._transport = AlternatorTransport(
            config or AlternatorConfig.from_env(),
            http_transport=http_transport,
            sleep=sleep,
            clock=clock,
            metrics=metrics,
        )
        self._registry = registry or SchemaRegistry()
        self._cache = ClientCache()

    def __enter__(self) -> AlternatorClient:
        self.begin_session()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.end_session()

    # ------------------------------------------------------------------
    # configuration and session
    # ------------------------------------------------------------------

    @property
    def config(self) -> AlternatorConfig:
        return self._transport.config

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    def configure(self, **overrides: Any) -> None:
        self._transport.config = self._transport.config.with_overrides(overrides)
        logger.info("alternator config updated", extra={"keys": sorted(overrides)})

    def set_request_options(
        self,
        *,
        headers: Mapping[str, str] | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        if headers is not None and not isinstance(headers, Mapping):
            raise ValidationError("set_request_options: headers must be a mapping")
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValidationError("set_request_options: timeout_seconds must be > 0")
        self._transport.options = RequestOptions(headers=dict(headers or {}), timeout_seconds=timeout_seconds)
        logger.info("custom request options set", extra={"headers": sorted(headers or {})})

    def begin_session(self) -> None:
        self._transport.begin_session()

    def end_session(self) -> None:
        self._transport.end_session()

    def close(self) -> None:
        self._transport.close()

    # ------------------------------------------------------------------
    # low-level
    # ------------------------------------------------------------------

    def sign_aws_request(self, target: str, payload_json: str, amz_date: str, date_stamp: str) -> dict[str, str]:
        return self._transport.sign(target, payload_json, amz_date, date_stamp)

    def request(
        self,
        target: str,
        payload: Mapping[str, Any] | None = None,
        port: int | None = None,
        *,
        max_attempts: int | None = None,
    ) -> dict[str, Any]:
        return self._transport.request(target, payload, port=port, max_attempts=max_attempts)

    def raw_request(self, target: str, payload: Mapping[str, Any] | None = None) -> dict[str, Any]:
        return self._transport.request(target, payload)

    def get_errors(self) -> list[ErrorRecord]:
        return self._transport.errors.records()

    def clear_errors(self) -> None:
        self._transport.errors.clear()

    def clear_cache(self, bucket: str | None = None) -> None:
        self._cache.clear(bucket)

    # ------------------------------------------------------------------
    # schema / meta
    # ------------------------------------------------------------------

    def load_table_configs(self, path: str | Path) -> int:
        return self._registry.load(path)

    def get_schema_from_config(self, table: str) -> TableSchema:
        return self._registry.get(table)

    def validate_keys(self, table: str, key: Any) -> bool:
        return self._registry.validate_keys(table, key)

    def key_from_item(self, table: str, item: Mapping[str, Any]) -> dict[str, Any]:
        return self._registry.key_from_item(table, item)

    def describe_table(self, table: str) -> dict[str, Any]:
        validate_table_name(table, operation="describe_table")
        cached = self._cache.get(DESCRIBE, table)
        if cached is not None:
            return cached
        resp = self._transport.request("DescribeTable", {"TableName": table})
        self._cache.set(DESCRIBE, table, resp)
        return resp

    def list_tables(self) -> list[str]:
        resp = self._transport.request("ListTables", {})
        return list(resp.get("TableNames") or [])

    def create_table(self, schema: Mapping[str, Any]) -> dict[str, Any]:
        if not isinstance(schema, Mapping) or not schema.get("TableName"):
            raise ValidationError("create_table: schema.TableName is required")
        validate_table_name(schema["TableName"], operation="create_table")
        self._cache.discard(DESCRIBE, schema["TableName"])
        return self._transport.request("CreateTable", schema)

    def delete_table(self, table: str) -> dict[str, Any]:
        validate_table_name(table, operation="delete_table")
        self._cache.discard(DESCRIBE, table)
        return self._transport.request("DeleteTable", {"TableName": table})

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def put_item(
        self,
        table: str,
        item: Mapping[str, Any],
        options: Mapping[str, Any] | None = None,
        track_change: bool = False,
        *,
        max_attempts: int | None = None,
    ) -> bool | Literal["inserted", "updated"]:
        validate_table_name(table, operation="put_item")
        if not isinstance(item, Mapping) or not item:
            raise ValidationError("put_item: item mapping is required")

        key = self.key_from_item(table, item)
        self.validate_keys(table, key)

        payload: dict[str, Any] = {"TableName": table, "Item": marshal_item(item)}
        if track_change:
            payload["ReturnValues"] = "ALL_OLD"
        payload.update(_prepare_options(options))

        resp = self._transport.request("PutItem", payload, max_attempts=max_attempts)

        if self.config.enable_cache:
            self._cache_item(table, key, unmarshal_item(payload["Item"]))

        if not track_change:
            return True
        return "updated" if resp.get("Attributes") else "inserted"

    def get_item(
        self,
        table: str,
        key: Mapping[str, Any],
        *,
        max_attempts: int | None = None,
    ) -> dict[str, Any] | Literal[False]:
        validate_table_name(table, operation="get_item")
        self.validate_keys(table, key)

        ck = item_cache_key(table, key)
        if self.config.enable_cache:
            cached = self._cache.get(ITEM, ck)
            if cached is not None:
                logger.debug("item cache hit", extra={"table": table})
                return cached

        resp = self._transport.request(
            "GetItem",
            {"TableName": table, "Key": marshal_item(key)},
            max_attempts=max_attempts,
        )
        if not resp.get("Item"):
            return False

        item = unmarshal_item(resp["Item"])
        if self.config.enable_cache:
            self._cache_item(table, key, item)
        return item

    def update_item(
        self,
        table: str,
        key: Mapping[str, Any],
        data: Mapping[str, Any],
        *,
        max_attempts: int | None = None,
    ) -> dict[str, Any] | Literal[False]:
        validate_table_name(table, operation="update_item")
        if not isinstance(data, Mapping):
            raise ValidationError("update_item: data mapping is required")
        self.validate_keys(table, key)

        payload = self._build_update_request(table, key, data)
        resp = self._transport.request("UpdateItem", payload, max_attempts=max_attempts)

        if not resp.get("Attributes"):
            return False
        attrs = unmarshal_item(resp["Attributes"])
        if self.config.enable_cache:
            self._cache_item(table, key, attrs)
        return attrs

    def delete_item(
        self,
        table: str,
        key: Mapping[str, Any],
        options: Mapping[str, Any] | None = None,
        *,
        max_attempts: int | None = None,
    ) -> bool:
        validate_table_name(table, operation="delete_item")
        self.validate_keys(table, key)

        # Eager: a failed delete still drops the cached copy.
        self._cache.discard(ITEM, item_cache_key(table, key))

        payload: dict[str, Any] = {
            "TableName": table,
            "Key": marshal_item(key),
            "ReturnValues": "ALL_OLD",
        }
        payload.update(_prepare_options(options))

        resp = self._transport.request("DeleteItem", payload, max_attempts=max_attempts)
        return bool(resp.get("Attributes"))

    def _build_update_request(
        self,
        table: str,
        key: Mapping[str, Any],
        data: Mapping[str, Any],
    ) -> dict[str, Any]:
        if not data:
            raise ValidationError("update_item: data must have at least one attribute")

        schema = self.get_schema_from_config(table)
        names: dict[str, str] = {}
        values: dict[str, Any] = {}
        set_parts: list[str] = []

        for i, (field_name, value) in enumerate(data.items()):
            validate_attribute_name(field_name)
            if field_name in schema.key_attributes:
                raise ValidationError(f"update_item: cannot update key attribute: {field_name}")
            name_ref = f"#f{i}"
            value_ref = f":v{i}"
            names[name_ref] = field_name
            values[value_ref] = value
            set_parts.append(f"{name_ref} = {value_ref}")

        return {
            "TableName": table,
            "Key": marshal_item(key),
            "UpdateExpression": "SET " + ", ".join(set_parts),
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": marshal_item(values),
            "ReturnValues": "ALL_NEW",
        }

    def _cache_item(self, table: str, key: Mapping[str, Any], item: Mapping[str, Any]) -> None:
        try:
            self._cache.set(ITEM, item_cache_key(table, key), item)
        except (TypeError, ValueError):
            logger.warning("item cache population failed", extra={"table": table}, exc_info=True)

    # ------------------------------------------------------------------
    # batch
    # ------------------------------------------------------------------

    def batch_write_item(self, table: str, items: Sequence[Mapping[str, Any]]) -> BatchWriteResult:
        validate_table_name(table, operation="batch_write_item")
        validate_batch_size(items, operation="batch_write_item", noun="items")

        keys: list[dict[str, Any]] = []
        for item in items:
            if not isinstance(item, Mapping):
                raise ValidationError("batch_write_item: every item must be a mapping")
            key = self.key_from_item(table, item)
            self.validate_keys(table, key)
            keys.append(key)

        marshalled = [marshal_item(item) for item in items]
        payload = {"RequestItems": {table: [{"PutRequest": {"Item": m}} for m in marshalled]}}

        resp = self._transport.request("BatchWriteItem", payload)
        unprocessed = list((resp.get("UnprocessedItems") or {}).get(table) or [])

        # Fingerprint membership only: identical items cannot be told apart.
        unprocessed_fingerprints = {
            _fingerprint(entry.get("PutRequest", {}).get("Item", {})) for entry in unprocessed
        }

        result = BatchWriteResult(unprocessed=unprocessed)
        for key, m in zip(keys, marshalled, strict=True):
            self._cache.discard(ITEM, item_cache_key(table, key))
            if _fingerprint(m) in unprocessed_fingerprints:
                result.failed.append(key)
            else:
                result.inserted.append(key)

        if unprocessed:
            logger.warning(
                "batch write left unprocessed items",
                extra={"table": table, "unprocessed": len(unprocessed)},
            )
        return result

    def batch_get_item(
        self,
        table: str,
        keys: Sequence[Mapping[str, Any]],
        *,
        consistent_read: bool = False,
    ) -> list[dict[str, Any] | None]:
        validate_table_name(table, operation="batch_get_item")
        validate_batch_size(keys, operation="batch_get_item", noun="keys")
        for key in keys:
            self.validate_keys(table, key)

        schema = self.get_schema_from_config(table)
        request: dict[str, Any] = {"Keys": [marshal_item(k) for k in keys]}
        if consistent_read:
            request["ConsistentRead"] = True

        resp = self._transport.request("BatchGetItem", {"RequestItems": {table: request}})

        def identity(obj: Mapping[str, Any]) -> str:
            return canonical_json([obj.get(attr) for attr in schema.key_attributes])

        by_key: dict[str, dict[str, Any]] = {}
        for raw in (resp.get("Responses") or {}).get(table) or []:
            item = unmarshal_item(raw)
            by_key[identity(item)] = item

        unprocessed = (resp.get("UnprocessedKeys") or {}).get(table)
        if unprocessed:
            logger.warning(
                "batch get left unprocessed keys",
                extra={"table": table, "unprocessed": len(unprocessed.get("Keys") or [])},
            )

        return [by_key.get(identity(k)) for k in keys]

    # ------------------------------------------------------------------
    # transactions
    # ------------------------------------------------------------------

    def transact_write(
        self,
        operations: Sequence[Any],
        *,
        rollback_on_failure: bool = True,
        retry_attempts: int | None = None,
        rollback_puts: bool = False,
    ) -> TransactionResult:
        return _transaction.transact_write(
            self,
            operations,
            rollback_on_failure=rollback_on_failure,
            retry_attempts=retry_attempts,
            rollback_puts=rollback_puts,
        )

    def transact_get(self, operations: Sequence[Any], *, consistent_read: bool = False) -> TransactionResult:
        return _transaction.transact_get(self, operations, consistent_read=consistent_read)

    # ------------------------------------------------------------------
    # query / scan
    # ------------------------------------------------------------------

    def query(
        self,
        table: str,
        key_condition_expr: str,
        expr_vals: Mapping[str, Any],
        options: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        validate_table_name(table, operation="query")
        if not key_condition_expr or not isinstance(key_condition_expr, str):
            raise ValidationError("query: key_condition_expr is required")
        if not isinstance(expr_vals, Mapping):
            raise ValidationError("query: expr_vals must be a mapping")

        values = marshal_item(expr_vals)
        extra = _prepare_options(options)
        values.update(extra.pop("ExpressionAttributeValues", None) or {})

        payload: dict[str, Any] = {
            "TableName": table,
            "KeyConditionExpression": key_condition_expr,
            **extra,
            "ExpressionAttributeValues": values,
        }
        return self._paginate("Query", payload)

    def scan(self, table: str, options: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        validate_table_name(table, operation="scan")
        payload: dict[str, Any] = {"TableName": table, **_prepare_options(options)}
        return self._paginate("Scan", payload)

    def _paginate(self, target: str, payload: dict[str, Any]) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        req = dict(payload)
        pages = 0

        while True:
            resp = self._transport.request(target, req)
            pages += 1
            out.extend(unmarshal_item(item) for item in resp.get("Items") or [])

            last = resp.get("LastEvaluatedKey")
            if not last:
                break
            req["ExclusiveStartKey"] = last

        logger.debug(
            "paginated read complete",
            extra={"target": target, "table": payload.get("TableName"), "pages": pages, "items": len(out)},
        )
        return out
