from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError, TableNotConfiguredError, ValidationError
from .validation import validate_attribute_name, validate_table_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableSchema:
    pk: str
    sk: str | None = None

    @property
    def key_attributes(self) -> tuple[str, ...]:
        return (self.pk, self.sk) if self.sk else (self.pk,)

    @classmethod
    def from_config(cls, table: str, raw: Any) -> TableSchema:
        if not isinstance(raw, Mapping):
            raise ConfigError(f"config for table {table!r} must be a map with PK (and optional SK)")
        pk = raw.get("PK")
        sk = raw.get("SK") or None
        try:
            validate_attribute_name(pk)
            if sk is not None:
                validate_attribute_name(sk)
        except ValidationError as err:
            raise ConfigError(f"invalid key schema for table {table!r}: {err}") from err
        return cls(pk=pk, sk=sk)


def parse_table_configs(raw: str) -> dict[str, TableSchema]:
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as err:
        raise ConfigError("table configs are not valid YAML/JSON") from err

    if not isinstance(parsed, Mapping):
        raise ConfigError("table configs must be a map (table name -> config)")

    out: dict[str, TableSchema] = {}
    for table, cfg in parsed.items():
        if not isinstance(table, str) or not table:
            raise ConfigError(f"invalid table name in configs: {table!r}")
        out[table] = TableSchema.from_config(table, cfg)
    return out


class SchemaRegistry:
    def __init__(self, schemas: Mapping[str, TableSchema] | None = None) -> None:
        self._schemas: dict[str, TableSchema] = dict(schemas or {})
        self._lock = threading.Lock()

    @classmethod
    def from_mapping(cls, configs: Mapping[str, Any]) -> SchemaRegistry:
        return cls({table: TableSchema.from_config(table, cfg) for table, cfg in configs.items()})

    def load(self, path: str | Path) -> int:
        if not path:
            raise ValidationError("load_table_configs: path is required")

        try:
            raw = Path(path).read_text(encoding="utf-8")
        except OSError as err:
            raise ConfigError(f"config file not found or unreadable: {path}") from err

        schemas = parse_table_configs(raw)
        self.replace(schemas)
        logger.info("table configs loaded", extra={"path": str(path), "count": len(schemas)})
        return len(schemas)

    def replace(self, schemas: Mapping[str, TableSchema]) -> None:
        with self._lock:
            self._schemas = dict(schemas)

    def register(self, table: str, schema: TableSchema) -> None:
        with self._lock:
            self._schemas[table] = schema

    def tables(self) -> list[str]:
        with self._lock:
            return sorted(self._schemas)

    def get(self, table: str) -> TableSchema:
        if not table:
            raise ValidationError("get_schema_from_config: table name is required")
        with self._lock:
            schema = self._schemas.get(table)
        if schema is None:
            raise TableNotConfiguredError(table)
        return schema

    def validate_keys(self, table: str, key: Any) -> bool:
        validate_table_name(table, operation="validate_keys")
        if not isinstance(key, Mapping):
            raise ValidationError("validate_keys: key must be a mapping")

        schema = self.get(table)
        missing = [
            attr for attr in schema.key_attributes if attr not in key or key[attr] is None or key[attr] == ""
        ]
        if missing:
            raise ValidationError(f"missing required key attribute(s): {', '.join(missing)}")
        return True

    def key_from_item(self, table: str, item: Mapping[str, Any]) -> dict[str, Any]:
        schema = self.get(table)
        return {attr: item.get(attr) for attr in schema.key_attributes}
