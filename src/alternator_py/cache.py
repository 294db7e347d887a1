from __future__ import annotations

import copy
import json
import logging
import threading
from collections.abc import Mapping
from typing import Any

from .errors import ValidationError

logger = logging.getLogger(__name__)

ITEM = "item"
DESCRIBE = "describe"
BUCKETS = (ITEM, DESCRIBE)


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def item_cache_key(table: str, key: Mapping[str, Any]) -> str:
    return f"{table}:{canonical_json(dict(key))}"


class ClientCache:
    """Per-client lookaside cache. Values are deep-copied on the way in and out."""

    def __init__(self) -> None:
        self._buckets: dict[str, dict[str, Any]] = {name: {} for name in BUCKETS}
        self._lock = threading.Lock()

    def get(self, bucket: str, key: str) -> Any | None:
        with self._lock:
            return copy.deepcopy(self._bucket(bucket).get(key))

    def set(self, bucket: str, key: str, value: Any) -> None:
        with self._lock:
            self._bucket(bucket)[key] = copy.deepcopy(value)

    def discard(self, bucket: str, key: str) -> None:
        with self._lock:
            self._bucket(bucket).pop(key, None)

    def clear(self, bucket: str | None = None) -> None:
        with self._lock:
            if bucket is None:
                for entries in self._buckets.values():
                    entries.clear()
                logger.info("all in-process caches cleared")
                return
            self._bucket(bucket).clear()
        logger.info("cache bucket cleared", extra={"bucket": bucket})

    def size(self, bucket: str) -> int:
        with self._lock:
            return len(self._bucket(bucket))

    def _bucket(self, bucket: str) -> dict[str, Any]:
        entries = self._buckets.get(bucket)
        if entries is None:
            raise ValidationError(f'unknown cache bucket "{bucket}"')
        return entries
