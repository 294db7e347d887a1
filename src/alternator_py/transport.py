from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx

from .aws_errors import error_message, error_type, is_retryable, map_error_response
from .config import AlternatorConfig, RequestOptions
from .errors import AwsError, TransportError, ValidationError
from .signing import amz_timestamps, sign_aws_request

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AwsCallMetric:
    service: str
    operation: str
    seconds: float
    ok: bool
    http_status: int = 0


@dataclass(frozen=True)
class ErrorRecord:
    target: str
    http_status: int
    payload: str
    headers: Mapping[str, str]
    aws_error_type: str = ""
    aws_error_message: str = ""
    response_body: str = ""
    parsed_response: Mapping[str, Any] | None = None
    network_error: str = ""
    attempts: int = 1


class ErrorLog:
    def __init__(self) -> None:
        self._records: list[ErrorRecord] = []
        self._lock = threading.Lock()

    def append(self, record: ErrorRecord) -> None:
        with self._lock:
            self._records.append(record)

    def records(self) -> list[ErrorRecord]:
        with self._lock:
            return list(self._records)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _parse_body(raw: str) -> dict[str, Any] | None:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


class AlternatorTransport:
    def __init__(
        self,
        config: AlternatorConfig,
        *,
        http_transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
        metrics: Callable[[AwsCallMetric], None] | None = None,
    ) -> None:
        self.config = config
        self.options = RequestOptions()
        self.errors = ErrorLog()
        self._http_transport = http_transport
        self._sleep = sleep
        self._clock = clock
        self._metrics = metrics
        self._session: httpx.Client | None = None

    @property
    def in_session(self) -> bool:
        return self._session is not None

    def begin_session(self) -> None:
        if self._session is not None:
            return
        if not self.config.is_secure:
            logger.debug("plain HTTP endpoint, no persistent session needed")
            return
        self._session = self._new_client()
        logger.info("persistent HTTPS session started", extra={"endpoint": self.config.endpoint})

    def end_session(self) -> None:
        if self._session is None:
            return
        self._session.close()
        self._session = None
        logger.info("persistent HTTPS session closed")

    def sign(self, target: str, payload_json: str, amz_date: str, date_stamp: str) -> dict[str, str]:
        return sign_aws_request(
            target,
            payload_json,
            amz_date,
            date_stamp,
            access_key=self.config.access_key,
            secret_key=self.config.secret_key,
            region=self.config.region,
            host=self.config.signing_host,
        )

    def request(
        self,
        target: str,
        payload: Mapping[str, Any] | None = None,
        *,
        port: int | None = None,
        max_attempts: int | None = None,
    ) -> dict[str, Any]:
        if not target or not isinstance(target, str):
            raise ValidationError("request: target is required")
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ValidationError("request: payload must be a mapping")
        if port is not None and (not isinstance(port, int) or isinstance(port, bool) or port <= 0):
            raise ValidationError("request: port must be a positive integer")
        if max_attempts is not None and max_attempts < 1:
            raise ValidationError("request: max_attempts must be >= 1")

        config = self.config
        allowed = max_attempts or config.max_attempts
        payload_json = json.dumps(payload, separators=(",", ":")) if payload else "{}"
        body = payload_json.encode("utf-8")
        url = self._url(port if port is not None else config.port)

        delay = config.backoff_ms / 1000.0
        attempt = 0

        while True:
            attempt += 1
            amz_date, date_stamp = amz_timestamps(self._clock())
            headers = {
                **self.sign(target, payload_json, amz_date, date_stamp),
                "Content-Length": str(len(body)),
                **self.options.headers,
            }

            logger.debug("alternator request", extra={"target": target, "attempt": attempt})
            start = time.monotonic()
            try:
                resp = self._post(url, body, headers)
            except httpx.TransportError as err:
                self._emit(target, start, ok=False)
                if attempt < allowed:
                    logger.warning(
                        "alternator network error, retrying",
                        extra={"target": target, "attempt": attempt, "delay_seconds": delay, "error": str(err)},
                    )
                    self._sleep(delay)
                    delay *= 2
                    continue

                self.errors.append(
                    ErrorRecord(
                        target=target,
                        http_status=0,
                        payload=payload_json,
                        headers=headers,
                        network_error=str(err),
                        attempts=attempt,
                    )
                )
                logger.error("alternator request failed", extra={"target": target, "attempts": attempt})
                raise TransportError(target=target, attempts=attempt, message=str(err)) from err

            status = resp.status_code
            raw = resp.text
            parsed = _parse_body(raw)
            self._emit(target, start, ok=status == 200 and parsed is not None, http_status=status)

            if status == 200 and parsed is not None:
                return parsed

            aws_type = error_type(parsed)
            if is_retryable(status, aws_type) and attempt < allowed:
                logger.warning(
                    "alternator transient error, retrying",
                    extra={
                        "target": target,
                        "attempt": attempt,
                        "http_status": status,
                        "aws_type": aws_type,
                        "delay_seconds": delay,
                    },
                )
                self._sleep(delay)
                delay *= 2
                continue

            self.errors.append(
                ErrorRecord(
                    target=target,
                    http_status=status,
                    payload=payload_json,
                    headers=headers,
                    aws_error_type=aws_type,
                    aws_error_message=error_message(parsed),
                    response_body=raw,
                    parsed_response=parsed,
                    attempts=attempt,
                )
            )

            if status == 200:
                err = AwsError(
                    code="InvalidResponse",
                    message="response body is not a JSON object",
                    http_status=status,
                    target=target,
                )
            else:
                err = map_error_response(target, status, parsed)
            logger.error(
                "alternator request failed",
                extra={"target": target, "http_status": status, "aws_type": aws_type, "attempts": attempt},
            )
            raise err

    def close(self) -> None:
        self.end_session()

    def _url(self, port: int | None) -> httpx.URL:
        url = httpx.URL(self.config.endpoint)
        if port is not None:
            url = url.copy_with(port=port)
        if not url.path:
            url = url.copy_with(path="/")
        return url

    def _timeout(self) -> float:
        return self.options.timeout_seconds or self.config.timeout_seconds

    def _new_client(self) -> httpx.Client:
        return httpx.Client(transport=self._http_transport, timeout=self._timeout())

    def _post(self, url: httpx.URL, body: bytes, headers: dict[str, str]) -> httpx.Response:
        if self._session is not None:
            return self._session.post(url, content=body, headers=headers, timeout=self._timeout())

        client = self._new_client()
        try:
            return client.post(url, content=body, headers=headers)
        finally:
            if self._http_transport is None:
                client.close()

    def _emit(self, target: str, start: float, *, ok: bool, http_status: int = 0) -> None:
        if self._metrics is None:
            return
        self._metrics(
            AwsCallMetric(
                service="dynamodb",
                operation=target,
                seconds=time.monotonic() - start,
                ok=ok,
                http_status=http_status,
            )
        )

