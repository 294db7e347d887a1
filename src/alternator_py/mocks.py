from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from .signing import TARGET_PREFIX


class _AnySentinel:
    def __repr__(self) -> str:  # pragma: no cover
        return "ANY"


ANY: Any = _AnySentinel()


def _assert_match(expected: Any, actual: Any, *, path: str) -> None:
    """Partial structural match of a decoded JSON body.

    Maps only need the expected keys; lists must match element-wise.
    """
    if expected is ANY:
        return

    if isinstance(expected, Mapping):
        if not isinstance(actual, Mapping):
            raise AssertionError(f"{path}: expected dict, got {type(actual).__name__}")
        missing = [k for k in expected if k not in actual]
        if missing:
            raise AssertionError(f"{path}: missing key {missing[0]!r}")
        for k in expected:
            _assert_match(expected[k], actual[k], path=f"{path}.{k}")
    elif isinstance(expected, list):
        if not isinstance(actual, list):
            raise AssertionError(f"{path}: expected list, got {type(actual).__name__}")
        if len(actual) != len(expected):
            raise AssertionError(f"{path}: expected {len(expected)} items, got {len(actual)}")
        for i, pair in enumerate(zip(expected, actual, strict=True)):
            _assert_match(*pair, path=f"{path}[{i}]")
    elif actual != expected:
        raise AssertionError(f"{path}: expected {expected!r}, got {actual!r}")


@dataclass(frozen=True)
class ExpectedCall:
    operation: str
    expected: Mapping[str, Any] | Callable[[Mapping[str, Any]], None] | None = None
    response: Mapping[str, Any] | str | None = None
    status: int = 200
    error: Exception | None = None


@dataclass(frozen=True)
class RecordedCall:
    operation: str
    body: dict[str, Any]
    headers: Mapping[str, str]
    url: str = ""


def aws_error_body(code: str, message: str = "") -> dict[str, str]:
    return {"__type": f"com.amazonaws.dynamodb.v20120810#{code}", "message": message}


class FakeAlternator:
    """Scripted Alternator endpoint served through ``httpx.MockTransport``.

    Each ``expect`` queues one wire call. Requests are matched in order by the
    operation named in ``X-Amz-Target``; ``expected`` is a partial match on
    the decoded JSON body. ``error`` raises inside the transport (use an
    ``httpx.TransportError`` to simulate a network failure); otherwise
    ``response`` is returned with ``status``. A string response is sent as-is.
    """

    def __init__(self) -> None:
        self._expected: list[ExpectedCall] = []
        self.calls: list[RecordedCall] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    def expect(
        self,
        operation: str,
        expected: Mapping[str, Any] | Callable[[Mapping[str, Any]], None] | None = None,
        *,
        response: Mapping[str, Any] | str | None = None,
        status: int = 200,
        error: Exception | None = None,
    ) -> None:
        self._expected.append(
            ExpectedCall(operation=operation, expected=expected, response=response, status=status, error=error)
        )

    def expect_error(self, operation: str, code: str, message: str = "", *, status: int = 400) -> None:
        self.expect(operation, response=aws_error_body(code, message), status=status)

    def assert_no_pending(self) -> None:
        if self._expected:
            raise AssertionError(f"pending expected calls: {self._expected!r}")

    def operations(self) -> list[str]:
        return [call.operation for call in self.calls]

    def _handle(self, request: httpx.Request) -> httpx.Response:
        target = request.headers.get("X-Amz-Target", "")
        operation = target.removeprefix(f"{TARGET_PREFIX}.")
        raw = request.content.decode("utf-8")
        body = json.loads(raw) if raw else {}

        self.calls.append(
            RecordedCall(operation=operation, body=body, headers=dict(request.headers), url=str(request.url))
        )
        if not self._expected:
            raise AssertionError(f"unexpected call: {operation}")

        call = self._expected.pop(0)
        if call.operation != operation:
            raise AssertionError(f"expected {call.operation}, got {operation}")

        if callable(call.expected):
            call.expected(body)
        elif call.expected is not None:
            _assert_match(dict(call.expected), body, path=operation)

        if call.error is not None:
            raise call.error

        if isinstance(call.response, str):
            return httpx.Response(call.status, text=call.response)
        return httpx.Response(call.status, json=dict(call.response or {}))
