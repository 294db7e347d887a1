from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from .client import AlternatorClient
from .config import AlternatorConfig
from .mocks import ANY, FakeAlternator, aws_error_body
from .schema import SchemaRegistry


def no_sleep(_: float) -> None:
    return None


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def fixed_clock(at: datetime | None = None) -> Callable[[], datetime]:
    moment = at or datetime(2015, 8, 30, 12, 36, 0, tzinfo=UTC)

    def clock() -> datetime:
        return moment

    return clock


def make_client(
    fake: FakeAlternator,
    *,
    tables: Mapping[str, Any] | None = None,
    sleep: Callable[[float], None] = no_sleep,
    clock: Callable[[], datetime] | None = None,
    **config: Any,
) -> AlternatorClient:
    """Client wired to ``fake`` with test credentials and no real sleeping."""
    settings: dict[str, Any] = {
        "endpoint": "http://alternator.test:8000/",
        "access_key": "AKIDEXAMPLE",
        "secret_key": "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY",
        **config,
    }
    return AlternatorClient(
        AlternatorConfig(**settings),
        registry=SchemaRegistry.from_mapping(tables or {}),
        http_transport=fake.transport,
        sleep=sleep,
        clock=clock or fixed_clock(),
    )


__all__ = [
    "ANY",
    "FakeAlternator",
    "RecordingSleep",
    "aws_error_body",
    "fixed_clock",
    "make_client",
    "no_sleep",
]
