from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class AlternatorPyError(Exception):
    pass


class ValidationError(AlternatorPyError):
    pass


class ConfigError(AlternatorPyError):
    pass


class TableNotConfiguredError(ConfigError):
    def __init__(self, table: str) -> None:
        super().__init__(f'table "{table}" not found in loaded configs')
        self.table = table


class AwsError(AlternatorPyError):
    def __init__(self, *, code: str, message: str, http_status: int = 0, target: str = "") -> None:
        detail = " - ".join(part for part in (code, message) if part) or str(http_status)
        if target:
            super().__init__(f"Alternator {target} failed: {detail} (HTTP {http_status})")
        else:
            super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message
        self.http_status = http_status
        self.target = target


class ConditionFailedError(AwsError):
    pass


class ResourceNotFoundError(AwsError):
    pass


class ThrottlingError(AwsError):
    pass


class TransportError(AlternatorPyError):
    def __init__(self, *, target: str, attempts: int, message: str) -> None:
        super().__init__(f"Alternator {target} failed after {attempts} attempt(s): {message}")
        self.target = target
        self.attempts = attempts
        self.message = message
        self.http_status = 0


class TransactionFailedError(AlternatorPyError):
    def __init__(self, message: str, *, results: Sequence[Any] = (), rolled_back: bool = False) -> None:
        super().__init__(message)
        self.results = list(results)
        self.rolled_back = rolled_back


class RollbackFailedError(TransactionFailedError):
    def __init__(
        self,
        *,
        original: BaseException,
        rollback_error: BaseException,
        results: Sequence[Any] = (),
    ) -> None:
        super().__init__(
            f"transaction failed and rollback failed: {original}. rollback error: {rollback_error}",
            results=results,
        )
        self.original = original
        self.rollback_error = rollback_error
