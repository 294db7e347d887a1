from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from typing import Any
from urllib.parse import urlsplit

import boto3

from .errors import ValidationError

DEFAULT_ENDPOINT = "http://localhost:8000/"
DEFAULT_REGION = "us-east-1"
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_MS = 100
DEFAULT_TIMEOUT_SECONDS = 1.0


@dataclass(frozen=True)
class AlternatorConfig:
    endpoint: str = DEFAULT_ENDPOINT
    port: int | None = None
    region: str = DEFAULT_REGION
    access_key: str = ""
    secret_key: str = ""
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_ms: int = DEFAULT_BACKOFF_MS
    enable_cache: bool = False
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    signing_host: str | None = None

    def __post_init__(self) -> None:
        if not self.endpoint:
            raise ValidationError("endpoint is required")
        if urlsplit(self.endpoint).scheme not in {"http", "https"}:
            raise ValidationError(f"endpoint must be an http(s) URL: {self.endpoint}")
        if self.port is not None and (isinstance(self.port, bool) or self.port <= 0):
            raise ValidationError("port must be > 0")
        if self.max_attempts < 1:
            raise ValidationError("max_attempts must be >= 1")
        if self.backoff_ms < 0:
            raise ValidationError("backoff_ms must be >= 0")
        if self.timeout_seconds <= 0:
            raise ValidationError("timeout_seconds must be > 0")

    @property
    def is_secure(self) -> bool:
        return urlsplit(self.endpoint).scheme == "https"

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] = os.environ,
        *,
        use_aws_credential_chain: bool = False,
        session: Any | None = None,
    ) -> AlternatorConfig:
        port = environ.get("SCYLLA_ALTERNATOR_PORT")
        try:
            parsed_port = int(port) if port else None
        except ValueError as err:
            raise ValidationError(f"SCYLLA_ALTERNATOR_PORT must be an integer: {port!r}") from err
        config = cls(
            endpoint=environ.get("SCYLLA_ALTERNATOR_ENDPOINT") or DEFAULT_ENDPOINT,
            port=parsed_port,
            region=environ.get("SCYLLA_ACCESS_REGION") or DEFAULT_REGION,
            access_key=environ.get("SCYLLA_ACCESS_KEY", ""),
            secret_key=environ.get("SCYLLA_ACCESS_PASSWORD", ""),
            enable_cache=environ.get("ENABLE_CACHE") == "true",
        )
        if use_aws_credential_chain:
            config = with_default_credentials(config, session=session)
        return config

    def with_overrides(self, overrides: Mapping[str, Any]) -> AlternatorConfig:
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides).difference(known))
        if unknown:
            raise ValidationError(f"unknown config field(s): {', '.join(unknown)}")
        return replace(self, **dict(overrides))


@dataclass(frozen=True)
class RequestOptions:
    headers: Mapping[str, str] = field(default_factory=dict)
    timeout_seconds: float | None = None


def with_default_credentials(config: AlternatorConfig, *, session: Any | None = None) -> AlternatorConfig:
    if config.access_key and config.secret_key:
        return config

    sess = session or boto3.session.Session(region_name=config.region)
    creds = sess.get_credentials()
    if creds is None:
        return config

    frozen = creds.get_frozen_credentials()
    return replace(
        config,
        access_key=config.access_key or str(frozen.access_key or ""),
        secret_key=config.secret_key or str(frozen.secret_key or ""),
    )
