"""AWS Signature Version 4 for DynamoDB-style JSON POST requests.

Only the shape Alternator needs is supported: a POST to ``/`` with no query
string and exactly four signed headers (``content-type``, ``host``,
``x-amz-date``, ``x-amz-target``).
"""

from __future__ import annotations

import hashlib
import hmac
from datetime import datetime

from .errors import ValidationError

ALGORITHM = "AWS4-HMAC-SHA256"
SERVICE = "dynamodb"
CONTENT_TYPE = "application/x-amz-json-1.0"
TARGET_PREFIX = "DynamoDB_20120810"
SIGNED_HEADERS = "content-type;host;x-amz-date;x-amz-target"


def amz_timestamps(now: datetime) -> tuple[str, str]:
    amz_date = now.strftime("%Y%m%dT%H%M%SZ")
    return amz_date, amz_date[:8]


def default_signing_host(region: str) -> str:
    return f"dynamodb.{region}.amazonaws.com"


def _sha256_hex(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def _hmac(key: bytes, data: str) -> bytes:
    return hmac.new(key, data.encode("utf-8"), hashlib.sha256).digest()


def signing_key(secret_key: str, date_stamp: str, region: str) -> bytes:
    k_date = _hmac(f"AWS4{secret_key}".encode(), date_stamp)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, SERVICE)
    return _hmac(k_service, "aws4_request")


def canonical_request(*, payload_json: str, host: str, amz_date: str, amz_target: str) -> str:
    canonical_headers = (
        f"content-type:{CONTENT_TYPE}\n"
        f"host:{host}\n"
        f"x-amz-date:{amz_date}\n"
        f"x-amz-target:{amz_target}\n"
    )
    return "\n".join(
        [
            "POST",
            "/",
            "",
            canonical_headers,
            SIGNED_HEADERS,
            _sha256_hex(payload_json),
        ]
    )


def sign_aws_request(
    target: str,
    payload_json: str,
    amz_date: str,
    date_stamp: str,
    *,
    access_key: str,
    secret_key: str,
    region: str,
    host: str | None = None,
) -> dict[str, str]:
    if not target or not payload_json or not amz_date or not date_stamp:
        raise ValidationError("sign_aws_request: missing required parameters")

    host = host or default_signing_host(region)
    amz_target = f"{TARGET_PREFIX}.{target}"

    creq = canonical_request(payload_json=payload_json, host=host, amz_date=amz_date, amz_target=amz_target)
    credential_scope = f"{date_stamp}/{region}/{SERVICE}/aws4_request"
    string_to_sign = "\n".join([ALGORITHM, amz_date, credential_scope, _sha256_hex(creq)])

    signature = hmac.new(
        signing_key(secret_key, date_stamp, region),
        string_to_sign.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()

    return {
        "Content-Type": CONTENT_TYPE,
        "X-Amz-Date": amz_date,
        "X-Amz-Target": amz_target,
        "Authorization": (
            f"{ALGORITHM} Credential={access_key}/{credential_scope}, "
            f"SignedHeaders={SIGNED_HEADERS}, Signature={signature}"
        ),
    }
