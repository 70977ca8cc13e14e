from __future__ import annotations
"""AWS Signature Version 4 request signing for the S3 service."""
from datetime import datetime, timezone
import hashlib
import hmac
from typing import Mapping, Optional
from urllib.parse import quote

from .models import DEFAULT_REGION, Credentials

ALGORITHM = "AWS4-HMAC-SHA256"
SERVICE = "s3"
TERMINATOR = "aws4_request"
EMPTY_PAYLOAD_HASH = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


def sha256_hex(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


def _hmac(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()


def percent_encode(value: str) -> str:
    """Encode everything outside the RFC 3986 unreserved set."""
    return quote(value, safe="~")


def canonical_query_string(query_params: Optional[Mapping[str, str]]) -> str:
    if not query_params:
        return ""
    return "&".join(
        f"{percent_encode(key)}={percent_encode(str(query_params[key]))}"
        for key in sorted(query_params)
    )


def canonical_headers(headers: Mapping[str, str]) -> tuple[str, str]:
    """Return the canonical header block and the signed header list."""
    lowered = {name.lower(): str(value).strip() for name, value in headers.items()}
    names = sorted(lowered)
    block = "".join(f"{name}:{lowered[name]}\n" for name in names)
    return block, ";".join(names)


def signing_key(secret_key: str, date_stamp: str, region: str) -> bytes:
    k_date = _hmac(f"AWS4{secret_key}".encode("utf-8"), date_stamp)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, SERVICE)
    return _hmac(k_service, TERMINATOR)


def _utc(timestamp: datetime) -> datetime:
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def sign(
    method: str,
    canonical_uri: str,
    query_params: Optional[Mapping[str, str]],
    headers: Mapping[str, str],
    payload: bytes,
    timestamp: datetime,
    credentials: Credentials,
    region: str = "",
) -> dict[str, str]:
    """Return ``headers`` plus ``x-amz-date``, ``x-amz-content-sha256`` and ``Authorization``.

    ``canonical_uri`` must already be percent-encoded exactly as it will be
    sent on the wire. Naive timestamps are taken to be UTC. An empty region
    signs for ``us-east-1``.
    """
    moment = _utc(timestamp)
    amz_date = moment.strftime("%Y%m%dT%H%M%SZ")
    date_stamp = moment.strftime("%Y%m%d")
    region = region or DEFAULT_REGION
    payload_hash = sha256_hex(payload or b"")

    signed = {
        name: value
        for name, value in headers.items()
        if name.lower() not in ("x-amz-date", "x-amz-content-sha256", "authorization")
    }
    signed["x-amz-date"] = amz_date
    signed["x-amz-content-sha256"] = payload_hash

    header_block, signed_headers = canonical_headers(signed)
    canonical_request = "\n".join(
        [
            method.upper(),
            canonical_uri or "/",
            canonical_query_string(query_params),
            header_block,
            signed_headers,
            payload_hash,
        ]
    )

    credential_scope = f"{date_stamp}/{region}/{SERVICE}/{TERMINATOR}"
    string_to_sign = "\n".join(
        [
            ALGORITHM,
            amz_date,
            credential_scope,
            sha256_hex(canonical_request.encode("utf-8")),
        ]
    )
    signature = hmac.new(
        signing_key(credentials.secret_key, date_stamp, region),
        string_to_sign.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()

    signed["Authorization"] = (
        f"{ALGORITHM} Credential={credentials.access_key}/{credential_scope}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )
    return signed
