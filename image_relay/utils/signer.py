"""Volcengine HMAC-SHA256 request signing for the Doubao visual API."""

from __future__ import annotations

import hashlib
import hmac
import re
from datetime import datetime, timezone
from urllib.parse import parse_qsl, quote, urlsplit

ALGORITHM = "HMAC-SHA256"
X_DATE_FORMAT = "%Y%m%dT%H%M%SZ"

# Headers that must never take part in the signature.
UNSIGNABLE_HEADERS = frozenset(
    {"authorization", "content-type", "content-length", "user-agent", "presigned-expires", "expect"}
)

_WHITESPACE = re.compile(r"\s+")


def hash_sha256(data: bytes | str) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def hmac_sha256(key: bytes | str, msg: str) -> bytes:
    if isinstance(key, str):
        key = key.encode("utf-8")
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()


def uri_escape(value: str) -> str:
    """RFC 3986 escaping: only unreserved characters stay literal."""
    return quote(value, safe="-_.~")


def format_x_date(moment: datetime | None = None) -> str:
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(X_DATE_FORMAT)


def canonical_query(query: str) -> str:
    pairs = parse_qsl(query, keep_blank_values=True)
    escaped = sorted((uri_escape(k), uri_escape(v)) for k, v in pairs)
    return "&".join(f"{k}={v}" for k, v in escaped)


def _signable(headers: dict[str, str]) -> dict[str, str]:
    out: dict[str, str] = {}
    for name, value in headers.items():
        key = name.lower()
        if key in UNSIGNABLE_HEADERS:
            continue
        out[key] = _WHITESPACE.sub(" ", str(value).strip())
    return out


def canonical_headers(headers: dict[str, str]) -> tuple[str, str]:
    """Return (canonical header block, signed header list)."""
    signable = _signable(headers)
    names = sorted(signable)
    block = "".join(f"{name}:{signable[name]}\n" for name in names)
    return block, ";".join(names)


def build_canonical_request(method: str, path: str, query: str, headers: dict[str, str], body: bytes) -> str:
    block, signed = canonical_headers(headers)
    return "\n".join(
        [
            method.upper(),
            path or "/",
            canonical_query(query),
            block,
            signed,
            hash_sha256(body),
        ]
    )


def credential_scope(x_date: str, region: str, service: str) -> str:
    return f"{x_date[:8]}/{region}/{service}/request"


def build_string_to_sign(x_date: str, scope: str, canonical_request: str) -> str:
    return "\n".join([ALGORITHM, x_date, scope, hash_sha256(canonical_request)])


def derive_signing_key(secret_key: str, date: str, region: str, service: str) -> bytes:
    k_date = hmac_sha256(secret_key, date)
    k_region = hmac_sha256(k_date, region)
    k_service = hmac_sha256(k_region, service)
    return hmac_sha256(k_service, "request")


class RequestSigner:
    """Signs requests for one access key / region / service triple.

    ``sign`` returns the headers to send with the body bytes that were signed;
    the caller must send exactly those bytes.
    """

    def __init__(self, access_key: str, secret_key: str, region: str, service: str) -> None:
        self.access_key = access_key
        self.secret_key = secret_key
        self.region = region
        self.service = service

    def sign(
        self,
        method: str,
        url: str,
        body: bytes = b"",
        *,
        headers: dict[str, str] | None = None,
        timestamp: datetime | None = None,
    ) -> dict[str, str]:
        parts = urlsplit(url)
        x_date = format_x_date(timestamp)

        signed_headers = dict(headers or {})
        signed_headers["Host"] = parts.netloc
        signed_headers["X-Date"] = x_date

        canonical = build_canonical_request(method, parts.path, parts.query, signed_headers, body)
        scope = credential_scope(x_date, self.region, self.service)
        string_to_sign = build_string_to_sign(x_date, scope, canonical)
        key = derive_signing_key(self.secret_key, x_date[:8], self.region, self.service)
        signature = hmac.new(key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

        _, signed_list = canonical_headers(signed_headers)
        out = dict(signed_headers)
        out.setdefault("Content-Type", "application/json")
        out["Authorization"] = (
            f"{ALGORITHM} Credential={self.access_key}/{scope}, SignedHeaders={signed_list}, Signature={signature}"
        )
        return out


__all__ = [
    "ALGORITHM",
    "UNSIGNABLE_HEADERS",
    "hash_sha256",
    "hmac_sha256",
    "uri_escape",
    "format_x_date",
    "canonical_query",
    "canonical_headers",
    "build_canonical_request",
    "credential_scope",
    "build_string_to_sign",
    "derive_signing_key",
    "RequestSigner",
]
