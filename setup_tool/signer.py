"""
AWS Signature Version 4 request signing for S3-compatible stores.

Built directly on hashlib/hmac rather than an SDK so the exact bytes that
are signed stay under our control. Signing is a pure function of method,
URL, headers, payload, credentials and the signing instant.
"""

import hashlib
import hmac
import logging
import urllib.parse
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, Dict, List, Optional, Tuple, Union

from shared.constants import SIGNING_ALGORITHM, SIGNING_TERMINATOR
from shared.models import SigningCredential

logger = logging.getLogger(__name__)

Payload = Union[bytes, bytearray, memoryview, str, None]

EMPTY_PAYLOAD_HASH = hashlib.sha256(b"").hexdigest()

_UNRESERVED = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_.~"
)


def uri_encode(value: str, encode_slash: bool = True) -> str:
    """
    Percent-encode per the SigV4 rules.

    Unreserved characters (A-Z a-z 0-9 - _ . ~) pass through, everything
    else becomes %XX with uppercase hex over the UTF-8 bytes.
    """
    out: List[str] = []
    for ch in value:
        if ch in _UNRESERVED or (ch == "/" and not encode_slash):
            out.append(ch)
        else:
            out.extend(f"%{b:02X}" for b in ch.encode("utf-8"))
    return "".join(out)


def canonical_uri(path: str) -> str:
    """
    S3 canonical URI: decode once, encode once, keep slashes.

    S3 is exempt from path normalisation, so '//' and '..' segments are
    signed as sent.
    """
    if not path:
        return "/"
    return uri_encode(urllib.parse.unquote(path), encode_slash=False)


def canonical_query_string(query: str) -> str:
    """Encode every name and value, then sort by name and value."""
    if not query:
        return ""
    params = urllib.parse.parse_qsl(query, keep_blank_values=True)
    encoded = sorted((uri_encode(k), uri_encode(v)) for k, v in params)
    return "&".join(f"{k}={v}" for k, v in encoded)


def hash_payload(payload: Payload) -> str:
    """Hex SHA-256 of the exact body bytes; no body hashes as b''."""
    if payload is None:
        return EMPTY_PAYLOAD_HASH
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return hashlib.sha256(bytes(payload)).hexdigest()


def _hmac_sha256(key: bytes, msg: str) -> bytes:
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()


@lru_cache(maxsize=32)
def derive_signing_key(secret_key: str, date_stamp: str, region: str, service: str) -> bytes:
    """
    Derive the day's signing key.

    kDate = HMAC("AWS4" + secret, date), then region, service and the
    "aws4_request" terminator are folded in turn.
    """
    k_date = _hmac_sha256(("AWS4" + secret_key).encode("utf-8"), date_stamp)
    k_region = _hmac_sha256(k_date, region)
    k_service = _hmac_sha256(k_region, service)
    return _hmac_sha256(k_service, SIGNING_TERMINATOR)


def format_amz_date(now: datetime) -> Tuple[str, str]:
    """(timestamp token, date token) for an instant, e.g. ('20130524T000000Z', '20130524')."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    amz_date = now.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return amz_date, amz_date[:8]


@dataclass(frozen=True)
class CanonicalRequest:
    """The normalised request that is hashed into the string to sign."""
    method: str
    canonical_uri: str
    canonical_query: str
    canonical_headers: str
    signed_headers: str
    payload_hash: str

    def to_string(self) -> str:
        return "\n".join([
            self.method,
            self.canonical_uri,
            self.canonical_query,
            self.canonical_headers,
            self.signed_headers,
            self.payload_hash,
        ])

    def digest(self) -> str:
        return hashlib.sha256(self.to_string().encode("utf-8")).hexdigest()


def build_canonical_request(method: str, url: str, headers: Dict[str, str],
                            payload_hash: str, amz_date: str) -> CanonicalRequest:
    """
    Assemble the canonical request for a URL.

    ``headers`` are the caller's headers; host, payload hash and timestamp
    are taken from the arguments, never from the caller.
    """
    parts = urllib.parse.urlsplit(url)

    # HTTP clients omit the default port from the Host header
    host = parts.netloc
    if (parts.scheme, parts.port) in (("https", 443), ("http", 80)):
        host = host.rsplit(":", 1)[0]

    lower: Dict[str, str] = {}
    for name, value in headers.items():
        name = name.lower().strip()
        if name.startswith("x-amz-"):
            lower[name] = str(value)
    lower["host"] = host
    lower["x-amz-content-sha256"] = payload_hash
    lower["x-amz-date"] = amz_date

    names = sorted(lower)
    canonical_headers = "".join(
        f"{name}:{' '.join(lower[name].split())}\n" for name in names
    )

    return CanonicalRequest(
        method=method.upper(),
        canonical_uri=canonical_uri(parts.path),
        canonical_query=canonical_query_string(parts.query),
        canonical_headers=canonical_headers,
        signed_headers=";".join(names),
        payload_hash=payload_hash,
    )


def build_string_to_sign(amz_date: str, scope: str, canonical_request: CanonicalRequest) -> str:
    return "\n".join([
        SIGNING_ALGORITHM,
        amz_date,
        scope,
        canonical_request.digest(),
    ])


class RequestSigner:
    """
    Produces the authentication headers for one request.

    Stateless apart from the credential and clock it is constructed with;
    signing the same inputs at the same instant always yields the same
    headers.
    """

    def __init__(self, credential: SigningCredential,
                 clock: Optional[Callable[[], datetime]] = None):
        self.credential = credential
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        if not credential.is_configured:
            logger.warning("Signing without credentials; the store will only accept public requests")

    def credential_scope(self, date_stamp: str) -> str:
        c = self.credential
        return f"{date_stamp}/{c.region}/{c.service}/{SIGNING_TERMINATOR}"

    def sign(self, method: str, url: str, headers: Optional[Dict[str, str]] = None,
             payload: Payload = b"", now: Optional[datetime] = None) -> Dict[str, str]:
        """
        Sign a request.

        Args:
            method: HTTP verb
            url: Full URL including the final query string
            headers: Caller headers; returned unchanged alongside the auth headers
            payload: Exact body bytes that will be sent (may be empty)
            now: Signing instant, defaults to the signer's clock

        Returns:
            New dict of the caller headers plus Authorization, x-amz-date
            and x-amz-content-sha256
        """
        headers = dict(headers or {})
        amz_date, date_stamp = format_amz_date(now or self._clock())
        payload_hash = hash_payload(payload)

        canonical = build_canonical_request(method, url, headers, payload_hash, amz_date)
        scope = self.credential_scope(date_stamp)
        string_to_sign = build_string_to_sign(amz_date, scope, canonical)

        signing_key = derive_signing_key(
            self.credential.secret_access_key, date_stamp,
            self.credential.region, self.credential.service,
        )
        signature = hmac.new(signing_key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

        authorization = (
            f"{SIGNING_ALGORITHM} Credential={self.credential.access_key_id}/{scope}, "
            f"SignedHeaders={canonical.signed_headers}, Signature={signature}"
        )

        # Drop caller copies of the generated headers so case variants don't duplicate
        generated = {"authorization", "x-amz-date", "x-amz-content-sha256"}
        signed = {k: v for k, v in headers.items() if k.lower() not in generated}
        signed["Authorization"] = authorization
        signed["x-amz-date"] = amz_date
        signed["x-amz-content-sha256"] = payload_hash
        return signed
