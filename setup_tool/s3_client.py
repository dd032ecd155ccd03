"""
S3-compatible storage provider speaking the REST API directly.

Every request is signed with RequestSigner for the exact verb, URL and body
that go on the wire, then sent with a pooled requests session. Works with
Wasabi, AWS S3, Cloudflare R2, Backblaze B2 and other S3-compatible stores
using path-style addressing: ``{endpoint}/{bucket}/{key}``.
"""

import logging
import urllib.parse
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter

from shared.constants import DEFAULT_CONTENT_TYPE, DEFAULT_MAX_KEYS, DEFAULT_NETWORK_TIMEOUT
from shared.errors import (
    ConfigurationError,
    MalformedResponseError,
    RemoteRejectedError,
    TransportError,
)
from shared.models import RemoteObjectEntry, SigningCredential
from .signer import RequestSigner
from .storage_provider import ObjectStorageProvider

logger = logging.getLogger(__name__)

# S3 never returns more than this many keys per listing page
MAX_PAGE_SIZE = 1000


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


def _local_name(tag: str) -> str:
    """Strip the XML namespace: '{http://s3...}Key' -> 'Key'."""
    return tag.rsplit('}', 1)[-1]


def parse_timestamp(value: str) -> datetime:
    """Parse an S3 timestamp such as '2013-09-17T18:07:53.000Z'."""
    value = value.strip()
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_list_response(body: str) -> Tuple[List[RemoteObjectEntry], bool, Optional[str]]:
    """
    Parse a ListBucketResult document.

    Returns:
        (entries, is_truncated, next_marker)

    Raises:
        MalformedResponseError: If the body is not a usable listing
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise MalformedResponseError(f"Unparsable listing response: {e}") from e

    if _local_name(root.tag) != 'ListBucketResult':
        raise MalformedResponseError(f"Unexpected listing root element: {_local_name(root.tag)}")

    entries: List[RemoteObjectEntry] = []
    truncated = False
    next_marker = None

    for child in root:
        name = _local_name(child.tag)
        if name == 'Contents':
            fields = {_local_name(c.tag): (c.text or '') for c in child}
            key = fields.get('Key')
            if not key:
                raise MalformedResponseError("Listing entry without a Key")
            try:
                entries.append(RemoteObjectEntry(
                    key=key,
                    size=int(fields.get('Size') or 0),
                    last_modified=parse_timestamp(fields.get('LastModified', '')),
                    etag=fields.get('ETag', '').strip('"'),
                ))
            except ValueError as e:
                raise MalformedResponseError(f"Bad listing entry for {key}: {e}") from e
        elif name == 'IsTruncated':
            truncated = (child.text or '').strip().lower() == 'true'
        elif name == 'NextMarker':
            next_marker = child.text or None

    return entries, truncated, next_marker


class SignedS3Client(ObjectStorageProvider):
    """
    Object store client that signs its own requests.

    No retries happen here; a refused or failed request is reported to the
    caller, who owns the retry policy.
    """

    def __init__(self, endpoint: str, bucket: str, credential: SigningCredential,
                 session: Optional[requests.Session] = None,
                 timeout: float = DEFAULT_NETWORK_TIMEOUT,
                 signer: Optional[RequestSigner] = None):
        if not endpoint:
            raise ConfigurationError("An endpoint URL is required")
        if not bucket:
            raise ConfigurationError("A bucket name is required")

        self.endpoint_url = endpoint.rstrip('/')
        self.bucket_name = bucket
        self.credential = credential
        self.signer = signer or RequestSigner(credential)
        self.timeout = timeout
        self.session = session or self._build_session()

    @staticmethod
    def _build_session() -> requests.Session:
        session = requests.Session()
        adapter = HTTPAdapter(pool_connections=10, pool_maxsize=10, max_retries=0)
        session.mount('https://', adapter)
        session.mount('http://', adapter)
        return session

    # -- URLs ---------------------------------------------------------------

    def _bucket_url(self, query: Optional[Dict[str, str]] = None) -> str:
        url = f"{self.endpoint_url}/{self.bucket_name}"
        if query:
            url += "?" + urllib.parse.urlencode(sorted(query.items()), quote_via=urllib.parse.quote)
        return url

    def _object_url(self, key: str) -> str:
        return f"{self.endpoint_url}/{self.bucket_name}/{urllib.parse.quote(key, safe='/-_.~')}"

    def get_object_url(self, key: str) -> str:
        return self._object_url(key)

    # -- transport ----------------------------------------------------------

    def _send(self, operation: str, method: str, url: str,
              headers: Optional[Dict[str, str]] = None, data: bytes = b"") -> requests.Response:
        signed_headers = self.signer.sign(method, url, headers or {}, data)
        try:
            response = self.session.request(
                method, url,
                headers=signed_headers,
                data=data or None,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"{operation} {url} failed: {e}", cause=e) from e
        logger.debug("%s %s -> %s", method, url, response.status_code)
        return response

    # -- operations ---------------------------------------------------------

    def put_object(self, key: str, data: bytes, content_type: str = DEFAULT_CONTENT_TYPE) -> str:
        data = bytes(data)
        headers = {
            'Content-Type': content_type or DEFAULT_CONTENT_TYPE,
            'Content-Length': str(len(data)),
        }
        response = self._send("PUT object", "PUT", self._object_url(key), headers, data)
        if not _is_success(response.status_code):
            raise RemoteRejectedError("PUT object", response.status_code, response.text)
        return response.headers.get('ETag', '').strip('"')

    def delete_object(self, key: str) -> bool:
        try:
            response = self._send("DELETE object", "DELETE", self._object_url(key))
        except TransportError as e:
            logger.warning("Delete of %s did not reach the store: %s", key, e)
            return False

        if _is_success(response.status_code):
            return True
        logger.warning("Delete of %s rejected: HTTP %s %s",
                       key, response.status_code, response.text[:200])
        return False

    def _list_page(self, prefix: str, max_keys: int,
                   marker: Optional[str] = None) -> Tuple[List[RemoteObjectEntry], bool, Optional[str]]:
        query = {'max-keys': str(max_keys)}
        if prefix:
            query['prefix'] = prefix
        if marker:
            query['marker'] = marker

        response = self._send("LIST", "GET", self._bucket_url(query))
        if not _is_success(response.status_code):
            raise RemoteRejectedError("LIST", response.status_code, response.text)
        return parse_list_response(response.text)

    def list_objects(self, prefix: str = "", max_keys: int = DEFAULT_MAX_KEYS) -> List[RemoteObjectEntry]:
        results: List[RemoteObjectEntry] = []
        marker = None
        while len(results) < max_keys:
            page_size = min(max_keys - len(results), MAX_PAGE_SIZE)
            entries, truncated, next_marker = self._list_page(prefix, page_size, marker)
            results.extend(entries)
            if not truncated or not entries:
                break
            marker = next_marker or entries[-1].key
        return results[:max(max_keys, 0)]

    def list_all_objects(self, prefix: str = "", page_size: int = DEFAULT_MAX_KEYS) -> List[RemoteObjectEntry]:
        results: List[RemoteObjectEntry] = []
        marker = None
        page_size = max(1, min(page_size, MAX_PAGE_SIZE))
        while True:
            entries, truncated, next_marker = self._list_page(prefix, page_size, marker)
            results.extend(entries)
            if not truncated or not entries:
                return results
            marker = next_marker or entries[-1].key

    def object_exists(self, key: str) -> bool:
        response = self._send("HEAD object", "HEAD", self._object_url(key))
        return _is_success(response.status_code)

    def bucket_exists(self) -> bool:
        response = self._send("HEAD bucket", "HEAD", self._bucket_url())
        return _is_success(response.status_code)

    def ensure_bucket(self) -> bool:
        response = self._send("PUT bucket", "PUT", self._bucket_url())
        if _is_success(response.status_code):
            logger.info("Created bucket %s", self.bucket_name)
            return True
        if response.status_code == 409:
            logger.debug("Bucket %s already exists", self.bucket_name)
            return True
        raise RemoteRejectedError("PUT bucket", response.status_code, response.text)

    def status(self) -> Dict[str, Any]:
        return {
            "configured": self.credential.is_configured,
            "bucket": self.bucket_name,
            "region": self.credential.region,
            "endpoint": self.endpoint_url,
        }
