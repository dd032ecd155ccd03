import hashlib
import urllib.parse
from datetime import datetime, timedelta, timezone
from xml.sax.saxutils import escape

import pytest

from library.cache import LocalAssetCache
from setup_tool.local_provider import LocalObjectStore
from setup_tool.s3_client import SignedS3Client
from shared.events import EventBus
from shared.models import SigningCredential

TEST_ENDPOINT = "https://s3.test.example.com"
TEST_BUCKET = "test-media"
BASE_TIME = datetime(2024, 5, 24, 10, 0, 0, tzinfo=timezone.utc)


class FakeResponse:
    def __init__(self, status_code=200, text="", headers=None):
        self.status_code = status_code
        self.text = text
        self.content = text.encode("utf-8")
        self.headers = headers or {}


class FakeS3Session:
    """
    In-memory stand-in for a requests.Session talking to one S3 endpoint.

    Understands path-style PUT/DELETE/HEAD on objects, PUT/HEAD on the
    bucket and v1 listing with prefix, max-keys and marker.
    """

    def __init__(self, bucket=TEST_BUCKET, create_bucket=True):
        self.buckets = {bucket} if create_bucket else set()
        self.objects = {}
        self.calls = []
        self.error = None
        self.overrides = {}
        self._tick = 0

    def fail_with(self, error):
        """Raise ``error`` for every following request."""
        self.error = error

    def respond(self, method, status_code, text=""):
        """Answer every following ``method`` request with a fixed status."""
        self.overrides[method] = (status_code, text)

    def add_object(self, key, data=b"", bucket=TEST_BUCKET, modified=None):
        self._tick += 1
        self.objects[(bucket, key)] = (bytes(data), modified or BASE_TIME + timedelta(minutes=self._tick))

    def request(self, method, url, headers=None, data=None, timeout=None):
        self.calls.append({"method": method, "url": url, "headers": dict(headers or {}),
                           "data": data, "timeout": timeout})
        if self.error is not None:
            raise self.error
        if method in self.overrides:
            return FakeResponse(*self.overrides[method])

        parts = urllib.parse.urlsplit(url)
        bucket, _, key = urllib.parse.unquote(parts.path).lstrip("/").partition("/")

        if not key:
            return self._bucket_request(method, bucket, parts.query)
        if bucket not in self.buckets:
            return FakeResponse(404, "<Error><Code>NoSuchBucket</Code></Error>")
        return self._object_request(method, bucket, key, data)

    def _bucket_request(self, method, bucket, query):
        if method == "PUT":
            if bucket in self.buckets:
                return FakeResponse(409, "<Error><Code>BucketAlreadyOwnedByYou</Code></Error>")
            self.buckets.add(bucket)
            return FakeResponse(200)
        if bucket not in self.buckets:
            return FakeResponse(404, "<Error><Code>NoSuchBucket</Code></Error>")
        if method == "HEAD":
            return FakeResponse(200)
        if method == "GET":
            return FakeResponse(200, self._list_xml(bucket, urllib.parse.parse_qs(query)))
        return FakeResponse(405)

    def _object_request(self, method, bucket, key, data):
        if method == "PUT":
            self.add_object(key, data or b"", bucket)
            etag = hashlib.md5(data or b"").hexdigest()
            return FakeResponse(200, headers={"ETag": f'"{etag}"'})
        if method == "DELETE":
            self.objects.pop((bucket, key), None)
            return FakeResponse(204)
        if method == "HEAD":
            return FakeResponse(200 if (bucket, key) in self.objects else 404)
        return FakeResponse(405)

    def _list_xml(self, bucket, params):
        prefix = params.get("prefix", [""])[0]
        max_keys = int(params.get("max-keys", ["1000"])[0])
        marker = params.get("marker", [""])[0]

        keys = sorted(k for (b, k) in self.objects if b == bucket and k.startswith(prefix) and k > marker)
        page, truncated = keys[:max_keys], len(keys) > max_keys

        contents = []
        for key in page:
            data, modified = self.objects[(bucket, key)]
            contents.append(
                "<Contents>"
                f"<Key>{escape(key)}</Key>"
                f"<LastModified>{modified.strftime('%Y-%m-%dT%H:%M:%S.000Z')}</LastModified>"
                f"<ETag>&quot;{hashlib.md5(data).hexdigest()}&quot;</ETag>"
                f"<Size>{len(data)}</Size>"
                "<StorageClass>STANDARD</StorageClass>"
                "</Contents>"
            )
        return (
            '<?xml version="1.0" encoding="UTF-8"?>'
            '<ListBucketResult xmlns="http://s3.amazonaws.com/doc/2006-03-01/">'
            f"<Name>{bucket}</Name><Prefix>{escape(prefix)}</Prefix>"
            f"<MaxKeys>{max_keys}</MaxKeys>"
            f"<IsTruncated>{'true' if truncated else 'false'}</IsTruncated>"
            + "".join(contents)
            + "</ListBucketResult>"
        )


@pytest.fixture
def credential():
    return SigningCredential(access_key_id="AKIDTEST", secret_access_key="secret-test-key", region="us-east-1")


@pytest.fixture
def fake_session():
    return FakeS3Session()


@pytest.fixture
def s3_client(fake_session, credential):
    return SignedS3Client(TEST_ENDPOINT, TEST_BUCKET, credential, session=fake_session)


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def cache(tmp_path, events):
    return LocalAssetCache(str(tmp_path / "assets.db"), events=events)


@pytest.fixture
def local_store(tmp_path):
    store = LocalObjectStore(str(tmp_path / "store"), "media")
    store.ensure_bucket()
    return store
