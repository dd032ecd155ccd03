"""
Data models for media assets, remote objects and store configuration.

This module defines the core data structures used throughout the platform
for representing catalogued assets, entries of the remote object listing,
signing credentials and the persisted cache document.
"""

from dataclasses import dataclass, asdict, field
from typing import List, Dict, Optional, Any
from enum import Enum
from datetime import datetime, timezone
import dataclasses
import json
import logging
import re
import uuid

from shared.constants import (
    CACHE_SCHEMA_VERSION,
    DEFAULT_BUCKET,
    DEFAULT_NETWORK_TIMEOUT,
    DEFAULT_REGION,
    DEFAULT_UPLOAD_CONCURRENCY,
    SIGNING_SERVICE,
)

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    """Current instant as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


def dedupe(values: List[str]) -> List[str]:
    """Drop duplicates and blanks, keeping first-seen order."""
    seen = set()
    result = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


class StorageProvider(Enum):
    """Supported cloud storage providers."""
    WASABI = "wasabi"
    AWS_S3 = "s3"
    CLOUDFLARE_R2 = "r2"
    BACKBLAZE_B2 = "b2"
    GENERIC_S3 = "generic"
    LOCAL = "local"


class AssetCategory(Enum):
    """Top-level media categories."""
    VIDEO = "video"
    IMAGE = "image"
    AUDIO = "audio"
    DOCUMENT = "document"
    PROJECT = "project"
    OTHER = "other"


@dataclass(frozen=True)
class SigningCredential:
    """
    Credentials used to sign requests against the object store.

    Loaded once at startup and never mutated. Empty keys are allowed so that
    public buckets can be used without authentication.
    """
    access_key_id: str
    secret_access_key: str = field(repr=False)
    region: str = DEFAULT_REGION
    service: str = SIGNING_SERVICE

    @property
    def is_configured(self) -> bool:
        return bool(self.access_key_id and self.secret_access_key)


@dataclass(frozen=True)
class RemoteObjectEntry:
    """One entry of the remote object listing. Has no local identity."""
    key: str
    size: int
    last_modified: datetime
    etag: str = ""

    @property
    def file_name(self) -> str:
        return self.key.rsplit("/", 1)[-1]

    @property
    def last_modified_iso(self) -> str:
        return self.last_modified.astimezone(timezone.utc).isoformat()


@dataclass
class AssetRecord:
    """
    A catalogued media asset.

    Attributes:
        id: Locally generated, stable identifier
        key: Object key in the bucket (join key with the remote listing)
        name: Display name (file name without extension)
        file_name: Original file name
        file_type: Extension or MIME type of the file
        file_size: Size in bytes, refreshed from the remote listing
        category: One of the AssetCategory values
        subcategory: Finer classification (raw, export, lossless, ...)
        url: Public URL of the object
        project_name: Production the asset belongs to (optional)
        client_name: Client the asset belongs to (optional)
        tags: User and heuristic tags, unique and ordered
        ai_tags: Heuristic tags only
        metadata: Arbitrary extra information
        uploaded_by: Uploader id ("system" for objects first seen by sync)
        uploaded_by_name: Uploader display name
        is_shared: Visible to the whole team
        is_favorite: Starred by the user
        is_client_visible: Visible in client-facing views
        created_at: ISO-8601 creation timestamp
        updated_at: ISO-8601 last update timestamp
    """
    id: str
    key: str
    name: str
    file_name: str
    file_type: str
    file_size: int
    category: str
    subcategory: Optional[str] = None
    url: str = ""
    project_name: Optional[str] = None
    client_name: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    ai_tags: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    uploaded_by: str = "system"
    uploaded_by_name: str = ""
    is_shared: bool = True
    is_favorite: bool = False
    is_client_visible: bool = False
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    def __post_init__(self):
        self.tags = dedupe(list(self.tags))
        self.ai_tags = dedupe(list(self.ai_tags))

    @staticmethod
    def generate_id() -> str:
        """Generate a unique asset ID."""
        return str(uuid.uuid4())

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in dataclasses.fields(cls)]

    def to_dict(self) -> Dict[str, Any]:
        """Convert asset to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AssetRecord':
        """Create AssetRecord from dictionary, filtering unknown keys."""
        names = set(cls.field_names())
        filtered_data = {k: v for k, v in data.items() if k in names}
        return cls(**filtered_data)

    def with_updates(self, **changes: Any) -> 'AssetRecord':
        """Copy of this record with the given fields replaced."""
        return dataclasses.replace(self, **changes)


# Version 1 records were written with camelCase field names
_CAMEL_RE = re.compile(r'(?<!^)(?=[A-Z])')


def _migrate_v1_record(data: Dict[str, Any]) -> Dict[str, Any]:
    return {_CAMEL_RE.sub('_', k).lower(): v for k, v in data.items()}


@dataclass
class AssetCacheDocument:
    """
    The persisted form of the local asset cache.

    The whole catalogue is stored as one document under a single storage
    key. ``version`` is the schema version of that document, used to
    migrate state written by older releases. A document from a newer release
    keeps its own version so the cache can refuse to downgrade it.
    ``skipped`` counts stored records that could not be decoded; it is not
    persisted.
    """
    version: int
    assets: List[AssetRecord]
    last_updated: str = field(default_factory=utc_now_iso)
    skipped: int = 0

    @property
    def is_newer_schema(self) -> bool:
        return self.version > CACHE_SCHEMA_VERSION

    def to_json(self, indent: Optional[int] = None) -> str:
        data = {
            "version": self.version,
            "assets": [asset.to_dict() for asset in self.assets],
            "last_updated": self.last_updated,
        }
        return json.dumps(data, indent=indent)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AssetCacheDocument':
        try:
            version = int(data.get("version", 1))
        except (ValueError, TypeError):
            version = 1

        raw_assets = data.get("assets", [])
        if not isinstance(raw_assets, list):
            raise ValueError("Cache document 'assets' is not a list")

        assets = []
        skipped = 0
        for raw in raw_assets:
            try:
                if version < 2:
                    raw = _migrate_v1_record(raw)
                assets.append(AssetRecord.from_dict(raw))
            except (AttributeError, TypeError, ValueError) as e:
                skipped += 1
                logger.warning("Skipping unreadable cached asset: %s", e)

        return cls(
            version=max(version, CACHE_SCHEMA_VERSION),
            assets=assets,
            last_updated=data.get("last_updated", utc_now_iso()),
            skipped=skipped,
        )

    @classmethod
    def from_json(cls, json_str: str) -> 'AssetCacheDocument':
        """
        Deserialize a cache document.

        A bare JSON list is the unversioned layout written before schema
        tagging existed; it is treated as version 1.
        """
        data = json.loads(json_str)
        if isinstance(data, list):
            data = {"version": 1, "assets": data}
        elif not isinstance(data, dict):
            raise ValueError("Cache document is not a JSON object")
        return cls.from_dict(data)

    @classmethod
    def empty(cls) -> 'AssetCacheDocument':
        return cls(version=CACHE_SCHEMA_VERSION, assets=[])


@dataclass
class StoreConfig:
    """
    Object store configuration stored locally on each device.

    Contains credentials for accessing cloud storage and local preferences.
    """
    provider: StorageProvider
    endpoint: str
    bucket: str = DEFAULT_BUCKET
    access_key_id: str = ""
    secret_access_key: str = field(default="", repr=False)
    region: str = DEFAULT_REGION
    upload_concurrency: int = DEFAULT_UPLOAD_CONCURRENCY
    request_timeout: float = DEFAULT_NETWORK_TIMEOUT
    cache_path: Optional[str] = None
    is_encrypted: bool = False

    @property
    def is_configured(self) -> bool:
        return bool(self.access_key_id and self.secret_access_key)

    @property
    def credential(self) -> SigningCredential:
        return SigningCredential(
            access_key_id=self.access_key_id,
            secret_access_key=self.secret_access_key,
            region=self.region,
        )

    def to_dict(self, encrypt: bool = True) -> Dict[str, Any]:
        """Convert config to dictionary, optionally encrypting credentials."""
        from shared.crypto import CredentialManager

        data = asdict(self)
        data['provider'] = self.provider.value

        if encrypt and not self.is_encrypted:
            data['access_key_id'] = CredentialManager.encrypt(self.access_key_id)
            data['secret_access_key'] = CredentialManager.encrypt(self.secret_access_key)
            data['is_encrypted'] = True

        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StoreConfig':
        """Create StoreConfig from dictionary, decrypting if necessary."""
        from shared.crypto import CredentialManager

        field_names = {f.name for f in dataclasses.fields(cls)}
        filtered_data = {k: v for k, v in data.items() if k in field_names}

        filtered_data['provider'] = StorageProvider(filtered_data.get('provider', StorageProvider.WASABI.value))

        if filtered_data.get('is_encrypted', False):
            dec_id = CredentialManager.decrypt(filtered_data.get('access_key_id', ''))
            dec_key = CredentialManager.decrypt(filtered_data.get('secret_access_key', ''))

            # On another machine decryption fails; keep the ciphertext so
            # the store rejects it.
            if dec_id is not None and dec_key is not None:
                filtered_data['access_key_id'] = dec_id
                filtered_data['secret_access_key'] = dec_key
                filtered_data['is_encrypted'] = False

        return cls(**filtered_data)

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> 'StoreConfig':
        """Deserialize from JSON."""
        return cls.from_dict(json.loads(json_str))
