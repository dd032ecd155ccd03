"""
Shared constants used across the platform.
"""

# Asset cache
CACHE_STORAGE_KEY = "mediavault_assets"
CACHE_SCHEMA_VERSION = 2
CACHE_DB_FILENAME = "assets.db"

# Bucket folder layout
FOLDERS = {
    "productions": "productions",
    "clients": "clients",
    "music": "music",
    "raw_footage": "raw-footage",
    "exports": "exports",
    "graphics": "graphics",
    "documents": "documents",
    "projects": "projects",
    "archive": "archive",
    "misc": "misc",
}

# Default folder per category when no project/client/folder is given
CATEGORY_FOLDERS = {
    "video": FOLDERS["raw_footage"],
    "image": FOLDERS["graphics"],
    "audio": FOLDERS["music"],
    "document": FOLDERS["documents"],
    "project": FOLDERS["projects"],
}

# Keys ignored during reconciliation (folder markers)
PLACEHOLDER_SUFFIXES = ("/", ".keep")

# Upload settings
DEFAULT_UPLOAD_CONCURRENCY = 3
MAX_UPLOAD_CONCURRENCY = 8
DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Listing
DEFAULT_MAX_KEYS = 1000

# Reconciliation placeholders for objects first seen remotely
SYNC_UPLOADER_ID = "system"
SYNC_UPLOADER_NAME = "Sync"

# Signing
SIGNING_ALGORITHM = "AWS4-HMAC-SHA256"
SIGNING_SERVICE = "s3"
SIGNING_TERMINATOR = "aws4_request"
DEFAULT_REGION = "us-east-1"
DEFAULT_BUCKET = "eleven-views-media"

# S3 Provider endpoints
WASABI_ENDPOINT_TEMPLATE = "https://s3.{region}.wasabisys.com"
CLOUDFLARE_R2_ENDPOINT_TEMPLATE = "https://{account_id}.r2.cloudflarestorage.com"
BACKBLAZE_B2_ENDPOINT_TEMPLATE = "https://s3.{region}.backblazeb2.com"
AWS_S3_ENDPOINT_TEMPLATE = "https://s3.{region}.amazonaws.com"

# Configuration paths
DEFAULT_CONFIG_DIR = "~/.config/mediavault"
DEFAULT_DATA_DIR = "~/.local/share/mediavault"
CONFIG_FILENAME = "config.json"

# Environment variables (read when no config file exists)
ENV_PREFIX = "MEDIAVAULT_"

# Network Settings
DEFAULT_NETWORK_TIMEOUT = 30  # seconds
