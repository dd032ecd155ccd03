"""
Object key policy.

Keys look like ``<folder>/<timestamp_ms>-<random>-<sanitized name>``, for
example ``productions/spring-campaign/1716508800000-k3f9xq-Final_Cut.mov``.
"""

import random
import re
import string
import threading
import time
from typing import Optional, Tuple

from shared.categories import detect_file_category
from shared.constants import CATEGORY_FOLDERS, FOLDERS

_BASE36 = string.digits + string.ascii_lowercase
_UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9.-]')
_WHITESPACE = re.compile(r'\s+')
_UPLOAD_PREFIX = re.compile(r'^\d{13,}-[0-9a-z]{6}-')

_last_timestamp_ms = 0
_timestamp_lock = threading.Lock()


def sanitize_file_name(file_name: str) -> str:
    """Replace anything outside [A-Za-z0-9.-] with '_'."""
    return _UNSAFE_CHARS.sub('_', file_name)


def slugify(name: str) -> str:
    """'Spring Campaign' -> 'spring-campaign'."""
    return _WHITESPACE.sub('-', name.strip().lower()).replace('/', '-')


def _next_timestamp_ms() -> int:
    """Milliseconds since the epoch, strictly increasing within the process."""
    global _last_timestamp_ms
    with _timestamp_lock:
        now = int(time.time() * 1000)
        if now <= _last_timestamp_ms:
            now = _last_timestamp_ms + 1
        _last_timestamp_ms = now
        return now


def _random_token(length: int = 6) -> str:
    return ''.join(random.choices(_BASE36, k=length))


def key_folder(file_name: str, content_type: str = '', folder: Optional[str] = None,
               project_name: Optional[str] = None, client_name: Optional[str] = None) -> str:
    """Folder an upload lands in: explicit folder, then project, then client, then category."""
    override = folder.strip('/') if folder else ''
    if override:
        return override
    if project_name:
        return f"{FOLDERS['productions']}/{slugify(project_name)}"
    if client_name:
        return f"{FOLDERS['clients']}/{slugify(client_name)}"
    category, _ = detect_file_category(file_name, content_type)
    return CATEGORY_FOLDERS.get(category, FOLDERS['misc'])


def generate_object_key(file_name: str, content_type: str = '', folder: Optional[str] = None,
                        project_name: Optional[str] = None, client_name: Optional[str] = None) -> str:
    """
    Build a unique object key for a new upload.

    Args:
        file_name: Original file name
        content_type: MIME type, used for category routing
        folder: Explicit folder, overrides all routing
        project_name: Routes to ``productions/<slug>``
        client_name: Routes to ``clients/<slug>``

    Returns:
        Object key; keys from one process never collide and sort by upload time
    """
    base = key_folder(file_name, content_type, folder, project_name, client_name)
    return f"{base}/{_next_timestamp_ms()}-{_random_token()}-{sanitize_file_name(file_name)}"


def original_file_name(key: str) -> str:
    """
    File name of a key with the upload prefix removed.

    ``music/1716508800000-k3f9xq-Theme.wav`` -> ``Theme.wav``; keys not
    written by generate_object_key return their last segment unchanged.
    """
    base = key.rsplit('/', 1)[-1]
    return _UPLOAD_PREFIX.sub('', base, count=1) or base


def folder_context(key: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Recover (project_slug, client_slug) from a key's leading folders.

    ``productions/spring-campaign/...`` -> ('spring-campaign', None)
    """
    parts = key.split('/')
    if len(parts) >= 3 and parts[0] == FOLDERS['productions']:
        return parts[1], None
    if len(parts) >= 3 and parts[0] == FOLDERS['clients']:
        return None, parts[1]
    return None, None
