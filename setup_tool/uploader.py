"""
Upload engine for moving media files into the object store.
"""

import logging
import mimetypes
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional

from shared.categories import detect_file_category, display_name, file_extension, generate_smart_tags
from shared.constants import DEFAULT_CONTENT_TYPE, DEFAULT_UPLOAD_CONCURRENCY, MAX_UPLOAD_CONCURRENCY
from shared.models import AssetRecord, dedupe, utc_now_iso
from shared.results import Outcome, UploadResult
from .keys import generate_object_key
from .storage_provider import ObjectStorageProvider

if TYPE_CHECKING:
    from library.cache import LocalAssetCache

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[UploadResult], None]


@dataclass
class UploadRequest:
    """One file to upload, with the attribution recorded on its asset."""
    file_name: str
    data: bytes
    content_type: str = ""
    project_name: Optional[str] = None
    client_name: Optional[str] = None
    folder: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    uploaded_by: str = "system"
    uploaded_by_name: str = ""

    @classmethod
    def from_path(cls, path: Path, **options) -> 'UploadRequest':
        content_type, _ = mimetypes.guess_type(path.name)
        return cls(
            file_name=path.name,
            data=path.read_bytes(),
            content_type=content_type or DEFAULT_CONTENT_TYPE,
            **options,
        )


def scan_directory(path: str) -> List[Path]:
    """
    Recursively collect the files under ``path``.

    Hidden files and folder markers are skipped. A file path returns itself.
    """
    path_obj = Path(path).expanduser().resolve()
    if not path_obj.exists():
        return []
    if path_obj.is_file():
        return [path_obj]

    files = []
    for root, dirs, filenames in os.walk(str(path_obj)):
        dirs[:] = [d for d in dirs if not d.startswith('.')]
        for filename in sorted(filenames):
            if not filename.startswith('.'):
                files.append(Path(root) / filename)
    return sorted(files)


class UploadEngine:
    """Uploads files in bounded batches and records each one in the cache."""

    def __init__(self, provider: ObjectStorageProvider, cache: "LocalAssetCache",
                 concurrency: int = DEFAULT_UPLOAD_CONCURRENCY, region: str = ""):
        self.storage = provider
        self.cache = cache
        self.concurrency = max(1, min(concurrency, MAX_UPLOAD_CONCURRENCY))
        self.region = region

    def _build_asset(self, request: UploadRequest, key: str) -> AssetRecord:
        category, subcategory = detect_file_category(request.file_name, request.content_type)
        smart_tags = generate_smart_tags(request.file_name, category)
        now = utc_now_iso()

        return AssetRecord(
            id=AssetRecord.generate_id(),
            key=key,
            name=display_name(request.file_name),
            file_name=request.file_name,
            file_type=file_extension(request.file_name),
            file_size=len(request.data),
            category=category,
            subcategory=subcategory,
            url=self.storage.get_object_url(key),
            project_name=request.project_name,
            client_name=request.client_name,
            tags=dedupe(smart_tags + list(request.tags)),
            ai_tags=smart_tags,
            metadata={
                'bucket': self.storage.bucket_name,
                'region': self.region,
                'original_name': request.file_name,
                'content_type': request.content_type or DEFAULT_CONTENT_TYPE,
            },
            uploaded_by=request.uploaded_by,
            uploaded_by_name=request.uploaded_by_name,
            created_at=now,
            updated_at=now,
        )

    def _upload_one(self, request: UploadRequest) -> AssetRecord:
        """Store one file remotely; runs on a worker thread."""
        key = generate_object_key(
            request.file_name,
            request.content_type,
            folder=request.folder,
            project_name=request.project_name,
            client_name=request.client_name,
        )
        self.storage.put_object(key, request.data, request.content_type or DEFAULT_CONTENT_TYPE)
        logger.info("Uploaded %s -> %s (%d bytes)", request.file_name, key, len(request.data))
        return self._build_asset(request, key)

    def _record(self, request: UploadRequest, asset: AssetRecord) -> UploadResult:
        """Commit an uploaded asset to the cache on the caller thread."""
        try:
            stored = self.cache.upsert(asset)
        except Exception as e:
            logger.error("Uploaded %s as %s but could not cache it: %s", request.file_name, asset.key, e)
            return UploadResult(request.file_name, Outcome.FAILED, asset=asset,
                                error=f"stored as {asset.key} but not cached: {e}")
        return UploadResult(request.file_name, Outcome.REMOTE, asset=stored)

    def upload_files(self, uploads: List[UploadRequest], concurrency: Optional[int] = None,
                     progress_callback: Optional[ProgressCallback] = None) -> List[UploadResult]:
        """
        Upload files in batches of ``concurrency``.

        Each batch finishes completely before the next starts, so no more
        than ``concurrency`` uploads are ever in flight. A failed file is
        reported in its result and does not stop the rest.

        Args:
            uploads: Files to upload
            concurrency: Batch size, defaults to the engine setting
            progress_callback: Called with each result as it is recorded

        Returns:
            One result per request, in request order
        """
        batch_size = max(1, min(concurrency or self.concurrency, MAX_UPLOAD_CONCURRENCY))
        results: List[UploadResult] = []

        with ThreadPoolExecutor(max_workers=batch_size) as executor:
            for start in range(0, len(uploads), batch_size):
                batch = uploads[start:start + batch_size]
                futures = [executor.submit(self._upload_one, r) for r in batch]

                for request, future in zip(batch, futures):
                    try:
                        asset = future.result()
                    except Exception as e:
                        logger.error("Upload of %s failed: %s", request.file_name, e)
                        result = UploadResult(request.file_name, Outcome.FAILED, error=str(e))
                    else:
                        result = self._record(request, asset)

                    results.append(result)
                    if progress_callback:
                        progress_callback(result)

        ok = sum(1 for r in results if r.ok)
        logger.info("Upload finished: %d succeeded, %d failed", ok, len(results) - ok)
        return results

    def upload_paths(self, paths: Iterable[str], concurrency: Optional[int] = None,
                     progress_callback: Optional[ProgressCallback] = None,
                     **options) -> List[UploadResult]:
        """Scan files and directories and upload everything found."""
        files: List[Path] = []
        for path in paths:
            found = scan_directory(path)
            if not found:
                logger.warning("Nothing to upload at %s", path)
            files.extend(found)

        uploads = [UploadRequest.from_path(f, **options) for f in files]
        return self.upload_files(uploads, concurrency, progress_callback)
