"""Media storage: uploads that the render provider can fetch, and ranged fetches."""

import logging
import time
import uuid
from functools import lru_cache
from pathlib import Path

import httpx

from storycut.config import get_settings
from storycut.exceptions import StorageError, TransportError

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".webm": "video/webm",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
}


def guess_content_type(filename: str) -> str:
    return CONTENT_TYPES.get(Path(filename).suffix.lower(), "application/octet-stream")


def _storage_key(filename: str) -> str:
    safe_name = "".join(c if c.isalnum() or c in "._-" else "_" for c in Path(filename).name)
    return f"uploads/{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{safe_name or 'media.bin'}"


class LocalStorageService:
    """Local file storage for development without GCS."""

    def __init__(self, base_path: str | None = None, public_base_url: str | None = None) -> None:
        settings = get_settings()
        self.base_path = Path(base_path or settings.local_storage_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")

    def _get_full_path(self, storage_key: str) -> Path:
        full_path = self.base_path / storage_key
        full_path.parent.mkdir(parents=True, exist_ok=True)
        return full_path

    def get_public_url(self, storage_key: str) -> str:
        return f"{self.public_base_url}/api/storage/files/{storage_key}"

    def upload(self, data: bytes, content_type: str, filename: str = "media.bin") -> str:
        """Store bytes and return their public URL."""
        storage_key = _storage_key(filename)
        self._get_full_path(storage_key).write_bytes(data)
        logger.info(f"Stored {filename} ({len(data)} bytes, {content_type}) at {storage_key}")
        return self.get_public_url(storage_key)

    def get_file_path(self, storage_key: str) -> Path | None:
        """Get the actual file path for serving.

        Returns None when the key points outside the storage root, either
        through an absolute path or ``..`` segments.
        """
        root = self.base_path.resolve()
        full_path = (root / storage_key).resolve()
        if not full_path.is_relative_to(root):
            logger.warning(f"Refusing storage key outside {root}: {storage_key}")
            return None
        return full_path


class GCSStorageService:
    """Google Cloud Storage service for production."""

    def __init__(self, bucket_name: str | None = None, project_id: str | None = None) -> None:
        from google.cloud import storage

        settings = get_settings()
        self._storage = storage
        self.bucket_name = bucket_name or settings.gcs_bucket_name
        self.project_id = project_id if project_id is not None else settings.gcs_project_id
        self._client: storage.Client | None = None
        self._bucket: storage.Bucket | None = None

    @property
    def client(self):
        if self._client is None:
            if self.project_id:
                self._client = self._storage.Client(project=self.project_id)
            else:
                self._client = self._storage.Client()
        return self._client

    @property
    def bucket(self):
        if self._bucket is None:
            self._bucket = self.client.bucket(self.bucket_name)
        return self._bucket

    def get_public_url(self, storage_key: str) -> str:
        return f"https://storage.googleapis.com/{self.bucket_name}/{storage_key}"

    def upload(self, data: bytes, content_type: str, filename: str = "media.bin") -> str:
        """Upload bytes to GCS and return their public URL."""
        storage_key = _storage_key(filename)
        blob = self.bucket.blob(storage_key)
        try:
            blob.upload_from_string(data, content_type=content_type)
        except Exception as e:
            raise StorageError(f"Failed to upload {filename} to gs://{self.bucket_name}: {e}") from e
        return self.get_public_url(storage_key)


StorageService = LocalStorageService | GCSStorageService


@lru_cache
def get_storage_service() -> StorageService:
    settings = get_settings()
    if settings.use_local_storage:
        return LocalStorageService()
    return GCSStorageService()


def fetch_media(
    url: str,
    byte_range: tuple[int, int | None] | None = None,
    timeout_s: float | None = None,
) -> bytes:
    """Fetch media bytes, optionally a ``(start, end)`` inclusive byte range.

    Raises:
        TransportError: on network failure or a non-2xx response.
    """
    headers: dict[str, str] = {}
    if byte_range is not None:
        start, end = byte_range
        headers["Range"] = f"bytes={start}-{'' if end is None else end}"

    timeout = timeout_s or get_settings().media_fetch_timeout_s
    try:
        response = httpx.get(url, headers=headers, timeout=timeout, follow_redirects=True)
    except httpx.TimeoutException as e:
        raise TransportError(f"Timed out fetching {url}", timed_out=True) from e
    except httpx.HTTPError as e:
        raise TransportError(f"Failed to fetch {url}: {e}") from e

    if response.status_code not in (200, 206):
        raise TransportError(f"Upstream error {response.status_code} fetching {url}")
    return response.content
