import asyncio
import logging
import shutil
from pathlib import Path
from typing import Protocol

from quotecast.config import Settings

logger = logging.getLogger(__name__)


class StorageService(Protocol):
    def get_public_url(self, storage_key: str) -> str: ...

    async def upload_file(
        self, local_path: str, storage_key: str, content_type: str | None = None
    ) -> str: ...

    async def delete_file(self, storage_key: str) -> bool: ...

    async def file_exists(self, storage_key: str) -> bool: ...


class LocalStorageService:
    """Local file storage for development without GCS."""

    def __init__(self, base_path: str | Path, base_url: str) -> None:
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.base_url = base_url.rstrip("/")

    def _get_full_path(self, storage_key: str) -> Path:
        full_path = (self.base_path / storage_key).resolve()
        if not full_path.is_relative_to(self.base_path.resolve()):
            raise ValueError(f"Storage key escapes storage root: {storage_key}")
        full_path.parent.mkdir(parents=True, exist_ok=True)
        return full_path

    def get_public_url(self, storage_key: str) -> str:
        return f"{self.base_url}/{storage_key}"

    async def upload_file(
        self, local_path: str, storage_key: str, content_type: str | None = None
    ) -> str:
        """Copy a local file into the storage directory."""
        full_path = self._get_full_path(storage_key)
        await asyncio.to_thread(shutil.copyfile, local_path, full_path)
        return self.get_public_url(storage_key)

    async def delete_file(self, storage_key: str) -> bool:
        full_path = self._get_full_path(storage_key)
        if full_path.exists():
            full_path.unlink()
            return True
        return False

    async def file_exists(self, storage_key: str) -> bool:
        return self._get_full_path(storage_key).exists()


class GCSStorageService:
    """Google Cloud Storage service for production.

    The google-cloud-storage client is blocking, so every call runs in a
    worker thread.
    """

    def __init__(self, bucket_name: str, project_id: str = "", client=None) -> None:
        self.bucket_name = bucket_name
        self.project_id = project_id
        self._client = client
        self._bucket = None

    @property
    def client(self):
        if self._client is None:
            from google.cloud import storage

            if self.project_id:
                self._client = storage.Client(project=self.project_id)
            else:
                self._client = storage.Client()
        return self._client

    @property
    def bucket(self):
        if self._bucket is None:
            self._bucket = self.client.bucket(self.bucket_name)
        return self._bucket

    def get_public_url(self, storage_key: str) -> str:
        return f"https://storage.googleapis.com/{self.bucket_name}/{storage_key}"

    async def upload_file(
        self, local_path: str, storage_key: str, content_type: str | None = None
    ) -> str:
        blob = self.bucket.blob(storage_key)
        await asyncio.to_thread(blob.upload_from_filename, local_path, content_type=content_type)
        logger.info(f"[STORAGE] Uploaded gs://{self.bucket_name}/{storage_key}")
        return self.get_public_url(storage_key)

    async def delete_file(self, storage_key: str) -> bool:
        from google.api_core.exceptions import NotFound

        blob = self.bucket.blob(storage_key)
        try:
            await asyncio.to_thread(blob.delete)
            return True
        except NotFound:
            return False

    async def file_exists(self, storage_key: str) -> bool:
        blob = self.bucket.blob(storage_key)
        return await asyncio.to_thread(blob.exists)


def create_storage_service(settings: Settings) -> StorageService | None:
    """Pick the storage backend from settings. None means no durable storage."""
    if settings.use_local_storage:
        return LocalStorageService(settings.local_storage_path, settings.local_storage_base_url)
    if settings.gcs_bucket_name:
        return GCSStorageService(settings.gcs_bucket_name, settings.gcs_project_id)
    return None
