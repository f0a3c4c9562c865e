"""
Blob storage for uploaded PDFs.

Two backends share one interface:
- LocalStorageService: files under a directory, for development and tests
- SupabaseStorageService: Supabase Storage REST API with the service-role key
"""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from pathlib import Path

import httpx

from ..config import get_settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a storage operation fails."""

    pass


def build_storage_path(user_id: uuid.UUID | str, filename: str) -> str:
    """Per-user key: ``{user_id}/{epoch_ms}.{ext}``."""
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else "pdf"
    return f"{user_id}/{int(time.time() * 1000)}.{extension}"


class StorageService(ABC):
    """Interface for blob storage backends."""

    @abstractmethod
    async def upload(self, path: str, content: bytes, content_type: str) -> str:
        """Store content under path and return the path."""

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Return the stored bytes."""

    @abstractmethod
    async def remove(self, paths: list[str]) -> None:
        """Delete the given objects. Missing objects are ignored."""


class LocalStorageService(StorageService):
    """Stores blobs on the local filesystem."""

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if not target.is_relative_to(self.root):
            raise StorageError(f"Invalid storage path: {path}")
        return target

    async def upload(self, path: str, content: bytes, content_type: str) -> str:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as e:
            logger.error("Failed to write %s: %s", target, e)
            raise StorageError(f"Storage upload error: {e}") from e
        logger.info("Stored %d bytes at %s", len(content), path)
        return path

    async def download(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError as e:
            raise StorageError(f"Failed to download file from storage: {path} not found") from e
        except OSError as e:
            raise StorageError(f"Failed to download file from storage: {e}") from e

    async def remove(self, paths: list[str]) -> None:
        for path in paths:
            target = self._resolve(path)
            try:
                target.unlink(missing_ok=True)
            except OSError as e:
                logger.error("Failed to remove %s: %s", target, e)
                raise StorageError(f"Storage remove error: {e}") from e


class SupabaseStorageService(StorageService):
    """Supabase Storage over its REST API."""

    def __init__(
        self,
        url: str,
        service_role_key: str,
        bucket: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_api_url = f"{url.rstrip('/')}/storage/v1"
        self.bucket = bucket
        self.timeout = timeout
        self.transport = transport
        self.headers = {
            "Authorization": f"Bearer {service_role_key}",
            "apikey": service_role_key,
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=self.headers, timeout=self.timeout, transport=self.transport
        )

    async def upload(self, path: str, content: bytes, content_type: str) -> str:
        upload_url = f"{self.base_api_url}/object/{self.bucket}/{path}"
        try:
            async with self._client() as client:
                response = await client.post(
                    upload_url,
                    headers={"Content-Type": content_type, "x-upsert": "false"},
                    content=content,
                )
        except httpx.HTTPError as e:
            logger.error("Error uploading file to Supabase: %s", e)
            raise StorageError(f"Storage upload error: {e}") from e

        if response.status_code != 200:
            logger.error(
                "Failed to upload %s to bucket %s (status %d): %s",
                path,
                self.bucket,
                response.status_code,
                response.text,
            )
            raise StorageError(f"Upload failed: {response.text}")
        return path

    async def download(self, path: str) -> bytes:
        download_url = f"{self.base_api_url}/object/{self.bucket}/{path}"
        try:
            async with self._client() as client:
                response = await client.get(download_url)
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to download file from storage: {e}") from e

        if response.status_code != 200:
            raise StorageError(
                f"Failed to download file from storage: {response.status_code} {response.text}"
            )
        return response.content

    async def remove(self, paths: list[str]) -> None:
        if not paths:
            return
        delete_url = f"{self.base_api_url}/object/{self.bucket}"
        try:
            async with self._client() as client:
                response = await client.request("DELETE", delete_url, json={"prefixes": paths})
        except httpx.HTTPError as e:
            raise StorageError(f"Storage delete error: {e}") from e

        if response.status_code not in (200, 204):
            raise StorageError(f"Delete failed: {response.text}")


# Singleton instance for convenience
_storage_service: StorageService | None = None


def get_storage_service() -> StorageService:
    """Get or create the storage backend selected in settings."""
    global _storage_service
    if _storage_service is None:
        settings = get_settings()
        if settings.storage_backend == "supabase":
            if not settings.supabase_url or not settings.supabase_service_role_key:
                raise StorageError(
                    "Supabase storage selected but SUPABASE_URL / "
                    "SUPABASE_SERVICE_ROLE_KEY are not set"
                )
            _storage_service = SupabaseStorageService(
                settings.supabase_url,
                settings.supabase_service_role_key,
                settings.storage_bucket,
                timeout=settings.http_timeout,
            )
        else:
            _storage_service = LocalStorageService(settings.local_storage_dir)
        logger.info("Using %s storage backend", settings.storage_backend)
    return _storage_service
