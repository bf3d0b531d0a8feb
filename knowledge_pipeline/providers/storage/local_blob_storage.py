"""Local filesystem blob storage.

Objects live under ``root`` at the caller-supplied relative path.  File I/O
runs in a worker thread so the event loop is never blocked on disk.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from knowledge_pipeline.interfaces.blob_storage_provider import IBlobStorageProvider
from knowledge_pipeline.utils.errors import ExternalServiceError, NotFoundError, ValidationError

logger = structlog.get_logger(logger_name=__name__)


class LocalBlobStorageProvider(IBlobStorageProvider):
    """Blob storage rooted at a local directory."""

    def __init__(self, root: str = "data/blobs") -> None:
        self._root = Path(root).resolve()

    async def upload(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        try:
            await asyncio.to_thread(self._write, target, data)
        except OSError as exc:
            raise ExternalServiceError(
                message=f"Failed to write {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug("blob_uploaded", path=path, size=len(data))
        return path

    async def download(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError as exc:
            raise NotFoundError(
                message=f"No blob stored at {path}",
                provider_name=self.get_provider_name(),
            ) from exc
        except OSError as exc:
            raise ExternalServiceError(
                message=f"Failed to read {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def delete(self, path: str) -> None:
        target = self._resolve(path)
        await asyncio.to_thread(target.unlink, missing_ok=True)

    def get_provider_name(self) -> str:
        return "local"

    def _resolve(self, path: str) -> Path:
        target = (self._root / path).resolve()
        if not target.is_relative_to(self._root):
            raise ValidationError(message=f"Blob path escapes storage root: {path}")
        return target

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
