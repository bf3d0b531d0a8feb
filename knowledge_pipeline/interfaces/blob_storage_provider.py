"""Abstract base class for blob storage.

Extraction never receives bytes directly; it downloads them by the path
handle that :meth:`IBlobStorageProvider.upload` returned at submission time.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: LocalBlobStorageProvider
# Located in: knowledge_pipeline/providers/storage/
class IBlobStorageProvider(ABC):
    """Contract for storing and retrieving raw source bytes."""

    @abstractmethod
    async def upload(self, path: str, data: bytes) -> str:
        """Store *data* under *path* and return a stable path handle."""

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Return the bytes stored under *path*.

        Raises
        ------
        knowledge_pipeline.utils.errors.NotFoundError
            If nothing is stored under *path*.
        knowledge_pipeline.utils.errors.ExternalServiceError
            If the storage backend fails.
        """

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Remove *path*.  Missing paths are ignored."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"local"``."""
