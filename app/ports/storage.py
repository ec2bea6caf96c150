"""Storage port: abstract interface for cover image storage."""

from abc import ABC, abstractmethod
from uuid import UUID


class StoragePort(ABC):
    """Abstraction for binary object storage."""

    @abstractmethod
    async def save(self, file_id: UUID, content: bytes, extension: str) -> str:
        """Persist content and return the storage key it was written under."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def url_for(self, key: str) -> str:
        """Public URL clients can fetch the stored object from."""
        ...
