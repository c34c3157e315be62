"""Object storage interface."""

from abc import ABC, abstractmethod


class ObjectStorage(ABC):
    """Read-only view of the blob store holding uploaded files.

    Implementations raise ``RetrievalFailure`` when an object cannot be read.
    """

    @abstractmethod
    def get_size(self, storage_key: str) -> int:
        """Return the object's size in bytes."""

    @abstractmethod
    def read(self, storage_key: str) -> bytes:
        """Download the whole object."""


__all__ = ["ObjectStorage"]
