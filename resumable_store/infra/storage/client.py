"""Object storage port and error taxonomy.

This module defines the abstract interface the upload store drives. Every
operation maps to one backend-native call: sizes come from object metadata and
appends assert the expected write position, so callers never re-read payload
bytes to validate a chunk boundary.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, BinaryIO, Protocol, Union

if TYPE_CHECKING:
    from resumable_store.common.context import CallContext

Payload = Union[bytes, bytearray, memoryview, BinaryIO]


class StorageError(RuntimeError):
    """Raised when object storage operations fail."""


class ObjectNotFoundError(StorageError):
    """Raised when the addressed object does not exist."""

    def __init__(self, key: str, message: str | None = None) -> None:
        super().__init__(message or f"Object not found: {key}")
        self.key = key


class OffsetConflictError(StorageError):
    """Raised when an append's expected position disagrees with the stored length."""

    def __init__(self, key: str, expected: int, message: str | None = None) -> None:
        super().__init__(
            message or f"Append offset {expected} does not match length of {key}"
        )
        self.key = key
        self.expected = expected


class PartialDeleteError(StorageError):
    """Raised when a multi-key delete reports failures for some keys."""

    def __init__(self, failed_keys: list[str]) -> None:
        super().__init__(f"Failed to delete objects: {', '.join(failed_keys)}")
        self.failed_keys = failed_keys


class ObjectStorage(Protocol):
    """Protocol defining the interface for append-capable object storage backends.

    Keys are plain strings; backends are bound to a single bucket or namespace.
    """

    def read(self, key: str, *, ctx: "CallContext | None" = None) -> BinaryIO:
        """Open the object for reading from offset 0.

        Args:
            key: Object key.
            ctx: Optional cancellation context.

        Returns:
            A readable stream. The caller must close it after use.

        Raises:
            ObjectNotFoundError: If the key does not exist.
            StorageError: If the operation fails.
        """
        ...

    def size(self, key: str, *, ctx: "CallContext | None" = None) -> int:
        """Return the object's current length from backend metadata.

        Raises:
            ObjectNotFoundError: If the key does not exist.
            StorageError: If the operation fails.
        """
        ...

    def delete(self, *keys: str, ctx: "CallContext | None" = None) -> None:
        """Delete one or more objects in a single backend call.

        Raises:
            PartialDeleteError: If the backend reports failures for any key.
            StorageError: If the operation fails.
        """
        ...

    def write(
        self,
        key: str,
        data: Payload,
        *,
        content_type: str | None = None,
        content_disposition: str | None = None,
        ctx: "CallContext | None" = None,
    ) -> None:
        """Create or fully overwrite the object at ``key``.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def append(
        self,
        key: str,
        data: Payload,
        offset: int,
        *,
        content_disposition: str | None = None,
        ctx: "CallContext | None" = None,
    ) -> int:
        """Append ``data`` to the object, asserting its current length is ``offset``.

        An ``offset`` of 0 against a missing object creates it.

        Returns:
            Number of bytes appended; the new length is ``offset`` plus this.

        Raises:
            OffsetConflictError: If ``offset`` is not the stored length.
            StorageError: If the operation fails.
        """
        ...

    def sign_url(
        self, key: str, expires_in: int, *, ctx: "CallContext | None" = None
    ) -> str:
        """Generate a time-limited GET URL for the object.

        Raises:
            StorageError: If URL generation fails.
        """
        ...


def read_payload(data: Payload) -> bytes:
    """Materialise a payload into bytes for backends that need a known length."""
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    chunk = data.read()
    if isinstance(chunk, str):
        raise TypeError("payload streams must be opened in binary mode")
    return bytes(chunk or b"")
