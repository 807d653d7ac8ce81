"""Object storage abstraction layer.

This module provides a protocol-based abstraction for append-capable object
storage backends, with an S3-compatible implementation.
"""

from .client import (
    ObjectNotFoundError,
    ObjectStorage,
    OffsetConflictError,
    PartialDeleteError,
    Payload,
    StorageError,
)

__all__ = [
    "ObjectNotFoundError",
    "ObjectStorage",
    "OffsetConflictError",
    "PartialDeleteError",
    "Payload",
    "StorageError",
]
