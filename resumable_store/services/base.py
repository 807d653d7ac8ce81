from __future__ import annotations

from typing import Mapping

from resumable_store.infra.storage.client import ObjectStorage


class ServiceError(Exception):
    """Base class for upload store level exceptions."""


class MissingIdentityError(ServiceError):
    """Raised when an upload is created without its identity attribute."""


class StorageBackendNotConfiguredError(ServiceError):
    """Raised when the storage backend is not properly configured."""


class BaseStore:
    """Provides guard rails and helpers shared by upload stores."""

    def __init__(self, storage: ObjectStorage, *, id_attribute: str = "filehash"):
        self._storage = storage
        self._id_attribute = id_attribute

    @property
    def storage(self) -> ObjectStorage:
        return self._storage

    @property
    def id_attribute(self) -> str:
        return self._id_attribute

    def _ensure_identity(self, metadata: Mapping[str, str] | None) -> str:
        upload_id = (metadata or {}).get(self._id_attribute)
        if not upload_id:
            raise MissingIdentityError(
                f"metadata attribute '{self._id_attribute}' is required to create an upload"
            )
        return upload_id
