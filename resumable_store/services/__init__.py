from .base import (
    BaseStore,
    MissingIdentityError,
    ServiceError,
    StorageBackendNotConfiguredError,
)
from .factory import bootstrap, build_storage_client, build_upload_store
from .upload_store import (
    StoredUpload,
    UnsupportedExtensionsMixin,
    UploadStore,
    content_disposition_for,
)

__all__ = [
    "BaseStore",
    "MissingIdentityError",
    "ServiceError",
    "StorageBackendNotConfiguredError",
    "StoredUpload",
    "UnsupportedExtensionsMixin",
    "UploadStore",
    "bootstrap",
    "build_storage_client",
    "build_upload_store",
    "content_disposition_for",
]
