from __future__ import annotations

import logging

from resumable_store.common.config import Settings, get_settings
from resumable_store.common.logging import setup_logging
from resumable_store.infra.storage.client import ObjectStorage
from resumable_store.infra.storage.s3_client import S3StorageClient
from resumable_store.services.base import StorageBackendNotConfiguredError
from resumable_store.services.upload_store import UploadStore

bootstrap_logger = logging.getLogger("storage.bootstrap")


def build_storage_client(settings: Settings) -> S3StorageClient:
    """Build the appropriate storage client based on configuration."""
    backend = (settings.STORAGE_BACKEND or "").strip().lower()
    if backend != "s3":
        raise StorageBackendNotConfiguredError(
            f"Unsupported storage backend: {backend}. Only 's3' is supported."
        )
    if not settings.S3_BUCKET:
        raise StorageBackendNotConfiguredError("S3_BUCKET is required")
    if not settings.S3_ACCESS_KEY_ID or not settings.S3_SECRET_ACCESS_KEY:
        raise StorageBackendNotConfiguredError(
            "S3_ACCESS_KEY_ID and S3_SECRET_ACCESS_KEY are required"
        )

    client = S3StorageClient(settings=settings)
    if settings.S3_AUTO_CREATE_BUCKET:
        client.ensure_bucket()
    bootstrap_logger.info(
        "storage client ready [event=storage_ready] (backend=%s, bucket=%s, endpoint=%s)",
        backend,
        settings.S3_BUCKET,
        settings.S3_ENDPOINT_URL or "<default>",
    )
    return client


def build_upload_store(
    settings: Settings | None = None,
    *,
    storage: ObjectStorage | None = None,
) -> UploadStore:
    """Create an upload store wired from settings.

    Args:
        settings: Defaults to the process-wide settings.
        storage: Injected backend; skips building an S3 client.
    """
    settings = settings or get_settings()
    if storage is None:
        storage = build_storage_client(settings)
    return UploadStore(
        storage,
        id_attribute=settings.UPLOAD_ID_ATTRIBUTE,
        store_type=settings.STORAGE_TYPE_NAME,
        bucket=settings.S3_BUCKET,
        presign_expires_in=int(settings.STORAGE_PRESIGN_EXPIRES_SECONDS),
        metrics_enabled=bool(settings.ENABLE_METRICS),
    )


def bootstrap(settings: Settings | None = None) -> UploadStore:
    """Configure logging and build the process-wide upload store."""
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)
    return build_upload_store(settings)
