"""S3-compatible storage client implementation.

This module provides the append-capable object storage backend used by the
upload store. Appends rely on ``PutObject`` with ``WriteOffsetBytes``, which
S3 directory buckets and several S3-compatible services support; the service
rejects a mismatched offset, so the backend stays the single source of truth
for how many bytes have landed.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, BinaryIO

from resumable_store.common.context import CallContext, ensure_active
from resumable_store.infra.observability.metrics import observe_storage_call
from resumable_store.infra.storage.client import (
    ObjectNotFoundError,
    OffsetConflictError,
    PartialDeleteError,
    Payload,
    StorageError,
    read_payload,
)

if TYPE_CHECKING:
    from resumable_store.common.config import Settings

logger = logging.getLogger("storage")

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "NotFound", "404"})
_OFFSET_CONFLICT_CODES = frozenset(
    {"InvalidWriteOffset", "PositionNotEqualToLength", "InvalidOffset"}
)
_BUCKET_MISSING_CODES = frozenset({"NoSuchBucket", "NotFound", "404"})


def _error_code(exc: Exception) -> str:
    response = getattr(exc, "response", None)
    if not isinstance(response, dict):
        return ""
    return str(response.get("Error", {}).get("Code", ""))


class S3StorageClient:
    """S3-compatible object storage client bound to one bucket.

    Keys passed to the port are joined onto ``S3_PREFIX`` before reaching S3.
    Uses boto3 for all storage operations.
    """

    def __init__(
        self,
        *,
        settings: "Settings",
        bucket: str | None = None,
    ) -> None:
        """Initialize the S3 client with configuration from settings.

        Args:
            settings: Application settings containing S3 configuration.
            bucket: Overrides ``settings.S3_BUCKET`` when given.

        Raises:
            StorageError: If boto3 is not installed or no bucket is configured.
        """
        self._settings = settings
        self._bucket = bucket or settings.S3_BUCKET
        if not self._bucket:
            raise StorageError("S3 bucket name is required")
        prefix = (settings.S3_PREFIX or "").lstrip("/")
        if prefix and not prefix.endswith("/"):
            prefix = f"{prefix}/"
        self._prefix = prefix
        self._metrics = bool(settings.ENABLE_METRICS)
        self._client = self._build_client(settings)

    @staticmethod
    def _build_client(settings: "Settings") -> Any:
        """Create a boto3 S3 client from settings."""
        try:
            import boto3
            from botocore.config import Config
        except ImportError as exc:
            raise StorageError(
                "boto3 and botocore are required for S3 storage backend. "
                "Install with: pip install boto3"
            ) from exc

        addressing_style = (settings.S3_ADDRESSING_STYLE or "path").strip().lower()
        config = Config(s3={"addressing_style": addressing_style})

        return boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            region_name=settings.S3_REGION,
            aws_access_key_id=settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY,
            use_ssl=bool(settings.S3_USE_SSL),
            config=config,
        )

    @property
    def bucket(self) -> str:
        return self._bucket

    def object_key(self, key: str) -> str:
        if not key:
            raise StorageError("Object key must not be empty")
        return f"{self._prefix}{key}"

    def ensure_bucket(self) -> None:
        """Create the bucket when it does not exist yet."""
        try:
            self._client.head_bucket(Bucket=self._bucket)
            return
        except Exception as exc:
            if _error_code(exc) not in _BUCKET_MISSING_CODES:
                raise StorageError(f"Failed to check bucket: {exc}") from exc

        logger.info("bucket_missing creating bucket=%s", self._bucket)
        params: dict[str, Any] = {"Bucket": self._bucket}
        region = self._settings.S3_REGION
        if region and region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": region}
        try:
            self._client.create_bucket(**params)
        except Exception as exc:
            raise StorageError(f"Failed to create bucket: {exc}") from exc

    def read(self, key: str, *, ctx: CallContext | None = None) -> BinaryIO:
        """Open the object body as a stream."""
        ensure_active(ctx, "read")
        with observe_storage_call("read", enabled=self._metrics):
            try:
                response = self._client.get_object(
                    Bucket=self._bucket, Key=self.object_key(key)
                )
            except Exception as exc:
                if _error_code(exc) in _NOT_FOUND_CODES:
                    raise ObjectNotFoundError(key) from exc
                raise StorageError(f"Failed to read object: {exc}") from exc

        body = response.get("Body")
        if body is None:
            raise StorageError("S3 response missing Body")
        return body

    def size(self, key: str, *, ctx: CallContext | None = None) -> int:
        """Get the object length without downloading the content."""
        ensure_active(ctx, "size")
        with observe_storage_call("size", enabled=self._metrics):
            try:
                response = self._client.head_object(
                    Bucket=self._bucket, Key=self.object_key(key)
                )
            except Exception as exc:
                if _error_code(exc) in _NOT_FOUND_CODES:
                    raise ObjectNotFoundError(key) from exc
                raise StorageError(f"Failed to get object metadata: {exc}") from exc

        length = response.get("ContentLength")
        if length is None:
            raise StorageError("S3 response missing ContentLength")
        return int(length)

    def delete(self, *keys: str, ctx: CallContext | None = None) -> None:
        """Delete several objects with one DeleteObjects request."""
        if not keys:
            return
        ensure_active(ctx, "delete")
        lookup = {self.object_key(key): key for key in keys}
        payload = {
            "Objects": [{"Key": object_key} for object_key in lookup],
            "Quiet": True,
        }
        with observe_storage_call("delete", enabled=self._metrics):
            try:
                response = self._client.delete_objects(
                    Bucket=self._bucket, Delete=payload
                )
            except Exception as exc:
                raise StorageError(f"Failed to delete objects: {exc}") from exc

        errors = response.get("Errors") or []
        if errors:
            failed = [lookup.get(err.get("Key"), str(err.get("Key"))) for err in errors]
            logger.warning(
                "delete_partial_failure bucket=%s failed=%s",
                self._bucket,
                failed,
            )
            raise PartialDeleteError(failed)

    def write(
        self,
        key: str,
        data: Payload,
        *,
        content_type: str | None = None,
        content_disposition: str | None = None,
        ctx: CallContext | None = None,
    ) -> None:
        """Create or overwrite an object."""
        ensure_active(ctx, "write")
        params: dict[str, Any] = {
            "Bucket": self._bucket,
            "Key": self.object_key(key),
            "Body": read_payload(data),
        }
        if content_type:
            params["ContentType"] = content_type
        if content_disposition:
            params["ContentDisposition"] = content_disposition

        with observe_storage_call("write", enabled=self._metrics):
            try:
                self._client.put_object(**params)
            except Exception as exc:
                raise StorageError(f"Failed to write object: {exc}") from exc

    def append(
        self,
        key: str,
        data: Payload,
        offset: int,
        *,
        content_disposition: str | None = None,
        ctx: CallContext | None = None,
    ) -> int:
        """Append bytes at ``offset`` using a position-checked PutObject."""
        if offset < 0:
            raise OffsetConflictError(key, offset, "Append offset must not be negative")
        ensure_active(ctx, "append")
        body = read_payload(data)
        params: dict[str, Any] = {
            "Bucket": self._bucket,
            "Key": self.object_key(key),
            "Body": body,
            "WriteOffsetBytes": int(offset),
        }
        if content_disposition:
            params["ContentDisposition"] = content_disposition

        with observe_storage_call("append", enabled=self._metrics):
            try:
                self._client.put_object(**params)
            except Exception as exc:
                code = _error_code(exc)
                if code in _OFFSET_CONFLICT_CODES:
                    raise OffsetConflictError(key, offset) from exc
                if code in _NOT_FOUND_CODES and offset > 0:
                    # Nothing stored yet, so only offset 0 can be valid
                    raise OffsetConflictError(key, offset) from exc
                raise StorageError(f"Failed to append object: {exc}") from exc

        return len(body)

    def sign_url(
        self, key: str, expires_in: int, *, ctx: CallContext | None = None
    ) -> str:
        """Generate a presigned URL for downloading an object."""
        ensure_active(ctx, "sign_url")
        try:
            url = self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self._bucket, "Key": self.object_key(key)},
                ExpiresIn=int(expires_in),
            )
        except Exception as exc:
            raise StorageError(f"Failed to generate download URL: {exc}") from exc

        if not url:
            raise StorageError("Generated presigned URL is empty")

        return str(url)
