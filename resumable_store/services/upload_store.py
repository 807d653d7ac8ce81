"""Resumable upload store backed by append-capable object storage.

Each upload is kept as two objects: ``<id>.info`` holds the JSON snapshot
written once at creation and ``<id>`` holds the payload, grown by positional
appends. The snapshot is never rewritten, so the upload offset is always
re-measured from the payload object's size when an upload is looked up.

Callers must not run two ``write_chunk`` calls for the same upload at once;
the backend rejects whichever append carries a stale offset, and the store
does no locking or queueing of its own.
"""

from __future__ import annotations

import contextlib
import logging
from typing import BinaryIO, Sequence

from resumable_store.common.context import CallContext
from resumable_store.domain import INFO_SUFFIX
from resumable_store.domain.handler import (
    ConcatableUpload,
    FileInfo,
    LengthDeclarableUpload,
    StoreComposer,
    TerminatableUpload,
    Upload,
)
from resumable_store.infra.observability.metrics import (
    record_appended_bytes,
    record_operation,
)
from resumable_store.infra.storage.client import ObjectNotFoundError, ObjectStorage
from resumable_store.services.base import BaseStore

logger = logging.getLogger("upload")

DEFAULT_STORE_TYPE = "s3store"
DEFAULT_PRESIGN_EXPIRES_SECONDS = 900


def content_disposition_for(metadata: dict[str, str]) -> str:
    return f"attachment; filename={metadata.get('filename', '')}"


class UnsupportedExtensionsMixin:
    """Length deferral, concatenation and finishing, accepted as no-ops.

    The store never registers these extensions with a composer, so a framework
    negotiating capabilities sees them as unsupported; the methods only exist
    so handles satisfy the framework's extended upload contracts.
    """

    def declare_length(self, length: int, *, ctx: CallContext | None = None) -> None:
        logger.debug("declare_length ignored length=%s", length)

    def concat_uploads(
        self, uploads: Sequence[Upload], *, ctx: CallContext | None = None
    ) -> None:
        logger.debug("concat_uploads ignored count=%s", len(uploads))

    def finish_upload(self, *, ctx: CallContext | None = None) -> None:
        return None


class StoredUpload(UnsupportedExtensionsMixin):
    """Live handle on one upload with an optimistically cached offset."""

    def __init__(self, info: FileInfo, store: "UploadStore") -> None:
        self._info = info
        self._store = store

    @property
    def id(self) -> str:
        return self._info.id

    @property
    def offset(self) -> int:
        return self._info.offset

    def get_info(self, *, ctx: CallContext | None = None) -> FileInfo:
        return self._info.model_copy(deep=True)

    def write_chunk(
        self,
        offset: int,
        src: BinaryIO | bytes,
        *,
        ctx: CallContext | None = None,
    ) -> int:
        """Append a chunk at ``offset`` and advance the cached offset.

        Args:
            offset: Position the caller believes is the current upload length.
            src: Chunk bytes or a binary stream.
            ctx: Optional cancellation context.

        Returns:
            Number of bytes appended.

        Raises:
            OffsetConflictError: If ``offset`` is not the stored length. The
                cached offset is left as it was; look the upload up again to
                learn the real one before retrying.
            StorageError: If the append fails.
        """
        store = self._store
        try:
            written = store.storage.append(
                store.data_key(self.id),
                src,
                offset,
                content_disposition=content_disposition_for(self._info.metadata),
                ctx=ctx,
            )
        except Exception:
            store._record("write_chunk", "error")
            logger.warning(
                "write_chunk_failed upload_id=%s offset=%s cached_offset=%s",
                self.id,
                offset,
                self._info.offset,
            )
            raise

        self._info.offset += written
        store._record("write_chunk", "success")
        record_appended_bytes(written, enabled=store.metrics_enabled)
        logger.debug(
            "write_chunk upload_id=%s offset=%s written=%s",
            self.id,
            offset,
            written,
        )
        return written

    def get_reader(self, *, ctx: CallContext | None = None) -> BinaryIO:
        """Open the whole payload; the caller must close the stream."""
        return self._store.storage.read(self._store.data_key(self.id), ctx=ctx)

    def terminate(self, *, ctx: CallContext | None = None) -> None:
        """Delete both objects in one call; on failure the upload stays live."""
        store = self._store
        try:
            store.storage.delete(
                store.info_key(self.id), store.data_key(self.id), ctx=ctx
            )
        except Exception:
            store._record("terminate", "error")
            raise
        store._record("terminate", "success")
        logger.info(
            "upload_terminated upload_id=%s",
            self.id,
            extra={"extra": {"upload_id": self.id, "event": "upload_terminated"}},
        )

    def download_url(
        self, expires_in: int | None = None, *, ctx: CallContext | None = None
    ) -> str:
        """Sign a time-limited GET URL for the payload object."""
        store = self._store
        ttl = store.presign_expires_in if expires_in is None else int(expires_in)
        return store.storage.sign_url(store.data_key(self.id), ttl, ctx=ctx)


class UploadStore(BaseStore):
    """Maps resumable uploads onto an append-capable object storage backend."""

    def __init__(
        self,
        storage: ObjectStorage,
        *,
        id_attribute: str = "filehash",
        store_type: str = DEFAULT_STORE_TYPE,
        bucket: str | None = None,
        presign_expires_in: int = DEFAULT_PRESIGN_EXPIRES_SECONDS,
        metrics_enabled: bool = True,
    ) -> None:
        super().__init__(storage, id_attribute=id_attribute)
        self._store_type = store_type
        self._bucket = bucket
        self.presign_expires_in = presign_expires_in
        self.metrics_enabled = metrics_enabled

    def use_in(self, composer: StoreComposer) -> None:
        """Register as core store and terminater.

        Length deferral and concatenation stay unregistered.
        """
        composer.use_core(self)
        composer.use_terminater(self)

    @staticmethod
    def data_key(upload_id: str) -> str:
        return upload_id

    @staticmethod
    def info_key(upload_id: str) -> str:
        return f"{upload_id}{INFO_SUFFIX}"

    def _record(self, operation: str, outcome: str) -> None:
        record_operation(operation, outcome, enabled=self.metrics_enabled)

    def _locator(self, upload_id: str) -> dict[str, str]:
        locator = {"Type": self._store_type, "Key": self.data_key(upload_id)}
        if self._bucket:
            locator["Bucket"] = self._bucket
        return locator

    def new_upload(
        self, info: FileInfo, *, ctx: CallContext | None = None
    ) -> StoredUpload:
        """Create an upload and persist its snapshot.

        Args:
            info: Upload description; its metadata must carry the identity
                attribute.
            ctx: Optional cancellation context.

        Returns:
            A handle at offset 0.

        Raises:
            MissingIdentityError: If the identity attribute is absent. Nothing
                is written.
            StorageError: If the snapshot write fails.
        """
        upload_id = self._ensure_identity(info.metadata)

        created = info.model_copy(deep=True)
        created.id = upload_id
        created.offset = 0
        created.storage = self._locator(upload_id)

        try:
            self.storage.write(
                self.info_key(upload_id),
                created.snapshot(),
                content_type="application/json",
                ctx=ctx,
            )
        except Exception:
            self._record("new_upload", "error")
            raise

        self._record("new_upload", "success")
        logger.info(
            "upload_created upload_id=%s size=%s deferred=%s",
            upload_id,
            created.size,
            created.size_is_deferred,
            extra={"extra": {"upload_id": upload_id, "event": "upload_created"}},
        )
        return StoredUpload(created, self)

    def get_upload(
        self, upload_id: str, *, ctx: CallContext | None = None
    ) -> StoredUpload:
        """Load an upload's snapshot and re-measure its offset.

        Raises:
            ObjectNotFoundError: If no snapshot exists for ``upload_id``.
            StorageError: If reading the snapshot or measuring the payload fails.
            ValueError: If the snapshot is not a valid ``FileInfo`` document or
                records a different upload ID.
        """
        try:
            stream = self.storage.read(self.info_key(upload_id), ctx=ctx)
            with contextlib.closing(stream):
                raw = stream.read()

            info = FileInfo.model_validate_json(raw)
            if info.id and info.id != upload_id:
                raise ValueError(
                    f"Snapshot {self.info_key(upload_id)} records upload ID {info.id!r}"
                )
            info.id = upload_id
            info.offset = self.measured_offset(upload_id, ctx=ctx)
        except Exception:
            self._record("get_upload", "error")
            raise

        self._record("get_upload", "success")
        return StoredUpload(info, self)

    def measured_offset(
        self, upload_id: str, *, ctx: CallContext | None = None
    ) -> int:
        """Return the payload size, or 0 when nothing was appended yet."""
        try:
            return self.storage.size(self.data_key(upload_id), ctx=ctx)
        except ObjectNotFoundError:
            return 0

    def as_terminatable_upload(self, upload: Upload) -> TerminatableUpload:
        return self._as_stored(upload)

    def as_length_declarable_upload(self, upload: Upload) -> LengthDeclarableUpload:
        return self._as_stored(upload)

    def as_concatable_upload(self, upload: Upload) -> ConcatableUpload:
        return self._as_stored(upload)

    @staticmethod
    def _as_stored(upload: Upload) -> StoredUpload:
        if not isinstance(upload, StoredUpload):
            raise TypeError(f"upload {upload!r} was not created by UploadStore")
        return upload
