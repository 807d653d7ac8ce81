"""Tests for UploadStore."""

from __future__ import annotations

import io
import json

import pytest

from resumable_store.common.context import CallContext, OperationCancelledError
from resumable_store.domain.handler import (
    ConcatableUpload,
    FileInfo,
    LengthDeclarableUpload,
    StoreComposer,
    TerminatableUpload,
)
from resumable_store.infra.storage.client import (
    ObjectNotFoundError,
    OffsetConflictError,
    PartialDeleteError,
    StorageError,
)
from resumable_store.services.base import MissingIdentityError
from resumable_store.services.upload_store import StoredUpload, UploadStore
from tests.infra.mock_storage import MockObjectStorage


@pytest.fixture()
def mock_storage():
    return MockObjectStorage()


@pytest.fixture()
def store(mock_storage):
    return UploadStore(mock_storage, bucket="uploads", metrics_enabled=False)


def _info(**metadata: str) -> FileInfo:
    return FileInfo(size=11, metadata=dict(metadata))


class TestNewUpload:
    def test_derives_keys_from_filehash(self, store, mock_storage):
        upload = store.new_upload(_info(filehash="abc", filename="a.txt"))

        assert upload.id == "abc"
        assert upload.offset == 0
        assert set(mock_storage.objects) == {"abc.info"}
        assert mock_storage.headers["abc.info"]["content_type"] == "application/json"

    def test_persists_snapshot_with_locator(self, store, mock_storage):
        store.new_upload(_info(filehash="abc", filename="a.txt"))

        snapshot = json.loads(bytes(mock_storage.objects["abc.info"]))

        assert snapshot["ID"] == "abc"
        assert snapshot["Size"] == 11
        assert snapshot["Offset"] == 0
        assert snapshot["MetaData"] == {"filehash": "abc", "filename": "a.txt"}
        assert snapshot["Storage"] == {
            "Type": "s3store",
            "Key": "abc",
            "Bucket": "uploads",
        }

    def test_ignores_caller_supplied_offset(self, store):
        info = _info(filehash="abc")
        info.offset = 42

        upload = store.new_upload(info)

        assert upload.offset == 0
        assert info.offset == 42

    def test_missing_identity_writes_nothing(self, store, mock_storage):
        with pytest.raises(MissingIdentityError, match="filehash"):
            store.new_upload(_info(filename="a.txt"))

        assert mock_storage.objects == {}
        assert mock_storage.calls == []

    def test_empty_identity_is_missing(self, store, mock_storage):
        with pytest.raises(MissingIdentityError):
            store.new_upload(_info(filehash=""))

        assert mock_storage.objects == {}

    def test_custom_identity_attribute(self, mock_storage):
        store = UploadStore(mock_storage, id_attribute="sha256", metrics_enabled=False)

        upload = store.new_upload(_info(sha256="deadbeef"))

        assert upload.id == "deadbeef"
        assert "deadbeef.info" in mock_storage.objects

    def test_write_failure_propagates_unchanged(self, store, mock_storage):
        failure = StorageError("boom")
        mock_storage.fail_next["write"] = failure

        with pytest.raises(StorageError) as excinfo:
            store.new_upload(_info(filehash="abc"))

        assert excinfo.value is failure

    def test_same_identity_overwrites_snapshot(self, store, mock_storage):
        store.new_upload(_info(filehash="abc", filename="first.txt"))
        store.new_upload(_info(filehash="abc", filename="second.txt"))

        snapshot = json.loads(bytes(mock_storage.objects["abc.info"]))
        assert snapshot["MetaData"]["filename"] == "second.txt"


class TestGetUpload:
    def test_returns_offset_zero_before_any_append(self, store):
        store.new_upload(_info(filehash="abc", filename="a.txt"))

        upload = store.get_upload("abc")

        info = upload.get_info()
        assert info.offset == 0
        assert info.metadata == {"filehash": "abc", "filename": "a.txt"}

    def test_offset_is_measured_from_payload_size(self, store, mock_storage):
        upload = store.new_upload(_info(filehash="abc"))
        upload.write_chunk(0, b"hello")
        # Snapshot still records the creation-time offset
        assert json.loads(bytes(mock_storage.objects["abc.info"]))["Offset"] == 0

        resumed = store.get_upload("abc")

        assert resumed.offset == 5

    def test_unknown_upload_raises_not_found(self, store):
        with pytest.raises(ObjectNotFoundError):
            store.get_upload("missing")

    def test_closes_snapshot_stream(self, store, mock_storage):
        store.new_upload(_info(filehash="abc"))

        store.get_upload("abc")

        assert mock_storage.opened
        assert all(stream.was_closed for stream in mock_storage.opened)

    def test_size_failure_other_than_missing_propagates(self, store, mock_storage):
        store.new_upload(_info(filehash="abc"))
        mock_storage.fail_next["size"] = StorageError("head failed")

        with pytest.raises(StorageError, match="head failed"):
            store.get_upload("abc")

    def test_corrupt_snapshot_raises_value_error(self, store, mock_storage):
        mock_storage.objects["abc.info"] = bytearray(b"not json")

        with pytest.raises(ValueError):
            store.get_upload("abc")

    @pytest.mark.parametrize(
        "snapshot",
        [b'{"MetaData": ["x"]}', b'{"PartialUploads": 5}', b'{"Storage": "s3"}'],
    )
    def test_wrongly_shaped_snapshot_raises_value_error(
        self, store, mock_storage, snapshot
    ):
        mock_storage.objects["abc.info"] = bytearray(snapshot)

        with pytest.raises(ValueError):
            store.get_upload("abc")

    def test_snapshot_without_id_takes_requested_id(self, store, mock_storage):
        mock_storage.objects["abc.info"] = bytearray(b"{}")

        upload = store.get_upload("abc")

        assert upload.id == "abc"
        assert upload.get_info().id == "abc"

    def test_snapshot_with_other_id_raises_value_error(self, store, mock_storage):
        mock_storage.objects["abc.info"] = bytearray(b'{"ID": "xyz"}')

        with pytest.raises(ValueError, match="xyz"):
            store.get_upload("abc")


class TestWriteChunk:
    def test_appends_and_advances_offset(self, store, mock_storage):
        upload = store.new_upload(_info(filehash="abc"))

        assert upload.write_chunk(0, b"hello") == 5
        assert upload.offset == 5
        assert upload.write_chunk(5, io.BytesIO(b" world")) == 6
        assert upload.offset == 11
        assert bytes(mock_storage.objects["abc"]) == b"hello world"

    def test_offset_conflict_leaves_state_unchanged(self, store, mock_storage):
        upload = store.new_upload(_info(filehash="abc"))
        upload.write_chunk(0, b"hello")

        with pytest.raises(OffsetConflictError):
            upload.write_chunk(3, b"xyz")

        assert upload.offset == 5
        assert bytes(mock_storage.objects["abc"]) == b"hello"

    def test_first_append_must_start_at_zero(self, store, mock_storage):
        upload = store.new_upload(_info(filehash="abc"))

        with pytest.raises(OffsetConflictError):
            upload.write_chunk(4, b"data")

        assert "abc" not in mock_storage.objects
        assert upload.offset == 0

    def test_sets_content_disposition_from_filename(self, store, mock_storage):
        upload = store.new_upload(_info(filehash="abc", filename="report.pdf"))

        upload.write_chunk(0, b"x")

        assert (
            mock_storage.headers["abc"]["content_disposition"]
            == "attachment; filename=report.pdf"
        )

    def test_content_disposition_without_filename(self, store, mock_storage):
        upload = store.new_upload(_info(filehash="abc"))

        upload.write_chunk(0, b"x")

        assert mock_storage.headers["abc"]["content_disposition"] == "attachment; filename="

    def test_transport_error_propagates_unchanged(self, store, mock_storage):
        upload = store.new_upload(_info(filehash="abc"))
        failure = StorageError("connection reset")
        mock_storage.fail_next["append"] = failure

        with pytest.raises(StorageError) as excinfo:
            upload.write_chunk(0, b"hello")

        assert excinfo.value is failure
        assert upload.offset == 0

    def test_stale_handle_learns_offset_by_resuming(self, store):
        first = store.new_upload(_info(filehash="abc"))
        second = store.get_upload("abc")
        first.write_chunk(0, b"hello")

        with pytest.raises(OffsetConflictError):
            second.write_chunk(second.offset, b"again")

        resumed = store.get_upload("abc")
        assert resumed.write_chunk(resumed.offset, b"!") == 1
        assert resumed.offset == 6


class TestGetReader:
    def test_reads_concatenated_payload(self, store):
        upload = store.new_upload(_info(filehash="abc"))
        for offset, chunk in ((0, b"one,"), (4, b"two,"), (8, b"three")):
            upload.write_chunk(offset, chunk)

        reader = upload.get_reader()
        try:
            assert reader.read() == b"one,two,three"
        finally:
            reader.close()

    def test_reader_before_any_append_raises_not_found(self, store):
        upload = store.new_upload(_info(filehash="abc"))

        with pytest.raises(ObjectNotFoundError):
            upload.get_reader()


class TestTerminate:
    def test_deletes_both_objects_in_one_call(self, store, mock_storage):
        upload = store.new_upload(_info(filehash="abc"))
        upload.write_chunk(0, b"hello")

        upload.terminate()

        assert mock_storage.objects == {}
        deletes = [arg for name, arg in mock_storage.calls if name == "delete"]
        assert deletes == [("abc.info", "abc")]

    def test_resume_after_terminate_raises_not_found(self, store):
        upload = store.new_upload(_info(filehash="abc"))
        upload.terminate()

        with pytest.raises(ObjectNotFoundError):
            store.get_upload("abc")

    def test_partial_failure_is_total_failure(self, store, mock_storage):
        upload = store.new_upload(_info(filehash="abc"))
        upload.write_chunk(0, b"hello")
        mock_storage.fail_delete_keys.add("abc.info")

        with pytest.raises(PartialDeleteError) as excinfo:
            upload.terminate()

        assert excinfo.value.failed_keys == ["abc.info"]
        assert store.get_upload("abc").id == "abc"


class TestExtensions:
    def test_noop_extensions_change_nothing(self, store, mock_storage):
        upload = store.new_upload(_info(filehash="abc"))
        upload.write_chunk(0, b"hello")
        calls_before = list(mock_storage.calls)

        upload.declare_length(100)
        upload.concat_uploads([store.new_upload(_info(filehash="def"))])
        upload.finish_upload()

        assert upload.get_info().size == 11
        assert upload.offset == 5
        new_calls = mock_storage.calls[len(calls_before):]
        assert new_calls == [("write", "def.info")]

    def test_use_in_registers_core_and_terminater_only(self, store):
        composer = StoreComposer()

        store.use_in(composer)

        assert composer.core is store
        assert composer.uses_terminater
        assert not composer.uses_length_deferrer
        assert not composer.uses_concater
        assert composer.capabilities() == ["core", "termination"]

    def test_capability_casts_return_handle(self, store):
        upload = store.new_upload(_info(filehash="abc"))

        assert store.as_terminatable_upload(upload) is upload
        assert isinstance(store.as_terminatable_upload(upload), TerminatableUpload)
        assert isinstance(store.as_length_declarable_upload(upload), LengthDeclarableUpload)
        assert isinstance(store.as_concatable_upload(upload), ConcatableUpload)

    def test_capability_cast_rejects_foreign_upload(self, store):
        with pytest.raises(TypeError):
            store.as_terminatable_upload(object())

    def test_download_url_uses_default_ttl(self, mock_storage):
        store = UploadStore(mock_storage, presign_expires_in=120, metrics_enabled=False)
        upload = store.new_upload(_info(filehash="abc"))

        assert upload.download_url() == "https://mock-s3/abc?expires=120"
        assert upload.download_url(30) == "https://mock-s3/abc?expires=30"

    def test_download_url_zero_ttl_is_not_replaced_by_default(self, mock_storage):
        store = UploadStore(mock_storage, presign_expires_in=120, metrics_enabled=False)
        upload = store.new_upload(_info(filehash="abc"))

        with pytest.raises(StorageError):
            upload.download_url(0)


class TestCancellation:
    def test_cancelled_context_blocks_append(self, store, mock_storage):
        upload = store.new_upload(_info(filehash="abc"))
        ctx = CallContext()
        ctx.cancel()

        with pytest.raises(OperationCancelledError):
            upload.write_chunk(0, b"hello", ctx=ctx)

        assert "abc" not in mock_storage.objects
        assert upload.offset == 0

    def test_expired_deadline_blocks_create(self, store, mock_storage):
        ctx = CallContext.with_timeout(0)

        with pytest.raises(OperationCancelledError):
            store.new_upload(_info(filehash="abc"), ctx=ctx)

        assert mock_storage.objects == {}


def test_full_lifecycle_scenario(store, mock_storage):
    upload = store.new_upload(FileInfo(metadata={"filehash": "abc"}))
    assert isinstance(upload, StoredUpload)
    assert store.data_key("abc") == "abc"
    assert store.info_key("abc") == "abc.info"
    assert upload.offset == 0

    assert upload.write_chunk(0, b"hello") == 5
    assert upload.offset == 5
    assert upload.write_chunk(5, b" world") == 6
    assert upload.offset == 11

    reader = upload.get_reader()
    try:
        assert reader.read() == b"hello world"
    finally:
        reader.close()

    assert store.get_upload("abc").offset == 11

    upload.terminate()
    assert "abc" not in mock_storage.objects
    assert "abc.info" not in mock_storage.objects
    with pytest.raises(ObjectNotFoundError):
        store.get_upload("abc")
