"""Contracts between the upload store and the driving upload framework.

The framework owns the resumable protocol state machine and its HTTP surface.
It reaches storage only through the protocols below, and learns which optional
extensions a store supports from the ``StoreComposer`` the store registers
itself in.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, BinaryIO, Protocol, Sequence, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from resumable_store.common.context import CallContext


class FileInfo(BaseModel):
    """Metadata describing one logical upload.

    Serialised under the upload framework's field names (``ID``, ``MetaData``,
    ...). ``offset`` is only trustworthy on handles returned by a store; the
    snapshot persisted at creation time always records 0.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default="", alias="ID")
    size: int = Field(default=0, alias="Size")
    size_is_deferred: bool = Field(default=False, alias="SizeIsDeferred")
    offset: int = Field(default=0, alias="Offset")
    metadata: dict[str, str] = Field(default_factory=dict, alias="MetaData")
    is_partial: bool = Field(default=False, alias="IsPartial")
    is_final: bool = Field(default=False, alias="IsFinal")
    partial_uploads: list[str] = Field(default_factory=list, alias="PartialUploads")
    storage: dict[str, str] = Field(default_factory=dict, alias="Storage")

    @field_validator("metadata", "storage", mode="before")
    @classmethod
    def _null_mapping(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("partial_uploads", mode="before")
    @classmethod
    def _null_list(cls, value: Any) -> Any:
        return [] if value is None else value

    def snapshot(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")


@runtime_checkable
class Upload(Protocol):
    """Core per-upload operations every store must provide."""

    def get_info(self, *, ctx: "CallContext | None" = None) -> FileInfo: ...

    def write_chunk(
        self, offset: int, src: BinaryIO | bytes, *, ctx: "CallContext | None" = None
    ) -> int: ...

    def get_reader(self, *, ctx: "CallContext | None" = None) -> BinaryIO: ...

    def finish_upload(self, *, ctx: "CallContext | None" = None) -> None: ...


@runtime_checkable
class TerminatableUpload(Protocol):
    def terminate(self, *, ctx: "CallContext | None" = None) -> None: ...


@runtime_checkable
class LengthDeclarableUpload(Protocol):
    def declare_length(
        self, length: int, *, ctx: "CallContext | None" = None
    ) -> None: ...


@runtime_checkable
class ConcatableUpload(Protocol):
    def concat_uploads(
        self, uploads: Sequence[Upload], *, ctx: "CallContext | None" = None
    ) -> None: ...


class DataStore(Protocol):
    """Creates and looks up uploads."""

    def new_upload(
        self, info: FileInfo, *, ctx: "CallContext | None" = None
    ) -> Upload: ...

    def get_upload(
        self, upload_id: str, *, ctx: "CallContext | None" = None
    ) -> Upload: ...


class TerminaterDataStore(Protocol):
    def as_terminatable_upload(self, upload: Upload) -> TerminatableUpload: ...


class LengthDeferrerDataStore(Protocol):
    def as_length_declarable_upload(
        self, upload: Upload
    ) -> LengthDeclarableUpload: ...


class ConcaterDataStore(Protocol):
    def as_concatable_upload(self, upload: Upload) -> ConcatableUpload: ...


@dataclass
class StoreComposer:
    """Records the core store and the optional extensions it was registered for."""

    core: DataStore | None = None
    terminater: TerminaterDataStore | None = None
    length_deferrer: LengthDeferrerDataStore | None = None
    concater: ConcaterDataStore | None = None

    def use_core(self, core: DataStore) -> None:
        self.core = core

    def use_terminater(self, terminater: TerminaterDataStore) -> None:
        self.terminater = terminater

    def use_length_deferrer(self, length_deferrer: LengthDeferrerDataStore) -> None:
        self.length_deferrer = length_deferrer

    def use_concater(self, concater: ConcaterDataStore) -> None:
        self.concater = concater

    @property
    def uses_terminater(self) -> bool:
        return self.terminater is not None

    @property
    def uses_length_deferrer(self) -> bool:
        return self.length_deferrer is not None

    @property
    def uses_concater(self) -> bool:
        return self.concater is not None

    def capabilities(self) -> list[str]:
        if self.core is None:
            return []
        names = ["core"]
        if self.uses_terminater:
            names.append("termination")
        if self.uses_length_deferrer:
            names.append("creation-defer-length")
        if self.uses_concater:
            names.append("concatenation")
        return names
