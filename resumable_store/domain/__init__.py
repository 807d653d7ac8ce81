"""
Domain layer package housing the contracts shared with the upload framework.
"""

from typing import Final

from .handler import (
    ConcatableUpload,
    DataStore,
    FileInfo,
    LengthDeclarableUpload,
    StoreComposer,
    TerminatableUpload,
    Upload,
)

# Suffix of the object holding an upload's JSON snapshot
INFO_SUFFIX: Final[str] = ".info"

__all__ = [
    "INFO_SUFFIX",
    "ConcatableUpload",
    "DataStore",
    "FileInfo",
    "LengthDeclarableUpload",
    "StoreComposer",
    "TerminatableUpload",
    "Upload",
]
