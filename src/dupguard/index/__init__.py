"""Content-addressed index of upload records."""

from .base import (
    DuplicateIndex,
    StoreUnavailableError,
    UploadRecord,
    Uploader,
    WriteConflictError,
)
from .memory import InMemoryDuplicateIndex

__all__ = [
    "DuplicateIndex",
    "StoreUnavailableError",
    "UploadRecord",
    "Uploader",
    "WriteConflictError",
    "InMemoryDuplicateIndex",
]
