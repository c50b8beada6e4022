"""Records and store contract of the duplicate index."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..fingerprint.hash import FingerprintSet


class WriteConflictError(Exception):
    """Raised when a conditional write is rejected because the record changed."""


class StoreUnavailableError(Exception):
    """Raised when the backing store is unreachable, throttled or timed out."""


@dataclass(frozen=True)
class Uploader:
    """One upload of an image by a user."""
    user_id: str
    file_name: str
    timestamp: str                          # ISO-8601, UTC


@dataclass(frozen=True)
class UploadRecord:
    """Upload history of one combined hash."""
    perceptual_hash: str                    # Combined hash, primary key
    average_hash: str
    frequency_hash: str
    color_hash: Optional[str]
    upload_count: int
    first_uploaded_at: str
    last_uploaded_at: str
    uploaders: Tuple[Uploader, ...] = field(default_factory=tuple)
    file_hash: Optional[str] = None         # Client-side SHA-256 of the first upload

    @classmethod
    def first_sighting(
        cls,
        fingerprints: FingerprintSet,
        uploader: Uploader,
        file_hash: Optional[str] = None,
    ) -> UploadRecord:
        """Build the record created when a combined hash is seen for the first time."""
        return cls(
            perceptual_hash=fingerprints.combined_hash,
            average_hash=fingerprints.average_hash,
            frequency_hash=fingerprints.frequency_hash,
            color_hash=fingerprints.color_hash,
            upload_count=1,
            first_uploaded_at=uploader.timestamp,
            last_uploaded_at=uploader.timestamp,
            uploaders=(uploader,),
            file_hash=file_hash,
        )

    def fingerprints(self) -> FingerprintSet:
        """Rebuild the stored fingerprint set for re-comparison."""
        return FingerprintSet(
            average_hash=self.average_hash,
            frequency_hash=self.frequency_hash,
            color_hash=self.color_hash,
            combined_hash=self.perceptual_hash,
        )


class DuplicateIndex(ABC):
    """Key-value store of upload records keyed by combined hash."""

    @abstractmethod
    def get(self, perceptual_hash: str) -> Optional[UploadRecord]:
        raise NotImplementedError()

    @abstractmethod
    def put(self, record: UploadRecord) -> None:
        """
        Create a record that must not exist yet.

        Raises:
            WriteConflictError: If a record with the same hash already exists
            StoreUnavailableError: If the store cannot be reached
        """
        raise NotImplementedError()

    @abstractmethod
    def increment_exact(
        self,
        perceptual_hash: str,
        expected_count: int,
        uploader: Uploader,
    ) -> UploadRecord:
        """
        Add one upload to a record whose count still equals `expected_count`.

        Raises:
            WriteConflictError: If the stored count changed or the record is gone
            StoreUnavailableError: If the store cannot be reached
        """
        raise NotImplementedError()

    @abstractmethod
    def scan_all(self) -> List[UploadRecord]:
        raise NotImplementedError()
