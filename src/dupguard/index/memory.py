"""In-process duplicate index honouring the conditional-write contract."""

import threading
from dataclasses import replace
from typing import Dict, List, Optional

from .base import (
    DuplicateIndex,
    StoreUnavailableError,
    UploadRecord,
    Uploader,
    WriteConflictError,
)


class InMemoryDuplicateIndex(DuplicateIndex):
    """Dictionary-backed index; every operation holds a lock for at most `timeout` seconds."""

    def __init__(self, timeout: float = 5.0) -> None:
        self._records: Dict[str, UploadRecord] = {}
        self._lock = threading.Lock()
        self._timeout = timeout

    def _acquire(self) -> None:
        if not self._lock.acquire(timeout=self._timeout):
            raise StoreUnavailableError(f"Index lock not acquired within {self._timeout}s")

    def get(self, perceptual_hash: str) -> Optional[UploadRecord]:
        self._acquire()
        try:
            return self._records.get(perceptual_hash)
        finally:
            self._lock.release()

    def put(self, record: UploadRecord) -> None:
        self._acquire()
        try:
            if record.perceptual_hash in self._records:
                raise WriteConflictError(f"Record {record.perceptual_hash[:16]}... already exists")
            self._records[record.perceptual_hash] = record
        finally:
            self._lock.release()

    def increment_exact(
        self,
        perceptual_hash: str,
        expected_count: int,
        uploader: Uploader,
    ) -> UploadRecord:
        self._acquire()
        try:
            current = self._records.get(perceptual_hash)
            if current is None:
                raise WriteConflictError(f"Record {perceptual_hash[:16]}... no longer exists")
            if current.upload_count != expected_count:
                raise WriteConflictError(
                    f"Record {perceptual_hash[:16]}... count is {current.upload_count}, "
                    f"expected {expected_count}"
                )
            updated = replace(
                current,
                upload_count=current.upload_count + 1,
                last_uploaded_at=uploader.timestamp,
                uploaders=current.uploaders + (uploader,),
            )
            self._records[perceptual_hash] = updated
            return updated
        finally:
            self._lock.release()

    def scan_all(self) -> List[UploadRecord]:
        self._acquire()
        try:
            return list(self._records.values())
        finally:
            self._lock.release()

    def __len__(self) -> int:
        return len(self._records)
