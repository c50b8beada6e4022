"""Upload quota decisions over the duplicate index."""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from ..fingerprint.compare import compare, threshold_to_distance
from ..fingerprint.hash import FingerprintSet, compute_fingerprints
from ..index.base import (
    DuplicateIndex,
    StoreUnavailableError,
    UploadRecord,
    Uploader,
    WriteConflictError,
)
from ..logging import get_logger
from .retry import RetryPolicy

logger = get_logger(__name__)

DEFAULT_MAX_UPLOADS = 3
DEFAULT_SIMILARITY_THRESHOLD = 25


class ConcurrencyExhaustedError(Exception):
    """Raised when every attempt of a conditional write lost a race."""


@dataclass(frozen=True)
class SimilarityMatch:
    """A stored record within the similarity threshold of an uploaded image."""
    matched_hash: str
    distance: int
    upload_count: int
    first_uploaded_at: str = ""
    last_uploaded_at: str = ""


@dataclass(frozen=True)
class QuotaDecision:
    """Outcome of evaluating one upload against the quota."""
    blocked: bool
    message: str
    total_count: int                        # Exact count before this upload plus similar counts
    exact_upload_count: int                 # Exact count after this upload (observed count if blocked)
    combined_hash: str
    similar_matches: Tuple[SimilarityMatch, ...] = ()

    @property
    def similar_count(self) -> int:
        return sum(match.upload_count for match in self.similar_matches)


@dataclass(frozen=True)
class ImageStats:
    record: UploadRecord
    similar_matches: Tuple[SimilarityMatch, ...]

    @property
    def total_similar_count(self) -> int:
        return sum(match.upload_count for match in self.similar_matches)


@dataclass(frozen=True)
class LimitCheck:
    blocked: bool
    count: int
    warning: bool                           # One upload left before the quota


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class QuotaEngine:
    """
    Decides whether an upload exceeds the repost quota and records it if not.

    The read-decide-write cycle is retried on conditional-write conflicts and
    on store unavailability, bounded by the retry policy. Hashing happens once
    per request, outside the retry loop.
    """

    def __init__(
        self,
        index: DuplicateIndex,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        hasher: Callable[[bytes], FingerprintSet] = compute_fingerprints,
        clock: Callable[[], str] = utc_now,
    ) -> None:
        self.index = index
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._hasher = hasher
        self._clock = clock

    def evaluate(
        self,
        image_bytes: bytes,
        user_id: str,
        file_name: str,
        max_uploads: int = DEFAULT_MAX_UPLOADS,
        similarity_threshold: int = DEFAULT_SIMILARITY_THRESHOLD,
        file_hash: Optional[str] = None,
    ) -> QuotaDecision:
        """
        Evaluate an upload and record it when it stays under the quota.

        Args:
            image_bytes: Raw image bytes
            user_id: Uploading user
            file_name: Client-side file name
            max_uploads: Total exact + similar uploads at which uploads are blocked
            similarity_threshold: Similarity threshold on the 0-100 scale
            file_hash: Optional client-side digest stored with new records

        Returns:
            QuotaDecision describing the outcome

        Raises:
            ConcurrencyExhaustedError: If every attempt lost a write race
            StoreUnavailableError: If the store stayed unavailable for every attempt
        """
        fingerprints = self._hasher(image_bytes)
        distance_threshold = threshold_to_distance(similarity_threshold)
        logger.info(
            f"Evaluating upload {fingerprints.combined_hash[:16]}... from {user_id} "
            f"(max={max_uploads}, distance threshold={distance_threshold})"
        )

        policy = self.retry_policy
        attempt = 0
        while True:
            attempt += 1
            try:
                return self._decide_and_record(
                    fingerprints, user_id, file_name, max_uploads, distance_threshold, file_hash
                )
            except WriteConflictError as exc:
                if attempt >= policy.max_attempts:
                    logger.error(
                        f"Giving up on {fingerprints.combined_hash[:16]}... after {attempt} conflicting attempts"
                    )
                    raise ConcurrencyExhaustedError(
                        f"Failed to record upload after {attempt} attempts due to concurrent modifications"
                    ) from exc
                delay = policy.conflict_delay(attempt)
                logger.warning(f"Concurrent modification (attempt {attempt}/{policy.max_attempts}), retrying in {delay:.2f}s")
            except StoreUnavailableError as exc:
                if attempt >= policy.max_attempts:
                    logger.error(f"Store unavailable after {attempt} attempts: {exc}")
                    raise
                delay = policy.unavailable_delay(attempt)
                logger.warning(f"Store unavailable (attempt {attempt}/{policy.max_attempts}), retrying in {delay:.2f}s")
            self._sleep(delay)

    def find_similar(self, fingerprints: FingerprintSet, distance_threshold: int) -> List[SimilarityMatch]:
        """Scan the index for records similar to `fingerprints`, excluding its own record."""
        matches = []
        for record in self.index.scan_all():
            if record.perceptual_hash == fingerprints.combined_hash:
                continue
            comparison = compare(fingerprints, record.fingerprints(), distance_threshold)
            if comparison.is_similar:
                matches.append(SimilarityMatch(
                    matched_hash=record.perceptual_hash,
                    distance=comparison.distance,
                    upload_count=record.upload_count,
                    first_uploaded_at=record.first_uploaded_at,
                    last_uploaded_at=record.last_uploaded_at,
                ))
                logger.debug(f"Similar image {record.perceptual_hash[:16]}... (distance: {comparison.distance})")
        return matches

    def stats(
        self,
        perceptual_hash: str,
        similarity_threshold: int = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> Optional[ImageStats]:
        """Upload history of a stored hash together with its similar records."""
        record = self.index.get(perceptual_hash)
        if record is None:
            return None
        matches = self.find_similar(record.fingerprints(), threshold_to_distance(similarity_threshold))
        return ImageStats(record=record, similar_matches=tuple(matches))

    def check_limit(self, perceptual_hash: str, max_uploads: int = DEFAULT_MAX_UPLOADS) -> LimitCheck:
        """
        Advisory exact-count check without recording anything.

        An unavailable store allows the upload rather than failing it.
        """
        try:
            record = self.index.get(perceptual_hash)
        except StoreUnavailableError as exc:
            logger.warning(f"Failed to read upload count, allowing upload: {exc}")
            return LimitCheck(blocked=False, count=0, warning=False)

        count = record.upload_count if record else 0
        return LimitCheck(
            blocked=count >= max_uploads,
            count=count,
            warning=count == max_uploads - 1,
        )

    def _decide_and_record(
        self,
        fingerprints: FingerprintSet,
        user_id: str,
        file_name: str,
        max_uploads: int,
        distance_threshold: int,
        file_hash: Optional[str],
    ) -> QuotaDecision:
        combined_hash = fingerprints.combined_hash
        existing = self.index.get(combined_hash)
        matches = tuple(self.find_similar(fingerprints, distance_threshold))

        exact_count = existing.upload_count if existing else 0
        total_count = exact_count + sum(match.upload_count for match in matches)

        if total_count >= max_uploads:
            if existing is not None:
                message = (
                    f"This image (or similar versions) has been uploaded {total_count} times. "
                    f"Maximum allowed: {max_uploads}."
                )
            else:
                message = (
                    f"Similar images have been uploaded {total_count} times. "
                    f"Maximum allowed: {max_uploads}."
                )
            logger.info(f"Blocked {combined_hash[:16]}...: total {total_count} >= {max_uploads}")
            return QuotaDecision(
                blocked=True,
                message=message,
                total_count=total_count,
                exact_upload_count=exact_count,
                combined_hash=combined_hash,
                similar_matches=matches,
            )

        uploader = Uploader(user_id=user_id, file_name=file_name, timestamp=self._clock())
        if existing is not None:
            updated = self.index.increment_exact(combined_hash, existing.upload_count, uploader)
            upload_count = updated.upload_count
            message = (
                f"Image uploaded successfully. This exact image has now been uploaded "
                f"{upload_count} time(s)."
            )
        else:
            self.index.put(UploadRecord.first_sighting(fingerprints, uploader, file_hash))
            upload_count = 1
            message = "New image uploaded successfully."

        logger.info(
            f"Recorded {combined_hash[:16]}...: exact count {upload_count}, "
            f"{len(matches)} similar images, total {total_count}"
        )
        return QuotaDecision(
            blocked=False,
            message=message,
            total_count=total_count,
            exact_upload_count=upload_count,
            combined_hash=combined_hash,
            similar_matches=matches,
        )
