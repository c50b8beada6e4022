"""Distance metrics for fingerprint comparison."""

import math
from dataclasses import dataclass
from typing import Optional

from .codec import COMBINED_BITS, to_binary
from .hash import FingerprintSet
from ..logging import get_logger

logger = get_logger(__name__)

MISSING_DISTANCE = 999
DEFAULT_COMPARE_THRESHOLD = 15
MAX_COLOR_DIGIT = 15


@dataclass(frozen=True)
class Comparison:
    """Outcome of comparing two fingerprint sets."""
    distance: int
    is_similar: bool

    @property
    def percent_difference(self) -> float:
        return percent_difference(self.distance)


def hamming_distance(bits_a: str, bits_b: str) -> int:
    """
    Count differing bits between two bit-strings.

    Strings of different length are compared over their common prefix, and
    every bit of length difference adds a penalty of 2.

    Args:
        bits_a: First bit-string
        bits_b: Second bit-string

    Returns:
        Distance, or MISSING_DISTANCE if either string is empty
    """
    if not bits_a or not bits_b:
        return MISSING_DISTANCE

    distance = 2 * abs(len(bits_a) - len(bits_b))
    distance += sum(1 for a, b in zip(bits_a, bits_b) if a != b)
    return distance


def color_similarity(color_a: Optional[str], color_b: Optional[str]) -> float:
    """
    Similarity of two colour histogram hashes in [0, 1], 1 meaning identical.

    A missing hash on either side counts as identical so that no penalty applies.
    """
    if not color_a or not color_b:
        return 1.0

    length = min(len(color_a), len(color_b))
    diff = sum(
        abs(int(a, 16) - int(b, 16))
        for a, b in zip(color_a[:length], color_b[:length])
    )
    return 1 - diff / (length * MAX_COLOR_DIGIT)


def compare(
    fingerprints_a: Optional[FingerprintSet],
    fingerprints_b: Optional[FingerprintSet],
    threshold: int = DEFAULT_COMPARE_THRESHOLD,
) -> Comparison:
    """
    Compare two fingerprint sets on the combined hash with a colour penalty.

    The Hamming distance of the combined hashes is multiplied by
    `2 - color_similarity`, so identical colours leave it unchanged and
    opposite colours double it.

    Args:
        fingerprints_a: First fingerprint set
        fingerprints_b: Second fingerprint set
        threshold: Maximum distance still considered similar (0-256 scale)

    Returns:
        Comparison with the final distance and similarity verdict
    """
    if fingerprints_a is None or fingerprints_b is None:
        return Comparison(distance=MISSING_DISTANCE, is_similar=False)
    if not fingerprints_a.combined_hash or not fingerprints_b.combined_hash:
        return Comparison(distance=MISSING_DISTANCE, is_similar=False)

    hamming = hamming_distance(
        to_binary(fingerprints_a.combined_hash),
        to_binary(fingerprints_b.combined_hash),
    )
    penalty = 2 - color_similarity(fingerprints_a.color_hash, fingerprints_b.color_hash)
    distance = math.floor(hamming * penalty)

    logger.debug(
        f"Compared {fingerprints_a.combined_hash[:16]} / {fingerprints_b.combined_hash[:16]}: "
        f"hamming={hamming}, penalty={penalty:.3f}, distance={distance} "
        f"({percent_difference(distance):.1f}%)"
    )
    return Comparison(distance=distance, is_similar=distance <= threshold)


def percent_difference(distance: int) -> float:
    """Express a distance as a percentage of the 256-bit combined hash."""
    return distance / COMBINED_BITS * 100


def similarity_percentage(hash_a: str, hash_b: str) -> float:
    """Share of agreeing bits (0-100) between two hex hashes over their common length."""
    bits_a, bits_b = to_binary(hash_a), to_binary(hash_b)
    length = min(len(bits_a), len(bits_b))
    if length == 0:
        return 0.0
    differences = sum(1 for a, b in zip(bits_a, bits_b) if a != b)
    return (length - differences) / length * 100


def threshold_to_distance(threshold: int) -> int:
    """Map a 0-100 similarity threshold onto the 0-256 distance scale."""
    distance = round(threshold * COMBINED_BITS / 100)
    return max(0, min(COMBINED_BITS, distance))
