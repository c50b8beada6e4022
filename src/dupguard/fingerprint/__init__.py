"""Perceptual fingerprinting and comparison of uploaded images."""

from .hash import FingerprintSet, InvalidImageError, compute_fingerprints
from .codec import combine, to_hex, to_binary
from .compare import Comparison, compare, hamming_distance, threshold_to_distance

__all__ = [
    "FingerprintSet",
    "InvalidImageError",
    "compute_fingerprints",
    "combine",
    "to_hex",
    "to_binary",
    "Comparison",
    "compare",
    "hamming_distance",
    "threshold_to_distance",
]
