"""Repost quota enforcement."""

from .engine import (
    ConcurrencyExhaustedError,
    ImageStats,
    LimitCheck,
    QuotaDecision,
    QuotaEngine,
    SimilarityMatch,
)
from .retry import RetryPolicy

__all__ = [
    "ConcurrencyExhaustedError",
    "ImageStats",
    "LimitCheck",
    "QuotaDecision",
    "QuotaEngine",
    "SimilarityMatch",
    "RetryPolicy",
]
