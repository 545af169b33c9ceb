"""Confidence scoring utilities for retrieval results.

Retrieval never fails the chat request when the knowledge base has little
to offer -- it returns fewer (possibly zero) contexts and the caller lowers
its answer confidence instead.  This module turns a list of scored contexts
into that number:

1. **normalize_similarity** -- maps a cosine similarity in [-1, 1] onto
   [0, 1], guarding against ``NaN``.
2. **compute_retrieval_confidence** -- blends the average and top
   normalised scores with a small bonus for having several contexts.
3. **confidence_to_level** -- maps a numeric score to a human-readable
   tier (VERY_LOW through VERY_HIGH) for logging and API payloads.
"""

import math
from enum import Enum

# Score reported when retrieval produced no contexts at all.
EMPTY_RETRIEVAL_CONFIDENCE = 0.25


class ConfidenceLevel(Enum):
    """Human-readable confidence tiers."""

    VERY_LOW = "very_low"    # < 0.2
    LOW = "low"              # 0.2 - 0.4
    MEDIUM = "medium"        # 0.4 - 0.6
    HIGH = "high"            # 0.6 - 0.8
    VERY_HIGH = "very_high"  # >= 0.8


def clamp(value: float, minimum: float = 0.0, maximum: float = 1.0) -> float:
    """Clamp *value* into ``[minimum, maximum]``."""
    return max(minimum, min(maximum, value))


def normalize_similarity(score: float) -> float:
    """Map a cosine similarity from [-1, 1] to [0, 1].

    ``NaN`` (which can only appear from a corrupted vector) maps to 0.
    """
    normalised = (score + 1.0) / 2.0
    if math.isnan(normalised):
        return 0.0
    return clamp(normalised)


def compute_retrieval_confidence(scores: list[float]) -> float:
    """Compute a retrieval confidence score from context similarity scores.

    Args:
        scores: Cosine similarity of each returned context, in any order.

    Returns:
        ``EMPTY_RETRIEVAL_CONFIDENCE`` when *scores* is empty, otherwise
        ``0.35 + 0.45 * avg + 0.2 * top + min(len / 8, 0.15)`` over the
        normalised scores, clamped to [0.0, 1.0].
    """
    if not scores:
        return EMPTY_RETRIEVAL_CONFIDENCE

    normalised = [normalize_similarity(s) for s in scores]
    average = sum(normalised) / len(normalised)
    top = max(normalised)
    diversity_bonus = clamp(len(normalised) / 8, 0.0, 0.15)

    return clamp(0.35 + average * 0.45 + top * 0.2 + diversity_bonus)


def confidence_to_level(score: float) -> ConfidenceLevel:
    """Map a numeric confidence score to a human-readable level.

    Args:
        score: Confidence score in [0.0, 1.0].

    Returns:
        Corresponding ConfidenceLevel enum member.
    """
    if score < 0.2:
        return ConfidenceLevel.VERY_LOW
    if score < 0.4:
        return ConfidenceLevel.LOW
    if score < 0.6:
        return ConfidenceLevel.MEDIUM
    if score < 0.8:
        return ConfidenceLevel.HIGH
    return ConfidenceLevel.VERY_HIGH
