"""Metadata similarity used to rank reverse image search candidates."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from booru_sync.adapters.booru.sync.constants import RESOLUTION_SCALE, SIMILARITY_WEIGHTS

if TYPE_CHECKING:
    from collections.abc import Iterable

    from booru_sync.adapters.booru.models import ImageRecord


def jaccard_index(a: frozenset[str] | set[str], b: frozenset[str] | set[str]) -> float:
    if not a and not b:
        return 1.0
    intersection = len(a & b)
    return intersection / (len(a) + len(b) - intersection)


def attribute_scores(source: ImageRecord, candidate: ImageRecord) -> dict[str, float]:
    """Per-attribute similarity, each in ``[0, 1]``."""
    source_pixels = source.width * source.height
    candidate_pixels = candidate.width * candidate.height
    return {
        "mime_type": 1.0 if source.mime_type == candidate.mime_type else 0.0,
        "aspect_ratio": 1.0 - math.tanh(abs(source.aspect_ratio - candidate.aspect_ratio)),
        "resolution": 1.0
        - math.tanh(abs(source_pixels - candidate_pixels) * RESOLUTION_SCALE),
        "tags": jaccard_index(source.tags, candidate.tags),
    }


def similarity_score(source: ImageRecord, candidate: ImageRecord) -> float:
    """Weighted average of :func:`attribute_scores`."""
    weight_sum = sum(SIMILARITY_WEIGHTS.values())
    scores = attribute_scores(source, candidate)
    return sum(scores[name] * weight / weight_sum for name, weight in SIMILARITY_WEIGHTS.items())


def usable_candidates(candidates: Iterable[ImageRecord]) -> list[ImageRecord]:
    """Drop candidates that are duplicates of another image or deleted."""
    return [c for c in candidates if c.duplicate_of is None and c.deletion_reason is None]


def pick_best_candidate(
    source: ImageRecord, candidates: Iterable[ImageRecord]
) -> ImageRecord | None:
    """Return the usable candidate most similar to ``source``.

    A single usable candidate is returned without scoring. On equal scores the
    earliest candidate wins.
    """
    usable = usable_candidates(candidates)
    if len(usable) <= 1:
        return usable[0] if usable else None

    best = usable[0]
    best_score = similarity_score(source, best)
    for candidate in usable[1:]:
        score = similarity_score(source, candidate)
        if score > best_score:
            best, best_score = candidate, score
    return best
