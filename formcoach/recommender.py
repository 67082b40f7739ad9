"""
Item-based workout recommender.

Each workout's ratings form a rating vector; workouts are ranked by cosine
similarity to the vector of the most recently rated workout.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

import numpy as np

from .stores.base import Rating, Store


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    dot / (|a| * |b|), 0.0 when either magnitude is zero.

    The dot product runs over the common prefix of the two vectors; the
    magnitudes use the full vectors.
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    mag_a = float(np.linalg.norm(a))
    mag_b = float(np.linalg.norm(b))
    if mag_a <= 0 or mag_b <= 0:
        return 0.0
    n = min(a.size, b.size)
    dot = float(np.dot(a[:n], b[:n]))
    # Rounding can push parallel vectors just past 1
    return float(np.clip(dot / (mag_a * mag_b), -1.0, 1.0))


def rating_vectors(ratings: Sequence[Rating]) -> Dict[str, List[float]]:
    """Group ratings by workout id, preserving first-seen order."""
    vectors: Dict[str, List[float]] = {}
    for r in ratings:
        vectors.setdefault(r.workout_id, []).append(float(r.rating))
    return vectors


def recommend(ratings: Sequence[Rating], k: int = 3) -> List[str]:
    """Return up to k workout ids most similar to the last-rated workout."""
    if len(ratings) < 2 or k <= 0:
        return []
    vectors = rating_vectors(ratings)
    last = ratings[-1].workout_id
    reference = vectors[last]

    scored = [
        (workout_id, cosine_similarity(reference, vector))
        for workout_id, vector in vectors.items()
        if workout_id != last
    ]
    # sorted() is stable: equal similarities keep first-seen order
    scored.sort(key=lambda item: item[1], reverse=True)
    return [workout_id for workout_id, _ in scored[:k]]


class ItemBasedRecommender:
    """Recommender bound to a rating store."""

    def __init__(self, store: Store, k: int = 3):
        self.store = store
        self.k = k

    def recommend(self, k: Optional[int] = None) -> List[str]:
        return recommend(self.store.all_ratings(), k=self.k if k is None else k)
