"""Workout scoring: 0-100 score, letter grade, and score-to-rating mapping."""

from __future__ import annotations

from typing import Iterable

import numpy as np

from .coaches.form_classifier import FormRating, RepFeedback, SpeedRating

RATING_POINTS = {
    FormRating.PERFECT: 100,
    FormRating.GOOD: 80,
    FormRating.FAIR: 60,
    FormRating.NEEDS_WORK: 40,
    FormRating.POOR: 20,
}

SPEED_MODIFIERS = {
    SpeedRating.GOOD_PACE: 1.0,
    SpeedRating.TOO_FAST: 0.8,
    SpeedRating.TOO_SLOW: 0.9,
}

# (lower bound, grade), checked top-down
GRADE_TABLE = [
    (90, "A+"),
    (85, "A"),
    (80, "A-"),
    (75, "B+"),
    (70, "B"),
    (65, "B-"),
    (60, "C+"),
    (55, "C"),
    (50, "C-"),
    (45, "D+"),
    (40, "D"),
]

# Workout score -> 1..5 rating submitted to the recommender.
RATING_TABLE = [(85, 5), (70, 4), (55, 3), (40, 2)]


def rep_points(feedback: RepFeedback) -> float:
    return RATING_POINTS[feedback.form_rating] * SPEED_MODIFIERS[feedback.speed_rating]


def calculate_workout_score(feedbacks: Iterable[RepFeedback]) -> int:
    """Mean of per-rep weighted points, rounded. Empty sessions score 0."""
    points = [rep_points(f) for f in feedbacks]
    if not points:
        return 0
    # Half-up rounding, not Python's round-half-even.
    score = int(np.floor(np.mean(points) + 0.5))
    return max(0, min(100, score))


def letter_grade(score: int) -> str:
    for bound, grade in GRADE_TABLE:
        if score >= bound:
            return grade
    return "F"


def rating_from_score(score: int) -> int:
    for bound, rating in RATING_TABLE:
        if score >= bound:
            return rating
    return 1
