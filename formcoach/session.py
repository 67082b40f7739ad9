"""
Workout Session Management for formcoach

A session collects the RepFeedback of one exercise between start and stop,
and is summarized into a WorkoutSummary when it ends.
Example: 12 bicep curls with a target of 12 reps stops itself on the 12th rep.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any
import time

import numpy as np

from .coaches.form_classifier import FormRating, RepFeedback
from .exercises import ExerciseKind
from .rep_counter import RepEvent
from .scoring import calculate_workout_score, letter_grade


def _now_ms() -> float:
    return time.time() * 1000.0


@dataclass
class WorkoutSummary:
    """Persisted result of one finished session."""

    exercise: ExerciseKind
    start_time: float       # epoch ms
    duration_ms: float
    total_reps: int
    perfect_reps: int
    avg_angle: float
    score: int
    difficulty_at_end: int

    @property
    def grade(self) -> str:
        return letter_grade(self.score)

    @property
    def perfect_form_percentage(self) -> int:
        if self.total_reps <= 0:
            return 0
        return (self.perfect_reps * 100) // self.total_reps

    @property
    def formatted_duration(self) -> str:
        """Duration as MM:SS."""
        seconds = int(self.duration_ms // 1000)
        return f"{seconds // 60:02d}:{seconds % 60:02d}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exercise": self.exercise.value,
            "start_time": self.start_time,
            "duration_ms": self.duration_ms,
            "total_reps": self.total_reps,
            "perfect_reps": self.perfect_reps,
            "avg_angle": self.avg_angle,
            "score": self.score,
            "difficulty_at_end": self.difficulty_at_end,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "WorkoutSummary":
        return WorkoutSummary(
            exercise=ExerciseKind.parse(data["exercise"]),
            start_time=float(data["start_time"]),
            duration_ms=float(data["duration_ms"]),
            total_reps=int(data["total_reps"]),
            perfect_reps=int(data["perfect_reps"]),
            avg_angle=float(data["avg_angle"]),
            score=int(data["score"]),
            difficulty_at_end=int(data["difficulty_at_end"]),
        )


@dataclass
class WorkoutSession:
    """
    One active workout for a single exercise.

    Usage:
        session = WorkoutSession(ExerciseKind.SQUAT, target_reps=10)
        session.start()

        # On every rep
        result = session.record_rep(event, feedback)
        if result["target_reached"]:
            summary = session.finish(difficulty=3)
    """

    exercise: ExerciseKind
    target_reps: int = 0
    feedbacks: List[RepFeedback] = field(default_factory=list)
    limb_reps: Dict[str, int] = field(default_factory=dict)
    started_at: Optional[float] = None     # epoch ms
    finished_at: Optional[float] = None

    @property
    def is_active(self) -> bool:
        return self.started_at is not None and self.finished_at is None

    @property
    def total_reps(self) -> int:
        return len(self.feedbacks)

    @property
    def perfect_reps(self) -> int:
        return sum(1 for f in self.feedbacks if f.form_rating == FormRating.PERFECT)

    @property
    def remaining_reps(self) -> Optional[int]:
        """Reps left to reach the target, None when there is no target."""
        if self.target_reps <= 0:
            return None
        return max(0, self.target_reps - self.total_reps)

    @property
    def avg_angle(self) -> float:
        if not self.feedbacks:
            return 0.0
        return float(np.mean([f.angle for f in self.feedbacks]))

    @property
    def score(self) -> int:
        return calculate_workout_score(self.feedbacks)

    @property
    def duration_ms(self) -> Optional[float]:
        if self.started_at is None:
            return None
        end = self.finished_at if self.finished_at is not None else _now_ms()
        return end - self.started_at

    def start(self, now_ms: Optional[float] = None):
        self.feedbacks.clear()
        self.limb_reps.clear()
        self.started_at = now_ms if now_ms is not None else _now_ms()
        self.finished_at = None

    def record_rep(self, event: RepEvent, feedback: RepFeedback) -> Dict[str, Any]:
        """
        Record a completed rep.

        Returns:
            Dict with "recorded" and "target_reached" flags. Reps outside an
            active session are not recorded.
        """
        result = {"recorded": False, "target_reached": False, "total_reps": self.total_reps}
        if not self.is_active:
            return result

        self.feedbacks.append(feedback)
        self.limb_reps[event.limb.value] = self.limb_reps.get(event.limb.value, 0) + 1
        result["recorded"] = True
        result["total_reps"] = self.total_reps
        result["target_reached"] = self.target_reps > 0 and self.total_reps >= self.target_reps
        return result

    def finish(self, difficulty: int, now_ms: Optional[float] = None) -> WorkoutSummary:
        """End the session and summarize it."""
        if self.started_at is None:
            raise RuntimeError("Session was never started.")
        if self.finished_at is None:
            self.finished_at = now_ms if now_ms is not None else _now_ms()
        return WorkoutSummary(
            exercise=self.exercise,
            start_time=self.started_at,
            duration_ms=self.finished_at - self.started_at,
            total_reps=self.total_reps,
            perfect_reps=self.perfect_reps,
            avg_angle=self.avg_angle,
            score=self.score,
            difficulty_at_end=int(difficulty),
        )

    def get_progress(self) -> Dict[str, Any]:
        """Current session progress for display."""
        return {
            "exercise": self.exercise.value,
            "is_active": self.is_active,
            "total_reps": self.total_reps,
            "target_reps": self.target_reps,
            "remaining_reps": self.remaining_reps,
            "limb_reps": dict(self.limb_reps),
            "perfect_reps": self.perfect_reps,
            "score": self.score,
            "duration_ms": self.duration_ms,
        }
