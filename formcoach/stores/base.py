"""Common interfaces for formcoach persistence stores."""

from __future__ import annotations

import bisect
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..coaches.form_classifier import RepFeedback
from ..session import WorkoutSummary


@dataclass(frozen=True)
class Sample:
    """Coarse per-rep record consumed by the difficulty controller."""

    timestamp: float
    angle: float
    error_tags: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "angle": self.angle, "error_tags": list(self.error_tags)}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Sample":
        return Sample(
            timestamp=float(data["timestamp"]),
            angle=float(data["angle"]),
            error_tags=tuple(data.get("error_tags", [])),
        )


@dataclass(frozen=True)
class Rating:
    workout_id: str
    rating: int

    def __post_init__(self):
        if not 1 <= int(self.rating) <= 5:
            raise ValueError(f"Rating must be between 1 and 5, got {self.rating}")

    def to_dict(self) -> Dict[str, Any]:
        return {"workout_id": self.workout_id, "rating": self.rating}


@dataclass
class WorkoutStats:
    """Summary statistics across all stored workouts."""

    total_workouts: int = 0
    total_reps: int = 0
    perfect_reps: int = 0
    average_score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_workouts": self.total_workouts,
            "total_reps": self.total_reps,
            "perfect_reps": self.perfect_reps,
            "average_score": self.average_score,
        }


@dataclass
class WorkoutRecord:
    id: str
    summary: WorkoutSummary
    rep_details: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def feedbacks(self) -> List[RepFeedback]:
        return [RepFeedback.from_dict(d) for d in self.rep_details]

    def to_dict(self) -> Dict[str, Any]:
        data = self.summary.to_dict()
        data["id"] = self.id
        data["grade"] = self.summary.grade
        return data


def workout_stats(records: Sequence[WorkoutRecord]) -> WorkoutStats:
    if not records:
        return WorkoutStats()
    return WorkoutStats(
        total_workouts=len(records),
        total_reps=sum(r.summary.total_reps for r in records),
        perfect_reps=sum(r.summary.perfect_reps for r in records),
        average_score=sum(r.summary.score for r in records) / len(records),
    )


class Store(ABC):
    """
    Abstract persistence collaborator.

    Implementations are synchronous; the pipeline calls them from worker
    threads so they must not rely on the event loop.
    """

    name: str = "base"

    @abstractmethod
    def insert_sample(self, timestamp: float, angle: float, error_tags: Sequence[str]) -> None:
        """Append one Sample."""

    @abstractmethod
    def recent_samples(self, limit: int) -> List[Sample]:
        """Return up to ``limit`` samples, newest first."""

    @abstractmethod
    def insert_rating(self, workout_id: str, rating: int) -> None:
        """Append one Rating. Ratings are never updated in place."""

    @abstractmethod
    def all_ratings(self) -> List[Rating]:
        """Return every rating in insertion order."""

    @abstractmethod
    def save_workout(self, summary: WorkoutSummary, rep_feedbacks: Sequence[RepFeedback]) -> str:
        """Persist a finished workout with its per-rep detail; return its id."""

    @abstractmethod
    def list_workouts(self) -> List[WorkoutRecord]:
        """Return every workout, most recent first."""

    @abstractmethod
    def delete_workout(self, workout_id: str) -> bool:
        """Delete a workout and its rep detail. Returns False when unknown."""

    def get_workout(self, workout_id: str) -> Optional[WorkoutRecord]:
        for record in self.list_workouts():
            if record.id == workout_id:
                return record
        return None

    @abstractmethod
    def save_controller_state(self, state: Dict[str, Any]) -> None:
        """Persist the difficulty controller snapshot (level and learned policy)."""

    @abstractmethod
    def load_controller_state(self) -> Optional[Dict[str, Any]]:
        """Return the last saved controller snapshot, None when there is none."""

    def workout_stats(self) -> WorkoutStats:
        return workout_stats(self.list_workouts())


def insert_ordered(samples: List[Sample], sample: Sample) -> None:
    """Insert keeping timestamp order; equal timestamps stay in insertion order."""
    bisect.insort_right(samples, sample, key=lambda s: s.timestamp)


def newest_samples(samples: List[Sample], limit: int) -> List[Sample]:
    """Slice the newest ``limit`` samples off a list kept by ``insert_ordered``."""
    if limit <= 0:
        return []
    return samples[-limit:][::-1]
