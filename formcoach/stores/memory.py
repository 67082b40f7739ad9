"""In-process store, used by tests and by deployments that do not need history."""

from __future__ import annotations

import copy
import threading
import uuid
from typing import Any, Dict, List, Optional, Sequence

from ..coaches.form_classifier import RepFeedback
from ..coaches.feedback_generator import generate_rep_details
from ..session import WorkoutSummary
from .base import Rating, Sample, Store, WorkoutRecord, insert_ordered, newest_samples


class MemoryStore(Store):
    name = "memory"

    def __init__(self):
        self._lock = threading.Lock()
        # Kept in timestamp order
        self.samples: List[Sample] = []
        self.ratings: List[Rating] = []
        self.workouts: List[WorkoutRecord] = []
        self.controller_state: Optional[Dict[str, Any]] = None

    def insert_sample(self, timestamp: float, angle: float, error_tags: Sequence[str]) -> None:
        with self._lock:
            insert_ordered(self.samples, Sample(float(timestamp), float(angle), tuple(error_tags)))

    def recent_samples(self, limit: int) -> List[Sample]:
        with self._lock:
            return newest_samples(self.samples, limit)

    def insert_rating(self, workout_id: str, rating: int) -> None:
        r = Rating(workout_id=workout_id, rating=int(rating))
        with self._lock:
            self.ratings.append(r)

    def all_ratings(self) -> List[Rating]:
        with self._lock:
            return list(self.ratings)

    def save_workout(self, summary: WorkoutSummary, rep_feedbacks: Sequence[RepFeedback]) -> str:
        record = WorkoutRecord(
            id=uuid.uuid4().hex,
            summary=summary,
            rep_details=generate_rep_details(list(rep_feedbacks)),
        )
        with self._lock:
            self.workouts.append(record)
        return record.id

    def list_workouts(self) -> List[WorkoutRecord]:
        with self._lock:
            return sorted(self.workouts, key=lambda r: r.summary.start_time, reverse=True)

    def delete_workout(self, workout_id: str) -> bool:
        with self._lock:
            before = len(self.workouts)
            self.workouts = [r for r in self.workouts if r.id != workout_id]
            return len(self.workouts) != before

    def save_controller_state(self, state: Dict[str, Any]) -> None:
        with self._lock:
            self.controller_state = copy.deepcopy(state)

    def load_controller_state(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self.controller_state)
