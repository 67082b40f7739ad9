"""
JSON-file store.

Ratings, workouts and the controller snapshot live in one document that is
rewritten after every change. Samples arrive once per rep, so they go to an
append-only JSON-lines file next to it (``formcoach.samples.jsonl``).
"""

from __future__ import annotations

import copy
import json
import logging
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..coaches.form_classifier import RepFeedback
from ..coaches.feedback_generator import generate_rep_details
from ..errors import StoreError
from ..session import WorkoutSummary
from .base import Rating, Sample, Store, WorkoutRecord, insert_ordered, newest_samples

logger = logging.getLogger(__name__)

DEFAULT_STORE_PATH = Path("data") / "formcoach.json"


def _records(raw: Dict[str, Any], key: str, path: Path) -> list:
    records = raw.get(key) or []
    if not isinstance(records, list):
        logger.warning("Ignoring %s in %s: not a list", key, path)
        return []
    return records


class JsonFileStore(Store):
    name = "json"

    def __init__(self, path: Path = DEFAULT_STORE_PATH):
        self.path = Path(path)
        self.samples_path = self.path.with_name(self.path.stem + ".samples.jsonl")
        self._lock = threading.Lock()
        # Kept in timestamp order
        self.samples: List[Sample] = []
        self.ratings: List[Rating] = []
        self.workouts: List[WorkoutRecord] = []
        self.controller_state: Optional[Dict[str, Any]] = None
        self._load()
        self._load_samples()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            raw = json.loads(self.path.read_text())
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Ignoring unreadable store file %s", self.path)
            return
        if not isinstance(raw, dict):
            logger.warning("Ignoring store file %s: top level is not an object", self.path)
            return

        for r in _records(raw, "ratings", self.path):
            try:
                self.ratings.append(Rating(workout_id=str(r["workout_id"]), rating=int(r["rating"])))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed rating %r: %s", r, e)

        for w in _records(raw, "workouts", self.path):
            try:
                record = WorkoutRecord(
                    id=str(w.get("id") or uuid.uuid4().hex),
                    summary=WorkoutSummary.from_dict(w["summary"]),
                    rep_details=list(w.get("rep_details") or []),
                )
                # Rows must rebuild into feedback for the workout report
                record.feedbacks
                self.workouts.append(record)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed workout %r: %s", w, e)

        state = raw.get("controller")
        if state is not None and not isinstance(state, dict):
            logger.warning("Ignoring malformed controller state %r", state)
            state = None
        self.controller_state = state

    def _load_samples(self) -> None:
        if not self.samples_path.exists():
            return
        with self.samples_path.open() as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    self.samples.append(Sample.from_dict(json.loads(line)))
                except (json.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError) as e:
                    logger.warning("Skipping malformed sample on line %d of %s: %s",
                                   lineno, self.samples_path, e)
        # sort() is stable: equal timestamps keep file order
        self.samples.sort(key=lambda s: s.timestamp)

    def _save(self) -> None:
        data: Dict[str, Any] = {
            "ratings": [r.to_dict() for r in self.ratings],
            "workouts": [
                {"id": w.id, "summary": w.summary.to_dict(), "rep_details": w.rep_details}
                for w in self.workouts
            ],
            "controller": self.controller_state,
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(data, indent=2))
            tmp.replace(self.path)
        except OSError as e:
            raise StoreError(f"Failed to write {self.path}: {e}") from e

    def _save_or_rollback(self, items: list) -> None:
        # Drop the item just appended so memory matches the file on failure
        try:
            self._save()
        except StoreError:
            items.pop()
            raise

    # ---- API ----

    def insert_sample(self, timestamp: float, angle: float, error_tags: Sequence[str]) -> None:
        sample = Sample(float(timestamp), float(angle), tuple(error_tags))
        with self._lock:
            try:
                self.samples_path.parent.mkdir(parents=True, exist_ok=True)
                with self.samples_path.open("a") as f:
                    f.write(json.dumps(sample.to_dict()) + "\n")
            except OSError as e:
                raise StoreError(f"Failed to append to {self.samples_path}: {e}") from e
            insert_ordered(self.samples, sample)

    def recent_samples(self, limit: int) -> List[Sample]:
        with self._lock:
            return newest_samples(self.samples, limit)

    def insert_rating(self, workout_id: str, rating: int) -> None:
        r = Rating(workout_id=workout_id, rating=int(rating))
        with self._lock:
            self.ratings.append(r)
            self._save_or_rollback(self.ratings)

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
            self._save_or_rollback(self.workouts)
        return record.id

    def list_workouts(self) -> List[WorkoutRecord]:
        with self._lock:
            return sorted(self.workouts, key=lambda r: r.summary.start_time, reverse=True)

    def delete_workout(self, workout_id: str) -> bool:
        with self._lock:
            previous = self.workouts
            self.workouts = [w for w in previous if w.id != workout_id]
            if len(self.workouts) == len(previous):
                return False
            try:
                self._save()
            except StoreError:
                self.workouts = previous
                raise
            return True

    def save_controller_state(self, state: Dict[str, Any]) -> None:
        with self._lock:
            previous = self.controller_state
            self.controller_state = copy.deepcopy(state)
            try:
                self._save()
            except StoreError:
                self.controller_state = previous
                raise

    def load_controller_state(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self.controller_state)
