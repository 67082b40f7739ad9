"""
Hysteresis rep counter driven by per-exercise angle bands.
A rep is one extension -> flexion -> extension cycle of a single limb.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .exercises import EXERCISE_CONFIG, ExerciseConfig, ExerciseKind, Limb

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    UNKNOWN = "unknown"
    DOWN = "down"
    UP = "up"


@dataclass
class RepCounterState:
    stage: Stage = Stage.UNKNOWN
    latch: bool = False
    rep_count: int = 0
    # Timestamp of the previous rep, or of the first sample before any rep.
    last_rep_ms: Optional[float] = None


@dataclass(frozen=True)
class RepEvent:
    exercise: ExerciseKind
    limb: Limb
    angle: float
    duration_ms: float
    rep_number: int
    timestamp_ms: float

    def to_dict(self) -> Dict[str, object]:
        return {
            "exercise": self.exercise.value,
            "limb": self.limb.value,
            "angle": round(self.angle, 1),
            "duration_ms": self.duration_ms,
            "rep_number": self.rep_number,
            "timestamp_ms": self.timestamp_ms,
        }


class RepCounter:
    """
    Two-threshold (Schmitt trigger) counter for one limb of one exercise.

    Angles above ``max`` arm the counter (stage DOWN), angles below ``min``
    complete the rep (stage UP). Angles inside [min, max] never change stage.
    """

    def __init__(self, exercise: ExerciseKind, limb: Limb, correct_range: Tuple[float, float]):
        lo, hi = correct_range
        if lo >= hi:
            raise ValueError(f"correct_range min must be below max, got {lo}-{hi}")
        self.exercise = exercise
        self.limb = limb
        self.angle_min = float(lo)
        self.angle_max = float(hi)
        self.state = RepCounterState()

    @property
    def rep_count(self) -> int:
        return self.state.rep_count

    def clear(self):
        self.state = RepCounterState()

    def update(self, angle: float, t_ms: float) -> Optional[RepEvent]:
        """Feed one angle sample at time t_ms; return a RepEvent when a rep completes."""
        state = self.state
        if state.last_rep_ms is None:
            state.last_rep_ms = t_ms

        if angle > self.angle_max:
            if state.stage == Stage.UP and state.latch:
                state.latch = False
            state.stage = Stage.DOWN
            return None

        if angle < self.angle_min and state.stage == Stage.DOWN and not state.latch:
            state.stage = Stage.UP
            state.latch = True
            state.rep_count += 1
            duration = t_ms - state.last_rep_ms
            state.last_rep_ms = t_ms
            return RepEvent(
                exercise=self.exercise,
                limb=self.limb,
                angle=float(angle),
                duration_ms=float(duration),
                rep_number=state.rep_count,
                timestamp_ms=float(t_ms),
            )

        return None


class RepCounterBank:
    """
    One RepCounter per (exercise, limb), constructed for the active exercise.

    Switching exercise discards every counter; ``clear`` resets them in place.
    """

    def __init__(self, exercises: Optional[Dict[ExerciseKind, ExerciseConfig]] = None):
        self.exercises = exercises or dict(EXERCISE_CONFIG)
        self.counters: Dict[Tuple[ExerciseKind, Limb], RepCounter] = {}
        self.exercise: Optional[ExerciseKind] = None

    def select(self, exercise: ExerciseKind):
        if exercise == self.exercise:
            return
        config = self.exercises[exercise]
        self.counters = {
            (exercise, limb): RepCounter(exercise, limb, config.correct_range)
            for limb in config.joints
        }
        self.exercise = exercise
        logger.info("Rep counters reset for %s", exercise.value)

    def clear(self):
        for counter in self.counters.values():
            counter.clear()

    def counter(self, limb: Limb) -> RepCounter:
        if self.exercise is None:
            raise RuntimeError("No exercise selected.")
        return self.counters[(self.exercise, limb)]

    def update(self, angles: Dict[Limb, float], t_ms: float) -> List[RepEvent]:
        """Feed one frame's per-limb angles; return the reps completed on this frame."""
        events = []
        for limb, angle in angles.items():
            event = self.counter(limb).update(angle, t_ms)
            if event is not None:
                events.append(event)
        return events

    def counts(self) -> Dict[str, int]:
        return {limb.value: c.rep_count for (_, limb), c in self.counters.items()}

