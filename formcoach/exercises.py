"""
Exercise catalog for formcoach.

Each exercise declares which joint triples drive its rep counter (one per
limb), which triples produce secondary angles that are reported but never
counted, the correct-range band used by the hysteresis counter, and the ideal
tempo window used for speed ratings.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import UnknownExerciseError


class PoseLandmark(IntEnum):
    """MediaPipe 33-point pose numbering (only the joints we read)."""

    NOSE = 0
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28


class ExerciseKind(str, Enum):
    BICEP_CURL = "bicep_curl"
    SQUAT = "squat"
    LATERAL_RAISE = "lateral_raise"
    LUNGE = "lunge"
    SHOULDER_PRESS = "shoulder_press"

    @classmethod
    def parse(cls, value: Any) -> "ExerciseKind":
        """Accept an ExerciseKind, its value, or its upper-case name."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for kind in cls:
            if text == kind.value or text.upper() == kind.name:
                return kind
        raise UnknownExerciseError(
            f"Unknown exercise '{value}'. "
            f"Available options: {', '.join(k.value for k in cls)}"
        )


class Limb(str, Enum):
    LEFT = "left"
    RIGHT = "right"


JointTriple = Tuple[PoseLandmark, PoseLandmark, PoseLandmark]


@dataclass(frozen=True)
class ExerciseConfig:
    kind: ExerciseKind
    # Controlling angle per limb, vertex in the middle.
    joints: Dict[Limb, JointTriple]
    # Angle band [min, max] for the hysteresis counter.
    correct_range: Tuple[float, float]
    # Ideal rep duration window in milliseconds, inclusive.
    tempo_ms: Tuple[int, int]
    secondary: Dict[str, JointTriple] = field(default_factory=dict)

    @property
    def required_landmarks(self) -> int:
        """Minimum frame length able to supply every joint this exercise reads."""
        indices = [idx for triple in self.joints.values() for idx in triple]
        indices += [idx for triple in self.secondary.values() for idx in triple]
        return max(indices) + 1

    def with_overrides(self, overrides: Mapping[str, Any]) -> "ExerciseConfig":
        """Return a copy with ``correct_range`` and/or ``tempo_ms`` replaced."""
        changes: Dict[str, Any] = {}
        if "correct_range" in overrides:
            lo, hi = overrides["correct_range"]
            if float(lo) >= float(hi):
                raise ValueError(
                    f"{self.kind.value}: correct_range min must be below max, got {lo}-{hi}"
                )
            changes["correct_range"] = (float(lo), float(hi))
        if "tempo_ms" in overrides:
            lo, hi = overrides["tempo_ms"]
            changes["tempo_ms"] = (int(lo), int(hi))
        return replace(self, **changes) if changes else self


P = PoseLandmark

_ARM_JOINTS = {
    Limb.LEFT: (P.LEFT_SHOULDER, P.LEFT_ELBOW, P.LEFT_WRIST),
    Limb.RIGHT: (P.RIGHT_SHOULDER, P.RIGHT_ELBOW, P.RIGHT_WRIST),
}
_LEG_JOINTS = {
    Limb.LEFT: (P.LEFT_HIP, P.LEFT_KNEE, P.LEFT_ANKLE),
    Limb.RIGHT: (P.RIGHT_HIP, P.RIGHT_KNEE, P.RIGHT_ANKLE),
}
_TORSO = {
    "left_torso_angle": (P.LEFT_SHOULDER, P.LEFT_HIP, P.LEFT_KNEE),
    "right_torso_angle": (P.RIGHT_SHOULDER, P.RIGHT_HIP, P.RIGHT_KNEE),
}

EXERCISE_CONFIG: Dict[ExerciseKind, ExerciseConfig] = {
    ExerciseKind.BICEP_CURL: ExerciseConfig(
        kind=ExerciseKind.BICEP_CURL,
        joints=_ARM_JOINTS,
        correct_range=(70.0, 160.0),
        tempo_ms=(4000, 6000),
    ),
    ExerciseKind.SQUAT: ExerciseConfig(
        kind=ExerciseKind.SQUAT,
        joints=_LEG_JOINTS,
        correct_range=(85.0, 95.0),
        tempo_ms=(3000, 5000),
        secondary=_TORSO,
    ),
    ExerciseKind.LATERAL_RAISE: ExerciseConfig(
        kind=ExerciseKind.LATERAL_RAISE,
        # Shoulder abduction: hip-shoulder-elbow
        joints={
            Limb.LEFT: (P.LEFT_HIP, P.LEFT_SHOULDER, P.LEFT_ELBOW),
            Limb.RIGHT: (P.RIGHT_HIP, P.RIGHT_SHOULDER, P.RIGHT_ELBOW),
        },
        correct_range=(80.0, 100.0),
        tempo_ms=(4000, 6000),
        secondary={
            "left_elbow_angle": _ARM_JOINTS[Limb.LEFT],
            "right_elbow_angle": _ARM_JOINTS[Limb.RIGHT],
        },
    ),
    ExerciseKind.LUNGE: ExerciseConfig(
        kind=ExerciseKind.LUNGE,
        joints=_LEG_JOINTS,
        correct_range=(85.0, 95.0),
        tempo_ms=(3000, 5000),
        secondary=_TORSO,
    ),
    ExerciseKind.SHOULDER_PRESS: ExerciseConfig(
        kind=ExerciseKind.SHOULDER_PRESS,
        joints=_ARM_JOINTS,
        correct_range=(70.0, 160.0),
        tempo_ms=(4000, 6000),
    ),
}


def build_exercise_table(
    overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> Dict[ExerciseKind, ExerciseConfig]:
    """Merge per-exercise overrides (keyed by exercise name) onto the catalog."""
    table = dict(EXERCISE_CONFIG)
    for name, values in (overrides or {}).items():
        kind = ExerciseKind.parse(name)
        table[kind] = table[kind].with_overrides(values)
    return table
