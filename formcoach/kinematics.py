"""
Kinematic utilities for formcoach.

Implements:
- Typed joint / frame containers for landmark input
- Planar joint angle computation (vertex in the middle)
- Per-exercise extraction of the controlling and secondary angles
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence, Tuple, Union

import numpy as np

from .errors import InsufficientLandmarksError, InvalidGeometryError
from .exercises import ExerciseConfig, Limb


@dataclass(frozen=True)
class Joint:
    """One tracked anatomical point, normalized image coordinates."""

    x: float
    y: float
    z: float = 0.0
    visibility: float = 1.0

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Joint":
        return cls(
            x=float(d["x"]),
            y=float(d["y"]),
            z=float(d.get("z", 0.0)),
            visibility=float(d.get("visibility", 1.0)),
        )


PointLike = Union[Joint, Sequence[float]]


@dataclass
class FrameLandmarks:
    """Joints of one detected body in one frame, plus analyzer tags."""

    joints: List[Joint]
    timestamp_ms: float
    tags: Tuple[str, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.joints)

    def __getitem__(self, idx: int) -> Joint:
        return self.joints[idx]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], timestamp_ms: float) -> "FrameLandmarks":
        """Build a frame from the wire format ``{"landmarks": [...], "ts": .., "tags": [..]}``."""
        joints = [Joint.from_dict(lm) for lm in payload.get("landmarks", [])]
        ts = payload.get("ts")
        tags = tuple(str(t) for t in payload.get("tags", []) or [])
        return cls(joints=joints, timestamp_ms=float(ts) if ts is not None else timestamp_ms, tags=tags)


def _xy(p: PointLike) -> np.ndarray:
    if isinstance(p, Joint):
        return np.array([p.x, p.y], dtype=float)
    return np.array([p[0], p[1]], dtype=float)


def compute_joint_angle(a: PointLike, b: PointLike, c: PointLike) -> float:
    """Calculate the planar angle at point b formed by points a-b-c in degrees.

    The result lies in [0, 180]. Raises InvalidGeometryError if any coordinate
    is NaN or infinite.
    """
    a, b, c = _xy(a), _xy(b), _xy(c)
    if not (np.all(np.isfinite(a)) and np.all(np.isfinite(b)) and np.all(np.isfinite(c))):
        raise InvalidGeometryError(f"Non-finite joint coordinates: a={a}, b={b}, c={c}")

    radians = np.arctan2(c[1] - b[1], c[0] - b[0]) - np.arctan2(a[1] - b[1], a[0] - b[0])
    angle = np.abs(radians * 180.0 / np.pi)
    if angle > 180.0:
        angle = 360.0 - angle
    return float(angle)


@dataclass
class ExerciseAngles:
    """Angles extracted from one frame for one exercise."""

    primary: Dict[Limb, float]
    secondary: Dict[str, float] = field(default_factory=dict)


def extract_exercise_angles(frame: FrameLandmarks, config: ExerciseConfig) -> ExerciseAngles:
    """
    Returns the controlling angle for each limb and any secondary angles.

    Raises InsufficientLandmarksError when the frame is too short for the
    exercise, InvalidGeometryError on non-finite coordinates.
    """
    needed = config.required_landmarks
    if len(frame) < needed:
        raise InsufficientLandmarksError(
            f"{config.kind.value} needs {needed} landmarks, frame has {len(frame)}"
        )

    def angle_for(triple):
        a, b, c = triple
        return compute_joint_angle(frame[a], frame[b], frame[c])

    primary = {limb: angle_for(triple) for limb, triple in config.joints.items()}
    secondary = {name: angle_for(triple) for name, triple in config.secondary.items()}
    return ExerciseAngles(primary=primary, secondary=secondary)
