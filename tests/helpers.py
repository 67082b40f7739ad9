"""Synthetic landmark frames for tests."""

import math

from formcoach.exercises import EXERCISE_CONFIG, ExerciseKind
from formcoach.kinematics import FrameLandmarks, Joint

FRAME_SIZE = 33


def frame_payload(exercise, angle, ts=None, tags=(), size=FRAME_SIZE):
    """Wire-format frame whose primary angle is ``angle`` on every limb of ``exercise``."""
    config = EXERCISE_CONFIG[ExerciseKind.parse(exercise)]
    points = [[0.5, 0.5] for _ in range(size)]
    for offset, triple in enumerate(config.joints.values()):
        a, b, c = triple
        vx, vy = 0.25 + offset * 0.5, 0.5
        rad = math.radians(angle)
        points[b] = [vx, vy]
        points[a] = [vx, vy + 0.2]
        points[c] = [vx + 0.2 * math.sin(rad), vy + 0.2 * math.cos(rad)]
    payload = {
        "landmarks": [{"x": x, "y": y, "visibility": 0.9} for x, y in points],
        "tags": list(tags),
    }
    if ts is not None:
        payload["ts"] = ts
    return payload


def make_frame(exercise, angle, ts, tags=()):
    return FrameLandmarks.from_payload(frame_payload(exercise, angle, ts=ts, tags=tags), ts)


def short_frame(ts, size=5):
    return FrameLandmarks(joints=[Joint(0.1, 0.1)] * size, timestamp_ms=ts)
