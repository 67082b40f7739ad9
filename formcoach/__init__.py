"""
formcoach - rep counting, form feedback and adaptive difficulty for
pose-estimated strength exercises.

Components:
1. kinematics / rep_counter - joint angles and Schmitt-trigger rep detection
2. coaches - per-rep form classification and the post-workout report
3. scoring / session - workout score, grade and summary
4. difficulty / recommender - adaptive difficulty and workout recommendations
5. pipeline - asyncio frame worker and workout coordinator
"""

from .errors import (
    FormCoachError,
    InsufficientLandmarksError,
    InvalidGeometryError,
    StoreError,
    UnknownExerciseError,
)
from .exercises import EXERCISE_CONFIG, ExerciseConfig, ExerciseKind, Limb
from .kinematics import FrameLandmarks, Joint, compute_joint_angle
from .rep_counter import RepCounter, RepEvent

__version__ = "0.1.0"

__all__ = [
    "FormCoachError",
    "InsufficientLandmarksError",
    "InvalidGeometryError",
    "StoreError",
    "UnknownExerciseError",
    "EXERCISE_CONFIG",
    "ExerciseConfig",
    "ExerciseKind",
    "Limb",
    "FrameLandmarks",
    "Joint",
    "compute_joint_angle",
    "RepCounter",
    "RepEvent",
]
