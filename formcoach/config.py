"""
Configuration for the formcoach service.

Environment variables select the store and the optional JSON override file;
the JSON file tunes the algorithms:

    {
        "batch_size": 5,
        "target_angle": 45,
        "reward_tolerance": 5.0,
        "top_k": 3,
        "epsilon": 0.1,
        "exercises": {
            "squat": {"correct_range": [80, 100], "tempo_ms": [2500, 5000]}
        }
    }
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .exercises import ExerciseConfig, ExerciseKind, build_exercise_table

logger = logging.getLogger(__name__)

STORE_NAME = os.getenv("FORMCOACH_STORE", "json")
DATA_DIR = Path(os.getenv("FORMCOACH_DATA_DIR", "data"))
CONFIG_PATH = os.getenv("FORMCOACH_CONFIG")
LOG_LEVEL = os.getenv("FORMCOACH_LOG_LEVEL", "INFO").upper()


@dataclass
class CoachConfig:
    batch_size: int = 5
    target_angle: float = 45.0
    reward_tolerance: float = 5.0
    top_k: int = 3
    epsilon: float = 0.1
    seed: Optional[int] = None
    exercises: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def exercise_table(self) -> Dict[ExerciseKind, ExerciseConfig]:
        return build_exercise_table(self.exercises)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_size": self.batch_size,
            "target_angle": self.target_angle,
            "reward_tolerance": self.reward_tolerance,
            "top_k": self.top_k,
            "epsilon": self.epsilon,
            "seed": self.seed,
            "exercises": self.exercises,
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "CoachConfig":
        config = CoachConfig(
            batch_size=int(data.get("batch_size", 5)),
            target_angle=float(data.get("target_angle", 45.0)),
            reward_tolerance=float(data.get("reward_tolerance", 5.0)),
            top_k=int(data.get("top_k", 3)),
            epsilon=float(data.get("epsilon", 0.1)),
            seed=int(data["seed"]) if data.get("seed") is not None else None,
            exercises={k: dict(v) for k, v in (data.get("exercises") or {}).items()},
        )
        if config.batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {config.batch_size}")
        if config.top_k < 0:
            raise ValueError(f"top_k must not be negative, got {config.top_k}")
        # Fail early on unknown exercises or inverted bands
        config.exercise_table()
        return config


def load_config(path: Optional[Path] = None) -> CoachConfig:
    """Read a JSON override file. Missing or unreadable files yield defaults."""
    if path is None:
        if not CONFIG_PATH:
            return CoachConfig()
        path = Path(CONFIG_PATH)
    path = Path(path)
    if not path.exists():
        logger.info("Config file %s not found, using defaults", path)
        return CoachConfig()
    try:
        raw = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        logger.warning("Ignoring malformed config file %s: %s", path, e)
        return CoachConfig()
    return CoachConfig.from_dict(raw)
