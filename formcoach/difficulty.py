"""
Adaptive difficulty control for formcoach.

Implements:
- DifficultyController: batch of recent samples -> state -> action -> new difficulty
- DifficultyPolicy: the select/update contract the controller depends on
- QTablePolicy: epsilon-greedy tabular Q-learning over small integer deltas
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .stores.base import Sample

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DifficultyState:
    avg_angle: int
    error_count: int

    def key(self) -> str:
        return f"{self.avg_angle},{self.error_count}"

    @staticmethod
    def from_key(key: str) -> "DifficultyState":
        avg, errs = key.split(",")
        return DifficultyState(int(avg), int(errs))


@dataclass(frozen=True)
class DifficultyUpdate:
    state: DifficultyState
    action: int
    reward: float
    difficulty: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "avg_angle": self.state.avg_angle,
            "error_count": self.state.error_count,
            "action": self.action,
            "reward": self.reward,
            "difficulty": self.difficulty,
        }


class DifficultyPolicy(ABC):
    """Anything that picks a difficulty delta for a state and learns from reward."""

    @abstractmethod
    def select_action(self, state: DifficultyState) -> int:
        """Return an integer difficulty delta."""

    @abstractmethod
    def update(self, state: DifficultyState, action: int, reward: float,
               next_state: DifficultyState) -> None:
        """Learn from the reward observed after taking ``action`` in ``state``."""

    def to_dict(self) -> Dict[str, Any]:
        """Serializable learned state; policies with nothing to keep return {}."""
        return {}


class QTablePolicy(DifficultyPolicy):
    """
    Epsilon-greedy tabular Q-learning.

    Unseen states start at zero for every action; greedy ties prefer the
    smallest absolute delta, then the lower delta.
    """

    def __init__(
        self,
        actions: Sequence[int] = (-1, 0, 1),
        alpha: float = 0.1,
        gamma: float = 0.9,
        epsilon: float = 0.1,
        seed: Optional[int] = None,
    ):
        if not actions:
            raise ValueError("QTablePolicy needs at least one action.")
        self.actions: Tuple[int, ...] = tuple(int(a) for a in actions)
        self.alpha = alpha
        self.gamma = gamma
        self.epsilon = epsilon
        self.rng = np.random.default_rng(seed)
        self.q: Dict[DifficultyState, np.ndarray] = {}
        # Index order used for greedy tie-breaks
        self._preference = sorted(range(len(self.actions)), key=lambda i: (abs(self.actions[i]), self.actions[i]))

    def _values(self, state: DifficultyState) -> np.ndarray:
        if state not in self.q:
            self.q[state] = np.zeros(len(self.actions), dtype=float)
        return self.q[state]

    def greedy_action(self, state: DifficultyState) -> int:
        values = self._values(state)
        best = max(self._preference, key=lambda i: values[i])
        # max() keeps the first maximal index in preference order
        return self.actions[best]

    def select_action(self, state: DifficultyState) -> int:
        if self.epsilon > 0 and self.rng.random() < self.epsilon:
            return self.actions[int(self.rng.integers(len(self.actions)))]
        return self.greedy_action(state)

    def update(self, state: DifficultyState, action: int, reward: float,
               next_state: DifficultyState) -> None:
        values = self._values(state)
        idx = self.actions.index(action)
        target = reward + self.gamma * float(np.max(self._values(next_state)))
        values[idx] += self.alpha * (target - values[idx])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "actions": list(self.actions),
            "alpha": self.alpha,
            "gamma": self.gamma,
            "epsilon": self.epsilon,
            "q": {state.key(): values.tolist() for state, values in self.q.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], seed: Optional[int] = None) -> "QTablePolicy":
        policy = cls(
            actions=data.get("actions", (-1, 0, 1)),
            alpha=float(data.get("alpha", 0.1)),
            gamma=float(data.get("gamma", 0.9)),
            epsilon=float(data.get("epsilon", 0.1)),
            seed=seed,
        )
        for key, values in data.get("q", {}).items():
            arr = np.array(values, dtype=float)
            if arr.shape != (len(policy.actions),):
                raise ValueError(f"Q row for state {key} has shape {arr.shape}")
            policy.q[DifficultyState.from_key(key)] = arr
        return policy


class DifficultyController:
    """
    Closed-loop difficulty adjustment over a rolling batch of samples.

    Usage:
        controller = DifficultyController(QTablePolicy(seed=0))
        update = controller.step(store.recent_samples(controller.batch_size))
        if update:
            print(update.difficulty)
    """

    def __init__(
        self,
        policy: Optional[DifficultyPolicy] = None,
        batch_size: int = 5,
        target_angle: float = 45.0,
        reward_tolerance: float = 5.0,
        initial_difficulty: int = 1,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.policy = policy or QTablePolicy()
        self.batch_size = batch_size
        self.target_angle = float(target_angle)
        self.reward_tolerance = float(reward_tolerance)
        self._difficulty = max(1, int(initial_difficulty))

    @property
    def difficulty(self) -> int:
        return self._difficulty

    def to_dict(self) -> Dict[str, Any]:
        return {"difficulty": self._difficulty, "policy": self.policy.to_dict()}

    def compute_state(self, samples: Sequence[Sample]) -> DifficultyState:
        batch = list(samples)[: self.batch_size]
        avg = int(np.floor(np.mean([s.angle for s in batch]) + 0.5))
        errs = sum(len(s.error_tags) for s in batch)
        return DifficultyState(avg, errs)

    def reward(self, state: DifficultyState) -> float:
        on_target = abs(state.avg_angle - self.target_angle) < self.reward_tolerance
        return 1.0 if on_target and state.error_count == 0 else -1.0

    def step(self, samples: Sequence[Sample]) -> Optional[DifficultyUpdate]:
        """Run one control step. Returns None while the batch is not full."""
        samples: List[Sample] = list(samples)
        if len(samples) < self.batch_size:
            return None

        state = self.compute_state(samples)
        action = int(self.policy.select_action(state))
        new_difficulty = max(1, self._difficulty + action)
        reward = self.reward(state)
        self.policy.update(state, action, reward, state)

        if new_difficulty != self._difficulty:
            logger.info("Difficulty %d -> %d (state=%s, reward=%+.0f)",
                        self._difficulty, new_difficulty, state.key(), reward)
        self._difficulty = new_difficulty
        return DifficultyUpdate(state=state, action=action, reward=reward, difficulty=new_difficulty)
