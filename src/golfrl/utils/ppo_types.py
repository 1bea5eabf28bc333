"""
ppo_types.py - Data contracts shared by the simulator, the rollout collector and the agent

Action        - (force, angle) pair used to strike the ball
State         - flattened observation vector (terrain + ball/goal markers)
Transition    - one (state, action, reward, next_state) sample
Batch         - the ordered transitions of a single episode
PolicyOutput  - the four raw values produced by the policy network
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class Action:
    force: float
    angle: float  # radians

    def as_array(self) -> np.ndarray:
        # Order matches the policy output: angle first, then force
        return np.array([self.angle, self.force], dtype=np.float32)


@dataclass(frozen=True, eq=False)
class State:
    """Opaque observation vector, stored read-only"""
    values: np.ndarray

    def __post_init__(self):
        arr = np.asarray(self.values, dtype=np.float32).reshape(-1).copy()
        arr.setflags(write=False)
        object.__setattr__(self, "values", arr)

    def __len__(self):
        return self.values.shape[0]

    def __eq__(self, other):
        if not isinstance(other, State):
            return NotImplemented
        return np.array_equal(self.values, other.values)


@dataclass(frozen=True)
class Transition:
    state: State
    action: Action
    reward: float
    next_state: State


@dataclass(frozen=True)
class Batch:
    """Transitions of one episode in the order they happened"""
    transitions: Tuple[Transition, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "transitions", tuple(self.transitions))

    def __len__(self):
        return len(self.transitions)

    def __iter__(self) -> Iterator[Transition]:
        return iter(self.transitions)

    def __getitem__(self, index):
        return self.transitions[index]

    def rewards(self) -> List[float]:
        return [t.reward for t in self.transitions]

    def total_reward(self) -> float:
        return float(sum(self.rewards()))


@dataclass(frozen=True)
class PolicyOutput:
    """Raw policy head: [mu_theta, sigma_theta_raw, mu_force, sigma_force_raw]

    The sigma values are unconstrained and must go through softplus before use.
    """
    mu_theta: float
    sigma_theta_raw: float
    mu_force: float
    sigma_force_raw: float

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> "PolicyOutput":
        flat = np.asarray(values, dtype=np.float64).reshape(-1)
        if flat.shape[0] != 4:
            raise ValueError(f"Policy output must have 4 values, got {flat.shape[0]}")
        return cls(*(float(v) for v in flat))

    def as_array(self) -> np.ndarray:
        return np.array([self.mu_theta, self.sigma_theta_raw,
                         self.mu_force, self.sigma_force_raw], dtype=np.float64)
