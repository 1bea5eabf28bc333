"""
physics_simulator.py - Facade over the golf simulator for drivers and presentation code

Keeps a current ball, a goal and the list of registered terrains, and exposes
single-shot helpers (hit, hit_with_path, single_hit, hit_many, random_hits) plus the
training entry points run_simulation / run_simulation_parallel.
"""

import logging
from typing import List, Optional, Tuple

import numpy as np

from ..environments.courseconfig import CourseConfig
from ..environments.golf_simulator import hit, hit_with_path, sample_start_position
from ..environments.terrain import Terrain
from ..physics.engine import PhysicsEngine
from ..utils.ballstate import BallState
from ..utils.ppo_types import Action
from .rollout import RolloutCollector

logger = logging.getLogger(__name__)


class PhysicsSimulator:
    def __init__(self, terrain=None, goal: Optional[BallState] = None,
                 config: Optional[CourseConfig] = None, agent=None):
        self.config = config if config is not None else CourseConfig()
        self.functions: List[Terrain] = []

        if terrain is None:
            for expression in self.config.height_functions:
                self.add_function(expression)
        else:
            self.add_function(terrain)

        self.terrain = self.functions[0]
        self.engine = PhysicsEngine.from_config(self.config, self.terrain)
        self.goal = goal if goal is not None else BallState(self.config.goal_x, self.config.goal_y)
        self.ball = BallState(0.0, 0.0, 0.0, 0.0)
        self.agent = agent
        self.in_water = False

        self.data = []
        self.last_rollout_stats = None
        self.last_training_stats = None

    def _as_terrain(self, height_function) -> Terrain:
        if isinstance(height_function, Terrain):
            return height_function
        return Terrain.from_config(self.config, height_function)

    def add_function(self, height_function):
        """Register another terrain for the training runs"""
        self.functions.append(self._as_terrain(height_function))

    def change_height_function(self, height_function):
        """Make `height_function` the terrain used by the single-shot helpers"""
        self.terrain = self._as_terrain(height_function)
        self.engine = PhysicsEngine.from_config(self.config, self.terrain)

    # Single shots

    def hit(self, force: float, angle: float) -> BallState:
        outcome = hit(self.ball, Action(force, angle), self.terrain, self.engine, self.goal, self.config)
        self.in_water = outcome.in_water
        return outcome.state

    def hit_with_path(self, force: float, angle: float) -> Tuple[BallState, List[Tuple[float, float]]]:
        outcome = hit_with_path(self.ball, Action(force, angle), self.terrain, self.engine, self.goal, self.config)
        self.in_water = outcome.in_water
        return outcome.state, outcome.path

    def single_hit(self, force: float, angle: float, ball_position: BallState) -> BallState:
        self.set_position(ball_position.x, ball_position.y)
        return self.hit(force, angle)

    def hit_many(self, forces, angles) -> List[BallState]:
        """One hit per (force, angle) pair, each from the origin"""
        if len(forces) != len(angles):
            raise ValueError("forces and angles must have the same length")
        results = []
        for force, angle in zip(forces, angles):
            results.append(self.hit(force, angle))
            self.reset_ball_position()
        return results

    def random_hits(self, n: int, goal: BallState, radius: float, rng=None) -> List[BallState]:
        """n random shots from random points on the circle around `goal`"""
        rng = rng if rng is not None else np.random.default_rng(self.config.simulation['seed'])
        results = []
        for _ in range(n):
            start = sample_start_position(goal, radius, rng)
            self.set_position(start.x, start.y)
            force = rng.uniform(self.config.min_force, self.config.max_force)
            angle = rng.uniform(0.0, 2 * np.pi)
            results.append(self.hit(float(force), float(angle)))
        return results

    def reset_ball_position(self, ball_position: Optional[BallState] = None):
        if ball_position is None:
            self.set_position(0.0, 0.0)
        else:
            self.set_position(ball_position.x, ball_position.y)

    def set_position(self, x: float, y: float):
        self.ball.set_position(x, y)

    def get_state(self) -> np.ndarray:
        """Observation for the current ball and goal on the current terrain"""
        return self.terrain.observation(self.ball, self.goal)

    # Training

    def _collector(self) -> RolloutCollector:
        if self.agent is None:
            raise ValueError("PhysicsSimulator needs an agent to run training simulations")
        return RolloutCollector(self.functions, self.goal, self.config, self.agent)

    def run_simulation(self, episodes: int, radius: float, steps: int):
        self._run(episodes, radius, steps, parallel=False)

    def run_simulation_parallel(self, episodes: int, radius: float, steps: int):
        self._run(episodes, radius, steps, parallel=True)

    def _run(self, episodes, radius, steps, parallel):
        batches, stats = self._collector().collect(episodes, radius, steps, parallel=parallel)
        self.data.extend(batches)
        self.last_rollout_stats = stats
        self.last_training_stats = self.agent.train_on_data(self.data)
