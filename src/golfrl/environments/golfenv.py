"""
golfenv.py - Gymnasium environment over the golf simulator

One env step is one shot: the action in [-1, 1]^2 is scaled to
(force in [min_force, max_force], angle in [0, 2*pi)), the ball is struck with hit()
and the shot reward comes from compute_reward(). The episode terminates when the
ball ends inside the goal radius and is truncated after `max_shots` shots.

This is what the stable-baselines3 baseline trains on; the hand-written PPO agent
uses the rollout collector instead, both share the same physics and reward.
"""

import math

import gymnasium as gym
import numpy as np
from gymnasium import spaces

from ..physics.engine import PhysicsEngine
from ..utils.ballstate import BallState
from ..utils.ppo_types import Action
from .courseconfig import CourseConfig
from .golf_simulator import compute_reward, hit, sample_start_position
from .terrain import BALL_MARKER, GOAL_MARKER, Terrain


class GolfEnv(gym.Env):
    """Golf course environment: reach the goal in as few shots as possible"""

    metadata = {"render_modes": []}

    def __init__(self, config=None, config_path="golf_config.yaml", terrains=None,
                 radius=None, max_shots=None):
        super().__init__()
        self.config = config if config is not None else CourseConfig(config_path)

        if terrains is None:
            terrains = self.config.height_functions
        self.terrains = [t if isinstance(t, Terrain) else Terrain.from_config(self.config, t) for t in terrains]
        self.engines = [PhysicsEngine.from_config(self.config, t) for t in self.terrains]

        self.goal = BallState(self.config.goal_x, self.config.goal_y)
        self.radius = float(radius if radius is not None else self.config.simulation['radius'])
        self.max_shots = int(max_shots if max_shots is not None else self.config.sb3['max_shots'])

        # Action space: [force, angle] both normalised to [-1, 1]
        self.action_space = spaces.Box(low=-1.0, high=1.0, shape=(2,), dtype=np.float32)

        # Observation space: flattened marked height map
        obs_size = self.terrains[0].observation_size
        self.observation_space = spaces.Box(
            low=min(BALL_MARKER, -0.5), high=GOAL_MARKER, shape=(obs_size,), dtype=np.float32
        )

        self.terrain_index = 0
        self.ball = None
        self.shots = 0

    @property
    def terrain(self):
        return self.terrains[self.terrain_index]

    def scale_action(self, action) -> Action:
        """Map a [-1, 1]^2 action to a (force, angle) shot"""
        a = np.clip(np.asarray(action, dtype=np.float64), -1.0, 1.0)
        force = self.config.min_force + (a[0] + 1.0) / 2.0 * (self.config.max_force - self.config.min_force)
        angle = ((a[1] + 1.0) * math.pi) % (2 * math.pi)
        return Action(force=float(force), angle=float(angle))

    def unscale_action(self, shot: Action) -> np.ndarray:
        """Inverse of scale_action"""
        span = self.config.max_force - self.config.min_force
        a_force = 2.0 * (shot.force - self.config.min_force) / span - 1.0
        a_angle = (shot.angle % (2 * math.pi)) / math.pi - 1.0
        return np.clip(np.array([a_force, a_angle], dtype=np.float32), -1.0, 1.0)

    def _get_obs(self):
        return self.terrain.observation(self.ball, self.goal)

    def reset(self, seed=None, options=None):
        super().reset(seed=seed)
        self.terrain_index = int(self.np_random.integers(len(self.terrains)))
        self.ball = sample_start_position(self.goal, self.radius, self.np_random)
        self.shots = 0
        return self._get_obs(), {}

    def step(self, action):
        self.shots += 1
        shot = self.scale_action(action)
        last_position = self.ball.copy()

        outcome = hit(self.ball, shot, self.terrain, self.engines[self.terrain_index], self.goal, self.config)
        won = outcome.state.is_in_goal(self.goal, self.config.goal_radius)
        reward = compute_reward(outcome.state, last_position, self.goal, won,
                                outcome.in_hazard, self.terrain, self.config)

        self.ball = BallState(outcome.state.x, outcome.state.y, 0.0, 0.0)
        terminated = won
        truncated = self.shots >= self.max_shots and not terminated

        info = {
            'in_water': outcome.in_water,
            'on_sand': outcome.on_sand,
            'out_of_bounds': outcome.out_of_bounds,
            'distance_to_goal': self.ball.distance_to(self.goal),
            'is_success': won,
        }
        return self._get_obs(), float(reward), terminated, truncated, info
