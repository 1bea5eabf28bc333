import copy
import logging
import math
import os
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


class CourseConfig:
    """Class to handle course configuration loading and derived values"""

    def __init__(self, config_path="golf_config.yaml", overrides=None):
        # If config_path is just a filename, look for it in the packaged configs/ directory
        if config_path is None:
            self.config_path = None
        elif not os.path.isabs(config_path) and not os.path.dirname(str(config_path)):
            self.config_path = Path(__file__).resolve().parents[1] / "configs" / config_path
        else:
            self.config_path = Path(config_path)

        self.config = self._load_config()
        if overrides:
            _deep_update(self.config, copy.deepcopy(overrides))
        self._calculate_derived_values()

    def _load_config(self):
        """Load configuration from YAML file, falling back to the defaults"""
        defaults = self._get_default_config()
        if self.config_path is None:
            return defaults

        config_file = Path(self.config_path)
        if not config_file.exists():
            logger.warning(f"Config file {self.config_path} not found. Using default course configuration.")
            return defaults

        try:
            with open(config_file, 'r') as file:
                loaded = yaml.safe_load(file) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Error loading config: {e}. Using default configuration.")
            return defaults

        logger.info(f"Loaded configuration from {self.config_path}")
        # Anything the file leaves out keeps its default value
        _deep_update(defaults, loaded)
        return defaults

    @staticmethod
    def _get_default_config():
        """Return the default course configuration"""
        return {
            'course': {
                'height_functions': ['0.4*(0.9 - exp(-(x*x + y*y)/8))'],
                'goal': {'x': -7.0, 'y': 7.0},
                'goal_radius': 1.5,
                'water_level': 0.0,
                'bounds': {'x_min': -20.0, 'x_max': 20.0, 'y_min': -20.0, 'y_max': 20.0},
                'sand_zones': [{'x': -3.0, 'y': 3.0, 'radius': 1.0}],
                'observation_grid': 16,
            },
            'physics': {
                'solver': 'rk4',
                'gravity': 9.81,
                'step_size': 0.001,
                'rest_velocity': 0.01,
                'grass_kinetic_friction': 0.1,
                'grass_static_friction': 0.2,
                'sand_kinetic_friction': 0.7,
                'sand_static_friction': 1.0,
                'max_integration_steps': 100000,
            },
            'reward_parameters': {
                'reward_goal': 5.0,
                'penalty_water': -3.0,
                'penalty_sand': -1.0,
                'regression_scale': 10.0,
            },
            'actions': {
                'min_force': 1.0,
                'max_force': 5.0,
            },
            'simulation': {
                'episodes': 10,
                'radius': 5.0,
                'steps': 10,
                'random_fraction': 0.2,
                'seed': 2024,
                'parallel': False,
                'executor': 'process',
                'workers': None,
            },
            'ppo': {
                'learning_rate': 3e-4,
                'clip_epsilon': 0.2,
                'gamma': 0.99,
                'n_epochs': 4,
                'batch_size': 64,
                'vf_coef': 0.5,
                'max_grad_norm': 0.5,
                'net_arch': [64, 64],
                'initial_sigma_raw': 0.0,
            },
            'sb3': {
                'total_timesteps': 20000,
                'max_shots': 10,
                'learning_rate': 3e-4,
                'n_steps': 256,
                'batch_size': 64,
                'n_epochs': 10,
                'gamma': 0.99,
                'gae_lambda': 0.95,
                'clip_range': 0.2,
                'ent_coef': 0.0,
                'vf_coef': 0.5,
                'net_arch': [64, 64],
            },
        }

    def _calculate_derived_values(self):
        """Calculate derived values used on the hot path of the simulator"""
        course = self.config['course']
        physics = self.config['physics']
        rewards = self.config['reward_parameters']
        actions = self.config['actions']

        self.goal_x = float(course['goal']['x'])
        self.goal_y = float(course['goal']['y'])
        self.goal_radius = float(course['goal_radius'])
        self.water_level = float(course['water_level'])

        bounds = course['bounds']
        self.x_min, self.x_max = float(bounds['x_min']), float(bounds['x_max'])
        self.y_min, self.y_max = float(bounds['y_min']), float(bounds['y_max'])
        if self.x_min >= self.x_max or self.y_min >= self.y_max:
            raise ValueError("Invalid course bounds. Check course configuration.")

        self.sand_zones = [(float(z['x']), float(z['y']), float(z['radius']))
                           for z in course.get('sand_zones') or []]
        self.observation_grid = int(course['observation_grid'])
        self.height_functions = list(course['height_functions'])

        self.solver_name = str(physics['solver']).lower()
        self.gravity = float(physics['gravity'])
        self.step_size = float(physics['step_size'])
        self.rest_velocity = float(physics['rest_velocity'])
        self.max_integration_steps = int(physics['max_integration_steps'])
        if self.step_size <= 0:
            raise ValueError("Physics step_size must be positive.")

        self.reward_goal = float(rewards['reward_goal'])
        self.penalty_water = float(rewards['penalty_water'])
        self.penalty_sand = float(rewards['penalty_sand'])
        self.regression_scale = float(rewards['regression_scale'])

        self.min_force = float(actions['min_force'])
        self.max_force = float(actions['max_force'])
        self.min_angle = 0.0
        self.max_angle = 2 * math.pi

    @property
    def simulation(self):
        return self.config['simulation']

    @property
    def ppo(self):
        return self.config['ppo']

    @property
    def sb3(self):
        return self.config['sb3']

    @property
    def physics(self):
        return self.config['physics']

    def with_overrides(self, overrides) -> "CourseConfig":
        """Return a new config with `overrides` merged on top of this one"""
        clone = copy.deepcopy(self)
        _deep_update(clone.config, overrides)
        clone._calculate_derived_values()
        return clone


def _deep_update(base, updates):
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_update(base[key], value)
        else:
            base[key] = value
    return base
