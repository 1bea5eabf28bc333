import sys
from pathlib import Path

import pytest

# Add src to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from golfrl.environments.courseconfig import CourseConfig  # noqa: E402

FLAT_TERRAIN = "0.1*sin(0.1*x) + 0.5"

# Coarse step and high friction so every shot settles within a few hundred steps
FAST_OVERRIDES = {
    'course': {
        'height_functions': [FLAT_TERRAIN],
        'sand_zones': [],
        'observation_grid': 8,
    },
    'physics': {
        'step_size': 0.01,
        'rest_velocity': 0.05,
        'grass_kinetic_friction': 0.5,
        'grass_static_friction': 0.6,
        'sand_kinetic_friction': 0.7,
        'sand_static_friction': 1.0,
        'max_integration_steps': 5000,
    },
    'simulation': {'radius': 3.0, 'seed': 7, 'executor': 'thread', 'workers': 2},
    'ppo': {'net_arch': [16, 16], 'batch_size': 8, 'n_epochs': 2},
    'sb3': {'max_shots': 5, 'n_steps': 32, 'batch_size': 16, 'n_epochs': 2, 'net_arch': [16, 16]},
}


def make_fast_config(**sections):
    """Default config with FAST_OVERRIDES plus any extra section overrides"""
    config = CourseConfig(config_path=None, overrides=FAST_OVERRIDES)
    if sections:
        config = config.with_overrides(sections)
    return config


@pytest.fixture
def fast_config():
    return make_fast_config()
