# File: tests/integration/test_training_integration.py
import os

import pytest
import yaml

from conftest import FAST_OVERRIDES
from golfrl.environments.courseconfig import CourseConfig
from golfrl.training.train_golf_rl import GolfTrainingSystem, main


class TestTrainingIntegration:
    """End-to-end runs of the golfrl-train entry point on a small course"""

    @pytest.fixture
    def config_file(self, tmp_path):
        path = tmp_path / "fast_course.yaml"
        path.write_text(yaml.safe_dump(FAST_OVERRIDES))
        return str(path)

    def test_experiment_directory_structure(self, tmp_path, config_file):
        system = GolfTrainingSystem(config_path=config_file, base_output_dir=str(tmp_path / "runs"))
        assert os.path.isdir(system.output_dir)
        assert os.path.isdir(os.path.join(system.output_dir, "logs"))
        assert os.path.isdir(os.path.join(system.output_dir, "tensorboard_logs"))
        assert system.config.step_size == FAST_OVERRIDES['physics']['step_size']

    def test_ppo_mode(self, tmp_path, config_file):
        results = main(['--config', config_file, '--mode', 'ppo', '--episodes', '1', '--steps', '5',
                        '--radius', '3', '--output-dir', str(tmp_path / "runs")])
        assert results['rollout']['episodes'] == 2
        assert results['rollout']['failures'] == 0
        assert results['training']['n_transitions'] == results['rollout']['transitions']
        assert results['evaluation']['total_episodes'] == 10

    def test_ppo_mode_parallel(self, tmp_path, config_file):
        results = main(['--config', config_file, '--episodes', '1', '--steps', '5', '--parallel',
                        '--output-dir', str(tmp_path / "runs")])
        assert results['rollout']['episodes'] == 2

    def test_sb3_mode(self, tmp_path, config_file):
        results = main(['--config', config_file, '--mode', 'sb3', '--timesteps', '64',
                        '--output-dir', str(tmp_path / "runs")])
        assert results['evaluation']['total_episodes'] == 10

    def test_failure_is_reraised(self, tmp_path):
        path = tmp_path / "bad_course.yaml"
        overrides = dict(FAST_OVERRIDES)
        overrides['course'] = dict(FAST_OVERRIDES['course'], height_functions=["__import__('os')"])
        path.write_text(yaml.safe_dump(overrides))
        with pytest.raises(ValueError):
            main(['--config', str(path), '--episodes', '1', '--steps', '2',
                  '--output-dir', str(tmp_path / "runs")])

    def test_bundled_config_is_valid(self):
        config = CourseConfig()
        assert config.simulation['episodes'] > 0
        assert config.sb3['n_steps'] % config.sb3['batch_size'] == 0
