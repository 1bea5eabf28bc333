"""
Golf RL Training System - train the shot policy on the simulated course

Two modes:
    ppo - hand-written PPO agent trained on batches from the rollout collector
          (sequential or parallel episodes)
    sb3 - stable-baselines3 PPO on the GolfEnv gymnasium wrapper, as a baseline

Usage:
    golfrl-train --mode ppo --episodes 20 --steps 10 --parallel
    golfrl-train --mode sb3 --timesteps 20000
"""

import argparse
import datetime
import logging
import os
import time
import traceback
from typing import Any, Dict, Optional

import torch
from stable_baselines3 import PPO
from stable_baselines3.common.monitor import Monitor

from ..agents.ppo_agent import PPOAgent
from ..environments.courseconfig import CourseConfig
from ..environments.golfenv import GolfEnv
from ..evaluation.evaluate_agent import PPOAgentPolicy, evaluate_model_comprehensive
from .physics_simulator import PhysicsSimulator


class GolfTrainingSystem:
    """Owns the run directory, logging and configuration of one training run"""

    def __init__(self, config_path="golf_config.yaml", base_output_dir="experiments/runs", config=None):
        self.config = config if config is not None else CourseConfig(config_path)
        self.base_output_dir = base_output_dir

        # Create output directory structure
        self.timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
        self.output_dir = self.create_experiment_directory(self.timestamp, self.base_output_dir)

        # Setup logging
        self._setup_logging()

    def create_experiment_directory(self, timestamp=None, base_dir="experiments/runs") -> str:
        """Create experiment directory with logs and tensorboard subdirectories"""
        if timestamp is None:
            timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")

        experiment_dir = os.path.join(base_dir, f"golf_training_{timestamp}")
        for dir_path in [experiment_dir,
                         os.path.join(experiment_dir, "logs"),
                         os.path.join(experiment_dir, "tensorboard_logs")]:
            os.makedirs(dir_path, exist_ok=True)
        return experiment_dir

    def _setup_logging(self):
        """Log to the run directory and to the console"""
        log_file = os.path.join(self.output_dir, "training_log.txt")
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s - %(levelname)s - %(message)s',
            handlers=[
                logging.FileHandler(log_file),
                logging.StreamHandler()
            ]
        )
        self.logger = logging.getLogger(__name__)


def create_ppo_model(env: Monitor, hyperparams: Dict[str, Any],
                     tensorboard_log: Optional[str] = None) -> PPO:
    """
    Create stable-baselines3 PPO model for the golf environment.

    Args:
        env: Training environment
        hyperparams: The `sb3` section of the course configuration
        tensorboard_log: TensorBoard log directory

    Returns:
        Configured PPO model
    """
    return PPO(
        policy="MlpPolicy",
        env=env,
        learning_rate=hyperparams["learning_rate"],
        n_steps=hyperparams["n_steps"],
        batch_size=hyperparams["batch_size"],
        n_epochs=hyperparams["n_epochs"],
        gamma=hyperparams["gamma"],
        gae_lambda=hyperparams["gae_lambda"],
        clip_range=hyperparams["clip_range"],
        ent_coef=hyperparams["ent_coef"],
        vf_coef=hyperparams["vf_coef"],
        max_grad_norm=0.5,
        normalize_advantage=True,
        policy_kwargs=dict(
            net_arch=list(hyperparams["net_arch"]),
            activation_fn=torch.nn.ReLU
        ),
        verbose=0,
        device="cpu",
        tensorboard_log=tensorboard_log
    )


def run_ppo_training(training_system: GolfTrainingSystem, episodes: int, radius: float,
                     steps: int, parallel: bool = False, eval_episodes: int = 10) -> Dict[str, Any]:
    """Collect episodes with the rollout collector, train the PPO agent once, evaluate"""
    config = training_system.config
    logger = training_system.logger

    simulator = PhysicsSimulator(config=config)
    agent = PPOAgent(simulator.terrain.observation_size, config=config, seed=config.simulation['seed'])
    simulator.agent = agent

    logger.info(f"Terrains: {[t.expression for t in simulator.functions]}")
    logger.info(f"Goal: ({simulator.goal.x}, {simulator.goal.y}), start radius {radius}, "
                f"{episodes} episodes x {steps} steps, parallel={parallel}")

    start = time.time()
    if parallel:
        simulator.run_simulation_parallel(episodes, radius, steps)
    else:
        simulator.run_simulation(episodes, radius, steps)
    logger.info(f"Rollout and training took {time.time() - start:.1f}s")

    eval_env = GolfEnv(config=config, radius=radius)
    evaluation = evaluate_model_comprehensive(PPOAgentPolicy(agent, eval_env), eval_env,
                                              n_episodes=eval_episodes, algorithm="PPO (golfrl)",
                                              seed=config.simulation['seed'])
    logger.info(f"Evaluation: mean reward {evaluation['mean_reward']:.3f} "
                f"± {evaluation['std_reward']:.3f}, success rate {evaluation['success_rate']:.1f}%")

    stats = simulator.last_rollout_stats
    return {
        'rollout': {'episodes': stats.episodes, 'failures': stats.failures, 'wins': stats.wins,
                    'transitions': stats.transitions, 'mean_total_reward': stats.mean_total_reward},
        'training': simulator.last_training_stats,
        'evaluation': evaluation,
    }


def run_sb3_training(training_system: GolfTrainingSystem, total_timesteps: int,
                     radius: float, eval_episodes: int = 10) -> Dict[str, Any]:
    """Baseline: stable-baselines3 PPO on GolfEnv"""
    config = training_system.config
    logger = training_system.logger

    env = Monitor(GolfEnv(config=config, radius=radius), os.path.join(training_system.output_dir, "logs"))
    model = create_ppo_model(env, config.sb3, os.path.join(training_system.output_dir, "tensorboard_logs"))

    logger.info(f"Starting SB3 PPO training for {total_timesteps:,} timesteps...")
    start = time.time()
    model.learn(total_timesteps=total_timesteps, progress_bar=False)
    logger.info(f"SB3 PPO training completed in {time.time() - start:.1f}s")

    eval_env = GolfEnv(config=config, radius=radius)
    evaluation = evaluate_model_comprehensive(model, eval_env, n_episodes=eval_episodes,
                                              algorithm="PPO (stable-baselines3)",
                                              seed=config.simulation['seed'])
    logger.info(f"Evaluation: mean reward {evaluation['mean_reward']:.3f} "
                f"± {evaluation['std_reward']:.3f}, success rate {evaluation['success_rate']:.1f}%")
    env.close()
    return {'evaluation': evaluation}


def main(argv=None):
    """Main function with user options"""
    parser = argparse.ArgumentParser(description='Golf RL Training Pipeline')
    parser.add_argument('--config', default='golf_config.yaml',
                        help='Course configuration file (default: the packaged golf_config.yaml)')
    parser.add_argument('--mode', choices=['ppo', 'sb3'], default='ppo',
                        help='ppo: golfrl PPO agent on collected episodes, sb3: stable-baselines3 baseline')
    parser.add_argument('--episodes', type=int, default=None, help='Episodes per terrain')
    parser.add_argument('--steps', type=int, default=None, help='Shot budget per episode pair')
    parser.add_argument('--radius', type=float, default=None, help='Start radius around the goal')
    parser.add_argument('--parallel', action='store_true', help='Collect episodes on a worker pool')
    parser.add_argument('--timesteps', type=int, default=None, help='SB3 training timesteps')
    parser.add_argument('--output-dir', default='experiments/runs', help='Base directory for run outputs')
    args = parser.parse_args(argv)

    training_system = GolfTrainingSystem(config_path=args.config, base_output_dir=args.output_dir)
    logger = training_system.logger
    simulation = training_system.config.simulation

    episodes = args.episodes if args.episodes is not None else simulation['episodes']
    steps = args.steps if args.steps is not None else simulation['steps']
    radius = args.radius if args.radius is not None else simulation['radius']
    parallel = args.parallel or bool(simulation['parallel'])

    logger.info("=" * 60)
    logger.info(f"STARTING GOLF RL TRAINING ({args.mode})")
    logger.info("=" * 60)
    logger.info(f"Output directory: {training_system.output_dir}")

    try:
        if args.mode == 'ppo':
            results = run_ppo_training(training_system, episodes, radius, steps, parallel=parallel)
        else:
            timesteps = args.timesteps if args.timesteps is not None else training_system.config.sb3['total_timesteps']
            results = run_sb3_training(training_system, timesteps, radius)
    except Exception as e:
        logger.error(f"Training pipeline failed: {e}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        raise

    logger.info("Training pipeline completed")
    return results


if __name__ == "__main__":
    main()
