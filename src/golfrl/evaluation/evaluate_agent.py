"""
evaluate_agent.py - Deterministic evaluation of a shot policy on GolfEnv

Works for anything with a stable-baselines3 style predict(obs, deterministic) method;
PPOAgentPolicy adapts the hand-written PPO agent to that interface.
"""

from typing import Any, Dict

import numpy as np

from ..utils.ppo_types import State


class PPOAgentPolicy:
    """predict() wrapper so the PPO agent can be evaluated like an SB3 model"""

    def __init__(self, agent, env, rng=None):
        self.agent = agent
        self.env = env
        self.rng = rng if rng is not None else np.random.default_rng()

    def predict(self, obs, deterministic=True):
        state = State(obs)
        if deterministic:
            shot = self.agent.select_greedy_action(state)
        else:
            shot = self.agent.select_action(state, self.rng)
        return self.env.unscale_action(shot), None


def evaluate_model_comprehensive(model, env, n_episodes: int = 20, algorithm: str = "",
                                 seed: int = None) -> Dict[str, Any]:
    """
    Evaluate a policy over n_episodes with deterministic actions.

    Args:
        model: Object with predict(obs, deterministic=True) -> (action, state)
        env: GolfEnv instance
        n_episodes: Number of evaluation episodes
        algorithm: Algorithm name for logging
        seed: Seed for the first reset, later resets continue the env's generator

    Returns:
        Dictionary with evaluation results
    """
    if n_episodes <= 0:
        raise ValueError("n_episodes must be positive")

    episode_rewards = []
    episode_lengths = []
    success_count = 0
    water_shots = 0

    for episode in range(n_episodes):
        obs, _ = env.reset(seed=seed if episode == 0 else None)
        episode_reward = 0.0
        episode_length = 0
        done = False

        while not done:
            action, _ = model.predict(obs, deterministic=True)
            obs, reward, terminated, truncated, info = env.step(action)
            episode_reward += reward
            episode_length += 1
            water_shots += int(info.get('in_water', False))
            done = terminated or truncated

            if terminated and info.get('is_success', False):
                success_count += 1

        episode_rewards.append(episode_reward)
        episode_lengths.append(episode_length)

    return {
        'algorithm': algorithm,
        'episode_rewards': episode_rewards,
        'episode_lengths': episode_lengths,
        'mean_reward': float(np.mean(episode_rewards)),
        'std_reward': float(np.std(episode_rewards)),
        'min_reward': float(np.min(episode_rewards)),
        'max_reward': float(np.max(episode_rewards)),
        'mean_episode_length': float(np.mean(episode_lengths)),
        'water_shots': water_shots,
        'success_rate': (success_count / n_episodes) * 100.0,
        'total_episodes': n_episodes
    }
