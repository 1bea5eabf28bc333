"""
ppo_agent.py - PPO agent for the golf shot policy

Chooses shots (random exploration, policy sample or greedy) and trains the policy
on batches of episodes with the clipped-surrogate objective. A small value network
gives the baseline for the advantages A = G - V(s).
"""

import logging
import math
from typing import Dict, List, Optional

import numpy as np
import torch
import torch.nn.functional as F

from ..environments.courseconfig import CourseConfig
from ..utils.errors import EmptyBatchError
from ..utils.ppo_types import Action, Batch, State
from .policy_network import (FeedForwardNetwork, PolicyNetwork, clipped_surrogate_loss,
                             probability_tensor, softplus)

logger = logging.getLogger(__name__)

TWO_PI = 2 * math.pi


def discounted_returns(rewards: List[float], gamma: float) -> List[float]:
    """G_t = r_t + gamma * G_{t+1}, the episode ends after the last reward"""
    returns = [0.0] * len(rewards)
    running = 0.0
    for t in reversed(range(len(rewards))):
        running = rewards[t] + gamma * running
        returns[t] = running
    return returns


class PPOAgent:
    def __init__(self, observation_size: int, config: Optional[CourseConfig] = None,
                 policy: Optional[PolicyNetwork] = None, seed: Optional[int] = None):
        self.config = config if config is not None else CourseConfig()
        hyperparams = self.config.ppo

        self.min_force = self.config.min_force
        self.max_force = self.config.max_force
        self.observation_size = observation_size

        net_arch = tuple(hyperparams['net_arch'])
        if policy is None:
            policy = PolicyNetwork(
                observation_size,
                net_arch=net_arch,
                initial_means=(math.pi, (self.min_force + self.max_force) / 2),
                initial_sigma_raw=float(hyperparams['initial_sigma_raw']),
            )
        self.policy = policy
        self.value_network = FeedForwardNetwork(observation_size, 1, net_arch)

        self.clip_epsilon = float(hyperparams['clip_epsilon'])
        self.gamma = float(hyperparams['gamma'])
        self.n_epochs = int(hyperparams['n_epochs'])
        self.batch_size = int(hyperparams['batch_size'])
        self.vf_coef = float(hyperparams['vf_coef'])
        self.max_grad_norm = float(hyperparams['max_grad_norm'])

        self._parameters = list(self.policy.parameters()) + list(self.value_network.parameters())
        self.optimizer = torch.optim.Adam(self._parameters, lr=float(hyperparams['learning_rate']))
        # Only used to shuffle mini-batches
        self.rng = np.random.default_rng(seed)
        self.training_history: List[Dict[str, float]] = []

    # Action selection

    def select_random_action(self, rng) -> Action:
        force = rng.uniform(self.min_force, self.max_force)
        angle = rng.uniform(0.0, TWO_PI)
        return Action(force=float(force), angle=float(angle))

    def select_action(self, state: State, rng) -> Action:
        """Sample a shot from the policy Gaussians using the caller's generator"""
        output = self.policy.policy_output(state.values)
        angle = rng.normal(output.mu_theta, softplus(output.sigma_theta_raw))
        force = rng.normal(output.mu_force, softplus(output.sigma_force_raw))
        return self._to_valid_action(force, angle)

    def select_greedy_action(self, state: State) -> Action:
        output = self.policy.policy_output(state.values)
        return self._to_valid_action(output.mu_force, output.mu_theta)

    def _to_valid_action(self, force, angle) -> Action:
        force = float(np.clip(force, self.min_force, self.max_force))
        # Angle stays as sampled so its density under the behaviour policy is not changed by wrapping
        return Action(force=force, angle=float(angle))

    # Training

    def train_on_data(self, batches: List[Batch]) -> Dict[str, float]:
        """Run n_epochs of PPO updates over every transition in `batches`"""
        transitions = [t for batch in batches for t in batch]
        if not transitions:
            raise EmptyBatchError("No transitions to train on, refusing to update the policy")

        returns = []
        for batch in batches:
            returns.extend(discounted_returns(batch.rewards(), self.gamma))

        observations = torch.as_tensor(np.stack([t.state.values for t in transitions]), dtype=torch.float32)
        actions = torch.as_tensor(np.stack([t.action.as_array() for t in transitions]), dtype=torch.float32)
        returns_t = torch.as_tensor(np.asarray(returns), dtype=torch.float32)
        n = len(transitions)

        with torch.no_grad():
            # Behaviour probabilities come from the policy before this update
            old_probabilities = probability_tensor(self.policy(observations), actions)
            values = self.value_network(observations).squeeze(-1)
            advantages = returns_t - values
            if n > 1:
                advantages = (advantages - advantages.mean()) / (advantages.std() + 1e-8)

        policy_losses, value_losses = [], []
        for _ in range(self.n_epochs):
            permutation = torch.as_tensor(self.rng.permutation(n))
            for start in range(0, n, self.batch_size):
                idx = permutation[start:start + self.batch_size]

                new_probabilities = probability_tensor(self.policy(observations[idx]), actions[idx])
                policy_loss = clipped_surrogate_loss(new_probabilities, old_probabilities[idx],
                                                     advantages[idx], self.clip_epsilon)
                value_loss = F.mse_loss(self.value_network(observations[idx]).squeeze(-1), returns_t[idx])
                loss = policy_loss + self.vf_coef * value_loss

                self.optimizer.zero_grad()
                loss.backward()
                torch.nn.utils.clip_grad_norm_(self._parameters, max_norm=self.max_grad_norm)
                self.optimizer.step()

                policy_losses.append(policy_loss.item())
                value_losses.append(value_loss.item())

        stats = {
            'n_batches': len(batches),
            'n_transitions': n,
            'policy_loss': float(np.mean(policy_losses)),
            'value_loss': float(np.mean(value_losses)),
            'mean_episode_reward': float(np.mean([b.total_reward() for b in batches if len(b) > 0])),
        }
        self.training_history.append(stats)
        logger.info(f"PPO update on {n} transitions from {len(batches)} episodes: "
                    f"policy_loss={stats['policy_loss']:.4f}, value_loss={stats['value_loss']:.4f}, "
                    f"mean_episode_reward={stats['mean_episode_reward']:.3f}")
        return stats
