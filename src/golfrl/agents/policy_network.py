"""
policy_network.py - Gaussian shot policy and the PPO clipped-surrogate loss

The policy maps an observation to four raw values
    [mu_theta, sigma_theta_raw, mu_force, sigma_force_raw]
interpreted as two independent Gaussians:
    theta ~ N(mu_theta, softplus(sigma_theta_raw))
    force ~ N(mu_force, softplus(sigma_force_raw))

The network itself is a generic FeedForwardNetwork; PolicyNetwork only adds the
probability and loss logic on top of it. Every probability is floored at
MIN_PROBABILITY so the PPO ratio prob_new / prob_old is always defined.

Float API (compute_probability, compute_loss) and tensor API (probability_tensor,
clipped_surrogate_loss) use the same formula; the trainer uses the tensor one.
"""

import math
from typing import Sequence

import numpy as np
import torch
import torch.nn as nn
import torch.nn.functional as F

from ..utils.ppo_types import Action, PolicyOutput

MIN_PROBABILITY = 1e-10
# softplus underflows to 0.0 for very negative inputs
MIN_SIGMA = 1e-6
SQRT_TWO_PI = math.sqrt(2 * math.pi)


class FeedForwardNetwork(nn.Module):
    """Plain MLP: Linear + ReLU hidden layers, linear output layer"""

    def __init__(self, input_size: int, output_size: int, net_arch=(64, 64), activation_fn=nn.ReLU):
        super().__init__()
        layers = []
        last = input_size
        for width in net_arch:
            layers.append(nn.Linear(last, width))
            layers.append(activation_fn())
            last = width
        layers.append(nn.Linear(last, output_size))
        self.layers = nn.Sequential(*layers)
        self.input_size = input_size
        self.output_size = output_size

    def forward(self, x):
        return self.layers(x)


def softplus(x: float) -> float:
    """log(1 + exp(x)), written so large x does not overflow"""
    return float(np.logaddexp(0.0, x))


def gaussian_pdf(value, mean, std):
    return math.exp(-((value - mean) ** 2) / (2 * std ** 2)) / (SQRT_TWO_PI * std)


def compute_probability(output: PolicyOutput, action: Action) -> float:
    """Joint density of (angle, force) under the policy output, never below MIN_PROBABILITY"""
    sigma_theta = max(softplus(output.sigma_theta_raw), MIN_SIGMA)
    sigma_force = max(softplus(output.sigma_force_raw), MIN_SIGMA)

    prob_theta = gaussian_pdf(action.angle, output.mu_theta, sigma_theta)
    prob_force = gaussian_pdf(action.force, output.mu_force, sigma_force)

    probability = prob_theta * prob_force
    return max(probability, MIN_PROBABILITY)


def compute_loss(policy_outputs: Sequence[PolicyOutput], advantages: Sequence[float],
                 old_probabilities: Sequence[float], epsilon: float,
                 actions: Sequence[Action]) -> float:
    """PPO clipped-surrogate loss over parallel per-sample sequences

    ratio     = prob_new / prob_old
    surrogate = min(ratio * A, clamp(ratio, 1 - eps, 1 + eps) * A)
    loss      = -mean(surrogate)
    """
    n = len(advantages)
    if n == 0:
        raise ValueError("compute_loss needs at least one sample")
    if not (len(policy_outputs) == len(old_probabilities) == len(actions) == n):
        raise ValueError("policy_outputs, advantages, old_probabilities and actions must have equal length")

    total = 0.0
    for output, advantage, old_probability, action in zip(policy_outputs, advantages, old_probabilities, actions):
        ratio = compute_probability(output, action) / old_probability
        clipped_ratio = max(min(ratio, 1 + epsilon), 1 - epsilon)
        total += min(ratio * advantage, clipped_ratio * advantage)
    return -total / n


def probability_tensor(outputs: torch.Tensor, actions: torch.Tensor) -> torch.Tensor:
    """Batched, differentiable compute_probability

    outputs: (N, 4) raw policy values; actions: (N, 2) columns [angle, force]
    """
    mu_theta, sigma_theta_raw, mu_force, sigma_force_raw = outputs.unbind(dim=-1)
    sigma_theta = torch.clamp(F.softplus(sigma_theta_raw), min=MIN_SIGMA)
    sigma_force = torch.clamp(F.softplus(sigma_force_raw), min=MIN_SIGMA)
    theta, force = actions.unbind(dim=-1)

    prob_theta = torch.exp(-(theta - mu_theta) ** 2 / (2 * sigma_theta ** 2)) / (SQRT_TWO_PI * sigma_theta)
    prob_force = torch.exp(-(force - mu_force) ** 2 / (2 * sigma_force ** 2)) / (SQRT_TWO_PI * sigma_force)
    return torch.clamp(prob_theta * prob_force, min=MIN_PROBABILITY)


def clipped_surrogate_loss(new_probabilities: torch.Tensor, old_probabilities: torch.Tensor,
                           advantages: torch.Tensor, epsilon: float) -> torch.Tensor:
    ratio = new_probabilities / old_probabilities
    clipped = torch.clamp(ratio, 1 - epsilon, 1 + epsilon)
    return -torch.min(ratio * advantages, clipped * advantages).mean()


class PolicyNetwork(nn.Module):
    """Shot policy: FeedForwardNetwork with a 4-value Gaussian head"""

    OUTPUT_SIZE = 4

    def __init__(self, observation_size: int, net_arch=(64, 64), initial_means=(0.0, 0.0),
                 initial_sigma_raw=0.0, min_probability=MIN_PROBABILITY):
        super().__init__()
        self.network = FeedForwardNetwork(observation_size, self.OUTPUT_SIZE, net_arch)
        self.observation_size = observation_size
        self.min_probability = min_probability

        # Start close to the given means with a fixed spread, the hidden layers keep the default init
        last_layer = self.network.layers[-1]
        with torch.no_grad():
            last_layer.weight.mul_(0.01)
            mu_theta, mu_force = initial_means
            last_layer.bias.copy_(torch.tensor([mu_theta, initial_sigma_raw, mu_force, initial_sigma_raw]))

    def forward(self, observations: torch.Tensor) -> torch.Tensor:
        return self.network(observations)

    def forward_tensor(self, observations) -> torch.Tensor:
        obs = torch.as_tensor(np.array(observations, dtype=np.float32))
        if obs.dim() == 1:
            obs = obs.unsqueeze(0)
        return self(obs)

    @torch.no_grad()
    def policy_output(self, observation) -> PolicyOutput:
        """Run a single observation through the network"""
        raw = self.forward_tensor(observation)[0]
        return PolicyOutput.from_sequence(raw.cpu().numpy())

    def compute_probability(self, output: PolicyOutput, action: Action) -> float:
        return max(compute_probability(output, action), self.min_probability)

    def compute_loss(self, policy_outputs, advantages, old_probabilities, epsilon, actions) -> float:
        return compute_loss(policy_outputs, advantages, old_probabilities, epsilon, actions)
