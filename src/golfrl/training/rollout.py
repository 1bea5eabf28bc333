"""
rollout.py - Episode collection for PPO training

Every terrain gets `episodes` pairs of episodes: a short random-exploration episode
(random_fraction of the step budget) followed by a policy-driven one (the rest).
The same episode plan feeds the sequential and the parallel runner, and each
episode draws from its own numpy Generator seeded by
(base_seed, terrain_index, episode, phase), so both runners produce identical batches.

Parallel episodes run in a ProcessPoolExecutor (or a thread pool). Each task builds
its own engine and ball; only the finished Batch comes back. Results are read in
submission order and a failing episode is logged and dropped.
"""

import logging
import multiprocessing as mp
import os
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..environments.golf_simulator import compute_reward, hit, sample_start_position
from ..physics.engine import PhysicsEngine
from ..utils.ballstate import BallState
from ..utils.errors import EmptyBatchError
from ..utils.ppo_types import Batch, State, Transition

logger = logging.getLogger(__name__)

RANDOM_PHASE = 0
POLICY_PHASE = 1


@dataclass(frozen=True)
class EpisodeTask:
    terrain_index: int
    episode: int
    random_action: bool
    steps: int
    radius: float
    seed: Tuple[int, ...]


@dataclass
class EpisodeResult:
    task: EpisodeTask
    batch: Batch
    won: bool
    total_reward: float


@dataclass
class RolloutStats:
    episodes: int = 0
    failures: int = 0
    wins: int = 0
    transitions: int = 0
    mean_total_reward: float = 0.0

    @property
    def win_rate(self) -> float:
        return self.wins / self.episodes if self.episodes else 0.0


def plan_episodes(n_terrains: int, episodes: int, radius: float, steps: int,
                  random_fraction: float = 0.2, base_seed: int = 2024) -> List[EpisodeTask]:
    """Random-exploration / policy-driven episode pairs for every terrain"""
    random_steps = int(round(steps * random_fraction))
    policy_steps = int(round(steps * (1 - random_fraction)))
    tasks = []
    for terrain_index in range(n_terrains):
        for episode in range(episodes):
            tasks.append(EpisodeTask(terrain_index, episode, True, random_steps, radius,
                                     (base_seed, terrain_index, episode, RANDOM_PHASE)))
            tasks.append(EpisodeTask(terrain_index, episode, False, policy_steps, radius,
                                     (base_seed, terrain_index, episode, POLICY_PHASE)))
    return tasks


def run_single_episode(task: EpisodeTask, terrain, goal: BallState, config, agent) -> EpisodeResult:
    """Play one episode from a random start on the circle around the goal"""
    rng = np.random.default_rng(list(task.seed))
    engine = PhysicsEngine.from_config(config, terrain)

    ball = sample_start_position(goal, task.radius, rng)
    last_position = ball.copy()
    transitions = []
    total_reward = 0.0
    won = False

    for _ in range(task.steps):
        state = State(terrain.observation(ball, goal))
        if task.random_action:
            action = agent.select_random_action(rng)
        else:
            action = agent.select_action(state, rng)

        outcome = hit(ball, action, terrain, engine, goal, config)
        won = outcome.state.is_in_goal(goal, config.goal_radius)
        reward = compute_reward(outcome.state, last_position, goal, won, outcome.in_hazard, terrain, config)
        total_reward += reward

        # Next shot is played from where the ball settled
        ball = BallState(outcome.state.x, outcome.state.y, 0.0, 0.0)
        next_state = State(terrain.observation(ball, goal))
        transitions.append(Transition(state, action, reward, next_state))
        last_position = ball.copy()
        if won:
            break

    logger.debug(f"Episode {task.episode} (terrain {task.terrain_index}, "
                 f"{'random' if task.random_action else 'policy'}): total reward {total_reward:.3f}")
    return EpisodeResult(task, Batch(transitions), won, total_reward)


def _init_worker():
    # One torch thread per worker, the pool already uses every core
    import torch
    torch.set_num_threads(1)


def _run_task(task, terrains, goal, config, agent):
    return run_single_episode(task, terrains[task.terrain_index], goal, config, agent)


class RolloutCollector:
    """Runs planned episodes sequentially or on a worker pool and trains the agent on them"""

    def __init__(self, terrains: Sequence, goal: BallState, config, agent,
                 max_workers: Optional[int] = None, executor: Optional[str] = None):
        if not terrains:
            raise ValueError("RolloutCollector needs at least one terrain")
        self.terrains = list(terrains)
        self.goal = goal
        self.config = config
        self.agent = agent

        simulation = config.simulation
        self.random_fraction = float(simulation['random_fraction'])
        self.base_seed = int(simulation['seed'])
        self.max_workers = max_workers or simulation.get('workers') or os.cpu_count() or 1
        self.executor = (executor or simulation.get('executor') or 'process').lower()
        if self.executor not in ('process', 'thread'):
            raise ValueError(f"Unknown executor {self.executor!r}, use 'process' or 'thread'")

    def plan(self, episodes: int, radius: float, steps: int) -> List[EpisodeTask]:
        return plan_episodes(len(self.terrains), episodes, radius, steps,
                             self.random_fraction, self.base_seed)

    def collect(self, episodes: int, radius: float, steps: int,
                parallel: bool = False) -> Tuple[List[Batch], RolloutStats]:
        tasks = self.plan(episodes, radius, steps)
        if parallel:
            results, failures = self._run_parallel(tasks)
        else:
            results, failures = self._run_sequential(tasks)

        batches = [r.batch for r in results]
        stats = RolloutStats(
            episodes=len(results),
            failures=failures,
            wins=sum(r.won for r in results),
            transitions=sum(len(b) for b in batches),
            mean_total_reward=float(np.mean([r.total_reward for r in results])) if results else 0.0,
        )
        logger.info(f"Collected {stats.episodes} episodes ({stats.transitions} transitions, "
                    f"{stats.wins} wins, {stats.failures} failed), "
                    f"mean total reward {stats.mean_total_reward:.3f}")
        return batches, stats

    def _run_sequential(self, tasks):
        results, failures = [], 0
        for task in tasks:
            try:
                results.append(run_single_episode(task, self.terrains[task.terrain_index],
                                                  self.goal, self.config, self.agent))
            except Exception:
                failures += 1
                logger.exception(f"Episode {task.episode} on terrain {task.terrain_index} failed, dropping it")
            if not task.random_action:
                logger.info(f"Episode: {task.episode}")
        return results, failures

    def _make_executor(self):
        if self.executor == 'thread':
            return ThreadPoolExecutor(max_workers=self.max_workers)
        return ProcessPoolExecutor(max_workers=self.max_workers, mp_context=mp.get_context("spawn"),
                                   initializer=_init_worker)

    def _run_parallel(self, tasks):
        results, failures = [], 0
        with self._make_executor() as pool:
            futures = [pool.submit(_run_task, task, self.terrains, self.goal, self.config, self.agent)
                       for task in tasks]
            # Read back in submission order, the single writer to `results`
            for task, future in zip(tasks, futures):
                try:
                    results.append(future.result())
                except Exception:
                    failures += 1
                    logger.exception(f"Episode {task.episode} on terrain {task.terrain_index} failed in worker, "
                                     f"dropping it")
        return results, failures

    def run(self, episodes: int, radius: float, steps: int, parallel: bool = False):
        """Collect every planned episode, then train the agent once on all of them"""
        batches, stats = self.collect(episodes, radius, steps, parallel=parallel)
        if not batches or stats.transitions == 0:
            raise EmptyBatchError(f"Rollout produced no training data ({stats.failures} episodes failed)")
        training_stats = self.agent.train_on_data(batches)
        return batches, stats, training_stats
