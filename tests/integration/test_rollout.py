# File: tests/integration/test_rollout.py
import logging

import numpy as np
import pytest
import torch

from conftest import make_fast_config
from golfrl.agents.ppo_agent import PPOAgent
from golfrl.environments.terrain import Terrain
from golfrl.training.rollout import (EpisodeTask, RolloutCollector, plan_episodes,
                                     run_single_episode)
from golfrl.utils.ballstate import BallState
from golfrl.utils.errors import EmptyBatchError
from golfrl.utils.ppo_types import Action


class FailingRandomAgent(PPOAgent):
    """Agent whose random exploration always blows up"""

    def select_random_action(self, rng):
        raise RuntimeError("exploration broke")


class TestEpisodePlan:
    def test_plan_layout(self):
        """Each terrain gets a random/policy pair per episode, split 20/80"""
        tasks = plan_episodes(n_terrains=2, episodes=3, radius=4.0, steps=10, random_fraction=0.2, base_seed=11)
        assert len(tasks) == 12
        assert [t.random_action for t in tasks[:4]] == [True, False, True, False]
        assert all(t.steps == 2 for t in tasks if t.random_action)
        assert all(t.steps == 8 for t in tasks if not t.random_action)
        assert {t.terrain_index for t in tasks} == {0, 1}
        assert len({t.seed for t in tasks}) == 12, "Every episode draws from its own seed"
        assert all(t.seed[0] == 11 for t in tasks)

    def test_plan_order_is_terrain_major(self):
        tasks = plan_episodes(2, 2, 1.0, 5)
        assert [(t.terrain_index, t.episode) for t in tasks] == [
            (0, 0), (0, 0), (0, 1), (0, 1), (1, 0), (1, 0), (1, 1), (1, 1)]


class TestRunSingleEpisode:
    def setup_method(self):
        torch.manual_seed(0)
        self.config = make_fast_config()
        self.terrain = Terrain.from_config(self.config)
        self.goal = BallState(self.config.goal_x, self.config.goal_y)
        self.agent = PPOAgent(self.terrain.observation_size, config=self.config, seed=0)

    def test_transitions_chain(self):
        """Each shot starts where the previous one settled"""
        task = EpisodeTask(0, 0, True, 6, 3.0, (1, 0, 0, 0))
        result = run_single_episode(task, self.terrain, self.goal, self.config, self.agent)
        batch = result.batch

        assert 1 <= len(batch) <= 6
        for first, second in zip(batch, list(batch)[1:]):
            assert first.next_state == second.state
        assert all(np.isfinite(t.reward) for t in batch)
        assert result.total_reward == pytest.approx(batch.total_reward())

    def test_observation_marks_ball_and_goal(self):
        task = EpisodeTask(0, 0, False, 1, 3.0, (1, 0, 0, 1))
        result = run_single_episode(task, self.terrain, self.goal, self.config, self.agent)
        state = result.batch[0].state
        assert len(state) == self.terrain.observation_size
        assert np.sum(state.values == -1.0) == 1

    def test_same_seed_same_episode(self):
        task = EpisodeTask(0, 3, False, 5, 3.0, (9, 0, 3, 1))
        a = run_single_episode(task, self.terrain, self.goal, self.config, self.agent)
        b = run_single_episode(task, self.terrain, self.goal, self.config, self.agent)
        assert a.batch == b.batch

    def test_win_ends_episode(self):
        """Starting inside the goal radius wins on the first shot"""
        config = make_fast_config(course={'goal_radius': 100.0})
        task = EpisodeTask(0, 0, True, 10, 3.0, (1, 0, 0, 0))
        result = run_single_episode(task, self.terrain, self.goal, config, self.agent)
        assert result.won
        assert len(result.batch) == 1
        assert result.batch[0].reward == config.reward_goal

    def test_off_axis_approach_wins(self, monkeypatch):
        """A shot rolling past the side of the goal ends the episode as a win"""

        class StraightShotAgent(PPOAgent):
            def select_random_action(self, rng):
                return Action(5.0, 0.0)

        agent = StraightShotAgent(self.terrain.observation_size, config=self.config, seed=0)
        start = BallState(self.goal.x + 3.0, self.goal.y + 1.0)
        task = EpisodeTask(0, 0, True, 5, 3.0, (1, 0, 0, 0))
        monkeypatch.setattr("golfrl.training.rollout.sample_start_position", lambda goal, radius, rng: start.copy())
        result = run_single_episode(task, self.terrain, self.goal, self.config, agent)
        assert result.won
        assert len(result.batch) == 1
        assert result.batch[0].reward == self.config.reward_goal


class TestRolloutCollector:
    """Sequential and pooled collection over the same episode plan"""

    def setup_method(self):
        torch.manual_seed(0)
        self.config = make_fast_config()
        self.terrains = [Terrain.from_config(self.config),
                         Terrain.from_config(self.config, "0.05*cos(0.2*y) + 0.4")]
        self.goal = BallState(self.config.goal_x, self.config.goal_y)
        self.agent = PPOAgent(self.terrains[0].observation_size, config=self.config, seed=0)

    def test_sequential_collect(self):
        collector = RolloutCollector(self.terrains, self.goal, self.config, self.agent)
        batches, stats = collector.collect(episodes=2, radius=3.0, steps=5)
        assert len(batches) == 2 * 2 * 2
        assert stats.episodes == 8
        assert stats.failures == 0
        assert stats.transitions == sum(len(b) for b in batches)
        assert 0.0 <= stats.win_rate <= 1.0

    def test_parallel_matches_sequential(self):
        """Thread-pool collection returns the same batches in the same order"""
        collector = RolloutCollector(self.terrains, self.goal, self.config, self.agent,
                                     max_workers=3, executor='thread')
        sequential, _ = collector.collect(episodes=2, radius=3.0, steps=5, parallel=False)
        parallel, stats = collector.collect(episodes=2, radius=3.0, steps=5, parallel=True)
        assert parallel == sequential
        assert stats.failures == 0

    def test_failed_episodes_are_logged_and_dropped(self, caplog):
        agent = FailingRandomAgent(self.terrains[0].observation_size, config=self.config, seed=0)
        collector = RolloutCollector(self.terrains, self.goal, self.config, agent, executor='thread')

        for parallel in (False, True):
            caplog.clear()
            with caplog.at_level(logging.ERROR, logger="golfrl.training.rollout"):
                batches, stats = collector.collect(episodes=2, radius=3.0, steps=5, parallel=parallel)
            assert stats.failures == 4
            assert stats.episodes == 4
            assert len(batches) == 4
            assert "exploration broke" in caplog.text

    def test_run_trains_agent(self):
        collector = RolloutCollector(self.terrains[:1], self.goal, self.config, self.agent)
        batches, stats, training_stats = collector.run(episodes=1, radius=3.0, steps=5)
        assert training_stats['n_transitions'] == stats.transitions
        assert len(self.agent.training_history) == 1

    def test_run_without_data_raises(self):
        collector = RolloutCollector(self.terrains, self.goal, self.config, self.agent)
        # Zero shots per episode leaves every batch empty
        with pytest.raises(EmptyBatchError):
            collector.run(episodes=1, radius=3.0, steps=0)

    def test_rejects_unknown_executor(self):
        with pytest.raises(ValueError):
            RolloutCollector(self.terrains, self.goal, self.config, self.agent, executor='cluster')

    def test_rejects_empty_terrain_list(self):
        with pytest.raises(ValueError):
            RolloutCollector([], self.goal, self.config, self.agent)

    @pytest.mark.slow
    def test_process_pool_matches_sequential(self):
        """Spawned worker processes reproduce the sequential batches"""
        collector = RolloutCollector(self.terrains, self.goal, self.config, self.agent,
                                     max_workers=2, executor='process')
        # Workers run torch single-threaded, match that here
        threads = torch.get_num_threads()
        torch.set_num_threads(1)
        try:
            sequential, _ = collector.collect(episodes=1, radius=3.0, steps=5, parallel=False)
            parallel, stats = collector.collect(episodes=1, radius=3.0, steps=5, parallel=True)
        finally:
            torch.set_num_threads(threads)
        assert stats.failures == 0
        assert parallel == sequential
