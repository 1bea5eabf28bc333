# File: tests/unit/test_reward_function.py
import math

import pytest

from conftest import make_fast_config
from golfrl.environments.golf_simulator import compute_reward
from golfrl.environments.terrain import Terrain
from golfrl.utils.ballstate import BallState


class TestRewardFunction:
    """Shaped shot reward: goal bonus, hazard penalties, progress and regression"""

    def setup_method(self):
        self.config = make_fast_config()
        self.goal = BallState(-7.0, 7.0)
        self.terrain = Terrain("1", sand_zones=[(-7.0, 2.0, 1.0)])

    def _reward(self, current, last, won=False, in_water=False):
        return compute_reward(current, last, self.goal, won, in_water, self.terrain, self.config)

    def test_win_gets_goal_reward(self):
        reward = self._reward(BallState(-7.0, 7.0), BallState(-2.0, 7.0), won=True)
        assert reward == self.config.reward_goal == 5.0

    def test_goal_reward_inside_radius_without_win_flag(self):
        reward = self._reward(BallState(-6.0, 7.0), BallState(-2.0, 7.0))
        assert reward == 5.0

    def test_goal_reward_beats_water_penalty(self):
        reward = self._reward(BallState(-7.0, 7.0), BallState(-2.0, 7.0), in_water=True)
        assert reward == 5.0

    def test_win_flag_far_from_goal_gets_no_bonus(self):
        """Only the settled position earns the goal bonus"""
        reward = self._reward(BallState(10.0, 10.0), BallState(9.0, 10.0), won=True, in_water=True)
        expected = BallState(9.0, 10.0).distance_to(self.goal) - BallState(10.0, 10.0).distance_to(self.goal)
        assert reward == pytest.approx(expected + self.config.penalty_water)
        assert reward == pytest.approx(-0.984 - 3.0, abs=1e-3)

    def test_goal_bonus_is_circular(self):
        """A ball inside the goal square but outside the circle gets no bonus"""
        reward = self._reward(BallState(-5.8, 8.2), BallState(-5.8, 9.0))
        assert reward != self.config.reward_goal
        assert reward == pytest.approx(BallState(-5.8, 9.0).distance_to(self.goal) -
                                       BallState(-5.8, 8.2).distance_to(self.goal))

    def test_progress_is_rewarded(self):
        """Moving one unit closer earns one unit of reward"""
        reward = self._reward(BallState(-4.0, 7.0), BallState(-3.0, 7.0))
        assert reward == pytest.approx(1.0)

    def test_water_penalty(self):
        reward = self._reward(BallState(-4.0, 7.0), BallState(-3.0, 7.0), in_water=True)
        assert reward == pytest.approx(1.0 + self.config.penalty_water)
        assert reward == pytest.approx(-2.0)

    def test_water_penalty_skips_regression_term(self):
        reward = self._reward(BallState(-3.0, 7.0), BallState(-4.0, 7.0), in_water=True)
        assert reward == pytest.approx(-1.0 - 3.0)

    def test_sand_penalty(self):
        """Ball resting in a bunker loses one point on top of its progress"""
        current = BallState(-7.0, 2.5)  # 4.5 from goal, inside the bunker
        last = BallState(-7.0, 1.0)     # 6.0 from goal
        reward = self._reward(current, last)
        assert reward == pytest.approx(1.5 + self.config.penalty_sand)

    def test_regression_is_penalised_exponentially(self):
        reward = self._reward(BallState(-3.0, 7.0), BallState(-4.0, 7.0))
        assert reward == pytest.approx(-1.0 - math.exp(0.1) * 10.0)

    def test_regression_penalty_grows_with_distance(self):
        small = self._reward(BallState(-4.5, 7.0), BallState(-5.0, 7.0))
        large = self._reward(BallState(3.0, 7.0), BallState(-5.0, 7.0))
        assert large < small < 0.0

    def test_no_movement_is_zero(self):
        reward = self._reward(BallState(0.0, 0.0), BallState(0.0, 0.0))
        assert reward == 0.0

    def test_reward_parameters_come_from_config(self):
        config = make_fast_config(reward_parameters={'reward_goal': 10.0, 'penalty_water': -7.0})
        reward = compute_reward(BallState(-4.0, 7.0), BallState(-3.0, 7.0), self.goal, False, True,
                                self.terrain, config)
        assert reward == pytest.approx(1.0 - 7.0)
        assert compute_reward(self.goal, self.goal, self.goal, True, False, self.terrain, config) == 10.0
