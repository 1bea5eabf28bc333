"""
golf_simulator.py - Strike-and-settle simulation and shot reward

hit()            - strike the ball and integrate until it rests, reaches the goal,
                   lands in water or leaves the course
hit_with_path()  - same, also recording every intermediate (x, y) for visualisation
compute_reward() - shaped reward for a shot (progress towards the goal plus penalties)

All functions work on a copy of the ball they are given, so they are safe to call
from several workers as long as each worker owns its engine.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..utils.ballstate import BallState
from ..utils.errors import InvalidActionError
from ..utils.ppo_types import Action

logger = logging.getLogger(__name__)


@dataclass
class HitOutcome:
    state: BallState
    in_water: bool = False
    on_sand: bool = False
    reached_goal: bool = False
    out_of_bounds: bool = False
    truncated: bool = False
    steps: int = 0
    path: Optional[List[Tuple[float, float]]] = field(default=None, repr=False)

    @property
    def in_hazard(self) -> bool:
        return self.in_water or self.out_of_bounds


def validate_action(action: Action):
    if not (math.isfinite(action.force) and math.isfinite(action.angle)):
        raise InvalidActionError(f"Invalid action, force and angle must be finite: {action}")
    if action.force < 0:
        raise InvalidActionError(f"Invalid action, force must be non-negative: {action}")


def _simulate(ball, action, terrain, engine, goal, config, record_path):
    validate_action(action)

    current = ball.copy()
    # The strike direction points away from the swing, hence the negative sign
    current.set_velocity(-action.force * math.cos(action.angle),
                         -action.force * math.sin(action.angle))
    last = current.copy()
    path = [(current.x, current.y)] if record_path else None
    outcome = HitOutcome(state=current, path=path)

    logger.debug(f"Hitting with force: {action.force:.2f} and angle: {action.angle:.2f}")

    while True:
        if terrain.is_water(current.x, current.y):
            # The ball stays on the bank instead of entering the water
            outcome.in_water = True
            current.set_position(last.x, last.y)
            break

        if not terrain.in_bounds(current.x, current.y):
            outcome.out_of_bounds = True
            current.set_position(last.x, last.y)
            break

        if current.is_in_goal(goal, config.goal_radius):
            outcome.reached_goal = True
            break

        if outcome.steps >= config.max_integration_steps:
            logger.warning(f"Trajectory did not settle after {outcome.steps} integration steps, "
                           f"stopping at ({current.x:.2f}, {current.y:.2f})")
            outcome.truncated = True
            break

        last.set(current.x, current.y, current.vx, current.vy)
        engine.update(current, config.step_size)
        outcome.steps += 1
        if record_path:
            path.append((current.x, current.y))

        if engine.is_at_rest(current):
            break

        # Two identical consecutive states can never move again
        if record_path and current.epsilon_equals(last, 0.0):
            break

    outcome.on_sand = terrain.is_sand(current.x, current.y)
    if outcome.in_water:
        logger.debug("Ball in water!")
    elif outcome.on_sand:
        logger.debug("Ball on sand!")
    elif outcome.reached_goal:
        logger.debug("Goal reached in simulator!")
    logger.debug(f"New ball position: ({current.x:.2f}, {current.y:.2f})")
    return outcome


def hit(ball: BallState, action: Action, terrain, engine, goal: BallState, config) -> HitOutcome:
    """Strike `ball` with `action` and return the settled outcome

    `ball` itself is never modified. The loop stops when the ball is in water
    (position rolled back to the last pre-step position), out of bounds (same
    rollback), within goal tolerance, at rest, or when the integration-step
    ceiling from the config is reached.
    """
    return _simulate(ball, action, terrain, engine, goal, config, record_path=False)


def hit_with_path(ball: BallState, action: Action, terrain, engine, goal: BallState, config) -> HitOutcome:
    """Like hit() but outcome.path holds every (x, y) sample, starting at the strike position"""
    return _simulate(ball, action, terrain, engine, goal, config, record_path=True)


def compute_reward(current: BallState, last: BallState, goal: BallState, won: bool,
                   in_water: bool, terrain, config) -> float:
    """Reward for moving the ball from `last` to `current`

    Priority: goal bonus, then water penalty, then sand penalty, then an
    exponential penalty when the shot moved the ball away from the goal.
    The goal bonus depends on the settled position alone, `won` is only logged.
    """
    distance_to_goal = current.distance_to(goal)
    last_distance_to_goal = last.distance_to(goal)

    reward = last_distance_to_goal - distance_to_goal

    if current.is_in_goal(goal, config.goal_radius):
        return config.reward_goal
    if won:
        logger.warning(f"Win reported for a ball {distance_to_goal:.2f} from the goal, no goal bonus")
    if in_water:
        return reward + config.penalty_water
    if terrain.is_sand(current.x, current.y):
        return reward + config.penalty_sand
    if reward < 0:
        scale = config.regression_scale
        reward -= math.exp(abs(reward) / scale) * scale
    return reward


def sample_start_position(goal: BallState, radius: float, rng) -> BallState:
    """Random point on the circle of `radius` around the goal, at rest"""
    dx = rng.uniform(-radius, radius)
    dy = math.sqrt(max(radius * radius - dx * dx, 0.0))
    if rng.random() >= 0.5:
        dy = -dy
    return BallState(goal.x + dx, goal.y + dy, 0.0, 0.0)
