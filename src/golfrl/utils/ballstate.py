"""
ballstate.py - Kinematic state of the golf ball

BallState holds the position (x, y) and velocity (vx, vy) of the ball on the course.
It is mutated in place by the physics engine, so anything that needs a stable
snapshot (the "last" position before an update, the result of a hit) must take a copy.
"""

import math

import numpy as np


class BallState:
    """Position and velocity of the ball in course coordinates"""

    __slots__ = ("x", "y", "vx", "vy")

    def __init__(self, x=0.0, y=0.0, vx=0.0, vy=0.0):
        self.x = float(x)
        self.y = float(y)
        self.vx = float(vx)
        self.vy = float(vy)

    def set(self, x, y, vx, vy):
        """Set all four components at once"""
        self.x = float(x)
        self.y = float(y)
        self.vx = float(vx)
        self.vy = float(vy)

    def set_position(self, x, y):
        self.x = float(x)
        self.y = float(y)

    def set_velocity(self, vx, vy):
        self.vx = float(vx)
        self.vy = float(vy)

    def epsilon_equals(self, other: "BallState", epsilon: float) -> bool:
        """True if every component differs from `other` by at most epsilon"""
        return (abs(self.x - other.x) <= epsilon and
                abs(self.y - other.y) <= epsilon and
                abs(self.vx - other.vx) <= epsilon and
                abs(self.vy - other.vy) <= epsilon)

    def epsilon_position_equals(self, other: "BallState", epsilon: float) -> bool:
        """Same as epsilon_equals but ignores the velocity components"""
        return (abs(self.x - other.x) <= epsilon and
                abs(self.y - other.y) <= epsilon)

    def is_in_goal(self, goal: "BallState", tolerance: float) -> bool:
        """True if the position lies strictly inside the circle of radius `tolerance` around goal"""
        return self.distance_to(goal) < tolerance

    def copy(self) -> "BallState":
        return BallState(self.x, self.y, self.vx, self.vy)

    deep_copy = copy

    def distance_to(self, other: "BallState") -> float:
        """Euclidean distance between the two positions"""
        return math.hypot(self.x - other.x, self.y - other.y)

    def position_dot(self, other: "BallState") -> float:
        return self.x * other.x + self.y * other.y

    def position_mag(self) -> float:
        return math.hypot(self.x, self.y)

    def velocity_mag(self) -> float:
        return math.hypot(self.vx, self.vy)

    def position_nor(self):
        """Normalise the position vector in place (zero vector is left untouched)"""
        mag = self.position_mag()
        if mag > 0.0:
            self.x /= mag
            self.y /= mag

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.x, self.y, self.vx, self.vy))

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.vx, self.vy], dtype=np.float64)

    @classmethod
    def from_array(cls, values) -> "BallState":
        x, y, vx, vy = (float(v) for v in values)
        return cls(x, y, vx, vy)

    def __eq__(self, other):
        if not isinstance(other, BallState):
            return NotImplemented
        return self.epsilon_equals(other, 0.0)

    def __repr__(self):
        return f"BallState(x={self.x}, y={self.y}, vx={self.vx}, vy={self.vy})"
