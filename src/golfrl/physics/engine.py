"""
engine.py - Ball dynamics on the height-mapped course

The ball state s = (x, y, vx, vy) follows

    x' = vx,  y' = vy
    a  = -g * grad(h) - mu_k * g * v / |v|                  (rolling)
    a  = -g * grad(h) + mu_k * g * grad(h) / |grad(h)|      (slow ball, slope beats static friction)
    a  = 0                                                   (slow ball, static friction holds)

with grass or sand friction coefficients depending on where the ball is.
The ball is at rest once its speed is under the rest threshold and static friction
can hold it on the local slope.
"""

import math

import numpy as np

from .solvers import ODESolver, get_solver


class PhysicsEngine:
    """Advances BallState objects in place using an ODE solver"""

    def __init__(self, solver: ODESolver, terrain, gravity=9.81, rest_velocity=0.01,
                 grass_friction=(0.1, 0.2), sand_friction=(0.7, 1.0)):
        self.solver = solver
        self.terrain = terrain
        self.gravity = float(gravity)
        self.rest_velocity = float(rest_velocity)
        self.grass_kinetic, self.grass_static = (float(v) for v in grass_friction)
        self.sand_kinetic, self.sand_static = (float(v) for v in sand_friction)

    @classmethod
    def from_config(cls, config, terrain):
        physics = config.physics
        return cls(
            get_solver(config.solver_name),
            terrain,
            gravity=config.gravity,
            rest_velocity=config.rest_velocity,
            grass_friction=(physics['grass_kinetic_friction'], physics['grass_static_friction']),
            sand_friction=(physics['sand_kinetic_friction'], physics['sand_static_friction']),
        )

    def friction_at(self, x, y):
        """(kinetic, static) friction coefficients at a point"""
        if self.terrain.is_sand(x, y):
            return self.sand_kinetic, self.sand_static
        return self.grass_kinetic, self.grass_static

    def accelerations(self, x, y, vx, vy):
        g = self.gravity
        hx, hy = self.terrain.gradient(x, y)
        mu_k, mu_s = self.friction_at(x, y)
        speed = math.hypot(vx, vy)

        if speed >= self.rest_velocity:
            return (-g * hx - mu_k * g * vx / speed,
                    -g * hy - mu_k * g * vy / speed)

        slope = math.hypot(hx, hy)
        if slope <= mu_s:
            return 0.0, 0.0
        # Ball starts sliding downhill, kinetic friction points back up the slope
        return (-g * hx + mu_k * g * hx / slope,
                -g * hy + mu_k * g * hy / slope)

    def derivative(self, t, s):
        x, y, vx, vy = s
        ax, ay = self.accelerations(x, y, vx, vy)
        return np.array([vx, vy, ax, ay], dtype=np.float64)

    def update(self, state, dt):
        """Advance `state` by one step of size dt (in place)"""
        y = np.array([state.x, state.y, state.vx, state.vy], dtype=np.float64)
        x_next, y_next, vx_next, vy_next = self.solver.step(self.derivative, 0.0, y, dt)
        state.set(x_next, y_next, vx_next, vy_next)

    def is_at_rest(self, state) -> bool:
        if state.velocity_mag() >= self.rest_velocity:
            return False
        hx, hy = self.terrain.gradient(state.x, state.y)
        _, mu_s = self.friction_at(state.x, state.y)
        return math.hypot(hx, hy) <= mu_s
