"""
solvers.py - Fixed-step ODE solvers

Each solver advances y' = f(t, y) by one step of size h. States are 1-D numpy arrays.
"""

import numpy as np


class ODESolver:
    """Base class for fixed-step solvers"""

    name = "base"

    def step(self, derivative, t: float, y: np.ndarray, h: float) -> np.ndarray:
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}()"


class EulerSolver(ODESolver):
    name = "euler"

    def step(self, derivative, t, y, h):
        return y + h * derivative(t, y)


class MidpointSolver(ODESolver):
    """Second-order Runge-Kutta (midpoint rule)"""

    name = "rk2"

    def step(self, derivative, t, y, h):
        k1 = derivative(t, y)
        k2 = derivative(t + h / 2, y + h / 2 * k1)
        return y + h * k2


class RungeKuttaSolver(ODESolver):
    """Classic fourth-order Runge-Kutta"""

    name = "rk4"

    def step(self, derivative, t, y, h):
        k1 = derivative(t, y)
        k2 = derivative(t + h / 2, y + h / 2 * k1)
        k3 = derivative(t + h / 2, y + h / 2 * k2)
        k4 = derivative(t + h, y + h * k3)
        return y + (h / 6) * (k1 + 2 * k2 + 2 * k3 + k4)


SOLVERS = {cls.name: cls for cls in (EulerSolver, MidpointSolver, RungeKuttaSolver)}


def get_solver(name: str) -> ODESolver:
    try:
        return SOLVERS[name.lower()]()
    except KeyError:
        raise ValueError(f"Unknown ODE solver {name!r}. Choose from {sorted(SOLVERS)}") from None
