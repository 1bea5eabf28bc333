"""
terrain.py - Height-mapped golf course

The terrain is driven by a height expression in x and y (e.g. "0.4*(0.9 - exp(-(x*x + y*y)/8))").
It answers the queries the simulator needs:
    height_at(x, y), gradient(x, y), is_water(x, y), is_sand(x, y), in_bounds(x, y)
and builds the flattened observation the policy consumes: a normalised height map
of the course with sand, goal and ball cells marked.

Expressions use Python syntax ('^' is accepted as power) and may only reference
x, y, pi, e and the numpy functions listed in ALLOWED_FUNCTIONS.
"""

import ast
import math

import numpy as np

ALLOWED_FUNCTIONS = {
    'sin': np.sin, 'cos': np.cos, 'tan': np.tan,
    'asin': np.arcsin, 'acos': np.arccos, 'atan': np.arctan, 'atan2': np.arctan2,
    'sinh': np.sinh, 'cosh': np.cosh, 'tanh': np.tanh,
    'exp': np.exp, 'log': np.log, 'log10': np.log10, 'sqrt': np.sqrt,
    'abs': np.abs, 'floor': np.floor, 'ceil': np.ceil,
    'min': np.minimum, 'max': np.maximum, 'pow': np.power,
}
ALLOWED_CONSTANTS = {'pi': math.pi, 'e': math.e}
VARIABLES = ('x', 'y')

_ALLOWED_NODES = (
    ast.Expression, ast.BinOp, ast.UnaryOp, ast.Call, ast.Name, ast.Load, ast.Constant,
    ast.Add, ast.Sub, ast.Mult, ast.Div, ast.Pow, ast.Mod, ast.USub, ast.UAdd,
)

# Observation markers (heights are normalised to [0, 1])
SAND_MARKER = -0.5
GOAL_MARKER = 2.0
BALL_MARKER = -1.0

GRADIENT_STEP = 1e-5


def compile_height_expression(expression: str):
    """Validate a height expression and return a callable f(x, y)

    Raises ValueError for anything that is not a plain arithmetic expression over
    the allowed names.
    """
    source = expression.replace('^', '**').strip()
    try:
        tree = ast.parse(source, mode='eval')
    except SyntaxError as e:
        raise ValueError(f"Invalid height expression {expression!r}: {e.msg}") from e

    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            raise ValueError(f"Unsupported syntax {type(node).__name__} in height expression {expression!r}")
        if isinstance(node, ast.Name):
            if node.id not in VARIABLES and node.id not in ALLOWED_FUNCTIONS and node.id not in ALLOWED_CONSTANTS:
                raise ValueError(f"Unknown name {node.id!r} in height expression {expression!r}")
        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.func.id not in ALLOWED_FUNCTIONS or node.keywords:
                raise ValueError(f"Unsupported function call in height expression {expression!r}")
        if isinstance(node, ast.Constant) and not isinstance(node.value, (int, float)):
            raise ValueError(f"Only numeric constants are allowed in height expression {expression!r}")

    # eval is safe here: every node passed the whitelist walk above and builtins are emptied
    code = compile(tree, '<height-function>', 'eval')
    namespace = {'__builtins__': {}}
    namespace.update(ALLOWED_FUNCTIONS)
    namespace.update(ALLOWED_CONSTANTS)

    def height(x, y):
        return eval(code, namespace, {'x': x, 'y': y})

    return height


class Terrain:
    """Course terrain: height function, water level, sand zones and bounds

    `height_function` is either an expression string (picklable, safe to send to
    worker processes) or any callable f(x, y) that also accepts numpy arrays.
    """

    def __init__(self, height_function, water_level=0.0, sand_zones=(),
                 bounds=(-20.0, 20.0, -20.0, 20.0), grid_size=16):
        self.expression = height_function if isinstance(height_function, str) else None
        if self.expression is not None:
            self._height = compile_height_expression(self.expression)
        elif callable(height_function):
            self._height = height_function
        else:
            raise ValueError("height_function must be an expression string or a callable")

        self.water_level = float(water_level)
        self.sand_zones = [tuple(float(v) for v in zone) for zone in sand_zones]
        self.x_min, self.x_max, self.y_min, self.y_max = (float(b) for b in bounds)
        self.grid_size = int(grid_size)
        if self.grid_size < 2:
            raise ValueError("Observation grid needs at least 2 cells per side")

        self._height_grid = None

    @classmethod
    def from_config(cls, config, height_function=None):
        """Build a terrain for `height_function` (defaults to the first configured one)"""
        if height_function is None:
            height_function = config.height_functions[0]
        return cls(
            height_function,
            water_level=config.water_level,
            sand_zones=config.sand_zones,
            bounds=(config.x_min, config.x_max, config.y_min, config.y_max),
            grid_size=config.observation_grid,
        )

    # Compiled code objects can't be pickled, rebuild from the expression instead
    def __getstate__(self):
        state = self.__dict__.copy()
        if self.expression is not None:
            state['_height'] = None
        state['_height_grid'] = None
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
        if self.expression is not None:
            self._height = compile_height_expression(self.expression)

    def height_at(self, x, y) -> float:
        return float(self._height(x, y))

    def gradient(self, x, y):
        """Central-difference slope (dh/dx, dh/dy)"""
        h = GRADIENT_STEP
        dh_dx = (self._height(x + h, y) - self._height(x - h, y)) / (2 * h)
        dh_dy = (self._height(x, y + h) - self._height(x, y - h)) / (2 * h)
        return float(dh_dx), float(dh_dy)

    def is_water(self, x, y) -> bool:
        return self.height_at(x, y) < self.water_level

    def is_sand(self, x, y) -> bool:
        for sx, sy, radius in self.sand_zones:
            if (x - sx) ** 2 + (y - sy) ** 2 <= radius ** 2:
                return True
        return False

    def in_bounds(self, x, y) -> bool:
        return self.x_min <= x <= self.x_max and self.y_min <= y <= self.y_max

    def cell_index(self, x, y):
        """Grid cell (row, col) containing (x, y), clamped to the grid"""
        n = self.grid_size
        col = int((x - self.x_min) / (self.x_max - self.x_min) * n)
        row = int((y - self.y_min) / (self.y_max - self.y_min) * n)
        return min(max(row, 0), n - 1), min(max(col, 0), n - 1)

    def _cell_centres(self):
        n = self.grid_size
        xs = self.x_min + (np.arange(n) + 0.5) * (self.x_max - self.x_min) / n
        ys = self.y_min + (np.arange(n) + 0.5) * (self.y_max - self.y_min) / n
        return np.meshgrid(xs, ys)  # rows follow y, columns follow x

    def normalised_height_map(self) -> np.ndarray:
        """Height map sampled at cell centres and scaled to [0, 1] (cached)"""
        if self._height_grid is None:
            gx, gy = self._cell_centres()
            heights = np.asarray(self._height(gx, gy), dtype=np.float64)
            heights = np.broadcast_to(heights, gx.shape).copy()
            lo, hi = heights.min(), heights.max()
            if hi - lo > 1e-12:
                heights = (heights - lo) / (hi - lo)
            else:
                heights = np.zeros_like(heights)

            sand = np.zeros(gx.shape, dtype=bool)
            for sx, sy, radius in self.sand_zones:
                sand |= (gx - sx) ** 2 + (gy - sy) ** 2 <= radius ** 2
            heights[sand] = SAND_MARKER
            self._height_grid = heights
        return self._height_grid

    def marked_height_map(self, ball_x, ball_y, goal_x, goal_y) -> np.ndarray:
        grid = self.normalised_height_map().copy()
        grid[self.cell_index(goal_x, goal_y)] = GOAL_MARKER
        # Ball marker wins if both share a cell
        grid[self.cell_index(ball_x, ball_y)] = BALL_MARKER
        return grid

    def observation(self, ball, goal) -> np.ndarray:
        """Row-major flattened marked height map, length grid_size**2"""
        grid = self.marked_height_map(ball.x, ball.y, goal.x, goal.y)
        return grid.astype(np.float32).reshape(-1)

    @property
    def observation_size(self) -> int:
        return self.grid_size * self.grid_size

    def __repr__(self):
        name = self.expression if self.expression is not None else getattr(self._height, '__name__', 'callable')
        return f"Terrain({name!r})"
