"""Initial temperature fields."""

import numpy as np


def create_grid_2d(NX: int, NY: int):
    """Integer index grids ``(x, y)`` of shape (NX, NY)."""
    return np.meshgrid(np.arange(NX, dtype=np.float64), np.arange(NY, dtype=np.float64), indexing="ij")


def initial_condition(NX: int, NY: int) -> np.ndarray:
    """Hot centre, zero on the domain boundary.

    u(x, y) = x (NX - x - 1) y (NY - y - 1)
    """
    x, y = create_grid_2d(NX, NY)
    return x * (NX - x - 1) * y * (NY - y - 1)
