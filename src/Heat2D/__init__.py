"""MPI 2D heat diffusion package.

Explicit finite-difference heat diffusion on a rectangular grid, split into
blocks over MPI ranks. Each time step overlaps the halo exchange with the
interior stencil pass; both stencil passes fan out over worker threads.

Solvers
-------
Sequential (no MPI):
- HeatSolver: whole grid as a single block

Parallel (MPI):
- HeatMPISolver: block decomposition with overlapping halo exchange
"""

from .datastructures import (
    GlobalParams,
    GlobalMetrics,
    LocalParams,
    LocalMetrics,
    RankGeometry,
)
from .errors import ConfigurationError, Heat2DError
from .kernels import NumPyKernel, NumbaKernel, create_kernel, stencil_regions, static_chunks
from .solvers import HeatSolver, HeatMPISolver
from .mpi import DistributedGrid, DistributedField, ProcessTopology, partition_grid
from .problems import create_grid_2d, initial_condition
from .io import write_snapshot, read_snapshot
from .runner import run_solver

__all__ = [
    # Data structures
    "GlobalParams",
    "GlobalMetrics",
    "LocalParams",
    "LocalMetrics",
    "RankGeometry",
    # Errors
    "ConfigurationError",
    "Heat2DError",
    # Kernels
    "NumPyKernel",
    "NumbaKernel",
    "create_kernel",
    "stencil_regions",
    "static_chunks",
    # Solvers
    "HeatSolver",
    "HeatMPISolver",
    # Decomposition and grid
    "DistributedGrid",
    "DistributedField",
    "ProcessTopology",
    "partition_grid",
    # Problem setup and I/O
    "create_grid_2d",
    "initial_condition",
    "write_snapshot",
    "read_snapshot",
    "run_solver",
]
