"""Heat diffusion solvers.

Consistent naming: {Method}Solver for sequential, {Method}MPISolver for parallel.

- HeatSolver: Single-process reference run over the whole grid
- HeatMPISolver: Block decomposition with overlapping halo exchange
"""

from .heat import HeatSolver
from .heat_mpi import HeatMPISolver

__all__ = [
    "HeatSolver",
    "HeatMPISolver",
]
