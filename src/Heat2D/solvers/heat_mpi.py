"""MPI-parallel heat solver (extends HeatSolver)."""

import logging

import numpy as np

from .heat import HeatSolver
from .mpi_mixin import MPISolverMixin
from ..mpi.grid import DistributedGrid
from ..problems import initial_condition

log = logging.getLogger(__name__)


class HeatMPISolver(MPISolverMixin, HeatSolver):
    """Parallel heat solver with MPI block decomposition.

    Halo transfers are posted before the interior pass and waited on
    around the exterior pass, so communication overlaps computation.

    Parameters
    ----------
    NX, NY : int
        Global grid size.
    communicator : str
        Halo exchange: 'numpy', 'custom' or 'persistent' (default: 'custom').
    transport : str
        Scatter/gather: 'numpy' or 'custom' (default: 'custom').
    comm : MPI.Comm, optional
        Communicator (default: MPI.COMM_WORLD).
    **kwargs
        Passed to :class:`BaseSolver` (steps, cx, cy, threads, kernel).

    Raises
    ------
    ConfigurationError
        On every rank, before anything is allocated, if the domain cannot
        be decomposed over the communicator.
    """

    def __init__(
        self,
        NX: int,
        NY: int,
        communicator: str = "custom",
        transport: str = "custom",
        comm=None,
        **kwargs,
    ):
        # MPI setup before parent init
        self._init_mpi(comm)
        self.communicator = communicator
        self.transport = transport

        # Parent init (calls _init_arrays)
        super().__init__(NX, NY, **kwargs)

        self.local_shape = self.grid.local_shape
        self.halo_size_mb = self.grid.get_halo_size_bytes() / (1024 * 1024)
        log.debug(
            "Process %d: two generations use %.2f MB, halo traffic %.4f MB per step",
            self.rank,
            self.field.nbytes / (1024 * 1024),
            self.halo_size_mb,
        )

    def _init_arrays(self):
        """Decompose the domain and allocate the local block."""
        self.grid = DistributedGrid(
            self.NX,
            self.NY,
            self.comm,
            halo_exchange=self.communicator,
            transport=self.transport,
        )
        self.neighbors = self.grid.neighbors
        self.field = self.grid.allocate()

    def _load_initial(self, u0):
        """Scatter the initial field from the root."""
        self.field.reset()
        if self._is_root() and u0 is None:
            u0 = initial_condition(self.NX, self.NY)
        self.grid.scatter(u0 if self._is_root() else None, self.field)

    def _collect_result(self):
        log.info("Process %d: elapsed time: %e secs", self.rank, self.elapsed)
        return self.grid.gather(self.field)

    def _post_halos(self, block: np.ndarray):
        self.grid.post_halos(block)

    def _wait_halo_receives(self):
        self.grid.wait_halo_receives()

    def _wait_halo_sends(self):
        self.grid.wait_halo_sends()

    def _layout(self) -> dict:
        topo = self.grid.topology
        return {"xdim": topo.xdim, "ydim": topo.ydim, "rows": topo.rows, "columns": topo.columns}

    def free(self):
        """Release MPI resources held by the grid."""
        self.grid.free()
