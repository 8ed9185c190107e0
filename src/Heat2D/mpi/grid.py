"""Distributed grid abstraction for parallel computation.

This module provides a unified DistributedGrid class that encapsulates:
- Block decomposition with MPI Cartesian topology
- Scatter/gather of the global field (numpy buffers or MPI datatypes)
- Halo exchange (numpy buffers, MPI datatypes or persistent requests)
- The double-buffered local field

Solvers interact with this single interface rather than managing
MPI details directly.
"""

from __future__ import annotations

import numpy as np
from mpi4py import MPI

from ..datastructures import LocalParams
from .decomposition import CartesianDecomposition
from .field import DistributedField
from .halo import create_halo_exchanger
from .transport import create_block_transport


class DistributedGrid:
    """Unified distributed grid for the parallel heat solver.

    Parameters
    ----------
    NX, NY : int
        Global grid size.
    comm : MPI.Comm
        MPI communicator.
    halo_exchange : str
        'numpy', 'custom' (MPI datatypes) or 'persistent'.
    transport : str
        'numpy' or 'custom' (MPI subarray datatypes).

    Raises
    ------
    ConfigurationError
        On every rank, if the domain cannot be decomposed over ``comm``.

    Example
    -------
    >>> grid = DistributedGrid(NX=256, NY=320, comm=MPI.COMM_WORLD)
    >>> field = grid.allocate()
    >>> grid.scatter(u0 if grid.rank == 0 else None, field)
    >>> grid.post_halos(field.old)
    """

    ROOT = 0

    def __init__(
        self,
        NX: int,
        NY: int,
        comm: MPI.Comm = MPI.COMM_WORLD,
        halo_exchange: str = "custom",
        transport: str = "custom",
    ):
        self.NX = NX
        self.NY = NY
        self.comm = comm
        self.rank = comm.Get_rank()
        self.size = comm.Get_size()
        self.halo_exchange_type = halo_exchange
        self.transport_type = transport

        # Domain decomposition (collective; raises on every rank)
        self._decomp = CartesianDecomposition(NX, NY, comm)

        # Copy decomposition attributes for direct access
        self.topology = self._decomp.topology
        self.dims = self._decomp.dims
        self.cart_comm = self._decomp.cart_comm
        self.neighbors = self._decomp.neighbors
        self.local_shape = self._decomp.local_shape
        self.halo_shape = self._decomp.halo_shape
        self.global_start = self._decomp.global_start
        self.global_end = self._decomp.global_end
        self.is_boundary = self._decomp.is_boundary

        self._transport = create_block_transport(transport, self.topology, comm, self.ROOT)
        self._halo_exchanger = create_halo_exchanger(halo_exchange)
        self._halo_exchanger.setup(self.local_shape, self.neighbors, self.cart_comm)

    def is_root(self) -> bool:
        return self.rank == self.ROOT

    def allocate(self, dtype=np.float64) -> DistributedField:
        """Allocate both generations of the local block, halo included."""
        return DistributedField(self.local_shape, dtype=dtype)

    def scatter(self, global_field: np.ndarray | None, field: DistributedField):
        """Distribute the global field into generation 0 of every block."""
        if self.is_root():
            global_field = np.ascontiguousarray(global_field, dtype=np.float64)
        self._transport.scatter(global_field, field.write_target(0))
        field.sync_generations()

    def gather(self, field: DistributedField, global_field: np.ndarray | None = None):
        """Collect the final generation of every block on the root.

        Returns the global field on the root and None elsewhere.
        """
        if self.is_root() and global_field is None:
            global_field = np.empty((self.NX, self.NY), dtype=np.float64)
        self._transport.gather(field.final(), global_field)
        return global_field if self.is_root() else None

    def post_halos(self, block: np.ndarray):
        self._halo_exchanger.post(block)

    def wait_halo_receives(self):
        self._halo_exchanger.wait_receives()

    def wait_halo_sends(self):
        self._halo_exchanger.wait_sends()

    def get_halo_size_bytes(self) -> int:
        return self._halo_exchanger.halo_size_bytes()

    def get_rank_info(self) -> LocalParams:
        """Get placement info for this rank (for the MLflow table)."""
        return LocalParams(
            rank=self.rank,
            hostname=MPI.Get_processor_name(),
            cart_coords=tuple(self.cart_comm.Get_coords(self.rank)),
            neighbors=dict(self.neighbors),
            local_shape=self.local_shape,
            global_start=self.global_start,
            global_end=self.global_end,
        )

    def free(self):
        """Release datatypes, persistent requests and the communicator."""
        self._halo_exchanger.free()
        self._transport.free()
        self._decomp.free()
