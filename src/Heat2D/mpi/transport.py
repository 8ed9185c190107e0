"""Scatter/gather of the global field into halo-padded local blocks."""

from __future__ import annotations
from abc import ABC, abstractmethod

import numpy as np
from mpi4py import MPI

from .decomposition import ProcessTopology


def split_field(global_field: np.ndarray, topology: ProcessTopology) -> list[np.ndarray]:
    """Copy out each owner's interior block, in rank order."""
    expected = (topology.NX, topology.NY)
    if global_field.shape != expected:
        raise ValueError(f"Field shape {global_field.shape} != {expected}")
    return [
        global_field[topology.block_bounds(rank)].copy()
        for rank in range(topology.n_workers)
    ]


def assemble_field(blocks: list[np.ndarray], topology: ProcessTopology) -> np.ndarray:
    """Inverse of :func:`split_field`."""
    if len(blocks) != topology.n_workers:
        raise ValueError(f"Expected {topology.n_workers} blocks, got {len(blocks)}")
    global_field = np.empty((topology.NX, topology.NY), dtype=blocks[0].dtype)
    for rank, block in enumerate(blocks):
        global_field[topology.block_bounds(rank)] = block
    return global_field


class BlockTransport(ABC):
    """Abstract base for block redistribution strategies.

    Both operations are collective: every rank of ``comm`` must call them.
    The global field is only accessed on ``root``; ``local`` is a
    halo-padded block whose halo ring is left untouched.
    """

    def __init__(self, topology: ProcessTopology, comm: MPI.Comm, root: int = 0):
        self.topology = topology
        self.comm = comm
        self.root = root
        self.rank = comm.Get_rank()

    @abstractmethod
    def scatter(self, global_field: np.ndarray | None, local: np.ndarray):
        """Distribute the global field into each rank's block interior."""
        pass

    @abstractmethod
    def gather(self, local: np.ndarray, global_field: np.ndarray | None):
        """Collect every block interior back into the global field."""
        pass

    def free(self):
        """Release MPI resources."""
        pass


class NumpyBlockTransport(BlockTransport):
    """Scatter/Gather of packed contiguous blocks."""

    def scatter(self, global_field, local):
        rows, columns = self.topology.local_shape
        packed = None
        if self.rank == self.root:
            packed = np.ascontiguousarray(
                np.stack(split_field(global_field, self.topology)), dtype=np.float64
            )
        recv = np.empty((rows, columns), dtype=np.float64)
        self.comm.Scatter(packed, recv, root=self.root)
        local[1:-1, 1:-1] = recv

    def gather(self, local, global_field):
        rows, columns = self.topology.local_shape
        send = np.ascontiguousarray(local[1:-1, 1:-1])
        packed = None
        if self.rank == self.root:
            packed = np.empty((self.topology.n_workers, rows, columns), dtype=np.float64)
        self.comm.Gather(send, packed, root=self.root)
        if self.rank == self.root:
            global_field[...] = assemble_field(list(packed), self.topology)


class DatatypeBlockTransport(BlockTransport):
    """Scatterv/Gatherv with MPI subarray datatypes (zero-copy).

    On the root, each block is described by a subarray of the global field
    whose extent is resized to ``columns`` doubles, so that a block starting
    at block-grid position (i, j) sits ``i * rows * ydim + j`` extents from
    the start of the field. On every rank the interior of the halo-padded
    block is a second subarray.
    """

    def __init__(self, topology, comm, root=0):
        super().__init__(topology, comm, root)
        NX, NY = topology.NX, topology.NY
        rows, columns = topology.local_shape

        block = MPI.DOUBLE.Create_subarray([NX, NY], [rows, columns], [0, 0])
        self._block_type = block.Create_resized(0, columns * MPI.DOUBLE.Get_size())
        self._block_type.Commit()
        block.Free()

        self._interior_type = MPI.DOUBLE.Create_subarray(
            [rows + 2, columns + 2], [rows, columns], [1, 1]
        )
        self._interior_type.Commit()

        self._counts = [1] * topology.n_workers
        self._displs = [
            i * rows * topology.ydim + j
            for i in range(topology.xdim)
            for j in range(topology.ydim)
        ]

    def _root_spec(self, global_field):
        if self.rank != self.root:
            return None
        if global_field.shape != (self.topology.NX, self.topology.NY):
            raise ValueError(f"Field shape {global_field.shape} does not match topology")
        if not global_field.flags.c_contiguous or global_field.dtype != np.float64:
            raise ValueError("Global field must be a C-contiguous float64 array")
        return [global_field, self._counts, self._displs, self._block_type]

    def scatter(self, global_field, local):
        self.comm.Scatterv(
            self._root_spec(global_field), [local, 1, self._interior_type], root=self.root
        )

    def gather(self, local, global_field):
        self.comm.Gatherv(
            [local, 1, self._interior_type], self._root_spec(global_field), root=self.root
        )

    def free(self):
        for dt in (self._block_type, self._interior_type):
            if dt != MPI.DATATYPE_NULL:
                dt.Free()


def create_block_transport(
    transport_type: str, topology: ProcessTopology, comm: MPI.Comm, root: int = 0
) -> BlockTransport:
    """Factory: 'numpy' for packed buffers, 'custom' for MPI datatypes."""
    if transport_type == "numpy":
        return NumpyBlockTransport(topology, comm, root)
    elif transport_type == "custom":
        return DatatypeBlockTransport(topology, comm, root)
    else:
        raise ValueError(f"Unknown transport type: {transport_type}")
