"""Block decomposition of the 2D grid and MPI Cartesian topology."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from mpi4py import MPI

from ..datastructures import RankGeometry
from ..errors import ConfigurationError

log = logging.getLogger(__name__)


def is_prime(n: int) -> bool:
    """Trial-division primality test (1 is not prime)."""
    if n < 2:
        return False
    if n % 2 == 0:
        return n == 2
    for i in range(3, math.isqrt(n) + 1, 2):
        if n % i == 0:
            return False
    return True


@dataclass(frozen=True)
class ProcessTopology:
    """Shape of the block grid and the size of every block.

    Owners are numbered row-major over an ``xdim x ydim`` grid of blocks.
    Each block covers ``rows`` global x-indices and ``columns`` global
    y-indices.
    """

    n_workers: int
    xdim: int
    ydim: int
    rows: int
    columns: int
    NX: int
    NY: int

    @property
    def dims(self) -> tuple[int, int]:
        return (self.xdim, self.ydim)

    @property
    def local_shape(self) -> tuple[int, int]:
        return (self.rows, self.columns)

    @property
    def halo_shape(self) -> tuple[int, int]:
        return (self.rows + 2, self.columns + 2)

    def coords(self, rank: int) -> tuple[int, int]:
        """Block-grid (row, col) of ``rank``."""
        if not 0 <= rank < self.n_workers:
            raise ValueError(f"Rank {rank} outside 0..{self.n_workers - 1}")
        return divmod(rank, self.ydim)

    def neighbors(self, rank: int) -> dict[str, int | None]:
        """Neighbor ranks, None where the block touches the domain boundary."""
        row, col = self.coords(rank)
        return {
            "up": rank - self.ydim if row > 0 else None,
            "down": rank + self.ydim if row < self.xdim - 1 else None,
            "left": rank - 1 if col > 0 else None,
            "right": rank + 1 if col < self.ydim - 1 else None,
        }

    def block_bounds(self, rank: int) -> tuple[slice, slice]:
        """Global (x, y) slices of the block owned by ``rank``."""
        row, col = self.coords(rank)
        return (
            slice(row * self.rows, (row + 1) * self.rows),
            slice(col * self.columns, (col + 1) * self.columns),
        )

    def geometry(self, rank: int) -> RankGeometry:
        xs, ys = self.block_bounds(rank)
        return RankGeometry(
            rank=rank,
            coords=self.coords(rank),
            local_shape=self.local_shape,
            halo_shape=self.halo_shape,
            global_start=(xs.start, ys.start),
            global_end=(xs.stop, ys.stop),
            neighbors=self.neighbors(rank),
        )


def partition_grid(n_workers: int, NX: int, NY: int) -> ProcessTopology:
    """Split an NX x NY grid over ``n_workers`` owners.

    Picks the factor pair of ``n_workers`` closest to square, then orients
    it to follow the aspect ratio of the domain.

    Parameters
    ----------
    n_workers : int
        Number of block owners (MPI ranks).
    NX, NY : int
        Global grid size.

    Returns
    -------
    ProcessTopology

    Raises
    ------
    ConfigurationError
        If ``n_workers`` is prime and larger than 2, if the cell count is
        not divisible by ``n_workers``, or if the chosen block grid does not
        divide the domain exactly.
    """
    if n_workers < 1:
        raise ConfigurationError(f"Number of workers must be positive, got {n_workers}")
    if NX < 1 or NY < 1:
        raise ConfigurationError(f"Grid size must be positive, got {NX} x {NY}")
    if n_workers > 2 and is_prime(n_workers):
        raise ConfigurationError(f"The number of workers is prime ({n_workers})")
    if (NX * NY) % n_workers:
        raise ConfigurationError(
            f"Number of cells ({NX} x {NY}) is not divisible by the number of "
            f"workers ({n_workers})"
        )

    xdim = ydim = None
    for x in range(math.isqrt(n_workers) + 1, 0, -1):
        if n_workers % x == 0:
            xdim, ydim = x, n_workers // x
            break

    # Make blocks more square-like on tall domains
    if NY > NX and ydim < xdim:
        xdim, ydim = ydim, xdim

    if NX % xdim or NY % ydim:
        raise ConfigurationError(
            f"A {xdim} x {ydim} block grid does not divide the {NX} x {NY} domain"
        )

    return ProcessTopology(
        n_workers=n_workers,
        xdim=xdim,
        ydim=ydim,
        rows=NX // xdim,
        columns=NY // ydim,
        NX=NX,
        NY=NY,
    )


class CartesianDecomposition:
    """Partition the domain on the coordinating rank and share it.

    Rank 0 runs :func:`partition_grid` and broadcasts the outcome, so that
    either every rank receives the same topology or every rank raises the
    same :class:`ConfigurationError`. A non-periodic Cartesian communicator
    matching the block grid is then created.

    Parameters
    ----------
    NX, NY : int
        Global grid size.
    comm : MPI.Comm
        MPI communicator.
    """

    ROOT = 0

    def __init__(self, NX: int, NY: int, comm: MPI.Comm = MPI.COMM_WORLD):
        self.NX = NX
        self.NY = NY
        self.comm = comm
        self.rank = comm.Get_rank()
        self.size = comm.Get_size()

        self.topology = self._share_topology()
        self.dims = self.topology.dims
        self.cart_comm = self.comm.Create_cart(
            dims=list(self.dims), periods=[False, False], reorder=False
        )

        self.geometry = self.topology.geometry(self.rank)
        self.neighbors = self.geometry.neighbors
        self.local_shape = self.geometry.local_shape
        self.halo_shape = self.geometry.halo_shape
        self.global_start = self.geometry.global_start
        self.global_end = self.geometry.global_end
        self.is_boundary = {d: n is None for d, n in self.neighbors.items()}

        log.debug(
            "Process %d: left:%s, right:%s, up:%s, down:%s",
            self.rank,
            *(self.neighbors[d] for d in ("left", "right", "up", "down")),
        )

    def _share_topology(self) -> ProcessTopology:
        outcome = None
        if self.rank == self.ROOT:
            try:
                outcome = partition_grid(self.size, self.NX, self.NY)
            except ConfigurationError as exc:
                outcome = exc
            else:
                log.info(
                    "The grid will part into a %d x %d block grid.", *outcome.dims
                )
                log.info("Each block is %d x %d.", outcome.rows, outcome.columns)

        outcome = self.comm.bcast(outcome, root=self.ROOT)
        if isinstance(outcome, ConfigurationError):
            raise outcome
        return outcome

    def free(self):
        """Release the Cartesian communicator."""
        if self.cart_comm != MPI.COMM_NULL:
            self.cart_comm.Free()
