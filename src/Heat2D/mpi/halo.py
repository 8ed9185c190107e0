"""Non-blocking halo exchange for halo-padded 2D blocks.

One exchange is split into three calls so that the interior stencil pass
can run while messages are in flight::

    exchanger.post(old)         # Irecv into the halo ring, Isend the edges
    kernel.interior(old, new)   # no halo reads
    exchanger.wait_receives()
    kernel.exterior(old, new)   # reads the halo ring
    exchanger.wait_sends()      # edges of ``old`` may now be overwritten

Row transfers (up/down) are ``columns`` contiguous values. Column transfers
(left/right) are ``rows`` strided values moved as a single message. Corner
halo cells are never transferred; the 5-point stencil does not read them.
"""

from __future__ import annotations
from abc import ABC, abstractmethod

import numpy as np
from mpi4py import MPI


DIRECTIONS = ("up", "down", "left", "right")
OPPOSITE = {"up": "down", "down": "up", "left": "right", "right": "left"}

# Tags name the direction of travel
TAGS = {"up": 10, "down": 11, "left": 12, "right": 13}

# Edge cells sent to the neighbor in each direction
SEND_SLICES = {
    "up": (1, slice(1, -1)),
    "down": (-2, slice(1, -1)),
    "left": (slice(1, -1), 1),
    "right": (slice(1, -1), -2),
}

# Halo cells filled from the neighbor in each direction
RECV_SLICES = {
    "up": (0, slice(1, -1)),
    "down": (-1, slice(1, -1)),
    "left": (slice(1, -1), 0),
    "right": (slice(1, -1), -1),
}


def _real_neighbors(neighbors: dict) -> list[tuple[str, int]]:
    """(direction, rank) pairs for every direction with a neighbor."""
    return [(d, neighbors[d]) for d in DIRECTIONS if neighbors.get(d) is not None]


class HaloExchanger(ABC):
    """Abstract base for halo exchange strategies."""

    def __init__(self):
        self._recv_requests: list = []
        self._send_requests: list = []
        self.local_shape = None
        self.neighbors: dict = {}
        self.comm = None

    def setup(self, local_shape: tuple[int, int], neighbors: dict, comm: MPI.Comm):
        """Record geometry and build buffers or datatypes."""
        self.local_shape = tuple(local_shape)
        self.neighbors = dict(neighbors)
        self.comm = comm
        self._setup()

    @staticmethod
    def _waitall(requests):
        MPI.Request.Waitall(requests)

    @abstractmethod
    def _setup(self):
        pass

    @abstractmethod
    def post(self, block: np.ndarray):
        """Start receives into the halo of ``block`` and sends of its edges."""
        pass

    def wait_receives(self):
        """Block until every posted receive has completed."""
        self._waitall(self._recv_requests)
        self._recv_requests = []

    def wait_sends(self):
        """Block until every posted send has completed."""
        self._waitall(self._send_requests)
        self._send_requests = []

    def exchange(self, block: np.ndarray):
        """Full blocking exchange."""
        self.post(block)
        self.wait_receives()
        self.wait_sends()

    def halo_size_bytes(self) -> int:
        """Bytes sent plus received per exchange."""
        rows, columns = self.local_shape
        sizes = {"up": columns, "down": columns, "left": rows, "right": rows}
        return sum(sizes[d] * 8 * 2 for d, _ in _real_neighbors(self.neighbors))

    def free(self):
        """Release MPI resources."""
        pass


class NumpyHaloExchanger(HaloExchanger):
    """Halo exchange through packed numpy buffers and Isend/Irecv."""

    def _setup(self):
        rows, columns = self.local_shape
        lengths = {"up": columns, "down": columns, "left": rows, "right": rows}
        self._recv_buffers = {}
        self._send_buffers = {}
        for d, _ in _real_neighbors(self.neighbors):
            self._recv_buffers[d] = np.empty(lengths[d], dtype=np.float64)
            self._send_buffers[d] = np.empty(lengths[d], dtype=np.float64)
        self._block = None

    def post(self, block):
        self._block = block
        for d, rank in _real_neighbors(self.neighbors):
            self._recv_requests.append(
                self.comm.Irecv(self._recv_buffers[d], source=rank, tag=TAGS[OPPOSITE[d]])
            )
        for d, rank in _real_neighbors(self.neighbors):
            np.copyto(self._send_buffers[d], block[SEND_SLICES[d]])
            self._send_requests.append(
                self.comm.Isend(self._send_buffers[d], dest=rank, tag=TAGS[d])
            )

    def wait_receives(self):
        super().wait_receives()
        for d, buf in self._recv_buffers.items():
            self._block[RECV_SLICES[d]] = buf


class DatatypeHaloExchanger(HaloExchanger):
    """Halo exchange with MPI derived datatypes (zero-copy)."""

    def _setup(self):
        rows, columns = self.local_shape
        width = columns + 2

        def flat_idx(r, c):
            return r * width + c

        self._row_type = MPI.DOUBLE.Create_contiguous(columns)
        self._row_type.Commit()
        self._column_type = MPI.DOUBLE.Create_vector(rows, 1, width)
        self._column_type.Commit()

        self._types = {
            "up": self._row_type,
            "down": self._row_type,
            "left": self._column_type,
            "right": self._column_type,
        }
        self._send_offsets = {
            "up": flat_idx(1, 1),
            "down": flat_idx(rows, 1),
            "left": flat_idx(1, 1),
            "right": flat_idx(1, columns),
        }
        self._recv_offsets = {
            "up": flat_idx(0, 1),
            "down": flat_idx(rows + 1, 1),
            "left": flat_idx(1, 0),
            "right": flat_idx(1, columns + 1),
        }

    def _check(self, block: np.ndarray) -> np.ndarray:
        rows, columns = self.local_shape
        if block.shape != (rows + 2, columns + 2) or not block.flags.c_contiguous:
            raise ValueError(
                f"Expected a C-contiguous block of shape {(rows + 2, columns + 2)}"
            )
        return block.reshape(-1)

    def _recv_spec(self, flat, d):
        return [flat[self._recv_offsets[d]:], 1, self._types[d]]

    def _send_spec(self, flat, d):
        return [flat[self._send_offsets[d]:], 1, self._types[d]]

    def post(self, block):
        flat = self._check(block)
        for d, rank in _real_neighbors(self.neighbors):
            self._recv_requests.append(
                self.comm.Irecv(self._recv_spec(flat, d), source=rank, tag=TAGS[OPPOSITE[d]])
            )
        for d, rank in _real_neighbors(self.neighbors):
            self._send_requests.append(
                self.comm.Isend(self._send_spec(flat, d), dest=rank, tag=TAGS[d])
            )

    def free(self):
        for dt in (getattr(self, "_row_type", None), getattr(self, "_column_type", None)):
            if dt is not None and dt != MPI.DATATYPE_NULL:
                dt.Free()


class PersistentHaloExchanger(DatatypeHaloExchanger):
    """Datatype exchange with persistent requests.

    Requests are created once per block buffer (one set per generation)
    with Recv_init/Send_init and re-triggered every iteration.
    """

    def _setup(self):
        super()._setup()
        self._persistent = {}

    def _requests_for(self, block):
        key = block.__array_interface__["data"][0]
        entry = self._persistent.get(key)
        if entry is None:
            flat = self._check(block)
            recvs = [
                self.comm.Recv_init(self._recv_spec(flat, d), source=rank, tag=TAGS[OPPOSITE[d]])
                for d, rank in _real_neighbors(self.neighbors)
            ]
            sends = [
                self.comm.Send_init(self._send_spec(flat, d), dest=rank, tag=TAGS[d])
                for d, rank in _real_neighbors(self.neighbors)
            ]
            # The block is kept alive as long as requests point into it
            entry = (block, recvs, sends)
            self._persistent[key] = entry
        return entry[1], entry[2]

    def post(self, block):
        recvs, sends = self._requests_for(block)
        MPI.Prequest.Startall(recvs + sends)
        self._recv_requests = list(recvs)
        self._send_requests = list(sends)

    def free(self):
        for _, recvs, sends in self._persistent.values():
            for req in recvs + sends:
                if req != MPI.REQUEST_NULL:
                    req.Free()
        self._persistent.clear()
        super().free()


def create_halo_exchanger(exchange_type: str) -> HaloExchanger:
    """Factory: 'numpy', 'custom' (MPI datatypes) or 'persistent'."""
    if exchange_type == "numpy":
        return NumpyHaloExchanger()
    elif exchange_type == "custom":
        return DatatypeHaloExchanger()
    elif exchange_type == "persistent":
        return PersistentHaloExchanger()
    else:
        raise ValueError(f"Unknown halo_exchange type: {exchange_type}")
