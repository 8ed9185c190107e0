"""Double-buffered local block owned by one rank."""

from __future__ import annotations

import numpy as np


class DistributedField:
    """Two generations of a halo-padded block, swapped every iteration.

    Generation ``iteration % 2`` is the old one (read this step) and the
    other one is new (written this step). Both start zero-filled, so the
    halo ring is 0 until a halo exchange fills it.

    Parameters
    ----------
    local_shape : tuple of int
        Interior (rows, columns) of the block.
    dtype : numpy dtype
        Element type (default float64).
    """

    def __init__(self, local_shape: tuple[int, int], dtype=np.float64):
        rows, columns = local_shape
        self.local_shape = (rows, columns)
        self.halo_shape = (rows + 2, columns + 2)
        # MemoryError propagates: a block that cannot be allocated is fatal
        self._generations = (
            np.zeros(self.halo_shape, dtype=dtype),
            np.zeros(self.halo_shape, dtype=dtype),
        )
        self.iteration = 0

    @property
    def old_index(self) -> int:
        return self.iteration % 2

    @property
    def new_index(self) -> int:
        return 1 - self.iteration % 2

    def read(self, generation: int) -> np.ndarray:
        """Block of ``generation`` as the read side of a step."""
        return self._generations[generation]

    def write_target(self, generation: int) -> np.ndarray:
        """Block of ``generation`` as the write side of a step."""
        return self._generations[generation]

    @property
    def old(self) -> np.ndarray:
        return self.read(self.old_index)

    @property
    def new(self) -> np.ndarray:
        return self.write_target(self.new_index)

    def final(self) -> np.ndarray:
        """Generation holding the result of the last completed step."""
        return self._generations[self.iteration % 2]

    def interior(self, generation: int) -> np.ndarray:
        """View of the owned cells of ``generation``."""
        return self._generations[generation][1:-1, 1:-1]

    def sync_generations(self):
        """Copy the owned cells of generation 0 into generation 1.

        Cells on the physical boundary are never written by the stencil,
        so both generations must start from the same values.
        """
        self.interior(1)[...] = self.interior(0)

    def swap(self):
        """Advance the iteration parity."""
        self.iteration += 1

    def reset(self):
        """Zero both generations and restart the parity."""
        for block in self._generations:
            block.fill(0.0)
        self.iteration = 0

    @property
    def nbytes(self) -> int:
        return sum(block.nbytes for block in self._generations)
