"""Explicit 5-point heat diffusion kernels.

A step reads the old generation and writes the new one:

    new[i, j] = old[i, j]
                + cx * (old[i+1, j] + old[i-1, j] - 2 old[i, j])
                + cy * (old[i, j+1] + old[i, j-1] - 2 old[i, j])

Blocks are halo-padded, so owned cells are ``[1:-1, 1:-1]``. The update is
split into an interior pass, which never reads the halo ring, and an
exterior pass over the remaining one-cell border strip. Owned cells on the
physical boundary of the domain are never written.
"""

from __future__ import annotations

import logging

import numpy as np
import numba
from numba import njit, prange

log = logging.getLogger(__name__)

# Usual stability bound of the explicit 5-point scheme
STABILITY_LIMIT = 0.5


def stencil_regions(
    local_shape: tuple[int, int], neighbors: dict
) -> tuple[list[tuple[int, int, int, int]], list[tuple[int, int, int, int]]]:
    """Rectangles of cells computed by the interior and exterior passes.

    Rectangles are half-open ``(r0, r1, c0, c1)`` in halo-padded indices.
    An owned edge whose neighbor is None lies on the physical boundary and
    is excluded. Top and bottom row strips own the corners; left and right
    column strips cover the rows between them.
    """
    rows, columns = local_shape
    row_lo = 1 if neighbors.get("up") is not None else 2
    row_hi = rows if neighbors.get("down") is not None else rows - 1
    col_lo = 1 if neighbors.get("left") is not None else 2
    col_hi = columns if neighbors.get("right") is not None else columns - 1

    interior = []
    if rows >= 3 and columns >= 3:
        interior.append((2, rows, 2, columns))

    exterior = []
    if row_lo > row_hi or col_lo > col_hi:
        return interior, exterior

    for r in sorted({1, rows}):
        if row_lo <= r <= row_hi:
            exterior.append((r, r + 1, col_lo, col_hi + 1))

    r0, r1 = max(row_lo, 2), min(row_hi, rows - 1)
    if r0 <= r1:
        for c in sorted({1, columns}):
            if col_lo <= c <= col_hi:
                exterior.append((r0, r1 + 1, c, c + 1))

    return interior, exterior


def static_chunks(n_cells: int, n_workers: int) -> np.ndarray:
    """Split ``range(n_cells)`` into ``n_workers`` contiguous chunks.

    Returns ``n_workers + 1`` bounds; chunk ``t`` is
    ``[bounds[t], bounds[t + 1])``. The first ``n_cells % n_workers`` chunks
    get one extra cell.
    """
    base, rem = divmod(n_cells, n_workers)
    sizes = [base + (1 if t < rem else 0) for t in range(n_workers)]
    return np.concatenate(([0], np.cumsum(sizes))).astype(np.int64)


def _region_arrays(regions):
    """Pack rectangles and their cumulative cell offsets for Numba."""
    arr = np.array(regions, dtype=np.int64).reshape(-1, 4)
    counts = (arr[:, 1] - arr[:, 0]) * (arr[:, 3] - arr[:, 2])
    offsets = np.concatenate(([0], np.cumsum(counts))).astype(np.int64)
    return arr, offsets


@njit(parallel=True)
def _update_regions_numba(
    old: np.ndarray,
    new: np.ndarray,
    regions: np.ndarray,
    offsets: np.ndarray,
    bounds: np.ndarray,
    cx: float,
    cy: float,
):
    """Numba JIT update of every cell of ``regions``.

    Each prange iteration owns one static chunk of the flattened cell
    range, so no two threads write the same cell.
    """
    for t in prange(bounds.shape[0] - 1):
        k = bounds[t]
        stop = bounds[t + 1]
        reg = 0
        while k < stop:
            while offsets[reg + 1] <= k:
                reg += 1
            width = regions[reg, 3] - regions[reg, 2]
            cell = k - offsets[reg]
            i = regions[reg, 0] + cell // width
            j = regions[reg, 2] + cell % width
            center = old[i, j]
            new[i, j] = (
                center
                + cx * (old[i + 1, j] + old[i - 1, j] - 2.0 * center)
                + cy * (old[i, j + 1] + old[i, j - 1] - 2.0 * center)
            )
            k += 1


class _KernelBase:
    """Shared region bookkeeping for the concrete kernels."""

    def __init__(self, cx: float = 0.1, cy: float = 0.1, threads: int = 1):
        if threads < 1:
            raise ValueError(f"threads must be positive, got {threads}")
        self.cx = float(cx)
        self.cy = float(cy)
        self.threads = threads
        if self.cx + self.cy > STABILITY_LIMIT:
            log.warning(
                "cx + cy = %.3f exceeds %.1f; the explicit scheme may be unstable",
                self.cx + self.cy,
                STABILITY_LIMIT,
            )
        self._regions_cache = {}

    def regions(self, local_shape, neighbors):
        """Cached :func:`stencil_regions` for a block geometry."""
        key = (tuple(local_shape), tuple(neighbors.get(d) is None for d in ("up", "down", "left", "right")))
        if key not in self._regions_cache:
            self._regions_cache[key] = stencil_regions(local_shape, neighbors)
        return self._regions_cache[key]

    def _local_shape(self, block):
        return (block.shape[0] - 2, block.shape[1] - 2)

    def interior(self, old: np.ndarray, new: np.ndarray, neighbors: dict):
        """Cells at least two away from every block edge."""
        self._apply(old, new, self.regions(self._local_shape(old), neighbors)[0])

    def exterior(self, old: np.ndarray, new: np.ndarray, neighbors: dict):
        """One-cell border strip; reads the halo ring."""
        self._apply(old, new, self.regions(self._local_shape(old), neighbors)[1])

    def step(self, old: np.ndarray, new: np.ndarray, neighbors: dict):
        """Both passes."""
        self.interior(old, new, neighbors)
        self.exterior(old, new, neighbors)

    def warmup(self, warmup_size: int = 8):
        """No-op unless the kernel is JIT compiled."""
        pass


class NumPyKernel(_KernelBase):
    """NumPy slice-based kernel (single thread)."""

    def __init__(self, cx: float = 0.1, cy: float = 0.1, threads: int = 1):
        super().__init__(cx, cy, threads)
        self.observed_numba_threads = None  # Not applicable for NumPy

    def _apply(self, old, new, regions):
        cx, cy = self.cx, self.cy
        for r0, r1, c0, c1 in regions:
            center = old[r0:r1, c0:c1]
            new[r0:r1, c0:c1] = (
                center
                + cx * (old[r0 + 1:r1 + 1, c0:c1] + old[r0 - 1:r1 - 1, c0:c1] - 2.0 * center)
                + cy * (old[r0:r1, c0 + 1:c1 + 1] + old[r0:r1, c0 - 1:c1 - 1] - 2.0 * center)
            )


class NumbaKernel(_KernelBase):
    """Numba JIT-compiled kernel, fanned out over a static cell partition."""

    def __init__(self, cx: float = 0.1, cy: float = 0.1, threads: int = 1):
        super().__init__(cx, cy, threads)

        # Requested threads are clamped by NUMBA_NUM_THREADS; the partition
        # always has ``threads`` chunks so results do not depend on it
        numba.set_num_threads(min(threads, numba.config.NUMBA_NUM_THREADS))
        self.observed_numba_threads = numba.get_num_threads()
        self._packed = {}

    def _apply(self, old, new, regions):
        if not regions:
            return
        key = tuple(regions)
        packed = self._packed.get(key)
        if packed is None:
            arr, offsets = _region_arrays(regions)
            packed = (arr, offsets, static_chunks(int(offsets[-1]), self.threads))
            self._packed[key] = packed
        arr, offsets, bounds = packed
        _update_regions_numba(old, new, arr, offsets, bounds, self.cx, self.cy)

    def warmup(self, warmup_size: int = 8):
        """Trigger JIT compilation with a small problem."""
        u1 = np.random.rand(warmup_size + 2, warmup_size + 2)
        u2 = np.zeros_like(u1)
        isolated = dict.fromkeys(("up", "down", "left", "right"))
        for _ in range(2):
            self.step(u1, u2, isolated)
            u1, u2 = u2, u1


def create_kernel(kernel_type: str, cx: float, cy: float, threads: int = 1):
    """Factory: 'numba' for the threaded JIT kernel, 'numpy' for slices."""
    if kernel_type == "numba":
        return NumbaKernel(cx=cx, cy=cy, threads=threads)
    elif kernel_type == "numpy":
        return NumPyKernel(cx=cx, cy=cy, threads=threads)
    else:
        raise ValueError(f"Unknown kernel type: {kernel_type}")
