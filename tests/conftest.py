"""Shared helpers: an in-process stand-in for a multi-rank run."""

import numpy as np
import pytest
from Heat2D.mpi import split_field, assemble_field
from Heat2D.mpi.halo import OPPOSITE, RECV_SLICES, SEND_SLICES


def fill_halos(blocks, topology):
    """Copy every neighbor's edge into the matching halo, as the exchange would."""
    for rank, block in enumerate(blocks):
        for direction, neighbor in topology.neighbors(rank).items():
            if neighbor is not None:
                block[RECV_SLICES[direction]] = blocks[neighbor][SEND_SLICES[OPPOSITE[direction]]]


def simulate_blocks(u0, topology, kernel, steps, poison=False):
    """Run ``steps`` iterations over all blocks of ``topology`` in one process.

    With ``poison`` every halo cell starts as NaN, so any read of a halo
    cell that is not refreshed by the exchange shows up in the result.
    """
    old, new = [], []
    for interior in split_field(u0, topology):
        pair = []
        for _ in range(2):
            block = np.full((topology.rows + 2, topology.columns + 2), np.nan if poison else 0.0)
            block[1:-1, 1:-1] = interior
            pair.append(block)
        old.append(pair[0])
        new.append(pair[1])

    for _ in range(steps):
        fill_halos(old, topology)
        for rank in range(topology.n_workers):
            neighbors = topology.neighbors(rank)
            kernel.interior(old[rank], new[rank], neighbors)
            kernel.exterior(old[rank], new[rank], neighbors)
        old, new = new, old

    return assemble_field([block[1:-1, 1:-1] for block in old], topology)


@pytest.fixture
def random_field():
    """Random field with a zero boundary ring."""

    def make(NX, NY, seed=0):
        u = np.random.default_rng(seed).random((NX, NY)) * 100.0
        u[0, :] = u[-1, :] = 0.0
        u[:, 0] = u[:, -1] = 0.0
        return u

    return make
