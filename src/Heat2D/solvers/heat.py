"""Heat diffusion time stepping - sequential reference."""

import numpy as np

from .base import BaseSolver
from ..mpi.field import DistributedField
from ..problems import initial_condition

ISOLATED = {"up": None, "down": None, "left": None, "right": None}


class HeatSolver(BaseSolver):
    """Sequential heat solver: the whole grid as one block.

    The time loop is written once, against hook methods that are no-ops
    here and perform halo exchange in :class:`HeatMPISolver`. Each step::

        post halos -> interior pass -> wait receives
                   -> exterior pass -> wait sends -> swap

    Parameters are those of :class:`BaseSolver`.
    """

    def __init__(self, NX: int, NY: int, **kwargs):
        super().__init__(NX, NY, **kwargs)
        self._init_arrays()

    def _init_arrays(self):
        """Allocate both generations."""
        self.neighbors = dict(ISOLATED)
        self.field = DistributedField((self.NX, self.NY))

    def solve(self, u0: np.ndarray = None):
        """Run ``steps`` iterations from ``u0`` (default initial condition).

        Returns
        -------
        numpy.ndarray or None
            Final NX x NY field (None on non-root MPI ranks).
        """
        self._reset()
        self._load_initial(u0)

        field, kernel, neighbors = self.field, self.kernel, self.neighbors
        ts = self.timeseries

        self._barrier()
        t_start = self._get_time()

        for _ in range(self.steps):
            old, new = field.old, field.new

            self._post_halos(old)

            t0 = self._get_time()
            kernel.interior(old, new, neighbors)
            t1 = self._get_time()

            self._wait_halo_receives()

            t2 = self._get_time()
            kernel.exterior(old, new, neighbors)
            t3 = self._get_time()

            self._wait_halo_sends()
            t4 = self._get_time()

            field.swap()

            ts.interior_times.append(t1 - t0)
            ts.recv_wait_times.append(t2 - t1)
            ts.exterior_times.append(t3 - t2)
            ts.send_wait_times.append(t4 - t3)

        wall_time = self._get_time() - t_start
        self.elapsed = wall_time
        self._finalize(wall_time)

        return self._collect_result()

    def _load_initial(self, u0):
        """Copy the initial field into generation 0."""
        self.field.reset()
        if u0 is None:
            u0 = initial_condition(self.NX, self.NY)
        self.field.interior(0)[...] = u0
        self.field.sync_generations()

    def _collect_result(self):
        return self.field.final()[1:-1, 1:-1].copy()

    def _post_halos(self, block: np.ndarray):
        """Start halo transfers. No-op for sequential."""
        pass

    def _wait_halo_receives(self):
        pass

    def _wait_halo_sends(self):
        pass
