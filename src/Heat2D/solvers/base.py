"""Base class for solvers."""

import time
import warnings
from abc import ABC, abstractmethod
from dataclasses import asdict

import numpy as np
import pandas as pd

from ..datastructures import GlobalMetrics, LocalMetrics
from ..kernels import create_kernel


class BaseSolver(ABC):
    """Abstract base for heat diffusion solvers.

    Parameters
    ----------
    NX, NY : int
        Global grid size.
    steps : int
        Number of time steps.
    cx, cy : float
        Diffusion coefficients along x and y. Used as given; the kernel
        logs a warning when cx + cy exceeds the stability limit.
    threads : int
        Worker threads per process for the compute passes.
    kernel : str
        'numba' or 'numpy'.
    """

    def __init__(
        self,
        NX: int,
        NY: int,
        steps: int = 100,
        cx: float = 0.1,
        cy: float = 0.1,
        threads: int = 1,
        kernel: str = "numba",
    ):
        if steps < 0:
            raise ValueError(f"steps must be non-negative, got {steps}")
        self.NX = NX
        self.NY = NY
        self.steps = steps
        self.cx = cx
        self.cy = cy
        self.threads = threads
        self.kernel_type = kernel

        self.kernel = create_kernel(kernel, cx, cy, threads)

        # Metrics containers (match datastructures.py naming)
        self.metrics = GlobalMetrics()
        self.timeseries = LocalMetrics()

    @abstractmethod
    def solve(self, u0: np.ndarray = None):
        """Run all time steps. Returns the final global field."""
        pass

    def warmup(self, warmup_size: int = 8):
        """Warmup kernel (trigger Numba JIT if used)."""
        self.kernel.warmup(warmup_size=warmup_size)

    def _get_time(self) -> float:
        """Get current time. Override for MPI timing."""
        return time.perf_counter()

    def _reduce_max(self, value: float) -> float:
        """Max across ranks. Override for MPI."""
        return value

    def _is_root(self) -> bool:
        """True if this rank should log metrics. Override for MPI."""
        return True

    def _barrier(self):
        """Synchronize all ranks before timing. No-op for sequential."""
        pass

    def _reset(self):
        """Reset timeseries and metrics."""
        self.timeseries.clear()
        self.metrics = GlobalMetrics()

    def _finalize(self, wall_time: float):
        """Finalize metrics after solve."""
        self.metrics.total_compute_time = float(sum(self.timeseries.compute_times))
        self.metrics.total_halo_time = float(sum(self.timeseries.halo_times))
        self.metrics.observed_numba_threads = self.kernel.observed_numba_threads
        self._compute_metrics(self._reduce_max(wall_time), self.steps)

    def _compute_metrics(self, wall_time: float, iterations: int):
        """Compute performance metrics."""
        self.metrics.wall_time = wall_time
        self.metrics.iterations = iterations

        n_points = self.NX * self.NY
        if iterations > 0 and wall_time > 0:
            self.metrics.mlups = n_points * iterations / (wall_time * 1e6)

    def _layout(self) -> dict:
        """Block grid and block size, stored next to the results."""
        return {"xdim": 1, "ydim": 1, "rows": self.NX, "columns": self.NY}

    def save_hdf5(self, path, params) -> None:
        """Save config, results, and timeseries to HDF5 (root rank only).

        Parameters
        ----------
        path : str or Path
            Output file, overwritten.
        params : GlobalParams
            Run configuration stored in the ``results`` row.
        """
        if not self._is_root():
            return

        row = {**asdict(params), **asdict(self.metrics), **self._layout()}
        df_results = pd.DataFrame([row])

        # Convert string columns to avoid PyTables pickle warning
        for col in df_results.select_dtypes(include=["object"]).columns:
            df_results[col] = df_results[col].astype(str)

        with warnings.catch_warnings():
            warnings.simplefilter("ignore", pd.errors.PerformanceWarning)
            df_results.to_hdf(path, key="results", mode="w", format="table")

            # One row per iteration; empty when no step was taken
            ts_data = {k: v for k, v in asdict(self.timeseries).items() if v}
            if ts_data:
                pd.DataFrame(ts_data).to_hdf(path, key="timeseries", mode="a", format="table")
