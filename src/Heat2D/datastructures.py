"""Data structures for run configuration and results.

Architecture: 2x2 matrix of Params vs Metrics × Global vs Local

                 Params (input/config)         Metrics (output/results)
                 ─────────────────────         ────────────────────────
Global           GlobalParams                  GlobalMetrics
(same across     NX, NY, steps, cx, cy,        wall_time, mlups,
ranks / agg)     n_ranks, threads...           iterations...

Local            LocalParams                   LocalMetrics
(per-rank)       rank, hostname,               interior_times[],
                 neighbors, local_shape...     recv_wait_times[]...
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


# ============================================================================
# Global (identical across ranks, or aggregated on rank 0)
# ============================================================================


@dataclass
class GlobalParams:
    """Run configuration - composed by Hydra, logged to MLflow as params.

    Immutable configuration set before the run. Identical across all MPI ranks.
    """

    # Problem
    NX: int = 256
    NY: int = 320
    steps: int = 100
    cx: float = 0.1
    cy: float = 0.1

    # Parallelization
    n_ranks: int = 1
    threads: int = 1
    kernel: str = "numba"  # "numba" | "numpy"
    communicator: str = "custom"  # "numpy" | "custom" | "persistent"
    transport: str = "custom"  # "numpy" | "custom"

    # Experiment tracking
    experiment_name: str = "heat2d"

    # Auto-detected at runtime (not from config)
    environment: str = field(init=False)

    def __post_init__(self):
        self.environment = (
            "hpc"
            if os.environ.get("LSB_JOBID") or os.environ.get("SLURM_JOB_ID")
            else "local"
        )

    @classmethod
    def from_config(cls, cfg, n_ranks: int = 1) -> "GlobalParams":
        """Build from a composed Hydra config."""
        return cls(
            NX=int(cfg.NX),
            NY=int(cfg.NY),
            steps=int(cfg.steps),
            cx=float(cfg.cx),
            cy=float(cfg.cy),
            n_ranks=n_ranks,
            threads=int(cfg.threads),
            kernel=str(cfg.kernel),
            communicator=str(cfg.communicator),
            transport=str(cfg.transport),
            experiment_name=str(cfg.get("experiment_name", "heat2d")),
        )

    def to_mlflow(self) -> dict:
        """Convert to MLflow-compatible params dict."""
        return dict(self.__dict__)


@dataclass
class GlobalMetrics:
    """Aggregated results - logged to MLflow as metrics.

    Final results computed/aggregated on rank 0.
    """

    iterations: int = 0
    wall_time: Optional[float] = None

    # Timing breakdown (sum across all iterations)
    total_compute_time: Optional[float] = None
    total_halo_time: Optional[float] = None

    # Million Lattice Updates per Second
    mlups: Optional[float] = None

    observed_numba_threads: Optional[int] = None

    def to_mlflow(self) -> dict:
        """Convert to MLflow-compatible dict (no None)."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


# ============================================================================
# Local (per-rank)
# ============================================================================


@dataclass
class LocalParams:
    """Per-rank placement - gathered to rank 0, logged as artifact."""

    rank: int
    hostname: str = ""
    cart_coords: Optional[Tuple[int, int]] = None
    neighbors: Dict[str, Optional[int]] = field(default_factory=dict)
    local_shape: Optional[Tuple[int, int]] = None
    global_start: Optional[Tuple[int, int]] = None
    global_end: Optional[Tuple[int, int]] = None


@dataclass
class LocalMetrics:
    """Per-rank timeseries, one entry per iteration."""

    interior_times: List[float] = field(default_factory=list)
    exterior_times: List[float] = field(default_factory=list)
    recv_wait_times: List[float] = field(default_factory=list)
    send_wait_times: List[float] = field(default_factory=list)

    def clear(self):
        """Clear all timeseries data."""
        for values in self.__dict__.values():
            values.clear()

    @property
    def compute_times(self) -> List[float]:
        """Interior plus exterior time per iteration."""
        return [a + b for a, b in zip(self.interior_times, self.exterior_times)]

    @property
    def halo_times(self) -> List[float]:
        """Time blocked on receives and sends per iteration."""
        return [a + b for a, b in zip(self.recv_wait_times, self.send_wait_times)]

    def summary(self) -> dict:
        """Totals for the per-rank timing table."""
        return {name: float(sum(values)) for name, values in self.__dict__.items()}

    def to_mlflow_batch(self) -> list:
        """Convert timeseries to MLflow Metric objects for batch logging."""
        from mlflow.entities import Metric

        return [
            Metric(key=name, value=value, timestamp=0, step=step)
            for name, values in self.__dict__.items()
            for step, value in enumerate(values)
        ]


# ============================================================================
# MPI Grid Geometry
# ============================================================================


@dataclass(frozen=True)
class RankGeometry:
    """Per-rank block geometry.

    Describes the portion of the global grid owned by one rank. Start and
    end are half-open global (x, y) indices of the block interior.
    """

    rank: int
    coords: Tuple[int, int]
    local_shape: Tuple[int, int]
    halo_shape: Tuple[int, int]
    global_start: Tuple[int, int]
    global_end: Tuple[int, int]
    neighbors: Dict[str, Optional[int]]

    @property
    def n_neighbors(self) -> int:
        return sum(n is not None for n in self.neighbors.values())
