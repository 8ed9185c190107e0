"""Command line entry point.

Usage:
    mpiexec -n 4 heat2d [THREADS] [key=value ...]
    mpiexec -n 6 python -m Heat2D 2 NX=120 NY=96 steps=50 communicator=persistent

THREADS is the number of worker threads per rank (default 1). Every
``key=value`` token is a Hydra override of ``Heat2D/conf/config.yaml``.
"""

import logging
import sys
from dataclasses import asdict
from pathlib import Path

import numpy as np
from mpi4py import MPI
from omegaconf import DictConfig, OmegaConf

from .datastructures import GlobalParams
from .errors import (
    ConfigurationError,
    EXIT_ALLOCATION,
    EXIT_BAD_ARGUMENTS,
    EXIT_FAILURE,
    EXIT_OK,
)
from .io import write_snapshot
from .problems import initial_condition
from .solvers import HeatMPISolver
from .tracking import setup_mlflow_tracking, log_run

log = logging.getLogger(__name__)


def parse_args(argv: list[str]) -> tuple[int | None, list[str]]:
    """Split argv into the optional thread count and Hydra overrides.

    Raises
    ------
    ConfigurationError
        If more than one positional argument is given, or the thread count
        is not a positive integer.
    """
    overrides = [a for a in argv if "=" in a and not a.startswith("-")]
    positional = [a for a in argv if a not in overrides]

    if len(positional) > 1:
        raise ConfigurationError("You gave wrong parameters", EXIT_BAD_ARGUMENTS)
    if not positional:
        return None, overrides

    try:
        threads = int(positional[0])
    except ValueError:
        raise ConfigurationError(
            f"Thread count must be an integer, got '{positional[0]}'", EXIT_BAD_ARGUMENTS
        ) from None
    if threads <= 0:
        raise ConfigurationError("You gave wrong number of threads!", EXIT_BAD_ARGUMENTS)
    return threads, overrides


def load_config(overrides: list[str]) -> DictConfig:
    """Compose the packaged Hydra config with command line overrides."""
    from hydra import compose, initialize_config_module
    from hydra.errors import HydraException
    from omegaconf.errors import OmegaConfBaseException

    try:
        with initialize_config_module(config_module="Heat2D.conf", version_base=None):
            cfg = compose(config_name="config", overrides=overrides)
    except (HydraException, OmegaConfBaseException) as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}", EXIT_BAD_ARGUMENTS) from exc

    try:
        threads = int(cfg.threads)
    except ValueError:
        raise ConfigurationError(
            f"Thread count must be an integer, got '{cfg.threads}'", EXIT_BAD_ARGUMENTS
        ) from None
    if threads <= 0:
        raise ConfigurationError("You gave wrong number of threads!", EXIT_BAD_ARGUMENTS)
    return cfg


def run(cfg: DictConfig, comm: MPI.Comm = MPI.COMM_WORLD):
    """Run one simulation and write the snapshots on rank 0.

    Returns the solver metrics.
    """
    rank, size = comm.Get_rank(), comm.Get_size()
    params = GlobalParams.from_config(cfg, n_ranks=size)
    out_dir = Path(cfg.output.dir)

    if rank == 0:
        log.info("Thread count = %d", params.threads)
        log.info("Starting heat2d with %d worker tasks.", size)
        log.info("Grid size: X= %d  Y= %d  Time steps= %d", params.NX, params.NY, params.steps)

    # Decomposition happens here and fails on every rank before allocation
    solver = HeatMPISolver(
        params.NX,
        params.NY,
        communicator=params.communicator,
        transport=params.transport,
        comm=comm,
        steps=params.steps,
        cx=params.cx,
        cy=params.cy,
        threads=params.threads,
        kernel=params.kernel,
    )
    solver.warmup()

    u0 = None
    if rank == 0:
        log.info("Initializing grid and writing %s file...", cfg.output.initial)
        u0 = initial_condition(params.NX, params.NY)
        write_snapshot(u0, out_dir / cfg.output.initial)

    u = solver.solve(u0)

    rank_rows = comm.gather(
        {**asdict(solver.grid.get_rank_info()), **solver.timeseries.summary()}, root=0
    )

    if rank == 0:
        log.info("Writing %s file...", cfg.output.final)
        write_snapshot(u, out_dir / cfg.output.final)
        if cfg.output.save_hdf5:
            np.save(out_dir / "final.npy", u)
            solver.save_hdf5(out_dir / cfg.output.results, params)

        if setup_mlflow_tracking(cfg.mlflow.mode):
            log_run(params, solver.metrics, solver.timeseries, rank_rows)

    # Collective; only reached when every rank got through the run
    solver.free()
    return solver.metrics


def main(argv: list[str] = None) -> int:
    """Entry point. Returns the process exit status."""
    if argv is None:
        argv = sys.argv[1:]

    comm = MPI.COMM_WORLD
    rank = comm.Get_rank()
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")

    try:
        threads, overrides = parse_args(argv)
        if threads is not None:
            overrides.append(f"threads={threads}")
        cfg = load_config(overrides)
        logging.getLogger().setLevel(cfg.log_level)
        if rank == 0:
            log.debug("Configuration:\n%s", OmegaConf.to_yaml(cfg))
        run(cfg, comm)
    except ConfigurationError as exc:
        if rank == 0:
            log.error("ERROR: %s", exc)
        return exc.exit_status
    except MemoryError:
        log.critical("Process %d: could not allocate the local block", rank)
        comm.Abort(EXIT_ALLOCATION)
    except Exception:
        # A failure on one rank leaves the others blocked in a collective
        log.exception("Process %d: run failed", rank)
        if comm.Get_size() > 1:
            comm.Abort(EXIT_FAILURE)
        raise

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
