"""Run the heat CLI via an mpiexec subprocess."""

import os
import subprocess
import sys
import tempfile
from pathlib import Path


def run_solver(
    NX: int,
    NY: int,
    n_ranks: int = 1,
    threads: int = None,
    workdir: str = None,
    timeout: float = 300,
    **overrides,
) -> dict:
    """Run the solver on ``n_ranks`` MPI processes.

    Parameters
    ----------
    NX, NY : int
        Grid size
    n_ranks : int
        Number of MPI ranks
    threads : int, optional
        Worker threads per rank (positional CLI argument)
    workdir : str, optional
        Directory for the snapshots (uses a temp dir if not provided)
    **overrides
        Extra config keys (steps, cx, cy, kernel, communicator, transport,
        or dotted keys such as ``output.dir``); these win over the defaults

    Returns
    -------
    dict
        The ``results`` row (config, metrics, block layout) plus ``final``
        (the gathered field) and ``workdir``, or
        ``error`` and ``returncode`` on failure.
    """
    import numpy as np
    import pandas as pd

    if workdir is None:
        workdir = tempfile.mkdtemp(prefix="heat2d_")
    workdir = Path(workdir)

    cmd = ["mpiexec", "-n", str(n_ranks), sys.executable, "-m", "Heat2D"]
    if threads is not None:
        cmd.append(str(threads))
    settings = {"NX": NX, "NY": NY, "output.dir": workdir, "output.save_hdf5": "true"}
    settings.update(overrides)
    cmd += [f"{key}={val}" for key, val in settings.items()]

    env = os.environ.copy()
    # Allow more ranks than cores (Open MPI 4 and 5)
    env.setdefault("OMPI_MCA_rmaps_base_oversubscribe", "1")
    env.setdefault("PRTE_MCA_rmaps_default_mapping_policy", ":oversubscribe")

    proc = subprocess.run(cmd, capture_output=True, text=True, env=env, timeout=timeout)

    if proc.returncode != 0:
        return {"error": proc.stderr, "returncode": proc.returncode, "workdir": workdir}

    final = workdir / "final.npy"
    results = workdir / "results.h5"
    if not (final.exists() and results.exists()):
        return {"error": "No output file created", "stderr": proc.stderr, "returncode": 0}

    result = pd.read_hdf(results, key="results").iloc[0].to_dict()
    result.update(final=np.load(final), workdir=workdir, returncode=0)
    return result
