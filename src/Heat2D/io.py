"""Text snapshots of the global temperature field."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

log = logging.getLogger(__name__)

SNAPSHOT_FMT = "%6.1f"


def write_snapshot(u: np.ndarray, path) -> Path:
    """Write ``u[x, y]`` as NY lines of NX values.

    The first line is y = NY - 1 and the last is y = 0; within a line x
    ascends. Values use ``%6.1f`` and are separated by a single space.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as fp:
        np.savetxt(fp, np.asarray(u).T[::-1], fmt=SNAPSHOT_FMT, delimiter=" ", newline="\n")
    log.info("Wrote %s", path)
    return path


def read_snapshot(path) -> np.ndarray:
    """Load a snapshot written by :func:`write_snapshot` back into ``u[x, y]``."""
    rows = np.loadtxt(path, dtype=np.float64, ndmin=2)
    return np.ascontiguousarray(rows[::-1].T)
