"""MLflow experiment tracking for heat runs.

This module provides helpers for:
- Setting up MLflow tracking (local or Databricks).
- Logging run parameters, aggregated metrics, per-iteration timeseries and
  a per-rank timing table.
"""

from __future__ import annotations

import logging
from pathlib import Path

log = logging.getLogger(__name__)

TRACKING_MODES = ("disabled", "local", "databricks")


def setup_mlflow_tracking(mode: str = "local") -> bool:
    """Configure MLflow tracking.

    Parameters
    ----------
    mode : str
        "disabled", "local" (./mlruns) or "databricks".

    Returns
    -------
    bool
        True if runs should be logged.
    """
    if mode == "disabled":
        return False

    import mlflow

    if mode == "databricks":
        try:
            mlflow.login(backend="databricks", interactive=False)
            mlflow.set_tracking_uri("databricks")
        except Exception as e:
            raise RuntimeError(
                "MLflow Databricks setup failed. Ensure credentials are configured."
            ) from e
        log.info("Connected to Databricks MLflow tracking.")
    elif mode == "local":
        mlruns_uri = (Path.cwd() / "mlruns").as_uri()
        mlflow.set_tracking_uri(mlruns_uri)
        log.info("Using local file-based MLflow tracking backend: %s", mlruns_uri)
    else:
        raise ValueError(f"Unknown MLflow mode '{mode}'. Use one of {TRACKING_MODES}.")
    return True


def log_run(params, metrics, timeseries=None, rank_rows: list[dict] | None = None):
    """Log one run to MLflow.

    Parameters
    ----------
    params : GlobalParams
        Run configuration.
    metrics : GlobalMetrics
        Aggregated results.
    timeseries : LocalMetrics, optional
        Root rank per-iteration timings.
    rank_rows : list of dict, optional
        One row per rank, logged as ``ranks.json``.
    """
    import mlflow

    mlflow.set_experiment(params.experiment_name)
    run_name = f"heat2d_{params.NX}x{params.NY}_p{params.n_ranks}_t{params.threads}"

    with mlflow.start_run(run_name=run_name):
        mlflow.set_tag("environment", params.environment)
        mlflow.log_params(params.to_mlflow())
        mlflow.log_metrics(metrics.to_mlflow())

        if timeseries is not None:
            mlflow.tracking.MlflowClient().log_batch(
                mlflow.active_run().info.run_id, metrics=timeseries.to_mlflow_batch()
            )

        if rank_rows:
            import pandas as pd

            mlflow.log_table(pd.DataFrame(rank_rows), artifact_file="ranks.json")
