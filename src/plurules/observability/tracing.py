"""MLflow tracing setup.

Engine functions are decorated with ``mlflow.trace`` directly; this module
only points MLflow at the configured tracking store and experiment.
"""

import logging

import mlflow

from plurules.config import settings

logger = logging.getLogger(__name__)


def init_tracing(tracking_uri: str | None = None, experiment_name: str | None = None) -> None:
    """Point MLflow at the tracking store and enable async trace logging."""
    uri = tracking_uri or settings.mlflow_tracking_uri
    mlflow.set_tracking_uri(uri)
    mlflow.set_experiment(experiment_name or settings.mlflow_experiment_name)
    mlflow.config.enable_async_logging()
    logger.info("MLflow tracing enabled: %s", uri)
