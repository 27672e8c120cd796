"""MLflow tracing setup for CLI and embedding processes.

Provider and listing calls are decorated with ``mlflow.trace`` directly;
this module only decides where traces go, or switches them off.
"""

import logging

import mlflow

from roomscout.config import settings

logger = logging.getLogger(__name__)


def init_tracing(enabled: bool | None = None) -> bool:
    """Point MLflow at the configured tracking store, or disable tracing.

    Returns whether tracing ended up enabled.
    """
    enabled = settings.tracing_enabled if enabled is None else enabled
    if not enabled:
        mlflow.tracing.disable()
        logger.debug("MLflow tracing disabled")
        return False

    mlflow.set_tracking_uri(settings.mlflow_tracking_uri)
    mlflow.set_experiment(settings.mlflow_experiment_name)
    mlflow.tracing.enable()
    logger.info("MLflow tracing to %s (experiment=%s)",
                settings.mlflow_tracking_uri, settings.mlflow_experiment_name)
    return True
