"""Observability: structured logging and MLflow tracing helpers."""

from roomscout.observability.logging import get_correlation_id, new_correlation_id, setup_logging
from roomscout.observability.tracing import init_tracing

__all__ = ["get_correlation_id", "init_tracing", "new_correlation_id", "setup_logging"]
