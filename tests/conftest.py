"""Shared test fixtures."""

import mlflow
import pytest

from roomscout.observability.logging import correlation_id


@pytest.fixture(autouse=True)
def _disable_mlflow_tracing():
    """Disable MLflow tracing during tests so nothing is written to mlruns/."""
    mlflow.tracing.disable()
    yield
    mlflow.tracing.enable()


@pytest.fixture(autouse=True)
def _reset_correlation_id():
    """Sessions set a correlation ID; keep it from leaking between tests."""
    token = correlation_id.set("")
    yield
    correlation_id.reset(token)
