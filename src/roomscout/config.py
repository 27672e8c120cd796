"""roomscout configuration: marketplace API, geocoding provider, and logging settings."""

import logging

from pydantic import model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # Marketplace API
    api_base_url: str = "http://localhost:8080/api"
    api_token: str = ""
    request_timeout: float = 20.0

    # Geocoding provider (Goong-compatible)
    geocoding_api_key: str = ""
    geocoding_base_url: str = "https://rsapi.goong.io"
    reverse_geocode_timeout: float = 15.0
    reverse_geocode_max_attempts: int = 3
    retry_base_delay: float = 2.0

    # Discovery
    listing_page_size: int = 6

    @model_validator(mode="after")
    def _strip_api_keys(self) -> "Settings":
        """Strip whitespace/newlines from keys (a common paste error in .env files)."""
        for field in ("geocoding_api_key", "api_token"):
            val = getattr(self, field)
            if val and val != val.strip():
                setattr(self, field, val.strip())
        self.api_base_url = self.api_base_url.rstrip("/")
        self.geocoding_base_url = self.geocoding_base_url.rstrip("/")
        return self

    # MLflow tracing
    tracing_enabled: bool = False
    mlflow_tracking_uri: str = "sqlite:///mlruns/mlflow.db"
    mlflow_experiment_name: str = "roomscout-discovery"

    # Logging
    log_json: bool = True
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}

    @property
    def geocoding_configured(self) -> bool:
        return bool(self.geocoding_api_key)


settings = Settings()


def check_configuration(config: Settings | None = None) -> list[str]:
    """Report configuration problems at startup without raising.

    A missing geocoding key only disables address search and reverse
    geocoding; listing discovery keeps working.
    """
    config = config or settings
    problems: list[str] = []
    if not config.geocoding_configured:
        problems.append("GEOCODING_API_KEY not set; address search and reverse geocoding disabled")
    if config.reverse_geocode_max_attempts < 1:
        problems.append("REVERSE_GEOCODE_MAX_ATTEMPTS must be at least 1")

    for problem in problems:
        logger.error("Configuration problem: %s", problem)
    return problems
