"""Environment configuration with environment variable overrides.

Settings are read from ``MATCHSIM_*`` environment variables, so a CI job can
point the harness at a different data directory or slow down readiness
timeouts without touching test code:

    MATCHSIM_DATA_DIR=/srv/fixtures MATCHSIM_LOG_LEVEL=DEBUG pytest -m integration
"""

from dataclasses import dataclass
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentSettings(BaseSettings):
    """Configuration for environment bootstrap."""

    model_config = SettingsConfigDict(env_prefix="MATCHSIM_")

    # Dataset location and isolation
    data_dir: Path | None = None  # defaults to <cwd>/data
    temp_dir: Path | None = None  # defaults to the system temp dir
    temp_prefix: str = "mm-testing-"

    # Process-wide publication of the isolated dataset path
    dataset_env_var: str = "SQLITE"

    # Client population
    client_host: str = "127.0.0.1"
    connect_timeout: float = 5.0
    max_connect_workers: int = 32

    # Logging configuration
    log_level: str = "INFO"


@dataclass(frozen=True)
class ServerParams:
    """Construction parameters for backing game servers."""

    bind_host: str = "127.0.0.1"
    max_connections: int = 64
    ready_timeout: float = 10.0
    poll_interval: float = 0.02


def load_settings(**overrides) -> EnvironmentSettings:
    """Load settings from the environment, with keyword overrides winning."""
    return EnvironmentSettings(**overrides)
