"""matchsim - disposable matchmaking environments for integration tests."""

__version__ = "0.1.0"

from .client import SimulatedClient
from .client_factory import ClientFactory
from .dataset import copy_file, get_dataset_path, isolate_dataset, remove_dataset
from .environment import Environment, create_environment
from .exceptions import (
    ClientConnectError,
    DatasetIsolationError,
    HarnessError,
    ReadinessError,
    ServerHydrationError,
    StoreError,
)
from .hydration import ConnMap, HydrationState, create_server, hydrate_servers
from .matchmaking import MatchmakingParams, MatchmakingServer
from .ports import get_free_port
from .server_manager import LocalServers
from .settings import EnvironmentSettings, ServerParams, load_settings
from .store import ConnectionSummary, GameServerConfig, GameServerStore, ServerState, seed_dataset

__all__ = [
    # Bootstrap
    "Environment",
    "create_environment",
    "EnvironmentSettings",
    "ServerParams",
    "load_settings",
    # Dataset isolation
    "isolate_dataset",
    "copy_file",
    "remove_dataset",
    "get_dataset_path",
    # Clients
    "ClientFactory",
    "SimulatedClient",
    # Hydration
    "ConnMap",
    "HydrationState",
    "create_server",
    "hydrate_servers",
    # Collaborators
    "GameServerStore",
    "GameServerConfig",
    "ConnectionSummary",
    "ServerState",
    "seed_dataset",
    "LocalServers",
    "MatchmakingServer",
    "MatchmakingParams",
    "get_free_port",
    # Errors
    "HarnessError",
    "DatasetIsolationError",
    "StoreError",
    "ReadinessError",
    "ServerHydrationError",
    "ClientConnectError",
]
