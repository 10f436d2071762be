"""
Loopback integration fixtures.

Everything binds to 127.0.0.1 on ephemeral ports, so these tests need no
external services and run in parallel with other test sessions.
"""

from collections.abc import Generator

import pytest

from matchsim.server_manager import LocalServers
from matchsim.settings import ServerParams
from matchsim.store import GameServerStore

# Keep readiness waits short so a broken listener fails fast
FAST_PARAMS = ServerParams(ready_timeout=5.0, poll_interval=0.01)

pytestmark = pytest.mark.integration


@pytest.fixture(autouse=True)
def restore_dataset_env(monkeypatch):
    """Bootstrap publishes the isolated path process-wide; undo it per test."""
    monkeypatch.setenv("SQLITE", "unset")


@pytest.fixture
def server_params() -> ServerParams:
    return FAST_PARAMS


@pytest.fixture
def two_server_dataset(sim_dataset) -> str:
    """Dataset declaring server ``a`` with 2 connections and ``b`` with none."""
    return sim_dataset([("a", 2, 9001), ("b", 0, 9002)])


@pytest.fixture
def live_store(tmp_path) -> Generator[GameServerStore, None, None]:
    store = GameServerStore(str(tmp_path / "live.db"))
    yield store
    store.close()


@pytest.fixture
def local_servers(live_store, server_params) -> Generator[LocalServers, None, None]:
    servers = LocalServers(live_store, server_params)
    yield servers
    servers.close()
