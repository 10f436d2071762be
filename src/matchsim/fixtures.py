"""
pytest fixtures for tests that need a live matchmaking environment.

Import them from a conftest::

    from matchsim.fixtures import sim_dataset, sim_environment_factory  # noqa: F401
"""

import uuid
from collections.abc import Callable, Generator

import pytest

from .environment import Environment, create_environment
from .settings import EnvironmentSettings, ServerParams
from .store import GameServerConfig, seed_dataset


@pytest.fixture
def sim_dataset(tmp_path) -> Callable[..., str]:
    """
    Build a dataset file from ``(id, connections, port)`` tuples.

    Returns a callable; each call writes a new file under ``tmp_path``.
    """

    def _make(servers: list[tuple[str, int, int]]) -> str:
        path = tmp_path / f"dataset-{uuid.uuid4().hex[:8]}.db"
        configs = [
            GameServerConfig(id=server_id, connections=connections, port=port)
            for server_id, connections, port in servers
        ]
        return seed_dataset(str(path), configs)

    return _make


@pytest.fixture
def sim_environment_factory(tmp_path) -> Generator[Callable[..., Environment], None, None]:
    """
    Bootstrap environments that are closed automatically at teardown.

    Isolated datasets land in ``tmp_path`` rather than the system temp dir.
    """
    environments: list[Environment] = []
    settings = EnvironmentSettings(temp_dir=tmp_path)

    def _create(path: str, params: ServerParams | None = None) -> Environment:
        env = create_environment(path, params or ServerParams(), settings=settings)
        environments.append(env)
        return env

    yield _create

    for env in reversed(environments):
        env.close()
