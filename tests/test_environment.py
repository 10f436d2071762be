"""Unit tests for the Environment aggregate and the bootstrap sequence."""

import os
from unittest.mock import Mock, call

import pytest

from matchsim.client_factory import ClientFactory
from matchsim.environment import Environment, create_environment
from matchsim.exceptions import HarnessError, ReadinessError, ServerHydrationError, StoreError
from matchsim.settings import EnvironmentSettings, ServerParams
from matchsim.store import ConnectionSummary, GameServerConfig


def _environment(parent: Mock, conns=None) -> Environment:
    return Environment(
        store=parent.store,
        server_manager=parent.server_manager,
        matchmaking=parent.matchmaking,
        port=4242,
        factory=ClientFactory("127.0.0.1", 4242),
        conns=conns or {},
    )


class TestEnvironmentClose:
    """Shutdown order and failure policy."""

    @pytest.mark.unit
    def test_close_order(self):
        parent = Mock()
        env = _environment(parent)

        env.close()

        assert parent.mock_calls == [
            call.matchmaking.close(),
            call.server_manager.close(),
            call.store.close(),
        ]

    @pytest.mark.unit
    def test_close_drops_client_connections_after_store(self):
        parent = Mock()
        client = parent.client
        env = _environment(parent, conns={"s1": [client]})

        env.close()

        assert parent.mock_calls[-1] == call.client.close()

    @pytest.mark.unit
    def test_store_close_failure_is_fatal(self):
        parent = Mock()
        parent.store.close.side_effect = StoreError("database is locked")
        env = _environment(parent)

        with pytest.raises(HarnessError, match="store errored on close"):
            env.close()

        parent.matchmaking.close.assert_called_once()
        parent.server_manager.close.assert_called_once()

    @pytest.mark.unit
    def test_store_close_failure_still_drops_clients(self):
        parent = Mock()
        parent.store.close.side_effect = StoreError("database is locked")
        env = _environment(parent, conns={"s1": [parent.client]})

        with pytest.raises(HarnessError):
            env.close()

        parent.client.close.assert_called_once()

    @pytest.mark.unit
    def test_isolated_dataset_removed_after_store_close(self, mocker):
        parent = Mock()
        parent.attach_mock(mocker.patch("matchsim.environment.remove_dataset"), "remove_dataset")
        env = _environment(parent)
        env.dataset_path = "/tmp/mm-testing-isolated"

        env.close()

        assert parent.mock_calls[-2:] == [
            call.store.close(),
            call.remove_dataset("/tmp/mm-testing-isolated"),
        ]

    @pytest.mark.unit
    def test_dataset_kept_when_store_close_fails(self, mocker):
        remove = mocker.patch("matchsim.environment.remove_dataset")
        parent = Mock()
        parent.store.close.side_effect = StoreError("database is locked")
        env = _environment(parent)
        env.dataset_path = "/tmp/mm-testing-isolated"

        with pytest.raises(HarnessError):
            env.close()

        remove.assert_not_called()

    @pytest.mark.unit
    def test_context_manager_closes(self):
        parent = Mock()

        with _environment(parent) as env:
            assert env.port == 4242

        parent.store.close.assert_called_once()


class TestEnvironmentDescribe:
    """Diagnostic rendering."""

    @pytest.mark.unit
    def test_renders_connections_and_configs(self):
        parent = Mock()
        parent.store.get_all_configs.return_value = [
            GameServerConfig(id="a", port=9001, connections=2),
            GameServerConfig(id="b", port=9002),
        ]
        parent.store.get_total_connection_count.return_value = ConnectionSummary(2, 2)

        text = _environment(parent).describe()

        assert text.startswith("ServerState:\nConnections: 2 across 2 servers\nServers\n")
        assert "Server(a): 127.0.0.1:9001 connections=2" in text
        assert "Server(b): 127.0.0.1:9002 connections=0" in text
        assert str(_environment(parent)) == text

    @pytest.mark.unit
    def test_enumeration_failure_is_embedded(self):
        parent = Mock()
        parent.store.get_all_configs.side_effect = StoreError("no such table")
        parent.store.get_total_connection_count.return_value = ConnectionSummary(0, 0)

        text = _environment(parent).describe()

        assert "unable to get server configs: no such table" in text
        assert "Connections: 0 across 0 servers" in text

    @pytest.mark.unit
    def test_closed_store_is_embedded(self):
        parent = Mock()
        parent.store.get_all_configs.side_effect = StoreError("Store is closed")
        parent.store.get_total_connection_count.side_effect = StoreError("Store is closed")

        text = _environment(parent).describe()

        assert "Connections: unable to get connection count: Store is closed" in text
        assert "unable to get server configs: Store is closed" in text


@pytest.fixture
def collaborators(mocker):
    """Patch every collaborator create_environment builds and record call order."""
    parent = Mock()
    names = [
        "isolate_dataset",
        "get_free_port",
        "GameServerStore",
        "LocalServers",
        "MatchmakingServer",
        "hydrate_servers",
    ]
    for name in names:
        patched = mocker.patch(f"matchsim.environment.{name}")
        parent.attach_mock(patched, name)

    parent.isolate_dataset.return_value = "/tmp/mm-testing-isolated"
    parent.get_free_port.return_value = 45678
    parent.hydrate_servers.return_value = {"s1": ["client"]}
    return parent


class TestCreateEnvironment:
    """Bootstrap sequencing with patched collaborators."""

    @pytest.mark.unit
    def test_steps_run_in_order(self, collaborators, tmp_path, monkeypatch):
        monkeypatch.setenv("SQLITE", "unset")
        settings = EnvironmentSettings(temp_dir=tmp_path)

        env = create_environment("data/source.db", ServerParams(), settings=settings)

        order = [name for name, _, _ in collaborators.mock_calls if not name.endswith(".run")]
        assert order == [
            "isolate_dataset",
            "get_free_port",
            "GameServerStore",
            "LocalServers",
            "MatchmakingServer",
            "MatchmakingServer().wait_for_ready",
            "hydrate_servers",
        ]
        assert env.port == 45678
        assert env.conns == {"s1": ["client"]}
        assert env.dataset_path == "/tmp/mm-testing-isolated"

    @pytest.mark.unit
    def test_wires_collaborators_together(self, collaborators, tmp_path, monkeypatch):
        monkeypatch.setenv("SQLITE", "unset")
        params = ServerParams(max_connections=3)

        env = create_environment(
            "data/source.db", params, settings=EnvironmentSettings(temp_dir=tmp_path)
        )

        collaborators.isolate_dataset.assert_called_once_with(
            "data/source.db", tmp_path, "mm-testing-"
        )
        collaborators.GameServerStore.assert_called_once_with("/tmp/mm-testing-isolated")
        store = collaborators.GameServerStore.return_value
        collaborators.LocalServers.assert_called_once_with(store, params)

        mm_params = collaborators.MatchmakingServer.call_args.args[0]
        assert mm_params.port == 45678
        assert mm_params.game_server is collaborators.LocalServers.return_value

        assert env.factory.port == 45678
        assert env.factory.host == "127.0.0.1"
        assert env.store is store
        assert env.matchmaking is collaborators.MatchmakingServer.return_value

    @pytest.mark.unit
    def test_publishes_isolated_path(self, collaborators, tmp_path, monkeypatch):
        monkeypatch.setenv("SQLITE", "unset")

        create_environment(
            "data/source.db", ServerParams(), settings=EnvironmentSettings(temp_dir=tmp_path)
        )

        assert os.environ["SQLITE"] == "/tmp/mm-testing-isolated"

    @pytest.mark.unit
    def test_matchmaking_not_ready_aborts_before_hydration(
        self, collaborators, tmp_path, monkeypatch
    ):
        monkeypatch.setenv("SQLITE", "unset")
        matchmaking = collaborators.MatchmakingServer.return_value
        matchmaking.wait_for_ready.side_effect = ReadinessError("bind failed", "matchmaking")

        with pytest.raises(ReadinessError):
            create_environment(
                "data/source.db", ServerParams(), settings=EnvironmentSettings(temp_dir=tmp_path)
            )

        collaborators.hydrate_servers.assert_not_called()

    @pytest.mark.unit
    def test_hydration_failure_propagates(self, collaborators, tmp_path, monkeypatch):
        monkeypatch.setenv("SQLITE", "unset")
        collaborators.hydrate_servers.side_effect = ServerHydrationError("absent config")

        with pytest.raises(ServerHydrationError, match="absent config"):
            create_environment(
                "data/source.db", ServerParams(), settings=EnvironmentSettings(temp_dir=tmp_path)
            )
