"""Shared pytest configuration for matchsim tests."""

from matchsim.fixtures import sim_dataset, sim_environment_factory  # noqa: F401


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests with mocked collaborators")
    config.addinivalue_line("markers", "integration: tests that bind real loopback sockets")
    config.addinivalue_line("markers", "slow: tests that take more than a second")
