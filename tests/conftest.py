"""Shared fixtures."""

import pytest

from agent_memory_runtime.config import reset_config


@pytest.fixture(autouse=True)
def fresh_config():
    """Each test starts from environment defaults."""
    reset_config()
    yield
    reset_config()
