"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Generator

import pytest
from fastapi.testclient import TestClient

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from lmbridge.core.tokens import TokenAccountant
from lmbridge.main import create_app
from lmbridge.testing import DEFAULT_TEST_MODEL, ScriptedHostModel


def build_test_config(**models: Any) -> dict[str, Any]:
    """Build an app config whose provider defaults point at the test model."""
    model_settings = {
        "openai_default": DEFAULT_TEST_MODEL.id,
        "anthropic_default": DEFAULT_TEST_MODEL.id,
    }
    model_settings.update(models)
    return {
        "server": {"host": "127.0.0.1", "port": 4000},
        "host_model": {"type": "echo"},
        "models": model_settings,
        "logging": {"level": "DEBUG"},
    }


@pytest.fixture
def host() -> ScriptedHostModel:
    """A scripted host model with the default test catalogue."""
    return ScriptedHostModel()


@pytest.fixture
def accountant(host: ScriptedHostModel) -> TokenAccountant:
    return TokenAccountant(host, DEFAULT_TEST_MODEL.id)


@pytest.fixture
def client(host: ScriptedHostModel) -> Generator[TestClient, None, None]:
    """TestClient for an app wired to the scripted host model."""
    app = create_app(build_test_config(), host=host)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_client() -> Generator[Callable[..., TestClient], None, None]:
    """Factory for clients with a custom host model and model settings."""
    clients: list[TestClient] = []

    def factory(host: ScriptedHostModel, **models: Any) -> TestClient:
        test_client = TestClient(create_app(build_test_config(**models), host=host))
        test_client.__enter__()
        clients.append(test_client)
        return test_client

    yield factory
    for test_client in clients:
        test_client.__exit__(None, None, None)


