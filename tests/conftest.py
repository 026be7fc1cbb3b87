"""Shared pytest fixtures."""

from pathlib import Path

import pytest

from agent_console.config import Settings


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with a chat key, mail configured, and a throwaway data dir."""
    return Settings(
        api_key="test-key",
        model="test-model",
        graph_client_id="test-client-id",
        data_dir=tmp_path / "data",
    )


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep real credentials in the developer's shell out of every test."""
    for key in (
        "ANTHROPIC_API_KEY",
        "ANTHROPIC_BASE_URL",
        "AGENT_MODEL",
        "AGENT_MAX_TOKENS",
        "AGENT_TURN_TIMEOUT_SECONDS",
        "AGENT_MAX_TOOL_ROUNDS",
        "AGENT_DATA_DIR",
        "GRAPH_CLIENT_ID",
        "GRAPH_TENANT_ID",
        "GRAPH_TIMEOUT_SECONDS",
    ):
        monkeypatch.delenv(key, raising=False)
