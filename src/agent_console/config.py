"""Environment-driven settings, read once at startup."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

_DEFAULT_MODEL = "claude-sonnet-4-6"
_APP_DIR_NAME = "agent-console"


class ConfigurationError(Exception):
    """Raised when a setting required to start the agent is missing or invalid."""


def default_data_dir() -> Path:
    """Per-user application-data directory for the auth record and token cache."""
    if sys.platform == "win32":
        base = os.environ.get("LOCALAPPDATA") or str(Path.home() / "AppData" / "Local")
        return Path(base) / _APP_DIR_NAME
    base = os.environ.get("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(base) / _APP_DIR_NAME


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


@dataclass
class Settings:
    """All runtime configuration for the console agent.

    Chat settings are mandatory; the mailbox settings are optional and only
    switch the mail tool between "configured" and "configuration error".
    """

    api_key: str = ""
    base_url: str | None = None
    model: str = _DEFAULT_MODEL
    max_tokens: int = 4096
    turn_timeout: float = 120.0
    max_tool_rounds: int = 40
    graph_client_id: str = ""
    graph_tenant_id: str = "consumers"
    graph_timeout: float = 30.0
    data_dir: Path = field(default_factory=default_data_dir)

    @classmethod
    def from_env(cls) -> Settings:
        """Build Settings from environment variables (call after load_dotenv)."""
        data_dir = os.environ.get("AGENT_DATA_DIR", "").strip()
        return cls(
            api_key=os.environ.get("ANTHROPIC_API_KEY", "").strip(),
            base_url=os.environ.get("ANTHROPIC_BASE_URL", "").strip() or None,
            model=os.environ.get("AGENT_MODEL", "").strip() or _DEFAULT_MODEL,
            max_tokens=_int_env("AGENT_MAX_TOKENS", 4096),
            turn_timeout=float(_int_env("AGENT_TURN_TIMEOUT_SECONDS", 120)),
            max_tool_rounds=_int_env("AGENT_MAX_TOOL_ROUNDS", 40),
            graph_client_id=os.environ.get("GRAPH_CLIENT_ID", "").strip(),
            graph_tenant_id=os.environ.get("GRAPH_TENANT_ID", "").strip() or "consumers",
            graph_timeout=float(_int_env("GRAPH_TIMEOUT_SECONDS", 30)),
            data_dir=Path(data_dir).expanduser() if data_dir else default_data_dir(),
        )

    @property
    def mail_enabled(self) -> bool:
        return bool(self.graph_client_id)

    @property
    def auth_record_path(self) -> Path:
        return self.data_dir / "graph_auth_record.json"

    @property
    def token_cache_path(self) -> Path:
        return self.data_dir / "graph_token_cache.bin"

    def require_chat(self) -> None:
        """Raise ConfigurationError if the chat endpoint cannot be used.

        Raises:
            ConfigurationError: when ANTHROPIC_API_KEY is not set.
        """
        if not self.api_key:
            raise ConfigurationError(
                "Missing ANTHROPIC_API_KEY environment variable.\n\n"
                "Set it in your shell or in a .env file:\n"
                "  ANTHROPIC_API_KEY=your-api-key"
            )
