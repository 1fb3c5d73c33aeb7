"""Configuration management for Geppetto."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ApiKeyNotConfiguredError, ConfigurationError, CookieNotConfiguredError, WorkspaceNotFoundError

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/110.0.0.0 Safari/537.36"
)


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="GEPPETTO_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Chat service
    backend: Literal["api", "web"] = Field(default="api", description="Chat backend: completion API or web UI")
    api_key: str | None = Field(default=None, description="API key for the completion API backend")
    api_base: str = Field(default="https://api.openai.com/v1", description="Completion API base URL")
    web_base: str = Field(default="https://chat.openai.com", description="Web UI base URL")
    model: str | None = Field(default=None, description="Model name, backend default when unset")
    cookie: str | None = Field(default=None, description="Session cookie for the web UI backend")
    cookie_file: Path = Field(default=Path(".chat_gpt_cookie.txt"), description="File holding the session cookie")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="User agent sent to the web UI backend")
    request_timeout_seconds: float = Field(default=120.0, description="HTTP timeout for chat requests")

    # Command execution
    workspace: Path = Field(default_factory=Path.cwd, description="Working directory for commands")
    command_timeout_seconds: float = Field(default=60.0, gt=0, description="Wall-clock limit per command")
    result_budget: int = Field(default=1000, ge=0, description="Characters of command output sent back per message")
    hints_file: str = Field(default=".hints.txt", description="Hints file name inside the workspace")
    session_key: bool = Field(default=False, description="Key command fences with a random per-session token")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")

    def resolve_api_key(self) -> str:
        if not self.api_key:
            raise ApiKeyNotConfiguredError("Set GEPPETTO_API_KEY in your environment or .env file.")
        return self.api_key

    def resolve_cookie(self) -> str:
        """Return the web UI cookie, reading the cookie file when not set directly."""
        if self.cookie:
            return self.cookie.strip()
        path = self.cookie_file.expanduser()
        if not path.is_file():
            raise CookieNotConfiguredError(f"Set GEPPETTO_COOKIE or create the cookie file at {path}.")
        cookie = path.read_text(encoding="utf-8").strip()
        if not cookie:
            raise CookieNotConfiguredError(f"Cookie file {path} is empty.")
        return cookie


def read_hints(workspace: Path, hints_file: str) -> str:
    """Read the hints file from the workspace path."""
    hints_path = workspace / hints_file
    if not hints_path.exists():
        return ""
    with open(hints_path, encoding="utf-8") as file:
        return file.read()


def get_settings(**overrides: Any) -> Settings:
    """Get application settings.

    Args:
        overrides: Explicit values that win over environment and .env entries.
            ``None`` values are ignored.

    Returns:
        Settings instance
    """
    try:
        settings = Settings(**{key: value for key, value in overrides.items() if value is not None})
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid settings: {exc}") from exc
    workspace = settings.workspace.expanduser().resolve()
    if not workspace.is_dir():
        raise WorkspaceNotFoundError(f"Workspace {workspace} does not exist.")
    settings.workspace = workspace
    return settings
