from pathlib import Path

import pytest

from geppetto.config import get_settings, read_hints
from geppetto.errors import (
    ApiKeyNotConfiguredError,
    ConfigurationError,
    CookieNotConfiguredError,
    WorkspaceNotFoundError,
)


def test_settings_defaults(tmp_path: Path) -> None:
    settings = get_settings()

    assert settings.backend == "api"
    assert settings.workspace == tmp_path.resolve()
    assert settings.command_timeout_seconds == 60.0
    assert settings.result_budget == 1000
    assert settings.session_key is False


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("GEPPETTO_BACKEND", "web")
    monkeypatch.setenv("GEPPETTO_RESULT_BUDGET", "250")
    monkeypatch.setenv("GEPPETTO_COOKIE", " session=abc \n")

    settings = get_settings()

    assert settings.backend == "web"
    assert settings.result_budget == 250
    assert settings.resolve_cookie() == "session=abc"


def test_settings_read_dotenv_file(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text("GEPPETTO_API_KEY=sk-from-file\n", encoding="utf-8")

    assert get_settings().resolve_api_key() == "sk-from-file"


def test_explicit_overrides_win_and_none_is_ignored(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEPPETTO_MODEL", "env-model")

    assert get_settings(model="cli-model").model == "cli-model"
    assert get_settings(model=None).model == "env-model"


def test_missing_workspace_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(WorkspaceNotFoundError):
        get_settings(workspace=tmp_path / "missing")


def test_invalid_values_raise_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        get_settings(backend="carrier-pigeon")
    with pytest.raises(ConfigurationError):
        get_settings(command_timeout_seconds=0)


def test_missing_api_key_is_reported() -> None:
    with pytest.raises(ApiKeyNotConfiguredError):
        get_settings().resolve_api_key()


def test_cookie_is_read_from_cookie_file(tmp_path: Path) -> None:
    (tmp_path / "cookie.txt").write_text("session=from-file\n", encoding="utf-8")

    settings = get_settings(cookie_file=tmp_path / "cookie.txt")

    assert settings.resolve_cookie() == "session=from-file"


def test_missing_or_empty_cookie_file_is_reported(tmp_path: Path) -> None:
    with pytest.raises(CookieNotConfiguredError):
        get_settings().resolve_cookie()

    (tmp_path / "empty.txt").write_text("  \n", encoding="utf-8")
    with pytest.raises(CookieNotConfiguredError):
        get_settings(cookie_file=tmp_path / "empty.txt").resolve_cookie()


def test_read_hints(tmp_path: Path) -> None:
    assert read_hints(tmp_path, ".hints.txt") == ""

    (tmp_path / ".hints.txt").write_text("Use apt for packages.\n", encoding="utf-8")

    assert read_hints(tmp_path, ".hints.txt") == "Use apt for packages.\n"
