import importlib
from pathlib import Path

import pytest
from typer.testing import CliRunner

from geppetto.cli.driver import TerminalDriver
from geppetto.core.events import CommandResult, MessageChunk, NewMessage
from geppetto.errors import TransportError

cli_app_module = importlib.import_module("geppetto.cli.app")


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli_app_module, "configure_logging", lambda **_: None)


def test_chat_command_builds_settings_from_options(monkeypatch, tmp_path: Path) -> None:
    captured: dict[str, object] = {}

    async def _fake_run_chat(settings, renderer, *, auto_confirm: bool) -> None:
        captured["settings"] = settings
        captured["auto_confirm"] = auto_confirm

    monkeypatch.setattr(cli_app_module, "_run_chat", _fake_run_chat)

    result = CliRunner().invoke(
        cli_app_module.app,
        ["chat", "--workspace", str(tmp_path), "--backend", "web", "--yes", "--timeout", "5", "--budget", "300"],
    )

    assert result.exit_code == 0, result.output
    settings = captured["settings"]
    assert settings.workspace == tmp_path.resolve()
    assert settings.backend == "web"
    assert settings.command_timeout_seconds == 5.0
    assert settings.result_budget == 300
    assert captured["auto_confirm"] is True
    assert "Goodbye!" in result.output


def test_chat_is_the_default_command(monkeypatch, tmp_path: Path) -> None:
    called = {"run": False}

    async def _fake_run_chat(settings, renderer, *, auto_confirm: bool) -> None:
        called["run"] = True

    monkeypatch.setattr(cli_app_module, "_run_chat", _fake_run_chat)

    result = CliRunner().invoke(cli_app_module.app, [])

    assert result.exit_code == 0, result.output
    assert called["run"] is True


def test_chat_command_rejects_missing_workspace(tmp_path: Path) -> None:
    result = CliRunner().invoke(cli_app_module.app, ["chat", "--workspace", str(tmp_path / "missing")])

    assert result.exit_code == 1
    assert "does not exist" in " ".join(result.output.split())


def test_chat_command_reports_missing_api_key(tmp_path: Path) -> None:
    result = CliRunner().invoke(cli_app_module.app, ["chat", "--workspace", str(tmp_path)])

    assert result.exit_code == 1
    assert "GEPPETTO_API_KEY" in result.output


def test_chat_command_reports_chat_errors(monkeypatch, tmp_path: Path) -> None:
    async def _fake_run_chat(settings, renderer, *, auto_confirm: bool) -> None:
        raise TransportError("Request to send message failed: Unauthorized (401)", status_code=401)

    monkeypatch.setattr(cli_app_module, "_run_chat", _fake_run_chat)

    result = CliRunner().invoke(cli_app_module.app, ["chat", "--workspace", str(tmp_path)])

    assert result.exit_code == 1
    assert "TransportError" in result.output


class FakeRenderer:
    def __init__(self, *answers: object) -> None:
        self.answers = list(answers)
        self.calls: list[tuple[str, object]] = []

    async def get_user_input(self, message: str = "You: ") -> str:
        answer = self.answers.pop(0)
        if isinstance(answer, BaseException):
            raise answer
        return answer

    def assistant_label(self) -> None:
        self.calls.append(("label", None))

    def message_chunk(self, text: str) -> None:
        self.calls.append(("chunk", text))

    def command_output(self, text: str, *, ignored: bool) -> None:
        self.calls.append(("output", (text, ignored)))

    def notice(self, message: str) -> None:
        self.calls.append(("notice", message))


@pytest.mark.asyncio
async def test_driver_confirms_only_explicit_yes() -> None:
    driver = TerminalDriver(FakeRenderer("y", "YES", "", "nope", KeyboardInterrupt()))

    assert [await driver.confirm("date") for _ in range(5)] == [True, True, False, False, False]


@pytest.mark.asyncio
async def test_driver_auto_confirm_skips_prompt() -> None:
    renderer = FakeRenderer()

    assert await TerminalDriver(renderer, auto_confirm=True).confirm("date") is True


@pytest.mark.asyncio
async def test_driver_result_length_defaults_and_retries() -> None:
    renderer = FakeRenderer("abc", "250", "", EOFError())
    driver = TerminalDriver(renderer)

    assert await driver.choose_result_length(1000, 1500) == 250
    assert await driver.choose_result_length(1000, 1500) == 1000
    assert await driver.choose_result_length(1000, 1500) == 1000
    assert ("notice", "Please enter a non-negative number.") in renderer.calls


@pytest.mark.asyncio
async def test_driver_next_input_ends_on_eof() -> None:
    driver = TerminalDriver(FakeRenderer("hello", EOFError()))

    assert await driver.next_input() == "hello"
    assert await driver.next_input() is None


@pytest.mark.asyncio
async def test_driver_renders_events() -> None:
    renderer = FakeRenderer()
    driver = TerminalDriver(renderer)

    await driver.on_event(NewMessage())
    await driver.on_event(MessageChunk("hi"))
    await driver.on_event(CommandResult("extra", ignored=True))

    assert renderer.calls == [("label", None), ("chunk", "hi"), ("output", ("extra", True))]
