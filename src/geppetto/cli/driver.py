"""Terminal side of a session: renders events and answers suspension points."""

from __future__ import annotations

from geppetto.core.events import CommandResult, ConfirmRunCommand, MessageChunk, NewMessage, ResponseEvent

from .render import Renderer


class TerminalDriver:
    def __init__(self, renderer: Renderer, *, auto_confirm: bool = False) -> None:
        self._renderer = renderer
        self._auto_confirm = auto_confirm

    async def next_input(self) -> str | None:
        try:
            return await self._renderer.get_user_input("You: ")
        except (KeyboardInterrupt, EOFError):
            return None

    async def confirm(self, command: str) -> bool:
        if self._auto_confirm:
            return True
        try:
            answer = await self._renderer.get_user_input("Run command? [y/N]: ")
        except (KeyboardInterrupt, EOFError):
            return False
        return answer.strip().lower() in {"y", "yes"}

    async def choose_result_length(self, default_value: int, actual_length: int) -> int:
        question = (
            f"Results length exceeds the limit ({actual_length}/{default_value}), "
            f"how many characters do you want to send? (default: {default_value}): "
        )
        while True:
            try:
                answer = (await self._renderer.get_user_input(question)).strip()
            except (KeyboardInterrupt, EOFError):
                return default_value
            if not answer:
                return default_value
            if answer.isdigit():
                return int(answer)
            self._renderer.notice("Please enter a non-negative number.")

    async def on_event(self, event: ResponseEvent) -> None:
        match event:
            case NewMessage():
                self._renderer.assistant_label()
            case MessageChunk(text=text):
                self._renderer.message_chunk(text)
            case CommandResult(text=text, ignored=ignored):
                self._renderer.command_output(text, ignored=ignored)
            case ConfirmRunCommand(command=command):
                self._renderer.notice(f"Command requested: {command}")
