"""CLI renderer for Geppetto."""

from prompt_toolkit import PromptSession
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.text import Text


class Renderer:
    """CLI renderer using Rich for terminal output."""

    def __init__(self, console: Console | None = None) -> None:
        self.console: Console = console or Console()
        self._prompt_session: PromptSession[str] | None = None

    def info(self, message: str) -> None:
        """Render an info message."""
        self.console.print(message)

    def error(self, message: str) -> None:
        """Render an error message."""
        self.console.print(f"[bold red]Error:[/bold red] {message}", highlight=False)

    def welcome(self, message: str = "[bold blue]Geppetto[/bold blue] - a linux system joins the chat.") -> None:
        """Render welcome message."""
        self.console.print(message)

    def usage_info(self, workspace_path: str | None = None, backend: str = "", model: str = "") -> None:
        """Render usage information."""
        if workspace_path:
            self.console.print(f"[bold]Working directory:[/bold] [cyan]{workspace_path}[/cyan]")
        if backend:
            self.console.print(f"[bold]Backend:[/bold] [magenta]{backend}[/magenta] {model}")

    def assistant_label(self) -> None:
        self.console.print("[bold blue]Geppetto:[/bold blue] ", end="")

    def message_chunk(self, text: str) -> None:
        self.console.print(Text(text), end="", soft_wrap=True)

    def command_output(self, text: str, *, ignored: bool) -> None:
        """Render command output; ignored output is not sent back to the model."""
        style = "dim" if ignored else "green"
        self.console.print(Text(text, style=style), end="", soft_wrap=True)

    def notice(self, message: str) -> None:
        self.console.print(f"\n[yellow]{message}[/yellow]")

    async def get_user_input(self, message: str = "You: ") -> str:
        """Prompt user for input."""
        if self._prompt_session is None:
            self._prompt_session = PromptSession()
        with patch_stdout(raw=True):
            return await self._prompt_session.prompt_async(message, handle_sigint=False)


def create_cli_renderer() -> Renderer:
    """Create and return a Renderer instance."""
    return Renderer()
