"""CLI main module for Geppetto."""

import asyncio
import contextlib
import signal
import uuid
from pathlib import Path
from typing import Annotated

import httpx
import typer
from loguru import logger

from geppetto.chat.backends import create_backend
from geppetto.chat.conversation import ChatService
from geppetto.config import Settings, get_settings, read_hints
from geppetto.core.fence import FenceSyntax
from geppetto.core.prompt import render_bootstrap_prompt
from geppetto.core.session import Session, SessionRunner
from geppetto.errors import ChatError, ConfigurationError
from geppetto.logging_utils import configure_logging

from .driver import TerminalDriver
from .render import Renderer, create_cli_renderer

app = typer.Typer(
    name="geppetto",
    help="Chat with a language model that runs shell commands on this machine.",
    add_completion=False,
    rich_markup_mode="rich",
)


@app.callback(invoke_without_command=True)
def main_callback(ctx: typer.Context) -> None:
    if ctx.invoked_subcommand is None:
        # Default to chat mode
        chat()


@app.command()
def chat(
    workspace: Annotated[Path | None, typer.Option("--workspace", "-w", help="Working directory for commands")] = None,
    backend: Annotated[str | None, typer.Option(help="Chat backend: api or web")] = None,
    model: Annotated[str | None, typer.Option(help="Model name")] = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Run commands without asking")] = False,
    timeout: Annotated[float | None, typer.Option(help="Command timeout in seconds")] = None,
    budget: Annotated[int | None, typer.Option(help="Characters of command output sent back per message")] = None,
    session_key: Annotated[
        bool | None, typer.Option("--session-key/--no-session-key", help="Key command fences with a session token")
    ] = None,
) -> None:
    """Start an interactive session."""
    renderer = create_cli_renderer()
    try:
        settings = get_settings(
            workspace=workspace,
            backend=backend,
            model=model,
            command_timeout_seconds=timeout,
            result_budget=budget,
            session_key=session_key,
        )
        configure_logging(profile="chat", level=settings.log_level)
        asyncio.run(_run_chat(settings, renderer, auto_confirm=yes))
    except ConfigurationError as exc:
        renderer.error(str(exc))
        raise typer.Exit(1) from exc
    except ChatError as exc:
        logger.opt(exception=exc).debug("chat.fatal")
        renderer.error(f"{type(exc).__name__}: {exc}")
        raise typer.Exit(1) from exc
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    renderer.info("\nGoodbye!")


async def _run_chat(settings: Settings, renderer: Renderer, *, auto_confirm: bool) -> None:
    session_id = uuid.uuid4().hex[:8]
    syntax = FenceSyntax.with_session_key(uuid.uuid4().hex) if settings.session_key else FenceSyntax()
    prompt = render_bootstrap_prompt(
        syntax,
        workspace=settings.workspace,
        budget=settings.result_budget,
        hints=read_hints(settings.workspace, settings.hints_file),
    )
    async with httpx.AsyncClient(timeout=settings.request_timeout_seconds) as client:
        backend = create_backend(settings, client)
        session = Session(
            ChatService(backend, client).new_conversation(),
            workspace=settings.workspace,
            bootstrap_prompt=prompt,
            syntax=syntax,
            budget=settings.result_budget,
            command_timeout=settings.command_timeout_seconds,
        )
        runner = SessionRunner(session, TerminalDriver(renderer, auto_confirm=auto_confirm))
        renderer.welcome()
        renderer.usage_info(str(settings.workspace), backend=backend.name, model=backend.model)

        loop = asyncio.get_running_loop()
        main_task = asyncio.current_task()

        def _interrupt() -> None:
            if runner.cancel_current():
                renderer.notice("Message cancelled.")
            elif main_task is not None:
                main_task.cancel()

        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGINT, _interrupt)
        try:
            with logger.contextualize(session=session_id):
                await runner.run()
        finally:
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(signal.SIGINT)
