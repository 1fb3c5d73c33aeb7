"""Bootstrap prompt for a new session."""

from __future__ import annotations

from pathlib import Path

from geppetto.core.fence import FenceSyntax
from geppetto.core.results import RESULT_HEADER, SYSTEM_MESSAGE_HEADER, render_trailer


def render_bootstrap_prompt(syntax: FenceSyntax, *, workspace: Path, budget: int, hints: str = "") -> str:
    example_result = (
        f"{SYSTEM_MESSAGE_HEADER}{RESULT_HEADER}12:00:20 PM UTC{render_trailer(0)}"
    )
    blocks = [
        "A linux system is now participating in the conversation.",
        (
            "You must include commands in your messages; the linux system will execute them and give you the result.\n"
            "This syntax is required for every command:\n"
            f"{syntax.start_marker}\n<your command>\n{syntax.end_marker}"
        ),
        (
            "The linux system runs your commands in the order they appear in your message. It then replies with a "
            f'message starting with "{SYSTEM_MESSAGE_HEADER.strip()}" that holds their results.\n'
            f"The output is truncated when it is longer than {budget} characters.\n"
            "You can use the sudo command.\n"
            f'The current directory is "{workspace}".'
        ),
        (
            "Example:\n"
            "> Me: What time is it?\n"
            f"> You:\n> {syntax.start_marker}\n> date +'%r %Z'\n> {syntax.end_marker}\n"
            + "".join(f"> {line}\n" for line in example_result.splitlines())
            + "> You: The current time is 12:00:20 PM UTC."
        ),
    ]
    if hints.strip():
        blocks.append(f"Additional hints, from the hints file of the current directory:\n{hints.strip()}")
    blocks.append(
        "You will now act as Geppetto, a personal assistant with full control of the linux system. "
        "Keep your answers short. When I mention files or internet access, I mean the linux system."
    )
    return "\n\n".join(blocks)
