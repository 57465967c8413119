"""Terminal front end for chatlogger."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console

from chatlogger.config import BACKENDS, ProviderConfig, load_config
from chatlogger.errors import ChatloggerError, ExhaustedRetries
from chatlogger.llm.dispatcher import ProviderDispatcher
from chatlogger.llm.function_call import detect
from chatlogger.transcription import Transcriber
from chatlogger.types import Message

console = Console()

_DEFAULT_SYSTEM = "You are a helpful assistant."


async def _chat_loop(config: ProviderConfig, system_prompt: str) -> None:
    dispatcher = ProviderDispatcher()
    history: list[Message] = [Message.system(system_prompt)]

    while True:
        try:
            user_input = console.input("[bold green]you>[/bold green] ").strip()
        except (EOFError, KeyboardInterrupt):
            console.print()
            return
        if not user_input:
            continue
        if user_input in ("/quit", "/exit"):
            return
        if user_input == "/clear":
            history = history[:1]
            console.print("[dim]Conversation cleared[/dim]")
            continue

        history.append(Message.user(user_input))
        console.print("[bold cyan]assistant>[/bold cyan] ", end="")

        def on_delta(fragment: str) -> None:
            console.print(fragment, end="", markup=False, highlight=False)

        def on_attempt(n: int) -> None:
            # Output of the failed attempt stays on screen; start a fresh reply
            if n > 1:
                console.print(f"\n[dim](retry {n})[/dim]")
                console.print("[bold cyan]assistant>[/bold cyan] ", end="")

        try:
            text = await dispatcher.complete(
                config, history, on_delta, on_attempt=on_attempt,
            )
        except ExhaustedRetries as e:
            console.print(f"\n[red]Backend unavailable: {e.last_error}[/red]")
            history.pop()
            continue
        except ChatloggerError as e:
            console.print(f"\n[red]{type(e).__name__}: {e}[/red]")
            history.pop()
            continue
        console.print()

        history.append(Message.assistant(text))
        call = detect(text)
        if call:
            console.print(
                f"[yellow]function call:[/yellow] {call.operation} "
                f"{call.parameters}"
            )


@click.group()
@click.option("--config", "-c", "config_path", default=None,
              help="Path to chatlogger.yaml (auto-detected from CWD or ~/.config/chatlogger/)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """chatlogger - chat with cloud or local LLM backends."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)
    ctx.obj = load_config(config_path)


@main.command()
@click.option("--backend", "-b", type=click.Choice(BACKENDS), default=None,
              help="Override the configured backend")
@click.option("--system", "-s", "system_prompt", default=_DEFAULT_SYSTEM,
              help="System prompt for the conversation")
@click.pass_obj
def chat(config: ProviderConfig, backend: str | None, system_prompt: str) -> None:
    """Interactive streaming chat. Type /quit to exit."""
    if backend:
        config.active_backend = backend
    console.print(
        f"[dim]Backend: {config.active_backend} "
        f"(model={config.active_model})[/dim]"
    )
    asyncio.run(_chat_loop(config, system_prompt))


@main.command()
@click.argument("audio_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def transcribe(config: ProviderConfig, audio_file: Path) -> None:
    """Transcribe an encoded audio file (WAV)."""
    audio = audio_file.read_bytes()
    try:
        text = asyncio.run(Transcriber().transcribe(config, audio, audio_file.name))
    except ChatloggerError as e:
        raise click.ClickException(str(e)) from e
    console.print(text, markup=False, highlight=False)


if __name__ == "__main__":
    main()
