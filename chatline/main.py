"""Main entry point for Chatline."""

import asyncio
import os
import sys
from pathlib import Path

import typer

from chatline.config import Config, set_config
from chatline.exceptions import ChatlineError
from chatline.logging import configure_logging, log
from chatline.service import build_service
from chatline.turn import TurnResult

cli = typer.Typer(help="Chatline - tool-using chat assistant service")


def _load_config(config: str = "", model: str = "", provider: str = "") -> Config:
    """Load configuration, apply CLI overrides and install it globally."""
    if config:
        try:
            cfg = Config.from_yaml(Path(config))
        except Exception as e:
            log.error("Failed to load config", path=config, error=str(e))
            cfg = Config.load()
    else:
        cfg = Config.load()

    if model:
        cfg.model.model = model
    if provider:
        cfg.model.provider = provider

    set_config(cfg)
    Path(cfg.storage.path).expanduser().parent.mkdir(parents=True, exist_ok=True)
    return cfg


def _setup(config: str, model: str, provider: str, verbose: bool) -> Config:
    if verbose:
        os.environ["CHATLINE_LOGGING__LEVEL"] = "DEBUG"
    cfg = _load_config(config, model, provider)
    configure_logging("DEBUG" if verbose else None)
    return cfg


async def run_once(cfg: Config, message: str) -> TurnResult:
    """Start one conversation and return its title and reply."""
    service = build_service(cfg)
    try:
        return await service.start_conversation(message)
    finally:
        await service.close()


@cli.command()
def serve(
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    model: str = typer.Option("", "-m", "--model", help="Override model"),
    provider: str = typer.Option("", "-p", "--provider", help="Override provider"),
    host: str = typer.Option("", "--host", help="Override bind host"),
    port: int = typer.Option(0, "--port", help="Override bind port"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Run the HTTP API."""
    from chatline.web_server import run_web_server

    cfg = _setup(config, model, provider, verbose)
    if host:
        cfg.web.host = host
    if port:
        cfg.web.port = port

    try:
        run_web_server(cfg)
    except KeyboardInterrupt:
        print("\nWeb server stopped.")
    except Exception as e:
        log.error("Fatal error", error=str(e))
        sys.exit(1)


@cli.command()
def ask(
    message: str = typer.Argument(..., help="Opening message"),
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    model: str = typer.Option("", "-m", "--model", help="Override model"),
    provider: str = typer.Option("", "-p", "--provider", help="Override provider"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Start a conversation with MESSAGE and print its title and reply."""
    cfg = _setup(config, model, provider, verbose)
    try:
        result = asyncio.run(run_once(cfg, message))
    except ChatlineError as e:
        log.error("Turn failed", error=str(e))
        sys.exit(1)

    print(f"# {result.title}")
    print(f"(conversation {result.conversation_id})\n")
    print(result.reply)


@cli.command()
def ver() -> None:
    """Show version information."""
    from chatline import __version__
    print(f"Chatline v{__version__}")


if __name__ == "__main__":
    cli()
