"""
Fishbowl Gateway CLI: `fishbowl-gateway` command.

Commands:
  fishbowl-gateway serve                 Run the HTTP gateway
  fishbowl-gateway call <command>        One-shot operation against Fishbowl
  fishbowl-gateway health                Query a running gateway's /health
  fishbowl-gateway config                Show resolved settings
"""

import asyncio
import logging

import click
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from fishbowl_gateway import __version__
from fishbowl_gateway.config import Settings, load_settings
from fishbowl_gateway.errors import ConfigurationError

console = Console()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )


def _load() -> Settings:
    try:
        settings = load_settings()
    except ConfigurationError as e:
        console.print(f"[red]{e.message}[/red]")
        raise SystemExit(2)
    _configure_logging(settings.log_level)
    return settings


def _run(coro):
    return asyncio.run(coro)


@click.group()
@click.version_option(__version__)
def main():
    """Fishbowl Gateway: REST/JSON front end for Fishbowl Inventory."""


@main.command("serve")
@click.option("--host", default=None, help="Bind address (default FISHBOWL_API_HOST)")
@click.option("--port", default=None, type=int, help="Bind port (default FISHBOWL_API_PORT)")
def serve(host, port):
    """Run the gateway HTTP server."""
    import uvicorn

    from fishbowl_gateway.server import create_app

    settings = _load()
    app = create_app(settings)
    uvicorn.run(
        app,
        host=host or settings.api_host,
        port=port or settings.api_port,
        log_level=settings.log_level.lower(),
        log_config=None,
    )


@main.command("config")
def show_config():
    """Show resolved settings (password masked)."""
    try:
        settings = Settings()
    except PydanticValidationError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        raise SystemExit(2)
    table = Table(title="Fishbowl Gateway settings")
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    for key, value in settings.masked().items():
        table.add_row(key, "" if value is None else str(value))
    console.print(table)


from fishbowl_gateway.cli.call import call_cmd, health_cmd

main.add_command(call_cmd)
main.add_command(health_cmd)


if __name__ == "__main__":
    main()
