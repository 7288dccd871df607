"""CLI: fishbowl-gateway call|health"""

import json
from typing import Any

import click
import httpx
from rich.console import Console

from fishbowl_gateway.errors import GatewayError

console = Console()


def _load():
    from fishbowl_gateway.cli.main import _load
    return _load()


def _run(coro):
    from fishbowl_gateway.cli.main import _run
    return _run(coro)


def _parse_param(raw: str) -> tuple[str, Any]:
    if "=" not in raw:
        raise click.BadParameter(f"expected key=value, got {raw!r}")
    key, value = raw.split("=", 1)
    try:
        return key, json.loads(value)
    except ValueError:
        return key, value


@click.command("call")
@click.argument("command")
@click.option("-p", "--param", "params", multiple=True, help="Operation parameter as key=value")
@click.option("--json-output", "--json", is_flag=True)
def call_cmd(command: str, params: tuple[str, ...], json_output: bool):
    """Run one operation (e.g. getInventory -p partNumber=B201) and log out."""
    from fishbowl_gateway.gateway import Gateway

    parameters = dict(_parse_param(p) for p in params)
    settings = _load()

    async def _call():
        gateway = Gateway.from_settings(settings)
        try:
            with console.status(f"Calling {command} on {settings.target()}..."):
                return await gateway.invoke(command, parameters)
        finally:
            await gateway.shutdown()

    try:
        result = _run(_call())
    except GatewayError as e:
        console.print(f"[red]{e.code}: {e.message}[/red]")
        raise SystemExit(1)

    if json_output:
        click.echo(json.dumps(result, indent=2, default=str))
    else:
        console.print_json(json.dumps(result, default=str))


@click.command("health")
@click.option("--url", default="http://localhost:3000", show_default=True, help="Gateway base URL")
def health_cmd(url: str):
    """Query a running gateway's /health endpoint."""
    try:
        resp = httpx.get(f"{url.rstrip('/')}/health", timeout=5.0)
    except httpx.HTTPError as e:
        console.print(f"[red]Gateway unreachable: {e}[/red]")
        raise SystemExit(1)
    data = resp.json()
    if data.get("authenticated"):
        console.print(f"[green]Healthy[/green], authenticated ({data.get('protocol')})")
    else:
        console.print(f"[yellow]Healthy[/yellow], {data.get('state', 'unauthenticated')} ({data.get('protocol')})")
