"""xi-client CLI.

Drives a core process from the shell, mostly for smoke-testing a core
build or scripting one-off commands.

Usage:
    xi-client open                          # Open an empty view, print its id
    xi-client open notes.txt                # Open a file
    xi-client send set_theme '{"theme_name": "Solarized (dark)"}'
    xi-client send new_view '{}' --request  # Print the reply as JSON
    xi-client --core "xi-core --log" open   # Custom core command

The core command defaults to $XI_CORE_COMMAND, then "xi-core".
"""

from __future__ import annotations

import asyncio
import json
import logging
import shlex
import sys
from typing import Any

import click

from .client import CoreClient
from .errors import ClientError
from .transport import StdioCoreTransport, TransportConfig


def _make_client(config: TransportConfig) -> CoreClient:
    """Create the client used by every subcommand."""
    return CoreClient(StdioCoreTransport(config))


def _run(config: TransportConfig, action: Any) -> Any:
    """Run `action(client)` against a freshly started core."""

    async def _session() -> Any:
        async with _make_client(config) as client:
            return await action(client)

    try:
        return asyncio.run(_session())
    except ClientError as e:
        raise click.ClickException(str(e)) from e
    except ConnectionError as e:
        raise click.ClickException(f"Cannot reach core: {e}") from e


@click.group()
@click.option("--core", "core_command", help="Core command line (default: $XI_CORE_COMMAND or xi-core)")
@click.option("--timeout", type=float, help="Seconds to wait for each reply (0 waits forever)")
@click.option("--verbose", "-v", is_flag=True, help="Log protocol traffic to stderr")
@click.pass_context
def main(
    ctx: click.Context,
    core_command: str | None,
    timeout: float | None,
    verbose: bool,
) -> None:
    """xi-client - send editor commands to a core process."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        config = TransportConfig.from_env()
    except ValueError as e:
        raise click.UsageError(f"Invalid XI_CORE_TIMEOUT: {e}") from e
    if core_command:
        config.command = shlex.split(core_command)
    if timeout is not None:
        config.timeout = timeout if timeout > 0 else None
    ctx.obj = config


@main.command("open")
@click.argument("file_path", required=False)
@click.option("--config-dir", help="Directory holding the core's preferences")
@click.pass_obj
def open_view(config: TransportConfig, file_path: str | None, config_dir: str | None) -> None:
    """Open a view and print the id the core assigned.

    Examples:

        # Empty buffer
        xi-client open

        # Existing file
        xi-client open src/main.rs
    """

    async def action(client: CoreClient) -> str:
        await client.client_started(config_dir=config_dir)
        return await client.new_view(file_path)

    view_id = _run(config, action)
    click.echo(view_id)


@main.command("send")
@click.argument("method")
@click.argument("params", required=False, default="{}")
@click.option("--request", "as_request", is_flag=True, help="Wait for and print the reply")
@click.pass_obj
def send(config: TransportConfig, method: str, params: str, as_request: bool) -> None:
    """Send a raw notification (or request) to the core.

    PARAMS is a JSON value, "{}" when omitted.
    """
    try:
        params_value = json.loads(params)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"Invalid JSON: {e}", param_hint="PARAMS") from e

    async def action(client: CoreClient) -> Any:
        if as_request:
            return await client.request(method, params_value)
        await client.notify(method, params_value)
        return None

    result = _run(config, action)
    if as_request:
        click.echo(json.dumps(result, indent=2, ensure_ascii=False))
