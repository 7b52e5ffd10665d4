"""
Command-line interface for Canvas SDK.

This module provides a small CLI for trying out the Canvas SDK against a live
Canvas instance. All commands use async operations under the hood and log
HTTP traffic through the SDK middleware chain.

Settings come from CANVAS_* environment variables or a .env file.

Available commands:
- get: GET an API path and print the JSON body
- request: Send an arbitrary request and print status and body
- refresh-token: Refresh the OAuth access token and store it
- clear-token-cache: Clear the token cache
"""

import asyncio
import json
import logging
import sys

import click

from canvas_sdk.auth import AuthManager
from canvas_sdk.client import CanvasClient
from canvas_sdk.config import CanvasSettings
from canvas_sdk.exceptions import CanvasAPIError
from canvas_sdk.token_store import FileTokenStore

logger = logging.getLogger("canvas_sdk.cli")


def _parse_params(values: tuple[str, ...]) -> dict[str, str]:
    params = {}
    for value in values:
        key, sep, item = value.partition("=")
        if not sep:
            raise click.BadParameter(f"expected key=value, got {value!r}", param_hint="--param")
        params[key] = item
    return params


def _echo_body(response) -> None:
    try:
        click.echo(json.dumps(response.json(), indent=2))
    except ValueError:
        click.echo(response.text)


@click.group()
@click.pass_context
def cli(ctx):
    """Canvas SDK CLI"""
    settings = CanvasSettings()
    logging.basicConfig(
        level=settings.log_level.upper(), format="%(levelname)s: %(message)s"
    )
    ctx.obj = settings


@cli.command()
@click.argument("path")
@click.option("--param", "-p", multiple=True, help="Query parameter as key=value")
@click.option("--no-cache", is_flag=True, help="Bypass the response cache")
@click.pass_obj
def get(settings, path, param, no_cache):
    """GET an API path, e.g. `courses/42`, and print the JSON body."""
    params = _parse_params(param)

    async def _run():
        async with CanvasClient(settings) as client:
            options = {"cache": False} if no_cache else {}
            return await client.get(path, params=params or None, options=options)

    try:
        response = asyncio.run(_run())
    except CanvasAPIError as exc:
        click.echo(f"Request failed: {exc}", err=True)
        sys.exit(1)
    _echo_body(response)


@cli.command()
@click.argument("method")
@click.argument("path")
@click.option("--param", "-p", multiple=True, help="Query parameter as key=value")
@click.option("--json-body", help="JSON request body")
@click.pass_obj
def request(settings, method, path, param, json_body):
    """Send METHOD to PATH and print status and body."""
    params = _parse_params(param)
    try:
        body = json.loads(json_body) if json_body else None
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--json-body")

    async def _run():
        async with CanvasClient(settings) as client:
            return await client.request(method, path, params=params or None, json=body)

    try:
        response = asyncio.run(_run())
    except CanvasAPIError as exc:
        click.echo(f"Request failed: {exc}", err=True)
        sys.exit(1)
    click.echo(f"{response.status_code} {response.reason_phrase}")
    _echo_body(response)


@cli.command()
@click.pass_obj
def refresh_token(settings):
    """Refresh the OAuth access token and store it in the token cache."""

    async def _run():
        auth = AuthManager(settings, token_store=FileTokenStore(settings.token_cache_path))
        return await auth.refresh_token()

    try:
        token = asyncio.run(_run())
    except CanvasAPIError as exc:
        click.echo(f"Failed to refresh token: {exc}", err=True)
        sys.exit(1)
    click.echo(f"Token refreshed: {token[:10]}...")


@cli.command()
@click.pass_obj
def clear_token_cache(settings):
    """Clear the token cache."""
    asyncio.run(FileTokenStore(settings.token_cache_path).clear())
    click.echo("Token cache cleared successfully")


if __name__ == "__main__":
    cli()
