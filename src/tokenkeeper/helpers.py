from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, TypeVar

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.pretty import Pretty

from .client import ApiClient
from .config import Settings

console = Console()
err_console = Console(stderr=True)

T = TypeVar("T")


def run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


def init_settings(debug: bool) -> Settings:
    """Load settings once per invocation; --debug overrides TOKENKEEPER_DEBUG."""
    settings = Settings(debug=True) if debug else Settings()
    configure_logging(settings.debug)
    return settings


def configure_logging(debug: bool) -> None:
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, markup=False)],
        force=True,
    )
    # httpx/httpcore chatter duplicates our own request logging
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def ctx_settings(ctx: typer.Context) -> Settings:
    return ctx.obj if isinstance(ctx.obj, Settings) else init_settings(False)


def describe_backend(settings: Settings) -> str:
    if settings.token_backend == "keyring":
        return f"keyring service '{settings.keyring_service}'"
    return str(settings.token_file)


async def with_client(settings: Settings, action: Callable[[ApiClient], Awaitable[T]]) -> T:
    async with ApiClient(settings) as api:
        return await action(api)


def parse_json_option(raw: str | None, label: str = "--data") -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError as err:
        console.print(f"[red]Invalid JSON for {label}:[/red] {err}")
        raise typer.Exit(code=1) from err


def parse_headers(values: list[str] | None) -> dict[str, str]:
    headers: dict[str, str] = {}
    for raw in values or []:
        if ":" not in raw:
            console.print(f"[red]Invalid header (expected 'Name: value'):[/red] {raw}")
            raise typer.Exit(code=1)
        name, value = raw.split(":", 1)
        headers[name.strip()] = value.strip()
    return headers


def print_response(resp: httpx.Response, *, json_output: bool) -> None:
    if not resp.content:
        console.print(f"[green]{resp.status_code}[/green] (empty body)")
        return
    try:
        data: Any = resp.json()
    except ValueError:
        console.print(resp.text)
        return
    if json_output:
        console.print_json(data=data)
    else:
        console.print(Pretty(data))


def mask_token(token: str | None) -> str:
    if not token:
        return "-"
    return f"{token[:4]}...{token[-4:]}" if len(token) > 8 else "***"
