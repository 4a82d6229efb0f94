# ruff: noqa: B008
from __future__ import annotations

import typer
from rich.table import Table

from .auth import AuthClient, AuthError
from .client import ApiClient
from .commands.request import register_request
from .helpers import (
    console,
    ctx_settings,
    describe_backend,
    init_settings,
    mask_token,
    run,
    with_client,
)
from .session import TokenPair
from .storage import open_store

app = typer.Typer(help="Authenticated API client with cached, self-refreshing tokens.")


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False, "--debug", envvar="TOKENKEEPER_DEBUG", help="Log requests, responses and refreshes."
    ),
) -> None:
    ctx.obj = init_settings(debug)


@app.command()
def login(
    ctx: typer.Context,
    username: str = typer.Option(..., prompt=True, help="Account username (email)."),
    password: str = typer.Option(..., prompt=True, hide_input=True, help="Password (hidden)."),
    json_output: bool = typer.Option(
        False, "--json", help="Print tokens as JSON (automation-friendly)."
    ),
) -> None:
    """Authenticate against the login endpoint and store tokens."""
    settings = ctx_settings(ctx)

    async def _login(api: ApiClient) -> TokenPair:
        return await AuthClient(settings, api.interceptor, api.refresh_client).login(
            username, password
        )

    try:
        tokens = run(with_client(settings, _login))
    except AuthError as exc:
        console.print(f"[red]Login failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    console.print(f"[green]Authenticated.[/green] Tokens saved to {describe_backend(settings)}")
    if json_output:
        console.print_json(data=tokens.model_dump())


@app.command()
def logout(ctx: typer.Context) -> None:
    """Forget stored tokens."""
    settings = ctx_settings(ctx)
    run(with_client(settings, lambda api: api.clear_tokens()))
    console.print("[green]Logged out.[/green] Stored tokens removed.")


@app.command("set-tokens")
def set_tokens(
    ctx: typer.Context,
    access: str = typer.Option(..., "--access", help="Access token."),
    refresh_token: str = typer.Option(..., "--refresh", help="Refresh token."),
) -> None:
    """Store an access/refresh token pair obtained elsewhere."""
    settings = ctx_settings(ctx)
    run(with_client(settings, lambda api: api.set_tokens(access, refresh_token)))
    console.print(f"[green]Tokens saved.[/green] Stored in {describe_backend(settings)}")


@app.command()
def refresh(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Print refreshed tokens as JSON."),
) -> None:
    """Exchange the stored refresh token for a new token pair."""
    settings = ctx_settings(ctx)
    if not settings.refresh_path:
        console.print(
            "[red]No refresh endpoint configured.[/red] Set TOKENKEEPER_REFRESH_PATH "
            "(e.g. /auth/refresh)."
        )
        raise typer.Exit(code=1)

    async def _refresh(api: ApiClient) -> TokenPair:
        return await AuthClient(settings, api.interceptor, api.refresh_client).refresh()

    try:
        tokens = run(with_client(settings, _refresh))
    except AuthError as exc:
        console.print(f"[red]Refresh failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    console.print(f"[green]Tokens refreshed.[/green] Saved to {describe_backend(settings)}")
    if json_output:
        console.print_json(data=tokens.model_dump())


@app.command()
def session(
    ctx: typer.Context, show_tokens: bool = typer.Option(False, "--show-tokens")
) -> None:
    """Show where tokens are stored and whether a session exists."""
    settings = ctx_settings(ctx)
    storage = open_store(settings)
    access, refresh_token = run(storage.get_tokens())

    console.print(f"Token storage: {describe_backend(settings)}")
    if not access and not refresh_token:
        console.print("No cached tokens.")
        return

    table = Table(title="Session")
    table.add_column("Token")
    table.add_column("Value")
    table.add_row("access", (access or "-") if show_tokens else mask_token(access))
    table.add_row("refresh", (refresh_token or "-") if show_tokens else mask_token(refresh_token))
    console.print(table)
    if not show_tokens:
        console.print("Use --show-tokens to display full values.")


register_request(app)
