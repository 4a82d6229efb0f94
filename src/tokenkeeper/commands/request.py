# ruff: noqa: B008
from __future__ import annotations

import httpx
import typer

from ..client import ApiClient, ApiError
from ..helpers import (
    console,
    ctx_settings,
    parse_headers,
    parse_json_option,
    print_response,
    run,
    with_client,
)

METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")


def register_request(app: typer.Typer) -> None:
    @app.command()
    def request(
        ctx: typer.Context,
        method: str = typer.Argument(..., help="HTTP method, e.g. GET or POST."),
        path: str = typer.Argument(..., help="Path relative to the API base, e.g. /users/me."),
        data: str | None = typer.Option(None, "--data", "-d", help="JSON request body."),
        header: list[str] | None = typer.Option(
            None, "--header", "-H", help="Extra header as 'Name: value' (repeatable)."
        ),
        json_output: bool = typer.Option(True, "--json/--no-json"),
    ) -> None:
        """Send an authenticated request; expired tokens are refreshed transparently."""
        verb = method.upper()
        if verb not in METHODS:
            console.print(f"[red]Unsupported method:[/red] {method}")
            raise typer.Exit(code=1)
        settings = ctx_settings(ctx)
        payload = parse_json_option(data)
        headers = parse_headers(header)

        async def _send(api: ApiClient) -> httpx.Response:
            return await api.request(verb, path, json=payload, headers=headers or None)

        try:
            resp = run(with_client(settings, _send))
        except ApiError as exc:
            if settings.debug:
                console.print(f"[red]{verb} {path} error (debug):[/red] {exc} | data: {exc.data!r}")
            elif exc.is_unauthorized:
                console.print(
                    f"[red]{verb} {path} not authorized.[/red] "
                    "Run `tokenkeeper login` to start a new session."
                )
            elif exc.status_code is not None:
                console.print(f"[red]{verb} {path} failed with HTTP {exc.status_code}:[/red] {exc}")
            else:
                console.print(f"[red]{verb} {path} failed ({exc.type.value}):[/red] {exc}")
            raise typer.Exit(code=1) from exc

        print_response(resp, json_output=json_output)
