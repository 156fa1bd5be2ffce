from __future__ import annotations

import logging
from pathlib import Path

import typer

from formportal.config import Settings
from formportal.errors import PortalError
from formportal.pdf import header_from_settings, render_stored_document
from formportal.storage import init_storage

cli = typer.Typer(add_completion=False)


def run_server(host: str | None, port: int | None) -> None:
    import uvicorn

    from formportal.app import create_app

    settings = Settings()
    resolved_host = host or settings.host
    resolved_port = port if port is not None else settings.port
    uvicorn.run(create_app(settings), host=resolved_host, port=resolved_port)


@cli.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    host: str | None = typer.Option(None, help="Address to bind"),
    port: int | None = typer.Option(None, help="Port to bind"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"host": host, "port": port}
    if ctx.invoked_subcommand is None:
        run_server(host, port)


@cli.command()
def run(
    ctx: typer.Context,
    host: str | None = typer.Option(None, help="Address to bind"),
    port: int | None = typer.Option(None, help="Port to bind"),
) -> None:
    base = ctx.obj or {}
    resolved_host = host or base.get("host")
    resolved_port = port if port is not None else base.get("port")
    run_server(resolved_host, resolved_port)


@cli.command()
def render(
    submission_id: str = typer.Argument(..., help="Approved submission to render"),
    output: Path = typer.Argument(..., help="Where to write the PDF"),
) -> None:
    """Write the signed document of an approved submission."""
    settings = Settings()
    storage = init_storage(settings)
    try:
        data = render_stored_document(storage, submission_id, header_from_settings(settings))
    except PortalError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    output.write_bytes(data)
    typer.echo(f"Wrote {output} ({len(data)} bytes)")


if __name__ == "__main__":
    cli()
