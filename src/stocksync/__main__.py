"""CLI entry point for branch stock sync."""

from typing import Optional

import typer

from stocksync.cli import app as cli_app
from stocksync.config import get_config

app = typer.Typer(
    help="Branch stock sync tool - CLI or API mode.",
    no_args_is_help=False,
)
app.add_typer(cli_app, name="", help="Branch stock sync commands.")


def _serve_api(host: Optional[str], port: Optional[int]) -> None:
    import uvicorn

    config = get_config()
    uvicorn.run(
        "stocksync.api:app",
        host=host or config.api_host,
        port=port or config.api_port,
        reload=False,
    )


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    mode: str = typer.Option(
        "cli",
        "--mode",
        help="Run mode: cli (default) or api",
    ),
    host: Optional[str] = typer.Option(
        None, "--host", help="API bind address (defaults to API_HOST)"
    ),
    port: Optional[int] = typer.Option(
        None, "--port", help="API port (defaults to API_PORT)"
    ),
) -> None:
    """Branch stock sync tool - CLI or API mode."""
    if mode == "api":
        _serve_api(host, port)
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


if __name__ == "__main__":
    app()
