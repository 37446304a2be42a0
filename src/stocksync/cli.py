"""CLI interface for branch stock sync."""

import logging
import sqlite3
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .catalog_client import RemoteCatalogClient
from .config import SyncConfig, get_config
from .coordinator import SyncCoordinator
from .models import SyncRunResult
from .repositories.sqlite import SQLiteLedgerRepository
from .services.stock_query import StockQueryService

app = typer.Typer(
    name="stocksync",
    help="""
    [bold]Branch Stock Sync CLI[/bold]

    Reconcile per-branch stock, minimum stock and prices from the supplier catalog.

    [cyan]Examples:[/cyan]
      stocksync sync
      stocksync sync-from-server
      stocksync logs
      stocksync stock 42 --branch stock_espana

    [cyan]Getting Started:[/cyan]
      1. Set the supplier key: export CATALOG_API_KEY=...
      2. Register products: stocksync add-product 42 ABC-123
      3. Run a sync: stocksync sync
    """,
    no_args_is_help=True,
)

console = Console()
logger = logging.getLogger(__name__)

STATUS_STYLES = {
    "completed": "bold green",
    "failed": "bold red",
    "skipped": "bold yellow",
}


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _load_config() -> SyncConfig:
    try:
        return get_config()
    except ValueError as e:
        console.print(f"\n[bold red]✗ Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1)


def _open_repository(config: SyncConfig) -> SQLiteLedgerRepository:
    try:
        config.database_path.parent.mkdir(parents=True, exist_ok=True)
        return SQLiteLedgerRepository(config.database_path)
    except (OSError, sqlite3.Error) as e:
        console.print(
            f"\n[bold red]✗ Error:[/bold red] Cannot open ledger "
            f"{escape(str(config.database_path))}: {escape(str(e))}"
        )
        raise typer.Exit(code=1)


def _run_sync(manual: bool) -> SyncRunResult:
    config = _load_config()
    repository = _open_repository(config)
    try:
        coordinator = SyncCoordinator(config, repository, RemoteCatalogClient(config))
        return coordinator.run(manual=manual)
    finally:
        repository.close()


def _print_result(result: SyncRunResult) -> None:
    for line in result.logs:
        console.print(line, markup=False, highlight=False)

    style = STATUS_STYLES[result.status]
    console.print(f"\n[{style}]Sync {result.status}[/{style}]")
    if result.error:
        console.print(f"[red]{escape(result.error)}[/red]", highlight=False)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Updates")
    table.add_column("Count", justify="right")
    table.add_row("Stock records", str(result.counts.stock_updates))
    table.add_row("Minimum stock", str(result.counts.minimum_updates))
    table.add_row("Price fields", str(result.counts.price_updates))
    table.add_row("Aggregate stock", str(result.counts.aggregate_updates))
    console.print(table)


@app.command()
def sync(
    manual: bool = typer.Option(
        True,
        "--manual/--auto",
        help="Manual runs ignore an active lock; automatic runs skip when locked",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show detailed processing information",
    ),
):
    """Run a sync and print the run log."""
    _setup_logging(verbose)
    result = _run_sync(manual)
    _print_result(result)


@app.command("sync-from-server")
def sync_from_server(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show detailed processing information",
    ),
):
    """Automatic run for the server scheduler; exit code 1 when the run fails."""
    _setup_logging(verbose)
    logger.info("[SERVER CRON] Starting inventory sync from server")
    result = _run_sync(manual=False)

    if result.status == "failed":
        logger.error("[SERVER CRON] Sync failed: %s", result.error)
        raise typer.Exit(code=1)

    logger.info("[SERVER CRON] Sync %s", result.status)


@app.command()
def logs():
    """Show the log of the last sync run."""
    config = _load_config()
    repository = _open_repository(config)
    try:
        entries = repository.get_logs()
    finally:
        repository.close()

    if not entries:
        console.print("[dim]No recent sync logs.[/dim]")
        return
    for line in entries:
        console.print(line, markup=False, highlight=False)


@app.command("clear-logs")
def clear_logs():
    """Delete the stored sync log."""
    config = _load_config()
    repository = _open_repository(config)
    try:
        repository.clear_logs()
    finally:
        repository.close()
    console.print("[bold green]✓ Logs cleared[/bold green]")


@app.command()
def stock(
    product_id: int = typer.Argument(..., help="Local product ID"),
    branch: Optional[str] = typer.Option(
        None,
        "--branch",
        "-b",
        help="Only show this branch",
    ),
):
    """Show per-branch stock for a product."""
    config = _load_config()
    if branch is not None and branch not in config.get_branches():
        console.print(f"[bold red]✗ Error:[/bold red] Unknown branch: {escape(branch)}")
        raise typer.Exit(code=1)

    repository = _open_repository(config)
    try:
        summary = StockQueryService(
            repository, config.get_branch_labels()
        ).get_product_stock_summary(product_id, branch)
    finally:
        repository.close()

    table = Table(title=f"Product {product_id}", show_header=True, header_style="bold")
    table.add_column("Branch")
    table.add_column("Stock", justify="right")
    table.add_column("Minimum", justify="right")
    table.add_column("Available", justify="right")
    for row in summary.branches:
        table.add_row(
            row.label,
            str(row.stock_quantity),
            str(row.minimum_stock),
            str(row.available_stock),
        )
    console.print(table)
    console.print(f"Total stock: [bold]{summary.total_stock}[/bold]")


@app.command("add-product")
def add_product(
    product_id: int = typer.Argument(..., help="Local product ID"),
    sku: str = typer.Argument(..., help="SKU matching the supplier code"),
):
    """Register a local product so catalog rows can be matched to it."""
    config = _load_config()
    repository = _open_repository(config)
    try:
        repository.add_product(product_id, sku)
    finally:
        repository.close()
    console.print(f"[dim]Registered product {product_id} with SKU {sku.strip()}[/dim]")


@app.command()
def version():
    """Show version information."""
    console.print("stocksync version 0.1.0")


if __name__ == "__main__":
    app()
