"""TerraBuild CLI.

Commands:
- init: Create database tables
- create-user: Add a user account
- import-matrices: Import cost matrices (CSV/XLSX)
- list-matrices: Show cost matrices
- purge-price-cache: Delete stale price cache entries
- stats: Show dashboard counts
- web serve: Run the JSON API
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from terrabuild.accounts import create_user
from terrabuild.config import get_config
from terrabuild.core.context import system_context
from terrabuild.core.logging import configure_logging
from terrabuild.costs.matrices import list_cost_matrices
from terrabuild.db.connection import close_db, get_session, init_db
from terrabuild.errors import TerraBuildError
from terrabuild.ingestion.matrix_import import import_cost_matrix_file
from terrabuild.models import UserRole
from terrabuild.pricing.cache import purge_stale
from terrabuild.reporting.dashboard import compute_dashboard_stats

app = typer.Typer(
    name="terrabuild",
    help="TerraBuild - building cost data for county assessors",
    no_args_is_help=True,
)
web_cli = typer.Typer(help="Web API")
app.add_typer(web_cli, name="web")

console = Console()


@app.callback()
def main():
    config = get_config()
    configure_logging(config.log_level, config.log_format)


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Create database tables."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")
    if drop:
        console.print("[yellow]Dropping existing tables...[/yellow]")

    async def _init():
        await init_db(drop=drop)
        await close_db()

    asyncio.run(_init())
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command(name="create-user")
def create_user_cmd(
    username: str = typer.Argument(..., help="Login name"),
    role: UserRole = typer.Option(UserRole.USER, "--role", help="Account role"),
    name: str | None = typer.Option(None, "--name", help="Display name"),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True),
):
    """Add a user account."""

    async def _create():
        try:
            async with get_session() as session:
                user = await create_user(
                    session,
                    system_context(),
                    {"username": username, "password": password, "role": role.value, "name": name},
                )
                console.print(f"[bold green]✓[/bold green] Created user {user.username} (id={user.id})")
        except TerraBuildError as e:
            console.print(f"[red]✗[/red] {e.message}")
            raise typer.Exit(code=1) from e
        finally:
            await close_db()

    asyncio.run(_create())


@app.command(name="import-matrices")
def import_matrices_cmd(
    files: list[Path] = typer.Argument(..., help="Cost matrix files (CSV/XLSX)"),
):
    """Import cost matrices, upserting on (region, building type, year)."""

    async def _import():
        total_written = 0
        total_errors: list[str] = []

        for file_path in files:
            console.print(f"  Processing: {file_path}")
            try:
                async with get_session() as session:
                    written, errors = await import_cost_matrix_file(
                        session, system_context(), file_path
                    )
            except (FileNotFoundError, ValueError, TerraBuildError) as e:
                console.print(f"    [red]✗[/red] Failed: {e}")
                total_errors.append(str(e))
                continue

            total_written += written
            total_errors.extend(errors)
            console.print(f"    [green]✓[/green] {written} matrices written")
            if errors:
                console.print(f"    [yellow]⚠[/yellow] {len(errors)} rows rejected")
                for err in errors[:5]:
                    console.print(f"      {err}", style="dim")

        await close_db()
        console.print(f"\n[bold green]✓[/bold green] Total: {total_written} matrices written")
        if total_errors:
            console.print(f"[yellow]⚠[/yellow] {len(total_errors)} errors (see above)")
            raise typer.Exit(code=1)

    asyncio.run(_import())


@app.command(name="list-matrices")
def list_matrices_cmd(
    region: str | None = typer.Option(None, "--region"),
    building_type: str | None = typer.Option(None, "--building-type"),
    year: int | None = typer.Option(None, "--year"),
    include_inactive: bool = typer.Option(False, "--all", help="Include inactive matrices"),
):
    """Show cost matrices."""

    async def _list():
        async with get_session() as session:
            rows = await list_cost_matrices(
                session,
                region=region,
                building_type=building_type,
                matrix_year=year,
                is_active=None if include_inactive else True,
            )
        await close_db()

        table = Table(title="Cost Matrices")
        table.add_column("ID", justify="right")
        table.add_column("Region", style="cyan")
        table.add_column("Type", style="cyan")
        table.add_column("Year", justify="right")
        table.add_column("Base Cost", justify="right", style="green")
        table.add_column("Active")
        for row in rows:
            table.add_row(
                str(row.id),
                row.region,
                row.building_type,
                str(row.matrix_year),
                str(row.base_cost),
                "yes" if row.is_active else "no",
            )
        console.print(table)

    asyncio.run(_list())


@app.command(name="purge-price-cache")
def purge_price_cache_cmd():
    """Delete price cache entries past their validity window."""

    async def _purge():
        async with get_session() as session:
            removed = await purge_stale(session)
        await close_db()
        console.print(f"[bold green]✓[/bold green] Removed {removed} stale entries")

    asyncio.run(_purge())


@app.command()
def stats():
    """Show dashboard counts."""

    async def _stats():
        async with get_session() as session:
            summary = await compute_dashboard_stats(session)
        await close_db()

        table = Table(title="Statistics")
        table.add_column("Metric", style="cyan")
        table.add_column("Count", justify="right", style="green")
        table.add_row("Building Types", str(summary.building_types))
        table.add_row("Regions", str(summary.regions))
        table.add_row("Active Cost Matrices", str(summary.cost_matrices))
        table.add_row("Active Users", str(summary.active_users))
        table.add_row("Calculations (30 days)", str(summary.recent_calculations))
        table.add_row("Latest Matrix Year", str(summary.latest_matrix_year or "-"))
        console.print(table)

    asyncio.run(_stats())


@web_cli.command("serve")
def web_serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8001, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the JSON API."""
    import uvicorn

    typer.echo(f"Starting TerraBuild API on http://{host}:{port}")
    uvicorn.run("terrabuild.web.app:app", host=host, port=port, reload=reload, workers=1)


if __name__ == "__main__":
    app()
