"""sqlmigrate command line interface.

Usage:
    sqlmigrate up [--one]        Apply all (or the next) pending migrations
    sqlmigrate down [--all]      Revert the latest (or every) applied migration
    sqlmigrate status [--json]   Show which migrations are applied
    sqlmigrate create NAME       Write an empty up/down migration pair
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Annotated, NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from typer import Argument, Option

from .errors import MigrationError
from .loader import create_migration_files, load_migrations
from .logging_setup import configure_logging
from .migrator import Migrator
from .models import Migration
from .settings import Settings, load_settings

app = typer.Typer(
    name="sqlmigrate",
    help="Apply and revert versioned SQLite schema migrations",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)


@dataclass
class _State:
    settings: Settings


def _get_version() -> str:
    """Get package version."""
    try:
        from importlib.metadata import version

        return version("sqlmigrate")
    except Exception:
        return "0.0.0"


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"sqlmigrate version {_get_version()}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    db: Annotated[
        Optional[Path],
        Option("--db", "-d", help="SQLite database file [env: SQLMIGRATE_DATABASE]"),
    ] = None,
    directory: Annotated[
        Optional[Path],
        Option("--dir", help="Migrations directory [env: SQLMIGRATE_MIGRATIONS_DIR]"),
    ] = None,
    verbose: Annotated[bool, Option("--verbose", "-v", help="Enable debug logging")] = False,
    version: Annotated[
        bool,
        Option("--version", "-V", callback=version_callback, is_eager=True, help="Show version"),
    ] = False,
) -> None:
    """Apply and revert versioned SQLite schema migrations."""
    try:
        cfg = load_settings()
    except ValueError as e:
        err_console.print(f"[red]Invalid configuration: {escape(str(e))}[/red]")
        raise typer.Exit(2)
    overrides: dict[str, object] = {}
    if db is not None:
        overrides["database"] = db
    if directory is not None:
        overrides["migrations_dir"] = directory
    if verbose:
        overrides["log_level"] = "DEBUG"
    cfg = replace(cfg, **overrides)

    configure_logging(config=cfg)
    ctx.obj = _State(settings=cfg)


def _settings(ctx: typer.Context) -> Settings:
    state = ctx.obj
    if isinstance(state, _State):
        return state.settings
    return load_settings()


def _build_migrator(cfg: Settings) -> Migrator:
    migrator = Migrator(cfg.database, timeout=cfg.busy_timeout)
    migrator.add(*load_migrations(cfg.migrations_dir))
    return migrator


def _fail(e: Exception) -> NoReturn:
    err_console.print(f"[red]{type(e).__name__}: {escape(str(e))}[/red]")
    raise typer.Exit(1)


def _report(done: list[Migration], verb: str) -> None:
    if not done:
        console.print(f"[dim]Nothing to {verb}[/dim]")
        return
    for migration in done:
        console.print(f"[green]{verb.capitalize()}[/green] {migration.version}: {migration.name}")


# =============================================================================
# Migration Commands
# =============================================================================


@app.command()
def up(
    ctx: typer.Context,
    one: Annotated[bool, Option("--one", help="Apply only the next pending migration")] = False,
) -> None:
    """Apply pending migrations in ascending version order."""
    try:
        migrator = _build_migrator(_settings(ctx))
        done = migrator.apply_one() if one else migrator.apply_all()
    except (MigrationError, ValueError) as e:
        _fail(e)
    _report(done, "apply")


@app.command()
def down(
    ctx: typer.Context,
    all_: Annotated[bool, Option("--all", "-a", help="Revert every applied migration")] = False,
) -> None:
    """Revert applied migrations, highest version first (one by default)."""
    try:
        migrator = _build_migrator(_settings(ctx))
        done = migrator.revert_all() if all_ else migrator.revert_one()
    except (MigrationError, ValueError) as e:
        _fail(e)
    _report(done, "revert")


@app.command()
def status(
    ctx: typer.Context,
    json_output: Annotated[bool, Option("--json", "-j", help="JSON output")] = False,
) -> None:
    """Show every known migration and whether it is applied."""
    cfg = _settings(ctx)
    try:
        rows = _build_migrator(cfg).status()
    except (MigrationError, ValueError) as e:
        _fail(e)

    if json_output:
        payload = [{"version": r.version, "name": r.name, "applied": r.applied} for r in rows]
        typer.echo(json.dumps(payload, indent=2))
        return

    table = Table(title=f"Migrations ({cfg.database})", show_header=True)
    table.add_column("Version", justify="right", style="cyan")
    table.add_column("Name")
    table.add_column("Applied")
    for r in rows:
        table.add_row(
            str(r.version),
            r.name,
            "[green]yes[/green]" if r.applied else "[yellow]no[/yellow]",
        )
    console.print(table)


@app.command()
def create(
    ctx: typer.Context,
    name: Annotated[str, Argument(help="Short description, e.g. add_users_table")],
) -> None:
    """Create an empty up/down migration pair with the next version number."""
    cfg = _settings(ctx)
    try:
        up_path, down_path = create_migration_files(cfg.migrations_dir, name)
    except MigrationError as e:
        _fail(e)
    console.print(f"[green]Created[/green] {up_path}")
    console.print(f"[green]Created[/green] {down_path}")


if __name__ == "__main__":
    app()
