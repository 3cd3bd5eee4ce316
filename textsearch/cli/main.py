"""Main CLI entry point and application setup."""

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path

import click
from click.exceptions import Exit
from rich.console import Console
from rich.markup import escape

from textsearch import __version__
from textsearch.cli.commands import indexing, search
from textsearch.config import SearchConfig, load_config
from textsearch.engine import SearchEngine, create_sqlite_engine


@dataclass
class Context:
    """CLI context that holds shared resources."""

    engine: SearchEngine
    console: Console
    config: SearchConfig
    debug: bool = False


def setup_logging(
    verbose: bool = False, quiet: bool = False, debug: bool = False
) -> None:
    """Configure logging based on CLI flags."""
    if quiet:
        level = logging.WARNING
    elif verbose or debug:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s"
        if not debug
        else "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_console(no_color: bool = False, width: int | None = None) -> Console:
    """Create Rich console with appropriate settings."""
    return Console(
        no_color=no_color,
        width=width or 120,
        highlight=not no_color,
        color_system=None if no_color else "auto",
    )


def get_database_path(db_path: Path | None = None) -> Path:
    """Get the location of the search database."""
    if db_path:
        return db_path

    if env_path := os.environ.get("TEXTSEARCH_DB"):
        return Path(env_path)

    xdg_data_home = Path(
        os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share")
    )
    return xdg_data_home / "textsearch" / "index.db"


class TextSearchGroup(click.Group):
    """Custom group that turns unexpected errors into a clean exit."""

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except KeyboardInterrupt:
            console = getattr(ctx.obj, "console", None) if ctx.obj else None
            if console:
                console.print("[yellow]Interrupted[/yellow]")
            ctx.exit(130)
        except (click.ClickException, click.Abort, Exit, SystemExit):
            raise
        except Exception as e:
            debug = getattr(ctx.obj, "debug", False) if ctx.obj else False
            if debug:
                raise
            console = getattr(ctx.obj, "console", None) if ctx.obj else None
            if console:
                console.print(f"[red]Error:[/red] {escape(str(e))}")
            else:
                click.echo(f"Error: {e}", err=True)
            ctx.exit(1)


@click.group(cls=TextSearchGroup)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-error output")
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.option("--debug", is_flag=True, help="Enable debug mode with full tracebacks")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Override search database location",
)
@click.version_option(
    version=__version__,
    prog_name="textsearch",
    message="textsearch version %(version)s",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    no_color: bool,
    debug: bool,
    config: Path | None,
    db_path: Path | None,
) -> None:
    """Full-text search and indexing tool.

    Index JSON documents into a SQLite-backed inverted index and query them
    with phrases, +required, -excluded and wildcard* terms.
    """
    setup_logging(verbose=verbose, quiet=quiet, debug=debug)
    console = create_console(no_color=no_color)

    try:
        search_config = load_config(config)
        path = get_database_path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_sqlite_engine(path, config=search_config)
    except Exception as e:
        if debug:
            raise
        console.print(
            f"[red]Error initializing search engine:[/red] {escape(str(e))}"
        )
        ctx.exit(1)

    ctx.call_on_close(engine.close)
    ctx.obj = Context(engine=engine, console=console, config=search_config, debug=debug)


cli.add_command(indexing.index)
cli.add_command(indexing.delete)
cli.add_command(indexing.reindex)
cli.add_command(search.search)
cli.add_command(search.suggest)
cli.add_command(search.popular)
cli.add_command(search.stats)


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
