"""Search and query CLI commands."""

from typing import Any

import click
import msgspec
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from textsearch.models import SearchResult, Suggestion


def parse_filters(values: tuple[str, ...]) -> dict[str, Any]:
    """Parse repeated ``field=value`` options.

    Values are read as JSON when possible (numbers, booleans), otherwise as
    strings. Repeating a field builds a list of accepted values.
    """
    filters: dict[str, Any] = {}
    for item in values:
        field, sep, raw = item.partition("=")
        if not sep or not field:
            raise click.BadParameter(f"Expected field=value, got {item!r}")
        try:
            value = msgspec.json.decode(raw)
        except msgspec.DecodeError:
            value = raw

        if field not in filters:
            filters[field] = value
        elif isinstance(filters[field], list):
            filters[field].append(value)
        else:
            filters[field] = [filters[field], value]
    return filters


@click.command()
@click.argument("query", default="")
@click.option("--index", "-i", "index_name", help="Restrict search to a document type")
@click.option("--size", "-n", type=int, default=20, help="Maximum results to show")
@click.option("--from", "offset", type=int, default=0, help="Skip first N results")
@click.option("--sort", "-s", multiple=True, help="Sort clause, e.g. price:desc")
@click.option("--filter", "-f", "filters", multiple=True, help="Filter field=value")
@click.option("--facet", "facets", multiple=True, help="Compute a terms facet on field")
@click.option("--field", "fields", multiple=True, help="Only match these fields")
@click.option("--fuzzy", is_flag=True, help="Expand unknown terms with similar ones")
@click.option("--no-highlight", is_flag=True, help="Disable result highlighting")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON results")
@click.pass_context
def search(ctx: click.Context, query: str, **kwargs) -> None:
    """Search indexed documents.

    Supports query operators:
    - Phrases: "exact phrase"
    - Required terms: +term
    - Excluded terms: -term
    - Wildcards: prefix*, *suffix
    """
    console = ctx.obj.console
    engine = ctx.obj.engine

    result = engine.search(
        query,
        index=kwargs["index_name"],
        size=kwargs["size"],
        from_=kwargs["offset"],
        sort=list(kwargs["sort"]) or None,
        filters=parse_filters(kwargs["filters"]),
        facets={field: "terms" for field in kwargs["facets"]},
        fields=list(kwargs["fields"]) or None,
        fuzzy=kwargs["fuzzy"],
        highlight=not kwargs["no_highlight"],
    )

    if kwargs["as_json"]:
        click.echo(msgspec.json.encode(result.to_dict()).decode())
        return

    _display_results(console, result, query, ctx.obj.config.highlight_tag)
    if result.facets:
        _display_facets(console, result.facets)
    if result.suggestions:
        _display_suggestions(console, result.suggestions)


@click.command()
@click.argument("prefix")
@click.option("--size", "-n", type=int, default=10, help="Maximum suggestions")
@click.pass_context
def suggest(ctx: click.Context, prefix: str, size: int) -> None:
    """Suggest terms and past queries starting with PREFIX."""
    console = ctx.obj.console
    suggestions = ctx.obj.engine.suggest(prefix, size=size)

    if not suggestions:
        console.print(f"[yellow]No suggestions for '{escape(prefix)}'[/yellow]")
        return
    _display_suggestions(console, suggestions)


@click.command()
@click.option("--limit", "-n", type=int, default=10, help="Number of queries to show")
@click.pass_context
def popular(ctx: click.Context, limit: int) -> None:
    """Show the most frequent searches of the last week."""
    console = ctx.obj.console
    searches = ctx.obj.engine.popular_searches(limit)

    if not searches:
        console.print("[yellow]No searches recorded yet[/yellow]")
        return

    table = Table(title="Popular Searches")
    table.add_column("Query", style="cyan")
    table.add_column("Count", justify="right")
    for item in searches:
        table.add_row(escape(item["query"]), str(item["count"]))
    console.print(table)


@click.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show index statistics."""
    console = ctx.obj.console
    statistics = ctx.obj.engine.get_statistics()

    table = Table(title="Index Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for name, value in statistics["backend"].items():
        table.add_row(name.replace("_", " ").capitalize(), str(value))
    table.add_row("Analyzers", ", ".join(statistics["engine"]["analyzers"]))
    table.add_row("Index fields", ", ".join(statistics["engine"]["index_fields"]))
    console.print(table)


def _display_results(
    console: Console, result: SearchResult, query: str, tag: str = "mark"
) -> None:
    """Display search results as a table."""
    if result.total == 0:
        console.print(f"\n[yellow]No results found for '{escape(query)}'[/yellow]")
        return

    noun = "result" if result.total == 1 else "results"
    console.print(
        f"\nFound [green]{result.total}[/green] {noun} ({result.took_ms:.1f}ms)"
    )

    table = Table()
    table.add_column("Type", style="magenta")
    table.add_column("ID", style="cyan")
    table.add_column("Title", overflow="ellipsis", max_width=50)
    table.add_column("Score", justify="right")

    for hit in result.hits:
        if "title" in hit.highlight:
            title = _rich_highlight(hit.highlight["title"], tag)
        else:
            title = escape(str(hit.document.get("title") or ""))
        table.add_row(hit.type, escape(hit.id), title, f"{hit.score:.3f}")

    console.print(table)


def _display_facets(console: Console, facets: dict[str, Any]) -> None:
    for field, buckets in facets.items():
        table = Table(title=f"Facet: {field}")
        table.add_column("Value")
        table.add_column("Count", justify="right")
        for bucket in buckets:
            table.add_row(escape(str(bucket["value"])), str(bucket["count"]))
        console.print(table)


def _display_suggestions(console: Console, suggestions: list[Suggestion]) -> None:
    console.print("\n[bold]Did you mean:[/bold]")
    for suggestion in suggestions:
        console.print(f"  • {escape(suggestion.value)} [dim]({suggestion.type})[/dim]")


def _rich_highlight(text: str, tag: str) -> str:
    """Turn ``<tag>`` highlight markers into Rich markup."""
    return (
        escape(text)
        .replace(f"<{tag}>", "[bold yellow]")
        .replace(f"</{tag}>", "[/bold yellow]")
    )
