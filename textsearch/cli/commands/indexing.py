"""Index maintenance CLI commands."""

from typing import Any

import click
import msgspec


def load_documents(raw: bytes, id: str | None = None) -> dict[str, dict[str, Any]]:
    """Parse JSON input into a mapping of document id to document.

    Accepted shapes: a single object (requires ``id``), an object mapping ids
    to documents, or a list of objects each carrying an ``id`` key.
    """
    try:
        data = msgspec.json.decode(raw)
    except msgspec.DecodeError as e:
        raise click.BadParameter(f"Invalid JSON: {e}") from e

    if id is not None:
        if not isinstance(data, dict):
            raise click.BadParameter("A single document must be a JSON object")
        return {id: data}

    if isinstance(data, dict):
        if not all(isinstance(doc, dict) for doc in data.values()):
            raise click.BadParameter("Expected an object mapping ids to documents")
        return {str(key): doc for key, doc in data.items()}

    if isinstance(data, list):
        documents = {}
        for position, doc in enumerate(data):
            if not isinstance(doc, dict) or "id" not in doc:
                raise click.BadParameter(f"Document #{position} has no 'id' key")
            documents[str(doc["id"])] = doc
        return documents

    raise click.BadParameter("Expected a JSON object or list of objects")


@click.command()
@click.argument("type")
@click.argument("source", type=click.File("rb"))
@click.option("--id", "doc_id", help="Index SOURCE as a single document with this id")
@click.pass_context
def index(ctx: click.Context, type: str, source, doc_id: str | None) -> None:
    """Index JSON documents from SOURCE ('-' for stdin) under TYPE."""
    console = ctx.obj.console
    engine = ctx.obj.engine

    documents = load_documents(source.read(), doc_id)
    if not documents:
        console.print("[yellow]No documents to index[/yellow]")
        return

    count = engine.bulk_index(type, documents)
    noun = "document" if count == 1 else "documents"
    console.print(f"[green]✓[/green] Indexed {count} {noun} into '{type}'")


@click.command()
@click.argument("type")
@click.argument("doc_id", metavar="ID")
@click.pass_context
def delete(ctx: click.Context, type: str, doc_id: str) -> None:
    """Delete document ID of TYPE from the index."""
    console = ctx.obj.console

    if ctx.obj.engine.delete(type, doc_id):
        console.print(f"[green]✓[/green] Deleted {type}/{doc_id}")
    else:
        console.print(f"[yellow]Document {type}/{doc_id} not found[/yellow]")
        ctx.exit(1)


@click.command()
@click.argument("type")
@click.pass_context
def reindex(ctx: click.Context, type: str) -> None:
    """Rebuild the postings of every TYPE document from stored tokens."""
    count = ctx.obj.engine.reindex(type)
    ctx.obj.console.print(f"[green]✓[/green] Reindexed {count} '{type}' documents")
