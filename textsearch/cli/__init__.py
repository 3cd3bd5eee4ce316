"""Text search CLI.

A command-line interface for indexing and querying documents.
Built with Click and Rich.
"""

from textsearch.cli.main import cli, main

__all__ = ["cli", "main"]
