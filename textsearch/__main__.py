"""Allow running the CLI with ``python -m textsearch``."""

from textsearch.cli.main import main

main()
