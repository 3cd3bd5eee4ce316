"""Pytest configuration and fixtures for CLI tests."""

import json

import pytest
from click.testing import CliRunner

from textsearch.cli import cli


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "data" / "index.db"


@pytest.fixture
def invoke(cli_runner, db_path, tmp_path, monkeypatch):
    """Run the CLI against a throwaway database and config location."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.chdir(tmp_path)

    def run(*args, input=None):
        return cli_runner.invoke(cli, ["--db", str(db_path), *args], input=input)

    return run


@pytest.fixture
def products_file(tmp_path, shoe_documents):
    """JSON file mapping ids to the shoe products."""
    path = tmp_path / "products.json"
    path.write_text(json.dumps(shoe_documents))
    return path


@pytest.fixture
def indexed(invoke, products_file):
    result = invoke("index", "products", str(products_file))
    assert result.exit_code == 0, result.output
    return invoke
