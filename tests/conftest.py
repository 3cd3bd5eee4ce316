"""Pytest configuration and fixtures."""

import os

import pytest

from textsearch.backends import MemoryBackend, SQLiteBackend
from textsearch.config import SearchConfig
from textsearch.engine import SearchEngine
from textsearch.events import EventBus


@pytest.fixture(autouse=True)
def isolate_environment():
    """Isolate environment variables for each test.

    This prevents test pollution where one test's environment
    changes affect other tests.
    """
    original_env = os.environ.copy()

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def config():
    """Default engine configuration."""
    return SearchConfig()


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, tmp_path):
    """Each storage backend in turn."""
    if request.param == "memory":
        backend = MemoryBackend()
    else:
        backend = SQLiteBackend(tmp_path / "index.db")
    yield backend
    backend.close()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def engine(backend, event_bus, config):
    """Search engine on top of each backend."""
    return SearchEngine(backend=backend, events=event_bus, config=config)


@pytest.fixture
def shoe_documents():
    """Two products sharing the 'shoes' category."""
    return {
        "1": {"title": "Red Shoes", "category": "shoes", "price": 50, "rating": 4.5},
        "2": {"title": "Blue Shoes", "category": "shoes", "price": 80, "rating": 3.9},
    }


@pytest.fixture
def shoe_engine(engine, shoe_documents):
    """Engine with the shoe products indexed one by one."""
    for doc_id, document in shoe_documents.items():
        engine.index("products", doc_id, document)
    return engine


@pytest.fixture
def catalog():
    """A small mixed product catalog."""
    return {
        "p1": {
            "title": "Apple Pie",
            "content": "A classic dessert baked with fresh apples.",
            "tags": ["dessert", "baking"],
            "category": "food",
            "price": 12,
        },
        "p2": {
            "title": "Apple and Banana Smoothie",
            "content": "Blend apple with banana and yogurt.",
            "tags": ["drink"],
            "category": "food",
            "price": 6,
        },
        "p3": {
            "title": "Banana Split",
            "content": "Ice cream dessert served with banana.",
            "tags": ["dessert"],
            "category": "food",
            "price": 9,
        },
        "p4": {
            "title": "Running Shoes",
            "content": "Lightweight shoes for running on red tracks.",
            "tags": ["sport"],
            "category": "apparel",
            "price": 120,
        },
        "p5": {
            "title": "Searching Handbook",
            "content": "How to search product catalogs effectively.",
            "tags": ["books"],
            "category": "books",
            "price": 30,
        },
    }


@pytest.fixture
def catalog_engine(engine, catalog):
    """Engine with the catalog bulk indexed."""
    engine.bulk_index("products", catalog)
    return engine
