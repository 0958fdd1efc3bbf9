"""
Pytest configuration and shared fixtures for redirector tests.
"""

import random
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from redirector.main import create_app
from redirector.models import PathRegistry, StatsStore
from redirector.redirect import KeywordFilter, RedirectEngine

BASE_URL = "https://example.com"


@pytest.fixture
def data_dir(tmp_path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def store(data_dir) -> StatsStore:
    return StatsStore(data_dir / "stats.json")


@pytest.fixture
def reserved(data_dir):
    return PathRegistry(data_dir / "paths.json", rng=random.Random(1234)).load_or_generate()


@pytest.fixture
def keywords():
    return []


@pytest.fixture
def engine(store, keywords) -> RedirectEngine:
    return RedirectEngine(store, BASE_URL, KeywordFilter(keywords))


@pytest.fixture
def client(store, reserved, engine):
    app = create_app(store, reserved, engine)
    return TestClient(app, follow_redirects=False)
