from __future__ import annotations

import os

import pytest
from fastapi.testclient import TestClient

# Ensure we default to memory backend for tests to avoid filesystem dependencies
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from tasksync.db import SQLiteRepository  # noqa: E402
from tasksync.main import app  # noqa: E402
from tasksync.repositories import InMemoryRepository, Repository, get_repository  # noqa: E402


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path) -> Repository:
    """Each record store test runs against both backends."""
    if request.param == "sqlite":
        return SQLiteRepository(str(tmp_path / "tasks.db"))
    return InMemoryRepository()


@pytest.fixture()
def memory_repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture()
def client(memory_repo: InMemoryRepository):
    """
    TestClient bound to a fresh in-memory store, so tests never see each
    other's tasks.
    """
    app.dependency_overrides[get_repository] = lambda: memory_repo
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
