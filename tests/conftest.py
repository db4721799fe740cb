"""Shared fixtures: an in-memory store and an API client wired to it."""

from __future__ import annotations

from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from database import get_store
from tests.fake_store import FakeStore


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def client(store: FakeStore) -> Iterator[TestClient]:
    import main

    main.app.dependency_overrides[get_store] = lambda: store
    try:
        yield TestClient(main.app)
    finally:
        main.app.dependency_overrides.clear()
