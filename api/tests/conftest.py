from __future__ import annotations

import os

os.environ["RH_OTEL_ENABLED"] = "false"
os.environ["RH_STORE_BACKEND"] = "memory"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from resource_hub.main import app  # noqa: E402
from resource_hub.services.repository import get_repository  # noqa: E402
from resource_hub.services.store import InMemoryRepository  # noqa: E402


@pytest.fixture
def memory_repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def api_client(memory_repo: InMemoryRepository) -> TestClient:
    app.dependency_overrides[get_repository] = lambda: memory_repo

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
