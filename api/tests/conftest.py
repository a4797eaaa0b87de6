from __future__ import annotations

import os

os.environ.setdefault("JL_OTEL_ENABLED", "false")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from jobledger.core.config import get_settings  # noqa: E402
from jobledger.main import app  # noqa: E402
from jobledger.services.repository import get_repository  # noqa: E402
from jobledger.services.store import InMemoryRepository  # noqa: E402


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository(starting_earned_cents=1000)


@pytest.fixture
def api_client(repository: InMemoryRepository) -> TestClient:
    get_settings.cache_clear()
    app.dependency_overrides[get_repository] = lambda: repository

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
    get_settings.cache_clear()
