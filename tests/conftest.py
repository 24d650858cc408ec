"""Shared fixtures for the Todo API tests."""

import sys
from pathlib import Path

import pytest

# Make src/ and this directory importable
tests_dir = Path(__file__).parent
sys.path.insert(0, str(tests_dir.parent / "src"))
sys.path.insert(0, str(tests_dir))

from fastapi.testclient import TestClient  # noqa: E402

from fakes import InMemoryTodoRepository  # noqa: E402
from todo_api.api.main import app, get_orchestrator  # noqa: E402
from todo_api.api.orchestrators import TodoOrchestrator  # noqa: E402
from todo_api.config import get_settings  # noqa: E402
from todo_api.core.dependencies import DependencyValidator  # noqa: E402


@pytest.fixture
def repo():
    """Empty in-memory repository."""
    return InMemoryTodoRepository()


@pytest.fixture
def seeded_repo(repo):
    """Repository with two users, two categories and three tags."""
    repo.add_user("John Doe", "john@example.com")
    repo.add_user("Jane Smith", "jane@example.com")
    repo.add_category("Work", "Work-related tasks")
    repo.add_category("Home")
    repo.add_tag("urgent")
    repo.add_tag("backend")
    repo.add_tag("easy")
    return repo


@pytest.fixture
def orchestrator(seeded_repo):
    return TodoOrchestrator(seeded_repo, DependencyValidator(seeded_repo))


@pytest.fixture
def client(orchestrator):
    """HTTP client wired to the in-memory orchestrator (no lifespan, no database)."""
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def clean_settings(monkeypatch):
    """Drop cached settings before and after a test that changes the environment."""
    for name in ("PORT", "LOG_LEVEL", "LOG_FORMAT", "DEPENDENCY_CHECK", "DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()
