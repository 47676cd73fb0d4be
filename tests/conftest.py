"""Pytest configuration.

The repository uses a flat `src/` layout without an installed package. This conftest ensures tests
can import from the `src.*` namespace when running `pytest` locally, and provides shared fixtures
built on the in-memory fakes in `tests/fakes.py`.
"""

from __future__ import annotations

import sys
from datetime import date
from pathlib import Path

import pytest

# Ensure `import src...` works when running pytest without installing the package.
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from src.intent.schema import Project, Snapshot, Task  # noqa: E402
from tests.fakes import TODAY, FakeStore  # noqa: E402


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def home_projects() -> list[Project]:
    return [
        Project(id=1, title="Casa", description="Tareas del hogar", priority="medium"),
        Project(id=2, title="Lanzamiento web", description="Nueva web corporativa", priority="high"),
    ]


@pytest.fixture
def home_tasks() -> list[Task]:
    return [
        Task(id=1, title="Comprar pan", status="pending", project_id=1),
        Task(id=2, title="Campaña de marketing", description="Redes sociales", status="in_progress", project_id=2),
        Task(id=3, title="Revisar presupuesto", description="Plan de marketing anual", status="completed", project_id=2),
        Task(id=4, title="Llamar al banco", status="pending", project_id=1),
    ]


@pytest.fixture
def snapshot(home_projects: list[Project], home_tasks: list[Task]) -> Snapshot:
    return Snapshot(projects=tuple(home_projects), tasks=tuple(home_tasks))


@pytest.fixture
def store(home_projects: list[Project], home_tasks: list[Task]) -> FakeStore:
    return FakeStore(home_projects, home_tasks)
