"""Shared pytest fixtures for reqtree tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from reqtree.comments.router import get_comment_service
from reqtree.comments.service import CommentService
from reqtree.db.connection import Database
from reqtree.main import app
from reqtree.projects.router import get_project_service
from reqtree.projects.service import ProjectService
from reqtree.requirements.router import get_requirement_service
from reqtree.requirements.service import RequirementService
from reqtree.store.gateway import DocumentStore


@pytest.fixture
async def db():
    """In-memory database for tests."""
    database = await Database.connect(":memory:")
    yield database
    await database.close()


@pytest.fixture
async def store(db):
    """DocumentStore backed by in-memory database."""
    return DocumentStore(db)


@pytest.fixture
async def projects(store):
    return ProjectService(store)


@pytest.fixture
async def requirements(store, projects):
    return RequirementService(store, projects)


@pytest.fixture
async def comments(store, projects):
    return CommentService(store, projects)


@pytest.fixture
async def client(projects, requirements, comments):
    """Async test client with in-memory DB wired into the app."""
    app.dependency_overrides[get_project_service] = lambda: projects
    app.dependency_overrides[get_requirement_service] = lambda: requirements
    app.dependency_overrides[get_comment_service] = lambda: comments
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()
