"""reqtree FastAPI application entry point."""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from reqtree.comments.router import get_comment_service
from reqtree.comments.router import router as comments_router
from reqtree.comments.service import CommentService
from reqtree.db.connection import Database
from reqtree.projects.router import get_project_service
from reqtree.projects.router import router as projects_router
from reqtree.projects.service import ProjectService
from reqtree.requirements.router import get_requirement_service
from reqtree.requirements.router import router as requirements_router
from reqtree.requirements.service import RequirementService
from reqtree.store.gateway import DocumentStore

# Load .env from the project root (settings stay out of the shell profile)
load_dotenv(Path(__file__).resolve().parent.parent / ".env")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage database lifecycle and service wiring."""
    logging.basicConfig(
        level=os.environ.get("REQTREE_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    db = await Database.connect(os.environ.get("REQTREE_DB_PATH", "reqtree.db"))
    store = DocumentStore(db)

    projects = ProjectService(store)
    app.dependency_overrides[get_project_service] = lambda: projects

    requirements = RequirementService(store, projects)
    app.dependency_overrides[get_requirement_service] = lambda: requirements

    comments = CommentService(store, projects)
    app.dependency_overrides[get_comment_service] = lambda: comments

    app.state.db = db
    yield

    await db.close()


app = FastAPI(
    title="reqtree",
    description=(
        "Hierarchical requirement management: ordered requirement forests with"
        " derived paths, changelogs, and threaded comments"
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip()
        for o in os.environ.get("REQTREE_CORS_ORIGINS", "http://localhost:5173").split(",")
        if o.strip()
    ],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(projects_router)
app.include_router(requirements_router)
app.include_router(comments_router)


@app.get("/api/health")
async def health() -> dict:
    return {"status": "ok", "version": "0.1.0"}
