"""Shared pytest fixtures for the chapterflow test suite."""

from datetime import datetime

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from chapterflow.config import settings
from chapterflow.database import close_db, get_session_factory, init_db, set_engine
from chapterflow.models.enums import Role
from chapterflow.services.file_registry import FileRegistry, LocalBlobStore
from chapterflow.services.workflow import ChapterWorkflow
from chapterflow.user_manager import user_manager

NOW = datetime(2026, 2, 1, 9, 30, 0)


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    """Point the local blob store at a temporary directory."""
    path = tmp_path / "uploads"
    monkeypatch.setattr(settings, "upload_dir", path)
    return path


@pytest_asyncio.fixture
async def engine(tmp_path, upload_dir):
    """A fresh SQLite database per test, with tables and schedules created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'chapterflow.db'}")
    set_engine(engine)
    await init_db()
    yield engine
    await close_db()


@pytest_asyncio.fixture
async def session(engine):
    session_factory = await get_session_factory()
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def users(engine):
    """Create one admin, one editor and two writers."""
    created = {}
    for user_id, name, role in [
        ("admin-c", "管理员C", Role.ADMIN),
        ("editor-b", "编辑B", Role.EDITOR),
        ("writer-a", "作者A", Role.WRITER),
        ("writer-d", "作者D", Role.WRITER),
    ]:
        created[user_id] = await user_manager.create_user(name, role, user_id=user_id)
    return created


@pytest.fixture
def admin(users):
    return users["admin-c"].to_actor()


@pytest.fixture
def editor(users):
    return users["editor-b"].to_actor()


@pytest.fixture
def writer(users):
    return users["writer-a"].to_actor()


@pytest.fixture
def other_writer(users):
    return users["writer-d"].to_actor()


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

@pytest.fixture
def blob_store(upload_dir):
    return LocalBlobStore(root=upload_dir, public_base_url="/uploads")


@pytest.fixture
def workflow(session, blob_store):
    return ChapterWorkflow(session, file_registry=FileRegistry(session, blob_store), clock=lambda: NOW)


@pytest_asyncio.fixture
async def chapter(workflow, admin, writer):
    """A draft chapter assigned to writer A."""
    return await workflow.create_chapter(admin, "3-1", "雨夜", writer_id=writer.user_id)
