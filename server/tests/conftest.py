"""Shared fixtures for server tests.

Environment is configured before any sitevisit_server import so the
cached settings and the module-level engine point at SQLite.
"""

import os
import tempfile

os.environ["SITEVISIT_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SITEVISIT_STORAGE_PATH"] = tempfile.mkdtemp(prefix="sitevisit-media-")
os.environ["SITEVISIT_WEBHOOK_SECRET"] = "test-webhook-secret"

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine

from sitevisit_server.db import Base, VisitStop, make_session_factory
from sitevisit_server.errors import TransientIOError
from sitevisit_server.processing.dispatcher import ProcessingTask
from sitevisit_server.storage.filesystem import FileStorage


class FakeTaskQueue:
    """In-memory TaskQueue that can be told to fail."""

    def __init__(self) -> None:
        self.tasks: list[ProcessingTask] = []
        self.fail = False

    async def enqueue(self, task: ProcessingTask) -> None:
        if self.fail:
            raise TransientIOError("Task queue is not connected")
        self.tasks.append(task)

    @property
    def names(self) -> list[tuple[str, str]]:
        return [(t.name, t.media_asset_id) for t in self.tasks]


class RecordingScorer:
    """EngagementScorer that records calls and can be told to fail."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.fail = False

    async def score(self, visit_stop_id: str) -> None:
        self.calls.append(visit_stop_id)
        if self.fail:
            raise httpx.ConnectError("scorer unreachable")


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh SQLite database per test with foreign keys enforced."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def storage(tmp_path):
    return FileStorage(tmp_path / "media")


@pytest.fixture
def task_queue():
    return FakeTaskQueue()


@pytest.fixture
def scorer():
    return RecordingScorer()


@pytest_asyncio.fixture
async def visit_stop(session_factory):
    """Visit stop V1 as created by the admin surface."""
    async with session_factory() as session:
        stop = VisitStop(id="V1", site_visit_id="SV1", venue_name="Harbour Hall")
        session.add(stop)
        await session.commit()
    return stop


@pytest.fixture
def worker_ctx(session_factory, storage):
    """ARQ job context as prepared by WorkerSettings.on_startup."""
    return {"session_factory": session_factory, "storage": storage}


@pytest_asyncio.fixture
async def client(session_factory, storage, task_queue, scorer):
    """HTTP client against the FastAPI app with test dependencies."""
    from sitevisit_server.api.deps import (
        get_engagement_scorer,
        get_storage,
        get_task_queue,
    )
    from sitevisit_server.db.session import get_db
    from sitevisit_server.ingest.engagement import wait_for_pending_scoring
    from sitevisit_server.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_task_queue] = lambda: task_queue
    app.dependency_overrides[get_engagement_scorer] = lambda: scorer

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    await wait_for_pending_scoring()
    app.dependency_overrides.clear()


def make_png(width: int = 800, height: int = 600, color: str = "steelblue") -> bytes:
    """Render a solid PNG for upload tests."""
    import io

    from PIL import Image

    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_pdf(pages: int = 2) -> bytes:
    """Render a blank multi-page PDF."""
    import io

    from pypdf import PdfWriter

    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=612, height=792)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


@pytest.fixture
def png_factory():
    return make_png


@pytest.fixture
def pdf_factory():
    return make_pdf


@pytest.fixture
def webhook_auth():
    return {"Authorization": "Bearer test-webhook-secret"}
