"""Pytest fixtures for the notification engine backend."""

from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from pathlib import Path
from typing import Any
from uuid import uuid4

from alembic import command
from alembic.config import Config
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from api.deps import get_db
from app import create_app
from core.config import settings
from models import Deal, UserNotificationSettings
from models.deal import INVITE_STATUS_ACCEPTED
from services.notifications.push import set_push_sender


def _run_alembic_migrations(database_url: str) -> None:
    """Apply Alembic migrations to the given database URL."""
    backend_dir = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(backend_dir / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(backend_dir / "alembic"))

    original_database_url = settings.database_url
    try:
        settings.database_url = database_url
        command.upgrade(alembic_cfg, "head")
    finally:
        settings.database_url = original_database_url


@pytest.fixture(scope="session")
def test_database_url(tmp_path_factory) -> str:
    """Create and migrate a file-backed SQLite database for tests."""
    db_dir = tmp_path_factory.mktemp("sqlite")
    db_path = db_dir / "backend-test.db"
    database_url = f"sqlite+aiosqlite:///{db_path}"
    _run_alembic_migrations(database_url)
    return database_url


@pytest_asyncio.fixture()
async def test_engine(test_database_url: str) -> AsyncIterator:
    """Create an async engine bound to the migrated SQLite test database."""
    engine = create_async_engine(
        test_database_url,
        connect_args={"check_same_thread": False},
    )
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_maker(test_engine) -> async_sessionmaker[AsyncSession]:
    """Return a session factory bound to the test engine."""
    return async_sessionmaker(test_engine, expire_on_commit=False)


@pytest.fixture()
def app(session_maker) -> Iterator[FastAPI]:
    """Create the FastAPI app with a test database dependency override."""
    application = create_app()

    async def override_get_db() -> AsyncIterator[AsyncSession]:
        async with session_maker() as session:
            yield session

    application.dependency_overrides[get_db] = override_get_db
    yield application


@pytest_asyncio.fixture()
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Return an HTTPX async client bound to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest_asyncio.fixture(autouse=True)
async def clean_database(session_maker) -> AsyncIterator[None]:
    """Clear tables before each test to guarantee isolation."""
    async with session_maker() as session:
        for table in reversed(SQLModel.metadata.sorted_tables):
            await session.execute(table.delete())
        await session.commit()
    yield


@pytest_asyncio.fixture()
async def db_session(session_maker) -> AsyncIterator[AsyncSession]:
    """Provide a raw database session to tests."""
    async with session_maker() as session:
        yield session


class RecordingPushSender:
    def __init__(self) -> None:
        self.calls: list[dict[str, str]] = []

    async def send(self, *, user_id: str, category: str, cta_url: str) -> None:
        self.calls.append(
            {"user_id": user_id, "category": category, "cta_url": cta_url}
        )


@pytest.fixture(autouse=True)
def push_sender() -> Iterator[RecordingPushSender]:
    sender = RecordingPushSender()
    set_push_sender(sender)
    yield sender
    set_push_sender(None)


@pytest.fixture(autouse=True)
def _server_clock_in_utc() -> Iterator[None]:
    """Pin quiet hours to UTC so test clocks do not depend on the host zone."""
    original = settings.quiet_hours_timezone
    settings.quiet_hours_timezone = "UTC"
    try:
        yield
    finally:
        settings.quiet_hours_timezone = original


def new_user_id() -> str:
    return str(uuid4())


async def _create_deal(session: AsyncSession, **overrides: Any) -> Deal:
    creator_id = overrides.pop("creator_id", None) or new_user_id()
    executor_id = overrides.pop("promisor_id", None) or new_user_id()
    values = {
        "creator_id": creator_id,
        "promisee_id": creator_id,
        "promisor_id": executor_id,
        "counterparty_id": executor_id,
        "invite_status": INVITE_STATUS_ACCEPTED,
        "invite_token": uuid4().hex,
    }
    values.update(overrides)
    deal = Deal(**values)
    session.add(deal)
    await session.commit()
    return deal


async def _save_settings(session: AsyncSession, user_id: str, **values: Any) -> None:
    session.add(UserNotificationSettings(user_id=user_id, **values))
    await session.commit()


@pytest.fixture()
def make_deal(db_session: AsyncSession) -> Callable[..., Awaitable[Deal]]:
    """Insert an accepted deal: the creator is the promisee, a new user executes."""

    async def factory(**overrides: Any) -> Deal:
        return await _create_deal(db_session, **overrides)

    return factory


@pytest.fixture()
def save_settings(db_session: AsyncSession) -> Callable[..., Awaitable[None]]:
    async def factory(user_id: str, **values: Any) -> None:
        await _save_settings(db_session, user_id, **values)

    return factory
