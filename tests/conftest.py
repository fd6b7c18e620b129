"""Shared fixtures for sharedrive tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

import sharedrive.models  # noqa: F401  (registers tables on SQLModel.metadata)
from sharedrive.drive.blobs import LocalBlobStore
from sharedrive.drive.store import ResourceStore
from sharedrive.drive.types import Principal
from sharedrive.events import EventBus

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine

    from sharedrive.events import DriveEvent
    from sharedrive.models.users import User


def principal_of(user: User) -> Principal:
    return Principal(id=user.id, name=user.name, email=user.email, role=user.role)


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Async in-memory SQLite engine with all tables created."""
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
async def async_session(async_engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Async SQLModel session, closed after each test."""
    factory = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with factory() as session:
        yield session


@pytest.fixture
def store() -> ResourceStore:
    return ResourceStore()


@pytest.fixture
def blobs(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "blobs")


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def captured_events(event_bus: EventBus) -> list[DriveEvent]:
    """Every event emitted on ``event_bus``, in order."""
    events: list[DriveEvent] = []

    async def _collect(event: DriveEvent) -> None:
        events.append(event)

    event_bus.subscribe(_collect)
    return events


@pytest.fixture
async def alice(store: ResourceStore, async_session: AsyncSession) -> Principal:
    user = await store.create_user(async_session, name="Alice", email="alice@example.com")
    return principal_of(user)


@pytest.fixture
async def bob(store: ResourceStore, async_session: AsyncSession) -> Principal:
    user = await store.create_user(async_session, name="Bob", email="bob@example.com")
    return principal_of(user)


@pytest.fixture
async def carol(store: ResourceStore, async_session: AsyncSession) -> Principal:
    user = await store.create_user(async_session, name="Carol", email="carol@example.com")
    return principal_of(user)
