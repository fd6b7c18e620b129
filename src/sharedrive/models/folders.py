"""Folder model — one node of a per-owner folder forest."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


class Folder(SQLModel, table=True):
    """Folder record — ``drive_folders``.

    ``parent_id`` is ``None`` for root folders.  ``path`` is the ancestor
    chain materialised at creation time; it is not refreshed when an
    ancestor is renamed or moved.
    """

    __tablename__ = "drive_folders"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str
    parent_id: str | None = Field(default=None, index=True)
    owner_id: str = Field(index=True)
    path: str = Field(default="/")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
