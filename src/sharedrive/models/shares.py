"""Share entries — the ``sharedWith`` list of files and folders.

Provides ``ShareEntryBase`` (non-table) and the two concrete tables
``FileShare`` and ``FolderShare``.  Each table holds at most one entry per
``(resource_id, user_id)`` pair; ``position`` preserves insertion order.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


class ShareEntryBase(SQLModel):
    """Base fields for a share entry. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    resource_id: str = Field(index=True)
    user_id: str = Field(index=True)
    permission: str = Field(default="view")
    position: int = Field(default=0)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class FileShare(ShareEntryBase, table=True):
    """Share entries on files — ``drive_file_shares``."""

    __tablename__ = "drive_file_shares"
    __table_args__ = (UniqueConstraint("resource_id", "user_id"),)


class FolderShare(ShareEntryBase, table=True):
    """Share entries on folders — ``drive_folder_shares``."""

    __tablename__ = "drive_folder_shares"
    __table_args__ = (UniqueConstraint("resource_id", "user_id"),)
