"""User model — identities referenced by folders, files, and share entries."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


class User(SQLModel, table=True):
    """Registered user — ``drive_users``.

    Immutable once created except for ``password_hash``.  Other records
    reference users by id; nothing embeds them.
    """

    __tablename__ = "drive_users"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str = Field(default="")
    email: str = Field(index=True, unique=True)
    password_hash: str = Field(default="")
    role: str = Field(default="user")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
