"""FileMeta and FileVersion models.

The live blob of a file *is* its current version: ``FileMeta`` points at it
directly, and ``FileVersion`` rows only hold superseded snapshots.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


class FileMeta(SQLModel, table=True):
    """Uploaded file metadata — ``drive_files``."""

    __tablename__ = "drive_files"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    original_name: str
    filename: str
    """Stored (unique) blob name."""
    path: str
    """Blob store location of the live content."""
    size: int = Field(default=0)
    mimetype: str = Field(default="application/octet-stream")
    uploaded_by: str = Field(index=True)
    parent_folder_id: str | None = Field(default=None, index=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class FileVersion(SQLModel, table=True):
    """Superseded snapshot of a file — ``drive_file_versions``.

    Immutable once written.  ``version_number`` is unique per file and grows
    by one with every pushed snapshot.
    """

    __tablename__ = "drive_file_versions"
    __table_args__ = (UniqueConstraint("file_id", "version_number"),)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    file_id: str = Field(index=True)
    version_number: int
    filename: str
    path: str
    uploaded_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    uploaded_by: str
    remark: str | None = Field(default=None)
