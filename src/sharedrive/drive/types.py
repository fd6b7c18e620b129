"""Result types: ShareResult, DownloadManifest, VersionHistory, etc.

``to_dict`` methods produce the wire shapes clients depend on (camelCase
keys), independent of the transport carrying them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from datetime import datetime

    from sqlmodel import SQLModel

    from sharedrive.models.files import FileMeta
    from sharedrive.models.folders import Folder


def record_to_dict(record: SQLModel | None) -> dict[str, Any] | None:
    """JSON-safe dict of a database record."""
    if record is None:
        return None
    return record.model_dump(mode="json")


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, as supplied by the auth boundary."""

    id: str
    name: str = ""
    email: str = ""
    role: str = "user"

    def summary(self) -> UserSummary:
        return UserSummary(id=self.id, name=self.name, email=self.email)


@dataclass(frozen=True)
class UserSummary:
    """Public identity of a user."""

    id: str
    name: str
    email: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "email": self.email}


@dataclass(frozen=True)
class StoredBlob:
    """Metadata of a blob freshly written to the content store."""

    filename: str
    path: str
    size: int
    mimetype: str = "application/octet-stream"


# ---------------------------------------------------------------------------
# Sharing
# ---------------------------------------------------------------------------


@dataclass
class ShareInfo:
    """A grantee and their permission on one resource."""

    user: UserSummary
    permission: str

    def to_dict(self) -> dict[str, Any]:
        return {"user": self.user.to_dict(), "permission": self.permission}


@dataclass
class ShareResult:
    """Result of a share operation."""

    success: bool
    message: str
    user: UserSummary
    permission: str
    resource_type: str
    updated: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "sharedWith": {
                "user": self.user.to_dict(),
                "permission": self.permission,
                "resourceType": self.resource_type,
            },
        }


@dataclass
class PermissionsListing:
    """Who has access to a resource."""

    resource_id: str
    resource_type: str
    name: str
    is_owner: bool
    permissions: list[ShareInfo] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            self.resource_type: {
                "id": self.resource_id,
                "name": self.name,
                "owner": "You" if self.is_owner else "Someone else",
            },
            "permissions": [p.to_dict() for p in self.permissions],
        }


@dataclass
class SharedResourceInfo:
    """A shared file or folder, annotated for one of the sharing listings."""

    id: str
    name: str
    resource_type: str
    owner: UserSummary | None = None
    permission: str | None = None
    size: int | None = None
    mimetype: str | None = None
    path: str | None = None
    shared_at: datetime | None = None
    shared_with: list[ShareInfo] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "name": self.name}
        if self.resource_type == "file":
            data["size"] = self.size
            data["mimetype"] = self.mimetype
        else:
            data["path"] = self.path
        if self.owner is not None:
            data["owner"] = {"name": self.owner.name, "email": self.owner.email}
            data["permission"] = self.permission
            data["sharedAt"] = _iso(self.shared_at)
        else:
            data["sharedWith"] = [s.to_dict() for s in self.shared_with]
        return data


@dataclass
class SharedResources:
    """Files and folders of a sharing listing."""

    files: list[SharedResourceInfo] = field(default_factory=list)
    folders: list[SharedResourceInfo] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "files": [f.to_dict() for f in self.files],
            "folders": [f.to_dict() for f in self.folders],
        }


@dataclass
class RemovePermissionResult:
    """Result of a permission removal."""

    success: bool
    message: str
    removed: bool = False


# ---------------------------------------------------------------------------
# Hierarchy
# ---------------------------------------------------------------------------


@dataclass
class TreeDeleteResult:
    """Counts of records removed by a (recursive) delete."""

    deleted_files: int = 0
    deleted_folders: int = 0

    def add(self, other: TreeDeleteResult) -> None:
        self.deleted_files += other.deleted_files
        self.deleted_folders += other.deleted_folders

    def to_dict(self) -> dict[str, Any]:
        return {"deletedFiles": self.deleted_files, "deletedFolders": self.deleted_folders}


@dataclass
class MoveSummary:
    """Counts of items actually moved by a bulk move."""

    moved_files: int = 0
    moved_folders: int = 0
    skipped_folders: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"movedFiles": self.moved_files, "movedFolders": self.moved_folders}


@dataclass
class DownloadItem:
    """One file of a download manifest."""

    id: str
    name: str
    download_url: str
    size: int
    mimetype: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "downloadUrl": self.download_url,
            "size": self.size,
            "mimetype": self.mimetype,
        }


@dataclass
class DownloadManifest:
    """Flat list of files to fetch plus every folder visited."""

    files: list[DownloadItem] = field(default_factory=list)
    folders: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"files": [f.to_dict() for f in self.files], "folders": list(self.folders)}


@dataclass
class BulkActionResult:
    """Result of a bulk action; ``data`` is action specific."""

    action: str
    message: str
    data: TreeDeleteResult | MoveSummary | DownloadManifest

    def to_dict(self) -> dict[str, Any]:
        return {"success": True, "message": self.message, "data": self.data.to_dict()}


# ---------------------------------------------------------------------------
# Versions
# ---------------------------------------------------------------------------


@dataclass
class VersionInfo:
    """Version history entry."""

    version_number: int
    filename: str
    remark: str | None = None
    path: str | None = None
    uploaded_at: datetime | None = None
    uploaded_by: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "versionNumber": self.version_number,
            "filename": self.filename,
            "remark": self.remark,
            "uploadedAt": _iso(self.uploaded_at),
            "uploadedBy": self.uploaded_by,
        }

    def summary(self) -> dict[str, Any]:
        return {
            "versionNumber": self.version_number,
            "filename": self.filename,
            "remark": self.remark,
        }


@dataclass
class VersionPushResult:
    """Result of pushing a new version."""

    success: bool
    message: str
    file: FileMeta
    new_version: VersionInfo

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "file": record_to_dict(self.file),
            "newVersion": self.new_version.summary(),
        }


@dataclass
class VersionRestoreResult:
    """Result of restoring a version."""

    success: bool
    message: str
    file: FileMeta
    restored_version: VersionInfo
    backup_version_number: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "file": record_to_dict(self.file),
            "restoredVersion": self.restored_version.summary(),
        }


@dataclass
class VersionHistory:
    """Versions of a file, newest first."""

    file_id: str
    original_name: str
    current_version: int
    versions: list[VersionInfo] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "file": {
                "id": self.file_id,
                "originalName": self.original_name,
                "currentVersion": self.current_version,
            },
            "versions": [v.to_dict() for v in self.versions],
        }


# ---------------------------------------------------------------------------
# Folders, files, search
# ---------------------------------------------------------------------------


@dataclass
class FolderTree:
    """Direct children of one folder (or of the root)."""

    folders: list[Folder] = field(default_factory=list)
    files: list[FileMeta] = field(default_factory=list)
    current_folder: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "folders": [record_to_dict(f) for f in self.folders],
            "files": [record_to_dict(f) for f in self.files],
            "folderCount": len(self.folders),
            "fileCount": len(self.files),
            "currentFolder": self.current_folder,
        }


@dataclass
class OpenedFile:
    """A readable file: its record plus a byte stream of the live blob."""

    file: FileMeta
    stream: AsyncIterator[bytes]

    @property
    def content_disposition(self) -> str:
        return f'inline; filename="{self.file.original_name}"'


@dataclass
class SearchResults:
    """Files and folders matching a search."""

    files: list[FileMeta] = field(default_factory=list)
    folders: list[Folder] = field(default_factory=list)
    query: str = ""
    mimetype: str = ""
    kind: str = "all"

    def to_dict(self) -> dict[str, Any]:
        return {
            "files": [record_to_dict(f) for f in self.files],
            "folders": [record_to_dict(f) for f in self.folders],
            "summary": {
                "totalFiles": len(self.files),
                "totalFolders": len(self.folders),
                "searchQuery": self.query,
                "searchType": self.mimetype,
                "searchKind": self.kind,
            },
        }
