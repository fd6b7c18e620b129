"""Drive core — store, permissions, sharing, hierarchy, versions, and services."""

from sharedrive.drive.blobs import BlobStore, LocalBlobStore
from sharedrive.drive.exceptions import (
    ConflictError,
    DriveError,
    ForbiddenError,
    InternalError,
    InvalidInputError,
    NotFoundError,
    UnauthenticatedError,
)
from sharedrive.drive.files import FileService
from sharedrive.drive.folders import FolderService
from sharedrive.drive.hierarchy import HierarchyService
from sharedrive.drive.permissions import (
    AccessControl,
    Grant,
    Permission,
    ResourceType,
    authorize,
    effective_permission,
    parse_permission,
    parse_resource_type,
    permission_rank,
)
from sharedrive.drive.search import SearchService
from sharedrive.drive.sharing import SharingService
from sharedrive.drive.store import ResourceStore
from sharedrive.drive.versioning import VersionManager

__all__ = [
    "AccessControl",
    "BlobStore",
    "ConflictError",
    "DriveError",
    "FileService",
    "FolderService",
    "ForbiddenError",
    "Grant",
    "HierarchyService",
    "InternalError",
    "InvalidInputError",
    "LocalBlobStore",
    "NotFoundError",
    "Permission",
    "ResourceStore",
    "ResourceType",
    "SearchService",
    "SharingService",
    "UnauthenticatedError",
    "VersionManager",
    "authorize",
    "effective_permission",
    "parse_permission",
    "parse_resource_type",
    "permission_rank",
]
