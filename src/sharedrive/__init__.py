"""sharedrive: multi-user file storage core.

Folder hierarchies, graded sharing, version history, and realtime presence.
"""

__version__ = "0.1.0"

from sharedrive._drive import ShareDriveAsync
from sharedrive.config import DriveConfig
from sharedrive.drive.exceptions import (
    ConflictError,
    DriveError,
    ForbiddenError,
    InternalError,
    InvalidInputError,
    NotFoundError,
    UnauthenticatedError,
)
from sharedrive.drive.permissions import Permission, ResourceType, authorize
from sharedrive.drive.types import (
    BulkActionResult,
    DownloadManifest,
    MoveSummary,
    Principal,
    ShareResult,
    TreeDeleteResult,
    VersionHistory,
    VersionPushResult,
    VersionRestoreResult,
)
from sharedrive.events import DriveEvent, EventBus, EventType
from sharedrive.realtime import Connection, PresenceHub
from sharedrive.responses import Envelope, from_exception, ok, respond

__all__ = [
    "BulkActionResult",
    "ConflictError",
    "Connection",
    "DownloadManifest",
    "DriveConfig",
    "DriveError",
    "DriveEvent",
    "Envelope",
    "EventBus",
    "EventType",
    "ForbiddenError",
    "InternalError",
    "InvalidInputError",
    "MoveSummary",
    "NotFoundError",
    "Permission",
    "PresenceHub",
    "Principal",
    "ResourceType",
    "ShareDriveAsync",
    "ShareResult",
    "TreeDeleteResult",
    "UnauthenticatedError",
    "VersionHistory",
    "VersionPushResult",
    "VersionRestoreResult",
    "__version__",
    "authorize",
    "from_exception",
    "ok",
    "respond",
]
