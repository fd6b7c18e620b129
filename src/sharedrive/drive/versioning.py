"""VersionManager — append-only version history with restore-as-new-current.

The live file record always points at the current content.  Pushing a new
blob snapshots the current ``filename``/``path`` as a ``FileVersion`` row
numbered ``max + 1`` before the record is pointed at the new blob; old blobs
are never deleted here.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sharedrive.events import DriveEvent, EventType
from sharedrive.models.files import FileVersion

from .exceptions import ForbiddenError, NotFoundError
from .permissions import Permission, ResourceType, authorize
from .types import VersionHistory, VersionInfo, VersionPushResult, VersionRestoreResult

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from sharedrive.events import EventBus
    from sharedrive.models.files import FileMeta

    from .blobs import BlobStore
    from .store import ResourceStore
    from .types import StoredBlob

logger = logging.getLogger(__name__)

AUTO_SAVE_REMARK = "Auto-saved before restore"


def _info(version: FileVersion) -> VersionInfo:
    return VersionInfo(
        version_number=version.version_number,
        filename=version.filename,
        remark=version.remark,
        path=version.path,
        uploaded_at=version.uploaded_at,
        uploaded_by=version.uploaded_by,
    )


class VersionManager:
    """Push, restore, and list file versions."""

    def __init__(
        self,
        store: ResourceStore,
        blobs: BlobStore,
        event_bus: EventBus | None = None,
    ) -> None:
        self._store = store
        self._blobs = blobs
        self._event_bus = event_bus

    async def _load_authorized(
        self,
        session: AsyncSession,
        file_id: str,
        user_id: str,
        required: Permission,
        denied_message: str,
    ) -> FileMeta:
        file = await self._store.get_file(session, file_id)
        if file is None:
            logger.warning("Version operation failed - file not found: %s", file_id)
            raise NotFoundError("File not found")
        acl = await self._store.load_acl(session, ResourceType.FILE, file)
        if not authorize(acl, user_id, required):
            logger.warning(
                "Version operation denied - file %s, user %s, requires %s",
                file_id,
                user_id,
                required.value,
            )
            raise ForbiddenError(denied_message)
        return file

    async def _snapshot_current(
        self, session: AsyncSession, file: FileMeta, user_id: str, remark: str | None
    ) -> FileVersion:
        """Record the live state of *file* as the next version."""
        current = await self._store.max_version_number(session, file.id)
        number = (current or 0) + 1
        version = FileVersion(
            file_id=file.id,
            version_number=number,
            filename=file.filename,
            path=file.path,
            uploaded_by=user_id,
            remark=remark or f"Version {number}",
        )
        await self._store.add_version(session, version)
        logger.debug("Saved current state of %s as version %d", file.id, number)
        return version

    async def _emit(self, event_type: EventType, file: FileMeta, user_id: str, **payload) -> None:
        if self._event_bus is None:
            return
        await self._event_bus.emit(
            DriveEvent(
                event_type=event_type,
                resource_id=file.id,
                resource_type=ResourceType.FILE.value,
                actor={"id": user_id},
                payload={"name": file.original_name, **payload},
            )
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def push_version(
        self,
        session: AsyncSession,
        file_id: str,
        blob: StoredBlob,
        user_id: str,
        remark: str | None = None,
    ) -> VersionPushResult:
        """Make *blob* the live content of a file, keeping the old one as a version.

        Requires owner, edit, or admin.  The blob must already be written to
        the blob store; the caller disposes of it if this raises.
        """
        logger.info(
            "New version upload - file %s, user %s, size %d bytes",
            file_id,
            user_id,
            blob.size,
        )
        file = await self._load_authorized(
            session,
            file_id,
            user_id,
            Permission.EDIT,
            "You do not have permission to upload new version",
        )
        version = await self._snapshot_current(session, file, user_id, remark)

        file.filename = blob.filename
        file.path = blob.path
        file.size = blob.size
        file.mimetype = blob.mimetype
        await self._store.save(session, file)

        logger.info("Version %d created for file %s", version.version_number, file.id)
        await self._emit(
            EventType.VERSION_PUSHED, file, user_id, versionNumber=version.version_number
        )
        return VersionPushResult(
            success=True,
            message="New version uploaded successfully",
            file=file,
            new_version=VersionInfo(
                version_number=version.version_number,
                filename=blob.filename,
                remark=version.remark,
            ),
        )

    async def restore_version(
        self,
        session: AsyncSession,
        file_id: str,
        version_number: int,
        user_id: str,
    ) -> VersionRestoreResult:
        """Make version *version_number* live again.

        The pre-restore state is saved as a new version first, so a restore
        never loses content.  The restored size is read from the blob store.
        """
        logger.info(
            "Version restore - file %s, version %s, user %s", file_id, version_number, user_id
        )
        file = await self._load_authorized(
            session,
            file_id,
            user_id,
            Permission.EDIT,
            "You do not have permission to restore versions",
        )
        target = await self._store.get_version(session, file.id, version_number)
        if target is None:
            logger.warning("Version %s not found for file %s", version_number, file.id)
            raise NotFoundError("Version not found")
        if not await self._blobs.exists(target.path):
            logger.error("Version restore failed - blob missing: %s", target.path)
            raise NotFoundError("Version file not found on server")

        size = await self._blobs.size(target.path)
        backup = await self._snapshot_current(session, file, user_id, AUTO_SAVE_REMARK)

        file.filename = target.filename
        file.path = target.path
        file.size = size
        await self._store.save(session, file)

        logger.info(
            "Restored version %d of file %s (backup version %d)",
            target.version_number,
            file.id,
            backup.version_number,
        )
        await self._emit(
            EventType.VERSION_RESTORED,
            file,
            user_id,
            versionNumber=target.version_number,
            backupVersionNumber=backup.version_number,
        )
        return VersionRestoreResult(
            success=True,
            message=f"Version {target.version_number} restored successfully",
            file=file,
            restored_version=_info(target),
            backup_version_number=backup.version_number,
        )

    async def get_history(
        self, session: AsyncSession, file_id: str, user_id: str
    ) -> VersionHistory:
        """Versions of a file, newest first.  Any grantee may read them."""
        file = await self._load_authorized(
            session,
            file_id,
            user_id,
            Permission.VIEW,
            "You do not have permission to view this file",
        )
        versions = await self._store.list_versions(session, file.id, newest_first=True)
        current = max((v.version_number for v in versions), default=1)
        logger.info(
            "Version history of %s: current %d, %d versions", file.id, current, len(versions)
        )
        return VersionHistory(
            file_id=file.id,
            original_name=file.original_name,
            current_version=current,
            versions=[_info(v) for v in versions],
        )
