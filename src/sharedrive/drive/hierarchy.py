"""HierarchyService — recursive delete, cycle-safe move, download manifests.

All operations are scoped to one owning user: items owned by someone else
are silently skipped so bulk requests succeed partially instead of failing.
Traversals use explicit worklists, so hierarchy depth never grows the call
stack.  Store calls run one at a time, in visiting order.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sharedrive.events import DriveEvent, EventType

from .exceptions import (
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    UnauthenticatedError,
)
from .permissions import ResourceType
from .types import (
    BulkActionResult,
    DownloadItem,
    DownloadManifest,
    MoveSummary,
    TreeDeleteResult,
)
from .utils import ROOT_SENTINEL

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

    from sharedrive.events import EventBus
    from sharedrive.models.files import FileMeta
    from sharedrive.models.folders import Folder

    from .blobs import BlobStore
    from .store import ResourceStore

logger = logging.getLogger(__name__)

DEFAULT_DOWNLOAD_URL = "/api/v1/files/preview/{file_id}"

BULK_ACTIONS = ("delete", "move", "download")


class HierarchyService:
    """Recursive algorithms over the folder/file forest."""

    def __init__(
        self,
        store: ResourceStore,
        blobs: BlobStore,
        event_bus: EventBus | None = None,
        *,
        download_url_template: str = DEFAULT_DOWNLOAD_URL,
    ) -> None:
        self._store = store
        self._blobs = blobs
        self._event_bus = event_bus
        self._download_url_template = download_url_template

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def _delete_blob(self, path: str) -> None:
        """Delete one blob; missing or failing blobs are logged, never raised."""
        try:
            if not await self._blobs.delete(path):
                logger.info("Blob already missing, skipped: %s", path)
        except Exception:
            logger.warning("Failed to delete blob %s", path, exc_info=True)

    async def delete_file_record(self, session: AsyncSession, file: FileMeta) -> None:
        """Remove a file's version blobs, live blob, version rows, shares, and record."""
        versions = await self._store.list_versions(session, file.id)
        paths: list[str] = []
        for path in [v.path for v in versions] + [file.path]:
            if path not in paths:
                paths.append(path)
        for path in paths:
            await self._delete_blob(path)

        await self._store.delete_versions(session, file.id)
        await self._store.remove_all_shares(session, ResourceType.FILE, file.id)
        await self._store.delete(session, file)
        logger.debug("Deleted file record %s", file.id)

    async def _delete_files_in(
        self, session: AsyncSession, folder_id: str, user_id: str
    ) -> int:
        files = await self._store.find_files(
            session, uploaded_by=user_id, parent_folder_id=folder_id
        )
        deleted = 0
        for file in files:
            try:
                await self.delete_file_record(session, file)
                deleted += 1
            except Exception:
                logger.exception("Error deleting file %s in folder %s", file.id, folder_id)
        return deleted

    async def _delete_folder_record(self, session: AsyncSession, folder: Folder) -> None:
        await self._store.remove_all_shares(session, ResourceType.FOLDER, folder.id)
        await self._store.delete(session, folder)

    async def delete_folder_tree(
        self, session: AsyncSession, folder_id: str, user_id: str
    ) -> TreeDeleteResult:
        """Delete every descendant of *folder_id* owned by *user_id*.

        At each level the folder's files go first, then its subfolders are
        walked depth-first; a subfolder record is removed once its own
        subtree is empty.  The folder named by *folder_id* itself is left
        for the caller.  A folder reached twice through a parent cycle is
        visited once.
        """
        result = TreeDeleteResult()
        seen: set[str] = {folder_id}
        # (folder_id, folder record or None for the starting folder, expanded)
        stack: list[tuple[str, Folder | None, bool]] = [(folder_id, None, False)]
        while stack:
            current_id, folder, expanded = stack.pop()
            if expanded:
                if folder is not None:
                    await self._delete_folder_record(session, folder)
                    result.deleted_folders += 1
                    logger.debug("Deleted folder record %s", current_id)
                continue

            result.deleted_files += await self._delete_files_in(session, current_id, user_id)
            stack.append((current_id, folder, True))
            subfolders = await self._store.find_folders(
                session, owner_id=user_id, parent_id=current_id
            )
            for sub in reversed(subfolders):
                if sub.id in seen:
                    logger.warning("Folder cycle detected at %s under %s", sub.id, folder_id)
                    continue
                seen.add(sub.id)
                stack.append((sub.id, sub, False))

        logger.info(
            "Deleted tree under %s: %d files, %d folders",
            folder_id,
            result.deleted_files,
            result.deleted_folders,
        )
        return result

    async def delete_folder(
        self, session: AsyncSession, folder_id: str, user_id: str
    ) -> TreeDeleteResult:
        """Delete one folder and everything beneath it (owner only)."""
        folder = await self._store.get_folder(session, folder_id)
        if folder is None:
            logger.warning("Folder not found for deletion: %s", folder_id)
            raise NotFoundError("Folder not found")
        if folder.owner_id != user_id:
            logger.warning("Unauthorized folder deletion - folder %s, user %s", folder_id, user_id)
            raise ForbiddenError("Not authorized to delete this folder")

        result = await self.delete_folder_tree(session, folder.id, user_id)
        await self._delete_folder_record(session, folder)
        result.deleted_folders += 1
        await self._emit_deleted(folder.id, ResourceType.FOLDER, user_id)
        return result

    async def _emit_deleted(self, resource_id: str, resource_type: ResourceType, user_id: str) -> None:
        if self._event_bus is None:
            return
        await self._event_bus.emit(
            DriveEvent(
                event_type=EventType.RESOURCE_DELETED,
                resource_id=resource_id,
                resource_type=resource_type.value,
                actor={"id": user_id},
            )
        )

    async def delete_items(
        self,
        session: AsyncSession,
        file_ids: Sequence[str],
        folder_ids: Sequence[str],
        user_id: str,
    ) -> TreeDeleteResult:
        """Bulk delete: each owned file, and each owned folder recursively."""
        result = TreeDeleteResult()
        for file_id in file_ids:
            file = await self._store.get_file(session, file_id)
            if file is None or file.uploaded_by != user_id:
                logger.debug("Bulk delete skipped file %s", file_id)
                continue
            try:
                await self.delete_file_record(session, file)
            except Exception:
                logger.exception("Bulk delete failed for file %s", file_id)
                continue
            result.deleted_files += 1
            await self._emit_deleted(file_id, ResourceType.FILE, user_id)

        for folder_id in folder_ids:
            folder = await self._store.get_folder(session, folder_id)
            if folder is None or folder.owner_id != user_id:
                logger.debug("Bulk delete skipped folder %s", folder_id)
                continue
            try:
                result.add(await self.delete_folder_tree(session, folder.id, user_id))
                await self._delete_folder_record(session, folder)
            except Exception:
                logger.exception("Bulk delete failed for folder %s", folder_id)
                continue
            result.deleted_folders += 1
            await self._emit_deleted(folder_id, ResourceType.FOLDER, user_id)
        return result

    # ------------------------------------------------------------------
    # Move
    # ------------------------------------------------------------------

    async def is_descendant(
        self, session: AsyncSession, ancestor_id: str, target_id: str | None
    ) -> bool:
        """True if *target_id* is *ancestor_id* or lies anywhere beneath it.

        Walks ``parent_id`` pointers up from the target.  The root sentinel
        (or None) is never a descendant.
        """
        if target_id is None or target_id == ROOT_SENTINEL:
            return False
        if ancestor_id == target_id:
            return True

        seen: set[str] = set()
        current = await self._store.get_folder(session, target_id)
        while current is not None:
            if current.parent_id is None:
                return False
            if current.parent_id == ancestor_id:
                return True
            if current.id in seen:
                logger.warning("Folder cycle detected above %s", target_id)
                return True
            seen.add(current.id)
            current = await self._store.get_folder(session, current.parent_id)
        return False

    async def _resolve_target(
        self, session: AsyncSession, target_folder: str | None, user_id: str
    ) -> str | None:
        if not target_folder:
            raise InvalidInputError("No target folder provided")
        if target_folder == ROOT_SENTINEL:
            return None
        folder = await self._store.get_folder(session, target_folder)
        if folder is None or folder.owner_id != user_id:
            logger.warning("Invalid move target %s for user %s", target_folder, user_id)
            raise InvalidInputError("Target folder not found or not yours")
        return folder.id

    async def move_items(
        self,
        session: AsyncSession,
        file_ids: Sequence[str],
        folder_ids: Sequence[str],
        target_folder: str | None,
        user_id: str,
    ) -> MoveSummary:
        """Reparent owned files and folders under *target_folder*.

        ``"root"`` detaches items to the top level.  Folder moves that would
        put a folder inside itself or its own subtree are skipped.
        """
        target_id = await self._resolve_target(session, target_folder, user_id)
        summary = MoveSummary()

        for file_id in file_ids:
            file = await self._store.get_file(session, file_id)
            if file is None or file.uploaded_by != user_id:
                logger.debug("Move skipped file %s", file_id)
                continue
            file.parent_folder_id = target_id
            await self._store.save(session, file)
            summary.moved_files += 1

        for folder_id in folder_ids:
            folder = await self._store.get_folder(session, folder_id)
            if folder is None or folder.owner_id != user_id:
                logger.debug("Move skipped folder %s", folder_id)
                continue
            if await self.is_descendant(session, folder.id, target_id):
                logger.warning(
                    "Move of folder %s into %s would create a cycle; skipped",
                    folder.id,
                    target_id,
                )
                summary.skipped_folders.append(folder.id)
                continue
            folder.parent_id = target_id
            await self._store.save(session, folder)
            summary.moved_folders += 1

        logger.info(
            "Moved %d files and %d folders to %s",
            summary.moved_files,
            summary.moved_folders,
            target_id or ROOT_SENTINEL,
        )
        return summary

    # ------------------------------------------------------------------
    # Download manifest
    # ------------------------------------------------------------------

    def _download_item(self, file: FileMeta) -> DownloadItem:
        return DownloadItem(
            id=file.id,
            name=file.original_name,
            download_url=self._download_url_template.format(file_id=file.id),
            size=file.size,
            mimetype=file.mimetype,
        )

    async def collect_download_set(
        self,
        session: AsyncSession,
        file_ids: Sequence[str],
        folder_ids: Sequence[str],
        user_id: str,
    ) -> DownloadManifest:
        """Manifest of owned files: requested ones plus everything under requested folders."""
        manifest = DownloadManifest()
        seen: set[str] = set()
        for file_id in file_ids:
            file = await self._store.get_file(session, file_id)
            if file is not None and file.uploaded_by == user_id:
                manifest.files.append(self._download_item(file))

        for folder_id in folder_ids:
            folder = await self._store.get_folder(session, folder_id)
            if folder is None or folder.owner_id != user_id:
                logger.debug("Download skipped folder %s", folder_id)
                continue
            stack = [folder.id]
            while stack:
                current = stack.pop()
                if current in seen:
                    logger.warning("Folder %s already collected; cycle or overlap", current)
                    continue
                seen.add(current)
                subfolders = await self._store.find_folders(
                    session, owner_id=user_id, parent_id=current
                )
                stack.extend(sub.id for sub in subfolders)
                files = await self._store.find_files(
                    session, uploaded_by=user_id, parent_folder_id=current
                )
                manifest.files.extend(self._download_item(f) for f in files)
                manifest.folders.append(current)
        return manifest

    # ------------------------------------------------------------------
    # Bulk dispatch
    # ------------------------------------------------------------------

    async def bulk_action(
        self,
        session: AsyncSession,
        action: str | None,
        files: Sequence[str] | None,
        folders: Sequence[str] | None,
        user_id: str | None,
        target_folder: str | None = None,
    ) -> BulkActionResult:
        """Validate a bulk request, then run delete, move, or download."""
        if not user_id:
            raise UnauthenticatedError("User not authenticated")
        file_ids = list(files or [])
        folder_ids = list(folders or [])
        if not file_ids and not folder_ids:
            raise InvalidInputError("No items selected for bulk action")
        if action not in BULK_ACTIONS:
            logger.warning("Unknown bulk action %r from %s", action, user_id)
            raise InvalidInputError("Invalid action")
        logger.info(
            "Bulk %s requested by %s - %d files, %d folders",
            action,
            user_id,
            len(file_ids),
            len(folder_ids),
        )

        if action == "delete":
            deleted = await self.delete_items(session, file_ids, folder_ids, user_id)
            return BulkActionResult(action, "Delete operation complete", deleted)
        if action == "move":
            moved = await self.move_items(session, file_ids, folder_ids, target_folder, user_id)
            return BulkActionResult(action, "Move operation complete", moved)
        manifest = await self.collect_download_set(session, file_ids, folder_ids, user_id)
        return BulkActionResult(action, "Download manifest ready", manifest)


__all__ = ["BULK_ACTIONS", "DEFAULT_DOWNLOAD_URL", "HierarchyService"]
