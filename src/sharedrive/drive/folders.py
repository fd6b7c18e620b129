"""FolderService — create, list, rename, and path resolution for folders."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .exceptions import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from .types import FolderTree
from .utils import ROOT_SENTINEL, child_path, clean_name

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from sharedrive.models.folders import Folder

    from .store import ResourceStore

logger = logging.getLogger(__name__)


def _parent_or_none(parent_id: str | None) -> str | None:
    if not parent_id or parent_id == ROOT_SENTINEL:
        return None
    return parent_id


class FolderService:
    """Folder CRUD scoped to the owning user."""

    def __init__(self, store: ResourceStore) -> None:
        self._store = store

    async def create_folder(
        self,
        session: AsyncSession,
        name: str,
        parent_id: str | None,
        owner_id: str,
    ) -> Folder:
        """Create a folder under *parent_id* (or at the top level).

        The parent must exist and belong to *owner_id*.  ``path`` is taken
        from the parent at creation time.
        """
        folder_name = clean_name(name)
        if not folder_name:
            raise InvalidInputError("Folder name is required")

        parent_id = _parent_or_none(parent_id)
        path = "/"
        if parent_id is not None:
            parent = await self._store.get_folder(session, parent_id)
            if parent is None or parent.owner_id != owner_id:
                logger.warning(
                    "Invalid parent folder for creation - folder %s, owner %s",
                    parent_id,
                    owner_id,
                )
                raise NotFoundError("Parent folder not found or not yours")
            path = child_path(parent.path, parent.name)

        folder = await self._store.create_folder(
            session, name=folder_name, owner_id=owner_id, parent_id=parent_id, path=path
        )
        logger.info("Folder created - %s (%s) at %s", folder.id, folder_name, path)
        return folder

    async def folder_tree(
        self, session: AsyncSession, owner_id: str, parent_id: str | None = None
    ) -> FolderTree:
        """Folders and files directly inside *parent_id*, newest first."""
        parent_id = _parent_or_none(parent_id)
        folders = await self._store.find_folders(
            session, owner_id=owner_id, parent_id=parent_id, newest_first=True
        )
        files = await self._store.find_files(
            session, uploaded_by=owner_id, parent_folder_id=parent_id, newest_first=True
        )
        logger.debug(
            "Folder tree of %s: %d folders, %d files",
            parent_id or ROOT_SENTINEL,
            len(folders),
            len(files),
        )
        return FolderTree(folders=folders, files=files, current_folder=parent_id)

    async def list_all_folders(self, session: AsyncSession, owner_id: str) -> list[Folder]:
        return await self._store.find_folders(session, owner_id=owner_id, newest_first=True)

    async def rename_folder(
        self, session: AsyncSession, folder_id: str, new_name: str, user_id: str
    ) -> Folder:
        """Rename a folder.  Sibling names must stay unique per owner.

        The stored ``path`` of descendants is left as it was; use
        ``resolve_path`` for the current location.
        """
        name = clean_name(new_name)
        if not name:
            raise InvalidInputError("Folder name is required")

        folder = await self._store.get_folder(session, folder_id)
        if folder is None:
            raise NotFoundError("Folder not found")
        if folder.owner_id != user_id:
            logger.warning("Unauthorized folder rename - folder %s, user %s", folder_id, user_id)
            raise ForbiddenError("Not authorized to update this folder")

        siblings = await self._store.find_folders(
            session, owner_id=user_id, parent_id=folder.parent_id, name=name
        )
        if any(s.id != folder.id for s in siblings):
            logger.warning(
                "Duplicate folder name %r under %s", name, folder.parent_id or ROOT_SENTINEL
            )
            raise ConflictError("A folder with this name already exists in the same location")

        old_name = folder.name
        folder.name = name
        await self._store.save(session, folder)
        logger.info("Folder %s renamed from %r to %r", folder.id, old_name, name)
        return folder

    async def resolve_path(self, session: AsyncSession, folder_id: str) -> str:
        """Current ancestor chain of a folder, e.g. ``"/docs/2024"``.

        Computed by walking ``parent_id`` pointers, so it reflects renames
        and moves that the stored ``path`` does not.
        """
        folder = await self._store.get_folder(session, folder_id)
        if folder is None:
            raise NotFoundError("Folder not found")

        names: list[str] = []
        seen: set[str] = {folder.id}
        parent = await self._store.get_folder(session, folder.parent_id)
        while parent is not None:
            if parent.id in seen:
                logger.warning("Folder cycle detected above %s", folder_id)
                break
            seen.add(parent.id)
            names.append(parent.name)
            parent = await self._store.get_folder(session, parent.parent_id)
        return "/" + "/".join(reversed(names))
