"""FileService — upload registration, listing, and opening file content."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sharedrive.events import DriveEvent, EventType

from .exceptions import ForbiddenError, InvalidInputError, NotFoundError
from .permissions import Permission, ResourceType, authorize
from .types import OpenedFile, record_to_dict
from .utils import ROOT_SENTINEL, clean_name

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from sharedrive.events import EventBus
    from sharedrive.models.files import FileMeta

    from .blobs import BlobStore
    from .store import ResourceStore
    from .types import Principal, StoredBlob

logger = logging.getLogger(__name__)


class FileService:
    def __init__(
        self,
        store: ResourceStore,
        blobs: BlobStore,
        event_bus: EventBus | None = None,
    ) -> None:
        self._store = store
        self._blobs = blobs
        self._event_bus = event_bus

    async def upload_file(
        self,
        session: AsyncSession,
        blob: StoredBlob,
        original_name: str,
        parent_folder_id: str | None,
        principal: Principal,
    ) -> FileMeta:
        """Register an already-written blob as a new file of *principal*.

        The parent folder, when given, must belong to the uploader.
        """
        name = clean_name(original_name)
        if not name:
            raise InvalidInputError("File name is required")
        if parent_folder_id == ROOT_SENTINEL:
            parent_folder_id = None

        if parent_folder_id:
            folder = await self._store.get_folder(session, parent_folder_id)
            if folder is None or folder.owner_id != principal.id:
                logger.warning(
                    "Invalid parent folder for upload - folder %s, user %s",
                    parent_folder_id,
                    principal.id,
                )
                raise NotFoundError("Parent folder not found or not yours")

        file = await self._store.create_file(
            session,
            original_name=name,
            filename=blob.filename,
            path=blob.path,
            size=blob.size,
            mimetype=blob.mimetype,
            uploaded_by=principal.id,
            parent_folder_id=parent_folder_id or None,
        )
        logger.info("File uploaded - %s (%s, %d bytes)", file.id, name, blob.size)

        if self._event_bus is not None:
            await self._event_bus.emit(
                DriveEvent(
                    event_type=EventType.FILE_UPLOADED,
                    resource_id=file.id,
                    resource_type=ResourceType.FILE.value,
                    actor={"id": principal.id, "name": principal.name, "email": principal.email},
                    payload={"file": record_to_dict(file), "parentFolder": file.parent_folder_id},
                )
            )
        return file

    async def list_files(
        self, session: AsyncSession, owner_id: str, parent_folder_id: str | None = None
    ) -> list[FileMeta]:
        if parent_folder_id == ROOT_SENTINEL:
            parent_folder_id = None
        return await self._store.find_files(
            session, uploaded_by=owner_id, parent_folder_id=parent_folder_id or None,
            newest_first=True,
        )

    async def open_file(self, session: AsyncSession, file_id: str, user_id: str) -> OpenedFile:
        """Readable handle on a file's live content.  Requires view permission."""
        file = await self._store.get_file(session, file_id)
        if file is None:
            raise NotFoundError("File not found")
        acl = await self._store.load_acl(session, ResourceType.FILE, file)
        if not authorize(acl, user_id, Permission.VIEW):
            logger.warning("Preview denied - file %s, user %s", file_id, user_id)
            raise ForbiddenError("Not authorized to preview this file")
        if not await self._blobs.exists(file.path):
            logger.error("Blob missing for file %s: %s", file.id, file.path)
            raise NotFoundError("File not found on server")
        return OpenedFile(file=file, stream=self._blobs.stream(file.path))
