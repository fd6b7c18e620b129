"""ShareDriveAsync — async facade over the drive services and the realtime hub."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from sharedrive.config import DriveConfig
from sharedrive.drive.blobs import LocalBlobStore
from sharedrive.drive.exceptions import ConflictError, InvalidInputError
from sharedrive.drive.files import FileService
from sharedrive.drive.folders import FolderService
from sharedrive.drive.hierarchy import HierarchyService
from sharedrive.drive.search import SearchService
from sharedrive.drive.sharing import SharingService
from sharedrive.drive.store import ResourceStore
from sharedrive.drive.types import Principal
from sharedrive.drive.utils import clean_name
from sharedrive.drive.versioning import VersionManager
from sharedrive.events import DriveEvent, EventBus, EventType
from sharedrive.models.files import FileMeta, FileVersion
from sharedrive.models.folders import Folder
from sharedrive.models.shares import FileShare, FolderShare
from sharedrive.models.users import User
from sharedrive.realtime.hub import PresenceHub

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, AsyncIterable, Awaitable, Callable, Sequence

    from sqlalchemy.ext.asyncio import AsyncEngine

    from sharedrive.drive.blobs import BlobStore
    from sharedrive.drive.types import (
        BulkActionResult,
        FolderTree,
        OpenedFile,
        PermissionsListing,
        RemovePermissionResult,
        SearchResults,
        SharedResources,
        ShareResult,
        StoredBlob,
        TreeDeleteResult,
        VersionHistory,
        VersionPushResult,
        VersionRestoreResult,
    )
    from sharedrive.realtime.connection import Connection

logger = logging.getLogger(__name__)

_TABLES = (User, Folder, FileMeta, FileVersion, FileShare, FolderShare)

# Events raised inside the current operation, published after it commits.
_pending_events: ContextVar[list[DriveEvent] | None] = ContextVar(
    "sharedrive_pending_events", default=None
)


class ShareDriveAsync:
    """Async facade wiring store, blob store, services, event bus, and hub.

    Each operation runs in its own session and commits on success; drive
    events raised during an operation reach connected clients only after
    the commit::

        drive = ShareDriveAsync(config=DriveConfig(storage_dir=tmp))
        await drive.create_tables()
        alice = await drive.register_user("Alice", "alice@example.com")
        folder = await drive.create_folder(alice, "docs")
        await drive.upload(alice, b"hello", "hello.txt", folder.id)
    """

    def __init__(
        self,
        *,
        config: DriveConfig | None = None,
        engine: AsyncEngine | None = None,
        blob_store: BlobStore | None = None,
        authenticate: Callable[[str], Awaitable[Principal | None]] | None = None,
    ) -> None:
        self._config = config or DriveConfig()
        self._owns_engine = engine is None
        self._engine = engine or create_async_engine(self._config.database_url)
        self._session_factory = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False
        )
        self._blobs = blob_store or LocalBlobStore(self._config.storage_dir)
        self._closed = False

        self._event_bus = EventBus()
        self._store = ResourceStore()
        self._sharing = SharingService(self._store, self._event_bus)
        self._hierarchy = HierarchyService(
            self._store,
            self._blobs,
            self._event_bus,
            download_url_template=self._config.download_url_template,
        )
        self._versions = VersionManager(self._store, self._blobs, self._event_bus)
        self._folders = FolderService(self._store)
        self._files = FileService(self._store, self._blobs, self._event_bus)
        self._search = SearchService(
            self._store,
            self._blobs,
            limit=self._config.search_limit,
            content_max_bytes=self._config.content_search_max_bytes,
        )
        self._hub = PresenceHub(
            authenticate or self._authenticate_user_id,
            outbox_size=self._config.outbox_size,
        )

        self._event_bus.subscribe(self._on_drive_event)

    # ------------------------------------------------------------------
    # Sessions and event delivery
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession]:
        """One transaction per operation; queued events are published after commit."""
        session = self._session_factory()
        pending: list[DriveEvent] = []
        token = _pending_events.set(pending)
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            _pending_events.reset(token)
            await session.close()
        for event in pending:
            self._publish(event)

    async def _on_drive_event(self, event: DriveEvent) -> None:
        pending = _pending_events.get()
        if pending is None:
            self._publish(event)
        else:
            pending.append(event)

    def _publish(self, event: DriveEvent) -> None:
        """Hand a committed event to the hub.  Never raises."""
        try:
            if event.event_type is EventType.RESOURCE_SHARED:
                if event.target_user_id:
                    self._hub.notify_file_shared(
                        event.resource_id,
                        event.resource_type,
                        event.target_user_id,
                        event.actor,
                        event.payload.get("permission", ""),
                    )
            elif event.event_type is EventType.FILE_UPLOADED:
                self._hub.broadcast(
                    "new-file-uploaded",
                    {
                        "file": event.payload.get("file"),
                        "uploadedBy": event.actor,
                        "parentFolder": event.payload.get("parentFolder"),
                    },
                )
            elif event.event_type is EventType.RESOURCE_DELETED:
                self._hub.notify_resource_deleted(
                    event.resource_id, event.resource_type, event.actor
                )
            else:
                self._hub.broadcast(
                    "file-version-changed",
                    {"fileId": event.resource_id, "version": event.payload, "updatedBy": event.actor},
                )
        except Exception:
            logger.warning("Failed to publish %s", event.event_type.value, exc_info=True)

    async def _authenticate_user_id(self, token: str) -> Principal | None:
        """Default socket authenticator: the token is a user id."""
        return await self.get_principal(token)

    # ------------------------------------------------------------------
    # Setup and users
    # ------------------------------------------------------------------

    async def create_tables(self) -> None:
        async with self._engine.begin() as conn:
            for model in _TABLES:
                await conn.run_sync(
                    lambda c, m=model: m.__table__.create(c, checkfirst=True)  # type: ignore[attr-defined]
                )

    async def register_user(
        self,
        name: str,
        email: str,
        *,
        password_hash: str = "",
        role: str = "user",
    ) -> Principal:
        """Create a user record.  Password hashing happens outside the core."""
        name = clean_name(name)
        email = clean_name(email).lower()
        if not name or not email:
            raise InvalidInputError("Name and email are required")
        try:
            async with self._session() as session:
                if await self._store.get_user_by_email(session, email) is not None:
                    raise ConflictError("User already exists")
                user = await self._store.create_user(
                    session, name=name, email=email, password_hash=password_hash, role=role
                )
        except IntegrityError as exc:
            raise ConflictError("User already exists") from exc
        logger.info("Registered user %s (%s)", user.id, email)
        return Principal(id=user.id, name=user.name, email=user.email, role=user.role)

    async def get_principal(self, user_id: str) -> Principal | None:
        async with self._session() as session:
            user = await self._store.get_user(session, user_id)
        if user is None:
            return None
        return Principal(id=user.id, name=user.name, email=user.email, role=user.role)

    # ------------------------------------------------------------------
    # Sharing
    # ------------------------------------------------------------------

    async def share(
        self,
        principal: Principal,
        resource_id: str,
        resource_type: str,
        target_email: str,
        permission: str,
    ) -> ShareResult:
        async with self._session() as session:
            return await self._sharing.share(
                session, resource_id, resource_type, target_email, permission, principal
            )

    async def remove_permission(
        self, principal: Principal, resource_id: str, resource_type: str, target_email: str
    ) -> RemovePermissionResult:
        async with self._session() as session:
            return await self._sharing.remove_permission(
                session, resource_id, resource_type, target_email, principal
            )

    async def list_permissions(
        self, principal: Principal, resource_id: str, resource_type: str
    ) -> PermissionsListing:
        async with self._session() as session:
            return await self._sharing.list_permissions(
                session, resource_id, resource_type, principal
            )

    async def shared_with_me(self, principal: Principal) -> SharedResources:
        async with self._session() as session:
            return await self._sharing.list_shared_with_me(session, principal.id)

    async def shared_by_me(self, principal: Principal) -> SharedResources:
        async with self._session() as session:
            return await self._sharing.list_shared_by_me(session, principal.id)

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    async def create_folder(
        self, principal: Principal, name: str, parent_id: str | None = None
    ) -> Folder:
        async with self._session() as session:
            return await self._folders.create_folder(session, name, parent_id, principal.id)

    async def folder_tree(self, principal: Principal, parent_id: str | None = None) -> FolderTree:
        async with self._session() as session:
            return await self._folders.folder_tree(session, principal.id, parent_id)

    async def list_all_folders(self, principal: Principal) -> list[Folder]:
        async with self._session() as session:
            return await self._folders.list_all_folders(session, principal.id)

    async def rename_folder(self, principal: Principal, folder_id: str, new_name: str) -> Folder:
        async with self._session() as session:
            return await self._folders.rename_folder(session, folder_id, new_name, principal.id)

    async def resolve_path(self, folder_id: str) -> str:
        async with self._session() as session:
            return await self._folders.resolve_path(session, folder_id)

    async def delete_folder(self, principal: Principal, folder_id: str) -> TreeDeleteResult:
        async with self._session() as session:
            return await self._hierarchy.delete_folder(session, folder_id, principal.id)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def _write_blob(
        self, data: bytes | AsyncIterable[bytes], original_name: str, mimetype: str | None
    ) -> StoredBlob:
        return await self._blobs.write(data, original_name, mimetype)

    async def _discard_blob(self, blob: StoredBlob) -> None:
        try:
            await self._blobs.delete(blob.path)
        except OSError:
            logger.warning("Failed to discard blob %s", blob.path, exc_info=True)

    async def upload(
        self,
        principal: Principal,
        data: bytes | AsyncIterable[bytes],
        original_name: str,
        parent_folder_id: str | None = None,
        *,
        mimetype: str | None = None,
    ) -> FileMeta:
        """Store *data* and register it as a new file."""
        blob = await self._write_blob(data, original_name, mimetype)
        try:
            async with self._session() as session:
                return await self._files.upload_file(
                    session, blob, original_name, parent_folder_id, principal
                )
        except Exception:
            await self._discard_blob(blob)
            raise

    async def list_files(
        self, principal: Principal, parent_folder_id: str | None = None
    ) -> list[FileMeta]:
        async with self._session() as session:
            return await self._files.list_files(session, principal.id, parent_folder_id)

    async def open_file(self, principal: Principal, file_id: str) -> OpenedFile:
        async with self._session() as session:
            return await self._files.open_file(session, file_id, principal.id)

    async def search(self, principal: Principal, query: str | None, **options: Any) -> SearchResults:
        """See ``SearchService.search`` for *options*."""
        async with self._session() as session:
            return await self._search.search(session, principal.id, query, **options)

    # ------------------------------------------------------------------
    # Bulk actions
    # ------------------------------------------------------------------

    async def bulk_action(
        self,
        principal: Principal | None,
        action: str | None,
        files: Sequence[str] | None = None,
        folders: Sequence[str] | None = None,
        target_folder: str | None = None,
    ) -> BulkActionResult:
        async with self._session() as session:
            return await self._hierarchy.bulk_action(
                session,
                action,
                files,
                folders,
                principal.id if principal is not None else None,
                target_folder,
            )

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    async def push_version(
        self,
        principal: Principal,
        file_id: str,
        data: bytes | AsyncIterable[bytes],
        original_name: str,
        *,
        remark: str | None = None,
        mimetype: str | None = None,
    ) -> VersionPushResult:
        """Upload *data* as the new current content of *file_id*."""
        blob = await self._write_blob(data, original_name, mimetype)
        try:
            async with self._session() as session:
                return await self._versions.push_version(
                    session, file_id, blob, principal.id, remark
                )
        except Exception:
            await self._discard_blob(blob)
            raise

    async def restore_version(
        self, principal: Principal, file_id: str, version_number: int
    ) -> VersionRestoreResult:
        async with self._session() as session:
            return await self._versions.restore_version(
                session, file_id, version_number, principal.id
            )

    async def version_history(self, principal: Principal, file_id: str) -> VersionHistory:
        async with self._session() as session:
            return await self._versions.get_history(session, file_id, principal.id)

    # ------------------------------------------------------------------
    # Realtime
    # ------------------------------------------------------------------

    async def connect(self, token: str | None) -> Connection:
        return await self._hub.connect(token)

    async def handle(
        self, connection: Connection, event: str, data: dict[str, Any] | None = None
    ) -> None:
        await self._hub.handle(connection, event, data)

    async def disconnect(self, connection: Connection) -> None:
        await self._hub.disconnect(connection)

    async def online_users(self) -> list[dict[str, Any]]:
        return await self._hub.online_users()

    async def editing_status(self, file_id: str) -> dict[str, Any] | None:
        return await self._hub.editing_status(file_id)

    async def notify_user(
        self,
        target_user_id: str,
        type: str,
        message: str,
        resource_id: str | None = None,
        sender: Principal | None = None,
    ) -> bool:
        """Point-to-point ``notification``.  Returns False when the user is offline."""
        return await self._hub.notify(
            target_user_id,
            type,
            message,
            resource_id,
            sender.summary().to_dict() if sender is not None else None,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._hub.stop()
        if self._owns_engine:
            await self._engine.dispose()

    async def __aenter__(self) -> ShareDriveAsync:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> DriveConfig:
        return self._config

    @property
    def hub(self) -> PresenceHub:
        return self._hub

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def blobs(self) -> BlobStore:
        return self._blobs
