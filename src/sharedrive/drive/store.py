"""ResourceStore — persistence for users, folders, files, shares, and versions.

Stateless: receives the ``AsyncSession`` at call time, flushes but never
commits.  Lookups return ``None`` for missing records instead of raising.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import func
from sqlmodel import select

from sharedrive.models.files import FileMeta, FileVersion
from sharedrive.models.folders import Folder
from sharedrive.models.shares import FileShare, FolderShare
from sharedrive.models.users import User

from .permissions import AccessControl, ResourceType
from .utils import escape_like

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlmodel import SQLModel

    from sharedrive.models.shares import ShareEntryBase

logger = logging.getLogger(__name__)

_UNSET: Any = object()

Resource = FileMeta | Folder


def owner_of(resource: Resource) -> str:
    """Owner id of a file (``uploaded_by``) or folder (``owner_id``)."""
    if isinstance(resource, FileMeta):
        return resource.uploaded_by
    return resource.owner_id


def name_of(resource: Resource) -> str:
    if isinstance(resource, FileMeta):
        return resource.original_name
    return resource.name


class ResourceStore:
    """Document-style access to the drive tables."""

    _share_models: dict[ResourceType, type[ShareEntryBase]] = {
        ResourceType.FILE: FileShare,
        ResourceType.FOLDER: FolderShare,
    }

    # ------------------------------------------------------------------
    # Generic
    # ------------------------------------------------------------------

    async def save(self, session: AsyncSession, record: SQLModel) -> None:
        """Add or update *record* and flush."""
        session.add(record)
        await session.flush()

    async def delete(self, session: AsyncSession, record: SQLModel) -> None:
        await session.delete(record)
        await session.flush()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def get_user(self, session: AsyncSession, user_id: str) -> User | None:
        return await session.get(User, user_id)

    async def get_user_by_email(self, session: AsyncSession, email: str) -> User | None:
        result = await session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def get_users(self, session: AsyncSession, user_ids: Sequence[str]) -> dict[str, User]:
        """Map of id -> User for every id that exists."""
        if not user_ids:
            return {}
        result = await session.execute(
            select(User).where(User.id.in_(set(user_ids)))  # type: ignore[union-attr]
        )
        return {u.id: u for u in result.scalars().all()}

    async def create_user(
        self,
        session: AsyncSession,
        *,
        name: str,
        email: str,
        password_hash: str = "",
        role: str = "user",
    ) -> User:
        user = User(name=name, email=email, password_hash=password_hash, role=role)
        await self.save(session, user)
        return user

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    async def get_folder(self, session: AsyncSession, folder_id: str | None) -> Folder | None:
        if not folder_id:
            return None
        return await session.get(Folder, folder_id)

    async def find_folders(
        self,
        session: AsyncSession,
        *,
        owner_id: str | None = None,
        parent_id: str | None = _UNSET,
        name: str | None = None,
        newest_first: bool = False,
    ) -> list[Folder]:
        """Folders matching every given predicate.

        ``parent_id=None`` selects root folders; leave it unset to ignore
        the parent altogether.
        """
        query = select(Folder)
        if owner_id is not None:
            query = query.where(Folder.owner_id == owner_id)
        if parent_id is None:
            query = query.where(Folder.parent_id.is_(None))  # type: ignore[union-attr]
        elif parent_id is not _UNSET:
            query = query.where(Folder.parent_id == parent_id)
        if name is not None:
            query = query.where(Folder.name == name)
        order = Folder.created_at.desc() if newest_first else Folder.created_at.asc()  # type: ignore[attr-defined]
        result = await session.execute(query.order_by(order))
        return list(result.scalars().all())

    async def create_folder(
        self,
        session: AsyncSession,
        *,
        name: str,
        owner_id: str,
        parent_id: str | None,
        path: str,
    ) -> Folder:
        folder = Folder(name=name, owner_id=owner_id, parent_id=parent_id, path=path)
        await self.save(session, folder)
        return folder

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def get_file(self, session: AsyncSession, file_id: str | None) -> FileMeta | None:
        if not file_id:
            return None
        return await session.get(FileMeta, file_id)

    async def find_files(
        self,
        session: AsyncSession,
        *,
        uploaded_by: str | None = None,
        parent_folder_id: str | None = _UNSET,
        newest_first: bool = False,
    ) -> list[FileMeta]:
        """Files matching every given predicate (see ``find_folders``)."""
        query = select(FileMeta)
        if uploaded_by is not None:
            query = query.where(FileMeta.uploaded_by == uploaded_by)
        if parent_folder_id is None:
            query = query.where(FileMeta.parent_folder_id.is_(None))  # type: ignore[union-attr]
        elif parent_folder_id is not _UNSET:
            query = query.where(FileMeta.parent_folder_id == parent_folder_id)
        order = FileMeta.created_at.desc() if newest_first else FileMeta.created_at.asc()  # type: ignore[attr-defined]
        result = await session.execute(query.order_by(order))
        return list(result.scalars().all())

    async def search_files(
        self,
        session: AsyncSession,
        *,
        uploaded_by: str,
        name_contains: str,
        mimetype_contains: str | None = None,
        parent_folder_id: str | None = None,
        limit: int | None = None,
    ) -> list[FileMeta]:
        """Owned files whose name contains *name_contains* (case-insensitive), newest first."""
        query = select(FileMeta).where(
            FileMeta.uploaded_by == uploaded_by,
            FileMeta.original_name.ilike(f"%{escape_like(name_contains)}%", escape="\\"),  # type: ignore[attr-defined]
        )
        if mimetype_contains:
            query = query.where(
                FileMeta.mimetype.ilike(f"%{escape_like(mimetype_contains)}%", escape="\\")  # type: ignore[attr-defined]
            )
        if parent_folder_id:
            query = query.where(FileMeta.parent_folder_id == parent_folder_id)
        query = query.order_by(FileMeta.created_at.desc())  # type: ignore[attr-defined]
        if limit is not None:
            query = query.limit(limit)
        result = await session.execute(query)
        return list(result.scalars().all())

    async def search_folders(
        self,
        session: AsyncSession,
        *,
        owner_id: str,
        name_contains: str,
        parent_id: str | None = None,
        limit: int | None = None,
    ) -> list[Folder]:
        """Owned folders whose name contains *name_contains* (case-insensitive), newest first."""
        query = select(Folder).where(
            Folder.owner_id == owner_id,
            Folder.name.ilike(f"%{escape_like(name_contains)}%", escape="\\"),  # type: ignore[attr-defined]
        )
        if parent_id:
            query = query.where(Folder.parent_id == parent_id)
        query = query.order_by(Folder.created_at.desc())  # type: ignore[attr-defined]
        if limit is not None:
            query = query.limit(limit)
        result = await session.execute(query)
        return list(result.scalars().all())

    async def create_file(self, session: AsyncSession, **fields: Any) -> FileMeta:
        file = FileMeta(**fields)
        await self.save(session, file)
        return file

    async def get_resource(
        self, session: AsyncSession, resource_type: ResourceType, resource_id: str
    ) -> Resource | None:
        if resource_type is ResourceType.FILE:
            return await self.get_file(session, resource_id)
        return await self.get_folder(session, resource_id)

    # ------------------------------------------------------------------
    # Share entries
    # ------------------------------------------------------------------

    def share_model(self, resource_type: ResourceType) -> type[ShareEntryBase]:
        return self._share_models[resource_type]

    async def list_shares(
        self, session: AsyncSession, resource_type: ResourceType, resource_id: str
    ) -> list[ShareEntryBase]:
        """Share entries of one resource in insertion order."""
        model = self.share_model(resource_type)
        result = await session.execute(
            select(model)
            .where(model.resource_id == resource_id)
            .order_by(model.position.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def get_share(
        self,
        session: AsyncSession,
        resource_type: ResourceType,
        resource_id: str,
        user_id: str,
    ) -> ShareEntryBase | None:
        model = self.share_model(resource_type)
        result = await session.execute(
            select(model).where(
                model.resource_id == resource_id,
                model.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def upsert_share(
        self,
        session: AsyncSession,
        resource_type: ResourceType,
        resource_id: str,
        user_id: str,
        permission: str,
    ) -> tuple[ShareEntryBase, bool]:
        """Set *user_id*'s permission on a resource.

        Updates the existing entry in place when there is one.  Returns
        ``(entry, updated)``.
        """
        existing = await self.get_share(session, resource_type, resource_id, user_id)
        if existing is not None:
            existing.permission = permission
            await self.save(session, existing)
            return existing, True

        model = self.share_model(resource_type)
        result = await session.execute(
            select(func.max(model.position)).where(model.resource_id == resource_id)
        )
        last = result.scalar_one_or_none()
        entry = model(
            resource_id=resource_id,
            user_id=user_id,
            permission=permission,
            position=0 if last is None else last + 1,
        )
        await self.save(session, entry)
        return entry, False

    async def remove_share(
        self,
        session: AsyncSession,
        resource_type: ResourceType,
        resource_id: str,
        user_id: str,
    ) -> bool:
        """Remove an entry. Returns True if one existed."""
        existing = await self.get_share(session, resource_type, resource_id, user_id)
        if existing is None:
            return False
        await self.delete(session, existing)
        return True

    async def remove_all_shares(
        self, session: AsyncSession, resource_type: ResourceType, resource_id: str
    ) -> None:
        for entry in await self.list_shares(session, resource_type, resource_id):
            await session.delete(entry)
        await session.flush()

    async def list_shares_for_user(
        self, session: AsyncSession, resource_type: ResourceType, user_id: str
    ) -> list[ShareEntryBase]:
        """Every entry granting *user_id* access to a resource of this type."""
        model = self.share_model(resource_type)
        result = await session.execute(
            select(model)
            .where(model.user_id == user_id)
            .order_by(model.created_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def shared_resources_of(
        self, session: AsyncSession, resource_type: ResourceType, owner_id: str
    ) -> list[Resource]:
        """Resources owned by *owner_id* that have at least one share entry."""
        share = self.share_model(resource_type)
        if resource_type is ResourceType.FILE:
            query = select(FileMeta).where(
                FileMeta.uploaded_by == owner_id,
                FileMeta.id.in_(select(share.resource_id)),  # type: ignore[union-attr]
            ).order_by(FileMeta.created_at.asc())  # type: ignore[attr-defined]
        else:
            query = select(Folder).where(
                Folder.owner_id == owner_id,
                Folder.id.in_(select(share.resource_id)),  # type: ignore[union-attr]
            ).order_by(Folder.created_at.asc())  # type: ignore[attr-defined]
        result = await session.execute(query)
        return list(result.scalars().all())

    async def load_acl(
        self, session: AsyncSession, resource_type: ResourceType, resource: Resource
    ) -> AccessControl:
        """Owner and ordered grants of *resource*, for ``authorize``."""
        entries = await self.list_shares(session, resource_type, resource.id)
        return AccessControl.build(
            resource.id,
            resource_type,
            owner_of(resource),
            ((e.user_id, e.permission) for e in entries),
        )

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    async def list_versions(
        self, session: AsyncSession, file_id: str, *, newest_first: bool = False
    ) -> list[FileVersion]:
        number = FileVersion.version_number
        result = await session.execute(
            select(FileVersion)
            .where(FileVersion.file_id == file_id)
            .order_by(number.desc() if newest_first else number.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def get_version(
        self, session: AsyncSession, file_id: str, version_number: int
    ) -> FileVersion | None:
        result = await session.execute(
            select(FileVersion).where(
                FileVersion.file_id == file_id,
                FileVersion.version_number == version_number,
            )
        )
        return result.scalar_one_or_none()

    async def max_version_number(self, session: AsyncSession, file_id: str) -> int | None:
        """Highest stored version number of a file, or None when it has none."""
        result = await session.execute(
            select(func.max(FileVersion.version_number)).where(FileVersion.file_id == file_id)
        )
        return result.scalar_one_or_none()

    async def add_version(self, session: AsyncSession, version: FileVersion) -> FileVersion:
        await self.save(session, version)
        return version

    async def delete_versions(self, session: AsyncSession, file_id: str) -> None:
        for version in await self.list_versions(session, file_id):
            await session.delete(version)
        await session.flush()
