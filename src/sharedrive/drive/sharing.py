"""SharingService — share, unshare, and permission listings.

Stateless service over the ``ResourceStore``; receives a session at call
time.  Authorization goes through the pure ``authorize`` check; delivery of
the ``resource-shared-with-you`` notification is delegated to the event bus
and can never fail a share.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sharedrive.events import DriveEvent, EventType
from sharedrive.models.files import FileMeta

from .exceptions import ForbiddenError, InvalidInputError, NotFoundError
from .permissions import (
    Permission,
    ResourceType,
    authorize,
    parse_permission,
    parse_resource_type,
)
from .store import ResourceStore, name_of, owner_of
from .types import (
    PermissionsListing,
    RemovePermissionResult,
    SharedResourceInfo,
    SharedResources,
    ShareInfo,
    ShareResult,
    UserSummary,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from sharedrive.events import EventBus
    from sharedrive.models.users import User

    from .permissions import AccessControl
    from .store import Resource
    from .types import Principal

logger = logging.getLogger(__name__)


def _summary(user: User | None, fallback_id: str = "") -> UserSummary:
    if user is None:
        return UserSummary(id=fallback_id, name="", email="")
    return UserSummary(id=user.id, name=user.name, email=user.email)


class SharingService:
    """Manages ``sharedWith`` entries of files and folders."""

    def __init__(self, store: ResourceStore, event_bus: EventBus | None = None) -> None:
        self._store = store
        self._event_bus = event_bus

    async def _load_for_admin(
        self,
        session: AsyncSession,
        resource_id: str,
        resource_type: ResourceType,
        user_id: str,
        denied_message: str,
    ) -> tuple[Resource, AccessControl]:
        """Load a resource and require owner or admin on it."""
        resource = await self._store.get_resource(session, resource_type, resource_id)
        if resource is None:
            logger.warning("Resource not found: %s (%s)", resource_id, resource_type.value)
            raise NotFoundError("Resource not found")

        acl = await self._store.load_acl(session, resource_type, resource)
        if not authorize(acl, user_id, Permission.ADMIN):
            logger.warning(
                "Admin access denied on %s %s for user %s",
                resource_type.value,
                resource_id,
                user_id,
            )
            raise ForbiddenError(denied_message)
        return resource, acl

    # ------------------------------------------------------------------
    # share / remove
    # ------------------------------------------------------------------

    async def share(
        self,
        session: AsyncSession,
        resource_id: str,
        resource_type: str | ResourceType,
        target_email: str,
        permission: str | Permission,
        actor: Principal,
    ) -> ShareResult:
        """Grant *target_email* a permission on a file or folder.

        Re-sharing with an already-shared user updates the entry in place.
        Flushes but does not commit.
        """
        logger.info(
            "Share requested - resource %s (%s), target %s, permission %s, by %s",
            resource_id,
            resource_type,
            target_email,
            permission,
            actor.id,
        )
        target = await self._store.get_user_by_email(session, target_email)
        if target is None:
            logger.warning("Share failed - target user not found: %s", target_email)
            raise NotFoundError("Target user not found")

        rtype = parse_resource_type(resource_type)
        resource, acl = await self._load_for_admin(
            session,
            resource_id,
            rtype,
            actor.id,
            "Only owner or admin can share this resource",
        )
        level = parse_permission(permission)

        if target.id == acl.owner_id:
            raise InvalidInputError("Cannot share a resource with its owner")

        _, updated = await self._store.upsert_share(
            session, rtype, resource.id, target.id, level.value
        )
        logger.info(
            "%s share - resource %s with %s as %s",
            "Updated" if updated else "Added",
            resource.id,
            target.email,
            level.value,
        )

        if self._event_bus is not None:
            await self._event_bus.emit(
                DriveEvent(
                    event_type=EventType.RESOURCE_SHARED,
                    resource_id=resource.id,
                    resource_type=rtype.value,
                    actor={"id": actor.id, "name": actor.name, "email": actor.email},
                    target_user_id=target.id,
                    payload={"permission": level.value, "name": name_of(resource)},
                )
            )

        return ShareResult(
            success=True,
            message="Resource shared successfully",
            user=_summary(target),
            permission=level.value,
            resource_type=rtype.value,
            updated=updated,
        )

    async def remove_permission(
        self,
        session: AsyncSession,
        resource_id: str,
        resource_type: str | ResourceType,
        target_email: str,
        actor: Principal,
    ) -> RemovePermissionResult:
        """Remove *target_email*'s entry.  A missing entry is not an error."""
        target = await self._store.get_user_by_email(session, target_email)
        if target is None:
            logger.warning("Permission removal failed - target user not found: %s", target_email)
            raise NotFoundError("Target user not found")

        rtype = parse_resource_type(resource_type)
        resource, _ = await self._load_for_admin(
            session,
            resource_id,
            rtype,
            actor.id,
            "Only owner or admin can remove permissions",
        )
        removed = await self._store.remove_share(session, rtype, resource.id, target.id)
        logger.info(
            "Permission removal on %s for %s (entry existed: %s)",
            resource.id,
            target.email,
            removed,
        )
        return RemovePermissionResult(
            success=True,
            message=f"Permission removed successfully from {target.email}",
            removed=removed,
        )

    # ------------------------------------------------------------------
    # listings
    # ------------------------------------------------------------------

    async def _share_infos(
        self, session: AsyncSession, resource_type: ResourceType, resource_id: str
    ) -> list[ShareInfo]:
        entries = await self._store.list_shares(session, resource_type, resource_id)
        users = await self._store.get_users(session, [e.user_id for e in entries])
        return [
            ShareInfo(user=_summary(users.get(e.user_id), e.user_id), permission=e.permission)
            for e in entries
        ]

    async def list_permissions(
        self,
        session: AsyncSession,
        resource_id: str,
        resource_type: str | ResourceType,
        actor: Principal,
    ) -> PermissionsListing:
        """Full ``sharedWith`` list of a resource (owner or admin only)."""
        rtype = parse_resource_type(resource_type)
        resource, acl = await self._load_for_admin(
            session,
            resource_id,
            rtype,
            actor.id,
            "Only owner or admin can view permissions",
        )
        permissions = await self._share_infos(session, rtype, resource.id)
        logger.info("Listed %d permissions on %s", len(permissions), resource.id)
        return PermissionsListing(
            resource_id=resource.id,
            resource_type=rtype.value,
            name=name_of(resource),
            is_owner=acl.owner_id == actor.id,
            permissions=permissions,
        )

    async def list_shared_with_me(self, session: AsyncSession, user_id: str) -> SharedResources:
        """Every file and folder shared with *user_id*, with its owner and my permission."""
        listing = SharedResources()
        for rtype in (ResourceType.FILE, ResourceType.FOLDER):
            entries = await self._store.list_shares_for_user(session, rtype, user_id)
            resources: list[Resource] = []
            for entry in entries:
                resource = await self._store.get_resource(session, rtype, entry.resource_id)
                if resource is not None:
                    resources.append(resource)
            owners = await self._store.get_users(session, [owner_of(r) for r in resources])
            by_resource = {e.resource_id: e for e in entries}
            for resource in resources:
                info = self._describe(resource, rtype)
                info.owner = _summary(owners.get(owner_of(resource)), owner_of(resource))
                entry = by_resource[resource.id]
                info.permission = entry.permission
                info.shared_at = entry.created_at
                self._bucket(listing, rtype).append(info)

        logger.info(
            "Shared with %s: %d files, %d folders",
            user_id,
            len(listing.files),
            len(listing.folders),
        )
        return listing

    async def list_shared_by_me(self, session: AsyncSession, user_id: str) -> SharedResources:
        """Resources owned by *user_id* that are shared, with all grantees."""
        listing = SharedResources()
        for rtype in (ResourceType.FILE, ResourceType.FOLDER):
            for resource in await self._store.shared_resources_of(session, rtype, user_id):
                info = self._describe(resource, rtype)
                info.shared_with = await self._share_infos(session, rtype, resource.id)
                self._bucket(listing, rtype).append(info)

        logger.info(
            "Shared by %s: %d files, %d folders",
            user_id,
            len(listing.files),
            len(listing.folders),
        )
        return listing

    @staticmethod
    def _describe(resource: Resource, resource_type: ResourceType) -> SharedResourceInfo:
        if isinstance(resource, FileMeta):
            return SharedResourceInfo(
                id=resource.id,
                name=resource.original_name,
                resource_type=resource_type.value,
                size=resource.size,
                mimetype=resource.mimetype,
            )
        return SharedResourceInfo(
            id=resource.id,
            name=resource.name,
            resource_type=resource_type.value,
            path=resource.path,
        )

    @staticmethod
    def _bucket(listing: SharedResources, resource_type: ResourceType) -> list[SharedResourceInfo]:
        return listing.files if resource_type is ResourceType.FILE else listing.folders
