"""Permission enum and the pure authorization check.

``authorize`` only looks at the access-control view already loaded for a
resource.  It never queries anything and never raises; callers turn a
``False`` into a ``ForbiddenError`` with a resource-specific message.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .exceptions import InvalidInputError

if TYPE_CHECKING:
    from collections.abc import Iterable


class Permission(str, Enum):
    """Access level on a file or folder.

    ``VIEW < EDIT < ADMIN`` are grantable.  ``OWNER`` is implicit: it belongs
    to the single user in the resource's owner field and is never stored in
    a share entry.
    """

    VIEW = "view"
    EDIT = "edit"
    ADMIN = "admin"
    OWNER = "owner"


class ResourceType(str, Enum):
    """Kinds of shareable resources."""

    FILE = "file"
    FOLDER = "folder"


GRANTABLE = frozenset({Permission.VIEW, Permission.EDIT, Permission.ADMIN})

_RANKS: dict[str, int] = {
    Permission.VIEW.value: 1,
    Permission.EDIT.value: 2,
    Permission.ADMIN.value: 3,
}
_OWNER_RANK = 4


def permission_rank(value: str | Permission | None) -> int:
    """Rank of a *stored* permission value; 0 for anything unknown."""
    if value is None:
        return 0
    if isinstance(value, Permission):
        value = value.value
    return _RANKS.get(value, 0)


def required_rank(required: str | Permission) -> int:
    """Rank demanded by *required*, including the implicit owner level."""
    if isinstance(required, Permission):
        required = required.value
    if required == Permission.OWNER.value:
        return _OWNER_RANK
    rank = _RANKS.get(required)
    if rank is None:
        # An unknown requirement can never be met by a grant.
        return _OWNER_RANK
    return rank


def parse_permission(value: str | Permission | None) -> Permission:
    """Validate a grantable permission value.

    Raises ``InvalidInputError`` for anything other than view, edit, or admin.
    """
    if isinstance(value, Permission):
        value = value.value
    try:
        permission = Permission(value)
    except ValueError:
        permission = None
    if permission is None or permission not in GRANTABLE:
        raise InvalidInputError("Invalid permission. Must be view, edit, or admin")
    return permission


def parse_resource_type(value: str | ResourceType | None) -> ResourceType:
    """Validate a resource type value (``file`` or ``folder``)."""
    if isinstance(value, ResourceType):
        return value
    try:
        return ResourceType(value)
    except ValueError:
        raise InvalidInputError('Invalid resource type. Must be "file" or "folder"') from None


@dataclass(frozen=True, slots=True)
class Grant:
    """One share entry as seen by the permission check."""

    user_id: str
    permission: str


@dataclass(frozen=True, slots=True)
class AccessControl:
    """Owner plus ordered grants of a single resource."""

    resource_id: str
    resource_type: ResourceType
    owner_id: str
    grants: tuple[Grant, ...] = ()

    @classmethod
    def build(
        cls,
        resource_id: str,
        resource_type: ResourceType,
        owner_id: str,
        grants: Iterable[tuple[str, str]] = (),
    ) -> AccessControl:
        """Build from ``(user_id, permission)`` pairs."""
        return cls(
            resource_id=resource_id,
            resource_type=resource_type,
            owner_id=owner_id,
            grants=tuple(Grant(user_id=u, permission=p) for u, p in grants),
        )

    def grant_for(self, user_id: str) -> Grant | None:
        for grant in self.grants:
            if grant.user_id == user_id:
                return grant
        return None


def authorize(
    acl: AccessControl,
    user_id: str | None,
    required: str | Permission,
) -> bool:
    """Return True if *user_id* may act on the resource at *required* level.

    - The owner is always allowed.
    - Otherwise the user's single grant must exist and rank at least as
      high as *required* (view=1 < edit=2 < admin=3).
    - Grants with an unknown permission value deny.
    """
    if not user_id:
        return False
    if user_id == acl.owner_id:
        return True
    grant = acl.grant_for(user_id)
    if grant is None:
        return False
    rank = permission_rank(grant.permission)
    if rank == 0:
        return False
    return rank >= required_rank(required)


def effective_permission(acl: AccessControl, user_id: str | None) -> Permission | None:
    """The level *user_id* holds on the resource, or None."""
    if not user_id:
        return None
    if user_id == acl.owner_id:
        return Permission.OWNER
    grant = acl.grant_for(user_id)
    if grant is None or permission_rank(grant.permission) == 0:
        return None
    return Permission(grant.permission)
