"""PresenceHub — presence, editing locks, rooms, and point-to-point notifications.

All hub state is owned by one background task.  Client events and
server-side notifications are queued as commands on an inbox and applied one
at a time, so no handler ever observes another half-way through.  Handlers
only touch in-memory state and enqueue outbound messages, so they never
suspend.  A failing handler is logged and the hub moves on.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sharedrive.drive.exceptions import InvalidInputError, UnauthenticatedError

from .connection import DEFAULT_OUTBOX_SIZE, Connection, ConnectionState

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sharedrive.drive.types import Principal

    Authenticator = Callable[[str], Awaitable[Principal | None]]

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(UTC).isoformat()


def collab_room(resource_id: str) -> str:
    return f"collab-{resource_id}"


def viewer_room(file_id: str) -> str:
    return f"file:{file_id}"


@dataclass
class PresenceEntry:
    connection_id: str
    user_data: dict[str, Any]


@dataclass
class EditingSession:
    """Advisory single-writer lock on a file."""

    user_id: str
    user_name: str
    started_at: str = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {"userId": self.user_id, "userName": self.user_name, "timestamp": self.started_at}


@dataclass
class ViewerInfo:
    id: str
    name: str
    email: str
    connection_id: str
    joined_at: str = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "socketId": self.connection_id,
            "joinedAt": self.joined_at,
        }


@dataclass
class _Command:
    name: str
    connection: Connection | None = None
    data: dict[str, Any] = field(default_factory=dict)
    future: asyncio.Future[Any] | None = None


def _require(data: dict[str, Any], key: str) -> Any:
    value = data.get(key)
    if value in (None, ""):
        raise InvalidInputError(f"Missing {key}")
    return value


class PresenceHub:
    """Actor owning every piece of realtime state.

    Client traffic goes through ``connect`` / ``handle`` / ``disconnect``;
    the drive services reach clients through ``notify_file_shared``,
    ``notify``, ``notify_resource_deleted``, and ``broadcast``.
    """

    def __init__(
        self,
        authenticate: Authenticator | None = None,
        *,
        outbox_size: int = DEFAULT_OUTBOX_SIZE,
    ) -> None:
        self._authenticate = authenticate
        self._outbox_size = outbox_size
        self._inbox: asyncio.Queue[_Command] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None

        # Owned by the actor task only.
        self._connections: dict[str, Connection] = {}
        self._presence: dict[str, PresenceEntry] = {}
        self._editing: dict[str, EditingSession] = {}
        self._rooms: dict[str, set[str]] = {}
        self._viewers: dict[str, dict[str, ViewerInfo]] = {}

        self._client_handlers: dict[str, Callable[[Connection, dict[str, Any]], None]] = {
            "start-editing-file": self._on_start_editing,
            "stop-editing-file": self._on_stop_editing,
            "file-uploaded": self._on_file_uploaded,
            "file-version-updated": self._on_file_version_updated,
            "file-deleted": self._on_file_deleted,
            "resource-shared": self._on_resource_shared,
            "permission-changed": self._on_permission_changed,
            "join-collaboration": self._on_join_collaboration,
            "leave-collaboration": self._on_leave_collaboration,
            "cursor-position": self._on_cursor_position,
            "send-notification": self._on_send_notification,
            "get-online-users": self._on_get_online_users,
            "check-user-online": self._on_check_user_online,
            "start-viewing-file": self._on_start_viewing,
            "stop-viewing-file": self._on_stop_viewing,
        }

    # =========================================================================
    # Actor lifecycle
    # =========================================================================

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the actor task on the running loop (idempotent)."""
        if not self.running:
            self._task = asyncio.create_task(self._run(), name="presence-hub")

    async def stop(self) -> None:
        """Stop the actor.  Queued commands are discarded."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        while not self._inbox.empty():
            command = self._inbox.get_nowait()
            if command.future is not None and not command.future.done():
                command.future.cancel()
            self._inbox.task_done()

    async def join(self) -> None:
        """Wait until every queued command has been applied."""
        if self._inbox.empty():
            return
        self.start()
        await self._inbox.join()

    async def _run(self) -> None:
        while True:
            command = await self._inbox.get()
            try:
                result = self._apply(command)
            except Exception:
                logger.exception(
                    "Realtime handler %s failed for %r", command.name, command.connection
                )
                result = None
            finally:
                self._inbox.task_done()
            if command.future is not None and not command.future.done():
                command.future.set_result(result)

    def _post(self, name: str, connection: Connection | None = None, **data: Any) -> None:
        """Enqueue a command without waiting for it."""
        self.start()
        self._inbox.put_nowait(_Command(name, connection, data))

    async def _call(self, name: str, connection: Connection | None = None, **data: Any) -> Any:
        """Enqueue a command and wait for its result."""
        self.start()
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._inbox.put_nowait(_Command(name, connection, data, future))
        return await future

    def _apply(self, command: _Command) -> Any:
        if command.name == "event":
            if command.connection is None:
                raise InvalidInputError("Client event without a connection")
            return self._dispatch_client(command.connection, command.data)
        handler = getattr(self, f"_cmd_{command.name.replace('-', '_')}")
        if command.connection is not None:
            return handler(command.connection, **command.data)
        return handler(**command.data)

    # =========================================================================
    # Delivery helpers
    # =========================================================================

    def _online_list(self) -> list[dict[str, Any]]:
        return [entry.user_data for entry in self._presence.values()]

    def _emit_all(self, event: str, data: Any) -> None:
        for conn in self._connections.values():
            conn.send(event, data)

    def _emit_others(self, sender: Connection, event: str, data: Any) -> None:
        for conn in self._connections.values():
            if conn.id != sender.id:
                conn.send(event, data)

    def _emit_to_user(self, user_id: str, event: str, data: Any) -> bool:
        entry = self._presence.get(user_id)
        if entry is None:
            logger.debug("User %s offline, dropped %s", user_id, event)
            return False
        conn = self._connections.get(entry.connection_id)
        if conn is None:
            return False
        return conn.send(event, data)

    def _emit_room(self, room: str, event: str, data: Any, exclude: Connection | None = None) -> None:
        for conn_id in self._rooms.get(room, ()):
            if exclude is not None and conn_id == exclude.id:
                continue
            conn = self._connections.get(conn_id)
            if conn is not None:
                conn.send(event, data)

    def _leave_room(self, room: str, connection: Connection) -> None:
        members = self._rooms.get(room)
        if members is None:
            return
        members.discard(connection.id)
        if not members:
            del self._rooms[room]

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(self, token: str | None) -> Connection:
        """Authenticate *token* and register a new connection.

        Raises ``UnauthenticatedError`` before anything is registered when
        the token is missing, unknown, or the authenticator fails.
        """
        if not token:
            raise UnauthenticatedError("Authentication error: No token provided")
        if self._authenticate is None:
            raise UnauthenticatedError("Authentication error: No authenticator configured")
        try:
            principal = await self._authenticate(token)
        except Exception as exc:
            logger.warning("Socket authentication failed: %s", exc)
            raise UnauthenticatedError("Authentication error: Invalid token") from exc
        if principal is None:
            raise UnauthenticatedError("Authentication error: User not found")
        return await self.attach(principal)

    async def attach(self, principal: Principal) -> Connection:
        """Register a connection for an already-authenticated principal."""
        connection = Connection(principal, outbox_size=self._outbox_size)
        await self._call("connect", connection)
        return connection

    async def disconnect(self, connection: Connection) -> None:
        await self._call("disconnect", connection)

    async def handle(self, connection: Connection, event: str, data: dict[str, Any] | None = None) -> None:
        """Apply one inbound client event.  Errors are logged, never raised."""
        await self._call("event", connection, event=event, payload=data or {})

    def _cmd_connect(self, connection: Connection) -> None:
        connection.state = ConnectionState.CONNECTED
        self._connections[connection.id] = connection
        previous = self._presence.get(connection.user_id)
        if previous is not None:
            logger.info(
                "User %s reconnected; connection %s supersedes %s",
                connection.user_id,
                connection.id,
                previous.connection_id,
            )
        self._presence[connection.user_id] = PresenceEntry(connection.id, connection.user_data)
        logger.info("User %s connected: %s", connection.user_id, connection.id)

        connection.send(
            "connected",
            {"message": "Connected to real-time server", "userData": connection.user_data},
        )
        self._emit_all("onlineUsersUpdated", self._online_list())

    def _cmd_disconnect(self, connection: Connection) -> None:
        if connection.state is ConnectionState.DISCONNECTED:
            return
        self._connections.pop(connection.id, None)
        connection.state = ConnectionState.DISCONNECTED
        logger.info("User %s disconnected: %s", connection.user_id, connection.id)

        for room in [r for r, members in self._rooms.items() if connection.id in members]:
            self._leave_room(room, connection)
        self._drop_viewer_entries(connection)

        entry = self._presence.get(connection.user_id)
        if entry is None or entry.connection_id != connection.id:
            # A newer connection of the same user owns the presence entry.
            return
        del self._presence[connection.user_id]

        for file_id in [f for f, s in self._editing.items() if s.user_id == connection.user_id]:
            del self._editing[file_id]
            self._emit_all(
                "user-stopped-editing",
                {
                    "fileId": file_id,
                    "userId": connection.user_id,
                    "userName": connection.principal.name,
                },
            )
        self._emit_all("onlineUsersUpdated", self._online_list())

    def _dispatch_client(self, connection: Connection, data: dict[str, Any]) -> None:
        event = data["event"]
        if not connection.is_open:
            logger.warning("Event %s on closed connection %s ignored", event, connection.id)
            return
        handler = self._client_handlers.get(event)
        if handler is None:
            logger.warning("Unknown realtime event %r from %s", event, connection.user_id)
            return
        payload = data["payload"]
        if not isinstance(payload, dict):
            raise InvalidInputError(f"Payload of {event} must be an object")
        handler(connection, payload)

    # =========================================================================
    # Editing locks
    # =========================================================================

    def _on_start_editing(self, connection: Connection, data: dict[str, Any]) -> None:
        file_id = _require(data, "fileId")
        existing = self._editing.get(file_id)
        if existing is not None and existing.user_id != connection.user_id:
            connection.send("file-being-edited", {"fileId": file_id, "editor": existing.to_dict()})
            return

        self._editing[file_id] = EditingSession(connection.user_id, connection.principal.name)
        self._emit_others(
            connection,
            "user-started-editing",
            {"fileId": file_id, "userId": connection.user_id, "userName": connection.principal.name},
        )
        connection.send("editing-started", {"fileId": file_id})

    def _on_stop_editing(self, connection: Connection, data: dict[str, Any]) -> None:
        file_id = _require(data, "fileId")
        session = self._editing.get(file_id)
        if session is None or session.user_id != connection.user_id:
            return
        del self._editing[file_id]
        self._emit_others(
            connection,
            "user-stopped-editing",
            {"fileId": file_id, "userId": connection.user_id, "userName": connection.principal.name},
        )

    # =========================================================================
    # File activity relays
    # =========================================================================

    def _on_file_uploaded(self, connection: Connection, data: dict[str, Any]) -> None:
        self._emit_others(
            connection,
            "new-file-uploaded",
            {
                "file": data.get("fileData"),
                "uploadedBy": connection.user_data,
                "parentFolder": data.get("parentFolder"),
            },
        )

    def _on_file_version_updated(self, connection: Connection, data: dict[str, Any]) -> None:
        self._emit_others(
            connection,
            "file-version-changed",
            {
                "fileId": _require(data, "fileId"),
                "version": data.get("versionData"),
                "updatedBy": connection.user_data,
            },
        )

    def _on_file_deleted(self, connection: Connection, data: dict[str, Any]) -> None:
        self._emit_others(
            connection,
            "file-was-deleted",
            {"fileId": _require(data, "fileId"), "deletedBy": connection.user_data},
        )

    # =========================================================================
    # Sharing relays
    # =========================================================================

    def _on_resource_shared(self, connection: Connection, data: dict[str, Any]) -> None:
        self._emit_to_user(
            _require(data, "targetUserId"),
            "resource-shared-with-you",
            {
                "resourceId": data.get("resourceId"),
                "resourceType": data.get("resourceType"),
                "permission": data.get("permission"),
                "sharedBy": connection.user_data,
            },
        )

    def _on_permission_changed(self, connection: Connection, data: dict[str, Any]) -> None:
        self._emit_to_user(
            _require(data, "targetUserId"),
            "permission-updated",
            {
                "resourceId": data.get("resourceId"),
                "newPermission": data.get("newPermission"),
                "updatedBy": connection.user_data,
            },
        )

    # =========================================================================
    # Collaboration rooms
    # =========================================================================

    def _on_join_collaboration(self, connection: Connection, data: dict[str, Any]) -> None:
        resource_id = _require(data, "resourceId")
        room = collab_room(resource_id)
        self._rooms.setdefault(room, set()).add(connection.id)
        self._emit_room(
            room,
            "user-joined-collaboration",
            {"user": connection.user_data, "resourceId": resource_id},
            exclude=connection,
        )

    def _on_leave_collaboration(self, connection: Connection, data: dict[str, Any]) -> None:
        resource_id = _require(data, "resourceId")
        room = collab_room(resource_id)
        self._leave_room(room, connection)
        self._emit_room(
            room,
            "user-left-collaboration",
            {"user": connection.user_data, "resourceId": resource_id},
        )

    def _on_cursor_position(self, connection: Connection, data: dict[str, Any]) -> None:
        room = collab_room(_require(data, "resourceId"))
        self._emit_room(
            room,
            "user-cursor-moved",
            {"user": connection.user_data, "position": data.get("position")},
            exclude=connection,
        )

    # =========================================================================
    # Notifications and presence queries
    # =========================================================================

    def _on_send_notification(self, connection: Connection, data: dict[str, Any]) -> None:
        self._cmd_notify(
            target_user_id=_require(data, "targetUserId"),
            type=data.get("type", "info"),
            message=data.get("message", ""),
            resource_id=data.get("resourceId"),
            sender=connection.user_data,
        )

    def _on_get_online_users(self, connection: Connection, data: dict[str, Any]) -> None:
        connection.send("onlineUsersUpdated", self._online_list())

    def _on_check_user_online(self, connection: Connection, data: dict[str, Any]) -> None:
        user_id = _require(data, "userId")
        connection.send("user-online-status", {"userId": user_id, "isOnline": user_id in self._presence})

    # =========================================================================
    # File viewers
    # =========================================================================

    def _viewers_changed(self, file_id: str, viewers: dict[str, ViewerInfo]) -> None:
        self._emit_room(
            viewer_room(file_id),
            "file-viewers-updated",
            {"fileId": file_id, "viewers": [v.to_dict() for v in viewers.values()]},
        )

    def _on_start_viewing(self, connection: Connection, data: dict[str, Any]) -> None:
        file_id = _require(data, "fileId")
        viewers = self._viewers.setdefault(file_id, {})
        info = ViewerInfo(
            id=connection.user_id,
            name=connection.principal.name or "Unknown User",
            email=connection.principal.email,
            connection_id=connection.id,
        )
        viewers.pop(connection.user_id, None)
        viewers[connection.user_id] = info
        self._rooms.setdefault(viewer_room(file_id), set()).add(connection.id)

        self._viewers_changed(file_id, viewers)
        self._emit_others(
            connection, "user-started-viewing-file", {"fileId": file_id, "viewer": info.to_dict()}
        )

    def _on_stop_viewing(self, connection: Connection, data: dict[str, Any]) -> None:
        file_id = _require(data, "fileId")
        viewers = self._viewers.get(file_id)
        if viewers is None or connection.user_id not in viewers:
            return
        del viewers[connection.user_id]
        self._leave_room(viewer_room(file_id), connection)
        if not viewers:
            del self._viewers[file_id]

        self._viewers_changed(file_id, viewers)
        self._emit_others(
            connection, "user-stopped-viewing-file", {"fileId": file_id, "userId": connection.user_id}
        )

    def _drop_viewer_entries(self, connection: Connection) -> None:
        for file_id, viewers in list(self._viewers.items()):
            info = viewers.get(connection.user_id)
            if info is None or info.connection_id != connection.id:
                continue
            del viewers[connection.user_id]
            if not viewers:
                del self._viewers[file_id]
            self._viewers_changed(file_id, viewers)
            self._emit_all(
                "user-stopped-viewing-file", {"fileId": file_id, "userId": connection.user_id}
            )

    # =========================================================================
    # Server-side API
    # =========================================================================

    def notify_file_shared(
        self,
        resource_id: str,
        resource_type: str,
        target_user_id: str,
        shared_by: dict[str, Any],
        permission: str,
    ) -> None:
        """Tell *target_user_id* about a new share.  Dropped if they are offline."""
        self._post(
            "notify_file_shared",
            resource_id=resource_id,
            resource_type=resource_type,
            target_user_id=target_user_id,
            shared_by=shared_by,
            permission=permission,
        )

    def _cmd_notify_file_shared(
        self,
        resource_id: str,
        resource_type: str,
        target_user_id: str,
        shared_by: dict[str, Any],
        permission: str,
    ) -> bool:
        return self._emit_to_user(
            target_user_id,
            "resource-shared-with-you",
            {
                "resourceId": resource_id,
                "resourceType": resource_type,
                "permission": permission,
                "sharedBy": shared_by,
            },
        )

    async def notify(
        self,
        target_user_id: str,
        type: str,
        message: str,
        resource_id: str | None = None,
        sender: dict[str, Any] | None = None,
    ) -> bool:
        """Send a ``notification`` event.  Returns whether the user was online."""
        delivered = await self._call(
            "notify",
            target_user_id=target_user_id,
            type=type,
            message=message,
            resource_id=resource_id,
            sender=sender,
        )
        return bool(delivered)

    def _cmd_notify(
        self,
        target_user_id: str,
        type: str,
        message: str,
        resource_id: str | None = None,
        sender: dict[str, Any] | None = None,
    ) -> bool:
        return self._emit_to_user(
            target_user_id,
            "notification",
            {
                "type": type,
                "message": message,
                "from": sender,
                "resourceId": resource_id,
                "timestamp": _now(),
            },
        )

    def notify_resource_deleted(
        self, resource_id: str, resource_type: str, deleted_by: dict[str, Any]
    ) -> None:
        self.broadcast(
            "resource-was-deleted",
            {"resourceId": resource_id, "resourceType": resource_type, "deletedBy": deleted_by},
        )

    def broadcast(self, event: str, data: Any) -> None:
        """Send *event* to every connected client."""
        self._post("broadcast", event=event, data=data)

    def _cmd_broadcast(self, event: str, data: Any) -> None:
        self._emit_all(event, data)

    async def online_users(self) -> list[dict[str, Any]]:
        return await self._call("online_users")

    def _cmd_online_users(self) -> list[dict[str, Any]]:
        return self._online_list()

    async def editing_status(self, file_id: str) -> dict[str, Any] | None:
        """Current editing session of *file_id*, if any."""
        return await self._call("editing_status", file_id=file_id)

    def _cmd_editing_status(self, file_id: str) -> dict[str, Any] | None:
        session = self._editing.get(file_id)
        return session.to_dict() if session is not None else None
