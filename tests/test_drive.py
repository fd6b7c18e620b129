"""End-to-end tests for ShareDriveAsync — transactions, events, and realtime delivery."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from sharedrive import DriveConfig, ShareDriveAsync
from sharedrive.drive.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    UnauthenticatedError,
)

if TYPE_CHECKING:
    from pathlib import Path

    from sharedrive.realtime import Connection


@pytest.fixture
async def drive(tmp_path: Path):
    config = DriveConfig(
        storage_dir=tmp_path / "uploads",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'drive.db'}",
    )
    async with ShareDriveAsync(config=config) as drive:
        await drive.create_tables()
        yield drive


@pytest.fixture
async def alice(drive):
    return await drive.register_user("Alice", "Alice@Example.com")


@pytest.fixture
async def bob(drive):
    return await drive.register_user("Bob", "bob@example.com")


def _received(conn: Connection, event: str) -> list:
    return [m.data for m in conn.drain() if m.event == event]


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class TestUsers:
    async def test_email_normalised(self, drive, alice):
        assert alice.email == "alice@example.com"
        assert await drive.get_principal(alice.id) == alice

    async def test_duplicate_email(self, drive, alice):
        with pytest.raises(ConflictError, match="User already exists"):
            await drive.register_user("Other", "ALICE@example.com")

    async def test_blank_fields(self, drive):
        with pytest.raises(InvalidInputError):
            await drive.register_user(" ", "x@example.com")

    async def test_create_tables_idempotent(self, drive, alice):
        await drive.create_tables()
        assert await drive.get_principal(alice.id) is not None


# ---------------------------------------------------------------------------
# Sharing and versions across commits
# ---------------------------------------------------------------------------


class TestShareThenRestore:
    async def test_permission_upgrade_unlocks_restore(self, drive, alice, bob):
        file = await drive.upload(alice, b"v0", "notes.txt")
        await drive.push_version(alice, file.id, b"v1", "notes.txt")

        await drive.share(alice, file.id, "file", "bob@example.com", "view")
        with pytest.raises(ForbiddenError):
            await drive.restore_version(bob, file.id, 1)

        await drive.share(alice, file.id, "file", "bob@example.com", "edit")
        result = await drive.restore_version(bob, file.id, 1)
        assert result.backup_version_number == 2

        opened = await drive.open_file(bob, file.id)
        assert b"".join([c async for c in opened.stream]) == b"v0"

        history = await drive.version_history(bob, file.id)
        assert [v.version_number for v in history.versions] == [2, 1]

        listing = await drive.list_permissions(alice, file.id, "file")
        assert [(p.user.id, p.permission) for p in listing.permissions] == [(bob.id, "edit")]

    async def test_shared_listings(self, drive, alice, bob):
        folder = await drive.create_folder(alice, "team")
        await drive.share(alice, folder.id, "folder", "bob@example.com", "view")
        mine = await drive.shared_with_me(bob)
        assert [f.id for f in mine.folders] == [folder.id]
        theirs = await drive.shared_by_me(alice)
        assert [f.id for f in theirs.folders] == [folder.id]

        removed = await drive.remove_permission(alice, folder.id, "folder", "bob@example.com")
        assert removed.removed
        assert (await drive.shared_with_me(bob)).folders == []


# ---------------------------------------------------------------------------
# Folders and bulk actions
# ---------------------------------------------------------------------------


class TestFolders:
    async def test_tree_and_resolve(self, drive, alice):
        docs = await drive.create_folder(alice, "docs")
        year = await drive.create_folder(alice, "2024", docs.id)
        await drive.upload(alice, b"x", "a.txt", year.id)
        await drive.rename_folder(alice, docs.id, "archive")
        assert year.path == "/docs"
        assert await drive.resolve_path(year.id) == "/archive"
        inner = await drive.create_folder(alice, "q1", year.id)
        assert await drive.resolve_path(inner.id) == "/archive/2024"

        tree = await drive.folder_tree(alice, year.id)
        assert [f.name for f in tree.folders] == ["q1"]
        assert [f.original_name for f in tree.files] == ["a.txt"]
        assert {f.name for f in await drive.list_all_folders(alice)} == {"archive", "2024", "q1"}
        assert [f.original_name for f in await drive.list_files(alice, year.id)] == ["a.txt"]

    async def test_delete_folder_removes_blobs(self, drive, alice):
        docs = await drive.create_folder(alice, "docs")
        file = await drive.upload(alice, b"x", "a.txt", docs.id)
        result = await drive.delete_folder(alice, docs.id)
        assert result.to_dict() == {"deletedFiles": 1, "deletedFolders": 1}
        assert not await drive.blobs.exists(file.path)
        with pytest.raises(NotFoundError):
            await drive.open_file(alice, file.id)


class TestBulk:
    async def test_cycle_move_rejected(self, drive, alice):
        parent = await drive.create_folder(alice, "P")
        child = await drive.create_folder(alice, "C", parent.id)
        result = await drive.bulk_action(alice, "move", folders=[parent.id], target_folder=child.id)
        assert result.to_dict()["data"] == {"movedFiles": 0, "movedFolders": 0}
        tree = await drive.folder_tree(alice)
        assert [f.id for f in tree.folders] == [parent.id]

    async def test_move_then_download(self, drive, alice):
        src = await drive.create_folder(alice, "src")
        dst = await drive.create_folder(alice, "dst")
        file = await drive.upload(alice, b"hi", "a.txt")
        moved = await drive.bulk_action(alice, "move", files=[file.id], folders=[src.id], target_folder=dst.id)
        assert moved.data.to_dict() == {"movedFiles": 1, "movedFolders": 1}

        manifest = await drive.bulk_action(alice, "download", folders=[dst.id])
        data = manifest.to_dict()["data"]
        assert [f["id"] for f in data["files"]] == [file.id]
        assert data["files"][0]["downloadUrl"] == f"/api/v1/files/preview/{file.id}"
        assert set(data["folders"]) == {dst.id, src.id}

    async def test_validation_order(self, drive, alice):
        with pytest.raises(UnauthenticatedError):
            await drive.bulk_action(None, "delete", files=["x"])
        with pytest.raises(InvalidInputError, match="No items selected"):
            await drive.bulk_action(alice, "explode")
        with pytest.raises(InvalidInputError, match="Invalid action"):
            await drive.bulk_action(alice, "explode", files=["x"])


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


class TestRollback:
    async def test_failed_upload_discards_blob(self, drive, alice, bob, tmp_path):
        folder = await drive.create_folder(alice, "private")
        with pytest.raises(NotFoundError):
            await drive.upload(bob, b"x", "a.txt", folder.id)
        assert list((tmp_path / "uploads").iterdir()) == []

    async def test_failed_push_keeps_state(self, drive, alice, bob):
        file = await drive.upload(alice, b"v0", "a.txt")
        with pytest.raises(ForbiddenError):
            await drive.push_version(bob, file.id, b"evil", "a.txt")
        history = await drive.version_history(alice, file.id)
        assert history.versions == []


# ---------------------------------------------------------------------------
# Realtime delivery
# ---------------------------------------------------------------------------


class TestRealtime:
    async def test_connect_with_user_id(self, drive, alice):
        conn = await drive.connect(alice.id)
        assert conn.user_id == alice.id
        assert [u["id"] for u in await drive.online_users()] == [alice.id]
        await drive.disconnect(conn)
        assert await drive.online_users() == []

    async def test_unknown_user_rejected(self, drive):
        with pytest.raises(UnauthenticatedError, match="User not found"):
            await drive.connect("nobody")

    async def test_share_notifies_online_target(self, drive, alice, bob):
        conn = await drive.connect(bob.id)
        file = await drive.upload(alice, b"x", "a.txt")
        await drive.share(alice, file.id, "file", "bob@example.com", "edit")
        await drive.hub.join()
        shared = _received(conn, "resource-shared-with-you")
        assert shared == [
            {
                "resourceId": file.id,
                "resourceType": "file",
                "permission": "edit",
                "sharedBy": {"id": alice.id, "name": "Alice", "email": "alice@example.com"},
            }
        ]

    async def test_failed_share_publishes_nothing(self, drive, alice, bob):
        conn = await drive.connect(bob.id)
        file = await drive.upload(alice, b"x", "a.txt")
        await drive.hub.join()
        conn.drain()
        with pytest.raises(NotFoundError):
            await drive.share(alice, file.id, "file", "ghost@example.com", "view")
        await drive.hub.join()
        assert conn.drain() == []

    async def test_upload_and_delete_broadcast(self, drive, alice, bob):
        conn = await drive.connect(bob.id)
        file = await drive.upload(alice, b"x", "a.txt")
        await drive.bulk_action(alice, "delete", files=[file.id])
        await drive.hub.join()
        messages = conn.drain()
        uploaded = [m.data for m in messages if m.event == "new-file-uploaded"]
        deleted = [m.data for m in messages if m.event == "resource-was-deleted"]
        assert uploaded[0]["file"]["id"] == file.id
        assert uploaded[0]["uploadedBy"]["id"] == alice.id
        assert deleted == [
            {"resourceId": file.id, "resourceType": "file", "deletedBy": {"id": alice.id}}
        ]

    async def test_version_change_broadcast(self, drive, alice, bob):
        file = await drive.upload(alice, b"v0", "a.txt")
        conn = await drive.connect(bob.id)
        await drive.push_version(alice, file.id, b"v1", "a.txt", remark="draft")
        await drive.hub.join()
        changed = _received(conn, "file-version-changed")
        assert changed[0]["fileId"] == file.id
        assert changed[0]["version"]["versionNumber"] == 1

    async def test_editing_lock_through_facade(self, drive, alice, bob):
        a = await drive.connect(alice.id)
        b = await drive.connect(bob.id)
        await drive.handle(a, "start-editing-file", {"fileId": "f1"})
        await drive.handle(b, "start-editing-file", {"fileId": "f1"})
        assert _received(b, "file-being-edited")[0]["editor"]["userId"] == alice.id
        assert (await drive.editing_status("f1"))["userName"] == "Alice"

    async def test_notify_user(self, drive, alice, bob):
        assert await drive.notify_user(bob.id, "info", "hi", sender=alice) is False
        conn = await drive.connect(bob.id)
        assert await drive.notify_user(bob.id, "info", "hi", sender=alice) is True
        assert _received(conn, "notification")[0]["from"]["id"] == alice.id
