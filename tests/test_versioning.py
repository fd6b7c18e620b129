"""Tests for VersionManager — push, restore, history."""

from __future__ import annotations

import pytest

from sharedrive.drive.exceptions import ForbiddenError, NotFoundError
from sharedrive.drive.permissions import ResourceType
from sharedrive.drive.versioning import AUTO_SAVE_REMARK, VersionManager
from sharedrive.events import EventType


@pytest.fixture
def versions(store, blobs, event_bus) -> VersionManager:
    return VersionManager(store, blobs, event_bus)


@pytest.fixture
async def file(store, blobs, async_session, alice):
    blob = await blobs.write(b"v0", "notes.txt")
    return await store.create_file(
        async_session,
        original_name="notes.txt",
        filename=blob.filename,
        path=blob.path,
        size=blob.size,
        mimetype=blob.mimetype,
        uploaded_by=alice.id,
    )


async def _push(versions, blobs, session, file, user, content: bytes, remark=None):
    blob = await blobs.write(content, "notes.txt")
    return await versions.push_version(session, file.id, blob, user.id, remark)


# ---------------------------------------------------------------------------
# push_version
# ---------------------------------------------------------------------------


class TestPush:
    async def test_first_push_is_version_one(self, versions, blobs, async_session, file, alice):
        original_path = file.path
        result = await _push(versions, blobs, async_session, file, alice, b"v1")
        assert result.new_version.version_number == 1
        assert result.new_version.remark == "Version 1"
        assert result.new_version.filename == file.filename
        assert file.path != original_path
        assert await blobs.exists(original_path)

    async def test_sequential_numbers(self, versions, store, blobs, async_session, file, alice):
        for n in range(1, 4):
            result = await _push(versions, blobs, async_session, file, alice, f"v{n}".encode())
            assert result.new_version.version_number == n
        history = await store.list_versions(async_session, file.id)
        assert [v.version_number for v in history] == [1, 2, 3]

    async def test_snapshot_points_at_previous_blob(
        self, versions, store, blobs, async_session, file, alice
    ):
        before = file.path
        await _push(versions, blobs, async_session, file, alice, b"v1", remark="draft")
        version = await store.get_version(async_session, file.id, 1)
        assert version.path == before
        assert version.remark == "draft"
        assert await blobs.read_bytes(file.path) == b"v1"
        assert file.size == 2

    async def test_wire_shape(self, versions, blobs, async_session, file, alice):
        result = await _push(versions, blobs, async_session, file, alice, b"v1")
        data = result.to_dict()
        assert data["newVersion"] == {
            "versionNumber": 1,
            "filename": result.new_version.filename,
            "remark": "Version 1",
        }
        assert data["file"]["id"] == file.id

    async def test_viewer_forbidden(self, versions, store, blobs, async_session, file, bob):
        await store.upsert_share(async_session, ResourceType.FILE, file.id, bob.id, "view")
        with pytest.raises(ForbiddenError, match="upload new version"):
            await _push(versions, blobs, async_session, file, bob, b"x")

    async def test_editor_allowed(self, versions, store, blobs, async_session, file, bob):
        await store.upsert_share(async_session, ResourceType.FILE, file.id, bob.id, "edit")
        result = await _push(versions, blobs, async_session, file, bob, b"x")
        assert result.success

    async def test_missing_file(self, versions, blobs, async_session, alice):
        blob = await blobs.write(b"x", "x.txt")
        with pytest.raises(NotFoundError, match="File not found"):
            await versions.push_version(async_session, "missing", blob, alice.id)

    async def test_emits_event(self, versions, blobs, async_session, file, alice, captured_events):
        await _push(versions, blobs, async_session, file, alice, b"v1")
        assert [e.event_type for e in captured_events] == [EventType.VERSION_PUSHED]
        assert captured_events[0].payload["versionNumber"] == 1


# ---------------------------------------------------------------------------
# restore_version
# ---------------------------------------------------------------------------


class TestRestore:
    async def test_restore_creates_backup(self, versions, store, blobs, async_session, file, alice):
        await _push(versions, blobs, async_session, file, alice, b"v1")
        await _push(versions, blobs, async_session, file, alice, b"v2")
        # live content is now b"v2"; version 1 holds b"v0", version 2 holds b"v1"
        result = await versions.restore_version(async_session, file.id, 1, alice.id)
        assert result.backup_version_number == 3
        assert result.message == "Version 1 restored successfully"
        backup = await store.get_version(async_session, file.id, 3)
        assert backup.remark == AUTO_SAVE_REMARK
        assert await blobs.read_bytes(backup.path) == b"v2"
        assert await blobs.read_bytes(file.path) == b"v0"

    async def test_size_reread_from_blob(self, versions, blobs, async_session, file, alice):
        await _push(versions, blobs, async_session, file, alice, b"a much longer body")
        await versions.restore_version(async_session, file.id, 1, alice.id)
        assert file.size == len(b"v0")

    async def test_unknown_version(self, versions, blobs, async_session, file, alice):
        with pytest.raises(NotFoundError, match="Version not found"):
            await versions.restore_version(async_session, file.id, 7, alice.id)

    async def test_missing_blob(self, versions, store, blobs, async_session, file, alice):
        await _push(versions, blobs, async_session, file, alice, b"v1")
        version = await store.get_version(async_session, file.id, 1)
        await blobs.delete(version.path)
        with pytest.raises(NotFoundError, match="Version file not found on server"):
            await versions.restore_version(async_session, file.id, 1, alice.id)
        assert await store.max_version_number(async_session, file.id) == 1

    async def test_viewer_forbidden(self, versions, store, blobs, async_session, file, alice, bob):
        await _push(versions, blobs, async_session, file, alice, b"v1")
        await store.upsert_share(async_session, ResourceType.FILE, file.id, bob.id, "view")
        with pytest.raises(ForbiddenError, match="restore versions"):
            await versions.restore_version(async_session, file.id, 1, bob.id)

    async def test_emits_event(self, versions, blobs, async_session, file, alice, captured_events):
        await _push(versions, blobs, async_session, file, alice, b"v1")
        await versions.restore_version(async_session, file.id, 1, alice.id)
        assert captured_events[-1].event_type is EventType.VERSION_RESTORED
        assert captured_events[-1].payload["backupVersionNumber"] == 2


# ---------------------------------------------------------------------------
# get_history
# ---------------------------------------------------------------------------


class TestHistory:
    async def test_newest_first(self, versions, blobs, async_session, file, alice):
        for n in range(3):
            await _push(versions, blobs, async_session, file, alice, bytes([n]))
        history = await versions.get_history(async_session, file.id, alice.id)
        assert history.current_version == 3
        assert [v.version_number for v in history.versions] == [3, 2, 1]

    async def test_empty_history_current_is_one(self, versions, async_session, file, alice):
        history = await versions.get_history(async_session, file.id, alice.id)
        assert history.current_version == 1
        assert history.to_dict()["versions"] == []

    async def test_viewer_may_read(self, versions, store, async_session, file, bob):
        await store.upsert_share(async_session, ResourceType.FILE, file.id, bob.id, "view")
        history = await versions.get_history(async_session, file.id, bob.id)
        assert history.original_name == "notes.txt"

    async def test_stranger_forbidden(self, versions, async_session, file, bob):
        with pytest.raises(ForbiddenError, match="view this file"):
            await versions.get_history(async_session, file.id, bob.id)
