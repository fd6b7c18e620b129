"""Tests for ResourceStore — lookups, share entries, versions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sharedrive.drive.permissions import ResourceType
from sharedrive.models.files import FileVersion

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from sharedrive.drive.store import ResourceStore
    from sharedrive.drive.types import Principal


async def _file(store: ResourceStore, session: AsyncSession, owner: str, name: str = "a.txt", parent=None):
    return await store.create_file(
        session,
        original_name=name,
        filename=f"stored-{name}",
        path=f"stored-{name}",
        size=3,
        mimetype="text/plain",
        uploaded_by=owner,
        parent_folder_id=parent,
    )


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class TestUsers:
    async def test_get_by_email(self, store, async_session, alice: Principal):
        user = await store.get_user_by_email(async_session, "alice@example.com")
        assert user is not None
        assert user.id == alice.id

    async def test_missing_returns_none(self, store, async_session):
        assert await store.get_user(async_session, "nope") is None
        assert await store.get_user_by_email(async_session, "nope@example.com") is None

    async def test_get_users_skips_unknown(self, store, async_session, alice, bob):
        users = await store.get_users(async_session, [alice.id, bob.id, "ghost"])
        assert set(users) == {alice.id, bob.id}

    async def test_get_users_empty(self, store, async_session):
        assert await store.get_users(async_session, []) == {}


# ---------------------------------------------------------------------------
# Folders and files
# ---------------------------------------------------------------------------


class TestFind:
    async def test_root_vs_child_folders(self, store, async_session, alice):
        root = await store.create_folder(
            async_session, name="root", owner_id=alice.id, parent_id=None, path="/"
        )
        await store.create_folder(
            async_session, name="child", owner_id=alice.id, parent_id=root.id, path="/root"
        )
        roots = await store.find_folders(async_session, owner_id=alice.id, parent_id=None)
        assert [f.name for f in roots] == ["root"]
        every = await store.find_folders(async_session, owner_id=alice.id)
        assert {f.name for f in every} == {"root", "child"}

    async def test_find_files_by_parent(self, store, async_session, alice):
        folder = await store.create_folder(
            async_session, name="docs", owner_id=alice.id, parent_id=None, path="/"
        )
        await _file(store, async_session, alice.id, "in.txt", folder.id)
        await _file(store, async_session, alice.id, "out.txt")
        inside = await store.find_files(
            async_session, uploaded_by=alice.id, parent_folder_id=folder.id
        )
        top = await store.find_files(async_session, uploaded_by=alice.id, parent_folder_id=None)
        assert [f.original_name for f in inside] == ["in.txt"]
        assert [f.original_name for f in top] == ["out.txt"]

    async def test_get_resource(self, store, async_session, alice):
        file = await _file(store, async_session, alice.id)
        assert await store.get_resource(async_session, ResourceType.FILE, file.id) is file
        assert await store.get_resource(async_session, ResourceType.FOLDER, file.id) is None

    async def test_search_files_case_insensitive(self, store, async_session, alice, bob):
        await _file(store, async_session, alice.id, "Report.TXT")
        await _file(store, async_session, bob.id, "report.txt")
        found = await store.search_files(
            async_session, uploaded_by=alice.id, name_contains="report"
        )
        assert [f.original_name for f in found] == ["Report.TXT"]

    async def test_search_escapes_wildcards(self, store, async_session, alice):
        await _file(store, async_session, alice.id, "100%.txt")
        await _file(store, async_session, alice.id, "1000.txt")
        found = await store.search_files(async_session, uploaded_by=alice.id, name_contains="0%")
        assert [f.original_name for f in found] == ["100%.txt"]


# ---------------------------------------------------------------------------
# Share entries
# ---------------------------------------------------------------------------


class TestShares:
    async def test_upsert_appends_then_updates(self, store, async_session, alice, bob):
        file = await _file(store, async_session, alice.id)
        _, updated = await store.upsert_share(
            async_session, ResourceType.FILE, file.id, bob.id, "view"
        )
        assert updated is False
        _, updated = await store.upsert_share(
            async_session, ResourceType.FILE, file.id, bob.id, "edit"
        )
        assert updated is True
        entries = await store.list_shares(async_session, ResourceType.FILE, file.id)
        assert [(e.user_id, e.permission) for e in entries] == [(bob.id, "edit")]

    async def test_insertion_order(self, store, async_session, alice, bob, carol):
        file = await _file(store, async_session, alice.id)
        await store.upsert_share(async_session, ResourceType.FILE, file.id, carol.id, "view")
        await store.upsert_share(async_session, ResourceType.FILE, file.id, bob.id, "view")
        entries = await store.list_shares(async_session, ResourceType.FILE, file.id)
        assert [e.user_id for e in entries] == [carol.id, bob.id]

    async def test_remove_share(self, store, async_session, alice, bob):
        file = await _file(store, async_session, alice.id)
        await store.upsert_share(async_session, ResourceType.FILE, file.id, bob.id, "view")
        assert await store.remove_share(async_session, ResourceType.FILE, file.id, bob.id)
        assert not await store.remove_share(async_session, ResourceType.FILE, file.id, bob.id)

    async def test_load_acl(self, store, async_session, alice, bob):
        file = await _file(store, async_session, alice.id)
        await store.upsert_share(async_session, ResourceType.FILE, file.id, bob.id, "admin")
        acl = await store.load_acl(async_session, ResourceType.FILE, file)
        assert acl.owner_id == alice.id
        assert acl.grant_for(bob.id).permission == "admin"

    async def test_shared_resources_of(self, store, async_session, alice, bob):
        shared = await _file(store, async_session, alice.id, "shared.txt")
        await _file(store, async_session, alice.id, "private.txt")
        await store.upsert_share(async_session, ResourceType.FILE, shared.id, bob.id, "view")
        result = await store.shared_resources_of(async_session, ResourceType.FILE, alice.id)
        assert [f.id for f in result] == [shared.id]


# ---------------------------------------------------------------------------
# Versions
# ---------------------------------------------------------------------------


class TestVersions:
    async def test_max_version_none_when_empty(self, store, async_session, alice):
        file = await _file(store, async_session, alice.id)
        assert await store.max_version_number(async_session, file.id) is None

    async def test_list_versions_ordering(self, store, async_session, alice):
        file = await _file(store, async_session, alice.id)
        for n in (1, 2, 3):
            await store.add_version(
                async_session,
                FileVersion(
                    file_id=file.id,
                    version_number=n,
                    filename=f"v{n}",
                    path=f"v{n}",
                    uploaded_by=alice.id,
                ),
            )
        newest = await store.list_versions(async_session, file.id, newest_first=True)
        assert [v.version_number for v in newest] == [3, 2, 1]
        assert await store.max_version_number(async_session, file.id) == 3
        await store.delete_versions(async_session, file.id)
        assert await store.list_versions(async_session, file.id) == []
