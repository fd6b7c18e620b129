"""Tests for SearchService."""

from __future__ import annotations

import pytest

from sharedrive.drive.exceptions import InvalidInputError, UnauthenticatedError
from sharedrive.drive.search import SearchService


@pytest.fixture
def search(store, blobs) -> SearchService:
    return SearchService(store, blobs)


async def _file(store, blobs, session, owner, name, data=b"", parent=None, mimetype=None):
    blob = await blobs.write(data, name, mimetype)
    return await store.create_file(
        session,
        original_name=name,
        filename=blob.filename,
        path=blob.path,
        size=blob.size,
        mimetype=blob.mimetype,
        uploaded_by=owner,
        parent_folder_id=parent,
    )


async def _folder(store, session, owner, name, parent=None):
    return await store.create_folder(
        session, name=name, owner_id=owner, parent_id=parent, path="/"
    )


class TestNameSearch:
    async def test_files_and_folders(self, search, store, blobs, async_session, alice):
        await _file(store, blobs, async_session, alice.id, "Budget-2024.csv")
        await _file(store, blobs, async_session, alice.id, "notes.txt")
        await _folder(store, async_session, alice.id, "budgets")

        results = await search.search(async_session, alice.id, "budget")
        assert [f.original_name for f in results.files] == ["Budget-2024.csv"]
        assert [f.name for f in results.folders] == ["budgets"]
        summary = results.to_dict()["summary"]
        assert summary["totalFiles"] == 1
        assert summary["searchQuery"] == "budget"
        assert summary["searchKind"] == "all"

    async def test_only_own_resources(self, search, store, blobs, async_session, alice, bob):
        await _file(store, blobs, async_session, bob.id, "budget.txt")
        results = await search.search(async_session, alice.id, "budget")
        assert results.files == []

    async def test_kind_filter(self, search, store, blobs, async_session, alice):
        await _file(store, blobs, async_session, alice.id, "plan.txt")
        await _folder(store, async_session, alice.id, "plans")
        files_only = await search.search(async_session, alice.id, "plan", kind="file")
        assert files_only.folders == []
        folders_only = await search.search(async_session, alice.id, "plan", kind="folder")
        assert folders_only.files == []
        assert len(folders_only.folders) == 1

    async def test_mimetype_filter(self, search, store, blobs, async_session, alice):
        await _file(store, blobs, async_session, alice.id, "a.png")
        await _file(store, blobs, async_session, alice.id, "a.txt")
        results = await search.search(async_session, alice.id, "a.", mimetype="image")
        assert [f.original_name for f in results.files] == ["a.png"]

    async def test_in_folder(self, search, store, blobs, async_session, alice):
        docs = await _folder(store, async_session, alice.id, "docs")
        await _file(store, blobs, async_session, alice.id, "plan.txt", parent=docs.id)
        await _file(store, blobs, async_session, alice.id, "plan-old.txt")
        results = await search.search(async_session, alice.id, "plan", in_folder=docs.id)
        assert [f.original_name for f in results.files] == ["plan.txt"]

    async def test_regex_characters_are_literal(self, search, store, blobs, async_session, alice):
        await _file(store, blobs, async_session, alice.id, "a(1).txt")
        await _file(store, blobs, async_session, alice.id, "a1.txt")
        results = await search.search(async_session, alice.id, "(1)")
        assert [f.original_name for f in results.files] == ["a(1).txt"]

    async def test_limit(self, store, blobs, async_session, alice):
        for n in range(4):
            await _file(store, blobs, async_session, alice.id, f"log-{n}.txt")
        limited = SearchService(store, blobs, limit=2)
        results = await limited.search(async_session, alice.id, "log")
        assert len(results.files) == 2


class TestContentSearch:
    async def test_content_matches_appended(self, search, store, blobs, async_session, alice):
        await _file(store, blobs, async_session, alice.id, "quarterly.txt", b"nothing")
        await _file(store, blobs, async_session, alice.id, "minutes.md", b"Discussed the Quarterly plan")
        results = await search.search(
            async_session, alice.id, "quarterly", include_content=True
        )
        assert [f.original_name for f in results.files] == ["quarterly.txt", "minutes.md"]

    async def test_content_off_by_default(self, search, store, blobs, async_session, alice):
        await _file(store, blobs, async_session, alice.id, "minutes.md", b"quarterly")
        results = await search.search(async_session, alice.id, "quarterly")
        assert results.files == []

    async def test_binary_and_large_skipped(self, store, blobs, async_session, alice):
        await _file(store, blobs, async_session, alice.id, "image.png", b"quarterly")
        await _file(store, blobs, async_session, alice.id, "big.txt", b"quarterly" * 10)
        await _file(store, blobs, async_session, alice.id, "bad.txt", b"\xff\xfequarterly")
        await _file(store, blobs, async_session, alice.id, "small.txt", b"quarterly")
        small = SearchService(store, blobs, content_max_bytes=20)
        results = await small.search(async_session, alice.id, "quarterly", include_content=True)
        assert [f.original_name for f in results.files] == ["small.txt"]

    async def test_missing_blob_skipped(self, search, store, blobs, async_session, alice):
        file = await _file(store, blobs, async_session, alice.id, "gone.txt", b"quarterly")
        await blobs.delete(file.path)
        results = await search.search(
            async_session, alice.id, "quarterly", include_content=True
        )
        assert results.files == []


class TestValidation:
    @pytest.mark.parametrize("query", [None, "", "   "])
    async def test_empty_query(self, search, async_session, alice, query):
        results = await search.search(async_session, alice.id, query)
        assert results.files == []
        assert results.folders == []

    async def test_unauthenticated(self, search, async_session):
        with pytest.raises(UnauthenticatedError):
            await search.search(async_session, None, "x")

    async def test_invalid_kind(self, search, async_session, alice):
        with pytest.raises(InvalidInputError):
            await search.search(async_session, alice.id, "x", kind="everything")
