"""SearchService — name search over a user's files and folders, plus optional content match."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .exceptions import InvalidInputError, UnauthenticatedError
from .types import SearchResults
from .utils import is_text_like

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from sharedrive.models.files import FileMeta

    from .blobs import BlobStore
    from .store import ResourceStore

logger = logging.getLogger(__name__)

SEARCH_KINDS = ("all", "file", "folder")
DEFAULT_SEARCH_LIMIT = 50
DEFAULT_CONTENT_MAX_BYTES = 5 * 1024 * 1024


class SearchService:
    """Searches only what the caller owns."""

    def __init__(
        self,
        store: ResourceStore,
        blobs: BlobStore,
        *,
        limit: int = DEFAULT_SEARCH_LIMIT,
        content_max_bytes: int = DEFAULT_CONTENT_MAX_BYTES,
    ) -> None:
        self._store = store
        self._blobs = blobs
        self._limit = limit
        self._content_max_bytes = content_max_bytes

    async def search(
        self,
        session: AsyncSession,
        user_id: str | None,
        query: str | None,
        *,
        mimetype: str | None = None,
        in_folder: str | None = None,
        kind: str = "all",
        include_content: bool = False,
    ) -> SearchResults:
        """Case-insensitive substring match on file and folder names.

        With *include_content*, text-like files whose content contains the
        query are added after the name matches.
        """
        if not user_id:
            raise UnauthenticatedError("User not authenticated")
        if kind not in SEARCH_KINDS:
            raise InvalidInputError("Invalid search kind. Must be all, file, or folder")

        text = (query or "").strip()
        if not text:
            logger.info("Empty search query, returning empty results")
            return SearchResults(kind=kind)

        logger.info(
            "Search by %s - query %r, type %s, folder %s, kind %s",
            user_id,
            text,
            mimetype,
            in_folder,
            kind,
        )
        results = SearchResults(query=text, mimetype=mimetype or "", kind=kind)

        if kind in ("all", "file"):
            results.files = await self._store.search_files(
                session,
                uploaded_by=user_id,
                name_contains=text,
                mimetype_contains=mimetype,
                parent_folder_id=in_folder,
                limit=self._limit,
            )
            if include_content and len(results.files) < self._limit:
                matched = {f.id for f in results.files}
                extra = await self._content_matches(session, user_id, text, in_folder, matched)
                results.files.extend(extra[: self._limit - len(results.files)])

        if kind in ("all", "folder"):
            results.folders = await self._store.search_folders(
                session,
                owner_id=user_id,
                name_contains=text,
                parent_id=in_folder,
                limit=self._limit,
            )

        logger.info(
            "Search completed - %d files, %d folders", len(results.files), len(results.folders)
        )
        return results

    async def _content_matches(
        self,
        session: AsyncSession,
        user_id: str,
        text: str,
        in_folder: str | None,
        exclude: set[str],
    ) -> list[FileMeta]:
        if in_folder:
            candidates = await self._store.find_files(
                session, uploaded_by=user_id, parent_folder_id=in_folder, newest_first=True
            )
        else:
            candidates = await self._store.find_files(
                session, uploaded_by=user_id, newest_first=True
            )

        needle = text.lower()
        matches: list[FileMeta] = []
        for file in candidates:
            if file.id in exclude or not is_text_like(file.original_name, file.mimetype):
                continue
            if file.size > self._content_max_bytes:
                logger.debug("Skipping content search of large file %s", file.id)
                continue
            try:
                content = (await self._blobs.read_bytes(file.path)).decode("utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning("Skipping file %s in content search: %s", file.id, exc)
                continue
            if needle in content.lower():
                matches.append(file)
        return matches
