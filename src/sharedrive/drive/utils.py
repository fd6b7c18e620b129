"""Name, path, and content-type helpers."""

from __future__ import annotations

import mimetypes
import posixpath
import uuid
from datetime import UTC, datetime
from pathlib import PurePosixPath

ROOT_SENTINEL = "root"
"""Target-folder value meaning "detach to the top level"."""

# =============================================================================
# Text-like content (eligible for content search)
# =============================================================================

TEXT_MIME_TYPES = {
    "application/json",
    "application/xml",
    "application/javascript",
    "application/x-httpd-php",
    "application/x-sh",
    "application/typescript",
    "application/x-typescript",
}

TEXT_EXTENSIONS = {
    ".txt", ".md", ".markdown", ".rst", ".log", ".csv", ".tsv",
    ".json", ".yaml", ".yml", ".toml", ".ini", ".cfg", ".env", ".xml",
    ".html", ".htm", ".css", ".scss",
    ".js", ".jsx", ".ts", ".tsx", ".py", ".java", ".c", ".cpp", ".h",
    ".cs", ".rb", ".go", ".rs", ".sh", ".sql",
}


def extension_of(name: str) -> str:
    """Lower-cased extension including the dot, or ``""``."""
    return PurePosixPath(name).suffix.lower()


def is_text_like(filename: str, mimetype: str | None) -> bool:
    """True when a file's content can be searched as text."""
    if mimetype and (mimetype.startswith("text/") or mimetype in TEXT_MIME_TYPES):
        return True
    return extension_of(filename) in TEXT_EXTENSIONS


def guess_mime_type(name: str) -> str:
    """Guess the MIME type from a file name, defaulting to octet-stream."""
    mime, _ = mimetypes.guess_type(name)
    return mime or "application/octet-stream"


def unique_blob_name(original_name: str) -> str:
    """Stored blob name: ``{epoch_ms}-{uuid}{ext}``."""
    millis = int(datetime.now(UTC).timestamp() * 1000)
    return f"{millis}-{uuid.uuid4().hex}{extension_of(original_name)}"


# =============================================================================
# Folder names and paths
# =============================================================================


def clean_name(name: str | None) -> str:
    """Strip whitespace; returns ``""`` for None."""
    return (name or "").strip()


def child_path(parent_path: str, parent_name: str) -> str:
    """Materialised path of a folder created under *parent_name*.

    Examples:
        child_path("/", "docs") -> "/docs"
        child_path("/docs", "2024") -> "/docs/2024"
    """
    return posixpath.join(parent_path or "/", parent_name)


def escape_like(value: str) -> str:
    """Escape SQL LIKE wildcards (``\\`` is the escape character)."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
