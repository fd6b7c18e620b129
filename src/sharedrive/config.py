"""DriveConfig — settings for a ShareDriveAsync instance."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sharedrive.drive.exceptions import InvalidInputError
from sharedrive.drive.hierarchy import DEFAULT_DOWNLOAD_URL
from sharedrive.drive.search import DEFAULT_CONTENT_MAX_BYTES, DEFAULT_SEARCH_LIMIT
from sharedrive.realtime.connection import DEFAULT_OUTBOX_SIZE

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

_DEFAULT_STORAGE_DIR = Path.home() / ".sharedrive" / "uploads"


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class DriveConfig:
    """Settings for the drive core."""

    storage_dir: Path = _DEFAULT_STORAGE_DIR
    """Root directory of the local blob store."""

    database_url: str = "sqlite+aiosqlite:///sharedrive.db"
    """SQLAlchemy async URL used when no engine is passed in."""

    download_url_template: str = DEFAULT_DOWNLOAD_URL
    """Per-file URL in download manifests; ``{file_id}`` is substituted."""

    outbox_size: int = DEFAULT_OUTBOX_SIZE
    """Pending realtime messages kept per connection before the oldest is dropped."""

    search_limit: int = DEFAULT_SEARCH_LIMIT
    content_search_max_bytes: int = DEFAULT_CONTENT_MAX_BYTES

    debug: bool = False
    """Attach exception details to internal-error envelopes."""

    def __post_init__(self) -> None:
        if "{file_id}" not in self.download_url_template:
            raise InvalidInputError("download_url_template must contain {file_id}")
        if self.outbox_size < 1:
            raise InvalidInputError("outbox_size must be at least 1")
        if self.search_limit < 1:
            raise InvalidInputError("search_limit must be at least 1")

    @classmethod
    def from_env(
        cls,
        prefix: str = "SHAREDRIVE_",
        environ: Mapping[str, str] | None = None,
        defaults: DriveConfig | None = None,
    ) -> DriveConfig:
        """Build a config from ``{prefix}STORAGE_DIR``, ``{prefix}DEBUG``, etc.

        Unset variables keep the value from *defaults* (or the class defaults).
        """
        env = os.environ if environ is None else environ
        fields: dict[str, tuple[str, Callable[[str], Any]]] = {
            f"{prefix}STORAGE_DIR": ("storage_dir", Path),
            f"{prefix}DATABASE_URL": ("database_url", str),
            f"{prefix}DOWNLOAD_URL_TEMPLATE": ("download_url_template", str),
            f"{prefix}OUTBOX_SIZE": ("outbox_size", int),
            f"{prefix}SEARCH_LIMIT": ("search_limit", int),
            f"{prefix}CONTENT_SEARCH_MAX_BYTES": ("content_search_max_bytes", int),
            f"{prefix}DEBUG": ("debug", _as_bool),
        }
        overrides: dict[str, Any] = {}
        for var, (name, convert) in fields.items():
            raw = env.get(var)
            if raw is None or raw == "":
                continue
            try:
                overrides[name] = convert(raw)
            except ValueError as exc:
                raise InvalidInputError(f"Invalid value for {var}: {raw!r}") from exc
        return replace(defaults or cls(), **overrides)
