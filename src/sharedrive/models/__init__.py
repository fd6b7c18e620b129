"""SQLModel database models for sharedrive."""

from sharedrive.models.files import FileMeta, FileVersion
from sharedrive.models.folders import Folder
from sharedrive.models.shares import FileShare, FolderShare, ShareEntryBase
from sharedrive.models.users import User

__all__ = [
    "FileMeta",
    "FileShare",
    "FileVersion",
    "Folder",
    "FolderShare",
    "ShareEntryBase",
    "User",
]
