
from __future__ import annotations

import enum
import stat
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, ClassVar, Optional, Union


class EntryKind(str, enum.Enum):
    UNKNOWN = "unknown"
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class UnknownEntry:
    """An object the backend could not classify (e.g. a dangling symlink)."""
    uri: str
    name: str

    kind: ClassVar[EntryKind] = EntryKind.UNKNOWN

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class FileEntry:
    """
    A regular file.

    - uri: absolute URI of the file, inside the filesystem's authority
    - name: unescaped last path segment
    - size: size in bytes if the backend can report it
    - created_at / modified_at: UTC timestamps if the backend can report them
    """
    uri: str
    name: str
    size: Optional[int] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None

    kind: ClassVar[EntryKind] = EntryKind.FILE

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class DirectoryEntry:
    uri: str
    name: str

    kind: ClassVar[EntryKind] = EntryKind.DIRECTORY

    def __str__(self) -> str:
        return self.name


Entry = Union[UnknownEntry, FileEntry, DirectoryEntry]


def utc_timestamp(value: Optional[float]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def entry_from_stat(uri: str, name: str, st: Any, created_at: Optional[datetime] = None) -> Entry:
    """Classify an ``os.stat_result``-like object (``st_mode``, ``st_size``, ``st_mtime``)."""
    mode = getattr(st, "st_mode", None) or 0
    if stat.S_ISDIR(mode):
        return DirectoryEntry(uri, name)
    if stat.S_ISREG(mode):
        return FileEntry(
            uri,
            name,
            size=getattr(st, "st_size", None),
            created_at=created_at,
            modified_at=utc_timestamp(getattr(st, "st_mtime", None)),
        )
    return UnknownEntry(uri, name)
