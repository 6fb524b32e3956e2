"""Read-only wrapper around any backend.

A non-raising read-only filesystem (``ignore_writes=True``) can be used as a
limited non-destructive test environment: reads hit the real backend, writes
vanish.
"""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING, BinaryIO, List, Union

from .backend import Backend
from .entry import Entry
from .errors import DisposedError, InvalidArgumentError, OperationNotPermittedError

if TYPE_CHECKING:
    from .core import FileSystem

log = logging.getLogger("urifs.readonly")


class NullWriter(io.RawIOBase):
    """Writable stream that discards everything written to it."""

    def writable(self) -> bool:
        return True

    def write(self, b) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed file.")
        return memoryview(b).nbytes


class ReadOnlyBackend:
    """Forwards reads to ``child`` and rejects (or ignores) every mutation."""

    def __init__(self, child: Backend, *, ignore_writes: bool = False, close_child: bool = False) -> None:
        if child is None:
            raise InvalidArgumentError("child backend is required")
        self.child = child
        self.base_uri = child.base_uri
        self.ignore_writes = ignore_writes
        self.close_child = close_child
        self._closed = False

    def __repr__(self) -> str:
        mode = "ignore" if self.ignore_writes else "reject"
        return f"ReadOnlyBackend({self.child!r}, mode={mode})"

    def _check_open(self) -> None:
        if self._closed:
            raise DisposedError(self.base_uri)

    def _mutation(self, action: str, uri: str) -> None:
        self._check_open()
        if not self.ignore_writes:
            raise OperationNotPermittedError(action, uri)
        log.debug("ignoring %s for %s", action, uri)

    # reads
    def get_entry(self, uri: str) -> Entry:
        self._check_open()
        return self.child.get_entry(uri)

    def list_names(self, uri: str) -> List[str]:
        self._check_open()
        return self.child.list_names(uri)

    def list_entries(self, uri: str) -> List[Entry]:
        self._check_open()
        return self.child.list_entries(uri)

    def open_read(self, uri: str) -> BinaryIO:
        self._check_open()
        return self.child.open_read(uri)

    # mutations
    def open_write(self, uri: str) -> BinaryIO:
        self._mutation("create files", uri)
        return NullWriter()  # type: ignore[return-value]

    def create_directory(self, uri: str) -> None:
        self._mutation("create directories", uri)

    def delete_file(self, uri: str) -> None:
        self._mutation("delete files", uri)

    def delete_directory(self, uri: str) -> None:
        self._mutation("delete directories", uri)

    def close(self) -> None:
        self._closed = True
        if self.close_child:
            self.child.close()


def read_only(target: Union["FileSystem", Backend], *, ignore_writes: bool = False) -> "FileSystem":
    """Wrap a FileSystem (or a bare backend) so it can't modify anything.

    The wrapped filesystem keeps its own lifecycle: closing the read-only view
    leaves it open.
    """
    from .core import FileSystem

    child = target.backend if isinstance(target, FileSystem) else target
    return FileSystem(ReadOnlyBackend(child, ignore_writes=ignore_writes))
