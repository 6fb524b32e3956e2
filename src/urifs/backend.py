
from __future__ import annotations

from typing import BinaryIO, List, Protocol, runtime_checkable

from .entry import Entry


@runtime_checkable
class Backend(Protocol):
    """
    Primitive operations a filesystem backend implements.

    Every method receives an absolute URI that has already been resolved
    against, and checked to lie within, ``base_uri``. Backends:
      - raise NotFoundError for a missing target
      - create missing ancestors in create_directory, and accept an existing directory
      - never delete directories recursively
      - return sequential streams (callers must not rely on seeking)
      - hold at most one connection, released by close(); use after close raises DisposedError
    """

    base_uri: str

    def get_entry(self, uri: str) -> Entry: ...

    def list_names(self, uri: str) -> List[str]: ...

    def list_entries(self, uri: str) -> List[Entry]: ...

    def open_write(self, uri: str) -> BinaryIO: ...

    def open_read(self, uri: str) -> BinaryIO: ...

    def create_directory(self, uri: str) -> None: ...

    def delete_file(self, uri: str) -> None: ...

    def delete_directory(self, uri: str) -> None: ...

    def close(self) -> None: ...
