
from __future__ import annotations

import io
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List
from urllib.parse import urlsplit
from urllib.request import url2pathname

from .entry import Entry, UnknownEntry, entry_from_stat, utc_timestamp
from .errors import BackendError, DisposedError, FilesystemError, NotFoundError
from .uri import StrOrPath, child_uri, directory_uri, is_absolute, normalize_base

log = logging.getLogger("urifs.local")


@contextmanager
def _translate(uri: str) -> Iterator[None]:
    try:
        yield
    except FilesystemError:
        raise
    except FileNotFoundError as e:
        raise NotFoundError(uri) from e
    except OSError as e:
        raise BackendError(f"Local operation failed for {uri}: {e}") from e


class LocalFS:
    """Filesystem backed by the local disk, rooted at a ``file://`` base URI."""

    def __init__(self, base: StrOrPath = "file:///") -> None:
        base = os.fspath(base)
        if not is_absolute(base) or len(urlsplit(base).scheme) == 1:
            # A plain path (or a Windows drive path such as C:\data).
            base = Path(base).expanduser().resolve().as_uri()
        self.base_uri = normalize_base(base)
        self._closed = False

    def __repr__(self) -> str:
        return f"LocalFS({self.base_uri!r})"

    def _p(self, uri: str) -> Path:
        if self._closed:
            raise DisposedError(self.base_uri)
        return Path(url2pathname(urlsplit(uri).path))

    def _stat_entry(self, uri: str, p: Path) -> Entry:
        try:
            st = p.stat()
        except FileNotFoundError:
            if p.is_symlink():
                return UnknownEntry(uri, p.name)
            raise
        return entry_from_stat(uri, p.name, st, created_at=utc_timestamp(getattr(st, "st_birthtime", None)))

    def get_entry(self, uri: str) -> Entry:
        p = self._p(uri)
        with _translate(uri):
            return self._stat_entry(uri, p)

    def list_names(self, uri: str) -> List[str]:
        p = self._p(uri)
        with _translate(uri):
            return [child.name for child in p.iterdir()]

    def list_entries(self, uri: str) -> List[Entry]:
        p = self._p(uri)
        base = directory_uri(uri)
        entries: List[Entry] = []
        with _translate(uri):
            for child in p.iterdir():
                try:
                    entries.append(self._stat_entry(child_uri(base, child.name), child))
                except FileNotFoundError:
                    # removed between iterdir() and stat()
                    continue
        return entries

    def open_write(self, uri: str) -> io.BufferedWriter:
        p = self._p(uri)
        with _translate(uri):
            return open(p, "wb")

    def open_read(self, uri: str) -> io.BufferedReader:
        p = self._p(uri)
        with _translate(uri):
            return open(p, "rb")

    def create_directory(self, uri: str) -> None:
        p = self._p(uri)
        with _translate(uri):
            p.mkdir(parents=True, exist_ok=True)

    def delete_file(self, uri: str) -> None:
        p = self._p(uri)
        with _translate(uri):
            p.unlink()

    def delete_directory(self, uri: str) -> None:
        p = self._p(uri)
        with _translate(uri):
            p.rmdir()

    def close(self) -> None:
        if not self._closed:
            log.debug("closing %s", self.base_uri)
        self._closed = True
