import io
import sys
from pathlib import Path

# Allow running tests without installing the package.
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

import pytest

from urifs import FileEntry, FileSystem, open_fs


@pytest.fixture()
def local_fs(tmp_path):
    fs = open_fs(tmp_path.as_uri())
    try:
        yield fs
    finally:
        fs.close()


class RecordingBackend:
    """In-memory backend that records every primitive call."""

    def __init__(self, base_uri="mem://host/root/"):
        self.base_uri = base_uri
        self.calls = []
        self.closed = False

    def _record(self, name, uri):
        self.calls.append((name, uri))

    @property
    def mutating_calls(self):
        return [c for c in self.calls if c[0] in ("open_write", "create_directory", "delete_file", "delete_directory")]

    def get_entry(self, uri):
        self._record("get_entry", uri)
        return FileEntry(uri, uri.rsplit("/", 1)[-1], size=3)

    def list_names(self, uri):
        self._record("list_names", uri)
        return ["a.txt", "b"]

    def list_entries(self, uri):
        self._record("list_entries", uri)
        return []

    def open_write(self, uri):
        self._record("open_write", uri)
        return io.BytesIO()

    def open_read(self, uri):
        self._record("open_read", uri)
        return io.BytesIO(b"abc")

    def create_directory(self, uri):
        self._record("create_directory", uri)

    def delete_file(self, uri):
        self._record("delete_file", uri)

    def delete_directory(self, uri):
        self._record("delete_directory", uri)

    def close(self):
        self.closed = True


@pytest.fixture()
def recording():
    return RecordingBackend()


@pytest.fixture()
def recording_fs(recording):
    return FileSystem(recording)
