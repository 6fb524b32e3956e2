
from .core import FileSystem, open_fs
from .credentials import Credentials
from .entry import DirectoryEntry, Entry, EntryKind, FileEntry, UnknownEntry
from .errors import (
    BackendError,
    BadCredentialsError,
    DisposedError,
    FilesystemError,
    InvalidArgumentError,
    InvalidScopeError,
    NotFoundError,
    OperationNotPermittedError,
    UnsupportedSchemeError,
    UntrustedEndpointError,
)
from .local import LocalFS
from .readonly import ReadOnlyBackend, read_only
from .trust import accept_any, pinned

__all__ = [
    "FileSystem",
    "open_fs",
    "read_only",
    "ReadOnlyBackend",
    "LocalFS",
    "Credentials",
    "Entry",
    "EntryKind",
    "FileEntry",
    "DirectoryEntry",
    "UnknownEntry",
    "accept_any",
    "pinned",
    "FilesystemError",
    "InvalidArgumentError",
    "InvalidScopeError",
    "UnsupportedSchemeError",
    "NotFoundError",
    "BadCredentialsError",
    "UntrustedEndpointError",
    "OperationNotPermittedError",
    "DisposedError",
    "BackendError",
]
__version__ = "0.1.0"
