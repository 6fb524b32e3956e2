"""Exceptions raised by urifs.

Every error derives from :class:`FilesystemError` and from the closest
built-in exception, so callers can either branch on the small urifs taxonomy
or keep catching ``ValueError``/``OSError`` as they would for local files.

Backend-specific exceptions (``ftplib``, ``paramiko``, ``OSError``) are never
leaked directly; they are chained as ``__cause__``.
"""

from __future__ import annotations

import errno

__all__ = [
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


class FilesystemError(Exception):
    """Base class for all urifs errors."""


class InvalidArgumentError(FilesystemError, ValueError):
    """Raised for a missing or malformed URI argument."""


class InvalidScopeError(InvalidArgumentError):
    """Raised when an absolute URI points outside the filesystem's authority."""

    def __init__(self, authority: str, expected: str) -> None:
        super().__init__(
            f"Absolute URIs must share the authority of the filesystem: "
            f"got {authority!r}, expected {expected!r}"
        )
        self.authority = authority
        self.expected = expected


class UnsupportedSchemeError(InvalidArgumentError):
    """Raised by the factory for a URI scheme with no backend."""

    def __init__(self, scheme: str) -> None:
        super().__init__(f"The URI scheme {scheme!r} is not supported.")
        self.scheme = scheme


class NotFoundError(FilesystemError, FileNotFoundError):
    """Raised when no file or directory exists at a URI."""

    def __init__(self, uri: str) -> None:
        super().__init__(errno.ENOENT, "No file or directory at URI", uri)
        self.uri = uri


class BadCredentialsError(FilesystemError, PermissionError):
    """Raised when the remote server rejects the supplied credentials."""

    def __init__(self, endpoint: str) -> None:
        super().__init__(f"Unable to authorize with the supplied credentials at {endpoint}")
        self.endpoint = endpoint


class UntrustedEndpointError(FilesystemError, ConnectionError):
    """Raised when the validator rejects a certificate or host key fingerprint."""

    def __init__(self, endpoint: str, fingerprint: str) -> None:
        super().__init__(f"Fingerprint {fingerprint} of {endpoint} was rejected by the validator")
        self.endpoint = endpoint
        self.fingerprint = fingerprint


class OperationNotPermittedError(FilesystemError, PermissionError):
    """Raised by a read-only filesystem on a mutating operation."""

    def __init__(self, action: str, uri: str) -> None:
        super().__init__(f"Read-only filesystems may not {action}: {uri}")
        self.action = action
        self.uri = uri


class DisposedError(FilesystemError, RuntimeError):
    """Raised when a closed filesystem or backend is used again."""

    def __init__(self, base_uri: str) -> None:
        super().__init__(f"Filesystem for {base_uri} has been closed")
        self.base_uri = base_uri


class BackendError(FilesystemError, OSError):
    """Catch-all for protocol and OS failures not classified above."""
