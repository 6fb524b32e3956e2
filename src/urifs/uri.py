"""URI scoping: base normalization, authority checks and reference resolution.

A filesystem is rooted at a base URI. Callers address objects either with a
reference relative to that base (``"reports/2024.csv"``, ``"."``) or with an
absolute URI, which is accepted only when it shares the base's authority
(scheme, host and port). The check runs on the resolved URI, so ``//host/x``
references are held to it as well. This is the only scope check urifs
performs: ``..`` segments inside the same authority are resolved, not
rejected. ``?`` and ``#`` are escaped as part of a name.
"""

from __future__ import annotations

import os
from pathlib import PurePath
from typing import Optional, Tuple, Union
from urllib.parse import SplitResult, quote, unquote, urlsplit

from .errors import InvalidArgumentError, InvalidScopeError

StrOrPath = Union[str, os.PathLike]
Authority = Tuple[str, str, Optional[int]]

DEFAULT_PORTS = {"ftp": 21, "ftps": 990, "sftp": 22}

# Reserved and unreserved characters plus '%' so existing escapes survive.
# '?' and '#' are escaped: no backend has queries or fragments, so they are
# ordinary name characters.
_URI_SAFE = ":/[]@!$&'()*+,;=%-._~"
_PATH_SAFE = "/:@!$&'()*+,;=%-._~"


def escape(reference: str) -> str:
    """Percent-escape characters that may not appear in a URI path (spaces, non-ASCII, ``?``, ``#``)."""
    return quote(reference, safe=_URI_SAFE)


def split_uri(uri: str) -> SplitResult:
    try:
        parts = urlsplit(uri)
        parts.port  # raises ValueError for a non-numeric port
    except ValueError as e:
        raise InvalidArgumentError(f"Malformed URI {uri!r}: {e}") from e
    return parts


def _netloc(host: str, port: Optional[int]) -> str:
    if ":" in host:
        host = f"[{host}]"
    return host if port is None else f"{host}:{port}"


def _join(scheme: str, netloc: str, path: str, query: str = "", fragment: str = "") -> str:
    if not path.startswith("/"):
        path = "/" + path
    uri = f"{scheme}://{netloc}{path}"
    if query:
        uri += "?" + query
    if fragment:
        uri += "#" + fragment
    return uri


def is_absolute(uri: str) -> bool:
    return bool(urlsplit(uri).scheme)


def authority_of(uri: str) -> Authority:
    """Return ``(scheme, host, port)`` with the scheme's default port filled in."""
    parts = split_uri(uri)
    scheme = parts.scheme.lower()
    port = parts.port
    if port is None:
        port = DEFAULT_PORTS.get(scheme)
    return scheme, (parts.hostname or ""), port


def format_authority(authority: Authority) -> str:
    scheme, host, port = authority
    if port == DEFAULT_PORTS.get(scheme):
        port = None
    return f"{scheme}://{_netloc(host, port)}"


def remove_dot_segments(path: str) -> str:
    """RFC 3986 section 5.2.4, on ``/``-separated segments."""
    if not path:
        return path
    segments = path.split("/")
    keep = 1 if path.startswith("/") else 0
    out: list[str] = []
    for segment in segments:
        if segment == "..":
            if len(out) > keep:
                out.pop()
        elif segment != ".":
            out.append(segment)
    if segments[-1] in (".", ".."):
        out.append("")
    return "/".join(out)


def normalize_base(uri: str) -> str:
    """Canonical form of a base URI.

    The scheme and host are lower-cased, user-info is dropped, the path is
    escaped and dot segments removed, and a trailing ``/`` is forced so the
    base always denotes a directory.
    """
    if not uri:
        raise InvalidArgumentError("A base URI is required")
    parts = split_uri(uri)
    if not parts.scheme:
        raise InvalidArgumentError(f"Base URI must be absolute: {uri!r}")
    path = remove_dot_segments(quote(parts.path or "/", safe=_PATH_SAFE))
    if not path.endswith("/"):
        path += "/"
    return _join(parts.scheme.lower(), _netloc(parts.hostname or "", parts.port), path)


def resolve(base: str, reference: str) -> str:
    """Resolve ``reference`` against the absolute ``base`` (RFC 3986 section 5.2.2)."""
    b = urlsplit(base)
    r = urlsplit(reference)
    if r.scheme:
        return _join(r.scheme.lower(), r.netloc, remove_dot_segments(r.path), r.query, r.fragment)
    if reference.startswith("//"):
        return _join(b.scheme, r.netloc, remove_dot_segments(r.path), r.query, r.fragment)
    if not r.path:
        return _join(b.scheme, b.netloc, b.path, r.query or b.query, r.fragment)
    if r.path.startswith("/"):
        path = r.path
    elif b.netloc and not b.path:
        path = "/" + r.path
    else:
        path = b.path[: b.path.rfind("/") + 1] + r.path
    return _join(b.scheme, b.netloc, remove_dot_segments(path), r.query, r.fragment)


def directory_uri(uri: str) -> str:
    """Same URI with a trailing ``/`` on the path, so children resolve inside it."""
    parts = urlsplit(uri)
    path = parts.path or "/"
    if not path.endswith("/"):
        path += "/"
    return _join(parts.scheme, parts.netloc, path, parts.query)


def child_uri(directory: str, name: str) -> str:
    return directory_uri(directory) + quote(name, safe="")


def to_path(uri: str) -> str:
    """Unescaped path of ``uri``, without a trailing slash except for the root."""
    path = unquote(urlsplit(uri).path)
    return path.rstrip("/") or "/"


def name_of(uri: str) -> str:
    """Unescaped last path segment; empty for the root."""
    return to_path(uri).rsplit("/", 1)[-1]


class UriScope:
    """Resolves caller-supplied URIs against a fixed base URI."""

    def __init__(self, base_uri: str) -> None:
        self.base_uri = normalize_base(base_uri)
        self.authority = authority_of(self.base_uri)
        self._base = urlsplit(self.base_uri)

    def __repr__(self) -> str:
        return f"UriScope({self.base_uri!r})"

    def resolve(self, uri: Optional[StrOrPath]) -> str:
        if uri is None:
            raise InvalidArgumentError("uri must not be None")
        if isinstance(uri, os.PathLike):
            uri = PurePath(uri).as_posix()
        if not isinstance(uri, str):
            raise InvalidArgumentError(f"uri must be a string, got {type(uri).__name__}")
        if not uri:
            raise InvalidArgumentError("uri must not be empty")

        # Network-path references ("//host/x") carry an authority too, so the
        # check runs on the resolved result, not on the reference.
        resolved = resolve(self.base_uri, escape(uri))
        authority = authority_of(resolved)
        if authority != self.authority:
            raise InvalidScopeError(format_authority(authority), format_authority(self.authority))
        # Re-root on the canonical base so user-info and host casing never leak.
        return _join(self._base.scheme, self._base.netloc, urlsplit(resolved).path or "/")

    def relative(self, uri: str) -> str:
        """Path of a resolved ``uri`` relative to the base, ``""`` for the base itself."""
        path = urlsplit(uri).path
        if path.startswith(self._base.path):
            return unquote(path[len(self._base.path):])
        return unquote(path)
