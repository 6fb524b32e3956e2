
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple, Union
from urllib.parse import unquote, urlsplit

from .errors import InvalidArgumentError


@dataclass(frozen=True)
class Credentials:
    """Username/password pair, shared by every network backend."""
    username: str
    password: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_uri(cls, uri: str) -> Optional["Credentials"]:
        """Credentials embedded in a URI's user-info (``sftp://user:pw@host/``), if any."""
        parsed = urlsplit(uri)
        if not parsed.username:
            return None
        password = unquote(parsed.password) if parsed.password is not None else None
        return cls(unquote(parsed.username), password)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, prefix: str = "URIFS") -> Optional["Credentials"]:
        """Read ``<PREFIX>_USERNAME`` / ``<PREFIX>_PASSWORD`` from ``env`` (default: ``os.environ``)."""
        env = os.environ if env is None else env
        username = env.get(f"{prefix}_USERNAME")
        if not username:
            return None
        return cls(username, env.get(f"{prefix}_PASSWORD"))


CredentialsLike = Union[Credentials, Tuple[str, Optional[str]], None]


def coerce_credentials(value: CredentialsLike) -> Optional[Credentials]:
    if value is None or isinstance(value, Credentials):
        return value
    if isinstance(value, tuple) and len(value) == 2:
        return Credentials(value[0], value[1])
    raise InvalidArgumentError(
        f"credentials must be a Credentials or a (username, password) tuple, got {type(value).__name__}"
    )
