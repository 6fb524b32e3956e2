
from __future__ import annotations

import logging
import socket
import stat
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional
from urllib.parse import urlsplit

import paramiko

from .credentials import Credentials
from .entry import Entry, UnknownEntry, entry_from_stat
from .errors import (
    BackendError,
    BadCredentialsError,
    DisposedError,
    FilesystemError,
    InvalidArgumentError,
    NotFoundError,
)
from .trust import Validator, hex_fingerprint, verify_endpoint
from .uri import child_uri, directory_uri, name_of, normalize_base, to_path

log = logging.getLogger("urifs.sftp")

DEFAULT_TIMEOUT = 30.0


@dataclass
class _ConnInfo:
    host: str
    port: int

    @property
    def endpoint(self) -> str:
        return f"sftp://{self.host}:{self.port}"


class SFTPFS:
    """SFTP-backed filesystem.

    The SSH transport is opened lazily on the first operation and kept until
    ``close()``. Before authenticating, the server's host key fingerprint (MD5,
    upper-case hex) is offered to ``validator``; without one every key is
    trusted. Without a password, keys from a running SSH agent are tried.
    """

    def __init__(
        self,
        base_uri: str,
        credentials: Optional[Credentials] = None,
        *,
        validator: Optional[Validator] = None,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        client: Optional[paramiko.SFTPClient] = None,
    ) -> None:
        parsed = urlsplit(base_uri)
        self.base_uri = normalize_base(base_uri)
        self.conn = _ConnInfo(host=parsed.hostname or "localhost", port=parsed.port or 22)
        self.credentials = credentials or Credentials.from_uri(base_uri)
        if client is None and self.credentials is None:
            raise InvalidArgumentError("SFTP requires credentials (at least a username)")
        self.validator = validator
        self.timeout = timeout
        self.client = client
        self._transport: Optional[paramiko.Transport] = None
        self._closed = False

    @classmethod
    def from_uri(cls, uri: str, **kwargs) -> "SFTPFS":
        return cls(uri, Credentials.from_uri(uri), **kwargs)

    def __repr__(self) -> str:
        return f"SFTPFS({self.base_uri!r})"

    # ----- connection -----
    def _connect(self) -> paramiko.SFTPClient:
        if self._closed:
            raise DisposedError(self.base_uri)
        if self.client is not None:
            return self.client

        endpoint = self.conn.endpoint
        log.debug("connecting to %s", endpoint)
        try:
            sock = socket.create_connection((self.conn.host, self.conn.port), self.timeout)
        except OSError as e:
            raise BackendError(f"Unable to connect to {endpoint}: {e}") from e
        try:
            transport = paramiko.Transport(sock)
        except (OSError, paramiko.SSHException) as e:
            sock.close()
            raise BackendError(f"Unable to connect to {endpoint}: {e}") from e

        try:
            transport.start_client(timeout=self.timeout)
            key = transport.get_remote_server_key()
            verify_endpoint(self.validator, hex_fingerprint(key.get_fingerprint()), endpoint)
            self._authenticate(transport)
            client = paramiko.SFTPClient.from_transport(transport)
            if client is None:
                raise BackendError(f"Unable to open an SFTP channel to {endpoint}")
        except paramiko.AuthenticationException as e:
            transport.close()
            raise BadCredentialsError(endpoint) from e
        except (OSError, EOFError, paramiko.SSHException) as e:
            transport.close()
            if isinstance(e, FilesystemError):
                raise
            raise BackendError(f"SSH negotiation with {endpoint} failed: {e}") from e
        except Exception:
            transport.close()
            raise

        self._transport = transport
        self.client = client
        return client

    def _authenticate(self, transport: paramiko.Transport) -> None:
        if self.credentials is None:
            raise InvalidArgumentError("SFTP requires credentials (at least a username)")
        username, password = self.credentials.username, self.credentials.password
        if password is not None:
            transport.auth_password(username, password)
            return
        # Authentication will rely on the SSH agent's keys.
        for key in paramiko.Agent().get_keys():
            try:
                transport.auth_publickey(username, key)
                return
            except paramiko.AuthenticationException:
                log.debug("agent key %s rejected for %s", key.get_name(), username)
        raise paramiko.AuthenticationException(f"No password given and no agent key accepted for {username}")

    @contextmanager
    def _translate(self, uri: str) -> Iterator[None]:
        try:
            yield
        except FilesystemError:
            raise
        except FileNotFoundError as e:
            raise NotFoundError(uri) from e
        except (OSError, EOFError, paramiko.SSHException) as e:
            raise BackendError(f"SFTP operation failed for {uri}: {e}") from e

    def _p(self, uri: str) -> str:
        return to_path(uri)

    # ----- entries -----
    def _entry(self, client: paramiko.SFTPClient, uri: str, name: str, attrs: paramiko.SFTPAttributes) -> Entry:
        if stat.S_ISLNK(attrs.st_mode or 0):
            try:
                attrs = client.stat(self._p(uri))
            except FileNotFoundError:
                return UnknownEntry(uri, name)
        return entry_from_stat(uri, name, attrs)

    def get_entry(self, uri: str) -> Entry:
        client = self._connect()
        path = self._p(uri)
        with self._translate(uri):
            try:
                attrs = client.stat(path)
            except FileNotFoundError:
                # dangling symlink
                client.lstat(path)
                return UnknownEntry(uri, name_of(uri))
            return entry_from_stat(uri, name_of(uri), attrs)

    def list_names(self, uri: str) -> List[str]:
        client = self._connect()
        with self._translate(uri):
            return [a.filename for a in client.listdir_attr(self._p(uri))]

    def list_entries(self, uri: str) -> List[Entry]:
        client = self._connect()
        base = directory_uri(uri)
        with self._translate(uri):
            return [
                self._entry(client, child_uri(base, a.filename), a.filename, a)
                for a in client.listdir_attr(self._p(uri))
            ]

    # ----- streams -----
    def open_write(self, uri: str) -> paramiko.SFTPFile:
        client = self._connect()
        with self._translate(uri):
            return client.open(self._p(uri), "wb")

    def open_read(self, uri: str) -> paramiko.SFTPFile:
        client = self._connect()
        with self._translate(uri):
            return client.open(self._p(uri), "rb")

    # ----- mutations -----
    def create_directory(self, uri: str) -> None:
        client = self._connect()
        parts = self._p(uri).strip("/").split("/")
        cur = ""
        with self._translate(uri):
            for part in parts:
                if not part:
                    continue
                cur = f"{cur}/{part}"
                try:
                    client.stat(cur)
                except FileNotFoundError:
                    client.mkdir(cur)

    def delete_file(self, uri: str) -> None:
        client = self._connect()
        with self._translate(uri):
            client.remove(self._p(uri))

    def delete_directory(self, uri: str) -> None:
        client = self._connect()
        with self._translate(uri):
            client.rmdir(self._p(uri))

    def close(self) -> None:
        self._closed = True
        client, self.client = self.client, None
        transport, self._transport = self._transport, None
        if client is not None:
            log.debug("closing %s", self.base_uri)
            client.close()
        if transport is not None:
            transport.close()
