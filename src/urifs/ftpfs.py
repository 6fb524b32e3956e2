
from __future__ import annotations

import ftplib
import hashlib
import io
import logging
import socket
import ssl
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Iterator, List, Optional
from urllib.parse import urlsplit

from .credentials import Credentials
from .entry import DirectoryEntry, Entry, FileEntry, UnknownEntry
from .errors import (
    BackendError,
    BadCredentialsError,
    DisposedError,
    FilesystemError,
    NotFoundError,
)
from .trust import Validator, hex_fingerprint, verify_endpoint
from .uri import child_uri, directory_uri, name_of, normalize_base, to_path

log = logging.getLogger("urifs.ftp")

DEFAULT_TIMEOUT = 30.0

_DIRECTORY_TYPES = ("dir", "cdir", "pdir")


class _ImplicitFTP_TLS(ftplib.FTP_TLS):
    """FTP_TLS that negotiates TLS as soon as the socket opens (implicit FTPS)."""

    def connect(self, host="", port=0, timeout=-999, source_address=None):
        if host:
            self.host = host
        if port > 0:
            self.port = port
        if timeout != -999:
            self.timeout = timeout
        if source_address is not None:
            self.source_address = source_address
        sock = socket.create_connection((self.host, self.port), self.timeout, source_address=self.source_address)
        self.af = sock.family
        self.sock = self.context.wrap_socket(sock, server_hostname=self.host)
        self.file = self.sock.makefile("r", encoding=self.encoding)
        self.welcome = self.getresp()
        return self.welcome


def _untrusting_context() -> ssl.SSLContext:
    # Trust decisions are made by the validator on the certificate fingerprint.
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def _reply_code(e: BaseException) -> str:
    return str(e)[:3]


def _parse_facts(text: str) -> Dict[str, str]:
    """Parse an MLST fact string (``type=file;size=12;modify=...;``)."""
    facts: Dict[str, str] = {}
    for fact in text.split(";"):
        key, sep, value = fact.partition("=")
        if sep:
            facts[key.strip().lower()] = value
    return facts


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    # YYYYMMDDHHMMSS[.sss], always UTC
    if not value:
        return None
    try:
        return datetime.strptime(value.strip()[:14], "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def _parse_int(value: Optional[str]) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


class _TransferStream(io.RawIOBase):
    """Sequential stream over one FTP data connection.

    Closing it finishes the transfer on the control connection; the
    connection itself stays open for further operations.
    """

    def __init__(self, client: ftplib.FTP, conn: socket.socket, uri: str, writing: bool) -> None:
        self._client = client
        self._conn = conn
        self._uri = uri
        self._writing = writing
        self._eof = False

    def readable(self) -> bool:
        return not self._writing

    def writable(self) -> bool:
        return self._writing

    def readinto(self, b) -> int:
        n = self._conn.recv_into(b)
        if n == 0:
            self._eof = True
        return n

    def write(self, b) -> int:
        self._conn.sendall(b)
        return memoryview(b).nbytes

    def close(self) -> None:
        if self.closed:
            return
        try:
            if isinstance(self._conn, ssl.SSLSocket) and (self._writing or self._eof):
                self._conn.unwrap()
            self._conn.close()
            try:
                self._client.voidresp()
            except ftplib.error_temp:
                # 426 is the normal reply to a download abandoned before EOF.
                if self._writing or self._eof:
                    raise
                log.debug("download of %s closed before end of file", self._uri)
        except ftplib.all_errors as e:
            raise BackendError(f"FTP transfer failed for {self._uri}: {e}") from e
        finally:
            super().close()


class FTPFS:
    """FTP/FTPS-backed filesystem.

    ``secure=True`` selects implicit TLS (default port 990): the control and
    data channels are encrypted, and the server certificate's SHA-1
    fingerprint is offered to ``validator`` before logging in. Without
    credentials the anonymous login is used.

    Server capabilities (``MLST``, ``SIZE``, ``MDTM``) are probed once per
    connection; entries degrade to ``UnknownEntry`` where the server can't
    describe an object.
    """

    def __init__(
        self,
        base_uri: str,
        credentials: Optional[Credentials] = None,
        *,
        secure: Optional[bool] = None,
        validator: Optional[Validator] = None,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
    ) -> None:
        parsed = urlsplit(base_uri)
        if secure is None:
            secure = parsed.scheme.lower() == "ftps"
        self.base_uri = normalize_base(base_uri)
        self.secure = secure
        self.host = parsed.hostname or "localhost"
        self.port = parsed.port or (990 if secure else 21)
        self.credentials = credentials or Credentials.from_uri(base_uri)
        self.validator = validator
        self.timeout = timeout
        self._client: Optional[ftplib.FTP] = None
        self._features: FrozenSet[str] = frozenset()
        self._closed = False

    def __repr__(self) -> str:
        return f"FTPFS({self.base_uri!r}, secure={self.secure})"

    @property
    def endpoint(self) -> str:
        return f"{'ftps' if self.secure else 'ftp'}://{self.host}:{self.port}"

    @property
    def features(self) -> FrozenSet[str]:
        return self._features

    # ----- connection -----
    def _new_client(self) -> ftplib.FTP:
        if self.secure:
            return _ImplicitFTP_TLS(context=_untrusting_context(), timeout=self.timeout)
        return ftplib.FTP(timeout=self.timeout)

    def _connect(self) -> ftplib.FTP:
        if self._closed:
            raise DisposedError(self.base_uri)
        if self._client is not None:
            return self._client

        log.debug("connecting to %s", self.endpoint)
        client = self._new_client()
        username = self.credentials.username if self.credentials else ""
        password = (self.credentials.password or "") if self.credentials else ""
        try:
            client.connect(self.host, self.port)
            if self.secure:
                der = client.sock.getpeercert(binary_form=True)
                verify_endpoint(self.validator, hex_fingerprint(hashlib.sha1(der).digest()), self.endpoint)
            client.login(username, password)
            if self.secure:
                client.prot_p()
            client.voidcmd("TYPE I")
            features = self._read_features(client)
        except ftplib.error_perm as e:
            client.close()
            if _reply_code(e) == "530":
                raise BadCredentialsError(self.endpoint) from e
            raise BackendError(f"FTP login to {self.endpoint} failed: {e}") from e
        except FilesystemError:
            client.close()
            raise
        except ftplib.all_errors as e:
            client.close()
            raise BackendError(f"Unable to connect to {self.endpoint}: {e}") from e

        self._client = client
        self._features = features
        return client

    @staticmethod
    def _read_features(client: ftplib.FTP) -> FrozenSet[str]:
        try:
            resp = client.sendcmd("FEAT")
        except ftplib.error_perm:
            return frozenset()
        lines = resp.splitlines()[1:-1]
        return frozenset(line.split()[0].upper() for line in lines if line.strip())

    def _drop(self) -> None:
        client, self._client = self._client, None
        self._features = frozenset()
        if client is not None:
            client.close()

    @contextmanager
    def _errors(self, uri: str, missing_ok: bool = True) -> Iterator[None]:
        try:
            yield
        except FilesystemError:
            raise
        except ftplib.error_perm as e:
            if missing_ok and _reply_code(e) == "550":
                raise NotFoundError(uri) from e
            raise BackendError(f"FTP operation failed for {uri}: {e}") from e
        except (OSError, EOFError) as e:
            # control connection is unusable; reconnect on the next call
            self._drop()
            raise BackendError(f"FTP connection to {self.endpoint} lost: {e}") from e
        except ftplib.all_errors as e:
            raise BackendError(f"FTP operation failed for {uri}: {e}") from e

    def _p(self, uri: str) -> str:
        return to_path(uri)

    # ----- probing helpers -----
    @staticmethod
    def _is_directory(client: ftplib.FTP, path: str) -> bool:
        current = client.pwd()
        try:
            client.cwd(path)
        except ftplib.error_perm:
            return False
        client.cwd(current)
        return True

    @staticmethod
    def _mlst(client: ftplib.FTP, path: str) -> Dict[str, str]:
        resp = client.sendcmd(f"MLST {path}")
        for line in resp.splitlines()[1:]:
            if line.startswith(" "):
                facts, _, _ = line[1:].partition(" ")
                return _parse_facts(facts)
        return {}

    @staticmethod
    def _modified(client: ftplib.FTP, path: str) -> Optional[datetime]:
        try:
            resp = client.sendcmd(f"MDTM {path}")
        except ftplib.error_perm:
            return None
        return _parse_time(resp[4:]) if resp[:3] == "213" else None

    @staticmethod
    def _entry(uri: str, name: str, facts: Dict[str, str]) -> Entry:
        kind = facts.get("type", "").lower()
        if kind in _DIRECTORY_TYPES:
            return DirectoryEntry(uri, name)
        if kind == "file":
            return FileEntry(
                uri,
                name,
                size=_parse_int(facts.get("size")),
                created_at=_parse_time(facts.get("create")),
                modified_at=_parse_time(facts.get("modify")),
            )
        return UnknownEntry(uri, name)

    # ----- entries -----
    def get_entry(self, uri: str) -> Entry:
        client = self._connect()
        path = self._p(uri)
        name = name_of(uri)
        with self._errors(uri):
            # MLST makes this easy.
            if "MLST" in self._features:
                return self._entry(uri, name, self._mlst(client, path))

            if self._is_directory(client, path):
                return DirectoryEntry(uri, name)

            # not a directory, try to get file size and mod times.
            if "SIZE" in self._features:
                size = client.size(path)
                modified = self._modified(client, path) if "MDTM" in self._features else None
                return FileEntry(uri, name, size=size, modified_at=modified)

        return UnknownEntry(uri, name)

    def list_names(self, uri: str) -> List[str]:
        client = self._connect()
        path = self._p(uri)
        with self._errors(uri):
            try:
                names = client.nlst(path)
            except ftplib.error_perm as e:
                # some servers answer 550 for an empty directory
                if _reply_code(e) == "550" and self._is_directory(client, path):
                    return []
                raise
        return [n.rsplit("/", 1)[-1] for n in names if n.rsplit("/", 1)[-1] not in (".", "..")]

    def list_entries(self, uri: str) -> List[Entry]:
        client = self._connect()
        base = directory_uri(uri)
        if "MLST" not in self._features:
            return [self.get_entry(child_uri(base, name)) for name in self.list_names(uri)]

        with self._errors(uri):
            return [
                self._entry(child_uri(base, name), name, facts)
                for name, facts in client.mlsd(self._p(uri))
                if name not in (".", "..") and facts.get("type", "").lower() not in ("cdir", "pdir")
            ]

    # ----- streams -----
    def _transfer(self, uri: str, command: str, writing: bool) -> io.BufferedIOBase:
        client = self._connect()
        with self._errors(uri):
            client.voidcmd("TYPE I")
            conn = client.transfercmd(f"{command} {self._p(uri)}")
        raw = _TransferStream(client, conn, uri, writing)
        return io.BufferedWriter(raw) if writing else io.BufferedReader(raw)

    def open_write(self, uri: str) -> io.BufferedIOBase:
        return self._transfer(uri, "STOR", writing=True)

    def open_read(self, uri: str) -> io.BufferedIOBase:
        return self._transfer(uri, "RETR", writing=False)

    # ----- mutations -----
    def create_directory(self, uri: str) -> None:
        client = self._connect()
        cur = ""
        with self._errors(uri, missing_ok=False):
            for part in self._p(uri).split("/"):
                if not part:
                    continue
                cur = f"{cur}/{part}"
                if not self._is_directory(client, cur):
                    client.mkd(cur)

    def delete_file(self, uri: str) -> None:
        client = self._connect()
        with self._errors(uri):
            client.delete(self._p(uri))

    def delete_directory(self, uri: str) -> None:
        client = self._connect()
        path = self._p(uri)
        with self._errors(uri, missing_ok=False):
            try:
                client.rmd(path)
            except ftplib.error_perm as e:
                # 550 covers both "no such directory" and "directory not empty"
                if _reply_code(e) == "550" and not self._is_directory(client, path):
                    raise NotFoundError(uri) from e
                raise

    def close(self) -> None:
        self._closed = True
        client, self._client = self._client, None
        if client is None:
            return
        log.debug("closing %s", self.endpoint)
        try:
            client.quit()
        except ftplib.all_errors:
            log.debug("QUIT failed for %s; closing socket", self.endpoint, exc_info=True)
            client.close()
