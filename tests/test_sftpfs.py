import io
import stat
from unittest import mock

import paramiko
import pytest

from urifs import (
    BackendError,
    BadCredentialsError,
    Credentials,
    DirectoryEntry,
    DisposedError,
    FileEntry,
    InvalidArgumentError,
    NotFoundError,
    UnknownEntry,
    UntrustedEndpointError,
    open_fs,
)
from urifs import sftpfs
from urifs.sftpfs import SFTPFS

KEY_FINGERPRINT = b"\x12\x34\xab\xcd"


def attrs(name, mode, size=0, mtime=0):
    a = paramiko.SFTPAttributes()
    a.filename = name
    a.st_mode = mode
    a.st_size = size
    a.st_mtime = mtime
    return a


@pytest.fixture()
def transport(monkeypatch):
    key = mock.MagicMock(name="PKey")
    key.get_fingerprint.return_value = KEY_FINGERPRINT
    t = mock.MagicMock(name="Transport")
    t.get_remote_server_key.return_value = key
    factory = mock.MagicMock(return_value=t)
    monkeypatch.setattr(sftpfs.paramiko, "Transport", factory)
    t.factory = factory
    t.sock = mock.MagicMock(name="socket")
    t.create_connection = mock.MagicMock(return_value=t.sock)
    monkeypatch.setattr(sftpfs.socket, "create_connection", t.create_connection)
    return t


@pytest.fixture()
def client(monkeypatch, transport):
    c = mock.MagicMock(name="SFTPClient")
    monkeypatch.setattr(sftpfs.paramiko.SFTPClient, "from_transport", mock.MagicMock(return_value=c))
    return c


def test_connect_and_authenticate(transport, client):
    client.listdir_attr.return_value = [attrs("a.txt", stat.S_IFREG), attrs("sub", stat.S_IFDIR)]
    fs = open_fs("sftp://host:2222/home/u/", ("u", "p"))

    assert fs.list_names() == ["a.txt", "sub"]
    transport.create_connection.assert_called_once_with(("host", 2222), 30.0)
    transport.factory.assert_called_once_with(transport.sock)
    transport.auth_password.assert_called_once_with("u", "p")
    client.listdir_attr.assert_called_once_with("/home/u")


def test_rejected_host_key_skips_authentication(transport, client):
    seen = []
    fs = open_fs("sftp://host/", ("u", "p"), validator=lambda fp: seen.append(fp) or False)

    with pytest.raises(UntrustedEndpointError) as info:
        fs.list_names()
    assert seen == ["1234ABCD"]
    assert info.value.fingerprint == "1234ABCD"
    transport.auth_password.assert_not_called()
    transport.close.assert_called_once_with()


def test_bad_password(transport, client):
    transport.auth_password.side_effect = paramiko.AuthenticationException("Authentication failed.")
    fs = open_fs("sftp://host/", ("u", "wrong"))

    with pytest.raises(BadCredentialsError) as info:
        fs.get_entry("x")
    assert info.value.endpoint == "sftp://host:22"
    transport.close.assert_called_once_with()


def test_agent_keys_without_password(monkeypatch, transport, client):
    rejected, accepted = mock.MagicMock(name="k1"), mock.MagicMock(name="k2")
    agent = mock.MagicMock()
    agent.get_keys.return_value = [rejected, accepted]
    monkeypatch.setattr(sftpfs.paramiko, "Agent", mock.MagicMock(return_value=agent))
    transport.auth_publickey.side_effect = [paramiko.AuthenticationException("no"), None]
    client.listdir_attr.return_value = []

    open_fs("sftp://u@host/").list_names()
    assert transport.auth_publickey.call_args_list == [mock.call("u", rejected), mock.call("u", accepted)]


def test_no_agent_keys(monkeypatch, transport, client):
    agent = mock.MagicMock()
    agent.get_keys.return_value = []
    monkeypatch.setattr(sftpfs.paramiko, "Agent", mock.MagicMock(return_value=agent))
    with pytest.raises(BadCredentialsError):
        open_fs("sftp://u@host/").list_names()


def test_unreachable(transport):
    transport.create_connection.side_effect = OSError(111, "Connection refused")
    with pytest.raises(BackendError):
        open_fs("sftp://host/", ("u", "p")).list_names()
    transport.factory.assert_not_called()


def test_connect_timeout_applies_to_socket(transport):
    transport.create_connection.side_effect = TimeoutError("timed out")
    with pytest.raises(BackendError):
        open_fs("sftp://host/", ("u", "p"), timeout=2.5).list_names()
    transport.create_connection.assert_called_once_with(("host", 22), 2.5)


def test_ssh_setup_failure_closes_socket(transport):
    transport.factory.side_effect = paramiko.SSHException("bad banner")
    with pytest.raises(BackendError):
        open_fs("sftp://host/", ("u", "p")).list_names()
    transport.sock.close.assert_called_once_with()


def test_missing_credentials_on_reconnect(transport):
    backend = SFTPFS("sftp://host/d", client=mock.MagicMock(name="SFTPClient"))
    backend.client = None
    with pytest.raises(InvalidArgumentError):
        backend.list_names("sftp://host/d/")
    transport.auth_password.assert_not_called()
    transport.close.assert_called_once_with()


def test_entries(transport, client):
    fs = open_fs("sftp://host/home/u/", ("u", "p"))
    client.stat.side_effect = lambda p: {
        "/home/u/f.txt": attrs("f.txt", stat.S_IFREG | 0o644, size=5, mtime=60),
        "/home/u/sub": attrs("sub", stat.S_IFDIR | 0o755),
    }[p]

    entry = fs.get_entry("f.txt")
    assert isinstance(entry, FileEntry)
    assert (entry.uri, entry.name, entry.size) == ("sftp://host/home/u/f.txt", "f.txt", 5)
    assert entry.modified_at.timestamp() == 60
    assert fs.get_entry("sub") == DirectoryEntry("sftp://host/home/u/sub", "sub")


def test_missing_and_dangling(transport, client):
    fs = open_fs("sftp://host/home/u/", ("u", "p"))
    client.stat.side_effect = FileNotFoundError(2, "No such file")
    client.lstat.side_effect = [attrs("link", stat.S_IFLNK | 0o777), FileNotFoundError(2, "No such file")]

    assert fs.get_entry("link") == UnknownEntry("sftp://host/home/u/link", "link")
    with pytest.raises(NotFoundError) as info:
        fs.get_entry("missing")
    assert info.value.uri == "sftp://host/home/u/missing"


def test_list_entries_follows_links(transport, client):
    fs = open_fs("sftp://host/d/", ("u", "p"))
    client.listdir_attr.return_value = [
        attrs("a b", stat.S_IFREG, size=1),
        attrs("good", stat.S_IFLNK),
        attrs("bad", stat.S_IFLNK),
    ]

    def follow(path):
        if path == "/d/good":
            return attrs("good", stat.S_IFDIR)
        raise FileNotFoundError(2, "No such file")

    client.stat.side_effect = follow
    entries = fs.list_entries()
    assert [type(e) for e in entries] == [FileEntry, DirectoryEntry, UnknownEntry]
    assert entries[0].uri == "sftp://host/d/a%20b"


def test_streams(transport, client):
    fs = open_fs("sftp://host/d/", ("u", "p"))
    client.open.return_value = io.BytesIO(b"payload")
    assert fs.read_bytes("f") == b"payload"
    client.open.assert_called_once_with("/d/f", "rb")

    client.open.side_effect = FileNotFoundError(2, "No such file")
    with pytest.raises(NotFoundError):
        fs.open_read("missing")


def test_create_directory(transport, client):
    fs = open_fs("sftp://host/d/", ("u", "p"))
    existing = {"/d"}

    def lookup(path):
        if path not in existing:
            raise FileNotFoundError(2, "No such file", path)
        return attrs(path, stat.S_IFDIR)

    client.stat.side_effect = lookup
    client.mkdir.side_effect = existing.add
    fs.create_directory("x/y")
    fs.create_directory("x/y")
    assert client.mkdir.call_args_list == [mock.call("/d/x"), mock.call("/d/x/y")]


def test_failures_are_backend_errors(transport, client):
    fs = open_fs("sftp://host/d/", ("u", "p"))
    client.rmdir.side_effect = OSError("Failure")
    client.remove.side_effect = FileNotFoundError(2, "No such file")
    with pytest.raises(BackendError):
        fs.delete_directory("full")
    with pytest.raises(NotFoundError):
        fs.delete_file("missing")


def test_injected_client():
    client = mock.MagicMock(name="SFTPClient")
    client.listdir_attr.return_value = [attrs("x", stat.S_IFREG)]
    backend = SFTPFS("sftp://host/d", client=client)
    assert backend.list_names("sftp://host/d/") == ["x"]

    backend.close()
    client.close.assert_called_once_with()
    with pytest.raises(DisposedError):
        backend.list_names("sftp://host/d/")


def test_close_closes_transport(transport, client):
    client.listdir_attr.return_value = []
    fs = open_fs("sftp://host/", Credentials("u", "p"))
    fs.list_names()
    fs.close()
    client.close.assert_called_once_with()
    transport.close.assert_called_once_with()
