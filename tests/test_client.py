from __future__ import annotations

import io
import socket
import threading

import pytest

from rfs.client import Client, LocalFileError, RemoteError, TransferError, run_shell
from rfs.constants import USAGE
from rfs.framing import Channel
from rfs.protocol import DirEntry, EntryKind


@pytest.fixture
def client(server):
    c = Client.connect(*server.address, timeout=5.0)
    yield c
    c.close()


@pytest.fixture
def local_dir(tmp_path):
    d = tmp_path / "local"
    d.mkdir()
    return d


def test_put_get_roundtrip(client, local_dir, tmp_path):
    body = bytes(range(256)) * 1000
    src = local_dir / "blob.bin"
    src.write_bytes(body)

    assert client.put(src) == len(body)
    src.unlink()

    assert client.get("blob.bin", local_dir) == len(body)
    assert src.read_bytes() == body
    assert (tmp_path / "root" / "blob.bin").read_bytes() == body


def test_list_after_put(client, local_dir):
    src = local_dir / "a.txt"
    src.write_bytes(b"x" * 500)
    client.put(src)
    assert DirEntry("a.txt", EntryKind.FILE) in client.list()


def test_list_empty(client):
    assert client.list() == []


def test_remote_error_keeps_connection(client, local_dir):
    with pytest.raises(RemoteError) as exc:
        client.get("missing.txt", local_dir)
    assert exc.value.message == "File not found"
    assert client.list() == []


def test_put_with_unsafe_remote_name(client, local_dir, tmp_path):
    src = local_dir / "ok.txt"
    src.write_bytes(b"payload that must be drained")
    with pytest.raises(RemoteError) as exc:
        client.put(src, remote_name="../ok.txt")
    assert exc.value.message == "Invalid filename"
    assert not (tmp_path / "ok.txt").exists()
    assert client.list() == []


def test_put_missing_local_file(client, local_dir):
    with pytest.raises(LocalFileError):
        client.put(local_dir / "nope.txt")
    assert client.list() == []


def test_get_unwritable_destination_drains(client, local_dir):
    src = local_dir / "f.txt"
    src.write_bytes(b"0123456789" * 1000)
    client.put(src)

    with pytest.raises(LocalFileError):
        client.get("f.txt", local_dir / "does-not-exist")
    # payload was drained, the next reply is read cleanly
    assert [e.name for e in client.list()] == ["f.txt"]


def test_get_truncated_payload(local_dir):
    a, b = socket.socketpair()
    server_side = Channel(a)

    def fake_server():
        assert server_side.read_line() == "GET t.bin"
        server_side.send_all(b"OK\n10\nabc")
        server_side.close()

    t = threading.Thread(target=fake_server, daemon=True)
    t.start()
    client = Client(Channel(b))
    with pytest.raises(TransferError):
        client.get("t.bin", local_dir)
    client.close()
    t.join(timeout=5.0)


def test_unexpected_status_line():
    a, b = socket.socketpair()
    Channel(a).send_all(b"HELLO\n")
    client = Client(Channel(b))
    with pytest.raises(ValueError):
        client.list()
    client.close()
    a.close()


def test_shell_session(server, local_dir, monkeypatch):
    monkeypatch.chdir(local_dir)
    (local_dir / "x").write_bytes(b"hello")
    client = Client.connect(*server.address, timeout=5.0)

    stdin = io.StringIO("PUT x\n\nLIST\nGET x\nGET missing\nDELETE x\nGET \nQUIT\nLIST\n")
    stdout, stderr = io.StringIO(), io.StringIO()
    assert run_shell(client, stdin, stdout, stderr) == 0

    out = stdout.getvalue()
    assert "Upload successful" in out
    assert "x\tfile" in out
    assert "Downloaded x (5 bytes)" in out
    assert USAGE in out
    assert out.rstrip().endswith("Disconnected.")
    err = stderr.getvalue()
    assert "Server error: File not found" in err
    assert "Usage: GET <filename>" in err
    assert (local_dir / "x").read_bytes() == b"hello"


def test_shell_stops_when_server_goes_away():
    a, b = socket.socketpair()
    a.close()
    stdin = io.StringIO("LIST\nLIST\n")
    stdout, stderr = io.StringIO(), io.StringIO()
    run_shell(Client(Channel(b)), stdin, stdout, stderr)
    assert stderr.getvalue().count("Connection error") == 1
    assert "Disconnected." in stdout.getvalue()
