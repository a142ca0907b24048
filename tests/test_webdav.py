import base64
import io
import os
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import unquote, urlsplit

import pytest
import responses

from saveany.enums import StorageType
from saveany.webdav import WebdavClient, WebdavError, WebdavStorage


class _DavHandler(BaseHTTPRequestHandler):
    def log_message(self, format, *args):
        pass

    def _local(self):
        path = unquote(urlsplit(self.path).path)
        parts = [p for p in path.split("/") if p not in ("", ".", "..")]
        return os.path.join(self.server.root, *parts)

    def _reply(self, code, body=b""):
        self.send_response(code)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if body:
            self.wfile.write(body)

    def _read_body(self):
        if self.headers.get("Transfer-Encoding", "").lower() == "chunked":
            chunks = []
            while True:
                size = int(self.rfile.readline().strip().split(b";")[0], 16)
                if size == 0:
                    self.rfile.readline()
                    break
                chunks.append(self.rfile.read(size))
                self.rfile.readline()
            return b"".join(chunks)
        return self.rfile.read(int(self.headers.get("Content-Length") or 0))

    def do_PROPFIND(self):
        self._read_body()
        if os.path.exists(self._local()):
            self._reply(207, b'<?xml version="1.0"?><multistatus xmlns="DAV:"/>')
        else:
            self._reply(404)

    def do_MKCOL(self):
        self._read_body()
        target = self._local()
        if os.path.exists(target):
            self._reply(405)
        elif not os.path.isdir(os.path.dirname(target)):
            self._reply(409)
        else:
            os.mkdir(target)
            self._reply(201)

    def do_PUT(self):
        data = self._read_body()
        target = self._local()
        if not os.path.isdir(os.path.dirname(target)):
            self._reply(409)
            return
        existed = os.path.exists(target)
        with open(target, "wb") as handle:
            handle.write(data)
        self._reply(204 if existed else 201)


@pytest.fixture
def dav(tmp_path):
    root = tmp_path / "dav"
    root.mkdir()
    server = ThreadingHTTPServer(("127.0.0.1", 0), _DavHandler)
    server.root = str(root)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}", root
    server.shutdown()
    server.server_close()


def _local_file(root, remote_path):
    return os.path.join(str(root), *remote_path.strip("/").split("/"))


def test_mkdir_and_exists(dav):
    url, _ = dav
    client = WebdavClient(url)
    for path in ["testdir", "testdir/subdir", "testdir/子目录", "/testdir/测试路径/测试路径2"]:
        assert client.exists(path) is False
        client.mkdir(path)
        assert client.exists(path) is True


@pytest.mark.parametrize(
    "remote_path, content",
    [
        ("hello.txt", "Hello webdav"),
        ("//nested/dir/test.txt", "Nested file"),
        ("nested/dir/test.txt", "Nested file"),
        ("empty.txt", ""),
        ("unicode.txt", "测试"),
    ],
)
def test_write_file(dav, remote_path, content):
    url, root = dav
    client = WebdavClient(url)
    client.mkdir(os.path.dirname(remote_path))

    client.write_file(remote_path, io.BytesIO(content.encode()))
    with open(_local_file(root, remote_path), encoding="utf-8") as handle:
        assert handle.read() == content

    appended = content + " Overwritten."
    client.write_file(remote_path, io.BytesIO(appended.encode()))
    with open(_local_file(root, remote_path), encoding="utf-8") as handle:
        assert handle.read() == appended


def test_storage_save_avoids_overwrite(dav):
    url, root = dav
    storage = WebdavStorage("dav", url)
    assert storage.storage_type is StorageType.WEBDAV
    first = storage.save(io.BytesIO(b"one"), "docs/a.txt")
    second = storage.save(io.BytesIO(b"two"), "docs/a.txt")
    assert first == "docs/a.txt"
    assert second == "docs/a_1.txt"
    with open(_local_file(root, first), "rb") as handle:
        assert handle.read() == b"one"
    with open(_local_file(root, second), "rb") as handle:
        assert handle.read() == b"two"
    assert storage.exists("docs/a_1.txt") is True


def test_join_storage_path():
    assert WebdavStorage("dav", "http://dav.example.com", base_path="/dav").join_storage_path(
        "a/b.txt"
    ) == "/dav/a/b.txt"
    assert WebdavStorage("dav", "http://dav.example.com").join_storage_path("x") == "x"


def test_propfind_sends_depth_and_basic_auth():
    password = "password"
    with responses.RequestsMock() as rsps:
        rsps.add("PROPFIND", "http://dav.example.com/a", status=207)
        client = WebdavClient("http://dav.example.com", "user", password=password)
        assert client.exists("a") is True
        headers = rsps.calls[0].request.headers
    assert headers["Depth"] == "1"
    expected = "Basic " + base64.b64encode(b"user:password").decode()
    assert headers["Authorization"] == expected


def test_exists_raises_on_unexpected_status():
    with responses.RequestsMock() as rsps:
        rsps.add("PROPFIND", "http://dav.example.com/a", status=500)
        client = WebdavClient("http://dav.example.com")
        with pytest.raises(WebdavError, match="PROPFIND: 500"):
            client.exists("a")


def test_mkdir_raises_on_mkcol_failure():
    with responses.RequestsMock() as rsps:
        rsps.add("PROPFIND", "http://dav.example.com/a", status=404)
        rsps.add("MKCOL", "http://dav.example.com/a", status=403)
        client = WebdavClient("http://dav.example.com")
        with pytest.raises(WebdavError, match="MKCOL a: 403"):
            client.mkdir("a/")


def _length_required(request):
    headers = request.headers
    if headers.get("Content-Length") == "5" and "Transfer-Encoding" not in headers:
        return (201, {}, "")
    return (411, {}, "")


def test_write_file_sets_content_length():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        rsps.add_callback("PUT", "http://dav.example.com/f.bin", callback=_length_required)
        client = WebdavClient("http://dav.example.com")
        assert client.write_file(
            "f.bin", (chunk for chunk in [b"ab", b"cde"]), content_length=5
        ) is None
        with pytest.raises(WebdavError, match="PUT: 411"):
            client.write_file("f.bin", (chunk for chunk in [b"ab", b"cde"]))
        assert len(rsps.calls) == 2


def test_write_file_raises_on_failure():
    with responses.RequestsMock() as rsps:
        rsps.add("PUT", "http://dav.example.com/f.bin", status=507)
        client = WebdavClient("http://dav.example.com")
        with pytest.raises(WebdavError, match="PUT: 507"):
            client.write_file("f.bin", b"data")


def test_storage_exists_false_on_error():
    with responses.RequestsMock() as rsps:
        rsps.add("PROPFIND", "http://dav.example.com/a.txt", status=500)
        storage = WebdavStorage("dav", "http://dav.example.com")
        assert storage.exists("a.txt") is False


def test_storage_save_reports_write_failure():
    with responses.RequestsMock() as rsps:
        rsps.add("PROPFIND", "http://dav.example.com/file.txt", status=404)
        rsps.add("PUT", "http://dav.example.com/file.txt", status=500)
        storage = WebdavStorage("dav", "http://dav.example.com")
        with pytest.raises(WebdavError) as info:
            storage.save(io.BytesIO(b"x"), "file.txt")
    assert str(info.value) == "webdav: failed to write file"


def test_storage_save_reports_directory_failure():
    with responses.RequestsMock() as rsps:
        rsps.add("PROPFIND", "http://dav.example.com/docs/file.txt", status=404)
        rsps.add("PROPFIND", "http://dav.example.com/docs", status=404)
        rsps.add("MKCOL", "http://dav.example.com/docs", status=500)
        storage = WebdavStorage("dav", "http://dav.example.com")
        with pytest.raises(WebdavError) as info:
            storage.save(io.BytesIO(b"x"), "docs/file.txt")
    assert str(info.value) == "webdav: failed to create directory"