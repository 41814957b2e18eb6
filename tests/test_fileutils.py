import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest

from limakit.downloader import DownloadError
from limakit.fileutils import File, SkippedError, combine_errors, download_file

CONTENT = b"TestDownloadLocal"
DIGEST = "sha256:0c1e0fba69e8919b306d030bf491e3e0c46cf0a8140ff5d7516ba3a83cbea5b3"
EMPTY_FILE_DIGEST = "sha256:e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


class _Handler(BaseHTTPRequestHandler):
    def do_GET(self):
        if self.path == "/image.img":
            self.send_response(200)
            self.send_header("Content-Length", str(len(CONTENT)))
            self.end_headers()
            self.wfile.write(CONTENT)
        else:
            self.send_error(404)

    def log_message(self, *args):
        pass


@pytest.fixture
def server(monkeypatch):
    for name in ("http_proxy", "HTTP_PROXY", "all_proxy", "ALL_PROXY"):
        monkeypatch.delenv(name, raising=False)
    srv = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    thread = threading.Thread(target=srv.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{srv.server_address[1]}"
    srv.shutdown()
    srv.server_close()


def test_arch_mismatch_is_skipped(tmp_path):
    f = File(location="https://example.com/image.img", arch="aarch64")
    with pytest.raises(SkippedError, match="unsupported arch"):
        download_file(str(tmp_path / "out"), f, False, "the image", "x86_64", str(tmp_path))
    assert not (tmp_path / "out").exists()


def test_download_into_cache_and_dest(server, tmp_path):
    f = File(location=server + "/image.img", arch="x86_64", digest=DIGEST)
    dest = tmp_path / "out"
    cache_path = download_file(str(dest), f, False, "the image", "x86_64", str(tmp_path / "cache"))
    assert Path(cache_path).read_bytes() == CONTENT
    assert dest.read_bytes() == CONTENT

    dest2 = tmp_path / "out2"
    again = download_file(str(dest2), f, False, "the image", "x86_64", str(tmp_path / "cache"))
    assert again == cache_path
    assert dest2.read_bytes() == CONTENT


def test_download_failure_is_wrapped(server, tmp_path):
    f = File(location=server + "/image.img", arch="x86_64", digest=EMPTY_FILE_DIGEST)
    with pytest.raises(DownloadError, match="failed to download"):
        download_file(str(tmp_path / "out"), f, False, "the image", "x86_64", str(tmp_path / "cache"))


def test_combine_errors_empty():
    assert combine_errors([]) is None


def test_combine_errors_single_is_returned_as_is():
    err = RuntimeError("boom")
    assert combine_errors([SkippedError("skip"), err]) is err


def test_combine_errors_joins_messages():
    combined = combine_errors([RuntimeError("first"), SkippedError("skip"), RuntimeError("second")])
    assert str(combined) == "first, second"


def test_combine_errors_only_skipped():
    combined = combine_errors([SkippedError("a"), SkippedError("b")])
    assert str(combined) == "[a b]"
    assert not isinstance(combined, SkippedError)